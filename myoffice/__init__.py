"""Delegated Microsoft Graph client core: persistent MSAL session + resilient transport."""

from myoffice.auth import CredentialRecord, DeviceCodeInfo, FileTokenStore, SessionManager, get_session_manager
from myoffice.errors import (
    AuthError,
    ConfigurationError,
    DeviceCodeExpired,
    HttpError,
    MyOfficeError,
    NetworkError,
    NotAuthenticated,
    ProviderError,
    ReauthenticationRequired,
    TransportError,
    UploadSessionError,
)
from myoffice.graph import GraphClient, create_graph_client, upload_drive_item

__version__ = "0.1.0"

__all__ = [
    "AuthError",
    "ConfigurationError",
    "CredentialRecord",
    "DeviceCodeExpired",
    "DeviceCodeInfo",
    "FileTokenStore",
    "GraphClient",
    "HttpError",
    "MyOfficeError",
    "NetworkError",
    "NotAuthenticated",
    "ProviderError",
    "ReauthenticationRequired",
    "SessionManager",
    "TransportError",
    "UploadSessionError",
    "create_graph_client",
    "get_session_manager",
    "upload_drive_item",
]
