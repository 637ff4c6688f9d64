"""Authentication and token persistence for delegated Graph API access."""

from myoffice.auth.models import CredentialRecord, DeviceCodeInfo, DeviceCodePresenter
from myoffice.auth.session import SessionManager, get_session_manager
from myoffice.auth.token_store import FileTokenStore, PersistentStore

__all__ = [
    "CredentialRecord",
    "DeviceCodeInfo",
    "DeviceCodePresenter",
    "FileTokenStore",
    "PersistentStore",
    "SessionManager",
    "get_session_manager",
]
