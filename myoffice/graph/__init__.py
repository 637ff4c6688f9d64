"""Microsoft Graph transport: authenticated requests, pagination and uploads."""

from myoffice.graph.client import (
    CHUNK_SIZE,
    UPLOAD_CHUNK_ALIGNMENT,
    GraphClient,
    TokenProvider,
    create_graph_client,
)
from myoffice.graph.drive import SIMPLE_UPLOAD_MAX, upload_drive_item, uses_resumable_upload
from myoffice.graph.models import ConnectivityReport, UploadProgress, UploadSession

__all__ = [
    "CHUNK_SIZE",
    "UPLOAD_CHUNK_ALIGNMENT",
    "SIMPLE_UPLOAD_MAX",
    "GraphClient",
    "TokenProvider",
    "create_graph_client",
    "upload_drive_item",
    "uses_resumable_upload",
    "ConnectivityReport",
    "UploadProgress",
    "UploadSession",
]
