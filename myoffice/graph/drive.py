"""OneDrive upload routing: small files in one PUT, the rest through an upload session."""

from typing import Any, Optional
from urllib.parse import quote

from myoffice.graph.client import GraphClient, ProgressCallback

# Graph rejects single-shot PUT bodies of 4 MiB and above
SIMPLE_UPLOAD_MAX = 4 * 1024 * 1024


def uses_resumable_upload(size: int) -> bool:
    """True when a payload of this many bytes must go through an upload session."""
    return size >= SIMPLE_UPLOAD_MAX


def drive_item_path(remote_path: str, drive_root: str = "/me/drive/root") -> str:
    """Path-addressed drive item, e.g. '/me/drive/root:/Documents/a.txt'."""
    cleaned = remote_path.strip().strip("/")
    if not cleaned:
        raise ValueError("remote_path must name a file")
    return f"{drive_root}:/{quote(cleaned)}"


async def upload_drive_item(
    client: GraphClient,
    remote_path: str,
    content: bytes,
    content_type: str = "application/octet-stream",
    on_progress: Optional[ProgressCallback] = None,
    drive_root: str = "/me/drive/root",
) -> dict[str, Any]:
    """Upload content to remote_path and return the created driveItem."""
    item_path = drive_item_path(remote_path, drive_root)
    if uses_resumable_upload(len(content)):
        return await client.upload_resumable(item_path, content, on_progress=on_progress)
    item = await client.upload_simple(f"{item_path}:/content", content, content_type=content_type)
    if on_progress:
        on_progress(len(content), len(content))
    return item
