"""Disk persistence for the serialized MSAL token cache.

The store never parses the blob. It only knows how to load it, compare it with
the last form it saw, and replace the file atomically (temp file in the same
directory, then rename) with owner-only permissions.

Writes within one process are serialized FIFO by an asyncio lock. Separate
processes are only protected by the atomic rename: last writer wins.
"""

import asyncio
import os
import tempfile
from pathlib import Path
from typing import Optional, Protocol

from myoffice.utils.logger import get_logger

logger = get_logger("myoffice.auth.token_store")

CACHE_FILE_MODE = 0o600


class PersistentStore(Protocol):
    """Load / save-if-changed pair used by the session manager."""

    async def load(self) -> Optional[str]:
        ...

    async def save_if_changed(self, blob: str) -> bool:
        ...

    async def clear(self) -> bool:
        ...


class FileTokenStore:
    """Token cache file with atomic replace and a per-process write queue."""

    def __init__(self, path: str | Path):
        self._path = Path(path)
        self._write_lock = asyncio.Lock()
        self._last_blob: Optional[str] = None

    @property
    def path(self) -> Path:
        return self._path

    def _read(self) -> Optional[str]:
        if not self._path.exists():
            return None
        try:
            data = self._path.read_text(encoding="utf-8")
        except (OSError, ValueError) as e:
            logger.warning("token_store.load_error", path=str(self._path), error=str(e))
            return None
        return data if data.strip() else None

    async def load(self) -> Optional[str]:
        """Return the persisted blob, or None when missing, empty or unreadable."""
        blob = await asyncio.to_thread(self._read)
        self._last_blob = blob
        return blob

    def _write_atomic(self, blob: str) -> None:
        """Write to a temp file beside the target, then rename over it."""
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self._path.name}.",
            suffix=".tmp",
            dir=self._path.parent,
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(blob)
                f.flush()
                os.fsync(f.fileno())
            os.chmod(tmp_name, CACHE_FILE_MODE)
            os.replace(tmp_name, self._path)
        except BaseException:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
            raise

    async def save(self, blob: str) -> None:
        """Persist unconditionally. Concurrent callers are written one at a time, in call order."""
        async with self._write_lock:
            await asyncio.to_thread(self._write_atomic, blob)
            self._last_blob = blob
        logger.debug("token_store.saved", path=str(self._path), size=len(blob))

    async def save_if_changed(self, blob: str) -> bool:
        """Persist only when blob differs from the last loaded or written form."""
        if blob == self._last_blob:
            return False
        await self.save(blob)
        return True

    async def clear(self) -> bool:
        """Delete the cache file. Returns False if there was nothing to delete."""
        async with self._write_lock:
            self._last_blob = None
            try:
                await asyncio.to_thread(self._path.unlink)
            except FileNotFoundError:
                return False
        logger.info("token_store.cleared", path=str(self._path))
        return True
