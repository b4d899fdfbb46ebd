"""
Blob Storage

Filesystem-backed storage for uploaded requirement documents.

Files are addressed by plain filename inside a single root directory.
Blocking filesystem calls run in a worker thread so the event loop is
never held up by disk I/O.
"""

import asyncio
import logging
import os
import tempfile
from pathlib import Path
from typing import Protocol

from app.core.config import settings

logger = logging.getLogger(__name__)


class InvalidBlobNameError(ValueError):
    """Raised when a blob name would escape the storage root."""


class BlobStore(Protocol):
    """Filename-addressed storage used by the document slot registry."""

    async def write(self, name: str, data: bytes) -> None: ...

    async def read(self, name: str) -> bytes: ...

    async def delete(self, name: str) -> bool: ...

    async def exists(self, name: str) -> bool: ...

    async def move(self, source: str, target: str) -> None: ...

    async def list_names(self) -> list[str]: ...


class LocalBlobStore:
    """
    BlobStore on a local directory.

    Writes go to a temporary file in the same directory and are renamed
    into place, so a reader never sees a half-written document.
    """

    def __init__(self, root: str | Path):
        self.root = Path(root)

    def _path(self, name: str) -> Path:
        if not name or name in {".", ".."} or "/" in name or "\\" in name:
            raise InvalidBlobNameError(f"Invalid blob name: {name!r}")
        return self.root / name

    def _write_sync(self, path: Path, data: bytes) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self.root, prefix=".upload-")
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(data)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def _delete_sync(self, path: Path) -> bool:
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        return True

    def _list_sync(self) -> list[str]:
        # Dot-files are temp and staged uploads, never committed documents
        if not self.root.is_dir():
            return []
        return sorted(
            entry.name
            for entry in self.root.iterdir()
            if entry.is_file() and not entry.name.startswith(".")
        )

    async def write(self, name: str, data: bytes) -> None:
        path = self._path(name)
        await asyncio.to_thread(self._write_sync, path, data)

    async def read(self, name: str) -> bytes:
        path = self._path(name)
        return await asyncio.to_thread(path.read_bytes)

    async def delete(self, name: str) -> bool:
        """Delete a blob. Returns False if it was already absent."""
        path = self._path(name)
        return await asyncio.to_thread(self._delete_sync, path)

    async def exists(self, name: str) -> bool:
        path = self._path(name)
        return await asyncio.to_thread(path.is_file)

    async def move(self, source: str, target: str) -> None:
        """Rename a blob, replacing any blob already stored under target."""
        source_path = self._path(source)
        target_path = self._path(target)
        await asyncio.to_thread(os.replace, source_path, target_path)

    async def list_names(self) -> list[str]:
        return await asyncio.to_thread(self._list_sync)


_blob_store: LocalBlobStore | None = None


def get_blob_store() -> BlobStore:
    """FastAPI dependency returning the configured blob store."""
    global _blob_store
    if _blob_store is None:
        _blob_store = LocalBlobStore(settings.upload_dir)
        logger.info(f"Using local blob store at {_blob_store.root.resolve()}")
    return _blob_store
