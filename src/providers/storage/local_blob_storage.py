"""Filesystem blob storage for raw uploaded files.

Blobs live under ``BLOB_STORAGE_DIR`` (default ``data/blobs``) at their
locator path, e.g. ``proj-1/3f2a.../report.pdf``.  File I/O runs in a worker
thread so large uploads never block the event loop.
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import structlog

from src.interfaces.blob_storage_provider import IBlobStorageProvider
from src.utils.errors import DownloadError, PersistenceError

logger = structlog.get_logger(logger_name=__name__)


class LocalBlobStorage(IBlobStorageProvider):
    """Stores each blob as a file below *root*."""

    def __init__(self, root: str | Path = "data/blobs") -> None:
        self._root = Path(root).resolve()

    async def put(self, locator: str, data: bytes, content_type: str) -> None:
        path = self._path(locator)
        try:
            await asyncio.to_thread(self._write, path, data)
        except OSError as exc:
            raise PersistenceError(
                message=f"Could not store blob '{locator}': {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        logger.debug("blob_stored", locator=locator, size=len(data), content_type=content_type)

    async def get(self, locator: str) -> bytes:
        path = self._path(locator)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError as exc:
            raise DownloadError(
                message=f"Source file '{locator}' does not exist in storage",
                provider_name=self.get_provider_name(),
            ) from exc
        except OSError as exc:
            raise DownloadError(
                message=f"Could not read source file '{locator}': {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

    async def delete(self, locator: str) -> bool:
        path = self._path(locator)
        try:
            await asyncio.to_thread(path.unlink)
        except FileNotFoundError:
            return False
        logger.debug("blob_deleted", locator=locator)
        return True

    def get_provider_name(self) -> str:
        return "local_blob_storage"

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _path(self, locator: str) -> Path:
        path = (self._root / locator).resolve()
        if path == self._root or self._root not in path.parents:
            raise DownloadError(
                message=f"Invalid storage locator '{locator}'",
                provider_name=self.get_provider_name(),
            )
        return path

    @staticmethod
    def _write(path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
