"""Unit tests for LocalBlobStorage."""

from __future__ import annotations

import pytest

from src.providers.storage.local_blob_storage import LocalBlobStorage
from src.utils.errors import DownloadError


class TestLocalBlobStorage:
    @pytest.mark.asyncio
    async def test_put_get_delete(self, blob_storage: LocalBlobStorage) -> None:
        await blob_storage.put("proj-1/doc-1/guide.pdf", b"%PDF-1.7", "application/pdf")

        assert await blob_storage.get("proj-1/doc-1/guide.pdf") == b"%PDF-1.7"
        assert await blob_storage.delete("proj-1/doc-1/guide.pdf") is True
        assert await blob_storage.delete("proj-1/doc-1/guide.pdf") is False

    @pytest.mark.asyncio
    async def test_missing_blob_is_download_error(self, blob_storage: LocalBlobStorage) -> None:
        with pytest.raises(DownloadError, match="does not exist"):
            await blob_storage.get("global/ghost/file.txt")

    @pytest.mark.asyncio
    async def test_locator_cannot_escape_root(self, blob_storage: LocalBlobStorage) -> None:
        with pytest.raises(DownloadError, match="Invalid storage locator"):
            await blob_storage.put("../outside.txt", b"x", "text/plain")
