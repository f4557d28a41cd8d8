"""Abstract base class for raw-file blob storage.

Uploaded files are written to blob storage under a *locator* before the
document record is created; the ingestion orchestrator later reads them back
by that locator.  Document deletion removes the blob last, after the index
segments and the record, and treats a blob failure as a warning.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementation: LocalBlobStorage (src/providers/storage/)
class IBlobStorageProvider(ABC):
    """Contract for storing and fetching raw document bytes."""

    @abstractmethod
    async def put(self, locator: str, data: bytes, content_type: str) -> None:
        """Store *data* under *locator*, overwriting any existing blob."""

    @abstractmethod
    async def get(self, locator: str) -> bytes:
        """Return the bytes stored under *locator*.

        Raises
        ------
        src.utils.errors.DownloadError
            If the blob does not exist or cannot be read.
        """

    @abstractmethod
    async def delete(self, locator: str) -> bool:
        """Delete the blob; return ``False`` if it did not exist."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this provider."""
