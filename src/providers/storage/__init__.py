"""Blob storage implementations for raw uploaded files."""

from src.providers.storage.local_blob_storage import LocalBlobStorage

__all__ = ["LocalBlobStorage"]
