"""Background dispatch and status broadcasting for document ingestion."""

from src.pipeline.ingestion_queue import IngestionQueue
from src.pipeline.status_tracker import StatusSnapshot, StatusTracker

__all__ = [
    "IngestionQueue",
    "StatusSnapshot",
    "StatusTracker",
]
