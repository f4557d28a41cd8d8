"""Document status tracking with callback-based listener notification.

Keeps the latest status snapshot for each document and broadcasts every
status or stage change to listener callbacks registered for that document.

# ─── HOW STATUS TRACKING WORKS (Junior Developer Guide) ───────────────
#
# This implements the Observer pattern:
#
#   IngestionService ──publish()──→ StatusTracker ──callback()──→ WebSocket handler
#                                                 ──→ (any other listener)
#
#   1. The orchestrator calls tracker.publish(document_id, status, stage)
#      every time it persists a status or stage change.
#   2. StatusTracker stores the snapshot and calls all listeners for that
#      document, plus any "*" listeners that watch every document.
#   3. The WebSocket handler pushes the snapshot as JSON to the client.
#
#   - Listener errors are caught and logged; ingestion never fails
#     because a client disconnected.
#   - Both sync and async callbacks are supported.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import asdict, dataclass

import structlog

from src.models.document import DocumentStatus, ProcessingStage
from src.utils.logging import get_logger

# Listeners registered under this key receive updates for every document.
ALL_DOCUMENTS = "*"


@dataclass(frozen=True)
class StatusSnapshot:
    """The latest known state of one document."""

    document_id: str
    status: str
    processing_stage: str | None = None
    chunk_count: int | None = None
    error_code: str | None = None
    error_message: str | None = None

    def to_dict(self) -> dict:
        return asdict(self)


class StatusTracker:
    """Tracks and broadcasts document status changes via callbacks."""

    def __init__(self) -> None:
        self._snapshots: dict[str, StatusSnapshot] = {}
        self._listeners: dict[str, list[Callable]] = {}
        self._logger: structlog.BoundLogger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def publish(
        self,
        document_id: str,
        status: DocumentStatus,
        stage: ProcessingStage | None = None,
        chunk_count: int | None = None,
        error_code: str | None = None,
        error_message: str | None = None,
    ) -> StatusSnapshot:
        """Record a status change and notify listeners.

        Parameters
        ----------
        document_id:
            The document whose state changed.
        status:
            New lifecycle status.
        stage:
            Processing stage about to start, if ``processing``.
        chunk_count:
            Number of indexed segments, on success.
        error_code, error_message:
            Failure details, on error.
        """
        snapshot = StatusSnapshot(
            document_id=document_id,
            status=status.value,
            processing_stage=stage.value if stage else None,
            chunk_count=chunk_count,
            error_code=error_code,
            error_message=error_message,
        )
        self._snapshots[document_id] = snapshot

        self._logger.debug(
            "status_update",
            document_id=document_id,
            status=snapshot.status,
            stage=snapshot.processing_stage,
        )

        await self._notify_listeners(snapshot)
        return snapshot

    def register_listener(self, document_id: str, callback: Callable) -> None:
        """Register *callback* for one document (or :data:`ALL_DOCUMENTS`).

        The callback receives a :class:`StatusSnapshot` and may be sync or
        async.
        """
        listeners = self._listeners.setdefault(document_id, [])
        if callback not in listeners:
            listeners.append(callback)
            self._logger.debug(
                "listener_registered",
                document_id=document_id,
                total_listeners=len(listeners),
            )

    def unregister_listener(self, document_id: str, callback: Callable) -> None:
        """Remove a previously registered callback."""
        listeners = self._listeners.get(document_id, [])
        if callback in listeners:
            listeners.remove(callback)
            self._logger.debug(
                "listener_unregistered",
                document_id=document_id,
                remaining_listeners=len(listeners),
            )
        if not listeners:
            self._listeners.pop(document_id, None)

    def get_snapshot(self, document_id: str) -> StatusSnapshot | None:
        """Return the last published snapshot, or ``None`` if none yet."""
        return self._snapshots.get(document_id)

    def forget(self, document_id: str) -> None:
        """Drop the stored snapshot of a deleted document."""
        self._snapshots.pop(document_id, None)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _notify_listeners(self, snapshot: StatusSnapshot) -> None:
        """Invoke every matching listener; failures are logged and skipped."""
        listeners = [
            *self._listeners.get(snapshot.document_id, []),
            *self._listeners.get(ALL_DOCUMENTS, []),
        ]
        for callback in listeners:
            try:
                result = callback(snapshot)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as exc:
                self._logger.warning(
                    "listener_callback_error",
                    document_id=snapshot.document_id,
                    error=str(exc),
                    callback=getattr(callback, "__name__", repr(callback)),
                )
