"""WebSocket endpoint for real-time document status updates.

Connects a client to one document via the :class:`StatusTracker` listener
mechanism.  Every status or stage change is pushed as a JSON message:

    {"document_id": "...", "status": "processing", "processing_stage": "embedding",
     "chunk_count": null, "error_code": null, "error_message": null}

On connect the client first receives the current state (from the tracker,
or from the record store if nothing has been published since startup).
"""

from __future__ import annotations

import contextlib

import structlog
from fastapi import WebSocket, WebSocketDisconnect

from src.pipeline.status_tracker import StatusSnapshot, StatusTracker
from src.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)


async def websocket_document_status(websocket: WebSocket, document_id: str) -> None:
    """Stream status changes of *document_id* to the client.

    Lifecycle:
        1. Accept the connection and register a tracker listener.
        2. Send the current snapshot.
        3. Push one message per change until the client disconnects.
        4. Unregister the listener.
    """
    tracker: StatusTracker = websocket.app.state.status_tracker

    await websocket.accept()
    _logger.info("websocket_connected", document_id=document_id)

    async def _on_status(snapshot: StatusSnapshot) -> None:
        # The socket may close between the change and the send; the
        # finally block below does the cleanup.
        with contextlib.suppress(Exception):
            await websocket.send_json(snapshot.to_dict())

    tracker.register_listener(document_id, _on_status)

    try:
        await websocket.send_json(await _current_state(websocket, tracker, document_id))

        # Blocks until the client disconnects.
        while True:
            await websocket.receive_text()

    except WebSocketDisconnect:
        _logger.info("websocket_disconnected", document_id=document_id)

    finally:
        tracker.unregister_listener(document_id, _on_status)
        _logger.debug("websocket_listener_cleaned_up", document_id=document_id)


async def _current_state(websocket: WebSocket, tracker: StatusTracker, document_id: str) -> dict:
    snapshot = tracker.get_snapshot(document_id)
    if snapshot is not None:
        return snapshot.to_dict()

    record = await websocket.app.state.document_store.get(document_id)
    if record is None:
        return {"document_id": document_id, "status": "not_found"}

    latest = record.latest_error
    return StatusSnapshot(
        document_id=record.id,
        status=record.status.value,
        processing_stage=record.processing_stage.value if record.processing_stage else None,
        chunk_count=record.chunk_count,
        error_code=latest.code if latest else None,
        error_message=latest.message if latest else None,
    ).to_dict()
