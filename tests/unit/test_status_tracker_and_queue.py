"""Unit tests for StatusTracker and IngestionQueue."""

from __future__ import annotations

import asyncio

import pytest

from src.models.document import DocumentStatus, IngestionEvent, ProcessingStage
from src.models.rag import IngestionResult
from src.pipeline.ingestion_queue import IngestionQueue
from src.pipeline.status_tracker import ALL_DOCUMENTS, StatusSnapshot, StatusTracker


class TestStatusTracker:
    @pytest.mark.asyncio
    async def test_publish_stores_snapshot(self) -> None:
        tracker = StatusTracker()
        snapshot = await tracker.publish(
            "doc-1", DocumentStatus.PROCESSING, stage=ProcessingStage.EMBEDDING
        )

        assert snapshot.status == "processing"
        assert snapshot.processing_stage == "embedding"
        assert tracker.get_snapshot("doc-1") == snapshot
        assert tracker.get_snapshot("doc-2") is None

    @pytest.mark.asyncio
    async def test_sync_and_async_listeners(self) -> None:
        tracker = StatusTracker()
        sync_seen: list[StatusSnapshot] = []
        async_seen: list[StatusSnapshot] = []

        async def on_update(snapshot: StatusSnapshot) -> None:
            async_seen.append(snapshot)

        tracker.register_listener("doc-1", sync_seen.append)
        tracker.register_listener("doc-1", on_update)
        await tracker.publish("doc-1", DocumentStatus.EMBEDDED, chunk_count=4)
        await tracker.publish("doc-2", DocumentStatus.EMBEDDED, chunk_count=1)

        assert [s.chunk_count for s in sync_seen] == [4]
        assert [s.chunk_count for s in async_seen] == [4]

    @pytest.mark.asyncio
    async def test_wildcard_listener_sees_every_document(self) -> None:
        tracker = StatusTracker()
        seen: list[str] = []
        tracker.register_listener(ALL_DOCUMENTS, lambda s: seen.append(s.document_id))

        await tracker.publish("a", DocumentStatus.PROCESSING)
        await tracker.publish("b", DocumentStatus.ERROR, error_code="DOWNLOAD_ERROR")

        assert seen == ["a", "b"]

    @pytest.mark.asyncio
    async def test_failing_listener_does_not_break_publish(self) -> None:
        tracker = StatusTracker()
        seen: list[StatusSnapshot] = []

        def broken(snapshot: StatusSnapshot) -> None:
            raise RuntimeError("socket closed")

        tracker.register_listener("doc-1", broken)
        tracker.register_listener("doc-1", seen.append)
        await tracker.publish("doc-1", DocumentStatus.PROCESSING)

        assert len(seen) == 1

    @pytest.mark.asyncio
    async def test_unregister_and_forget(self) -> None:
        tracker = StatusTracker()
        seen: list[StatusSnapshot] = []
        tracker.register_listener("doc-1", seen.append)
        tracker.unregister_listener("doc-1", seen.append)

        await tracker.publish("doc-1", DocumentStatus.PENDING)
        tracker.forget("doc-1")

        assert seen == []
        assert tracker.get_snapshot("doc-1") is None

    def test_snapshot_to_dict(self) -> None:
        snapshot = StatusSnapshot(
            document_id="d", status="error", error_code="EXTRACTION_ERROR", error_message="m"
        )
        assert snapshot.to_dict() == {
            "document_id": "d",
            "status": "error",
            "processing_stage": None,
            "chunk_count": None,
            "error_code": "EXTRACTION_ERROR",
            "error_message": "m",
        }


class _RecordingService:
    """Stands in for IngestionService.process."""

    def __init__(self, fail_on: set[str] | None = None) -> None:
        self.processed: list[str] = []
        self._fail_on = fail_on or set()

    async def process(self, event: IngestionEvent) -> IngestionResult:
        await asyncio.sleep(0)
        if event.document_id in self._fail_on:
            raise RuntimeError("unexpected bug")
        self.processed.append(event.document_id)
        return IngestionResult(document_id=event.document_id, status=DocumentStatus.EMBEDDED)


def _event(doc_id: str) -> IngestionEvent:
    return IngestionEvent(document_id=doc_id, filename=f"{doc_id}.txt", content_type="text/plain")


class TestIngestionQueue:
    def test_rejects_zero_workers(self) -> None:
        with pytest.raises(ValueError):
            IngestionQueue(_RecordingService(), workers=0)  # type: ignore[arg-type]

    @pytest.mark.asyncio
    async def test_events_are_processed(self) -> None:
        service = _RecordingService()
        queue = IngestionQueue(service, workers=2)  # type: ignore[arg-type]
        queue.start()
        queue.start()
        assert queue.running

        for doc_id in ("a", "b", "c"):
            await queue.publish(_event(doc_id))
        await asyncio.wait_for(queue.join(), timeout=5)

        assert sorted(service.processed) == ["a", "b", "c"]
        assert queue.pending == 0
        await queue.stop()
        assert not queue.running

    @pytest.mark.asyncio
    async def test_worker_survives_unexpected_error(self) -> None:
        service = _RecordingService(fail_on={"bad"})
        queue = IngestionQueue(service, workers=1)  # type: ignore[arg-type]
        queue.start()

        await queue.publish(_event("bad"))
        await queue.publish(_event("good"))
        await asyncio.wait_for(queue.join(), timeout=5)

        assert service.processed == ["good"]
        await queue.stop()

    @pytest.mark.asyncio
    async def test_stop_drops_pending_events(self) -> None:
        service = _RecordingService()
        queue = IngestionQueue(service, workers=1)  # type: ignore[arg-type]

        await queue.publish(_event("never"))
        assert queue.pending == 1
        await queue.stop()

        assert service.processed == []
