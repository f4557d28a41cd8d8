"""In-process ingestion event queue with a fixed pool of worker tasks.

Uploads publish an :class:`~src.models.document.IngestionEvent` and return
immediately; workers pull events off an ``asyncio.Queue`` and hand each one
to :meth:`IngestionService.process`.  Delivery is at-least-once: the same
event may be published twice (a retried upload request, a re-ingest racing
a redelivery), and the claim inside ``process`` turns duplicates into
no-ops.

The lifespan in ``src/main.py`` calls :meth:`IngestionQueue.start` on
startup and :meth:`IngestionQueue.stop` on shutdown.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import structlog

from src.models.document import IngestionEvent

if TYPE_CHECKING:
    from src.services.ingestion.ingestion_service import IngestionService

logger = structlog.get_logger(logger_name=__name__)


class IngestionQueue:
    """Dispatches ingestion events to *workers* background tasks.

    Parameters
    ----------
    ingestion_service:
        Consumer invoked once per event.
    workers:
        Number of documents processed concurrently.
    """

    def __init__(self, ingestion_service: IngestionService, workers: int = 2) -> None:
        if workers < 1:
            raise ValueError(f"workers must be >= 1, got {workers}")
        self._service = ingestion_service
        self._worker_count = workers
        self._queue: asyncio.Queue[IngestionEvent] = asyncio.Queue()
        self._tasks: list[asyncio.Task[None]] = []

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    @property
    def pending(self) -> int:
        """Events waiting for a worker."""
        return self._queue.qsize()

    def start(self) -> None:
        """Spawn the worker tasks (idempotent)."""
        if self._tasks:
            return
        self._tasks = [
            asyncio.create_task(self._worker(i), name=f"ingestion-worker-{i}")
            for i in range(self._worker_count)
        ]
        logger.info("ingestion_queue_started", workers=self._worker_count)

    async def stop(self) -> None:
        """Cancel the workers; events still queued are dropped."""
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        logger.info("ingestion_queue_stopped", dropped=self._queue.qsize())

    async def publish(self, event: IngestionEvent) -> None:
        """Enqueue *event* for processing."""
        await self._queue.put(event)
        logger.debug("ingestion_event_published", document_id=event.document_id)

    async def join(self) -> None:
        """Wait until every published event has been processed."""
        await self._queue.join()

    async def _worker(self, worker_id: int) -> None:
        while True:
            event = await self._queue.get()
            try:
                result = await self._service.process(event)
                logger.debug(
                    "ingestion_event_done",
                    worker=worker_id,
                    document_id=event.document_id,
                    status=result.status.value if result.status else None,
                    skipped=result.skipped,
                )
            except Exception:
                # process() records pipeline failures itself; anything that
                # escapes is a bug, but must not kill the worker.
                logger.exception(
                    "ingestion_worker_error",
                    worker=worker_id,
                    document_id=event.document_id,
                )
            finally:
                self._queue.task_done()
