"""All-or-nothing embedding of a document's segments.

Segments are embedded one call per segment, ``batch_size`` calls at a time.
Every group is attempted and every outcome recorded before the document is
judged: a single failure anywhere means the document persists *nothing*,
and the resulting :class:`~src.utils.errors.EmbeddingError` describes the
whole run (how many failed, which one failed first, and why).

Junior Developer Guide
----------------------
* Results are matched to segments by *position*, never by completion
  order.  ``gather_in_groups`` already returns outcomes in input order.
* A timeout is just another failure; it is not retried here.
* The runner never writes anything.  The orchestrator decides what to do
  with a :class:`BatchEmbeddingResult`.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

import structlog

from src.interfaces.embedding_provider import IEmbeddingProvider
from src.models.rag import SegmentDraft
from src.utils.concurrency import gather_in_groups
from src.utils.errors import EmbeddingError

logger = structlog.get_logger(logger_name=__name__)


@dataclass(frozen=True)
class SegmentFailure:
    """One segment that could not be embedded."""

    index: int
    reason: str


@dataclass(frozen=True)
class BatchEmbeddingResult:
    """Outcome of embedding every segment of one document.

    Exactly one of the two lists is meaningful: ``embeddings`` (one vector
    per segment, in segment order) when ``failures`` is empty.
    """

    total: int
    embeddings: list[list[float]] = field(default_factory=list)
    failures: list[SegmentFailure] = field(default_factory=list)
    provider_name: str | None = None

    @property
    def ok(self) -> bool:
        return not self.failures

    def raise_for_failures(self) -> None:
        """Raise an aggregate :class:`EmbeddingError` if any segment failed."""
        if self.ok:
            return
        first = self.failures[0]
        raise EmbeddingError(
            message=(
                f"{len(self.failures)} of {self.total} segments failed to embed; "
                f"first failure at segment {first.index}: {first.reason}"
            ),
            provider_name=self.provider_name,
            failed_count=len(self.failures),
            total_count=self.total,
            first_failure_index=first.index,
            first_failure_reason=first.reason,
        )


def _describe(exc: BaseException) -> str:
    if isinstance(exc, asyncio.TimeoutError):
        return "timed out"
    return str(exc) or type(exc).__name__


class EmbeddingBatchRunner:
    """Embeds segments in concurrent groups with all-or-nothing semantics.

    Parameters
    ----------
    embedding_provider:
        Provider used for every segment (and, at query time, for queries).
    batch_size:
        Number of concurrent embedding calls per group.
    timeout:
        Per-call timeout in seconds.

    Vector dimensionality is checked once, where provider responses are
    parsed (:func:`~src.providers.embedding.response_parser.parse_embedding_response`).
    """

    def __init__(
        self,
        embedding_provider: IEmbeddingProvider,
        batch_size: int = 10,
        timeout: float = 30.0,
    ) -> None:
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}")
        self._provider = embedding_provider
        self._batch_size = batch_size
        self._timeout = timeout

    async def embed_all(self, segments: list[SegmentDraft]) -> BatchEmbeddingResult:
        """Embed every segment and collect all outcomes in segment order."""
        provider_name = self._provider.get_provider_name()
        if not segments:
            return BatchEmbeddingResult(total=0, provider_name=provider_name)

        factories = [self._factory(segment.text) for segment in segments]
        outcomes = await gather_in_groups(
            factories,
            group_size=self._batch_size,
            timeout=self._timeout,
        )

        embeddings: list[list[float]] = []
        failures: list[SegmentFailure] = []
        for segment, outcome in zip(segments, outcomes):
            if isinstance(outcome, BaseException):
                failures.append(SegmentFailure(index=segment.index, reason=_describe(outcome)))
                continue
            embeddings.append(outcome)

        if failures:
            logger.warning(
                "embedding_batch_failed",
                provider=provider_name,
                total=len(segments),
                failed=len(failures),
                first_failure_index=failures[0].index,
                first_failure_reason=failures[0].reason,
            )
            return BatchEmbeddingResult(
                total=len(segments),
                failures=failures,
                provider_name=provider_name,
            )

        logger.info(
            "embedding_batch_complete",
            provider=provider_name,
            total=len(segments),
            groups=-(-len(segments) // self._batch_size),
        )
        return BatchEmbeddingResult(
            total=len(segments),
            embeddings=embeddings,
            provider_name=provider_name,
        )

    def _factory(self, text: str):  # noqa: ANN202
        async def _call() -> list[float]:
            return await self._provider.embed_single(text)

        return _call
