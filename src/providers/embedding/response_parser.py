"""Shape-tolerant parsing of embedding API responses.

Upstream embedding APIs have drifted between several response shapes over
time.  Instead of chained ``.get()`` calls on an untyped payload, parsing
tries a fixed list of *named strategies* in order; each one states exactly
which shape it matches:

    single_embedding   {"embedding": {"values": [...]}}        Gemini embedContent
    embedding_list     {"embeddings": [{"values": [...]}]}     Gemini batchEmbedContents
    bare_values        {"values": [...]}                       unwrapped embedding object
    openai_data_list   {"data": [{"embedding": [...]}]}        OpenAI-compatible /embeddings

The outcome is an :class:`EmbeddingParseResult`: either ``values`` plus the
name of the strategy that matched, or an ``error`` describing why nothing
usable was found.  A vector whose length differs from the expected
dimensionality is accepted but logged as ``embedding_dimension_mismatch``.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

import structlog

logger = structlog.get_logger(logger_name=__name__)


@dataclass(frozen=True)
class EmbeddingParseResult:
    """Tagged result: ``ok`` with ``values`` + ``strategy``, or ``error``."""

    values: list[float] | None = None
    strategy: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.values is not None


def _field(obj: Any, name: str) -> Any:
    """Read *name* from a mapping or an SDK object attribute."""
    if isinstance(obj, Mapping):
        return obj.get(name)
    return getattr(obj, name, None)


def _first(items: Any) -> Any:
    if isinstance(items, Sequence) and not isinstance(items, (str, bytes)) and items:
        return items[0]
    return None


def _single_embedding(payload: Any) -> Any:
    embedding = _field(payload, "embedding")
    if isinstance(embedding, Sequence) and not isinstance(embedding, (str, bytes)):
        # OpenAI items put the list directly under "embedding"; not this shape.
        return None
    return _field(embedding, "values") if embedding is not None else None


def _embedding_list(payload: Any) -> Any:
    first = _first(_field(payload, "embeddings"))
    return _field(first, "values") if first is not None else None


def _bare_values(payload: Any) -> Any:
    return _field(payload, "values")


def _openai_data_list(payload: Any) -> Any:
    first = _first(_field(payload, "data"))
    return _field(first, "embedding") if first is not None else None


STRATEGIES: tuple[tuple[str, Callable[[Any], Any]], ...] = (
    ("single_embedding", _single_embedding),
    ("embedding_list", _embedding_list),
    ("bare_values", _bare_values),
    ("openai_data_list", _openai_data_list),
)


def _as_vector(raw: Any) -> list[float] | None:
    if not isinstance(raw, Sequence) or isinstance(raw, (str, bytes)) or not raw:
        return None
    if not all(isinstance(v, (int, float)) and not isinstance(v, bool) for v in raw):
        return None
    return [float(v) for v in raw]


def parse_embedding_response(
    payload: Any,
    expected_dimension: int | None = None,
) -> EmbeddingParseResult:
    """Extract an embedding vector from *payload*.

    Parameters
    ----------
    payload:
        Decoded JSON (dict) or an SDK response object.
    expected_dimension:
        When given, a vector of a different length is logged as a warning
        (it is still returned).

    Returns
    -------
    EmbeddingParseResult
        ``ok`` with the first strategy that yields a non-empty numeric
        vector, or an error naming every strategy that was tried.
    """
    if payload is None:
        return EmbeddingParseResult(error="empty response payload")

    for name, strategy in STRATEGIES:
        vector = _as_vector(strategy(payload))
        if vector is None:
            continue
        if expected_dimension is not None and len(vector) != expected_dimension:
            logger.warning(
                "embedding_dimension_mismatch",
                strategy=name,
                expected=expected_dimension,
                actual=len(vector),
            )
        return EmbeddingParseResult(values=vector, strategy=name)

    tried = ", ".join(name for name, _ in STRATEGIES)
    return EmbeddingParseResult(error=f"no embedding values found (tried: {tried})")
