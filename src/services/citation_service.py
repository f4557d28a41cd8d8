"""Citation consolidation for retrieval results.

Retrieved segments are grouped by source document into one
:class:`~src.models.rag.Citation` per document, in rank order of each
document's best segment.  Locators are merged per document:

* **Pages** -- every page in ``page_start..page_end`` (inclusive) of every
  segment, sorted and de-duplicated.
* **Sections** -- the ``section`` title the segmenter recorded for
  sectioned segments, de-duplicated in first-seen order.

Locators are read from chunk metadata only, never from the segment text: a
plain-text segment that happens to begin with ``Section:`` is unlocated.
A segment with neither locator still contributes its text to the answer
context, but not to citations; a document none of whose segments carry a
locator gets no citation entry at all.
"""

from __future__ import annotations

import structlog

from src.models.rag import Citation, RetrievedChunk
from src.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)


def _pages(segment: RetrievedChunk) -> list[int]:
    start, end = segment.chunk.page_start, segment.chunk.page_end
    if start is None and end is None:
        return []
    start = start if start is not None else end
    end = end if end is not None else start
    return list(range(min(start, end), max(start, end) + 1))  # type: ignore[type-var]


def _section(segment: RetrievedChunk) -> str | None:
    title = segment.chunk.section
    if title is None:
        return None
    return title.strip() or None


def consolidate_citations(segments: list[RetrievedChunk]) -> list[Citation]:
    """Group *segments* by document into one citation per located document.

    Parameters
    ----------
    segments:
        Retrieved segments in rank order (best first).

    Returns
    -------
    list[Citation]
        One entry per document with at least one located segment, ordered
        by the rank of that document's first segment.
    """
    order: list[str] = []
    filenames: dict[str, str] = {}
    pages: dict[str, set[int]] = {}
    sections: dict[str, list[str]] = {}
    best: dict[str, float] = {}

    for segment in segments:
        doc_id = segment.chunk.document_id
        segment_pages = _pages(segment)
        label = _section(segment)
        if not segment_pages and label is None:
            continue

        if doc_id not in filenames:
            order.append(doc_id)
            filenames[doc_id] = segment.chunk.filename
            pages[doc_id] = set()
            sections[doc_id] = []
            best[doc_id] = segment.similarity_score

        pages[doc_id].update(segment_pages)
        if label is not None and label not in sections[doc_id]:
            sections[doc_id].append(label)
        best[doc_id] = max(best[doc_id], segment.similarity_score)

    citations = [
        Citation(
            document_id=doc_id,
            filename=filenames[doc_id],
            pages=sorted(pages[doc_id]),
            sections=sections[doc_id],
            similarity=best[doc_id],
        )
        for doc_id in order
    ]
    _logger.debug("citations_consolidated", segments=len(segments), citations=len(citations))
    return citations
