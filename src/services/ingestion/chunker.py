"""Recursive, boundary-preferring text segmentation with structural locators.

Splits extracted document text into :class:`~src.models.rag.SegmentDraft`
windows sized for the embedding model (2000 characters with a 100-character
overlap by default).

The algorithm has two phases:

1. **Atomize** -- Cut the text into pieces no longer than ``max_size``.
   Separators are tried in priority order (paragraph break, line break,
   sentence end, clause comma, space, and finally single characters).  The
   first separator present in the text is used; any piece that is still
   too long is split again with the next-lower-priority separators.
   Separators stay attached to the end of their piece, so the pieces
   concatenate back to the input exactly.

2. **Merge** -- Greedily pack consecutive pieces into a window until the
   next piece would overflow ``max_size``, emit the window, and seed the
   next one with the trailing pieces of the previous window that fit in
   ``overlap`` characters.

Because windows are contiguous runs of pieces, each window is an exact
slice ``body[start:end]`` of its input, and reading the non-overlapping
tail of every window in order reproduces the input.

Locators
--------
* ``[PAGE:n]`` markers are stripped into a page map; every window records
  the lowest and highest page it touches (a window may span pages).
* ``[SECTION:title]`` markers split the text into sections that are
  segmented independently, so no window ever crosses a section boundary.
  Each window gets a leading ``Section: <title>`` line for context (the
  title is shortened so the line takes at most half of ``max_size``), and
  records the full title in ``section`` for citations.
* No markers: windows carry no locator.

A window holding only whitespace is folded into its neighbour rather than
emitted, so windows still cover every character.  A folded window can run
past ``max_size``, but only by whitespace.
"""

from __future__ import annotations

import structlog

from src.models.rag import SegmentDraft
from src.services.ingestion.markers import (
    LocatorKind,
    detect_locator_kind,
    page_range,
    parse_pages,
    parse_sections,
)

logger = structlog.get_logger(logger_name=__name__)

# Priority order; "" means "split between any two characters".
DEFAULT_SEPARATORS: tuple[str, ...] = ("\n\n", "\n", ". ", ", ", " ", "")

SECTION_CONTEXT_PREFIX = "Section: "

_Span = tuple[int, int]
_Draft = tuple[str, int, int, int | None, int | None, str | None]


class TextChunker:
    """Splits text into bounded, overlapping windows on natural boundaries.

    Parameters
    ----------
    max_size:
        Maximum characters per window (default 2000).
    overlap:
        Maximum characters shared by consecutive windows (default 100).
    separators:
        Boundary strings in priority order.  The last entry should be ``""``
        so that text without any boundary can still be split.
    """

    def __init__(
        self,
        max_size: int = 2000,
        overlap: int = 100,
        separators: tuple[str, ...] = DEFAULT_SEPARATORS,
    ) -> None:
        if max_size < 1:
            raise ValueError(f"max_size must be >= 1, got {max_size}")
        if not 0 <= overlap < max_size:
            raise ValueError(f"overlap must be in [0, max_size), got {overlap}")
        self._max_size = max_size
        self._overlap = overlap
        self._separators = separators

    @property
    def max_size(self) -> int:
        return self._max_size

    @property
    def overlap(self) -> int:
        return self._overlap

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def chunk(self, text: str) -> list[SegmentDraft]:
        """Split *text* into ordered windows with structural locators.

        Parameters
        ----------
        text:
            Extracted text, optionally annotated with page or section
            markers.

        Returns
        -------
        list[SegmentDraft]
            Windows in reading order with dense ``index`` values.  Empty or
            whitespace-only input returns an empty list.
        """
        if not text or not text.strip():
            return []

        kind = detect_locator_kind(text)
        if kind is LocatorKind.PAGE:
            drafts = self._chunk_paged(text)
        elif kind is LocatorKind.SECTION:
            drafts = self._chunk_sectioned(text)
        else:
            drafts = [
                (text[start:end], start, end, None, None, None)
                for start, end in self._windows(text, 0, self._max_size)
            ]

        segments = [
            SegmentDraft(
                index=i,
                text=seg_text,
                start=start,
                end=end,
                page_start=page_start,
                page_end=page_end,
                section=section,
            )
            for i, (seg_text, start, end, page_start, page_end, section) in enumerate(drafts)
        ]

        logger.debug(
            "chunking_complete",
            num_segments=len(segments),
            locator=kind.value,
            avg_chars=sum(len(s.text) for s in segments) // max(len(segments), 1),
        )
        return segments

    # ------------------------------------------------------------------
    # Locator variants
    # ------------------------------------------------------------------

    def _chunk_paged(self, text: str) -> list[_Draft]:
        body, pages = parse_pages(text)
        drafts = []
        for start, end in self._windows(body, 0, self._max_size):
            window = body[start:end]
            # Pages are taken from the non-blank extent so folded whitespace
            # never adds a page.
            lead = len(window) - len(window.lstrip())
            trail = len(window) - len(window.rstrip())
            page_start, page_end = page_range(pages, start + lead, end - trail)
            drafts.append((window, start, end, page_start, page_end, None))
        return drafts

    def _chunk_sectioned(self, text: str) -> list[_Draft]:
        _, sections = parse_sections(text)
        drafts = []
        for section in sections:
            prefix = _context_line(section.title, self._max_size)
            budget = self._max_size - len(prefix)
            for start, end in self._windows(section.text, section.start, budget):
                local = section.text[start - section.start : end - section.start]
                drafts.append((prefix + local, start, end, None, None, section.title))
        return drafts

    # ------------------------------------------------------------------
    # Core algorithm
    # ------------------------------------------------------------------

    def _windows(self, text: str, offset: int, max_size: int) -> list[_Span]:
        """Return absolute ``(start, end)`` windows over *text*.

        Whitespace-only windows are folded into a neighbour; see
        :func:`_fold_blank_windows`.
        """
        if not text.strip():
            return []
        if len(text) <= max_size:
            return [(offset, offset + len(text))]

        pieces = self._atomize(text, offset, self._separators, max_size)
        windows = self._merge(pieces, max_size)
        return _fold_blank_windows(text, offset, windows)

    def _atomize(
        self,
        text: str,
        offset: int,
        separators: tuple[str, ...],
        max_size: int,
    ) -> list[_Span]:
        """Cut *text* into contiguous spans no longer than *max_size*."""
        sep_index = next(
            (i for i, sep in enumerate(separators) if sep == "" or sep in text),
            len(separators) - 1,
        )
        separator = separators[sep_index]
        lower = separators[sep_index + 1 :]

        spans: list[_Span] = []
        cursor = offset
        for piece in _split_keeping_separator(text, separator):
            if len(piece) > max_size and lower:
                spans.extend(self._atomize(piece, cursor, lower, max_size))
            elif len(piece) > max_size:
                # Out of separators: hard cut at the size limit.
                for i in range(0, len(piece), max_size):
                    spans.append((cursor + i, cursor + min(i + max_size, len(piece))))
            else:
                spans.append((cursor, cursor + len(piece)))
            cursor += len(piece)
        return spans

    def _merge(self, pieces: list[_Span], max_size: int) -> list[_Span]:
        """Greedily pack contiguous pieces into overlapping windows."""
        overlap = min(self._overlap, max_size - 1)
        windows: list[_Span] = []
        current: list[_Span] = []
        current_len = 0

        for start, end in pieces:
            piece_len = end - start
            if current and current_len + piece_len > max_size:
                windows.append((current[0][0], current[-1][1]))
                current, current_len = _tail_within(current, overlap, max_size - piece_len)
            current.append((start, end))
            current_len += piece_len

        if current:
            windows.append((current[0][0], current[-1][1]))
        return windows


def _context_line(title: str | None, max_size: int) -> str:
    """Return the ``Section:`` context line, at most half of *max_size* long."""
    if not title:
        return ""
    room = max_size // 2 - len(SECTION_CONTEXT_PREFIX) - 2
    if room < 1:
        return ""
    return f"{SECTION_CONTEXT_PREFIX}{title[:room].rstrip()}\n\n"


def _fold_blank_windows(text: str, offset: int, windows: list[_Span]) -> list[_Span]:
    """Merge whitespace-only windows into an adjacent window.

    A blank window extends the window before it.  Blank windows ahead of
    the first non-blank one are prepended to it instead.
    """
    folded: list[_Span] = []
    pending_start: int | None = None
    for start, end in windows:
        if text[start - offset : end - offset].strip():
            if pending_start is not None:
                start, pending_start = min(start, pending_start), None
            folded.append((start, end))
        elif folded:
            folded[-1] = (folded[-1][0], max(folded[-1][1], end))
        elif pending_start is None:
            pending_start = start
    return folded


def _split_keeping_separator(text: str, separator: str) -> list[str]:
    """Split on *separator*, keeping it at the end of each piece."""
    if separator == "":
        return list(text)
    parts = text.split(separator)
    pieces = [part + separator for part in parts[:-1]]
    pieces.append(parts[-1])
    return [p for p in pieces if p]


def _tail_within(parts: list[_Span], overlap: int, room: int) -> tuple[list[_Span], int]:
    """Return the trailing *parts* whose combined length fits both limits.

    *room* is what is left for overlap once the incoming piece is counted,
    which guarantees that the next window always grows past the previous.
    """
    limit = min(overlap, room)
    tail: list[_Span] = []
    total = 0
    for start, end in reversed(parts):
        length = end - start
        if total + length > limit:
            break
        tail.insert(0, (start, end))
        total += length
    return tail, total
