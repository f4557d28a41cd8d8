"""Inline structural markers emitted by extraction and read by the segmenter.

Extraction annotates text with one marker per line:

    [PAGE:3]             -- everything up to the next page marker is page 3
    [SECTION:Overview]   -- everything up to the next section marker
                            belongs to the "Overview" section

Parsing removes the marker lines and returns the *body* text together with
the character spans each page or section covers in that body.  Offsets are
always into the body, never into the annotated input, so the segmenter can
work on clean text and still map every window back to its locator.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum

# A marker occupies its own line; the trailing newline is part of the marker.
_PAGE_MARKER_RE = re.compile(
    r"^[ \t]*\[PAGE:[ \t]*(\d+)[ \t]*\][ \t]*(?:\r?\n|$)",
    re.MULTILINE,
)
_SECTION_MARKER_RE = re.compile(
    r"^[ \t]*\[SECTION:[ \t]*([^\]\r\n]*?)[ \t]*\][ \t]*(?:\r?\n|$)",
    re.MULTILINE,
)


class LocatorKind(str, Enum):
    NONE = "none"
    PAGE = "page"
    SECTION = "section"


@dataclass(frozen=True)
class PageSpan:
    """Body offsets ``[start, end)`` belonging to ``page``."""

    page: int
    start: int
    end: int


@dataclass(frozen=True)
class Section:
    """A titled, marker-free slice of the body.

    ``title`` is ``None`` for text that precedes the first section marker.
    """

    title: str | None
    start: int
    end: int
    text: str


def page_marker(page: int) -> str:
    return f"[PAGE:{page}]"


def section_marker(title: str) -> str:
    # A closing bracket would end the marker early.
    return f"[SECTION:{title.replace(']', ')').strip()}]"


def detect_locator_kind(text: str) -> LocatorKind:
    """Page markers win over section markers; no markers means no locator."""
    if _PAGE_MARKER_RE.search(text):
        return LocatorKind.PAGE
    if _SECTION_MARKER_RE.search(text):
        return LocatorKind.SECTION
    return LocatorKind.NONE


def _split_on(pattern: re.Pattern[str], text: str) -> tuple[str, list[tuple[str | None, int, int]]]:
    """Strip *pattern* marker lines, returning body and ``(label, start, end)`` spans.

    The span list always starts with the unlabeled prefix before the first
    marker (possibly empty).
    """
    parts: list[str] = []
    spans: list[tuple[str | None, int, int]] = []
    label: str | None = None
    cursor = 0
    body_len = 0
    for match in pattern.finditer(text):
        piece = text[cursor : match.start()]
        parts.append(piece)
        spans.append((label, body_len, body_len + len(piece)))
        body_len += len(piece)
        label = match.group(1)
        cursor = match.end()
    tail = text[cursor:]
    parts.append(tail)
    spans.append((label, body_len, body_len + len(tail)))
    return "".join(parts), spans


def parse_pages(text: str) -> tuple[str, list[PageSpan]]:
    """Remove page markers; return the body and one span per marked page."""
    body, spans = _split_on(_PAGE_MARKER_RE, text)
    pages = [PageSpan(int(label), start, end) for label, start, end in spans if label is not None]
    return body, pages


def parse_sections(text: str) -> tuple[str, list[Section]]:
    """Remove section markers; return the body and its sections in order."""
    body, spans = _split_on(_SECTION_MARKER_RE, text)
    sections: list[Section] = []
    for label, start, end in spans:
        if label is None and start == end:
            continue
        sections.append(Section(title=label or None, start=start, end=end, text=body[start:end]))
    return body, sections


def strip_markers(text: str) -> str:
    """Remove every page and section marker line."""
    return _SECTION_MARKER_RE.sub("", _PAGE_MARKER_RE.sub("", text))


def page_range(pages: list[PageSpan], start: int, end: int) -> tuple[int | None, int | None]:
    """Return the min/max page whose span overlaps body range ``[start, end)``."""
    touched = [p.page for p in pages if p.start < end and p.end > start]
    if not touched:
        return None, None
    return min(touched), max(touched)
