"""Supported source formats and content-type detection.

The ingestion pipeline accepts a fixed allow-list of formats.  Anything
else fails the document *before* it is downloaded or extracted, with an
error message that lists what is supported.
"""

from __future__ import annotations

from enum import Enum
from pathlib import PurePosixPath

from src.utils.errors import UnsupportedFormatError


class DocumentFormat(str, Enum):
    """Normalized source format, independent of the exact MIME spelling."""

    PDF = "pdf"
    TEXT = "text"
    MARKDOWN = "markdown"
    CSV = "csv"
    SPREADSHEET = "spreadsheet"
    HTML = "html"

    @property
    def is_paginated(self) -> bool:
        """Formats whose extraction carries ``[PAGE:n]`` markers."""
        return self is DocumentFormat.PDF

    @property
    def is_sectioned(self) -> bool:
        """Formats whose extraction carries ``[SECTION:title]`` markers."""
        return self in (DocumentFormat.HTML, DocumentFormat.MARKDOWN)

    @property
    def is_tabular(self) -> bool:
        return self in (DocumentFormat.CSV, DocumentFormat.SPREADSHEET)


_CONTENT_TYPES: dict[str, DocumentFormat] = {
    "application/pdf": DocumentFormat.PDF,
    "text/plain": DocumentFormat.TEXT,
    "text/markdown": DocumentFormat.MARKDOWN,
    "text/x-markdown": DocumentFormat.MARKDOWN,
    "text/csv": DocumentFormat.CSV,
    "application/vnd.ms-excel": DocumentFormat.SPREADSHEET,
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": DocumentFormat.SPREADSHEET,
    "text/html": DocumentFormat.HTML,
    "application/xhtml+xml": DocumentFormat.HTML,
}

# Only consulted when the declared type carries no information.
_SUFFIXES: dict[str, DocumentFormat] = {
    ".pdf": DocumentFormat.PDF,
    ".txt": DocumentFormat.TEXT,
    ".md": DocumentFormat.MARKDOWN,
    ".markdown": DocumentFormat.MARKDOWN,
    ".csv": DocumentFormat.CSV,
    ".xls": DocumentFormat.SPREADSHEET,
    ".xlsx": DocumentFormat.SPREADSHEET,
    ".html": DocumentFormat.HTML,
    ".htm": DocumentFormat.HTML,
}

_GENERIC_CONTENT_TYPES = frozenset({"", "application/octet-stream", "binary/octet-stream"})

SUPPORTED_CONTENT_TYPES = frozenset(_CONTENT_TYPES)

# Canonical MIME type per format, used when a generic type was declared.
CANONICAL_CONTENT_TYPES: dict[DocumentFormat, str] = {
    DocumentFormat.PDF: "application/pdf",
    DocumentFormat.TEXT: "text/plain",
    DocumentFormat.MARKDOWN: "text/markdown",
    DocumentFormat.CSV: "text/csv",
    DocumentFormat.SPREADSHEET: (
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
    ),
    DocumentFormat.HTML: "text/html",
}


def normalize_content_type(content_type: str | None) -> str:
    """Lower-case *content_type* and drop parameters such as ``charset``."""
    if not content_type:
        return ""
    return content_type.split(";", 1)[0].strip().lower()


def detect_format(content_type: str | None, filename: str = "") -> DocumentFormat:
    """Map a declared content type (and, as a fallback, filename) to a format.

    Raises
    ------
    UnsupportedFormatError
        When the type is not in the allow-list.
    """
    normalized = normalize_content_type(content_type)
    fmt = _CONTENT_TYPES.get(normalized)
    if fmt is not None:
        return fmt

    if normalized in _GENERIC_CONTENT_TYPES and filename:
        fmt = _SUFFIXES.get(PurePosixPath(filename).suffix.lower())
        if fmt is not None:
            return fmt

    raise UnsupportedFormatError(
        f"Unsupported file type '{content_type or 'unknown'}' for '{filename or 'document'}'. "
        "Supported types: PDF, plain text, markdown, CSV, XLS/XLSX, HTML."
    )
