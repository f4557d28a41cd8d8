"""Local, dependency-only extraction provider (no remote model calls).

Extracts annotated text on the host:

* **PDF** -- PyMuPDF (``fitz``) page by page; each page is prefixed with a
  ``[PAGE:n]`` line.  Pages without a text layer produce an empty page body,
  which the extraction validator later flags as image-only.
* **HTML** -- BeautifulSoup walk in document order; each ``h1``-``h6``
  opens a ``[SECTION:title]``; tables are rendered as markdown and stay
  inside the section they appear in.
* **Markdown** -- ATX headings (``#`` .. ``######``) outside code fences
  become ``[SECTION:title]`` lines.
* **CSV** -- rendered as one markdown table.
* **Spreadsheets** -- XLSX through openpyxl, legacy XLS through xlrd.  Each
  non-empty sheet opens a ``[SECTION:sheet name]`` and is rendered as a
  markdown table.
* **Plain text** -- decoded and returned unmodified.
"""

from __future__ import annotations

import asyncio
import csv
import io
import re

import fitz  # PyMuPDF -- the "fitz" import name is a PyMuPDF convention
import openpyxl
import structlog
import xlrd
from bs4 import BeautifulSoup, Tag

from src.interfaces.extraction_provider import IExtractionProvider
from src.models.formats import DocumentFormat
from src.services.ingestion.markers import page_marker, section_marker
from src.utils.errors import ExtractionError

logger = structlog.get_logger(logger_name=__name__)

_HEADING_TAGS = ("h1", "h2", "h3", "h4", "h5", "h6")
_BLOCK_TAGS = (*_HEADING_TAGS, "p", "li", "pre", "blockquote", "table", "dt", "dd")
# Blocks nested inside these are already covered by the outer block's text.
_CONTAINER_TAGS = ("table", "li", "pre", "blockquote")

_MD_HEADING_RE = re.compile(r"^[ ]{0,3}#{1,6}[ \t]+(.+?)[ \t#]*$")
_MD_FENCE_RE = re.compile(r"^[ ]{0,3}(```|~~~)")

# Legacy XLS files are OLE2 compound documents; XLSX files are zip archives.
_OLE2_MAGIC = b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1"


def decode_text(data: bytes) -> str:
    """Decode bytes as UTF-8 (BOM tolerated), replacing undecodable bytes."""
    return data.decode("utf-8-sig", errors="replace")


def render_markdown_table(rows: list[list[str]]) -> str:
    """Render *rows* (first row = header) as a pipe-separated markdown table."""
    rows = [r for r in rows if any(cell.strip() for cell in r)]
    if not rows:
        return ""
    width = max(len(r) for r in rows)

    def _line(cells: list[str]) -> str:
        padded = [c.replace("|", "\\|").replace("\n", " ").strip() for c in cells]
        padded += [""] * (width - len(padded))
        return "| " + " | ".join(padded) + " |"

    lines = [_line(rows[0]), "| " + " | ".join(["---"] * width) + " |"]
    lines.extend(_line(r) for r in rows[1:])
    return "\n".join(lines)


class LocalExtractionProvider(IExtractionProvider):
    """Extraction with PyMuPDF, BeautifulSoup, openpyxl, xlrd and ``csv``."""

    async def extract(self, data: bytes, document_format: DocumentFormat, filename: str) -> str:
        if document_format is DocumentFormat.PDF:
            # PyMuPDF is CPU-bound and synchronous.
            text = await asyncio.to_thread(self._extract_pdf, data, filename)
        elif document_format is DocumentFormat.HTML:
            text = self._extract_html(data)
        elif document_format is DocumentFormat.MARKDOWN:
            text = self._extract_markdown(decode_text(data))
        elif document_format is DocumentFormat.CSV:
            text = self._extract_csv(decode_text(data))
        elif document_format is DocumentFormat.SPREADSHEET:
            text = await asyncio.to_thread(self._extract_spreadsheet, data, filename)
        elif document_format is DocumentFormat.TEXT:
            text = decode_text(data)
        else:
            raise ExtractionError(
                f"Local extraction does not support {document_format.value} files.",
                provider_name=self.get_provider_name(),
            )

        logger.info(
            "local_extraction_complete",
            filename=filename,
            format=document_format.value,
            input_bytes=len(data),
            output_chars=len(text),
        )
        return text

    def get_provider_name(self) -> str:
        return "local_extraction"

    def is_available(self) -> bool:
        return True

    # ------------------------------------------------------------------
    # Format readers
    # ------------------------------------------------------------------

    def _extract_pdf(self, data: bytes, filename: str) -> str:
        try:
            doc = fitz.open(stream=data, filetype="pdf")
        except Exception as exc:
            raise ExtractionError(
                f"Could not open PDF '{filename}': {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        parts: list[str] = []
        try:
            for page_num in range(len(doc)):
                page_text = doc[page_num].get_text("text").strip()
                parts.append(f"{page_marker(page_num + 1)}\n{page_text}\n")
        finally:
            doc.close()
        return "\n".join(parts)

    @staticmethod
    def _extract_html(data: bytes) -> str:
        soup = BeautifulSoup(data, "html.parser")
        for tag in soup(["script", "style", "noscript", "template"]):
            tag.decompose()

        root = soup.body or soup
        parts: list[str] = []
        for element in root.find_all(_BLOCK_TAGS):
            if element.find_parent(_CONTAINER_TAGS) is not None:
                continue
            if element.name in _HEADING_TAGS:
                title = element.get_text(" ", strip=True)
                if title:
                    parts.append(section_marker(title))
                continue
            if element.name == "table":
                table = render_markdown_table(_table_rows(element))
                if table:
                    parts.append(table)
                continue
            text = element.get_text(" ", strip=True)
            if text:
                parts.append(f"- {text}" if element.name == "li" else text)

        if not parts:
            return root.get_text("\n", strip=True)
        return "\n\n".join(parts)

    @staticmethod
    def _extract_markdown(text: str) -> str:
        lines: list[str] = []
        in_fence = False
        for line in text.splitlines():
            if _MD_FENCE_RE.match(line):
                in_fence = not in_fence
            match = None if in_fence else _MD_HEADING_RE.match(line)
            lines.append(section_marker(match.group(1)) if match else line)
        return "\n".join(lines)

    @staticmethod
    def _extract_csv(text: str) -> str:
        try:
            dialect = csv.Sniffer().sniff(text[:4096], delimiters=",;\t|")
        except csv.Error:
            dialect = csv.excel
        rows = list(csv.reader(io.StringIO(text), dialect))
        return render_markdown_table(rows)

    def _extract_spreadsheet(self, data: bytes, filename: str) -> str:
        try:
            sheets = _read_xls(data) if data.startswith(_OLE2_MAGIC) else _read_xlsx(data)
        except Exception as exc:
            raise ExtractionError(
                f"Could not open spreadsheet '{filename}': {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        parts: list[str] = []
        for name, rows in sheets:
            table = render_markdown_table(rows)
            if table:
                parts.append(section_marker(name))
                parts.append(table)
        return "\n\n".join(parts)


def _table_rows(table: Tag) -> list[list[str]]:
    rows: list[list[str]] = []
    for tr in table.find_all("tr"):
        cells = [c.get_text(" ", strip=True) for c in tr.find_all(["th", "td"])]
        if cells:
            rows.append(cells)
    return rows


_Sheet = tuple[str, list[list[str]]]


def _cell_text(value: object) -> str:
    if value is None:
        return ""
    # Both readers hand back whole numbers as floats.
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _read_xlsx(data: bytes) -> list[_Sheet]:
    workbook = openpyxl.load_workbook(io.BytesIO(data), read_only=True, data_only=True)
    try:
        return [
            (
                sheet.title,
                [[_cell_text(v) for v in row] for row in sheet.iter_rows(values_only=True)],
            )
            for sheet in workbook.worksheets
        ]
    finally:
        workbook.close()


def _read_xls(data: bytes) -> list[_Sheet]:
    book = xlrd.open_workbook(file_contents=data)
    try:
        return [
            (
                sheet.name,
                [[_cell_text(v) for v in sheet.row_values(r)] for r in range(sheet.nrows)],
            )
            for sheet in book.sheets()
        ]
    finally:
        book.release_resources()
