"""Unit tests for the local and Gemini extraction providers."""

from __future__ import annotations

import json
from typing import Any

import fitz
import httpx
import pytest

from src.models.formats import DocumentFormat
from src.providers.extraction.gemini_extraction_provider import (
    GeminiExtractionProvider,
    prompt_for,
)
from src.providers.extraction.local_extraction_provider import (
    LocalExtractionProvider,
    decode_text,
    render_markdown_table,
)
from src.utils.errors import ExtractionError
from tests.conftest import xlsx_bytes


def _pdf_bytes(*pages: str) -> bytes:
    doc = fitz.open()
    for text in pages:
        page = doc.new_page()
        if text:
            page.insert_text((72, 72), text)
    data = doc.tobytes()
    doc.close()
    return data


# ======================================================================
# Helpers
# ======================================================================


class TestHelpers:
    def test_decode_text_strips_bom_and_replaces_garbage(self) -> None:
        assert decode_text("﻿hello".encode("utf-8")) == "hello"
        assert decode_text(b"ok \xff") == "ok �"

    def test_render_markdown_table(self) -> None:
        table = render_markdown_table([["name", "note"], ["a|b", "two\nlines"], ["x"]])
        assert table.splitlines() == [
            "| name | note |",
            "| --- | --- |",
            "| a\\|b | two lines |",
            "| x |  |",
        ]

    def test_render_markdown_table_empty(self) -> None:
        assert render_markdown_table([["", " "]]) == ""


# ======================================================================
# Local provider
# ======================================================================


class TestLocalExtractionProvider:
    @pytest.fixture
    def provider(self) -> LocalExtractionProvider:
        return LocalExtractionProvider()

    @pytest.mark.asyncio
    async def test_pdf_pages_are_marked(self, provider: LocalExtractionProvider) -> None:
        text = await provider.extract(
            _pdf_bytes("First page text", "Second page text"), DocumentFormat.PDF, "a.pdf"
        )

        assert text.index("[PAGE:1]") < text.index("First page text")
        assert text.index("[PAGE:2]") < text.index("Second page text")
        assert text.index("First page text") < text.index("[PAGE:2]")

    @pytest.mark.asyncio
    async def test_pdf_without_text_layer(self, provider: LocalExtractionProvider) -> None:
        text = await provider.extract(_pdf_bytes(""), DocumentFormat.PDF, "scan.pdf")
        assert text.strip() == "[PAGE:1]"

    @pytest.mark.asyncio
    async def test_corrupt_pdf(self, provider: LocalExtractionProvider) -> None:
        with pytest.raises(ExtractionError, match="Could not open PDF"):
            await provider.extract(b"not a pdf at all", DocumentFormat.PDF, "bad.pdf")

    @pytest.mark.asyncio
    async def test_html_sections_lists_and_tables(
        self, provider: LocalExtractionProvider
    ) -> None:
        html = (
            b"<html><head><script>var tracking = 1;</script></head><body>"
            b"<h1>Intro</h1><p>Hello world.</p><ul><li>First</li><li>Second</li></ul>"
            b"<h2>Data</h2><table><tr><th>a</th><th>b</th></tr>"
            b"<tr><td>1</td><td>2</td></tr></table></body></html>"
        )
        text = await provider.extract(html, DocumentFormat.HTML, "page.html")

        assert text.split("\n\n") == [
            "[SECTION:Intro]",
            "Hello world.",
            "- First",
            "- Second",
            "[SECTION:Data]",
            "| a | b |\n| --- | --- |\n| 1 | 2 |",
        ]
        assert "tracking" not in text

    @pytest.mark.asyncio
    async def test_markdown_headings_outside_fences(
        self, provider: LocalExtractionProvider
    ) -> None:
        source = "# Title\n\nText\n\n```\n# not a heading\n```\n## Next ##\nmore"
        text = await provider.extract(source.encode(), DocumentFormat.MARKDOWN, "r.md")

        assert text.splitlines() == [
            "[SECTION:Title]",
            "",
            "Text",
            "",
            "```",
            "# not a heading",
            "```",
            "[SECTION:Next]",
            "more",
        ]

    @pytest.mark.asyncio
    async def test_csv_becomes_table(self, provider: LocalExtractionProvider) -> None:
        text = await provider.extract(
            b"name,qty\napple,3\npear,5\n", DocumentFormat.CSV, "stock.csv"
        )
        assert text.splitlines() == [
            "| name | qty |",
            "| --- | --- |",
            "| apple | 3 |",
            "| pear | 5 |",
        ]

    @pytest.mark.asyncio
    async def test_plain_text_is_unmodified(self, provider: LocalExtractionProvider) -> None:
        raw = "line one\n\n  indented [PAGE:9] literal\n"
        assert await provider.extract(raw.encode(), DocumentFormat.TEXT, "n.txt") == raw

    @pytest.mark.asyncio
    async def test_xlsx_sheets_become_sections(self, provider: LocalExtractionProvider) -> None:
        data = xlsx_bytes(
            {
                "Rates": [["Grade", "Hourly"], ["A", 21.5], ["B", 18]],
                "Notes": [["Topic"], ["Overtime | weekends"]],
                "Blank": [],
            }
        )

        text = await provider.extract(data, DocumentFormat.SPREADSHEET, "pay.xlsx")

        assert text.split("\n\n") == [
            "[SECTION:Rates]",
            "| Grade | Hourly |\n| --- | --- |\n| A | 21.5 |\n| B | 18 |",
            "[SECTION:Notes]",
            "| Topic |\n| --- |\n| Overtime \\| weekends |",
        ]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "data",
        [b"PK not really a zip", b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1 truncated"],
        ids=["xlsx", "xls"],
    )
    async def test_corrupt_spreadsheet(
        self, provider: LocalExtractionProvider, data: bytes
    ) -> None:
        with pytest.raises(ExtractionError, match="Could not open spreadsheet"):
            await provider.extract(data, DocumentFormat.SPREADSHEET, "book.xls")

    def test_metadata(self, provider: LocalExtractionProvider) -> None:
        assert provider.get_provider_name() == "local_extraction"
        assert provider.is_available() is True


# ======================================================================
# Gemini provider
# ======================================================================


class _GeminiFake:
    """Routes Files API and generateContent calls; records every request."""

    def __init__(
        self,
        generate_status: int = 200,
        delete_status: int = 200,
        text: str = "[PAGE:1]\nExtracted",
    ) -> None:
        self.requests: list[httpx.Request] = []
        self.generate_status = generate_status
        self.delete_status = delete_status
        self.text = text

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path == "/upload/v1beta/files":
            return httpx.Response(
                200, headers={"x-goog-upload-url": "https://upload.test/session-1"}
            )
        if request.url.host == "upload.test":
            return httpx.Response(
                200,
                json={
                    "file": {
                        "name": "files/abc",
                        "uri": "https://files.test/files/abc",
                        "state": "PROCESSING",
                    }
                },
            )
        if request.method == "GET" and path == "/v1beta/files/abc":
            return httpx.Response(200, json={"name": "files/abc", "state": "ACTIVE"})
        if path.endswith(":generateContent"):
            if self.generate_status != 200:
                return httpx.Response(self.generate_status, text="upstream failure")
            return httpx.Response(
                200, json={"candidates": [{"content": {"parts": [{"text": self.text}]}}]}
            )
        if request.method == "DELETE":
            return httpx.Response(self.delete_status)
        return httpx.Response(404)

    def methods(self) -> list[str]:
        return [f"{r.method} {r.url.path}" for r in self.requests]


def _gemini(mock_settings: Any, fake: _GeminiFake) -> GeminiExtractionProvider:
    client = httpx.AsyncClient(transport=httpx.MockTransport(fake))
    return GeminiExtractionProvider(settings=mock_settings, http_client=client, poll_interval=0)


class TestGeminiExtractionProvider:
    @pytest.mark.asyncio
    async def test_full_round_trip(self, mock_settings: Any) -> None:
        fake = _GeminiFake()
        text = await _gemini(mock_settings, fake).extract(b"%PDF", DocumentFormat.PDF, "g.pdf")

        assert text == "[PAGE:1]\nExtracted"
        assert fake.methods() == [
            "POST /upload/v1beta/files",
            "POST /session-1",
            "GET /v1beta/files/abc",
            "POST /v1beta/models/gemini-2.0-flash:generateContent",
            "DELETE /v1beta/files/abc",
        ]
        assert all(r.headers["x-goog-api-key"] == "test-gemini-key" for r in fake.requests)

        body = json.loads(fake.requests[3].content)
        parts = body["contents"][0]["parts"]
        assert parts[0]["file_data"] == {
            "mime_type": "application/pdf",
            "file_uri": "https://files.test/files/abc",
        }
        assert "[PAGE:n]" in parts[1]["text"]

    @pytest.mark.asyncio
    async def test_uploaded_file_removed_on_failure(self, mock_settings: Any) -> None:
        fake = _GeminiFake(generate_status=500)

        with pytest.raises(ExtractionError, match="500"):
            await _gemini(mock_settings, fake).extract(b"%PDF", DocumentFormat.PDF, "g.pdf")

        assert fake.methods()[-1] == "DELETE /v1beta/files/abc"

    @pytest.mark.asyncio
    async def test_cleanup_failure_does_not_mask_result(self, mock_settings: Any) -> None:
        fake = _GeminiFake(delete_status=503, text="| a |\n| --- |")
        text = await _gemini(mock_settings, fake).extract(
            b"PK", DocumentFormat.SPREADSHEET, "book.xls"
        )

        assert text == "| a |\n| --- |"
        start = fake.requests[0]
        assert start.headers["X-Goog-Upload-Header-Content-Type"] == "application/vnd.ms-excel"

    @pytest.mark.asyncio
    async def test_plain_text_stays_local(self, mock_settings: Any) -> None:
        fake = _GeminiFake()
        text = await _gemini(mock_settings, fake).extract(b"notes", DocumentFormat.TEXT, "n.txt")

        assert text == "notes"
        assert fake.requests == []

    def test_prompts_follow_marker_convention(self) -> None:
        assert "[PAGE:n]" in prompt_for(DocumentFormat.PDF)
        assert "[SECTION:" in prompt_for(DocumentFormat.HTML)
        assert "[SECTION:" in prompt_for(DocumentFormat.MARKDOWN)
        assert "markdown table" in prompt_for(DocumentFormat.CSV)
