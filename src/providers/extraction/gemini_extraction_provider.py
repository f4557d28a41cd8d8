"""Gemini-backed extraction provider (Files API + ``generateContent``).

Each non-text document goes through three REST calls over the injected
``httpx.AsyncClient``:

1. **Upload** -- resumable upload to ``/upload/v1beta/files`` (start, then
   upload+finalize), followed by polling until the file is ``ACTIVE``.
2. **Generate** -- ``models/{model}:generateContent`` with the uploaded file
   and a format-specific prompt asking for page markers, section markers or
   markdown tables.
3. **Cleanup** -- ``DELETE`` of the uploaded file in a ``finally`` block.
   A failed delete is logged as ``gemini_file_cleanup_failed`` and never
   replaces the extraction outcome.

Plain text never leaves the host; it is decoded locally.
"""

from __future__ import annotations

import asyncio
from pathlib import PurePosixPath
from typing import Any

import httpx
import structlog

from src.config.settings import Settings
from src.interfaces.extraction_provider import IExtractionProvider
from src.models.formats import CANONICAL_CONTENT_TYPES, DocumentFormat
from src.providers.extraction.local_extraction_provider import decode_text
from src.utils.errors import ExtractionError, RateLimitError

logger = structlog.get_logger(logger_name=__name__)

_PAGED_PROMPT = (
    "Extract all the text from this document, page by page. "
    "Before the content of each page write a line of the form [PAGE:n], "
    "where n is the 1-based page number. "
    "Preserve paragraphs and convert tables to markdown table format with | separators. "
    "Return only the extracted content, no explanations."
)
_SECTIONED_PROMPT = (
    "Extract all the text from this document. "
    "Before each heading's content write a line of the form [SECTION:heading text]. "
    "Keep tables inside the section they belong to and convert them to markdown "
    "table format with | separators. "
    "Return only the extracted content, no explanations."
)
_TABULAR_PROMPT = (
    "Extract all content from this spreadsheet. "
    "Convert tables to markdown table format with | separators. "
    "Preserve headers and data structure. "
    "Return only the extracted content, no explanations."
)

_SPREADSHEET_MIME_BY_SUFFIX = {
    ".xls": "application/vnd.ms-excel",
    ".xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}

_POLL_INTERVAL_S = 1.0
_MAX_POLLS = 60


def prompt_for(document_format: DocumentFormat) -> str:
    """Return the extraction prompt for *document_format*."""
    if document_format.is_paginated:
        return _PAGED_PROMPT
    if document_format.is_tabular:
        return _TABULAR_PROMPT
    return _SECTIONED_PROMPT


class GeminiExtractionProvider(IExtractionProvider):
    """Extraction through Gemini's multimodal document understanding.

    Parameters
    ----------
    settings:
        Supplies the API key, base URL and extraction model.
    http_client:
        Shared client; owned (and closed) by the application lifespan.
    poll_interval:
        Seconds between file-state polls while the upload is processing.
    """

    def __init__(
        self,
        settings: Settings,
        http_client: httpx.AsyncClient,
        poll_interval: float = _POLL_INTERVAL_S,
    ) -> None:
        self._api_key = settings.gemini_api_key
        self._base_url = settings.gemini_base_url.rstrip("/")
        self._model = settings.gemini_extraction_model
        self._client = http_client
        self._poll_interval = poll_interval

    async def extract(self, data: bytes, document_format: DocumentFormat, filename: str) -> str:
        if document_format is DocumentFormat.TEXT:
            return decode_text(data)

        mime_type = self._mime_type(document_format, filename)
        file_info = await self._upload(data, mime_type, filename)
        try:
            await self._wait_until_active(file_info)
            text = await self._generate(file_info, mime_type, prompt_for(document_format))
        finally:
            await self._delete_file(file_info.get("name", ""))

        logger.info(
            "gemini_extraction_complete",
            filename=filename,
            format=document_format.value,
            input_bytes=len(data),
            output_chars=len(text),
        )
        return text

    def get_provider_name(self) -> str:
        return "gemini_extraction"

    def is_available(self) -> bool:
        return bool(self._api_key)

    # ------------------------------------------------------------------
    # Files API
    # ------------------------------------------------------------------

    async def _upload(self, data: bytes, mime_type: str, filename: str) -> dict[str, Any]:
        start = await self._request(
            "POST",
            f"{self._base_url}/upload/v1beta/files",
            headers={
                "X-Goog-Upload-Protocol": "resumable",
                "X-Goog-Upload-Command": "start",
                "X-Goog-Upload-Header-Content-Length": str(len(data)),
                "X-Goog-Upload-Header-Content-Type": mime_type,
            },
            json={"file": {"display_name": filename}},
        )
        upload_url = start.headers.get("x-goog-upload-url")
        if not upload_url:
            raise ExtractionError(
                message="Gemini upload session did not return an upload URL",
                provider_name=self.get_provider_name(),
            )

        finished = await self._request(
            "POST",
            upload_url,
            headers={
                "X-Goog-Upload-Offset": "0",
                "X-Goog-Upload-Command": "upload, finalize",
            },
            content=data,
        )
        file_info = self._json(finished).get("file") or {}
        if not file_info.get("name") or not file_info.get("uri"):
            raise ExtractionError(
                message="Gemini upload response is missing the file name or URI",
                provider_name=self.get_provider_name(),
            )
        logger.debug("gemini_file_uploaded", name=file_info["name"], size=len(data))
        return file_info

    async def _wait_until_active(self, file_info: dict[str, Any]) -> None:
        state = file_info.get("state", "ACTIVE")
        polls = 0
        while state == "PROCESSING":
            if polls >= _MAX_POLLS:
                raise ExtractionError(
                    message=f"Gemini file {file_info['name']} is still processing",
                    provider_name=self.get_provider_name(),
                )
            await asyncio.sleep(self._poll_interval)
            response = await self._request("GET", f"{self._base_url}/v1beta/{file_info['name']}")
            state = self._json(response).get("state", "ACTIVE")
            polls += 1

        if state == "FAILED":
            raise ExtractionError(
                message=f"Gemini could not process file {file_info['name']}",
                provider_name=self.get_provider_name(),
            )

    async def _generate(self, file_info: dict[str, Any], mime_type: str, prompt: str) -> str:
        body = {
            "contents": [
                {
                    "parts": [
                        {"file_data": {"mime_type": mime_type, "file_uri": file_info["uri"]}},
                        {"text": prompt},
                    ]
                }
            ]
        }
        response = await self._request(
            "POST",
            f"{self._base_url}/v1beta/models/{self._model}:generateContent",
            json=body,
        )
        payload = self._json(response)
        candidates = payload.get("candidates") or []
        if not candidates:
            raise ExtractionError(
                message="Gemini returned no candidates",
                provider_name=self.get_provider_name(),
            )
        parts = (candidates[0].get("content") or {}).get("parts") or []
        return "".join(part.get("text", "") for part in parts)

    async def _delete_file(self, name: str) -> None:
        if not name:
            return
        try:
            response = await self._client.delete(
                f"{self._base_url}/v1beta/{name}",
                headers={"x-goog-api-key": self._api_key},
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("gemini_file_cleanup_failed", name=name, error=str(exc))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _mime_type(document_format: DocumentFormat, filename: str) -> str:
        if document_format is DocumentFormat.SPREADSHEET:
            suffix = PurePosixPath(filename).suffix.lower()
            return _SPREADSHEET_MIME_BY_SUFFIX.get(suffix, _SPREADSHEET_MIME_BY_SUFFIX[".xlsx"])
        return CANONICAL_CONTENT_TYPES[document_format]

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        headers = {"x-goog-api-key": self._api_key, **kwargs.pop("headers", {})}
        try:
            response = await self._client.request(method, url, headers=headers, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            if exc.response.status_code == 429:
                raise RateLimitError(
                    message="Gemini extraction rate limit exceeded",
                    provider_name=self.get_provider_name(),
                ) from exc
            raise ExtractionError(
                message=f"Gemini API error {exc.response.status_code}: {exc.response.text[:200]}",
                provider_name=self.get_provider_name(),
            ) from exc
        except httpx.HTTPError as exc:
            raise ExtractionError(
                message=f"Gemini request failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        return response

    def _json(self, response: httpx.Response) -> dict[str, Any]:
        try:
            return response.json()
        except ValueError as exc:
            raise ExtractionError(
                message="Gemini response was not valid JSON",
                provider_name=self.get_provider_name(),
            ) from exc
