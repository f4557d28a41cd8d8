"""Gemini embedding provider adapter (Generative Language REST API).

Calls ``models/{model}:embedContent`` (one text) and
``models/{model}:batchEmbedContents`` (many texts) over an injected
``httpx.AsyncClient``.  Responses are decoded through
:func:`~src.providers.embedding.response_parser.parse_embedding_response`
so that payload-shape drift surfaces as a clear error instead of a
``KeyError`` deep inside ingestion.
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from src.config.settings import Settings
from src.interfaces.embedding_provider import IEmbeddingProvider
from src.providers.embedding.response_parser import parse_embedding_response
from src.utils.errors import RAGError, RateLimitError

logger = structlog.get_logger(logger_name=__name__)

# Known embedding model dimensions.
_MODEL_DIMENSIONS: dict[str, int] = {
    "text-embedding-004": 768,
    "text-embedding-005": 768,
    "gemini-embedding-001": 3072,
}

_BATCH_LIMIT = 100


class GeminiEmbeddingProvider(IEmbeddingProvider):
    """Embedding provider backed by Gemini ``text-embedding-004`` (768 dims).

    Parameters
    ----------
    settings:
        Supplies the API key, base URL, model name and expected dimension.
    http_client:
        Shared client; owned (and closed) by the application lifespan.
    """

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient) -> None:
        self._api_key = settings.gemini_api_key
        self._base_url = settings.gemini_base_url.rstrip("/")
        self._model = settings.gemini_embedding_model
        self._dimension = _MODEL_DIMENSIONS.get(self._model, settings.embedding_dimension)
        self._client = http_client

    # ------------------------------------------------------------------
    # IEmbeddingProvider implementation
    # ------------------------------------------------------------------

    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Embed *texts* via ``batchEmbedContents`` in slices of 100."""
        if not texts:
            return []

        vectors: list[list[float]] = []
        for start in range(0, len(texts), _BATCH_LIMIT):
            batch = texts[start : start + _BATCH_LIMIT]
            payload = await self._post(
                "batchEmbedContents",
                {"requests": [self._request_body(t) for t in batch]},
            )
            items = payload.get("embeddings") or []
            if len(items) != len(batch):
                raise RAGError(
                    message=f"Expected {len(batch)} embeddings, got {len(items)}",
                    provider_name=self.get_provider_name(),
                )
            for item in items:
                vectors.append(self._parse(item))
            logger.info("gemini_embedding_batch", model=self._model, batch_size=len(batch))
        return vectors

    async def embed_single(self, text: str) -> list[float]:
        """Embed one text via ``embedContent``."""
        payload = await self._post("embedContent", self._request_body(text))
        return self._parse(payload)

    def get_dimension(self) -> int:
        return self._dimension

    def get_provider_name(self) -> str:
        return "gemini_embedding"

    def is_available(self) -> bool:
        """Return ``True`` if an API key is configured."""
        return bool(self._api_key)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _request_body(self, text: str) -> dict[str, Any]:
        return {
            "model": f"models/{self._model}",
            "content": {"parts": [{"text": text}]},
        }

    def _parse(self, payload: Any) -> list[float]:
        result = parse_embedding_response(payload, expected_dimension=self._dimension)
        if not result.ok:
            raise RAGError(
                message=f"Invalid embedding response: {result.error}",
                provider_name=self.get_provider_name(),
            )
        return result.values  # type: ignore[return-value]

    async def _post(self, method: str, body: dict[str, Any]) -> dict[str, Any]:
        url = f"{self._base_url}/v1beta/models/{self._model}:{method}"
        try:
            response = await self._client.post(
                url,
                json=body,
                headers={"x-goog-api-key": self._api_key},
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            if exc.response.status_code == 429:
                raise RateLimitError(
                    message="Gemini embedding rate limit exceeded",
                    provider_name=self.get_provider_name(),
                ) from exc
            raise RAGError(
                message=f"Gemini embedding API error {exc.response.status_code}: {exc.response.text[:200]}",
                provider_name=self.get_provider_name(),
            ) from exc
        except httpx.HTTPError as exc:
            raise RAGError(
                message=f"Gemini embedding request failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        try:
            return response.json()
        except ValueError as exc:
            raise RAGError(
                message="Gemini embedding response was not valid JSON",
                provider_name=self.get_provider_name(),
            ) from exc
