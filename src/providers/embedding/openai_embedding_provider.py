"""OpenAI-compatible embedding provider adapter.

Wraps the ``openai`` async client to implement :class:`IEmbeddingProvider`.
Supports both real OpenAI and OpenAI-compatible servers (TogetherAI,
Ollama's ``/v1`` endpoint, vLLM) via custom ``base_url`` and model settings.
Responses go through the shared shape-tolerant parser.
"""

from __future__ import annotations

import openai
import structlog

from src.config.settings import Settings
from src.interfaces.embedding_provider import IEmbeddingProvider
from src.providers.embedding.response_parser import parse_embedding_response
from src.utils.errors import RAGError, RateLimitError

logger = structlog.get_logger(logger_name=__name__)

_OPENAI_BATCH_LIMIT = 2048

# Known embedding model dimensions.
_MODEL_DIMENSIONS: dict[str, int] = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
    "nomic-embed-text": 768,
    "BAAI/bge-base-en-v1.5": 768,
}


class OpenAIEmbeddingProvider(IEmbeddingProvider):
    """Embedding provider backed by an OpenAI-compatible embeddings API.

    Uses ``text-embedding-3-small`` by default.  When ``openai_base_url``
    is configured the client points at that URL instead.  Models missing
    from the dimension table fall back to ``settings.embedding_dimension``.
    """

    def __init__(self, settings: Settings, client: openai.AsyncOpenAI | None = None) -> None:
        self._api_key = settings.openai_api_key

        client_kwargs: dict = {"api_key": self._api_key or "not-needed"}
        if settings.openai_base_url:
            client_kwargs["base_url"] = settings.openai_base_url

        self._client = client or openai.AsyncOpenAI(**client_kwargs)
        self._model = settings.openai_embedding_model or "text-embedding-3-small"
        self._dimension = _MODEL_DIMENSIONS.get(self._model, settings.embedding_dimension)
        self._base_url = settings.openai_base_url
        self._provider_label = (
            "openai-compatible_embedding" if settings.openai_base_url else "openai_embedding"
        )

    # ------------------------------------------------------------------
    # IEmbeddingProvider implementation
    # ------------------------------------------------------------------

    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Generate embedding vectors, splitting inputs over the per-call limit."""
        if not texts:
            return []

        all_embeddings: list[list[float]] = []
        for start in range(0, len(texts), _OPENAI_BATCH_LIMIT):
            batch = texts[start : start + _OPENAI_BATCH_LIMIT]
            response = await self._create(batch)
            for item in response.data:
                all_embeddings.append(self._parse({"data": [item]}))
            logger.info(
                "openai_embedding_batch",
                model=self._model,
                provider=self._provider_label,
                batch_size=len(batch),
                tokens=response.usage.total_tokens if response.usage else None,
            )
        return all_embeddings

    async def embed_single(self, text: str) -> list[float]:
        """Generate an embedding vector for a single text string."""
        response = await self._create([text])
        return self._parse(response)

    def get_dimension(self) -> int:
        return self._dimension

    def get_provider_name(self) -> str:
        return self._provider_label

    def is_available(self) -> bool:
        """Return ``True`` if an API key or a compatible base URL is configured."""
        return bool(self._api_key or self._base_url)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _create(self, batch: list[str]):  # noqa: ANN202
        try:
            return await self._client.embeddings.create(input=batch, model=self._model)
        except openai.RateLimitError as exc:
            raise RateLimitError(
                message=f"{self._provider_label} rate limit exceeded",
                provider_name=self.get_provider_name(),
            ) from exc
        except openai.APIError as exc:
            raise RAGError(
                message=f"{self._provider_label} API error: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

    def _parse(self, payload: object) -> list[float]:
        result = parse_embedding_response(payload, expected_dimension=self._dimension)
        if not result.ok:
            raise RAGError(
                message=f"Invalid embedding response: {result.error}",
                provider_name=self.get_provider_name(),
            )
        return result.values  # type: ignore[return-value]
