"""Abstract base class for text-embedding service providers.

Defines the contract for turning text into a fixed-length vector.
Implementations wrap a remote embedding API (Gemini ``text-embedding-004``,
OpenAI-compatible endpoints) and must produce vectors of one fixed
dimensionality for the lifetime of the provider, since ingestion and
query-time retrieval have to embed into the same space.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementations:
#   GeminiEmbeddingProvider: text-embedding-004 (768 dims) via httpx
#   OpenAIEmbeddingProvider: any OpenAI-compatible embeddings endpoint
# Located in: src/providers/embedding/
class IEmbeddingProvider(ABC):
    """Contract for text-embedding services used by the ingestion and retrieval paths.

    The embedding batch runner calls :meth:`embed_single` once per segment
    so that every segment has its own outcome; :meth:`embed` exists for
    callers that can accept all-or-nothing batch semantics from the API.
    """

    @abstractmethod
    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Generate embedding vectors for a batch of texts.

        Parameters
        ----------
        texts:
            One or more text strings to embed.

        Returns
        -------
        list[list[float]]
            Embedding vectors corresponding positionally to *texts*.

        Raises
        ------
        src.utils.errors.RAGError
            If the embedding API call fails or returns an unusable payload.
        """

    @abstractmethod
    async def embed_single(self, text: str) -> list[float]:
        """Generate an embedding vector for a single text string.

        Parameters
        ----------
        text:
            The text string to embed (a segment or a search query).

        Returns
        -------
        list[float]
            A non-empty embedding vector.

        Raises
        ------
        src.utils.errors.RAGError
            If the call fails or no vector can be parsed from the response.
        """

    @abstractmethod
    def get_dimension(self) -> int:
        """Return the expected dimensionality of the embedding vectors.

        Example values: ``768`` (Gemini ``text-embedding-004``),
        ``1536`` (OpenAI ``text-embedding-3-small``).
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this embedding provider."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the provider has the credentials it needs."""
