"""Embedding provider implementations.

Embeddings convert text into fixed-length vectors that capture semantic
meaning.  Segment vectors are stored in ChromaDB at ingestion; query vectors
are compared against them at retrieval.  Both sides must use the same
provider and model.

Two implementations of IEmbeddingProvider:
    1. GeminiEmbeddingProvider: text-embedding-004 (768 dims) over httpx.
       Default.
    2. OpenAIEmbeddingProvider: any OpenAI-compatible /embeddings endpoint.

Both decode responses through response_parser.parse_embedding_response.
"""

from src.providers.embedding.gemini_embedding_provider import GeminiEmbeddingProvider
from src.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider

__all__ = ["GeminiEmbeddingProvider", "OpenAIEmbeddingProvider"]
