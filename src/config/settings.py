"""Application settings loaded from environment variables via pydantic-settings.

# ─── HOW SETTINGS WORK ────────────────────────────────────────────────
#
# pydantic-settings reads configuration from two sources (priority order):
#
#   1. **Environment variables**: e.g. GEMINI_API_KEY=abc123
#   2. **.env file**: key=value lines in the project root .env file
#
# Field name `gemini_api_key` maps to env var `GEMINI_API_KEY`.
# Defaults below apply when neither source sets a value.
#
# Ingestion tunables (chunk size, batch size, timeouts) live here too so
# that a deployment can tighten them without a code change.
# ──────────────────────────────────────────────────────────────────────
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """docrag application settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # === Provider selection ===
    # "gemini" | "openai" for embeddings; "gemini" | "local" for extraction.
    embedding_provider: str = "gemini"
    extraction_provider: str = "local"

    # === Gemini (Generative Language REST API) ===
    gemini_api_key: str = ""
    gemini_base_url: str = "https://generativelanguage.googleapis.com"
    gemini_extraction_model: str = "gemini-2.0-flash"
    gemini_embedding_model: str = "text-embedding-004"

    # === OpenAI-compatible embeddings ===
    openai_api_key: str = ""
    openai_base_url: str = ""
    openai_embedding_model: str = ""

    # === Segmentation ===
    chunk_size: int = 2000
    chunk_overlap: int = 100

    # === Embedding ===
    embedding_dimension: int = 768
    embedding_batch_size: int = 10
    embedding_timeout_s: float = 30.0

    # === External call timeouts ===
    download_timeout_s: float = 60.0
    extraction_timeout_s: float = 300.0
    index_write_timeout_s: float = 60.0

    # === Retrieval ===
    retrieval_top_k: int = 3
    retrieval_min_similarity: float = 0.7

    # === Query cache ===
    query_cache_ttl_s: float = 86400.0
    query_cache_max_entries: int = 100

    # === Background ingestion ===
    ingestion_workers: int = 2

    # === Storage ===
    chromadb_persist_dir: str = "./data/chromadb"
    chromadb_collection: str = "docrag_segments"
    document_db_path: str = "data/documents.db"
    blob_storage_dir: str = "data/blobs"
    max_upload_bytes: int = 50 * 1024 * 1024

    # === App Config ===
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    app_env: str = "development"
    log_level: str = "INFO"

    def get_available_embedding_providers(self) -> list[str]:
        """Return embedding provider names that have credentials configured."""
        providers: list[str] = []
        if self.gemini_api_key:
            providers.append("gemini")
        if self.openai_api_key or self.openai_base_url:
            providers.append("openai")
        return providers
