"""YAML configuration loader with environment variable overrides.

# ─── CONFIGURATION HIERARCHY ──────────────────────────────────────────
#
# Configuration is loaded in layers (later layers override earlier):
#
#   1. config/config.yaml: Static defaults checked into the repo
#   2. .env file: Local developer overrides (not committed)
#   3. Environment vars: Set at deploy time
#
# load_config() reads the YAML file, then deep-merges values derived from
# Settings on top:
#   base = {"ingestion": {"chunk_size": 2000}}
#   overrides = {"ingestion": {"batch_size": 10}}
#   result = {"ingestion": {"chunk_size": 2000, "batch_size": 10}}
# ──────────────────────────────────────────────────────────────────────
"""

from pathlib import Path

import yaml

from src.config.settings import Settings


def load_config(path: str = "config/config.yaml", settings: Settings | None = None) -> dict:
    """Load YAML config and merge with environment-based Settings.

    Args:
        path: Path to the YAML configuration file.
        settings: Pre-built Settings; a fresh one is read from the
            environment when omitted.

    Returns:
        Fully resolved configuration dictionary.
    """
    config_path = Path(path)
    if config_path.exists():
        with open(config_path) as f:
            yaml_config = yaml.safe_load(f) or {}
    else:
        yaml_config = {}

    settings = settings or Settings()
    env_overrides = {
        "app": {
            "host": settings.app_host,
            "port": settings.app_port,
            "env": settings.app_env,
        },
        "providers": {
            "embedding": settings.embedding_provider,
            "extraction": settings.extraction_provider,
            "available_embedding": settings.get_available_embedding_providers(),
        },
        "ingestion": {
            "chunk_size": settings.chunk_size,
            "chunk_overlap": settings.chunk_overlap,
            "embedding_batch_size": settings.embedding_batch_size,
            "embedding_dimension": settings.embedding_dimension,
            "workers": settings.ingestion_workers,
        },
        "retrieval": {
            "top_k": settings.retrieval_top_k,
            "min_similarity": settings.retrieval_min_similarity,
            "cache_ttl_s": settings.query_cache_ttl_s,
            "cache_max_entries": settings.query_cache_max_entries,
        },
        "logging": {
            "level": settings.log_level,
        },
    }

    _deep_merge(yaml_config, env_overrides)
    return yaml_config


def _deep_merge(base: dict, overrides: dict) -> None:
    """Recursively merge overrides into base dict, mutating base in place."""
    for key, value in overrides.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
