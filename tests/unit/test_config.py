"""Unit tests for Settings and the YAML config loader."""

from __future__ import annotations

from pathlib import Path

import pytest

from src.config.loader import load_config
from src.config.settings import Settings
from src.services.ingestion.extraction_validator import ExtractionLimits


class TestSettings:
    def test_environment_overrides_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CHUNK_SIZE", "800")
        monkeypatch.setenv("EMBEDDING_PROVIDER", "openai")
        monkeypatch.setenv("RETRIEVAL_MIN_SIMILARITY", "0.55")

        settings = Settings(_env_file=None)

        assert settings.chunk_size == 800
        assert settings.embedding_provider == "openai"
        assert settings.retrieval_min_similarity == 0.55
        assert settings.chunk_overlap == 100

    def test_default_extractor_is_local(self) -> None:
        assert Settings(_env_file=None).extraction_provider == "local"

    def test_available_embedding_providers(self) -> None:
        none = Settings(_env_file=None, gemini_api_key="", openai_api_key="", openai_base_url="")
        assert none.get_available_embedding_providers() == []
        both = Settings(_env_file=None, gemini_api_key="g", openai_base_url="http://local/v1")
        assert both.get_available_embedding_providers() == ["gemini", "openai"]


class TestLoadConfig:
    def test_yaml_defaults_merged_with_settings(self, tmp_path: Path) -> None:
        config_file = tmp_path / "config.yaml"
        config_file.write_text(
            "app:\n  name: docrag\ningestion:\n  separators: ['\\n\\n', ' ']\n"
        )
        settings = Settings(_env_file=None, chunk_size=500, app_env="test")

        config = load_config(str(config_file), settings=settings)

        assert config["app"]["name"] == "docrag"
        assert config["app"]["env"] == "test"
        assert config["ingestion"]["separators"] == ["\n\n", " "]
        assert config["ingestion"]["chunk_size"] == 500

    def test_missing_file_uses_settings_only(self, tmp_path: Path) -> None:
        config = load_config(str(tmp_path / "absent.yaml"), settings=Settings(_env_file=None))

        assert "separators" not in config["ingestion"]
        assert config["retrieval"]["top_k"] == 3

    def test_repository_config_is_valid(self) -> None:
        config = load_config("config/config.yaml", settings=Settings(_env_file=None))
        assert config["ingestion"]["separators"][-1] == ""
        limits = ExtractionLimits.model_validate(config["extraction"])
        assert limits.min_text_chars == 50
        assert config["logging"]["json"] is False
