"""Unit tests for factory functions in src/main.py.

Tests provider selection, the ``_build_all`` assembly and the
``create_app`` factory with the vector store patched out, so no network
calls or API keys are required.
"""

from __future__ import annotations

from typing import Any
from unittest.mock import MagicMock, patch

import httpx
import pytest
from fastapi import FastAPI

from src.config.settings import Settings


def _settings(mock_settings: Settings, **overrides: Any) -> Settings:
    return mock_settings.model_copy(update=overrides)


# ======================================================================
# Provider selection
# ======================================================================


class TestBuildEmbeddingProvider:
    def test_gemini_default(self, mock_settings: Settings) -> None:
        from src.main import _build_embedding_provider
        from src.providers.embedding.gemini_embedding_provider import GeminiEmbeddingProvider

        provider = _build_embedding_provider(mock_settings, httpx.AsyncClient())
        assert isinstance(provider, GeminiEmbeddingProvider)

    def test_openai_selected(self, mock_settings: Settings) -> None:
        from src.main import _build_embedding_provider
        from src.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider

        settings = _settings(mock_settings, embedding_provider="openai")
        provider = _build_embedding_provider(settings, httpx.AsyncClient())
        assert isinstance(provider, OpenAIEmbeddingProvider)

    def test_unknown_name_falls_back_to_gemini(self, mock_settings: Settings) -> None:
        from src.main import _build_embedding_provider

        settings = _settings(mock_settings, embedding_provider="word2vec")
        provider = _build_embedding_provider(settings, httpx.AsyncClient())
        assert provider.get_provider_name() == "gemini_embedding"


class TestBuildExtractionProvider:
    @pytest.mark.parametrize(
        ("name", "expected"),
        [("local", "local_extraction"), ("gemini", "gemini_extraction"), ("", "local_extraction")],
    )
    def test_selection(self, mock_settings: Settings, name: str, expected: str) -> None:
        from src.main import _build_extraction_provider

        settings = _settings(mock_settings, extraction_provider=name)
        provider = _build_extraction_provider(settings, httpx.AsyncClient())
        assert provider.get_provider_name() == expected


# ======================================================================
# _build_all
# ======================================================================


class TestBuildAll:
    def test_components_are_wired(self, mock_settings: Settings) -> None:
        from src.main import _build_all

        with patch("src.main.ChromaDBProvider") as chroma_cls:
            vector_store = MagicMock()
            vector_store.is_available.return_value = True
            chroma_cls.return_value = vector_store

            components = _build_all(mock_settings)

        chroma_cls.assert_called_once_with(
            persist_directory=mock_settings.chromadb_persist_dir,
            collection_name=mock_settings.chromadb_collection,
            expected_dimension=768,
        )
        expected_keys = {
            "settings",
            "http_client",
            "embedding_provider",
            "extraction_provider",
            "vector_store",
            "document_store",
            "blob_storage",
            "query_cache",
            "status_tracker",
            "ingestion_service",
            "ingestion_queue",
            "document_service",
            "retrieval_service",
            "provider_registry",
            "max_upload_bytes",
        }
        assert expected_keys <= set(components)
        assert components["vector_store"] is vector_store
        assert components["provider_registry"] == {
            "embedding": True,
            "embedding_provider": "gemini_embedding",
            "extraction": True,
            "extraction_provider": "local_extraction",
            "vector_store": True,
        }
        assert components["ingestion_queue"].running is False

    def test_extraction_limits_come_from_config(self, mock_settings: Settings) -> None:
        import src.main as main_module

        block = {"min_text_chars": 5, "image_only_max_chars": 20}
        with (
            patch.dict(main_module.config, {"extraction": block}),
            patch("src.main.ChromaDBProvider") as chroma_cls,
        ):
            chroma_cls.return_value.is_available.return_value = True
            service = main_module._build_all(mock_settings)["ingestion_service"]

        limits = service._extraction_limits
        assert limits.min_text_chars == 5
        assert limits.image_only_max_chars == 20
        assert limits.image_only_bytes_per_char == 1000

    def test_registry_reports_missing_credentials(self, mock_settings: Settings) -> None:
        from src.main import _build_all

        settings = _settings(mock_settings, gemini_api_key="", extraction_provider="gemini")
        with patch("src.main.ChromaDBProvider") as chroma_cls:
            chroma_cls.return_value.is_available.return_value = True
            registry = _build_all(settings)["provider_registry"]

        assert registry["embedding"] is False
        assert registry["extraction"] is False


# ======================================================================
# create_app
# ======================================================================


class TestCreateApp:
    def test_routes_registered(self) -> None:
        from src.main import create_app

        app = create_app()
        paths = {route.path for route in app.routes}

        assert isinstance(app, FastAPI)
        assert app.title == "docrag API"
        for expected in (
            "/api/v1/documents",
            "/api/v1/documents/{document_id}",
            "/api/v1/documents/{document_id}/reingest",
            "/api/v1/retrieve",
            "/api/v1/health",
            "/ws/documents/{document_id}",
        ):
            assert expected in paths
