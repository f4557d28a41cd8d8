"""Extraction provider implementations (document bytes in, annotated text out)."""

from src.providers.extraction.gemini_extraction_provider import GeminiExtractionProvider
from src.providers.extraction.local_extraction_provider import LocalExtractionProvider

__all__ = ["GeminiExtractionProvider", "LocalExtractionProvider"]
