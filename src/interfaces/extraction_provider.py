"""Abstract base class for document text-extraction providers.

Extraction is the boundary between raw bytes and the text pipeline.  A
provider receives the downloaded file plus its normalized format and
returns text annotated with the marker convention for that format:

    PDF              -> "[PAGE:n]" line before each page's content
    HTML / markdown  -> "[SECTION:title]" line before each named section,
                        tables kept whole inside one section
    CSV / XLS / XLSX -> markdown table rendering ("| a | b |")
    plain text       -> returned unmodified

Providers that create temporary remote resources (e.g. an uploaded scratch
copy of the file) must remove them before returning, on success *and* on
failure, and must only log a cleanup failure.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from src.models.formats import DocumentFormat


# Concrete implementations:
#   GeminiExtractionProvider: Gemini Files API + generateContent (all formats)
#   LocalExtractionProvider: PyMuPDF / BeautifulSoup / openpyxl / xlrd / csv
# Located in: src/providers/extraction/
class IExtractionProvider(ABC):
    """Contract for format-aware text extraction."""

    @abstractmethod
    async def extract(self, data: bytes, document_format: DocumentFormat, filename: str) -> str:
        """Extract annotated text from *data*.

        Parameters
        ----------
        data:
            Raw file bytes as downloaded from storage.
        document_format:
            Normalized format detected from the declared content type.
        filename:
            Display name, used for remote uploads and log context.

        Returns
        -------
        str
            Extracted text following the marker conventions above.

        Raises
        ------
        src.utils.errors.ExtractionError
            If the file cannot be read or the upstream call fails.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this provider."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the provider is configured and usable."""
