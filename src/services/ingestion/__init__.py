"""Document ingestion pipeline for the docrag index.

Pipeline stages overview:

1. **Extract** (via IExtractionProvider, checked by extraction_validator.py)
   -- document bytes become text annotated with ``[PAGE:n]`` or
   ``[SECTION:title]`` marker lines.

2. **Chunk** (chunker.py / TextChunker, markers.py) -- splits the text into
   overlapping windows on natural boundaries, recording page ranges or
   section context for citations.

3. **Embed** (embedding_batch_runner.py / EmbeddingBatchRunner) -- embeds
   every segment in concurrent groups; one failure fails the document.

4. **Store** (via IVectorStoreProvider) -- replaces the document's segment
   set in the index in one batch.

The IngestionService class drives these stages as a claim-based state
machine, one run per IngestionEvent.
"""

from src.services.ingestion.chunker import TextChunker
from src.services.ingestion.embedding_batch_runner import (
    BatchEmbeddingResult,
    EmbeddingBatchRunner,
    SegmentFailure,
)
from src.services.ingestion.extraction_validator import ExtractionLimits, validate_extracted_text
from src.services.ingestion.ingestion_service import IngestionService

__all__ = [
    "BatchEmbeddingResult",
    "ExtractionLimits",
    "EmbeddingBatchRunner",
    "IngestionService",
    "SegmentFailure",
    "TextChunker",
    "validate_extracted_text",
]
