"""Plausibility checks on extracted text.

Extraction can "succeed" and still return almost nothing -- a scanned PDF
without a text layer is the common case.  Such output would be embedded as
a handful of near-empty segments and poison retrieval, so it is rejected
here with an :class:`~src.utils.errors.ExtractionError` instead.

Thresholds come from the ``extraction`` block of ``config/config.yaml``.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from src.services.ingestion.markers import strip_markers
from src.utils.errors import ExtractionError


class ExtractionLimits(BaseModel):
    """Thresholds for rejecting implausible extraction output."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    min_text_chars: int = Field(
        default=50, ge=0, description="Minimum marker-free characters required."
    )
    image_only_bytes_per_char: float = Field(
        default=1000,
        gt=0,
        description="Input bytes per extracted character above which a source looks scanned.",
    )
    image_only_max_chars: int = Field(
        default=100,
        ge=0,
        description="Outputs shorter than this are checked against the bytes-per-char ratio.",
    )


DEFAULT_LIMITS = ExtractionLimits()


def validate_extracted_text(
    text: str, input_size: int, limits: ExtractionLimits = DEFAULT_LIMITS
) -> str:
    """Return *text* unchanged if it looks like real extracted content.

    Markers are ignored when measuring, so a scanned PDF that produced only
    ``[PAGE:n]`` lines is still caught.

    Raises
    ------
    ExtractionError
        If the source looks image-only (large input, tiny output) or the
        output is below the absolute minimum length.
    """
    content = strip_markers(text or "").strip()
    length = len(content)

    if (
        input_size / max(length, 1) > limits.image_only_bytes_per_char
        and length < limits.image_only_max_chars
    ):
        raise ExtractionError(
            f"Extracted only {length} characters from {input_size} bytes; "
            "the document appears to be image-only (scanned) and has no text layer."
        )
    if length < limits.min_text_chars:
        raise ExtractionError(
            f"Extracted only {length} characters; "
            f"at least {limits.min_text_chars} are required."
        )
    return text
