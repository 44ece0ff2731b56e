"""
Pydantic schemas for pipeline records.

Defines:
- DocumentRecord: an uploaded document and its processing stage
- ExtractionRecord: the single live extraction for a document
- Discrepancy: a flagged field disagreement
- ReviewItem: a human-actionable record of an unresolved discrepancy
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from pydantic import BaseModel, Field

from .doc_types import DocType


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Document Records
# =============================================================================


class ProcessingStage(str, Enum):
    """Monotonic processing stage of a document."""

    UPLOADED = "uploaded"
    CLASSIFYING = "classifying"
    CLASSIFIED = "classified"
    EXTRACTING = "extracting"
    EXTRACTED = "extracted"
    VERIFYING = "verifying"
    VERIFIED = "verified"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (ProcessingStage.VERIFIED, ProcessingStage.ERROR)

    @property
    def rank(self) -> int:
        return STAGE_ORDER.index(self) if self in STAGE_ORDER else len(STAGE_ORDER)


STAGE_ORDER = [
    ProcessingStage.UPLOADED,
    ProcessingStage.CLASSIFYING,
    ProcessingStage.CLASSIFIED,
    ProcessingStage.EXTRACTING,
    ProcessingStage.EXTRACTED,
    ProcessingStage.VERIFYING,
    ProcessingStage.VERIFIED,
]


class DocumentRecord(BaseModel):
    """An uploaded document tracked through the pipeline."""

    document_id: str = Field(default_factory=lambda: f"doc_{uuid4().hex[:12]}")
    deal_id: str = Field(..., description="Enclosing deal identifier")
    ocr_ref: Optional[str] = Field(
        default=None, description="Reference to the stored OCR output"
    )
    doc_type: Optional[DocType] = None
    classification_confidence: Optional[str] = None
    classification_method: Optional[str] = None
    year: Optional[int] = None
    stage: ProcessingStage = ProcessingStage.UPLOADED
    error: Optional[str] = None
    updated_at: datetime = Field(default_factory=_utcnow)


# =============================================================================
# Extraction Records
# =============================================================================


class ExtractionMethod(str, Enum):
    """How the structured data was produced."""

    DETERMINISTIC = "deterministic"
    MODEL_PRIMARY = "model_primary"
    MODEL_FALLBACK = "model_fallback"


class FieldError(BaseModel):
    """A path-level validation error. Path '_root' marks document-level errors."""

    path: str
    message: str


class ExtractionRecord(BaseModel):
    """
    The live extraction for one document.

    Upserting a new record for a document replaces the prior one.
    """

    document_id: str
    doc_type: DocType
    method: ExtractionMethod
    structured_data: dict[str, Any] = Field(default_factory=dict)
    raw_response: str = ""
    prompt_version: str = "unknown"
    model: str = ""
    tokens_used: int = 0
    cost_usd: float = 0.0
    validation_errors: list[FieldError] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_utcnow)

    @property
    def is_usable(self) -> bool:
        """True when there is structured data to verify."""
        return bool(self.structured_data)


# =============================================================================
# Discrepancies and Review
# =============================================================================


class CheckType(str, Enum):
    """Which verification family raised a discrepancy."""

    MATH = "math"
    CROSS_DOC = "cross_doc"
    OCR_MISMATCH = "ocr_mismatch"


class Discrepancy(BaseModel):
    """A field whose extracted value disagrees with a reference value."""

    discrepancy_id: str = Field(default_factory=lambda: f"dsc_{uuid4().hex[:12]}")
    field_path: str
    extracted_value: Optional[str] = None
    expected_value: Optional[str] = None
    check_type: CheckType
    description: str = ""
    document_id: Optional[str] = None
    doc_type: Optional[DocType] = None
    page: Optional[int] = None
    check_id: Optional[str] = Field(
        default=None, description="Verification check that raised this discrepancy"
    )


class ReviewStatus(str, Enum):
    """Lifecycle of a review item."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    CORRECTED = "corrected"


class ReviewItem(BaseModel):
    """An unresolved discrepancy queued for a human reviewer."""

    review_item_id: str = Field(default_factory=lambda: f"rvw_{uuid4().hex[:12]}")
    deal_id: str
    document_id: Optional[str] = None
    field_path: str
    extracted_value: Optional[str] = None
    expected_value: Optional[str] = None
    check_type: CheckType
    description: str = ""
    page: Optional[int] = None
    check_id: Optional[str] = None
    attempted_methods: list[str] = Field(default_factory=list)
    reason: str = ""
    status: ReviewStatus = ReviewStatus.PENDING
    corrected_value: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow)
