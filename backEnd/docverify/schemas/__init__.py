"""Schemas for documents, OCR payloads, pipeline records and canonical forms."""

from .doc_types import DocType, normalize_doc_type
from .ocr import KeyValuePair, LendingField, LendingPage, OcrResult, OcrTable
from .records import (
    CheckType,
    Discrepancy,
    DocumentRecord,
    ExtractionMethod,
    ExtractionRecord,
    FieldError,
    ProcessingStage,
    ReviewItem,
    ReviewStatus,
)

__all__ = [
    "DocType",
    "normalize_doc_type",
    "KeyValuePair",
    "LendingField",
    "LendingPage",
    "OcrResult",
    "OcrTable",
    "CheckType",
    "Discrepancy",
    "DocumentRecord",
    "ExtractionMethod",
    "ExtractionRecord",
    "FieldError",
    "ProcessingStage",
    "ReviewItem",
    "ReviewStatus",
]
