"""Verification suite: math, cross-document and OCR-vs-structured checks."""

from .cross_document import CrossDocCheck, CrossDocumentChecker, DealDocument, run_cross_doc_checks
from .math_checks import MathCheck, MathChecker, run_math_checks
from .ocr_compare import OcrComparison, compare_ocr_to_structured, key_matches_field
from .report import (
    VerificationReport,
    VerificationStatus,
    VerificationSuite,
    aggregate_status,
    collect_discrepancies,
)

__all__ = [
    "CrossDocCheck",
    "CrossDocumentChecker",
    "DealDocument",
    "run_cross_doc_checks",
    "MathCheck",
    "MathChecker",
    "run_math_checks",
    "OcrComparison",
    "compare_ocr_to_structured",
    "key_matches_field",
    "VerificationReport",
    "VerificationStatus",
    "VerificationSuite",
    "aggregate_status",
    "collect_discrepancies",
]
