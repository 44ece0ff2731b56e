"""
Verification Report

Runs the three check families over a deal and folds them into one status:
- fail: any math or cross-document failure, or more OCR disagreements than allowed
- warning: any cross-document warning or any OCR disagreement
- pass: otherwise

Flagged checks are also turned into Discrepancy records for the resolver.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import AbstractSet, Any, Dict, List, Optional

from ..config.settings import Tolerances
from ..schemas.records import CheckType, Discrepancy
from .common import format_amount, plain_number
from .cross_document import CrossDocCheck, CrossDocumentChecker, DealDocument
from .math_checks import MathCheck, MathChecker
from .ocr_compare import OcrComparison, compare_ocr_to_structured, locate_field_page

logger = logging.getLogger(__name__)


class VerificationStatus(str, Enum):
    PASS = "pass"
    WARNING = "warning"
    FAIL = "fail"


def aggregate_status(
    math_checks: List[MathCheck],
    cross_doc_checks: List[CrossDocCheck],
    ocr_comparisons: List[OcrComparison],
    tolerances: Optional[Tolerances] = None,
    excluded: AbstractSet[str] = frozenset(),
) -> VerificationStatus:
    """
    Fold check results into one overall status.

    Args:
        math_checks: Intra-document results
        cross_doc_checks: Cross-document results
        ocr_comparisons: OCR-vs-structured results
        tolerances: Source of the OCR disagreement threshold
        excluded: Check ids to ignore (closed by the resolver)

    Returns:
        VerificationStatus
    """
    tolerances = tolerances or Tolerances()

    math_failed = any(
        not c.passed for c in math_checks if c.check_id not in excluded
    )
    cross_statuses = [
        c.status for c in cross_doc_checks if c.check_id not in excluded
    ]
    disagreements = sum(
        1 for c in ocr_comparisons
        if c.is_disagreement and c.check_id not in excluded
    )

    if (
        math_failed
        or "fail" in cross_statuses
        or disagreements > tolerances.ocr_disagreement_fail_count
    ):
        return VerificationStatus.FAIL
    if "warning" in cross_statuses or disagreements > 0:
        return VerificationStatus.WARNING
    return VerificationStatus.PASS


@dataclass
class VerificationReport:
    """All check results for one deal plus the aggregated status."""
    deal_id: str
    math_checks: List[MathCheck] = field(default_factory=list)
    cross_doc_checks: List[CrossDocCheck] = field(default_factory=list)
    ocr_comparisons: List[OcrComparison] = field(default_factory=list)
    status: VerificationStatus = VerificationStatus.PASS
    discrepancies: List[Discrepancy] = field(default_factory=list)

    @property
    def math_failures(self) -> List[MathCheck]:
        return [c for c in self.math_checks if not c.passed]

    @property
    def cross_doc_failures(self) -> List[CrossDocCheck]:
        return [c for c in self.cross_doc_checks if c.status == "fail"]

    @property
    def cross_doc_warnings(self) -> List[CrossDocCheck]:
        return [c for c in self.cross_doc_checks if c.status == "warning"]

    @property
    def ocr_mismatches(self) -> List[OcrComparison]:
        return [c for c in self.ocr_comparisons if c.is_disagreement]

    def summary(self) -> Dict[str, int]:
        return {
            "mathChecks": len(self.math_checks),
            "mathFailures": len(self.math_failures),
            "crossDocChecks": len(self.cross_doc_checks),
            "crossDocFailures": len(self.cross_doc_failures),
            "crossDocWarnings": len(self.cross_doc_warnings),
            "ocrComparisons": len(self.ocr_comparisons),
            "ocrMismatches": len(self.ocr_mismatches),
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "dealId": self.deal_id,
            "status": self.status.value,
            "summary": self.summary(),
            "mathChecks": [c.to_dict() for c in self.math_checks],
            "crossDocChecks": [c.to_dict() for c in self.cross_doc_checks],
            "ocrComparisons": [c.to_dict() for c in self.ocr_comparisons],
            "discrepancies": [d.model_dump(mode="json") for d in self.discrepancies],
        }


# =============================================================================
# Discrepancy builders
# =============================================================================

def math_discrepancy(check: MathCheck) -> Discrepancy:
    return Discrepancy(
        field_path=check.field_path,
        extracted_value=plain_number(check.actual),
        expected_value=plain_number(check.expected),
        check_type=CheckType.MATH,
        description=(
            f"{check.description}. Expected {format_amount(check.expected)}, "
            f"got {format_amount(check.actual)}. "
            f"Difference: {format_amount(check.difference)}"
        ),
        document_id=check.document_id,
        doc_type=check.doc_type,
        page=check.page,
        check_id=check.check_id,
    )


def cross_doc_discrepancy(check: CrossDocCheck) -> Discrepancy:
    """
    Cross-document discrepancies span two documents, so they carry no
    single document or page; only the format-level resolver tiers apply.
    """
    return Discrepancy(
        field_path=f"{check.doc1_field} vs {check.doc2_field}",
        extracted_value=plain_number(check.doc1_value),
        expected_value=plain_number(check.doc2_value),
        check_type=CheckType.CROSS_DOC,
        description=(
            f"{check.description}. {check.doc1_type} shows "
            f"{format_amount(check.doc1_value)} but {check.doc2_type} shows "
            f"{format_amount(check.doc2_value)}. Difference: "
            f"{format_amount(check.difference)} ({check.percent_diff * 100:.1f}%)"
        ),
        check_id=check.check_id,
    )


def ocr_discrepancy(comparison: OcrComparison) -> Discrepancy:
    ocr_value = comparison.ocr_value if comparison.ocr_value is not None else 0.0
    return Discrepancy(
        field_path=comparison.field_path,
        extracted_value=plain_number(comparison.structured_value),
        expected_value=plain_number(ocr_value),
        check_type=CheckType.OCR_MISMATCH,
        description=(
            f'OCR reads "{comparison.ocr_key}" as {format_amount(ocr_value)} '
            f"but extraction shows {format_amount(comparison.structured_value)}. "
            f"Difference: {format_amount(comparison.difference)}"
        ),
        document_id=comparison.document_id,
        doc_type=comparison.doc_type,
        page=comparison.page,
        check_id=comparison.check_id,
    )


def collect_discrepancies(report: VerificationReport) -> List[Discrepancy]:
    """Every flagged check in the report, as a Discrepancy."""
    discrepancies = [math_discrepancy(c) for c in report.math_failures]
    discrepancies.extend(
        cross_doc_discrepancy(c)
        for c in report.cross_doc_failures + report.cross_doc_warnings
    )
    discrepancies.extend(ocr_discrepancy(c) for c in report.ocr_mismatches)
    return discrepancies


# =============================================================================
# Suite
# =============================================================================

class VerificationSuite:
    """
    Runs math, cross-document and OCR comparison checks over a deal.

    Usage:
        suite = VerificationSuite(settings.tolerances())
        report = suite.verify("deal_1", documents)
        if report.status == VerificationStatus.FAIL:
            ...
    """

    def __init__(self, tolerances: Optional[Tolerances] = None):
        self.tolerances = tolerances or Tolerances()
        self.math_checker = MathChecker(self.tolerances)
        self.cross_doc_checker = CrossDocumentChecker(self.tolerances)

    def verify(self, deal_id: str, documents: List[DealDocument]) -> VerificationReport:
        """
        Verify a deal's documents.

        Args:
            deal_id: Enclosing deal
            documents: Structured data per document, with OCR where available

        Returns:
            VerificationReport with status and discrepancies populated
        """
        report = VerificationReport(deal_id=deal_id)

        for doc in documents:
            if not doc.data:
                continue
            checks = self.math_checker.run(doc.doc_type, doc.data, document_id=doc.document_id)
            for check in checks:
                if not check.passed:
                    check.page = locate_field_page(doc.ocr, doc.doc_type, check.field_path)
            report.math_checks.extend(checks)

            if doc.ocr is not None:
                report.ocr_comparisons.extend(compare_ocr_to_structured(
                    doc.doc_type,
                    doc.data,
                    doc.ocr.key_value_pairs,
                    tolerances=self.tolerances,
                    document_id=doc.document_id,
                ))

        report.cross_doc_checks = self.cross_doc_checker.run(documents)
        report.status = aggregate_status(
            report.math_checks,
            report.cross_doc_checks,
            report.ocr_comparisons,
            self.tolerances,
        )
        report.discrepancies = collect_discrepancies(report)

        logger.info(
            f"Verification for deal {deal_id}: {report.status.value} "
            f"({len(report.discrepancies)} discrepancies)"
        )
        return report
