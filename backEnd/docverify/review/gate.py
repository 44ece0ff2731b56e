"""
Review Gate

Pure policy over a verification report and the resolver's outcome:
- checks the resolver closed (or a reviewer accepted) are excluded
- the remaining checks are re-aggregated into a status
- a `fail` status blocks the deal and queues every open offending check

Warnings never block. The gate runs after each resolution pass and again
after every human decision, so one policy covers both paths.
"""

import logging
from dataclasses import dataclass, field
from typing import AbstractSet, Any, Dict, List, Optional

from ..config.settings import Tolerances
from ..resolution.resolver import BulkResolution
from ..schemas.records import ReviewItem
from ..verification.report import VerificationReport, VerificationStatus, aggregate_status

logger = logging.getLogger(__name__)


@dataclass
class GateDecision:
    """Whether a deal may proceed, and what a human must look at if not."""
    deal_id: str
    can_proceed: bool
    status: VerificationStatus
    review_items: List[ReviewItem] = field(default_factory=list)
    auto_resolved_count: int = 0
    summary: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "dealId": self.deal_id,
            "canProceed": self.can_proceed,
            "status": self.status.value,
            "reviewItems": [item.model_dump(mode="json") for item in self.review_items],
            "autoResolvedCount": self.auto_resolved_count,
            "summary": dict(self.summary),
        }


def evaluate_gate(
    report: VerificationReport,
    resolution: Optional[BulkResolution] = None,
    tolerances: Optional[Tolerances] = None,
    accepted_check_ids: AbstractSet[str] = frozenset(),
) -> GateDecision:
    """
    Decide whether a deal can proceed.

    Args:
        report: Latest verification report for the deal
        resolution: Resolver outcome for the report's discrepancies
        tolerances: Source of the OCR disagreement threshold
        accepted_check_ids: Checks a reviewer has already confirmed

    Returns:
        GateDecision; review_items is empty whenever can_proceed is True
    """
    resolution = resolution or BulkResolution()
    excluded = frozenset(accepted_check_ids) | resolution.resolved_check_ids

    status = aggregate_status(
        report.math_checks,
        report.cross_doc_checks,
        report.ocr_comparisons,
        tolerances,
        excluded=excluded,
    )

    math_failures = [c for c in report.math_failures if c.check_id not in excluded]
    cross_failures = [c for c in report.cross_doc_failures if c.check_id not in excluded]
    cross_warnings = [c for c in report.cross_doc_warnings if c.check_id not in excluded]
    ocr_mismatches = [c for c in report.ocr_mismatches if c.check_id not in excluded]

    review_items: List[ReviewItem] = []
    if status == VerificationStatus.FAIL:
        offending = {c.check_id for c in math_failures}
        offending.update(c.check_id for c in cross_failures)
        offending.update(c.check_id for c in ocr_mismatches)

        for discrepancy, result in resolution.unresolved:
            if discrepancy.check_id not in offending:
                continue
            review_items.append(ReviewItem(
                deal_id=report.deal_id,
                document_id=discrepancy.document_id,
                field_path=discrepancy.field_path,
                extracted_value=discrepancy.extracted_value,
                expected_value=discrepancy.expected_value,
                check_type=discrepancy.check_type,
                description=discrepancy.description,
                page=discrepancy.page,
                check_id=discrepancy.check_id,
                attempted_methods=list(result.attempted_methods),
                reason=result.reason,
            ))

    summary = {
        "mathFailures": len(math_failures),
        "crossDocFailures": len(cross_failures),
        "crossDocWarnings": len(cross_warnings),
        "ocrMismatches": len(ocr_mismatches),
    }
    summary["total"] = sum(summary.values())

    decision = GateDecision(
        deal_id=report.deal_id,
        can_proceed=status != VerificationStatus.FAIL,
        status=status,
        review_items=review_items,
        auto_resolved_count=len(resolution.resolved),
        summary=summary,
    )
    logger.info(
        f"Review gate for deal {report.deal_id}: {status.value}, "
        f"canProceed={decision.can_proceed}, {len(review_items)} review item(s)"
    )
    return decision
