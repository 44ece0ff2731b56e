"""Tests for the review gate."""

from docverify.resolution.resolver import BulkResolution, ResolutionMethod, Resolved, Unresolved
from docverify.review.gate import evaluate_gate
from docverify.schemas.doc_types import DocType
from docverify.schemas.records import CheckType, ReviewStatus
from docverify.verification.cross_document import DealDocument
from docverify.verification.report import VerificationStatus, VerificationSuite


def unbalanced_report():
    data = {
        "assets": {
            "currentAssets": {"totalCurrentAssets": 60000},
            "fixedAssets": {"netPropertyAndEquipment": 40000},
            "totalAssets": 100000,
        },
        "liabilities": {
            "currentLiabilities": {"totalCurrentLiabilities": 20000},
            "longTermLiabilities": {"totalLongTermLiabilities": 30000},
            "totalLiabilities": 50000,
        },
        "equity": {"totalEquity": 45000},
        "totalLiabilitiesAndEquity": 95000,
    }
    return VerificationSuite().verify("deal_1", [DealDocument("doc_bs", DocType.BALANCE_SHEET, data)])


def warning_report():
    return VerificationSuite().verify("deal_1", [
        DealDocument("doc_1040", DocType.FORM_1040, {"income": {"wages_line1": 82500}}),
        DealDocument("doc_w2", DocType.W2, {"wages": {"wagesTipsOther_box1": 85000}}),
    ])


def unresolved(report) -> BulkResolution:
    return BulkResolution(unresolved=[
        (d, Unresolved(reason="Could not self-resolve", attempted_methods=["format_normalization"]))
        for d in report.discrepancies
    ])


class TestEvaluateGate:
    """Tests for evaluate_gate."""

    def test_unresolved_failure_blocks(self):
        """Test an unresolved math failure blocks the deal and queues a review item."""
        report = unbalanced_report()
        decision = evaluate_gate(report, unresolved(report))

        assert not decision.can_proceed
        assert decision.status == VerificationStatus.FAIL
        assert len(decision.review_items) == 1

        item = decision.review_items[0]
        assert item.deal_id == "deal_1"
        assert item.document_id == "doc_bs"
        assert item.check_type == CheckType.MATH
        assert item.check_id == "math:doc_bs:balance_sheet.fundamental"
        assert item.extracted_value == "100000"
        assert item.expected_value == "95000"
        assert item.attempted_methods == ["format_normalization"]
        assert item.reason == "Could not self-resolve"
        assert item.status == ReviewStatus.PENDING

    def test_resolved_failure_proceeds(self):
        """Test a failure the resolver closed no longer blocks."""
        report = unbalanced_report()
        resolution = BulkResolution(resolved=[(
            report.discrepancies[0],
            Resolved(value="95000", confidence=0.92, method=ResolutionMethod.MODEL_SECTION,
                     explanation="Printed total reads 95,000"),
        )])
        decision = evaluate_gate(report, resolution)

        assert decision.can_proceed
        assert decision.status == VerificationStatus.PASS
        assert decision.review_items == []
        assert decision.auto_resolved_count == 1

    def test_accepted_check_proceeds(self):
        """Test a reviewer-confirmed check no longer blocks."""
        report = unbalanced_report()
        decision = evaluate_gate(
            report,
            unresolved(report),
            accepted_check_ids=frozenset({"math:doc_bs:balance_sheet.fundamental"}),
        )
        assert decision.can_proceed
        assert decision.review_items == []

    def test_warnings_never_block(self):
        """Test a warning-only report proceeds without review items."""
        report = warning_report()
        assert report.status == VerificationStatus.WARNING

        decision = evaluate_gate(report, unresolved(report))

        assert decision.can_proceed
        assert decision.status == VerificationStatus.WARNING
        assert decision.review_items == []
        assert decision.summary["crossDocWarnings"] == 1

    def test_can_proceed_iff_not_fail(self):
        """Test can_proceed mirrors the re-aggregated status."""
        for report in (unbalanced_report(), warning_report()):
            decision = evaluate_gate(report, unresolved(report))
            assert decision.can_proceed == (decision.status != VerificationStatus.FAIL)
            if decision.can_proceed:
                assert decision.review_items == []

    def test_summary_and_to_dict(self):
        """Test summary counts and serialization."""
        report = unbalanced_report()
        decision = evaluate_gate(report, unresolved(report))

        assert decision.summary == {
            "mathFailures": 1,
            "crossDocFailures": 0,
            "crossDocWarnings": 0,
            "ocrMismatches": 0,
            "total": 1,
        }
        payload = decision.to_dict()
        assert payload["canProceed"] is False
        assert payload["status"] == "fail"
        assert payload["reviewItems"][0]["check_id"] == "math:doc_bs:balance_sheet.fundamental"

    def test_without_resolution(self):
        """Test the gate still decides when the resolver has not run."""
        decision = evaluate_gate(unbalanced_report())
        assert not decision.can_proceed
        assert decision.auto_resolved_count == 0
