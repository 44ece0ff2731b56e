"""Tests for math, cross-document and OCR verification."""

import pytest

from docverify.config.settings import Tolerances
from docverify.schemas.doc_types import DocType
from docverify.schemas.ocr import KeyValuePair, OcrResult
from docverify.schemas.records import CheckType
from docverify.verification.common import format_amount, percent_diff, plain_number, to_number
from docverify.verification.cross_document import CrossDocumentChecker, DealDocument
from docverify.verification.math_checks import MathChecker
from docverify.verification.ocr_compare import (
    compare_ocr_to_structured,
    flatten_numeric,
    is_metadata_field,
    key_matches_field,
    locate_field_page,
)
from docverify.verification.report import (
    VerificationStatus,
    VerificationSuite,
    aggregate_status,
)


def balance_sheet(total_assets: float = 100000, liabilities_and_equity: float = 95000) -> dict:
    return {
        "assets": {
            "currentAssets": {"totalCurrentAssets": 60000},
            "fixedAssets": {"netPropertyAndEquipment": 40000},
            "totalAssets": total_assets,
        },
        "liabilities": {
            "currentLiabilities": {"totalCurrentLiabilities": 20000},
            "longTermLiabilities": {"totalLongTermLiabilities": 30000},
            "totalLiabilities": 50000,
        },
        "equity": {"totalEquity": liabilities_and_equity - 50000},
        "totalLiabilitiesAndEquity": liabilities_and_equity,
    }


def form_1040(wages: float = 85000) -> dict:
    return {
        "income": {
            "wages_line1": wages,
            "taxableInterest_line2b": 1000,
            "totalIncome_line9": wages + 1000,
            "adjustments_line10": 0,
            "agi_line11": wages + 1000,
        },
        "scheduleC": [{
            "grossReceipts_line1": 120000,
            "cogs_line4": 20000,
            "grossProfit_line5": 100000,
            "totalExpenses_line28": 40000,
            "netProfit_line31": 60000,
        }],
    }


def w2(wages: float = 85000) -> dict:
    return {"wages": {"wagesTipsOther_box1": wages}}


def bank_statement(beginning: float, ending: float, period_end: str, account: str = "1234") -> dict:
    return {
        "metadata": {"accountNumber_last4": account, "statementPeriodEnd": period_end},
        "summary": {
            "beginningBalance": beginning,
            "totalDeposits": 3000,
            "totalWithdrawals": 1400,
            "totalFees": 100,
            "endingBalance": ending,
        },
    }


class TestCommon:
    """Tests for shared numeric helpers."""

    def test_to_number_is_lenient(self):
        """Test missing and non-numeric leaves read as zero."""
        assert to_number(None) == 0.0
        assert to_number("n/a") == 0.0
        assert to_number("$1,250.00") == 1250.0
        assert to_number(float("nan")) == 0.0
        assert to_number(True) == 0.0

    def test_percent_diff(self):
        """Test relative difference is against the larger magnitude."""
        assert percent_diff(0, 0) == 0.0
        assert percent_diff(100, 95) == pytest.approx(0.05)

    def test_formatting(self):
        """Test display and plain number formats."""
        assert format_amount(85000) == "$85,000"
        assert format_amount(-12.5) == "$12.50 (negative)"
        assert plain_number(85000.0) == "85000"
        assert plain_number(0.61234567) == "0.6123"


class TestMathChecker:
    """Tests for intra-document math identities."""

    def test_balance_sheet_imbalance_fails(self):
        """Test assets != liabilities + equity fails the fundamental identity."""
        checks = MathChecker().run(DocType.BALANCE_SHEET, balance_sheet(), document_id="doc_bs")
        failed = [c for c in checks if not c.passed]

        assert len(failed) == 1
        assert failed[0].check_id == "math:doc_bs:balance_sheet.fundamental"
        assert failed[0].field_path == "assets.totalAssets"
        assert failed[0].expected == 95000
        assert failed[0].actual == 100000
        assert failed[0].difference == 5000

    def test_balanced_sheet_passes(self):
        """Test a consistent balance sheet passes every identity."""
        checks = MathChecker().run(DocType.BALANCE_SHEET, balance_sheet(100000, 100000))
        assert checks
        assert all(c.passed for c in checks)

    def test_form_1040_consistent(self):
        """Test 1040 income lines and Schedule C arithmetic."""
        checks = MathChecker().run(DocType.FORM_1040, form_1040(), document_id="doc_1040")
        ids = {c.check_id for c in checks}

        assert "math:doc_1040:1040.total_income" in ids
        assert "math:doc_1040:1040.agi" in ids
        assert "math:doc_1040:1040.scheduleC[0].net_profit" in ids
        assert all(c.passed for c in checks)

    def test_form_1040_absent_fields_skip_checks(self):
        """Test line checks only run when their target line is present."""
        checks = MathChecker().run(DocType.FORM_1040, {"income": {"wages_line1": 50000}})
        assert checks == []

    def test_rounding_within_tolerance(self):
        """Test a $1 difference still passes."""
        data = form_1040()
        data["income"]["totalIncome_line9"] += 1
        data["income"]["agi_line11"] += 1
        checks = MathChecker().run(DocType.FORM_1040, data)
        assert all(c.passed for c in checks)

    def test_bank_roll_forward_subtracts_fees(self):
        """Test ending = beginning + deposits - withdrawals - fees."""
        checks = MathChecker().run(
            DocType.BANK_STATEMENT_CHECKING, bank_statement(5000, 6500, "2024-01-31")
        )
        roll = [c for c in checks if c.check_id.endswith("bank.roll_forward")]
        assert roll and roll[0].passed

        checks = MathChecker().run(
            DocType.BANK_STATEMENT_CHECKING, bank_statement(5000, 6600, "2024-01-31")
        )
        assert not [c for c in checks if c.check_id.endswith("bank.roll_forward")][0].passed

    def test_margin_reported_as_percentage(self):
        """Test a margin of 60 is read as 0.60."""
        data = {
            "revenue": {"netRevenue": 200000},
            "costOfGoodsSold": {"totalCOGS": 80000},
            "grossProfit": 120000,
            "grossProfitMargin": 60,
        }
        checks = MathChecker().run(DocType.PROFIT_AND_LOSS, data)
        margin = [c for c in checks if c.check_id.endswith("pnl.gross_margin")][0]
        assert margin.passed
        assert margin.actual == 0.6

    def test_types_without_identities(self):
        """Test W-2 and OTHER have no math checks."""
        assert MathChecker().run(DocType.W2, w2()) == []
        assert MathChecker().run(DocType.OTHER, {"x": 1}) == []
        assert MathChecker().run(DocType.BALANCE_SHEET, {}) == []


class TestCrossDocumentChecker:
    """Tests for cross-document comparisons."""

    def _run(self, *documents: DealDocument):
        return CrossDocumentChecker().run(list(documents))

    def test_w2_matches_1040(self):
        """Test matching wages pass."""
        checks = self._run(
            DealDocument("doc_1040", DocType.FORM_1040, form_1040()),
            DealDocument("doc_w2", DocType.W2, w2()),
        )
        assert len(checks) == 1
        assert checks[0].status == "pass"
        assert checks[0].check_id == "cross:w2_vs_1040:doc_w2:doc_1040"

    @pytest.mark.parametrize("line1,status", [
        (84500, "pass"),
        (82500, "warning"),
        (80000, "fail"),
    ])
    def test_w2_bands(self, line1, status):
        """Test the default fail/warn band."""
        checks = self._run(
            DealDocument("doc_1040", DocType.FORM_1040, form_1040(wages=line1)),
            DealDocument("doc_w2", DocType.W2, w2(85000)),
        )
        assert checks[0].status == status

    def test_multiple_w2s_are_aggregated(self):
        """Test several W-2s sum into one side without a single document id."""
        checks = self._run(
            DealDocument("doc_1040", DocType.FORM_1040, form_1040(wages=85000)),
            DealDocument("doc_w2a", DocType.W2, w2(50000)),
            DealDocument("doc_w2b", DocType.W2, w2(35000)),
        )
        assert checks[0].status == "pass"
        assert checks[0].doc1_document_id is None
        assert checks[0].check_id == "cross:w2_vs_1040:*:doc_1040"

    def test_statement_chain(self):
        """Test consecutive statements of one account must chain."""
        checks = self._run(
            DealDocument("feb", DocType.BANK_STATEMENT_CHECKING, bank_statement(6400, 7900, "2024-02-29")),
            DealDocument("jan", DocType.BANK_STATEMENT_CHECKING, bank_statement(5000, 6500, "2024-01-31")),
        )
        chain = [c for c in checks if c.check_id.startswith("cross:bank_chain")]
        assert len(chain) == 1
        assert chain[0].doc1_document_id == "jan"
        assert chain[0].status == "fail"

    def test_statement_chain_small_gap_fails(self):
        """Test a gap well under half a percent still breaks the chain."""
        checks = self._run(
            DealDocument("jan", DocType.BANK_STATEMENT_CHECKING, bank_statement(8000, 10000, "2024-01-31")),
            DealDocument("feb", DocType.BANK_STATEMENT_CHECKING, bank_statement(10040, 11000, "2024-02-29")),
        )
        chain = [c for c in checks if c.check_id.startswith("cross:bank_chain")]
        assert len(chain) == 1
        assert chain[0].difference == 40.0
        assert chain[0].percent_diff == pytest.approx(0.004)
        assert chain[0].status == "fail"

    def test_statement_chain_per_account(self):
        """Test statements of different accounts are not chained together."""
        checks = self._run(
            DealDocument("a", DocType.BANK_STATEMENT_CHECKING, bank_statement(5000, 6500, "2024-01-31", "1111")),
            DealDocument("b", DocType.BANK_STATEMENT_CHECKING, bank_statement(100, 1600, "2024-02-29", "2222")),
        )
        assert not [c for c in checks if c.check_id.startswith("cross:bank_chain")]

    def test_missing_counterpart(self):
        """Test pairs with a missing side are skipped."""
        assert self._run(DealDocument("doc_w2", DocType.W2, w2())) == []
        assert self._run() == []


class TestOcrCompare:
    """Tests for OCR-vs-structured comparison."""

    def _pairs(self):
        return [
            KeyValuePair(key="1 Wages, salaries, tips", value="85,000", confidence=0.97, page=1),
            KeyValuePair(key="Line 11 Adjusted gross income", value="68,000", confidence=0.95, page=2),
        ]

    def test_flatten_numeric(self):
        """Test numeric leaves are flattened with list indexes."""
        tree = {"a": {"b": 1, "c": "x", "d": True}, "e": [{"f": 2.5}], "g": None}
        assert flatten_numeric(tree) == [("a.b", 1.0), ("e[0].f", 2.5)]

    def test_metadata_fields(self):
        """Test identifier-like leaves are excluded."""
        assert is_metadata_field("metadata.taxYear")
        assert is_metadata_field("summary.daysInPeriod") is False
        assert not is_metadata_field("income.wages_line1")

    def test_key_matching(self):
        """Test line numbers, captions and label phrases."""
        assert key_matches_field("Line 11", "income.agi_line11", DocType.FORM_1040)
        assert key_matches_field("Adjusted gross income", "income.agi_line11", DocType.FORM_1040)
        assert key_matches_field("Closing Balance", "summary.endingBalance")
        assert not key_matches_field("Total Deposits", "income.agi_line11", DocType.FORM_1040)
        assert not key_matches_field("Total Assets", "assets.currentAssets.totalCurrentAssets")

    def test_disagreement_detected(self):
        """Test a mismatching OCR reading is a disagreement with its page."""
        data = {"income": {"wages_line1": 85000, "agi_line11": 86000}}
        comparisons = compare_ocr_to_structured(
            DocType.FORM_1040, data, self._pairs(), document_id="doc_1040"
        )
        by_path = {c.field_path: c for c in comparisons}

        assert by_path["income.wages_line1"].matched
        agi = by_path["income.agi_line11"]
        assert agi.is_disagreement
        assert agi.ocr_value == 68000
        assert agi.page == 2
        assert agi.check_id == "ocr:doc_1040:income.agi_line11"

    def test_unmatched_field_is_informational(self):
        """Test a field with no OCR key is not a disagreement."""
        data = {"income": {"qbi_line13a": 500}}
        comparisons = compare_ocr_to_structured(DocType.FORM_1040, data, self._pairs())
        assert len(comparisons) == 1
        assert comparisons[0].ocr_value is None
        assert not comparisons[0].is_disagreement

    def test_locate_field_page(self):
        """Test page lookup for flagged fields."""
        ocr = OcrResult(page_count=2, key_value_pairs=self._pairs())
        assert locate_field_page(ocr, DocType.FORM_1040, "income.agi_line11") == 2
        assert locate_field_page(ocr, DocType.FORM_1040, "income.qbi_line13a") is None
        assert locate_field_page(OcrResult(page_count=1), DocType.BALANCE_SHEET, "assets.totalAssets") == 1
        assert locate_field_page(None, DocType.BALANCE_SHEET, "assets.totalAssets") is None


class TestAggregateStatus:
    """Tests for folding check results into one status."""

    def _ocr_disagreements(self, count: int):
        pairs = [KeyValuePair(key=f"Line {n}", value="1", page=1) for n in ("1", "2b", "3b")]
        data = {"income": {
            "wages_line1": 500,
            "taxableInterest_line2b": 600,
            "ordinaryDividends_line3b": 700,
        }}
        comparisons = compare_ocr_to_structured(DocType.FORM_1040, data, pairs)
        return [c for c in comparisons if c.is_disagreement][:count]

    def test_pass_when_empty(self):
        """Test no checks is a pass."""
        assert aggregate_status([], [], []) == VerificationStatus.PASS

    def test_math_failure_fails(self):
        """Test any math failure fails the deal."""
        checks = MathChecker().run(DocType.BALANCE_SHEET, balance_sheet(), document_id="doc_bs")
        assert aggregate_status(checks, [], []) == VerificationStatus.FAIL

    def test_excluded_failure_passes(self):
        """Test resolved checks no longer count."""
        checks = MathChecker().run(DocType.BALANCE_SHEET, balance_sheet(), document_id="doc_bs")
        excluded = {"math:doc_bs:balance_sheet.fundamental"}
        assert aggregate_status(checks, [], [], excluded=excluded) == VerificationStatus.PASS

    def test_cross_doc_warning_warns(self):
        """Test a cross-document warning never fails the deal."""
        checks = CrossDocumentChecker().run([
            DealDocument("doc_1040", DocType.FORM_1040, form_1040(wages=82500)),
            DealDocument("doc_w2", DocType.W2, w2(85000)),
        ])
        assert aggregate_status([], checks, []) == VerificationStatus.WARNING

    def test_ocr_disagreement_threshold(self):
        """Test OCR disagreements warn up to the threshold and fail beyond it."""
        assert aggregate_status([], [], self._ocr_disagreements(2)) == VerificationStatus.WARNING
        assert aggregate_status([], [], self._ocr_disagreements(3)) == VerificationStatus.FAIL
        strict = Tolerances(ocr_disagreement_fail_count=0)
        assert aggregate_status([], [], self._ocr_disagreements(1), strict) == VerificationStatus.FAIL


class TestVerificationSuite:
    """Tests for the full verification pass over a deal."""

    def test_balance_sheet_discrepancy(self):
        """Test an unbalanced sheet yields a located math discrepancy."""
        ocr = OcrResult(
            page_count=2,
            key_value_pairs=[KeyValuePair(key="Total Assets", value="100,000", confidence=0.96, page=2)],
        )
        report = VerificationSuite().verify("deal_1", [
            DealDocument("doc_bs", DocType.BALANCE_SHEET, balance_sheet(), ocr=ocr),
        ])

        assert report.status == VerificationStatus.FAIL
        assert len(report.discrepancies) == 1
        discrepancy = report.discrepancies[0]
        assert discrepancy.check_type == CheckType.MATH
        assert discrepancy.check_id == "math:doc_bs:balance_sheet.fundamental"
        assert discrepancy.extracted_value == "100000"
        assert discrepancy.expected_value == "95000"
        assert discrepancy.page == 2
        assert discrepancy.document_id == "doc_bs"
        assert report.summary()["mathFailures"] == 1

    def test_cross_doc_discrepancy_has_no_document(self):
        """Test cross-document discrepancies span two documents."""
        report = VerificationSuite().verify("deal_1", [
            DealDocument("doc_1040", DocType.FORM_1040, form_1040(wages=80000)),
            DealDocument("doc_w2", DocType.W2, w2(85000)),
        ])
        cross = [d for d in report.discrepancies if d.check_type == CheckType.CROSS_DOC]

        assert report.status == VerificationStatus.FAIL
        assert len(cross) == 1
        assert cross[0].field_path == "wages.wagesTipsOther_box1 (sum) vs income.wages_line1"
        assert cross[0].document_id is None
        assert cross[0].page is None

    def test_report_to_dict(self):
        """Test the serialized report shape."""
        report = VerificationSuite().verify("deal_1", [
            DealDocument("doc_bs", DocType.BALANCE_SHEET, balance_sheet(100000, 100000)),
        ])
        payload = report.to_dict()
        assert payload["dealId"] == "deal_1"
        assert payload["status"] == "pass"
        assert payload["discrepancies"] == []
