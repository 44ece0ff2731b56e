"""
Cross-document Checks

Values that must agree across related documents in the same deal:
- W-2 wages vs 1040 line 1
- Schedule C vs the P&L of the same business
- Annualized bank deposits vs 1040 total income
- Schedule E rents vs rent roll
- 1120S officer compensation vs W-2 wages
- K-1 ordinary income vs Schedule E Part II
- Balance sheet retained earnings change vs P&L net income
- Consecutive bank statements: ending balance -> next beginning balance

Each pair has its own fail/warn band because some comparisons are
inherently loose (deposits are not income).
"""

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..config.settings import Tolerances
from ..schemas.doc_types import DocType
from ..schemas.ocr import OcrResult
from .common import as_list, first_number, get_number, percent_diff, round2, round4

logger = logging.getLogger(__name__)

# (fail threshold, warn threshold) for comparisons looser or stricter than the default band
SCHEDULE_C_BAND = (0.05, 0.10)
BANK_INCOME_BAND = (0.20, 0.50)
SCHEDULE_E_BAND = (0.05, 0.10)
RETAINED_EARNINGS_BAND = (0.05, 0.15)
STATEMENT_CHAIN_BAND = (0.0, 0.001)

_DATE_FORMATS = ("%Y-%m-%d", "%m/%d/%Y", "%m/%d/%y", "%B %d, %Y", "%b %d, %Y")


@dataclass
class DealDocument:
    """One document of a deal: structured data plus its OCR output when available."""
    document_id: str
    doc_type: DocType
    data: Dict[str, Any] = field(default_factory=dict)
    year: Optional[int] = None
    ocr: Optional[OcrResult] = None


@dataclass
class CrossDocCheck:
    """Comparison of one value across two documents (or document groups)."""
    check_id: str
    description: str
    doc1_type: str
    doc1_field: str
    doc1_value: float
    doc2_type: str
    doc2_field: str
    doc2_value: float
    difference: float
    percent_diff: float
    status: str  # "pass" | "warning" | "fail"
    doc1_document_id: Optional[str] = None
    doc2_document_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class CrossDocumentChecker:
    """Runs every cross-document comparison over a deal's documents."""

    def __init__(self, tolerances: Optional[Tolerances] = None):
        self.tolerances = tolerances or Tolerances()

    def run(self, documents: List[DealDocument]) -> List[CrossDocCheck]:
        """
        Compare related documents of one deal.

        Args:
            documents: Structured data per document; empty data is ignored

        Returns:
            List of CrossDocCheck; pairs with a missing side are skipped
        """
        docs = [d for d in documents if d.data]
        if not docs:
            return []

        checks: List[CrossDocCheck] = []
        checks.extend(self._w2_vs_1040(docs))
        checks.extend(self._schedule_c_vs_pnl(docs))
        checks.extend(self._bank_deposits_vs_income(docs))
        checks.extend(self._schedule_e_vs_rent_roll(docs))
        checks.extend(self._officer_comp_vs_w2(docs))
        checks.extend(self._k1_vs_schedule_e(docs))
        checks.extend(self._retained_earnings_vs_pnl(docs))
        checks.extend(self._bank_statement_chain(docs))

        flagged = sum(1 for c in checks if c.status != "pass")
        logger.info(f"Cross-document checks: {len(checks)} run, {flagged} flagged")
        return checks

    # =========================================================================
    # Builders
    # =========================================================================

    def build_check(
        self,
        rule: str,
        description: str,
        doc1: "_Side",
        doc2: "_Side",
        band: Optional[tuple] = None,
    ) -> CrossDocCheck:
        """
        Grade a comparison: within the absolute tolerance or the fail
        threshold passes, within the warn threshold warns, otherwise fails.
        """
        fail_threshold, warn_threshold = band or (
            self.tolerances.cross_doc_fail,
            self.tolerances.cross_doc_warn,
        )
        difference = round2(abs(doc1.value - doc2.value))
        fraction = percent_diff(doc1.value, doc2.value)

        if difference <= self.tolerances.cross_doc_absolute or fraction <= fail_threshold:
            status = "pass"
        elif fraction <= warn_threshold:
            status = "warning"
        else:
            status = "fail"

        return CrossDocCheck(
            check_id=f"cross:{rule}:{doc1.document_id or '*'}:{doc2.document_id or '*'}",
            description=description,
            doc1_type=doc1.label,
            doc1_field=doc1.field,
            doc1_value=round2(doc1.value),
            doc2_type=doc2.label,
            doc2_field=doc2.field,
            doc2_value=round2(doc2.value),
            difference=difference,
            percent_diff=round4(fraction),
            status=status,
            doc1_document_id=doc1.document_id,
            doc2_document_id=doc2.document_id,
        )

    # =========================================================================
    # Comparisons
    # =========================================================================

    def _w2_vs_1040(self, docs: List[DealDocument]) -> List[CrossDocCheck]:
        form_1040 = _first(docs, DocType.FORM_1040)
        w2s = _of_type(docs, DocType.W2)
        if form_1040 is None or not w2s:
            return []

        w2_total = _w2_wages(w2s)
        line1 = get_number(form_1040.data, "income.wages_line1")
        if w2_total <= 0 or line1 <= 0:
            return []

        return [self.build_check(
            "w2_vs_1040",
            "Sum of W-2 wages (box 1) should match 1040 line 1 wages",
            _Side("W2", "wages.wagesTipsOther_box1 (sum)", w2_total, _single_id(w2s)),
            _Side("FORM_1040", "income.wages_line1", line1, form_1040.document_id),
        )]

    def _schedule_c_vs_pnl(self, docs: List[DealDocument]) -> List[CrossDocCheck]:
        form_1040 = _first(docs, DocType.FORM_1040)
        pnl = _first(docs, DocType.PROFIT_AND_LOSS)
        if form_1040 is None or pnl is None:
            return []

        schedules = as_list(form_1040.data.get("scheduleC"))
        if not schedules:
            return []

        # Single-business case: first Schedule C against first P&L
        schedule = schedules[0]
        checks = []

        receipts = get_number(schedule, "grossReceipts_line1")
        revenue = first_number(pnl.data, "revenue.netRevenue", "revenue.grossRevenue")
        if receipts > 0 and revenue > 0:
            checks.append(self.build_check(
                "schedule_c_vs_pnl.revenue",
                "Schedule C gross receipts should match P&L revenue (same business)",
                _Side("FORM_1040 (Schedule C)", "scheduleC[0].grossReceipts_line1", receipts, form_1040.document_id),
                _Side("PROFIT_AND_LOSS", "revenue.netRevenue", revenue, pnl.document_id),
                SCHEDULE_C_BAND,
            ))

        net_profit = get_number(schedule, "netProfit_line31")
        net_income = get_number(pnl.data, "netIncome")
        if net_profit != 0 and net_income != 0:
            checks.append(self.build_check(
                "schedule_c_vs_pnl.net",
                "Schedule C net profit should be close to P&L net income",
                _Side("FORM_1040 (Schedule C)", "scheduleC[0].netProfit_line31", net_profit, form_1040.document_id),
                _Side("PROFIT_AND_LOSS", "netIncome", net_income, pnl.document_id),
                SCHEDULE_C_BAND,
            ))
        return checks

    def _bank_deposits_vs_income(self, docs: List[DealDocument]) -> List[CrossDocCheck]:
        form_1040 = _first(docs, DocType.FORM_1040)
        statements = [d for d in docs if d.doc_type.is_bank_statement]
        if form_1040 is None or not statements:
            return []

        total_deposits = sum(get_number(s.data, "summary.totalDeposits") for s in statements)
        if total_deposits == 0:
            return []

        months = len(statements)
        annualized = round2(total_deposits / months * 12)
        total_income = get_number(form_1040.data, "income.totalIncome_line9")
        if total_income <= 0:
            return []

        return [self.build_check(
            "bank_deposits_vs_income",
            f"Annualized bank deposits ({months} months extrapolated to 12) should be in the range of 1040 total income",
            _Side("BANK_STATEMENT", "summary.totalDeposits (annualized)", annualized, _single_id(statements)),
            _Side("FORM_1040", "income.totalIncome_line9", total_income, form_1040.document_id),
            BANK_INCOME_BAND,
        )]

    def _schedule_e_vs_rent_roll(self, docs: List[DealDocument]) -> List[CrossDocCheck]:
        form_1040 = _first(docs, DocType.FORM_1040)
        rent_roll = _first(docs, DocType.RENT_ROLL)
        if form_1040 is None or rent_roll is None:
            return []

        schedule_e = form_1040.data.get("scheduleE") or {}
        rents = sum(get_number(p, "rentsReceived") for p in as_list(schedule_e.get("properties")))
        annual_rent = get_number(rent_roll.data, "summary.totalAnnualRent")
        if rents <= 0 or annual_rent <= 0:
            return []

        return [self.build_check(
            "schedule_e_vs_rent_roll",
            "Schedule E total rents received should match rent roll total annual rent",
            _Side("FORM_1040 (Schedule E)", "scheduleE.properties.rentsReceived (sum)", rents, form_1040.document_id),
            _Side("RENT_ROLL", "summary.totalAnnualRent", annual_rent, rent_roll.document_id),
            SCHEDULE_E_BAND,
        )]

    def _officer_comp_vs_w2(self, docs: List[DealDocument]) -> List[CrossDocCheck]:
        form_1120s = _first(docs, DocType.FORM_1120S)
        w2s = _of_type(docs, DocType.W2)
        if form_1120s is None or not w2s:
            return []

        officer_comp = get_number(form_1120s.data, "deductions.compensationOfOfficers_line7")
        w2_total = _w2_wages(w2s)
        if officer_comp <= 0 or w2_total <= 0:
            return []

        return [self.build_check(
            "officer_comp_vs_w2",
            "1120S officer compensation (line 7) should match total W-2 wages for that entity",
            _Side("FORM_1120S", "deductions.compensationOfOfficers_line7", officer_comp, form_1120s.document_id),
            _Side("W2", "wages.wagesTipsOther_box1 (sum)", w2_total, _single_id(w2s)),
        )]

    def _k1_vs_schedule_e(self, docs: List[DealDocument]) -> List[CrossDocCheck]:
        k1s = _of_type(docs, DocType.SCHEDULE_K1)
        form_1040 = _first(docs, DocType.FORM_1040)
        if not k1s or form_1040 is None:
            return []

        schedule_e = form_1040.data.get("scheduleE")
        if not schedule_e:
            return []

        k1_income = sum(
            get_number(k1.data, "incomeAndLoss.ordinaryBusinessIncome_line1") for k1 in k1s
        )
        part_ii = get_number(schedule_e, "totalPartnershipIncome")
        if part_ii == 0:
            part_ii = sum(
                get_number(e, "passiveIncome") + get_number(e, "nonPassiveIncome")
                - get_number(e, "passiveLoss") - get_number(e, "nonPassiveLoss")
                for e in as_list(schedule_e.get("partnershipSCorpIncome"))
            )
        if k1_income == 0 or part_ii == 0:
            return []

        return [self.build_check(
            "k1_vs_schedule_e",
            "K-1 ordinary income should match Schedule E Part II reporting",
            _Side("SCHEDULE_K1", "incomeAndLoss.ordinaryBusinessIncome_line1 (sum)", k1_income, _single_id(k1s)),
            _Side("FORM_1040 (Schedule E Part II)", "scheduleE.totalPartnershipIncome", part_ii, form_1040.document_id),
        )]

    def _retained_earnings_vs_pnl(self, docs: List[DealDocument]) -> List[CrossDocCheck]:
        balance_sheet = _first(docs, DocType.BALANCE_SHEET)
        pnl = _first(docs, DocType.PROFIT_AND_LOSS)
        if balance_sheet is None or pnl is None:
            return []

        current = get_number(balance_sheet.data, "equity.retainedEarnings")
        prior = get_number(balance_sheet.data, "equity.priorRetainedEarnings")
        net_income = get_number(pnl.data, "netIncome")
        if current == 0 or prior == 0 or net_income == 0:
            return []

        return [self.build_check(
            "retained_earnings_vs_pnl",
            "Retained earnings change on the balance sheet should approximate P&L net income (same period)",
            _Side("BALANCE_SHEET", "equity.retainedEarnings (change)", current - prior, balance_sheet.document_id),
            _Side("PROFIT_AND_LOSS", "netIncome", net_income, pnl.document_id),
            RETAINED_EARNINGS_BAND,
        )]

    def _bank_statement_chain(self, docs: List[DealDocument]) -> List[CrossDocCheck]:
        statements = [d for d in docs if d.doc_type.is_bank_statement]
        if len(statements) < 2:
            return []

        # Chains only make sense within one account
        accounts: Dict[str, List[DealDocument]] = {}
        for statement in statements:
            account = str(
                (statement.data.get("metadata") or {}).get("accountNumber_last4")
                or statement.doc_type.value
            )
            accounts.setdefault(account, []).append(statement)

        checks = []
        for account_statements in accounts.values():
            ordered = sorted(account_statements, key=_statement_sort_key)
            for current, following in zip(ordered, ordered[1:]):
                ending = get_number(current.data, "summary.endingBalance")
                beginning = get_number(following.data, "summary.beginningBalance")
                if ending == 0 or beginning == 0:
                    continue

                label, next_label = _statement_label(current), _statement_label(following)
                checks.append(self.build_check(
                    "bank_chain",
                    f"Bank statement chain: {label} ending balance should equal {next_label} beginning balance",
                    _Side(f"{current.doc_type.value} ({label})", "summary.endingBalance", ending, current.document_id),
                    _Side(f"{following.doc_type.value} ({next_label})", "summary.beginningBalance", beginning, following.document_id),
                    STATEMENT_CHAIN_BAND,
                ))
        return checks


@dataclass
class _Side:
    label: str
    field: str
    value: float
    document_id: Optional[str] = None


def _of_type(docs: List[DealDocument], doc_type: DocType) -> List[DealDocument]:
    return [d for d in docs if d.doc_type == doc_type]


def _first(docs: List[DealDocument], doc_type: DocType) -> Optional[DealDocument]:
    matches = _of_type(docs, doc_type)
    return matches[0] if matches else None


def _single_id(docs: List[DealDocument]) -> Optional[str]:
    """Document id when a side is one document; None for aggregated sides."""
    return docs[0].document_id if len(docs) == 1 else None


def _w2_wages(w2s: List[DealDocument]) -> float:
    return sum(get_number(w2.data, "wages.wagesTipsOther_box1") for w2 in w2s)


def _parse_date(value: Any) -> Optional[datetime]:
    if not isinstance(value, str) or not value.strip():
        return None
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(value.strip(), fmt)
        except ValueError:
            continue
    return None


def _statement_sort_key(statement: DealDocument) -> float:
    metadata = statement.data.get("metadata") or {}
    end = _parse_date(metadata.get("statementPeriodEnd"))
    if end is not None:
        return end.timestamp()
    # Undated statements sort ahead of dated ones, by year
    return float((statement.year or 0) * 100)


def _statement_label(statement: DealDocument) -> str:
    metadata = statement.data.get("metadata") or {}
    start, end = metadata.get("statementPeriodStart"), metadata.get("statementPeriodEnd")
    if start and end:
        return f"{start} to {end}"
    if end:
        return str(end)
    return "unknown period"


def run_cross_doc_checks(
    documents: List[DealDocument],
    tolerances: Optional[Tolerances] = None,
) -> List[CrossDocCheck]:
    """Convenience wrapper around CrossDocumentChecker."""
    return CrossDocumentChecker(tolerances).run(documents)
