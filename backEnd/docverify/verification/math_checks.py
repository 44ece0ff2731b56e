"""
Intra-document Math Checks

Arithmetic identities each document type must satisfy on its own:
- IRS returns: line totals, AGI/taxable income, Schedules C/E/L
- Bank statements: balance roll-forward and itemized totals
- P&L: gross profit, operating income, net income, margin, add-backs
- Balance sheets: section totals and assets = liabilities + equity
- Rent rolls: rent totals, annualization, occupancy

Pure arithmetic, no model calls. Equations use an absolute tolerance
(default $1); ratio checks use a ratio tolerance (default 0.02).
"""

import logging
from dataclasses import asdict, dataclass
from typing import Any, Callable, Dict, List, Optional

from ..config.settings import Tolerances
from ..schemas.doc_types import DocType
from ..schemas.tax_forms import SCHEDULE_L_ASSET_FIELDS
from .common import (
    as_list,
    first_number,
    get_number,
    has_field,
    round2,
    round4,
    sum_fields,
)

logger = logging.getLogger(__name__)


FORM_1040_INCOME_LINES = [
    "wages_line1",
    "taxableInterest_line2b",
    "ordinaryDividends_line3b",
    "taxableIra_line4b",
    "taxablePensions_line5b",
    "taxableSocialSecurity_line6b",
    "capitalGain_line7",
    "otherIncome_line8",
]

SCHEDULE_C_EXPENSE_FIELDS = [
    "advertising", "carAndTruck", "commissions", "contractLabor",
    "depletion", "depreciation_line13", "employeeBenefits", "insurance",
    "interestMortgage", "interestOther", "legal", "officeExpense",
    "pensionPlans", "rent", "repairs", "supplies", "taxes", "travel",
    "meals", "utilities", "wages", "otherExpenses",
]

SCHEDULE_E_EXPENSE_FIELDS = [
    "advertising", "auto", "cleaning", "commissions", "insurance", "legal",
    "management", "mortgageInterest", "otherInterest", "repairs", "supplies",
    "taxes", "utilities", "depreciation", "other",
]

FORM_1120_INCOME_LINES = [
    "income.grossProfit_line3",
    "income.dividendsReceived_line4",
    "income.interestIncome_line5",
    "income.grossRents_line6",
    "income.grossRoyalties_line7",
    "income.capitalGainNet_line8",
    "income.netGainForm4797_line9",
    "income.otherIncome_line10",
]

PARTNER_SHARE_TOLERANCE = 0.5


@dataclass
class MathCheck:
    """Result of one arithmetic identity on one document."""
    check_id: str
    field_path: str
    description: str
    expected: float
    actual: float
    difference: float
    passed: bool
    document_id: Optional[str] = None
    doc_type: Optional[DocType] = None
    page: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        result = asdict(self)
        result["doc_type"] = self.doc_type.value if self.doc_type else None
        return result


class MathChecker:
    """
    Runs the math identities registered for a document type.

    Usage:
        checker = MathChecker(tolerances)
        checks = checker.run(DocType.BALANCE_SHEET, data, document_id="doc_1")
    """

    def __init__(self, tolerances: Optional[Tolerances] = None):
        self.tolerances = tolerances or Tolerances()
        self.checks: List[MathCheck] = []
        self._document_id: Optional[str] = None
        self._doc_type: Optional[DocType] = None

        self._runners: Dict[DocType, Callable[[Dict[str, Any]], None]] = {
            DocType.FORM_1040: self._check_1040,
            DocType.FORM_1120: self._check_1120,
            DocType.FORM_1120S: self._check_1120s,
            DocType.FORM_1065: self._check_1065,
            DocType.BANK_STATEMENT_CHECKING: self._check_bank_statement,
            DocType.BANK_STATEMENT_SAVINGS: self._check_bank_statement,
            DocType.PROFIT_AND_LOSS: self._check_profit_and_loss,
            DocType.BALANCE_SHEET: self._check_balance_sheet,
            DocType.RENT_ROLL: self._check_rent_roll,
        }

    def run(
        self,
        doc_type: DocType,
        data: Optional[Dict[str, Any]],
        document_id: Optional[str] = None,
    ) -> List[MathCheck]:
        """
        Run every identity defined for a document type.

        Args:
            doc_type: Document type of the structured data
            data: Structured data tree
            document_id: Originating document, stamped onto each check

        Returns:
            List of MathCheck (empty for types without identities)
        """
        self.checks = []
        runner = self._runners.get(doc_type)
        if not data or runner is None:
            return []

        self._document_id = document_id
        self._doc_type = doc_type
        runner(data)

        failed = sum(1 for c in self.checks if not c.passed)
        logger.info(
            f"Math checks for {document_id or doc_type.value}: "
            f"{len(self.checks)} run, {failed} failed"
        )
        return list(self.checks)

    # =========================================================================
    # Check builders
    # =========================================================================

    def _check_id(self, rule: str) -> str:
        owner = self._document_id or (self._doc_type.value if self._doc_type else "-")
        return f"math:{owner}:{rule}"

    def _equation(
        self,
        rule: str,
        description: str,
        field_path: str,
        expected: float,
        actual: float,
        tolerance: Optional[float] = None,
    ) -> None:
        """actual should equal expected within an absolute tolerance."""
        if tolerance is None:
            tolerance = self.tolerances.math_absolute
        difference = abs(actual - expected)
        self.checks.append(MathCheck(
            check_id=self._check_id(rule),
            field_path=field_path,
            description=description,
            expected=round2(expected),
            actual=round2(actual),
            difference=round2(difference),
            passed=difference <= tolerance,
            document_id=self._document_id,
            doc_type=self._doc_type,
        ))

    def _ratio(
        self,
        rule: str,
        description: str,
        field_path: str,
        expected: float,
        actual: float,
    ) -> None:
        """Ratio comparison at four decimal places."""
        difference = abs(actual - expected)
        self.checks.append(MathCheck(
            check_id=self._check_id(rule),
            field_path=field_path,
            description=description,
            expected=round4(expected),
            actual=round4(actual),
            difference=round4(difference),
            passed=difference <= self.tolerances.math_ratio,
            document_id=self._document_id,
            doc_type=self._doc_type,
        ))

    def _itemized_tolerance(self, total: float) -> float:
        """Line-item sums get max($1, ratio tolerance of the total)."""
        return max(self.tolerances.math_absolute, abs(total) * self.tolerances.math_ratio)

    # =========================================================================
    # Form 1040
    # =========================================================================

    def _check_1040(self, data: Dict[str, Any]) -> None:
        income = data.get("income") or {}
        total_income = get_number(income, "totalIncome_line9")

        if has_field(income, "totalIncome_line9"):
            self._equation(
                "1040.total_income",
                "Total income (line 9) should equal sum of lines 1 through 8",
                "income.totalIncome_line9",
                sum_fields(income, FORM_1040_INCOME_LINES),
                total_income,
            )

        adjustments = get_number(income, "adjustments_line10")
        agi = get_number(income, "agi_line11")
        if has_field(income, "agi_line11"):
            self._equation(
                "1040.agi",
                "AGI (line 11) should equal total income (line 9) minus adjustments (line 10)",
                "income.agi_line11",
                total_income - adjustments,
                agi,
            )

        if has_field(income, "taxableIncome_line15"):
            self._equation(
                "1040.taxable_income",
                "Taxable income (line 15) should equal AGI (line 11) minus deductions (line 12) minus QBI (line 13a)",
                "income.taxableIncome_line15",
                agi - get_number(income, "standardOrItemized_line12") - get_number(income, "qbi_line13a"),
                get_number(income, "taxableIncome_line15"),
            )

        for i, schedule in enumerate(as_list(data.get("scheduleC"))):
            self._check_schedule_c(i, schedule)

        schedule_e = data.get("scheduleE") or {}
        for i, prop in enumerate(as_list(schedule_e.get("properties"))):
            self._check_schedule_e_property(i, prop)

        self._check_1040_payments(data.get("tax") or {})

        w2_entries = as_list(data.get("w2Summary"))
        if w2_entries:
            w2_wages = sum(get_number(w2, "wages_box1") for w2 in w2_entries)
            line1 = get_number(income, "wages_line1")
            if w2_wages > 0 and line1 > 0:
                self._equation(
                    "1040.w2_wages",
                    "Sum of W-2 wages should approximately match 1040 line 1 wages",
                    "income.wages_line1",
                    w2_wages,
                    line1,
                    self._itemized_tolerance(line1),
                )

    def _check_schedule_c(self, i: int, schedule: Dict[str, Any]) -> None:
        prefix = f"scheduleC[{i}]"
        label = f"Schedule C #{i + 1}"

        gross_profit = get_number(schedule, "grossProfit_line5")
        self._equation(
            f"1040.{prefix}.gross_profit",
            f"{label}: gross profit (line 5) should equal gross receipts (line 1) minus COGS (line 4)",
            f"{prefix}.grossProfit_line5",
            get_number(schedule, "grossReceipts_line1") - get_number(schedule, "cogs_line4"),
            gross_profit,
        )

        other_income = get_number(schedule, "otherIncome_line6")
        gross_income = get_number(schedule, "grossIncome_line7")
        if has_field(schedule, "grossIncome_line7"):
            self._equation(
                f"1040.{prefix}.gross_income",
                f"{label}: gross income (line 7) should equal gross profit (line 5) plus other income (line 6)",
                f"{prefix}.grossIncome_line7",
                gross_profit + other_income,
                gross_income,
            )

        total_expenses = get_number(schedule, "totalExpenses_line28")
        self._equation(
            f"1040.{prefix}.net_profit",
            f"{label}: net profit (line 31) should equal gross income (line 7) minus total expenses (line 28)",
            f"{prefix}.netProfit_line31",
            (gross_income or gross_profit + other_income) - total_expenses,
            get_number(schedule, "netProfit_line31"),
        )

        expense_sum = sum_fields(schedule.get("expenses") or {}, SCHEDULE_C_EXPENSE_FIELDS)
        if expense_sum > 0:
            self._equation(
                f"1040.{prefix}.total_expenses",
                f"{label}: total expenses (line 28) should equal sum of all expense lines",
                f"{prefix}.totalExpenses_line28",
                expense_sum,
                total_expenses,
            )

    def _check_schedule_e_property(self, i: int, prop: Dict[str, Any]) -> None:
        prefix = f"scheduleE.properties[{i}]"
        label = f"Schedule E property #{i + 1}"

        rents = get_number(prop, "rentsReceived")
        total_expenses = get_number(prop, "totalExpenses")
        if rents != 0 or total_expenses != 0:
            self._equation(
                f"1040.{prefix}.net_rental_income",
                f"{label}: net rental income should equal rents received minus total expenses",
                f"{prefix}.netRentalIncome",
                rents - total_expenses,
                get_number(prop, "netRentalIncome"),
            )

        expense_sum = sum_fields(prop, SCHEDULE_E_EXPENSE_FIELDS)
        if expense_sum > 0:
            self._equation(
                f"1040.{prefix}.total_expenses",
                f"{label}: total expenses should equal sum of all expense lines",
                f"{prefix}.totalExpenses",
                expense_sum,
                total_expenses,
            )

    def _check_1040_payments(self, tax: Dict[str, Any]) -> None:
        total_tax = get_number(tax, "totalTax_line24")
        total_payments = get_number(tax, "totalPayments_line33")
        if total_tax == 0 or total_payments == 0:
            return

        overpaid = get_number(tax, "overpaid_line34")
        if overpaid != 0:
            self._equation(
                "1040.overpaid",
                "Overpaid (line 34) should equal total payments (line 33) minus total tax (line 24)",
                "tax.overpaid_line34",
                total_payments - total_tax,
                overpaid,
            )

        owed = get_number(tax, "amountOwed_line37")
        if owed != 0:
            self._equation(
                "1040.amount_owed",
                "Amount owed (line 37) should equal total tax (line 24) minus total payments (line 33)",
                "tax.amountOwed_line37",
                total_tax - total_payments,
                owed,
            )

    # =========================================================================
    # Business returns
    # =========================================================================

    def _check_receipts(self, form: str, data: Dict[str, Any], net_field: str) -> float:
        """Lines 1a-1c and line 3, shared by 1120/1120S/1065. Returns line 3."""
        net_receipts = get_number(data, f"income.{net_field}")
        self._equation(
            f"{form}.net_receipts",
            "Line 1c should equal gross receipts (1a) minus returns and allowances (1b)",
            f"income.{net_field}",
            get_number(data, "income.grossReceipts_line1a") - get_number(data, "income.returnsAllowances_line1b"),
            net_receipts,
        )

        gross_profit = get_number(data, "income.grossProfit_line3")
        self._equation(
            f"{form}.gross_profit",
            "Gross profit (line 3) should equal line 1c minus cost of goods sold (line 2)",
            "income.grossProfit_line3",
            net_receipts - get_number(data, "income.costOfGoodsSold_line2"),
            gross_profit,
        )
        return gross_profit

    def _check_1120(self, data: Dict[str, Any]) -> None:
        self._check_receipts("1120", data, "balanceAfterReturns_line1c")

        total_income = get_number(data, "income.totalIncome_line11")
        self._equation(
            "1120.total_income",
            "Total income (line 11) should equal sum of lines 3 through 10",
            "income.totalIncome_line11",
            sum_fields(data, FORM_1120_INCOME_LINES),
            total_income,
        )

        before_nol = get_number(data, "taxableIncome.taxableIncomeBeforeNOL_line28")
        self._equation(
            "1120.taxable_before_nol",
            "Taxable income before NOL (line 28) should equal total income (11) minus total deductions (27)",
            "taxableIncome.taxableIncomeBeforeNOL_line28",
            total_income - get_number(data, "deductions.totalDeductions_line27"),
            before_nol,
        )

        self._equation(
            "1120.taxable_income",
            "Taxable income (line 30) should equal line 28 minus NOL (29a) minus special deductions (29c)",
            "taxableIncome.taxableIncome_line30",
            before_nol
            - get_number(data, "taxableIncome.netOperatingLossDeduction_line29a")
            - get_number(data, "taxableIncome.totalSpecialDeductions_line29c"),
            get_number(data, "taxableIncome.taxableIncome_line30"),
        )

        self._check_schedule_l(data, "1120")

    def _check_1120s(self, data: Dict[str, Any]) -> None:
        self._check_receipts("1120s", data, "balanceAfterReturns_line1c")

        total_income = get_number(data, "income.totalIncome_line6")
        self._equation(
            "1120s.total_income",
            "Total income (line 6) should equal sum of lines 3 through 5",
            "income.totalIncome_line6",
            sum_fields(data, [
                "income.grossProfit_line3",
                "income.netGainForm4797_line4",
                "income.otherIncome_line5",
            ]),
            total_income,
        )

        self._equation(
            "1120s.ordinary_income",
            "Ordinary business income (line 22) should equal total income (6) minus total deductions (21)",
            "ordinaryBusinessIncome_line22",
            total_income - get_number(data, "deductions.totalDeductions_line21"),
            get_number(data, "ordinaryBusinessIncome_line22"),
        )

        # Schedule K line 1 carries page 1 line 22
        k_ordinary = get_number(data, "scheduleK.incomeAndLoss.ordinaryBusinessIncome_line1")
        ordinary = get_number(data, "ordinaryBusinessIncome_line22")
        if k_ordinary != 0 and ordinary != 0:
            self._equation(
                "1120s.schedule_k_ordinary",
                "Schedule K ordinary business income (line 1) should match page 1 line 22",
                "scheduleK.incomeAndLoss.ordinaryBusinessIncome_line1",
                ordinary,
                k_ordinary,
            )

        self._check_schedule_l(data, "1120s")

    def _check_1065(self, data: Dict[str, Any]) -> None:
        self._check_receipts("1065", data, "netReceipts_line1c")

        total_income = get_number(data, "income.totalIncome_line8")
        self._equation(
            "1065.total_income",
            "Total income (line 8) should equal sum of lines 3 through 7",
            "income.totalIncome_line8",
            sum_fields(data, [
                "income.grossProfit_line3",
                "income.ordinaryIncomeFromOtherPartnerships_line4",
                "income.netFarmProfit_line5",
                "income.netGainForm4797_line6",
                "income.otherIncome_line7",
            ]),
            total_income,
        )

        self._equation(
            "1065.ordinary_income",
            "Ordinary business income (line 23) should equal total income (8) minus total deductions (22)",
            "ordinaryBusinessIncome_line23",
            total_income - get_number(data, "deductions.totalDeductions_line22"),
            get_number(data, "ordinaryBusinessIncome_line23"),
        )

        partners = as_list(data.get("partners"))
        for share in ("profitSharePercent", "lossSharePercent"):
            share_sum = sum(get_number(p, share) for p in partners)
            if share_sum > 0:
                self._equation(
                    f"1065.partners.{share}",
                    f"Partner {share.replace('SharePercent', '')} share percentages should sum to 100%",
                    f"partners.{share}",
                    100.0,
                    share_sum,
                    PARTNER_SHARE_TOLERANCE,
                )

        guaranteed_k = get_number(data, "scheduleK.incomeAndLoss.totalGuaranteedPayments_line4c")
        guaranteed_line10 = get_number(data, "deductions.guaranteedPaymentsToPartners_line10")
        if guaranteed_k != 0 and guaranteed_line10 != 0:
            self._equation(
                "1065.guaranteed_payments",
                "Schedule K total guaranteed payments (line 4c) should match deductions line 10",
                "scheduleK.incomeAndLoss.totalGuaranteedPayments_line4c",
                guaranteed_line10,
                guaranteed_k,
            )

        self._check_schedule_l(data, "1065")

    def _check_schedule_l(self, data: Dict[str, Any], form: str) -> None:
        schedule_l = data.get("scheduleL") or {}

        for period, label in (("beginningOfYear", "beginning of year"), ("endOfYear", "end of year")):
            values = schedule_l.get(period) or {}
            if not any(v not in (None, 0) for v in values.values()):
                continue

            prefix = f"scheduleL.{period}"
            total_assets = get_number(values, "totalAssets")
            asset_sum = sum_fields(values, SCHEDULE_L_ASSET_FIELDS)

            if total_assets != 0 and asset_sum > 0:
                self._equation(
                    f"{form}.{prefix}.total_assets",
                    f"Schedule L {label}: total assets should equal sum of all asset line items",
                    f"{prefix}.totalAssets",
                    asset_sum,
                    total_assets,
                )

            total_liabilities = get_number(values, "totalLiabilities")
            total_equity = first_number(values, "totalEquity", "partnersCapitalAccounts")
            liabilities_and_equity = get_number(values, "totalLiabilitiesAndEquity")

            if total_assets != 0 and (
                liabilities_and_equity != 0 or (total_liabilities != 0 and total_equity != 0)
            ):
                self._equation(
                    f"{form}.{prefix}.balance",
                    f"Schedule L {label}: total liabilities + equity should equal total assets",
                    f"{prefix}.totalLiabilitiesAndEquity",
                    total_assets,
                    liabilities_and_equity or total_liabilities + total_equity,
                )

    # =========================================================================
    # Statements
    # =========================================================================

    def _check_bank_statement(self, data: Dict[str, Any]) -> None:
        summary = data.get("summary") or {}
        beginning = get_number(summary, "beginningBalance")
        ending = get_number(summary, "endingBalance")
        deposits_total = get_number(summary, "totalDeposits")
        withdrawals_total = get_number(summary, "totalWithdrawals")
        fees = get_number(summary, "totalFees")

        if beginning != 0 or ending != 0:
            self._equation(
                "bank.roll_forward",
                "Ending balance should equal beginning balance plus deposits minus withdrawals minus fees",
                "summary.endingBalance",
                beginning + deposits_total - withdrawals_total - fees,
                ending,
            )

        deposits = as_list(data.get("deposits"))
        if deposits and deposits_total != 0:
            self._equation(
                "bank.deposits_sum",
                "Sum of individual deposits should approximately equal total deposits",
                "summary.totalDeposits",
                sum(get_number(d, "amount") for d in deposits),
                deposits_total,
                self._itemized_tolerance(deposits_total),
            )

        withdrawals = as_list(data.get("withdrawals"))
        if withdrawals and withdrawals_total != 0:
            self._equation(
                "bank.withdrawals_sum",
                "Sum of individual withdrawals should approximately equal total withdrawals",
                "summary.totalWithdrawals",
                sum(abs(get_number(w, "amount")) for w in withdrawals),
                withdrawals_total,
                self._itemized_tolerance(withdrawals_total),
            )

    def _check_profit_and_loss(self, data: Dict[str, Any]) -> None:
        net_revenue = first_number(data, "revenue.netRevenue", "revenue.grossRevenue")
        cogs = get_number(data, "costOfGoodsSold.totalCOGS")
        gross_profit = get_number(data, "grossProfit")
        operating_expenses = get_number(data, "operatingExpenses.totalOperatingExpenses")
        operating_income = get_number(data, "operatingIncome")
        net_income = get_number(data, "netIncome")

        if has_field(data, "otherIncomeAndExpenses.totalOtherNet"):
            other_net = get_number(data, "otherIncomeAndExpenses.totalOtherNet")
        else:
            other_net = (
                sum_fields(data, ["otherIncomeAndExpenses.otherIncome", "otherIncomeAndExpenses.interestIncome"])
                - sum_fields(data, ["otherIncomeAndExpenses.otherExpenses", "otherIncomeAndExpenses.interestExpense"])
            )

        if net_revenue != 0:
            self._equation(
                "pnl.gross_profit",
                "Gross profit should equal net revenue minus cost of goods sold",
                "grossProfit",
                net_revenue - cogs,
                gross_profit,
            )

        if gross_profit != 0 and operating_expenses != 0:
            self._equation(
                "pnl.operating_income",
                "Operating income should equal gross profit minus operating expenses",
                "operatingIncome",
                gross_profit - operating_expenses,
                operating_income,
            )

        if operating_income != 0:
            self._equation(
                "pnl.net_income",
                "Net income should equal operating income plus other income/expense minus income tax expense",
                "netIncome",
                operating_income + other_net - get_number(data, "incomeTaxExpense"),
                net_income,
            )

        margin = get_number(data, "grossProfitMargin")
        if net_revenue != 0 and gross_profit != 0 and margin != 0:
            # Margins are sometimes reported as percentages (42.5) instead of fractions
            if abs(margin) > 1.5:
                margin = margin / 100
            self._ratio(
                "pnl.gross_margin",
                "Gross margin should equal gross profit divided by net revenue",
                "grossProfitMargin",
                gross_profit / net_revenue,
                margin,
            )

        revenue_items = as_list((data.get("revenue") or {}).get("lineItems"))
        if revenue_items:
            gross_revenue = first_number(data, "revenue.grossRevenue") or net_revenue
            self._equation(
                "pnl.revenue_items",
                "Revenue line items should sum to gross revenue",
                "revenue.grossRevenue",
                sum(get_number(item, "amount") for item in revenue_items),
                gross_revenue,
                self._itemized_tolerance(gross_revenue),
            )

        expense_items = as_list((data.get("operatingExpenses") or {}).get("lineItems"))
        if expense_items:
            self._equation(
                "pnl.expense_items",
                "Operating expense line items should sum to total operating expenses",
                "operatingExpenses.totalOperatingExpenses",
                sum(get_number(item, "amount") for item in expense_items),
                operating_expenses,
                self._itemized_tolerance(operating_expenses),
            )

        self._check_add_backs(data.get("addBacks") or {}, net_income)

    def _check_add_backs(self, add_backs: Dict[str, Any], net_income: float) -> None:
        total_add_backs = get_number(add_backs, "totalAddBacks")
        if total_add_backs == 0:
            return

        one_time = sum(get_number(e, "amount") for e in as_list(add_backs.get("oneTimeExpenses")))
        self._equation(
            "pnl.add_backs",
            "Total add-backs should equal depreciation + amortization + interest + owner comp + one-time expenses",
            "addBacks.totalAddBacks",
            sum_fields(add_backs, ["depreciation", "amortization", "interest", "ownerCompensation"]) + one_time,
            total_add_backs,
        )

        adjusted = get_number(add_backs, "adjustedNetIncome")
        if adjusted != 0:
            self._equation(
                "pnl.adjusted_net_income",
                "Adjusted net income should equal net income plus total add-backs",
                "addBacks.adjustedNetIncome",
                net_income + total_add_backs,
                adjusted,
            )

    def _check_balance_sheet(self, data: Dict[str, Any]) -> None:
        total_current_assets = get_number(data, "assets.currentAssets.totalCurrentAssets")
        net_fixed = get_number(data, "assets.fixedAssets.netPropertyAndEquipment")
        other_assets = get_number(data, "assets.otherAssets.totalOtherAssets")
        total_assets = get_number(data, "assets.totalAssets")

        if total_assets != 0:
            self._equation(
                "balance_sheet.total_assets",
                "Total assets should equal total current assets plus net fixed assets plus other assets",
                "assets.totalAssets",
                total_current_assets + net_fixed + other_assets,
                total_assets,
            )

        total_liabilities = get_number(data, "liabilities.totalLiabilities")
        if total_liabilities != 0:
            self._equation(
                "balance_sheet.total_liabilities",
                "Total liabilities should equal total current liabilities plus total long-term liabilities",
                "liabilities.totalLiabilities",
                get_number(data, "liabilities.currentLiabilities.totalCurrentLiabilities")
                + get_number(data, "liabilities.longTermLiabilities.totalLongTermLiabilities"),
                total_liabilities,
            )

        total_equity = get_number(data, "equity.totalEquity")
        liabilities_and_equity = get_number(data, "totalLiabilitiesAndEquity")
        if liabilities_and_equity != 0:
            self._equation(
                "balance_sheet.liabilities_and_equity",
                "Total liabilities and equity should equal total liabilities plus total equity",
                "totalLiabilitiesAndEquity",
                total_liabilities + total_equity,
                liabilities_and_equity,
            )

        if total_assets != 0 and (
            liabilities_and_equity != 0 or (total_liabilities != 0 and total_equity != 0)
        ):
            self._equation(
                "balance_sheet.fundamental",
                "Total assets must equal total liabilities and equity",
                "assets.totalAssets",
                liabilities_and_equity or total_liabilities + total_equity,
                total_assets,
            )

        gross_fixed = get_number(data, "assets.fixedAssets.grossPropertyAndEquipment")
        if gross_fixed != 0 and net_fixed != 0:
            self._equation(
                "balance_sheet.net_fixed_assets",
                "Net fixed assets should equal property and equipment minus accumulated depreciation",
                "assets.fixedAssets.netPropertyAndEquipment",
                gross_fixed - abs(get_number(data, "assets.fixedAssets.accumulatedDepreciation")),
                net_fixed,
            )

    def _check_rent_roll(self, data: Dict[str, Any]) -> None:
        units = as_list(data.get("units"))
        summary = data.get("summary") or {}

        monthly = get_number(summary, "totalMonthlyRent")
        annual = get_number(summary, "totalAnnualRent")
        occupancy = get_number(summary, "occupancyRate")
        total_units = get_number(summary, "totalUnits") or float(len(units))
        occupied = get_number(summary, "occupiedUnits")
        vacant = get_number(summary, "vacantUnits")

        if units and monthly != 0:
            occupied_rent = sum(
                get_number(u, "monthlyRent") for u in units if _is_occupied(u)
            )
            self._equation(
                "rent_roll.monthly_rent",
                "Total monthly rent should equal sum of all occupied unit monthly rents",
                "summary.totalMonthlyRent",
                occupied_rent,
                monthly,
            )

        if monthly != 0 and annual != 0:
            self._equation(
                "rent_roll.annual_rent",
                "Total annual rent should equal total monthly rent times 12",
                "summary.totalAnnualRent",
                monthly * 12,
                annual,
            )

        if total_units > 0 and occupancy != 0:
            if occupancy > 1.5:
                occupancy = occupancy / 100
            self._ratio(
                "rent_roll.occupancy",
                "Occupancy rate should equal occupied units divided by total units",
                "summary.occupancyRate",
                occupied / total_units,
                occupancy,
            )

        if total_units > 0 and (occupied != 0 or vacant != 0):
            self._equation(
                "rent_roll.unit_counts",
                "Occupied units plus vacant units should equal total units",
                "summary.totalUnits",
                occupied + vacant,
                total_units,
                0.0,
            )


def _is_occupied(unit: Dict[str, Any]) -> bool:
    """Units without a status count as occupied."""
    status = str(unit.get("status") or "").strip().lower()
    return not status or status == "occupied"


def run_math_checks(
    doc_type: DocType,
    data: Optional[Dict[str, Any]],
    tolerances: Optional[Tolerances] = None,
    document_id: Optional[str] = None,
) -> List[MathCheck]:
    """Convenience wrapper: run the math identities for one document."""
    return MathChecker(tolerances).run(doc_type, data, document_id=document_id)
