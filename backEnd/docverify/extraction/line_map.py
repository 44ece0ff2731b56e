"""
IRS line-number maps.

Deterministic line number -> schema path maps for the standardized tax forms.
Used wherever a printed line label must be tied back to a structured field:
- OCR-vs-structured verification (locating the OCR source of a field)
- the resolver's OCR re-read tier

No model involvement. OCR reads the characters, this module decides where
they belong.
"""

import re
from typing import Dict, List, Optional

from ..schemas.doc_types import DocType

# =============================================================================
# Form 1040
# =============================================================================

IRS_1040_LINES: Dict[str, str] = {
    "1": "income.wages_line1",
    "1a": "income.wages_line1",
    "1z": "income.wages_line1",
    "2a": "income.taxExemptInterest_line2a",
    "2b": "income.taxableInterest_line2b",
    "3a": "income.qualifiedDividends_line3a",
    "3b": "income.ordinaryDividends_line3b",
    "4a": "income.iraDistributions_line4a",
    "4b": "income.taxableIra_line4b",
    "5a": "income.pensions_line5a",
    "5b": "income.taxablePensions_line5b",
    "6a": "income.socialSecurity_line6a",
    "6b": "income.taxableSocialSecurity_line6b",
    "7": "income.capitalGain_line7",
    "8": "income.otherIncome_line8",
    "9": "income.totalIncome_line9",
    "10": "income.adjustments_line10",
    "11": "income.agi_line11",
    "12": "income.standardOrItemized_line12",
    "13": "income.qbi_line13a",
    "13a": "income.qbi_line13a",
    "14": "income.totalDeductions_line14",
    "15": "income.taxableIncome_line15",
    "16": "tax.taxBeforeCredits_line16",
    "23": "tax.otherTaxes_line23",
    "24": "tax.totalTax_line24",
    "25": "tax.federalWithholding_line25a",
    "25a": "tax.federalWithholding_line25a",
    "33": "tax.totalPayments_line33",
    "34": "tax.overpaid_line34",
    "37": "tax.amountOwed_line37",
}

# =============================================================================
# Form 1120
# =============================================================================

IRS_1120_LINES: Dict[str, str] = {
    "1a": "income.grossReceipts_line1a",
    "1b": "income.returnsAllowances_line1b",
    "1c": "income.balanceAfterReturns_line1c",
    "2": "income.costOfGoodsSold_line2",
    "3": "income.grossProfit_line3",
    "4": "income.dividendsReceived_line4",
    "5": "income.interestIncome_line5",
    "6": "income.grossRents_line6",
    "7": "income.grossRoyalties_line7",
    "8": "income.capitalGainNet_line8",
    "9": "income.netGainForm4797_line9",
    "10": "income.otherIncome_line10",
    "11": "income.totalIncome_line11",
    "12": "deductions.compensationOfOfficers_line12",
    "13": "deductions.salariesAndWages_line13",
    "14": "deductions.repairsAndMaintenance_line14",
    "15": "deductions.badDebts_line15",
    "16": "deductions.rents_line16",
    "17": "deductions.taxesAndLicenses_line17",
    "18": "deductions.interestExpense_line18",
    "19": "deductions.charitableContributions_line19",
    "20": "deductions.depreciationForm4562_line20",
    "21": "deductions.depletion_line21",
    "22": "deductions.advertising_line22",
    "23": "deductions.pensionProfitSharing_line23",
    "24": "deductions.employeeBenefitPrograms_line24",
    "25": "deductions.energyEfficientBuildings_line25",
    "26": "deductions.otherDeductions_line26",
    "27": "deductions.totalDeductions_line27",
    "28": "taxableIncome.taxableIncomeBeforeNOL_line28",
    "29a": "taxableIncome.netOperatingLossDeduction_line29a",
    "29b": "taxableIncome.specialDeductions_line29b",
    "29c": "taxableIncome.totalSpecialDeductions_line29c",
    "30": "taxableIncome.taxableIncome_line30",
    "31": "taxAndPayments.totalTax_line31",
    "32": "taxAndPayments.totalPaymentsAndCredits_line32",
    "33": "taxAndPayments.estimatedTaxPenalty_line33",
    "34": "taxAndPayments.amountOwed_line34",
    "35": "taxAndPayments.overpayment_line35",
    "36": "taxAndPayments.refundedAmount_line36",
}

# =============================================================================
# Form 1120-S
# =============================================================================

IRS_1120S_LINES: Dict[str, str] = {
    "1a": "income.grossReceipts_line1a",
    "1b": "income.returnsAllowances_line1b",
    "1c": "income.balanceAfterReturns_line1c",
    "2": "income.costOfGoodsSold_line2",
    "3": "income.grossProfit_line3",
    "4": "income.netGainForm4797_line4",
    "5": "income.otherIncome_line5",
    "6": "income.totalIncome_line6",
    "7": "deductions.compensationOfOfficers_line7",
    "8": "deductions.salariesAndWages_line8",
    "9": "deductions.repairsAndMaintenance_line9",
    "10": "deductions.badDebts_line10",
    "11": "deductions.rents_line11",
    "12": "deductions.taxesAndLicenses_line12",
    "13": "deductions.interestExpense_line13",
    "14": "deductions.depreciation_line14",
    "15": "deductions.depletion_line15",
    "16": "deductions.advertising_line16",
    "17": "deductions.pensionProfitSharing_line17",
    "18": "deductions.employeeBenefitPrograms_line18",
    "20": "deductions.otherDeductions_line20",
    "21": "deductions.totalDeductions_line21",
    "22": "ordinaryBusinessIncome_line22",
    "23c": "taxAndPayments.totalTax_line23c",
    "24d": "taxAndPayments.totalPayments_line24d",
    "26": "taxAndPayments.amountOwed_line26",
    "27": "taxAndPayments.overpayment_line27",
    "k_1": "scheduleK.incomeAndLoss.ordinaryBusinessIncome_line1",
    "k_2": "scheduleK.incomeAndLoss.netRentalRealEstateIncome_line2",
    "k_3": "scheduleK.incomeAndLoss.otherNetRentalIncome_line3",
    "k_4": "scheduleK.incomeAndLoss.interestIncome_line4",
    "k_5a": "scheduleK.incomeAndLoss.ordinaryDividends_line5a",
    "k_6": "scheduleK.incomeAndLoss.royalties_line6",
    "k_7": "scheduleK.incomeAndLoss.netShortTermCapitalGain_line7",
    "k_8a": "scheduleK.incomeAndLoss.netLongTermCapitalGain_line8a",
    "k_9": "scheduleK.incomeAndLoss.netSection1231Gain_line9",
    "k_10": "scheduleK.incomeAndLoss.otherIncome_line10",
    "k_16d": "scheduleK.distributions_line16d",
}

# =============================================================================
# Form 1065
# =============================================================================

IRS_1065_LINES: Dict[str, str] = {
    "1a": "income.grossReceipts_line1a",
    "1b": "income.returnsAllowances_line1b",
    "1c": "income.netReceipts_line1c",
    "2": "income.costOfGoodsSold_line2",
    "3": "income.grossProfit_line3",
    "4": "income.ordinaryIncomeFromOtherPartnerships_line4",
    "5": "income.netFarmProfit_line5",
    "6": "income.netGainForm4797_line6",
    "7": "income.otherIncome_line7",
    "8": "income.totalIncome_line8",
    "9": "deductions.salariesAndWages_line9",
    "10": "deductions.guaranteedPaymentsToPartners_line10",
    "11": "deductions.repairsAndMaintenance_line11",
    "12": "deductions.badDebts_line12",
    "13": "deductions.rent_line13",
    "14": "deductions.taxesAndLicenses_line14",
    "15": "deductions.interestExpense_line15",
    "16c": "deductions.netDepreciation_line16c",
    "17": "deductions.depletion_line17",
    "18": "deductions.retirementPlans_line18",
    "19": "deductions.employeeBenefitPrograms_line19",
    "21": "deductions.otherDeductions_line21",
    "22": "deductions.totalDeductions_line22",
    "23": "ordinaryBusinessIncome_line23",
    "k_1": "scheduleK.incomeAndLoss.ordinaryBusinessIncome_line1",
    "k_2": "scheduleK.incomeAndLoss.netRentalRealEstateIncome_line2",
    "k_3": "scheduleK.incomeAndLoss.otherNetRentalIncome_line3",
    "k_4a": "scheduleK.incomeAndLoss.guaranteedPaymentsServices_line4a",
    "k_4b": "scheduleK.incomeAndLoss.guaranteedPaymentsCapital_line4b",
    "k_4c": "scheduleK.incomeAndLoss.totalGuaranteedPayments_line4c",
    "k_5": "scheduleK.incomeAndLoss.interestIncome_line5",
    "k_6a": "scheduleK.incomeAndLoss.ordinaryDividends_line6a",
    "k_7": "scheduleK.incomeAndLoss.royalties_line7",
    "k_8": "scheduleK.incomeAndLoss.netShortTermCapitalGain_line8",
    "k_9a": "scheduleK.incomeAndLoss.netLongTermCapitalGain_line9a",
    "k_10": "scheduleK.incomeAndLoss.netSection1231Gain_line10",
    "k_11": "scheduleK.incomeAndLoss.otherIncome_line11",
    "k_19a": "scheduleK.cashDistributions_line19a",
    "k_19b": "scheduleK.propertyDistributions_line19b",
}

# =============================================================================
# Schedule K-1
# =============================================================================

IRS_K1_LINES: Dict[str, str] = {
    "1": "incomeAndLoss.ordinaryBusinessIncome_line1",
    "2": "incomeAndLoss.netRentalRealEstateIncome_line2",
    "3": "incomeAndLoss.otherNetRentalIncome_line3",
    "4a": "incomeAndLoss.guaranteedPayments_line4a",
    "4b": "incomeAndLoss.guaranteedPayments_line4b",
    "4c": "incomeAndLoss.guaranteedPayments_line4c",
    "5": "incomeAndLoss.interestIncome_line5",
    "6a": "incomeAndLoss.ordinaryDividends_line6a",
    "6b": "incomeAndLoss.qualifiedDividends_line6b",
    "7": "incomeAndLoss.royalties_line7",
    "8": "incomeAndLoss.netShortTermCapitalGain_line8",
    "9a": "incomeAndLoss.netLongTermCapitalGain_line9a",
    "10": "incomeAndLoss.netSection1231Gain_line10",
    "11": "incomeAndLoss.otherIncome_line11",
    "12": "deductions.section179Deduction_line12",
    "13": "deductions.otherDeductions_line13",
    "14a": "selfEmployment.netEarningsFromSE_line14a",
    "14b": "selfEmployment.grossFarmingIncome_line14b",
    "14c": "selfEmployment.grossNonfarmIncome_line14c",
    "19a": "distributions.cashAndMarketableSecurities_line19a",
    "19b": "distributions.propertyDistributions_line19b",
}

IRS_LINE_MAPS: Dict[DocType, Dict[str, str]] = {
    DocType.FORM_1040: IRS_1040_LINES,
    DocType.FORM_1120: IRS_1120_LINES,
    DocType.FORM_1120S: IRS_1120S_LINES,
    DocType.FORM_1065: IRS_1065_LINES,
    DocType.SCHEDULE_K1: IRS_K1_LINES,
}

# Printed captions for the headline lines, used to locate OCR keys that
# carry the caption instead of the line number.
LINE_CAPTIONS: Dict[str, List[str]] = {
    "income.wages_line1": ["Wages, salaries, tips"],
    "income.taxableInterest_line2b": ["Taxable interest"],
    "income.ordinaryDividends_line3b": ["Ordinary dividends"],
    "income.capitalGain_line7": ["Capital gain or (loss)"],
    "income.otherIncome_line8": ["Other income"],
    "income.totalIncome_line9": ["Total income"],
    "income.adjustments_line10": ["Adjustments to income"],
    "income.agi_line11": ["Adjusted gross income"],
    "income.standardOrItemized_line12": ["Standard deduction or itemized"],
    "income.qbi_line13a": ["Qualified business income"],
    "income.totalDeductions_line14": ["Total deductions"],
    "income.taxableIncome_line15": ["Taxable income"],
    "tax.totalTax_line24": ["Total tax"],
    "tax.federalWithholding_line25a": ["Federal income tax withheld"],
    "tax.totalPayments_line33": ["Total payments"],
    "income.grossReceipts_line1a": ["Gross receipts"],
    "income.costOfGoodsSold_line2": ["Cost of goods sold"],
    "income.grossProfit_line3": ["Gross profit"],
    "income.totalIncome_line11": ["Total income"],
    "income.totalIncome_line6": ["Total income (loss)"],
    "income.totalIncome_line8": ["Total income (loss)"],
    "deductions.totalDeductions_line27": ["Total deductions"],
    "deductions.totalDeductions_line21": ["Total deductions"],
    "deductions.totalDeductions_line22": ["Total deductions"],
    "taxableIncome.taxableIncomeBeforeNOL_line28": ["Taxable income before NOL"],
    "taxableIncome.taxableIncome_line30": ["Taxable income"],
    "ordinaryBusinessIncome_line22": ["Ordinary business income"],
    "ordinaryBusinessIncome_line23": ["Ordinary business income"],
    "grossReceipts_line1": ["Gross receipts"],
    "grossProfit_line5": ["Gross profit"],
    "grossIncome_line7": ["Gross income"],
    "totalExpenses_line28": ["Total expenses"],
    "netProfit_line31": ["Net profit or (loss)"],
}


# =============================================================================
# Lookups
# =============================================================================

_LINE_PREFIX = re.compile(r"^line\s+(\d+[a-z]?)\b", re.IGNORECASE)
_NUMBERED = re.compile(r"^(\d+[a-z]?)[\s.)\-:]")
_BARE = re.compile(r"^(\d+[a-z]?)$")
_SCHEDULE_K = re.compile(r"^k[\s\-_]?(\d+[a-z]?)\b", re.IGNORECASE)
_PATH_SUFFIX = re.compile(r"_line(\d+[a-z]?)$")


def extract_line_number(key: str) -> Optional[str]:
    """
    Pull an IRS line number out of an OCR key label.

    Handles:
    - "Line 2b" -> "2b"
    - "1a." / "1a Gross receipts" -> "1a"
    - "7. Capital gain or (loss)" -> "7"
    - "9" -> "9"
    - "K-4c" / "k_1" -> "k_4c" / "k_1"

    Returns:
        Lowercased line number, or None when the key carries none
    """
    cleaned = (key or "").strip().lower()
    if not cleaned:
        return None

    for pattern in (_LINE_PREFIX, _NUMBERED, _BARE):
        match = pattern.match(cleaned)
        if match:
            return match.group(1)

    match = _SCHEDULE_K.match(cleaned)
    if match:
        return f"k_{match.group(1)}"
    return None


def get_field_path(doc_type: DocType, line_number: str) -> Optional[str]:
    """Schema path for a form line, or None if the line is not mapped."""
    lines = IRS_LINE_MAPS.get(doc_type)
    if not lines:
        return None
    return lines.get(line_number.strip().lower())


def get_line_number(doc_type: Optional[DocType], field_path: str) -> Optional[str]:
    """
    Reverse lookup: the printed line number for a schema path.

    Falls back to the path's own "_lineN" suffix so list entries such as
    "scheduleC[0].netProfit_line31" still resolve.
    """
    lines = IRS_LINE_MAPS.get(doc_type) if doc_type else None
    if lines:
        for line, path in lines.items():
            if path == field_path:
                return line

    match = _PATH_SUFFIX.search(field_path)
    return match.group(1).lower() if match else None


def get_captions(field_path: str) -> List[str]:
    """Printed captions for a path (exact path first, then its leaf)."""
    if field_path in LINE_CAPTIONS:
        return LINE_CAPTIONS[field_path]
    leaf = re.sub(r"\[\d+\]", "", field_path).rsplit(".", 1)[-1]
    return LINE_CAPTIONS.get(leaf, [])
