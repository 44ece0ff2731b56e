"""
Field mappings for deterministic extraction.

Maps the richly-typed OCR field vocabulary (available for a known subset of
standardized forms) to canonical schema dot-paths. Only 1040 and W-2 pages
arrive with typed fields; everything else goes through model structuring.
"""

from typing import Dict, Optional

from ..schemas.doc_types import DocType

# =============================================================================
# Form 1040
# =============================================================================

FORM_1040_FIELD_MAP: Dict[str, str] = {
    # Income
    "WAGES_TIPS_OTHER_COMP": "income.wages_line1",
    "WAGES_TIPS": "income.wages_line1",
    "TAX_EXEMPT_INTEREST": "income.taxExemptInterest_line2a",
    "TAXABLE_INTEREST": "income.taxableInterest_line2b",
    "QUALIFIED_DIVIDENDS": "income.qualifiedDividends_line3a",
    "ORDINARY_DIVIDENDS": "income.ordinaryDividends_line3b",
    "IRA_DISTRIBUTIONS": "income.iraDistributions_line4a",
    "IRA_DISTRIBUTIONS_TAXABLE": "income.taxableIra_line4b",
    "PENSIONS_ANNUITIES": "income.pensions_line5a",
    "PENSIONS_ANNUITIES_TAXABLE": "income.taxablePensions_line5b",
    "SOCIAL_SECURITY_BENEFITS": "income.socialSecurity_line6a",
    "SOCIAL_SECURITY_BENEFITS_TAXABLE": "income.taxableSocialSecurity_line6b",
    "CAPITAL_GAIN_OR_LOSS": "income.capitalGain_line7",
    "OTHER_INCOME": "income.otherIncome_line8",
    "TOTAL_INCOME": "income.totalIncome_line9",
    "ADJUSTMENTS_TO_INCOME": "income.adjustments_line10",
    "ADJUSTED_GROSS_INCOME": "income.agi_line11",
    "STANDARD_DEDUCTION": "income.standardOrItemized_line12",
    "STANDARD_DEDUCTION_OR_ITEMIZED": "income.standardOrItemized_line12",
    "QUALIFIED_BUSINESS_INCOME_DEDUCTION": "income.qbi_line13a",
    "TOTAL_DEDUCTIONS": "income.totalDeductions_line14",
    "TAXABLE_INCOME": "income.taxableIncome_line15",
    # Tax and payments
    "TAX": "tax.taxBeforeCredits_line16",
    "OTHER_TAXES": "tax.otherTaxes_line23",
    "TOTAL_TAX": "tax.totalTax_line24",
    "FEDERAL_INCOME_TAX_WITHHELD": "tax.federalWithholding_line25a",
    "FEDERAL_INCOME_TAX_WITHHELD_W2": "tax.federalWithholding_line25a",
    "TOTAL_PAYMENTS": "tax.totalPayments_line33",
    "OVERPAID": "tax.overpaid_line34",
    "AMOUNT_OVERPAID": "tax.overpaid_line34",
    "AMOUNT_YOU_OWE": "tax.amountOwed_line37",
    "AMOUNT_OWED": "tax.amountOwed_line37",
    # Taxpayer info
    "FILING_STATUS": "metadata.filingStatus",
    "TAXPAYER_NAME": "metadata.taxpayerName",
    "FIRST_NAME_AND_MIDDLE_INITIAL": "metadata.taxpayerName",
    "SPOUSE_NAME": "metadata.spouseName",
    "SPOUSE_FIRST_NAME_AND_MIDDLE_INITIAL": "metadata.spouseName",
    "SSN": "metadata.ssn_last4",
    "SSN_LAST4": "metadata.ssn_last4",
    "ADDRESS": "metadata.address",
    "HOME_ADDRESS": "metadata.address",
    "TAX_YEAR": "metadata.taxYear",
}

# =============================================================================
# W-2
# =============================================================================

W2_FIELD_MAP: Dict[str, str] = {
    # Boxes 1-11
    "WAGES_TIPS_OTHER_COMP": "wages.wagesTipsOther_box1",
    "WAGES_TIPS": "wages.wagesTipsOther_box1",
    "FEDERAL_INCOME_TAX_WITHHELD": "wages.federalIncomeTaxWithheld_box2",
    "SOCIAL_SECURITY_WAGES": "wages.socialSecurityWages_box3",
    "SOCIAL_SECURITY_TAX_WITHHELD": "wages.socialSecurityTaxWithheld_box4",
    "MEDICARE_WAGES_AND_TIPS": "wages.medicareWages_box5",
    "MEDICARE_WAGES_TIPS": "wages.medicareWages_box5",
    "MEDICARE_WAGES": "wages.medicareWages_box5",
    "MEDICARE_TAX_WITHHELD": "wages.medicareTaxWithheld_box6",
    "SOCIAL_SECURITY_TIPS": "wages.socialSecurityTips_box7",
    "ALLOCATED_TIPS": "wages.allocatedTips_box8",
    "DEPENDENT_CARE_BENEFITS": "wages.dependentCareBenefits_box10",
    "NONQUALIFIED_PLANS": "wages.nonqualifiedPlans_box11",
    # State and local
    "STATE": "stateTaxInfo.state",
    "EMPLOYER_STATE_ID_NUMBER": "stateTaxInfo.stateEmployerID",
    "STATE_WAGES_TIPS_ETC": "stateTaxInfo.stateWages_box16",
    "STATE_WAGES": "stateTaxInfo.stateWages_box16",
    "STATE_INCOME_TAX": "stateTaxInfo.stateIncomeTax_box17",
    "LOCAL_WAGES_TIPS_ETC": "localTaxInfo.localWages_box18",
    "LOCAL_WAGES": "localTaxInfo.localWages_box18",
    "LOCAL_INCOME_TAX": "localTaxInfo.localIncomeTax_box19",
    "LOCALITY_NAME": "localTaxInfo.localityName_box20",
    # Parties
    "EMPLOYER_NAME": "metadata.employerName",
    "EMPLOYER_EIN": "metadata.employerEIN",
    "EMPLOYER_ID_NUMBER": "metadata.employerEIN",
    "EMPLOYER_ADDRESS": "metadata.employerAddress",
    "EMPLOYEE_NAME": "metadata.employeeName",
    "EMPLOYEE_SSN": "metadata.employeeSSN_last4",
    "EMPLOYEE_SSN_LAST4": "metadata.employeeSSN_last4",
    "EMPLOYEE_ADDRESS": "metadata.employeeAddress",
    "TAX_YEAR": "metadata.taxYear",
}

# Leaves that keep their trimmed text instead of going through the currency parser
STRING_LEAF_SUFFIXES = frozenset({
    "filingStatus",
    "taxpayerName",
    "spouseName",
    "ssn_last4",
    "address",
    "employerName",
    "employerEIN",
    "employerAddress",
    "employeeName",
    "employeeSSN_last4",
    "employeeAddress",
    "state",
    "stateEmployerID",
    "localityName_box20",
})

# Leaves that hold integers (years) rather than money
INTEGER_LEAF_SUFFIXES = frozenset({"taxYear"})

# OCR page-type label -> (document type, field map)
LENDING_PAGE_TYPES: Dict[str, tuple] = {
    "1040": (DocType.FORM_1040, FORM_1040_FIELD_MAP),
    "W-2": (DocType.W2, W2_FIELD_MAP),
    "W2": (DocType.W2, W2_FIELD_MAP),
}


def get_field_map(page_type: str) -> Optional[Dict[str, str]]:
    """Field map for an OCR page type, or None when the page type is not standardized."""
    entry = LENDING_PAGE_TYPES.get(page_type)
    return entry[1] if entry else None


def supports_deterministic(doc_type: DocType) -> bool:
    """Whether any OCR page type maps deterministically onto this document type."""
    return any(dt == doc_type for dt, _ in LENDING_PAGE_TYPES.values())
