"""
Canonical schemas for IRS forms.

Every field is optional and every list defaults to empty, so a validated
tree always carries every key (nulled when unknown). Field names are the
wire names used in structured data, including the IRS line suffixes, so
dot-paths like "income.agi_line11" address the same leaf everywhere.

Unknown extra keys are preserved rather than rejected.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

Money = Optional[float]
Text = Optional[str]


class FormSection(BaseModel):
    """Base for all canonical sections: permissive, never drops data."""

    model_config = ConfigDict(extra="allow", coerce_numbers_to_str=True)


# =============================================================================
# Form 1040 - Individual Income Tax Return
# =============================================================================


class Form1040Metadata(FormSection):
    taxYear: Optional[int] = None
    filingStatus: Text = None
    taxpayerName: Text = None
    spouseName: Text = None
    ssn_last4: Text = None
    address: Text = None


class Form1040Income(FormSection):
    wages_line1: Money = None
    taxExemptInterest_line2a: Money = None
    taxableInterest_line2b: Money = None
    qualifiedDividends_line3a: Money = None
    ordinaryDividends_line3b: Money = None
    iraDistributions_line4a: Money = None
    taxableIra_line4b: Money = None
    pensions_line5a: Money = None
    taxablePensions_line5b: Money = None
    socialSecurity_line6a: Money = None
    taxableSocialSecurity_line6b: Money = None
    capitalGain_line7: Money = None
    otherIncome_line8: Money = None
    totalIncome_line9: Money = None
    adjustments_line10: Money = None
    agi_line11: Money = None
    standardOrItemized_line12: Money = None
    qbi_line13a: Money = None
    totalDeductions_line14: Money = None
    taxableIncome_line15: Money = None


class ScheduleCExpenses(FormSection):
    advertising: Money = None
    carAndTruck: Money = None
    commissions: Money = None
    contractLabor: Money = None
    depletion: Money = None
    depreciation_line13: Money = None
    employeeBenefits: Money = None
    insurance: Money = None
    interestMortgage: Money = None
    interestOther: Money = None
    legal: Money = None
    officeExpense: Money = None
    pensionPlans: Money = None
    rent: Money = None
    repairs: Money = None
    supplies: Money = None
    taxes: Money = None
    travel: Money = None
    meals: Money = None
    utilities: Money = None
    wages: Money = None
    otherExpenses: Money = None


class ScheduleC(FormSection):
    businessName: Text = None
    principalCode: Text = None
    grossReceipts_line1: Money = None
    returnsAndAllowances_line2: Money = None
    cogs_line4: Money = None
    grossProfit_line5: Money = None
    otherIncome_line6: Money = None
    grossIncome_line7: Money = None
    totalExpenses_line28: Money = None
    netProfit_line31: Money = None
    expenses: ScheduleCExpenses = Field(default_factory=ScheduleCExpenses)


class ScheduleD(FormSection):
    shortTermGainLoss: Money = None
    longTermGainLoss: Money = None
    netCapitalGainLoss: Money = None


class ScheduleEProperty(FormSection):
    address: Text = None
    propertyType: Text = None
    fairRentalDays: Optional[int] = None
    personalUseDays: Optional[int] = None
    rentsReceived: Money = None
    advertising: Money = None
    auto: Money = None
    cleaning: Money = None
    commissions: Money = None
    insurance: Money = None
    legal: Money = None
    management: Money = None
    mortgageInterest: Money = None
    otherInterest: Money = None
    repairs: Money = None
    supplies: Money = None
    taxes: Money = None
    utilities: Money = None
    depreciation: Money = None
    other: Money = None
    totalExpenses: Money = None
    netRentalIncome: Money = None


class PassThroughIncome(FormSection):
    entityName: Text = None
    entityType: Text = None
    passiveIncome: Money = None
    nonPassiveIncome: Money = None
    passiveLoss: Money = None
    nonPassiveLoss: Money = None


class ScheduleE(FormSection):
    properties: list[ScheduleEProperty] = Field(default_factory=list)
    totalRentsReceived: Money = None
    totalRentalIncome_line26: Money = None
    partnershipSCorpIncome: list[PassThroughIncome] = Field(default_factory=list)
    totalPartnershipIncome: Money = None


class ScheduleSE(FormSection):
    netEarnings: Money = None
    selfEmploymentTax: Money = None


class W2SummaryEntry(FormSection):
    employer: Text = None
    ein_last4: Text = None
    wages_box1: Money = None
    federalWithholding_box2: Money = None
    socialSecurityWages_box3: Money = None
    medicareWages_box5: Money = None


class ScheduleA(FormSection):
    medicalDental: Money = None
    stateLocalTaxes: Money = None
    mortgageInterest: Money = None
    charitableContributions: Money = None
    totalItemized: Money = None


class Form1040Deductions(FormSection):
    type: Text = None
    amount: Money = None
    scheduleA: Optional[ScheduleA] = None


class Form1040Tax(FormSection):
    taxBeforeCredits_line16: Money = None
    totalCredits: Money = None
    otherTaxes_line23: Money = None
    totalTax_line24: Money = None
    federalWithholding_line25a: Money = None
    totalPayments_line33: Money = None
    overpaid_line34: Money = None
    amountOwed_line37: Money = None


class Form1040(FormSection):
    metadata: Form1040Metadata = Field(default_factory=Form1040Metadata)
    income: Form1040Income = Field(default_factory=Form1040Income)
    scheduleC: list[ScheduleC] = Field(default_factory=list)
    scheduleD: Optional[ScheduleD] = None
    scheduleE: Optional[ScheduleE] = None
    scheduleSE: Optional[ScheduleSE] = None
    w2Summary: list[W2SummaryEntry] = Field(default_factory=list)
    deductions: Form1040Deductions = Field(default_factory=Form1040Deductions)
    tax: Form1040Tax = Field(default_factory=Form1040Tax)
    extractionNotes: list[str] = Field(default_factory=list)


# =============================================================================
# Schedule L - shared by business returns
# =============================================================================


class ScheduleLPeriod(FormSection):
    cash: Money = None
    receivables_net: Money = None
    inventories: Money = None
    otherCurrentAssets: Money = None
    loansToShareholders: Money = None
    mortgageAndRealEstateLoans: Money = None
    otherInvestments: Money = None
    buildingsAndDepreciable_net: Money = None
    depletableAssets_net: Money = None
    land: Money = None
    intangibleAssets_net: Money = None
    otherAssets: Money = None
    totalAssets: Money = None
    accountsPayable: Money = None
    mortgagesNotesPayable_lessThan1Year: Money = None
    otherCurrentLiabilities: Money = None
    loansFromShareholders: Money = None
    mortgagesNotesPayable_1YearOrMore: Money = None
    otherLiabilities: Money = None
    totalLiabilities: Money = None
    capitalStock: Money = None
    additionalPaidInCapital: Money = None
    retainedEarnings: Money = None
    adjustmentsToEquity: Money = None
    treasuryStock: Money = None
    partnersCapitalAccounts: Money = None
    totalEquity: Money = None
    totalLiabilitiesAndEquity: Money = None


SCHEDULE_L_ASSET_FIELDS = [
    "cash",
    "receivables_net",
    "inventories",
    "otherCurrentAssets",
    "loansToShareholders",
    "mortgageAndRealEstateLoans",
    "otherInvestments",
    "buildingsAndDepreciable_net",
    "depletableAssets_net",
    "land",
    "intangibleAssets_net",
    "otherAssets",
]


class ScheduleL(FormSection):
    beginningOfYear: ScheduleLPeriod = Field(default_factory=ScheduleLPeriod)
    endOfYear: ScheduleLPeriod = Field(default_factory=ScheduleLPeriod)


class BusinessMetadata(FormSection):
    taxYear: Optional[int] = None
    entityName: Text = None
    ein: Text = None
    address: Text = None
    dateIncorporated: Text = None
    accountingMethod: Text = None
    businessActivityCode: Text = None
    totalAssets: Money = None


# =============================================================================
# Form 1120 - C Corporation
# =============================================================================


class Form1120Income(FormSection):
    grossReceipts_line1a: Money = None
    returnsAllowances_line1b: Money = None
    balanceAfterReturns_line1c: Money = None
    costOfGoodsSold_line2: Money = None
    grossProfit_line3: Money = None
    dividendsReceived_line4: Money = None
    interestIncome_line5: Money = None
    grossRents_line6: Money = None
    grossRoyalties_line7: Money = None
    capitalGainNet_line8: Money = None
    netGainForm4797_line9: Money = None
    otherIncome_line10: Money = None
    totalIncome_line11: Money = None


class Form1120Deductions(FormSection):
    compensationOfOfficers_line12: Money = None
    salariesAndWages_line13: Money = None
    repairsAndMaintenance_line14: Money = None
    badDebts_line15: Money = None
    rents_line16: Money = None
    taxesAndLicenses_line17: Money = None
    interestExpense_line18: Money = None
    charitableContributions_line19: Money = None
    depreciationForm4562_line20: Money = None
    depletion_line21: Money = None
    advertising_line22: Money = None
    pensionProfitSharing_line23: Money = None
    employeeBenefitPrograms_line24: Money = None
    energyEfficientBuildings_line25: Money = None
    otherDeductions_line26: Money = None
    totalDeductions_line27: Money = None


class Form1120TaxableIncome(FormSection):
    taxableIncomeBeforeNOL_line28: Money = None
    netOperatingLossDeduction_line29a: Money = None
    specialDeductions_line29b: Money = None
    totalSpecialDeductions_line29c: Money = None
    taxableIncome_line30: Money = None


class Form1120TaxAndPayments(FormSection):
    totalTax_line31: Money = None
    totalPaymentsAndCredits_line32: Money = None
    estimatedTaxPenalty_line33: Money = None
    amountOwed_line34: Money = None
    overpayment_line35: Money = None
    refundedAmount_line36: Money = None


class Form1120(FormSection):
    metadata: BusinessMetadata = Field(default_factory=BusinessMetadata)
    income: Form1120Income = Field(default_factory=Form1120Income)
    deductions: Form1120Deductions = Field(default_factory=Form1120Deductions)
    taxableIncome: Form1120TaxableIncome = Field(default_factory=Form1120TaxableIncome)
    taxAndPayments: Form1120TaxAndPayments = Field(default_factory=Form1120TaxAndPayments)
    scheduleL: ScheduleL = Field(default_factory=ScheduleL)
    extractionNotes: list[str] = Field(default_factory=list)


# =============================================================================
# Form 1120-S - S Corporation
# =============================================================================


class Form1120SIncome(FormSection):
    grossReceipts_line1a: Money = None
    returnsAllowances_line1b: Money = None
    balanceAfterReturns_line1c: Money = None
    costOfGoodsSold_line2: Money = None
    grossProfit_line3: Money = None
    netGainForm4797_line4: Money = None
    otherIncome_line5: Money = None
    totalIncome_line6: Money = None


class Form1120SDeductions(FormSection):
    compensationOfOfficers_line7: Money = None
    salariesAndWages_line8: Money = None
    repairsAndMaintenance_line9: Money = None
    badDebts_line10: Money = None
    rents_line11: Money = None
    taxesAndLicenses_line12: Money = None
    interestExpense_line13: Money = None
    depreciation_line14: Money = None
    depletion_line15: Money = None
    advertising_line16: Money = None
    pensionProfitSharing_line17: Money = None
    employeeBenefitPrograms_line18: Money = None
    otherDeductions_line20: Money = None
    totalDeductions_line21: Money = None


class Form1120STaxAndPayments(FormSection):
    totalTax_line23c: Money = None
    totalPayments_line24d: Money = None
    amountOwed_line26: Money = None
    overpayment_line27: Money = None


class SCorpScheduleKIncome(FormSection):
    ordinaryBusinessIncome_line1: Money = None
    netRentalRealEstateIncome_line2: Money = None
    otherNetRentalIncome_line3: Money = None
    interestIncome_line4: Money = None
    ordinaryDividends_line5a: Money = None
    royalties_line6: Money = None
    netShortTermCapitalGain_line7: Money = None
    netLongTermCapitalGain_line8a: Money = None
    netSection1231Gain_line9: Money = None
    otherIncome_line10: Money = None


class SCorpScheduleK(FormSection):
    incomeAndLoss: SCorpScheduleKIncome = Field(default_factory=SCorpScheduleKIncome)
    distributions_line16d: Money = None


class Form1120SMetadata(BusinessMetadata):
    dateSElectionEffective: Text = None
    numberOfShareholders: Optional[int] = None


class Form1120S(FormSection):
    metadata: Form1120SMetadata = Field(default_factory=Form1120SMetadata)
    income: Form1120SIncome = Field(default_factory=Form1120SIncome)
    deductions: Form1120SDeductions = Field(default_factory=Form1120SDeductions)
    ordinaryBusinessIncome_line22: Money = None
    taxAndPayments: Form1120STaxAndPayments = Field(default_factory=Form1120STaxAndPayments)
    scheduleK: SCorpScheduleK = Field(default_factory=SCorpScheduleK)
    scheduleL: ScheduleL = Field(default_factory=ScheduleL)
    extractionNotes: list[str] = Field(default_factory=list)


# =============================================================================
# Form 1065 - Partnership
# =============================================================================


class Form1065Income(FormSection):
    grossReceipts_line1a: Money = None
    returnsAllowances_line1b: Money = None
    netReceipts_line1c: Money = None
    costOfGoodsSold_line2: Money = None
    grossProfit_line3: Money = None
    ordinaryIncomeFromOtherPartnerships_line4: Money = None
    netFarmProfit_line5: Money = None
    netGainForm4797_line6: Money = None
    otherIncome_line7: Money = None
    totalIncome_line8: Money = None


class Form1065Deductions(FormSection):
    salariesAndWages_line9: Money = None
    guaranteedPaymentsToPartners_line10: Money = None
    repairsAndMaintenance_line11: Money = None
    badDebts_line12: Money = None
    rent_line13: Money = None
    taxesAndLicenses_line14: Money = None
    interestExpense_line15: Money = None
    netDepreciation_line16c: Money = None
    depletion_line17: Money = None
    retirementPlans_line18: Money = None
    employeeBenefitPrograms_line19: Money = None
    otherDeductions_line21: Money = None
    totalDeductions_line22: Money = None


class PartnershipScheduleKIncome(FormSection):
    ordinaryBusinessIncome_line1: Money = None
    netRentalRealEstateIncome_line2: Money = None
    otherNetRentalIncome_line3: Money = None
    guaranteedPaymentsServices_line4a: Money = None
    guaranteedPaymentsCapital_line4b: Money = None
    totalGuaranteedPayments_line4c: Money = None
    interestIncome_line5: Money = None
    ordinaryDividends_line6a: Money = None
    royalties_line7: Money = None
    netShortTermCapitalGain_line8: Money = None
    netLongTermCapitalGain_line9a: Money = None
    netSection1231Gain_line10: Money = None
    otherIncome_line11: Money = None


class PartnershipScheduleK(FormSection):
    incomeAndLoss: PartnershipScheduleKIncome = Field(
        default_factory=PartnershipScheduleKIncome
    )
    cashDistributions_line19a: Money = None
    propertyDistributions_line19b: Money = None


class Partner(FormSection):
    name: Text = None
    partnerType: Text = None
    profitSharePercent: Optional[float] = None
    lossSharePercent: Optional[float] = None
    capitalSharePercent: Optional[float] = None


class Form1065Metadata(BusinessMetadata):
    numberOfPartners: Optional[int] = None


class Form1065(FormSection):
    metadata: Form1065Metadata = Field(default_factory=Form1065Metadata)
    income: Form1065Income = Field(default_factory=Form1065Income)
    deductions: Form1065Deductions = Field(default_factory=Form1065Deductions)
    ordinaryBusinessIncome_line23: Money = None
    scheduleK: PartnershipScheduleK = Field(default_factory=PartnershipScheduleK)
    partners: list[Partner] = Field(default_factory=list)
    scheduleL: ScheduleL = Field(default_factory=ScheduleL)
    extractionNotes: list[str] = Field(default_factory=list)


# =============================================================================
# Schedule K-1
# =============================================================================


class K1Metadata(FormSection):
    taxYear: Optional[int] = None
    sourceForm: Text = None
    partnershipOrCorpName: Text = None
    partnershipOrCorpEIN: Text = None
    partnerOrShareholderName: Text = None
    partnerOrShareholderSSN_last4: Text = None
    partnerOrShareholderType: Text = None
    profitSharingPercent_ending: Optional[float] = None
    lossSharingPercent_ending: Optional[float] = None
    capitalSharingPercent_ending: Optional[float] = None


class K1IncomeAndLoss(FormSection):
    ordinaryBusinessIncome_line1: Money = None
    netRentalRealEstateIncome_line2: Money = None
    otherNetRentalIncome_line3: Money = None
    guaranteedPayments_line4a: Money = None
    guaranteedPayments_line4b: Money = None
    guaranteedPayments_line4c: Money = None
    interestIncome_line5: Money = None
    ordinaryDividends_line6a: Money = None
    qualifiedDividends_line6b: Money = None
    royalties_line7: Money = None
    netShortTermCapitalGain_line8: Money = None
    netLongTermCapitalGain_line9a: Money = None
    netSection1231Gain_line10: Money = None
    otherIncome_line11: Money = None


class K1Deductions(FormSection):
    section179Deduction_line12: Money = None
    otherDeductions_line13: Money = None


class K1SelfEmployment(FormSection):
    netEarningsFromSE_line14a: Money = None
    grossFarmingIncome_line14b: Money = None
    grossNonfarmIncome_line14c: Money = None


class K1Distributions(FormSection):
    cashAndMarketableSecurities_line19a: Money = None
    propertyDistributions_line19b: Money = None


class K1CapitalAccount(FormSection):
    beginningCapitalAccount: Money = None
    currentYearIncrease: Money = None
    currentYearDecrease: Money = None
    withdrawalsAndDistributions: Money = None
    endingCapitalAccount: Money = None
    method: Text = None


class ScheduleK1(FormSection):
    metadata: K1Metadata = Field(default_factory=K1Metadata)
    incomeAndLoss: K1IncomeAndLoss = Field(default_factory=K1IncomeAndLoss)
    deductions: K1Deductions = Field(default_factory=K1Deductions)
    selfEmployment: K1SelfEmployment = Field(default_factory=K1SelfEmployment)
    distributions: K1Distributions = Field(default_factory=K1Distributions)
    capitalAccount: K1CapitalAccount = Field(default_factory=K1CapitalAccount)
    extractionNotes: list[str] = Field(default_factory=list)


# =============================================================================
# W-2 - Wage and Tax Statement
# =============================================================================


class W2Metadata(FormSection):
    taxYear: Optional[int] = None
    employerName: Text = None
    employerEIN: Text = None
    employerAddress: Text = None
    employeeName: Text = None
    employeeSSN_last4: Text = None
    employeeAddress: Text = None


class Box12Entry(FormSection):
    code: Text = None
    amount: Money = None


class W2Wages(FormSection):
    wagesTipsOther_box1: Money = None
    federalIncomeTaxWithheld_box2: Money = None
    socialSecurityWages_box3: Money = None
    socialSecurityTaxWithheld_box4: Money = None
    medicareWages_box5: Money = None
    medicareTaxWithheld_box6: Money = None
    socialSecurityTips_box7: Money = None
    allocatedTips_box8: Money = None
    dependentCareBenefits_box10: Money = None
    nonqualifiedPlans_box11: Money = None
    deferredCompensation_box12: list[Box12Entry] = Field(default_factory=list)
    statutoryEmployee_box13: Optional[bool] = None
    retirementPlan_box13: Optional[bool] = None
    thirdPartySickPay_box13: Optional[bool] = None


class W2StateTaxInfo(FormSection):
    state: Text = None
    stateEmployerID: Text = None
    stateWages_box16: Money = None
    stateIncomeTax_box17: Money = None


class W2LocalTaxInfo(FormSection):
    localWages_box18: Money = None
    localIncomeTax_box19: Money = None
    localityName_box20: Text = None


class W2(FormSection):
    metadata: W2Metadata = Field(default_factory=W2Metadata)
    wages: W2Wages = Field(default_factory=W2Wages)
    stateTaxInfo: W2StateTaxInfo = Field(default_factory=W2StateTaxInfo)
    localTaxInfo: W2LocalTaxInfo = Field(default_factory=W2LocalTaxInfo)
    extractionNotes: list[str] = Field(default_factory=list)
