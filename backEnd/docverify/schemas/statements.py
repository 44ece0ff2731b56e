"""
Canonical schemas for non-standardized financial statements.

Bank statements, P&L statements, balance sheets and rent rolls have no fixed
layout, so these are always structured by the model and validated here.
"""

from typing import Optional

from pydantic import Field

from .tax_forms import FormSection, Money, Text


# =============================================================================
# Bank Statement (checking and savings share one shape)
# =============================================================================


class BankStatementMetadata(FormSection):
    bankName: Text = None
    accountHolder: Text = None
    accountNumber_last4: Text = None
    accountType: Text = None
    statementPeriodStart: Text = None
    statementPeriodEnd: Text = None
    address: Text = None


class BankStatementSummary(FormSection):
    beginningBalance: Money = None
    totalDeposits: Money = None
    totalWithdrawals: Money = None
    totalFees: Money = None
    endingBalance: Money = None
    averageDailyBalance: Money = None
    daysInPeriod: Optional[int] = None


class Transaction(FormSection):
    date: Text = None
    description: Text = None
    amount: Money = None
    runningBalance: Money = None
    category: Text = None


class BankStatementFlags(FormSection):
    nsfCount: Optional[int] = None
    overdraftCount: Optional[int] = None
    negativeEndingBalance: Optional[bool] = None
    largeDeposits: list[Transaction] = Field(default_factory=list)
    recurringDeposits: list[Transaction] = Field(default_factory=list)
    loanPayments: list[Transaction] = Field(default_factory=list)


class BankStatement(FormSection):
    metadata: BankStatementMetadata = Field(default_factory=BankStatementMetadata)
    summary: BankStatementSummary = Field(default_factory=BankStatementSummary)
    deposits: list[Transaction] = Field(default_factory=list)
    withdrawals: list[Transaction] = Field(default_factory=list)
    flags: BankStatementFlags = Field(default_factory=BankStatementFlags)
    extractionNotes: list[str] = Field(default_factory=list)


# =============================================================================
# Profit and Loss Statement
# =============================================================================


class LineItem(FormSection):
    category: Text = None
    amount: Money = None


class PnLMetadata(FormSection):
    businessName: Text = None
    periodStart: Text = None
    periodEnd: Text = None
    periodType: Text = None
    preparedBy: Text = None
    basis: Text = None


class PnLRevenue(FormSection):
    grossRevenue: Money = None
    returnsAndAllowances: Money = None
    netRevenue: Money = None
    lineItems: list[LineItem] = Field(default_factory=list)


class PnLCostOfGoodsSold(FormSection):
    beginningInventory: Money = None
    purchases: Money = None
    directLabor: Money = None
    endingInventory: Money = None
    totalCOGS: Money = None


class PnLOperatingExpenses(FormSection):
    salariesAndWages: Money = None
    officerCompensation: Money = None
    rent: Money = None
    utilities: Money = None
    insurance: Money = None
    advertising: Money = None
    professionalFees: Money = None
    repairs: Money = None
    depreciation: Money = None
    amortization: Money = None
    interest: Money = None
    taxesAndLicenses: Money = None
    otherExpenses: Money = None
    totalOperatingExpenses: Money = None
    lineItems: list[LineItem] = Field(default_factory=list)


class PnLOtherIncomeAndExpenses(FormSection):
    interestIncome: Money = None
    interestExpense: Money = None
    otherIncome: Money = None
    otherExpenses: Money = None
    totalOtherNet: Money = None


class PnLAddBacks(FormSection):
    depreciation: Money = None
    amortization: Money = None
    interest: Money = None
    ownerCompensation: Money = None
    oneTimeExpenses: list[LineItem] = Field(default_factory=list)
    totalAddBacks: Money = None
    adjustedNetIncome: Money = None


class ProfitAndLoss(FormSection):
    metadata: PnLMetadata = Field(default_factory=PnLMetadata)
    revenue: PnLRevenue = Field(default_factory=PnLRevenue)
    costOfGoodsSold: PnLCostOfGoodsSold = Field(default_factory=PnLCostOfGoodsSold)
    grossProfit: Money = None
    grossProfitMargin: Optional[float] = None
    operatingExpenses: PnLOperatingExpenses = Field(default_factory=PnLOperatingExpenses)
    operatingIncome: Money = None
    otherIncomeAndExpenses: PnLOtherIncomeAndExpenses = Field(
        default_factory=PnLOtherIncomeAndExpenses
    )
    incomeBeforeTax: Money = None
    incomeTaxExpense: Money = None
    netIncome: Money = None
    addBacks: PnLAddBacks = Field(default_factory=PnLAddBacks)
    extractionNotes: list[str] = Field(default_factory=list)


# =============================================================================
# Balance Sheet
# =============================================================================


class BalanceSheetMetadata(FormSection):
    businessName: Text = None
    asOfDate: Text = None
    preparedBy: Text = None
    basis: Text = None


class CurrentAssets(FormSection):
    cashAndCashEquivalents: Money = None
    accountsReceivable_net: Money = None
    inventory: Money = None
    prepaidExpenses: Money = None
    otherCurrentAssets: Money = None
    totalCurrentAssets: Money = None


class FixedAssets(FormSection):
    land: Money = None
    buildings: Money = None
    machineryAndEquipment: Money = None
    vehicles: Money = None
    grossPropertyAndEquipment: Money = None
    accumulatedDepreciation: Money = None
    netPropertyAndEquipment: Money = None


class OtherAssets(FormSection):
    goodwill: Money = None
    intangibleAssets_net: Money = None
    longTermInvestments: Money = None
    otherLongTermAssets: Money = None
    totalOtherAssets: Money = None


class Assets(FormSection):
    currentAssets: CurrentAssets = Field(default_factory=CurrentAssets)
    fixedAssets: FixedAssets = Field(default_factory=FixedAssets)
    otherAssets: OtherAssets = Field(default_factory=OtherAssets)
    totalAssets: Money = None


class CurrentLiabilities(FormSection):
    accountsPayable: Money = None
    accruedExpenses: Money = None
    currentPortionOfLongTermDebt: Money = None
    lineOfCreditBalance: Money = None
    creditCardPayable: Money = None
    otherCurrentLiabilities: Money = None
    totalCurrentLiabilities: Money = None


class LongTermLiabilities(FormSection):
    notesPayable_longTerm: Money = None
    mortgagePayable: Money = None
    sbaLoanPayable: Money = None
    dueToOfficers_longTerm: Money = None
    otherLongTermLiabilities: Money = None
    totalLongTermLiabilities: Money = None


class Liabilities(FormSection):
    currentLiabilities: CurrentLiabilities = Field(default_factory=CurrentLiabilities)
    longTermLiabilities: LongTermLiabilities = Field(default_factory=LongTermLiabilities)
    totalLiabilities: Money = None


class Equity(FormSection):
    commonStock: Money = None
    additionalPaidInCapital: Money = None
    retainedEarnings: Money = None
    priorRetainedEarnings: Money = None
    currentYearNetIncome: Money = None
    ownerDraws: Money = None
    otherEquity: Money = None
    totalEquity: Money = None


class BalanceSheet(FormSection):
    metadata: BalanceSheetMetadata = Field(default_factory=BalanceSheetMetadata)
    assets: Assets = Field(default_factory=Assets)
    liabilities: Liabilities = Field(default_factory=Liabilities)
    equity: Equity = Field(default_factory=Equity)
    totalLiabilitiesAndEquity: Money = None
    extractionNotes: list[str] = Field(default_factory=list)


# =============================================================================
# Rent Roll
# =============================================================================


class RentRollMetadata(FormSection):
    propertyName: Text = None
    propertyAddress: Text = None
    propertyType: Text = None
    asOfDate: Text = None
    preparedBy: Text = None


class RentRollUnit(FormSection):
    unitNumber: Text = None
    unitType: Text = None
    squareFeet: Optional[float] = None
    tenantName: Text = None
    leaseStartDate: Text = None
    leaseEndDate: Text = None
    monthlyRent: Money = None
    marketRent: Money = None
    securityDeposit: Money = None
    status: Text = None
    pastDueAmount: Money = None


class RentRollSummary(FormSection):
    totalUnits: Optional[int] = None
    occupiedUnits: Optional[int] = None
    vacantUnits: Optional[int] = None
    occupancyRate: Optional[float] = None
    totalMonthlyRent: Money = None
    totalAnnualRent: Money = None
    totalMarketRent: Money = None
    totalPastDue: Money = None


class RentRoll(FormSection):
    metadata: RentRollMetadata = Field(default_factory=RentRollMetadata)
    units: list[RentRollUnit] = Field(default_factory=list)
    summary: RentRollSummary = Field(default_factory=RentRollSummary)
    extractionNotes: list[str] = Field(default_factory=list)
