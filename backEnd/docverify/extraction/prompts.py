"""
Instruction templates for model-assisted structuring and classification.

Structuring templates are assembled from three parts:
- a short per-type description
- a null JSON skeleton generated from the canonical pydantic schema, so the
  template can never drift from the schema it is validated against
- per-type rules

Every template carries a version string that is persisted on the
extraction record for reproducible re-extraction audits.
"""

import json
import typing
from typing import Any, Dict, Type

from pydantic import BaseModel

from ..schemas.doc_types import DocType


# =============================================================================
# Schema skeletons
# =============================================================================

def _unwrap_model(annotation: Any) -> Any:
    """Return (model_class, is_list) for a field annotation, or (None, False)."""
    origin = typing.get_origin(annotation)
    args = typing.get_args(annotation)

    if origin in (list, typing.List) and args:
        inner, _ = _unwrap_model(args[0])
        return inner, True

    if origin is typing.Union or (origin is not None and type(None) in args):
        for arg in args:
            if arg is type(None):
                continue
            inner, is_list = _unwrap_model(arg)
            if inner is not None:
                return inner, is_list
        return None, False

    if isinstance(annotation, type) and issubclass(annotation, BaseModel):
        return annotation, False
    return None, False


def null_skeleton(model: Type[BaseModel]) -> Dict[str, Any]:
    """
    Build a JSON skeleton of a schema with every leaf set to null.

    Nested models become nested objects, lists of models become a
    one-element list holding the nested skeleton, and plain lists become [].
    """
    skeleton: Dict[str, Any] = {}
    for name, field_info in model.model_fields.items():
        key = field_info.alias or name
        inner, is_list = _unwrap_model(field_info.annotation)

        if inner is not None:
            nested = null_skeleton(inner)
            skeleton[key] = [nested] if is_list else nested
        elif typing.get_origin(field_info.annotation) in (list, typing.List):
            skeleton[key] = []
        else:
            skeleton[key] = None
    return skeleton


# =============================================================================
# Structuring templates
# =============================================================================

_PREAMBLE = """You are a financial data extraction specialist. Extract ALL financial data from this {description}.

Return a JSON object with this EXACT structure. Include every key shown. Use null for any field you cannot find or read. Use numbers only (no dollar signs, commas, or text). Negative numbers should use a minus sign (e.g., -5000).

{skeleton}
"""

_COMMON_RULES = [
    "NEVER guess or estimate. If you can't read it, say null.",
    "If a number is illegible, set it to null and add a note in extractionNotes.",
]

TYPE_INSTRUCTIONS: Dict[DocType, Dict[str, Any]] = {
    DocType.FORM_1040: {
        "version": "1040-v1",
        "description": "IRS Form 1040 (U.S. Individual Income Tax Return) and its attached schedules",
        "rules": [
            "Extract EVERY number you can find on every page and schedule.",
            "For Schedule C: if there are multiple businesses, include ALL in the array.",
            "For Schedule E: if there are multiple properties, include ALL.",
            "W-2 summary: include ALL W-2s attached.",
            "Verify your own work: check that totalIncome sums correctly and that grossProfit = grossReceipts - COGS.",
        ],
    },
    DocType.FORM_1120: {
        "version": "1120-v1",
        "description": "IRS Form 1120 (U.S. Corporation Income Tax Return)",
        "rules": [
            "Extract Schedule L for both the beginning and the end of the tax year.",
            "Verify: totalIncome_line11 = grossProfit_line3 + lines 4 through 10.",
        ],
    },
    DocType.FORM_1120S: {
        "version": "1120s-v1",
        "description": "IRS Form 1120-S (U.S. Income Tax Return for an S Corporation)",
        "rules": [
            "Extract Schedule K and Schedule L in full.",
            "ordinaryBusinessIncome_line22 = totalIncome_line6 - totalDeductions_line21.",
        ],
    },
    DocType.FORM_1065: {
        "version": "1065-v1",
        "description": "IRS Form 1065 (U.S. Return of Partnership Income)",
        "rules": [
            "List every partner with profit, loss and capital share percentages as numbers (e.g., 50 for 50%).",
            "Guaranteed payments appear on line 10 and on Schedule K line 4c; extract both.",
        ],
    },
    DocType.SCHEDULE_K1: {
        "version": "k1-v1",
        "description": "Schedule K-1 (from Form 1065, 1120-S, or 1041)",
        "rules": [
            "Set metadata.sourceForm to the form the K-1 was issued from (1065, 1120S or 1041).",
            "Capture the capital account analysis when present.",
        ],
    },
    DocType.W2: {
        "version": "w2-v1",
        "description": "Form W-2 (Wage and Tax Statement)",
        "rules": [
            "Extract EVERY box that has a value.",
            "Box 12 codes should be extracted as an array of {code, amount} objects.",
        ],
    },
    DocType.BANK_STATEMENT_CHECKING: {
        "version": "bank-v1",
        "description": "bank statement",
        "rules": [
            "Extract EVERY transaction on the statement. Do not skip any.",
            "Dates must be in ISO format: YYYY-MM-DD.",
            "All amounts must be positive numbers. The deposits vs. withdrawals arrays indicate direction.",
            "Verify: beginningBalance + totalDeposits - totalWithdrawals - totalFees should equal endingBalance. If it doesn't, note the discrepancy in extractionNotes.",
            "Running balance is the balance AFTER the transaction. Include if shown on the statement.",
        ],
    },
    DocType.PROFIT_AND_LOSS: {
        "version": "pnl-v1",
        "description": "Profit and Loss Statement (Income Statement)",
        "rules": [
            "grossProfitMargin is grossProfit / netRevenue as a decimal (e.g., 0.45 for 45%).",
            "List ALL revenue and expense line items in the lineItems arrays.",
            "Add-backs: depreciation, amortization and interest are always added back; adjustedNetIncome = netIncome + totalAddBacks.",
        ],
    },
    DocType.BALANCE_SHEET: {
        "version": "balance-sheet-v1",
        "description": "Balance Sheet (Statement of Financial Position)",
        "rules": [
            "THE ACCOUNTING EQUATION MUST BALANCE: totalAssets MUST equal totalLiabilitiesAndEquity. If it doesn't, note it prominently in extractionNotes.",
            "Accumulated depreciation should be shown as a positive number.",
            "Capture prior retained earnings and current year net income when shown.",
        ],
    },
    DocType.RENT_ROLL: {
        "version": "rent-roll-v1",
        "description": "Rent Roll",
        "rules": [
            "Extract EVERY unit on the rent roll. Do not skip any, even vacant ones.",
            "status is one of \"occupied\", \"vacant\", \"down_unit\", \"model\", \"employee\", or null.",
            "occupancyRate is a decimal (e.g., 0.95 for 95%).",
            "Verify: occupiedUnits + vacantUnits should equal totalUnits. Note discrepancies.",
        ],
    },
}

# Savings statements share the checking template
TYPE_INSTRUCTIONS[DocType.BANK_STATEMENT_SAVINGS] = TYPE_INSTRUCTIONS[DocType.BANK_STATEMENT_CHECKING]


def build_structuring_prompt(doc_type: DocType, schema: Type[BaseModel]) -> str:
    """Assemble the structuring template for a document type."""
    instructions = TYPE_INSTRUCTIONS[doc_type]
    skeleton = json.dumps(null_skeleton(schema), indent=2)
    rules = instructions["rules"] + _COMMON_RULES
    numbered = "\n".join(f"{i}. {rule}" for i, rule in enumerate(rules, start=1))

    return (
        _PREAMBLE.format(description=instructions["description"], skeleton=skeleton)
        + "\nCRITICAL RULES:\n"
        + numbered
    )


# =============================================================================
# Classification template
# =============================================================================

CLASSIFIER_VERSION = "classifier-v2"

CLASSIFIER_PROMPT = """You are a financial document classifier for a loan origination system.

Examine this document and classify it as exactly ONE of the following types. You MUST use the EXACT string value shown.

VALID docType VALUES (use these EXACTLY):
  FORM_1040        - IRS Form 1040, U.S. Individual Income Tax Return (includes attached schedules)
  FORM_1120        - IRS Form 1120, U.S. Corporation Income Tax Return (C-Corporation)
  FORM_1120S       - IRS Form 1120-S, U.S. Income Tax Return for an S Corporation
  FORM_1065        - IRS Form 1065, U.S. Return of Partnership Income
  SCHEDULE_K1      - Schedule K-1 (from Form 1065, 1120-S, or 1041)
  W2               - Form W-2, Wage and Tax Statement
  BANK_STATEMENT_CHECKING - Bank statement for a checking account
  BANK_STATEMENT_SAVINGS  - Bank statement for a savings account
  PROFIT_AND_LOSS  - Profit and Loss statement, Income Statement, OR IRS Schedule C
  BALANCE_SHEET    - Balance sheet or Statement of Financial Position
  RENT_ROLL        - Rent roll showing tenant details and rental income
  OTHER            - Does not match any of the above categories

IMPORTANT CLASSIFICATION RULES:
- Schedule C (Profit or Loss From Business) -> PROFIT_AND_LOSS
- Schedule E (Supplemental Income and Loss) -> FORM_1040
- A 1040 with attached schedules -> FORM_1040
- "Income Statement" is the same as Profit and Loss -> PROFIT_AND_LOSS
- W-2 (with hyphen) -> docType must be "W2"
- Form 1120-S (with hyphen) -> docType must be "FORM_1120S"

Respond with ONLY a valid JSON object:
{"docType": "FORM_1040", "year": 2023, "details": "2023 Form 1040 for John Smith, filed jointly"}

The "year" field should be the tax year or statement period year. Use the most recent year if multiple are present."""
