"""
Canonical document type enumeration.

Model-returned labels are free text ("W-2", "Schedule C", "1120-S", ...);
normalize_doc_type() maps any of them onto DocType and never raises.
Unknown labels become DocType.OTHER.
"""

import re
from enum import Enum
from typing import Optional


class DocType(str, Enum):
    """Supported financial document categories."""

    FORM_1040 = "FORM_1040"
    FORM_1120 = "FORM_1120"
    FORM_1120S = "FORM_1120S"
    FORM_1065 = "FORM_1065"
    SCHEDULE_K1 = "SCHEDULE_K1"
    W2 = "W2"
    BANK_STATEMENT_CHECKING = "BANK_STATEMENT_CHECKING"
    BANK_STATEMENT_SAVINGS = "BANK_STATEMENT_SAVINGS"
    PROFIT_AND_LOSS = "PROFIT_AND_LOSS"
    BALANCE_SHEET = "BALANCE_SHEET"
    RENT_ROLL = "RENT_ROLL"
    OTHER = "OTHER"

    @property
    def is_bank_statement(self) -> bool:
        return self in BANK_STATEMENT_TYPES

    @property
    def is_tax_return(self) -> bool:
        return self in TAX_RETURN_TYPES


BANK_STATEMENT_TYPES = frozenset({
    DocType.BANK_STATEMENT_CHECKING,
    DocType.BANK_STATEMENT_SAVINGS,
})

TAX_RETURN_TYPES = frozenset({
    DocType.FORM_1040,
    DocType.FORM_1120,
    DocType.FORM_1120S,
    DocType.FORM_1065,
})

# Labels models commonly return that don't survive generic normalization
DOC_TYPE_ALIASES: dict[str, DocType] = {
    "W-2": DocType.W2,
    "W_2": DocType.W2,
    "FORM_W2": DocType.W2,
    "FORM_W-2": DocType.W2,
    "FORM_W_2": DocType.W2,
    "1040": DocType.FORM_1040,
    "1120": DocType.FORM_1120,
    "1120S": DocType.FORM_1120S,
    "1120-S": DocType.FORM_1120S,
    "1120_S": DocType.FORM_1120S,
    "FORM_1120-S": DocType.FORM_1120S,
    "FORM_1120_S": DocType.FORM_1120S,
    "1065": DocType.FORM_1065,
    "SCHEDULE_C": DocType.PROFIT_AND_LOSS,
    "SCHEDULEC": DocType.PROFIT_AND_LOSS,
    "INCOME_STATEMENT": DocType.PROFIT_AND_LOSS,
    "P&L": DocType.PROFIT_AND_LOSS,
    "PNL": DocType.PROFIT_AND_LOSS,
    "SCHEDULE_E": DocType.FORM_1040,
    "SCHEDULEE": DocType.FORM_1040,
    "K-1": DocType.SCHEDULE_K1,
    "K1": DocType.SCHEDULE_K1,
    "K_1": DocType.SCHEDULE_K1,
    "SCHEDULE_K-1": DocType.SCHEDULE_K1,
    "SCHEDULE_K_1": DocType.SCHEDULE_K1,
    "BANK_STATEMENT": DocType.BANK_STATEMENT_CHECKING,
    "BANK_STATEMENTS": DocType.BANK_STATEMENT_CHECKING,
}

_VALID_VALUES = {dt.value: dt for dt in DocType}


def normalize_doc_type(raw: Optional[str]) -> DocType:
    """
    Map a free-text document type label onto DocType.

    Order of attempts:
    1. Exact alias / canonical value on the uppercased, trimmed label
    2. Generic normalization: hyphens and spaces to underscores, then
       insert the FORM_ prefix when the label starts with a bare FORM
    3. Alias lookup on the normalized label

    Args:
        raw: Label as returned by a model or caller

    Returns:
        Matching DocType, or DocType.OTHER when nothing matches
    """
    if raw is None:
        return DocType.OTHER
    if isinstance(raw, DocType):
        return raw

    upper = str(raw).strip().upper()
    if not upper:
        return DocType.OTHER

    if upper in _VALID_VALUES:
        return _VALID_VALUES[upper]
    if upper in DOC_TYPE_ALIASES:
        return DOC_TYPE_ALIASES[upper]

    normalized = re.sub(r"[-\s]+", "_", upper)
    normalized = re.sub(r"^FORM(?!_)", "FORM_", normalized)

    if normalized in _VALID_VALUES:
        return _VALID_VALUES[normalized]
    if normalized in DOC_TYPE_ALIASES:
        return DOC_TYPE_ALIASES[normalized]

    return DocType.OTHER
