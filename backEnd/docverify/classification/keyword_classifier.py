"""
Deterministic Document Classifier (Tiers 1-3)

Classifies OCR output without any network I/O:
1. Literal form titles / patterns in the text - confidence: high
2. Co-occurring OCR field labels - confidence: medium
3. Contextual combinations of domain terms - confidence: medium

Pattern order matters: sub-variant forms (1120-S) are checked before their
parent form (1120) so the parent pattern never shadows them.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Pattern, Tuple

from ..schemas.doc_types import DocType
from ..schemas.ocr import KeyValuePair

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClassificationResult:
    """Outcome of classifying a single document."""
    doc_type: Optional[DocType]
    confidence: str  # "high" | "medium" | "none"
    method: str  # "keyword" | "kv_key" | "model" | "none"
    year: Optional[int] = None
    details: Optional[str] = None
    tokens_used: int = 0
    cost_usd: float = 0.0

    @property
    def is_match(self) -> bool:
        return self.doc_type is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "doc_type": self.doc_type.value if self.doc_type else None,
            "confidence": self.confidence,
            "method": self.method,
            "year": self.year,
            "details": self.details,
            "tokens_used": self.tokens_used,
            "cost_usd": self.cost_usd,
        }


NO_MATCH = ClassificationResult(doc_type=None, confidence="none", method="none")


# =============================================================================
# Tier 1: form titles and patterns
# =============================================================================

def _compile(*patterns: str) -> List[Pattern[str]]:
    return [re.compile(p) for p in patterns]


# Ordered most-specific first
TIER1_RULES: List[Tuple[DocType, List[Pattern[str]]]] = [
    (DocType.FORM_1120S, _compile(
        r"form\s*1120[\s-]*s\b",
        r"\b1120s\b",
        r"income tax return for an s corporation",
    )),
    (DocType.FORM_1120, _compile(
        r"form\s*1120\b",
        r"u\.s\. corporation income tax return",
    )),
    (DocType.FORM_1065, _compile(
        r"form\s*1065\b",
        r"return of partnership income",
    )),
    (DocType.SCHEDULE_K1, _compile(
        r"schedule\s*k[\s-]*1\b",
        r"partner's share of income",
        r"shareholder's share of income",
    )),
    (DocType.FORM_1040, _compile(
        r"form\s*1040\b",
        r"u\.s\. individual income tax return",
        r"\b1040\b",
    )),
    # Schedule C on its own is a sole-proprietor P&L
    (DocType.PROFIT_AND_LOSS, _compile(
        r"schedule\s*c\b",
        r"profit or loss from business",
    )),
    # Schedule E is only ever filed with a 1040
    (DocType.FORM_1040, _compile(
        r"schedule\s*e\b",
        r"supplemental income and loss",
    )),
    (DocType.W2, _compile(
        r"\bw[\s-]*2\b",
        r"wage and tax statement",
    )),
    (DocType.RENT_ROLL, _compile(
        r"rent\s*roll",
    )),
]

_TENANT = re.compile(r"tenant")
_MONTHLY_RENT = re.compile(r"monthly\s*rent")


def _classify_by_text(text: str) -> Optional[DocType]:
    for doc_type, patterns in TIER1_RULES:
        if any(p.search(text) for p in patterns):
            return doc_type

    if _TENANT.search(text) and _MONTHLY_RENT.search(text):
        return DocType.RENT_ROLL

    return None


# =============================================================================
# Tier 2: field-label co-occurrence
# =============================================================================

def _has_any(haystack: str, needles: Iterable[str]) -> bool:
    return any(n in haystack for n in needles)


def _has_all(haystack: str, needles: Iterable[str]) -> bool:
    return all(n in haystack for n in needles)


def _classify_by_keys(keys: str) -> Optional[DocType]:
    if _has_any(keys, ["adjusted gross income", "filing status", "taxable income"]):
        return DocType.FORM_1040

    if (
        _has_any(keys, ["wages, tips", "wages,tips"])
        and _has_all(keys, ["federal income tax withheld", "employer"])
    ):
        return DocType.W2

    if _has_all(keys, ["ordinary business income", "partner"]):
        return DocType.FORM_1065

    if _has_all(keys, ["total assets", "total liabilities"]):
        return DocType.BALANCE_SHEET

    if _has_any(keys, ["net income", "net profit"]) and _has_any(keys, ["revenue", "sales"]):
        return DocType.PROFIT_AND_LOSS

    if "savings" in keys and _has_any(keys, ["balance", "account"]):
        return DocType.BANK_STATEMENT_SAVINGS

    if _has_any(keys, ["beginning balance", "ending balance"]) and "account number" in keys:
        return DocType.BANK_STATEMENT_CHECKING

    return None


# =============================================================================
# Tier 3: contextual domain terms
# =============================================================================

KNOWN_BANKS = [
    "chase",
    "wells fargo",
    "bank of america",
    "citibank",
    "citi bank",
    "pnc",
    "us bank",
    "u.s. bank",
    "capital one",
    "td bank",
    "truist",
    "fifth third",
    "regions bank",
    "citizens bank",
    "huntington",
    "m&t bank",
    "keybank",
    "ally bank",
    "discover bank",
    "synchrony",
    "bmo",
    "first republic",
    "silicon valley bank",
    "comerica",
    "zions",
    "webster bank",
    "east west bank",
    "popular bank",
    "new york community bank",
    "valley national bank",
]

_ASSETS = re.compile(r"\bassets\b")
_LIABILITIES = re.compile(r"\bliabilities\b")
_EQUITY = re.compile(r"\bequity\b")
_REVENUE = re.compile(r"\brevenue\b")
_EXPENSES = re.compile(r"\bexpenses\b")
_NET_RESULT = re.compile(r"\bnet\s+(income|profit|loss)\b")
_DOLLAR_AMOUNT = re.compile(r"\$[\d,]+")


def _classify_by_context(text: str) -> Optional[DocType]:
    if "savings account" in text or "savings statement" in text:
        return DocType.BANK_STATEMENT_SAVINGS

    if _has_any(text, KNOWN_BANKS) and _has_all(text, ["statement", "account"]):
        return DocType.BANK_STATEMENT_CHECKING

    if _ASSETS.search(text) and _LIABILITIES.search(text) and _EQUITY.search(text):
        return DocType.BALANCE_SHEET

    if _REVENUE.search(text) and _EXPENSES.search(text) and _NET_RESULT.search(text):
        return DocType.PROFIT_AND_LOSS

    if (
        _has_all(text, ["unit", "tenant", "rent"])
        and _DOLLAR_AMOUNT.search(text)
    ):
        return DocType.RENT_ROLL

    return None


# =============================================================================
# Public entry point
# =============================================================================

def classify(
    raw_text: str,
    key_value_pairs: Optional[List[KeyValuePair]] = None,
) -> ClassificationResult:
    """
    Classify a document from its OCR text and key-value pairs.

    Pure and deterministic: identical input always yields an identical result.

    Args:
        raw_text: Full OCR text
        key_value_pairs: OCR key-value pairs (only the keys are used)

    Returns:
        ClassificationResult; doc_type is None when no tier matched and the
        caller should escalate to the model classifier
    """
    text = (raw_text or "").lower()
    keys = " | ".join(kv.key.lower() for kv in (key_value_pairs or []))

    doc_type = _classify_by_text(text)
    if doc_type is not None:
        return ClassificationResult(doc_type=doc_type, confidence="high", method="keyword")

    if keys:
        doc_type = _classify_by_keys(keys)
        if doc_type is not None:
            return ClassificationResult(doc_type=doc_type, confidence="medium", method="kv_key")

    doc_type = _classify_by_context(text)
    if doc_type is not None:
        return ClassificationResult(doc_type=doc_type, confidence="medium", method="keyword")

    logger.debug("No deterministic classification tier matched")
    return NO_MATCH
