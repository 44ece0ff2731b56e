"""
OCR-vs-structured Comparison

Catches drift between what the structuring step produced and what was
actually printed: every numeric leaf of the structured data is looked up
among the OCR key-value pairs and compared.

Key matching, in order:
1. IRS line numbers and printed captions (tax forms)
2. A label phrase map for statements (bank, P&L, balance sheet, rent roll)
3. Normalized substring match on the field's last path segment

A field with no matching OCR key is informational, not a disagreement.
"""

import logging
import math
import re
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional, Tuple

from ..config.settings import Tolerances
from ..extraction.deterministic import parse_currency
from ..extraction.line_map import (
    IRS_LINE_MAPS,
    extract_line_number,
    get_captions,
    get_line_number,
)
from ..schemas.doc_types import DocType
from ..schemas.ocr import KeyValuePair, OcrResult
from .common import round2

logger = logging.getLogger(__name__)


# OCR label phrases -> normalized field-name fragments
LABEL_PHRASE_MAP: List[Tuple[List[str], List[str]]] = [
    # Bank statements
    (["total deposits", "deposits total"], ["totaldeposits"]),
    (["total withdrawals", "withdrawals total", "total debits"], ["totalwithdrawals"]),
    (["beginning balance", "opening balance", "previous balance"], ["beginningbalance"]),
    (["ending balance", "closing balance", "new balance"], ["endingbalance"]),
    # P&L
    (["gross profit", "gross margin"], ["grossprofit"]),
    (["net income", "net profit", "net earnings"], ["netincome"]),
    (["operating income", "income from operations"], ["operatingincome"]),
    (["total revenue", "net revenue", "gross revenue", "total sales"],
     ["netrevenue", "totalrevenue", "grossrevenue", "revenue"]),
    (["cost of goods sold", "cogs", "cost of sales"], ["costofgoodssold", "cogs", "totalcogs"]),
    (["operating expenses", "total operating expenses"], ["operatingexpenses", "totaloperatingexpenses"]),
    # Balance sheet
    (["total assets"], ["totalassets"]),
    (["total liabilities"], ["totalliabilities"]),
    (["total equity", "shareholders equity", "stockholders equity"], ["totalequity"]),
    (["total current assets"], ["totalcurrentassets"]),
    (["total current liabilities"], ["totalcurrentliabilities"]),
    (["total liabilities and equity", "total liabilities & equity"], ["totalliabilitiesandequity"]),
    (["retained earnings"], ["retainedearnings"]),
    (["accumulated depreciation"], ["accumulateddepreciation"]),
    # Rent roll
    (["total monthly rent", "monthly rent total"], ["totalmonthlyrent"]),
    (["total annual rent", "annual rent total"], ["totalannualrent"]),
    (["occupancy rate", "occupancy"], ["occupancyrate"]),
    (["total units"], ["totalunits"]),
]

# Leaves that are identifiers, dates or labels rather than amounts
METADATA_SEGMENTS = [
    "page", "confidence", "status", "type", "name", "address", "ein", "ssn",
    "tin", "filingStatus", "taxYear", "year", "month", "businessCode",
    "accountNumber", "routingNumber", "description", "label", "category",
    "date", "id", "index", "count", "unit",
]

_NON_ALNUM = re.compile(r"[^a-z0-9]")
_TRAILING_INDEX = re.compile(r"\[\d+\]$")


@dataclass
class OcrComparison:
    """One structured numeric field compared against its OCR reading."""
    check_id: str
    field_path: str
    structured_value: float
    ocr_value: Optional[float]
    ocr_key: Optional[str]
    matched: bool
    difference: float
    page: Optional[int] = None
    document_id: Optional[str] = None
    doc_type: Optional[DocType] = None

    @property
    def is_disagreement(self) -> bool:
        """An OCR value was found and it does not match."""
        return not self.matched and self.ocr_value is not None

    def to_dict(self) -> Dict[str, Any]:
        result = asdict(self)
        result["doc_type"] = self.doc_type.value if self.doc_type else None
        return result


# =============================================================================
# Helpers
# =============================================================================

def normalize_key(text: str) -> str:
    return _NON_ALNUM.sub("", (text or "").lower())


def parse_ocr_number(value: Any) -> Optional[float]:
    """Parse an OCR value; percentages ("12.5%") become fractions."""
    if isinstance(value, str) and value.strip().endswith("%"):
        parsed = parse_currency(value.strip()[:-1])
        return parsed / 100 if parsed is not None else None
    return parse_currency(value)


def flatten_numeric(tree: Any, prefix: str = "") -> List[Tuple[str, float]]:
    """
    Flatten numeric leaves into (path, value) pairs.

    Lists are addressed as "a[0].b". Booleans and non-finite values are skipped.
    """
    results: List[Tuple[str, float]] = []
    if isinstance(tree, dict):
        items = ((f"{prefix}.{k}" if prefix else k, v) for k, v in tree.items())
    elif isinstance(tree, list):
        items = ((f"{prefix}[{i}]", v) for i, v in enumerate(tree))
    else:
        return results

    for path, value in items:
        if isinstance(value, bool) or value is None:
            continue
        if isinstance(value, (int, float)):
            if math.isfinite(value):
                results.append((path, float(value)))
        elif isinstance(value, (dict, list)):
            results.extend(flatten_numeric(value, path))
    return results


def is_metadata_field(field_path: str) -> bool:
    last = _TRAILING_INDEX.sub("", field_path.rsplit(".", 1)[-1]).lower()
    for segment in METADATA_SEGMENTS:
        segment = segment.lower()
        if last == segment or last.startswith(f"{segment}_") or last.endswith(f"_{segment}"):
            return True
    return False


def key_matches_field(key: str, field_path: str, doc_type: Optional[DocType] = None) -> bool:
    """
    Whether an OCR key label could be the printed source of a structured field.

    Args:
        key: OCR key label
        field_path: Structured dot-path
        doc_type: Document type, enables IRS line-number matching

    Returns:
        True on any of the three matching tiers
    """
    normalized_key = normalize_key(key)
    if not normalized_key:
        return False

    # 1. IRS line numbers and captions
    line = get_line_number(doc_type, field_path) if doc_type in IRS_LINE_MAPS else None
    if line is not None and extract_line_number(key) == line:
        return True
    for caption in get_captions(field_path):
        if normalize_key(caption) in normalized_key:
            return True

    # 2. Statement label phrases
    tail = normalize_key(_TRAILING_INDEX.sub("", field_path.rsplit(".", 1)[-1]))
    for phrases, fragments in LABEL_PHRASE_MAP:
        if any(normalize_key(p) in normalized_key for p in phrases) and any(
            f in tail or tail in f for f in fragments
        ):
            return True

    # 3. Direct substring
    if len(tail) >= 4 and (
        tail in normalized_key or (len(normalized_key) >= 4 and normalized_key in tail)
    ):
        return True
    return False


# =============================================================================
# Comparison
# =============================================================================

def compare_ocr_to_structured(
    doc_type: Optional[DocType],
    structured_data: Optional[Dict[str, Any]],
    key_value_pairs: List[KeyValuePair],
    tolerances: Optional[Tolerances] = None,
    document_id: Optional[str] = None,
) -> List[OcrComparison]:
    """
    Compare every numeric structured field with the closest matching OCR value.

    Args:
        doc_type: Document type (enables IRS line matching for tax forms)
        structured_data: Structured data tree
        key_value_pairs: OCR key-value pairs for the document
        tolerances: Match tolerance source
        document_id: Originating document

    Returns:
        One OcrComparison per non-zero, non-metadata numeric field
    """
    if not structured_data or not key_value_pairs:
        return []

    tolerance = (tolerances or Tolerances()).ocr_match
    parsed_pairs: List[Tuple[KeyValuePair, float]] = []
    for kv in key_value_pairs:
        value = parse_ocr_number(kv.value)
        if value is not None:
            parsed_pairs.append((kv, value))

    comparisons: List[OcrComparison] = []
    for path, structured_value in flatten_numeric(structured_data):
        if structured_value == 0 or is_metadata_field(path):
            continue

        best: Optional[Tuple[KeyValuePair, float, float]] = None
        for kv, ocr_value in parsed_pairs:
            if not key_matches_field(kv.key, path, doc_type):
                continue
            diff = abs(structured_value - ocr_value)
            if best is None or diff < best[2]:
                best = (kv, ocr_value, diff)

        check_id = f"ocr:{document_id or '-'}:{path}"
        if best is None:
            comparisons.append(OcrComparison(
                check_id=check_id,
                field_path=path,
                structured_value=structured_value,
                ocr_value=None,
                ocr_key=None,
                matched=False,
                difference=round2(abs(structured_value)),
                document_id=document_id,
                doc_type=doc_type,
            ))
            continue

        kv, ocr_value, diff = best
        comparisons.append(OcrComparison(
            check_id=check_id,
            field_path=path,
            structured_value=structured_value,
            ocr_value=ocr_value,
            ocr_key=kv.key,
            matched=diff <= tolerance,
            difference=round2(diff),
            page=kv.page,
            document_id=document_id,
            doc_type=doc_type,
        ))

    disagreements = sum(1 for c in comparisons if c.is_disagreement)
    logger.info(
        f"OCR comparison for {document_id or '-'}: {len(comparisons)} fields, "
        f"{disagreements} disagreement(s)"
    )
    return comparisons


def locate_field_page(
    ocr: Optional[OcrResult],
    doc_type: Optional[DocType],
    field_path: str,
) -> Optional[int]:
    """
    Best guess of the page a structured field was printed on.

    Uses the first OCR key matching the field; single-page documents
    default to page 1. None when the page cannot be determined.
    """
    if ocr is None:
        return None
    for kv in ocr.key_value_pairs:
        if key_matches_field(kv.key, field_path, doc_type):
            return kv.page
    return 1 if ocr.page_count <= 1 else None
