"""
Deterministic Field Mapper

Translates richly-typed OCR fields into the canonical schema tree without any
model call. Pure code:
- parse_currency(): "$1,234.50" / "(1,234.50)" / "-1234.5" -> float, or None
- set_path() / get_path(): dot-path access into nested dicts
- map_lending_page(): one OCR page -> nested structured data + diagnostics
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..schemas.ocr import LendingField, LendingPage
from .field_mappings import (
    INTEGER_LEAF_SUFFIXES,
    STRING_LEAF_SUFFIXES,
    get_field_map,
)

logger = logging.getLogger(__name__)

_NUMERIC_PREFIX = re.compile(r"^(\d+(?:\.\d*)?|\.\d+)")
_NULL_TOKENS = {"", "-", "N/A", "NA", "NONE"}


# =============================================================================
# Currency parsing
# =============================================================================

def parse_currency(value: Any) -> Optional[float]:
    """
    Parse a printed money value into a float.

    Strips currency symbols, commas and whitespace. Parenthesized values and
    a leading minus are negative. Never raises.

    Args:
        value: Raw value (string or number)

    Returns:
        Parsed float, or None for empty / non-numeric input
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)

    cleaned = str(value).strip()
    if cleaned.upper() in _NULL_TOKENS:
        return None

    negative = False
    if cleaned.startswith("(") and cleaned.endswith(")"):
        negative = True
        cleaned = cleaned[1:-1].strip()

    cleaned = re.sub(r"[$,\s]", "", cleaned)
    if cleaned.startswith("-"):
        negative = True
        cleaned = cleaned[1:]

    match = _NUMERIC_PREFIX.match(cleaned)
    if not match:
        return None

    number = float(match.group(1))
    return -number if negative else number


def _parse_integer(value: str) -> Optional[int]:
    match = re.search(r"\d{4}", value) or re.search(r"\d+", value)
    return int(match.group(0)) if match else None


# =============================================================================
# Dot-path access
# =============================================================================

def set_path(tree: Dict[str, Any], path: str, value: Any) -> None:
    """
    Set a value at a dot-separated path, creating intermediate dicts.

    A non-dict value sitting where a branch is needed is overwritten with a
    branch.
    """
    parts = path.split(".")
    current = tree
    for part in parts[:-1]:
        if not isinstance(current.get(part), dict):
            current[part] = {}
        current = current[part]
    current[parts[-1]] = value


_INDEX = re.compile(r"^(\w+)\[(\d+)\]$")


def get_path(tree: Any, path: str) -> Any:
    """
    Read a value at a dot-path. Supports list indexes like "scheduleC[0].netProfit_line31".

    Returns None when any segment is missing.
    """
    current = tree
    for part in path.split("."):
        match = _INDEX.match(part)
        key, index = (match.group(1), int(match.group(2))) if match else (part, None)

        if not isinstance(current, dict) or key not in current:
            return None
        current = current[key]

        if index is not None:
            if not isinstance(current, list) or index >= len(current):
                return None
            current = current[index]
    return current


def write_path(tree: Dict[str, Any], path: str, value: Any) -> bool:
    """
    Overwrite an existing leaf addressed by a dot-path (list indexes allowed).

    Returns:
        True if the leaf's parent existed and was written
    """
    parts = path.split(".")
    parent = get_path(tree, ".".join(parts[:-1])) if len(parts) > 1 else tree
    last = _INDEX.match(parts[-1])

    if last:
        items = parent.get(last.group(1)) if isinstance(parent, dict) else None
        index = int(last.group(2))
        if not isinstance(items, list) or index >= len(items):
            return False
        items[index] = value
        return True

    if not isinstance(parent, dict):
        return False
    parent[parts[-1]] = value
    return True


# =============================================================================
# Lending page mapping
# =============================================================================

@dataclass
class LendingMapping:
    """Result of mapping one OCR page through a deterministic field map."""
    page_type: str
    mapped: Dict[str, Any] = field(default_factory=dict)
    unmapped_fields: List[str] = field(default_factory=list)
    mapped_count: int = 0
    total_fields: int = 0

    def summary(self, confidence: float) -> Dict[str, Any]:
        """Audit summary persisted as the extraction's raw response."""
        return {
            "pageType": self.page_type,
            "confidence": confidence,
            "mappedCount": self.mapped_count,
            "totalFields": self.total_fields,
            "unmappedFields": self.unmapped_fields,
        }


def _coerce_leaf(path: str, raw: str) -> Any:
    leaf = path.rsplit(".", 1)[-1]
    if leaf in STRING_LEAF_SUFFIXES:
        return raw.strip()
    if leaf in INTEGER_LEAF_SUFFIXES:
        return _parse_integer(raw)
    return parse_currency(raw)


def map_lending_fields(page_type: str, fields: List[LendingField]) -> LendingMapping:
    """
    Map richly-typed OCR fields onto schema dot-paths for a page type.

    Empty values are skipped. When the same path is hit more than once the
    higher-confidence value wins. An unknown page type maps nothing and
    reports every field as unmapped.

    Args:
        page_type: OCR page type label ("1040", "W-2", ...)
        fields: Typed fields on the page

    Returns:
        LendingMapping with the nested tree and diagnostics
    """
    result = LendingMapping(page_type=page_type, total_fields=len(fields))
    field_map = get_field_map(page_type)

    if field_map is None:
        result.unmapped_fields = [f.type for f in fields]
        return result

    best_confidence: Dict[str, float] = {}
    for lending_field in fields:
        raw = lending_field.value
        if raw is None or not str(raw).strip():
            continue

        path = field_map.get(lending_field.type)
        if path is None:
            result.unmapped_fields.append(lending_field.type)
            continue

        value = _coerce_leaf(path, str(raw))
        if value is None:
            continue

        if path in best_confidence:
            if best_confidence[path] >= lending_field.confidence:
                continue
        else:
            result.mapped_count += 1

        best_confidence[path] = lending_field.confidence
        set_path(result.mapped, path, value)

    return result


def map_lending_page(page: LendingPage) -> LendingMapping:
    """Map a single OCR lending page."""
    return map_lending_fields(page.page_type, page.fields)


def has_data(tree: Dict[str, Any]) -> bool:
    """
    Whether a mapped tree carries any usable value.

    True when at least one top-level section holds a value that is neither
    None nor zero. A tree where every section is empty counts as a miss.
    """
    for section in tree.values():
        if isinstance(section, dict):
            if any(v is not None and v != 0 for v in section.values()):
                return True
        elif section is not None and section != 0:
            return True
    return False
