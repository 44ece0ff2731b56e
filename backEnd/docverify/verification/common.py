"""
Numeric helpers shared by the verification checks.

Structured data is read leniently: a missing, null or non-numeric leaf
reads as 0 so a check over a partially extracted document still runs.
"""

import math
from typing import Any, Iterable, List

from ..extraction.deterministic import get_path, parse_currency


def to_number(value: Any) -> float:
    """Coerce a structured-data leaf to a finite float, or 0."""
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else 0.0
    if isinstance(value, str):
        parsed = parse_currency(value)
        return parsed if parsed is not None and math.isfinite(parsed) else 0.0
    return 0.0


def get_number(data: Any, path: str) -> float:
    """Read a numeric leaf at a dot-path; missing or non-numeric reads as 0."""
    return to_number(get_path(data, path))


def first_number(data: Any, *paths: str) -> float:
    """First non-zero value among several candidate paths."""
    for path in paths:
        value = get_number(data, path)
        if value != 0:
            return value
    return 0.0


def has_field(data: Any, path: str) -> bool:
    """True when the path exists and holds a non-null value."""
    return get_path(data, path) is not None


def sum_fields(data: Any, paths: Iterable[str]) -> float:
    return sum(get_number(data, p) for p in paths)


def as_list(value: Any) -> List[Any]:
    """Treat a single mapping as a one-element list; anything else non-list as empty."""
    if isinstance(value, list):
        return value
    if isinstance(value, dict):
        return [value]
    return []


def round2(value: float) -> float:
    return round(value, 2)


def round4(value: float) -> float:
    return round(value, 4)


def percent_diff(a: float, b: float) -> float:
    """Relative difference against the larger magnitude; 0 when both are 0."""
    largest = max(abs(a), abs(b))
    if largest == 0:
        return 0.0
    return abs(a - b) / largest


def format_amount(value: float) -> str:
    """Human-readable dollar amount used in discrepancy descriptions."""
    text = f"${abs(value):,.2f}".replace(".00", "")
    return f"{text} (negative)" if value < 0 else text


def plain_number(value: float) -> str:
    """Unformatted numeric string for discrepancy values ("85000", "0.4321")."""
    if float(value).is_integer():
        return str(int(value))
    return f"{value:.4f}".rstrip("0").rstrip(".")
