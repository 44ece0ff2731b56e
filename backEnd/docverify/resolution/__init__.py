"""Tiered automatic resolution of flagged discrepancies."""

from .resolver import (
    BulkResolution,
    DiscrepancyResolver,
    Resolved,
    ResolutionMethod,
    ResolutionResult,
    Unresolved,
    try_format_normalization,
    try_ocr_alternative,
    try_ocr_reread,
    try_rounding_tolerance,
)

__all__ = [
    "BulkResolution",
    "DiscrepancyResolver",
    "Resolved",
    "ResolutionMethod",
    "ResolutionResult",
    "Unresolved",
    "try_format_normalization",
    "try_ocr_alternative",
    "try_ocr_reread",
    "try_rounding_tolerance",
]
