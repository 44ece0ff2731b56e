"""Extraction: deterministic mapping, model structuring, validation and routing."""

from .deterministic import has_data, map_lending_page, parse_currency, set_path
from .registry import DocTypeRegistry, RegistryEntry, build_default_registry
from .router import ExtractionRouter
from .structuring import ExtractionOutcome, StructuringAdapter
from .validation import SchemaValidator, ValidationOutcome

__all__ = [
    "has_data",
    "map_lending_page",
    "parse_currency",
    "set_path",
    "DocTypeRegistry",
    "RegistryEntry",
    "build_default_registry",
    "ExtractionRouter",
    "ExtractionOutcome",
    "StructuringAdapter",
    "SchemaValidator",
    "ValidationOutcome",
]
