"""
Document type registry.

One explicit registry, built once at startup and passed by reference into the
structuring adapter, validator and router. Each entry pairs a canonical
schema with the instruction template generated from it.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterator, Optional, Type

from pydantic import BaseModel

from ..schemas.doc_types import DocType
from ..schemas.statements import BalanceSheet, BankStatement, ProfitAndLoss, RentRoll
from ..schemas.tax_forms import W2, Form1040, Form1065, Form1120, Form1120S, ScheduleK1
from .prompts import TYPE_INSTRUCTIONS, build_structuring_prompt

logger = logging.getLogger(__name__)

CANONICAL_SCHEMAS: Dict[DocType, Type[BaseModel]] = {
    DocType.FORM_1040: Form1040,
    DocType.FORM_1120: Form1120,
    DocType.FORM_1120S: Form1120S,
    DocType.FORM_1065: Form1065,
    DocType.SCHEDULE_K1: ScheduleK1,
    DocType.W2: W2,
    DocType.BANK_STATEMENT_CHECKING: BankStatement,
    DocType.BANK_STATEMENT_SAVINGS: BankStatement,
    DocType.PROFIT_AND_LOSS: ProfitAndLoss,
    DocType.BALANCE_SHEET: BalanceSheet,
    DocType.RENT_ROLL: RentRoll,
}


@dataclass(frozen=True)
class RegistryEntry:
    """Template, version and schema for one document type."""
    prompt: str
    version: str
    schema: Type[BaseModel]


class DocTypeRegistry:
    """Lookup of structuring templates and schemas by document type."""

    def __init__(self, entries: Optional[Dict[DocType, RegistryEntry]] = None):
        self._entries: Dict[DocType, RegistryEntry] = dict(entries or {})

    def register(self, doc_type: DocType, entry: RegistryEntry) -> None:
        self._entries[doc_type] = entry

    def get(self, doc_type: DocType) -> Optional[RegistryEntry]:
        return self._entries.get(doc_type)

    def schema_for(self, doc_type: DocType) -> Optional[Type[BaseModel]]:
        entry = self._entries.get(doc_type)
        return entry.schema if entry else None

    def __contains__(self, doc_type: object) -> bool:
        return doc_type in self._entries

    def __iter__(self) -> Iterator[DocType]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)


def build_default_registry() -> DocTypeRegistry:
    """
    Build the registry for every supported document type.

    OTHER is intentionally absent: it has no schema and no template.
    """
    registry = DocTypeRegistry()
    for doc_type, schema in CANONICAL_SCHEMAS.items():
        registry.register(
            doc_type,
            RegistryEntry(
                prompt=build_structuring_prompt(doc_type, schema),
                version=TYPE_INSTRUCTIONS[doc_type]["version"],
                schema=schema,
            ),
        )
    logger.debug(f"Built document registry with {len(registry)} types")
    return registry
