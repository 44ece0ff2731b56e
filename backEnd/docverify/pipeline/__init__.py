"""Deal pipeline: record store, engine stages and the LangGraph workflow."""

from .engine import VerificationEngine
from .store import DocumentInput, InMemoryRecordStore

__all__ = [
    "DocumentInput",
    "InMemoryRecordStore",
    "VerificationEngine",
]
