"""LangGraph workflow definitions for deal verification."""

from .state import DealState
from .workflow import create_workflow, run_deal, run_deal_sync

__all__ = [
    "DealState",
    "create_workflow",
    "run_deal",
    "run_deal_sync",
]
