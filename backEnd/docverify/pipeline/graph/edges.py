"""Conditional edge functions for deal workflow routing."""

from typing import Literal

from .state import DealState


def check_for_errors(
    state: DealState,
) -> Literal["error", "continue"]:
    """
    Check if there are errors to handle.
    """
    if state.get("last_error"):
        return "error"
    return "continue"


def route_after_verify(
    state: DealState,
) -> Literal["error", "resolve", "gate"]:
    """
    Route after verification.

    Skips the resolver when nothing was flagged.
    """
    if state.get("last_error"):
        return "error"
    if state.get("report", {}).get("discrepancies"):
        return "resolve"
    return "gate"
