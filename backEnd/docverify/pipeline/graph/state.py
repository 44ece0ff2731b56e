"""
Workflow state definition for LangGraph.

Defines the typed state that persists across deal workflow nodes.
Live objects (reports, resolver outcomes) stay in the record store; the
state carries their serialized form for callers and checkpoints.
"""

from typing import Any, Literal, Optional, TypedDict


class DealState(TypedDict, total=False):
    """
    State that persists across deal workflow nodes.

    Stages:
    processing_documents → verifying → resolving → gating → completed
    with `failed` reachable from any stage through the error handler.
    """

    deal_id: str

    current_stage: Literal[
        "processing_documents",
        "verifying",
        "resolving",
        "gating",
        "completed",
        "failed",
    ]

    # Per-document outcome: document_id -> {stage, docType, error}
    documents: dict[str, dict[str, Any]]

    # Serialized stage results
    report: dict[str, Any]
    resolution: dict[str, Any]
    decision: dict[str, Any]

    # Gate output
    status: Optional[str]
    can_proceed: bool
    review_item_ids: list[str]

    # Error tracking
    errors: list[dict[str, Any]]
    last_error: Optional[str]


def create_initial_state(deal_id: str) -> DealState:
    """
    Create initial workflow state for a deal.

    Args:
        deal_id: Deal identifier

    Returns:
        Initial workflow state
    """
    return DealState(
        deal_id=deal_id,
        current_stage="processing_documents",
        documents={},
        report={},
        resolution={},
        decision={},
        status=None,
        can_proceed=False,
        review_item_ids=[],
        errors=[],
        last_error=None,
    )
