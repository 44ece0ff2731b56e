"""
LangGraph workflow for verifying a deal.

                 process_documents
                        │
                        ▼
                     verify ──────────────┐
                        │ (discrepancies) │ (nothing flagged)
                        ▼                 │
                     resolve              │
                        │                 │
                        ▼                 │
                      gate ◄──────────────┘
                        │
                        ▼
                       END

process_documents and verify branch to error_handler when the deal has no
usable extraction. Re-invoking a deal is safe: completed document stages
are skipped and review items are recreated.
"""

import asyncio
from typing import List, Optional

from langgraph.checkpoint.memory import MemorySaver
from langgraph.graph import END, StateGraph

from ..engine import VerificationEngine
from ..store import DocumentInput
from .edges import check_for_errors, route_after_verify
from .nodes import DealNodes
from .state import DealState, create_initial_state


def create_workflow(
    engine: VerificationEngine,
    checkpointer: Optional[MemorySaver] = None,
):
    """
    Build the deal verification workflow.

    Args:
        engine: Engine whose stages the nodes run
        checkpointer: State checkpointer (in-memory by default)

    Returns:
        Compiled workflow graph
    """
    nodes = DealNodes(engine)
    workflow = StateGraph(DealState)

    # ==========================================================================
    # Add nodes
    # ==========================================================================
    workflow.add_node("process_documents", nodes.process_documents_node)
    workflow.add_node("verify", nodes.verify_node)
    workflow.add_node("resolve", nodes.resolve_node)
    workflow.add_node("gate", nodes.gate_node)
    workflow.add_node("error_handler", nodes.error_handler_node)

    workflow.set_entry_point("process_documents")

    # ==========================================================================
    # Edges
    # ==========================================================================
    workflow.add_conditional_edges(
        "process_documents",
        check_for_errors,
        {
            "error": "error_handler",
            "continue": "verify",
        },
    )
    workflow.add_conditional_edges(
        "verify",
        route_after_verify,
        {
            "error": "error_handler",
            "resolve": "resolve",
            "gate": "gate",
        },
    )
    workflow.add_edge("resolve", "gate")
    workflow.add_edge("gate", END)
    workflow.add_edge("error_handler", END)

    return workflow.compile(checkpointer=checkpointer or MemorySaver())


async def run_deal(
    engine: VerificationEngine,
    deal_id: str,
    documents: List[DocumentInput],
    thread_id: Optional[str] = None,
) -> DealState:
    """
    Run the full pipeline for a deal.

    Args:
        engine: Verification engine (its store receives the uploads)
        deal_id: Deal identifier
        documents: Uploaded documents with OCR output
        thread_id: Checkpoint thread (defaults to the deal id)

    Returns:
        Final workflow state
    """
    for doc in documents:
        engine.store.put_upload(deal_id, doc)

    app = create_workflow(engine)
    config = {"configurable": {"thread_id": thread_id or deal_id}}
    return await app.ainvoke(create_initial_state(deal_id), config)


def run_deal_sync(
    engine: VerificationEngine,
    deal_id: str,
    documents: List[DocumentInput],
) -> DealState:
    """
    Synchronous wrapper for run_deal.
    """
    return asyncio.run(run_deal(engine, deal_id, documents))
