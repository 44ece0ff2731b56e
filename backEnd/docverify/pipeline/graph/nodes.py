"""
LangGraph node functions for the deal workflow.

1. process_documents - classify and extract every uploaded document (bounded parallel)
2. verify            - run the verification suite
3. resolve           - run the discrepancy resolver and re-verify
4. gate              - review gate decision and review items
5. error_handler     - record a terminal failure

Each node:
1. Reads inputs from the record store
2. Runs one engine stage
3. Returns the updated state
"""

import logging

from ...errors import NoUsableExtractionError
from ...observability.tracing import get_tracer
from ...schemas.records import ProcessingStage
from ..engine import VerificationEngine
from .state import DealState

logger = logging.getLogger(__name__)


class DealNodes:
    """Node functions bound to one engine instance."""

    def __init__(self, engine: VerificationEngine):
        self.engine = engine

    async def process_documents_node(self, state: DealState) -> DealState:
        """
        Classify and extract the deal's uploaded documents.

        A deal where no document produced a usable extraction fails here.
        """
        deal_id = state["deal_id"]
        tracer = get_tracer()

        with tracer.span("process_documents", deal_id=deal_id):
            uploads = self.engine.store.uploads_for_deal(deal_id)
            records = await self.engine.process_documents(deal_id, uploads)

            documents = {
                r.document_id: {
                    "stage": r.stage.value,
                    "docType": r.doc_type.value if r.doc_type else None,
                    "error": r.error,
                }
                for r in records
            }
            for record in records:
                tracer.log_stage_transition(
                    record.document_id, ProcessingStage.UPLOADED.value, record.stage.value
                )

            if not any(r.stage != ProcessingStage.ERROR for r in records):
                return {
                    **state,
                    "documents": documents,
                    "last_error": str(NoUsableExtractionError(deal_id)),
                }

            return {
                **state,
                "documents": documents,
                "current_stage": "verifying",
            }

    async def verify_node(self, state: DealState) -> DealState:
        deal_id = state["deal_id"]

        with get_tracer().span("verify", deal_id=deal_id):
            try:
                report = self.engine.verify(deal_id)
            except NoUsableExtractionError as e:
                return {**state, "last_error": str(e)}

            return {
                **state,
                "report": report.to_dict(),
                "status": report.status.value,
                "current_stage": "resolving",
            }

    async def resolve_node(self, state: DealState) -> DealState:
        """
        Run the resolver over the latest report's discrepancies.

        Resolved values are written back and the report refreshed.
        """
        deal_id = state["deal_id"]

        with get_tracer().span("resolve", deal_id=deal_id):
            report = self.engine.store.get_report(deal_id)
            resolution, report = await self.engine.resolve(deal_id, report)

            return {
                **state,
                "report": report.to_dict(),
                "resolution": resolution.to_dict(),
                "current_stage": "gating",
            }

    async def gate_node(self, state: DealState) -> DealState:
        deal_id = state["deal_id"]

        with get_tracer().span("gate", deal_id=deal_id):
            report = self.engine.store.get_report(deal_id)
            decision = self.engine.gate(deal_id, report)

            return {
                **state,
                "decision": decision.to_dict(),
                "status": decision.status.value,
                "can_proceed": decision.can_proceed,
                "review_item_ids": [i.review_item_id for i in decision.review_items],
                "current_stage": "completed",
            }

    async def error_handler_node(self, state: DealState) -> DealState:
        """
        Handle a terminal deal failure.
        """
        error = state.get("last_error", "Unknown error")
        logger.error(f"Deal {state['deal_id']} failed at {state.get('current_stage')}: {error}")
        get_tracer().log_error(
            Exception(error),
            context={"deal_id": state["deal_id"], "stage": state.get("current_stage")},
        )

        return {
            **state,
            "current_stage": "failed",
            "can_proceed": False,
            "errors": [*state.get("errors", []), {"error": error, "stage": state.get("current_stage")}],
        }
