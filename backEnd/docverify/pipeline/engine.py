"""
Verification engine: the per-document and per-deal stages.

Stages, each safe to re-run:
1. process_document - classify and extract one document
2. verify           - run the verification suite over a deal
3. resolve          - close what the resolver can, write resolved values back
                      and re-verify
4. gate             - decide proceed / review and persist review items

apply_review_decision() feeds a reviewer's confirm/correct back through
verification, resolution and the gate, so one policy governs both paths.
"""

import copy
import logging
from typing import Dict, List, Optional, Tuple

from ..classification.model_classifier import DocumentClassifier
from ..config.settings import Settings, Tolerances, get_settings
from ..errors import NoUsableExtractionError
from ..extraction.deterministic import parse_currency, write_path
from ..extraction.registry import DocTypeRegistry, build_default_registry
from ..extraction.router import ExtractionRouter
from ..observability.tracing import get_tracer
from ..resolution.resolver import BulkResolution, DiscrepancyResolver, Resolved, Unresolved
from ..review.gate import GateDecision, evaluate_gate
from ..schemas.doc_types import DocType
from ..schemas.records import (
    CheckType,
    Discrepancy,
    DocumentRecord,
    ProcessingStage,
    ReviewItem,
    ReviewStatus,
)
from ..utils.parallel import parallel_map
from ..verification.cross_document import DealDocument
from ..verification.report import VerificationReport, VerificationSuite
from .store import DocumentInput, InMemoryRecordStore

logger = logging.getLogger(__name__)

# Resolve, write back and re-verify at most this many times per deal
MAX_RESOLUTION_PASSES = 3


def _check_key(discrepancy: Discrepancy) -> str:
    return discrepancy.check_id or discrepancy.discrepancy_id


def _confirms_extracted(discrepancy: Discrepancy, result: Resolved) -> bool:
    """True when the resolved value is the value already extracted."""
    value = parse_currency(result.value)
    return value is not None and value == parse_currency(discrepancy.extracted_value)


def _trail(result: Resolved) -> List[str]:
    """Methods tried up to and including the one that produced result."""
    trail = list(result.attempted_methods)
    if result.method.value not in trail:
        trail.append(result.method.value)
    return trail


class VerificationEngine:
    """
    Wires classifier, extraction router, verification suite, resolver and
    gate around a record store.

    Usage:
        engine = VerificationEngine()
        await engine.process_documents("deal_1", inputs)
        report = engine.verify("deal_1")
        resolution, report = await engine.resolve("deal_1", report)
        decision = engine.gate("deal_1", report, resolution)
    """

    def __init__(
        self,
        store: Optional[InMemoryRecordStore] = None,
        registry: Optional[DocTypeRegistry] = None,
        classifier: Optional[DocumentClassifier] = None,
        router: Optional[ExtractionRouter] = None,
        resolver: Optional[DiscrepancyResolver] = None,
        settings: Optional[Settings] = None,
        tolerances: Optional[Tolerances] = None,
    ):
        self.settings = settings or get_settings()
        self.tolerances = tolerances or self.settings.tolerances()
        self.store = store or InMemoryRecordStore()
        self.registry = registry or build_default_registry()
        self.classifier = classifier or DocumentClassifier(settings=self.settings)
        self.router = router or ExtractionRouter(self.registry, settings=self.settings)
        self.resolver = resolver or DiscrepancyResolver(
            settings=self.settings, tolerances=self.tolerances
        )
        self.suite = VerificationSuite(self.tolerances)

    # =========================================================================
    # Stage 1: per-document classification and extraction
    # =========================================================================

    async def process_document(self, deal_id: str, doc: DocumentInput) -> DocumentRecord:
        """
        Classify and extract one document.

        Re-running a document that already has a usable extraction is a
        no-op. Failures are contained: the document ends in `error` and
        its siblings are unaffected.

        Args:
            deal_id: Enclosing deal
            doc: Document and its OCR output

        Returns:
            The stored DocumentRecord
        """
        ocr_ref = self.store.put_ocr(doc.document_id, doc.ocr)
        record = self.store.add_document(
            DocumentRecord(document_id=doc.document_id, deal_id=deal_id, ocr_ref=ocr_ref)
        )
        existing = self.store.get_extraction(doc.document_id)
        if record.stage.is_terminal or (
            existing is not None
            and existing.is_usable
            and record.stage.rank >= ProcessingStage.EXTRACTED.rank
        ):
            logger.info(f"{doc.document_id}: already {record.stage.value}, skipping")
            return record

        tracer = get_tracer()
        with tracer.span("process_document", document_id=doc.document_id):
            try:
                self.store.advance_stage(doc.document_id, ProcessingStage.CLASSIFYING)
                classification = await self.classifier.classify(
                    doc.ocr, payload=doc.payload, media_type=doc.media_type
                )
                doc_type = classification.doc_type or DocType.OTHER
                record = self.store.advance_stage(
                    doc.document_id,
                    ProcessingStage.CLASSIFIED,
                    doc_type=doc_type,
                    classification_confidence=classification.confidence,
                    classification_method=classification.method,
                    year=classification.year,
                )
                tracer.log_classification(
                    doc.document_id, doc_type.value, classification.confidence, classification.method
                )

                self.store.advance_stage(doc.document_id, ProcessingStage.EXTRACTING)
                extraction = await self.router.extract(doc.document_id, doc_type, doc.ocr)
                self.store.upsert_extraction(extraction)
                tracer.log_extraction(
                    doc.document_id,
                    doc_type.value,
                    extraction.method.value,
                    extraction.tokens_used,
                    extraction.cost_usd,
                    len(extraction.validation_errors),
                )
            except Exception as e:
                logger.error(f"{doc.document_id}: processing failed: {e}")
                tracer.log_error(e, context={"deal_id": deal_id, "document_id": doc.document_id})
                return self.store.advance_stage(
                    doc.document_id, ProcessingStage.ERROR, error=str(e)
                )

            if not extraction.is_usable:
                reason = (
                    extraction.validation_errors[0].message
                    if extraction.validation_errors
                    else "Extraction produced no structured data"
                )
                logger.error(f"{doc.document_id}: no usable extraction: {reason}")
                return self.store.advance_stage(
                    doc.document_id, ProcessingStage.ERROR, error=reason
                )

            return self.store.advance_stage(doc.document_id, ProcessingStage.EXTRACTED)

    async def process_documents(
        self,
        deal_id: str,
        documents: List[DocumentInput],
    ) -> List[DocumentRecord]:
        """Process a deal's documents concurrently, bounded by max_concurrent_documents."""
        return await parallel_map(
            documents,
            lambda doc: self.process_document(deal_id, doc),
            max_concurrent=self.settings.max_concurrent_documents,
            desc=f"Processing documents for {deal_id}",
        )

    # =========================================================================
    # Stage 2: verification
    # =========================================================================

    def deal_documents(self, deal_id: str) -> List[DealDocument]:
        """Documents of a deal that have usable structured data."""
        documents = []
        for record in self.store.documents_for_deal(deal_id):
            extraction = self.store.get_extraction(record.document_id)
            if record.stage == ProcessingStage.ERROR or extraction is None or not extraction.is_usable:
                continue
            documents.append(DealDocument(
                document_id=record.document_id,
                doc_type=extraction.doc_type,
                data=extraction.structured_data,
                year=record.year,
                ocr=self.store.get_ocr(record.document_id),
            ))
        return documents

    def verify(self, deal_id: str) -> VerificationReport:
        """
        Run the verification suite over a deal.

        Raises:
            NoUsableExtractionError: No document in the deal has structured data
        """
        documents = self.deal_documents(deal_id)
        if not documents:
            raise NoUsableExtractionError(deal_id)

        for doc in documents:
            record = self.store.get_document(doc.document_id)
            # Re-verification after review leaves verified documents where they are
            if record is not None and not record.stage.is_terminal:
                self.store.advance_stage(doc.document_id, ProcessingStage.VERIFYING)
        report = self.suite.verify(deal_id, documents)
        self.store.save_report(report)
        return report

    # =========================================================================
    # Stage 3: resolution
    # =========================================================================

    async def resolve(
        self,
        deal_id: str,
        report: VerificationReport,
    ) -> Tuple[BulkResolution, VerificationReport]:
        """
        Resolve the report's discrepancies and re-verify with resolved values.

        An OCR-comparison resolution that confirms the extracted value is
        kept as is. A math resolution that confirms it is escalated, since
        the document disagrees with its own totals. A written-back value
        only counts as resolved if its check passes on re-verification.
        Checks the write-back newly breaks get their own pass, up to
        MAX_RESOLUTION_PASSES. On the last pass nothing is written; a value
        that would need writing is escalated instead.
        Fields a reviewer corrected are never overwritten.

        Returns:
            (resolver outcome, refreshed report)
        """
        ocr_by_document = {}
        for record in self.store.documents_for_deal(deal_id):
            ocr = self.store.get_ocr(record.document_id)
            if ocr is not None:
                ocr_by_document[record.document_id] = ocr

        accepted = self.store.accepted_checks(deal_id)
        corrected = self.store.corrected_fields(deal_id)
        resolved: List[Tuple[Discrepancy, Resolved]] = []
        written: Dict[str, Tuple[Discrepancy, Resolved]] = {}
        unresolved: List[Tuple[Discrepancy, Unresolved]] = []
        total_tokens = 0
        total_cost = 0.0
        tracer = get_tracer()

        for attempt in range(1, MAX_RESOLUTION_PASSES + 1):
            settled = set(accepted) | set(written)
            settled.update(_check_key(d) for d, _ in resolved + unresolved)
            pending = [d for d in report.discrepancies if _check_key(d) not in settled]
            if not pending:
                break

            outcome = await self.resolver.resolve_all(pending, ocr_by_document)
            total_tokens += outcome.total_tokens
            total_cost += outcome.total_cost
            for discrepancy, result in outcome.resolved + outcome.unresolved:
                tracer.log_resolution(deal_id, discrepancy.field_path, result.to_dict())
            unresolved.extend(outcome.unresolved)

            applied = 0
            for discrepancy, result in outcome.resolved:
                if discrepancy.check_type == CheckType.MATH and _confirms_extracted(discrepancy, result):
                    # The document itself disagrees with its own totals
                    unresolved.append((discrepancy, Unresolved(
                        reason=(
                            f"Resolved value {result.value} for {discrepancy.field_path} matches "
                            f"the extracted value, so the check still fails "
                            f"(expected {discrepancy.expected_value}): {result.explanation}"
                        ),
                        attempted_methods=_trail(result),
                    )))
                elif (
                    discrepancy.check_type == CheckType.CROSS_DOC
                    or not discrepancy.document_id
                    or _confirms_extracted(discrepancy, result)
                ):
                    resolved.append((discrepancy, result))
                elif (discrepancy.document_id, discrepancy.field_path) in corrected:
                    unresolved.append((discrepancy, Unresolved(
                        reason=(
                            f"{discrepancy.field_path} was corrected by a reviewer; "
                            f"resolved value {result.value} not applied"
                        ),
                        attempted_methods=list(result.attempted_methods),
                    )))
                elif attempt == MAX_RESOLUTION_PASSES:
                    unresolved.append((discrepancy, Unresolved(
                        reason=(
                            f"Resolved value {result.value} for {discrepancy.field_path} was not "
                            f"applied: checks did not settle after {MAX_RESOLUTION_PASSES} passes"
                        ),
                        attempted_methods=list(result.attempted_methods),
                    )))
                elif self._write_value(discrepancy.document_id, discrepancy.field_path, result.value):
                    written[_check_key(discrepancy)] = (discrepancy, result)
                    applied += 1
                else:
                    unresolved.append((discrepancy, Unresolved(
                        reason=f"Resolved value {result.value} could not be written to {discrepancy.field_path}",
                        attempted_methods=list(result.attempted_methods),
                    )))

            if not applied:
                break

            logger.info(f"Applied {applied} resolved value(s) for deal {deal_id}; re-verifying")
            report = self.verify(deal_id)
            failing = {_check_key(d) for d in report.discrepancies}
            for key in [k for k in written if k in failing]:
                discrepancy, result = written.pop(key)
                logger.warning(
                    f"Resolved value {result.value} for {discrepancy.field_path} "
                    f"did not settle {key}; retrying"
                )

        resolution = BulkResolution(
            resolved=resolved + list(written.values()),
            unresolved=unresolved,
            total_tokens=total_tokens,
            total_cost=total_cost,
        )
        self.store.save_resolution(deal_id, resolution)
        return resolution, report

    # =========================================================================
    # Stage 4: gate
    # =========================================================================

    def gate(
        self,
        deal_id: str,
        report: VerificationReport,
        resolution: Optional[BulkResolution] = None,
    ) -> GateDecision:
        """Evaluate the review gate and replace the deal's review items."""
        if resolution is None:
            resolution = self.store.get_resolution(deal_id)
        decision = evaluate_gate(
            report,
            resolution,
            self.tolerances,
            accepted_check_ids=self.store.accepted_checks(deal_id),
        )
        self.store.replace_review_items(deal_id, decision.review_items)

        for record in self.store.documents_for_deal(deal_id):
            if record.stage == ProcessingStage.VERIFYING:
                self.store.advance_stage(record.document_id, ProcessingStage.VERIFIED)
        return decision

    # =========================================================================
    # Human review
    # =========================================================================

    async def apply_review_decision(
        self,
        review_item_id: str,
        action: str,
        corrected_value: Optional[str] = None,
    ) -> GateDecision:
        """
        Apply a reviewer's decision and re-run verification, resolution
        and the gate. Confirmed checks are skipped by the resolver; anything
        a correction newly breaks goes through the resolver before review.

        Args:
            review_item_id: Item being decided
            action: "confirm" (extracted value is right) or "correct"
            corrected_value: Replacement value, required for "correct"

        Returns:
            The refreshed GateDecision for the item's deal

        Raises:
            KeyError: Unknown review item
            ValueError: Unknown action, or a correction that cannot be applied
        """
        item = self.store.get_review_item(review_item_id)
        if item is None:
            raise KeyError(review_item_id)

        if action == "confirm":
            updated = item.model_copy(update={"status": ReviewStatus.CONFIRMED})
            if item.check_id:
                self.store.accept_check(item.deal_id, item.check_id)
        elif action == "correct":
            if corrected_value is None:
                raise ValueError("corrected_value is required to correct a review item")
            if not item.document_id or not self._write_value(
                item.document_id, item.field_path, corrected_value
            ):
                raise ValueError(
                    f"Cannot apply correction to {item.field_path} of {item.document_id}"
                )
            self.store.record_correction(item.deal_id, item.document_id, item.field_path)
            updated = item.model_copy(update={
                "status": ReviewStatus.CORRECTED,
                "corrected_value": corrected_value,
            })
        else:
            raise ValueError(f"Unknown review action: {action}")

        self.store.update_review_item(updated)
        logger.info(f"Review item {review_item_id}: {updated.status.value}")

        report = self.verify(item.deal_id)
        resolution, report = await self.resolve(item.deal_id, report)
        return self.gate(item.deal_id, report, resolution)

    def review_items(self, deal_id: str) -> List[ReviewItem]:
        return self.store.review_items(deal_id)

    # =========================================================================
    # Internals
    # =========================================================================

    def _write_value(self, document_id: str, field_path: str, value: str) -> bool:
        """Patch one leaf of a document's live extraction."""
        extraction = self.store.get_extraction(document_id)
        if extraction is None:
            return False
        parsed = parse_currency(value)
        if parsed is None:
            return False

        data = copy.deepcopy(extraction.structured_data)
        if not write_path(data, field_path, parsed):
            return False
        self.store.upsert_extraction(extraction.model_copy(update={"structured_data": data}))
        return True
