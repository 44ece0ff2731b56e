"""
In-memory record store with idempotent stage writes.

Every write here may be replayed by an at-least-once executor:
- stage transitions are monotonic; re-applying a reached stage is a no-op
- an ExtractionRecord upsert replaces the document's previous record
- review items for a deal are deleted and recreated on every gate pass
- the latest resolver outcome per deal replaces the previous one
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Set, Tuple

from ..errors import StageTransitionError
from ..resolution.resolver import BulkResolution
from ..schemas.ocr import OcrResult
from ..schemas.records import (
    DocumentRecord,
    ExtractionRecord,
    ProcessingStage,
    ReviewItem,
)
from ..verification.report import VerificationReport

logger = logging.getLogger(__name__)


@dataclass
class DocumentInput:
    """An uploaded document with its OCR output."""
    document_id: str
    ocr: OcrResult
    payload: Optional[bytes] = None
    media_type: str = "application/pdf"


class InMemoryRecordStore:
    """
    Process-local store for documents, extractions, OCR output and review items.

    Usage:
        store = InMemoryRecordStore()
        doc = store.add_document(DocumentRecord(deal_id="deal_1"))
        store.advance_stage(doc.document_id, ProcessingStage.CLASSIFYING)
    """

    def __init__(self):
        self._documents: Dict[str, DocumentRecord] = {}
        self._extractions: Dict[str, ExtractionRecord] = {}
        self._ocr: Dict[str, OcrResult] = {}
        self._review_items: Dict[str, List[ReviewItem]] = {}
        self._accepted_checks: Dict[str, Set[str]] = {}
        self._corrections: Dict[str, Set[Tuple[str, str]]] = {}
        self._resolutions: Dict[str, BulkResolution] = {}
        self._uploads: Dict[str, Dict[str, DocumentInput]] = {}
        self._reports: Dict[str, VerificationReport] = {}

    # =========================================================================
    # Documents
    # =========================================================================

    def add_document(self, record: DocumentRecord) -> DocumentRecord:
        """Register a document; re-adding an existing id returns the stored record."""
        existing = self._documents.get(record.document_id)
        if existing is not None:
            return existing
        self._documents[record.document_id] = record
        return record

    def get_document(self, document_id: str) -> Optional[DocumentRecord]:
        return self._documents.get(document_id)

    def documents_for_deal(self, deal_id: str) -> List[DocumentRecord]:
        return [d for d in self._documents.values() if d.deal_id == deal_id]

    def advance_stage(
        self,
        document_id: str,
        stage: ProcessingStage,
        **fields: Any,
    ) -> DocumentRecord:
        """
        Move a document to a processing stage.

        Args:
            document_id: Document to update
            stage: Target stage
            **fields: Other DocumentRecord fields to set alongside the stage

        Returns:
            The stored record after the write

        Raises:
            KeyError: Unknown document
            StageTransitionError: Leaving a terminal stage
        """
        record = self._documents[document_id]
        current = record.stage

        if stage == current:
            if fields:
                record = record.model_copy(update=fields)
                self._documents[document_id] = record
            return record

        if current.is_terminal:
            raise StageTransitionError(
                f"Document {document_id} is {current.value}; cannot move to {stage.value}"
            )

        if stage != ProcessingStage.ERROR and stage.rank < current.rank:
            logger.debug(
                f"Document {document_id} already past {stage.value} ({current.value}); skipping"
            )
            return record

        record = record.model_copy(update={
            **fields,
            "stage": stage,
            "updated_at": datetime.now(timezone.utc),
        })
        self._documents[document_id] = record
        logger.info(f"Document {document_id}: {current.value} -> {stage.value}")
        return record

    # =========================================================================
    # OCR output
    # =========================================================================

    def put_ocr(self, document_id: str, ocr: OcrResult) -> str:
        """Store OCR output; returns the reference recorded on the document."""
        self._ocr[document_id] = ocr
        return f"memory://ocr/{document_id}"

    def get_ocr(self, document_id: str) -> Optional[OcrResult]:
        return self._ocr.get(document_id)

    # =========================================================================
    # Extractions
    # =========================================================================

    def upsert_extraction(self, record: ExtractionRecord) -> ExtractionRecord:
        """Replace the live extraction for the record's document."""
        self._extractions[record.document_id] = record
        return record

    def get_extraction(self, document_id: str) -> Optional[ExtractionRecord]:
        return self._extractions.get(document_id)

    # =========================================================================
    # Review items
    # =========================================================================

    def replace_review_items(self, deal_id: str, items: List[ReviewItem]) -> List[ReviewItem]:
        """Delete a deal's review items, then store the new set."""
        self._review_items[deal_id] = list(items)
        return self._review_items[deal_id]

    def review_items(self, deal_id: str) -> List[ReviewItem]:
        return list(self._review_items.get(deal_id, []))

    def get_review_item(self, review_item_id: str) -> Optional[ReviewItem]:
        for items in self._review_items.values():
            for item in items:
                if item.review_item_id == review_item_id:
                    return item
        return None

    def update_review_item(self, item: ReviewItem) -> ReviewItem:
        items = self._review_items.get(item.deal_id, [])
        for i, existing in enumerate(items):
            if existing.review_item_id == item.review_item_id:
                items[i] = item
                return item
        raise KeyError(item.review_item_id)

    def accept_check(self, deal_id: str, check_id: str) -> None:
        """Record a reviewer's confirmation so the gate stops flagging the check."""
        self._accepted_checks.setdefault(deal_id, set()).add(check_id)

    def accepted_checks(self, deal_id: str) -> frozenset:
        return frozenset(self._accepted_checks.get(deal_id, set()))

    def record_correction(self, deal_id: str, document_id: str, field_path: str) -> None:
        """Remember a reviewer-corrected field; the resolver never overwrites it."""
        self._corrections.setdefault(deal_id, set()).add((document_id, field_path))

    def corrected_fields(self, deal_id: str) -> frozenset:
        return frozenset(self._corrections.get(deal_id, set()))

    # =========================================================================
    # Resolution outcomes
    # =========================================================================

    def save_resolution(self, deal_id: str, resolution: BulkResolution) -> None:
        """Keep the latest resolver outcome so later gate passes honor it."""
        self._resolutions[deal_id] = resolution

    def get_resolution(self, deal_id: str) -> Optional[BulkResolution]:
        return self._resolutions.get(deal_id)

    # =========================================================================
    # Uploads and reports
    # =========================================================================

    def put_upload(self, deal_id: str, upload: DocumentInput) -> None:
        """Queue an uploaded document for a deal; re-uploading an id replaces it."""
        uploads = self._uploads.setdefault(deal_id, {})
        uploads[upload.document_id] = upload
        self.put_ocr(upload.document_id, upload.ocr)

    def uploads_for_deal(self, deal_id: str) -> List[DocumentInput]:
        return list(self._uploads.get(deal_id, {}).values())

    def save_report(self, report: VerificationReport) -> None:
        self._reports[report.deal_id] = report

    def get_report(self, deal_id: str) -> Optional[VerificationReport]:
        return self._reports.get(deal_id)
