"""
Extraction Router

Decides per document how structured data is produced:
- deterministic: the OCR engine returned richly-typed fields for a
  standardized form (1040, W-2) and the mapping yielded data
- model_fallback: typed fields were available but the mapping came back
  empty (the same form sometimes arrives as plain scanned text)
- model_primary: no deterministic map exists for the page/document type

Every path ends in schema validation and one ExtractionRecord.
"""

import json
import logging
from typing import Optional

from ..config.settings import Settings
from ..schemas.doc_types import DocType
from ..schemas.ocr import LendingPage, OcrResult
from ..schemas.records import ExtractionMethod, ExtractionRecord
from .deterministic import has_data, map_lending_page
from .field_mappings import LENDING_PAGE_TYPES
from .registry import DocTypeRegistry
from .structuring import ExtractionOutcome, StructuringAdapter
from .validation import SchemaValidator

logger = logging.getLogger(__name__)

DETERMINISTIC_PROMPT_VERSION = "lending-map-v1"
DETERMINISTIC_MODEL = "ocr-lending"


def select_lending_page(ocr: OcrResult) -> Optional[LendingPage]:
    """First typed page whose page type has a deterministic map."""
    for page in ocr.lending_pages:
        if page.page_type in LENDING_PAGE_TYPES:
            return page
    return None


class ExtractionRouter:
    """Routes documents to deterministic mapping or model structuring."""

    def __init__(
        self,
        registry: DocTypeRegistry,
        structurer: Optional[StructuringAdapter] = None,
        validator: Optional[SchemaValidator] = None,
        settings: Optional[Settings] = None,
    ):
        self.registry = registry
        self.validator = validator or SchemaValidator(registry)
        self.structurer = structurer or StructuringAdapter(
            registry, validator=self.validator, settings=settings
        )

    def extract_deterministic(
        self,
        doc_type: DocType,
        page: LendingPage,
    ) -> Optional[ExtractionOutcome]:
        """
        Map a typed OCR page without any model call.

        Returns:
            ExtractionOutcome, or None when the mapping produced no data
        """
        mapping = map_lending_page(page)
        if not has_data(mapping.mapped):
            logger.warning(
                f"Deterministic mapping of page type {page.page_type} produced no data "
                f"({mapping.total_fields} fields); falling back to model structuring"
            )
            return None

        validation = self.validator.validate(doc_type, mapping.mapped)
        return ExtractionOutcome(
            structured_data=validation.data,
            raw_response=json.dumps(mapping.summary(page.page_type_confidence)),
            prompt_version=DETERMINISTIC_PROMPT_VERSION,
            model=DETERMINISTIC_MODEL,
            tokens_used=0,
            cost_usd=0.0,
            validation_errors=validation.errors,
        )

    async def extract(
        self,
        document_id: str,
        doc_type: DocType,
        ocr: OcrResult,
    ) -> ExtractionRecord:
        """
        Produce the extraction record for one document.

        Args:
            document_id: Document identifier
            doc_type: Classified document type
            ocr: OCR output for the document

        Returns:
            ExtractionRecord carrying the method actually used
        """
        page = select_lending_page(ocr)

        if page is not None:
            outcome = self.extract_deterministic(doc_type, page)
            if outcome is not None:
                logger.info(f"{document_id}: deterministic extraction ({doc_type.value})")
                return self._to_record(document_id, doc_type, ExtractionMethod.DETERMINISTIC, outcome)
            method = ExtractionMethod.MODEL_FALLBACK
        else:
            method = ExtractionMethod.MODEL_PRIMARY

        outcome = await self.structurer.structure(doc_type, ocr)
        logger.info(
            f"{document_id}: {method.value} extraction ({doc_type.value}), "
            f"{outcome.tokens_used} tokens, {len(outcome.validation_errors)} validation error(s)"
        )
        return self._to_record(document_id, doc_type, method, outcome)

    @staticmethod
    def _to_record(
        document_id: str,
        doc_type: DocType,
        method: ExtractionMethod,
        outcome: ExtractionOutcome,
    ) -> ExtractionRecord:
        return ExtractionRecord(
            document_id=document_id,
            doc_type=doc_type,
            method=method,
            structured_data=outcome.structured_data,
            raw_response=outcome.raw_response,
            prompt_version=outcome.prompt_version,
            model=outcome.model,
            tokens_used=outcome.tokens_used,
            cost_usd=outcome.cost_usd,
            validation_errors=outcome.validation_errors,
        )
