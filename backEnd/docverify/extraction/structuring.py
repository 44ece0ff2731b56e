"""
Model-Assisted Structuring Adapter

Turns OCR output for a non-standardized document into schema-shaped data:
1. Assemble one textual context (raw text, page-grouped key-value summary,
   flattened tables)
2. Submit it with the type's instruction template
3. Parse the response tolerantly and validate it

Nothing here raises for bad model output. An unparseable response, a failed
call or a missing template all come back as an empty result carrying a
"_root" validation error, so the pipeline keeps going and the document
surfaces for review.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..config.settings import Settings, get_settings
from ..errors import CompletionError, UnsupportedDocumentTypeError
from ..llm.completion import TextCompletionClient, estimate_cost
from ..observability.tracing import traced
from ..schemas.doc_types import DocType
from ..schemas.ocr import KeyValuePair, OcrResult, OcrTable
from ..schemas.records import FieldError
from ..utils.json_parsing import safe_parse_json
from .registry import DocTypeRegistry
from .validation import SchemaValidator

logger = logging.getLogger(__name__)


@dataclass
class ExtractionOutcome:
    """Per-document output contract of an extraction pass."""
    structured_data: Dict[str, Any] = field(default_factory=dict)
    raw_response: str = ""
    prompt_version: str = "unknown"
    model: str = ""
    tokens_used: int = 0
    cost_usd: float = 0.0
    validation_errors: List[FieldError] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "structuredData": self.structured_data,
            "rawResponse": self.raw_response,
            "promptVersion": self.prompt_version,
            "model": self.model,
            "tokensUsed": self.tokens_used,
            "costUsd": self.cost_usd,
            "validationErrors": [e.model_dump() for e in self.validation_errors],
        }


# =============================================================================
# Context assembly
# =============================================================================

def build_key_value_summary(pairs: List[KeyValuePair]) -> str:
    """Render key-value pairs grouped by page, pages in ascending order."""
    by_page: Dict[int, List[str]] = defaultdict(list)
    for kv in pairs:
        by_page[kv.page].append(
            f'  "{kv.key}": "{kv.value}" (confidence: {kv.confidence * 100:.1f}%)'
        )

    lines: List[str] = []
    for page in sorted(by_page):
        lines.append(f"--- Page {page} ---")
        lines.extend(by_page[page])
    return "\n".join(lines)


def build_table_summary(tables: List[OcrTable]) -> List[str]:
    rendered = []
    for i, table in enumerate(tables, start=1):
        rows = "\n".join(" | ".join(f'"{cell}"' for cell in row) for row in table.rows)
        rendered.append(f"Table {i} (Page {table.page}):\n{rows}")
    return rendered


def build_text_content(ocr: OcrResult) -> str:
    """Assemble the full structuring context for a document."""
    return "\n".join([
        "=== RAW TEXT FROM DOCUMENT ===",
        ocr.raw_text,
        "",
        "=== KEY-VALUE PAIRS DETECTED ===",
        build_key_value_summary(ocr.key_value_pairs),
        "",
        "=== TABLES DETECTED ===",
        *build_table_summary(ocr.tables),
    ])


# =============================================================================
# Adapter
# =============================================================================

class StructuringAdapter:
    """Structures OCR output with the completion client, per document type."""

    def __init__(
        self,
        registry: DocTypeRegistry,
        client: Optional[TextCompletionClient] = None,
        validator: Optional[SchemaValidator] = None,
        settings: Optional[Settings] = None,
    ):
        self.registry = registry
        self.settings = settings or get_settings()
        self._client = client
        self.validator = validator or SchemaValidator(registry)

    @property
    def client(self) -> TextCompletionClient:
        """Completion client (lazy loaded)."""
        if self._client is None:
            self._client = TextCompletionClient(settings=self.settings)
        return self._client

    @traced("structure_document", run_type="llm")
    async def structure(self, doc_type: DocType, ocr: OcrResult) -> ExtractionOutcome:
        """
        Structure one document with the model.

        Args:
            doc_type: Classified document type
            ocr: OCR output for the document

        Returns:
            ExtractionOutcome; failures are reported as "_root" errors
        """
        entry = self.registry.get(doc_type)
        if entry is None:
            error = UnsupportedDocumentTypeError(doc_type.value)
            logger.warning(str(error))
            return ExtractionOutcome(
                model=self.client.model_name,
                validation_errors=[FieldError(path="_root", message=str(error))],
            )

        text_content = build_text_content(ocr)

        try:
            response = await self.client.structure(
                entry.prompt,
                text_content,
                self.settings.structuring_max_tokens,
            )
        except CompletionError as e:
            logger.warning(f"Structuring call failed for {doc_type.value}: {e}")
            return ExtractionOutcome(
                prompt_version=entry.version,
                model=self.client.model_name,
                validation_errors=[
                    FieldError(path="_root", message=f"Structuring call failed: {e}")
                ],
            )

        tokens_used = response.tokens_used
        cost_usd = estimate_cost(response.input_tokens, response.output_tokens, self.settings)

        parsed = safe_parse_json(response.text)
        if parsed is None:
            logger.warning(f"Unparseable structuring response for {doc_type.value}")
            return ExtractionOutcome(
                raw_response=response.text,
                prompt_version=entry.version,
                model=response.model,
                tokens_used=tokens_used,
                cost_usd=cost_usd,
                validation_errors=[
                    FieldError(
                        path="_root",
                        message=(
                            "Failed to parse model response as JSON. "
                            f"Response starts with: {response.text[:100]}"
                        ),
                    )
                ],
            )

        validation = self.validator.validate(doc_type, parsed)
        return ExtractionOutcome(
            structured_data=validation.data,
            raw_response=response.text,
            prompt_version=entry.version,
            model=response.model,
            tokens_used=tokens_used,
            cost_usd=cost_usd,
            validation_errors=validation.errors,
        )
