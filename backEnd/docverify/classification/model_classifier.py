"""
Model-based document classifier (tier 4).

Used only after every deterministic tier returned no match. Sends the raw
document payload (or, when no payload is at hand, the OCR text) to the
completion service and normalizes the returned label onto DocType.

Never raises: call failures and unparseable responses classify as OTHER.
"""

import logging
from typing import Any, Optional

from ..config.settings import Settings, get_settings
from ..errors import CompletionError
from ..extraction.prompts import CLASSIFIER_PROMPT
from ..llm.completion import CompletionResult, TextCompletionClient, estimate_cost
from ..schemas.doc_types import DocType, normalize_doc_type
from ..schemas.ocr import OcrResult
from ..utils.json_parsing import safe_parse_json
from .keyword_classifier import ClassificationResult, classify

logger = logging.getLogger(__name__)


def parse_year(value: Any) -> Optional[int]:
    """Accept an int year or a numeric string; anything else is None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        digits = value.strip()
        return int(digits) if digits.isdigit() else None
    return None


class ModelClassifier:
    """Classifies documents with the completion service."""

    def __init__(
        self,
        client: Optional[TextCompletionClient] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self._client = client

    @property
    def client(self) -> TextCompletionClient:
        """Completion client (lazy loaded)."""
        if self._client is None:
            self._client = TextCompletionClient(settings=self.settings)
        return self._client

    async def classify(
        self,
        payload: Optional[bytes] = None,
        media_type: str = "application/pdf",
        raw_text: str = "",
    ) -> ClassificationResult:
        """
        Classify a document.

        Args:
            payload: Original document bytes, preferred when available
            media_type: MIME type of the payload
            raw_text: OCR text, used when no payload is supplied

        Returns:
            ClassificationResult with method "model"
        """
        max_tokens = self.settings.classifier_max_tokens
        try:
            if payload:
                response = await self.client.structure_document(
                    CLASSIFIER_PROMPT,
                    payload,
                    max_tokens,
                    media_type=media_type,
                    instruction="Classify this document. Respond with JSON only.",
                )
            else:
                response = await self.client.structure(CLASSIFIER_PROMPT, raw_text, max_tokens)
        except CompletionError as e:
            logger.warning(f"Model classification failed: {e}")
            return ClassificationResult(
                doc_type=DocType.OTHER,
                confidence="none",
                method="model",
                details=f"Classification failed: {e}",
            )

        return self._parse(response)

    def _parse(self, response: CompletionResult) -> ClassificationResult:
        tokens_used = response.tokens_used
        cost_usd = estimate_cost(response.input_tokens, response.output_tokens, self.settings)

        parsed = safe_parse_json(response.text)
        if parsed is None:
            logger.warning("Model classification response could not be parsed")
            return ClassificationResult(
                doc_type=DocType.OTHER,
                confidence="none",
                method="model",
                details=(
                    "Classification failed: could not parse response. "
                    f"Raw: {response.text[:200]}"
                ),
                tokens_used=tokens_used,
                cost_usd=cost_usd,
            )

        doc_type = normalize_doc_type(parsed.get("docType"))
        details = parsed.get("details")
        return ClassificationResult(
            doc_type=doc_type,
            confidence="medium" if doc_type != DocType.OTHER else "none",
            method="model",
            year=parse_year(parsed.get("year")),
            details=details if isinstance(details, str) else "",
            tokens_used=tokens_used,
            cost_usd=cost_usd,
        )


class DocumentClassifier:
    """
    Full classification chain: deterministic tiers first, model last.

    The model is only consulted when no deterministic tier matched.
    """

    def __init__(
        self,
        model_classifier: Optional[ModelClassifier] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings
        self._model_classifier = model_classifier

    @property
    def model_classifier(self) -> ModelClassifier:
        if self._model_classifier is None:
            self._model_classifier = ModelClassifier(settings=self.settings)
        return self._model_classifier

    async def classify(
        self,
        ocr: OcrResult,
        payload: Optional[bytes] = None,
        media_type: str = "application/pdf",
    ) -> ClassificationResult:
        result = classify(ocr.raw_text, ocr.key_value_pairs)
        if result.is_match:
            return result

        logger.info("No deterministic tier matched; escalating to model classifier")
        return await self.model_classifier.classify(
            payload=payload,
            media_type=media_type,
            raw_text=ocr.raw_text,
        )
