"""
Discrepancy Resolver

Tries to close a flagged discrepancy without a human, cheapest strategy first:
1. format_normalization - numerically equal once formatting is stripped
2. rounding_tolerance   - within $1, or within 0.5% for rate/margin/percent fields
3. ocr_reread           - the cited page's OCR line reads the reference value
4. ocr_alternative      - the reference value appears under another OCR label
5. model_section        - focused model re-analysis of one page for one field
6. model_batch          - one model request for every open discrepancy on a page

Tiers 1-4 are pure and synchronous. Tiers 5-6 call the completion service;
any failure there is an ordinary unresolved result, never an exception.
No tier invents a value: every accepted value was read or recomputed.
"""

import logging
import math
import re
from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

from ..config.settings import Settings, Tolerances, get_settings
from ..errors import CompletionError
from ..extraction.deterministic import parse_currency
from ..extraction.line_map import get_line_number
from ..llm.completion import TextCompletionClient, estimate_cost
from ..observability.tracing import traced
from ..schemas.ocr import KeyValuePair, OcrResult
from ..schemas.records import Discrepancy
from ..utils.json_parsing import safe_parse_json

logger = logging.getLogger(__name__)


class ResolutionMethod(str, Enum):
    FORMAT_NORMALIZATION = "format_normalization"
    ROUNDING_TOLERANCE = "rounding_tolerance"
    OCR_REREAD = "ocr_reread"
    OCR_ALTERNATIVE = "ocr_alternative"
    MODEL_SECTION = "model_section"
    MODEL_BATCH = "model_batch"


CHEAP_METHODS = [
    ResolutionMethod.FORMAT_NORMALIZATION,
    ResolutionMethod.ROUNDING_TOLERANCE,
    ResolutionMethod.OCR_REREAD,
    ResolutionMethod.OCR_ALTERNATIVE,
]

PERCENTAGE_PATH_TOKENS = ("rate", "margin", "percent")

# Re-reads at or above this confidence that contradict the reference are logged
HIGH_CONFIDENCE_REREAD = 0.9


# =============================================================================
# Result types
# =============================================================================

@dataclass
class Resolved:
    """A discrepancy closed automatically."""
    value: str
    confidence: float
    method: ResolutionMethod
    explanation: str
    attempted_methods: List[str] = field(default_factory=list)
    tokens_used: int = 0
    cost_usd: float = 0.0

    @property
    def is_resolved(self) -> bool:
        return True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "resolved": True,
            "resolvedValue": self.value,
            "confidence": self.confidence,
            "method": self.method.value,
            "explanation": self.explanation,
            "attemptedMethods": list(self.attempted_methods),
            "tokensUsed": self.tokens_used,
            "costUsd": self.cost_usd,
        }


@dataclass
class Unresolved:
    """Every strategy failed; the trail goes to human review."""
    reason: str
    attempted_methods: List[str] = field(default_factory=list)
    tokens_used: int = 0
    cost_usd: float = 0.0

    @property
    def is_resolved(self) -> bool:
        return False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "resolved": False,
            "reason": self.reason,
            "attemptedMethods": list(self.attempted_methods),
            "tokensUsed": self.tokens_used,
            "costUsd": self.cost_usd,
        }


ResolutionResult = Union[Resolved, Unresolved]


@dataclass
class BulkResolution:
    """
    Outcome of resolving a batch of discrepancies.

    Batched model calls are billed once per page, so token and cost totals
    live here rather than being split across the items of a batch.
    """
    resolved: List[Tuple[Discrepancy, Resolved]] = field(default_factory=list)
    unresolved: List[Tuple[Discrepancy, Unresolved]] = field(default_factory=list)
    total_tokens: int = 0
    total_cost: float = 0.0

    @property
    def resolved_check_ids(self) -> frozenset:
        return frozenset(d.check_id for d, _ in self.resolved if d.check_id)

    def result_for(self, discrepancy_id: str) -> Optional[ResolutionResult]:
        for discrepancy, result in self.resolved:
            if discrepancy.discrepancy_id == discrepancy_id:
                return result
        for discrepancy, result in self.unresolved:
            if discrepancy.discrepancy_id == discrepancy_id:
                return result
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "resolved": [
                {"discrepancyId": d.discrepancy_id, "fieldPath": d.field_path, **r.to_dict()}
                for d, r in self.resolved
            ],
            "unresolved": [
                {"discrepancyId": d.discrepancy_id, "fieldPath": d.field_path, **r.to_dict()}
                for d, r in self.unresolved
            ],
            "totalTokens": self.total_tokens,
            "totalCost": self.total_cost,
        }


# =============================================================================
# Helpers
# =============================================================================

def _same_number(a: float, b: float) -> bool:
    return math.isclose(a, b, rel_tol=0.0, abs_tol=1e-9)


def _display_number(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


def _methods(methods: List[ResolutionMethod]) -> List[str]:
    return [m.value for m in methods]


def unresolved_reason(discrepancy: Discrepancy, attempted: List[str]) -> str:
    """Human-readable summary attached to an unresolved discrepancy."""
    return (
        f'Could not self-resolve "{discrepancy.field_path}": '
        f'extracted "{discrepancy.extracted_value}", '
        f'expected "{discrepancy.expected_value}", '
        f"after trying: {', '.join(attempted)}."
    )


def reread_key_matches(key: str, line_number: str) -> bool:
    """Whether an OCR key cites a given IRS line number."""
    key = key.lower().strip()
    line_number = line_number.lower()
    return (
        key == line_number
        or key.startswith(f"{line_number} ")
        or key.startswith(f"{line_number}.")
        or re.search(rf"\bline\s+{re.escape(line_number)}\b", key) is not None
    )


def format_page_content(ocr: OcrResult, page: int) -> str:
    """Page text and key-value pairs, as sent to the model tiers."""
    pairs = "\n".join(f'  "{kv.key}": "{kv.value}"' for kv in ocr.pairs_on_page(page))
    return "\n".join([
        f"=== DOCUMENT TEXT (Page {page}) ===",
        ocr.page_text(page),
        "",
        f"=== KEY-VALUE PAIRS (Page {page}) ===",
        pairs,
    ])


# =============================================================================
# Cheap tiers
# =============================================================================

def try_format_normalization(discrepancy: Discrepancy) -> Optional[Resolved]:
    """Tier 1: "$85,000.00" and "85000" are the same number."""
    if not discrepancy.expected_value:
        return None
    extracted = parse_currency(discrepancy.extracted_value)
    expected = parse_currency(discrepancy.expected_value)
    if extracted is None or expected is None or not _same_number(extracted, expected):
        return None

    return Resolved(
        value=_display_number(extracted),
        confidence=0.99,
        method=ResolutionMethod.FORMAT_NORMALIZATION,
        explanation=(
            f'Values match after format normalization: "{discrepancy.extracted_value}" '
            f'and "{discrepancy.expected_value}" both equal {_display_number(extracted)}'
        ),
    )


def try_rounding_tolerance(
    discrepancy: Discrepancy,
    tolerances: Optional[Tolerances] = None,
) -> Optional[Resolved]:
    """Tier 2: dollar rounding, or a relative tolerance for percentage-like fields."""
    tolerances = tolerances or Tolerances()
    if not discrepancy.expected_value:
        return None
    extracted = parse_currency(discrepancy.extracted_value)
    expected = parse_currency(discrepancy.expected_value)
    if extracted is None or expected is None:
        return None

    difference = abs(extracted - expected)
    path = discrepancy.field_path.lower()
    if any(token in path for token in PERCENTAGE_PATH_TOKENS):
        # Ratios live below 1.0; a dollar tolerance would swallow any mismatch
        largest = max(abs(extracted), abs(expected))
        relative = difference / largest if largest else 0.0
        if relative <= tolerances.rounding_relative:
            return Resolved(
                value=discrepancy.extracted_value or "",
                confidence=0.9,
                method=ResolutionMethod.ROUNDING_TOLERANCE,
                explanation=f"Percentage difference of {relative * 100:.3f}% is within tolerance",
            )
        return None

    if difference <= tolerances.rounding_absolute:
        return Resolved(
            value=discrepancy.extracted_value or "",
            confidence=0.95,
            method=ResolutionMethod.ROUNDING_TOLERANCE,
            explanation=(
                f"Difference of ${difference:.2f} is within rounding tolerance "
                f"(${tolerances.rounding_absolute:g})"
            ),
        )

    return None


def try_ocr_reread(discrepancy: Discrepancy, ocr: Optional[OcrResult]) -> Optional[Resolved]:
    """
    Tier 3: re-read the cited line on the cited page.

    Only a re-read equal to the reference resolves. A confident re-read that
    contradicts the reference is logged and left for the next tiers.
    """
    if ocr is None or discrepancy.page is None or discrepancy.doc_type is None:
        return None
    expected = parse_currency(discrepancy.expected_value)
    if expected is None:
        return None
    line_number = get_line_number(discrepancy.doc_type, discrepancy.field_path)
    if not line_number:
        return None

    for kv in ocr.pairs_on_page(discrepancy.page):
        if not reread_key_matches(kv.key, line_number):
            continue
        parsed = parse_currency(kv.value)
        if parsed is None:
            continue
        if _same_number(parsed, expected):
            return Resolved(
                value=_display_number(parsed),
                confidence=kv.confidence,
                method=ResolutionMethod.OCR_REREAD,
                explanation=(
                    f'Re-read from OCR page {discrepancy.page}: line "{kv.key}" = '
                    f'"{kv.value}" (confidence: {kv.confidence * 100:.1f}%)'
                ),
            )
        if kv.confidence >= HIGH_CONFIDENCE_REREAD:
            logger.warning(
                f"Re-read of {discrepancy.field_path} on page {discrepancy.page} "
                f"reads {parsed} at {kv.confidence:.2f} confidence, contradicting "
                f"expected {discrepancy.expected_value}; escalating"
            )
    return None


def try_ocr_alternative(
    discrepancy: Discrepancy,
    ocr: Optional[OcrResult],
    tolerances: Optional[Tolerances] = None,
) -> Optional[Resolved]:
    """Tier 4: the reference value printed under a different label."""
    tolerances = tolerances or Tolerances()
    if ocr is None or not discrepancy.expected_value:
        return None
    expected = parse_currency(discrepancy.expected_value)
    if expected is None:
        return None

    best: Optional[Tuple[KeyValuePair, float]] = None
    for kv in ocr.pairs_on_page(discrepancy.page):
        parsed = parse_currency(kv.value)
        if parsed is None or not _same_number(parsed, expected):
            continue
        if best is None or kv.confidence > best[0].confidence:
            best = (kv, parsed)

    if best is None or best[0].confidence < tolerances.alternative_min_confidence:
        return None

    kv, parsed = best
    return Resolved(
        value=_display_number(parsed),
        confidence=kv.confidence * tolerances.alternative_discount,
        method=ResolutionMethod.OCR_ALTERNATIVE,
        explanation=(
            f'Found matching value under alternative label "{kv.key}" on page '
            f"{kv.page} (confidence: {kv.confidence * 100:.1f}%)"
        ),
    )


# =============================================================================
# Model prompts
# =============================================================================

def build_section_prompt(discrepancy: Discrepancy) -> str:
    return f"""You are a financial document verification specialist. You are analyzing a specific field from a financial document.

FIELD TO VERIFY: "{discrepancy.field_path}"
EXTRACTED VALUE: "{discrepancy.extracted_value}"
EXPECTED VALUE: "{discrepancy.expected_value or "unknown"}"
ISSUE: {discrepancy.description}

Carefully read the document text and key-value pairs below. Determine the correct value for this field.

Return a JSON object:
{{
  "value": <the correct numeric value, or null if you cannot determine it>,
  "confidence": <0.0 to 1.0, how confident you are>,
  "explanation": "brief explanation of how you determined the value"
}}

RULES:
- Read the actual characters from the document. Do not guess or estimate.
- If the value is a dollar amount, return just the number (no $ or commas).
- If you cannot confidently determine the value, set value to null and confidence to 0.
- Common OCR issues: 0/O confusion, 1/l confusion, missing decimals, truncated numbers."""


def build_batch_prompt(page: int, discrepancies: List[Discrepancy]) -> str:
    questions = "\n".join(
        f'  {i}. Field: "{d.field_path}"\n'
        f'     Extracted value: "{d.extracted_value}"\n'
        f'     Expected value: "{d.expected_value or "unknown"}"\n'
        f"     Issue: {d.description}"
        for i, d in enumerate(discrepancies, start=1)
    )
    return f"""You are a financial document verification specialist. Analyze page {page} of this document and resolve the following discrepancies.

For EACH discrepancy below, determine the correct value by carefully reading the document text and key-value pairs.

DISCREPANCIES TO RESOLVE:
{questions}

Return a JSON object with this structure:
{{
  "resolutions": [
    {{
      "fieldIndex": 1,
      "resolvedValue": "the correct value as a number",
      "confidence": 0.95,
      "explanation": "brief explanation of how you determined the value"
    }}
  ]
}}

RULES:
- Only include a resolution if you are confident (>= 0.7) in the answer.
- Use numbers only for resolved values (no dollar signs, commas).
- If you cannot determine the correct value, omit that field from the resolutions array.
- Be precise: read the actual characters on the page, do not guess."""


def _confidence(value: Any) -> float:
    try:
        return min(1.0, max(0.0, float(value)))
    except (TypeError, ValueError):
        return 0.0


# =============================================================================
# Resolver
# =============================================================================

class DiscrepancyResolver:
    """
    Six-tier discrepancy resolver.

    Usage:
        resolver = DiscrepancyResolver()
        result = await resolver.resolve_one(discrepancy, ocr)
        bulk = await resolver.resolve_all(discrepancies, {"doc_1": ocr})
    """

    def __init__(
        self,
        client: Optional[TextCompletionClient] = None,
        settings: Optional[Settings] = None,
        tolerances: Optional[Tolerances] = None,
    ):
        self.settings = settings or get_settings()
        self.tolerances = tolerances or self.settings.tolerances()
        self._client = client

    @property
    def client(self) -> TextCompletionClient:
        """Lazy-load the completion client."""
        if self._client is None:
            self._client = TextCompletionClient(settings=self.settings)
        return self._client

    def resolve_cheap(
        self,
        discrepancy: Discrepancy,
        ocr: Optional[OcrResult],
    ) -> Optional[Resolved]:
        """
        Run tiers 1-4 in order; first success wins.

        The returned result carries the methods tried up to and including
        the successful one.
        """
        attempts = [
            (ResolutionMethod.FORMAT_NORMALIZATION, lambda: try_format_normalization(discrepancy)),
            (ResolutionMethod.ROUNDING_TOLERANCE, lambda: try_rounding_tolerance(discrepancy, self.tolerances)),
            (ResolutionMethod.OCR_REREAD, lambda: try_ocr_reread(discrepancy, ocr)),
            (ResolutionMethod.OCR_ALTERNATIVE, lambda: try_ocr_alternative(discrepancy, ocr, self.tolerances)),
        ]
        tried: List[ResolutionMethod] = []
        for method, attempt in attempts:
            tried.append(method)
            result = attempt()
            if result is not None:
                result.attempted_methods = _methods(tried)
                return result
        return None

    async def resolve_one(
        self,
        discrepancy: Discrepancy,
        ocr: Optional[OcrResult] = None,
    ) -> ResolutionResult:
        """
        Resolve a single discrepancy, escalating to a focused model call.

        Args:
            discrepancy: The flagged field
            ocr: OCR output of the discrepancy's document, if any

        Returns:
            Resolved or Unresolved, never raises
        """
        cheap = self.resolve_cheap(discrepancy, ocr)
        if cheap is not None:
            return cheap

        attempted = _methods(CHEAP_METHODS)
        if ocr is None or discrepancy.page is None:
            return Unresolved(
                reason=self._no_page_reason(discrepancy, ocr),
                attempted_methods=attempted,
            )

        return await self._model_section(discrepancy, ocr)

    @traced("resolve_discrepancies")
    async def resolve_all(
        self,
        discrepancies: List[Discrepancy],
        ocr_by_document: Optional[Dict[str, OcrResult]] = None,
    ) -> BulkResolution:
        """
        Resolve many discrepancies, batching model calls per page.

        Phase 1 runs the cheap tiers on every discrepancy. Phase 2 groups
        what is left by (document, page): a lone discrepancy gets a focused
        model_section call, several share one model_batch call.

        Args:
            discrepancies: Flagged fields for a deal
            ocr_by_document: OCR output keyed by document id

        Returns:
            BulkResolution with every discrepancy in exactly one list
        """
        ocr_by_document = ocr_by_document or {}
        bulk = BulkResolution()
        pending: Dict[Tuple[str, int], List[Discrepancy]] = defaultdict(list)

        for discrepancy in discrepancies:
            ocr = ocr_by_document.get(discrepancy.document_id) if discrepancy.document_id else None
            cheap = self.resolve_cheap(discrepancy, ocr)
            if cheap is not None:
                bulk.resolved.append((discrepancy, cheap))
                continue
            if ocr is None or discrepancy.page is None:
                bulk.unresolved.append((discrepancy, Unresolved(
                    reason=self._no_page_reason(discrepancy, ocr),
                    attempted_methods=_methods(CHEAP_METHODS),
                )))
                continue
            pending[(discrepancy.document_id, discrepancy.page)].append(discrepancy)

        for (document_id, page), group in pending.items():
            ocr = ocr_by_document[document_id]
            if len(group) == 1:
                result = await self._model_section(group[0], ocr)
                bulk.total_tokens += result.tokens_used
                bulk.total_cost += result.cost_usd
                self._record(bulk, group[0], result)
                continue

            results, tokens, cost = await self._model_batch(page, group, ocr)
            bulk.total_tokens += tokens
            bulk.total_cost += cost
            for discrepancy, result in zip(group, results):
                self._record(bulk, discrepancy, result)

        logger.info(
            f"Resolved {len(bulk.resolved)}/{len(discrepancies)} discrepancies "
            f"({bulk.total_tokens} tokens, ${bulk.total_cost:.4f})"
        )
        return bulk

    # =========================================================================
    # Model tiers
    # =========================================================================

    async def _model_section(self, discrepancy: Discrepancy, ocr: OcrResult) -> ResolutionResult:
        """Tier 5: one focused request for one field on one page."""
        attempted = _methods(CHEAP_METHODS + [ResolutionMethod.MODEL_SECTION])

        def fail(detail: str, tokens: int = 0, cost: float = 0.0) -> Unresolved:
            return Unresolved(
                reason=f"{unresolved_reason(discrepancy, attempted)} {detail}",
                attempted_methods=attempted,
                tokens_used=tokens,
                cost_usd=cost,
            )

        try:
            response = await self.client.structure(
                build_section_prompt(discrepancy),
                format_page_content(ocr, discrepancy.page),
                max_tokens=self.settings.section_reanalysis_max_tokens,
            )
        except CompletionError as e:
            logger.warning(f"Section analysis failed for {discrepancy.field_path}: {e}")
            return fail(f"Model section analysis failed: {e}")

        tokens = response.tokens_used
        cost = estimate_cost(response.input_tokens, response.output_tokens, self.settings)
        parsed = safe_parse_json(response.text)

        if parsed is None:
            return fail(f"Model response could not be parsed: {response.text[:100]}", tokens, cost)

        confidence = _confidence(parsed.get("confidence"))
        value = parsed.get("value")
        if value is not None and confidence >= self.tolerances.model_min_confidence:
            return Resolved(
                value=str(value),
                confidence=confidence,
                method=ResolutionMethod.MODEL_SECTION,
                explanation=parsed.get("explanation") or "Resolved by model section analysis",
                attempted_methods=attempted,
                tokens_used=tokens,
                cost_usd=cost,
            )

        return fail(
            f"Model analysis inconclusive (confidence: {confidence}): "
            f"{parsed.get('explanation') or 'no explanation'}",
            tokens,
            cost,
        )

    async def _model_batch(
        self,
        page: int,
        discrepancies: List[Discrepancy],
        ocr: OcrResult,
    ) -> Tuple[List[ResolutionResult], int, float]:
        """
        Tier 6: one request for every open discrepancy on a page.

        Results are matched back by 1-based fieldIndex. Returns per-item
        results plus the call's tokens and cost.
        """
        attempted = _methods(CHEAP_METHODS + [ResolutionMethod.MODEL_BATCH])

        def fail_all(reason: str) -> List[ResolutionResult]:
            return [
                Unresolved(
                    reason=f"{unresolved_reason(d, attempted)} {reason}",
                    attempted_methods=list(attempted),
                )
                for d in discrepancies
            ]

        try:
            response = await self.client.structure(
                build_batch_prompt(page, discrepancies),
                format_page_content(ocr, page),
                max_tokens=self.settings.batch_reanalysis_max_tokens,
            )
        except CompletionError as e:
            logger.warning(f"Batch analysis failed for page {page}: {e}")
            return fail_all(f"Model batch analysis failed: {e}"), 0, 0.0

        tokens = response.tokens_used
        cost = estimate_cost(response.input_tokens, response.output_tokens, self.settings)
        parsed = safe_parse_json(response.text)
        resolutions = parsed.get("resolutions") if parsed else None
        if not isinstance(resolutions, list):
            return fail_all(f"Could not parse model batch response for page {page}"), tokens, cost

        by_index: Dict[int, Dict[str, Any]] = {}
        for entry in resolutions:
            if not isinstance(entry, dict):
                continue
            try:
                index = int(entry.get("fieldIndex"))
            except (TypeError, ValueError):
                continue
            if 1 <= index <= len(discrepancies):
                by_index[index] = entry

        results: List[ResolutionResult] = []
        for i, discrepancy in enumerate(discrepancies, start=1):
            entry = by_index.get(i)
            confidence = _confidence(entry.get("confidence")) if entry else 0.0
            if (
                entry is not None
                and entry.get("resolvedValue") is not None
                and confidence >= self.tolerances.model_min_confidence
            ):
                results.append(Resolved(
                    value=str(entry["resolvedValue"]),
                    confidence=confidence,
                    method=ResolutionMethod.MODEL_BATCH,
                    explanation=entry.get("explanation") or "Resolved by model batch analysis",
                    attempted_methods=list(attempted),
                ))
                continue

            if entry is None:
                detail = "Model batch analysis did not return a result for this field"
            else:
                detail = f"Low confidence ({confidence}): {entry.get('explanation') or 'Inconclusive'}"
            results.append(Unresolved(
                reason=f"{unresolved_reason(discrepancy, attempted)} {detail}",
                attempted_methods=list(attempted),
            ))
        return results, tokens, cost

    # =========================================================================
    # Internals
    # =========================================================================

    @staticmethod
    def _no_page_reason(discrepancy: Discrepancy, ocr: Optional[OcrResult]) -> str:
        attempted = _methods(CHEAP_METHODS)
        if ocr is None:
            detail = f'No OCR output available for field "{discrepancy.field_path}".'
        else:
            detail = f'No document page number available for field "{discrepancy.field_path}".'
        return f"{unresolved_reason(discrepancy, attempted)} {detail} Cannot perform targeted analysis."

    @staticmethod
    def _record(bulk: BulkResolution, discrepancy: Discrepancy, result: ResolutionResult) -> None:
        if isinstance(result, Resolved):
            bulk.resolved.append((discrepancy, result))
        else:
            bulk.unresolved.append((discrepancy, result))
