"""Tests for the discrepancy resolver."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

from docverify.config.settings import Settings, Tolerances
from docverify.errors import CompletionError
from docverify.llm.completion import CompletionResult
from docverify.resolution.resolver import (
    BulkResolution,
    DiscrepancyResolver,
    ResolutionMethod,
    Resolved,
    Unresolved,
    build_batch_prompt,
    format_page_content,
    reread_key_matches,
    try_format_normalization,
    try_ocr_alternative,
    try_ocr_reread,
    try_rounding_tolerance,
)
from docverify.schemas.doc_types import DocType
from docverify.schemas.ocr import KeyValuePair, OcrResult
from docverify.schemas.records import CheckType, Discrepancy

CHEAP = [
    "format_normalization",
    "rounding_tolerance",
    "ocr_reread",
    "ocr_alternative",
]


def discrepancy(
    field_path: str = "income.agi_line11",
    extracted: str = "86000",
    expected: str = "68000",
    page: int = 2,
    document_id: str = "doc_1040",
    check_type: CheckType = CheckType.MATH,
) -> Discrepancy:
    return Discrepancy(
        field_path=field_path,
        extracted_value=extracted,
        expected_value=expected,
        check_type=check_type,
        description="AGI (line 11) should equal total income (line 9) minus adjustments (line 10)",
        document_id=document_id,
        doc_type=DocType.FORM_1040 if document_id else None,
        page=page,
        check_id=f"math:{document_id}:{field_path}",
    )


def ocr(*pairs: KeyValuePair) -> OcrResult:
    return OcrResult(
        raw_text="Form 1040\nLine 11 Adjusted gross income 68,000",
        page_count=2,
        key_value_pairs=list(pairs) or [KeyValuePair(key="Filing status", value="Single", confidence=0.99, page=2)],
        page_texts={1: "Form 1040 page one", 2: "Line 11 Adjusted gross income 68,000"},
    )


def resolver(text: str = "", error: Exception = None) -> DiscrepancyResolver:
    client = MagicMock()
    client.structure = AsyncMock(
        return_value=CompletionResult(text=text, input_tokens=700, output_tokens=60, model="gpt-4o-mini"),
        side_effect=error,
    )
    return DiscrepancyResolver(client=client, settings=Settings(), tolerances=Tolerances())


class TestCheapTiers:
    """Tests for the pure resolution tiers."""

    def test_format_normalization(self):
        """Test "$85,000.00" and "85000" are the same number."""
        result = try_format_normalization(discrepancy(extracted="$85,000.00", expected="85000"))
        assert result.method == ResolutionMethod.FORMAT_NORMALIZATION
        assert result.confidence == 0.99
        assert result.value == "85000"

    def test_format_normalization_needs_equal_numbers(self):
        """Test different numbers are left for later tiers."""
        assert try_format_normalization(discrepancy(extracted="85,001", expected="85000")) is None
        assert try_format_normalization(discrepancy(extracted="abc", expected="85000")) is None
        assert try_format_normalization(discrepancy(expected=None)) is None

    def test_rounding_dollar(self):
        """Test a difference within $1 on an amount field."""
        result = try_rounding_tolerance(
            discrepancy(field_path="summary.totalMonthlyRent", extracted="41,999", expected="42,000")
        )
        assert result.method == ResolutionMethod.ROUNDING_TOLERANCE
        assert result.value == "41,999"
        assert result.confidence == 0.95

    def test_rounding_relative_on_rate_fields(self):
        """Test percentage-like fields get a relative tolerance."""
        printed = discrepancy(field_path="summary.occupancyRate", extracted="41,999", expected="42,000")
        assert try_rounding_tolerance(printed).method == ResolutionMethod.ROUNDING_TOLERANCE

        rate = discrepancy(field_path="summary.occupancyRate", extracted="199,500", expected="200,000")
        result = try_rounding_tolerance(rate)
        assert result.method == ResolutionMethod.ROUNDING_TOLERANCE
        assert result.confidence == 0.9

        amount = discrepancy(field_path="summary.totalMonthlyRent", extracted="199,500", expected="200,000")
        assert try_rounding_tolerance(amount) is None

    def test_ratio_mismatch_is_not_rounding(self):
        """Test ratios are never within the dollar tolerance."""
        margin = discrepancy(field_path="grossProfitMargin", extracted="0.9", expected="0.4")
        assert try_rounding_tolerance(margin) is None

        occupancy = discrepancy(field_path="summary.occupancyRate", extracted="0.95", expected="0.8")
        assert try_rounding_tolerance(occupancy) is None

        close = discrepancy(field_path="grossProfitMargin", extracted="0.4", expected="0.401")
        assert try_rounding_tolerance(close).method == ResolutionMethod.ROUNDING_TOLERANCE

    def test_rounding_respects_configured_tolerance(self):
        """Test the dollar tolerance comes from configuration."""
        loose = Tolerances(rounding_absolute=5.0)
        assert try_rounding_tolerance(discrepancy(extracted="104", expected="100"), loose) is not None
        assert try_rounding_tolerance(discrepancy(extracted="104", expected="100")) is None

    def test_reread_key_matches(self):
        """Test line-number key matching."""
        assert reread_key_matches("Line 11", "11")
        assert reread_key_matches("11 Adjusted gross income", "11")
        assert reread_key_matches("11.", "11")
        assert not reread_key_matches("111", "11")
        assert not reread_key_matches("Line 1", "11")
        assert not reread_key_matches("Line 12 Standard deduction", "1")
        assert not reread_key_matches("Line 1a Wages", "1")
        assert reread_key_matches("Form 1040 line 2b", "2b")

    def test_ocr_reread_confirms_reference(self):
        """Test a re-read equal to the reference resolves."""
        page = ocr(KeyValuePair(key="Line 11", value="68,000", confidence=0.93, page=2))
        result = try_ocr_reread(discrepancy(), page)
        assert result.method == ResolutionMethod.OCR_REREAD
        assert result.value == "68000"
        assert result.confidence == 0.93

    def test_ocr_reread_contradiction_not_resolved(self):
        """Test a confident re-read that contradicts the reference does not resolve."""
        page = ocr(KeyValuePair(key="Line 11", value="86,000", confidence=0.97, page=2))
        assert try_ocr_reread(discrepancy(), page) is None

    def test_ocr_reread_only_on_cited_page(self):
        """Test pairs on other pages are ignored."""
        page = ocr(KeyValuePair(key="Line 11", value="68,000", confidence=0.93, page=1))
        assert try_ocr_reread(discrepancy(), page) is None

    def test_ocr_alternative(self):
        """Test the reference value under another label is discounted."""
        page = ocr(KeyValuePair(key="Adjusted Gross", value="$68,000", confidence=0.9, page=2))
        result = try_ocr_alternative(discrepancy(), page)
        assert result.method == ResolutionMethod.OCR_ALTERNATIVE
        assert result.value == "68000"
        assert result.confidence == 0.9 * 0.9

    def test_ocr_alternative_needs_confidence(self):
        """Test low-confidence alternatives are rejected."""
        page = ocr(KeyValuePair(key="Adjusted Gross", value="68,000", confidence=0.7, page=2))
        assert try_ocr_alternative(discrepancy(), page) is None


class TestResolveOne:
    """Tests for single-discrepancy resolution."""

    def test_cheapest_tier_wins(self):
        """Test tiers run in order and stop at the first success."""
        page = ocr(KeyValuePair(key="Line 11", value="85,000", confidence=0.99, page=2))
        r = resolver()
        result = asyncio.run(r.resolve_one(discrepancy(extracted="$85,000.00", expected="85000"), page))

        assert result.method == ResolutionMethod.FORMAT_NORMALIZATION
        assert result.attempted_methods == ["format_normalization"]
        r.client.structure.assert_not_awaited()

    def test_attempted_methods_up_to_success(self):
        """Test the trail records every tier tried."""
        page = ocr(KeyValuePair(key="Line 11", value="68,000", confidence=0.93, page=2))
        result = asyncio.run(resolver().resolve_one(discrepancy(), page))
        assert result.attempted_methods == ["format_normalization", "rounding_tolerance", "ocr_reread"]

    def test_no_page(self):
        """Test a discrepancy without a page cannot be re-analyzed."""
        r = resolver()
        result = asyncio.run(r.resolve_one(discrepancy(page=None), ocr()))

        assert isinstance(result, Unresolved)
        assert not result.is_resolved
        assert result.attempted_methods == CHEAP
        assert "No document page number available" in result.reason
        r.client.structure.assert_not_awaited()

    def test_no_ocr(self):
        """Test a discrepancy without OCR output cannot be re-analyzed."""
        result = asyncio.run(resolver().resolve_one(discrepancy(), None))
        assert "No OCR output available" in result.reason

    def test_unconfigured_provider_is_unresolved(self):
        """Test a missing model provider leaves the discrepancy for review."""
        settings = Settings(_env_file=None, openai_api_key=None, azure_openai_endpoint=None)
        r = DiscrepancyResolver(settings=settings, tolerances=Tolerances())

        result = asyncio.run(r.resolve_one(discrepancy(), ocr()))

        assert isinstance(result, Unresolved)
        assert result.attempted_methods == CHEAP + ["model_section"]
        assert "No LLM provider configured" in result.reason

    def test_model_section_resolves(self):
        """Test a confident model answer resolves and is costed."""
        r = resolver('{"value": 68000, "confidence": 0.92, "explanation": "Line 11 reads 68,000"}')
        result = asyncio.run(r.resolve_one(discrepancy(), ocr()))

        assert isinstance(result, Resolved)
        assert result.method == ResolutionMethod.MODEL_SECTION
        assert result.value == "68000"
        assert result.attempted_methods == CHEAP + ["model_section"]
        assert result.tokens_used == 760
        assert result.cost_usd > 0

        system_prompt, content = r.client.structure.await_args.args[:2]
        assert '"income.agi_line11"' in system_prompt
        assert "=== DOCUMENT TEXT (Page 2) ===" in content

    def test_model_section_low_confidence(self):
        """Test an unsure model answer is unresolved."""
        r = resolver('{"value": 68000, "confidence": 0.4, "explanation": "Smudged"}')
        result = asyncio.run(r.resolve_one(discrepancy(), ocr()))

        assert isinstance(result, Unresolved)
        assert "inconclusive" in result.reason
        assert result.tokens_used == 760

    def test_model_section_call_failure(self):
        """Test a failed call is an ordinary unresolved result."""
        r = resolver(error=CompletionError("Completion timed out after 60s"))
        result = asyncio.run(r.resolve_one(discrepancy(), ocr()))

        assert isinstance(result, Unresolved)
        assert "Model section analysis failed" in result.reason
        assert result.reason.startswith('Could not self-resolve "income.agi_line11"')


class TestResolveAll:
    """Tests for bulk resolution with per-page batching."""

    def test_batch_per_page(self):
        """Test several open discrepancies on one page share a model call."""
        response = (
            '{"resolutions": [{"fieldIndex": 1, "resolvedValue": "68000", '
            '"confidence": 0.95, "explanation": "Line 11"}]}'
        )
        r = resolver(response)
        first = discrepancy()
        second = discrepancy(field_path="income.totalIncome_line9", extracted="86000", expected="90000")

        bulk = asyncio.run(r.resolve_all([first, second], {"doc_1040": ocr()}))

        r.client.structure.assert_awaited_once()
        assert [d.field_path for d, _ in bulk.resolved] == ["income.agi_line11"]
        assert bulk.resolved[0][1].method == ResolutionMethod.MODEL_BATCH
        assert bulk.resolved[0][1].attempted_methods == CHEAP + ["model_batch"]
        unresolved = bulk.unresolved[0][1]
        assert "did not return a result" in unresolved.reason
        assert bulk.total_tokens == 760
        assert bulk.total_cost > 0

    def test_single_item_page_uses_section(self):
        """Test a lone discrepancy on a page gets a focused call."""
        r = resolver('{"value": 68000, "confidence": 0.9, "explanation": "ok"}')
        bulk = asyncio.run(r.resolve_all([discrepancy()], {"doc_1040": ocr()}))

        assert bulk.resolved[0][1].method == ResolutionMethod.MODEL_SECTION
        assert bulk.total_tokens == 760

    def test_pages_are_batched_separately(self):
        """Test discrepancies on different pages never share a call."""
        r = resolver('{"value": null, "confidence": 0}')
        items = [discrepancy(page=1), discrepancy(field_path="income.totalIncome_line9", page=2)]
        bulk = asyncio.run(r.resolve_all(items, {"doc_1040": ocr()}))

        assert r.client.structure.await_count == 2
        assert len(bulk.unresolved) == 2

    def test_cross_doc_discrepancies(self):
        """Test cross-document discrepancies only get the format tiers."""
        r = resolver()
        same = discrepancy(
            field_path="wages.wagesTipsOther_box1 (sum) vs income.wages_line1",
            extracted="85000", expected="$85,000", page=None, document_id=None,
            check_type=CheckType.CROSS_DOC,
        )
        different = discrepancy(
            field_path="wages.wagesTipsOther_box1 (sum) vs income.wages_line1",
            extracted="85000", expected="80000", page=None, document_id=None,
            check_type=CheckType.CROSS_DOC,
        )

        bulk = asyncio.run(r.resolve_all([same, different], {"doc_1040": ocr()}))

        assert len(bulk.resolved) == 1
        assert len(bulk.unresolved) == 1
        assert "No OCR output available" in bulk.unresolved[0][1].reason
        r.client.structure.assert_not_awaited()

    def test_every_discrepancy_accounted_for(self):
        """Test each input lands in exactly one list."""
        r = resolver("not json")
        items = [
            discrepancy(extracted="$85,000.00", expected="85000"),
            discrepancy(),
            discrepancy(page=None),
        ]
        bulk = asyncio.run(r.resolve_all(items, {"doc_1040": ocr()}))

        assert len(bulk.resolved) + len(bulk.unresolved) == 3
        for item in items:
            assert bulk.result_for(item.discrepancy_id) is not None

    def test_resolved_check_ids_and_to_dict(self):
        """Test the summary used by the review gate."""
        item = discrepancy(extracted="$85,000.00", expected="85000")
        bulk = asyncio.run(resolver().resolve_all([item]))

        assert bulk.resolved_check_ids == frozenset({item.check_id})
        payload = bulk.to_dict()
        assert payload["resolved"][0]["method"] == "format_normalization"
        assert payload["resolved"][0]["resolvedValue"] == "85000"
        assert payload["unresolved"] == []


class TestPrompts:
    """Tests for model prompt assembly."""

    def test_page_content(self):
        """Test page content carries text and that page's pairs only."""
        page = ocr(
            KeyValuePair(key="Line 9", value="86,000", page=2),
            KeyValuePair(key="Name", value="J. Smith", page=1),
        )
        content = format_page_content(page, 2)
        assert "Line 11 Adjusted gross income 68,000" in content
        assert '"Line 9": "86,000"' in content
        assert "J. Smith" not in content

    def test_batch_prompt_numbers_fields(self):
        """Test batch questions are numbered from 1."""
        prompt = build_batch_prompt(2, [discrepancy(), discrepancy(field_path="income.totalIncome_line9")])
        assert '1. Field: "income.agi_line11"' in prompt
        assert '2. Field: "income.totalIncome_line9"' in prompt
        assert "page 2" in prompt


class TestBulkResolution:
    """Tests for BulkResolution defaults."""

    def test_empty(self):
        """Test an empty outcome."""
        bulk = BulkResolution()
        assert bulk.resolved_check_ids == frozenset()
        assert bulk.result_for("missing") is None
