"""Tests for the record store, the verification engine and the deal workflow."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from docverify.classification.keyword_classifier import ClassificationResult
from docverify.config.settings import Settings
from docverify.errors import NoUsableExtractionError, StageTransitionError
from docverify.extraction.registry import build_default_registry
from docverify.extraction.router import ExtractionRouter
from docverify.extraction.structuring import ExtractionOutcome
from docverify.llm.completion import CompletionResult
from docverify.pipeline.engine import VerificationEngine
from docverify.pipeline.graph.edges import check_for_errors, route_after_verify
from docverify.pipeline.graph.state import create_initial_state
from docverify.pipeline.graph.workflow import run_deal
from docverify.pipeline.store import DocumentInput, InMemoryRecordStore
from docverify.resolution.resolver import DiscrepancyResolver
from docverify.schemas.doc_types import DocType
from docverify.schemas.ocr import KeyValuePair, OcrResult
from docverify.schemas.records import (
    CheckType,
    DocumentRecord,
    ExtractionMethod,
    ExtractionRecord,
    ProcessingStage,
    ReviewItem,
)
from docverify.verification.report import VerificationStatus

NO_ANSWER = '{"value": null, "confidence": 0.2, "explanation": "Totals are illegible"}'


# =============================================================================
# Fixtures
# =============================================================================

def balance_sheet(total_assets=100000, net_fixed=40000, total_equity=45000, l_and_e=95000):
    return {
        "assets": {
            "currentAssets": {"totalCurrentAssets": 60000},
            "fixedAssets": {"netPropertyAndEquipment": net_fixed},
            "totalAssets": total_assets,
        },
        "liabilities": {
            "currentLiabilities": {"totalCurrentLiabilities": 20000},
            "longTermLiabilities": {"totalLongTermLiabilities": 30000},
            "totalLiabilities": 50000,
        },
        "equity": {"totalEquity": total_equity},
        "totalLiabilitiesAndEquity": l_and_e,
    }


def balance_sheet_ocr(printed_total_assets="100,000", page_count=2) -> OcrResult:
    pairs = []
    if printed_total_assets is not None:
        pairs.append(KeyValuePair(key="Total Assets", value=printed_total_assets, confidence=0.98, page=2))
    return OcrResult(
        raw_text="Acme Holdings LLC\nBalance Sheet\nDecember 31, 2023",
        page_count=page_count,
        key_value_pairs=pairs,
    )


def model_client(*texts: str) -> MagicMock:
    client = MagicMock()
    client.structure = AsyncMock(side_effect=[
        CompletionResult(text=text, input_tokens=700, output_tokens=60, model="gpt-4o-mini")
        for text in texts
    ])
    return client


def make_engine(
    data=None,
    model_texts=(NO_ANSWER,),
    classify_error: Exception = None,
    doc_type: DocType = DocType.BALANCE_SHEET,
):
    settings = Settings(_env_file=None)

    classifier = MagicMock()
    classifier.classify = AsyncMock(
        return_value=ClassificationResult(doc_type, "medium", "kv_key"),
        side_effect=classify_error,
    )

    structurer = MagicMock()
    structurer.structure = AsyncMock(return_value=ExtractionOutcome(
        structured_data=balance_sheet() if data is None else data,
        prompt_version="balance_sheet_v1",
        model="gpt-4o-mini",
        tokens_used=1800,
    ))
    router = ExtractionRouter(build_default_registry(), structurer=structurer)

    resolver = DiscrepancyResolver(client=model_client(*model_texts), settings=settings)
    return VerificationEngine(
        settings=settings,
        classifier=classifier,
        router=router,
        resolver=resolver,
    )


async def run_stages(
    engine: VerificationEngine,
    ocr: OcrResult,
    deal_id: str = "deal_1",
    document_id: str = "doc_bs",
):
    await engine.process_documents(deal_id, [DocumentInput(document_id=document_id, ocr=ocr)])
    report = engine.verify(deal_id)
    resolution, report = await engine.resolve(deal_id, report)
    return engine.gate(deal_id, report, resolution)


def total_assets(engine: VerificationEngine) -> float:
    return engine.store.get_extraction("doc_bs").structured_data["assets"]["totalAssets"]


# =============================================================================
# Record store
# =============================================================================

class TestInMemoryRecordStore:
    """Tests for InMemoryRecordStore."""

    def test_add_document_is_idempotent(self):
        """Test re-adding a document returns the stored record."""
        store = InMemoryRecordStore()
        first = store.add_document(DocumentRecord(document_id="doc_1", deal_id="deal_1"))
        store.advance_stage("doc_1", ProcessingStage.CLASSIFYING)

        again = store.add_document(DocumentRecord(document_id="doc_1", deal_id="deal_1"))

        assert again.stage == ProcessingStage.CLASSIFYING
        assert first.stage == ProcessingStage.UPLOADED
        assert len(store.documents_for_deal("deal_1")) == 1

    def test_stages_are_monotonic(self):
        """Test moving backwards is a no-op and reapplying a stage keeps it."""
        store = InMemoryRecordStore()
        store.add_document(DocumentRecord(document_id="doc_1", deal_id="deal_1"))
        store.advance_stage("doc_1", ProcessingStage.EXTRACTED)

        record = store.advance_stage("doc_1", ProcessingStage.CLASSIFYING)
        assert record.stage == ProcessingStage.EXTRACTED

        record = store.advance_stage("doc_1", ProcessingStage.EXTRACTED, year=2023)
        assert record.stage == ProcessingStage.EXTRACTED
        assert record.year == 2023

    def test_terminal_stages_are_final(self):
        """Test a verified document cannot be moved again."""
        store = InMemoryRecordStore()
        store.add_document(DocumentRecord(document_id="doc_1", deal_id="deal_1"))
        store.advance_stage("doc_1", ProcessingStage.VERIFIED)

        with pytest.raises(StageTransitionError):
            store.advance_stage("doc_1", ProcessingStage.EXTRACTING)

        assert store.advance_stage("doc_1", ProcessingStage.VERIFIED).stage == ProcessingStage.VERIFIED

    def test_error_reachable_from_any_working_stage(self):
        """Test error is allowed from a non-terminal stage and records the message."""
        store = InMemoryRecordStore()
        store.add_document(DocumentRecord(document_id="doc_1", deal_id="deal_1"))
        store.advance_stage("doc_1", ProcessingStage.EXTRACTED)

        record = store.advance_stage("doc_1", ProcessingStage.ERROR, error="boom")

        assert record.stage == ProcessingStage.ERROR
        assert record.error == "boom"

    def test_unknown_document(self):
        """Test advancing an unknown document raises KeyError."""
        with pytest.raises(KeyError):
            InMemoryRecordStore().advance_stage("missing", ProcessingStage.CLASSIFYING)

    def test_upsert_replaces_extraction(self):
        """Test the live extraction is the most recent upsert."""
        store = InMemoryRecordStore()
        for wages in (1000, 2000):
            store.upsert_extraction(ExtractionRecord(
                document_id="doc_1",
                doc_type=DocType.W2,
                method=ExtractionMethod.MODEL_PRIMARY,
                structured_data={"wages": {"wagesTipsOther_box1": wages}},
            ))
        extraction = store.get_extraction("doc_1")
        assert extraction.structured_data["wages"]["wagesTipsOther_box1"] == 2000

    def test_review_items_replaced_per_deal(self):
        """Test a gate pass replaces only its own deal's items."""
        store = InMemoryRecordStore()
        item = ReviewItem(deal_id="deal_1", field_path="a", check_type=CheckType.MATH)
        other = ReviewItem(deal_id="deal_2", field_path="b", check_type=CheckType.MATH)
        store.replace_review_items("deal_1", [item])
        store.replace_review_items("deal_2", [other])

        store.replace_review_items("deal_1", [])

        assert store.review_items("deal_1") == []
        assert store.get_review_item(other.review_item_id) == other

    def test_update_unknown_review_item(self):
        """Test updating an item that is not stored raises KeyError."""
        store = InMemoryRecordStore()
        with pytest.raises(KeyError):
            store.update_review_item(ReviewItem(deal_id="deal_1", field_path="a", check_type=CheckType.MATH))

    def test_accepted_checks_and_corrections(self):
        """Test reviewer decisions are kept per deal."""
        store = InMemoryRecordStore()
        store.accept_check("deal_1", "math:doc_1:balance_sheet.fundamental")
        store.accept_check("deal_1", "math:doc_1:balance_sheet.fundamental")
        store.record_correction("deal_1", "doc_1", "assets.totalAssets")

        assert store.accepted_checks("deal_1") == frozenset({"math:doc_1:balance_sheet.fundamental"})
        assert store.accepted_checks("deal_2") == frozenset()
        assert store.corrected_fields("deal_1") == frozenset({("doc_1", "assets.totalAssets")})

    def test_uploads_replace_by_document_id(self):
        """Test re-uploading a document id replaces the queued upload."""
        store = InMemoryRecordStore()
        store.put_upload("deal_1", DocumentInput(document_id="doc_1", ocr=OcrResult(raw_text="v1")))
        store.put_upload("deal_1", DocumentInput(document_id="doc_1", ocr=OcrResult(raw_text="v2")))

        uploads = store.uploads_for_deal("deal_1")
        assert len(uploads) == 1
        assert store.get_ocr("doc_1").raw_text == "v2"


# =============================================================================
# Engine stages
# =============================================================================

class TestEngineDefaults:
    """Tests for components the engine builds itself."""

    def test_components_share_engine_settings(self):
        settings = Settings(_env_file=None, openai_model="gpt-4o")
        engine = VerificationEngine(settings=settings)

        assert engine.classifier.model_classifier.settings is settings
        assert engine.router.structurer.settings is settings
        assert engine.resolver.settings is settings


class TestProcessDocument:
    """Tests for per-document classification and extraction."""

    def test_success(self):
        """Test a document ends extracted with its classification recorded."""
        engine = make_engine()
        record = asyncio.run(engine.process_document(
            "deal_1", DocumentInput(document_id="doc_bs", ocr=balance_sheet_ocr())
        ))

        assert record.stage == ProcessingStage.EXTRACTED
        assert record.doc_type == DocType.BALANCE_SHEET
        assert record.classification_method == "kv_key"
        assert record.ocr_ref == "memory://ocr/doc_bs"

        extraction = engine.store.get_extraction("doc_bs")
        assert extraction.method == ExtractionMethod.MODEL_PRIMARY
        assert extraction.tokens_used == 1800

    def test_rerun_is_skipped(self):
        """Test re-processing a document with a usable extraction does no work."""
        engine = make_engine()
        doc = DocumentInput(document_id="doc_bs", ocr=balance_sheet_ocr())

        asyncio.run(engine.process_document("deal_1", doc))
        asyncio.run(engine.process_document("deal_1", doc))

        assert engine.classifier.classify.await_count == 1
        assert engine.router.structurer.structure.await_count == 1

    def test_failure_is_contained(self):
        """Test a classification failure moves only that document to error."""
        engine = make_engine(classify_error=RuntimeError("classifier unavailable"))
        record = asyncio.run(engine.process_document(
            "deal_1", DocumentInput(document_id="doc_bs", ocr=balance_sheet_ocr())
        ))

        assert record.stage == ProcessingStage.ERROR
        assert "classifier unavailable" in record.error

    def test_empty_extraction_is_error(self):
        """Test a document without structured data ends in error."""
        engine = make_engine(data={})
        record = asyncio.run(engine.process_document(
            "deal_1", DocumentInput(document_id="doc_bs", ocr=balance_sheet_ocr())
        ))

        assert record.stage == ProcessingStage.ERROR
        assert record.error == "Extraction produced no structured data"

    def test_no_usable_extraction_blocks_verification(self):
        """Test verifying a deal with only failed documents raises."""
        engine = make_engine(data={})
        asyncio.run(engine.process_document(
            "deal_1", DocumentInput(document_id="doc_bs", ocr=balance_sheet_ocr())
        ))

        with pytest.raises(NoUsableExtractionError):
            engine.verify("deal_1")


class TestEngineEndToEnd:
    """Tests for verify, resolve and gate over a whole deal."""

    def test_unbalanced_balance_sheet_is_queued(self):
        """Test assets != liabilities + equity fails and queues one review item."""
        engine = make_engine()
        decision = asyncio.run(run_stages(engine, balance_sheet_ocr()))

        assert not decision.can_proceed
        assert decision.status == VerificationStatus.FAIL
        assert len(decision.review_items) == 1

        item = decision.review_items[0]
        assert item.check_id == "math:doc_bs:balance_sheet.fundamental"
        assert item.page == 2
        assert "model_section" in item.attempted_methods
        assert engine.review_items("deal_1") == decision.review_items
        assert engine.store.get_document("doc_bs").stage == ProcessingStage.VERIFIED

    def test_model_confirming_extracted_total_is_queued(self):
        """Test a model answer equal to the extracted total leaves the sheet unbalanced."""
        engine = make_engine(model_texts=(
            '{"value": 100000, "confidence": 0.95, "explanation": "Total Assets reads 100,000"}',
        ))
        decision = asyncio.run(run_stages(engine, balance_sheet_ocr()))

        assert not decision.can_proceed
        assert decision.status == VerificationStatus.FAIL
        assert decision.auto_resolved_count == 0
        assert [i.check_id for i in decision.review_items] == ["math:doc_bs:balance_sheet.fundamental"]

        item = decision.review_items[0]
        assert "matches the extracted value" in item.reason
        assert item.attempted_methods[-1] == "model_section"
        assert total_assets(engine) == 100000

    def test_ratio_failure_is_queued(self):
        """Test a gross margin that contradicts profit over revenue blocks the deal."""
        pnl = {
            "revenue": {"netRevenue": 100000},
            "costOfGoodsSold": {"totalCOGS": 60000},
            "grossProfit": 40000,
            "grossProfitMargin": 0.9,
        }
        engine = make_engine(data=pnl, model_texts=(), doc_type=DocType.PROFIT_AND_LOSS)
        ocr = OcrResult(raw_text="Acme Holdings LLC\nProfit and Loss\n2023", page_count=2)

        decision = asyncio.run(run_stages(engine, ocr, document_id="doc_pnl"))

        assert not decision.can_proceed
        assert decision.status == VerificationStatus.FAIL
        assert [i.check_id for i in decision.review_items] == ["math:doc_pnl:pnl.gross_margin"]
        assert "rounding_tolerance" in decision.review_items[0].attempted_methods
        assert decision.auto_resolved_count == 0
        engine.resolver.client.structure.assert_not_awaited()

    def test_self_resolution_without_model(self):
        """Test a typo the OCR contradicts is fixed by the cheap tiers."""
        # Printed 95,000; extracted 100000. Current + fixed = 95000.
        engine = make_engine(data=balance_sheet(net_fixed=35000), model_texts=())
        decision = asyncio.run(run_stages(engine, balance_sheet_ocr("95,000")))

        assert decision.can_proceed
        assert decision.status == VerificationStatus.PASS
        assert decision.review_items == []
        assert decision.auto_resolved_count == 3
        assert total_assets(engine) == 95000
        engine.resolver.client.structure.assert_not_awaited()

    def test_unsettled_write_back_is_escalated(self):
        """Test a resolved value that keeps breaking other checks goes to review."""
        engine = make_engine(model_texts=(
            '{"value": "95000", "confidence": 0.95, "explanation": "Reads 95,000"}',
            '{"value": "95000", "confidence": 0.95, "explanation": "Reads 95,000"}',
        ))
        decision = asyncio.run(run_stages(engine, balance_sheet_ocr()))

        assert not decision.can_proceed
        assert [i.check_id for i in decision.review_items] == ["math:doc_bs:balance_sheet.fundamental"]
        assert "was not applied" in decision.review_items[0].reason
        assert total_assets(engine) == 100000
        assert engine.resolver.client.structure.await_count == 2

    def test_confirm_review_item(self):
        """Test a reviewer confirmation lets the deal proceed."""
        engine = make_engine()
        decision = asyncio.run(run_stages(engine, balance_sheet_ocr()))
        item = decision.review_items[0]

        refreshed = asyncio.run(engine.apply_review_decision(item.review_item_id, "confirm"))

        assert refreshed.can_proceed
        assert refreshed.review_items == []
        assert engine.store.accepted_checks("deal_1") == frozenset({item.check_id})
        # The accepted check is not sent back to the model
        assert engine.resolver.client.structure.await_count == 1

    def test_correct_review_item(self):
        """Test a reviewer correction is written and re-verified."""
        # Without a page for the field nothing reaches the model
        engine = make_engine(data=balance_sheet(net_fixed=35000), model_texts=())
        decision = asyncio.run(run_stages(engine, balance_sheet_ocr(None)))
        assert not decision.can_proceed
        assert {i.check_id for i in decision.review_items} == {
            "math:doc_bs:balance_sheet.total_assets",
            "math:doc_bs:balance_sheet.fundamental",
        }
        assert all("No document page number" in i.reason for i in decision.review_items)

        item = decision.review_items[0]
        refreshed = asyncio.run(engine.apply_review_decision(item.review_item_id, "correct", "95,000"))

        assert refreshed.can_proceed
        assert refreshed.status == VerificationStatus.PASS
        assert total_assets(engine) == 95000
        assert engine.store.corrected_fields("deal_1") == frozenset({("doc_bs", "assets.totalAssets")})

    def test_correction_is_never_overwritten(self):
        """Test the resolver escalates instead of undoing a reviewer's value."""
        engine = make_engine()
        decision = asyncio.run(run_stages(engine, balance_sheet_ocr()))
        item = decision.review_items[0]

        # 95,000 balances the sheet but breaks the asset sub-total check
        refreshed = asyncio.run(engine.apply_review_decision(item.review_item_id, "correct", "95000"))

        assert not refreshed.can_proceed
        assert total_assets(engine) == 95000
        reasons = [i.reason for i in refreshed.review_items]
        assert any("corrected by a reviewer" in reason for reason in reasons)

    def test_review_decision_errors(self):
        """Test unknown items, unknown actions and missing corrections."""
        engine = make_engine()
        decision = asyncio.run(run_stages(engine, balance_sheet_ocr()))
        item_id = decision.review_items[0].review_item_id

        with pytest.raises(KeyError):
            asyncio.run(engine.apply_review_decision("rvw_missing", "confirm"))
        with pytest.raises(ValueError, match="Unknown review action"):
            asyncio.run(engine.apply_review_decision(item_id, "ignore"))
        with pytest.raises(ValueError, match="corrected_value is required"):
            asyncio.run(engine.apply_review_decision(item_id, "correct"))
        with pytest.raises(ValueError, match="Cannot apply correction"):
            asyncio.run(engine.apply_review_decision(item_id, "correct", "n/a"))


# =============================================================================
# Workflow
# =============================================================================

class TestEdges:
    """Tests for conditional edge routing."""

    def test_check_for_errors(self):
        state = create_initial_state("deal_1")
        assert check_for_errors(state) == "continue"
        assert check_for_errors({**state, "last_error": "boom"}) == "error"

    def test_route_after_verify(self):
        state = create_initial_state("deal_1")
        assert route_after_verify(state) == "gate"
        assert route_after_verify({**state, "report": {"discrepancies": [{"fieldPath": "x"}]}}) == "resolve"
        assert route_after_verify({**state, "last_error": "boom"}) == "error"


class TestRunDeal:
    """Tests for the compiled deal workflow."""

    def test_unbalanced_deal(self):
        """Test the workflow resolves, gates and reports a blocked deal."""
        engine = make_engine()
        state = asyncio.run(run_deal(
            engine, "deal_1", [DocumentInput(document_id="doc_bs", ocr=balance_sheet_ocr())]
        ))

        assert state["current_stage"] == "completed"
        assert state["status"] == "fail"
        assert state["can_proceed"] is False
        assert len(state["review_item_ids"]) == 1
        assert state["documents"]["doc_bs"]["docType"] == "BALANCE_SHEET"
        assert state["resolution"]["unresolved"][0]["fieldPath"] == "assets.totalAssets"

    def test_clean_deal_skips_resolver(self):
        """Test a deal with nothing flagged goes straight to the gate."""
        engine = make_engine(data=balance_sheet(total_equity=50000, l_and_e=100000), model_texts=())
        state = asyncio.run(run_deal(
            engine, "deal_2", [DocumentInput(document_id="doc_bs", ocr=balance_sheet_ocr())]
        ))

        assert state["can_proceed"] is True
        assert state["status"] == "pass"
        assert state["resolution"] == {}
        engine.resolver.client.structure.assert_not_awaited()

    def test_all_documents_failed(self):
        """Test a deal without any usable extraction ends in the error handler."""
        engine = make_engine(classify_error=RuntimeError("classifier unavailable"))
        state = asyncio.run(run_deal(
            engine, "deal_3", [DocumentInput(document_id="doc_bs", ocr=balance_sheet_ocr())]
        ))

        assert state["current_stage"] == "failed"
        assert state["can_proceed"] is False
        assert "No document in deal deal_3" in state["last_error"]
        assert state["documents"]["doc_bs"]["stage"] == "error"
        assert len(state["errors"]) == 1
