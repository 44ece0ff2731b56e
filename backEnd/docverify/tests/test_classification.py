"""Tests for document type normalization and classification."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from docverify.classification.keyword_classifier import NO_MATCH, classify
from docverify.classification.model_classifier import (
    DocumentClassifier,
    ModelClassifier,
    parse_year,
)
from docverify.config.settings import Settings
from docverify.errors import CompletionError
from docverify.llm.completion import CompletionResult
from docverify.schemas.doc_types import DocType, normalize_doc_type
from docverify.schemas.ocr import KeyValuePair, OcrResult


def _client(text: str = "", error: Exception = None) -> MagicMock:
    client = MagicMock()
    result = CompletionResult(text=text, input_tokens=900, output_tokens=40, model="gpt-4o-mini")
    client.structure = AsyncMock(return_value=result, side_effect=error)
    client.structure_document = AsyncMock(return_value=result, side_effect=error)
    return client


class TestNormalizeDocType:
    """Tests for normalize_doc_type."""

    @pytest.mark.parametrize("raw,expected", [
        ("FORM_1040", DocType.FORM_1040),
        ("form 1040", DocType.FORM_1040),
        ("Form-1120S", DocType.FORM_1120S),
        ("1120-S", DocType.FORM_1120S),
        ("W-2", DocType.W2),
        ("w2", DocType.W2),
        ("Schedule C", DocType.PROFIT_AND_LOSS),
        ("Schedule E", DocType.FORM_1040),
        ("K-1", DocType.SCHEDULE_K1),
        ("bank statement", DocType.BANK_STATEMENT_CHECKING),
        ("  balance_sheet ", DocType.BALANCE_SHEET),
    ])
    def test_known_labels(self, raw, expected):
        """Test model-style labels map onto the canonical enum."""
        assert normalize_doc_type(raw) == expected

    @pytest.mark.parametrize("raw", [None, "", "   ", "invoice", "FORM_9999"])
    def test_unknown_labels_become_other(self, raw):
        """Test unknown labels never raise and map to OTHER."""
        assert normalize_doc_type(raw) == DocType.OTHER

    def test_every_canonical_value_round_trips(self):
        """Test each canonical value normalizes to itself."""
        for doc_type in DocType:
            assert normalize_doc_type(doc_type.value) == doc_type


class TestKeywordClassifier:
    """Tests for the deterministic classification tiers."""

    def test_form_1040_title(self):
        """Test a 1040 title classifies with high confidence via keywords."""
        result = classify("Form 1040 U.S. Individual Income Tax Return 2023")
        assert result.doc_type == DocType.FORM_1040
        assert result.confidence == "high"
        assert result.method == "keyword"

    def test_s_corp_before_c_corp(self):
        """Test the more specific 1120-S rule wins over 1120."""
        result = classify("Form 1120-S U.S. Income Tax Return for an S Corporation")
        assert result.doc_type == DocType.FORM_1120S

    def test_schedule_c_alone_is_pnl(self):
        """Test a standalone Schedule C is treated as a P&L."""
        result = classify("SCHEDULE C Profit or Loss From Business (Sole Proprietorship)")
        assert result.doc_type == DocType.PROFIT_AND_LOSS

    def test_key_tier(self):
        """Test key-label co-occurrence when no title matched."""
        kvs = [
            KeyValuePair(key="Total Assets", value="100"),
            KeyValuePair(key="Total Liabilities", value="60"),
        ]
        result = classify("Acme Holdings as of December 31", kvs)
        assert result.doc_type == DocType.BALANCE_SHEET
        assert result.confidence == "medium"
        assert result.method == "kv_key"

    def test_bank_context(self):
        """Test a known bank name plus statement vocabulary."""
        result = classify("Wells Fargo account statement for the period ending March 31")
        assert result.doc_type == DocType.BANK_STATEMENT_CHECKING
        assert result.confidence == "medium"

    def test_savings_context(self):
        """Test savings vocabulary classifies as a savings statement."""
        result = classify("Your savings account summary")
        assert result.doc_type == DocType.BANK_STATEMENT_SAVINGS

    def test_rent_roll_context(self):
        """Test tenant and monthly rent together classify as a rent roll."""
        result = classify("Unit 1A  Tenant: J. Smith  Monthly Rent $1,200")
        assert result.doc_type == DocType.RENT_ROLL

    def test_no_match(self):
        """Test unrecognizable text returns the no-match sentinel."""
        result = classify("Lorem ipsum dolor sit amet")
        assert result == NO_MATCH
        assert not result.is_match

    def test_deterministic(self):
        """Test identical input always yields an identical result."""
        kvs = [KeyValuePair(key="Adjusted gross income", value="85,000")]
        first = classify("scan 0001", kvs)
        second = classify("scan 0001", kvs)
        assert first == second
        assert first.doc_type == DocType.FORM_1040


class TestParseYear:
    """Tests for parse_year."""

    def test_accepts_int_and_numeric_string(self):
        """Test integer and numeric-string years."""
        assert parse_year(2023) == 2023
        assert parse_year("2022") == 2022
        assert parse_year(2021.0) == 2021

    def test_rejects_other_values(self):
        """Test everything else is None."""
        assert parse_year("FY23") is None
        assert parse_year(True) is None
        assert parse_year(None) is None


class TestModelClassifier:
    """Tests for ModelClassifier."""

    def test_parses_label_and_year(self):
        """Test a normal model response."""
        client = _client('{"docType": "W-2", "year": "2023", "details": "Employer copy"}')
        classifier = ModelClassifier(client=client, settings=Settings())

        result = asyncio.run(classifier.classify(raw_text="scanned text"))

        assert result.doc_type == DocType.W2
        assert result.method == "model"
        assert result.confidence == "medium"
        assert result.year == 2023
        assert result.tokens_used == 940
        assert result.cost_usd > 0
        client.structure.assert_awaited_once()

    def test_prefers_payload(self):
        """Test the raw document is sent when a payload is supplied."""
        client = _client('```json\n{"docType": "BALANCE_SHEET"}\n```')
        classifier = ModelClassifier(client=client, settings=Settings())

        result = asyncio.run(classifier.classify(payload=b"%PDF-1.7", media_type="application/pdf"))

        assert result.doc_type == DocType.BALANCE_SHEET
        client.structure_document.assert_awaited_once()
        client.structure.assert_not_awaited()

    def test_unparseable_response(self):
        """Test garbage output classifies as OTHER without raising."""
        classifier = ModelClassifier(client=_client("I think it is a tax form"), settings=Settings())
        result = asyncio.run(classifier.classify(raw_text="x"))
        assert result.doc_type == DocType.OTHER
        assert result.confidence == "none"
        assert "could not parse" in result.details

    def test_call_failure(self):
        """Test a failed call classifies as OTHER without raising."""
        client = _client(error=CompletionError("Completion timed out after 60s"))
        classifier = ModelClassifier(client=client, settings=Settings())
        result = asyncio.run(classifier.classify(raw_text="x"))
        assert result.doc_type == DocType.OTHER
        assert "timed out" in result.details


class TestDocumentClassifier:
    """Tests for the full classification chain."""

    def test_keyword_match_skips_model(self):
        """Test the model is not consulted when a deterministic tier matched."""
        model = MagicMock()
        model.classify = AsyncMock()
        chain = DocumentClassifier(model_classifier=model)

        result = asyncio.run(chain.classify(OcrResult(raw_text="Form W-2 Wage and Tax Statement")))

        assert result.doc_type == DocType.W2
        model.classify.assert_not_awaited()

    def test_escalates_to_model(self):
        """Test the model is consulted only after every tier missed."""
        client = _client('{"docType": "RENT_ROLL"}')
        chain = DocumentClassifier(ModelClassifier(client=client, settings=Settings()))

        result = asyncio.run(chain.classify(OcrResult(raw_text="Lorem ipsum")))

        assert result.doc_type == DocType.RENT_ROLL
        assert result.method == "model"
