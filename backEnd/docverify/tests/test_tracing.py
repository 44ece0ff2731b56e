"""Tests for the LangSmith tracer."""

from unittest.mock import MagicMock

import pytest

from docverify.observability import tracing
from docverify.observability.tracing import PipelineTracer


@pytest.fixture
def tracer(monkeypatch):
    """Tracer with a client whose every call to LangSmith fails."""
    run = MagicMock()
    run.post.side_effect = ConnectionError("LangSmith unavailable")
    monkeypatch.setattr(tracing, "RunTree", MagicMock(return_value=run))

    tracer = PipelineTracer()
    tracer._client = MagicMock()
    tracer._client.create_run.side_effect = ConnectionError("LangSmith unavailable")
    return tracer


class TestPipelineTracer:
    """Tests for PipelineTracer."""

    def test_span_survives_post_failure(self, tracer):
        """Test the traced block completes when the trace cannot be posted."""
        with tracer.span("process_document", document_id="doc_1") as run:
            result = "extracted"

        assert result == "extracted"
        run.end.assert_called_once_with()

    def test_span_reraises_work_errors(self, tracer):
        """Test errors from the traced block still propagate."""
        with pytest.raises(RuntimeError, match="boom"):
            with tracer.span("process_document") as run:
                raise RuntimeError("boom")

        run.end.assert_called_once_with(error="boom")

    def test_log_helpers_survive_client_failure(self, tracer):
        """Test log helpers never raise on a LangSmith outage."""
        tracer.log_classification("doc_1", "W2", "high", "title")
        tracer.log_error(ValueError("bad"), context={"document_id": "doc_1"})

        assert tracer._client.create_run.call_count == 2

