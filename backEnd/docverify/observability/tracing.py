"""
LangSmith integration for tracing the verification pipeline.

Provides:
- Trace configuration from settings
- A tracer with typed log helpers for classification, extraction,
  resolution, stage transitions and errors
- A decorator for tracing functions

Every helper is a no-op when LANGCHAIN_API_KEY is not configured.
"""

import asyncio
import logging
import os
from contextlib import contextmanager
from functools import lru_cache, wraps
from typing import Any, Callable, Optional, TypeVar

from langsmith import Client
from langsmith.run_trees import RunTree

from ..config.settings import get_settings


logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


def configure_langsmith() -> Optional[Client]:
    """
    Configure LangSmith from settings.

    Required env vars:
    - LANGCHAIN_API_KEY: LangSmith API key
    - LANGCHAIN_PROJECT: Project name (default: "docverify")
    - LANGCHAIN_TRACING_V2: Enable tracing (default: true)

    Returns:
        LangSmith client if configured, None otherwise
    """
    settings = get_settings()

    if not settings.is_langsmith_configured():
        return None

    os.environ["LANGCHAIN_TRACING_V2"] = str(settings.langchain_tracing_v2).lower()
    os.environ["LANGCHAIN_PROJECT"] = settings.langchain_project
    os.environ["LANGCHAIN_API_KEY"] = settings.langchain_api_key

    return Client()


class PipelineTracer:
    """
    Tracer for document verification runs.

    Records:
    - Classification outcomes
    - Extraction method and usage per document
    - Resolver outcomes per discrepancy
    - Document stage transitions
    - Contained errors
    """

    def __init__(self):
        self._client: Optional[Client] = None
        self._project: str = get_settings().langchain_project

    @property
    def client(self) -> Optional[Client]:
        """Lazy-load LangSmith client."""
        if self._client is None:
            self._client = configure_langsmith()
        return self._client

    @property
    def is_enabled(self) -> bool:
        return self.client is not None

    @contextmanager
    def span(self, name: str, run_type: str = "chain", **metadata):
        """
        Create a trace span with metadata.

        Args:
            name: Span name
            run_type: LangSmith run type (chain, tool, llm, etc.)
            **metadata: Additional metadata to attach

        Yields:
            RunTree for the span, or None when tracing is disabled
        """
        if not self.is_enabled:
            yield None
            return

        run = RunTree(
            name=name,
            run_type=run_type,
            extra=metadata,
            project_name=self._project,
        )

        try:
            yield run
        except Exception as e:
            run.end(error=str(e))
            self._post(run)
            raise
        run.end()
        self._post(run)

    def _post(self, run: RunTree) -> None:
        # Telemetry failures never fail the traced work
        try:
            run.post()
        except Exception as e:
            logger.warning(f"Failed to post trace {run.name}: {e}")

    def _create_run(self, name: str, run_type: str, inputs: dict, outputs: dict, **kwargs) -> None:
        if not self.is_enabled:
            return
        try:
            self.client.create_run(
                name=name,
                run_type=run_type,
                project_name=self._project,
                inputs=inputs,
                outputs=outputs,
                **kwargs,
            )
        except Exception as e:
            logger.warning(f"Failed to log trace {name}: {e}")

    def log_classification(
        self,
        document_id: str,
        doc_type: Optional[str],
        confidence: str,
        method: str,
    ) -> None:
        self._create_run(
            "document_classification",
            "chain",
            inputs={"document_id": document_id},
            outputs={"doc_type": doc_type, "confidence": confidence, "method": method},
        )

    def log_extraction(
        self,
        document_id: str,
        doc_type: str,
        method: str,
        tokens_used: int,
        cost_usd: float,
        num_validation_errors: int,
    ) -> None:
        """
        Log one document's extraction.

        Args:
            document_id: Document ID
            doc_type: Classified type
            method: deterministic | model_primary | model_fallback
            tokens_used: Model tokens consumed
            cost_usd: Estimated cost
            num_validation_errors: Path-level validation errors recorded
        """
        self._create_run(
            "document_extraction",
            "llm" if method != "deterministic" else "tool",
            inputs={"document_id": document_id, "doc_type": doc_type},
            outputs={
                "method": method,
                "tokens_used": tokens_used,
                "cost_usd": cost_usd,
                "num_validation_errors": num_validation_errors,
            },
        )

    def log_resolution(
        self,
        deal_id: str,
        field_path: str,
        resolution: dict[str, Any],
    ) -> None:
        self._create_run(
            "discrepancy_resolution",
            "chain",
            inputs={"deal_id": deal_id, "field_path": field_path},
            outputs=resolution,
        )

    def log_stage_transition(
        self,
        document_id: str,
        from_stage: str,
        to_stage: str,
    ) -> None:
        self._create_run(
            "stage_transition",
            "chain",
            inputs={"document_id": document_id, "from_stage": from_stage},
            outputs={"to_stage": to_stage},
        )

    def log_error(
        self,
        error: Exception,
        context: dict[str, Any],
    ) -> None:
        """
        Log a contained error.

        Args:
            error: The exception that occurred
            context: Additional context about the error
        """
        self._create_run(
            "error",
            "chain",
            inputs=context,
            outputs={
                "error_type": type(error).__name__,
                "error_message": str(error),
            },
            error=str(error),
        )


@lru_cache()
def get_tracer() -> PipelineTracer:
    """Get singleton tracer instance."""
    return PipelineTracer()


def traced(name: Optional[str] = None, run_type: str = "chain"):
    """
    Decorator for tracing functions.

    Args:
        name: Span name (defaults to function name)
        run_type: LangSmith run type

    Example:
        @traced("verify_deal")
        async def verify(deal_id: str) -> VerificationReport:
            ...
    """
    def decorator(func: F) -> F:
        @wraps(func)
        async def async_wrapper(*args, **kwargs):
            with get_tracer().span(name or func.__name__, run_type=run_type):
                return await func(*args, **kwargs)

        @wraps(func)
        def sync_wrapper(*args, **kwargs):
            with get_tracer().span(name or func.__name__, run_type=run_type):
                return func(*args, **kwargs)

        if asyncio.iscoroutinefunction(func):
            return async_wrapper  # type: ignore
        return sync_wrapper  # type: ignore

    return decorator
