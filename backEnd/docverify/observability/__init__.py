"""Observability and tracing for the verification pipeline."""

from .tracing import (
    configure_langsmith,
    get_tracer,
    PipelineTracer,
    traced,
)

__all__ = [
    "configure_langsmith",
    "get_tracer",
    "PipelineTracer",
    "traced",
]
