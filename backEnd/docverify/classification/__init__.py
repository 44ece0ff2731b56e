"""Document classification: deterministic tiers with a model fallback."""

from .keyword_classifier import NO_MATCH, ClassificationResult, classify
from .model_classifier import DocumentClassifier, ModelClassifier, parse_year

__all__ = [
    "NO_MATCH",
    "ClassificationResult",
    "classify",
    "DocumentClassifier",
    "ModelClassifier",
    "parse_year",
]
