"""Text-completion access for structuring, classification and re-analysis."""

from .completion import CompletionResult, TextCompletionClient, estimate_cost

__all__ = ["CompletionResult", "TextCompletionClient", "estimate_cost"]
