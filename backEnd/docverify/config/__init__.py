"""Configuration module for the document verification engine."""

from .settings import Settings, Tolerances, get_settings
from .llm_providers import get_llm, get_model_name, is_azure_configured

__all__ = [
    "Settings",
    "Tolerances",
    "get_settings",
    "get_llm",
    "get_model_name",
    "is_azure_configured",
]
