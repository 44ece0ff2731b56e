"""
LLM provider abstraction for OpenAI and Azure OpenAI.

Configured via environment variables:
- Default: OpenAI (OPENAI_API_KEY)
- Azure: Set AZURE_OPENAI_ENDPOINT, AZURE_OPENAI_API_KEY, AZURE_OPENAI_DEPLOYMENT_NAME

Azure settings override OpenAI when fully configured.

Every model is requested in JSON mode: all prompts in this package expect a
single JSON object back.
"""

from typing import Optional

from langchain_core.language_models import BaseChatModel
from langchain_openai import AzureChatOpenAI, ChatOpenAI

from .settings import Settings, get_settings


def is_azure_configured() -> bool:
    """Check if Azure OpenAI is configured."""
    return get_settings().is_azure_configured()


def get_llm(
    max_tokens: Optional[int] = None,
    model_override: Optional[str] = None,
    settings: Optional[Settings] = None,
) -> BaseChatModel:
    """
    Get LLM instance based on configuration.

    Priority:
    1. Azure OpenAI if AZURE_OPENAI_* env vars are all set
    2. OpenAI (default)

    Retries are disabled on the client itself; callers wrap invocations
    with their own retry policy so timeouts stay bounded.

    Args:
        max_tokens: Completion token budget (defaults to structuring budget)
        model_override: Override the default model name
        settings: Settings to read (defaults to the environment)

    Returns:
        Configured LLM instance

    Raises:
        ValueError: If no LLM provider is configured
    """
    settings = settings or get_settings()
    budget = max_tokens or settings.structuring_max_tokens

    if settings.is_azure_configured():
        return AzureChatOpenAI(
            azure_endpoint=settings.azure_openai_endpoint,
            api_key=settings.azure_openai_api_key,
            deployment_name=model_override or settings.azure_openai_deployment_name,
            api_version=settings.azure_openai_api_version,
            temperature=settings.llm_temperature,
            max_tokens=budget,
            timeout=settings.llm_timeout_seconds,
            max_retries=0,
            model_kwargs={"response_format": {"type": "json_object"}},
        )

    if not settings.openai_api_key:
        raise ValueError(
            "No LLM provider configured. Set OPENAI_API_KEY or "
            "AZURE_OPENAI_ENDPOINT + AZURE_OPENAI_API_KEY + AZURE_OPENAI_DEPLOYMENT_NAME"
        )

    return ChatOpenAI(
        api_key=settings.openai_api_key,
        model=model_override or settings.openai_model,
        temperature=settings.llm_temperature,
        max_tokens=budget,
        timeout=settings.llm_timeout_seconds,
        max_retries=0,
        model_kwargs={"response_format": {"type": "json_object"}},
    )


def get_model_name(settings: Optional[Settings] = None) -> str:
    """Name recorded on extraction records for audit purposes."""
    settings = settings or get_settings()
    if settings.is_azure_configured():
        return settings.azure_openai_deployment_name or "azure-openai"
    return settings.openai_model
