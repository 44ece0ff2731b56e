"""
Application settings with environment variable support.

Configuration is loaded from environment variables with optional .env file.
Azure OpenAI settings override OpenAI when fully configured.

Verification tolerances live here rather than in the check modules so they
can vary per deployment (e.g. per currency or per lender policy).
"""

from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # OpenAI settings (default provider)
    openai_api_key: Optional[str] = Field(default=None, alias="OPENAI_API_KEY")
    openai_model: str = Field(default="gpt-4o-mini", alias="OPENAI_MODEL")

    # Azure OpenAI settings (overrides OpenAI if all are set)
    azure_openai_endpoint: Optional[str] = Field(
        default=None, alias="AZURE_OPENAI_ENDPOINT"
    )
    azure_openai_api_key: Optional[str] = Field(
        default=None, alias="AZURE_OPENAI_API_KEY"
    )
    azure_openai_deployment_name: Optional[str] = Field(
        default=None, alias="AZURE_OPENAI_DEPLOYMENT_NAME"
    )
    azure_openai_api_version: str = Field(
        default="2024-02-15-preview", alias="AZURE_OPENAI_API_VERSION"
    )

    # LangSmith settings
    langchain_api_key: Optional[str] = Field(default=None, alias="LANGCHAIN_API_KEY")
    langchain_project: str = Field(default="docverify", alias="LANGCHAIN_PROJECT")
    langchain_tracing_v2: bool = Field(default=True, alias="LANGCHAIN_TRACING_V2")

    # LLM behavior settings
    llm_temperature: float = Field(default=0.0, ge=0.0, le=2.0)
    llm_timeout_seconds: float = Field(default=60.0, gt=0.0)
    llm_max_retries: int = Field(default=2, ge=0)
    structuring_max_tokens: int = Field(default=8000, ge=1)
    classifier_max_tokens: int = Field(default=500, ge=1)
    section_reanalysis_max_tokens: int = Field(default=500, ge=1)
    batch_reanalysis_max_tokens: int = Field(default=1000, ge=1)

    # Pricing (USD per 1M tokens)
    cost_per_million_input: float = Field(default=0.20, ge=0.0)
    cost_per_million_output: float = Field(default=0.50, ge=0.0)

    # Resolver tolerances
    rounding_absolute_tolerance: float = Field(default=1.0, ge=0.0)
    rounding_relative_tolerance: float = Field(default=0.005, ge=0.0)
    alternative_min_confidence: float = Field(default=0.8, ge=0.0, le=1.0)
    alternative_discount: float = Field(default=0.9, ge=0.0, le=1.0)
    model_min_confidence: float = Field(default=0.7, ge=0.0, le=1.0)

    # Verification tolerances
    math_absolute_tolerance: float = Field(default=1.0, ge=0.0)
    math_ratio_tolerance: float = Field(default=0.02, ge=0.0)
    cross_doc_absolute_tolerance: float = Field(default=1.0, ge=0.0)
    cross_doc_fail_threshold: float = Field(default=0.02, ge=0.0)
    cross_doc_warn_threshold: float = Field(default=0.05, ge=0.0)
    ocr_match_tolerance: float = Field(default=1.0, ge=0.0)
    ocr_disagreement_fail_count: int = Field(default=2, ge=0)

    # Pipeline concurrency
    max_concurrent_documents: int = Field(default=4, ge=1)

    def is_azure_configured(self) -> bool:
        """Check if Azure OpenAI is fully configured."""
        return all([
            self.azure_openai_endpoint,
            self.azure_openai_api_key,
            self.azure_openai_deployment_name,
        ])

    def is_openai_configured(self) -> bool:
        """Check if any completion provider is configured."""
        return self.openai_api_key is not None or self.is_azure_configured()

    def is_langsmith_configured(self) -> bool:
        """Check if LangSmith is configured."""
        return self.langchain_api_key is not None

    def tolerances(self) -> "Tolerances":
        """Snapshot of the verification/resolution tolerances."""
        return Tolerances(
            rounding_absolute=self.rounding_absolute_tolerance,
            rounding_relative=self.rounding_relative_tolerance,
            alternative_min_confidence=self.alternative_min_confidence,
            alternative_discount=self.alternative_discount,
            model_min_confidence=self.model_min_confidence,
            math_absolute=self.math_absolute_tolerance,
            math_ratio=self.math_ratio_tolerance,
            cross_doc_absolute=self.cross_doc_absolute_tolerance,
            cross_doc_fail=self.cross_doc_fail_threshold,
            cross_doc_warn=self.cross_doc_warn_threshold,
            ocr_match=self.ocr_match_tolerance,
            ocr_disagreement_fail_count=self.ocr_disagreement_fail_count,
        )


@dataclass(frozen=True)
class Tolerances:
    """Immutable tolerance set passed into checks, resolver and review gate."""

    rounding_absolute: float = 1.0
    rounding_relative: float = 0.005
    alternative_min_confidence: float = 0.8
    alternative_discount: float = 0.9
    model_min_confidence: float = 0.7
    math_absolute: float = 1.0
    math_ratio: float = 0.02
    cross_doc_absolute: float = 1.0
    cross_doc_fail: float = 0.02
    cross_doc_warn: float = 0.05
    ocr_match: float = 1.0
    ocr_disagreement_fail_count: int = 2


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
