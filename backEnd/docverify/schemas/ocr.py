"""
OCR adapter payload models.

The OCR engine itself is external; these models describe what it hands us:
- OcrResult: raw text, page-tagged key-value pairs and tables
- LendingPage: the richer variant with named, typed fields, available only
  for a known subset of standardized forms
"""

from typing import Optional

from pydantic import BaseModel, Field


class KeyValuePair(BaseModel):
    """A key-value pair detected on a page."""

    key: str = Field(..., description="Label text as printed")
    value: str = Field(default="", description="Value text as printed")
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    page: int = Field(default=1, ge=1)


class OcrTable(BaseModel):
    """A table detected on a page, as rows of cell text."""

    page: int = Field(default=1, ge=1)
    rows: list[list[str]] = Field(default_factory=list)


class LendingField(BaseModel):
    """A named field from the richly-typed OCR variant."""

    type: str = Field(..., description="OCR field token, e.g. WAGES_TIPS_OTHER_COMP")
    value: Optional[str] = None
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)


class LendingPage(BaseModel):
    """A page classified by the OCR engine as a known standardized form."""

    page: int = Field(default=1, ge=1)
    page_type: str = Field(..., description="OCR page type label, e.g. '1040', 'W-2'")
    page_type_confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    fields: list[LendingField] = Field(default_factory=list)


class OcrResult(BaseModel):
    """Full OCR output for one document."""

    raw_text: str = Field(default="")
    page_count: int = Field(default=1, ge=0)
    key_value_pairs: list[KeyValuePair] = Field(default_factory=list)
    tables: list[OcrTable] = Field(default_factory=list)
    page_texts: dict[int, str] = Field(
        default_factory=dict,
        description="Optional per-page text keyed by 1-based page number",
    )
    lending_pages: list[LendingPage] = Field(default_factory=list)

    def pairs_on_page(self, page: Optional[int]) -> list[KeyValuePair]:
        """Key-value pairs on a page, or all pairs when page is None."""
        if page is None:
            return list(self.key_value_pairs)
        return [kv for kv in self.key_value_pairs if kv.page == page]

    def page_text(self, page: int) -> str:
        """
        Best-effort text for a single page.

        Uses per-page text when the adapter supplied it. Single-page
        documents use the whole raw text. Otherwise lines are split evenly
        across pages, which is approximate but keeps prompts page-scoped.
        """
        if page in self.page_texts:
            return self.page_texts[page]
        if self.page_count <= 1:
            return self.raw_text

        lines = self.raw_text.splitlines()
        if not lines:
            return ""
        per_page = max(1, -(-len(lines) // self.page_count))
        start = (page - 1) * per_page
        return "\n".join(lines[start:start + per_page])
