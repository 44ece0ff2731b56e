"""
Text-completion adapter.

Wraps a LangChain chat model behind the two calls the engine needs:
- structure(system_prompt, text_content, max_tokens)
- structure_document(system_prompt, payload, max_tokens) for raw documents

Every call is bounded by a timeout and retried with exponential backoff on
transient failures only. Anything else surfaces as CompletionError; callers
treat that as an ordinary fallback signal, never a pipeline-fatal error.
"""

import asyncio
import base64
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

import openai
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from ..config.llm_providers import get_llm, get_model_name
from ..config.settings import Settings, get_settings
from ..errors import CompletionError
from ..utils.parallel import is_rate_limit_error

logger = logging.getLogger(__name__)

# Client errors that will fail identically on retry
NON_RETRYABLE_STATUS = {400, 401, 403, 404, 413, 422}

TRANSIENT_ERRORS = (
    asyncio.TimeoutError,
    openai.APITimeoutError,
    openai.APIConnectionError,
    openai.RateLimitError,
    openai.InternalServerError,
)


@dataclass
class CompletionResult:
    """Text and usage returned by a completion call."""
    text: str
    input_tokens: int = 0
    output_tokens: int = 0
    model: str = ""

    @property
    def tokens_used(self) -> int:
        return self.input_tokens + self.output_tokens


def estimate_cost(
    input_tokens: int,
    output_tokens: int,
    settings: Optional[Settings] = None,
) -> float:
    """USD cost of a call at the configured per-million-token prices."""
    settings = settings or get_settings()
    return (
        input_tokens * settings.cost_per_million_input
        + output_tokens * settings.cost_per_million_output
    ) / 1_000_000


def is_transient_error(error: BaseException) -> bool:
    """Whether a failed call is worth retrying."""
    status = getattr(error, "status_code", None)
    if status in NON_RETRYABLE_STATUS:
        return False
    if isinstance(error, TRANSIENT_ERRORS):
        return True
    if isinstance(status, int) and status >= 500:
        return True
    return isinstance(error, Exception) and is_rate_limit_error(error)


def _usage_from(response: BaseMessage) -> tuple[int, int]:
    usage = getattr(response, "usage_metadata", None) or {}
    if usage:
        return int(usage.get("input_tokens", 0)), int(usage.get("output_tokens", 0))

    token_usage = (getattr(response, "response_metadata", None) or {}).get("token_usage") or {}
    return (
        int(token_usage.get("prompt_tokens", 0)),
        int(token_usage.get("completion_tokens", 0)),
    )


def _content_text(response: BaseMessage) -> str:
    content = response.content
    if isinstance(content, str):
        return content
    parts = []
    for block in content:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            parts.append(block.get("text", ""))
    return "".join(parts)


class TextCompletionClient:
    """
    Timeout-bounded, retrying access to the configured chat model.

    The model is lazy-loaded per token budget. Pass `llm` to pin a specific
    model instance (all budgets then share it).
    """

    def __init__(
        self,
        llm: Optional[BaseChatModel] = None,
        settings: Optional[Settings] = None,
        llm_factory: Callable[..., BaseChatModel] = get_llm,
    ):
        self.settings = settings or get_settings()
        self._pinned_llm = llm
        self._llm_factory = llm_factory
        self._llms: Dict[int, BaseChatModel] = {}

    def _llm_for(self, max_tokens: int) -> BaseChatModel:
        if self._pinned_llm is not None:
            return self._pinned_llm
        if max_tokens not in self._llms:
            self._llms[max_tokens] = self._llm_factory(max_tokens=max_tokens, settings=self.settings)
        return self._llms[max_tokens]

    @property
    def model_name(self) -> str:
        if self._pinned_llm is not None:
            name = getattr(self._pinned_llm, "model_name", None)
            return name if isinstance(name, str) else type(self._pinned_llm).__name__
        return get_model_name(self.settings)

    async def structure(
        self,
        system_prompt: str,
        text_content: str,
        max_tokens: int,
    ) -> CompletionResult:
        """
        Submit an instruction template plus document text.

        Args:
            system_prompt: Instruction template
            text_content: Assembled OCR context
            max_tokens: Completion budget

        Returns:
            CompletionResult with raw text and token usage

        Raises:
            CompletionError: On timeout or non-recoverable failure
        """
        messages = [
            SystemMessage(content=system_prompt),
            HumanMessage(content=text_content),
        ]
        return await self._invoke(messages, max_tokens)

    async def structure_document(
        self,
        system_prompt: str,
        payload: bytes,
        max_tokens: int,
        media_type: str = "application/pdf",
        filename: str = "document.pdf",
        instruction: str = "Respond with JSON only.",
    ) -> CompletionResult:
        """
        Submit a raw document (PDF or image) instead of OCR text.

        Args:
            system_prompt: Instruction template
            payload: Document bytes
            max_tokens: Completion budget
            media_type: MIME type of the payload
            filename: Name reported for PDF payloads
            instruction: User-turn text sent alongside the document

        Returns:
            CompletionResult with raw text and token usage

        Raises:
            CompletionError: On timeout or non-recoverable failure
        """
        encoded = base64.b64encode(payload).decode("utf-8")
        data_url = f"data:{media_type};base64,{encoded}"

        if media_type.startswith("image/"):
            block: Dict[str, Any] = {"type": "image_url", "image_url": {"url": data_url}}
        else:
            block = {"type": "file", "file": {"filename": filename, "file_data": data_url}}

        content: List[Any] = [
            block,
            {"type": "text", "text": instruction},
        ]
        messages = [
            SystemMessage(content=system_prompt),
            HumanMessage(content=content),
        ]
        return await self._invoke(messages, max_tokens)

    async def _invoke(self, messages: List[BaseMessage], max_tokens: int) -> CompletionResult:
        timeout = self.settings.llm_timeout_seconds
        try:
            llm = self._llm_for(max_tokens)
        except Exception as e:
            raise CompletionError(f"Model unavailable: {e}") from e

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.settings.llm_max_retries + 1),
                wait=wait_exponential(multiplier=1, min=1, max=10),
                retry=retry_if_exception(is_transient_error),
                before_sleep=lambda state: logger.warning(
                    f"Retrying completion after {state.outcome.exception()}"
                ),
                reraise=True,
            ):
                with attempt:
                    response = await asyncio.wait_for(llm.ainvoke(messages), timeout=timeout)
        except asyncio.TimeoutError as e:
            raise CompletionError(f"Completion timed out after {timeout:.0f}s") from e
        except Exception as e:
            raise CompletionError(
                f"Completion failed: {e}", status_code=getattr(e, "status_code", None)
            ) from e

        input_tokens, output_tokens = _usage_from(response)
        return CompletionResult(
            text=_content_text(response),
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            model=self.model_name,
        )
