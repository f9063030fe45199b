"""Completion client and JSON parsing utilities for analysis chains."""

import json
import re
import time
from dataclasses import dataclass
from typing import Any, Generic, Protocol, TypeVar, Union

from pydantic import BaseModel, ValidationError

from analysis_engine.core.completion_tasks import get_task_config
from analysis_engine.core.config import Settings, get_settings
from analysis_engine.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")
M = TypeVar("M", bound=BaseModel)


class CompletionError(Exception):
    """Raised when a completion call could not be completed."""


class ConfigurationError(Exception):
    """Raised when the completion client is missing required settings."""


@dataclass(frozen=True)
class CompletionResponse:
    """Text returned by one completion call, with its usage."""

    content: str
    tokens_used: int
    model: str


class CompletionClient(Protocol):
    """Anything that can answer a templated completion request."""

    async def call_with_fallback(self, template_key: str, input_text: str) -> CompletionResponse:
        ...


# =============================================================================
# Parse results
# =============================================================================


@dataclass(frozen=True)
class Parsed(Generic[T]):
    """A completion that parsed into the expected shape."""

    value: T
    raw: str


@dataclass(frozen=True)
class ParseError:
    """A completion that could not be parsed; keeps the raw text for fallbacks."""

    error: str
    raw: str


ParseResult = Union[Parsed[T], ParseError]


def _strip_llm_fences(raw_output: str) -> str:
    """Strip markdown code fences from LLM output.

    Handles: ```json ... ```, ``` ... ```, leading/trailing whitespace.
    """
    cleaned = raw_output.strip()

    fence_match = re.search(r"```(?:json)?\s*\n?(.*?)```", cleaned, re.DOTALL | re.IGNORECASE)
    if fence_match:
        return fence_match.group(1).strip()

    if cleaned.startswith("```json"):
        cleaned = cleaned[7:]
    elif cleaned.startswith("```"):
        cleaned = cleaned[3:]
    if cleaned.endswith("```"):
        cleaned = cleaned[:-3]
    return cleaned.strip()


def _span(text: str, open_char: str, close_char: str) -> tuple[int, int] | None:
    start, end = text.find(open_char), text.rfind(close_char) + 1
    if start == -1 or end <= start:
        return None
    return start, end


def _json_candidates(text: str) -> list[str]:
    """
    Slices of text that may hold the JSON payload, most likely first.

    The array span goes first only when it encloses the object span, so a
    bracketed reference in leading prose (``see [1]: {...}``) does not hide
    the object. Falls back to the whole text when no span is found.
    """
    obj = _span(text, "{", "}")
    arr = _span(text, "[", "]")

    spans = [span for span in (obj, arr) if span is not None]
    if obj and arr and arr[0] < obj[0] and arr[1] >= obj[1]:
        spans.reverse()
    return [text[start:end] for start, end in spans] or [text]


def _raw_text(response: CompletionResponse | str) -> str:
    if isinstance(response, CompletionResponse):
        return response.content or ""
    return response or ""


def parse_llm_json_data(response: CompletionResponse | str) -> ParseResult[Any]:
    """
    Parse a completion as JSON without schema validation.

    Use this when the stage needs to filter or repair items before
    validating them. For direct-to-model parsing, use parse_llm_json().

    Args:
        response: Completion response or its raw text

    Returns:
        Parsed with the decoded JSON value, or ParseError with the raw text
    """
    raw = _raw_text(response)
    error: json.JSONDecodeError | None = None

    for candidate in _json_candidates(_strip_llm_fences(raw)):
        try:
            return Parsed(value=json.loads(candidate), raw=raw)
        except json.JSONDecodeError as e:
            error = e

    logger.warning(
        f"JSON parsing failed: {error}",
        extra={"output_preview": raw[:200]},
    )
    return ParseError(error=f"invalid JSON: {error}", raw=raw)


def parse_llm_json(response: CompletionResponse | str, model: type[M]) -> ParseResult[M]:
    """
    Parse a completion as JSON and validate it against a Pydantic model.

    Handles common LLM response quirks:
    - Markdown code fences (```json ... ```)
    - Prose before or after the JSON payload
    - Leading/trailing whitespace

    Args:
        response: Completion response or its raw text
        model: Pydantic model class to validate against

    Returns:
        Parsed with the validated model, or ParseError carrying the raw text
    """
    data = parse_llm_json_data(response)
    if isinstance(data, ParseError):
        return data

    try:
        return Parsed(value=model.model_validate(data.value), raw=data.raw)
    except ValidationError as e:
        logger.warning(
            f"Pydantic validation failed for {model.__name__}: {e.error_count()} error(s)",
            extra={"output_preview": data.raw[:200]},
        )
        return ParseError(error=str(e), raw=data.raw)


# =============================================================================
# Anthropic-backed completion client
# =============================================================================


class AnthropicCompletionClient:
    """Completion client that calls Anthropic with a primary and fallback model."""

    def __init__(self, settings: Settings | None = None, client: Any | None = None) -> None:
        self.settings = settings or get_settings()

        if client is None:
            if not self.settings.ANTHROPIC_API_KEY:
                raise ConfigurationError("ANTHROPIC_API_KEY is not set")
            from anthropic import AsyncAnthropic

            client = AsyncAnthropic(api_key=self.settings.ANTHROPIC_API_KEY)

        self._client = client

    def _models(self) -> list[str]:
        models = [self.settings.ANALYSIS_PRIMARY_MODEL]
        if self.settings.ANALYSIS_FALLBACK_MODEL not in models:
            models.append(self.settings.ANALYSIS_FALLBACK_MODEL)
        return models

    async def _call(self, model: str, template_key: str, input_text: str) -> CompletionResponse:
        task = get_task_config(template_key)

        start = time.time()
        response = await self._client.messages.create(
            model=model,
            max_tokens=self.settings.ANALYSIS_MAX_TOKENS,
            temperature=task.temperature,
            system=task.system_prompt,
            messages=[{"role": "user", "content": input_text}],
        )
        duration_ms = int((time.time() - start) * 1000)

        text = "".join(
            block.text for block in response.content if isinstance(getattr(block, "text", None), str)
        )
        usage = response.usage
        tokens_used = (usage.input_tokens or 0) + (usage.output_tokens or 0)

        logger.debug(
            f"Completion {template_key} model={model} tokens={tokens_used} duration_ms={duration_ms}"
        )
        return CompletionResponse(content=text, tokens_used=tokens_used, model=model)

    async def call_with_fallback(self, template_key: str, input_text: str) -> CompletionResponse:
        """
        Run a templated completion, falling back to the secondary model on failure.

        Args:
            template_key: Task key from completion_tasks.TASK_CONFIGS
            input_text: User message (already truncated by the caller)

        Returns:
            CompletionResponse with text, tokens used and the model that answered

        Raises:
            CompletionError: If every model failed
        """
        from anthropic import APIError

        last_error: Exception | None = None
        for model in self._models():
            try:
                return await self._call(model, template_key, input_text)
            except APIError as e:
                last_error = e
                logger.warning(
                    f"Completion {template_key} failed on {model} ({type(e).__name__})",
                )

        raise CompletionError(f"Completion {template_key} failed on all models") from last_error
