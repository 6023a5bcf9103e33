"""
OpenRouter chat-completion client with usage accounting.

Wraps an OpenAI-compatible client so that every call reports token usage
and cost, and is written to the usage log.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, Mapping, Optional, Union

import structlog
from openai import OpenAI

from ..core.pricing import CostBreakdown, PricingResolver, calculate_cost
from ..core.token_counter import TokenUsage, extract_usage
from .errors import UpstreamResponseError
from .usage_logger import UsageLogger

logger = structlog.get_logger(__name__)

DEFAULT_MODEL = "anthropic/claude-sonnet-4.5"


@dataclass(frozen=True)
class CompletionResult:
    """Parsed response payload with its token usage and cost."""
    data: Any
    usage: TokenUsage
    cost: CostBreakdown
    model: str


@dataclass(frozen=True)
class ContentEvent:
    """An incremental piece of streamed text."""
    content: str
    type: str = field(default="content", init=False)


@dataclass(frozen=True)
class CompleteEvent:
    """Final event of a stream: the full text, usage and cost."""
    content: str
    usage: TokenUsage
    cost: CostBreakdown
    type: str = field(default="complete", init=False)


StreamEvent = Union[ContentEvent, CompleteEvent]


@dataclass(frozen=True)
class ParsedCompletion:
    content: str
    usage: TokenUsage


@dataclass(frozen=True)
class ParsedChunk:
    content: str
    usage: Optional[TokenUsage]


def _as_dict(payload: Any) -> Mapping[str, Any]:
    """Convert an SDK response object into a plain mapping."""
    if isinstance(payload, Mapping):
        return payload
    dump = getattr(payload, "model_dump", None)
    if callable(dump):
        dumped = dump()
        if isinstance(dumped, Mapping):
            return dumped
    raise UpstreamResponseError(
        f"Unexpected response type from completion API: {type(payload).__name__}"
    )


def _text_or_empty(value: Any, where: str) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise UpstreamResponseError(f"{where} is not a string")
    return value


def parse_completion_response(raw: Mapping[str, Any]) -> ParsedCompletion:
    """Validate a non-streaming response and pull out content and usage.

    Raises:
        UpstreamResponseError: If the response has no first choice message
    """
    choices = raw.get("choices")
    if not isinstance(choices, list) or not choices:
        raise UpstreamResponseError("Completion response has no choices")

    first = choices[0]
    message = first.get("message") if isinstance(first, Mapping) else None
    if not isinstance(message, Mapping):
        raise UpstreamResponseError("Completion response has no message")

    return ParsedCompletion(
        content=_text_or_empty(message.get("content"), "choices[0].message.content"),
        usage=extract_usage(raw.get("usage"))
    )


def parse_stream_chunk(raw: Mapping[str, Any]) -> ParsedChunk:
    """Pull the content delta and usage (if any) out of a stream chunk."""
    content = ""
    choices = raw.get("choices")
    if isinstance(choices, list) and choices and isinstance(choices[0], Mapping):
        delta = choices[0].get("delta")
        if isinstance(delta, Mapping):
            content = _text_or_empty(delta.get("content"), "choices[0].delta.content")

    raw_usage = raw.get("usage")
    usage = extract_usage(raw_usage) if isinstance(raw_usage, Mapping) else None
    return ParsedChunk(content=content, usage=usage)


class OpenRouterClient:
    """Chat-completion client that records the usage and cost of every call.

    Upstream API errors are propagated without retry. Pricing and usage
    logging failures degrade to zero cost and an unlogged call.
    """

    def __init__(
        self,
        client: OpenAI,
        pricing_resolver: PricingResolver,
        usage_logger: UsageLogger,
        default_model: str = DEFAULT_MODEL
    ):
        """Initialize the client.

        Args:
            client: OpenAI-compatible client pointed at OpenRouter
            pricing_resolver: Resolver for per-token model prices
            usage_logger: Logger that persists one entry per call
            default_model: Model used when a call doesn't name one

        Raises:
            ValueError: If default_model is empty
        """
        if not default_model or not default_model.strip():
            raise ValueError("default_model is required and cannot be empty")

        self.client = client
        self.pricing_resolver = pricing_resolver
        self.usage_logger = usage_logger
        self.default_model = default_model

    def _build_request(
        self,
        prompt: str,
        model: Optional[str],
        temperature: Optional[float],
        max_tokens: Optional[int]
    ) -> Dict[str, Any]:
        if not isinstance(prompt, str) or not prompt.strip():
            raise ValueError("prompt is required and cannot be empty")

        request: Dict[str, Any] = {
            "model": model or self.default_model,
            "messages": [{"role": "user", "content": prompt}],
        }
        if temperature is not None:
            request["temperature"] = temperature
        if max_tokens is not None:
            request["max_tokens"] = max_tokens
        return request

    def _account(self, model: str, prompt: str, output: str, usage: TokenUsage) -> CostBreakdown:
        pricing = self.pricing_resolver.resolve(model)
        cost = calculate_cost(usage.input_tokens, usage.output_tokens, pricing)

        logger.info(
            "openrouter.completion",
            model=model,
            input_tokens=usage.input_tokens,
            output_tokens=usage.output_tokens,
            total_cost=cost.total_cost
        )
        self.usage_logger.record(
            model=model,
            input_text=prompt,
            output_text=output,
            usage=usage,
            cost=cost
        )
        return cost

    def complete(
        self,
        prompt: str,
        model: Optional[str] = None,
        json_schema: Optional[Dict[str, Any]] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None
    ) -> CompletionResult:
        """Send a prompt and return the parsed response with usage and cost.

        With ``json_schema`` the API is asked for strictly schema-conforming
        JSON and the content is parsed; if parsing fails the raw text is
        returned as ``{"message": text}``. Without a schema ``data`` is
        the raw text.

        Args:
            prompt: Prompt sent as a single user message
            model: Model identifier (defaults to the client's default model)
            json_schema: JSON schema constraining the response (optional)
            temperature: Sampling temperature (optional)
            max_tokens: Maximum tokens to generate (optional)

        Returns:
            CompletionResult with data, usage and cost

        Raises:
            ValueError: If prompt is empty
            UpstreamResponseError: If the response cannot be interpreted
            OpenAI API errors: Propagated without modification
        """
        request = self._build_request(prompt, model, temperature, max_tokens)
        if json_schema is not None:
            request["response_format"] = {
                "type": "json_schema",
                "json_schema": {
                    "name": "response",
                    "strict": True,
                    "schema": json_schema,
                },
            }

        response = self.client.chat.completions.create(**request)
        parsed = parse_completion_response(_as_dict(response))

        data: Any = parsed.content
        if json_schema is not None:
            try:
                data = json.loads(parsed.content)
            except ValueError as e:
                logger.warning(
                    "openrouter.schema_parse_failed",
                    model=request["model"],
                    error=str(e)
                )
                data = {"message": parsed.content}

        cost = self._account(request["model"], prompt, parsed.content, parsed.usage)
        return CompletionResult(
            data=data,
            usage=parsed.usage,
            cost=cost,
            model=request["model"]
        )

    def stream(
        self,
        prompt: str,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None
    ) -> Iterator[StreamEvent]:
        """Stream a completion as content events followed by one complete event.

        The call is logged only once the upstream stream is exhausted; a
        consumer that stops iterating early leaves it unlogged.

        Raises:
            ValueError: If prompt is empty
            OpenAI API errors: Propagated without modification
        """
        request = self._build_request(prompt, model, temperature, max_tokens)
        return self._stream(prompt, request)

    def _stream(self, prompt: str, request: Dict[str, Any]) -> Iterator[StreamEvent]:
        upstream = self.client.chat.completions.create(
            **request,
            stream=True,
            stream_options={"include_usage": True}
        )

        parts = []
        usage: Optional[TokenUsage] = None
        try:
            for chunk in upstream:
                parsed = parse_stream_chunk(_as_dict(chunk))
                if parsed.usage is not None:
                    usage = parsed.usage
                if parsed.content:
                    parts.append(parsed.content)
                    yield ContentEvent(content=parsed.content)
        finally:
            close = getattr(upstream, "close", None)
            if callable(close):
                close()

        content = "".join(parts)
        usage = usage or TokenUsage.zero()
        cost = self._account(request["model"], prompt, content, usage)
        yield CompleteEvent(content=content, usage=usage, cost=cost)
