"""
Token counting and usage tracking.

Normalises the usage block returned by chat-completion APIs.
"""

from dataclasses import dataclass
from typing import Any, Mapping, Optional


@dataclass(frozen=True)
class TokenUsage:
    """Token usage for a single completion call.

    Counts are always non-negative integers.
    """
    input_tokens: int
    output_tokens: int
    total_tokens: int

    def __post_init__(self):
        """Validate token counts are non-negative."""
        for name in ("input_tokens", "output_tokens", "total_tokens"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be >= 0")

    @classmethod
    def zero(cls) -> "TokenUsage":
        """Usage reported when the upstream API gives none."""
        return cls(input_tokens=0, output_tokens=0, total_tokens=0)


# (snake_case, camelCase) field names accepted from upstream
_INPUT_FIELDS = ("prompt_tokens", "promptTokens")
_OUTPUT_FIELDS = ("completion_tokens", "completionTokens")
_TOTAL_FIELDS = ("total_tokens", "totalTokens")


def _read_count(raw: Mapping[str, Any], names) -> Optional[int]:
    for name in names:
        value = raw.get(name)
        if value is None or isinstance(value, bool):
            continue
        try:
            count = int(value)
        except (TypeError, ValueError):
            continue
        return count if count >= 0 else 0
    return None


def extract_usage(raw_usage: Any) -> TokenUsage:
    """Extract token usage from an upstream usage block.

    Both snake_case and camelCase field names are accepted. Missing or
    invalid counts default to zero, and a missing total is derived from
    input + output.

    Args:
        raw_usage: The ``usage`` mapping from the API response (may be None)

    Returns:
        Normalised TokenUsage
    """
    if not isinstance(raw_usage, Mapping):
        return TokenUsage.zero()

    input_tokens = _read_count(raw_usage, _INPUT_FIELDS) or 0
    output_tokens = _read_count(raw_usage, _OUTPUT_FIELDS) or 0
    total_tokens = _read_count(raw_usage, _TOTAL_FIELDS)
    if total_tokens is None:
        total_tokens = input_tokens + output_tokens

    return TokenUsage(
        input_tokens=input_tokens,
        output_tokens=output_tokens,
        total_tokens=total_tokens
    )
