"""
SDK for AI Usage Meter.

Provides the metered OpenRouter client and the usage logger behind it.
"""

from .errors import UpstreamResponseError
from .openrouter_client import (
    CompleteEvent,
    CompletionResult,
    ContentEvent,
    OpenRouterClient,
)
from .usage_logger import LogOutcome, UsageLogger

__all__ = [
    "CompleteEvent",
    "CompletionResult",
    "ContentEvent",
    "LogOutcome",
    "OpenRouterClient",
    "UpstreamResponseError",
    "UsageLogger",
]
