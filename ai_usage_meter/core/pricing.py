"""
Pricing calculations and rate management.

Resolves per-token model prices from the OpenRouter catalog and
computes the cost of a completion call.
"""

import math
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx
import structlog

from ..cache.store import Cache

logger = structlog.get_logger(__name__)

PRICING_CACHE_PREFIX = "openrouter:pricing:"
PRICING_CACHE_TTL_SECONDS = 24 * 60 * 60


@dataclass(frozen=True)
class ModelPricing:
    """Per-token pricing for a specific model."""
    prompt: float  # Cost per prompt token
    completion: float  # Cost per completion token

    def __post_init__(self):
        for name in ("prompt", "completion"):
            value = getattr(self, name)
            if not math.isfinite(value) or value < 0:
                raise ValueError(f"{name} price must be a finite number >= 0, got {value}")

    def to_dict(self) -> Dict[str, float]:
        return {"prompt": self.prompt, "completion": self.completion}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ModelPricing":
        """Build pricing from catalog or cache fields.

        Raises:
            ValueError: If a price is not a number, is negative, or is not
                finite (the catalog lists router models at ``"-1"``)
        """
        return cls(
            prompt=float(data.get("prompt") or "0"),
            completion=float(data.get("completion") or "0")
        )


@dataclass(frozen=True)
class CostBreakdown:
    """Cost of a single completion call, in USD."""
    input_cost: float
    output_cost: float
    total_cost: float

    @classmethod
    def zero(cls) -> "CostBreakdown":
        return cls(input_cost=0.0, output_cost=0.0, total_cost=0.0)


def calculate_cost(
    input_tokens: int,
    output_tokens: int,
    pricing: Optional[ModelPricing]
) -> CostBreakdown:
    """Calculate the cost of a call from its token counts.

    No rounding is applied; unknown pricing costs nothing.

    Args:
        input_tokens: Prompt tokens consumed
        output_tokens: Completion tokens produced
        pricing: Model pricing, or None when unknown

    Returns:
        CostBreakdown with input, output and total cost
    """
    if pricing is None:
        return CostBreakdown.zero()

    input_cost = input_tokens * pricing.prompt
    output_cost = output_tokens * pricing.completion
    return CostBreakdown(
        input_cost=input_cost,
        output_cost=output_cost,
        total_cost=input_cost + output_cost
    )


class PricingResolver:
    """Looks up model pricing in the catalog, caching results for 24 hours."""

    def __init__(
        self,
        cache: Cache,
        catalog_url: str,
        http_client: Optional[httpx.Client] = None,
        ttl: int = PRICING_CACHE_TTL_SECONDS
    ):
        """Initialize the resolver.

        Args:
            cache: Shared cache used to store resolved prices
            catalog_url: URL of the model catalog endpoint
            http_client: HTTP client for catalog requests (created if omitted)
            ttl: Cache expiry in seconds
        """
        self.cache = cache
        self.catalog_url = catalog_url
        self.http_client = http_client or httpx.Client(timeout=30.0)
        self.ttl = ttl

    def resolve(self, model: str) -> Optional[ModelPricing]:
        """Return pricing for a model, or None if it cannot be determined.

        Failures are logged and reported as unknown pricing so that callers
        fall back to zero cost instead of failing the request. Prices that
        are negative or not finite count as unknown and are never cached.
        """
        cache_key = f"{PRICING_CACHE_PREFIX}{model}"
        try:
            cached = self.cache.get(cache_key)
            if cached is not None:
                try:
                    pricing = ModelPricing.from_dict(cached)
                    logger.debug("pricing.cache_hit", model=model)
                    return pricing
                except (AttributeError, TypeError, ValueError) as e:
                    logger.warning("pricing.invalid_cached_price", model=model, error=str(e))
                    self.cache.delete(cache_key)

            prices = self._fetch_from_catalog(model)
            if prices is None:
                logger.warning("pricing.model_not_found", model=model)
                return None

            try:
                pricing = ModelPricing.from_dict(prices)
            except (TypeError, ValueError) as e:
                logger.warning("pricing.invalid_catalog_price", model=model, error=str(e))
                return None

            self.cache.set(cache_key, pricing.to_dict(), ttl=self.ttl)
            return pricing
        except Exception as e:
            logger.error("pricing.resolve_failed", model=model, error=str(e))
            return None

    def _fetch_from_catalog(self, model: str) -> Optional[Dict[str, Any]]:
        """Raw price fields for a model, or None if the catalog doesn't list it."""
        response = self.http_client.get(self.catalog_url)
        response.raise_for_status()
        payload = response.json()

        for entry in payload.get("data") or []:
            if entry.get("id") == model:
                return entry.get("pricing") or {}
        return None

    def close(self) -> None:
        self.http_client.close()
