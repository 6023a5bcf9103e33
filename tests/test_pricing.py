"""
Unit tests for pricing calculations.

Tests usage extraction, cost accuracy, and pricing resolution.
"""

import json

import httpx
import pytest

from ai_usage_meter.core.pricing import (
    PRICING_CACHE_PREFIX,
    PRICING_CACHE_TTL_SECONDS,
    CostBreakdown,
    ModelPricing,
    PricingResolver,
    calculate_cost,
)
from ai_usage_meter.core.token_counter import TokenUsage, extract_usage

CATALOG_URL = "https://openrouter.test/api/v1/models"

CATALOG = {
    "data": [
        {"id": "openai/gpt-4o", "pricing": {"prompt": "0.0000025", "completion": "0.00001"}},
        {"id": "test-model", "pricing": {"prompt": "0.000003", "completion": "0.000006"}},
        {"id": "free-model", "pricing": {}},
        {"id": "openrouter/auto", "pricing": {"prompt": "-1", "completion": "-1"}},
        {"id": "odd-model", "pricing": {"prompt": "inf", "completion": "0.000001"}},
    ]
}


def _catalog_client(calls, payload=CATALOG, status_code=200):
    """HTTP client serving a fixed catalog and recording every request."""
    def handler(request):
        calls.append(request)
        return httpx.Response(status_code, json=payload)
    return httpx.Client(transport=httpx.MockTransport(handler))


class TestTokenUsage:
    """Test TokenUsage dataclass and usage extraction."""

    def test_zero_usage(self):
        """Verify the zero usage helper."""
        assert TokenUsage.zero() == TokenUsage(0, 0, 0)

    def test_negative_counts_rejected(self):
        """Verify negative token counts are invalid."""
        with pytest.raises(ValueError, match="input_tokens"):
            TokenUsage(input_tokens=-1, output_tokens=0, total_tokens=0)

    def test_snake_and_camel_case_agree(self):
        """Both upstream naming conventions give the same usage."""
        snake = extract_usage({"prompt_tokens": 10, "completion_tokens": 5})
        camel = extract_usage({"promptTokens": 10, "completionTokens": 5})

        assert snake == camel
        assert snake == TokenUsage(input_tokens=10, output_tokens=5, total_tokens=15)

    def test_explicit_total_is_kept(self):
        """Verify a reported total is used as-is."""
        usage = extract_usage({"prompt_tokens": 10, "completion_tokens": 5, "totalTokens": 20})
        assert usage.total_tokens == 20

    def test_missing_fields_default_to_zero(self):
        """Verify absent or invalid fields become zero."""
        usage = extract_usage({"completion_tokens": None, "prompt_tokens": "abc"})
        assert usage == TokenUsage.zero()

    def test_negative_and_boolean_values_clamped(self):
        """Verify negative and boolean counts are not trusted."""
        usage = extract_usage({"prompt_tokens": -4, "completion_tokens": True})
        assert usage == TokenUsage.zero()

    def test_non_mapping_usage(self):
        """Verify a missing usage block gives zero usage."""
        assert extract_usage(None) == TokenUsage.zero()
        assert extract_usage([1, 2]) == TokenUsage.zero()


class TestCostCalculation:
    """Test cost calculation accuracy."""

    def test_reference_scenario(self):
        """Verify the cost of a small call at known prices."""
        pricing = ModelPricing(prompt=0.000003, completion=0.000006)
        cost = calculate_cost(5, 3, pricing)

        assert cost.input_cost == pytest.approx(0.000015)
        assert cost.output_cost == pytest.approx(0.000018)
        assert cost.total_cost == pytest.approx(0.000033)

    @pytest.mark.parametrize("input_tokens,output_tokens", [(0, 0), (1, 0), (0, 1), (1234, 567), (10**6, 10**5)])
    def test_total_is_sum_of_parts(self, input_tokens, output_tokens):
        """Verify total cost equals input cost plus output cost."""
        pricing = ModelPricing(prompt=0.0000025, completion=0.00001)
        cost = calculate_cost(input_tokens, output_tokens, pricing)

        assert cost.total_cost == pytest.approx(input_tokens * 0.0000025 + output_tokens * 0.00001)
        assert cost.total_cost == pytest.approx(cost.input_cost + cost.output_cost)

    @pytest.mark.parametrize("input_tokens,output_tokens", [(0, 0), (100, 50), (10**6, 10**6)])
    def test_unknown_pricing_is_free(self, input_tokens, output_tokens):
        """Verify unknown pricing gives zero cost."""
        assert calculate_cost(input_tokens, output_tokens, None) == CostBreakdown.zero()

    def test_no_rounding(self):
        """Verify tiny costs are not rounded away."""
        cost = calculate_cost(1, 0, ModelPricing(prompt=1e-9, completion=0.0))
        assert cost.total_cost == pytest.approx(1e-9)
        assert cost.total_cost > 0


class TestPricingResolver:
    """Test pricing lookup and caching."""

    def test_fetches_and_caches_pricing(self, cache, redis_client):
        """Verify a cache miss queries the catalog and stores the result for 24 hours."""
        calls = []
        resolver = PricingResolver(cache, CATALOG_URL, http_client=_catalog_client(calls))

        pricing = resolver.resolve("test-model")

        assert pricing == ModelPricing(prompt=0.000003, completion=0.000006)
        assert len(calls) == 1
        key = f"{PRICING_CACHE_PREFIX}test-model"
        assert json.loads(redis_client.data[key]) == {"prompt": 0.000003, "completion": 0.000006}
        assert redis_client.expiries[key] == PRICING_CACHE_TTL_SECONDS

    def test_second_lookup_hits_cache(self, cache):
        """Verify a repeated lookup makes no further catalog requests."""
        calls = []
        resolver = PricingResolver(cache, CATALOG_URL, http_client=_catalog_client(calls))

        first = resolver.resolve("test-model")
        second = resolver.resolve("test-model")

        assert first == second
        assert len(calls) == 1

    def test_cached_value_used_without_network(self, cache):
        """Verify a pre-populated cache entry is returned directly."""
        cache.set(f"{PRICING_CACHE_PREFIX}cached-model", {"prompt": 0.5, "completion": 1.5})
        calls = []
        resolver = PricingResolver(cache, CATALOG_URL, http_client=_catalog_client(calls))

        assert resolver.resolve("cached-model") == ModelPricing(prompt=0.5, completion=1.5)
        assert calls == []

    def test_missing_price_fields_default_to_zero(self, cache):
        """Verify absent price fields are treated as free."""
        calls = []
        resolver = PricingResolver(cache, CATALOG_URL, http_client=_catalog_client(calls))

        assert resolver.resolve("free-model") == ModelPricing(prompt=0.0, completion=0.0)

    def test_unknown_model_returns_none(self, cache, redis_client):
        """Verify models absent from the catalog have unknown pricing."""
        calls = []
        resolver = PricingResolver(cache, CATALOG_URL, http_client=_catalog_client(calls))

        assert resolver.resolve("missing/model") is None
        assert redis_client.data == {}

    def test_http_error_returns_none(self, cache):
        """Verify a failing catalog degrades to unknown pricing."""
        calls = []
        resolver = PricingResolver(
            cache,
            CATALOG_URL,
            http_client=_catalog_client(calls, payload={"error": "down"}, status_code=503)
        )

        assert resolver.resolve("test-model") is None

    def test_network_error_returns_none(self, cache):
        """Verify a network failure degrades to unknown pricing."""
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        resolver = PricingResolver(
            cache,
            CATALOG_URL,
            http_client=httpx.Client(transport=httpx.MockTransport(handler))
        )

        assert resolver.resolve("test-model") is None

    def test_cache_failure_returns_none(self, cache, redis_client):
        """Verify a broken cache degrades to unknown pricing."""
        def broken_get(key):
            raise ConnectionError("redis down")
        redis_client.get = broken_get

        calls = []
        resolver = PricingResolver(cache, CATALOG_URL, http_client=_catalog_client(calls))

        assert resolver.resolve("test-model") is None

    @pytest.mark.parametrize("model", ["openrouter/auto", "odd-model"])
    def test_invalid_catalog_price_is_unknown(self, cache, redis_client, model):
        """Verify negative or infinite catalog prices are treated as unknown and not cached."""
        calls = []
        resolver = PricingResolver(cache, CATALOG_URL, http_client=_catalog_client(calls))

        assert resolver.resolve(model) is None
        assert redis_client.data == {}

    def test_invalid_cached_price_refetched(self, cache, redis_client):
        """Verify a bad cached price is dropped and the catalog consulted instead."""
        key = f"{PRICING_CACHE_PREFIX}test-model"
        cache.set(key, {"prompt": -1, "completion": -1})
        calls = []
        resolver = PricingResolver(cache, CATALOG_URL, http_client=_catalog_client(calls))

        assert resolver.resolve("test-model") == ModelPricing(prompt=0.000003, completion=0.000006)
        assert len(calls) == 1
        assert json.loads(redis_client.data[key]) == {"prompt": 0.000003, "completion": 0.000006}


class TestModelPricing:
    """Test price validation."""

    @pytest.mark.parametrize("prompt,completion", [
        (-1.0, 0.0),
        (0.0, -0.000001),
        (float("inf"), 0.0),
        (0.0, float("nan")),
    ])
    def test_invalid_prices_rejected(self, prompt, completion):
        with pytest.raises(ValueError, match="price must be a finite number"):
            ModelPricing(prompt=prompt, completion=completion)

    def test_from_dict_rejects_router_sentinel(self):
        with pytest.raises(ValueError, match="prompt price"):
            ModelPricing.from_dict({"prompt": "-1", "completion": "-1"})
