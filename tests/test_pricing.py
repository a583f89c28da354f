import logging

import pytest

from culture_interpreter.llm.pricing import Pricing, calculate_cost
from culture_interpreter.llm.types import TokenUsage


def test_cost_uses_cache_aware_rates():
    usage = TokenUsage(input_tokens=1_000_000, output_tokens=1_000_000, cache_read_tokens=0, cache_creation_tokens=0)
    assert calculate_cost(usage, Pricing()) == pytest.approx(18.0)

    cached = TokenUsage(input_tokens=1_000_000, output_tokens=0, cache_read_tokens=1_000_000)
    assert calculate_cost(cached, Pricing()) == pytest.approx(0.30)

    written = TokenUsage(cache_creation_tokens=1_000_000)
    assert calculate_cost(written, Pricing()) == pytest.approx(3.75)


def test_cache_reads_are_cheaper_than_regular_input():
    plain = calculate_cost(TokenUsage(input_tokens=5000, output_tokens=200), Pricing())
    cached = calculate_cost(TokenUsage(input_tokens=5000, output_tokens=200, cache_read_tokens=4000), Pricing())
    assert cached < plain


def test_zero_usage_costs_nothing():
    assert calculate_cost(TokenUsage(), Pricing()) == 0


def test_cache_read_drift_warns_and_never_goes_negative(caplog):
    usage = TokenUsage(input_tokens=100, output_tokens=0, cache_read_tokens=500)
    with caplog.at_level(logging.WARNING):
        cost = calculate_cost(usage, Pricing())

    assert cost >= 0
    assert "exceeds input_tokens" in caplog.text


def test_pricing_from_config_overrides_defaults():
    pricing = Pricing.from_config({"pricing": {"output_per_1m": 10}})
    assert pricing.output_per_1m == 10.0
    assert pricing.input_per_1m == 3.0
