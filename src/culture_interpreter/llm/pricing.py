"""Cache-aware cost estimation."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict

from .types import TokenUsage

logger = logging.getLogger(__name__)

PER_MILLION = 1_000_000.0


@dataclass(frozen=True)
class Pricing:
    """USD rates per million tokens."""

    input_per_1m: float = 3.00
    output_per_1m: float = 15.00
    cache_write_per_1m: float = 3.75
    cache_read_per_1m: float = 0.30

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "Pricing":
        cfg = config.get("pricing", {})
        defaults = cls()
        return cls(
            input_per_1m=float(cfg.get("input_per_1m", defaults.input_per_1m)),
            output_per_1m=float(cfg.get("output_per_1m", defaults.output_per_1m)),
            cache_write_per_1m=float(cfg.get("cache_write_per_1m", defaults.cache_write_per_1m)),
            cache_read_per_1m=float(cfg.get("cache_read_per_1m", defaults.cache_read_per_1m)),
        )


def calculate_cost(usage: TokenUsage, pricing: Pricing) -> float:
    if usage.cache_read_tokens > usage.input_tokens:
        # Provider accounting drift.
        logger.warning(
            "cache_read_tokens (%d) exceeds input_tokens (%d)",
            usage.cache_read_tokens,
            usage.input_tokens,
        )
    regular_input = max(0, usage.input_tokens - usage.cache_read_tokens)
    return (
        (regular_input / PER_MILLION) * pricing.input_per_1m
        + (usage.output_tokens / PER_MILLION) * pricing.output_per_1m
        + (usage.cache_creation_tokens / PER_MILLION) * pricing.cache_write_per_1m
        + (usage.cache_read_tokens / PER_MILLION) * pricing.cache_read_per_1m
    )
