"""
Pricing calculations and rate management.

Converts token counts into integer nanodollar costs using an injected
price table. Providers that report cost themselves never touch this module.
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Mapping, Optional

NANOS_PER_USD = Decimal("1000000000")
TOKENS_PER_MILLION = Decimal("1000000")


@dataclass(frozen=True)
class ModelPricing:
    """Per-token pricing for a specific model, in USD per million tokens."""
    input_per_million: Decimal
    output_per_million: Decimal
    cache_read_per_million: Decimal
    cache_write_per_million: Decimal


@dataclass(frozen=True)
class PricingTable:
    """Price lookup keyed by normalized model name."""
    prices: Dict[str, ModelPricing]

    def get_pricing(self, model: str) -> Optional[ModelPricing]:
        """Get pricing for a model.

        An exact key wins; otherwise the longest key that prefixes the model
        name is used (``gpt-5.1-codex`` falls back to ``gpt-5``).

        Returns:
            ModelPricing, or None when the model is not priced
        """
        if model in self.prices:
            return self.prices[model]
        best = None
        for key in self.prices:
            if model.startswith(key) and (best is None or len(key) > len(best)):
                best = key
        return self.prices[best] if best is not None else None

    def merged(self, overrides: Mapping[str, ModelPricing]) -> "PricingTable":
        """New table with ``overrides`` replacing or extending entries."""
        prices = dict(self.prices)
        prices.update(overrides)
        return PricingTable(prices)


def _pricing(input_: str, output: str, cache_read: str, cache_write: str) -> ModelPricing:
    return ModelPricing(
        input_per_million=Decimal(input_),
        output_per_million=Decimal(output),
        cache_read_per_million=Decimal(cache_read),
        cache_write_per_million=Decimal(cache_write),
    )


# Default table - callers may replace it through configuration
DEFAULT_PRICING_TABLE = PricingTable({
    "claude-opus-4-5": _pricing("5.00", "25.00", "0.50", "6.25"),
    "claude-opus-4-1": _pricing("15.00", "75.00", "1.50", "18.75"),
    "claude-opus-4": _pricing("15.00", "75.00", "1.50", "18.75"),
    "claude-sonnet-4-5": _pricing("3.00", "15.00", "0.30", "3.75"),
    "claude-sonnet-4": _pricing("3.00", "15.00", "0.30", "3.75"),
    "claude-3-7-sonnet": _pricing("3.00", "15.00", "0.30", "3.75"),
    "claude-haiku-4-5": _pricing("1.00", "5.00", "0.10", "1.25"),
    "claude-3-5-haiku": _pricing("0.80", "4.00", "0.08", "1.00"),
    "gpt-5": _pricing("1.25", "10.00", "0.125", "1.25"),
    "gpt-5-codex": _pricing("1.25", "10.00", "0.125", "1.25"),
    "gpt-5-mini": _pricing("0.25", "2.00", "0.025", "0.25"),
    "gpt-5-nano": _pricing("0.05", "0.40", "0.005", "0.05"),
})


def cost_nanos(
    table: PricingTable,
    model: str,
    input_tokens: int,
    cache_read_tokens: int,
    cache_creation_tokens: int,
    output_tokens: int
) -> int:
    """Cost of one usage record in nanodollars.

    Args:
        table: Price table to consult
        model: Normalized model name
        input_tokens: Uncached input tokens
        cache_read_tokens: Tokens served from the prompt cache
        cache_creation_tokens: Tokens written to the prompt cache
        output_tokens: Generated tokens

    Returns:
        Cost rounded half-up to whole nanodollars; 0 for unpriced models
    """
    pricing = table.get_pricing(model)
    if pricing is None:
        return 0

    total_usd = (
        Decimal(input_tokens) * pricing.input_per_million
        + Decimal(cache_read_tokens) * pricing.cache_read_per_million
        + Decimal(cache_creation_tokens) * pricing.cache_write_per_million
        + Decimal(output_tokens) * pricing.output_per_million
    ) / TOKENS_PER_MILLION

    nanos = (total_usd * NANOS_PER_USD).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return int(nanos)


def usd_to_nanos(amount: float) -> int:
    """Convert a USD float into integer nanodollars."""
    return int((Decimal(str(amount)) * NANOS_PER_USD).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def nanos_to_usd(nanos: int) -> float:
    return float(Decimal(nanos) / NANOS_PER_USD)
