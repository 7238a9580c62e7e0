"""
Pricing calculations and rate management.

Estimates the monetary cost of remote suggestion calls.
"""

from dataclasses import dataclass
from decimal import Decimal

from .token_counter import TokenUsage

TOKENS_PER_MILLION = Decimal("1000000")


@dataclass(frozen=True)
class ModelPricing:
    """Per-million-token rates for the suggestion model."""
    input_cost_per_million: Decimal
    output_cost_per_million: Decimal

    @classmethod
    def from_rates(cls, input_rate: float, output_rate: float) -> "ModelPricing":
        """Build pricing from configured float rates without binary rounding noise."""
        if input_rate < 0 or output_rate < 0:
            raise ValueError("cost rates must be >= 0")
        return cls(
            input_cost_per_million=Decimal(str(input_rate)),
            output_cost_per_million=Decimal(str(output_rate)),
        )


# Gemini 2.0 Flash list prices, in dollars per million tokens.
DEFAULT_PRICING = ModelPricing(
    input_cost_per_million=Decimal("0.000075"),
    output_cost_per_million=Decimal("0.0003"),
)


def calculate_cost(usage: TokenUsage, pricing: ModelPricing = DEFAULT_PRICING) -> Decimal:
    """Calculate the estimated cost of one call.

    The reported total is applied to both the input and the output rate.

    Args:
        usage: Token usage data
        pricing: Rates to apply

    Returns:
        Exact cost as a Decimal (no rounding)
    """
    tokens = Decimal(usage.total_tokens) / TOKENS_PER_MILLION
    input_cost = tokens * pricing.input_cost_per_million
    output_cost = tokens * pricing.output_cost_per_million
    return input_cost + output_cost


def add_cost(running_total: float, cost: Decimal) -> float:
    """Add ``cost`` to a persisted float total, summing in Decimal."""
    return float(Decimal(str(running_total)) + cost)
