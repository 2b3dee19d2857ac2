"""
Pricing calculations and rate management.

Handles cost computations for the models the analysis service can be
configured with.
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict

from .token_counter import TokenUsage

COST_QUANTUM = Decimal("0.000001")


@dataclass(frozen=True)
class ModelPricing:
    """Per-token pricing for a specific model, in USD."""
    input_cost_per_token: Decimal
    output_cost_per_token: Decimal


# Charged for any model missing from the table; above every listed price
DEFAULT_PRICING = ModelPricing(
    input_cost_per_token=Decimal("0.0001"),
    output_cost_per_token=Decimal("0.0001")
)


@dataclass(frozen=True)
class PricingTable:
    """Fixed pricing table for known models."""
    prices: Dict[str, ModelPricing]
    default: ModelPricing = DEFAULT_PRICING

    def get_pricing(self, model: str) -> ModelPricing:
        """Get pricing for a specific model.

        Lookup is case-insensitive; unknown models get the default pair.

        Args:
            model: Model identifier

        Returns:
            ModelPricing for the model
        """
        return self.prices.get((model or "").strip().lower(), self.default)

    def is_listed(self, model: str) -> bool:
        return (model or "").strip().lower() in self.prices


# Fixed pricing table - no dynamic fetching
PRICING_TABLE = PricingTable({
    "gpt-4o": ModelPricing(
        input_cost_per_token=Decimal("0.0000050"),
        output_cost_per_token=Decimal("0.0000150")
    ),
    "gpt-4o-mini": ModelPricing(
        input_cost_per_token=Decimal("0.00000015"),
        output_cost_per_token=Decimal("0.0000006")
    ),
    "gpt-4": ModelPricing(
        input_cost_per_token=Decimal("0.0000300"),
        output_cost_per_token=Decimal("0.0000600")
    ),
    "gpt-3.5-turbo": ModelPricing(
        input_cost_per_token=Decimal("0.0000010"),
        output_cost_per_token=Decimal("0.0000020")
    ),
    "claude-3-5-sonnet": ModelPricing(
        input_cost_per_token=Decimal("0.0000030"),
        output_cost_per_token=Decimal("0.0000150")
    ),
    "claude-3-haiku": ModelPricing(
        input_cost_per_token=Decimal("0.00000025"),
        output_cost_per_token=Decimal("0.00000125")
    ),
    "claude-3-opus": ModelPricing(
        input_cost_per_token=Decimal("0.0000150"),
        output_cost_per_token=Decimal("0.0000750")
    ),
    "deepseek-chat": ModelPricing(
        input_cost_per_token=Decimal("0.00000027"),
        output_cost_per_token=Decimal("0.0000011")
    ),
})


def calculate_cost(model: str, tokens_in: int, tokens_out: int) -> Decimal:
    """Calculate the cost of one call.

    Args:
        model: Model name as configured in the model registry
        tokens_in: Prompt tokens
        tokens_out: Completion tokens

    Returns:
        tokens_in * input price + tokens_out * output price, rounded
        half-up to 6 decimal places
    """
    if tokens_in < 0 or tokens_out < 0:
        raise ValueError("token counts cannot be negative")

    pricing = PRICING_TABLE.get_pricing(model)
    total = (
        Decimal(tokens_in) * pricing.input_cost_per_token
        + Decimal(tokens_out) * pricing.output_cost_per_token
    )
    return total.quantize(COST_QUANTUM, rounding=ROUND_HALF_UP)


def calculate_usage_cost(model: str, usage: TokenUsage) -> Decimal:
    """Calculate the cost of a call from its TokenUsage."""
    return calculate_cost(model, usage.prompt_tokens, usage.completion_tokens)
