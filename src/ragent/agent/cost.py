"""Estimated monetary cost of reasoning-capability calls and tool calls."""

from typing import (
    Dict,
    Optional,
)

from pydantic import BaseModel

from ragent.core.schema import TokenUsage


class ModelPricing(BaseModel):
    """Per-model price in USD per 1M tokens."""

    model: str
    provider: str
    input_per_1m: float
    output_per_1m: float


_PRICING: Dict[str, ModelPricing] = {
    p.model.lower(): p
    for p in (
        ModelPricing(model="text-embedding-3-small", provider="OpenAI", input_per_1m=0.02, output_per_1m=0.0),
        ModelPricing(model="text-embedding-3-large", provider="OpenAI", input_per_1m=0.13, output_per_1m=0.0),
        ModelPricing(model="gpt-4o", provider="OpenAI", input_per_1m=2.50, output_per_1m=10.00),
        ModelPricing(model="gpt-4o-mini", provider="OpenAI", input_per_1m=0.15, output_per_1m=0.60),
        ModelPricing(model="claude-3-5-sonnet-latest", provider="Anthropic", input_per_1m=3.00, output_per_1m=15.00),
        ModelPricing(model="claude-sonnet-4-20250514", provider="Anthropic", input_per_1m=3.00, output_per_1m=15.00),
        ModelPricing(model="claude-3-5-haiku-latest", provider="Anthropic", input_per_1m=1.00, output_per_1m=5.00),
        ModelPricing(model="claude-3-opus-latest", provider="Anthropic", input_per_1m=15.00, output_per_1m=75.00),
    )
}

# Unknown models: conservative per-1K-token rates
_FALLBACK_INPUT_PER_1K = 0.001
_FALLBACK_OUTPUT_PER_1K = 0.005

# Used when the capability reports no token usage at all
CHARS_PER_TOKEN = 4
ESTIMATED_COST_PER_1K_TOKENS = 0.003

TOOL_CALL_COST = 0.001


def get_pricing(model: str) -> Optional[ModelPricing]:
    return _PRICING.get(model.lower())


def usage_cost(usage: TokenUsage) -> float:
    """Cost of one reasoning call with reported token usage."""
    pricing = get_pricing(usage.model)
    if pricing is None:
        return (
            usage.input_tokens * _FALLBACK_INPUT_PER_1K
            + usage.output_tokens * _FALLBACK_OUTPUT_PER_1K
        ) / 1000
    return (
        usage.input_tokens / 1_000_000 * pricing.input_per_1m
        + usage.output_tokens / 1_000_000 * pricing.output_per_1m
    )


def estimate_tokens(chars: int) -> int:
    """Rough token count for *chars* characters of prompt/response text."""
    return max(chars, 0) // CHARS_PER_TOKEN


def estimated_tokens_cost(tokens: int) -> float:
    return tokens / 1000 * ESTIMATED_COST_PER_1K_TOKENS
