"""Cost estimation for AI card generation."""

from ..models.generate import CostEstimate, ModelTier
from .prompts import get_model_tier

# Prompt tokens sent per requested card
PROMPT_TOKENS_PER_CARD = 500

# Output tokens per card and language
OUTPUT_TOKENS_PER_CARD = {
    ModelTier.STANDARD: 150,
    ModelTier.HIGH: 200,
}

# USD per 1M tokens (input, output)
MODEL_PRICING = {
    ModelTier.STANDARD: (0.25, 1.25),
    ModelTier.HIGH: (3.00, 15.00),
}


def estimate_generation_cost(count: int, theta: float, language_count: int) -> CostEstimate:
    """Estimate token usage and cost of generating ``count`` cards.

    This is an estimate for display and budgeting only; it is not reconciled
    against billed usage.

    Args:
        count: Number of cards requested.
        theta: Quality coefficient (0.1-1.0).
        language_count: Number of languages each card is written in.

    Returns:
        CostEstimate with costs rounded to 4 decimal places.
    """
    model_tier = get_model_tier(theta)
    input_rate, output_rate = MODEL_PRICING[model_tier]

    input_tokens = count * PROMPT_TOKENS_PER_CARD
    output_tokens = count * OUTPUT_TOKENS_PER_CARD[model_tier] * language_count

    input_cost = input_tokens / 1_000_000 * input_rate
    output_cost = output_tokens / 1_000_000 * output_rate

    return CostEstimate(
        input_tokens=input_tokens,
        output_tokens=output_tokens,
        input_cost=round(input_cost, 4),
        output_cost=round(output_cost, 4),
        total_cost=round(input_cost + output_cost, 4),
        model_tier=model_tier,
    )
