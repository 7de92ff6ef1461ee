from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass

from clawd_router.catalog import ModelPricing

BASELINE_MODEL_ID = "anthropic/claude-opus-4-5"
_TOKENS_PER_UNIT = 1_000_000


@dataclass(frozen=True, slots=True)
class ModelCost:
    cost_estimate: float
    baseline_cost: float
    savings: float


def estimate_tokens(text: str) -> int:
    # Coarse chars/4 heuristic, not a tokenizer.
    return math.ceil(len(text) / 4)


def _priced_cost(
    pricing: ModelPricing | None, input_tokens: int, output_tokens: int
) -> float:
    input_price = pricing.input_price if pricing is not None else 0.0
    output_price = pricing.output_price if pricing is not None else 0.0
    input_cost = (input_tokens / _TOKENS_PER_UNIT) * (input_price or 0.0)
    output_cost = (output_tokens / _TOKENS_PER_UNIT) * (output_price or 0.0)
    return input_cost + output_cost


def calculate_model_cost(
    model: str,
    model_pricing: Mapping[str, ModelPricing],
    estimated_input_tokens: int,
    max_output_tokens: int,
    routing_profile: str | None = None,
) -> ModelCost:
    """Estimate the cost of serving a request with ``model``.

    Savings are relative to the premium baseline model and are always 0 for the
    ``premium`` profile. Unknown models cost 0 rather than raising.
    """
    cost_estimate = _priced_cost(
        model_pricing.get(model), estimated_input_tokens, max_output_tokens
    )
    baseline_cost = _priced_cost(
        model_pricing.get(BASELINE_MODEL_ID), estimated_input_tokens, max_output_tokens
    )

    if routing_profile == "premium":
        savings = 0.0
    elif baseline_cost > 0:
        savings = max(0.0, (baseline_cost - cost_estimate) / baseline_cost)
    else:
        savings = 0.0

    return ModelCost(
        cost_estimate=cost_estimate,
        baseline_cost=baseline_cost,
        savings=savings,
    )
