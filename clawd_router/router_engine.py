from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Callable, Literal

from clawd_router.ai_router import RoutingOracleClient
from clawd_router.catalog import ModelPricing, resolve_model_alias
from clawd_router.config import RoutingConfig, TierConfig
from clawd_router.cost import calculate_model_cost, estimate_tokens
from clawd_router.messages import ConversationTurn, serialize_messages

RoutingProfile = Literal["auto", "eco"]
ContextWindowLookup = Callable[[str], int | None]


@dataclass(frozen=True, slots=True)
class RoutingDecision:
    model: str
    method: Literal["llm"]
    reasoning: str
    cost_estimate: float
    tier: str
    profile: str
    baseline_cost: float = 0.0
    savings: float = 0.0
    cached: bool = False


def routing_profile_for(requested_model: str) -> RoutingProfile | None:
    """Return the routing profile for a requested model, None for direct models."""
    resolved = resolve_model_alias(requested_model).lower()
    if resolved in {"auto", "router"}:
        return "auto"
    if resolved == "eco":
        return "eco"
    return None


def _dedupe_preserving_order(values: list[str]) -> list[str]:
    seen: set[str] = set()
    output: list[str] = []
    for value in values:
        if value in seen:
            continue
        seen.add(value)
        output.append(value)
    return output


def tier_for_model(
    model: str, tiers: Mapping[str, TierConfig], default_tier: str
) -> str:
    for name, tier in tiers.items():
        if model in tier.candidates():
            return name
    if default_tier in tiers:
        return default_tier
    return next(iter(tiers))


def get_fallback_chain(tier: str, tiers: Mapping[str, TierConfig]) -> list[str]:
    tier_config = tiers.get(tier)
    if tier_config is None:
        return []
    return _dedupe_preserving_order(tier_config.candidates())


def get_fallback_chain_filtered(
    tier: str,
    tiers: Mapping[str, TierConfig],
    estimated_total_tokens: int,
    context_window_lookup: ContextWindowLookup,
) -> list[str]:
    """Tier candidates whose context window fits, in tier-table order.

    Models with an unknown context window are kept.
    """
    filtered: list[str] = []
    for model in get_fallback_chain(tier, tiers):
        context_window = context_window_lookup(model)
        if context_window is not None and context_window < estimated_total_tokens:
            continue
        filtered.append(model)
    return filtered


def build_models_to_try(primary_model: str, filtered_chain: list[str]) -> list[str]:
    return _dedupe_preserving_order([primary_model, *filtered_chain])


def estimate_total_tokens(
    prompt: str, system_prompt: str | None, max_output_tokens: int
) -> int:
    return estimate_tokens(f"{system_prompt or ''} {prompt}") + max_output_tokens


class SmartRouter:
    def __init__(
        self,
        *,
        config: RoutingConfig,
        oracle: RoutingOracleClient,
        model_pricing: Mapping[str, ModelPricing],
        context_window_lookup: ContextWindowLookup,
    ) -> None:
        self.config = config
        self.oracle = oracle
        self.model_pricing = model_pricing
        self.context_window_lookup = context_window_lookup

    async def decide(
        self,
        *,
        messages: ConversationTurn,
        api_key: str,
        profile: RoutingProfile,
        max_output_tokens: int,
    ) -> RoutingDecision:
        answer = await self.oracle.resolve(messages, api_key, self.config.ai_routing)
        estimated_input_tokens = estimate_tokens(serialize_messages(messages))
        cost = calculate_model_cost(
            answer.model_id,
            self.model_pricing,
            estimated_input_tokens,
            max_output_tokens,
            profile,
        )
        tier = tier_for_model(
            answer.model_id,
            self.config.tiers_for_profile(profile),
            self.config.default_tier,
        )
        return RoutingDecision(
            model=answer.model_id,
            method="llm",
            reasoning=answer.model_id,
            cost_estimate=cost.cost_estimate,
            tier=tier,
            profile=profile,
            baseline_cost=cost.baseline_cost,
            savings=cost.savings,
            cached=answer.cached,
        )

    def models_to_try(
        self,
        decision: RoutingDecision,
        *,
        prompt: str,
        system_prompt: str | None,
        max_output_tokens: int,
    ) -> list[str]:
        filtered_chain = get_fallback_chain_filtered(
            decision.tier,
            self.config.tiers_for_profile(decision.profile),
            estimate_total_tokens(prompt, system_prompt, max_output_tokens),
            self.context_window_lookup,
        )
        return build_models_to_try(decision.model, filtered_chain)
