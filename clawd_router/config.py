from __future__ import annotations

from copy import deepcopy
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

from clawd_router.routing_defaults import (
    DEFAULT_AI_ROUTING,
    DEFAULT_ECO_TIERS,
    DEFAULT_TIER,
    DEFAULT_TIERS,
)


class AIRoutingConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    model: str = DEFAULT_AI_ROUTING["model"]
    max_tokens: int = Field(default=DEFAULT_AI_ROUTING["max_tokens"], alias="maxTokens")
    temperature: float = DEFAULT_AI_ROUTING["temperature"]
    cache_ttl_ms: int = Field(
        default=DEFAULT_AI_ROUTING["cache_ttl_ms"], alias="cacheTtlMs"
    )
    prompt_truncation_chars: int = Field(
        default=DEFAULT_AI_ROUTING["prompt_truncation_chars"],
        alias="promptTruncationChars",
    )

    @property
    def cache_ttl_seconds(self) -> float:
        return max(0, self.cache_ttl_ms) / 1000.0


class TierConfig(BaseModel):
    primary: str
    fallback: list[str] = Field(default_factory=list)

    @field_validator("fallback", mode="before")
    @classmethod
    def _coerce_fallback(cls, value: Any) -> list[str]:
        if value is None:
            return []
        if isinstance(value, str):
            value = [value]
        if not isinstance(value, list):
            raise ValueError("Expected 'fallback' to be a list of model ids.")
        cleaned: list[str] = []
        for item in value:
            if not isinstance(item, str):
                continue
            item = item.strip()
            if item:
                cleaned.append(item)
        return cleaned

    def candidates(self) -> list[str]:
        return [self.primary, *self.fallback]


def _default_tiers() -> dict[str, TierConfig]:
    return {
        name: TierConfig.model_validate(tier)
        for name, tier in deepcopy(DEFAULT_TIERS).items()
    }


def _default_eco_tiers() -> dict[str, TierConfig]:
    return {
        name: TierConfig.model_validate(tier)
        for name, tier in deepcopy(DEFAULT_ECO_TIERS).items()
    }


class RoutingConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    version: str = "3.0"
    ai_routing: AIRoutingConfig = Field(
        default_factory=AIRoutingConfig, alias="aiRouting"
    )
    tiers: dict[str, TierConfig] = Field(default_factory=_default_tiers)
    eco_tiers: dict[str, TierConfig] | None = Field(
        default_factory=_default_eco_tiers, alias="ecoTiers"
    )
    default_tier: str = Field(default=DEFAULT_TIER, alias="defaultTier")

    @field_validator("tiers")
    @classmethod
    def _require_tiers(cls, value: dict[str, TierConfig]) -> dict[str, TierConfig]:
        if not value:
            raise ValueError("Expected at least one tier in 'tiers'.")
        return value

    def tiers_for_profile(self, profile: str) -> dict[str, TierConfig]:
        if profile == "eco":
            return self.eco_tiers or self.tiers
        return self.tiers


def load_routing_config(config_path: str | None) -> RoutingConfig:
    if not config_path:
        return RoutingConfig()

    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(
            f"Routing config not found at '{config_path}'. "
            "Create it or unset ROUTING_CONFIG_PATH."
        )

    with path.open("r", encoding="utf-8") as handle:
        raw = yaml.safe_load(handle) or {}

    if not isinstance(raw, dict):
        raise ValueError(f"Expected YAML object in '{config_path}'.")

    return RoutingConfig.model_validate(raw)
