from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from clawd_router.config import AIRoutingConfig, RoutingConfig, TierConfig, load_routing_config
from clawd_router.routing_defaults import DEFAULT_TIERS, TIER_NAMES


def _write_yaml(path: Path, payload: object) -> Path:
    with path.open("w", encoding="utf-8") as handle:
        yaml.safe_dump(payload, handle, sort_keys=False)
    return path


def test_defaults_without_config_path() -> None:
    config = load_routing_config(None)

    assert list(config.tiers) == list(TIER_NAMES)
    assert config.tiers["SIMPLE"].primary == DEFAULT_TIERS["SIMPLE"]["primary"]
    assert config.default_tier == "MEDIUM"
    assert config.ai_routing.model == "google/gemini-2.5-flash"
    assert config.ai_routing.cache_ttl_seconds == 300.0


def test_yaml_with_camel_case_keys(tmp_path: Path) -> None:
    path = _write_yaml(
        tmp_path / "router.yaml",
        {
            "aiRouting": {
                "model": "openai/gpt-4o-mini",
                "maxTokens": 10,
                "cacheTtlMs": 1500,
                "promptTruncationChars": 2000,
            },
            "tiers": {
                "FAST": {"primary": "openai/gpt-4o-mini", "fallback": "deepseek/deepseek-chat"},
            },
            "defaultTier": "FAST",
        },
    )

    config = load_routing_config(str(path))

    assert config.ai_routing.model == "openai/gpt-4o-mini"
    assert config.ai_routing.max_tokens == 10
    assert config.ai_routing.cache_ttl_seconds == 1.5
    assert config.ai_routing.prompt_truncation_chars == 2000
    assert config.tiers["FAST"].candidates() == [
        "openai/gpt-4o-mini",
        "deepseek/deepseek-chat",
    ]
    assert config.default_tier == "FAST"


def test_missing_config_file_raises(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_routing_config(str(tmp_path / "missing.yaml"))


def test_non_mapping_yaml_raises(tmp_path: Path) -> None:
    path = _write_yaml(tmp_path / "list.yaml", ["a", "b"])

    with pytest.raises(ValueError):
        load_routing_config(str(path))


def test_empty_tiers_are_rejected() -> None:
    with pytest.raises(ValueError):
        RoutingConfig.model_validate({"tiers": {}})


def test_eco_profile_falls_back_to_balanced_tiers() -> None:
    config = RoutingConfig.model_validate({"ecoTiers": None})

    assert config.tiers_for_profile("eco") is config.tiers


def test_tier_fallback_is_cleaned() -> None:
    tier = TierConfig.model_validate(
        {"primary": "a/x", "fallback": [" b/y ", "", 7, "c/z"]}
    )

    assert tier.fallback == ["b/y", "c/z"]
    assert TierConfig.model_validate({"primary": "a/x", "fallback": None}).fallback == []


def test_negative_ttl_means_no_caching() -> None:
    assert AIRoutingConfig(cache_ttl_ms=-5).cache_ttl_seconds == 0.0
