from __future__ import annotations

from typing import Any

TIER_NAMES = ("SIMPLE", "MEDIUM", "COMPLEX", "REASONING")
DEFAULT_TIER = "MEDIUM"

DEFAULT_AI_ROUTING: dict[str, Any] = {
    "model": "google/gemini-2.5-flash",
    "max_tokens": 20,
    "temperature": 0.0,
    "cache_ttl_ms": 300_000,
    "prompt_truncation_chars": 8000,
}

# Balanced profile used by "auto" and "router".
DEFAULT_TIERS: dict[str, dict[str, Any]] = {
    "SIMPLE": {
        "primary": "google/gemini-2.5-flash",
        "fallback": [
            "deepseek/deepseek-chat",
            "openai/gpt-4o-mini",
            "x-ai/grok-4.1-fast-non-reasoning",
            "google/gemini-2.5-flash-lite-preview",
        ],
    },
    "MEDIUM": {
        "primary": "x-ai/grok-code-fast-1",
        "fallback": [
            "google/gemini-2.5-flash",
            "minimax/minimax-m2.5",
            "deepseek/deepseek-chat",
            "anthropic/claude-haiku-4-5",
            "x-ai/grok-3-mini",
        ],
    },
    "COMPLEX": {
        "primary": "google/gemini-2.5-pro",
        "fallback": [
            "anthropic/claude-sonnet-4-5",
            "moonshotai/kimi-k2.5",
            "openai/gpt-4o",
            "x-ai/grok-3",
            "anthropic/claude-opus-4-5",
        ],
    },
    "REASONING": {
        "primary": "x-ai/grok-4.1-fast-reasoning",
        "fallback": [
            "deepseek/deepseek-r1",
            "openai/o3-mini",
            "x-ai/grok-4-0709",
            "google/gemini-2.5-pro",
        ],
    },
}

# Cost-optimized profile used by "eco".
DEFAULT_ECO_TIERS: dict[str, dict[str, Any]] = {
    "SIMPLE": {
        "primary": "google/gemini-2.5-flash-lite-preview",
        "fallback": ["deepseek/deepseek-chat", "openai/gpt-4o-mini"],
    },
    "MEDIUM": {
        "primary": "deepseek/deepseek-chat",
        "fallback": [
            "x-ai/grok-4.1-fast-non-reasoning",
            "google/gemini-2.5-flash-lite-preview",
            "x-ai/grok-3-mini",
        ],
    },
    "COMPLEX": {
        "primary": "x-ai/grok-4-0709",
        "fallback": [
            "minimax/minimax-m2.5",
            "moonshotai/kimi-k2.5",
            "google/gemini-2.5-flash",
        ],
    },
    "REASONING": {
        "primary": "x-ai/grok-4.1-fast-reasoning",
        "fallback": ["deepseek/deepseek-r1", "openai/o3-mini"],
    },
}
