"""Static OpenRouter model catalog.

Prices are USD per million tokens. ``auto`` and ``eco`` are routing sentinels:
they appear in the catalog so clients can select them, but they are never sent
upstream and never accepted as a routing answer.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

ROUTER_PREFIX = "clawd-router/"
ROUTING_SENTINELS = frozenset({"auto", "eco"})


@dataclass(frozen=True, slots=True)
class ModelPricing:
    input_price: float
    output_price: float


@dataclass(frozen=True, slots=True)
class CatalogModel:
    id: str
    name: str
    input_price: float
    output_price: float
    context_window: int
    max_output: int
    version: str | None = None
    reasoning: bool = False
    vision: bool = False
    agentic: bool = False


OPENROUTER_MODELS: tuple[CatalogModel, ...] = (
    CatalogModel("auto", "Auto (Smart Router - Balanced)", 0.0, 0.0, 1_050_000, 128_000),
    CatalogModel("eco", "Eco (Smart Router - Cost Optimized)", 0.0, 0.0, 1_050_000, 128_000),
    CatalogModel(
        "google/gemini-2.5-flash-lite-preview",
        "Gemini 2.5 Flash Lite Preview",
        0.1,
        0.4,
        1_000_000,
        65_536,
        version="2.5",
    ),
    CatalogModel(
        "google/gemini-2.5-flash", "Gemini 2.5 Flash", 0.3, 2.5, 1_000_000, 65_536, version="2.5"
    ),
    CatalogModel(
        "google/gemini-2.5-pro",
        "Gemini 2.5 Pro",
        1.25,
        10.0,
        1_050_000,
        65_536,
        version="2.5",
        reasoning=True,
        vision=True,
    ),
    CatalogModel(
        "anthropic/claude-sonnet-4-5",
        "Claude Sonnet 4.5",
        3.0,
        15.0,
        200_000,
        64_000,
        version="4.5",
        reasoning=True,
    ),
    CatalogModel(
        "anthropic/claude-opus-4-5",
        "Claude Opus 4.5",
        15.0,
        75.0,
        200_000,
        32_000,
        version="4.5",
        reasoning=True,
    ),
    CatalogModel(
        "anthropic/claude-haiku-4-5", "Claude Haiku 4.5", 1.0, 5.0, 200_000, 8_192, version="4.5"
    ),
    CatalogModel(
        "openai/gpt-4o", "GPT-4o", 2.5, 10.0, 128_000, 16_384, version="4o", vision=True
    ),
    CatalogModel(
        "openai/gpt-4o-mini", "GPT-4o Mini", 0.15, 0.6, 128_000, 16_384, version="4o-mini"
    ),
    CatalogModel(
        "openai/o3-mini", "o3-mini", 1.1, 4.4, 128_000, 65_536, version="3-mini", reasoning=True
    ),
    CatalogModel(
        "deepseek/deepseek-chat", "DeepSeek Chat", 0.28, 0.28, 128_000, 8_192, version="v3.2"
    ),
    CatalogModel(
        "deepseek/deepseek-r1", "DeepSeek R1", 0.55, 2.19, 128_000, 8_192, version="r1", reasoning=True
    ),
    CatalogModel(
        "moonshotai/kimi-k2.5",
        "Kimi K2.5",
        0.6,
        3.0,
        262_144,
        8_192,
        reasoning=True,
        vision=True,
        agentic=True,
    ),
    CatalogModel(
        "x-ai/grok-code-fast-1", "Grok Code Fast", 0.2, 1.5, 131_072, 16_384, agentic=True
    ),
    CatalogModel(
        "x-ai/grok-4.1-fast-non-reasoning", "Grok 4.1 Fast", 0.2, 0.5, 131_072, 16_384
    ),
    CatalogModel(
        "x-ai/grok-4.1-fast-reasoning",
        "Grok 4.1 Fast Reasoning",
        0.2,
        0.5,
        131_072,
        16_384,
        reasoning=True,
    ),
    CatalogModel("x-ai/grok-4-0709", "Grok 4", 0.2, 1.5, 131_072, 16_384, reasoning=True),
    CatalogModel("x-ai/grok-3", "Grok 3", 3.0, 15.0, 131_072, 16_384, reasoning=True),
    CatalogModel("x-ai/grok-3-mini", "Grok 3 Mini", 0.3, 0.5, 131_072, 16_384),
    CatalogModel(
        "minimax/minimax-m2.5", "MiniMax M2.5", 0.3, 1.2, 204_800, 16_384, reasoning=True
    ),
)

MODEL_ALIASES: dict[str, str] = {
    "claude": "anthropic/claude-sonnet-4-5",
    "sonnet": "anthropic/claude-sonnet-4-5",
    "opus": "anthropic/claude-opus-4-5",
    "haiku": "anthropic/claude-haiku-4-5",
    "gemini": "google/gemini-2.5-pro",
    "flash": "google/gemini-2.5-flash",
    "gpt": "openai/gpt-4o",
    "mini": "openai/gpt-4o-mini",
    "deepseek": "deepseek/deepseek-chat",
    "r1": "deepseek/deepseek-r1",
    "auto-router": "auto",
    "router": "auto",
    "kimi": "moonshotai/kimi-k2.5",
    "grok-fast": "x-ai/grok-4.1-fast-non-reasoning",
    "grok-code": "x-ai/grok-code-fast-1",
    "grok": "x-ai/grok-3",
    "minimax": "minimax/minimax-m2.5",
    "eco": "eco",
}

CAPABILITY_DESCRIPTIONS: dict[str, str] = {
    "google/gemini-2.5-flash-lite-preview": (
        "Ultra-cheap and fast. Best for simple questions, greetings, translations, "
        "factual lookups."
    ),
    "google/gemini-2.5-flash": (
        "Balanced speed and capability. Best for general tasks, summaries, moderate "
        "coding, Q&A."
    ),
    "google/gemini-2.5-pro": (
        "High capability with reasoning. Best for complex analysis, hard coding "
        "problems, architecture design."
    ),
    "anthropic/claude-sonnet-4-5": (
        "Excellent all-rounder for reasoning, coding and tool use. Strong daily driver."
    ),
    "anthropic/claude-opus-4-5": (
        "Most capable Anthropic model. Best for the hardest agent tasks, long-context "
        "coding, deep reasoning."
    ),
    "anthropic/claude-haiku-4-5": (
        "Fast Anthropic model. Best for light coding, extraction, short answers."
    ),
    "openai/gpt-4o": "OpenAI multimodal flagship. Best for vision, general chat, tool calling.",
    "openai/gpt-4o-mini": "Cheap and fast OpenAI. Best for simple tasks, quick lookups, light coding.",
    "openai/o3-mini": "OpenAI reasoning model. Best for math, logic, algorithmic problems.",
    "deepseek/deepseek-chat": (
        "Very cheap and capable. Best for coding and general tasks on a tight budget."
    ),
    "deepseek/deepseek-r1": (
        "DeepSeek reasoning model. Best for math, logic, and reasoning tasks on a budget."
    ),
    "moonshotai/kimi-k2.5": (
        "Multimodal with strong agentic tool use and visual coding. Close to Sonnet quality."
    ),
    "x-ai/grok-code-fast-1": "Fast agentic coding model. Best for code edits and tool loops.",
    "x-ai/grok-4.1-fast-non-reasoning": "Cheap and fast. Best for chat and simple lookups.",
    "x-ai/grok-4.1-fast-reasoning": "Cheap reasoning. Best for step-by-step problems on a budget.",
    "x-ai/grok-4-0709": "xAI frontier reasoning model. Best for hard analysis and math.",
    "x-ai/grok-3": "Large xAI model. Best for knowledge-heavy writing and analysis.",
    "x-ai/grok-3-mini": "Small xAI model. Best for quick answers and light reasoning.",
    "minimax/minimax-m2.5": (
        "Strong coding and agents. Best for software engineering, tool use, long agent "
        "sessions."
    ),
}

_MODELS_BY_ID: dict[str, CatalogModel] = {model.id: model for model in OPENROUTER_MODELS}


def _strip_router_prefix(model_id: str) -> str:
    if model_id.startswith(ROUTER_PREFIX):
        return model_id[len(ROUTER_PREFIX) :]
    return model_id


def resolve_model_alias(model: str) -> str:
    normalized = model.strip().lower()
    resolved = MODEL_ALIASES.get(normalized)
    if resolved:
        return resolved

    if normalized.startswith(ROUTER_PREFIX):
        without_prefix = normalized[len(ROUTER_PREFIX) :]
        return MODEL_ALIASES.get(without_prefix, without_prefix)

    return model


def get_model(model_id: str) -> CatalogModel | None:
    return _MODELS_BY_ID.get(_strip_router_prefix(model_id))


def get_model_context_window(model_id: str) -> int | None:
    model = get_model(model_id)
    if model is None:
        return None
    return model.context_window


def is_routable_model(model_id: str) -> bool:
    return model_id in _MODELS_BY_ID and model_id not in ROUTING_SENTINELS


def routable_models() -> list[CatalogModel]:
    return [model for model in OPENROUTER_MODELS if model.id not in ROUTING_SENTINELS]


def build_model_pricing() -> dict[str, ModelPricing]:
    return {
        model.id: ModelPricing(
            input_price=model.input_price, output_price=model.output_price
        )
        for model in OPENROUTER_MODELS
    }


def list_model_cards(created: int) -> list[dict[str, Any]]:
    """Build OpenAI-style model list entries.

    Every catalog model is listed, followed by aliases that point at a different
    catalog model (``router`` for example). Aliases that collide with a real id or
    resolve to themselves are skipped.
    """
    model_ids: list[str] = [model.id for model in OPENROUTER_MODELS]
    for alias, target in MODEL_ALIASES.items():
        if alias in _MODELS_BY_ID or alias == target:
            continue
        if target not in _MODELS_BY_ID:
            continue
        model_ids.append(alias)
    return [
        {
            "id": model_id,
            "object": "model",
            "created": created,
            "owned_by": "clawd-router",
        }
        for model_id in model_ids
    ]
