from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any

import httpx

from clawd_router import VERSION
from clawd_router.catalog import CAPABILITY_DESCRIPTIONS, is_routable_model, routable_models
from clawd_router.config import AIRoutingConfig
from clawd_router.errors import RoutingError
from clawd_router.messages import ChatMessage, ConversationTurn, serialize_messages
from clawd_router.turn_cache import TurnCache, compute_cache_key, compute_previous_turn_key

logger = logging.getLogger("uvicorn.error")

_ROUTING_INSTRUCTIONS = (
    "1. From the conversation, infer whether the PREVIOUS turn succeeded (good "
    "assistant response) or struggled (errors, user corrections, confusion).",
    "2. ESCALATE to a more capable model if the previous model struggled or the new "
    "task is clearly harder.",
    "3. DOWNGRADE to a cheaper model if the previous turn went well and the new task "
    "is simple.",
    "4. Default to the cheapest model that fits. Use expensive models only when needed.",
    "5. Return ONLY the model ID, nothing else.",
)


@dataclass(frozen=True, slots=True)
class RoutingAnswer:
    model_id: str
    cached: bool


def build_routing_prompt(previous_model: str | None) -> str:
    lines: list[str] = [
        "You are a routing agent. Select ONE model for the LATEST user message.",
        "",
        "Context:",
        (
            f"- Previous model used: {previous_model}"
            if previous_model
            else "- This is the first turn (no previous model)."
        ),
        "",
        "Available models (cheapest first):",
    ]
    for model in sorted(routable_models(), key=lambda item: item.input_price):
        description = CAPABILITY_DESCRIPTIONS.get(model.id, "General purpose.")
        cost = f"${model.input_price:.2f}/${model.output_price:.2f} per 1M tokens"
        lines.append(f"- {model.id} — {description} — {cost}")
    lines.extend(["", "Instructions:", *_ROUTING_INSTRUCTIONS])
    return "\n".join(lines)


def truncate_messages(messages: ConversationTurn, max_chars: int) -> list[ChatMessage]:
    """Drop the oldest messages until the serialized conversation fits."""
    routing_messages = list(messages)
    while routing_messages and len(serialize_messages(routing_messages)) > max_chars:
        routing_messages.pop(0)
    return routing_messages


def parse_routing_answer(data: Any) -> str:
    content: Any = ""
    try:
        content = data["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError):
        content = ""
    if not isinstance(content, str):
        return ""
    return content.strip().split("\n")[0].strip()


class RoutingOracleClient:
    def __init__(
        self,
        *,
        base_url: str,
        cache: TurnCache,
        timeout_seconds: float = 15.0,
        transport_retries: int = 2,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.cache = cache
        timeout = max(0.1, float(timeout_seconds))
        self.client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout, connect=min(5.0, timeout)),
            transport=transport
            or httpx.AsyncHTTPTransport(retries=max(0, int(transport_retries))),
        )

    async def close(self) -> None:
        await self.client.aclose()

    async def route(
        self, messages: ConversationTurn, api_key: str, config: AIRoutingConfig
    ) -> str:
        answer = await self.resolve(messages, api_key, config)
        return answer.model_id

    async def resolve(
        self, messages: ConversationTurn, api_key: str, config: AIRoutingConfig
    ) -> RoutingAnswer:
        cache_key = compute_cache_key(messages)
        cached_model = self.cache.get(cache_key)
        if cached_model is not None:
            logger.info(
                "routing_cache_hit key=%s model=%s", cache_key[:12], cached_model
            )
            return RoutingAnswer(model_id=cached_model, cached=True)

        previous_model: str | None = None
        previous_key = compute_previous_turn_key(messages)
        if previous_key is not None:
            previous_model = self.cache.get(previous_key)

        routing_messages = truncate_messages(messages, config.prompt_truncation_chars)
        payload = {
            "model": config.model,
            "messages": [
                {"role": "system", "content": build_routing_prompt(previous_model)},
                *(message.to_dict() for message in routing_messages),
            ],
            "temperature": config.temperature,
            "max_tokens": config.max_tokens,
        }

        started = time.perf_counter()
        try:
            response = await self.client.post(
                f"{self.base_url}/chat/completions",
                json=payload,
                headers={
                    "Authorization": f"Bearer {api_key}",
                    "HTTP-Referer": f"clawd-router/{VERSION}",
                    "X-Title": "clawd Router",
                },
            )
        except httpx.RequestError as exc:
            error = str(exc).strip() or exc.__class__.__name__
            logger.warning(
                "routing_oracle_error error_type=%s error=%s",
                exc.__class__.__name__,
                error,
            )
            raise RoutingError(f"Routing agent call failed: {error}") from exc

        latency_ms = (time.perf_counter() - started) * 1000.0
        if response.status_code >= 400:
            logger.warning(
                "routing_oracle_error status=%d latency_ms=%.2f",
                response.status_code,
                latency_ms,
            )
            raise RoutingError(
                f"Routing agent call failed: HTTP {response.status_code} — {response.text}"
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise RoutingError(
                "Routing agent call failed: response was not valid JSON"
            ) from exc

        model_id = parse_routing_answer(data)
        if not is_routable_model(model_id):
            raise RoutingError(f'Routing agent returned unknown model: "{model_id}"')

        self.cache.put(cache_key, model_id, config.cache_ttl_seconds)
        logger.info(
            "routing_oracle_call key=%s model=%s previous_model=%s messages=%d latency_ms=%.2f",
            cache_key[:12],
            model_id,
            previous_model,
            len(routing_messages),
            latency_ms,
        )
        return RoutingAnswer(model_id=model_id, cached=False)
