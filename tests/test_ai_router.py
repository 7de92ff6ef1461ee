from __future__ import annotations

import asyncio
import json
from typing import Any

import httpx
import pytest

from clawd_router.ai_router import (
    RoutingOracleClient,
    build_routing_prompt,
    parse_routing_answer,
    truncate_messages,
)
from clawd_router.catalog import routable_models
from clawd_router.config import AIRoutingConfig
from clawd_router.errors import RoutingError
from clawd_router.messages import ChatMessage, parse_messages, serialize_messages
from clawd_router.turn_cache import TurnCache, compute_cache_key
from tests.client_test_utils import FakeClock, RecordingOracle, completion_body

BASE_URL = "https://openrouter.test/api/v1"


def _client(
    handler: Any, cache: TurnCache | None = None
) -> RoutingOracleClient:
    return RoutingOracleClient(
        base_url=BASE_URL,
        cache=cache if cache is not None else TurnCache(),
        transport=httpx.MockTransport(handler),
    )


def _route(client: RoutingOracleClient, messages: Any, config: AIRoutingConfig) -> str:
    async def _run() -> str:
        try:
            return await client.route(messages, "sk-test", config)
        finally:
            await client.close()

    return asyncio.run(_run())


def _turn(content: str = "hello") -> tuple[ChatMessage, ...]:
    return parse_messages([{"role": "user", "content": content}])


def test_route_posts_routing_request_and_caches_answer() -> None:
    oracle = RecordingOracle("google/gemini-2.5-flash")
    cache = TurnCache()
    config = AIRoutingConfig()
    messages = _turn()
    captured: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return oracle(request)

    assert _route(_client(handler, cache), messages, config) == "google/gemini-2.5-flash"

    request = captured[0]
    assert str(request.url) == f"{BASE_URL}/chat/completions"
    assert request.headers["authorization"] == "Bearer sk-test"
    assert request.headers["x-title"] == "clawd Router"
    body = oracle.requests[0]
    assert body["model"] == "google/gemini-2.5-flash"
    assert body["max_tokens"] == 20
    assert body["temperature"] == 0.0
    assert body["messages"][0]["role"] == "system"
    assert body["messages"][1:] == [{"role": "user", "content": "hello"}]
    assert cache.get(compute_cache_key(messages)) == "google/gemini-2.5-flash"


def test_cache_hit_skips_the_network() -> None:
    oracle = RecordingOracle("openai/gpt-4o-mini")
    cache = TurnCache()
    config = AIRoutingConfig()
    messages = _turn()

    first = _route(_client(oracle, cache), messages, config)
    second = _route(_client(oracle, cache), messages, config)

    assert first == second == "openai/gpt-4o-mini"
    assert len(oracle.requests) == 1


def test_expired_cache_entry_triggers_new_call() -> None:
    oracle = RecordingOracle("openai/gpt-4o-mini")
    clock = FakeClock()
    cache = TurnCache(clock=clock)
    config = AIRoutingConfig(cache_ttl_ms=1000)
    messages = _turn()

    _route(_client(oracle, cache), messages, config)
    clock.now += 1.0
    _route(_client(oracle, cache), messages, config)

    assert len(oracle.requests) == 2


def test_resolve_reports_cache_hits() -> None:
    cache = TurnCache()
    messages = _turn()
    cache.put(compute_cache_key(messages), "x-ai/grok-3", 60.0)
    client = _client(RecordingOracle(), cache)

    async def _run() -> Any:
        try:
            return await client.resolve(messages, "sk", AIRoutingConfig())
        finally:
            await client.close()

    answer = asyncio.run(_run())

    assert answer.model_id == "x-ai/grok-3"
    assert answer.cached is True


def test_previous_turn_model_is_included_in_prompt() -> None:
    oracle = RecordingOracle("anthropic/claude-sonnet-4-5")
    cache = TurnCache()
    config = AIRoutingConfig()
    first_turn = _turn("write a haiku")
    cache.put(compute_cache_key(first_turn), "deepseek/deepseek-chat", 60.0)
    second_turn = parse_messages(
        [
            {"role": "user", "content": "write a haiku"},
            {"role": "assistant", "content": "..."},
            {"role": "user", "content": "now prove a theorem"},
        ]
    )

    _route(_client(oracle, cache), second_turn, config)

    system_prompt = oracle.requests[0]["messages"][0]["content"]
    assert "Previous model used: deepseek/deepseek-chat" in system_prompt


def test_first_turn_prompt_says_no_previous_model() -> None:
    assert "first turn" in build_routing_prompt(None)


def test_routing_prompt_lists_models_cheapest_first() -> None:
    prompt = build_routing_prompt(None)
    model_lines = [line for line in prompt.splitlines() if line.startswith("- ") and "/" in line]
    listed = [line[2:].split(" — ")[0] for line in model_lines]
    by_price = sorted(routable_models(), key=lambda model: model.input_price)

    assert listed == [model.id for model in by_price]
    assert "auto" not in listed
    assert "- anthropic/claude-opus-4-5 — " in prompt
    assert "$15.00/$75.00 per 1M tokens" in prompt
    assert "Return ONLY the model ID" in prompt


def test_truncate_messages_drops_oldest_first() -> None:
    messages = parse_messages(
        [
            {"role": "user", "content": "a" * 50},
            {"role": "assistant", "content": "b" * 50},
            {"role": "user", "content": "c"},
        ]
    )

    truncated = truncate_messages(messages, max_chars=120)

    assert [message.content for message in truncated] == ["b" * 50, "c"]
    assert len(serialize_messages(truncated)) <= 120
    assert truncate_messages(messages, max_chars=10_000) == list(messages)


def test_long_conversations_are_truncated_in_routing_request() -> None:
    oracle = RecordingOracle()
    config = AIRoutingConfig(prompt_truncation_chars=100)
    messages = parse_messages(
        [
            {"role": "user", "content": "x" * 500},
            {"role": "user", "content": "short"},
        ]
    )

    _route(_client(oracle), messages, config)

    assert oracle.requests[0]["messages"][1:] == [{"role": "user", "content": "short"}]


def test_parse_routing_answer_takes_first_line() -> None:
    assert (
        parse_routing_answer(completion_body("r", "  openai/gpt-4o \nbecause"))
        == "openai/gpt-4o"
    )
    assert parse_routing_answer({"choices": []}) == ""
    assert parse_routing_answer({"choices": [{"message": {"content": None}}]}) == ""


def test_unknown_model_answer_raises_routing_error() -> None:
    cache = TurnCache()
    messages = _turn()

    with pytest.raises(RoutingError, match="unknown model"):
        _route(_client(RecordingOracle("made-up/model"), cache), messages, AIRoutingConfig())

    assert cache.get(compute_cache_key(messages)) is None


def test_sentinel_answer_raises_routing_error() -> None:
    with pytest.raises(RoutingError):
        _route(_client(RecordingOracle("auto")), _turn(), AIRoutingConfig())


def test_http_error_raises_routing_error() -> None:
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(503, text="overloaded")

    with pytest.raises(RoutingError, match="HTTP 503"):
        _route(_client(handler), _turn(), AIRoutingConfig())


def test_network_error_raises_routing_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(RoutingError, match="connection refused"):
        _route(_client(handler), _turn(), AIRoutingConfig())


def test_invalid_json_raises_routing_error() -> None:
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"<html>", headers={"content-type": "text/html"})

    with pytest.raises(RoutingError, match="not valid JSON"):
        _route(_client(handler), _turn(), AIRoutingConfig())


def test_concurrent_identical_misses_each_call_the_oracle() -> None:
    calls: list[dict[str, Any]] = []

    async def handler(request: httpx.Request) -> httpx.Response:
        calls.append(json.loads(request.content))
        await asyncio.sleep(0.01)
        return httpx.Response(200, json=completion_body("r", "openai/gpt-4o-mini"))

    client = _client(handler)
    messages = _turn()

    async def _run() -> list[str]:
        try:
            return list(
                await asyncio.gather(
                    client.route(messages, "sk", AIRoutingConfig()),
                    client.route(messages, "sk", AIRoutingConfig()),
                )
            )
        finally:
            await client.close()

    assert asyncio.run(_run()) == ["openai/gpt-4o-mini", "openai/gpt-4o-mini"]
    assert len(calls) == 2
    assert len(client.cache) == 1
