from __future__ import annotations

import json
import logging
import math
import time
from typing import Any, Callable
from uuid import uuid4

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from clawd_router import VERSION
from clawd_router.ai_router import RoutingOracleClient
from clawd_router.audit import DecisionAuditLog
from clawd_router.catalog import (
    build_model_pricing,
    get_model_context_window,
    list_model_cards,
    resolve_model_alias,
)
from clawd_router.config import RoutingConfig, load_routing_config
from clawd_router.errors import (
    AuthenticationError,
    InvalidRequestError,
    ProxyError,
    error_payload,
)
from clawd_router.messages import extract_prompts, parse_messages
from clawd_router.proxy import UpstreamProxy
from clawd_router.router_engine import RoutingDecision, SmartRouter, routing_profile_for
from clawd_router.settings import Settings, get_settings
from clawd_router.turn_cache import TurnCache

DEFAULT_MAX_OUTPUT_TOKENS = 4096

logger = logging.getLogger("uvicorn.error")


def _reject_constant(token: str) -> Any:
    raise ValueError(f"Unsupported JSON constant: {token}")


def _parse_json_body(raw: bytes) -> dict[str, Any]:
    try:
        text = raw.decode("utf-8")
        if not text.strip():
            return {}
        payload = json.loads(text, parse_constant=_reject_constant)
    except ValueError as exc:
        raise InvalidRequestError("Invalid JSON body") from exc
    if not isinstance(payload, dict):
        raise InvalidRequestError("Expected a JSON object request body.")
    return payload


def _requested_max_tokens(raw: Any) -> int:
    if raw is None or isinstance(raw, bool):
        return DEFAULT_MAX_OUTPUT_TOKENS
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return DEFAULT_MAX_OUTPUT_TOKENS
    if not math.isfinite(value) or value <= 0:
        return DEFAULT_MAX_OUTPUT_TOKENS
    return int(value)


def _request_id(request: Request) -> str:
    return (
        request.headers.get("x-request-id")
        or request.headers.get("x-correlation-id")
        or uuid4().hex[:12]
    )


def _decision_event(decision: RoutingDecision, request_id: str) -> dict[str, Any]:
    return {
        "event": "route_decision",
        "request_id": request_id,
        "model": decision.model,
        "method": decision.method,
        "tier": decision.tier,
        "profile": decision.profile,
        "cached": decision.cached,
        "cost_estimate": decision.cost_estimate,
        "baseline_cost": decision.baseline_cost,
        "savings": decision.savings,
    }


async def _proxy_chat_completion(request: Request) -> Response:
    state = request.app.state
    api_key: str = state.api_key
    if not api_key:
        raise AuthenticationError("OpenRouter API key required. Set OPENROUTER_API_KEY.")

    payload = _parse_json_body(await request.body())
    raw_messages = payload.get("messages")
    if not isinstance(raw_messages, list) or not raw_messages:
        raise InvalidRequestError("messages is required and must be a non-empty array")

    request_id = _request_id(request)
    requested_model = str(payload.get("model") or "auto").strip() or "auto"
    max_output_tokens = _requested_max_tokens(payload.get("max_tokens"))
    stream = bool(payload.get("stream"))

    messages = parse_messages(raw_messages)
    prompts = extract_prompts(messages)
    profile = routing_profile_for(requested_model)

    router: SmartRouter = state.smart_router
    if profile is None:
        models_to_try = [resolve_model_alias(requested_model)]
        logger.info(
            "direct_model request_id=%s requested_model=%s model=%s",
            request_id,
            requested_model,
            models_to_try[0],
        )
    else:
        decision = await router.decide(
            messages=messages,
            api_key=api_key,
            profile=profile,
            max_output_tokens=max_output_tokens,
        )
        models_to_try = router.models_to_try(
            decision,
            prompt=prompts.prompt,
            system_prompt=prompts.system_prompt,
            max_output_tokens=max_output_tokens,
        )
        logger.info(
            (
                "route_decision request_id=%s profile=%s tier=%s model=%s cached=%s "
                "cost_estimate=%.6f savings=%.3f chain=%s"
            ),
            request_id,
            profile,
            decision.tier,
            decision.model,
            decision.cached,
            decision.cost_estimate,
            decision.savings,
            ",".join(models_to_try),
        )
        state.audit_log.record(_decision_event(decision, request_id))
        on_routed: Callable[[RoutingDecision], None] | None = state.on_routed
        if on_routed is not None:
            try:
                on_routed(decision)
            except Exception as exc:
                logger.debug("on_routed_failed request_id=%s error=%s", request_id, exc)

    proxy: UpstreamProxy = state.upstream_proxy
    return await proxy.forward_with_fallback(
        payload=payload,
        models_to_try=models_to_try,
        api_key=api_key,
        stream=stream,
        request_id=request_id,
    )


def create_app(
    settings: Settings | None = None,
    *,
    routing_config: RoutingConfig | None = None,
    api_key: str | None = None,
    turn_cache: TurnCache | None = None,
    upstream_transport: httpx.AsyncBaseTransport | None = None,
    oracle_transport: httpx.AsyncBaseTransport | None = None,
    on_routed: Callable[[RoutingDecision], None] | None = None,
) -> FastAPI:
    app = FastAPI(
        title="clawd-router",
        description="OpenAI-compatible OpenRouter proxy with LLM-based model routing and fallback.",
        version=VERSION,
    )

    @app.on_event("startup")
    async def startup() -> None:
        active_settings = settings or get_settings()
        config = routing_config or load_routing_config(
            active_settings.routing_config_path
        )
        audit_log = DecisionAuditLog(
            active_settings.router_audit_log_path,
            enabled=active_settings.router_audit_log_enabled,
        )
        cache = turn_cache if turn_cache is not None else TurnCache()
        oracle = RoutingOracleClient(
            base_url=active_settings.openrouter_base_url,
            cache=cache,
            timeout_seconds=active_settings.routing_oracle_timeout_seconds,
            transport_retries=active_settings.upstream_transport_retries,
            transport=oracle_transport,
        )
        app.state.settings = active_settings
        app.state.api_key = (api_key or active_settings.resolved_api_key).strip()
        app.state.routing_config = config
        app.state.turn_cache = cache
        app.state.audit_log = audit_log
        app.state.on_routed = on_routed
        app.state.oracle = oracle
        app.state.smart_router = SmartRouter(
            config=config,
            oracle=oracle,
            model_pricing=build_model_pricing(),
            context_window_lookup=get_model_context_window,
        )
        app.state.upstream_proxy = UpstreamProxy(
            base_url=active_settings.openrouter_base_url,
            connect_timeout_seconds=active_settings.upstream_connect_timeout_seconds,
            read_timeout_seconds=active_settings.upstream_read_timeout_seconds,
            write_timeout_seconds=active_settings.upstream_write_timeout_seconds,
            pool_timeout_seconds=active_settings.upstream_pool_timeout_seconds,
            transport_retries=active_settings.upstream_transport_retries,
            transport=upstream_transport,
            audit_hook=audit_log.record,
        )
        logger.info(
            (
                "startup complete routing_config_path=%s routing_model=%s tiers=%d "
                "eco_tiers=%d api_key_configured=%s audit_log_enabled=%s"
            ),
            active_settings.routing_config_path,
            config.ai_routing.model,
            len(config.tiers),
            len(config.eco_tiers or {}),
            bool(app.state.api_key),
            active_settings.router_audit_log_enabled,
        )

    @app.on_event("shutdown")
    async def shutdown() -> None:
        proxy: UpstreamProxy | None = getattr(app.state, "upstream_proxy", None)
        if proxy is not None:
            await proxy.close()
        oracle: RoutingOracleClient | None = getattr(app.state, "oracle", None)
        if oracle is not None:
            await oracle.close()
        audit_log: DecisionAuditLog | None = getattr(app.state, "audit_log", None)
        if audit_log is not None:
            audit_log.close()
        logger.info("shutdown complete")

    @app.exception_handler(ProxyError)
    async def proxy_error_handler(_: Request, exc: ProxyError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content=exc.to_payload())

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(
        _: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        message = exc.detail if isinstance(exc.detail, str) else "Request failed"
        if exc.status_code == 404:
            message = "Not found"
        return JSONResponse(
            status_code=exc.status_code,
            content=error_payload(message, "invalid_request"),
            headers=exc.headers,
        )

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok", "version": VERSION}

    @app.get("/v1/models")
    async def models() -> dict[str, Any]:
        return {"object": "list", "data": list_model_cards(created=int(time.time()))}

    @app.post("/v1/chat/completions")
    async def chat_completions(request: Request) -> Response:
        return await _proxy_chat_completion(request)

    return app


app = create_app()
