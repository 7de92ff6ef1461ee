from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Callable

import httpx
from fastapi import status
from fastapi.responses import JSONResponse, Response, StreamingResponse

from clawd_router import VERSION
from clawd_router.errors import error_payload

HOP_BY_HOP_RESPONSE_HEADERS = {
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailers",
    "transfer-encoding",
    "upgrade",
    "content-length",
}
DEFAULT_RETRY_STATUSES = (429, 502, 503, 504)

logger = logging.getLogger("uvicorn.error")


def _request_error_details(exc: Exception) -> dict[str, Any]:
    error_repr = repr(exc)
    error_message = str(exc).strip() or error_repr
    error_type = exc.__class__.__name__.strip() or "RequestError"
    details: dict[str, Any] = {
        "error": error_message,
        "error_type": error_type,
        "is_timeout": isinstance(exc, httpx.TimeoutException),
    }
    if isinstance(exc, httpx.RequestError):
        try:
            details["request_url"] = str(exc.request.url)
        except RuntimeError:
            pass
    return details


def _filter_response_headers(
    headers: httpx.Headers, *, decoded_body: bool = False
) -> dict[str, str]:
    filtered: dict[str, str] = {}
    for name, value in headers.items():
        lowered = name.lower()
        if lowered in HOP_BY_HOP_RESPONSE_HEADERS:
            continue
        # httpx hands back decoded bytes for buffered bodies.
        if decoded_body and lowered == "content-encoding":
            continue
        filtered[name] = value
    return filtered


def _upstream_error_message(status_code: int, body_text: str) -> str:
    message: Any = None
    try:
        parsed = json.loads(body_text)
    except ValueError:
        parsed = None
    if isinstance(parsed, dict):
        error = parsed.get("error")
        if isinstance(error, dict):
            message = error.get("message")
    if not isinstance(message, str) or not message:
        message = body_text
    return f"OpenRouter error ({status_code}): {message}"


@dataclass(slots=True)
class ProxyExecutionStats:
    attempted_models: list[str] = field(default_factory=list)
    last_status: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    last_error: str | None = None


class UpstreamProxy:
    """Executes a chat completion against a chain of models, first success wins.

    Statuses in ``retry_statuses`` and transport errors move on to the next model.
    Any other failure status is relayed as-is and ends the chain.
    """

    def __init__(
        self,
        *,
        base_url: str,
        retry_statuses: tuple[int, ...] | list[int] = DEFAULT_RETRY_STATUSES,
        connect_timeout_seconds: float = 5.0,
        read_timeout_seconds: float = 120.0,
        write_timeout_seconds: float = 30.0,
        pool_timeout_seconds: float = 5.0,
        transport_retries: int = 2,
        transport: httpx.AsyncBaseTransport | None = None,
        audit_hook: Callable[[dict[str, Any]], None] | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.retry_statuses = set(retry_statuses)
        self.client = httpx.AsyncClient(
            timeout=httpx.Timeout(
                timeout=None,
                connect=max(0.1, float(connect_timeout_seconds)),
                read=max(0.1, float(read_timeout_seconds)),
                write=max(0.1, float(write_timeout_seconds)),
                pool=max(0.1, float(pool_timeout_seconds)),
            ),
            limits=httpx.Limits(max_connections=512, max_keepalive_connections=128),
            transport=transport
            or httpx.AsyncHTTPTransport(retries=max(0, int(transport_retries))),
        )
        self._audit_hook = audit_hook

    async def close(self) -> None:
        await self.client.aclose()

    def _audit(self, event: str, **fields: Any) -> None:
        if self._audit_hook is None:
            return
        try:
            self._audit_hook({"event": event, **fields})
        except Exception as exc:
            logger.debug("audit_write_failed event=%s error=%s", event, exc)

    @staticmethod
    def build_upstream_headers(api_key: str) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {api_key}",
            "HTTP-Referer": f"clawd-router/{VERSION}",
            "X-Title": "clawd Router",
        }

    async def forward_with_fallback(
        self,
        *,
        payload: dict[str, Any],
        models_to_try: list[str],
        api_key: str,
        stream: bool,
        request_id: str,
    ) -> Response:
        stats = ProxyExecutionStats()
        started = time.perf_counter()
        total_attempts = len(models_to_try)
        for index, model in enumerate(models_to_try):
            if index > 0:
                logger.info(
                    "proxy_fallback request_id=%s model=%s attempt=%d/%d",
                    request_id,
                    model,
                    index + 1,
                    total_attempts,
                )
            response = await self._attempt_model(
                model=model,
                payload=payload,
                api_key=api_key,
                stream=stream,
                request_id=request_id,
                attempt=index + 1,
                total_attempts=total_attempts,
                started=started,
                stats=stats,
            )
            if response is not None:
                return response

        return self._exhausted_response(request_id=request_id, stats=stats)

    async def _attempt_model(
        self,
        *,
        model: str,
        payload: dict[str, Any],
        api_key: str,
        stream: bool,
        request_id: str,
        attempt: int,
        total_attempts: int,
        started: float,
        stats: ProxyExecutionStats,
    ) -> Response | None:
        stats.attempted_models.append(model)
        upstream: httpx.Response | None = None
        try:
            request = self.client.build_request(
                method="POST",
                url=f"{self.base_url}/chat/completions",
                json={**payload, "model": model},
                headers=self.build_upstream_headers(api_key),
            )
            upstream = await self.client.send(request, stream=stream)
            if not upstream.is_success:
                return await self._handle_failure_status(
                    upstream=upstream,
                    model=model,
                    request_id=request_id,
                    stats=stats,
                )
            if stream:
                return self._streaming_response(
                    upstream=upstream,
                    model=model,
                    request_id=request_id,
                    attempts=len(stats.attempted_models),
                    started=started,
                )
            body = await upstream.aread()
        except (httpx.RequestError, TypeError, ValueError) as exc:
            # Unencodable payloads advance the chain like transport errors.
            if upstream is not None:
                await upstream.aclose()
            details = _request_error_details(exc)
            stats.last_error = (
                f"Upstream request failed for {model} "
                f"({details['error_type']}): {details['error']}"
            )
            logger.warning(
                "proxy_request_error request_id=%s model=%s attempt=%d/%d error_type=%s error=%s",
                request_id,
                model,
                attempt,
                total_attempts,
                details["error_type"],
                details["error"],
            )
            self._audit(
                "proxy_request_error",
                request_id=request_id,
                model=model,
                attempt=attempt,
                total_attempts=total_attempts,
                **details,
            )
            return None

        await upstream.aclose()
        self._log_response(
            request_id=request_id,
            model=model,
            status_code=upstream.status_code,
            attempts=len(stats.attempted_models),
            started=started,
            stream=False,
        )
        response_headers = _filter_response_headers(upstream.headers, decoded_body=True)
        response_headers["x-router-model"] = model
        response_headers["x-router-request-id"] = request_id
        return Response(
            content=body,
            status_code=upstream.status_code,
            headers=response_headers,
        )

    async def _handle_failure_status(
        self,
        *,
        upstream: httpx.Response,
        model: str,
        request_id: str,
        stats: ProxyExecutionStats,
    ) -> Response | None:
        try:
            body = await upstream.aread()
        finally:
            await upstream.aclose()
        body_text = body.decode("utf-8", errors="replace")

        if upstream.status_code in self.retry_statuses:
            stats.last_status = upstream.status_code
            stats.last_error = _upstream_error_message(upstream.status_code, body_text)
            logger.info(
                "proxy_retry request_id=%s model=%s status=%d",
                request_id,
                model,
                upstream.status_code,
            )
            self._audit(
                "proxy_retry",
                request_id=request_id,
                model=model,
                status=upstream.status_code,
            )
            return None

        logger.info(
            "proxy_upstream_error request_id=%s model=%s status=%d",
            request_id,
            model,
            upstream.status_code,
        )
        return Response(
            content=body,
            status_code=upstream.status_code,
            media_type=upstream.headers.get("content-type", "application/json"),
        )

    def _streaming_response(
        self,
        *,
        upstream: httpx.Response,
        model: str,
        request_id: str,
        attempts: int,
        started: float,
    ) -> StreamingResponse:
        response_headers = _filter_response_headers(upstream.headers)
        response_headers["x-router-model"] = model
        response_headers["x-router-request-id"] = request_id
        media_type = response_headers.pop("content-type", "text/event-stream")
        self._log_response(
            request_id=request_id,
            model=model,
            status_code=upstream.status_code,
            attempts=attempts,
            started=started,
            stream=True,
        )

        async def stream_generator() -> AsyncIterator[bytes]:
            try:
                async for chunk in upstream.aiter_raw():
                    yield chunk
            except httpx.HTTPError as exc:
                logger.warning(
                    "proxy_upstream_stream_error request_id=%s model=%s error_type=%s error=%s",
                    request_id,
                    model,
                    exc.__class__.__name__,
                    str(exc).strip() or repr(exc),
                )
                raise
            finally:
                await upstream.aclose()

        return StreamingResponse(
            content=stream_generator(),
            status_code=upstream.status_code,
            headers=response_headers,
            media_type=media_type,
        )

    def _log_response(
        self,
        *,
        request_id: str,
        model: str,
        status_code: int,
        attempts: int,
        started: float,
        stream: bool,
    ) -> None:
        latency_ms = round((time.perf_counter() - started) * 1000.0, 3)
        logger.info(
            "proxy_response request_id=%s model=%s status=%d attempts=%d stream=%s latency_ms=%.3f",
            request_id,
            model,
            status_code,
            attempts,
            stream,
            latency_ms,
        )
        self._audit(
            "proxy_response",
            request_id=request_id,
            model=model,
            status=status_code,
            attempts=attempts,
            stream=stream,
            request_latency_ms=latency_ms,
        )

    def _exhausted_response(
        self, *, request_id: str, stats: ProxyExecutionStats
    ) -> JSONResponse:
        message = stats.last_error or "All fallback models failed"
        logger.warning(
            "proxy_exhausted request_id=%s status=%d attempted_models=%s error=%s",
            request_id,
            stats.last_status,
            ",".join(stats.attempted_models),
            message,
        )
        self._audit(
            "proxy_exhausted",
            request_id=request_id,
            status=stats.last_status,
            attempted_models=stats.attempted_models,
            error=message,
        )
        return JSONResponse(
            status_code=stats.last_status,
            content=error_payload(message, "internal_error"),
        )
