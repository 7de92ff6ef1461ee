from __future__ import annotations

import asyncio
import logging
import socket
from dataclasses import dataclass
from typing import Any

import uvicorn
from fastapi import FastAPI

from clawd_router.main import create_app
from clawd_router.settings import Settings, get_settings

logger = logging.getLogger("uvicorn.error")

_STARTUP_POLL_SECONDS = 0.01


def bind_socket(host: str, port: int) -> socket.socket:
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    sock = socket.socket(family, socket.SOCK_STREAM)
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    try:
        sock.bind((host, port))
    except OSError:
        sock.close()
        raise
    sock.set_inheritable(True)
    return sock


def _server_config(application: FastAPI, *, graceful_timeout_seconds: float) -> uvicorn.Config:
    return uvicorn.Config(
        application,
        lifespan="on",
        log_level="info",
        timeout_graceful_shutdown=max(1, int(graceful_timeout_seconds)),
    )


@dataclass(slots=True)
class ProxyHandle:
    host: str
    port: int
    _server: uvicorn.Server
    _task: asyncio.Task[None]
    _socket: socket.socket

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}"

    async def close(self) -> None:
        """Stop accepting connections, drain in-flight requests, release the port."""
        self._server.should_exit = True
        try:
            await self._task
        finally:
            self._socket.close()


async def start_proxy(
    *,
    host: str = "127.0.0.1",
    port: int = 0,
    app: FastAPI | None = None,
    settings: Settings | None = None,
    graceful_timeout_seconds: float = 30.0,
    **app_options: Any,
) -> ProxyHandle:
    """Serve the proxy on ``host:port`` inside the running event loop.

    ``port=0`` asks the OS for a free port; the bound port is on the handle.
    Extra keyword arguments are passed to :func:`create_app`.
    """
    application = app or create_app(settings, **app_options)
    sock = bind_socket(host, port)
    server = uvicorn.Server(
        _server_config(application, graceful_timeout_seconds=graceful_timeout_seconds)
    )
    task = asyncio.create_task(server.serve(sockets=[sock]))
    while not server.started:
        if task.done():
            sock.close()
            task.result()
            raise RuntimeError("Proxy server exited during startup.")
        await asyncio.sleep(_STARTUP_POLL_SECONDS)

    bound_port = int(sock.getsockname()[1])
    logger.info("proxy listening on http://%s:%d", host, bound_port)
    return ProxyHandle(
        host=host,
        port=bound_port,
        _server=server,
        _task=task,
        _socket=sock,
    )


def run(
    settings: Settings | None = None,
    *,
    host: str | None = None,
    port: int | None = None,
) -> None:
    """Serve in the foreground until SIGINT/SIGTERM."""
    active_settings = settings or get_settings()
    bind_host = host or active_settings.clawd_router_host
    bind_port = active_settings.clawd_router_port if port is None else port
    config = _server_config(create_app(active_settings), graceful_timeout_seconds=30.0)
    server = uvicorn.Server(config)
    sock = bind_socket(bind_host, bind_port)
    logger.info(
        "proxy listening on http://%s:%d",
        bind_host,
        int(sock.getsockname()[1]),
    )
    try:
        server.run(sockets=[sock])
    finally:
        sock.close()
