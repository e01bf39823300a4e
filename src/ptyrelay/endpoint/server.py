"""FastAPI WebSocket server for ptyrelay.

Every WebSocket connection on ``/`` gets its own shell on its own PTY.
The listening socket is bound before uvicorn starts so the real port is
known up front and can be announced to the parent process on stdout::

    {"port": 53117, "pid": 4242}
"""

from __future__ import annotations

import json
import logging
import os
import socket
import sys
from concurrent.futures import ThreadPoolExecutor
from contextlib import asynccontextmanager
from typing import AsyncIterator, TextIO

import uvicorn
from fastapi import FastAPI, WebSocket
from pydantic import BaseModel

from ptyrelay import __version__
from ptyrelay.config.settings import Settings
from ptyrelay.endpoint.connection import ConnectionHandler, SessionFactory
from ptyrelay.endpoint.session import PtySession
from ptyrelay.shell.resolver import ShellResolver

logger = logging.getLogger(__name__)


class HealthResponse(BaseModel):
    status: str = "ok"
    sessions: int = 0


def create_app(
    settings: Settings | None = None,
    resolver: ShellResolver | None = None,
    session_factory: SessionFactory = PtySession.create,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Server settings; defaults when None.
        resolver: Shell resolver shared by all connections (for testing).
        session_factory: Replaces ``PtySession.create`` (for testing).
    """
    settings = settings or Settings()
    resolver = resolver or ShellResolver()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        # Blocking PTY reads live here, away from the default executor
        executor = ThreadPoolExecutor(
            max_workers=settings.server.read_workers,
            thread_name_prefix="pty-read",
        )
        app.state.read_executor = executor
        logger.info("PTY server ready (%d read workers)", settings.server.read_workers)
        yield
        executor.shutdown(wait=False, cancel_futures=True)
        app.state.read_executor = None
        logger.info("PTY server stopped")

    app = FastAPI(
        title="ptyrelay",
        description="WebSocket bridge to a local interactive shell",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.read_executor = None
    app.state.connections = set()

    @app.get("/health")
    async def health_check() -> HealthResponse:
        return HealthResponse(status="ok", sessions=len(app.state.connections))

    @app.websocket("/")
    async def terminal(websocket: WebSocket) -> None:
        await websocket.accept()
        logger.info("WebSocket connection established")
        handler = ConnectionHandler(
            websocket,
            config=settings.terminal,
            resolver=resolver,
            read_executor=app.state.read_executor,
            session_factory=session_factory,
        )
        app.state.connections.add(handler)
        try:
            await handler.run()
        finally:
            app.state.connections.discard(handler)

    return app


def bind_socket(host: str = "127.0.0.1", port: int = 0) -> socket.socket:
    """Bind a listening TCP socket; port 0 lets the OS pick one."""
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    sock = socket.socket(family, socket.SOCK_STREAM)
    if sys.platform != "win32":
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    try:
        sock.bind((host, port))
    except OSError:
        sock.close()
        raise
    sock.set_inheritable(True)
    return sock


def announce(port: int, stream: TextIO | None = None) -> None:
    """Tell the parent process where we listen: one JSON line on stdout."""
    stream = stream or sys.stdout
    print(json.dumps({"port": port, "pid": os.getpid()}), file=stream, flush=True)


def run_server(settings: Settings) -> None:
    """Bind, announce, then serve until SIGINT / SIGTERM."""
    sock = bind_socket(settings.server.host, settings.server.port)
    host, port = sock.getsockname()[:2]
    logger.info("Server bound to %s:%d", host, port)
    announce(port)

    app = create_app(settings)
    config = uvicorn.Config(
        app,
        log_level=settings.logging.level.lower(),
        access_log=False,
    )
    server = uvicorn.Server(config)
    logger.info("Listening for WebSocket connections...")
    server.run(sockets=[sock])
    logger.info("Received exit signal, server shut down")
