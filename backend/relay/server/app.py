from __future__ import annotations

import contextlib
import time
from typing import TYPE_CHECKING

import structlog
from starlette.applications import Starlette
from starlette.middleware.cors import CORSMiddleware
from starlette.responses import JSONResponse
from starlette.routing import Route, WebSocketRoute

from relay.messaging.router import MessageRouter
from relay.server.settings import RelayServerSettings
from relay.server.websocket import websocket_endpoint
from relay.session.manager import SessionManager
from relay.session.registry import RoomRegistry
from shared.build_info import build_metadata
from shared.logging import setup_logging

logger = structlog.get_logger()

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from starlette.requests import Request
    from starlette.websockets import WebSocket


async def health(_request: Request) -> JSONResponse:
    return JSONResponse({"status": "ok", **build_metadata()})


async def status(request: Request) -> JSONResponse:
    session_manager: SessionManager = request.app.state.session_manager
    return JSONResponse({"status": "ok", **build_metadata(), **session_manager.stats()})


async def discover(request: Request) -> JSONResponse:
    """Advertise this server and its occupied rooms to LAN/cloud discovery clients."""
    session_manager: SessionManager = request.app.state.session_manager
    settings: RelayServerSettings = request.app.state.settings
    rooms = [summary for summary in session_manager.registry.list_summaries() if summary.players > 0]
    return JSONResponse(
        {
            "type": "serverFound",
            "serverName": settings.server_name,
            "host": settings.public_host or request.url.hostname,
            "wsPort": settings.port,
            "rooms": [summary.to_wire() for summary in rooms],
            "timestamp": int(time.time() * 1000),
        },
    )


def create_app(
    settings: RelayServerSettings | None = None,
    session_manager: SessionManager | None = None,
    message_router: MessageRouter | None = None,
) -> Starlette:
    if settings is None:  # pragma: no cover
        settings = RelayServerSettings()

    if session_manager is None:
        registry = RoomRegistry(
            room_idle_ttl_seconds=settings.room_idle_ttl_seconds,
            sweep_interval_seconds=settings.room_sweep_interval_seconds,
        )
        session_manager = SessionManager(
            registry,
            heartbeat_interval=settings.heartbeat_interval_seconds,
            game_end_grace_seconds=settings.game_end_grace_seconds,
            stats_interval_seconds=settings.stats_interval_seconds,
        )

    if message_router is None:
        message_router = MessageRouter(session_manager)

    async def ws_endpoint(websocket: WebSocket) -> None:
        await websocket_endpoint(
            websocket,
            message_router,
            wire_format=settings.wire_format,
            max_message_bytes=settings.max_message_bytes,
        )

    routes = [
        Route("/health", health, methods=["GET"]),
        Route("/status", status, methods=["GET"]),
        Route("/discover", discover, methods=["GET"]),
        WebSocketRoute("/ws", ws_endpoint),
        WebSocketRoute("/", ws_endpoint),
    ]

    @contextlib.asynccontextmanager
    async def lifespan(_app: Starlette) -> AsyncGenerator[None]:
        session_manager.start()
        yield
        await session_manager.shutdown(grace_seconds=settings.shutdown_grace_seconds)

    app = Starlette(routes=routes, lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,  # type: ignore[arg-type]
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "OPTIONS"],
        allow_headers=["Content-Type"],
    )
    app.state.settings = settings
    app.state.session_manager = session_manager

    logger.info("relay server ready", server_name=settings.server_name, wire_format=settings.wire_format)
    return app


def get_app() -> Starlette:  # pragma: no cover
    """ASGI application factory for production use (uvicorn --factory relay.server.app:get_app)."""
    settings = RelayServerSettings()
    setup_logging(log_dir=settings.log_dir)
    return create_app(settings=settings)
