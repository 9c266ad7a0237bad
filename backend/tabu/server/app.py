from __future__ import annotations

import contextlib
from typing import TYPE_CHECKING

import structlog
from starlette.applications import Starlette
from starlette.middleware.cors import CORSMiddleware
from starlette.responses import JSONResponse
from starlette.routing import Route, WebSocketRoute

from shared.logging import setup_logging
from tabu.cards.pool import CardPool
from tabu.cards.provider import GeminiContentProvider
from tabu.cards.seed import load_seed_cards
from tabu.logic.settings import RoomSettings
from tabu.messaging.router import MessageRouter
from tabu.server.settings import GameServerSettings
from tabu.server.websocket import FrameLimits, websocket_endpoint
from tabu.session.manager import SessionManager
from tabu.session.registry import RoomRegistry

logger = structlog.get_logger()

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from starlette.requests import Request
    from starlette.websockets import WebSocket


async def health(request: Request) -> JSONResponse:
    session_manager: SessionManager = request.app.state.session_manager
    return JSONResponse(
        {
            "status": "ok",
            "rooms": session_manager.registry.room_count,
            "cards": session_manager.pool.count,
        },
    )


async def status(request: Request) -> JSONResponse:
    session_manager: SessionManager = request.app.state.session_manager
    registry = session_manager.registry
    return JSONResponse(
        {
            "status": "ok",
            "rooms": registry.room_count,
            "max_rooms": registry.max_rooms,
            "connections": session_manager.connection_count,
            "cards": session_manager.pool.count,
            "replenishing": session_manager.pool.is_replenishing,
        },
    )


def build_session_manager(settings: GameServerSettings) -> SessionManager:
    """Wire the card pool, registry and session manager from configuration."""
    provider = None
    if settings.google_api_key:
        provider = GeminiContentProvider(
            settings.google_api_key,
            model=settings.generation_model,
            language=settings.generation_language,
            timeout_seconds=settings.generation_timeout_seconds,
        )
    else:
        logger.warning("GOOGLE_API_KEY not set, card replenishment disabled")

    pool = CardPool(
        load_seed_cards(settings.seed_cards_path),
        provider=provider,
        low_watermark=settings.low_deck_threshold,
        batch_size=settings.cards_per_generation,
    )
    registry = RoomRegistry(
        code_length=settings.room_code_length,
        code_alphabet=settings.room_code_alphabet,
        max_rooms=settings.max_rooms,
        expiry_seconds=settings.room_expiry_seconds,
        sweep_interval_seconds=settings.sweep_interval_seconds,
    )
    return SessionManager(
        registry,
        pool,
        RoomSettings.from_server_settings(settings),
        reconnect_grace_seconds=settings.reconnect_grace_seconds,
    )


def create_app(
    settings: GameServerSettings | None = None,
    session_manager: SessionManager | None = None,
    message_router: MessageRouter | None = None,
) -> Starlette:
    if settings is None:  # pragma: no cover
        settings = GameServerSettings()

    if session_manager is None:
        session_manager = build_session_manager(settings)

    if message_router is None:
        message_router = MessageRouter(session_manager)

    limits = FrameLimits.from_settings(settings)

    async def ws_endpoint(websocket: WebSocket) -> None:
        await websocket_endpoint(websocket, message_router, limits)

    routes = [
        Route("/health", health, methods=["GET"]),
        Route("/status", status, methods=["GET"]),
        WebSocketRoute("/ws", ws_endpoint),
    ]

    @contextlib.asynccontextmanager
    async def lifespan(_app: Starlette) -> AsyncIterator[None]:
        session_manager.start()
        try:
            yield
        finally:
            await session_manager.shutdown()

    app = Starlette(routes=routes, lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,  # type: ignore[arg-type]
        allow_origins=settings.cors_origins,
        allow_methods=["GET"],
        allow_headers=["Content-Type"],
    )
    app.state.settings = settings
    app.state.session_manager = session_manager

    logger.info("tabu server ready", cards=session_manager.pool.count)
    return app


def get_app() -> Starlette:  # pragma: no cover
    """ASGI application factory for production use (e.g., uvicorn --factory)."""
    settings = GameServerSettings()
    setup_logging(log_dir=settings.log_dir)
    return create_app(settings=settings)
