from __future__ import annotations

import contextlib
from dataclasses import dataclass
from typing import TYPE_CHECKING
from uuid import uuid4

import structlog
from starlette.websockets import WebSocket, WebSocketDisconnect

from tabu.logic.enums import ErrorCode
from tabu.messaging.encoder import DecodeError, decode
from tabu.messaging.protocol import ConnectionProtocol
from tabu.messaging.types import ErrorMessage
from tabu.server.rate_limit import TokenBucket

logger = structlog.get_logger()

if TYPE_CHECKING:
    from tabu.messaging.router import MessageRouter
    from tabu.server.settings import GameServerSettings

CLOSE_TOO_MANY_DECODE_ERRORS = 4004


@dataclass(frozen=True)
class FrameLimits:
    """Inbound frame budget for a single socket."""

    messages_per_second: float = 10.0
    burst: int = 20
    max_decode_errors: int = 5  # consecutive

    @classmethod
    def from_settings(cls, settings: GameServerSettings) -> FrameLimits:
        return cls(
            messages_per_second=settings.ws_messages_per_second,
            burst=settings.ws_message_burst,
            max_decode_errors=settings.ws_max_decode_errors,
        )


class WebSocketConnection(ConnectionProtocol):
    def __init__(self, websocket: WebSocket, connection_id: str | None = None) -> None:
        self._websocket = websocket
        self._connection_id = connection_id or str(uuid4())

    @property
    def connection_id(self) -> str:
        return self._connection_id

    async def send_bytes(self, data: bytes) -> None:
        try:
            await self._websocket.send_bytes(data)
        except WebSocketDisconnect:
            raise ConnectionError("WebSocket already disconnected") from None

    async def receive_bytes(self) -> bytes:
        try:
            return await self._websocket.receive_bytes()
        except WebSocketDisconnect:
            raise ConnectionError("WebSocket already disconnected") from None

    async def close(self, code: int = 1000, reason: str = "") -> None:
        # Closing a socket the client already dropped raises RuntimeError in starlette.
        with contextlib.suppress(WebSocketDisconnect, RuntimeError):
            await self._websocket.close(code=code, reason=reason)


async def _send_error(connection: ConnectionProtocol, code: ErrorCode, message: str) -> None:
    await connection.send_message(ErrorMessage(code=code, message=message).model_dump())


async def _serve(connection: WebSocketConnection, router: MessageRouter, limits: FrameLimits) -> None:
    """Read frames until the client goes away or exhausts its decode-error strikes."""
    bucket = TokenBucket(rate=limits.messages_per_second, burst=limits.burst)
    strikes = 0
    while True:
        raw = await connection.receive_bytes()
        try:
            data = decode(raw)
        except DecodeError as e:
            strikes += 1
            logger.warning("undecodable frame", error=str(e), strikes=strikes)
            await _send_error(connection, ErrorCode.INVALID_MESSAGE, str(e))
            if strikes >= limits.max_decode_errors:
                logger.info("decode error limit reached, closing socket")
                await connection.close(code=CLOSE_TOO_MANY_DECODE_ERRORS, reason="too_many_decode_errors")
                return
            continue
        strikes = 0

        if not bucket.consume():
            logger.debug("frame dropped by rate limit", message_type=data.get("type"))
            await _send_error(connection, ErrorCode.RATE_LIMITED, "Too many messages")
            continue
        await router.handle_message(connection, data)


async def websocket_endpoint(
    websocket: WebSocket,
    router: MessageRouter,
    limits: FrameLimits | None = None,
) -> None:
    await websocket.accept()

    connection = WebSocketConnection(websocket)
    structlog.contextvars.bind_contextvars(connection_id=connection.connection_id)
    logger.info("websocket connected")
    await router.handle_connect(connection)
    try:
        await _serve(connection, router, limits or FrameLimits())
    except (WebSocketDisconnect, RuntimeError, ConnectionError):  # fmt: skip
        pass
    finally:
        # A dropped socket keeps the participant's seat for the grace period.
        await router.handle_disconnect(connection)
        logger.info("websocket disconnected")
        structlog.contextvars.clear_contextvars()
