from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from tabu.logic.enums import ErrorCode
from tabu.logic.exceptions import RoomRuleError
from tabu.messaging.types import (
    CARD_ACTION_OUTCOMES,
    CardCorrectMessage,
    CardForbiddenWordMessage,
    CardSkipMessage,
    CreateRoomMessage,
    DescriberReadyMessage,
    EndPracticeMessage,
    ErrorMessage,
    JoinRoomMessage,
    LeaveRoomMessage,
    PingMessage,
    ReconnectMessage,
    RestartGameMessage,
    RestartPracticeMessage,
    StartGameMessage,
    parse_client_message,
)

if TYPE_CHECKING:
    from tabu.messaging.protocol import ConnectionProtocol
    from tabu.messaging.types import ClientMessage
    from tabu.session.manager import SessionManager

logger = logging.getLogger(__name__)


class MessageRouter:
    """
    Routes incoming messages to the session manager.

    Every rejection ends here: a RoomRuleError becomes one error message to
    the requester and nothing is broadcast. This class contains no socket
    handling and can be tested with in-memory connections.
    """

    def __init__(self, session_manager: SessionManager) -> None:
        self._session_manager = session_manager

    async def handle_message(
        self,
        connection: ConnectionProtocol,
        raw_message: dict[str, Any],
    ) -> None:
        try:
            message = parse_client_message(raw_message)
        except (ValidationError, KeyError, TypeError, ValueError) as e:
            logger.warning("invalid message from %s: %s", connection.connection_id, e)
            await self._send_error(connection, ErrorCode.INVALID_MESSAGE, str(e))
            return

        try:
            await self._dispatch(connection, message)
        except RoomRuleError as e:
            logger.warning(
                "%s rejected for %s: %s",
                message.type,
                connection.connection_id,
                e,
            )
            await self._send_error(connection, e.code, e.message)
        except Exception:
            logger.exception("unexpected error handling %s for %s", message.type, connection.connection_id)
            await self._send_error(connection, ErrorCode.INTERNAL_ERROR, "Internal server error")

    async def _dispatch(self, connection: ConnectionProtocol, message: ClientMessage) -> None:
        manager = self._session_manager
        if isinstance(message, CreateRoomMessage):
            await manager.create_room(connection, message.name, message.mode)
        elif isinstance(message, JoinRoomMessage):
            await manager.join_room(connection, message.room_code, message.name, message.team)
        elif isinstance(message, ReconnectMessage):
            await manager.reconnect(connection, message.room_code, message.participant_id, message.name)
        elif isinstance(message, StartGameMessage):
            await manager.start_game(connection)
        elif isinstance(message, DescriberReadyMessage):
            await manager.describer_ready(connection)
        elif isinstance(message, (CardCorrectMessage, CardForbiddenWordMessage, CardSkipMessage)):
            await manager.score_card(connection, message.card_id, CARD_ACTION_OUTCOMES[message.type])
        elif isinstance(message, LeaveRoomMessage):
            await manager.leave_room(connection)
        elif isinstance(message, RestartGameMessage):
            await manager.restart_game(connection)
        elif isinstance(message, EndPracticeMessage):
            await manager.end_practice(connection)
        elif isinstance(message, RestartPracticeMessage):
            await manager.restart_practice(connection)
        elif isinstance(message, PingMessage):
            await manager.handle_ping(connection)

    async def _send_error(self, connection: ConnectionProtocol, code: ErrorCode, message: str) -> None:
        await connection.send_message(ErrorMessage(code=code, message=message).model_dump())

    async def handle_connect(self, connection: ConnectionProtocol) -> None:
        self._session_manager.register_connection(connection)

    async def handle_disconnect(self, connection: ConnectionProtocol) -> None:
        await self._session_manager.handle_disconnect(connection)
