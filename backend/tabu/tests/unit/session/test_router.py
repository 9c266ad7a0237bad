from unittest.mock import AsyncMock, patch

from tabu.logic.enums import RoomMode
from tabu.tests.unit.session.helpers import connect, create_started_game


class TestMessageRouter:
    async def test_dispatches_create_room(self, session_manager, message_router):
        connection = await connect(session_manager)

        await message_router.handle_message(connection, {"type": "create_room", "name": "Alice"})

        assert connection.last_message()["type"] == "room_created"
        assert connection.last_message()["room"]["mode"] == RoomMode.CLASSIC.value

    async def test_invalid_message_answers_with_error(self, session_manager, message_router):
        connection = await connect(session_manager)

        await message_router.handle_message(connection, {"type": "fly_to_moon"})

        message = connection.last_message()
        assert message["type"] == "error"
        assert message["code"] == "invalid_message"

    async def test_blank_name_rejected(self, session_manager, message_router):
        connection = await connect(session_manager)

        await message_router.handle_message(connection, {"type": "create_room", "name": "   "})

        assert connection.last_message()["code"] == "invalid_message"
        assert session_manager.registry.room_count == 0

    async def test_rule_error_goes_to_requester_only(self, session_manager, message_router):
        room, connections = await create_started_game(session_manager)

        await message_router.handle_message(connections["Bob"], {"type": "describer_ready"})

        assert connections["Bob"].sent_messages == [
            {"type": "error", "code": "not_your_turn", "message": "It is not your turn to describe"},
        ]
        assert connections["Alice"].sent_messages == []

    async def test_card_actions_map_to_outcomes(self, session_manager, message_router):
        room, connections = await create_started_game(session_manager)
        await message_router.handle_message(connections["Alice"], {"type": "describer_ready"})

        await message_router.handle_message(
            connections["Bob"],
            {"type": "card_forbidden_word", "card_id": room.current_card.id},
        )

        assert connections["Carol"].messages_of_type("card_scored")[0]["outcome"] == "forbidden_word"

    async def test_unexpected_error_is_reported_as_internal(self, session_manager, message_router):
        connection = await connect(session_manager)

        with patch.object(session_manager, "handle_ping", AsyncMock(side_effect=KeyError("boom"))):
            await message_router.handle_message(connection, {"type": "ping"})

        assert connection.last_message() == {
            "type": "error",
            "code": "internal_error",
            "message": "Internal server error",
        }

    async def test_connect_and_disconnect(self, session_manager, message_router, mock_connection):
        await message_router.handle_connect(mock_connection)
        assert session_manager.connection_count == 1

        await message_router.handle_disconnect(mock_connection)
        assert session_manager.connection_count == 0
