from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from tabu.logic.classic import ClassicRoom
from tabu.logic.enums import RoomMode
from tabu.tests.mocks import MockConnection

if TYPE_CHECKING:
    from collections.abc import Callable

    from tabu.session.manager import SessionManager

DEFAULT_TEAMS = ("Team A", "Team B", "Team A", "Team B")


def participant_id_of(manager: SessionManager, connection: MockConnection) -> str:
    resolved = manager.registry.resolve(connection.connection_id)
    assert resolved is not None
    return resolved[1]


async def connect(manager: SessionManager) -> MockConnection:
    connection = MockConnection()
    manager.register_connection(connection)
    return connection


async def create_lobby(
    manager: SessionManager,
    names: tuple[str, ...] = ("Alice", "Bob", "Carol", "Dave"),
    teams: tuple[str, ...] = DEFAULT_TEAMS,
) -> tuple[ClassicRoom, dict[str, MockConnection]]:
    """Create a classic room hosted by the first name and join the rest.

    The host always lands in the first team; ``teams`` gives the team of every
    other player by position.
    """
    connections: dict[str, MockConnection] = {}
    host = await connect(manager)
    await manager.create_room(host, names[0], RoomMode.CLASSIC)
    connections[names[0]] = host
    room_code = host.messages_of_type("room_created")[0]["room_code"]

    for name, team in zip(names[1:], teams[1:], strict=True):
        connection = await connect(manager)
        await manager.join_room(connection, room_code, name, team)
        connections[name] = connection

    room = manager.registry.get(room_code)
    assert isinstance(room, ClassicRoom)
    for connection in connections.values():
        connection.clear()
    return room, connections


async def create_started_game(
    manager: SessionManager,
    names: tuple[str, ...] = ("Alice", "Bob", "Carol", "Dave"),
    teams: tuple[str, ...] = DEFAULT_TEAMS,
) -> tuple[ClassicRoom, dict[str, MockConnection]]:
    """Create a lobby and start it. Team A goes first and its first member describes."""
    room, connections = await create_lobby(manager, names, teams)
    await manager.start_game(connections[names[0]])
    for connection in connections.values():
        connection.clear()
    return room, connections


async def open_turn(manager: SessionManager, room: ClassicRoom, connections: dict[str, MockConnection]) -> str:
    """Have the current describer signal ready. Returns the describer's name."""
    describer = room.participants[room.current_describer_id]
    await manager.describer_ready(connections[describer.name])
    return describer.name


async def wait_until(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
    """Poll until ``predicate`` holds; fails the test with TimeoutError otherwise."""
    async with asyncio.timeout(timeout):
        while not predicate():
            await asyncio.sleep(0.005)
