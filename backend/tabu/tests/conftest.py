import random

import pytest

from tabu.cards.pool import CardPool
from tabu.logic.settings import RoomSettings
from tabu.messaging.router import MessageRouter
from tabu.server.settings import GameServerSettings
from tabu.session.manager import SessionManager
from tabu.session.registry import RoomRegistry
from tabu.tests.helpers.factories import make_deck
from tabu.tests.mocks import MockConnection


@pytest.fixture
def room_settings():
    # Long pause so tests drive the turn boundary explicitly.
    return RoomSettings(turn_end_pause_seconds=30.0)


@pytest.fixture
def pool():
    return CardPool(make_deck(40), low_watermark=5, rng=random.Random(1234))


@pytest.fixture
def registry():
    return RoomRegistry(sweep_interval_seconds=0)


@pytest.fixture
async def session_manager(registry, pool, room_settings):
    manager = SessionManager(registry, pool, room_settings, reconnect_grace_seconds=30.0)
    yield manager
    await manager.shutdown()


@pytest.fixture
def message_router(session_manager):
    return MessageRouter(session_manager)


@pytest.fixture
def mock_connection():
    return MockConnection()


@pytest.fixture
def server_settings(tmp_path):
    return GameServerSettings(seed_cards_path=str(tmp_path / "missing.json"), cors_origins=["http://test"])

