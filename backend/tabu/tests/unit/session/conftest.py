import pytest

from tabu.logic.settings import RoomSettings
from tabu.session.manager import SessionManager
from tabu.session.registry import RoomRegistry


@pytest.fixture
async def fast_manager(pool):
    """Session manager with real timers shortened to milliseconds."""
    manager = SessionManager(
        RoomRegistry(sweep_interval_seconds=0),
        pool,
        RoomSettings(turn_duration_seconds=3, turn_end_pause_seconds=0.05),
        reconnect_grace_seconds=0.05,
        tick_interval=0.01,
    )
    yield manager
    await manager.shutdown()
