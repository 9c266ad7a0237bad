"""Per-room countdown and inter-turn pause tasks."""

import asyncio
import logging
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

# Callback types, all keyed by room code.
TickCallback = Callable[[str], Awaitable[int | None]]  # seconds left, None once the turn is gone
ExpireCallback = Callable[[str], Awaitable[None]]
PauseCallback = Callable[[], Awaitable[None]]


class TurnOrchestrator:
    """Own every deferred execution a room can have.

    Each room holds at most one countdown task (armed while a turn is active)
    and at most one pause task (armed between a turn close and the next turn
    announcement). Arming replaces any previous task of the same kind and
    ``cleanup_room`` cancels both, so a restarted or destroyed room can never
    receive a callback armed for an earlier phase.

    This class does not read room state. The caller (SessionManager) decides
    when to arm and disarm and applies the room transitions in its callbacks.
    """

    def __init__(
        self,
        on_tick: TickCallback,
        on_expire: ExpireCallback,
        *,
        tick_interval: float = 1.0,
    ) -> None:
        self._on_tick = on_tick
        self._on_expire = on_expire
        self._tick_interval = tick_interval
        self._countdowns: dict[str, asyncio.Task[None]] = {}  # room_code -> countdown task
        self._pauses: dict[str, asyncio.Task[None]] = {}  # room_code -> pause task

    def has_countdown(self, room_code: str) -> bool:
        task = self._countdowns.get(room_code)
        return task is not None and not task.done()

    def has_pause(self, room_code: str) -> bool:
        task = self._pauses.get(room_code)
        return task is not None and not task.done()

    def arm_countdown(self, room_code: str) -> None:
        """Start ticking for the room, replacing any countdown already running."""
        self.disarm_countdown(room_code)
        self._countdowns[room_code] = asyncio.create_task(self._run_countdown(room_code))

    def disarm_countdown(self, room_code: str) -> None:
        task = self._countdowns.pop(room_code, None)
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    def schedule_pause(self, room_code: str, delay: float, callback: PauseCallback) -> None:
        """Run ``callback`` once after ``delay`` seconds, replacing any pending pause."""
        self.cancel_pause(room_code)
        self._pauses[room_code] = asyncio.create_task(self._run_pause(room_code, delay, callback))

    def cancel_pause(self, room_code: str) -> None:
        task = self._pauses.pop(room_code, None)
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    def cleanup_room(self, room_code: str) -> None:
        """Cancel both tasks for a room (restart or teardown)."""
        self.disarm_countdown(room_code)
        self.cancel_pause(room_code)

    def cancel_all(self) -> None:
        for room_code in list(self._countdowns) + list(self._pauses):
            self.cleanup_room(room_code)

    async def _run_countdown(self, room_code: str) -> None:
        try:
            while True:
                await asyncio.sleep(self._tick_interval)
                remaining = await self._on_tick(room_code)
                if remaining is None:
                    return
                if remaining <= 0:
                    break
            # Detach before expiring so the close cannot disarm this task mid-callback.
            if self._countdowns.get(room_code) is asyncio.current_task():
                del self._countdowns[room_code]
            await self._on_expire(room_code)
        except asyncio.CancelledError:
            pass
        except (RuntimeError, OSError, ConnectionError, ValueError):  # fmt: skip
            logger.exception("countdown callback failed for room %s", room_code)

    async def _run_pause(self, room_code: str, delay: float, callback: PauseCallback) -> None:
        try:
            await asyncio.sleep(delay)
            if self._pauses.get(room_code) is asyncio.current_task():
                del self._pauses[room_code]
            await callback()
        except asyncio.CancelledError:
            pass
        except (RuntimeError, OSError, ConnectionError, ValueError):  # fmt: skip
            logger.exception("pause callback failed for room %s", room_code)
