"""Reconnect grace period timers for departed participants."""

import asyncio
import logging
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

# Callback type: (room_code, participant_id) -> Awaitable[None]
GraceExpiredCallback = Callable[[str, str], Awaitable[None]]


class GraceTimers:
    """One grace task per disconnected participant.

    Reconnecting cancels the task; if it fires first the departure is final
    and ``on_expire`` removes the participant record.
    """

    def __init__(self, on_expire: GraceExpiredCallback, *, grace_seconds: float = 60.0) -> None:
        self._on_expire = on_expire
        self._grace_seconds = grace_seconds
        self._tasks: dict[tuple[str, str], asyncio.Task[None]] = {}  # (room_code, participant_id) -> task

    def __len__(self) -> int:
        return len(self._tasks)

    def is_pending(self, room_code: str, participant_id: str) -> bool:
        task = self._tasks.get((room_code, participant_id))
        return task is not None and not task.done()

    def start(self, room_code: str, participant_id: str) -> None:
        key = (room_code, participant_id)
        self.cancel(room_code, participant_id)
        self._tasks[key] = asyncio.create_task(self._run(key))

    def cancel(self, room_code: str, participant_id: str) -> bool:
        """Cancel a pending grace timer. Returns True if one was pending."""
        task = self._tasks.pop((room_code, participant_id), None)
        if task is None or task.done():
            return False
        if task is not asyncio.current_task():
            task.cancel()
        return True

    def cancel_room(self, room_code: str) -> None:
        for code, participant_id in [key for key in self._tasks if key[0] == room_code]:
            self.cancel(code, participant_id)

    def cancel_all(self) -> None:
        for code, participant_id in list(self._tasks):
            self.cancel(code, participant_id)

    async def _run(self, key: tuple[str, str]) -> None:
        try:
            await asyncio.sleep(self._grace_seconds)
            if self._tasks.get(key) is asyncio.current_task():
                del self._tasks[key]
            await self._on_expire(*key)
        except asyncio.CancelledError:
            pass
        except (RuntimeError, OSError, ConnectionError, ValueError):  # fmt: skip
            logger.exception("grace expiry failed for participant %s in room %s", key[1], key[0])
