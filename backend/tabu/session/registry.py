"""Room registry: code issuance, lookup, connection binding and the expiry sweep."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import secrets
import time
from typing import TYPE_CHECKING

from tabu.logic.classic import ClassicRoom
from tabu.logic.enums import ErrorCode
from tabu.logic.exceptions import CapacityError
from tabu.logic.practice import PracticeRoom

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from tabu.logic.settings import RoomSettings
    from tabu.logic.types import Room

logger = logging.getLogger(__name__)

DEFAULT_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"  # no I, O, 0 or 1
_MAX_CODE_ATTEMPTS = 100


class RoomRegistry:
    """Own every live room in the process.

    Constructed at process start and handed to the session layer by reference.
    Besides rooms it keeps the connection binding (connection_id -> room code
    and participant id) so an inbound action can be resolved to its room.
    The sweep only deletes rooms that are empty or past the inactivity
    timeout; it never mutates a live room.
    """

    def __init__(
        self,
        *,
        code_length: int = 6,
        code_alphabet: str = DEFAULT_CODE_ALPHABET,
        max_rooms: int = 500,
        expiry_seconds: float = 3600,
        sweep_interval_seconds: float = 300,
        on_room_removed: Callable[[Room, str], Awaitable[None]] | None = None,
    ) -> None:
        self._code_length = code_length
        self._code_alphabet = code_alphabet
        self._max_rooms = max_rooms
        self._expiry_seconds = expiry_seconds
        self._sweep_interval_seconds = sweep_interval_seconds
        self._on_room_removed = on_room_removed
        self._rooms: dict[str, Room] = {}  # code -> Room
        self._bindings: dict[str, tuple[str, str]] = {}  # connection_id -> (code, participant_id)
        self._sweep_task: asyncio.Task[None] | None = None

    def set_on_room_removed(self, callback: Callable[[Room, str], Awaitable[None]]) -> None:
        self._on_room_removed = callback

    @property
    def room_count(self) -> int:
        return len(self._rooms)

    @property
    def max_rooms(self) -> int:
        return self._max_rooms

    def rooms(self) -> list[Room]:
        return list(self._rooms.values())

    # --- rooms ---

    def generate_code(self) -> str:
        """Return a code not used by any live room."""
        for _ in range(_MAX_CODE_ATTEMPTS):
            code = "".join(secrets.choice(self._code_alphabet) for _ in range(self._code_length))
            if code not in self._rooms:
                return code
        raise CapacityError(ErrorCode.SERVER_FULL, "Could not allocate a room code")

    def _check_capacity(self) -> None:
        if len(self._rooms) >= self._max_rooms:
            raise CapacityError(ErrorCode.SERVER_FULL, "The server has reached its room limit")

    def create_classic_room(self, settings: RoomSettings) -> ClassicRoom:
        self._check_capacity()
        room = ClassicRoom(code=self.generate_code(), settings=settings)
        self._rooms[room.code] = room
        logger.info("room %s created, mode=%s", room.code, room.mode)
        return room

    def create_practice_room(self, settings: RoomSettings) -> PracticeRoom:
        self._check_capacity()
        room = PracticeRoom(code=self.generate_code(), settings=settings)
        self._rooms[room.code] = room
        logger.info("room %s created, mode=%s", room.code, room.mode)
        return room

    def get(self, code: str) -> Room | None:
        """Case-insensitive lookup."""
        return self._rooms.get(code.strip().upper())

    def remove(self, code: str) -> Room | None:
        room = self._rooms.pop(code, None)
        if room is None:
            return None
        for connection_id in [cid for cid, (c, _) in self._bindings.items() if c == code]:
            del self._bindings[connection_id]
        logger.info("room %s destroyed", code)
        return room

    # --- connection bindings ---

    def bind(self, connection_id: str, code: str, participant_id: str) -> None:
        self._bindings[connection_id] = (code, participant_id)

    def unbind(self, connection_id: str) -> tuple[str, str] | None:
        return self._bindings.pop(connection_id, None)

    def resolve(self, connection_id: str) -> tuple[Room, str] | None:
        """Return (room, participant_id) bound to a connection, or None."""
        binding = self._bindings.get(connection_id)
        if binding is None:
            return None
        code, participant_id = binding
        room = self._rooms.get(code)
        if room is None or participant_id not in room.participants:
            self._bindings.pop(connection_id, None)
            return None
        return room, participant_id

    # --- sweep ---

    def start_sweep(self) -> None:
        """Start the periodic sweep task. Idempotent."""
        if self._sweep_interval_seconds <= 0:
            return
        if self._sweep_task is not None and not self._sweep_task.done():
            return
        self._sweep_task = asyncio.create_task(self._sweep_loop())

    async def stop_sweep(self) -> None:
        if self._sweep_task is not None:
            self._sweep_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._sweep_task
            self._sweep_task = None

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self._sweep_interval_seconds)
            try:
                await self.sweep()
            except Exception:
                logger.exception("room sweep encountered an error")

    async def sweep(self, now: float | None = None) -> list[str]:
        """Destroy empty and inactivity-expired rooms. Returns the removed codes."""
        now = time.monotonic() if now is None else now
        removed = []
        for room in list(self._rooms.values()):
            if room.is_empty:
                reason = "empty"
            elif room.is_expired(now, self._expiry_seconds):
                reason = "expired"
            else:
                continue
            logger.info(
                "room %s swept (%s, idle %.0fs)",
                room.code,
                reason,
                now - room.last_activity_at,
            )
            await self.destroy(room.code, reason)
            removed.append(room.code)
        return removed

    async def destroy(self, code: str, reason: str) -> None:
        room = self.remove(code)
        if room is not None and self._on_room_removed is not None:
            await self._on_room_removed(room, reason)

    async def shutdown(self) -> None:
        """Stop the sweep and destroy every room."""
        await self.stop_sweep()
        for code in list(self._rooms):
            await self.destroy(code, "shutdown")
