from __future__ import annotations

import asyncio
import contextlib
from functools import partial
from typing import TYPE_CHECKING, Any

import structlog

from tabu.logic.classic import ClassicRoom
from tabu.logic.enums import (
    CardOutcome,
    ErrorCode,
    RoomMode,
    TurnCloseReason,
    TurnPhase,
)
from tabu.logic.exceptions import AuthorizationError, CapacityError
from tabu.logic.practice import PracticeRoom
from tabu.messaging.snapshot import build_room_snapshot
from tabu.messaging.types import (
    CardRevealedMessage,
    CardScoredMessage,
    DeckLowMessage,
    DeckReplenishedMessage,
    GameOverMessage,
    GameStartedMessage,
    HostChangedMessage,
    PongMessage,
    PracticeCardMessage,
    PracticeEndedMessage,
    PracticeStartedMessage,
    ReconnectFailedMessage,
    ReconnectSucceededMessage,
    RoomCreatedMessage,
    RoomJoinedMessage,
    RoomLeftMessage,
    RoomUpdatedMessage,
    SpectatorActivatedMessage,
    SpectatorJoinedMessage,
    TimerTickMessage,
    TurnEndedMessage,
    TurnStartedMessage,
)
from tabu.session.broadcast import send_to_connections
from tabu.session.grace import GraceTimers
from tabu.session.orchestrator import TurnOrchestrator

if TYPE_CHECKING:
    from tabu.cards.models import Card
    from tabu.cards.pool import CardPool
    from tabu.logic.results import GameOverResult, TurnCloseResult, TurnInfo
    from tabu.logic.settings import RoomSettings
    from tabu.logic.state import Participant
    from tabu.logic.types import Room
    from tabu.messaging.protocol import ConnectionProtocol
    from tabu.session.registry import RoomRegistry

logger = structlog.get_logger()


class SessionManager:
    """Glue between connections and rooms.

    Resolves each inbound action to its (room, participant), applies the room
    transition under the room's lock, broadcasts the result and arms or
    disarms the per-room timers. Room transitions raise RoomRuleError on
    rejection; those propagate to the router, which answers the requester.
    """

    def __init__(
        self,
        registry: RoomRegistry,
        pool: CardPool,
        room_settings: RoomSettings,
        *,
        reconnect_grace_seconds: float = 60.0,
        tick_interval: float = 1.0,
    ) -> None:
        self._registry = registry
        self._pool = pool
        self._room_settings = room_settings
        self._connections: dict[str, ConnectionProtocol] = {}
        self._room_locks: dict[str, asyncio.Lock] = {}  # room_code -> Lock
        self._orchestrator = TurnOrchestrator(
            on_tick=self._on_tick,
            on_expire=self._on_countdown_expired,
            tick_interval=tick_interval,
        )
        self._grace = GraceTimers(on_expire=self._on_grace_expired, grace_seconds=reconnect_grace_seconds)
        registry.set_on_room_removed(self._on_room_removed)

    @property
    def registry(self) -> RoomRegistry:
        return self._registry

    @property
    def pool(self) -> CardPool:
        return self._pool

    @property
    def orchestrator(self) -> TurnOrchestrator:
        return self._orchestrator

    @property
    def grace_timers(self) -> GraceTimers:
        return self._grace

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    def register_connection(self, connection: ConnectionProtocol) -> None:
        self._connections[connection.connection_id] = connection

    def unregister_connection(self, connection: ConnectionProtocol) -> None:
        self._connections.pop(connection.connection_id, None)

    def start(self) -> None:
        self._registry.start_sweep()

    async def shutdown(self) -> None:
        """Cancel every timer, stop replenishment and destroy all rooms."""
        self._orchestrator.cancel_all()
        self._grace.cancel_all()
        await self._pool.aclose()
        await self._registry.shutdown()

    # --- room membership ---

    async def create_room(self, connection: ConnectionProtocol, name: str, mode: RoomMode) -> None:
        self._require_unbound(connection)
        if mode == RoomMode.PRACTICE:
            await self._create_practice_room(connection, name)
        else:
            await self._create_classic_room(connection, name)

    async def _create_classic_room(self, connection: ConnectionProtocol, name: str) -> None:
        room = self._registry.create_classic_room(self._room_settings)
        participant = room.add_participant(
            name,
            connection.connection_id,
            self._room_settings.team_names[0],
            is_host=True,
        )
        self._registry.bind(connection.connection_id, room.code, participant.participant_id)
        structlog.contextvars.bind_contextvars(room_code=room.code)
        logger.info("classic room created", participant_id=participant.participant_id)
        await connection.send_message(
            RoomCreatedMessage(
                room_code=room.code,
                participant_id=participant.participant_id,
                room=build_room_snapshot(room, participant.participant_id),
            ).model_dump(),
        )

    async def _create_practice_room(self, connection: ConnectionProtocol, name: str) -> None:
        deck = self._pool.shuffled_deck()
        if not deck:
            raise CapacityError(ErrorCode.DECK_EMPTY, "No cards are available")
        room = self._registry.create_practice_room(self._room_settings)
        participant = room.add_owner(name, connection.connection_id)
        draw = room.start(deck)
        self._registry.bind(connection.connection_id, room.code, participant.participant_id)
        structlog.contextvars.bind_contextvars(room_code=room.code)
        logger.info("practice room created", participant_id=participant.participant_id)
        await connection.send_message(
            RoomCreatedMessage(
                room_code=room.code,
                participant_id=participant.participant_id,
                room=build_room_snapshot(room, participant.participant_id),
            ).model_dump(),
        )
        await connection.send_message(PracticeStartedMessage(card=draw.card, stats=draw.stats).model_dump())

    async def join_room(self, connection: ConnectionProtocol, room_code: str, name: str, team: str) -> None:
        self._require_unbound(connection)
        room = self._registry.get(room_code)
        if room is None:
            raise CapacityError(ErrorCode.ROOM_NOT_FOUND, "Room does not exist")
        if room.mode != RoomMode.CLASSIC:
            raise CapacityError(ErrorCode.ROOM_IS_PRACTICE, "Practice rooms cannot be joined")

        async with self._lock_for(room.code):
            if self._registry.get(room.code) is not room:
                raise CapacityError(ErrorCode.ROOM_NOT_FOUND, "Room does not exist")
            participant = room.add_participant(name, connection.connection_id, team)
            self._registry.bind(connection.connection_id, room.code, participant.participant_id)
            structlog.contextvars.bind_contextvars(room_code=room.code)
            logger.info(
                "participant joined",
                participant_id=participant.participant_id,
                team=team,
                spectating=participant.is_spectating,
            )

            await connection.send_message(
                RoomJoinedMessage(
                    room_code=room.code,
                    participant_id=participant.participant_id,
                    room=build_room_snapshot(room, participant.participant_id),
                ).model_dump(),
            )
            if participant.is_spectating:
                await self._broadcast(
                    room,
                    SpectatorJoinedMessage(
                        participant_id=participant.participant_id,
                        name=participant.name,
                        team=team,
                    ).model_dump(),
                )
            await self._announce_host_if_changed(room, room.restore_host_if_absent())
            await self._broadcast_room_update(room, exclude_id=participant.participant_id)

    async def reconnect(
        self,
        connection: ConnectionProtocol,
        room_code: str,
        participant_id: str,
        name: str,
    ) -> None:
        """Rebind a durable participant id to a new connection.

        After the grace period the record is gone and the client is told to
        join afresh; the server is authoritative on whether the id is valid.
        """
        self._require_unbound(connection)
        room = self._registry.get(room_code)
        if room is None:
            await self._send_reconnect_failed(connection, ErrorCode.ROOM_NOT_FOUND, "Room no longer exists")
            return

        stale_connection: ConnectionProtocol | None = None
        try:
            async with self._lock_for(room.code):
                participant = room.participants.get(participant_id)
                if self._registry.get(room.code) is not room or participant is None:
                    await self._send_reconnect_failed(
                        connection,
                        ErrorCode.PLAYER_NOT_FOUND,
                        "Your seat in this room has expired",
                    )
                    return

                if participant.connection_id is not None:
                    # Same identity opened a second socket; the newer one wins.
                    self._registry.unbind(participant.connection_id)
                    stale_connection = self._connections.get(participant.connection_id)

                self._grace.cancel(room.code, participant_id)
                room.reconnect_participant(participant_id, connection.connection_id)
                new_host = room.reclaim_host(participant_id) or room.restore_host_if_absent()
                self._registry.bind(connection.connection_id, room.code, participant_id)
                structlog.contextvars.bind_contextvars(room_code=room.code)
                logger.info("participant reconnected", participant_id=participant_id, name=name)

                await connection.send_message(
                    ReconnectSucceededMessage(
                        room_code=room.code,
                        participant_id=participant_id,
                        room=build_room_snapshot(room, participant_id),
                    ).model_dump(),
                )
                if room.mode == RoomMode.CLASSIC and room.can_see_card(participant_id):
                    await connection.send_message(CardRevealedMessage(card=room.current_card).model_dump())
                await self._announce_host_if_changed(room, new_host)
                await self._broadcast_room_update(room, exclude_id=participant_id)
        finally:
            if stale_connection is not None:
                with contextlib.suppress(RuntimeError, OSError, ConnectionError):
                    await stale_connection.close(code=1000, reason="replaced_by_reconnect")

    async def leave_room(self, connection: ConnectionProtocol) -> None:
        """Explicit departure: final, no grace period."""
        room, participant_id = self._resolve(connection)
        async with self._lock_for(room.code):
            self._registry.unbind(connection.connection_id)
            if participant_id in room.participants:
                logger.info("participant left", participant_id=participant_id)
                await self._remove_participant(room, participant_id)
        with contextlib.suppress(RuntimeError, OSError):
            await connection.send_message(RoomLeftMessage().model_dump())

    async def handle_disconnect(self, connection: ConnectionProtocol) -> None:
        """Dropped socket: keep the record and start the reconnect grace period."""
        resolved = self._registry.resolve(connection.connection_id)
        if resolved is None:
            self.unregister_connection(connection)
            return

        room, participant_id = resolved
        async with self._lock_for(room.code):
            self._registry.unbind(connection.connection_id)
            participant = room.participants.get(participant_id)
            if participant is None or participant.connection_id != connection.connection_id:
                self.unregister_connection(connection)
                return

            room.mark_disconnected(participant_id)
            self._grace.start(room.code, participant_id)
            logger.info("participant disconnected, grace period started", participant_id=participant_id)

            if room.mode == RoomMode.CLASSIC:
                await self._handle_classic_absence(room, participant_id)
            if participant.is_host:
                await self._announce_host_if_changed(room, room.suspend_host(participant_id))
            await self._broadcast_room_update(room)
        self.unregister_connection(connection)

    # --- classic game flow ---

    async def start_game(self, connection: ConnectionProtocol) -> None:
        room, participant_id = self._resolve(connection)
        classic = self._require_classic(room)
        async with self._lock_for(room.code):
            turn = classic.start(participant_id, self._pool.shuffled_deck())
            await self._broadcast(
                classic,
                GameStartedMessage(
                    team_order=list(classic.team_order),
                    scores=classic.scores(),
                    deck_size=len(classic.deck),
                ).model_dump(),
            )
            await self._announce_turn(classic, turn)
            await self._broadcast_room_update(classic)

    async def describer_ready(self, connection: ConnectionProtocol) -> None:
        room, participant_id = self._resolve(connection)
        classic = self._require_classic(room)
        async with self._lock_for(room.code):
            result = classic.describer_ready(participant_id)
            if result.game_over is not None:
                await self._finish_game(classic, result.game_over)
                return

            self._orchestrator.arm_countdown(classic.code)
            await self._reveal_card(classic, result.card)
            await self._broadcast(classic, TimerTickMessage(seconds_remaining=result.seconds_remaining).model_dump())
            await self._broadcast_room_update(classic)

    async def score_card(self, connection: ConnectionProtocol, card_id: str, outcome: CardOutcome) -> None:
        room, participant_id = self._resolve(connection)
        async with self._lock_for(room.code):
            if room.mode == RoomMode.PRACTICE:
                draw = room.play_card(participant_id, card_id, outcome)
                await connection.send_message(PracticeCardMessage(card=draw.card, stats=draw.stats).model_dump())
                return

            result = room.score_card(participant_id, card_id, outcome)
            await self._broadcast(
                room,
                CardScoredMessage(
                    card_id=result.card_id,
                    outcome=result.outcome,
                    scores=result.scores,
                    by=room.participants[participant_id].name,
                ).model_dump(),
            )
            if result.game_over is not None:
                await self._finish_game(room, result.game_over)
            else:
                await self._reveal_card(room, result.next_card)
        await self._check_deck(room)

    async def restart_game(self, connection: ConnectionProtocol) -> None:
        room, participant_id = self._resolve(connection)
        classic = self._require_classic(room)
        async with self._lock_for(room.code):
            classic.restart(participant_id)
            self._orchestrator.cleanup_room(classic.code)
            await self._broadcast_room_update(classic)

    # --- practice flow ---

    async def end_practice(self, connection: ConnectionProtocol) -> None:
        room, participant_id = self._resolve(connection)
        practice = self._require_practice(room)
        async with self._lock_for(room.code):
            stats = practice.end(participant_id)
            await connection.send_message(PracticeEndedMessage(stats=stats).model_dump())

    async def restart_practice(self, connection: ConnectionProtocol) -> None:
        room, participant_id = self._resolve(connection)
        practice = self._require_practice(room)
        async with self._lock_for(room.code):
            draw = practice.restart(participant_id, self._pool.shuffled_deck())
            await connection.send_message(PracticeStartedMessage(card=draw.card, stats=draw.stats).model_dump())

    async def handle_ping(self, connection: ConnectionProtocol) -> None:
        """Respond to client ping with pong and refresh the room's activity clock."""
        resolved = self._registry.resolve(connection.connection_id)
        if resolved is not None:
            resolved[0].touch()
        await connection.send_message(PongMessage().model_dump())

    # --- timer callbacks ---

    async def _on_tick(self, room_code: str) -> int | None:
        room = self._registry.get(room_code)
        if room is None or room.mode != RoomMode.CLASSIC:
            return None
        async with self._lock_for(room_code):
            if not room.is_playing or room.turn_phase != TurnPhase.TURN_ACTIVE:
                return None
            remaining = room.tick()
            await self._broadcast(room, TimerTickMessage(seconds_remaining=remaining).model_dump())
            return remaining

    async def _on_countdown_expired(self, room_code: str) -> None:
        room = self._registry.get(room_code)
        if room is None or room.mode != RoomMode.CLASSIC:
            return
        async with self._lock_for(room_code):
            if not room.is_playing or room.turn_phase != TurnPhase.TURN_ACTIVE:
                return
            result = room.close_turn(TurnCloseReason.TIMEOUT)
            await self._after_turn_close(room, result)

    async def _on_pause_elapsed(self, room: ClassicRoom) -> None:
        """Announce the next turn, unless the room moved on during the pause."""
        if self._registry.get(room.code) is not room:
            return
        async with self._lock_for(room.code):
            if not room.is_playing or room.turn_phase != TurnPhase.TURN_ENDED:
                return
            turn = room.begin_next_turn()
            await self._announce_turn(room, turn)
            await self._broadcast_room_update(room)

    async def _on_grace_expired(self, room_code: str, participant_id: str) -> None:
        room = self._registry.get(room_code)
        if room is None:
            return
        async with self._lock_for(room.code):
            participant = room.participants.get(participant_id)
            if participant is None or participant.connected:
                return
            logger.info("grace period elapsed, participant removed", room_code=room_code, participant_id=participant_id)
            await self._remove_participant(room, participant_id)

    async def _on_room_removed(self, room: Room, reason: str) -> None:
        self._orchestrator.cleanup_room(room.code)
        self._grace.cancel_room(room.code)
        self._room_locks.pop(room.code, None)
        logger.info("room torn down", room_code=room.code, reason=reason)
        connection_ids = [p.connection_id for p in room.participants.values()]
        await send_to_connections(self._connections, connection_ids, RoomLeftMessage().model_dump())

    async def _on_deck_replenished(self, room_code: str, total: int) -> None:
        room = self._registry.get(room_code)
        if room is not None:
            await self._broadcast(room, DeckReplenishedMessage(total=total).model_dump())

    # --- internal helpers ---

    def _lock_for(self, room_code: str) -> asyncio.Lock:
        lock = self._room_locks.get(room_code)
        if lock is None:
            lock = self._room_locks[room_code] = asyncio.Lock()
        return lock

    def _require_unbound(self, connection: ConnectionProtocol) -> None:
        if self._registry.resolve(connection.connection_id) is not None:
            raise AuthorizationError(ErrorCode.ALREADY_IN_ROOM, "You must leave your current room first")

    def _resolve(self, connection: ConnectionProtocol) -> tuple[Room, str]:
        resolved = self._registry.resolve(connection.connection_id)
        if resolved is None:
            raise AuthorizationError(ErrorCode.NOT_IN_ROOM, "You must join a room first")
        room, participant_id = resolved
        structlog.contextvars.bind_contextvars(room_code=room.code)
        return room, participant_id

    @staticmethod
    def _require_classic(room: Room) -> ClassicRoom:
        if room.mode != RoomMode.CLASSIC:
            raise AuthorizationError(ErrorCode.WRONG_MODE, "Not available in practice mode")
        return room

    @staticmethod
    def _require_practice(room: Room) -> PracticeRoom:
        if room.mode != RoomMode.PRACTICE:
            raise AuthorizationError(ErrorCode.WRONG_MODE, "Only available in practice mode")
        return room

    async def _remove_participant(self, room: Room, participant_id: str) -> None:
        """Final removal of a participant record. Caller holds the room lock."""
        participant = room.participants[participant_id]
        was_host = participant.is_host
        if room.mode == RoomMode.CLASSIC:
            await self._close_turn_if_describer(room, participant_id)

        room.remove_participant(participant_id)
        self._grace.cancel(room.code, participant_id)
        if participant.connection_id is not None:
            self._registry.unbind(participant.connection_id)

        if room.is_empty:
            await self._registry.destroy(room.code, "empty")
            return

        if room.mode == RoomMode.CLASSIC:
            game_over = room.conclude_if_team_empty()
            if game_over is not None:
                await self._finish_game(room, game_over)
            elif room.skip_absent_describer():
                await self._announce_turn(room, room.turn_info())
        if was_host:
            await self._announce_host_if_changed(room, room.delegate_host(participant_id))
        await self._broadcast_room_update(room)

    async def _handle_classic_absence(self, room: ClassicRoom, participant_id: str) -> None:
        """React to the describer going away: close an active turn or pass the cue on."""
        if await self._close_turn_if_describer(room, participant_id):
            return
        if room.turn_phase == TurnPhase.AWAITING_DESCRIBER and room.skip_absent_describer():
            await self._announce_turn(room, room.turn_info())

    async def _close_turn_if_describer(self, room: ClassicRoom, participant_id: str) -> bool:
        if not room.is_playing or room.turn_phase != TurnPhase.TURN_ACTIVE:
            return False
        if room.current_describer_id != participant_id:
            return False
        self._orchestrator.disarm_countdown(room.code)
        result = room.close_turn(TurnCloseReason.DESCRIBER_LEFT)
        await self._after_turn_close(room, result)
        return True

    async def _after_turn_close(self, room: ClassicRoom, result: TurnCloseResult) -> None:
        await self._broadcast(
            room,
            TurnEndedMessage(
                reason=result.reason,
                scores=result.scores,
                next_team=result.next_turn.active_team,
                next_describer_id=result.next_turn.describer_id,
                next_describer_name=result.next_turn.describer_name,
            ).model_dump(),
        )
        if result.activated:
            await self._broadcast(room, SpectatorActivatedMessage(participants=result.activated).model_dump())
        if result.game_over is not None:
            await self._finish_game(room, result.game_over)
            return
        self._orchestrator.schedule_pause(
            room.code,
            room.settings.turn_end_pause_seconds,
            partial(self._on_pause_elapsed, room),
        )
        await self._broadcast_room_update(room)

    async def _finish_game(self, room: ClassicRoom, result: GameOverResult) -> None:
        self._orchestrator.cleanup_room(room.code)
        await self._broadcast(room, GameOverMessage(**result.model_dump()).model_dump())
        await self._broadcast_room_update(room)

    async def _announce_turn(self, room: ClassicRoom, turn: TurnInfo) -> None:
        await self._broadcast(
            room,
            TurnStartedMessage(
                active_team=turn.active_team,
                describer_id=turn.describer_id,
                describer_name=turn.describer_name,
                turn_number=turn.turn_number,
                seconds_remaining=room.settings.turn_duration_seconds,
            ).model_dump(),
        )

    async def _reveal_card(self, room: ClassicRoom, card: Card | None) -> None:
        """Send the card body to the describer and buzzers only."""
        if card is None:
            return
        connection_ids = [room.participants[pid].connection_id for pid in room.card_recipient_ids()]
        await send_to_connections(self._connections, connection_ids, CardRevealedMessage(card=card).model_dump())

    async def _check_deck(self, room: Room) -> None:
        """Low-watermark check after a scoring event; never waits for the provider."""
        on_replenished = partial(self._on_deck_replenished, room.code)
        if self._pool.check_and_replenish(on_replenished):
            await self._broadcast(room, DeckLowMessage(pool_size=self._pool.count).model_dump())

    async def _announce_host_if_changed(self, room: Room, new_host: Participant | None) -> None:
        if new_host is None:
            return
        logger.info("host changed", room_code=room.code, host_id=new_host.participant_id)
        await self._broadcast(
            room,
            HostChangedMessage(host_id=new_host.participant_id, host_name=new_host.name).model_dump(),
        )

    async def _broadcast(self, room: Room, message: dict[str, Any]) -> None:
        connection_ids = [p.connection_id for p in room.participants.values()]
        await send_to_connections(self._connections, connection_ids, message)

    async def _broadcast_room_update(self, room: Room, exclude_id: str | None = None) -> None:
        """Send each connected participant a snapshot built for them."""
        for participant in list(room.participants.values()):
            if participant.participant_id == exclude_id or participant.connection_id is None:
                continue
            message = RoomUpdatedMessage(room=build_room_snapshot(room, participant.participant_id)).model_dump()
            await send_to_connections(self._connections, [participant.connection_id], message)

    async def _send_reconnect_failed(self, connection: ConnectionProtocol, code: ErrorCode, message: str) -> None:
        logger.warning("reconnect rejected", error_code=code.value, error_message=message)
        await connection.send_message(ReconnectFailedMessage(code=code, message=message).model_dump())
