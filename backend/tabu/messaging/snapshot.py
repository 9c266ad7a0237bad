"""Per-viewer room snapshots for the wire.

The card in play is included only for participants allowed to see it, so a
snapshot is built for one viewer at a time.
"""

from typing import Annotated, Literal

from pydantic import BaseModel, Field

from tabu.cards.models import Card
from tabu.logic.classic import ClassicRoom
from tabu.logic.enums import LifecycleState, ParticipantStatus, RoomMode, TurnPhase, WinMode
from tabu.logic.practice import PracticeRoom
from tabu.logic.results import GameOverResult, PracticeStatsView
from tabu.logic.room import RoomBase
from tabu.logic.types import Room


class ParticipantView(BaseModel):
    participant_id: str
    name: str
    team: str | None
    is_host: bool
    status: ParticipantStatus
    connected: bool


class TeamView(BaseModel):
    name: str
    member_ids: list[str]
    score: int
    next_describer_id: str | None


class RulesView(BaseModel):
    min_players_per_team: int
    max_players_per_team: int
    turn_duration_seconds: int
    score_limit: int
    win_mode: WinMode


class ClassicRoomSnapshot(BaseModel):
    mode: Literal[RoomMode.CLASSIC] = RoomMode.CLASSIC
    code: str
    host_id: str | None
    lifecycle: LifecycleState
    turn_phase: TurnPhase | None
    participants: list[ParticipantView]
    teams: list[TeamView]
    active_team: str | None
    describer_id: str | None
    turn_number: int
    seconds_remaining: int
    cards_remaining: int
    card: Card | None
    rules: RulesView
    result: GameOverResult | None


class PracticeRoomSnapshot(BaseModel):
    mode: Literal[RoomMode.PRACTICE] = RoomMode.PRACTICE
    code: str
    host_id: str | None
    lifecycle: LifecycleState
    participants: list[ParticipantView]
    card: Card | None
    stats: PracticeStatsView


RoomSnapshot = Annotated[ClassicRoomSnapshot | PracticeRoomSnapshot, Field(discriminator="mode")]


def _participant_views(room: RoomBase) -> list[ParticipantView]:
    return [
        ParticipantView(
            participant_id=p.participant_id,
            name=p.name,
            team=p.team,
            is_host=p.is_host,
            status=p.status,
            connected=p.connected,
        )
        for p in sorted(room.participants.values(), key=lambda p: p.join_seq)
    ]


def _classic_snapshot(room: ClassicRoom, viewer_id: str | None) -> ClassicRoomSnapshot:
    active_team = room.active_team
    settings = room.settings
    return ClassicRoomSnapshot(
        code=room.code,
        host_id=room.host_id,
        lifecycle=room.lifecycle,
        turn_phase=room.turn_phase,
        participants=_participant_views(room),
        teams=[
            TeamView(
                name=name,
                member_ids=list(room.teams[name].member_ids),
                score=room.teams[name].score,
                next_describer_id=room.teams[name].current_describer_id,
            )
            for name in room.team_order
        ],
        active_team=active_team.name if active_team else None,
        describer_id=room.current_describer_id,
        turn_number=room.turn_number,
        seconds_remaining=room.seconds_remaining,
        cards_remaining=room.remaining_cards,
        card=room.current_card if viewer_id is not None and room.can_see_card(viewer_id) else None,
        rules=RulesView(
            min_players_per_team=settings.min_players_per_team,
            max_players_per_team=settings.max_players_per_team,
            turn_duration_seconds=settings.turn_duration_seconds,
            score_limit=settings.score_limit,
            win_mode=settings.win_mode,
        ),
        result=room.last_result,
    )


def _practice_snapshot(room: PracticeRoom) -> PracticeRoomSnapshot:
    return PracticeRoomSnapshot(
        code=room.code,
        host_id=room.host_id,
        lifecycle=room.lifecycle,
        participants=_participant_views(room),
        card=room.current_card,
        stats=room.stats_view(),
    )


def build_room_snapshot(room: Room, viewer_id: str | None = None) -> ClassicRoomSnapshot | PracticeRoomSnapshot:
    """Serialise a room as seen by ``viewer_id``."""
    if room.mode == RoomMode.CLASSIC:
        return _classic_snapshot(room, viewer_id)
    if room.mode == RoomMode.PRACTICE:
        return _practice_snapshot(room)
    raise ValueError(f"unknown room mode: {room.mode}")
