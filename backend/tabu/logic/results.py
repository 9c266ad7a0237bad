"""Values returned by room transitions.

Transitions mutate the room and hand back one of these frozen snapshots so
the session layer can broadcast without reading room internals.
"""

from pydantic import BaseModel, ConfigDict

from tabu.cards.models import Card
from tabu.logic.enums import CardOutcome, GameEndReason, TurnCloseReason


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class TurnInfo(_Frozen):
    active_team: str
    describer_id: str | None
    describer_name: str | None
    turn_number: int


class PlayerStatsEntry(_Frozen):
    participant_id: str
    name: str
    team: str | None
    described: int
    guessed: int


class GameOverResult(_Frozen):
    reason: GameEndReason
    winner: str | None  # None on a tie
    is_tie: bool
    final_scores: dict[str, int]
    player_stats: list[PlayerStatsEntry]


class DescriberReadyResult(_Frozen):
    turn: TurnInfo
    card: Card | None
    seconds_remaining: int
    game_over: GameOverResult | None = None


class ScoreResult(_Frozen):
    card_id: str
    outcome: CardOutcome
    scores: dict[str, int]
    next_card: Card | None
    game_over: GameOverResult | None = None


class ActivatedSpectator(_Frozen):
    participant_id: str
    name: str
    team: str


class TurnCloseResult(_Frozen):
    reason: TurnCloseReason
    discarded_card_id: str | None
    scores: dict[str, int]
    next_turn: TurnInfo
    activated: list[ActivatedSpectator]
    game_over: GameOverResult | None = None


class PracticeStatsView(_Frozen):
    cards_viewed: int
    cards_correct: int
    cards_skipped: int


class PracticeDraw(_Frozen):
    card: Card | None
    stats: PracticeStatsView
