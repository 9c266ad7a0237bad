"""Classic team mode: two teams, timed turns, rotating describers."""

from dataclasses import dataclass, field
from typing import ClassVar

import structlog

from tabu.cards.models import Card
from tabu.logic.enums import (
    CardOutcome,
    ErrorCode,
    GameEndReason,
    LifecycleState,
    ParticipantStatus,
    RoomMode,
    TurnCloseReason,
    TurnPhase,
    WinMode,
)
from tabu.logic.exceptions import AuthorizationError, CapacityError
from tabu.logic.results import (
    ActivatedSpectator,
    DescriberReadyResult,
    GameOverResult,
    PlayerStatsEntry,
    ScoreResult,
    TurnCloseResult,
    TurnInfo,
)
from tabu.logic.room import RoomBase
from tabu.logic.state import Participant, ParticipantStats, Team

logger = structlog.get_logger()


@dataclass
class ClassicRoom(RoomBase):
    """Room state machine for the classic mode.

    Lifecycle: lobby -> active -> concluded -> lobby (restart).
    Turn phase while active: awaiting_describer -> turn_active -> turn_ended -> awaiting_describer.

    Every transition validates phase, identity and role first and raises
    before touching state, so a rejected action leaves the room unchanged.
    A card is added to ``used_card_ids`` the moment it is drawn, so a shown
    card can never be drawn again in the same session.
    """

    mode: ClassVar[RoomMode] = RoomMode.CLASSIC

    lifecycle: LifecycleState = LifecycleState.LOBBY
    turn_phase: TurnPhase | None = None
    teams: dict[str, Team] = field(default_factory=dict)
    team_order: list[str] = field(default_factory=list)
    active_team_index: int = 0
    deck: list[Card] = field(default_factory=list)
    used_card_ids: set[str] = field(default_factory=set)
    current_card: Card | None = None
    turn_number: int = 0
    seconds_remaining: int = 0
    last_result: GameOverResult | None = None

    def __post_init__(self) -> None:
        if not self.teams:
            self.teams = {name: Team(name=name) for name in self.settings.team_names}
        if not self.team_order:
            self.team_order = list(self.settings.team_names)

    # --- queries ---

    @property
    def is_playing(self) -> bool:
        return self.lifecycle == LifecycleState.ACTIVE

    @property
    def active_team(self) -> Team | None:
        if not self.is_playing:
            return None
        return self.teams[self.team_order[self.active_team_index]]

    @property
    def current_describer_id(self) -> str | None:
        team = self.active_team
        return team.current_describer_id if team is not None else None

    @property
    def spectators(self) -> list[Participant]:
        waiting = [p for p in self.participants.values() if p.is_spectating]
        return sorted(waiting, key=lambda p: p.join_seq)

    @property
    def remaining_cards(self) -> int:
        return sum(1 for card in self.deck if card.id not in self.used_card_ids)

    def scores(self) -> dict[str, int]:
        return {name: self.teams[name].score for name in self.team_order}

    def team_headcount(self, team_name: str) -> int:
        """Members plus spectators waiting to join the team."""
        waiting = sum(1 for p in self.participants.values() if p.is_spectating and p.team == team_name)
        return len(self.teams[team_name].member_ids) + waiting

    def card_recipient_ids(self) -> list[str]:
        """Participants allowed to see the in-play card: the describer and every buzzer."""
        team = self.active_team
        if team is None:
            return []
        recipients = [team.current_describer_id] if team.current_describer_id else []
        for name in self.team_order:
            if name != team.name:
                recipients.extend(self.teams[name].member_ids)
        return recipients

    def can_see_card(self, participant_id: str) -> bool:
        return self.current_card is not None and participant_id in self.card_recipient_ids()

    def player_stats(self) -> list[PlayerStatsEntry]:
        return [
            PlayerStatsEntry(
                participant_id=p.participant_id,
                name=p.name,
                team=p.team,
                described=p.stats.described,
                guessed=p.stats.guessed,
            )
            for p in sorted(self.participants.values(), key=lambda p: p.join_seq)
        ]

    def turn_info(self) -> TurnInfo:
        team = self.active_team
        if team is None:
            raise AuthorizationError(ErrorCode.NOT_PLAYING, "The game is not in progress")
        describer_id = team.current_describer_id
        describer = self.participants.get(describer_id) if describer_id else None
        return TurnInfo(
            active_team=team.name,
            describer_id=describer_id,
            describer_name=describer.name if describer else None,
            turn_number=self.turn_number,
        )

    # --- membership ---

    def add_participant(
        self,
        name: str,
        connection_id: str | None,
        team_name: str,
        *,
        is_host: bool = False,
    ) -> Participant:
        """Add a participant to ``team_name``.

        While a game is active the participant is recorded against the team
        but spectates until the next turn boundary.
        """
        if team_name not in self.teams:
            raise CapacityError(ErrorCode.INVALID_TEAM, f"Unknown team: {team_name}")
        if self.team_headcount(team_name) >= self.settings.max_players_per_team:
            raise CapacityError(ErrorCode.TEAM_FULL, f"{team_name} is full")

        status = ParticipantStatus.SPECTATING if self.is_playing else ParticipantStatus.ACTIVE
        participant = self._create_participant(
            name,
            connection_id,
            team=team_name,
            status=status,
            is_host=is_host,
        )
        if status == ParticipantStatus.ACTIVE:
            self.teams[team_name].member_ids.append(participant.participant_id)
        return participant

    def remove_participant(self, participant_id: str) -> Participant | None:
        """Drop a participant from its team rotation and the room.

        The caller closes the turn first when the participant is the active describer.
        """
        participant = self.participants.get(participant_id)
        if participant is None:
            return None
        if participant.team is not None:
            self.teams[participant.team].remove_member(participant_id)
        return super().remove_participant(participant_id)

    # --- transitions ---

    def start(self, requester_id: str, deck: list[Card]) -> TurnInfo:
        self.require_host(requester_id, "start the game")
        if self.lifecycle != LifecycleState.LOBBY:
            raise AuthorizationError(ErrorCode.GAME_ALREADY_STARTED, "The game has already started")
        short = [
            name for name in self.settings.team_names
            if len(self.teams[name].member_ids) < self.settings.min_players_per_team
        ]
        if short:
            raise CapacityError(
                ErrorCode.NEED_MORE_PLAYERS,
                f"Each team needs at least {self.settings.min_players_per_team} players",
            )
        if not deck:
            raise CapacityError(ErrorCode.DECK_EMPTY, "No cards are available")

        self.team_order = sorted(self.teams)
        self._reset_scores()
        self.deck = list(deck)
        self.used_card_ids = set()
        self.current_card = None
        self.turn_number = 0
        self.seconds_remaining = 0
        self.last_result = None
        self.lifecycle = LifecycleState.ACTIVE
        self.turn_phase = TurnPhase.AWAITING_DESCRIBER
        self.skip_absent_describer()
        self.touch()
        logger.info("game started", room_code=self.code, team_order=self.team_order, deck_size=len(self.deck))
        return self.turn_info()

    def describer_ready(self, requester_id: str) -> DescriberReadyResult:
        """Open the turn: draw the first card and arm the countdown."""
        self._require_phase(TurnPhase.AWAITING_DESCRIBER)
        if requester_id != self.current_describer_id:
            raise AuthorizationError(ErrorCode.NOT_YOUR_TURN, "It is not your turn to describe")

        turn = self.turn_info()
        card = self._draw()
        if card is None:
            result = self._conclude(GameEndReason.DECK_EXHAUSTED)
            return DescriberReadyResult(turn=turn, card=None, seconds_remaining=0, game_over=result)

        self.current_card = card
        self.seconds_remaining = self.settings.turn_duration_seconds
        self.turn_phase = TurnPhase.TURN_ACTIVE
        self.touch()
        return DescriberReadyResult(turn=turn, card=card, seconds_remaining=self.seconds_remaining)

    def tick(self) -> int:
        """Count the active turn down by one second. Returns the seconds left."""
        if self.is_playing and self.turn_phase == TurnPhase.TURN_ACTIVE and self.seconds_remaining > 0:
            self.seconds_remaining -= 1
        return self.seconds_remaining

    def score_card(self, requester_id: str, card_id: str, outcome: CardOutcome) -> ScoreResult:
        """Resolve the in-play card and draw the next one within the same turn.

        Role is checked before the card id, so a late submission from an
        entitled participant is reported as stale rather than out of turn.
        """
        team = self._require_phase(TurnPhase.TURN_ACTIVE)
        participant = self.get_participant(requester_id)
        self._authorize_outcome(team, participant, outcome)
        if self.current_card is None or self.current_card.id != card_id:
            raise AuthorizationError(ErrorCode.STALE_CARD, "That card is no longer in play")

        describer_id = team.current_describer_id
        if outcome == CardOutcome.CORRECT:
            team.score += 1
            for member_id in team.member_ids:
                stats = self.participants[member_id].stats
                if member_id == describer_id:
                    stats.described += 1
                else:
                    stats.guessed += 1
        elif outcome == CardOutcome.FORBIDDEN_WORD:
            team.score -= 1

        self.touch()
        if self.settings.win_mode == WinMode.SCORE_LIMIT and team.score >= self.settings.score_limit:
            result = self._conclude(GameEndReason.SCORE_LIMIT, winner=team.name)
            return ScoreResult(card_id=card_id, outcome=outcome, scores=self.scores(), next_card=None, game_over=result)

        next_card = self._draw()
        if next_card is None:
            result = self._conclude(GameEndReason.DECK_EXHAUSTED)
            return ScoreResult(card_id=card_id, outcome=outcome, scores=self.scores(), next_card=None, game_over=result)

        self.current_card = next_card
        return ScoreResult(card_id=card_id, outcome=outcome, scores=self.scores(), next_card=next_card)

    def close_turn(self, reason: TurnCloseReason) -> TurnCloseResult:
        """End the active turn on timeout or describer departure.

        Discards the in-play card, advances the rotation cursor and the active
        team, activates waiting spectators and leaves the phase at turn_ended.
        """
        team = self._require_phase(TurnPhase.TURN_ACTIVE)
        discarded = self.current_card.id if self.current_card else None
        self.current_card = None
        self.seconds_remaining = 0

        team.advance_describer()
        self.active_team_index = (self.active_team_index + 1) % len(self.team_order)
        self.turn_number += 1
        activated = self._activate_spectators()
        self.turn_phase = TurnPhase.TURN_ENDED
        self.touch()
        logger.info(
            "turn closed",
            room_code=self.code,
            reason=reason,
            turn_number=self.turn_number,
            scores=self.scores(),
        )

        next_turn = self.turn_info()
        if self.remaining_cards == 0:
            result = self._conclude(GameEndReason.DECK_EXHAUSTED)
            return TurnCloseResult(
                reason=reason,
                discarded_card_id=discarded,
                scores=self.scores(),
                next_turn=next_turn,
                activated=activated,
                game_over=result,
            )
        return TurnCloseResult(
            reason=reason,
            discarded_card_id=discarded,
            scores=self.scores(),
            next_turn=next_turn,
            activated=activated,
        )

    def begin_next_turn(self) -> TurnInfo:
        """Cross the turn boundary once the inter-turn pause has elapsed."""
        self._require_phase(TurnPhase.TURN_ENDED)
        self.turn_phase = TurnPhase.AWAITING_DESCRIBER
        self.skip_absent_describer()
        self.touch()
        return self.turn_info()

    def skip_absent_describer(self) -> bool:
        """Move the cursor past disconnected members while a connected teammate exists.

        Only applies while awaiting the describer. Returns True if the cursor moved.
        """
        if not self.is_playing or self.turn_phase != TurnPhase.AWAITING_DESCRIBER:
            return False
        team = self.active_team
        if team is None or not team.member_ids:
            return False
        original = team.describer_index
        for _ in range(len(team.member_ids)):
            describer_id = team.current_describer_id
            if describer_id is not None and self.participants[describer_id].connected:
                return team.describer_index != original
            team.advance_describer()
        team.describer_index = original
        return False

    def conclude_if_team_empty(self) -> GameOverResult | None:
        """End an active game whose rotation has no member left on some team."""
        if not self.is_playing:
            return None
        if all(self.teams[name].member_ids for name in self.team_order):
            return None
        return self._conclude(GameEndReason.TEAM_EMPTY)

    def restart(self, requester_id: str) -> None:
        """Return a concluded game to the lobby, keeping teams and identities."""
        self.require_host(requester_id, "restart the game")
        if self.lifecycle != LifecycleState.CONCLUDED:
            raise AuthorizationError(ErrorCode.GAME_NOT_CONCLUDED, "The game has not finished")

        self._reset_scores()
        self.active_team_index = 0
        self.deck = []
        self.used_card_ids = set()
        self.current_card = None
        self.turn_number = 0
        self.seconds_remaining = 0
        self.last_result = None
        self._activate_spectators()
        self.lifecycle = LifecycleState.LOBBY
        self.turn_phase = None
        self.touch()
        logger.info("game restarted", room_code=self.code)

    # --- internals ---

    def _require_phase(self, phase: TurnPhase) -> Team:
        """Check the game is in ``phase`` and return the active team."""
        team = self.active_team
        if team is None:
            raise AuthorizationError(ErrorCode.NOT_PLAYING, "The game is not in progress")
        if self.turn_phase != phase:
            raise AuthorizationError(ErrorCode.WRONG_PHASE, f"Action not allowed during {self.turn_phase}")
        return team

    def _authorize_outcome(self, team: Team, participant: Participant, outcome: CardOutcome) -> None:
        on_active_team = participant.participant_id in team.member_ids

        if outcome == CardOutcome.CORRECT:
            if not on_active_team:
                raise AuthorizationError(ErrorCode.NOT_YOUR_TURN, "Only the active team can score a card")
        elif outcome == CardOutcome.FORBIDDEN_WORD:
            if on_active_team:
                raise AuthorizationError(ErrorCode.CANNOT_FLAG_OWN_TEAM, "You cannot flag your own team")
            if participant.is_spectating:
                raise AuthorizationError(ErrorCode.NOT_YOUR_TURN, "Spectators cannot flag forbidden words")
        elif outcome == CardOutcome.SKIP:
            if participant.participant_id != team.current_describer_id:
                raise AuthorizationError(ErrorCode.NOT_YOUR_TURN, "Only the describer can skip")

    def _draw(self) -> Card | None:
        """Take the first unused card from the front of the deck and mark it used."""
        for card in self.deck:
            if card.id not in self.used_card_ids:
                self.used_card_ids.add(card.id)
                return card
        return None

    def _activate_spectators(self) -> list[ActivatedSpectator]:
        activated = []
        for participant in self.spectators:
            participant.status = ParticipantStatus.ACTIVE
            if participant.team is None:
                continue
            self.teams[participant.team].member_ids.append(participant.participant_id)
            activated.append(
                ActivatedSpectator(
                    participant_id=participant.participant_id,
                    name=participant.name,
                    team=participant.team,
                ),
            )
        return activated

    def _reset_scores(self) -> None:
        for team in self.teams.values():
            team.score = 0
            team.describer_index = 0
        for participant in self.participants.values():
            participant.stats = ParticipantStats()
        self.active_team_index = 0

    def _conclude(self, reason: GameEndReason, winner: str | None = None) -> GameOverResult:
        scores = self.scores()
        if winner is None:
            best = max(scores.values())
            leaders = [name for name, score in scores.items() if score == best]
            winner = leaders[0] if len(leaders) == 1 else None

        self.lifecycle = LifecycleState.CONCLUDED
        self.turn_phase = None
        self.current_card = None
        self.seconds_remaining = 0
        self.last_result = GameOverResult(
            reason=reason,
            winner=winner,
            is_tie=winner is None,
            final_scores=scores,
            player_stats=self.player_stats(),
        )
        self.touch()
        logger.info("game over", room_code=self.code, reason=reason, winner=winner, scores=scores)
        return self.last_result
