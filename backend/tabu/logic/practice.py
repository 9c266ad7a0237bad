"""Solo practice mode: one participant, no teams, no timer."""

import random
from dataclasses import dataclass, field
from typing import ClassVar

import structlog

from tabu.cards.models import Card
from tabu.logic.enums import CardOutcome, ErrorCode, LifecycleState, RoomMode
from tabu.logic.exceptions import AuthorizationError, CapacityError
from tabu.logic.results import PracticeDraw, PracticeStatsView
from tabu.logic.room import RoomBase
from tabu.logic.state import Participant, PracticeStats

logger = structlog.get_logger()


@dataclass
class PracticeRoom(RoomBase):
    """Single-participant room that draws cards uniformly at random.

    Cards are never marked used, so repeats are expected. Only ``correct``
    and ``skip`` apply; there is nobody to flag a forbidden word.
    """

    mode: ClassVar[RoomMode] = RoomMode.PRACTICE

    lifecycle: LifecycleState = LifecycleState.PRACTICE_ACTIVE
    deck: list[Card] = field(default_factory=list)
    current_card: Card | None = None
    stats: PracticeStats = field(default_factory=PracticeStats)
    rng: random.Random = field(default_factory=random.Random, repr=False)

    @property
    def owner(self) -> Participant | None:
        return next(iter(self.participants.values()), None)

    def add_owner(self, name: str, connection_id: str | None) -> Participant:
        if self.participants:
            raise CapacityError(ErrorCode.ROOM_IS_PRACTICE, "Practice rooms cannot be joined")
        return self._create_participant(name, connection_id, is_host=True)

    def stats_view(self) -> PracticeStatsView:
        return PracticeStatsView(
            cards_viewed=self.stats.cards_viewed,
            cards_correct=self.stats.cards_correct,
            cards_skipped=self.stats.cards_skipped,
        )

    def start(self, deck: list[Card]) -> PracticeDraw:
        """Load a deck, zero the stats and show the first card."""
        if not deck:
            raise CapacityError(ErrorCode.DECK_EMPTY, "No cards are available")
        self.deck = list(deck)
        self.stats = PracticeStats()
        self.lifecycle = LifecycleState.PRACTICE_ACTIVE
        self.current_card = self._draw()
        self.touch()
        logger.info("practice started", room_code=self.code, deck_size=len(self.deck))
        return PracticeDraw(card=self.current_card, stats=self.stats_view())

    def play_card(self, requester_id: str, card_id: str, outcome: CardOutcome) -> PracticeDraw:
        """Record the outcome of the shown card and draw another one."""
        self.get_participant(requester_id)
        if self.lifecycle != LifecycleState.PRACTICE_ACTIVE:
            raise AuthorizationError(ErrorCode.NOT_PLAYING, "Practice has ended")
        if outcome == CardOutcome.FORBIDDEN_WORD:
            raise AuthorizationError(ErrorCode.WRONG_MODE, "Forbidden words cannot be flagged in practice")
        if self.current_card is None or self.current_card.id != card_id:
            raise AuthorizationError(ErrorCode.STALE_CARD, "That card is no longer in play")

        if outcome == CardOutcome.CORRECT:
            self.stats.cards_correct += 1
        else:
            self.stats.cards_skipped += 1
        self.current_card = self._draw()
        self.touch()
        return PracticeDraw(card=self.current_card, stats=self.stats_view())

    def end(self, requester_id: str) -> PracticeStatsView:
        self.require_host(requester_id, "end practice")
        if self.lifecycle != LifecycleState.PRACTICE_ACTIVE:
            raise AuthorizationError(ErrorCode.NOT_PLAYING, "Practice has already ended")
        self.lifecycle = LifecycleState.PRACTICE_ENDED
        self.current_card = None
        self.touch()
        logger.info("practice ended", room_code=self.code, cards_viewed=self.stats.cards_viewed)
        return self.stats_view()

    def restart(self, requester_id: str, deck: list[Card]) -> PracticeDraw:
        self.require_host(requester_id, "restart practice")
        return self.start(deck)

    def _draw(self) -> Card | None:
        if not self.deck:
            return None
        self.stats.cards_viewed += 1
        return self.rng.choice(self.deck)
