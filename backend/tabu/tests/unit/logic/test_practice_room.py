"""Tests for the single-participant practice room."""

import pytest

from tabu.logic.enums import CardOutcome, ErrorCode, LifecycleState, RoomMode
from tabu.logic.exceptions import AuthorizationError, CapacityError
from tabu.logic.practice import PracticeRoom
from tabu.tests.helpers.factories import make_deck, make_practice_room


class TestPracticeStart:
    def test_start_shows_a_card_and_counts_it_viewed(self):
        room, _ = make_practice_room()

        assert room.mode == RoomMode.PRACTICE
        assert room.lifecycle == LifecycleState.PRACTICE_ACTIVE
        assert room.current_card is not None
        assert room.stats_view().cards_viewed == 1

    def test_empty_deck_rejected(self):
        room = PracticeRoom(code="SOLO02")
        room.add_owner("Solo", "conn-solo")
        with pytest.raises(CapacityError) as exc_info:
            room.start([])
        assert exc_info.value.code == ErrorCode.DECK_EMPTY

    def test_second_participant_rejected(self):
        room, _ = make_practice_room()
        with pytest.raises(CapacityError) as exc_info:
            room.add_owner("Other", "conn-other")
        assert exc_info.value.code == ErrorCode.ROOM_IS_PRACTICE

    def test_owner_is_host(self):
        room, owner_id = make_practice_room()
        assert room.host_id == owner_id
        assert room.owner.participant_id == owner_id


class TestPracticePlay:
    def test_correct_and_skip_update_stats(self):
        room, owner_id = make_practice_room()

        draw = room.play_card(owner_id, room.current_card.id, CardOutcome.CORRECT)
        assert draw.stats.cards_correct == 1
        assert draw.stats.cards_viewed == 2

        draw = room.play_card(owner_id, draw.card.id, CardOutcome.SKIP)
        assert draw.stats.cards_skipped == 1
        assert draw.stats.cards_viewed == 3

    def test_cards_may_repeat_and_are_never_marked_used(self):
        room, owner_id = make_practice_room(deck_size=2)
        seen = [room.current_card.id]
        for _ in range(20):
            draw = room.play_card(owner_id, room.current_card.id, CardOutcome.SKIP)
            seen.append(draw.card.id)

        assert len(seen) > len(set(seen))
        assert len(room.deck) == 2

    def test_forbidden_word_rejected(self):
        room, owner_id = make_practice_room()
        with pytest.raises(AuthorizationError) as exc_info:
            room.play_card(owner_id, room.current_card.id, CardOutcome.FORBIDDEN_WORD)
        assert exc_info.value.code == ErrorCode.WRONG_MODE

    def test_stale_card_rejected(self):
        room, owner_id = make_practice_room()
        with pytest.raises(AuthorizationError) as exc_info:
            room.play_card(owner_id, "not-the-card", CardOutcome.CORRECT)
        assert exc_info.value.code == ErrorCode.STALE_CARD
        assert room.stats_view().cards_correct == 0


class TestPracticeEndAndRestart:
    def test_end_returns_summary(self):
        room, owner_id = make_practice_room()
        room.play_card(owner_id, room.current_card.id, CardOutcome.CORRECT)

        stats = room.end(owner_id)

        assert stats.cards_correct == 1
        assert room.lifecycle == LifecycleState.PRACTICE_ENDED
        assert room.current_card is None

    def test_actions_after_end_rejected(self):
        room, owner_id = make_practice_room()
        card_id = room.current_card.id
        room.end(owner_id)

        with pytest.raises(AuthorizationError) as exc_info:
            room.play_card(owner_id, card_id, CardOutcome.CORRECT)
        assert exc_info.value.code == ErrorCode.NOT_PLAYING
        with pytest.raises(AuthorizationError):
            room.end(owner_id)

    def test_restart_zeroes_stats(self):
        room, owner_id = make_practice_room()
        room.play_card(owner_id, room.current_card.id, CardOutcome.CORRECT)
        room.end(owner_id)

        draw = room.restart(owner_id, make_deck(4))

        assert room.lifecycle == LifecycleState.PRACTICE_ACTIVE
        assert draw.card is not None
        assert draw.stats.cards_correct == 0
        assert draw.stats.cards_viewed == 1
