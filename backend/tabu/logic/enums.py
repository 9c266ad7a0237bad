"""Enumerations shared by the room state machine, the session layer and the wire protocol."""

from enum import StrEnum


class RoomMode(StrEnum):
    CLASSIC = "classic"
    PRACTICE = "practice"


class LifecycleState(StrEnum):
    LOBBY = "lobby"
    ACTIVE = "active"
    CONCLUDED = "concluded"
    PRACTICE_ACTIVE = "practice_active"
    PRACTICE_ENDED = "practice_ended"


class TurnPhase(StrEnum):
    AWAITING_DESCRIBER = "awaiting_describer"
    TURN_ACTIVE = "turn_active"
    TURN_ENDED = "turn_ended"


class ParticipantStatus(StrEnum):
    ACTIVE = "active"
    SPECTATING = "spectating"


class CardOutcome(StrEnum):
    CORRECT = "correct"
    FORBIDDEN_WORD = "forbidden_word"
    SKIP = "skip"


class WinMode(StrEnum):
    SCORE_LIMIT = "score_limit"  # first team to the limit wins
    DECK_EXHAUSTION = "deck_exhaustion"  # play until no card remains


class GameEndReason(StrEnum):
    SCORE_LIMIT = "score_limit"
    DECK_EXHAUSTED = "deck_exhausted"
    TEAM_EMPTY = "team_empty"  # every member of a team left mid-game


class TurnCloseReason(StrEnum):
    TIMEOUT = "timeout"
    DESCRIBER_LEFT = "describer_left"


class ErrorCode(StrEnum):
    # authorization: wrong phase, identity or role
    NOT_HOST = "not_host"
    NOT_YOUR_TURN = "not_your_turn"
    WRONG_PHASE = "wrong_phase"
    STALE_CARD = "stale_card"
    NOT_PLAYING = "not_playing"
    GAME_ALREADY_STARTED = "game_already_started"
    GAME_NOT_CONCLUDED = "game_not_concluded"
    WRONG_MODE = "wrong_mode"
    CANNOT_FLAG_OWN_TEAM = "cannot_flag_own_team"
    # capacity / availability
    TEAM_FULL = "team_full"
    NEED_MORE_PLAYERS = "need_more_players"
    DECK_EMPTY = "deck_empty"
    INVALID_TEAM = "invalid_team"
    ROOM_NOT_FOUND = "room_not_found"
    ROOM_IS_PRACTICE = "room_is_practice"
    SERVER_FULL = "server_full"
    # session
    NOT_IN_ROOM = "not_in_room"
    ALREADY_IN_ROOM = "already_in_room"
    PLAYER_NOT_FOUND = "player_not_found"
    INVALID_MESSAGE = "invalid_message"
    RATE_LIMITED = "rate_limited"
    INTERNAL_ERROR = "internal_error"
