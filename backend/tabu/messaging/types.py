from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import AfterValidator, BaseModel, Field, TypeAdapter

from tabu.cards.models import Card
from tabu.logic.enums import CardOutcome, ErrorCode, RoomMode, TurnCloseReason
from tabu.logic.results import ActivatedSpectator, GameOverResult, PracticeStatsView
from tabu.messaging.snapshot import RoomSnapshot

# ASCII control character boundaries for input validation
_SPACE_ORD = 0x20
_DEL_ORD = 0x7F

MAX_NAME_LENGTH = 30


class ClientMessageType(StrEnum):
    CREATE_ROOM = "create_room"
    JOIN_ROOM = "join_room"
    RECONNECT = "reconnect"
    START_GAME = "start_game"
    DESCRIBER_READY = "describer_ready"
    CARD_CORRECT = "card_correct"
    CARD_FORBIDDEN_WORD = "card_forbidden_word"
    CARD_SKIP = "card_skip"
    LEAVE_ROOM = "leave_room"
    RESTART_GAME = "restart_game"
    END_PRACTICE = "end_practice"
    RESTART_PRACTICE = "restart_practice"
    PING = "ping"


class ServerMessageType(StrEnum):
    ROOM_CREATED = "room_created"
    ROOM_JOINED = "room_joined"
    ROOM_UPDATED = "room_updated"
    ROOM_LEFT = "room_left"
    GAME_STARTED = "game_started"
    TURN_STARTED = "turn_started"
    CARD_REVEALED = "card_revealed"
    TIMER_TICK = "timer_tick"
    CARD_SCORED = "card_scored"
    TURN_ENDED = "turn_ended"
    GAME_OVER = "game_over"
    HOST_CHANGED = "host_changed"
    SPECTATOR_JOINED = "spectator_joined"
    SPECTATOR_ACTIVATED = "spectator_activated"
    RECONNECT_SUCCEEDED = "reconnect_succeeded"
    RECONNECT_FAILED = "reconnect_failed"
    DECK_LOW = "deck_low"
    DECK_REPLENISHED = "deck_replenished"
    PRACTICE_STARTED = "practice_started"
    PRACTICE_CARD = "practice_card"
    PRACTICE_ENDED = "practice_ended"
    PONG = "pong"
    ERROR = "error"


def _check_display_name(value: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError("name must not be blank")
    if any(ord(c) < _SPACE_ORD or ord(c) == _DEL_ORD for c in value):
        raise ValueError("name must not contain control characters")
    return value


DisplayName = Annotated[str, Field(min_length=1, max_length=MAX_NAME_LENGTH), AfterValidator(_check_display_name)]
_ROOM_CODE_FIELD = Field(min_length=4, max_length=12, pattern=r"^[A-Za-z0-9]+$")
_CARD_ID_FIELD = Field(min_length=1, max_length=64)


# --- inbound ---


class CreateRoomMessage(BaseModel):
    type: Literal[ClientMessageType.CREATE_ROOM] = ClientMessageType.CREATE_ROOM
    name: DisplayName
    mode: RoomMode = RoomMode.CLASSIC


class JoinRoomMessage(BaseModel):
    type: Literal[ClientMessageType.JOIN_ROOM] = ClientMessageType.JOIN_ROOM
    room_code: str = _ROOM_CODE_FIELD
    name: DisplayName
    team: str = Field(min_length=1, max_length=50)


class ReconnectMessage(BaseModel):
    type: Literal[ClientMessageType.RECONNECT] = ClientMessageType.RECONNECT
    room_code: str = _ROOM_CODE_FIELD
    participant_id: str = Field(min_length=1, max_length=64)
    name: DisplayName


class StartGameMessage(BaseModel):
    type: Literal[ClientMessageType.START_GAME] = ClientMessageType.START_GAME


class DescriberReadyMessage(BaseModel):
    type: Literal[ClientMessageType.DESCRIBER_READY] = ClientMessageType.DESCRIBER_READY


class CardCorrectMessage(BaseModel):
    type: Literal[ClientMessageType.CARD_CORRECT] = ClientMessageType.CARD_CORRECT
    card_id: str = _CARD_ID_FIELD


class CardForbiddenWordMessage(BaseModel):
    type: Literal[ClientMessageType.CARD_FORBIDDEN_WORD] = ClientMessageType.CARD_FORBIDDEN_WORD
    card_id: str = _CARD_ID_FIELD


class CardSkipMessage(BaseModel):
    type: Literal[ClientMessageType.CARD_SKIP] = ClientMessageType.CARD_SKIP
    card_id: str = _CARD_ID_FIELD


class LeaveRoomMessage(BaseModel):
    type: Literal[ClientMessageType.LEAVE_ROOM] = ClientMessageType.LEAVE_ROOM


class RestartGameMessage(BaseModel):
    type: Literal[ClientMessageType.RESTART_GAME] = ClientMessageType.RESTART_GAME


class EndPracticeMessage(BaseModel):
    type: Literal[ClientMessageType.END_PRACTICE] = ClientMessageType.END_PRACTICE


class RestartPracticeMessage(BaseModel):
    type: Literal[ClientMessageType.RESTART_PRACTICE] = ClientMessageType.RESTART_PRACTICE


class PingMessage(BaseModel):
    type: Literal[ClientMessageType.PING] = ClientMessageType.PING


CardActionMessage = CardCorrectMessage | CardForbiddenWordMessage | CardSkipMessage

CARD_ACTION_OUTCOMES: dict[ClientMessageType, CardOutcome] = {
    ClientMessageType.CARD_CORRECT: CardOutcome.CORRECT,
    ClientMessageType.CARD_FORBIDDEN_WORD: CardOutcome.FORBIDDEN_WORD,
    ClientMessageType.CARD_SKIP: CardOutcome.SKIP,
}

ClientMessage = (
    CreateRoomMessage
    | JoinRoomMessage
    | ReconnectMessage
    | StartGameMessage
    | DescriberReadyMessage
    | CardCorrectMessage
    | CardForbiddenWordMessage
    | CardSkipMessage
    | LeaveRoomMessage
    | RestartGameMessage
    | EndPracticeMessage
    | RestartPracticeMessage
    | PingMessage
)

_client_adapter = TypeAdapter(Annotated[ClientMessage, Field(discriminator="type")])


def parse_client_message(data: dict[str, Any]) -> ClientMessage:
    """Parse a raw dict into a typed ClientMessage. Raises pydantic.ValidationError."""
    return _client_adapter.validate_python(data)


# --- outbound ---


class RoomCreatedMessage(BaseModel):
    type: Literal[ServerMessageType.ROOM_CREATED] = ServerMessageType.ROOM_CREATED
    room_code: str
    participant_id: str
    room: RoomSnapshot


class RoomJoinedMessage(BaseModel):
    type: Literal[ServerMessageType.ROOM_JOINED] = ServerMessageType.ROOM_JOINED
    room_code: str
    participant_id: str
    room: RoomSnapshot


class RoomUpdatedMessage(BaseModel):
    type: Literal[ServerMessageType.ROOM_UPDATED] = ServerMessageType.ROOM_UPDATED
    room: RoomSnapshot


class RoomLeftMessage(BaseModel):
    type: Literal[ServerMessageType.ROOM_LEFT] = ServerMessageType.ROOM_LEFT


class GameStartedMessage(BaseModel):
    type: Literal[ServerMessageType.GAME_STARTED] = ServerMessageType.GAME_STARTED
    team_order: list[str]
    scores: dict[str, int]
    deck_size: int


class TurnStartedMessage(BaseModel):
    type: Literal[ServerMessageType.TURN_STARTED] = ServerMessageType.TURN_STARTED
    active_team: str
    describer_id: str | None
    describer_name: str | None
    turn_number: int
    seconds_remaining: int


class CardRevealedMessage(BaseModel):
    """Sent only to the describer and the buzzers."""

    type: Literal[ServerMessageType.CARD_REVEALED] = ServerMessageType.CARD_REVEALED
    card: Card


class TimerTickMessage(BaseModel):
    type: Literal[ServerMessageType.TIMER_TICK] = ServerMessageType.TIMER_TICK
    seconds_remaining: int


class CardScoredMessage(BaseModel):
    type: Literal[ServerMessageType.CARD_SCORED] = ServerMessageType.CARD_SCORED
    card_id: str
    outcome: CardOutcome
    scores: dict[str, int]
    by: str


class TurnEndedMessage(BaseModel):
    type: Literal[ServerMessageType.TURN_ENDED] = ServerMessageType.TURN_ENDED
    reason: TurnCloseReason
    scores: dict[str, int]
    next_team: str
    next_describer_id: str | None
    next_describer_name: str | None


class GameOverMessage(GameOverResult):
    type: Literal[ServerMessageType.GAME_OVER] = ServerMessageType.GAME_OVER


class HostChangedMessage(BaseModel):
    type: Literal[ServerMessageType.HOST_CHANGED] = ServerMessageType.HOST_CHANGED
    host_id: str
    host_name: str


class SpectatorJoinedMessage(BaseModel):
    type: Literal[ServerMessageType.SPECTATOR_JOINED] = ServerMessageType.SPECTATOR_JOINED
    participant_id: str
    name: str
    team: str


class SpectatorActivatedMessage(BaseModel):
    type: Literal[ServerMessageType.SPECTATOR_ACTIVATED] = ServerMessageType.SPECTATOR_ACTIVATED
    participants: list[ActivatedSpectator]


class ReconnectSucceededMessage(BaseModel):
    type: Literal[ServerMessageType.RECONNECT_SUCCEEDED] = ServerMessageType.RECONNECT_SUCCEEDED
    room_code: str
    participant_id: str
    room: RoomSnapshot


class ReconnectFailedMessage(BaseModel):
    """The client should forget its stored identity and join as a new participant."""

    type: Literal[ServerMessageType.RECONNECT_FAILED] = ServerMessageType.RECONNECT_FAILED
    code: ErrorCode
    message: str


class DeckLowMessage(BaseModel):
    type: Literal[ServerMessageType.DECK_LOW] = ServerMessageType.DECK_LOW
    pool_size: int


class DeckReplenishedMessage(BaseModel):
    type: Literal[ServerMessageType.DECK_REPLENISHED] = ServerMessageType.DECK_REPLENISHED
    total: int


class PracticeStartedMessage(BaseModel):
    type: Literal[ServerMessageType.PRACTICE_STARTED] = ServerMessageType.PRACTICE_STARTED
    card: Card | None
    stats: PracticeStatsView


class PracticeCardMessage(BaseModel):
    type: Literal[ServerMessageType.PRACTICE_CARD] = ServerMessageType.PRACTICE_CARD
    card: Card | None
    stats: PracticeStatsView


class PracticeEndedMessage(BaseModel):
    type: Literal[ServerMessageType.PRACTICE_ENDED] = ServerMessageType.PRACTICE_ENDED
    stats: PracticeStatsView


class PongMessage(BaseModel):
    type: Literal[ServerMessageType.PONG] = ServerMessageType.PONG


class ErrorMessage(BaseModel):
    type: Literal[ServerMessageType.ERROR] = ServerMessageType.ERROR
    code: ErrorCode
    message: str
