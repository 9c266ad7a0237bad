"""Mutable records owned by a room."""

from dataclasses import dataclass, field

from tabu.logic.enums import ParticipantStatus


@dataclass
class ParticipantStats:
    described: int = 0  # cards successfully described
    guessed: int = 0  # cards contributed to as a teammate


@dataclass
class Participant:
    """A participant held by a room.

    Identity (``participant_id``) survives reconnects; ``connection_id`` is the
    transient handle and is None while the participant is disconnected.

    Lifecycle:
    - Created on create-room / join-room, with the next join sequence number
    - connection_id cleared on disconnect, restored on reconnect
    - Removed on explicit leave or when the reconnect grace period elapses
    """

    participant_id: str
    name: str
    join_seq: int
    team: str | None = None
    connection_id: str | None = None
    is_host: bool = False
    status: ParticipantStatus = ParticipantStatus.ACTIVE
    stats: ParticipantStats = field(default_factory=ParticipantStats)

    @property
    def connected(self) -> bool:
        return self.connection_id is not None

    @property
    def is_spectating(self) -> bool:
        return self.status == ParticipantStatus.SPECTATING


@dataclass
class Team:
    """One of the room's two fixed teams.

    ``member_ids`` is the rotation order; spectators waiting to join the team
    are not in it until the next turn boundary.
    """

    name: str
    member_ids: list[str] = field(default_factory=list)
    describer_index: int = 0
    score: int = 0

    @property
    def current_describer_id(self) -> str | None:
        if not self.member_ids:
            return None
        return self.member_ids[self.describer_index % len(self.member_ids)]

    def advance_describer(self) -> None:
        """Move the rotation cursor to the next member, wrapping."""
        if self.member_ids:
            self.describer_index = (self.describer_index + 1) % len(self.member_ids)
        else:
            self.describer_index = 0

    def remove_member(self, participant_id: str) -> None:
        """Remove a member, keeping the cursor on the same upcoming describer."""
        if participant_id not in self.member_ids:
            return
        index = self.member_ids.index(participant_id)
        self.member_ids.pop(index)
        if not self.member_ids:
            self.describer_index = 0
            return
        if index < self.describer_index:
            self.describer_index -= 1
        self.describer_index %= len(self.member_ids)


@dataclass
class PracticeStats:
    cards_viewed: int = 0
    cards_correct: int = 0
    cards_skipped: int = 0
