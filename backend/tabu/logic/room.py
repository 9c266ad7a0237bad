"""Identity and lifecycle envelope shared by classic and practice rooms."""

import time
from dataclasses import dataclass, field
from typing import ClassVar
from uuid import uuid4

from tabu.logic.enums import ErrorCode, ParticipantStatus, RoomMode
from tabu.logic.exceptions import AuthorizationError
from tabu.logic.settings import RoomSettings
from tabu.logic.state import Participant


@dataclass
class RoomBase:
    """Fields and behaviour every room has regardless of mode.

    Concrete rooms set the ``mode`` tag; callers dispatch on it rather than
    probing for mode-specific attributes.
    """

    mode: ClassVar[RoomMode]

    code: str
    settings: RoomSettings = field(default_factory=RoomSettings)
    participants: dict[str, Participant] = field(default_factory=dict)  # participant_id -> Participant
    last_activity_at: float = field(default_factory=time.monotonic)
    suspended_host_id: str | None = None  # host who dropped and may still reclaim the role
    _join_counter: int = field(default=0, repr=False)

    @property
    def host_id(self) -> str | None:
        for participant in self.participants.values():
            if participant.is_host:
                return participant.participant_id
        return None

    @property
    def is_empty(self) -> bool:
        return not self.participants

    def touch(self) -> None:
        """Record activity; drives inactivity expiry."""
        self.last_activity_at = time.monotonic()

    def is_expired(self, now: float, expiry_seconds: float) -> bool:
        return now - self.last_activity_at > expiry_seconds

    def get_participant(self, participant_id: str) -> Participant:
        participant = self.participants.get(participant_id)
        if participant is None:
            raise AuthorizationError(ErrorCode.PLAYER_NOT_FOUND, "You are not part of this room")
        return participant

    def require_host(self, participant_id: str, action: str) -> None:
        if self.host_id != participant_id:
            raise AuthorizationError(ErrorCode.NOT_HOST, f"Only the host can {action}")

    def _create_participant(
        self,
        name: str,
        connection_id: str | None,
        *,
        team: str | None = None,
        status: ParticipantStatus = ParticipantStatus.ACTIVE,
        is_host: bool = False,
    ) -> Participant:
        self._join_counter += 1
        participant = Participant(
            participant_id=str(uuid4()),
            name=name,
            join_seq=self._join_counter,
            team=team,
            connection_id=connection_id,
            is_host=is_host,
            status=status,
        )
        self.participants[participant.participant_id] = participant
        self.touch()
        return participant

    def mark_disconnected(self, participant_id: str) -> Participant | None:
        participant = self.participants.get(participant_id)
        if participant is not None:
            participant.connection_id = None
            self.touch()
        return participant

    def reconnect_participant(self, participant_id: str, connection_id: str) -> Participant | None:
        """Bind a new connection to an existing participant record. None if the record is gone."""
        participant = self.participants.get(participant_id)
        if participant is None:
            return None
        participant.connection_id = connection_id
        self.touch()
        return participant

    def remove_participant(self, participant_id: str) -> Participant | None:
        participant = self.participants.pop(participant_id, None)
        if participant is not None:
            if self.suspended_host_id == participant_id:
                self.suspended_host_id = None
            self.touch()
        return participant

    def delegate_host(self, departing_id: str | None = None) -> Participant | None:
        """Move host status away from ``departing_id``.

        Prefers the connected non-spectating participant with the lowest join
        sequence, then the oldest connected spectator. If the departing host's
        record is already gone and nobody is connected, any remaining
        participant is chosen so a non-empty room always has a host.
        Returns the new host, or None if host status did not move.
        """
        others = [p for p in self.participants.values() if p.participant_id != departing_id]
        candidates = [p for p in others if p.connected]
        if not candidates and departing_id not in self.participants:
            candidates = others
        if not candidates:
            return None

        new_host = min(candidates, key=lambda p: (p.is_spectating, p.join_seq))
        for participant in self.participants.values():
            participant.is_host = False
        new_host.is_host = True
        self.touch()
        return new_host

    def restore_host_if_absent(self) -> Participant | None:
        """Hand host status to a connected participant when the host is missing or disconnected."""
        host_id = self.host_id
        if host_id is not None and self.participants[host_id].connected:
            return None
        return self.delegate_host(host_id)

    def suspend_host(self, participant_id: str) -> Participant | None:
        """Hand host status on while its holder is disconnected.

        The holder is remembered so ``reclaim_host`` can give the role back
        if they return within the grace period. Only the earliest suspended
        host is remembered.
        """
        new_host = self.delegate_host(participant_id)
        if new_host is not None and self.suspended_host_id is None:
            self.suspended_host_id = participant_id
        return new_host

    def reclaim_host(self, participant_id: str) -> Participant | None:
        """Give host status back to a returning suspended host. None if nothing changed."""
        if self.suspended_host_id != participant_id:
            return None
        self.suspended_host_id = None
        participant = self.participants.get(participant_id)
        if participant is None or participant.is_host:
            return None
        for other in self.participants.values():
            other.is_host = False
        participant.is_host = True
        self.touch()
        return participant
