"""Per-room rule configuration."""

from __future__ import annotations

from typing import TYPE_CHECKING, Self

from pydantic import BaseModel, ConfigDict, Field, model_validator

from tabu.logic.enums import WinMode

if TYPE_CHECKING:
    from tabu.server.settings import GameServerSettings

NUM_TEAMS = 2
DEFAULT_TEAM_NAMES = ("Team A", "Team B")


class RoomSettings(BaseModel):
    """
    Rules a room is created with. Frozen: a room never changes rules mid-session.
    """

    model_config = ConfigDict(frozen=True)

    team_names: tuple[str, ...] = DEFAULT_TEAM_NAMES
    min_players_per_team: int = Field(default=2, ge=1)
    max_players_per_team: int = Field(default=6, ge=1)
    turn_duration_seconds: int = Field(default=60, ge=1)
    turn_end_pause_seconds: float = Field(default=3.0, ge=0)
    score_limit: int = Field(default=15, ge=1)
    win_mode: WinMode = WinMode.SCORE_LIMIT

    @model_validator(mode="after")
    def _validate_teams(self) -> Self:
        if len(self.team_names) != NUM_TEAMS:
            raise ValueError(f"Expected exactly {NUM_TEAMS} team names, got {len(self.team_names)}")
        if len(set(self.team_names)) != len(self.team_names):
            raise ValueError("Team names must be distinct")
        if self.min_players_per_team > self.max_players_per_team:
            raise ValueError("min_players_per_team cannot exceed max_players_per_team")
        return self

    @classmethod
    def from_server_settings(cls, settings: GameServerSettings) -> RoomSettings:
        """Build RoomSettings from the process-wide server configuration."""
        return cls(
            team_names=tuple(settings.team_names),
            min_players_per_team=settings.min_players_per_team,
            max_players_per_team=settings.max_players_per_team,
            turn_duration_seconds=settings.turn_duration_seconds,
            turn_end_pause_seconds=settings.turn_end_pause_seconds,
            score_limit=settings.score_limit,
            win_mode=settings.win_mode,
        )
