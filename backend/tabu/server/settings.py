"""Game server configuration via environment variables."""

from __future__ import annotations

from typing import TYPE_CHECKING, Self

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings

from shared.validators import StringListEnvSettingsSource, parse_string_list
from tabu.logic.enums import WinMode
from tabu.logic.settings import DEFAULT_TEAM_NAMES, NUM_TEAMS
from tabu.session.registry import DEFAULT_CODE_ALPHABET

if TYPE_CHECKING:
    from pydantic_settings.sources.base import PydanticBaseSettingsSource


class GameServerSettings(BaseSettings):
    model_config = {"env_prefix": "TABU_"}

    # room rules
    turn_duration_seconds: int = Field(default=60, ge=5)
    turn_end_pause_seconds: float = Field(default=3.0, ge=0)
    team_names: list[str] = list(DEFAULT_TEAM_NAMES)
    min_players_per_team: int = Field(default=2, ge=1)
    max_players_per_team: int = Field(default=6, ge=1)
    score_limit: int = Field(default=15, ge=1)
    win_mode: WinMode = WinMode.SCORE_LIMIT

    # card pool
    low_deck_threshold: int = Field(default=10, ge=0)
    cards_per_generation: int = Field(default=20, ge=1, le=100)
    seed_cards_path: str = Field(default="backend/data/cards-seed.json", min_length=1)

    # registry
    room_code_length: int = Field(default=6, ge=4, le=12)
    room_code_alphabet: str = Field(default=DEFAULT_CODE_ALPHABET, min_length=10)
    room_expiry_seconds: int = Field(default=3600, ge=60)
    sweep_interval_seconds: int = Field(default=300, ge=1)
    reconnect_grace_seconds: int = Field(default=60, ge=0)
    max_rooms: int = Field(default=500, ge=1)

    # server
    cors_origins: list[str] = ["http://localhost:8712"]
    log_dir: str | None = None
    ws_messages_per_second: float = Field(default=10.0, gt=0)
    ws_message_burst: int = Field(default=20, ge=1)
    ws_max_decode_errors: int = Field(default=5, ge=1)

    # content provider. The key is read from GOOGLE_API_KEY (no TABU_ prefix)
    # so the same variable serves every tool that talks to the provider.
    google_api_key: str = Field(default="", validation_alias="GOOGLE_API_KEY")
    generation_model: str = Field(default="gemini-2.0-flash", min_length=1)
    generation_language: str = Field(default="Spanish", min_length=1)
    generation_timeout_seconds: float = Field(default=30.0, gt=0)

    @field_validator("cors_origins", "team_names", mode="before")
    @classmethod
    def validate_string_lists(cls, v: str | list[str]) -> list[str]:
        return parse_string_list(v)

    @field_validator("room_code_alphabet")
    @classmethod
    def validate_alphabet(cls, v: str) -> str:
        v = v.upper()
        if len(set(v)) != len(v):
            raise ValueError("room_code_alphabet must not repeat characters")
        return v

    @model_validator(mode="after")
    def validate_teams(self) -> Self:
        if len(self.team_names) != NUM_TEAMS or len(set(self.team_names)) != NUM_TEAMS:
            raise ValueError(f"team_names must hold exactly {NUM_TEAMS} distinct names")
        if self.min_players_per_team > self.max_players_per_team:
            raise ValueError("min_players_per_team cannot exceed max_players_per_team")
        return self

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,  # noqa: ARG003
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return init_settings, StringListEnvSettingsSource(settings_cls), dotenv_settings, file_secret_settings
