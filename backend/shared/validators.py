"""Helpers for list-valued settings read from the environment."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from pydantic_settings import EnvSettingsSource

if TYPE_CHECKING:
    from pydantic.fields import FieldInfo


def parse_string_list(value: str | list[str]) -> list[str]:
    """Parse a non-empty string list from an env var or config value.

    Accepts a list of strings, a JSON array string ('["a","b"]') or a
    comma-separated string ('a,b'). Items are stripped; blanks are dropped.
    Raises ValueError when nothing usable remains or the JSON is malformed.
    """
    if isinstance(value, str):
        stripped = value.strip()
        if stripped.startswith("["):
            try:
                value = json.loads(stripped)
            except json.JSONDecodeError as e:
                raise ValueError(f"Invalid JSON array: {e}") from e
        else:
            value = stripped.split(",")

    if not all(isinstance(item, str) for item in value):
        raise ValueError("List items must be strings")
    result = [item.strip() for item in value if item.strip()]
    if not result:
        raise ValueError("String list value must not be empty")
    return result


STRING_LIST_FIELDS = frozenset({"cors_origins", "team_names"})


class StringListEnvSettingsSource(EnvSettingsSource):
    """Env source that hands string-list fields to validators as raw strings.

    pydantic-settings JSON-decodes list-typed env values before validators run,
    which rejects the CSV form; this source skips that step for the fields in
    STRING_LIST_FIELDS so parse_string_list sees the original text.
    """

    def prepare_field_value(
        self,
        field_name: str,
        field: FieldInfo,
        value: Any,  # noqa: ANN401
        value_is_complex: bool,  # noqa: FBT001
    ) -> Any:  # noqa: ANN401
        if field_name in STRING_LIST_FIELDS and isinstance(value, str):
            return value
        return super().prepare_field_value(field_name, field, value, value_is_complex)
