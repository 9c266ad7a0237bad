import json
import logging
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from unittest.mock import patch

import pytest
import structlog

from shared.logging import _render_enums, setup_logging


@pytest.fixture(autouse=True)
def _cleanup_root_logger():
    """Close and remove all handlers from the root logger after each test."""
    yield
    root = logging.getLogger()
    for handler in root.handlers[:]:
        handler.close()
        root.removeHandler(handler)


@pytest.fixture(autouse=True)
def _default_log_env(monkeypatch):
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    monkeypatch.delenv("LOG_FORMAT", raising=False)


class TestSetupLogging:
    def test_configures_stdout_handler(self):
        setup_logging()
        root = logging.getLogger()

        assert root.level == logging.INFO
        assert len(root.handlers) == 1

        handler = root.handlers[0]
        assert isinstance(handler, logging.StreamHandler)
        assert isinstance(handler.formatter, structlog.stdlib.ProcessorFormatter)

    def test_configures_file_handler_in_log_dir(self, tmp_path):
        log_dir = tmp_path / "server"
        setup_logging(log_dir=log_dir)
        root = logging.getLogger()

        assert len(root.handlers) == 2
        file_handler = root.handlers[1]
        assert isinstance(file_handler, logging.FileHandler)
        assert Path(file_handler.baseFilename).parent == log_dir

    def test_log_file_name_has_prefix_and_timestamp(self, tmp_path):
        fixed_time = datetime(2025, 3, 15, 10, 30, 45, tzinfo=UTC)
        with patch("shared.logging.datetime") as mock_dt:
            mock_dt.now.return_value = fixed_time
            log_path = setup_logging(log_dir=tmp_path, file_prefix="generate_cards")

        assert log_path is not None
        assert log_path.name == "generate_cards_2025-03-15_10-30-45.log"

    def test_returns_none_without_log_dir(self):
        assert setup_logging() is None

    def test_writes_to_file(self, tmp_path):
        log_path = setup_logging(log_dir=tmp_path / "server")

        structlog.get_logger("test.writes_to_file").info("room created")

        assert log_path is not None
        assert "room created" in log_path.read_text()

    def test_creates_nested_log_directory(self, tmp_path):
        log_dir = tmp_path / "nested" / "dir"
        log_path = setup_logging(log_dir=str(log_dir))

        assert log_dir.exists()
        assert log_path is not None
        assert log_path.parent == log_dir

    def test_clears_existing_handlers_on_repeated_calls(self):
        setup_logging()
        setup_logging()

        assert len(logging.getLogger().handlers) == 1

    def test_explicit_level_wins_over_env(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "ERROR")
        setup_logging(level=logging.DEBUG)

        assert logging.getLogger().level == logging.DEBUG

    def test_log_level_from_env(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "warning")
        setup_logging()

        assert logging.getLogger().level == logging.WARNING

    def test_invalid_log_level_raises(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "bogus")
        with pytest.raises(ValueError, match="Invalid LOG_LEVEL"):
            setup_logging()

    def test_invalid_log_format_raises(self, monkeypatch):
        monkeypatch.setenv("LOG_FORMAT", "xml")
        with pytest.raises(ValueError, match="Invalid LOG_FORMAT"):
            setup_logging()

    def test_provider_loggers_are_quietened(self):
        setup_logging(level=logging.DEBUG)

        assert logging.getLogger("httpx").level == logging.WARNING

    def test_json_mode_includes_context_and_enum_values(self, tmp_path, monkeypatch):
        monkeypatch.setenv("LOG_FORMAT", "json")
        log_path = setup_logging(log_dir=tmp_path)

        class _Phase(Enum):
            ACTIVE = "turn_active"

        structlog.contextvars.bind_contextvars(room_code="ABC123")
        structlog.get_logger("test.json").info("turn closed", phase=_Phase.ACTIVE)
        structlog.contextvars.clear_contextvars()

        assert log_path is not None
        parsed = json.loads(log_path.read_text().strip().splitlines()[0])
        assert parsed["event"] == "turn closed"
        assert parsed["room_code"] == "ABC123"
        assert parsed["phase"] == "turn_active"


class TestRenderEnums:
    class _Outcome(Enum):
        CORRECT = "correct"
        SKIP = "skip"

    def test_replaces_enum_with_value(self):
        result = _render_enums(None, "", {"outcome": self._Outcome.CORRECT, "msg": "hello"})
        assert result == {"outcome": "correct", "msg": "hello"}

    def test_replaces_enums_inside_containers(self):
        result = _render_enums(None, "", {"data": {"a": self._Outcome.SKIP}, "seq": [self._Outcome.CORRECT]})
        assert result == {"data": {"a": "skip"}, "seq": ["correct"]}

    def test_leaves_plain_values_unchanged(self):
        result = _render_enums(None, "", {"count": 42, "name": "test"})
        assert result == {"count": 42, "name": "test"}
