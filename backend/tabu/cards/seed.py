"""Seed deck persistence.

The seed deck is a JSON array of card objects produced offline by
``bin/generate-cards.py``. It is read once at process start.
"""

import contextlib
import json
import os
import tempfile
from pathlib import Path

import structlog
from pydantic import TypeAdapter, ValidationError

from tabu.cards.models import Card

logger = structlog.get_logger()

_card_list_adapter = TypeAdapter(list[Card])


def load_seed_cards(path: Path | str) -> list[Card]:
    """Load cards from the seed file.

    A missing or unreadable file is not fatal: the server starts with an
    empty pool and rejects game starts with ``deck_empty`` until cards exist.
    """
    seed_path = Path(path)
    if not seed_path.exists():
        logger.warning("seed file not found, starting with an empty pool", path=str(seed_path))
        return []

    try:
        raw = json.loads(seed_path.read_text(encoding="utf-8"))
        cards = _card_list_adapter.validate_python(raw)
    except (OSError, json.JSONDecodeError, ValidationError):
        logger.exception("failed to load seed file", path=str(seed_path))
        return []

    logger.info("seed cards loaded", count=len(cards), path=str(seed_path))
    return cards


def save_seed_cards(path: Path | str, cards: list[Card]) -> None:
    """Write cards to the seed file atomically (temp file then rename)."""
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    payload = json.dumps(
        [card.model_dump(mode="json") for card in cards],
        ensure_ascii=False,
        indent=2,
    )

    fd, tmp_path = tempfile.mkstemp(dir=str(target.parent), suffix=".tmp", prefix=".cards_")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(payload)
        Path(tmp_path).replace(target)
    except BaseException:
        with contextlib.suppress(OSError):
            Path(tmp_path).unlink()
        raise
