"""Generate cards with the content provider and merge them into the seed deck.

Usage: uv run python bin/generate-cards.py [count] [category]

Reads GOOGLE_API_KEY from the environment or a .env file at the repository
root. Cards whose word is already in the seed deck are skipped.
"""

import asyncio
import sys
from pathlib import Path

from dotenv import load_dotenv

# Add backend to path for imports
REPO_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(REPO_ROOT / "backend"))

from shared.logging import setup_logging
from tabu.cards.pool import CardPool
from tabu.cards.provider import ContentProviderError, GeminiContentProvider
from tabu.cards.seed import load_seed_cards, save_seed_cards
from tabu.server.settings import GameServerSettings

DEFAULT_COUNT = 50


async def main() -> None:
    if len(sys.argv) > 3:  # noqa: PLR2004
        print(f"Usage: {sys.argv[0]} [count] [category]")
        sys.exit(1)

    try:
        count = int(sys.argv[1]) if len(sys.argv) > 1 else DEFAULT_COUNT
    except ValueError:
        print(f"Error: count must be an integer, got {sys.argv[1]!r}")
        sys.exit(1)
    category = sys.argv[2] if len(sys.argv) > 2 else None  # noqa: PLR2004

    load_dotenv(REPO_ROOT / ".env")
    setup_logging(file_prefix="generate_cards")
    settings = GameServerSettings()
    if not settings.google_api_key:
        print("Error: GOOGLE_API_KEY is not set. Add it to .env or the environment.")
        sys.exit(1)

    seed_path = Path(settings.seed_cards_path)
    if not seed_path.is_absolute():
        seed_path = REPO_ROOT / seed_path
    pool = CardPool(load_seed_cards(seed_path))
    existing = pool.count

    provider = GeminiContentProvider(
        settings.google_api_key,
        model=settings.generation_model,
        language=settings.generation_language,
        timeout_seconds=settings.generation_timeout_seconds,
    )
    print(f"Generating {count} cards in {settings.generation_language} ({existing} already in the seed deck)...")
    try:
        cards = await provider.generate_cards(count, category)
    except ContentProviderError as e:
        print(f"Error: card generation failed: {e}")
        sys.exit(1)

    added = pool.merge(cards)
    save_seed_cards(seed_path, pool.cards())

    print(f"Generated {len(cards)} cards ({added} new, {len(cards) - added} duplicates skipped)")
    print(f"Total deck size: {pool.count} cards, saved to {seed_path}")
    for card in pool.cards()[existing : existing + 3]:
        print(f"  {card.word} [{card.difficulty}]: {', '.join(card.forbidden_words)}")


if __name__ == "__main__":
    asyncio.run(main())
