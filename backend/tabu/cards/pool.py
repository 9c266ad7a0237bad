"""Process-wide card pool: shuffled decks for sessions and background replenishment."""

from __future__ import annotations

import asyncio
import contextlib
import random
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

import structlog

from tabu.cards.provider import ContentProviderError

if TYPE_CHECKING:
    from collections.abc import Iterable

    from tabu.cards.models import Card
    from tabu.cards.provider import ContentProvider

logger = structlog.get_logger()

# Callback invoked with the new pool size after a successful replenishment.
ReplenishedCallback = Callable[[int], Awaitable[None]]


def fisher_yates_shuffle(cards: Iterable[Card], rng: random.Random) -> list[Card]:
    """Return a uniformly shuffled copy: for i in n-1..1 swap cards[i] with cards[randint(0, i)]."""
    result = list(cards)
    for i in range(len(result) - 1, 0, -1):
        j = rng.randint(0, i)
        result[i], result[j] = result[j], result[i]
    return result


class CardPool:
    """Hold every playable card known to the process.

    Sessions never draw from the pool directly: they receive a private shuffled
    copy at start. The pool only grows, through replenishment from the content
    provider, and at most one replenishment runs at a time.
    """

    def __init__(
        self,
        cards: Iterable[Card] = (),
        *,
        provider: ContentProvider | None = None,
        low_watermark: int = 10,
        batch_size: int = 20,
        rng: random.Random | None = None,
    ) -> None:
        self._cards: list[Card] = []
        self._words: set[str] = set()
        self._provider = provider
        self._low_watermark = low_watermark
        self._batch_size = batch_size
        self._rng = rng or random.Random()  # noqa: S311
        self._replenish_task: asyncio.Task[None] | None = None
        self.merge(cards)

    @property
    def count(self) -> int:
        return len(self._cards)

    @property
    def is_low(self) -> bool:
        return self.count <= self._low_watermark

    @property
    def is_replenishing(self) -> bool:
        return self._replenish_task is not None and not self._replenish_task.done()

    def cards(self) -> list[Card]:
        """Return a copy of the pool contents in insertion order."""
        return list(self._cards)

    def shuffled_deck(self) -> list[Card]:
        """Return a shuffled copy of the full pool for a new session."""
        return fisher_yates_shuffle(self._cards, self._rng)

    def merge(self, cards: Iterable[Card]) -> int:
        """Add cards whose word (case-insensitive) is not already in the pool.

        Returns the number of cards actually added.
        """
        added = 0
        for card in cards:
            key = card.dedup_key
            if key in self._words:
                continue
            self._words.add(key)
            self._cards.append(card)
            added += 1
        return added

    def check_and_replenish(self, on_replenished: ReplenishedCallback | None = None) -> bool:
        """Start a background replenishment if the pool is at or below the low watermark.

        Never blocks the caller. Returns True if a new replenishment was started,
        False if the pool is healthy, one is already in flight or no provider is configured.
        """
        provider = self._provider
        if not self.is_low or self.is_replenishing or provider is None:
            return False
        logger.info("card pool low, replenishing in background", pool_size=self.count)
        self._replenish_task = asyncio.create_task(self._replenish(provider, on_replenished))
        return True

    async def wait_for_replenishment(self) -> None:
        """Wait for the in-flight replenishment, if any, to finish."""
        task = self._replenish_task
        if task is not None:
            await asyncio.shield(task)

    async def aclose(self) -> None:
        """Cancel an in-flight replenishment (process shutdown)."""
        task = self._replenish_task
        self._replenish_task = None
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def _replenish(self, provider: ContentProvider, on_replenished: ReplenishedCallback | None) -> None:
        try:
            new_cards = await provider.generate_cards(self._batch_size)
        except ContentProviderError as e:
            logger.warning("card replenishment failed, pool unchanged", error=str(e), pool_size=self.count)
            return
        except Exception:
            logger.exception("card replenishment failed unexpectedly, pool unchanged")
            return

        added = self.merge(new_cards)
        logger.info("card pool replenished", received=len(new_cards), added=added, pool_size=self.count)
        if on_replenished is not None:
            try:
                await on_replenished(self.count)
            except (RuntimeError, OSError, ConnectionError):
                logger.exception("replenishment callback failed")
