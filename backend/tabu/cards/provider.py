"""External generative content provider for new cards.

The provider is only ever called from the pool's background replenishment
and from the offline generation script; a failure here must never reach a
player mid-game, so every failure mode surfaces as ContentProviderError.
"""

import json
import re
from typing import Any, Protocol
from uuid import uuid4

import httpx
import structlog
from pydantic import BaseModel, ValidationError

from tabu.cards.models import FORBIDDEN_WORDS_PER_CARD, Card, Difficulty

logger = structlog.get_logger()

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_CATEGORIES = (
    "technology",
    "food",
    "nature",
    "sports",
    "culture",
    "geography",
    "everyday objects",
    "animals",
    "professions",
)

_JSON_ARRAY_PATTERN = re.compile(r"\[[\s\S]*\]")
_DIFFICULTIES = frozenset(d.value for d in Difficulty)


class ContentProviderError(Exception):
    """Raised when the content provider cannot produce usable cards."""


class ContentProvider(Protocol):
    """Source of freshly generated cards."""

    async def generate_cards(self, count: int, category: str | None = None) -> list[Card]: ...


class _GeneratedCard(BaseModel):
    """Loose shape of one card as returned by the model, before normalisation."""

    word: str
    tabooWords: list[Any]  # noqa: N815
    category: str | None = None
    difficulty: str | None = None


def _extract_json_array(raw_text: str) -> list[Any]:
    """Parse a JSON array, tolerating prose or code fences around it."""
    try:
        parsed = json.loads(raw_text)
    except json.JSONDecodeError:
        match = _JSON_ARRAY_PATTERN.search(raw_text)
        if match is None:
            raise ContentProviderError(f"failed to parse card JSON: {raw_text[:200]}") from None
        try:
            parsed = json.loads(match.group(0))
        except json.JSONDecodeError as e:
            raise ContentProviderError(f"failed to parse card JSON: {e}") from e

    if not isinstance(parsed, list):
        raise ContentProviderError("provider response is not a JSON array")
    return parsed


def parse_generated_cards(raw_text: str) -> list[Card]:
    """Turn raw model output into validated cards with fresh ids.

    Entries without a word or without exactly five hints are dropped.
    Words are upper-cased, hints lower-cased, unknown difficulties become medium.
    """
    if not raw_text or not raw_text.strip():
        raise ContentProviderError("empty response from content provider")

    cards: list[Card] = []
    for entry in _extract_json_array(raw_text.strip()):
        try:
            generated = _GeneratedCard.model_validate(entry)
        except ValidationError:
            continue
        word = generated.word.strip().upper()
        if not word or len(generated.tabooWords) != FORBIDDEN_WORDS_PER_CARD:
            continue
        difficulty = (generated.difficulty or "").lower()
        cards.append(
            Card(
                id=str(uuid4()),
                word=word,
                forbidden_words=tuple(str(w).strip().lower() for w in generated.tabooWords),
                category=(generated.category or "general").strip().lower() or "general",
                difficulty=Difficulty(difficulty) if difficulty in _DIFFICULTIES else Difficulty.MEDIUM,
            ),
        )
    return cards


def build_prompt(count: int, category: str | None, language: str) -> str:
    if category:
        category_instruction = f"Mandatory theme: {category}."
    else:
        category_instruction = f"Use varied categories: {', '.join(DEFAULT_CATEGORIES)}."

    return (
        f"Generate {count} unique Taboo cards in {language}.\n"
        f"{category_instruction}\n\n"
        "Rules for good cards:\n"
        "1. The main word is a common, recognisable noun or concept\n"
        f"2. The {FORBIDDEN_WORDS_PER_CARD} taboo words are the MOST OBVIOUS words someone would use to describe it\n"
        "3. Taboo words never include the main word, its plural or direct conjugations\n"
        "4. Taboo words are lowercase\n"
        "5. Mix easy, medium and hard difficulty\n\n"
        "Respond with only the JSON array:\n"
        '[{"word": "MAIN WORD IN CAPITALS", "tabooWords": ["t1", "t2", "t3", "t4", "t5"], '
        '"category": "category", "difficulty": "easy" | "medium" | "hard"}]\n\n'
        f"Generate exactly {count} cards now."
    )


def _system_instruction(language: str) -> str:
    return (
        f"You are an expert board game designer specialised in Taboo in {language}. "
        "Your only task is to generate Taboo cards. "
        "Respond ONLY with a valid JSON array: no extra text, no markdown, no explanations."
    )


class GeminiContentProvider:
    """Generate cards with the Google Gemini ``generateContent`` REST endpoint."""

    def __init__(
        self,
        api_key: str,
        *,
        model: str = "gemini-2.0-flash",
        language: str = "Spanish",
        timeout_seconds: float = 30.0,
        base_url: str = GEMINI_BASE_URL,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._language = language
        self._timeout_seconds = timeout_seconds
        self._base_url = base_url.rstrip("/")

    async def generate_cards(self, count: int, category: str | None = None) -> list[Card]:
        if not self._api_key:
            raise ContentProviderError("GOOGLE_API_KEY is not set")

        logger.info("requesting generated cards", count=count, category=category, model=self._model)
        body = {
            "systemInstruction": {"parts": [{"text": _system_instruction(self._language)}]},
            "contents": [{"role": "user", "parts": [{"text": build_prompt(count, category, self._language)}]}],
            "generationConfig": {"responseMimeType": "application/json"},
        }
        url = f"{self._base_url}/models/{self._model}:generateContent"

        try:
            async with httpx.AsyncClient(timeout=self._timeout_seconds) as client:
                response = await client.post(url, json=body, headers={"x-goog-api-key": self._api_key})
                response.raise_for_status()
                payload = response.json()
        except httpx.HTTPError as e:
            raise ContentProviderError(f"content provider request failed: {e}") from e
        except ValueError as e:
            raise ContentProviderError(f"content provider returned invalid JSON: {e}") from e

        return parse_generated_cards(self._response_text(payload))

    @staticmethod
    def _response_text(payload: dict[str, Any]) -> str:
        try:
            parts = payload["candidates"][0]["content"]["parts"]
        except (KeyError, IndexError, TypeError):
            raise ContentProviderError("content provider response has no candidates") from None
        return "".join(part.get("text", "") for part in parts if isinstance(part, dict))
