"""Tests for card generation output parsing and the Gemini provider client."""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from tabu.cards.models import Difficulty
from tabu.cards.provider import (
    ContentProviderError,
    GeminiContentProvider,
    build_prompt,
    parse_generated_cards,
)

_HINTS = ["arena", "mar", "sol", "verano", "olas"]


def _gemini_payload(cards) -> dict:
    return {"candidates": [{"content": {"parts": [{"text": json.dumps(cards)}]}}]}


class TestParseGeneratedCards:
    def test_normalises_case_and_assigns_ids(self):
        raw = json.dumps([{"word": " playa ", "tabooWords": [w.upper() for w in _HINTS], "category": "Nature"}])

        cards = parse_generated_cards(raw)

        assert len(cards) == 1
        card = cards[0]
        assert card.word == "PLAYA"
        assert card.forbidden_words == tuple(_HINTS)
        assert card.category == "nature"
        assert card.difficulty == Difficulty.MEDIUM
        assert card.id

    def test_ids_are_unique(self):
        raw = json.dumps([{"word": f"W{i}", "tabooWords": _HINTS} for i in range(3)])
        cards = parse_generated_cards(raw)
        assert len({c.id for c in cards}) == 3

    def test_tolerates_code_fences_and_prose(self):
        raw = "Here you go:\n```json\n" + json.dumps([{"word": "sol", "tabooWords": _HINTS}]) + "\n```"
        assert [c.word for c in parse_generated_cards(raw)] == ["SOL"]

    def test_drops_cards_without_five_hints(self):
        raw = json.dumps(
            [
                {"word": "uno", "tabooWords": _HINTS[:4]},
                {"word": "", "tabooWords": _HINTS},
                {"tabooWords": _HINTS},
                {"word": "dos", "tabooWords": _HINTS, "difficulty": "HARD"},
            ],
        )

        cards = parse_generated_cards(raw)

        assert [c.word for c in cards] == ["DOS"]
        assert cards[0].difficulty == Difficulty.HARD

    def test_empty_response_raises(self):
        with pytest.raises(ContentProviderError, match="empty response"):
            parse_generated_cards("   ")

    def test_unparseable_response_raises(self):
        with pytest.raises(ContentProviderError, match="failed to parse"):
            parse_generated_cards("no cards today")

    def test_non_array_raises(self):
        with pytest.raises(ContentProviderError, match="not a JSON array"):
            parse_generated_cards('{"word": "sol"}')


class TestBuildPrompt:
    def test_mentions_count_language_and_category(self):
        prompt = build_prompt(7, "food", "Spanish")
        assert "Generate 7 unique Taboo cards in Spanish" in prompt
        assert "Mandatory theme: food." in prompt

    def test_without_category_lists_defaults(self):
        assert "Use varied categories" in build_prompt(3, None, "English")


class TestGeminiContentProvider:
    async def test_generate_cards_posts_prompt_and_parses_reply(self):
        response = MagicMock()
        response.json.return_value = _gemini_payload([{"word": "sol", "tabooWords": _HINTS}])

        with patch("httpx.AsyncClient") as mock_client:
            mock_instance = AsyncMock()
            mock_client.return_value.__aenter__.return_value = mock_instance
            mock_instance.post.return_value = response

            provider = GeminiContentProvider("test-key", model="gemini-test")
            cards = await provider.generate_cards(1, "nature")

        assert [c.word for c in cards] == ["SOL"]
        url = mock_instance.post.call_args.args[0]
        assert url.endswith("/models/gemini-test:generateContent")
        kwargs = mock_instance.post.call_args.kwargs
        assert kwargs["headers"] == {"x-goog-api-key": "test-key"}
        assert "Mandatory theme: nature." in kwargs["json"]["contents"][0]["parts"][0]["text"]

    async def test_missing_api_key_raises(self):
        provider = GeminiContentProvider("")
        with pytest.raises(ContentProviderError, match="GOOGLE_API_KEY"):
            await provider.generate_cards(5)

    async def test_transport_error_raises_provider_error(self):
        with patch("httpx.AsyncClient") as mock_client:
            mock_instance = AsyncMock()
            mock_client.return_value.__aenter__.return_value = mock_instance
            mock_instance.post.side_effect = httpx.ConnectError("Connection refused")

            with pytest.raises(ContentProviderError, match="request failed"):
                await GeminiContentProvider("test-key").generate_cards(5)

    async def test_http_status_error_raises_provider_error(self):
        response = MagicMock()
        response.raise_for_status.side_effect = httpx.HTTPStatusError(
            "429 Too Many Requests",
            request=MagicMock(),
            response=MagicMock(),
        )
        with patch("httpx.AsyncClient") as mock_client:
            mock_instance = AsyncMock()
            mock_client.return_value.__aenter__.return_value = mock_instance
            mock_instance.post.return_value = response

            with pytest.raises(ContentProviderError, match="request failed"):
                await GeminiContentProvider("test-key").generate_cards(5)

    async def test_reply_without_candidates_raises(self):
        response = MagicMock()
        response.json.return_value = {"promptFeedback": {"blockReason": "SAFETY"}}
        with patch("httpx.AsyncClient") as mock_client:
            mock_instance = AsyncMock()
            mock_client.return_value.__aenter__.return_value = mock_instance
            mock_instance.post.return_value = response

            with pytest.raises(ContentProviderError, match="no candidates"):
                await GeminiContentProvider("test-key").generate_cards(5)
