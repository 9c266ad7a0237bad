"""Card value type."""

from enum import StrEnum

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

FORBIDDEN_WORDS_PER_CARD = 5


class Difficulty(StrEnum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class Card(BaseModel):
    """A playable card. Immutable once created.

    Only its membership in a pool, deck or used-set ever changes. The seed
    file stores the hint list under ``tabooWords``; both spellings are accepted.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    word: str = Field(min_length=1)
    forbidden_words: tuple[str, ...] = Field(
        min_length=FORBIDDEN_WORDS_PER_CARD,
        max_length=FORBIDDEN_WORDS_PER_CARD,
        validation_alias=AliasChoices("forbidden_words", "tabooWords"),
    )
    category: str = "general"
    difficulty: Difficulty = Difficulty.MEDIUM

    @property
    def dedup_key(self) -> str:
        """Key used to detect duplicate cards across generation batches."""
        return self.word.strip().upper()
