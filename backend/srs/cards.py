"""Domain records for cards, decks and study statistics.

These are pydantic models so that whole collections can be serialized to
and from the persistence store without a separate codec.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from backend.config import utcnow
from backend.srs.sm2 import SchedulingState


class CardKind(str, Enum):
    """How a card is answered and graded."""

    OPEN_RESPONSE = "open_response"  # free text, graded by a collaborator
    CHOICE = "choice"
    BOOLEAN = "boolean"
    MATCHING = "matching"

    @property
    def is_objective(self) -> bool:
        return self is not CardKind.OPEN_RESPONSE


class Difficulty(str, Enum):
    BASIC = "basic"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


class MatchingPair(BaseModel):
    left: str
    right: str


class Card(BaseModel):
    """A study card with its persisted SM-2 scheduling state."""

    id: str
    deck_id: str
    prompt: str
    answer: str
    explanation: str = ""
    kind: CardKind = CardKind.OPEN_RESPONSE
    difficulty: Difficulty = Difficulty.BASIC
    options: list[str] = Field(default_factory=list)  # choice cards
    matching_pairs: list[MatchingPair] = Field(default_factory=list)
    schedule: SchedulingState = Field(default_factory=SchedulingState)
    next_due: datetime = Field(default_factory=utcnow)
    last_review: datetime | None = None

    @property
    def is_learned(self) -> bool:
        """True once the card has been recalled at least once (interval >= 1)."""
        return self.schedule.interval >= 1


class Folder(BaseModel):
    """A named group of decks. Deleting one leaves its decks unfiled."""

    id: str
    name: str
    created_at: datetime = Field(default_factory=utcnow)


class Deck(BaseModel):
    """A collection of cards studied together."""

    id: str
    folder_id: str | None = None
    title: str
    description: str = ""
    total_cards: int = 0
    mastery_level: int = 0  # 0-100
    created_at: datetime = Field(default_factory=utcnow)


class UserStats(BaseModel):
    """Global progress across all decks."""

    streak: int = 0
    last_study_date: datetime | None = None
    total_xp: int = 0
    cards_mastered: int = 0
