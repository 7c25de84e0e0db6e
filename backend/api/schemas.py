"""Pydantic schemas for API request/response models."""

from datetime import datetime

from pydantic import BaseModel, Field

from backend.srs.cards import CardKind, Deck, Folder, MatchingPair
from backend.srs.ingest import CardRecord

# --- Session ---


class SessionStartResponse(BaseModel):
    """Response when starting a new study session."""

    session_id: str
    deck_id: str
    total_cards: int


class CardResponse(BaseModel):
    """The card currently presented in a session."""

    card_id: str
    kind: CardKind
    prompt: str
    options: list[str] = []  # choice cards
    left_items: list[str] = []  # matching cards
    right_items: list[str] = []  # matching cards, shuffled
    success_count: int
    remaining: int
    progress_percent: int


class SubmitRequest(BaseModel):
    """An answer: text for most kinds, a left->right mapping for matching."""

    response: str | dict[str, str]


class FeedbackResponse(BaseModel):
    """Evaluation result for a submitted answer."""

    score: int
    passed: bool
    message: str
    auto_rated: bool
    # Only shown when the learner has to rate the card themselves
    correct_answer: str | None = None
    explanation: str | None = None
    session_complete: bool
    progress_percent: int


class RateRequest(BaseModel):
    rating: int  # 1, 3, 4 or 5


class RateResponse(BaseModel):
    decision: str  # failed, progressing, retired
    remaining: int
    progress_percent: int
    session_complete: bool


class SkipResponse(BaseModel):
    skipped: bool


class ProgressResponse(BaseModel):
    progress_percent: int
    remaining: int
    session_complete: bool


class SessionOutcomeResponse(BaseModel):
    """Summary of a completed and saved session."""

    deck_id: str
    cards_rescheduled: int
    deck_mastery: int
    xp_gained: int
    streak: int
    total_xp: int
    cards_mastered: int


# --- Decks ---


class DeckCreateRequest(BaseModel):
    title: str
    description: str = ""
    folder_id: str | None = None
    cards: list[CardRecord]


class DeckUpdateRequest(BaseModel):
    """Fields left as None are unchanged."""

    title: str | None = Field(default=None, min_length=1)
    description: str | None = None


class DeckMoveRequest(BaseModel):
    folder_id: str | None = None  # None files the deck at the top level


class DeckResponse(BaseModel):
    id: str
    folder_id: str | None
    title: str
    description: str
    total_cards: int
    mastery_level: int
    due_cards: int
    created_at: datetime

    @classmethod
    def from_deck(cls, deck: Deck, due_cards: int) -> "DeckResponse":
        return cls(
            id=deck.id,
            folder_id=deck.folder_id,
            title=deck.title,
            description=deck.description,
            total_cards=deck.total_cards,
            mastery_level=deck.mastery_level,
            due_cards=due_cards,
            created_at=deck.created_at,
        )


class DeckCardResponse(BaseModel):
    id: str
    kind: CardKind
    prompt: str
    answer: str
    explanation: str
    options: list[str]
    matching_pairs: list[MatchingPair]
    interval: int
    repetition: int
    easiness: float
    next_due: datetime
    last_review: datetime | None


# --- Folders ---


class FolderCreateRequest(BaseModel):
    name: str = Field(min_length=1)


class FolderResponse(BaseModel):
    id: str
    name: str
    deck_count: int
    created_at: datetime

    @classmethod
    def from_folder(cls, folder: Folder, deck_count: int) -> "FolderResponse":
        return cls(id=folder.id, name=folder.name, deck_count=deck_count, created_at=folder.created_at)


# --- Stats ---


class UserStatsResponse(BaseModel):
    """Global statistics for a user."""

    streak: int
    last_study_date: datetime | None
    total_xp: int
    cards_mastered: int
    total_cards: int
    cards_due: int
