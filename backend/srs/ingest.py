"""Ingestion of generated card records.

Card content comes from an external generator; this module normalizes its
records into cards with a fresh scheduling state that are due right away.
"""

import logging
import uuid
from collections.abc import Iterable
from datetime import datetime

from pydantic import BaseModel, Field

from backend.config import utcnow
from backend.srs.cards import Card, CardKind, Deck, Difficulty, Folder, MatchingPair
from backend.srs.sm2 import SchedulingState

logger = logging.getLogger(__name__)

# Substrings that identify a kind in loosely formatted generator output.
# The generator may answer in English or Portuguese.
KIND_KEYWORDS: list[tuple[CardKind, tuple[str, ...]]] = [
    (CardKind.CHOICE, ("choice", "multiple", "mcq", "múltipla", "multipla", "escolha")),
    (CardKind.BOOLEAN, ("true", "false", "boolean", "verdadeiro", "falso")),
    (CardKind.MATCHING, ("matching", "match", "pair", "associação", "associacao", "parear")),
]

DIFFICULTY_KEYWORDS: list[tuple[Difficulty, tuple[str, ...]]] = [
    (Difficulty.ADVANCED, ("advanced", "hard", "avan", "difícil", "dificil")),
    (Difficulty.INTERMEDIATE, ("intermedi", "medium", "médio", "medio")),
]


class CardRecord(BaseModel):
    """A card as produced by the content generator."""

    prompt: str
    answer: str
    kind: str = ""
    difficulty: str = ""
    explanation: str = ""
    options: list[str] = Field(default_factory=list)
    matching_pairs: list[MatchingPair] = Field(default_factory=list)


def normalize_kind(raw: str) -> CardKind:
    """Map a loose kind label to a CardKind; unknown labels are open responses."""
    text = raw.strip().lower()
    try:
        return CardKind(text)
    except ValueError:
        pass
    for kind, keywords in KIND_KEYWORDS:
        if any(keyword in text for keyword in keywords):
            return kind
    return CardKind.OPEN_RESPONSE


def normalize_difficulty(raw: str) -> Difficulty:
    text = raw.strip().lower()
    for difficulty, keywords in DIFFICULTY_KEYWORDS:
        if any(keyword in text for keyword in keywords):
            return difficulty
    return Difficulty.BASIC


def ingest_cards(
    records: Iterable[CardRecord],
    deck_id: str,
    now: datetime | None = None,
) -> list[Card]:
    """Turn generator records into new, immediately due cards."""
    now = now or utcnow()
    cards = []
    for record in records:
        kind = normalize_kind(record.kind)
        if kind is CardKind.MATCHING and not record.matching_pairs:
            logger.warning("Matching card without pairs, treating as open response: %s", record.prompt)
            kind = CardKind.OPEN_RESPONSE
        cards.append(
            Card(
                id=uuid.uuid4().hex,
                deck_id=deck_id,
                prompt=record.prompt,
                answer=record.answer,
                explanation=record.explanation,
                kind=kind,
                difficulty=normalize_difficulty(record.difficulty),
                options=record.options,
                matching_pairs=record.matching_pairs,
                schedule=SchedulingState(),
                next_due=now,
            )
        )
    return cards


def create_deck(
    title: str,
    records: Iterable[CardRecord],
    description: str = "",
    folder_id: str | None = None,
    now: datetime | None = None,
) -> tuple[Deck, list[Card]]:
    """Build a new deck and its cards from generator records."""
    now = now or utcnow()
    deck_id = uuid.uuid4().hex
    cards = ingest_cards(records, deck_id, now)
    deck = Deck(
        id=deck_id,
        folder_id=folder_id,
        title=title,
        description=description,
        total_cards=len(cards),
        mastery_level=0,
        created_at=now,
    )
    logger.info("Created deck %r with %d cards", title, len(cards))
    return deck, cards


def create_folder(name: str, now: datetime | None = None) -> Folder:
    return Folder(id=uuid.uuid4().hex, name=name, created_at=now or utcnow())
