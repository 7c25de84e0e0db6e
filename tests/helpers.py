"""Card builders shared by the test modules."""

from datetime import datetime, timedelta

from backend.srs.cards import Card, CardKind, MatchingPair
from backend.srs.sm2 import SchedulingState

NOW = datetime(2024, 5, 10, 15, 30)


def make_card(
    card_id: str,
    deck_id: str = "deck-1",
    kind: CardKind = CardKind.CHOICE,
    answer: str = "Paris",
    due_in_days: float = -1,
    interval: int = 0,
    repetition: int = 0,
    easiness: float = 2.5,
    pairs: list[tuple[str, str]] | None = None,
) -> Card:
    return Card(
        id=card_id,
        deck_id=deck_id,
        prompt=f"Question {card_id}",
        answer=answer,
        explanation=f"Because {answer}",
        kind=kind,
        options=["Paris", "Rome", "Madrid"] if kind is CardKind.CHOICE else [],
        matching_pairs=[MatchingPair(left=left, right=right) for left, right in pairs or []],
        schedule=SchedulingState(interval=interval, repetition=repetition, easiness=easiness),
        next_due=NOW + timedelta(days=due_in_days),
    )
