"""Session outcome aggregation.

Folds the last rating of every card in a finished session into the
persisted collection: one SM-2 update per card, then deck mastery and
global stats recomputed in a single transaction.
"""

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from backend.config import settings, utcnow
from backend.srs.cards import Card, Deck, UserStats
from backend.srs.sm2 import round_half_up, schedule_review

logger = logging.getLogger(__name__)


def count_learned(cards: Sequence[Card]) -> int:
    """Count cards recalled at least once (interval >= 1)."""
    return sum(1 for card in cards if card.is_learned)


def deck_mastery_percent(cards: Sequence[Card]) -> int:
    if not cards:
        return 0
    return round_half_up(100 * count_learned(cards) / len(cards))


@dataclass
class StatsTransaction:
    """All global stat changes from one completed session."""

    xp_delta: int
    cards_mastered: int
    studied_at: datetime
    streak_window: timedelta = field(default_factory=lambda: timedelta(hours=settings.streak_window_hours))

    def apply(self, stats: UserStats) -> UserStats:
        """Return new stats with this transaction applied."""
        continues = (
            stats.last_study_date is not None
            and self.studied_at - stats.last_study_date < self.streak_window
        )
        return UserStats(
            streak=stats.streak + 1 if continues else 1,
            last_study_date=self.studied_at,
            total_xp=stats.total_xp + self.xp_delta,
            cards_mastered=self.cards_mastered,
        )


@dataclass
class SessionOutcome:
    """Everything a finished session writes back to the store."""

    deck_id: str
    cards: list[Card]
    decks: list[Deck]
    stats: UserStats
    updated_card_ids: list[str]
    deck_mastery: int
    xp_gained: int


class SessionOutcomeAggregator:
    """Turns session results into updated cards, decks and stats."""

    def __init__(self, xp_per_rating_point: int = settings.xp_per_rating_point) -> None:
        self.xp_per_rating_point = xp_per_rating_point

    def aggregate(
        self,
        results: Mapping[str, int],
        deck_id: str,
        cards: Sequence[Card],
        decks: Sequence[Deck],
        stats: UserStats,
        now: datetime | None = None,
    ) -> SessionOutcome:
        """Apply one session's results to the full persisted collection.

        Args:
            results: Last rating per card id for the session.
            deck_id: The deck the session was drawn from.
            cards: Every persisted card across all decks.
            decks: Every persisted deck.
            stats: Current global stats.
            now: Completion time (defaults to utcnow).

        Returns:
            A SessionOutcome ready for persistence. Inputs are not modified.
        """
        now = now or utcnow()
        updated_cards: list[Card] = []
        updated_ids: list[str] = []

        for card in cards:
            rating = results.get(card.id)
            if rating is None:
                updated_cards.append(card)
                continue
            scheduled = schedule_review(card.schedule, rating, now)
            updated_cards.append(
                card.model_copy(
                    update={
                        "schedule": scheduled.new_state,
                        "next_due": scheduled.next_due,
                        "last_review": now,
                    }
                )
            )
            updated_ids.append(card.id)

        missing = set(results) - set(updated_ids)
        if missing:
            logger.warning("Ignoring results for %d cards no longer in the collection", len(missing))

        xp_gained = sum(results[card_id] * self.xp_per_rating_point for card_id in updated_ids)

        deck_cards = [card for card in updated_cards if card.deck_id == deck_id]
        mastery = deck_mastery_percent(deck_cards)
        updated_decks = [
            deck.model_copy(update={"mastery_level": mastery, "total_cards": len(deck_cards)})
            if deck.id == deck_id
            else deck
            for deck in decks
        ]

        transaction = StatsTransaction(
            xp_delta=xp_gained,
            cards_mastered=count_learned(updated_cards),
            studied_at=now,
        )
        new_stats = transaction.apply(stats)

        logger.info(
            "Session on deck %s: %d cards rescheduled, mastery %d%%, +%d xp",
            deck_id,
            len(updated_ids),
            mastery,
            xp_gained,
        )
        return SessionOutcome(
            deck_id=deck_id,
            cards=updated_cards,
            decks=updated_decks,
            stats=new_stats,
            updated_card_ids=updated_ids,
            deck_mastery=mastery,
            xp_gained=xp_gained,
        )
