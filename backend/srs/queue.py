"""Queue management for study sessions.

Picks the cards for a session, shuffles them, and re-inserts or retires
cards after each rating so that a card only leaves the session after
repeated correct recall.
"""

import logging
import random
from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import TypeVar

from backend.config import settings, utcnow
from backend.srs.cards import Card
from backend.srs.errors import EmptyDeckError
from backend.srs.mastery import MasteryDecision, MasteryTracker
from backend.srs.sm2 import is_due, round_half_up

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class QueueConfig:
    """Configuration for session selection and reinsertion spacing."""

    min_due: int = settings.min_due_cards
    session_size: int = settings.session_size
    # Reinsertion offsets, measured from the head after the rated card is removed
    min_gap: int = 2
    fail_max_gap: int = 3


class SkipResult(Enum):
    SKIPPED = "skipped"
    NOT_SKIPPABLE = "not_skippable"


def shuffled(items: Sequence[T], rng: random.Random | None = None) -> list[T]:
    """Return a Fisher-Yates shuffled copy of ``items``."""
    rng = rng or random.Random()
    result = list(items)
    for i in range(len(result) - 1, 0, -1):
        j = rng.randint(0, i)
        result[i], result[j] = result[j], result[i]
    return result


def select_session_cards(
    cards: Sequence[Card],
    now: datetime | None = None,
    config: QueueConfig | None = None,
    rng: random.Random | None = None,
) -> list[Card]:
    """Choose which cards of a deck go into a session.

    Due cards come first. When fewer than ``config.min_due`` are due, the
    session is topped up to ``config.session_size`` with a random sample of
    the rest. If nothing qualifies, a random sample of the whole deck is used.

    Raises:
        EmptyDeckError: If the deck has no cards.
    """
    if not cards:
        raise EmptyDeckError("Deck has no cards to study")

    config = config or QueueConfig()
    rng = rng or random.Random()
    now = now or utcnow()

    selected = [card for card in cards if is_due(card.next_due, now)]

    if len(selected) < config.min_due:
        selected_ids = {card.id for card in selected}
        remaining = [card for card in cards if card.id not in selected_ids]
        slots = max(0, config.session_size - len(selected))
        selected.extend(shuffled(remaining, rng)[:slots])

    if not selected:
        selected = shuffled(cards, rng)[: config.session_size]

    logger.info("Selected %d of %d cards for session", len(selected), len(cards))
    return selected


class SessionQueue:
    """Ordered working set of cards for one session.

    The head of the queue is always the card being presented. Reinsertion goes
    through ``_insert_bounded`` so a repeated card never lands right behind
    itself.
    """

    def __init__(
        self,
        cards: Sequence[Card],
        tracker: MasteryTracker | None = None,
        config: QueueConfig | None = None,
        rng: random.Random | None = None,
    ) -> None:
        if not cards:
            raise EmptyDeckError("Cannot build a session queue without cards")
        self.config = config or QueueConfig()
        self.tracker = tracker or MasteryTracker()
        self._rng = rng or random.Random()
        self._entries: list[Card] = list(cards)
        self.total_unique = len({card.id for card in cards})

    @classmethod
    def initialize(
        cls,
        cards: Sequence[Card],
        now: datetime | None = None,
        config: QueueConfig | None = None,
        rng: random.Random | None = None,
        tracker: MasteryTracker | None = None,
    ) -> "SessionQueue":
        """Select session cards from a deck and shuffle them once."""
        rng = rng or random.Random()
        selected = select_session_cards(cards, now=now, config=config, rng=rng)
        return cls(shuffled(selected, rng), tracker=tracker, config=config, rng=rng)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[Card]:
        return iter(self._entries)

    @property
    def is_empty(self) -> bool:
        return not self._entries

    def current_card(self) -> Card | None:
        """Return the head of the queue, or None once the session is done."""
        return self._entries[0] if self._entries else None

    def skip(self) -> SkipResult:
        """Move the current card to the back of the queue."""
        if len(self._entries) <= 1:
            return SkipResult.NOT_SKIPPABLE
        self._entries.append(self._entries.pop(0))
        return SkipResult.SKIPPED

    def requeue_after_rating(self, card: Card, rating: int) -> MasteryDecision:
        """Remove the current card and reinsert or retire it.

        Args:
            card: The card that was rated; must be the current head.
            rating: The rating it received (0-5).

        Returns:
            The tracker's decision for the card.
        """
        head = self.current_card()
        if head is None or head.id != card.id:
            raise ValueError(f"card {card.id} is not the current card")

        self._entries.pop(0)
        decision = self.tracker.record(card.id, rating)

        if decision is MasteryDecision.FAILED:
            offset = self._rng.randint(self.config.min_gap, self.config.fail_max_gap)
            self._insert_bounded(card, offset)
        elif decision is MasteryDecision.PROGRESSING:
            upper = max(self.config.min_gap, len(self._entries))
            offset = self._rng.randint(self.config.min_gap, upper)
            self._insert_bounded(card, offset)
        else:
            logger.debug("Card %s retired, %d left in queue", card.id, len(self._entries))

        return decision

    def _insert_bounded(self, card: Card, index: int) -> None:
        # Clip to the queue length; never insert ahead of min_gap unless the queue is shorter
        index = min(index, len(self._entries))
        floor = min(self.config.min_gap, len(self._entries))
        if index < floor:
            raise ValueError(f"reinsertion at {index} is earlier than allowed ({floor})")
        self._entries.insert(index, card)

    def progress_percent(self) -> int:
        """Share of session cards retired, as a whole percentage.

        Capped at 99 while cards remain so 100 means the queue is empty.
        """
        if self.is_empty:
            return 100
        percent = round_half_up(100 * self.tracker.retired_count / self.total_unique)
        return min(99, percent)
