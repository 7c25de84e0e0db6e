"""Session-local mastery tracking.

Counts consecutive passing ratings per card within one session. A card is
retired from the session once it reaches the mastery threshold; any failing
rating sends its count back to zero.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum

from backend.config import settings
from backend.srs.sm2 import is_passing

logger = logging.getLogger(__name__)


class CardProgress(Enum):
    """Where a card is in the per-session state machine."""

    UNSEEN = "unseen"
    IN_PROGRESS = "in_progress"
    RETIRED = "retired"


class MasteryDecision(Enum):
    """What the queue should do with a card after a rating."""

    FAILED = "failed"          # count reset, repeat soon
    PROGRESSING = "progressing"  # count increased, repeat later
    RETIRED = "retired"        # threshold reached, drop from the session


@dataclass
class MasteryTracker:
    """Per-session consecutive success counter keyed by card id."""

    threshold: int = settings.mastery_threshold
    _counts: dict[str, int] = field(default_factory=dict)
    _retired: set[str] = field(default_factory=set)

    def __post_init__(self) -> None:
        if self.threshold < 1:
            raise ValueError("mastery threshold must be at least 1")

    def mark_seen(self, card_id: str) -> None:
        """Move an unseen card to InProgress(0)."""
        self._counts.setdefault(card_id, 0)

    def state(self, card_id: str) -> CardProgress:
        if card_id in self._retired:
            return CardProgress.RETIRED
        if card_id in self._counts:
            return CardProgress.IN_PROGRESS
        return CardProgress.UNSEEN

    def count(self, card_id: str) -> int:
        return self._counts.get(card_id, 0)

    @property
    def retired_count(self) -> int:
        return len(self._retired)

    def record(self, card_id: str, rating: int) -> MasteryDecision:
        """Record a rating and decide the card's fate for this session.

        Raises:
            ValueError: If the card was already retired this session.
        """
        if card_id in self._retired:
            raise ValueError(f"card {card_id} is already retired for this session")

        if not is_passing(rating):
            self._counts[card_id] = 0
            return MasteryDecision.FAILED

        new_count = self._counts.get(card_id, 0) + 1
        self._counts[card_id] = new_count
        if new_count >= self.threshold:
            self._retired.add(card_id)
            logger.debug("Card %s retired after %d consecutive passes", card_id, new_count)
            return MasteryDecision.RETIRED
        return MasteryDecision.PROGRESSING
