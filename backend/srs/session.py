"""Study session controller.

Joins the session queue, mastery tracker and answer evaluator into one
session flow, and hands the final ratings to the outcome aggregator when
the queue runs dry. Long-term scheduling never sees in-session counters.
"""

from __future__ import annotations

import logging
import random
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any

from backend.srs.assessment import AUTO_RATING, MANUAL_RATINGS, AnswerEvaluator, Feedback, is_auto_rated
from backend.srs.cards import Card
from backend.srs.errors import (
    AlreadyAnswered,
    InvalidRating,
    PersistenceError,
    SessionComplete,
    StudyError,
    SubmissionInProgress,
)
from backend.srs.mastery import MasteryDecision, MasteryTracker
from backend.srs.outcome import SessionOutcome, SessionOutcomeAggregator
from backend.srs.queue import QueueConfig, SessionQueue, SkipResult

if TYPE_CHECKING:
    from backend.storage import StudyRepository

logger = logging.getLogger(__name__)


@dataclass
class ReviewRecord:
    """The previous card's review, kept for a look-back view."""

    card: Card
    response: Any
    feedback: Feedback | None
    rating: int


class StudySession:
    """One live study session over a snapshot of a deck's cards."""

    def __init__(
        self,
        deck_id: str,
        queue: SessionQueue,
        evaluator: AnswerEvaluator | None = None,
    ) -> None:
        self.deck_id = deck_id
        self.queue = queue
        self.evaluator = evaluator or AnswerEvaluator()
        # Last rating per card id; the only input to long-term scheduling
        self.results: dict[str, int] = {}
        self.last_review: ReviewRecord | None = None
        self.outcome: SessionOutcome | None = None
        self.cancelled = False
        self._evaluating = False
        self._feedback: Feedback | None = None
        self._response: Any = None

    @property
    def tracker(self) -> MasteryTracker:
        return self.queue.tracker

    @property
    def is_complete(self) -> bool:
        return self.queue.is_empty

    @property
    def remaining(self) -> int:
        return len(self.queue)

    @property
    def feedback(self) -> Feedback | None:
        """Feedback for the current presentation, if it was answered."""
        return self._feedback

    def current_card(self) -> Card | None:
        """Return the card to present, or None once the session is done."""
        card = self.queue.current_card()
        if card is not None:
            self.tracker.mark_seen(card.id)
        return card

    def progress_percent(self) -> int:
        return self.queue.progress_percent()

    def _require_card(self) -> Card:
        if self.cancelled:
            raise StudyError("Session was cancelled")
        card = self.current_card()
        if card is None:
            raise SessionComplete("No cards left in this session")
        return card

    async def submit(self, response: Any) -> Feedback:
        """Evaluate a response for the current card.

        Objective cards answered correctly are rated 5 and the session moves
        on immediately. Anything else waits for ``rate()``.

        Raises:
            SessionComplete: If the queue is already empty.
            SubmissionInProgress: If an evaluation is still pending.
            AlreadyAnswered: If this presentation was already evaluated.
        """
        if self._evaluating:
            raise SubmissionInProgress("An answer is already being evaluated")
        card = self._require_card()
        if self._feedback is not None:
            raise AlreadyAnswered("Rate the current card before answering again")

        self._evaluating = True
        try:
            feedback = await self.evaluator.evaluate(card, response)
        finally:
            self._evaluating = False

        self._feedback = feedback
        self._response = response
        if is_auto_rated(card, feedback):
            self._apply_rating(card, AUTO_RATING)
        return feedback

    def rate(self, rating: int) -> MasteryDecision:
        """Record a manual rating for the current card and advance."""
        if self._evaluating:
            raise SubmissionInProgress("Wait for the evaluation to finish")
        if rating not in MANUAL_RATINGS:
            raise InvalidRating(f"rating must be one of {MANUAL_RATINGS}, got {rating}")
        card = self._require_card()
        return self._apply_rating(card, rating)

    def _apply_rating(self, card: Card, rating: int) -> MasteryDecision:
        self.last_review = ReviewRecord(
            card=card,
            response=self._response,
            feedback=self._feedback,
            rating=rating,
        )
        # Re-insert so dict order follows the most recent rating
        self.results.pop(card.id, None)
        self.results[card.id] = rating

        decision = self.queue.requeue_after_rating(card, rating)
        self._feedback = None
        self._response = None

        if self.is_complete:
            logger.info("Session on deck %s complete: %d cards rated", self.deck_id, len(self.results))
        return decision

    def skip(self) -> SkipResult:
        """Move the current card to the back; a no-op on the last card."""
        if self._evaluating:
            raise SubmissionInProgress("Wait for the evaluation to finish")
        self._require_card()
        result = self.queue.skip()
        if result is SkipResult.SKIPPED:
            self._feedback = None
            self._response = None
        return result

    def cancel(self) -> None:
        """Abandon the session without saving anything."""
        self.cancelled = True
        self.results.clear()
        self._feedback = None
        self._response = None
        logger.info("Session on deck %s cancelled", self.deck_id)

    async def finish(
        self,
        repository: StudyRepository,
        user_id: str,
        aggregator: SessionOutcomeAggregator | None = None,
        now: datetime | None = None,
    ) -> SessionOutcome:
        """Fold the session results into the user's persisted collections.

        The outcome is computed once. If saving fails, calling ``finish``
        again retries the same write instead of rescheduling cards twice.

        Raises:
            StudyError: If the session is cancelled or not yet complete.
            PersistenceError: If the store rejects the write.
        """
        if self.cancelled:
            raise StudyError("Cannot finish a cancelled session")
        if not self.is_complete:
            raise StudyError("Session still has cards in the queue")

        if self.outcome is None:
            aggregator = aggregator or SessionOutcomeAggregator()
            try:
                cards = await repository.load_cards(user_id)
                decks = await repository.load_decks(user_id)
                stats = await repository.load_stats(user_id)
            except Exception as exc:
                logger.exception("Failed to load collections for user %s", user_id)
                raise PersistenceError("Could not load collections") from exc
            self.outcome = aggregator.aggregate(self.results, self.deck_id, cards, decks, stats, now)

        await repository.commit_outcome(user_id, self.outcome)
        return self.outcome


def start_session(
    deck_id: str,
    cards: Sequence[Card],
    evaluator: AnswerEvaluator | None = None,
    config: QueueConfig | None = None,
    now: datetime | None = None,
    rng: random.Random | None = None,
) -> StudySession:
    """Start a new study session over a deck's cards.

    Raises:
        EmptyDeckError: If ``cards`` is empty.
    """
    queue = SessionQueue.initialize(cards, now=now, config=config, rng=rng)
    session = StudySession(deck_id=deck_id, queue=queue, evaluator=evaluator)
    logger.info("Started session on deck %s: %d cards queued", deck_id, len(queue))
    return session
