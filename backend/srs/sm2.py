"""SM-2 long-term scheduler.

A SuperMemo-2 variant that maps a card's persisted scheduling state and
a 0-5 rating to the next interval, repetition count and easiness factor.

Key concepts:
- Interval: whole days until the card is due again.
- Repetition: consecutive successful reviews across sessions.
- Easiness (EF): multiplier for interval growth, never below 1.3.
- Rating: 0-2 = fail, 3 = hard, 4 = good, 5 = perfect recall
"""

import math
from dataclasses import dataclass
from datetime import datetime, time, timedelta

from pydantic import BaseModel, ConfigDict, Field

from backend.config import utcnow

PASSING_RATING = 3
MIN_RATING = 0
MAX_RATING = 5

DEFAULT_EASINESS = 2.5
MIN_EASINESS = 1.3

# Fixed intervals for the first two successful repetitions
FIRST_INTERVAL = 1
SECOND_INTERVAL = 6


def round_half_up(value: float) -> int:
    """Round to the nearest integer with .5 rounding up, not to even."""
    return math.floor(value + 0.5)


class SchedulingState(BaseModel):
    """The persisted SM-2 state of a card."""

    model_config = ConfigDict(frozen=True)

    interval: int = Field(default=0, ge=0)  # days
    repetition: int = Field(default=0, ge=0)
    easiness: float = Field(default=DEFAULT_EASINESS, ge=MIN_EASINESS)


@dataclass
class ScheduleResult:
    """The result of applying a rating to a card's scheduling state."""

    new_state: SchedulingState
    next_due: datetime


def is_passing(rating: int) -> bool:
    return rating >= PASSING_RATING


def _check_rating(rating: int) -> None:
    if not MIN_RATING <= rating <= MAX_RATING:
        raise ValueError(f"rating must be between {MIN_RATING} and {MAX_RATING}, got {rating}")


def update_easiness(easiness: float, rating: int) -> float:
    """Apply the SM-2 easiness adjustment, clamped to MIN_EASINESS.

    EF' = EF + (0.1 - (5 - q) * (0.08 + (5 - q) * 0.02))
    """
    miss = MAX_RATING - rating
    return max(MIN_EASINESS, easiness + (0.1 - miss * (0.08 + miss * 0.02)))


def update_schedule(state: SchedulingState, rating: int) -> SchedulingState:
    """Compute the next scheduling state for a single rating.

    Args:
        state: The card's current persisted state.
        rating: Review rating on the 0-5 scale.

    Returns:
        A new SchedulingState; the input is never modified.
    """
    _check_rating(rating)

    if is_passing(rating):
        if state.repetition == 0:
            interval = FIRST_INTERVAL
        elif state.repetition == 1:
            interval = SECOND_INTERVAL
        else:
            interval = round_half_up(state.interval * state.easiness)
        repetition = state.repetition + 1
    else:
        # Lapse: start the card over
        interval = FIRST_INTERVAL
        repetition = 0

    return SchedulingState(
        interval=interval,
        repetition=repetition,
        easiness=update_easiness(state.easiness, rating),
    )


def next_review_date(interval_days: int, now: datetime | None = None) -> datetime:
    """Return midnight of the current day plus ``interval_days``."""
    now = now or utcnow()
    return datetime.combine(now.date(), time.min) + timedelta(days=interval_days)


def is_due(next_due: datetime, now: datetime | None = None) -> bool:
    return next_due <= (now or utcnow())


def schedule_review(
    state: SchedulingState,
    rating: int,
    now: datetime | None = None,
) -> ScheduleResult:
    """Apply a rating and compute the next due date in one step."""
    new_state = update_schedule(state, rating)
    return ScheduleResult(new_state=new_state, next_due=next_review_date(new_state.interval, now))
