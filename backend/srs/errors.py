"""Errors raised by the study session core."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from backend.srs.outcome import SessionOutcome


class StudyError(Exception):
    """Base class for study session errors."""


class EmptyDeckError(StudyError):
    """A session was requested for a deck with no cards."""


class GradingUnavailable(StudyError):
    """The grading collaborator failed or returned nothing usable."""


class InvalidResponseShape(StudyError):
    """A submitted response does not fit the card's kind."""


class InvalidRating(StudyError, ValueError):
    """A rating outside the allowed scale was supplied."""


class SessionComplete(StudyError):
    """The session queue is empty; there is no card to act on."""


class SubmissionInProgress(StudyError):
    """An evaluation for the current card is still pending."""


class AlreadyAnswered(StudyError):
    """The current presentation was already evaluated and awaits a rating."""


class PersistenceError(StudyError):
    """Writing a session outcome to the store failed.

    The computed outcome is attached so the write can be retried.
    """

    def __init__(self, message: str, outcome: SessionOutcome | None = None) -> None:
        super().__init__(message)
        self.outcome = outcome


class DeckNotFound(StudyError):
    """No deck with the given id exists for the user."""


class FolderNotFound(StudyError):
    """No folder with the given id exists for the user."""
