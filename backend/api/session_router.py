"""API routes for study sessions."""

import logging
import random
import uuid
from dataclasses import dataclass

from fastapi import APIRouter, Depends, HTTPException

from backend.api.deps import get_evaluator, get_repository
from backend.api.schemas import (
    CardResponse,
    FeedbackResponse,
    ProgressResponse,
    RateRequest,
    RateResponse,
    SessionOutcomeResponse,
    SessionStartResponse,
    SkipResponse,
    SubmitRequest,
)
from backend.srs.assessment import AnswerEvaluator, is_auto_rated
from backend.srs.cards import CardKind
from backend.srs.errors import (
    AlreadyAnswered,
    EmptyDeckError,
    InvalidRating,
    PersistenceError,
    SessionComplete,
    SubmissionInProgress,
)
from backend.srs.queue import SkipResult, shuffled
from backend.srs.session import StudySession, start_session
from backend.storage import StudyRepository

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/session", tags=["session"])


@dataclass
class ActiveSession:
    user_id: str
    session: StudySession


# In-memory session store; sessions are never autosaved
_active_sessions: dict[str, ActiveSession] = {}


def _get_active(session_id: str) -> ActiveSession:
    active = _active_sessions.get(session_id)
    if not active:
        raise HTTPException(status_code=404, detail="Session not found")
    return active


@router.post("/start", response_model=SessionStartResponse)
async def session_start(
    user_id: str,
    deck_id: str,
    repository: StudyRepository = Depends(get_repository),
    evaluator: AnswerEvaluator = Depends(get_evaluator),
) -> SessionStartResponse:
    """Start a new study session on a deck."""
    cards = await repository.load_deck_cards(user_id, deck_id)
    try:
        study_session = start_session(deck_id, cards, evaluator=evaluator)
    except EmptyDeckError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc

    session_id = str(uuid.uuid4())
    _active_sessions[session_id] = ActiveSession(user_id=user_id, session=study_session)

    return SessionStartResponse(
        session_id=session_id,
        deck_id=deck_id,
        total_cards=study_session.queue.total_unique,
    )


@router.get("/{session_id}/current", response_model=CardResponse)
async def session_current(session_id: str) -> CardResponse:
    """Get the card to present next."""
    study_session = _get_active(session_id).session
    card = study_session.current_card()
    if card is None:
        raise HTTPException(status_code=410, detail="Session is complete")

    left_items: list[str] = []
    right_items: list[str] = []
    if card.kind is CardKind.MATCHING:
        left_items = [pair.left for pair in card.matching_pairs]
        right_items = shuffled([pair.right for pair in card.matching_pairs], random.Random())

    return CardResponse(
        card_id=card.id,
        kind=card.kind,
        prompt=card.prompt,
        options=card.options,
        left_items=left_items,
        right_items=right_items,
        success_count=study_session.tracker.count(card.id),
        remaining=study_session.remaining,
        progress_percent=study_session.progress_percent(),
    )


@router.post("/{session_id}/submit", response_model=FeedbackResponse)
async def session_submit(session_id: str, request: SubmitRequest) -> FeedbackResponse:
    """Submit an answer for the current card."""
    study_session = _get_active(session_id).session
    card = study_session.current_card()
    if card is None:
        raise HTTPException(status_code=410, detail="Session is complete")

    try:
        feedback = await study_session.submit(request.response)
    except (SubmissionInProgress, AlreadyAnswered) as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc

    auto_rated = is_auto_rated(card, feedback)
    return FeedbackResponse(
        score=feedback.score,
        passed=feedback.passed,
        message=feedback.message,
        auto_rated=auto_rated,
        correct_answer=None if auto_rated else feedback.expected,
        explanation=None if auto_rated else feedback.explanation,
        session_complete=study_session.is_complete,
        progress_percent=study_session.progress_percent(),
    )


@router.post("/{session_id}/rate", response_model=RateResponse)
async def session_rate(session_id: str, request: RateRequest) -> RateResponse:
    """Rate the current card by hand."""
    study_session = _get_active(session_id).session
    try:
        decision = study_session.rate(request.rating)
    except InvalidRating as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except SessionComplete as exc:
        raise HTTPException(status_code=410, detail=str(exc)) from exc
    except SubmissionInProgress as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc

    return RateResponse(
        decision=decision.value,
        remaining=study_session.remaining,
        progress_percent=study_session.progress_percent(),
        session_complete=study_session.is_complete,
    )


@router.post("/{session_id}/skip", response_model=SkipResponse)
async def session_skip(session_id: str) -> SkipResponse:
    """Move the current card to the back of the queue."""
    study_session = _get_active(session_id).session
    try:
        result = study_session.skip()
    except SessionComplete as exc:
        raise HTTPException(status_code=410, detail=str(exc)) from exc
    except SubmissionInProgress as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return SkipResponse(skipped=result is SkipResult.SKIPPED)


@router.get("/{session_id}/progress", response_model=ProgressResponse)
async def session_progress(session_id: str) -> ProgressResponse:
    study_session = _get_active(session_id).session
    return ProgressResponse(
        progress_percent=study_session.progress_percent(),
        remaining=study_session.remaining,
        session_complete=study_session.is_complete,
    )


@router.post("/{session_id}/complete", response_model=SessionOutcomeResponse)
async def session_complete(
    session_id: str,
    repository: StudyRepository = Depends(get_repository),
) -> SessionOutcomeResponse:
    """Save a finished session. Safe to retry after a storage failure."""
    active = _get_active(session_id)
    study_session = active.session
    if not study_session.is_complete:
        raise HTTPException(status_code=409, detail="Session still has cards in the queue")

    try:
        outcome = await study_session.finish(repository, active.user_id)
    except PersistenceError as exc:
        # Keep the session so the client can retry the save
        raise HTTPException(status_code=503, detail=str(exc)) from exc

    _active_sessions.pop(session_id, None)
    return SessionOutcomeResponse(
        deck_id=outcome.deck_id,
        cards_rescheduled=len(outcome.updated_card_ids),
        deck_mastery=outcome.deck_mastery,
        xp_gained=outcome.xp_gained,
        streak=outcome.stats.streak,
        total_xp=outcome.stats.total_xp,
        cards_mastered=outcome.stats.cards_mastered,
    )


@router.delete("/{session_id}")
async def session_cancel(session_id: str) -> dict:
    """Exit a session early; nothing is saved."""
    active = _active_sessions.pop(session_id, None)
    if not active:
        raise HTTPException(status_code=404, detail="Session not found")
    active.session.cancel()
    return {"status": "cancelled"}
