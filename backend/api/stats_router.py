"""API routes for user statistics and dashboard data."""

import logging

from fastapi import APIRouter, Depends

from backend.api.deps import get_repository
from backend.api.schemas import UserStatsResponse
from backend.config import utcnow
from backend.srs.sm2 import is_due
from backend.storage import StudyRepository

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/stats", tags=["stats"])


@router.get("/{user_id}", response_model=UserStatsResponse)
async def get_user_stats(
    user_id: str,
    repository: StudyRepository = Depends(get_repository),
) -> UserStatsResponse:
    """Get global statistics for a user."""
    now = utcnow()
    stats = await repository.load_stats(user_id)
    cards = await repository.load_cards(user_id)

    return UserStatsResponse(
        streak=stats.streak,
        last_study_date=stats.last_study_date,
        total_xp=stats.total_xp,
        cards_mastered=stats.cards_mastered,
        total_cards=len(cards),
        cards_due=sum(1 for card in cards if is_due(card.next_due, now)),
    )
