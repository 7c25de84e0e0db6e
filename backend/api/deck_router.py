"""API routes for creating, browsing and organizing decks."""

import logging
from collections.abc import Sequence

from fastapi import APIRouter, Depends, HTTPException

from backend.api.deps import get_repository
from backend.api.schemas import (
    DeckCardResponse,
    DeckCreateRequest,
    DeckMoveRequest,
    DeckResponse,
    DeckUpdateRequest,
)
from backend.config import utcnow
from backend.srs.cards import Card
from backend.srs.errors import DeckNotFound, FolderNotFound
from backend.srs.ingest import create_deck
from backend.srs.sm2 import is_due
from backend.storage import StudyRepository

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/decks", tags=["decks"])


def _due_count(cards: Sequence[Card], deck_id: str) -> int:
    now = utcnow()
    return sum(1 for card in cards if card.deck_id == deck_id and is_due(card.next_due, now))


@router.post("/{user_id}", response_model=DeckResponse)
async def deck_create(
    user_id: str,
    request: DeckCreateRequest,
    repository: StudyRepository = Depends(get_repository),
) -> DeckResponse:
    """Create a deck from generated card records."""
    if not request.cards:
        raise HTTPException(status_code=422, detail="A deck needs at least one card")
    if request.folder_id is not None:
        folders = await repository.load_folders(user_id)
        if not any(folder.id == request.folder_id for folder in folders):
            raise HTTPException(status_code=404, detail="Folder not found")
    deck, cards = create_deck(
        request.title, request.cards, description=request.description, folder_id=request.folder_id
    )
    await repository.add_deck(user_id, deck, cards)
    return DeckResponse.from_deck(deck, due_cards=len(cards))


@router.get("/{user_id}", response_model=list[DeckResponse])
async def deck_list(
    user_id: str,
    folder_id: str | None = None,
    repository: StudyRepository = Depends(get_repository),
) -> list[DeckResponse]:
    """List a user's decks with mastery and due counts, optionally within one folder."""
    cards = await repository.load_cards(user_id)
    decks = await repository.load_decks(user_id)
    if folder_id is not None:
        decks = [deck for deck in decks if deck.folder_id == folder_id]
    return [DeckResponse.from_deck(deck, due_cards=_due_count(cards, deck.id)) for deck in decks]


@router.patch("/{user_id}/{deck_id}", response_model=DeckResponse)
async def deck_update(
    user_id: str,
    deck_id: str,
    request: DeckUpdateRequest,
    repository: StudyRepository = Depends(get_repository),
) -> DeckResponse:
    """Rename a deck or change its description."""
    try:
        deck = await repository.update_deck(
            user_id, deck_id, title=request.title, description=request.description
        )
    except DeckNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    cards = await repository.load_deck_cards(user_id, deck_id)
    return DeckResponse.from_deck(deck, due_cards=_due_count(cards, deck_id))


@router.put("/{user_id}/{deck_id}/folder", response_model=DeckResponse)
async def deck_move(
    user_id: str,
    deck_id: str,
    request: DeckMoveRequest,
    repository: StudyRepository = Depends(get_repository),
) -> DeckResponse:
    """Move a deck into a folder, or back to the top level."""
    try:
        deck = await repository.move_deck(user_id, deck_id, request.folder_id)
    except (DeckNotFound, FolderNotFound) as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    cards = await repository.load_deck_cards(user_id, deck_id)
    return DeckResponse.from_deck(deck, due_cards=_due_count(cards, deck_id))


@router.delete("/{user_id}/{deck_id}")
async def deck_delete(
    user_id: str,
    deck_id: str,
    repository: StudyRepository = Depends(get_repository),
) -> dict:
    """Delete a deck and all of its cards."""
    try:
        await repository.delete_deck(user_id, deck_id)
    except DeckNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {"status": "deleted"}


@router.get("/{user_id}/{deck_id}/cards", response_model=list[DeckCardResponse])
async def deck_cards(
    user_id: str,
    deck_id: str,
    repository: StudyRepository = Depends(get_repository),
) -> list[DeckCardResponse]:
    """List a deck's cards with their scheduling state."""
    cards = await repository.load_deck_cards(user_id, deck_id)
    if not cards:
        raise HTTPException(status_code=404, detail="Deck not found or empty")
    return [
        DeckCardResponse(
            id=card.id,
            kind=card.kind,
            prompt=card.prompt,
            answer=card.answer,
            explanation=card.explanation,
            options=card.options,
            matching_pairs=card.matching_pairs,
            interval=card.schedule.interval,
            repetition=card.schedule.repetition,
            easiness=card.schedule.easiness,
            next_due=card.next_due,
            last_review=card.last_review,
        )
        for card in cards
    ]
