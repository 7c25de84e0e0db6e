"""API routes for grouping decks into folders."""

import logging

from fastapi import APIRouter, Depends, HTTPException

from backend.api.deps import get_repository
from backend.api.schemas import FolderCreateRequest, FolderResponse
from backend.srs.errors import FolderNotFound
from backend.srs.ingest import create_folder
from backend.storage import StudyRepository

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/folders", tags=["folders"])


@router.post("/{user_id}", response_model=FolderResponse)
async def folder_create(
    user_id: str,
    request: FolderCreateRequest,
    repository: StudyRepository = Depends(get_repository),
) -> FolderResponse:
    folder = create_folder(request.name)
    await repository.add_folder(user_id, folder)
    return FolderResponse.from_folder(folder, deck_count=0)


@router.get("/{user_id}", response_model=list[FolderResponse])
async def folder_list(
    user_id: str,
    repository: StudyRepository = Depends(get_repository),
) -> list[FolderResponse]:
    """List folders with the number of decks filed in each."""
    folders = await repository.load_folders(user_id)
    decks = await repository.load_decks(user_id)
    return [
        FolderResponse.from_folder(folder, deck_count=sum(1 for deck in decks if deck.folder_id == folder.id))
        for folder in folders
    ]


@router.delete("/{user_id}/{folder_id}")
async def folder_delete(
    user_id: str,
    folder_id: str,
    repository: StudyRepository = Depends(get_repository),
) -> dict:
    """Delete a folder. Its decks are kept and moved to the top level."""
    try:
        unfiled = await repository.delete_folder(user_id, folder_id)
    except FolderNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {"status": "deleted", "decks_unfiled": unfiled}
