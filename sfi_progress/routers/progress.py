"""
Progress API endpoints

Exposes the local progress cache: mutations, bulk restore, sign-in
(attach + cloud merge), sign-out and the synced stats summary.
"""
import logging
from fastapi import APIRouter, Depends, HTTPException, Path

from sfi_progress.exceptions import RemoteStoreError
from sfi_progress.logic.user_stats import get_user_stats
from sfi_progress.schemas import (
    ProgressState,
    AddXPRequest,
    CompleteTopicRequest,
    WordAttemptRequest,
    SessionRequest,
    SessionResponse,
    SaveProgressRequest,
    UserStats,
)
from sfi_progress.services.container import ServiceContainer, get_container

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["Progress"])


def require_user(container: ServiceContainer) -> str:
    user_id = container.store.user_id
    if not user_id:
        raise HTTPException(status_code=401, detail="No user signed in")
    return user_id


@router.get("/progress", response_model=ProgressState)
async def get_progress(container: ServiceContainer = Depends(get_container)):
    """Current local progress"""
    return container.store.get_progress()


@router.put("/progress", response_model=ProgressState)
async def save_progress(
    request: SaveProgressRequest,
    container: ServiceContainer = Depends(get_container)
):
    """Bulk restore: overwrite only the fields present in the body"""
    fields = {name: getattr(request, name) for name in request.model_fields_set}
    try:
        return container.store.save_progress(**fields)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))


@router.post("/progress/xp", response_model=ProgressState)
async def add_xp(request: AddXPRequest, container: ServiceContainer = Depends(get_container)):
    try:
        return container.store.add_xp(request.amount)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))


@router.post("/progress/streak", response_model=ProgressState)
async def increment_streak(container: ServiceContainer = Depends(get_container)):
    """Record today's activity (no-op if already recorded today)"""
    return container.store.increment_streak()


@router.post("/progress/topics/{topic_id}/complete", response_model=ProgressState)
async def complete_topic(
    request: CompleteTopicRequest,
    topic_id: str = Path(..., min_length=1),
    container: ServiceContainer = Depends(get_container)
):
    """Record a finished quiz: score correct answers out of total"""
    try:
        return container.store.mark_topic_complete(topic_id, request.score, request.total)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))


@router.post("/progress/words/{word}/attempt", response_model=ProgressState)
async def record_word_attempt(
    request: WordAttemptRequest,
    word: str = Path(..., min_length=1),
    container: ServiceContainer = Depends(get_container)
):
    return container.store.record_word_attempt(word, request.correct)


@router.post("/session", response_model=SessionResponse)
async def sign_in(request: SessionRequest, container: ServiceContainer = Depends(get_container)):
    """Attach a user and merge their cloud progress into the local cache"""
    merged = await container.reconciler.load_cloud_progress(request.userId)
    if not merged:
        logger.warning(f"Signed in {request.userId} without cloud merge")
    return SessionResponse(merged=merged, progress=container.store.get_progress())


@router.delete("/session", response_model=ProgressState)
async def sign_out(container: ServiceContainer = Depends(get_container)):
    """Detach the user; local progress is reset to defaults"""
    container.store.set_user_id(None)
    return container.store.get_progress()


@router.get("/stats", response_model=UserStats)
async def get_stats(container: ServiceContainer = Depends(get_container)):
    """Summary of the signed-in user's synced progress"""
    user_id = require_user(container)
    try:
        return await get_user_stats(container.repository, user_id)
    except RemoteStoreError as e:
        raise HTTPException(status_code=503, detail=str(e))
