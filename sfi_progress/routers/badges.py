"""
Badge API endpoints
"""
from fastapi import APIRouter, Depends

from sfi_progress.schemas_badges import BadgeStatus, BadgeRefreshResponse
from sfi_progress.services.container import ServiceContainer, get_container

router = APIRouter(prefix="/api/v1/badges", tags=["Badges"])


@router.get("", response_model=BadgeStatus)
async def get_badges(container: ServiceContainer = Depends(get_container)):
    """
    Badge overview for the current user.

    The first call of a session loads the catalog; if that fails the
    response has loading=true and empty lists.
    """
    if container.badges.loading:
        await container.badges.refresh()
    return container.badges.status()


@router.post("/refresh", response_model=BadgeRefreshResponse)
async def refresh_badges(container: ServiceContainer = Depends(get_container)):
    """Evaluate and award now; returns the badges unlocked by this pass"""
    batch = await container.badges.refresh()
    return BadgeRefreshResponse(newlyUnlocked=batch, totalBadgesEarned=container.badges.total_awarded)


@router.post("/newly-unlocked/clear", response_model=BadgeStatus)
async def clear_newly_unlocked(container: ServiceContainer = Depends(get_container)):
    container.badges.clear_newly_unlocked()
    return container.badges.status()
