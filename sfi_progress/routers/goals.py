"""
Weekly goal API endpoints
"""
from typing import List
from fastapi import APIRouter, Depends, HTTPException, Query

from sfi_progress.exceptions import RemoteStoreError
from sfi_progress.logic.weekly_goals import GOAL_PRESETS, HISTORY_LIMIT
from sfi_progress.routers.progress import require_user
from sfi_progress.schemas_goals import GoalPreset, UpdateGoalRequest, WeeklyGoal, WeeklyGoalResponse
from sfi_progress.services.container import ServiceContainer, get_container

router = APIRouter(prefix="/api/v1/goals", tags=["Goals"])


@router.get("/presets", response_model=List[GoalPreset])
async def get_presets():
    return GOAL_PRESETS


@router.get("/current", response_model=WeeklyGoalResponse)
async def get_current_goal(container: ServiceContainer = Depends(get_container)):
    """This week's goal (defaults when none saved) with encouragement"""
    user_id = require_user(container)
    try:
        goal = await container.goals.load_current_goal(user_id)
    except RemoteStoreError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return container.goals.describe(goal)


@router.put("/current", response_model=WeeklyGoalResponse)
async def update_current_goal(
    request: UpdateGoalRequest,
    container: ServiceContainer = Depends(get_container)
):
    user_id = require_user(container)
    try:
        goal = await container.goals.save_goal(user_id, request.xpTarget, request.topicsTarget)
    except RemoteStoreError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return container.goals.describe(goal)


@router.get("/history", response_model=List[WeeklyGoal])
async def get_goal_history(
    limit: int = Query(HISTORY_LIMIT, ge=1, le=52),
    container: ServiceContainer = Depends(get_container)
):
    """Latest weekly goals, newest first"""
    user_id = require_user(container)
    try:
        return await container.goals.load_history(user_id, limit=limit)
    except RemoteStoreError as e:
        raise HTTPException(status_code=503, detail=str(e))
