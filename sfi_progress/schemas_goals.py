"""
Weekly Goal Schemas
"""
from pydantic import BaseModel, Field
from datetime import date


class WeeklyGoal(BaseModel):
    """XP and topic targets for one week (Monday to Sunday)"""
    weekStart: date = Field(..., description="Monday of the goal week")
    xpTarget: int = Field(default=100, ge=0)
    xpEarned: int = Field(default=0, ge=0)
    topicsTarget: int = Field(default=3, ge=0)
    topicsCompleted: int = Field(default=0, ge=0)


class GoalPreset(BaseModel):
    """Predefined goal a learner can pick"""
    label: str
    xp: int
    topics: int
    desc: str


class Encouragement(BaseModel):
    """Feedback shown next to the weekly goal"""
    message: str
    emoji: str
    tone: str = Field(..., description="success, info, growth or muted")


class UpdateGoalRequest(BaseModel):
    """Set the targets for the current week"""
    xpTarget: int = Field(..., gt=0)
    topicsTarget: int = Field(..., gt=0)


class WeeklyGoalResponse(BaseModel):
    """Current goal with derived display fields"""
    goal: WeeklyGoal
    daysRemaining: int
    weekLabel: str
    encouragement: Encouragement
