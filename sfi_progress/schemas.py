"""
Pydantic schemas for progress tracking

All schemas use Pydantic v2 syntax with ConfigDict.
Field names are camelCase to match the device record and API responses.
"""
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from typing import Optional, Dict
from datetime import datetime


# ============= LOCAL PROGRESS STATE =============

class TopicRecord(BaseModel):
    """Result history for one topic (lesson unit)"""
    score: int = Field(..., ge=0, le=100, description="Percentage of the most recent attempt")
    bestScore: int = Field(..., ge=0, le=100, description="Best percentage ever achieved")
    attempts: int = Field(..., ge=1, description="Number of attempts")
    completedAt: datetime = Field(..., description="First completion timestamp")

    model_config = ConfigDict(from_attributes=True)


class WordRecord(BaseModel):
    """Review counters for one vocabulary word"""
    correct: int = Field(default=0, ge=0)
    wrong: int = Field(default=0, ge=0)
    lastSeen: Optional[datetime] = None


class ProgressState(BaseModel):
    """
    Progress of the current user.

    Owned by ProgressStore; every other component reads it and must not
    mutate it directly.
    """
    xp: int = Field(default=0, ge=0, description="Accumulated experience points")
    streak: int = Field(default=0, ge=0, description="Consecutive days with activity")
    completedTopics: Dict[str, TopicRecord] = Field(default_factory=dict)
    wordHistory: Dict[str, WordRecord] = Field(default_factory=dict)
    lastActivity: Optional[datetime] = Field(None, description="Last mutating action")
    lastStudyHour: Optional[int] = Field(None, ge=0, le=23, description="Hour of last topic completion")
    userId: Optional[str] = Field(None, description="Attached remote user (None = anonymous)")

    model_config = ConfigDict(from_attributes=True)


# Fields that never reach the device record
TRANSIENT_FIELDS = {"userId"}


# ============= REMOTE ROWS =============

class ProfileRow(BaseModel):
    """Remote profile record (projection of ProgressState)"""
    user_id: str
    xp: int = 0
    streak: int = 0
    last_activity: Optional[datetime] = None
    display_name: Optional[str] = None
    updated_at: Optional[datetime] = None


class TopicScoreRow(BaseModel):
    """Remote per-topic score record"""
    topic_id: str
    score: int = 0
    best_score: int = 0
    attempts: int = 1
    xp_earned: int = 0
    completed: bool = True
    last_attempted: Optional[datetime] = None


# ============= REQUESTS =============

class AddXPRequest(BaseModel):
    """Request to award XP"""
    amount: int = Field(..., gt=0, description="XP to add (must be > 0)")


class CompleteTopicRequest(BaseModel):
    """Request to record a finished quiz for a topic"""
    score: int = Field(..., ge=0, description="Correct answers")
    total: int = Field(..., gt=0, description="Total questions")

    @model_validator(mode="after")
    def validate_score_within_total(self) -> "CompleteTopicRequest":
        if self.score > self.total:
            raise ValueError(f"score ({self.score}) cannot exceed total ({self.total})")
        return self


class WordAttemptRequest(BaseModel):
    """Request to record a vocabulary review"""
    correct: bool = Field(..., description="Whether the answer was correct")


class SessionRequest(BaseModel):
    """Sign-in request: attach a user and merge cloud progress"""
    userId: str = Field(..., min_length=1, description="Remote user identifier")

    @field_validator("userId")
    @classmethod
    def validate_user_id(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("userId must be a non-empty string")
        return v.strip()


class SaveProgressRequest(BaseModel):
    """Bulk restore: only the fields present are overwritten"""
    xp: Optional[int] = Field(None, ge=0)
    streak: Optional[int] = Field(None, ge=0)
    completedTopics: Optional[Dict[str, TopicRecord]] = None
    wordHistory: Optional[Dict[str, WordRecord]] = None
    lastActivity: Optional[datetime] = None
    lastStudyHour: Optional[int] = Field(None, ge=0, le=23)


class SessionResponse(BaseModel):
    """Result of a sign-in"""
    merged: bool = Field(..., description="Whether cloud progress was merged")
    progress: ProgressState


# ============= STATS =============

class UserStats(BaseModel):
    """Summary of a user's remote progress"""
    xp: int = 0
    streak: int = 0
    topicsCompleted: int = 0
    totalAttempts: int = 0
    averageScore: int = 0
