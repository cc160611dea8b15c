"""
Badge Schemas (Pydantic)

- Simple types only (category is a validated str, not an Enum)
- Catalog metadata comes from the Content Service
- Status fields are derived per evaluation and never persisted as-is
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional, List
from datetime import datetime


ALLOWED_CATEGORIES = {'beginner', 'progress', 'mastery', 'streak', 'special'}


class BadgeMetadata(BaseModel):
    """Catalog entry for a badge"""
    id: str = Field(..., min_length=1, description="Badge identifier, e.g. 'streak-7'")
    icon: str = Field(default="", description="Emoji or icon reference")
    name: str = Field(..., description="Display name (English)")
    name_sv: str = Field(default="", description="Display name (Swedish)")
    description: str = Field(default="")
    category: str = Field(..., description="beginner, progress, mastery, streak, special")
    sort_order: int = Field(default=0, ge=0)

    @field_validator('category')
    @classmethod
    def validate_category(cls, v: str) -> str:
        """Ensure category is one of the known groups"""
        if v not in ALLOWED_CATEGORIES:
            raise ValueError(f"category must be one of {ALLOWED_CATEGORIES}, got: {v}")
        return v

    model_config = ConfigDict(frozen=True)


class BadgeWithStatus(BadgeMetadata):
    """Catalog entry plus derived unlock status"""
    unlocked: bool = False
    unlockedAt: Optional[datetime] = None
    progressPct: int = Field(default=0, ge=0, le=100)


class UserBadgeRow(BaseModel):
    """Badge already awarded to a user"""
    badge_id: str
    unlocked_at: Optional[datetime] = None


class BadgeStatus(BaseModel):
    """Badge overview for UI consumers"""
    allBadges: List[BadgeWithStatus] = Field(default_factory=list)
    unlockedBadges: List[BadgeWithStatus] = Field(default_factory=list)
    lockedBadges: List[BadgeWithStatus] = Field(default_factory=list)
    nextBadges: List[BadgeWithStatus] = Field(default_factory=list, description="Closest to unlock")
    newlyUnlocked: List[BadgeWithStatus] = Field(default_factory=list, description="Unlocked this session")
    loading: bool = True


class BadgeRefreshResponse(BaseModel):
    """Badges surfaced by one synchronizer pass"""
    newlyUnlocked: List[BadgeWithStatus] = Field(default_factory=list)
    totalBadgesEarned: int = 0
