"""
Configuration settings for the SFI progress service
"""
import json
from functools import lru_cache
from typing import Annotated, Optional, List
from pydantic_settings import BaseSettings, NoDecode
from pydantic import ConfigDict, field_validator


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # App
    APP_NAME: str = "SFI Progress Service"
    VERSION: str = "1.0.0"
    ENVIRONMENT: str = "local"
    LOG_LEVEL: str = "INFO"

    # AWS
    AWS_REGION: str = "eu-north-1"
    AWS_ACCESS_KEY_ID: Optional[str] = None  # Only for LocalStack, ECS uses IAM roles
    AWS_SECRET_ACCESS_KEY: Optional[str] = None  # Only for LocalStack, ECS uses IAM roles

    # DynamoDB (single table: profiles, topic scores, badges, weekly goals)
    DYNAMODB_ENDPOINT: Optional[str] = None  # None uses AWS, set for LocalStack
    DYNAMODB_PROGRESS_TABLE: str = "sfi-dev-user-progress"

    # SNS (in-app notifications)
    SNS_TOPIC_ARN: Optional[str] = None

    # Content Service (badge catalog, topics per course level)
    CONTENT_SERVICE_URL: str = "http://localhost:8001/content"
    CONTENT_SERVICE_TIMEOUT: float = 10.0

    # Device-side progress record
    LOCAL_PROGRESS_PATH: str = "~/.sfi/sfi_progress.json"
    TIMEZONE: str = "Europe/Stockholm"

    # Gamification
    COURSE_LEVELS: Annotated[List[str], NoDecode] = ["A", "B", "C", "D"]
    NEXT_BADGES_COUNT: int = 3
    XP_MILESTONES: Annotated[List[int], NoDecode] = [50, 100, 250, 500, 1000, 2000, 5000]

    # Notification settle window
    NOTIFICATION_WARMUP_SECONDS: float = 2.0
    NOTIFICATION_DEBOUNCE_SECONDS: float = 0.3

    # CORS
    CORS_ORIGINS: List[str] = ["*"]

    @field_validator("COURSE_LEVELS", "XP_MILESTONES", mode="before")
    @classmethod
    def split_list(cls, v):
        """Accept a JSON list or comma-separated values (A,B,C,D)"""
        if isinstance(v, str):
            v = v.strip()
            if v.startswith("["):
                return json.loads(v)
            return [item.strip() for item in v.split(",") if item.strip()]
        return v

    model_config = ConfigDict(
        env_file=".env",
        case_sensitive=True
    )


@lru_cache()
def get_settings() -> Settings:
    """Returns cached settings instance (singleton)"""
    return Settings()
