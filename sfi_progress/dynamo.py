"""
DynamoDB access for the progress service

Single-table design:
- PK: USER#{user_id}
- SK: PROFILE | TOPIC#{topic_id} | BADGE#{badge_id} | GOAL#{week_start}

Each badge and each topic score is its own item, so awards and score
upserts never touch arrays or nested maps.
"""
import boto3
from typing import Optional, Dict, Any
from decimal import Decimal
import logging

from sfi_progress.config import get_settings

logger = logging.getLogger(__name__)

PROFILE_SK = "PROFILE"
TOPIC_SK_PREFIX = "TOPIC#"
BADGE_SK_PREFIX = "BADGE#"
GOAL_SK_PREFIX = "GOAL#"


class DynamoDBClient:
    """DynamoDB client with lazy initialization"""

    def __init__(self, settings=None):
        self.settings = settings or get_settings()
        self._dynamodb = None
        self._progress_table = None

    @property
    def dynamodb(self):
        """Lazy initialization of DynamoDB resource"""
        if self._dynamodb is None:
            kwargs = {
                'region_name': self.settings.AWS_REGION,
            }

            # Only use endpoint_url for LocalStack
            if self.settings.DYNAMODB_ENDPOINT:
                kwargs['endpoint_url'] = self.settings.DYNAMODB_ENDPOINT

            # Explicit credentials only in LocalStack mode, otherwise boto3 uses the IAM role
            if self.settings.DYNAMODB_ENDPOINT and self.settings.AWS_ACCESS_KEY_ID:
                kwargs['aws_access_key_id'] = self.settings.AWS_ACCESS_KEY_ID
                kwargs['aws_secret_access_key'] = self.settings.AWS_SECRET_ACCESS_KEY
                logger.info("Using explicit AWS credentials (LocalStack mode)")
            else:
                logger.info("Using IAM role credentials (AWS mode)")

            self._dynamodb = boto3.resource('dynamodb', **kwargs)
        return self._dynamodb

    @property
    def progress_table(self):
        if self._progress_table is None:
            self._progress_table = self.dynamodb.Table(self.settings.DYNAMODB_PROGRESS_TABLE)
        return self._progress_table


# ============= KEY BUILDERS =============

def build_user_pk(user_id: str) -> str:
    """PK for every item of a user: USER#{user_id}"""
    return f"USER#{user_id}"


def build_topic_sk(topic_id: str) -> str:
    return f"{TOPIC_SK_PREFIX}{topic_id}"


def build_badge_sk(badge_id: str) -> str:
    return f"{BADGE_SK_PREFIX}{badge_id}"


def build_goal_sk(week_start: str) -> str:
    """SK for a weekly goal, week_start as YYYY-MM-DD"""
    return f"{GOAL_SK_PREFIX}{week_start}"


def strip_sk_prefix(sk: str, prefix: str) -> str:
    return sk[len(prefix):] if sk.startswith(prefix) else sk


# ============= HELPER FUNCTIONS =============

def dynamodb_dict(data: Dict[str, Any]) -> Dict[str, Any]:
    """Convert Python dict to DynamoDB compatible dict (handles Decimal, drops None)"""
    return {k: dynamodb_value(v) for k, v in data.items() if v is not None}


def dynamodb_value(value: Any) -> Any:
    """Convert Python value to DynamoDB compatible value"""
    if isinstance(value, float):
        return Decimal(str(value))
    elif isinstance(value, dict):
        return {k: dynamodb_value(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [dynamodb_value(item) for item in value]
    return value


def python_dict(data: Dict[str, Any]) -> Dict[str, Any]:
    """Convert DynamoDB dict to Python dict (handles Decimal)"""
    return {k: python_value(v) for k, v in data.items()}


def python_value(value: Any) -> Any:
    """Convert DynamoDB value to Python value"""
    if isinstance(value, Decimal):
        return int(value) if value % 1 == 0 else float(value)
    elif isinstance(value, dict):
        return {k: python_value(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [python_value(item) for item in value]
    return value


# Global instance
db_client: Optional[DynamoDBClient] = None


def get_db_client() -> DynamoDBClient:
    """Returns the shared DynamoDB client, created on first use"""
    global db_client
    if db_client is None:
        db_client = DynamoDBClient()
    return db_client
