"""
Client for Content Service API

Provides the badge catalog and the topic ids that belong to each course
level (used by the course-completion badges).
"""
import httpx
import logging
from typing import Optional, Dict, Any, List

from sfi_progress.config import get_settings
from sfi_progress.exceptions import ContentServiceError
from sfi_progress.schemas_badges import BadgeMetadata

logger = logging.getLogger(__name__)


class ContentClient:
    """Thin async wrapper over the Content Service endpoints"""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        settings = get_settings()
        self.base_url = (base_url or settings.CONTENT_SERVICE_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.CONTENT_SERVICE_TIMEOUT
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    async def _get_json(self, operation: str, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        try:
            async with self._client() as client:
                response = await client.get(f"{self.base_url}{path}", params=params)
                response.raise_for_status()
                return response.json()
        except httpx.HTTPError as e:
            logger.error(f"Error calling Content Service {path}: {str(e)}")
            raise ContentServiceError(operation, str(e)) from e
        except ValueError as e:
            logger.error(f"Invalid JSON from Content Service {path}: {str(e)}")
            raise ContentServiceError(operation, "invalid response body") from e

    async def fetch_all_badges(self) -> List[BadgeMetadata]:
        """
        Get the full badge catalog ordered by sort_order.

        Entries that fail validation are skipped with a warning so one bad
        row never hides the rest of the catalog.
        """
        data = await self._get_json("fetch_all_badges", "/api/v1/badges")
        if isinstance(data, dict):
            data = data.get("badges", [])

        badges: List[BadgeMetadata] = []
        for item in data or []:
            try:
                badges.append(BadgeMetadata.model_validate(item))
            except ValueError as e:
                logger.warning(f"Skipping invalid badge entry {item!r}: {str(e)}")

        badges.sort(key=lambda b: b.sort_order)
        logger.info(f"Retrieved {len(badges)} badges from Content Service")
        return badges

    async def fetch_topic_ids_by_level(self, level: str) -> List[str]:
        """
        Get the ids of all topics in a course level (A, B, C, D).

        Returns:
            List of topic ids, in Content Service order
        """
        data = await self._get_json(
            "fetch_topic_ids_by_level", "/api/v1/topics", params={"level": level}
        )
        if isinstance(data, dict):
            data = data.get("topics", [])

        topic_ids = [str(t["id"]) for t in data or [] if isinstance(t, dict) and t.get("id") is not None]
        logger.info(f"Retrieved {len(topic_ids)} topics for level {level}")
        return topic_ids
