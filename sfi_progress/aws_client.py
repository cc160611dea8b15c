"""
AWS Client for SNS notifications

In-app notifications (badge unlocks, streaks, XP milestones, quiz results)
are published to an SNS topic; delivery to the device is handled downstream.
"""
import json
import boto3
import logging
from typing import Optional

from sfi_progress.config import get_settings

logger = logging.getLogger(__name__)


class AWSClient:
    """AWS services client wrapper"""

    def __init__(self, settings=None):
        self.settings = settings or get_settings()
        self._sns_client = None

    @property
    def sns(self):
        """Lazy initialization of SNS client"""
        if self._sns_client is None:
            kwargs = {
                'region_name': self.settings.AWS_REGION,
            }
            if self.settings.AWS_ACCESS_KEY_ID:
                kwargs['aws_access_key_id'] = self.settings.AWS_ACCESS_KEY_ID
                kwargs['aws_secret_access_key'] = self.settings.AWS_SECRET_ACCESS_KEY
            self._sns_client = boto3.client('sns', **kwargs)
        return self._sns_client

    async def publish_notification(
        self,
        message: str,
        subject: Optional[str] = None,
        attributes: Optional[dict] = None
    ) -> Optional[str]:
        """
        Publish notification to SNS topic

        Args:
            message: Notification message
            subject: Message subject (optional)
            attributes: Message attributes (optional)

        Returns:
            Message ID if published successfully
        """
        if not self.settings.SNS_TOPIC_ARN:
            logger.warning("SNS_TOPIC_ARN not configured, skipping notification")
            return None

        try:
            kwargs = {
                'TopicArn': self.settings.SNS_TOPIC_ARN,
                'Message': message,
            }

            if subject:
                kwargs['Subject'] = subject

            if attributes:
                kwargs['MessageAttributes'] = {
                    k: {'DataType': 'String', 'StringValue': str(v)}
                    for k, v in attributes.items()
                }

            response = self.sns.publish(**kwargs)
            message_id = response['MessageId']

            logger.info(f"Published SNS notification: {message_id}")
            return message_id

        except Exception as e:
            logger.error(f"Error publishing notification: {str(e)}")
            return None

    async def notify_in_app(
        self,
        user_id: Optional[str],
        title: str,
        body: str,
        tag: str,
        url: str = "/",
    ) -> Optional[str]:
        """Send an in-app notification (title/body/tag/url) for a user"""
        payload = {"title": title, "body": body, "tag": tag, "url": url}
        return await self.publish_notification(
            message=json.dumps(payload, ensure_ascii=False),
            attributes={
                'user_id': user_id or 'anonymous',
                'event_type': 'in_app',
                'tag': tag,
            }
        )
