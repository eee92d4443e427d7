"""
Escalation notification channels for Pipeline Doctor.

Escalation is part of the terminal state transition, so delivery failures
raise NotificationError instead of being swallowed.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, List, Optional

import requests

from ..config import DoctorConfig
from ..exceptions import NotificationError

logger = logging.getLogger(__name__)


class Notifier(ABC):
    """Abstract base class for escalation notifiers."""

    @abstractmethod
    async def publish(self, message: str) -> None:
        """
        Deliver a human-readable escalation message.

        Args:
            message: Message text

        Raises:
            NotificationError: If the channel rejects the message
        """
        pass


class LogNotifier(Notifier):
    """
    Writes escalations to the log.

    Used when no channel is configured, so escalations still leave a trace.
    """

    def __init__(self, level: int = logging.WARNING):
        self.level = level

    async def publish(self, message: str) -> None:
        logger.log(self.level, f"Escalation (no notification channel configured): {message}")


class SNSNotifier(Notifier):
    """
    Amazon SNS topic notifier.

    Example:
        >>> notifier = SNSNotifier("arn:aws:sns:us-east-1:123456789012:doctor")
        >>> await notifier.publish("Build b1 failed after 2 retries")
    """

    def __init__(
        self,
        topic_arn: str,
        region: Optional[str] = None,
        client: Any = None
    ):
        """
        Initialize SNS notifier.

        Args:
            topic_arn: Topic to publish to
            region: AWS region
            client: Pre-built boto3 SNS client
        """
        self.topic_arn = topic_arn

        if client is None:
            import boto3
            client = boto3.client('sns', region_name=region)
        self.client = client

    async def publish(self, message: str) -> None:
        from botocore.exceptions import BotoCoreError, ClientError

        try:
            response = await asyncio.to_thread(
                self.client.publish,
                TopicArn=self.topic_arn,
                Message=message
            )
        except (BotoCoreError, ClientError) as e:
            raise NotificationError(f"SNS publish to {self.topic_arn} failed: {e}") from e

        logger.debug(f"SNS notification sent: {response.get('MessageId')}")


class SlackNotifier(Notifier):
    """
    Slack incoming-webhook notifier.

    Example:
        >>> notifier = SlackNotifier("https://hooks.slack.com/services/...")
    """

    def __init__(self, webhook_url: str, channel: Optional[str] = None, timeout: float = 10):
        """
        Initialize Slack notifier.

        Args:
            webhook_url: Slack incoming webhook URL
            channel: Optional channel override
            timeout: Request timeout in seconds
        """
        self.webhook_url = webhook_url
        self.channel = channel
        self.timeout = timeout

    def _post(self, message: str) -> None:
        payload = {
            "text": message,
            "attachments": [
                {
                    "color": "#FF0000",
                    "title": "Pipeline Doctor escalation",
                    "text": message,
                    "footer": "Pipeline Doctor",
                }
            ],
        }
        if self.channel:
            payload["channel"] = self.channel

        response = requests.post(self.webhook_url, json=payload, timeout=self.timeout)
        response.raise_for_status()

    async def publish(self, message: str) -> None:
        try:
            await asyncio.to_thread(self._post, message)
        except requests.RequestException as e:
            raise NotificationError(f"Slack notification failed: {e}") from e

        logger.debug("Slack notification sent")


class MultiNotifier(Notifier):
    """Publishes to several channels in order; the first failure propagates."""

    def __init__(self, notifiers: List[Notifier]):
        self.notifiers = notifiers

    async def publish(self, message: str) -> None:
        for notifier in self.notifiers:
            await notifier.publish(message)


def create_notifier(config: DoctorConfig) -> Notifier:
    """
    Build the escalation notifier from configuration.

    SNS is used when ``topic_arn`` is set, Slack when ``slack_webhook_url``
    is set, both when both are set, and LogNotifier otherwise.
    """
    notifiers: List[Notifier] = []
    if config.topic_arn:
        notifiers.append(SNSNotifier(config.topic_arn, region=config.region))
    if config.slack_webhook_url:
        notifiers.append(SlackNotifier(config.slack_webhook_url))

    if not notifiers:
        logger.warning("No escalation channel configured; escalations will only be logged")
        return LogNotifier()
    if len(notifiers) == 1:
        return notifiers[0]
    return MultiNotifier(notifiers)
