"""
Escalation notifications for Pipeline Doctor.

Escalations go to Amazon SNS, Slack, or the log when no channel is set.
"""

from .notifiers import (
    Notifier,
    LogNotifier,
    SNSNotifier,
    SlackNotifier,
    MultiNotifier,
    create_notifier,
)

__all__ = [
    "Notifier",
    "LogNotifier",
    "SNSNotifier",
    "SlackNotifier",
    "MultiNotifier",
    "create_notifier",
]
