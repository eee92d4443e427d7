"""
Custom exception types for Pipeline Doctor.

Store, execution and notification failures are never recovered locally:
they propagate to the invocation boundary so the event source redelivers
the same event.
"""


class DoctorError(Exception):
    """Base exception for all Pipeline Doctor errors."""
    pass


# Event errors
class EventParseError(DoctorError):
    """Recognized failure envelope is missing required fields."""
    pass


# Incident store errors
class StoreError(DoctorError):
    """Incident store unreachable or rejected a read or write."""
    pass


# Decision errors
class ClassificationError(DoctorError):
    """Event could not be classified into a remediation action."""
    pass


# External service errors
class ExecutionError(DoctorError):
    """Orchestration API call failed while applying a remediation."""
    pass


class NotificationError(DoctorError):
    """Escalation message could not be delivered."""
    pass


# Configuration errors
class ConfigurationError(DoctorError):
    """Base exception for configuration errors."""
    pass


class InvalidConfigError(ConfigurationError):
    """Invalid configuration."""
    pass


class MissingConfigError(ConfigurationError):
    """Required configuration missing."""
    pass


__all__ = [
    "DoctorError",
    "EventParseError",
    "StoreError",
    "ClassificationError",
    "ExecutionError",
    "NotificationError",
    "ConfigurationError",
    "InvalidConfigError",
    "MissingConfigError",
]
