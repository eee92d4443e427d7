"""
Pipeline Doctor: self-healing controller for build and pipeline failures.
"""
from .version import __version__, VERSION_INFO, get_version, get_version_info
from .logging_context import (
    get_logger,
    set_context,
    get_context,
    clear_context,
    LoggingContext,
)
from .models import (
    FailureEvent,
    Incident,
    IncidentStatus,
    RemediationAction,
    SourceKind,
)
from .classifier import classify
from .events import parse_event
from .controller import IncidentController, ControllerOutcome, Outcome
from .metrics import get_metrics_text

__all__ = [
    "__version__",
    "VERSION_INFO",
    "get_version",
    "get_version_info",
    "get_logger",
    "set_context",
    "get_context",
    "clear_context",
    "LoggingContext",
    "FailureEvent",
    "Incident",
    "IncidentStatus",
    "RemediationAction",
    "SourceKind",
    "classify",
    "parse_event",
    "IncidentController",
    "ControllerOutcome",
    "Outcome",
    "get_metrics_text",
]
