"""
Structured logging with correlation fields.

Every log line emitted while an event is being handled carries the
incident identity and the envelope id, so a single remediation can be
followed across store, executor and notifier logs.
"""

import contextvars
import logging
import json
from typing import Any, Optional
from datetime import datetime, timezone

CONTEXT_FIELDS = ('event_id', 'incident_id', 'source_kind', 'request_id')

# Context variables survive await points within one invocation
request_context: contextvars.ContextVar[dict] = contextvars.ContextVar(
    'request_context', default={}
)


class ContextualLogger(logging.LoggerAdapter):
    """
    Logger adapter that injects correlation fields into log records.

    Usage:
        logger = get_logger(__name__)
        with LoggingContext(incident_id='codebuild:b1'):
            logger.info("Remediating")
    """

    def process(self, msg: str, kwargs: dict) -> tuple[str, dict]:
        ctx = request_context.get({})
        extra = dict(kwargs.get('extra') or {})

        for key in CONTEXT_FIELDS:
            if ctx.get(key) is not None:
                extra[key] = ctx[key]

        kwargs['extra'] = extra
        return msg, kwargs


class ContextFilter(logging.Filter):
    """Copy correlation fields onto records from plain stdlib loggers."""

    def filter(self, record: logging.LogRecord) -> bool:
        ctx = request_context.get({})
        for key in CONTEXT_FIELDS:
            if ctx.get(key) is not None and not hasattr(record, key):
                setattr(record, key, ctx[key])
        return True


class JSONFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    One JSON object per line, which CloudWatch Logs Insights can query.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            'timestamp': datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno,
        }

        for key in CONTEXT_FIELDS:
            if hasattr(record, key):
                log_data[key] = getattr(record, key)

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data)


def get_logger(name: str) -> ContextualLogger:
    """
    Get a contextual logger instance.

    Args:
        name: Logger name (typically __name__)
    """
    return ContextualLogger(logging.getLogger(name), {})


def set_context(**kwargs: Any) -> contextvars.Token:
    """
    Set correlation context.

    Returns:
        Token to reset context later
    """
    current = request_context.get({}).copy()
    current.update(kwargs)
    return request_context.set(current)


def get_context() -> dict:
    """Get current correlation context."""
    return request_context.get({}).copy()


def clear_context() -> None:
    """Clear correlation context."""
    request_context.set({})


class LoggingContext:
    """
    Context manager for setting logging context.

    Usage:
        with LoggingContext(event_id='abc-123', incident_id='codebuild:b1'):
            logger.info("Processing")
    """

    def __init__(self, **kwargs: Any):
        self.kwargs = kwargs
        self.token: Optional[contextvars.Token] = None

    def __enter__(self):
        self.token = set_context(**self.kwargs)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.token:
            request_context.reset(self.token)
        return False
