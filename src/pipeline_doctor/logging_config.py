"""
Centralized logging configuration for Pipeline Doctor.

Functions:
    setup_logging: Configure root logging handlers and formatters.
    configure_cli_logging: Verbosity-flag wrapper for the CLI.

Example:
    >>> from pipeline_doctor.logging_config import setup_logging
    >>> setup_logging(level='DEBUG', log_file='pipeline_doctor.log')
"""
import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Optional

from .logging_context import ContextFilter, JSONFormatter


# Track if logging has been configured to avoid duplicate configuration
_LOGGING_CONFIGURED = False

DEFAULT_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(
    level: str = 'INFO',
    log_file: Optional[str | Path] = None,
    log_format: Optional[str] = None,
    use_json: bool = False,
    max_bytes: int = 10 * 1024 * 1024,  # 10MB
    backup_count: int = 5
) -> None:
    """
    Configure logging for Pipeline Doctor.

    Sets up console and optional rotating file logging. Calling it again
    only updates the level.

    Args:
        level: Log level ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL')
        log_file: Optional path to log file
        log_format: Custom log format string (ignored when use_json is set)
        use_json: Emit one JSON object per line with correlation fields
        max_bytes: Maximum size of log file before rotation
        backup_count: Number of backup log files to keep
    """
    global _LOGGING_CONFIGURED

    root_logger = logging.getLogger()

    if _LOGGING_CONFIGURED:
        root_logger.setLevel(getattr(logging, level.upper()))
        return

    if use_json:
        formatter: logging.Formatter = JSONFormatter()
    else:
        formatter = logging.Formatter(log_format or DEFAULT_FORMAT)

    root_logger.setLevel(getattr(logging, level.upper()))

    # Lambda pre-installs a handler on the root logger
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.DEBUG)
    console_handler.setFormatter(formatter)
    console_handler.addFilter(ContextFilter())
    root_logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            log_path,
            maxBytes=max_bytes,
            backupCount=backup_count
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        file_handler.addFilter(ContextFilter())
        root_logger.addHandler(file_handler)

        root_logger.info(f"Logging to file: {log_path}")

    _LOGGING_CONFIGURED = True

    root_logger.debug(f"Logging configured at {level} level")


def reset_logging_config() -> None:
    """
    Reset logging configuration.

    Primarily useful in tests.
    """
    global _LOGGING_CONFIGURED

    logging.getLogger().handlers.clear()
    _LOGGING_CONFIGURED = False


def configure_cli_logging(verbose: bool = False, quiet: bool = False) -> None:
    """
    Configure logging for CLI usage.

    Args:
        verbose: Enable DEBUG level logging
        quiet: Only show WARNING and above
    """
    if quiet:
        level = 'WARNING'
    elif verbose:
        level = 'DEBUG'
    else:
        level = 'INFO'

    setup_logging(level=level)
