"""Configuration management for Pipeline Doctor.

This module provides configuration loading and validation. Configuration can
be loaded from environment variables, YAML/TOML files, or direct
instantiation.

Classes:
    DoctorConfig: Main configuration dataclass with validation.

Functions:
    _get_int_env: Safely extract integer values from environment variables.

Example:
    >>> from pipeline_doctor.config import DoctorConfig
    >>>
    >>> # Lambda-style: environment variables only
    >>> config = DoctorConfig.from_env()
    >>>
    >>> # Recommended: file with env overrides, falling back to env only
    >>> config = DoctorConfig.load()
    >>> config.validate()
"""
import os
import logging
from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional

from .constants import (
    DEFAULT_MAX_RETRIES,
    DEFAULT_TIMEOUT_CEILING_MINUTES,
    DEFAULT_BACKOFF_SECONDS,
    DEFAULT_STAGE_RETRY_MODE,
    DEFAULT_SQLITE_PATH,
    VALID_STORE_BACKENDS,
    VALID_STAGE_RETRY_MODES,
)
from .exceptions import InvalidConfigError

logger = logging.getLogger(__name__)


def _get_env(*keys: str, default: Optional[str] = None) -> Optional[str]:
    """Return the first non-empty environment variable among ``keys``."""
    for key in keys:
        value = os.getenv(key)
        if value:
            return value
    return default


def _get_int_env(key: str, default: int, minimum: int = 1, aliases: tuple = ()) -> int:
    """Safely get an integer from environment variable.

    Returns the default value if the variable is not set, cannot be parsed,
    or is below ``minimum``.

    Args:
        key: Environment variable name to read.
        default: Default value to return if variable is invalid or missing.
        minimum: Smallest accepted value.
        aliases: Further variable names tried in order when ``key`` is unset.

    Example:
        >>> os.environ['MAX_RETRIES'] = '3'
        >>> _get_int_env('MAX_RETRIES', 2, minimum=0)
        3
        >>> os.environ['BAD_VAR'] = 'not_a_number'
        >>> _get_int_env('BAD_VAR', 50)  # Logs warning, returns default
        50
    """
    value = _get_env(key, *aliases)
    if value is None:
        return default

    try:
        result = int(value)
        if result < minimum:
            logger.warning(
                f"Environment variable {key}={value} must be >= {minimum}. Using default: {default}"
            )
            return default
        return result
    except ValueError:
        logger.warning(
            f"Environment variable {key}={value} is not a valid integer. Using default: {default}"
        )
        return default


@dataclass
class DoctorConfig:
    """
    Configuration for Pipeline Doctor.

    Configuration can be loaded from:
    1. Configuration files (YAML or TOML)
    2. Environment variables (override file settings)
    3. Direct instantiation with parameters

    Environment variables:
        TABLE / PIPELINE_DOCTOR_TABLE: DynamoDB incident table
        TOPIC_ARN / PIPELINE_DOCTOR_TOPIC_ARN: SNS escalation topic
        MAX_RETRIES / PIPELINE_DOCTOR_MAX_RETRIES: Retry budget (default: 2)
        PIPELINE_DOCTOR_STORE_BACKEND: dynamodb | sqlite | memory (default: dynamodb)
        PIPELINE_DOCTOR_SQLITE_PATH: SQLite file for the sqlite backend
        PIPELINE_DOCTOR_SLACK_WEBHOOK_URL: Slack incoming webhook for escalations
        PIPELINE_DOCTOR_TIMEOUT_CEILING_MINUTES: Timeout set by bump action (default: 25)
        PIPELINE_DOCTOR_BACKOFF_SECONDS: Backoff delay (default: 30)
        PIPELINE_DOCTOR_STAGE_RETRY_MODE: FAILED_ACTIONS | ALL_ACTIONS
        PIPELINE_DOCTOR_SUPPRESS_REPEAT_ESCALATIONS: Skip re-notifying UNHEALED incidents
        AWS_REGION: AWS region for all clients
        PIPELINE_DOCTOR_WEBHOOK_SECRET: HMAC secret required by the HTTP receiver
        PIPELINE_DOCTOR_LOG_LEVEL: Logging level (default: "INFO")
        PIPELINE_DOCTOR_LOG_FILE: Log file path (optional)
        PIPELINE_DOCTOR_LOG_JSON: Emit JSON log lines

    Config file locations (searched in order):
        ./pipeline-doctor.yaml, ./pipeline-doctor.toml
        ~/.pipeline-doctor.yaml, ~/.pipeline-doctor.toml
        /etc/pipeline-doctor.yaml, /etc/pipeline-doctor.toml
    """
    # Incident store
    store_backend: str = "dynamodb"
    table_name: Optional[str] = None
    sqlite_path: str = DEFAULT_SQLITE_PATH

    # Escalation channel
    topic_arn: Optional[str] = None
    slack_webhook_url: Optional[str] = None

    # Remediation policy
    max_retries: int = DEFAULT_MAX_RETRIES
    timeout_ceiling_minutes: int = DEFAULT_TIMEOUT_CEILING_MINUTES
    backoff_seconds: int = DEFAULT_BACKOFF_SECONDS
    stage_retry_mode: str = DEFAULT_STAGE_RETRY_MODE
    suppress_repeat_escalations: bool = False

    region: Optional[str] = None

    # HTTP receiver
    webhook_secret: Optional[str] = None

    # Logging configuration
    log_level: str = "INFO"
    log_file: Optional[str] = None
    log_json: bool = False

    def validate(self) -> None:
        """
        Validate configuration values.

        Raises:
            InvalidConfigError: If any configuration value is invalid
        """
        errors = []

        # File values arrive untyped
        for name in ("max_retries", "timeout_ceiling_minutes", "backoff_seconds"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                errors.append(f"{name} must be an integer, got {value!r}")
        typed = not errors
        for name in ("suppress_repeat_escalations", "log_json"):
            value = getattr(self, name)
            if not isinstance(value, bool):
                errors.append(f"{name} must be a boolean, got {value!r}")

        if self.store_backend not in VALID_STORE_BACKENDS:
            errors.append(
                f"store_backend must be one of {VALID_STORE_BACKENDS}, got '{self.store_backend}'"
            )
        if self.store_backend == "dynamodb" and not self.table_name:
            errors.append("table_name must be specified when store_backend is 'dynamodb'")

        if typed:
            if self.max_retries < 0:
                errors.append(f"max_retries must be non-negative, got {self.max_retries}")
            # CodeBuild accepts build timeouts between 5 and 2160 minutes
            if not (5 <= self.timeout_ceiling_minutes <= 2160):
                errors.append(
                    f"timeout_ceiling_minutes must be between 5 and 2160, got {self.timeout_ceiling_minutes}"
                )
            if self.backoff_seconds < 0:
                errors.append(f"backoff_seconds must be non-negative, got {self.backoff_seconds}")
        if self.stage_retry_mode not in VALID_STAGE_RETRY_MODES:
            errors.append(
                f"stage_retry_mode must be one of {VALID_STAGE_RETRY_MODES}, got '{self.stage_retry_mode}'"
            )

        valid_log_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if not isinstance(self.log_level, str) or self.log_level.upper() not in valid_log_levels:
            errors.append(
                f"log_level must be one of {valid_log_levels}, got '{self.log_level}'"
            )

        if errors:
            raise InvalidConfigError("Configuration validation failed:\n  - " + "\n  - ".join(errors))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary with secrets masked."""
        data = asdict(self)
        if data["slack_webhook_url"]:
            data["slack_webhook_url"] = "***"
        if data["webhook_secret"]:
            data["webhook_secret"] = "***"
        return data

    @classmethod
    def from_env(cls) -> 'DoctorConfig':
        """
        Create configuration from environment variables only.

        This is what the Lambda handler uses.

        Returns:
            DoctorConfig instance populated from environment variables
        """
        return cls(
            store_backend=_get_env("PIPELINE_DOCTOR_STORE_BACKEND", default="dynamodb"),
            table_name=_get_env("PIPELINE_DOCTOR_TABLE", "TABLE"),
            sqlite_path=_get_env("PIPELINE_DOCTOR_SQLITE_PATH", default=DEFAULT_SQLITE_PATH),
            topic_arn=_get_env("PIPELINE_DOCTOR_TOPIC_ARN", "TOPIC_ARN"),
            slack_webhook_url=_get_env("PIPELINE_DOCTOR_SLACK_WEBHOOK_URL"),
            max_retries=_get_int_env(
                "PIPELINE_DOCTOR_MAX_RETRIES", DEFAULT_MAX_RETRIES,
                minimum=0, aliases=("MAX_RETRIES",)
            ),
            timeout_ceiling_minutes=_get_int_env(
                "PIPELINE_DOCTOR_TIMEOUT_CEILING_MINUTES", DEFAULT_TIMEOUT_CEILING_MINUTES
            ),
            backoff_seconds=_get_int_env(
                "PIPELINE_DOCTOR_BACKOFF_SECONDS", DEFAULT_BACKOFF_SECONDS, minimum=0
            ),
            stage_retry_mode=_get_env("PIPELINE_DOCTOR_STAGE_RETRY_MODE", default=DEFAULT_STAGE_RETRY_MODE),
            suppress_repeat_escalations=(
                _get_env("PIPELINE_DOCTOR_SUPPRESS_REPEAT_ESCALATIONS", default="false").lower()
                in ("true", "1", "yes")
            ),
            region=_get_env("AWS_REGION", "AWS_DEFAULT_REGION"),
            webhook_secret=_get_env("PIPELINE_DOCTOR_WEBHOOK_SECRET"),
            log_level=_get_env("PIPELINE_DOCTOR_LOG_LEVEL", default="INFO"),
            log_file=_get_env("PIPELINE_DOCTOR_LOG_FILE"),
            log_json=_get_env("PIPELINE_DOCTOR_LOG_JSON", default="false").lower() in ("true", "1", "yes"),
        )

    @classmethod
    def from_file(cls, config_path: Optional[str] = None) -> 'DoctorConfig':
        """
        Create configuration from file with environment variable overrides.

        If no path is provided, searches standard locations. On a parse
        failure the environment-only configuration is used instead.

        Args:
            config_path: Optional explicit path to config file.

        Raises:
            FileNotFoundError: If explicit config_path doesn't exist

        Example:
            >>> config = DoctorConfig.from_file("pipeline-doctor.yaml")
            >>> config = DoctorConfig.from_file()  # Auto-search
        """
        from .config_loader import load_config_with_overrides

        try:
            config_dict = load_config_with_overrides(config_path)
        except FileNotFoundError:
            raise
        except (ValueError, OSError) as e:
            logger.error(f"Failed to load configuration from file: {e}")
            logger.warning("Falling back to environment variable configuration")
            return cls.from_env()

        return cls(**config_dict)

    @classmethod
    def load(cls, config_path: Optional[str] = None, use_file: bool = True) -> 'DoctorConfig':
        """
        Load configuration with automatic fallback.

        Args:
            config_path: Optional explicit path to config file
            use_file: If True, attempts to load from file before env vars

        Example:
            >>> config = DoctorConfig.load()                  # file, then env
            >>> config = DoctorConfig.load(use_file=False)    # env only
        """
        if use_file:
            return cls.from_file(config_path)
        else:
            return cls.from_env()
