"""
Configuration file loader for Pipeline Doctor.

Supports loading configuration from YAML and TOML files with environment
variable overrides and a standard search path.

File layout (YAML shown, TOML uses the same sections)::

    store:
      backend: dynamodb        # dynamodb | sqlite | memory
      table: SelfHealingIncidents
      sqlite_path: pipeline_doctor.db
    notifications:
      topic_arn: arn:aws:sns:us-east-1:123456789012:doctor
      slack_webhook_url: https://hooks.slack.com/services/...
    remediation:
      max_retries: 2
      timeout_ceiling_minutes: 25
      backoff_seconds: 30
      stage_retry_mode: FAILED_ACTIONS
      suppress_repeat_escalations: false
    aws:
      region: us-east-1
    server:
      webhook_secret: change-me
    logging:
      level: INFO
      file: /var/log/pipeline-doctor.log
      json: false
"""

import os
import logging
import tomllib
from pathlib import Path
from typing import Optional

import yaml

logger = logging.getLogger(__name__)

CONFIG_BASENAME = "pipeline-doctor"

# (section, key, flat field name)
_FIELD_MAP = [
    ("store", "backend", "store_backend"),
    ("store", "table", "table_name"),
    ("store", "sqlite_path", "sqlite_path"),
    ("notifications", "topic_arn", "topic_arn"),
    ("notifications", "slack_webhook_url", "slack_webhook_url"),
    ("remediation", "max_retries", "max_retries"),
    ("remediation", "timeout_ceiling_minutes", "timeout_ceiling_minutes"),
    ("remediation", "backoff_seconds", "backoff_seconds"),
    ("remediation", "stage_retry_mode", "stage_retry_mode"),
    ("remediation", "suppress_repeat_escalations", "suppress_repeat_escalations"),
    ("aws", "region", "region"),
    ("server", "webhook_secret", "webhook_secret"),
    ("logging", "level", "log_level"),
    ("logging", "file", "log_file"),
    ("logging", "json", "log_json"),
]


def load_yaml_file(path: Path) -> dict:
    """
    Load configuration from a YAML file.

    Args:
        path: Path to the YAML file

    Returns:
        Dictionary containing configuration data

    Raises:
        FileNotFoundError: If file doesn't exist
        ValueError: If YAML parsing fails
    """
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    try:
        with open(path, 'r') as f:
            config = yaml.safe_load(f)
            return config if config is not None else {}
    except yaml.YAMLError as e:
        raise ValueError(f"Failed to parse YAML config file {path}: {e}") from e


def load_toml_file(path: Path) -> dict:
    """
    Load configuration from a TOML file.

    Args:
        path: Path to the TOML file

    Returns:
        Dictionary containing configuration data

    Raises:
        FileNotFoundError: If file doesn't exist
        ValueError: If TOML parsing fails
    """
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    try:
        with open(path, 'rb') as f:
            return tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ValueError(f"Failed to parse TOML config file {path}: {e}") from e


def load_config_file(path: str) -> dict:
    """
    Load configuration from a YAML or TOML file.

    The file format is determined by the file extension (.yaml, .yml, or .toml).

    Raises:
        ValueError: If file extension is not supported or parsing fails
        FileNotFoundError: If file doesn't exist
    """
    file_path = Path(path)
    suffix = file_path.suffix.lower()

    if suffix in ['.yaml', '.yml']:
        return load_yaml_file(file_path)
    elif suffix == '.toml':
        return load_toml_file(file_path)
    else:
        raise ValueError(
            f"Unsupported config file format: {suffix}. "
            "Supported formats: .yaml, .yml, .toml"
        )


def find_config_file() -> Optional[Path]:
    """
    Search for a configuration file in standard locations.

    Search order:
    1. ./pipeline-doctor.yaml
    2. ./pipeline-doctor.toml
    3. ~/.pipeline-doctor.yaml
    4. ~/.pipeline-doctor.toml
    5. /etc/pipeline-doctor.yaml
    6. /etc/pipeline-doctor.toml

    Returns:
        Path to the first configuration file found, or None if no file is found
    """
    search_paths = [
        Path.cwd() / f"{CONFIG_BASENAME}.yaml",
        Path.cwd() / f"{CONFIG_BASENAME}.toml",
        Path.home() / f".{CONFIG_BASENAME}.yaml",
        Path.home() / f".{CONFIG_BASENAME}.toml",
        Path(f"/etc/{CONFIG_BASENAME}.yaml"),
        Path(f"/etc/{CONFIG_BASENAME}.toml"),
    ]

    for path in search_paths:
        if path.exists() and path.is_file():
            logger.info(f"Found configuration file: {path}")
            return path

    logger.debug("No configuration file found in standard locations")
    return None


def _first_env(*keys: str) -> Optional[str]:
    for key in keys:
        value = os.getenv(key)
        if value:
            return value
    return None


def _int_env(config: dict, section: str, key: str, *env_keys: str, minimum: int = 1) -> None:
    value = _first_env(*env_keys)
    if value is None:
        return
    try:
        result = int(value)
    except ValueError:
        logger.warning(f"Invalid {env_keys[0]}={value!r}, ignoring")
        return
    if result < minimum:
        logger.warning(f"{env_keys[0]}={value} must be >= {minimum}, ignoring")
        return
    config.setdefault(section, {})[key] = result


def get_env_config() -> dict:
    """
    Extract configuration from environment variables.

    Environment variables override file-based configuration. The short
    names ``TABLE``, ``TOPIC_ARN`` and ``MAX_RETRIES`` are accepted as
    well as their ``PIPELINE_DOCTOR_`` prefixed forms.

    Returns:
        Nested dictionary in the same layout as a config file
    """
    config: dict = {}

    def put(section: str, key: str, value: Optional[str]) -> None:
        if value:
            config.setdefault(section, {})[key] = value

    put("store", "backend", _first_env("PIPELINE_DOCTOR_STORE_BACKEND"))
    put("store", "table", _first_env("PIPELINE_DOCTOR_TABLE", "TABLE"))
    put("store", "sqlite_path", _first_env("PIPELINE_DOCTOR_SQLITE_PATH"))

    put("notifications", "topic_arn", _first_env("PIPELINE_DOCTOR_TOPIC_ARN", "TOPIC_ARN"))
    put("notifications", "slack_webhook_url", _first_env("PIPELINE_DOCTOR_SLACK_WEBHOOK_URL"))

    _int_env(config, "remediation", "max_retries", "PIPELINE_DOCTOR_MAX_RETRIES", "MAX_RETRIES", minimum=0)
    _int_env(config, "remediation", "timeout_ceiling_minutes", "PIPELINE_DOCTOR_TIMEOUT_CEILING_MINUTES")
    _int_env(config, "remediation", "backoff_seconds", "PIPELINE_DOCTOR_BACKOFF_SECONDS", minimum=0)
    put("remediation", "stage_retry_mode", _first_env("PIPELINE_DOCTOR_STAGE_RETRY_MODE"))

    suppress = _first_env("PIPELINE_DOCTOR_SUPPRESS_REPEAT_ESCALATIONS")
    if suppress:
        config.setdefault("remediation", {})["suppress_repeat_escalations"] = (
            suppress.lower() in ("true", "1", "yes")
        )

    put("aws", "region", _first_env("AWS_REGION", "AWS_DEFAULT_REGION"))
    put("server", "webhook_secret", _first_env("PIPELINE_DOCTOR_WEBHOOK_SECRET"))

    put("logging", "level", _first_env("PIPELINE_DOCTOR_LOG_LEVEL"))
    put("logging", "file", _first_env("PIPELINE_DOCTOR_LOG_FILE"))
    log_json = _first_env("PIPELINE_DOCTOR_LOG_JSON")
    if log_json:
        config.setdefault("logging", {})["json"] = log_json.lower() in ("true", "1", "yes")

    return config


def deep_merge(base: dict, override: dict) -> dict:
    """
    Deep merge two dictionaries, with override values taking precedence.
    """
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value

    return result


def flatten_config(config: dict) -> dict:
    """
    Flatten a sectioned configuration dictionary to DoctorConfig fields.

    Unknown sections and keys are ignored.
    """
    flat = {}
    for section, key, field_name in _FIELD_MAP:
        values = config.get(section)
        if isinstance(values, dict) and key in values:
            flat[field_name] = values[key]
    return flat


def merge_config(file_config: dict, env_config: dict) -> dict:
    """
    Merge file-based and environment-based configuration.

    Environment variables take precedence over file-based configuration.

    Returns:
        Merged configuration dictionary (flattened)
    """
    return flatten_config(deep_merge(file_config, env_config))


def load_config_with_overrides(config_path: Optional[str] = None) -> dict:
    """
    Load configuration from file with environment variable overrides.

    Args:
        config_path: Optional explicit path to config file.
                    If None, searches standard locations.

    Returns:
        Flat dictionary of DoctorConfig keyword arguments

    Raises:
        FileNotFoundError: If explicit config_path is provided but doesn't exist
        ValueError: If config parsing fails
    """
    file_config = {}

    if config_path:
        file_config = load_config_file(config_path)
        logger.info(f"Loaded configuration from: {config_path}")
    else:
        found_path = find_config_file()
        if found_path:
            file_config = load_config_file(str(found_path))
            logger.info(f"Loaded configuration from: {found_path}")

    env_config = get_env_config()
    if env_config:
        logger.info("Applying environment variable overrides")

    return merge_config(file_config, env_config)
