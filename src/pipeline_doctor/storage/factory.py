"""
Factory for creating incident stores.
"""
import logging

from ..config import DoctorConfig
from ..exceptions import MissingConfigError, InvalidConfigError
from .incident_store import (
    IncidentStore,
    DynamoDBIncidentStore,
    SQLiteIncidentStore,
    InMemoryIncidentStore,
)

logger = logging.getLogger(__name__)


def create_store(config: DoctorConfig) -> IncidentStore:
    """
    Build the incident store selected by ``config.store_backend``.

    Args:
        config: Loaded configuration

    Returns:
        IncidentStore instance

    Raises:
        MissingConfigError: If the dynamodb backend has no table name
        InvalidConfigError: If the backend name is not recognized
    """
    backend = (config.store_backend or "").lower()

    if backend == "dynamodb":
        if not config.table_name:
            raise MissingConfigError("TABLE must be set for the dynamodb store backend")
        logger.info(f"Using DynamoDB incident store: {config.table_name}")
        return DynamoDBIncidentStore(config.table_name, region=config.region)

    elif backend == "sqlite":
        logger.info(f"Using SQLite incident store: {config.sqlite_path}")
        return SQLiteIncidentStore(config.sqlite_path)

    elif backend == "memory":
        logger.warning("Using in-memory incident store; retry state will not survive restarts")
        return InMemoryIncidentStore()

    else:
        raise InvalidConfigError(
            f"Unknown store backend: {config.store_backend}. "
            f"Supported backends: dynamodb, sqlite, memory"
        )
