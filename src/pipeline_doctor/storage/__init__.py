"""
Incident retry-state persistence for Pipeline Doctor.
"""

from .incident_store import (
    IncidentStore,
    DynamoDBIncidentStore,
    SQLiteIncidentStore,
    InMemoryIncidentStore,
)
from .factory import create_store

__all__ = [
    "IncidentStore",
    "DynamoDBIncidentStore",
    "SQLiteIncidentStore",
    "InMemoryIncidentStore",
    "create_store",
]
