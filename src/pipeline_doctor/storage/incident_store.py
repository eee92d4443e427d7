"""
Incident retry-state storage for Pipeline Doctor.

Each store is a durable key-value record of retry count and status keyed by
incident identity. Writes are unconditional overwrites (last writer wins);
there is no optimistic concurrency check.

Classes:
    IncidentStore: Abstract store interface
    DynamoDBIncidentStore: DynamoDB table via boto3
    SQLiteIncidentStore: Local SQLite database
    InMemoryIncidentStore: Process-local dictionary
"""
import asyncio
import logging
import sqlite3
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import ValidationError

from ..exceptions import StoreError
from ..models import Incident

logger = logging.getLogger(__name__)


class IncidentStore(ABC):
    """Abstract base class for incident stores."""

    @abstractmethod
    async def get(self, identity: str) -> Optional[Incident]:
        """
        Load the incident for an identity.

        Args:
            identity: Incident identity

        Returns:
            Stored Incident, or None if the identity has never been written

        Raises:
            StoreError: If the backend cannot be read
        """
        pass

    @abstractmethod
    async def put(self, incident: Incident) -> None:
        """
        Overwrite the record for ``incident.identity``.

        Raises:
            StoreError: If the backend rejects the write
        """
        pass


class DynamoDBIncidentStore(IncidentStore):
    """
    DynamoDB-backed incident store.

    Items use the attribute layout ``incidentId`` (S, hash key),
    ``retries`` (N), ``lastAction`` (S), ``status`` (S), ``lastUpdated`` (S).

    Example:
        >>> store = DynamoDBIncidentStore("SelfHealingIncidents", region="us-east-1")
        >>> incident = await store.get("codebuild:b1")
    """

    def __init__(
        self,
        table_name: str,
        region: Optional[str] = None,
        client: Any = None
    ):
        """
        Initialize DynamoDB store.

        Args:
            table_name: DynamoDB table name
            region: AWS region (default credentials chain region if None)
            client: Pre-built boto3 DynamoDB client
        """
        self.table_name = table_name

        if client is None:
            import boto3
            client = boto3.client('dynamodb', region_name=region)
        self.client = client

        logger.info(f"Initialized DynamoDB incident store on table {table_name}")

    @staticmethod
    def _to_item(incident: Incident) -> Dict[str, Any]:
        item = {
            'incidentId': {'S': incident.identity},
            'retries': {'N': str(incident.retry_count)},
        }
        if incident.last_action:
            item['lastAction'] = {'S': incident.last_action}
        if incident.status:
            item['status'] = {'S': incident.status.value}
        if incident.last_updated:
            item['lastUpdated'] = {'S': incident.last_updated.isoformat()}
        return item

    @staticmethod
    def _from_item(item: Dict[str, Any]) -> Incident:
        retries = item.get('retries', {}).get('N')
        try:
            return Incident(
                identity=item['incidentId']['S'],
                retry_count=int(retries) if retries else 0,
                last_action=item.get('lastAction', {}).get('S'),
                status=item.get('status', {}).get('S'),
                last_updated=item.get('lastUpdated', {}).get('S'),
            )
        except (KeyError, ValueError, ValidationError) as e:
            raise StoreError(f"Malformed incident item {item.get('incidentId')}: {e}") from e

    async def get(self, identity: str) -> Optional[Incident]:
        from botocore.exceptions import BotoCoreError, ClientError

        try:
            out = await asyncio.to_thread(
                self.client.get_item,
                TableName=self.table_name,
                Key={'incidentId': {'S': identity}}
            )
        except (BotoCoreError, ClientError) as e:
            raise StoreError(f"Failed to read incident {identity}: {e}") from e

        item = out.get('Item')
        if not item:
            return None
        return self._from_item(item)

    async def put(self, incident: Incident) -> None:
        from botocore.exceptions import BotoCoreError, ClientError

        try:
            await asyncio.to_thread(
                self.client.put_item,
                TableName=self.table_name,
                Item=self._to_item(incident)
            )
        except (BotoCoreError, ClientError) as e:
            raise StoreError(f"Failed to write incident {incident.identity}: {e}") from e

        logger.debug(f"Stored incident {incident.identity} (retries={incident.retry_count})")


class SQLiteIncidentStore(IncidentStore):
    """
    SQLite-based incident store for running outside AWS.

    Example:
        >>> store = SQLiteIncidentStore("pipeline_doctor.db")
        >>> await store.put(incident)
    """

    def __init__(self, db_path: str | Path = "pipeline_doctor.db"):
        """
        Initialize incident store.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path)
        try:
            self._init_database()
        except sqlite3.Error as e:
            raise StoreError(f"Failed to initialize {self.db_path}: {e}") from e

    def _init_database(self) -> None:
        """Initialize database schema."""
        with self._get_connection() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS incidents (
                    incident_id TEXT PRIMARY KEY,
                    retries INTEGER NOT NULL,
                    last_action TEXT,
                    status TEXT,
                    last_updated TEXT
                )
            """)
            conn.commit()
            logger.info(f"Database initialized at {self.db_path}")

    @contextmanager
    def _get_connection(self):
        """Context manager for database connections."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    def _get_sync(self, identity: str) -> Optional[Incident]:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM incidents WHERE incident_id = ?",
                (identity,)
            ).fetchone()

        if row is None:
            return None
        return Incident(
            identity=row['incident_id'],
            retry_count=row['retries'],
            last_action=row['last_action'],
            status=row['status'],
            last_updated=row['last_updated'],
        )

    def _put_sync(self, incident: Incident) -> None:
        with self._get_connection() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO incidents
                (incident_id, retries, last_action, status, last_updated)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    incident.identity,
                    incident.retry_count,
                    incident.last_action,
                    incident.status.value if incident.status else None,
                    incident.last_updated.isoformat() if incident.last_updated else None,
                )
            )
            conn.commit()

    async def get(self, identity: str) -> Optional[Incident]:
        try:
            return await asyncio.to_thread(self._get_sync, identity)
        except sqlite3.Error as e:
            raise StoreError(f"Failed to read incident {identity}: {e}") from e
        except ValidationError as e:
            raise StoreError(f"Malformed incident row {identity}: {e}") from e

    async def put(self, incident: Incident) -> None:
        try:
            await asyncio.to_thread(self._put_sync, incident)
        except sqlite3.Error as e:
            raise StoreError(f"Failed to write incident {incident.identity}: {e}") from e


class InMemoryIncidentStore(IncidentStore):
    """Dictionary-backed store for tests and dry runs. Not durable."""

    def __init__(self):
        self._items: Dict[str, Incident] = {}

    async def get(self, identity: str) -> Optional[Incident]:
        incident = self._items.get(identity)
        return incident.model_copy() if incident else None

    async def put(self, incident: Incident) -> None:
        self._items[incident.identity] = incident.model_copy()

    def __len__(self) -> int:
        return len(self._items)
