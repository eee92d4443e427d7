"""
Data models for Pipeline Doctor using Pydantic for validation.
"""
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union
from enum import Enum
from functools import lru_cache

from pydantic import BaseModel, Field, field_validator
from dateutil import parser as date_parser


# Last-action tag written when the retry budget is exhausted
GAVE_UP = "GAVE_UP"


@lru_cache(maxsize=1024)
def _parse_timestamp_cached(timestamp_str: str) -> Optional[datetime]:
    """Parse an ISO 8601 (or similar) timestamp string, caching the result."""
    try:
        return date_parser.parse(timestamp_str)
    except (ValueError, TypeError, OverflowError):
        return None


def _coerce_timestamp(v: Any) -> Optional[datetime]:
    if v is None:
        return None
    if isinstance(v, datetime):
        return v
    if isinstance(v, str):
        return _parse_timestamp_cached(v)
    return None


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


class SourceKind(str, Enum):
    """Family of the failing unit of work."""
    BUILD = "build"
    PIPELINE_STAGE = "pipeline-stage"


class RemediationAction(str, Enum):
    """Corrective operations the executor knows how to apply."""
    RETRY = "RETRY"
    BUMP_TIMEOUT_AND_RETRY = "BUMP_TIMEOUT_AND_RETRY"
    BACKOFF_AND_RETRY = "BACKOFF_AND_RETRY"
    RETRY_STAGE = "RETRY_STAGE"


class IncidentStatus(str, Enum):
    """Persisted incident status. UNHEALED is terminal."""
    RETRYING = "RETRYING"
    UNHEALED = "UNHEALED"


class BuildRef(BaseModel):
    """Reference to a single build run."""
    build_id: str

    class Config:
        frozen = True


class StageRef(BaseModel):
    """Reference to one stage of one pipeline execution."""
    pipeline: str
    execution_id: str
    stage: str

    class Config:
        frozen = True


class FailureEvent(BaseModel):
    """
    Normalized view of an inbound failure notification.

    Attributes:
        source_kind: Build or pipeline stage
        resource_ref: BuildRef for builds, StageRef for pipeline stages
        status_code: Reported state (FAILED, TIMED_OUT, ...)
        raw_detail: Opaque diagnostic payload used for classification
        event_id: Envelope id, when the event bus supplies one
        region: Envelope region
        occurred_at: Envelope timestamp
    """
    source_kind: SourceKind
    resource_ref: Union[BuildRef, StageRef]
    status_code: str
    raw_detail: Any = None
    event_id: Optional[str] = None
    region: Optional[str] = None
    occurred_at: Optional[datetime] = None

    class Config:
        frozen = True

    @field_validator('occurred_at', mode='before')
    @classmethod
    def parse_occurred_at(cls, v: Any) -> Optional[datetime]:
        """Accept ISO strings from the envelope's ``time`` field."""
        return _coerce_timestamp(v)

    @property
    def identity(self) -> str:
        """
        Deterministic incident key for this failure locus.

        Example:
            >>> FailureEvent(source_kind="build", resource_ref=BuildRef(build_id="b1"),
            ...              status_code="FAILED").identity
            'codebuild:b1'
        """
        ref = self.resource_ref
        if isinstance(ref, BuildRef):
            return f"codebuild:{ref.build_id}"
        return f"codepipeline:{ref.execution_id}:{ref.stage}"

    def with_diagnostics(self, detail: Any) -> 'FailureEvent':
        """Return a copy carrying ``detail`` as its diagnostic payload."""
        return self.model_copy(update={"raw_detail": detail})


class BuildInfo(BaseModel):
    """Result of describing a build through the build orchestration API."""
    build_id: str
    project_name: Optional[str] = None
    diagnostic_blob: Dict[str, Any] = Field(default_factory=dict)


class Incident(BaseModel):
    """
    Persisted retry/status record for one recurring failure locus.

    A never-seen identity is represented by ``Incident.new(identity)``:
    zero retries and no status.
    """
    identity: str
    retry_count: int = Field(ge=0, default=0)
    last_action: Optional[str] = None
    status: Optional[IncidentStatus] = None
    last_updated: Optional[datetime] = None

    @field_validator('last_updated', mode='before')
    @classmethod
    def parse_last_updated(cls, v: Any) -> Optional[datetime]:
        return _coerce_timestamp(v)

    @classmethod
    def new(cls, identity: str) -> 'Incident':
        return cls(identity=identity)

    @property
    def is_terminal(self) -> bool:
        return self.status == IncidentStatus.UNHEALED

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-friendly dictionary."""
        return {
            "identity": self.identity,
            "retry_count": self.retry_count,
            "last_action": self.last_action,
            "status": self.status.value if self.status else None,
            "last_updated": self.last_updated.isoformat() if self.last_updated else None,
        }
