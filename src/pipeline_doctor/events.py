"""
Normalization of inbound event-bus envelopes into FailureEvents.

Envelopes follow the EventBridge shape: a ``detail-type`` naming the
notification family and a ``detail`` payload with source-specific fields.
Anything that is not a recognized failure is dropped here, before it can
reach the incident controller.
"""
import logging
from typing import Any, Dict, Optional

from .exceptions import EventParseError
from .models import BuildRef, FailureEvent, SourceKind, StageRef

logger = logging.getLogger(__name__)

BUILD_STATE_CHANGE = "CodeBuild Build State Change"
PIPELINE_ACTION_STATE_CHANGE = "CodePipeline Action Execution State Change"

BUILD_FAILURE_STATUSES = frozenset({"FAILED", "TIMED_OUT"})
STAGE_FAILURE_STATES = frozenset({"FAILED"})


def _require(detail: Dict[str, Any], key: str, detail_type: str) -> str:
    value = detail.get(key)
    if not value:
        raise EventParseError(f"{detail_type} event is missing detail['{key}']")
    return str(value)


def _optional_str(value: Any) -> Optional[str]:
    return None if value is None else str(value)


def parse_event(envelope: Dict[str, Any]) -> Optional[FailureEvent]:
    """
    Turn an envelope into a FailureEvent, or None when it should be ignored.

    Args:
        envelope: Event-bus envelope with ``detail-type`` and ``detail``

    Returns:
        FailureEvent for build failures/timeouts and failed pipeline actions,
        None for everything else (successes, in-progress states, unknown types)

    Raises:
        EventParseError: If a failure envelope lacks its resource identifiers

    Example:
        >>> parse_event({
        ...     "detail-type": "CodeBuild Build State Change",
        ...     "detail": {"build-id": "b1", "build-status": "FAILED"},
        ... }).identity
        'codebuild:b1'
    """
    if not isinstance(envelope, dict):
        raise EventParseError("Event envelope must be a JSON object")

    detail_type = envelope.get("detail-type") or ""
    detail = envelope.get("detail") or {}
    if not isinstance(detail, dict):
        raise EventParseError("Event detail must be a JSON object")

    common = {
        "event_id": _optional_str(envelope.get("id")),
        "region": _optional_str(envelope.get("region")),
        "occurred_at": envelope.get("time"),
    }

    if BUILD_STATE_CHANGE in detail_type:
        status = detail.get("build-status")
        if status not in BUILD_FAILURE_STATUSES:
            logger.debug(f"Ignoring build event with status {status!r}")
            return None
        return FailureEvent(
            source_kind=SourceKind.BUILD,
            resource_ref=BuildRef(build_id=_require(detail, "build-id", detail_type)),
            status_code=status,
            raw_detail=detail,
            **common,
        )

    if PIPELINE_ACTION_STATE_CHANGE in detail_type:
        state = detail.get("state")
        if state not in STAGE_FAILURE_STATES:
            logger.debug(f"Ignoring pipeline action event with state {state!r}")
            return None
        return FailureEvent(
            source_kind=SourceKind.PIPELINE_STAGE,
            resource_ref=StageRef(
                pipeline=_require(detail, "pipeline", detail_type),
                execution_id=_require(detail, "execution-id", detail_type),
                stage=_require(detail, "stage", detail_type),
            ),
            status_code=state,
            raw_detail=detail,
            **common,
        )

    logger.debug(f"Ignoring event with detail-type {detail_type!r}")
    return None
