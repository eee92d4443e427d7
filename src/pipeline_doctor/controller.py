"""
Incident controller for Pipeline Doctor.

Orchestrates one failure event end to end: derive the incident identity,
load its retry state, either escalate (retry budget exhausted) or classify
and remediate, then write the new state back.

State per incident identity::

    NEW (no record) --> RETRYING --> UNHEALED (terminal)

Store, executor and notifier errors are not caught here. A failed
remediation leaves the stored state untouched, so a redelivery of the same
event re-attempts the same action at the same retry count without
consuming budget.

Classes:
    IncidentController: Event-processing orchestrator
    ControllerOutcome: What happened for one event
    Outcome: Outcome kinds
"""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from .alerting.notifiers import Notifier
from .classifier import Classifier, TextHeuristicClassifier
from .constants import DEFAULT_MAX_RETRIES
from .events import parse_event
from .integrations.orchestrators import BuildOrchestrator
from .logging_context import LoggingContext, get_logger
from .metrics import track_escalation, track_event, track_remediation
from .models import (
    GAVE_UP,
    BuildInfo,
    BuildRef,
    FailureEvent,
    Incident,
    IncidentStatus,
    RemediationAction,
    SourceKind,
    utcnow,
)
from .remediation.executor import ExecutionResult, RemediationExecutor
from .storage.incident_store import IncidentStore

logger = get_logger(__name__)


class Outcome(str, Enum):
    """How an inbound event was handled."""
    IGNORED = "ignored"
    REMEDIATED = "remediated"
    ESCALATED = "escalated"
    SUPPRESSED = "suppressed"


@dataclass
class ControllerOutcome:
    """Result of handling one event."""

    outcome: Outcome
    identity: Optional[str] = None
    action: Optional[str] = None
    retry_count: Optional[int] = None
    message: Optional[str] = None
    execution: Optional[ExecutionResult] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "outcome": self.outcome.value,
            "identity": self.identity,
            "action": self.action,
            "retry_count": self.retry_count,
            "message": self.message,
            "execution": self.execution.to_dict() if self.execution else None,
        }


def escalation_message(event: FailureEvent, retries: int, build_info: Optional[BuildInfo] = None) -> str:
    """Human-readable escalation text naming the resource and the retry count."""
    ref = event.resource_ref
    if isinstance(ref, BuildRef):
        project = build_info.project_name if build_info and build_info.project_name else "unknown project"
        return f"❌ Build {ref.build_id} ({project}) failed after {retries} retries"
    return f"❌ Pipeline {ref.pipeline}/{ref.stage} failed after {retries} retries"


class IncidentController:
    """
    Per-event remediation state machine.

    All collaborators are injected so they can be replaced with test doubles.

    Example:
        >>> controller = IncidentController(
        ...     store=DynamoDBIncidentStore("SelfHealingIncidents"),
        ...     executor=RemediationExecutor(codebuild, codepipeline),
        ...     notifier=SNSNotifier(topic_arn),
        ...     build_api=codebuild,
        ...     max_retries=2,
        ... )
        >>> outcome = await controller.handle_envelope(envelope)
    """

    def __init__(
        self,
        store: IncidentStore,
        executor: RemediationExecutor,
        notifier: Notifier,
        build_api: Optional[BuildOrchestrator] = None,
        classifier: Optional[Classifier] = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
        suppress_repeat_escalations: bool = False
    ):
        """
        Initialize incident controller.

        Args:
            store: Incident retry-state store
            executor: Applies remediation actions
            notifier: Escalation channel
            build_api: Used to describe failed builds (defaults to the
                executor's build API)
            classifier: Failure classifier (defaults to the text heuristic)
            max_retries: Remediation attempts allowed before escalating
            suppress_repeat_escalations: Skip the notification when the
                stored incident is already UNHEALED
        """
        self.store = store
        self.executor = executor
        self.notifier = notifier
        self.build_api = build_api or executor.build_api
        self.classifier = classifier or TextHeuristicClassifier()
        self.max_retries = max_retries
        self.suppress_repeat_escalations = suppress_repeat_escalations

    async def handle_envelope(self, envelope: Dict[str, Any]) -> ControllerOutcome:
        """
        Normalize an event-bus envelope and handle it.

        Envelopes that are not recognized failures are ignored.

        Raises:
            EventParseError: If a failure envelope lacks required fields
        """
        event = parse_event(envelope)
        if event is None:
            track_event(Outcome.IGNORED.value)
            return ControllerOutcome(outcome=Outcome.IGNORED)
        return await self.handle(event)

    async def handle(self, event: FailureEvent) -> ControllerOutcome:
        """
        Process one failure event.

        Args:
            event: Normalized failure event

        Returns:
            ControllerOutcome describing what was done

        Raises:
            StoreError: Store read or write failed
            ExecutionError: Describe or remediation call failed
            NotificationError: Escalation could not be delivered
        """
        started = time.monotonic()
        identity = event.identity

        with LoggingContext(
            event_id=event.event_id,
            incident_id=identity,
            source_kind=event.source_kind.value
        ):
            build_info = None
            if event.source_kind == SourceKind.BUILD:
                build_info = await self.build_api.describe(event.resource_ref.build_id)
                event = event.with_diagnostics(build_info.diagnostic_blob)

            incident = await self.store.get(identity) or Incident.new(identity)
            retries = incident.retry_count
            logger.info(f"Handling {event.status_code} for {identity} (retries={retries}/{self.max_retries})")

            if retries >= self.max_retries:
                result = await self._escalate(event, incident, build_info)
            else:
                result = await self._remediate(event, incident, build_info)

        track_event(result.outcome.value, time.monotonic() - started)
        return result

    async def _escalate(
        self,
        event: FailureEvent,
        incident: Incident,
        build_info: Optional[BuildInfo]
    ) -> ControllerOutcome:
        message = escalation_message(event, incident.retry_count, build_info)

        if self.suppress_repeat_escalations and incident.is_terminal:
            outcome = Outcome.SUPPRESSED
            logger.info(f"{incident.identity} already UNHEALED; not re-notifying")
        else:
            outcome = Outcome.ESCALATED
            logger.warning(f"Retry budget exhausted: {message}")
            await self.notifier.publish(message)
            track_escalation(event.source_kind.value)

        await self.store.put(Incident(
            identity=incident.identity,
            retry_count=incident.retry_count,
            last_action=GAVE_UP,
            status=IncidentStatus.UNHEALED,
            last_updated=utcnow(),
        ))

        return ControllerOutcome(
            outcome=outcome,
            identity=incident.identity,
            action=GAVE_UP,
            retry_count=incident.retry_count,
            message=message,
        )

    async def _remediate(
        self,
        event: FailureEvent,
        incident: Incident,
        build_info: Optional[BuildInfo]
    ) -> ControllerOutcome:
        if event.source_kind == SourceKind.PIPELINE_STAGE:
            action = RemediationAction.RETRY_STAGE
        else:
            action = self.classifier.classify(event)

        execution = await self.executor.execute(action, event, build_info)
        track_remediation(action.value)

        retry_count = incident.retry_count + 1
        await self.store.put(Incident(
            identity=incident.identity,
            retry_count=retry_count,
            last_action=action.value,
            status=IncidentStatus.RETRYING,
            last_updated=utcnow(),
        ))
        logger.info(f"Applied {action.value} to {incident.identity}; retry {retry_count}/{self.max_retries}")

        return ControllerOutcome(
            outcome=Outcome.REMEDIATED,
            identity=incident.identity,
            action=action.value,
            retry_count=retry_count,
            execution=execution,
        )
