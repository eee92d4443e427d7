"""
Remediation executor for Pipeline Doctor.

Applies a classified RemediationAction through the orchestration APIs.
Every action ends in a fire-and-forget re-trigger; completion of the
retried work is observed later as a new inbound event, never polled here.

Classes:
    RemediationExecutor: Applies actions
    ExecutionResult: Record of what was dispatched

Example:
    >>> executor = RemediationExecutor(build_api, pipeline_api, backoff_seconds=30)
    >>> await executor.execute(RemediationAction.RETRY, event, build_info)
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from ..constants import (
    CACHE_BUSTER_VARIABLE,
    DEFAULT_BACKOFF_SECONDS,
    DEFAULT_STAGE_RETRY_MODE,
    DEFAULT_TIMEOUT_CEILING_MINUTES,
)
from ..exceptions import ExecutionError
from ..integrations.orchestrators import BuildOrchestrator, PipelineOrchestrator
from ..models import (
    BuildInfo,
    BuildRef,
    FailureEvent,
    RemediationAction,
    StageRef,
    utcnow,
)

logger = logging.getLogger(__name__)


def _epoch_millis() -> str:
    return str(int(time.time() * 1000))


@dataclass
class ExecutionResult:
    """What the executor dispatched for one action."""

    action: RemediationAction
    target: str
    cache_buster: Optional[str] = None
    started_build_id: Optional[str] = None
    timeout_minutes: Optional[int] = None
    backoff_seconds: Optional[float] = None
    executed_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "action": self.action.value,
            "target": self.target,
            "cache_buster": self.cache_buster,
            "started_build_id": self.started_build_id,
            "timeout_minutes": self.timeout_minutes,
            "backoff_seconds": self.backoff_seconds,
            "executed_at": self.executed_at.isoformat(),
        }


class RemediationExecutor:
    """
    Apply remediation actions against build and pipeline orchestrators.

    RETRY re-triggers the build with a CACHE_BUSTER override.
    BUMP_TIMEOUT_AND_RETRY first sets the project timeout to a fixed ceiling.
    BACKOFF_AND_RETRY first suspends for a fixed delay.
    RETRY_STAGE re-runs the failed actions of one pipeline stage.

    Orchestrator failures propagate as ExecutionError.
    """

    def __init__(
        self,
        build_api: BuildOrchestrator,
        pipeline_api: PipelineOrchestrator,
        timeout_ceiling_minutes: int = DEFAULT_TIMEOUT_CEILING_MINUTES,
        backoff_seconds: float = DEFAULT_BACKOFF_SECONDS,
        stage_retry_mode: str = DEFAULT_STAGE_RETRY_MODE,
        sleep: Callable[[float], Any] = asyncio.sleep,
        cache_buster: Callable[[], str] = _epoch_millis
    ):
        """
        Initialize remediation executor.

        Args:
            build_api: Build orchestration API
            pipeline_api: Pipeline orchestration API
            timeout_ceiling_minutes: Timeout set by BUMP_TIMEOUT_AND_RETRY
            backoff_seconds: Delay held by BACKOFF_AND_RETRY
            stage_retry_mode: Retry mode passed to the pipeline API
            sleep: Awaitable sleep used for backoff
            cache_buster: Produces the uniqueness token for re-triggers
        """
        self.build_api = build_api
        self.pipeline_api = pipeline_api
        self.timeout_ceiling_minutes = timeout_ceiling_minutes
        self.backoff_seconds = backoff_seconds
        self.stage_retry_mode = stage_retry_mode
        self._sleep = sleep
        self._cache_buster = cache_buster

    async def execute(
        self,
        action: RemediationAction,
        event: FailureEvent,
        build_info: Optional[BuildInfo] = None
    ) -> ExecutionResult:
        """
        Apply ``action`` to the failed unit of work described by ``event``.

        Args:
            action: Classified remediation action
            event: Failure event being remediated
            build_info: Described build (required for build actions)

        Returns:
            ExecutionResult describing the dispatched calls

        Raises:
            ExecutionError: If an orchestration call fails or the event
                lacks what the action needs
        """
        logger.info(f"Applying {action.value} to {event.identity}")

        if action == RemediationAction.RETRY_STAGE:
            return await self._retry_stage(event)

        project_name = self._project_name(event, build_info)
        result = ExecutionResult(action=action, target=project_name)

        if action == RemediationAction.BUMP_TIMEOUT_AND_RETRY:
            await self.build_api.update_timeout(project_name, self.timeout_ceiling_minutes)
            result.timeout_minutes = self.timeout_ceiling_minutes

        elif action == RemediationAction.BACKOFF_AND_RETRY:
            logger.info(f"Backing off {self.backoff_seconds}s before retrying {project_name}")
            await self._sleep(self.backoff_seconds)
            result.backoff_seconds = self.backoff_seconds

        elif action != RemediationAction.RETRY:
            raise ExecutionError(f"Unsupported remediation action: {action!r}")

        result.cache_buster = self._cache_buster()
        result.started_build_id = await self.build_api.start(
            project_name,
            {CACHE_BUSTER_VARIABLE: result.cache_buster}
        )
        return result

    async def _retry_stage(self, event: FailureEvent) -> ExecutionResult:
        ref = event.resource_ref
        if not isinstance(ref, StageRef):
            raise ExecutionError(f"RETRY_STAGE requires a pipeline stage event, got {event.identity}")

        await self.pipeline_api.retry_stage(
            ref.pipeline,
            ref.execution_id,
            ref.stage,
            self.stage_retry_mode
        )
        return ExecutionResult(
            action=RemediationAction.RETRY_STAGE,
            target=f"{ref.pipeline}/{ref.execution_id}/{ref.stage}",
        )

    @staticmethod
    def _project_name(event: FailureEvent, build_info: Optional[BuildInfo]) -> str:
        if not isinstance(event.resource_ref, BuildRef):
            raise ExecutionError(f"Build action requires a build event, got {event.identity}")
        if build_info is None or not build_info.project_name:
            raise ExecutionError(f"No project name known for build {event.resource_ref.build_id}")
        return build_info.project_name
