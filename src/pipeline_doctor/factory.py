"""
Wiring of configured collaborators into an IncidentController.
"""
import logging
from typing import Optional

from .alerting.notifiers import Notifier, create_notifier
from .config import DoctorConfig
from .controller import IncidentController
from .integrations.orchestrators import (
    BuildOrchestrator,
    CodeBuildOrchestrator,
    CodePipelineOrchestrator,
    PipelineOrchestrator,
)
from .remediation.executor import RemediationExecutor
from .storage.factory import create_store
from .storage.incident_store import IncidentStore

logger = logging.getLogger(__name__)


def create_controller(
    config: DoctorConfig,
    store: Optional[IncidentStore] = None,
    notifier: Optional[Notifier] = None,
    build_api: Optional[BuildOrchestrator] = None,
    pipeline_api: Optional[PipelineOrchestrator] = None
) -> IncidentController:
    """
    Build an IncidentController from configuration.

    Any collaborator passed explicitly is used as-is; the rest are built
    from ``config`` (AWS clients for orchestration, store and notifier).

    Raises:
        InvalidConfigError: If the configuration does not validate
    """
    config.validate()

    build_api = build_api or CodeBuildOrchestrator(region=config.region)
    pipeline_api = pipeline_api or CodePipelineOrchestrator(region=config.region)

    executor = RemediationExecutor(
        build_api,
        pipeline_api,
        timeout_ceiling_minutes=config.timeout_ceiling_minutes,
        backoff_seconds=config.backoff_seconds,
        stage_retry_mode=config.stage_retry_mode,
    )

    controller = IncidentController(
        store=store or create_store(config),
        executor=executor,
        notifier=notifier or create_notifier(config),
        build_api=build_api,
        max_retries=config.max_retries,
        suppress_repeat_escalations=config.suppress_repeat_escalations,
    )
    logger.info(
        f"Incident controller ready (max_retries={config.max_retries}, "
        f"store={config.store_backend})"
    )
    return controller
