"""
Build and pipeline orchestration integrations.

Remediation side effects go through these interfaces. The AWS
implementations wrap CodeBuild and CodePipeline via boto3; blocking SDK
calls run in a worker thread so the event loop only suspends on them.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from ..exceptions import ExecutionError
from ..models import BuildInfo

logger = logging.getLogger(__name__)


def _boto3_client(service: str, region: Optional[str], profile_name: Optional[str]) -> Any:
    import boto3

    if profile_name:
        session = boto3.Session(profile_name=profile_name)
        return session.client(service, region_name=region)
    return boto3.client(service, region_name=region)


class BuildOrchestrator(ABC):
    """Base class for build orchestration APIs."""

    @abstractmethod
    async def describe(self, build_id: str) -> BuildInfo:
        """
        Describe a build run.

        A build the API no longer knows is returned with no project name
        and an empty diagnostic blob.

        Raises:
            ExecutionError: If the build cannot be described
        """
        pass

    @abstractmethod
    async def update_timeout(self, project_name: str, minutes: int) -> None:
        """Set the project's build timeout to ``minutes``."""
        pass

    @abstractmethod
    async def start(
        self,
        project_name: str,
        overrides: Optional[Dict[str, str]] = None
    ) -> Optional[str]:
        """
        Start a new build of ``project_name``.

        Args:
            project_name: Build project
            overrides: Environment variables to inject into the build

        Returns:
            Id of the started build, when the API reports one
        """
        pass


class PipelineOrchestrator(ABC):
    """Base class for pipeline orchestration APIs."""

    @abstractmethod
    async def retry_stage(
        self,
        pipeline_name: str,
        execution_id: str,
        stage_name: str,
        mode: str
    ) -> None:
        """Re-run a stage of one pipeline execution."""
        pass


class CodeBuildOrchestrator(BuildOrchestrator):
    """
    AWS CodeBuild integration.

    Example:
        >>> codebuild = CodeBuildOrchestrator(region="us-east-1")
        >>> info = await codebuild.describe("my-project:1234")
        >>> await codebuild.start(info.project_name, {"CACHE_BUSTER": "1700000000000"})
    """

    def __init__(
        self,
        region: Optional[str] = None,
        profile_name: Optional[str] = None,
        client: Any = None
    ):
        """
        Initialize CodeBuild integration.

        Args:
            region: AWS region
            profile_name: Optional AWS profile name
            client: Pre-built boto3 CodeBuild client
        """
        self.client = client or _boto3_client('codebuild', region, profile_name)

    async def _call(self, operation: str, **params: Any) -> Dict[str, Any]:
        from botocore.exceptions import BotoCoreError, ClientError

        try:
            return await asyncio.to_thread(getattr(self.client, operation), **params)
        except (BotoCoreError, ClientError) as e:
            logger.error(f"CodeBuild {operation} failed: {e}")
            raise ExecutionError(f"CodeBuild {operation} failed: {e}") from e

    async def describe(self, build_id: str) -> BuildInfo:
        response = await self._call('batch_get_builds', ids=[build_id])
        builds = response.get('builds') or []
        if not builds:
            # Expired or deleted build: empty record, no project name
            logger.warning(f"CodeBuild build {build_id} not found")
            return BuildInfo(build_id=build_id)

        build = builds[0]
        return BuildInfo(
            build_id=build.get('id', build_id),
            project_name=build.get('projectName'),
            diagnostic_blob=build,
        )

    async def update_timeout(self, project_name: str, minutes: int) -> None:
        await self._call('update_project', name=project_name, timeoutInMinutes=minutes)
        logger.info(f"Set CodeBuild project {project_name} timeout to {minutes} minutes")

    async def start(
        self,
        project_name: str,
        overrides: Optional[Dict[str, str]] = None
    ) -> Optional[str]:
        params: Dict[str, Any] = {'projectName': project_name}
        if overrides:
            params['environmentVariablesOverride'] = [
                {'name': name, 'value': value, 'type': 'PLAINTEXT'}
                for name, value in overrides.items()
            ]

        response = await self._call('start_build', **params)
        build_id = (response.get('build') or {}).get('id')
        logger.info(f"Started CodeBuild project {project_name}: {build_id}")
        return build_id


class CodePipelineOrchestrator(PipelineOrchestrator):
    """
    AWS CodePipeline integration.

    Example:
        >>> codepipeline = CodePipelineOrchestrator(region="us-east-1")
        >>> await codepipeline.retry_stage("p1", "e1", "Build", "FAILED_ACTIONS")
    """

    def __init__(
        self,
        region: Optional[str] = None,
        profile_name: Optional[str] = None,
        client: Any = None
    ):
        self.client = client or _boto3_client('codepipeline', region, profile_name)

    async def retry_stage(
        self,
        pipeline_name: str,
        execution_id: str,
        stage_name: str,
        mode: str
    ) -> None:
        from botocore.exceptions import BotoCoreError, ClientError

        try:
            await asyncio.to_thread(
                self.client.retry_stage_execution,
                pipelineName=pipeline_name,
                pipelineExecutionId=execution_id,
                stageName=stage_name,
                retryMode=mode
            )
        except (BotoCoreError, ClientError) as e:
            logger.error(f"CodePipeline retry_stage_execution failed: {e}")
            raise ExecutionError(
                f"Failed to retry stage {pipeline_name}/{stage_name} ({execution_id}): {e}"
            ) from e

        logger.info(f"Retried stage {pipeline_name}/{stage_name} of execution {execution_id} ({mode})")
