"""
Shared fixtures and test doubles.
"""
from typing import Any, Dict, List, Optional, Tuple

import pytest

from pipeline_doctor.alerting.notifiers import Notifier
from pipeline_doctor.exceptions import ExecutionError, NotificationError
from pipeline_doctor.integrations.orchestrators import BuildOrchestrator, PipelineOrchestrator
from pipeline_doctor.metrics import metrics
from pipeline_doctor.models import BuildInfo
from pipeline_doctor.remediation.executor import RemediationExecutor
from pipeline_doctor.storage.incident_store import InMemoryIncidentStore

CONFIG_ENV_VARS = [
    "TABLE",
    "TOPIC_ARN",
    "MAX_RETRIES",
    "AWS_REGION",
    "AWS_DEFAULT_REGION",
    "PIPELINE_DOCTOR_TABLE",
    "PIPELINE_DOCTOR_TOPIC_ARN",
    "PIPELINE_DOCTOR_MAX_RETRIES",
    "PIPELINE_DOCTOR_STORE_BACKEND",
    "PIPELINE_DOCTOR_SQLITE_PATH",
    "PIPELINE_DOCTOR_SLACK_WEBHOOK_URL",
    "PIPELINE_DOCTOR_TIMEOUT_CEILING_MINUTES",
    "PIPELINE_DOCTOR_BACKOFF_SECONDS",
    "PIPELINE_DOCTOR_STAGE_RETRY_MODE",
    "PIPELINE_DOCTOR_SUPPRESS_REPEAT_ESCALATIONS",
    "PIPELINE_DOCTOR_WEBHOOK_SECRET",
    "PIPELINE_DOCTOR_LOG_LEVEL",
    "PIPELINE_DOCTOR_LOG_FILE",
    "PIPELINE_DOCTOR_LOG_JSON",
]


class FakeBuildOrchestrator(BuildOrchestrator):
    """Records calls; describes every build from a canned blob."""

    def __init__(self, project_name: Optional[str] = "demo-project", blob: Optional[Dict[str, Any]] = None):
        self.project_name = project_name
        self.blob = blob or {}
        self.calls: List[Tuple] = []
        self.fail_on: Optional[str] = None

    def _maybe_fail(self, operation: str) -> None:
        if self.fail_on == operation:
            raise ExecutionError(f"{operation} rejected")

    async def describe(self, build_id: str) -> BuildInfo:
        self.calls.append(("describe", build_id))
        self._maybe_fail("describe")
        blob = dict(self.blob)
        blob.setdefault("id", build_id)
        return BuildInfo(build_id=build_id, project_name=self.project_name, diagnostic_blob=blob)

    async def update_timeout(self, project_name: str, minutes: int) -> None:
        self.calls.append(("update_timeout", project_name, minutes))
        self._maybe_fail("update_timeout")

    async def start(self, project_name: str, overrides: Optional[Dict[str, str]] = None) -> Optional[str]:
        self.calls.append(("start", project_name, dict(overrides or {})))
        self._maybe_fail("start")
        return f"{project_name}:new"

    def operations(self) -> List[str]:
        return [call[0] for call in self.calls]


class FakePipelineOrchestrator(PipelineOrchestrator):
    def __init__(self):
        self.calls: List[Tuple] = []
        self.fail = False

    async def retry_stage(self, pipeline_name: str, execution_id: str, stage_name: str, mode: str) -> None:
        self.calls.append(("retry_stage", pipeline_name, execution_id, stage_name, mode))
        if self.fail:
            raise ExecutionError("retry_stage_execution rejected")


class RecordingNotifier(Notifier):
    def __init__(self, fail: bool = False):
        self.messages: List[str] = []
        self.fail = fail

    async def publish(self, message: str) -> None:
        if self.fail:
            raise NotificationError("channel unavailable")
        self.messages.append(message)


class FakeSleep:
    """Stands in for asyncio.sleep and records requested delays."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


def build_envelope(build_id: str = "demo-project:1234", status: str = "FAILED", **detail: Any) -> Dict[str, Any]:
    return {
        "id": "evt-1",
        "detail-type": "CodeBuild Build State Change",
        "source": "aws.codebuild",
        "region": "us-east-1",
        "time": "2024-05-01T12:00:00Z",
        "detail": {"build-id": build_id, "build-status": status, "project-name": "demo-project", **detail},
    }


def stage_envelope(
    pipeline: str = "demo-pipeline",
    execution_id: str = "exec-1",
    stage: str = "Build",
    state: str = "FAILED"
) -> Dict[str, Any]:
    return {
        "id": "evt-2",
        "detail-type": "CodePipeline Action Execution State Change",
        "source": "aws.codepipeline",
        "region": "us-east-1",
        "time": "2024-05-01T12:00:00Z",
        "detail": {
            "pipeline": pipeline,
            "execution-id": execution_id,
            "stage": stage,
            "action": "CodeBuild",
            "state": state,
        },
    }


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Isolate tests from the caller's configuration and metrics."""
    for key in CONFIG_ENV_VARS:
        monkeypatch.delenv(key, raising=False)
    metrics.reset()
    yield
    metrics.reset()


@pytest.fixture
def aws_credentials(monkeypatch):
    """Dummy credentials so botocore clients can be built offline."""
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", "us-east-1")


@pytest.fixture
def build_api():
    return FakeBuildOrchestrator()


@pytest.fixture
def pipeline_api():
    return FakePipelineOrchestrator()


@pytest.fixture
def fake_sleep():
    return FakeSleep()


@pytest.fixture
def executor(build_api, pipeline_api, fake_sleep):
    return RemediationExecutor(
        build_api,
        pipeline_api,
        sleep=fake_sleep,
        cache_buster=lambda: "1700000000000",
    )


@pytest.fixture
def store():
    return InMemoryIncidentStore()


@pytest.fixture
def notifier():
    return RecordingNotifier()
