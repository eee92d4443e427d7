"""
Tests for the incident controller state machine.
"""
import boto3
import pytest
from botocore.stub import Stubber

from pipeline_doctor.controller import IncidentController, Outcome, escalation_message
from pipeline_doctor.exceptions import ExecutionError, NotificationError, StoreError
from pipeline_doctor.metrics import metrics
from pipeline_doctor.models import (
    GAVE_UP,
    BuildInfo,
    Incident,
    IncidentStatus,
    RemediationAction,
)
from pipeline_doctor.events import parse_event
from pipeline_doctor.integrations import CodeBuildOrchestrator
from pipeline_doctor.remediation.executor import RemediationExecutor
from pipeline_doctor.storage.incident_store import InMemoryIncidentStore

from conftest import RecordingNotifier, build_envelope, stage_envelope


@pytest.fixture
def controller(store, executor, notifier):
    return IncidentController(store=store, executor=executor, notifier=notifier, max_retries=2)


class BrokenStore(InMemoryIncidentStore):
    async def put(self, incident: Incident) -> None:
        raise StoreError("table unavailable")


@pytest.mark.asyncio
async def test_build_failure_retried_until_budget_then_escalated(controller, store, build_api, notifier):
    """Two retries, then an UNHEALED escalation naming the build and count."""
    envelope = build_envelope("b1")

    first = await controller.handle_envelope(envelope)
    assert first.outcome == Outcome.REMEDIATED
    assert first.action == "RETRY"
    stored = await store.get("codebuild:b1")
    assert stored.retry_count == 1
    assert stored.status == IncidentStatus.RETRYING
    assert stored.last_action == "RETRY"

    second = await controller.handle_envelope(envelope)
    assert second.outcome == Outcome.REMEDIATED
    assert (await store.get("codebuild:b1")).retry_count == 2

    third = await controller.handle_envelope(envelope)
    assert third.outcome == Outcome.ESCALATED
    stored = await store.get("codebuild:b1")
    assert stored.retry_count == 2
    assert stored.status == IncidentStatus.UNHEALED
    assert stored.last_action == GAVE_UP

    assert len(notifier.messages) == 1
    assert "b1" in notifier.messages[0]
    assert "2" in notifier.messages[0]
    assert build_api.operations().count("start") == 2


@pytest.mark.asyncio
async def test_stage_failure_retries_stage(controller, store, pipeline_api):
    outcome = await controller.handle_envelope(stage_envelope("p1", "e1", "Build"))

    assert outcome.outcome == Outcome.REMEDIATED
    assert outcome.action == RemediationAction.RETRY_STAGE.value
    assert pipeline_api.calls == [("retry_stage", "p1", "e1", "Build", "FAILED_ACTIONS")]

    stored = await store.get("codepipeline:e1:Build")
    assert stored.retry_count == 1
    assert stored.status == IncidentStatus.RETRYING


@pytest.mark.asyncio
async def test_failed_remediation_writes_nothing(controller, store, build_api):
    """A redelivery after an outage starts from the same retry count."""
    build_api.fail_on = "start"
    envelope = build_envelope("b1")

    with pytest.raises(ExecutionError):
        await controller.handle_envelope(envelope)
    assert await store.get("codebuild:b1") is None

    build_api.fail_on = None
    outcome = await controller.handle_envelope(envelope)
    assert outcome.retry_count == 1


@pytest.mark.asyncio
async def test_failed_stage_retry_writes_nothing(controller, store, pipeline_api):
    pipeline_api.fail = True

    with pytest.raises(ExecutionError):
        await controller.handle_envelope(stage_envelope())

    assert len(store) == 0


@pytest.mark.asyncio
async def test_terminal_incident_is_not_remediated_again(controller, store, build_api, notifier):
    await store.put(Incident(identity="codebuild:b1", retry_count=2, status=IncidentStatus.UNHEALED))

    for _ in range(3):
        outcome = await controller.handle_envelope(build_envelope("b1"))
        assert outcome.outcome == Outcome.ESCALATED

    stored = await store.get("codebuild:b1")
    assert stored.retry_count == 2
    assert "start" not in build_api.operations()
    assert "update_timeout" not in build_api.operations()
    # Each post-terminal event re-notifies by default
    assert len(notifier.messages) == 3


@pytest.mark.asyncio
async def test_repeat_escalations_can_be_suppressed(store, executor, notifier):
    controller = IncidentController(
        store=store,
        executor=executor,
        notifier=notifier,
        max_retries=1,
        suppress_repeat_escalations=True,
    )
    await store.put(Incident(identity="codebuild:b1", retry_count=1, status=IncidentStatus.RETRYING))

    first = await controller.handle_envelope(build_envelope("b1"))
    second = await controller.handle_envelope(build_envelope("b1"))

    assert first.outcome == Outcome.ESCALATED
    assert second.outcome == Outcome.SUPPRESSED
    assert len(notifier.messages) == 1
    assert (await store.get("codebuild:b1")).status == IncidentStatus.UNHEALED


@pytest.mark.asyncio
async def test_retry_counts_never_decrease(controller, store):
    observed = []
    for _ in range(5):
        await controller.handle_envelope(build_envelope("b7"))
        observed.append((await store.get("codebuild:b7")).retry_count)

    assert observed == sorted(observed)
    assert observed[-1] == 2


@pytest.mark.asyncio
async def test_zero_budget_escalates_immediately(store, executor, build_api, notifier):
    controller = IncidentController(store=store, executor=executor, notifier=notifier, max_retries=0)

    outcome = await controller.handle_envelope(build_envelope("b1"))

    assert outcome.outcome == Outcome.ESCALATED
    assert outcome.retry_count == 0
    assert build_api.operations() == ["describe"]
    assert notifier.messages == ["❌ Build b1 (demo-project) failed after 0 retries"]


@pytest.mark.asyncio
async def test_timeout_blob_bumps_timeout(controller, build_api):
    build_api.blob = {"buildStatus": "TIMED_OUT"}

    outcome = await controller.handle_envelope(build_envelope("b1", status="TIMED_OUT"))

    assert outcome.action == "BUMP_TIMEOUT_AND_RETRY"
    assert build_api.operations() == ["describe", "update_timeout", "start"]


@pytest.mark.asyncio
async def test_classification_uses_described_build(controller, build_api, fake_sleep):
    """The describe result replaces the envelope detail for classification."""
    build_api.blob = {"phases": [{"contexts": [{"message": "Rate exceeded"}]}]}

    outcome = await controller.handle_envelope(build_envelope("b1"))

    assert outcome.action == "BACKOFF_AND_RETRY"
    assert fake_sleep.delays == [30]


@pytest.mark.asyncio
async def test_describe_failure_propagates_before_store_read(controller, store, build_api):
    build_api.fail_on = "describe"

    with pytest.raises(ExecutionError):
        await controller.handle_envelope(build_envelope("b1"))

    assert len(store) == 0


@pytest.fixture
def expired_build_controller(aws_credentials, store, pipeline_api, fake_sleep, notifier):
    """Controller whose CodeBuild API no longer knows build gone:1."""
    client = boto3.client("codebuild", region_name="us-east-1")
    codebuild = CodeBuildOrchestrator(client=client)
    executor = RemediationExecutor(codebuild, pipeline_api, sleep=fake_sleep)
    controller = IncidentController(store=store, executor=executor, notifier=notifier, max_retries=2)

    with Stubber(client) as stubber:
        stubber.add_response("batch_get_builds", {"builds": [], "buildsNotFound": ["gone:1"]}, {"ids": ["gone:1"]})
        yield controller


@pytest.mark.asyncio
async def test_expired_build_still_escalates(expired_build_controller, store, notifier):
    await store.put(Incident(identity="codebuild:gone:1", retry_count=2, status=IncidentStatus.RETRYING))

    outcome = await expired_build_controller.handle_envelope(build_envelope("gone:1"))

    assert outcome.outcome == Outcome.ESCALATED
    assert notifier.messages == ["❌ Build gone:1 (unknown project) failed after 2 retries"]
    assert (await store.get("codebuild:gone:1")).status == IncidentStatus.UNHEALED


@pytest.mark.asyncio
async def test_expired_build_cannot_be_remediated(expired_build_controller, store):
    with pytest.raises(ExecutionError, match="No project name"):
        await expired_build_controller.handle_envelope(build_envelope("gone:1"))

    assert len(store) == 0


@pytest.mark.asyncio
async def test_notifier_failure_leaves_state_unchanged(store, executor):
    controller = IncidentController(
        store=store,
        executor=executor,
        notifier=RecordingNotifier(fail=True),
        max_retries=1,
    )
    await store.put(Incident(identity="codebuild:b1", retry_count=1, status=IncidentStatus.RETRYING))

    with pytest.raises(NotificationError):
        await controller.handle_envelope(build_envelope("b1"))

    assert (await store.get("codebuild:b1")).status == IncidentStatus.RETRYING


@pytest.mark.asyncio
async def test_store_failure_propagates(executor, notifier):
    controller = IncidentController(store=BrokenStore(), executor=executor, notifier=notifier)

    with pytest.raises(StoreError):
        await controller.handle_envelope(build_envelope("b1"))


@pytest.mark.asyncio
async def test_non_failure_envelope_is_ignored(controller, store, build_api):
    outcome = await controller.handle_envelope(build_envelope("b1", status="SUCCEEDED"))

    assert outcome.outcome == Outcome.IGNORED
    assert build_api.calls == []
    assert len(store) == 0
    assert metrics.get_counter("doctor_events_total", {"outcome": "ignored"}) == 1


@pytest.mark.asyncio
async def test_outcomes_are_counted(controller):
    await controller.handle_envelope(build_envelope("b1"))
    await controller.handle_envelope(stage_envelope())

    assert metrics.get_counter("doctor_events_total", {"outcome": "remediated"}) == 2
    assert metrics.get_counter("doctor_remediations_total", {"action": "RETRY"}) == 1
    assert metrics.get_counter("doctor_remediations_total", {"action": "RETRY_STAGE"}) == 1


def test_escalation_message_for_stage():
    event = parse_event(stage_envelope("p1", "e1", "Deploy"))
    assert escalation_message(event, 2) == "❌ Pipeline p1/Deploy failed after 2 retries"


def test_escalation_message_without_project():
    event = parse_event(build_envelope("b1"))
    message = escalation_message(event, 2, BuildInfo(build_id="b1"))
    assert message == "❌ Build b1 (unknown project) failed after 2 retries"


def test_controller_outcome_to_dict_includes_execution():
    from pipeline_doctor.controller import ControllerOutcome

    data = ControllerOutcome(outcome=Outcome.IGNORED).to_dict()

    assert data == {
        "outcome": "ignored",
        "identity": None,
        "action": None,
        "retry_count": None,
        "message": None,
        "execution": None,
    }
