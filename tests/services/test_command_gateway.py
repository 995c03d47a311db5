"""Tests for the Command Emission Gateway (dual-path routing)."""

import pytest
from tenacity import wait_none

from datapod.commands.gateway import CommandGateway, RequestInput
from datapod.core.exceptions import DispatchError, NotFoundError, UnauthorizedError, ValidationError
from datapod.dispatch.fake import InMemoryDispatcher
from datapod.events.envelope import create_event
from datapod.events.log_fake import InMemoryEventLog
from datapod.policy.validation_policy import PolicyResult, PolicySource

pytestmark = pytest.mark.unit


class StaticPolicy:
    def __init__(self, requires_validation: bool, reason: str = "test", error: Exception | None = None):
        self.result = PolicyResult(requires_validation, reason, PolicySource.WORKSPACE_CONFIG)
        self.error = error
        self.calls = []

    async def requires_validation(self, params):
        self.calls.append(params)
        if self.error:
            raise self.error
        return self.result


@pytest.fixture
def log():
    return InMemoryEventLog()


@pytest.fixture
def sender():
    return InMemoryDispatcher()


def make_gateway(log, sender, policy, attempts=3):
    return CommandGateway(log, sender, policy, dispatch_attempts=attempts, dispatch_wait=wait_none())


def entity_request(**overrides):
    fields = {
        "type": "entities.create.requested",
        "subject_id": "e1",
        "subject_type": "entity",
        "data": {"title": "Test"},
        "user_id": "u1",
        "workspace_id": "w1",
    }
    fields.update(overrides)
    return RequestInput(**fields)


@pytest.mark.asyncio
async def test_fast_path_logs_validated_event(log, sender):
    """Policy says no validation: one validated event, dispatched under its own name."""
    gateway = make_gateway(log, sender, StaticPolicy(False))

    event = await gateway.emit_request_event(entity_request())

    assert [e.type for e in log.events] == ["entities.create.validated"]
    assert event.metadata["fastPath"] is True
    assert "requiresConfirmation" not in event.metadata
    assert sender.names == ["entities.create.validated"]
    assert sender.sent[0].id == event.id
    assert sender.sent[0].data == {"title": "Test"}


@pytest.mark.asyncio
async def test_standard_path_logs_requested_event(log, sender):
    """Policy requires validation: the requested event goes to the global validator."""
    gateway = make_gateway(log, sender, StaticPolicy(True, reason="admin-configured"))

    event = await gateway.emit_request_event(entity_request())

    assert [e.type for e in log.events] == ["entities.create.requested"]
    assert event.metadata["requiresConfirmation"] is True
    assert event.metadata["policyReason"] == "admin-configured"
    assert event.metadata["policySource"] == "workspace-config"
    assert event.metadata["workspaceId"] == "w1"
    assert sender.names == ["entities.create.requested"]


@pytest.mark.asyncio
@pytest.mark.parametrize("requires_validation", [True, False])
async def test_exactly_one_append_and_one_dispatch(log, sender, requires_validation):
    gateway = make_gateway(log, sender, StaticPolicy(requires_validation))

    event = await gateway.emit_request_event(entity_request())

    assert len(log) == 1
    assert len(sender.sent) == 1
    expected_phase = "requested" if requires_validation else "validated"
    assert event.type.endswith(expected_phase)
    assert sender.sent[0].name == event.type


@pytest.mark.asyncio
async def test_policy_receives_request_context(log, sender):
    policy = StaticPolicy(False)
    gateway = make_gateway(log, sender, policy)

    await gateway.emit_request_event(entity_request(type="entities.update.requested", user_role="editor", project_id="p1"))

    params = policy.calls[0]
    assert (params.operation, params.subject_type) == ("update", "entity")
    assert (params.workspace_id, params.project_id, params.user_role) == ("w1", "p1", "editor")


@pytest.mark.asyncio
async def test_missing_user_is_rejected_before_any_activity(log, sender):
    policy = StaticPolicy(False)
    gateway = make_gateway(log, sender, policy)

    with pytest.raises(UnauthorizedError):
        await gateway.emit_request_event(entity_request(user_id=None))

    assert policy.calls == []
    assert len(log) == 0
    assert sender.sent == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "overrides",
    [
        {"type": "entities.create.validated"},
        {"type": "entities.create"},
        {"type": "projects.create.requested"},
        {"subject_type": "widget"},
    ],
)
async def test_malformed_commands_are_rejected(log, sender, overrides):
    gateway = make_gateway(log, sender, StaticPolicy(False))

    with pytest.raises(ValidationError):
        await gateway.emit_request_event(entity_request(**overrides))

    assert len(log) == 0
    assert sender.sent == []


@pytest.mark.asyncio
async def test_policy_failure_aborts(log, sender):
    gateway = make_gateway(log, sender, StaticPolicy(False, error=ConnectionError("settings store down")))

    with pytest.raises(ConnectionError):
        await gateway.emit_request_event(entity_request())

    assert len(log) == 0
    assert sender.sent == []


@pytest.mark.asyncio
async def test_failed_append_means_no_dispatch(log, sender):
    log.fail_next_append = 1
    gateway = make_gateway(log, sender, StaticPolicy(False))

    with pytest.raises(ConnectionError):
        await gateway.emit_request_event(entity_request())

    assert sender.sent == []


@pytest.mark.asyncio
async def test_transient_dispatch_failures_are_retried(log, sender):
    sender.fail_next_send = 2
    gateway = make_gateway(log, sender, StaticPolicy(False), attempts=3)

    await gateway.emit_request_event(entity_request())

    assert len(log) == 1
    assert len(sender.sent) == 1


@pytest.mark.asyncio
async def test_dispatch_exhaustion_keeps_event_logged(log, sender):
    sender.fail_next_send = 5
    gateway = make_gateway(log, sender, StaticPolicy(False), attempts=2)

    with pytest.raises(DispatchError) as exc_info:
        await gateway.emit_request_event(entity_request())

    logged = log.events
    assert len(logged) == 1
    assert exc_info.value.event_id == logged[0].id
    assert exc_info.value.retryable is True
    assert sender.sent == []


@pytest.mark.asyncio
async def test_redispatch_resends_logged_event(log, sender):
    sender.fail_next_send = 1
    gateway = make_gateway(log, sender, StaticPolicy(True), attempts=1)
    with pytest.raises(DispatchError) as exc_info:
        await gateway.emit_request_event(entity_request())

    event = await gateway.redispatch(exc_info.value.event_id)

    assert len(log) == 1
    assert sender.names == ["entities.create.requested"]
    assert sender.sent[0].id == event.id


@pytest.mark.asyncio
async def test_redispatch_rejects_unknown_and_completed_events(log, sender):
    gateway = make_gateway(log, sender, StaticPolicy(False))

    with pytest.raises(NotFoundError):
        await gateway.redispatch("missing")

    completed = await log.append(create_event("entities.create.completed", "e1", "entity", {}, "u1"))
    with pytest.raises(ValidationError):
        await gateway.redispatch(completed.id)


@pytest.mark.asyncio
async def test_correlation_id_defaults_to_fresh_uuid(log, sender):
    gateway = make_gateway(log, sender, StaticPolicy(False))

    first = await gateway.emit_request_event(entity_request())
    second = await gateway.emit_request_event(entity_request(subject_id="e2", correlation_id="req-1"))

    assert first.correlation_id
    assert second.correlation_id == "req-1"
    assert sender.sent[1].correlation_id == "req-1"
