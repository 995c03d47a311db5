"""Tests for event naming: the family registry and tagged name decoding."""

import pytest

from datapod.core.exceptions import ValidationError
from datapod.events.types import (
    FAMILIES,
    EventName,
    Phase,
    completed_type,
    family_for_subject_type,
    generated_event_types,
    get_family,
    is_valid_event_type,
    parse_event_name,
)

pytestmark = pytest.mark.unit


def test_parse_event_name_returns_typed_parts():
    name = parse_event_name("entities.create.requested")

    assert name == EventName("entities", "create", Phase.REQUESTED)
    assert name.phase is Phase.REQUESTED
    assert str(name) == "entities.create.requested"


def test_with_phase_renders_sibling_type():
    name = parse_event_name("workspaceMembers.updateRole.requested")

    assert str(name.with_phase(Phase.VALIDATED)) == "workspaceMembers.updateRole.validated"
    assert str(name.with_phase(Phase.COMPLETED)) == "workspaceMembers.updateRole.completed"


@pytest.mark.parametrize(
    "bad_name",
    ["", "entities", "entities.create", "entities.create.requested.extra", "entities.create.approved", "..."],
)
def test_parse_event_name_rejects_malformed_names(bad_name):
    with pytest.raises(ValidationError):
        parse_event_name(bad_name)


def test_registry_covers_every_family_action_and_phase():
    types = generated_event_types()

    assert "entities.create.requested" in types
    assert "apiKeys.revoke.validated" in types
    assert "workspaceMembers.add.completed" in types
    # Member families don't have CRUD verbs
    assert "workspaceMembers.create.requested" not in types
    expected = sum(len(f.actions) for f in FAMILIES.values()) * len(Phase)
    assert len(types) == expected


@pytest.mark.parametrize(
    "event_type,valid",
    [
        ("entities.update.validated", True),
        ("webhooks.deliver.requested", True),
        ("requests.deny.completed", True),
        ("entities.archive.requested", False),
        ("widgets.create.requested", False),
        ("not an event", False),
        ("", False),
    ],
)
def test_is_valid_event_type(event_type, valid):
    assert is_valid_event_type(event_type) is valid


def test_family_for_subject_type_maps_singular_to_plural():
    assert family_for_subject_type("entity").name == "entities"
    assert family_for_subject_type("workspace_member").name == "workspaceMembers"
    assert family_for_subject_type("conversation_message").name == "conversationMessages"


def test_unknown_subject_type_and_family_raise():
    with pytest.raises(ValidationError):
        family_for_subject_type("entities")
    with pytest.raises(ValidationError):
        get_family("entity")


def test_completed_type():
    assert completed_type("apiKeys", "revoke") == "apiKeys.revoke.completed"
