"""Event type registry and event-name decoding.

Event names follow ``{family}.{action}.{phase}``: lowercase-leading,
dot-delimited, exactly three segments. ``family`` is the plural camelCase
table name (``entities``, ``workspaceMembers``); the matching ``subject_type``
is its singular snake_case form (``entity``, ``workspace_member``). FAMILIES is
the one place that pairs them.

The registry is closed: fixed system event types plus the types generated for
every (family, action, phase) combination below.
"""

from dataclasses import dataclass
from enum import StrEnum

from datapod.core.exceptions import ValidationError


class Phase(StrEnum):
    """Lifecycle phase of a command."""

    REQUESTED = "requested"  # intent submitted
    VALIDATED = "validated"  # authorized, ready for an executor
    COMPLETED = "completed"  # projection written (audit record, not a trigger)


CRUD_ACTIONS: tuple[str, ...] = ("create", "update", "delete")


@dataclass(frozen=True)
class Family:
    """A projection family: its event prefix, subject type, and verbs."""

    name: str
    subject_type: str
    actions: tuple[str, ...] = CRUD_ACTIONS


FAMILIES: dict[str, Family] = {
    f.name: f
    for f in (
        Family("entities", "entity"),
        Family("projects", "project"),
        Family("workspaces", "workspace"),
        Family("workspaceMembers", "workspace_member", ("add", "remove", "updateRole")),
        Family("apiKeys", "api_key", CRUD_ACTIONS + ("revoke",)),
        Family("templates", "template"),
        Family("conversationMessages", "conversation_message"),
    )
}

_FAMILY_BY_SUBJECT_TYPE: dict[str, Family] = {f.subject_type: f for f in FAMILIES.values()}


class SystemEventTypes:
    """Event types for cross-cutting operations that don't map to a table."""

    WEBHOOK_DELIVERY = "webhooks.deliver.requested"
    REQUEST_DENIED = "requests.deny.completed"


SYSTEM_EVENT_TYPES: frozenset[str] = frozenset(
    {SystemEventTypes.WEBHOOK_DELIVERY, SystemEventTypes.REQUEST_DENIED}
)


@dataclass(frozen=True)
class EventName:
    """Decoded ``{family}.{action}.{phase}`` event name."""

    family: str
    action: str
    phase: Phase

    def __str__(self) -> str:
        return f"{self.family}.{self.action}.{self.phase.value}"

    def with_phase(self, phase: Phase) -> "EventName":
        return EventName(self.family, self.action, phase)


def parse_event_name(name: str) -> EventName:
    """Decode an event name once, at the boundary.

    Raises:
        ValidationError: if the name is not three non-empty segments or the
            phase is not one of requested/validated/completed.
    """
    parts = name.split(".") if isinstance(name, str) else []
    if len(parts) != 3 or not all(parts):
        raise ValidationError(
            f"Malformed event type '{name}': expected {{family}}.{{action}}.{{phase}}",
            {"type": name},
        )
    family, action, phase = parts
    try:
        parsed_phase = Phase(phase)
    except ValueError:
        raise ValidationError(
            f"Unknown phase '{phase}' in event type '{name}'",
            {"type": name, "phase": phase},
        ) from None
    return EventName(family=family, action=action, phase=parsed_phase)


def generated_event_types() -> frozenset[str]:
    """All generated table event types."""
    return frozenset(
        f"{family.name}.{action}.{phase.value}"
        for family in FAMILIES.values()
        for action in family.actions
        for phase in Phase
    )


_GENERATED_EVENT_TYPES = generated_event_types()


def is_valid_event_type(event_type: str) -> bool:
    """Check membership in the closed registry. Never raises."""
    return event_type in SYSTEM_EVENT_TYPES or event_type in _GENERATED_EVENT_TYPES


def get_family(name: str) -> Family:
    family = FAMILIES.get(name)
    if family is None:
        raise ValidationError(f"Unknown event family '{name}'", {"family": name})
    return family


def family_for_subject_type(subject_type: str) -> Family:
    """Map a singular subject type to its family.

    Raises:
        ValidationError: if the subject type is not registered.
    """
    family = _FAMILY_BY_SUBJECT_TYPE.get(subject_type)
    if family is None:
        raise ValidationError(f"Unknown subject type '{subject_type}'", {"subject_type": subject_type})
    return family


def completed_type(family: str, action: str) -> str:
    return str(EventName(family, action, Phase.COMPLETED))
