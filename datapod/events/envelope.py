"""Event envelope.

An Event is the immutable unit of the append-only log. Construct it through
``create_event`` so the type registry and payload schemas are enforced;
instances are frozen pydantic models.
"""

import uuid
from datetime import datetime, timezone
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from datapod.core.exceptions import ValidationError
from datapod.events.payloads import get_payload_schema
from datapod.events.types import is_valid_event_type

EVENT_VERSION = "v1"


class EventSource(StrEnum):
    API = "api"
    AUTOMATION = "automation"
    SYNC = "sync"
    MIGRATION = "migration"


class Event(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    version: str = EVENT_VERSION
    type: str
    subject_id: str
    subject_type: str
    data: dict[str, Any] = Field(default_factory=dict)
    metadata: dict[str, Any] = Field(default_factory=dict)
    user_id: str
    source: EventSource = EventSource.API
    correlation_id: str | None = None
    causation_id: str | None = None
    timestamp: datetime


def create_event(
    type: str,
    subject_id: str,
    subject_type: str,
    data: dict[str, Any] | None,
    user_id: str | None,
    source: EventSource | str = EventSource.API,
    correlation_id: str | None = None,
    metadata: dict[str, Any] | None = None,
    causation_id: str | None = None,
    event_id: str | None = None,
) -> Event:
    """Build a validated Event.

    Generates a fresh UUID (unless ``event_id`` is given, for deterministic
    ids derived by the caller) and stamps the current UTC time.

    Raises:
        ValidationError: missing ``user_id``, unregistered ``type``, unknown
            ``source``, or ``data`` rejected by the type's payload schema.
    """
    if not user_id:
        raise ValidationError("Event requires a user_id", {"type": type})
    if not is_valid_event_type(type):
        raise ValidationError(f"Unknown event type '{type}'", {"type": type})
    if not subject_id:
        raise ValidationError("Event requires a subject_id", {"type": type})

    try:
        parsed_source = EventSource(source)
    except ValueError:
        raise ValidationError(f"Unknown event source '{source}'", {"source": str(source)}) from None

    payload = dict(data or {})
    schema = get_payload_schema(type)
    if schema is not None:
        try:
            schema.model_validate(payload)
        except PydanticValidationError as exc:
            raise ValidationError(
                f"Invalid payload for '{type}'",
                {"type": type, "errors": exc.errors(include_url=False, include_context=False)},
            ) from exc

    return Event(
        id=event_id or str(uuid.uuid4()),
        type=type,
        subject_id=subject_id,
        subject_type=subject_type,
        data=payload,
        metadata=dict(metadata or {}),
        user_id=user_id,
        source=parsed_source,
        correlation_id=correlation_id,
        causation_id=causation_id,
        timestamp=datetime.now(timezone.utc),
    )


def derived_event_id(cause_id: str, label: str) -> str:
    """Deterministic id for an event caused by ``cause_id``.

    A retried handler step derives the same id, so the log's re-append rule
    turns the retry into a no-op instead of a duplicate.
    """
    return str(uuid.uuid5(uuid.NAMESPACE_URL, f"datapod:{cause_id}:{label}"))
