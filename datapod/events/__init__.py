"""Event envelope, type registry and the append-only log."""

from datapod.events.envelope import Event, EventSource, create_event, derived_event_id
from datapod.events.log import EventLog
from datapod.events.types import EventName, Phase, is_valid_event_type, parse_event_name

__all__ = [
    "Event",
    "EventLog",
    "EventName",
    "EventSource",
    "Phase",
    "create_event",
    "derived_event_id",
    "is_valid_event_type",
    "parse_event_name",
]
