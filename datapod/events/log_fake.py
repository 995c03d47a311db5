"""InMemoryEventLog: deterministic EventLog test double.

Keeps events in insertion order. ``fail_next_append`` lets tests simulate a
log outage for the next N appends.
"""

import structlog

from datapod.core.exceptions import ConflictError
from datapod.events.envelope import Event
from datapod.events.log import is_same_record

logger = structlog.get_logger(__name__)


class InMemoryEventLog:
    def __init__(self) -> None:
        self._events: dict[str, Event] = {}
        self.fail_next_append = 0

    async def append(self, event: Event) -> Event:
        if self.fail_next_append > 0:
            self.fail_next_append -= 1
            raise ConnectionError("event log unavailable")

        stored = self._events.get(event.id)
        if stored is not None:
            if not is_same_record(stored, event):
                raise ConflictError(
                    f"Event id '{event.id}' already used by a different event",
                    {"event_id": event.id, "stored_type": stored.type, "type": event.type},
                )
            logger.debug("event_reappend_ignored", event_id=event.id, event_type=event.type)
            return stored

        self._events[event.id] = event
        return event

    async def find_by_id(self, event_id: str) -> Event | None:
        return self._events.get(event_id)

    async def find_by_subject(self, subject_id: str) -> list[Event]:
        return [e for e in self._events.values() if e.subject_id == subject_id]

    async def find_by_correlation(self, correlation_id: str) -> list[Event]:
        return [e for e in self._events.values() if e.correlation_id == correlation_id]

    # -- test helpers --

    @property
    def events(self) -> list[Event]:
        return list(self._events.values())

    def of_type(self, event_type: str) -> list[Event]:
        return [e for e in self._events.values() if e.type == event_type]

    def __len__(self) -> int:
        return len(self._events)
