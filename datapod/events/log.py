"""EventLog Protocol: the append-only log interface.

The gateway, repositories, executors and proposal service only see this
protocol. Implementations:
- SqlEventLog (log_sql.py): the ``events`` table
- InMemoryEventLog (log_fake.py): test double

Re-appending an id that is already stored returns the stored record when the
type and subject match (a retried step), and raises ConflictError otherwise.
Stored events are never updated or deleted.
"""

from typing import Protocol, runtime_checkable

from datapod.events.envelope import Event


@runtime_checkable
class EventLog(Protocol):
    async def append(self, event: Event) -> Event:
        """Persist ``event`` and return the stored record.

        Raises:
            ConflictError: if the id is taken by a different event.
        """
        ...

    async def find_by_id(self, event_id: str) -> Event | None:
        ...

    async def find_by_subject(self, subject_id: str) -> list[Event]:
        """All events for a subject, oldest first."""
        ...

    async def find_by_correlation(self, correlation_id: str) -> list[Event]:
        """All events sharing a correlation id, oldest first."""
        ...


def is_same_record(stored: Event, candidate: Event) -> bool:
    """True when ``candidate`` is a re-append of ``stored`` rather than a collision."""
    return (
        stored.type == candidate.type
        and stored.subject_id == candidate.subject_id
        and stored.subject_type == candidate.subject_type
    )
