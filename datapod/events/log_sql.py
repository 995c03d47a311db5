"""SqlEventLog: EventLog backed by the ``events`` table."""

import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from datapod.core.exceptions import ConflictError
from datapod.db.models.event import StoredEvent
from datapod.events.envelope import Event
from datapod.events.log import is_same_record

logger = structlog.get_logger(__name__)


def _to_event(row: StoredEvent) -> Event:
    return Event(
        id=row.id,
        version=row.version,
        type=row.type,
        subject_id=row.subject_id,
        subject_type=row.subject_type,
        data=row.data or {},
        metadata=row.metadata_ or {},
        user_id=row.user_id,
        source=row.source,
        correlation_id=row.correlation_id,
        causation_id=row.causation_id,
        timestamp=row.timestamp,
    )


def _to_row(event: Event) -> StoredEvent:
    return StoredEvent(
        id=event.id,
        version=event.version,
        type=event.type,
        subject_id=event.subject_id,
        subject_type=event.subject_type,
        data=event.data,
        metadata_=event.metadata,
        user_id=event.user_id,
        source=event.source.value,
        correlation_id=event.correlation_id,
        causation_id=event.causation_id,
        timestamp=event.timestamp,
    )


class SqlEventLog:
    """Append-only log over SQLAlchemy. Each append is its own transaction."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def append(self, event: Event) -> Event:
        try:
            async with self.session_factory() as session:
                session.add(_to_row(event))
                await session.commit()
        except IntegrityError:
            stored = await self.find_by_id(event.id)
            if stored is None or not is_same_record(stored, event):
                raise ConflictError(
                    f"Event id '{event.id}' already used by a different event",
                    {"event_id": event.id, "type": event.type},
                ) from None
            logger.debug("event_reappend_ignored", event_id=event.id, event_type=event.type)
            return stored

        logger.info(
            "event_appended",
            event_id=event.id,
            event_type=event.type,
            subject_id=event.subject_id,
            correlation_id=event.correlation_id,
        )
        return event

    async def find_by_id(self, event_id: str) -> Event | None:
        async with self.session_factory() as session:
            row = await session.get(StoredEvent, event_id)
            return _to_event(row) if row is not None else None

    async def find_by_subject(self, subject_id: str) -> list[Event]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(StoredEvent)
                .where(StoredEvent.subject_id == subject_id)
                .order_by(StoredEvent.timestamp, StoredEvent.id)
            )
            return [_to_event(row) for row in result.scalars().all()]

    async def find_by_correlation(self, correlation_id: str) -> list[Event]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(StoredEvent)
                .where(StoredEvent.correlation_id == correlation_id)
                .order_by(StoredEvent.timestamp, StoredEvent.id)
            )
            return [_to_event(row) for row in result.scalars().all()]

    async def count(self) -> int:
        async with self.session_factory() as session:
            result = await session.execute(select(func.count()).select_from(StoredEvent))
            return result.scalar_one()
