"""ProjectionRepository: tenant-scoped writes that announce themselves.

Every mutation:
1. performs exactly one statement scoped by ``(id, user_id)`` inside a
   tenant_session (so another tenant's row looks exactly like a missing one)
2. raises NotFoundError when zero rows matched
3. after commit, appends ``{family}.{action}.completed`` with the row id as
   subject and the row's identifying fields as data

When the caller passes ``causation_id`` (executors pass the validated event
id) the completed event id is derived from it, so a retried executor step
re-appends the same record instead of a second one.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, ClassVar, Generic, TypeVar

import structlog
from sqlalchemy import delete as sql_delete
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from datapod.core.exceptions import ConflictError, NotFoundError
from datapod.db.base import Base
from datapod.db.tenant import tenant_session
from datapod.events.envelope import Event, EventSource, create_event, derived_event_id
from datapod.events.log import EventLog
from datapod.events.types import completed_type

logger = structlog.get_logger(__name__)

ModelT = TypeVar("ModelT", bound=Base)


def row_to_dict(row: Base) -> dict[str, Any]:
    """Column values of an ORM row, JSON-safe (datetimes as ISO strings)."""
    out: dict[str, Any] = {}
    for attr in row.__mapper__.column_attrs:
        value = getattr(row, attr.key)
        if isinstance(value, datetime):
            value = value.isoformat()
        out[attr.columns[0].name] = value
    return out


def pick_columns(data: dict[str, Any], field_map: dict[str, str]) -> dict[str, Any]:
    """Translate payload keys (camelCase or snake_case) to ORM attribute names."""
    return {field_map[key]: value for key, value in data.items() if key in field_map}


class CompletedEventEmitter:
    """Appends ``{family}.{action}.completed`` audit events."""

    family: ClassVar[str]  # event family, e.g. "entities"
    subject_type: ClassVar[str]
    event_log: EventLog

    async def _emit(
        self,
        action: str,
        subject_id: str,
        data: dict[str, Any],
        user_id: str,
        causation_id: str | None,
        correlation_id: str | None,
        source: EventSource | str,
    ) -> Event:
        event_type = completed_type(self.family, action)
        event = create_event(
            type=event_type,
            subject_id=subject_id,
            subject_type=self.subject_type,
            data=data,
            user_id=user_id,
            source=source,
            correlation_id=correlation_id,
            causation_id=causation_id,
            metadata={"workspaceId": data["workspaceId"]} if data.get("workspaceId") else None,
            event_id=derived_event_id(causation_id, event_type) if causation_id else None,
        )
        return await self.event_log.append(event)

    async def completed_logged(self, action: str, causation_id: str) -> bool:
        """True when the completed event caused by ``causation_id`` is already in the log."""
        event_id = derived_event_id(causation_id, completed_type(self.family, action))
        return await self.event_log.find_by_id(event_id) is not None


class ProjectionRepository(CompletedEventEmitter, Generic[ModelT]):
    model: ClassVar[type[Base]]
    resource_name: ClassVar[str]  # for NotFoundError messages
    # payload key -> ORM attribute, for create and update
    field_map: ClassVar[dict[str, str]] = {}
    # ORM attributes copied into completed events
    summary_fields: ClassVar[tuple[str, ...]] = ()
    # ORM attributes never returned to executors or step records
    secret_fields: ClassVar[tuple[str, ...]] = ()

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], event_log: EventLog):
        self.session_factory = session_factory
        self.event_log = event_log

    # -- reads --

    def _scoped(self, row_id: str, user_id: str) -> list:
        return [self.model.id == row_id, self.model.user_id == user_id]

    async def find(self, row_id: str, user_id: str) -> ModelT | None:
        async with self.session_factory() as session:
            result = await session.execute(select(self.model).where(*self._scoped(row_id, user_id)))
            return result.scalar_one_or_none()

    async def get(self, row_id: str, user_id: str) -> ModelT:
        row = await self.find(row_id, user_id)
        if row is None:
            raise NotFoundError(self.resource_name, row_id)
        return row

    async def list_for_user(self, user_id: str, limit: int = 100) -> list[ModelT]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(self.model)
                .where(*self._scoped_list(user_id))
                .order_by(self.model.created_at.desc())
                .limit(limit)
            )
            return list(result.scalars().all())

    def _scoped_list(self, user_id: str) -> list:
        return [self.model.user_id == user_id]

    # -- writes --

    def _create_values(self, data: dict[str, Any]) -> dict[str, Any]:
        return pick_columns(data, self.field_map)

    def _update_values(self, data: dict[str, Any]) -> dict[str, Any]:
        return pick_columns(data, self.field_map)

    async def create(
        self,
        data: dict[str, Any],
        user_id: str,
        row_id: str | None = None,
        causation_id: str | None = None,
        correlation_id: str | None = None,
        source: EventSource | str = EventSource.API,
    ) -> ModelT:
        """Insert a row owned by ``user_id``.

        Raises:
            ConflictError: a row with this id already exists
        """
        values = self._create_values(data)
        values["id"] = row_id or str(uuid.uuid4())
        row = self.model(user_id=user_id, **values)

        try:
            async with tenant_session(self.session_factory, user_id) as session:
                session.add(row)
                await self._after_insert(session, row)
        except IntegrityError as exc:
            raise ConflictError(
                f'{self.resource_name} with id "{values["id"]}" already exists',
                {"resource": self.resource_name, "id": values["id"]},
            ) from exc

        logger.info("projection_created", subject_type=self.subject_type, row_id=row.id, user_id=user_id)
        await self.emit_completed(row, "create", user_id, causation_id, correlation_id, source)
        return row

    async def _after_insert(self, session: AsyncSession, row: ModelT) -> None:
        """Hook for rows that need companions in the same transaction."""

    async def update(
        self,
        row_id: str,
        data: dict[str, Any],
        user_id: str,
        causation_id: str | None = None,
        correlation_id: str | None = None,
        source: EventSource | str = EventSource.API,
    ) -> ModelT:
        """Update the caller's row. Raises NotFoundError if it is not theirs."""
        values = self._update_values(data)
        values["updated_at"] = datetime.now(timezone.utc)
        await self._scoped_write(row_id, user_id, values)

        row = await self.get(row_id, user_id)
        logger.info("projection_updated", subject_type=self.subject_type, row_id=row_id, fields=sorted(values))
        await self.emit_completed(row, "update", user_id, causation_id, correlation_id, source)
        return row

    async def delete(
        self,
        row_id: str,
        user_id: str,
        causation_id: str | None = None,
        correlation_id: str | None = None,
        source: EventSource | str = EventSource.API,
    ) -> None:
        """Delete the caller's row. Raises NotFoundError if it is not theirs."""
        async with tenant_session(self.session_factory, user_id) as session:
            result = await session.execute(sql_delete(self.model).where(*self._scoped(row_id, user_id)))
            if result.rowcount == 0:
                raise NotFoundError(self.resource_name, row_id)

        logger.info("projection_deleted", subject_type=self.subject_type, row_id=row_id)
        await self.emit_deleted(row_id, user_id, causation_id, correlation_id, source)

    async def _scoped_write(self, row_id: str, user_id: str, values: dict[str, Any], *extra_where) -> None:
        async with tenant_session(self.session_factory, user_id) as session:
            result = await session.execute(
                update(self.model).where(*self._scoped(row_id, user_id), *extra_where).values(**values)
            )
            if result.rowcount == 0:
                raise NotFoundError(self.resource_name, row_id)

    # -- completed events --

    def summarize(self, row: ModelT) -> dict[str, Any]:
        summary: dict[str, Any] = {"id": row.id, "userId": row.user_id}
        workspace_id = getattr(row, "workspace_id", None)
        if workspace_id:
            summary["workspaceId"] = workspace_id
        for field in self.summary_fields:
            value = getattr(row, field)
            summary[field] = value.isoformat() if isinstance(value, datetime) else value
        return summary

    async def emit_completed(
        self,
        row: ModelT,
        action: str,
        user_id: str,
        causation_id: str | None = None,
        correlation_id: str | None = None,
        source: EventSource | str = EventSource.API,
    ) -> Event:
        return await self._emit(action, row.id, self.summarize(row), user_id, causation_id, correlation_id, source)

    async def emit_deleted(
        self,
        row_id: str,
        user_id: str,
        causation_id: str | None = None,
        correlation_id: str | None = None,
        source: EventSource | str = EventSource.API,
    ) -> Event:
        return await self._emit(
            "delete", row_id, {"id": row_id, "userId": user_id}, user_id, causation_id, correlation_id, source
        )

    def to_result(self, row: ModelT) -> dict[str, Any]:
        """Row as an executor result, without secret columns."""
        out = row_to_dict(row)
        for field in self.secret_fields:
            out.pop(field, None)
        return out
