"""Dispatch message schema and queue constants."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from datapod.events.envelope import Event

# Priority boost (higher boost = dequeued sooner)
PRIORITY_BOOST = {
    "critical": 10,
    "high": 5,
    "normal": 0,
    "low": -5,
}


class DeliveryStatus(str, Enum):
    """Delivery lifecycle states."""

    PENDING = "pending"
    RUNNING = "running"
    RETRYING = "retrying"
    COMPLETED = "completed"
    DEAD = "dead"


class DispatchUser(BaseModel):
    id: str


class DispatchMessage(BaseModel):
    """What a dispatcher carries to executors: ``{name, data, user}`` plus routing context."""

    id: str  # the logged event's id
    name: str
    data: dict[str, Any] = Field(default_factory=dict)
    user: DispatchUser
    subject_id: str
    subject_type: str
    correlation_id: str | None = None
    workspace_id: str | None = None
    source: str = "api"
    metadata: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_event(cls, event: Event) -> "DispatchMessage":
        return cls(
            id=event.id,
            name=event.type,
            data=event.data,
            user=DispatchUser(id=event.user_id),
            subject_id=event.subject_id,
            subject_type=event.subject_type,
            correlation_id=event.correlation_id,
            workspace_id=event.metadata.get("workspaceId") or event.data.get("workspaceId"),
            source=event.source.value,
            metadata=event.metadata,
        )

    @property
    def user_id(self) -> str:
        return self.user.id

    @property
    def priority(self) -> str:
        return str(self.metadata.get("priority") or "normal")
