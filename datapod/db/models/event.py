"""StoredEvent model: the append-only event log."""

from sqlalchemy import Column, DateTime, Index, String

from datapod.db.base import Base, JSONType


class StoredEvent(Base):
    __tablename__ = "events"
    __table_args__ = (
        Index("ix_events_type_timestamp", "type", "timestamp"),
    )

    id = Column(String(36), primary_key=True)
    version = Column(String(8), nullable=False, default="v1")
    type = Column(String(128), nullable=False)  # {family}.{action}.{phase}

    subject_id = Column(String(255), nullable=False, index=True)
    subject_type = Column(String(64), nullable=False)

    data = Column(JSONType, nullable=False, default=dict)
    metadata_ = Column("metadata", JSONType, nullable=False, default=dict)

    user_id = Column(String(255), nullable=False, index=True)
    source = Column(String(32), nullable=False, default="api")  # api, automation, sync, migration

    correlation_id = Column(String(36), nullable=True, index=True)
    causation_id = Column(String(36), nullable=True)

    timestamp = Column(DateTime(timezone=True), nullable=False)
    # NO updated_at -- events are immutable (append-only)
