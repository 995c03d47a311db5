"""Entity model: core knowledge graph nodes (notes, tasks, documents)."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, String, Text

from datapod.db.base import Base, JSONType


class Entity(Base):
    __tablename__ = "entities"

    id = Column(String(255), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(255), nullable=False, index=True)
    workspace_id = Column(String(255), nullable=True, index=True)
    project_id = Column(String(255), nullable=True)

    entity_type = Column(String(50), nullable=False, default="note")  # note, task, project, document
    title = Column(String(500), nullable=True)
    preview = Column(Text, nullable=True)
    content = Column(Text, nullable=True)
    document_id = Column(String(255), nullable=True)
    metadata_ = Column("metadata", JSONType, nullable=False, default=dict)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))
    deleted_at = Column(DateTime(timezone=True), nullable=True)  # soft delete
