"""Project model: user projects grouping entities."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, String, Text

from datapod.db.base import Base, JSONType


class Project(Base):
    __tablename__ = "projects"

    id = Column(String(255), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(255), nullable=False, index=True)
    workspace_id = Column(String(255), nullable=True, index=True)

    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(String(50), nullable=False, default="active")  # active, archived, completed
    settings = Column(JSONType, nullable=False, default=dict)
    metadata_ = Column("metadata", JSONType, nullable=False, default=dict)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))
