"""Workspace and WorkspaceMember models: multi-user collaboration spaces."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Index, String, Text, UniqueConstraint

from datapod.db.base import Base, JSONType


class Workspace(Base):
    __tablename__ = "workspaces"

    id = Column(String(255), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(255), nullable=False, index=True)  # owner

    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    type = Column(String(50), nullable=False, default="personal")  # personal, team
    # {"validationRules": {"entity": {"create": false}}, "autoApproveAutomation": false}
    settings = Column(JSONType, nullable=False, default=dict)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))


class WorkspaceMember(Base):
    __tablename__ = "workspace_members"
    __table_args__ = (
        UniqueConstraint("workspace_id", "user_id", name="uq_workspace_members_workspace_user"),
        Index("ix_workspace_members_workspace_user", "workspace_id", "user_id"),
    )

    id = Column(String(255), primary_key=True, default=lambda: str(uuid.uuid4()))
    workspace_id = Column(String(255), nullable=False)
    user_id = Column(String(255), nullable=False, index=True)
    role = Column(String(20), nullable=False, default="viewer")  # viewer, editor, admin, owner
    invited_by = Column(String(255), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))
