"""ConversationMessage model: chat messages within a thread."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, String, Text

from datapod.db.base import Base, JSONType


class ConversationMessage(Base):
    __tablename__ = "conversation_messages"

    id = Column(String(255), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(255), nullable=False, index=True)
    workspace_id = Column(String(255), nullable=True)
    thread_id = Column(String(255), nullable=False, index=True)

    role = Column(String(20), nullable=False, default="user")  # user, assistant, system
    content = Column(Text, nullable=False)
    metadata_ = Column("metadata", JSONType, nullable=False, default=dict)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))
