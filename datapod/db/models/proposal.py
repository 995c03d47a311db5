"""Proposal model: pending changes awaiting review.

Proposals are a manifestation of the requested -> validated flow, so nothing
that writes this table appends to the event log.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Index, String, Text

from datapod.db.base import Base, JSONType


class Proposal(Base):
    __tablename__ = "proposals"
    __table_args__ = (
        Index("ix_proposals_target", "target_type", "target_id"),
    )

    id = Column(String(255), primary_key=True, default=lambda: str(uuid.uuid4()))
    workspace_id = Column(String(255), nullable=True, index=True)
    user_id = Column(String(255), nullable=False)  # requester

    target_type = Column(String(64), nullable=False)  # subject type, e.g. "entity"
    target_id = Column(String(255), nullable=False)
    # {"eventId", "type", "data", "source", "correlationId", "reason", ...}
    request = Column(JSONType, nullable=False, default=dict)
    status = Column(String(20), nullable=False, default="pending")  # pending, validated, rejected

    reviewed_by = Column(String(255), nullable=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    rejection_reason = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))
