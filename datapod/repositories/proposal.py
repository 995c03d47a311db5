"""ProposalRepository: pending changes awaiting review.

Proposals are part of the requested -> validated flow, so this repository has
no event log collaborator: none of its writes append log events.
"""

from datetime import datetime, timezone
from typing import Any

import structlog
from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from datapod.core.exceptions import NotFoundError, ValidationError
from datapod.db.models.proposal import Proposal

logger = structlog.get_logger(__name__)

PROPOSAL_STATUSES = ("pending", "validated", "rejected")


class ProposalRepository:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def create(
        self,
        target_type: str,
        target_id: str,
        request: dict[str, Any],
        user_id: str,
        workspace_id: str | None = None,
    ) -> Proposal:
        row = Proposal(
            workspace_id=workspace_id,
            user_id=user_id,
            target_type=target_type,
            target_id=target_id,
            request=request,
            status="pending",
        )
        async with self.session_factory() as session:
            session.add(row)
            await session.commit()
            await session.refresh(row)

        logger.info("proposal_created", proposal_id=row.id, target_type=target_type, target_id=target_id)
        return row

    async def get(self, proposal_id: str) -> Proposal:
        async with self.session_factory() as session:
            row = await session.get(Proposal, proposal_id)
            if row is None:
                raise NotFoundError("Proposal", proposal_id)
            return row

    async def update(self, proposal_id: str, values: dict[str, Any], *where) -> Proposal:
        """Apply ``values``; extra ``where`` clauses make the update conditional.

        Raises:
            NotFoundError: no row matched
        """
        status = values.get("status")
        if status is not None and status not in PROPOSAL_STATUSES:
            raise ValidationError(f"Invalid proposal status '{status}'", {"status": status})

        async with self.session_factory() as session:
            result = await session.execute(
                update(Proposal)
                .where(Proposal.id == proposal_id, *where)
                .values(**values, updated_at=datetime.now(timezone.utc))
            )
            if result.rowcount == 0:
                raise NotFoundError("Proposal", proposal_id)
            await session.commit()
        return await self.get(proposal_id)

    async def mark_reviewed(
        self,
        proposal_id: str,
        status: str,
        reviewer_id: str,
        rejection_reason: str | None = None,
    ) -> Proposal:
        """Move a pending proposal to ``status``. Raises NotFoundError if it is not pending."""
        return await self.update(
            proposal_id,
            {
                "status": status,
                "reviewed_by": reviewer_id,
                "reviewed_at": datetime.now(timezone.utc),
                "rejection_reason": rejection_reason,
            },
            Proposal.status == "pending",
        )

    async def delete(self, proposal_id: str) -> None:
        async with self.session_factory() as session:
            result = await session.execute(delete(Proposal).where(Proposal.id == proposal_id))
            if result.rowcount == 0:
                raise NotFoundError("Proposal", proposal_id)
            await session.commit()

    async def find_by_workspace(self, workspace_id: str, status: str | None = "pending") -> list[Proposal]:
        query = select(Proposal).where(Proposal.workspace_id == workspace_id)
        if status:
            query = query.where(Proposal.status == status)
        async with self.session_factory() as session:
            result = await session.execute(query.order_by(Proposal.created_at))
            return list(result.scalars().all())

    async def find_by_target(self, target_type: str, target_id: str) -> list[Proposal]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(Proposal)
                .where(Proposal.target_type == target_type, Proposal.target_id == target_id)
                .order_by(Proposal.created_at)
            )
            return list(result.scalars().all())
