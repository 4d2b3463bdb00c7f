"""
Proposal Data Access Object (DAO).

WHAT: Database operations for the Proposal model and its loaded items.

WHY: Services work on a fully loaded proposal (items and approval
workflow) and hand it to the pricing engine. Loading it in one place keeps
the eager-loading rules consistent; async sessions can't lazy load.

HOW: Extends BaseDAO with:
- A fully loaded lookup that refreshes already-loaded instances
- Status-based filtering for list views
"""

from typing import List, Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from msp_proposals.dao.base import BaseDAO
from msp_proposals.models.approval import ApprovalWorkflow
from msp_proposals.models.proposal import Proposal, ProposalStatus


class ProposalDAO(BaseDAO[Proposal]):
    """
    Data Access Object for Proposal model.

    WHAT: Provides CRUD and query operations for proposals.
    """

    def __init__(self, session: AsyncSession):
        """
        Initialize ProposalDAO.

        Args:
            session: Async database session
        """
        super().__init__(Proposal, session)

    async def get_with_items(self, proposal_id: int) -> Optional[Proposal]:
        """
        Get a proposal with its items and approval workflow loaded.

        WHAT: Single query path used by every service operation.

        WHY: populate_existing makes the result reflect the database even
        when the instance is already in the identity map, e.g. right after
        a flush that renumbered items.

        Args:
            proposal_id: Proposal ID

        Returns:
            Proposal with items and approval workflow, or None
        """
        result = await self.session.execute(
            select(Proposal)
            .where(Proposal.id == proposal_id)
            .options(
                selectinload(Proposal.items),
                selectinload(Proposal.approval_workflow).selectinload(ApprovalWorkflow.steps),
            )
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_by_status(
        self,
        status: ProposalStatus,
        skip: int = 0,
        limit: int = 100,
    ) -> List[Proposal]:
        """
        Get proposals by status.

        WHY: Common use case for dashboards:
        - "Show me drafts still being priced"
        - "What proposals are waiting on the client?"

        Args:
            status: Proposal status to filter by
            skip: Pagination offset
            limit: Pagination limit

        Returns:
            List of proposals matching the status, most recently updated first
        """
        result = await self.session.execute(
            select(Proposal)
            .where(Proposal.status == status)
            .order_by(Proposal.updated_at.desc(), Proposal.id.desc())
            .offset(skip)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def list_proposals(
        self,
        status: Optional[ProposalStatus] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[Proposal]:
        if status is not None:
            return await self.get_by_status(status, skip=skip, limit=limit)

        result = await self.session.execute(
            select(Proposal)
            .order_by(Proposal.updated_at.desc(), Proposal.id.desc())
            .offset(skip)
            .limit(limit)
        )
        return list(result.scalars().all())
