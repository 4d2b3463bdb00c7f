"""
Approval workflow Data Access Object (DAO).

WHAT: Database operations for approval workflows and their steps.
"""

from typing import Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from msp_proposals.dao.base import BaseDAO
from msp_proposals.models.approval import ApprovalWorkflow


class ApprovalWorkflowDAO(BaseDAO[ApprovalWorkflow]):
    """Data Access Object for ApprovalWorkflow model."""

    def __init__(self, session: AsyncSession):
        super().__init__(ApprovalWorkflow, session)

    async def get_by_proposal(self, proposal_id: int) -> Optional[ApprovalWorkflow]:
        """
        Get the workflow of a proposal with its steps loaded.

        Args:
            proposal_id: Proposal ID

        Returns:
            The workflow, or None when the proposal has none
        """
        result = await self.session.execute(
            select(ApprovalWorkflow)
            .where(ApprovalWorkflow.proposal_id == proposal_id)
            .options(selectinload(ApprovalWorkflow.steps))
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()
