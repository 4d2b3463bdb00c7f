"""
Approval Service.

WHAT: Orchestrates the approval workflow engine against stored workflows.

WHY: The engine reports ordering violations as refused results rather
than raising. This service turns a refusal into an ApprovalOrderViolationError
and writes nothing; an accepted result is written back step by step.

HOW: Load rows -> convert to engine value -> run engine operation ->
apply the returned value to the rows -> flush.
"""

import logging
from typing import Any, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from msp_proposals.core.exceptions import (
    ApprovalOrderViolationError,
    ApprovalStepNotFoundError,
    ApprovalWorkflowExistsError,
    ApprovalWorkflowNotFoundError,
    InvalidStateTransitionError,
)
from msp_proposals.dao.approval import ApprovalWorkflowDAO
from msp_proposals.domain import approval as engine
from msp_proposals.domain.approval import (
    ApprovalDecision,
    ApproverSpec,
    DecisionRefusal,
    DecisionResult,
)
from msp_proposals.models.approval import ApprovalStep, ApprovalWorkflow
from msp_proposals.models.proposal import ProposalStatus
from msp_proposals.services.proposal_service import ProposalService


logger = logging.getLogger(__name__)


class ApprovalService:
    """
    Service for proposal approval workflows.

    WHY: One workflow per proposal; its steps are fixed at initiation.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.workflow_dao = ApprovalWorkflowDAO(session)
        self.proposals = ProposalService(session)

    async def _get_row(self, proposal_id: int) -> ApprovalWorkflow:
        await self.proposals.get_proposal(proposal_id)
        row = await self.workflow_dao.get_by_proposal(proposal_id)
        if row is None:
            raise ApprovalWorkflowNotFoundError(
                message=f"Proposal {proposal_id} has no approval workflow",
                proposal_id=proposal_id,
            )
        return row

    async def get_workflow(self, proposal_id: int) -> engine.ApprovalWorkflow:
        """
        Get a proposal's workflow as an engine value.

        Raises:
            ProposalNotFoundError: If the proposal doesn't exist
            ApprovalWorkflowNotFoundError: If it has no workflow
        """
        row = await self._get_row(proposal_id)
        return row.to_domain()

    async def initiate(
        self,
        proposal_id: int,
        approvers: Sequence[ApproverSpec],
    ) -> engine.ApprovalWorkflow:
        """
        Create the approval workflow of a proposal.

        Args:
            proposal_id: Proposal ID
            approvers: Approvers in approval order

        Returns:
            The new workflow

        Raises:
            ApprovalWorkflowExistsError: The proposal already has a workflow
            InvalidStateTransitionError: The proposal is already decided
            ValidationError: Invalid approver configuration
        """
        proposal = await self.proposals.get_proposal(proposal_id)
        if proposal.approval_workflow is not None:
            raise ApprovalWorkflowExistsError(proposal_id=proposal_id)
        if proposal.status in (ProposalStatus.ACCEPTED, ProposalStatus.REJECTED):
            raise InvalidStateTransitionError(
                message=f"Cannot start approval for a {proposal.status.value} proposal",
                proposal_id=proposal_id,
            )

        workflow = engine.initiate_workflow(proposal_id, approvers)
        row = ApprovalWorkflow(
            proposal_id=proposal_id,
            status=workflow.status,
            created_at=workflow.created_at,
            steps=[
                ApprovalStep(
                    step_order=step.order,
                    approver_id=step.approver_id,
                    approver_name=step.approver_name,
                    approver_email=step.approver_email,
                    required=step.required,
                    status=step.status,
                )
                for step in workflow.steps
            ],
        )
        self.session.add(row)
        await self.session.flush()

        logger.info(
            f"Approval workflow {row.id} started for proposal {proposal_id} "
            f"with {len(workflow.steps)} steps"
        )
        return await self.get_workflow(proposal_id)

    async def _commit_result(
        self,
        row: ApprovalWorkflow,
        result: DecisionResult,
        step_id: Optional[Any],
        action: str,
    ) -> engine.ApprovalWorkflow:
        if not result.accepted:
            logger.warning(
                f"Refused {action} on workflow {row.id} step {step_id}: {result.refusal.value}"
            )
            if result.refusal == DecisionRefusal.UNKNOWN_STEP:
                raise ApprovalStepNotFoundError(
                    message=f"Workflow {row.id} has no step {step_id}",
                    step_id=step_id,
                )
            raise ApprovalOrderViolationError(
                message=result.message,
                refusal=result.refusal.value,
                step_id=step_id,
            )

        row.apply_domain(result.workflow)
        await self.session.flush()
        logger.info(
            f"Workflow {row.id} {action} accepted; status is {result.workflow.status.value}"
        )
        return result.workflow

    async def decide(
        self,
        proposal_id: int,
        step_id: int,
        decision: ApprovalDecision,
        comments: Optional[str] = None,
    ) -> engine.ApprovalWorkflow:
        """
        Approve or reject the active step.

        Raises:
            ApprovalStepNotFoundError: Step is not part of the workflow
            ApprovalOrderViolationError: Step is not the active one, already
                decided, or the workflow is closed
        """
        row = await self._get_row(proposal_id)
        decision = ApprovalDecision(decision)
        result = engine.decide(row.to_domain(), step_id, decision, comments)
        return await self._commit_result(row, result, step_id, decision.value)

    async def skip(
        self,
        proposal_id: int,
        step_id: int,
        comments: Optional[str] = None,
    ) -> engine.ApprovalWorkflow:
        row = await self._get_row(proposal_id)
        result = engine.skip(row.to_domain(), step_id, comments)
        return await self._commit_result(row, result, step_id, "skip")

    async def cancel(
        self,
        proposal_id: int,
        reason: Optional[str] = None,
    ) -> engine.ApprovalWorkflow:
        """Administratively cancel a pending workflow."""
        row = await self._get_row(proposal_id)
        result = engine.cancel(row.to_domain(), reason)
        return await self._commit_result(row, result, None, "cancel")
