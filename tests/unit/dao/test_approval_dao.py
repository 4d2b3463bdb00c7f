"""
Unit tests for ApprovalWorkflow DAO.

WHAT: Tests for ApprovalWorkflowDAO and the row <-> engine conversion.

WHY: Step ids handed to the engine are database ids, so a workflow loaded
from the database must convert to an engine value and back without
losing or reordering steps.
"""

import pytest
from datetime import datetime

from msp_proposals.dao.approval import ApprovalWorkflowDAO
from msp_proposals.domain import approval as engine
from msp_proposals.domain.approval import ApproverSpec, StepStatus, WorkflowStatus
from tests.factories import ApprovalWorkflowFactory, ProposalFactory


class TestApprovalWorkflowDAO:
    """Tests for workflow lookups."""

    @pytest.mark.asyncio
    async def test_get_by_proposal(self, db_session):
        proposal = await ProposalFactory.create(db_session)
        created = await ApprovalWorkflowFactory.create(db_session, proposal)

        row = await ApprovalWorkflowDAO(db_session).get_by_proposal(proposal.id)

        assert row.id == created.id
        assert row.status == WorkflowStatus.PENDING
        assert [s.approver_id for s in row.steps] == ["u-finance", "u-manager"]

    @pytest.mark.asyncio
    async def test_get_by_proposal_without_workflow(self, db_session):
        proposal = await ProposalFactory.create(db_session)

        assert await ApprovalWorkflowDAO(db_session).get_by_proposal(proposal.id) is None


class TestApprovalWorkflowConversion:
    """Tests for to_domain / apply_domain."""

    @pytest.mark.asyncio
    async def test_to_domain_uses_row_ids(self, db_session):
        proposal = await ProposalFactory.create(db_session)
        row = await ApprovalWorkflowFactory.create(
            db_session,
            proposal,
            approvers=[ApproverSpec("a"), ApproverSpec("b", required=False)],
        )

        workflow = row.to_domain()

        assert workflow.id == row.id
        assert [s.id for s in workflow.steps] == [s.id for s in row.steps]
        assert workflow.active_step.id == row.steps[0].id
        assert workflow.steps[1].required is False

    @pytest.mark.asyncio
    async def test_apply_domain_persists_decision(self, db_session):
        proposal = await ProposalFactory.create(db_session)
        row = await ApprovalWorkflowFactory.create(db_session, proposal)
        first_step_id = row.steps[0].id
        decided_at = datetime(2026, 5, 4, 12, 0)

        result = engine.decide(row.to_domain(), first_step_id, "reject", "Margin too low", now=decided_at)
        row.apply_domain(result.workflow)
        await db_session.flush()

        reloaded = await ApprovalWorkflowDAO(db_session).get_by_proposal(proposal.id)
        assert reloaded.status == WorkflowStatus.REJECTED
        assert reloaded.completed_at == decided_at
        assert reloaded.steps[0].status == StepStatus.REJECTED
        assert reloaded.steps[0].comments == "Margin too low"
        assert reloaded.steps[1].status == StepStatus.PENDING
