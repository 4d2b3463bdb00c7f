"""
Approval workflow API endpoints.

WHAT: Initiate and drive the sequential approval workflow of a proposal.

WHY: Internal sign-off happens one approver at a time. Deciding out of
turn is refused with 409 Conflict and changes nothing, so a stale UI can
reload and retry.
"""

from typing import Optional
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from msp_proposals.db.session import get_db
from msp_proposals.schemas.approval import (
    ApprovalWorkflowCreate,
    ApprovalWorkflowResponse,
    CancelRequest,
    DecisionRequest,
    SkipRequest,
)
from msp_proposals.services.approval_service import ApprovalService


router = APIRouter(prefix="/proposals/{proposal_id}/approval-workflow", tags=["approvals"])


@router.post(
    "",
    response_model=ApprovalWorkflowResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Start approval workflow",
)
async def initiate_workflow(
    proposal_id: int,
    payload: ApprovalWorkflowCreate,
    db: AsyncSession = Depends(get_db),
) -> ApprovalWorkflowResponse:
    """
    Create the workflow with one pending step per approver, in order.

    Returns 400 for an invalid approver list and 409 if the proposal
    already has a workflow.
    """
    workflow = await ApprovalService(db).initiate(
        proposal_id, [approver.to_spec() for approver in payload.approvers]
    )
    return ApprovalWorkflowResponse.from_workflow(workflow)


@router.get(
    "",
    response_model=ApprovalWorkflowResponse,
    summary="Get approval workflow",
)
async def get_workflow(
    proposal_id: int,
    db: AsyncSession = Depends(get_db),
) -> ApprovalWorkflowResponse:
    workflow = await ApprovalService(db).get_workflow(proposal_id)
    return ApprovalWorkflowResponse.from_workflow(workflow)


@router.post(
    "/steps/{step_id}/decision",
    response_model=ApprovalWorkflowResponse,
    summary="Approve or reject the active step",
)
async def decide_step(
    proposal_id: int,
    step_id: int,
    payload: DecisionRequest,
    db: AsyncSession = Depends(get_db),
) -> ApprovalWorkflowResponse:
    workflow = await ApprovalService(db).decide(
        proposal_id, step_id, payload.decision, payload.comments
    )
    return ApprovalWorkflowResponse.from_workflow(workflow)


@router.post(
    "/steps/{step_id}/skip",
    response_model=ApprovalWorkflowResponse,
    summary="Skip the active optional step",
)
async def skip_step(
    proposal_id: int,
    step_id: int,
    payload: Optional[SkipRequest] = None,
    db: AsyncSession = Depends(get_db),
) -> ApprovalWorkflowResponse:
    workflow = await ApprovalService(db).skip(
        proposal_id, step_id, payload.comments if payload else None
    )
    return ApprovalWorkflowResponse.from_workflow(workflow)


@router.post(
    "/cancel",
    response_model=ApprovalWorkflowResponse,
    summary="Cancel approval workflow",
)
async def cancel_workflow(
    proposal_id: int,
    payload: Optional[CancelRequest] = None,
    db: AsyncSession = Depends(get_db),
) -> ApprovalWorkflowResponse:
    workflow = await ApprovalService(db).cancel(proposal_id, payload.reason if payload else None)
    return ApprovalWorkflowResponse.from_workflow(workflow)
