"""
Pydantic schemas for approval workflow endpoints.

WHAT: Request/response schemas for initiating and driving a proposal's
sequential approval workflow.

WHY: The response always carries the derived status and the active step,
so the UI never has to work out whose turn it is.
"""

from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field

from msp_proposals.domain.approval import (
    ApprovalDecision,
    ApprovalStep,
    ApprovalWorkflow,
    ApproverSpec,
    StepStatus,
    WorkflowStatus,
    workflow_progress,
)


class ApproverInput(BaseModel):
    """One approver, in approval order."""

    approver_id: str = Field(..., max_length=255, description="Opaque approver identity")
    approver_name: str = Field(default="", max_length=255)
    approver_email: str = Field(default="", max_length=255)
    required: bool = Field(default=True, description="Whether the step blocks approval")

    def to_spec(self) -> ApproverSpec:
        return ApproverSpec(
            approver_id=self.approver_id,
            approver_name=self.approver_name,
            approver_email=self.approver_email,
            required=self.required,
        )


class ApprovalWorkflowCreate(BaseModel):
    """
    Workflow initiation request.

    WHY: Steps are created together and fixed for the life of the workflow.
    """

    approvers: List[ApproverInput] = Field(default_factory=list)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "approvers": [
                    {"approver_id": "u-17", "approver_name": "Dana Reyes", "required": True},
                    {"approver_id": "u-42", "approver_name": "Sam Ortiz", "required": False},
                ]
            }
        }
    )


class DecisionRequest(BaseModel):
    decision: ApprovalDecision
    comments: Optional[str] = Field(default=None, max_length=5000)


class SkipRequest(BaseModel):
    comments: Optional[str] = Field(default=None, max_length=5000)


class CancelRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=2000)


class ApprovalStepResponse(BaseModel):
    id: int
    order: int
    approver_id: str
    approver_name: str
    approver_email: str
    required: bool
    status: StepStatus
    comments: Optional[str] = None
    decided_at: Optional[datetime] = None
    is_active: bool

    @classmethod
    def from_step(cls, step: ApprovalStep, is_active: bool) -> "ApprovalStepResponse":
        return cls(
            id=step.id,
            order=step.order,
            approver_id=step.approver_id,
            approver_name=step.approver_name,
            approver_email=step.approver_email,
            required=step.required,
            status=step.status,
            comments=step.comments,
            decided_at=step.decided_at,
            is_active=is_active,
        )


class WorkflowProgressResponse(BaseModel):
    total_steps: int
    approved_steps: int
    rejected_steps: int
    skipped_steps: int
    pending_steps: int
    current_step_order: Optional[int] = None


class ApprovalWorkflowResponse(BaseModel):
    """
    Approval workflow with derived state.

    WHAT: ``status`` and ``active_step_id`` are derived from the steps on
    every read.
    """

    id: int
    proposal_id: int
    status: WorkflowStatus
    created_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancel_reason: Optional[str] = None
    active_step_id: Optional[int] = None
    steps: List[ApprovalStepResponse]
    progress: WorkflowProgressResponse

    @classmethod
    def from_workflow(cls, workflow: ApprovalWorkflow) -> "ApprovalWorkflowResponse":
        active = workflow.active_step
        active_id = active.id if active is not None else None
        progress = workflow_progress(workflow)
        return cls(
            id=workflow.id,
            proposal_id=workflow.proposal_id,
            status=workflow.status,
            created_at=workflow.created_at,
            completed_at=workflow.completed_at,
            cancelled_at=workflow.cancelled_at,
            cancel_reason=workflow.cancel_reason,
            active_step_id=active_id,
            steps=[
                ApprovalStepResponse.from_step(step, is_active=step.id == active_id)
                for step in workflow.steps
            ],
            progress=WorkflowProgressResponse(
                total_steps=progress.total_steps,
                approved_steps=progress.approved_steps,
                rejected_steps=progress.rejected_steps,
                skipped_steps=progress.skipped_steps,
                pending_steps=progress.pending_steps,
                current_step_order=progress.current_step_order,
            ),
        )
