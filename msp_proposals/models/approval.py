"""
Approval workflow models.

WHAT: Persistence for the sequential approval workflow of a proposal.

WHY: The workflow engine is pure; these rows are its storage. The stored
workflow status is a denormalized copy of the status the engine derives,
kept so lists can filter by it without loading steps.

HOW: One workflow per proposal (unique proposal_id), steps ordered by
step_order and created together with the workflow.
"""

from datetime import datetime
from typing import Optional, List, TYPE_CHECKING
from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    Boolean,
    DateTime,
    ForeignKey,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship, Mapped

from msp_proposals.domain import approval as engine
from msp_proposals.domain.approval import StepStatus, WorkflowStatus
from msp_proposals.models.base import Base, enum_column

if TYPE_CHECKING:
    from msp_proposals.models.proposal import Proposal


class ApprovalWorkflow(Base):
    """
    Approval workflow of one proposal.

    Attributes:
        id: Primary key
        proposal_id: Owning proposal (unique)
        status: Last derived workflow status
        created_at: When the workflow was initiated
        completed_at: Set once, when the status first leaves pending
        cancelled_at / cancel_reason: Administrative cancellation
        steps: Steps ordered by step_order
    """

    __tablename__ = "approval_workflows"

    id: Mapped[int] = Column(Integer, primary_key=True, index=True)
    proposal_id: Mapped[int] = Column(
        Integer,
        ForeignKey("proposals.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        index=True,
    )
    status: Mapped[WorkflowStatus] = Column(
        enum_column(WorkflowStatus, "workflowstatus"),
        nullable=False,
        default=WorkflowStatus.PENDING,
        comment="Denormalized copy of the derived workflow status",
    )
    created_at: Mapped[datetime] = Column(DateTime, default=datetime.utcnow, nullable=False)
    completed_at: Mapped[Optional[datetime]] = Column(DateTime, nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = Column(DateTime, nullable=True)
    cancel_reason: Mapped[Optional[str]] = Column(Text, nullable=True)

    proposal: Mapped["Proposal"] = relationship("Proposal", back_populates="approval_workflow")
    steps: Mapped[List["ApprovalStep"]] = relationship(
        "ApprovalStep",
        back_populates="workflow",
        order_by="ApprovalStep.step_order",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<ApprovalWorkflow(id={self.id}, proposal_id={self.proposal_id}, status={self.status})>"

    def to_domain(self) -> engine.ApprovalWorkflow:
        return engine.ApprovalWorkflow(
            id=self.id,
            proposal_id=self.proposal_id,
            steps=tuple(step.to_domain() for step in self.steps),
            created_at=self.created_at,
            completed_at=self.completed_at,
            cancelled_at=self.cancelled_at,
            cancel_reason=self.cancel_reason,
        )

    def apply_domain(self, workflow: engine.ApprovalWorkflow) -> None:
        """
        Write an engine result back onto these rows.

        Steps are matched by id; the step set itself never changes after
        creation.
        """
        by_id = {step.id: step for step in workflow.steps}
        for row in self.steps:
            decided = by_id.get(row.id)
            if decided is not None:
                row.apply_domain(decided)

        self.status = workflow.status
        self.completed_at = workflow.completed_at
        self.cancelled_at = workflow.cancelled_at
        self.cancel_reason = workflow.cancel_reason


class ApprovalStep(Base):
    """One approver's slot in a workflow."""

    __tablename__ = "approval_steps"
    __table_args__ = (
        UniqueConstraint("workflow_id", "step_order", name="uq_approval_steps_order"),
    )

    id: Mapped[int] = Column(Integer, primary_key=True, index=True)
    workflow_id: Mapped[int] = Column(
        Integer,
        ForeignKey("approval_workflows.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    step_order: Mapped[int] = Column(Integer, nullable=False, comment="1-based position")

    approver_id: Mapped[str] = Column(String(255), nullable=False)
    approver_name: Mapped[str] = Column(String(255), nullable=False, default="")
    approver_email: Mapped[str] = Column(String(255), nullable=False, default="")
    required: Mapped[bool] = Column(Boolean, nullable=False, default=True)

    status: Mapped[StepStatus] = Column(
        enum_column(StepStatus, "stepstatus"),
        nullable=False,
        default=StepStatus.PENDING,
    )
    comments: Mapped[Optional[str]] = Column(Text, nullable=True)
    decided_at: Mapped[Optional[datetime]] = Column(DateTime, nullable=True)

    workflow: Mapped["ApprovalWorkflow"] = relationship("ApprovalWorkflow", back_populates="steps")

    def __repr__(self) -> str:
        return f"<ApprovalStep(id={self.id}, order={self.step_order}, status={self.status})>"

    def to_domain(self) -> engine.ApprovalStep:
        return engine.ApprovalStep(
            id=self.id,
            order=self.step_order,
            approver_id=self.approver_id,
            approver_name=self.approver_name or "",
            approver_email=self.approver_email or "",
            required=bool(self.required),
            status=self.status,
            comments=self.comments,
            decided_at=self.decided_at,
        )

    def apply_domain(self, step: engine.ApprovalStep) -> None:
        self.status = step.status
        self.comments = step.comments
        self.decided_at = step.decided_at
