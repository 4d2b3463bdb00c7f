"""
Sequential approval workflow state machine.

WHAT: The ApprovalWorkflowEngine - an ordered list of approval steps for one
proposal, one active step at a time, with required and optional approvers.

WHY: A proposal may need internal sign-off (technical review, finance,
management) before it can be accepted. The engine decides which step may
act next and what the overall outcome is, without any storage concerns.

HOW:
- Steps move pending -> approved | rejected | skipped, and never back
- The active step is derived by scanning for the first pending step; no
  cursor is stored, so it can't drift from the step statuses
- The workflow status is derived from the steps (any rejection wins, then
  all required approvals), except for explicit administrative cancellation
- Every operation returns a new workflow value; refused operations return
  the input unchanged together with the refusal reason
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Iterable, Optional, Sequence, Tuple

from msp_proposals.core.exceptions import ValidationError


class StepStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    SKIPPED = "skipped"


class WorkflowStatus(str, Enum):
    """
    Overall status of an approval workflow.

    WHY: PENDING/APPROVED/REJECTED are derived from the steps. CANCELLED is
    the only status set explicitly (administrative cancellation).
    """

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class ApprovalDecision(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"


class DecisionRefusal(str, Enum):
    """Why the engine refused an operation."""

    UNKNOWN_STEP = "unknown_step"
    ALREADY_DECIDED = "already_decided"
    NOT_ACTIVE_STEP = "not_active_step"
    WORKFLOW_CLOSED = "workflow_closed"
    REQUIRED_STEP = "required_step"


_REFUSAL_MESSAGES = {
    DecisionRefusal.UNKNOWN_STEP: "Step does not belong to this workflow",
    DecisionRefusal.ALREADY_DECIDED: "Step has already been decided",
    DecisionRefusal.NOT_ACTIVE_STEP: "Only the current active step can be decided",
    DecisionRefusal.WORKFLOW_CLOSED: "Workflow is no longer pending",
    DecisionRefusal.REQUIRED_STEP: "Required steps cannot be skipped",
}


@dataclass(frozen=True)
class ApproverSpec:
    """Approver assignment used to initiate a workflow (identity is opaque)."""

    approver_id: str
    approver_name: str = ""
    approver_email: str = ""
    required: bool = True


@dataclass(frozen=True)
class ApprovalStep:
    """
    One approver's slot in the sequence.

    Attributes:
        id: Step identity (persistence id, or the order for new workflows)
        order: 1-based fixed position
        approver_id / approver_name / approver_email: Assigned approver
        required: Whether the step blocks overall approval
        status: Current step status
        comments: Set with the decision
        decided_at: Set on the transition out of pending
    """

    id: Any
    order: int
    approver_id: str
    approver_name: str = ""
    approver_email: str = ""
    required: bool = True
    status: StepStatus = StepStatus.PENDING
    comments: Optional[str] = None
    decided_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "status", StepStatus(self.status))

    @property
    def is_pending(self) -> bool:
        return self.status == StepStatus.PENDING


def derive_status(steps: Iterable[ApprovalStep]) -> WorkflowStatus:
    """
    Derive the workflow status from step statuses.

    - REJECTED if any step is rejected
    - APPROVED if every required step is approved
    - PENDING otherwise
    """
    steps = list(steps)
    if any(step.status == StepStatus.REJECTED for step in steps):
        return WorkflowStatus.REJECTED
    if all(step.status == StepStatus.APPROVED for step in steps if step.required):
        return WorkflowStatus.APPROVED
    return WorkflowStatus.PENDING


@dataclass(frozen=True)
class ApprovalWorkflow:
    """
    The approval workflow of one proposal.

    WHAT: Immutable value; steps are kept sorted by order and are never
    reordered or removed after creation.
    """

    proposal_id: Any
    steps: Tuple[ApprovalStep, ...] = field(default_factory=tuple)
    created_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancel_reason: Optional[str] = None
    id: Optional[Any] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "steps", tuple(sorted(self.steps, key=lambda s: s.order)))

    @property
    def status(self) -> WorkflowStatus:
        if self.cancelled_at is not None:
            return WorkflowStatus.CANCELLED
        return derive_status(self.steps)

    @property
    def is_closed(self) -> bool:
        return self.status != WorkflowStatus.PENDING

    @property
    def active_step(self) -> Optional[ApprovalStep]:
        """
        The first pending step by order, or None.

        WHY: Derived on every read. Once the workflow is closed (rejected,
        approved or cancelled) there is no active step, so no further
        decisions are offered.
        """
        if self.is_closed:
            return None
        for step in self.steps:
            if step.is_pending:
                return step
        return None

    def step(self, step_id: Any) -> Optional[ApprovalStep]:
        for step in self.steps:
            if step.id == step_id:
                return step
        return None


@dataclass(frozen=True)
class DecisionResult:
    """
    Outcome of a workflow operation.

    When ``accepted`` is False, ``workflow`` is the unchanged input and
    ``refusal`` names the violated rule.
    """

    accepted: bool
    workflow: ApprovalWorkflow
    step: Optional[ApprovalStep] = None
    refusal: Optional[DecisionRefusal] = None

    @property
    def message(self) -> str:
        if self.refusal is None:
            return "ok"
        return _REFUSAL_MESSAGES[self.refusal]


@dataclass(frozen=True)
class WorkflowProgress:
    total_steps: int
    approved_steps: int
    rejected_steps: int
    skipped_steps: int
    pending_steps: int
    current_step_order: Optional[int]


# ============================================================================
# Engine operations
# ============================================================================


def _now(now: Optional[datetime]) -> datetime:
    return now if now is not None else datetime.utcnow()


def _refuse(
    workflow: ApprovalWorkflow,
    reason: DecisionRefusal,
    step: Optional[ApprovalStep] = None,
) -> DecisionResult:
    return DecisionResult(accepted=False, workflow=workflow, step=step, refusal=reason)


def _apply_step(
    workflow: ApprovalWorkflow,
    updated: ApprovalStep,
    now: datetime,
) -> DecisionResult:
    steps = tuple(updated if s.id == updated.id else s for s in workflow.steps)
    result = replace(workflow, steps=steps)
    # completed_at is stamped once, the first time the status leaves pending
    if result.completed_at is None and result.status != WorkflowStatus.PENDING:
        result = replace(result, completed_at=now)
    return DecisionResult(accepted=True, workflow=result, step=updated)


def initiate_workflow(
    proposal_id: Any,
    approvers: Sequence[ApproverSpec],
    now: Optional[datetime] = None,
) -> ApprovalWorkflow:
    """
    Create a workflow with one pending step per approver, in the given order.

    WHY: The full ordered set of steps is created together; it is fixed for
    the life of the workflow.

    Args:
        proposal_id: Owning proposal
        approvers: Approvers in approval order
        now: Creation timestamp (defaults to UTC now)

    Returns:
        New pending ApprovalWorkflow; step ids are their orders until
        persistence assigns real ids

    Raises:
        ValidationError: No approvers, blank approver id, duplicate
            approver, or no required step
    """
    if not approvers:
        raise ValidationError(
            message="At least one approver must be configured",
            proposal_id=proposal_id,
        )

    seen = set()
    for position, approver in enumerate(approvers, start=1):
        approver_id = (approver.approver_id or "").strip()
        if not approver_id:
            raise ValidationError(
                message=f"Step {position} has no approver assigned",
                proposal_id=proposal_id,
            )
        if approver_id in seen:
            raise ValidationError(
                message=f"Approver {approver_id} is assigned to more than one step",
                proposal_id=proposal_id,
            )
        seen.add(approver_id)

    if not any(approver.required for approver in approvers):
        raise ValidationError(
            message="At least one approval step must be required",
            proposal_id=proposal_id,
        )

    steps = tuple(
        ApprovalStep(
            id=position,
            order=position,
            approver_id=approver.approver_id.strip(),
            approver_name=approver.approver_name,
            approver_email=approver.approver_email,
            required=approver.required,
        )
        for position, approver in enumerate(approvers, start=1)
    )
    return ApprovalWorkflow(proposal_id=proposal_id, steps=steps, created_at=_now(now))


def active_step(workflow: ApprovalWorkflow) -> Optional[ApprovalStep]:
    return workflow.active_step


def decide(
    workflow: ApprovalWorkflow,
    step_id: Any,
    decision: ApprovalDecision,
    comment: Optional[str] = None,
    now: Optional[datetime] = None,
) -> DecisionResult:
    """
    Record an approve/reject decision on the active step.

    WHAT: Transitions the step to approved or rejected and stamps
    comments/decided_at. The workflow status follows from the steps.

    WHY: Steps are strictly sequential. Deciding a step that is not the
    active one, or one already decided, is an ordering violation and must
    not change anything.

    Args:
        workflow: Current workflow
        step_id: Step to decide
        decision: APPROVE or REJECT
        comment: Optional approver comment
        now: Decision timestamp (defaults to UTC now)

    Returns:
        DecisionResult; on refusal the workflow is returned unchanged
    """
    decision = ApprovalDecision(decision)
    step = workflow.step(step_id)
    if step is None:
        return _refuse(workflow, DecisionRefusal.UNKNOWN_STEP)
    if not step.is_pending:
        return _refuse(workflow, DecisionRefusal.ALREADY_DECIDED, step)
    if workflow.is_closed:
        return _refuse(workflow, DecisionRefusal.WORKFLOW_CLOSED, step)

    current = workflow.active_step
    if current is None or current.id != step.id:
        return _refuse(workflow, DecisionRefusal.NOT_ACTIVE_STEP, step)

    timestamp = _now(now)
    status = StepStatus.APPROVED if decision == ApprovalDecision.APPROVE else StepStatus.REJECTED
    updated = replace(step, status=status, comments=comment, decided_at=timestamp)
    return _apply_step(workflow, updated, timestamp)


def skip(
    workflow: ApprovalWorkflow,
    step_id: Any,
    comment: Optional[str] = None,
    now: Optional[datetime] = None,
) -> DecisionResult:
    """
    Skip the active step if it is optional.

    Skipping moves the active step on to the next pending step. Required
    steps can only be approved or rejected.
    """
    step = workflow.step(step_id)
    if step is None:
        return _refuse(workflow, DecisionRefusal.UNKNOWN_STEP)
    if not step.is_pending:
        return _refuse(workflow, DecisionRefusal.ALREADY_DECIDED, step)
    if workflow.is_closed:
        return _refuse(workflow, DecisionRefusal.WORKFLOW_CLOSED, step)

    current = workflow.active_step
    if current is None or current.id != step.id:
        return _refuse(workflow, DecisionRefusal.NOT_ACTIVE_STEP, step)
    if step.required:
        return _refuse(workflow, DecisionRefusal.REQUIRED_STEP, step)

    timestamp = _now(now)
    updated = replace(step, status=StepStatus.SKIPPED, comments=comment, decided_at=timestamp)
    return _apply_step(workflow, updated, timestamp)


def cancel(
    workflow: ApprovalWorkflow,
    reason: Optional[str] = None,
    now: Optional[datetime] = None,
) -> DecisionResult:
    """Administratively cancel a pending workflow."""
    if workflow.is_closed:
        return _refuse(workflow, DecisionRefusal.WORKFLOW_CLOSED)

    timestamp = _now(now)
    cancelled = replace(
        workflow,
        cancelled_at=timestamp,
        cancel_reason=reason,
        completed_at=workflow.completed_at or timestamp,
    )
    return DecisionResult(accepted=True, workflow=cancelled)


def workflow_progress(workflow: ApprovalWorkflow) -> WorkflowProgress:
    def count(status: StepStatus) -> int:
        return sum(1 for step in workflow.steps if step.status == status)

    current = workflow.active_step
    return WorkflowProgress(
        total_steps=len(workflow.steps),
        approved_steps=count(StepStatus.APPROVED),
        rejected_steps=count(StepStatus.REJECTED),
        skipped_steps=count(StepStatus.SKIPPED),
        pending_steps=count(StepStatus.PENDING),
        current_step_order=current.order if current else None,
    )
