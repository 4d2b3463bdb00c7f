"""
Proposal lifecycle gates.

WHAT: The ProposalLifecycleCoordinator - pure predicates deciding whether a
proposal may be sent or marked accepted, plus the reasons when it can't.

WHY: Send/accept buttons in the UI are gated by the pricing and approval
state together. Keeping the policy here means the API and any live preview
evaluate exactly the same rules.

HOW: Reads a ProposalSnapshot (items + pricing settings) and an optional
ApprovalWorkflow. No state of its own; everything is recomputed per call.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional, Sequence

from msp_proposals.domain.approval import ApprovalWorkflow, WorkflowStatus
from msp_proposals.domain.line_items import DiscountMode, LineItem
from msp_proposals.domain.money import ZERO
from msp_proposals.domain.totals import ProposalTotals, aggregate_totals


DEFAULT_MAX_TOTAL = Decimal("1000000")
DEFAULT_MAX_VALIDITY_DAYS = 365


@dataclass(frozen=True)
class ProposalSnapshot:
    """
    The slice of a proposal the lifecycle gates read.

    Attributes:
        items: Line items in display order
        discount_mode: Proposal-wide discount mode
        currency: ISO 4217 code, display only
        title: Proposal title
        valid_until: Optional expiry date
    """

    items: Sequence[LineItem] = field(default_factory=tuple)
    discount_mode: DiscountMode = DiscountMode.PERCENTAGE
    currency: str = "USD"
    title: str = ""
    valid_until: Optional[datetime] = None

    @property
    def totals(self) -> ProposalTotals:
        return aggregate_totals(self.items)


@dataclass(frozen=True)
class ProposalValidation:
    errors: List[str]
    warnings: List[str]

    @property
    def is_valid(self) -> bool:
        return not self.errors


def send_blockers(proposal: ProposalSnapshot) -> List[str]:
    """
    Reasons the proposal cannot be sent (empty when it can).

    A proposal can be sent once it has at least one item and every item has
    a name and a non-negative unit price.
    """
    reasons = []
    if not proposal.items:
        reasons.append("Proposal has no line items")
    for item in proposal.items:
        if not item.name.strip():
            reasons.append(f"Line item {item.order} has no name")
        if item.unit_price < ZERO:
            reasons.append(f"Line item {item.order} has a negative unit price")
    return reasons


def can_send(proposal: ProposalSnapshot) -> bool:
    return not send_blockers(proposal)


def acceptance_blockers(
    proposal: ProposalSnapshot,
    workflow: Optional[ApprovalWorkflow] = None,
) -> List[str]:
    """
    Reasons the proposal cannot be marked accepted (empty when it can).

    WHY: Approval workflows are optional. With no workflow the approval
    condition holds by default; with one, it must be approved. Either way
    the grand total must be positive.
    """
    reasons = []
    if workflow is not None and workflow.status != WorkflowStatus.APPROVED:
        reasons.append(f"Approval workflow is {workflow.status.value}")
    if proposal.totals.grand_total <= ZERO:
        reasons.append("Grand total must be greater than zero")
    return reasons


def can_mark_accepted(
    proposal: ProposalSnapshot,
    workflow: Optional[ApprovalWorkflow] = None,
) -> bool:
    return not acceptance_blockers(proposal, workflow)


def _as_date(value: datetime) -> date:
    return value.date() if isinstance(value, datetime) else value


def validate_proposal(
    proposal: ProposalSnapshot,
    today: Optional[date] = None,
    max_total: Decimal = DEFAULT_MAX_TOTAL,
    max_validity_days: int = DEFAULT_MAX_VALIDITY_DAYS,
) -> ProposalValidation:
    """
    Full pre-save validation of a proposal.

    WHAT: Advisory checks shown alongside the send/accept gates. They do not
    change ``can_send``.

    Args:
        proposal: Proposal to validate
        today: Reference date (defaults to today, UTC)
        max_total: Largest grand total accepted
        max_validity_days: Validity period above which a warning is raised

    Returns:
        ProposalValidation with errors and warnings
    """
    errors = []
    warnings = []
    today = today or datetime.utcnow().date()

    if not proposal.title.strip():
        errors.append("Proposal title is required")
    if not proposal.items:
        errors.append("At least one proposal item is required")

    grand_total = proposal.totals.grand_total
    if proposal.items and grand_total <= ZERO:
        errors.append("Total proposal amount must be greater than zero")
    if grand_total > max_total:
        errors.append(f"Total amount exceeds maximum limit of {max_total:,.2f}")

    if proposal.valid_until is not None:
        valid_until = _as_date(proposal.valid_until)
        if valid_until <= today:
            errors.append("Proposal validity date must be in the future")
        elif (valid_until - today).days > max_validity_days:
            warnings.append(f"Proposal validity period exceeds {max_validity_days} days")

    return ProposalValidation(errors=errors, warnings=warnings)
