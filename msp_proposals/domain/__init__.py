"""
Pricing and approval engine.

WHY: Everything in this package is pure and synchronous - no database, no
HTTP, no logging. Services and API handlers call into it and persist the
results.
"""

from msp_proposals.domain.line_items import (
    BillingCycle,
    CatalogEntry,
    Discount,
    DiscountMode,
    LineItem,
    LineItemBreakdown,
    LineItemKind,
    add_blank_item,
    add_catalog_item,
    add_item,
    calculate_line_item,
    remove_item,
    renumber,
    switch_discount_mode,
    update_item,
)
from msp_proposals.domain.totals import ProposalTotals, aggregate_totals
from msp_proposals.domain.approval import (
    ApprovalDecision,
    ApprovalStep,
    ApprovalWorkflow,
    ApproverSpec,
    DecisionRefusal,
    DecisionResult,
    StepStatus,
    WorkflowProgress,
    WorkflowStatus,
    active_step,
    cancel,
    decide,
    derive_status,
    initiate_workflow,
    skip,
    workflow_progress,
)
from msp_proposals.domain.lifecycle import (
    ProposalSnapshot,
    ProposalValidation,
    acceptance_blockers,
    can_mark_accepted,
    can_send,
    send_blockers,
    validate_proposal,
)

__all__ = [
    # Line items
    "BillingCycle",
    "CatalogEntry",
    "Discount",
    "DiscountMode",
    "LineItem",
    "LineItemBreakdown",
    "LineItemKind",
    "add_blank_item",
    "add_catalog_item",
    "add_item",
    "calculate_line_item",
    "remove_item",
    "renumber",
    "switch_discount_mode",
    "update_item",
    # Totals
    "ProposalTotals",
    "aggregate_totals",
    # Approval workflow
    "ApprovalDecision",
    "ApprovalStep",
    "ApprovalWorkflow",
    "ApproverSpec",
    "DecisionRefusal",
    "DecisionResult",
    "StepStatus",
    "WorkflowProgress",
    "WorkflowStatus",
    "active_step",
    "cancel",
    "decide",
    "derive_status",
    "initiate_workflow",
    "skip",
    "workflow_progress",
    # Lifecycle gates
    "ProposalSnapshot",
    "ProposalValidation",
    "acceptance_blockers",
    "can_mark_accepted",
    "can_send",
    "send_blockers",
    "validate_proposal",
]
