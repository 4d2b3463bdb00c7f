"""
SQLAlchemy models.

WHY: Importing every model here registers them on Base.metadata, which
Alembic autogenerate and the test fixtures rely on.
"""

from msp_proposals.models.base import Base, TimestampMixin
from msp_proposals.models.proposal import Proposal, ProposalItem, ProposalStatus
from msp_proposals.models.approval import ApprovalWorkflow, ApprovalStep

__all__ = [
    "Base",
    "TimestampMixin",
    "Proposal",
    "ProposalItem",
    "ProposalStatus",
    "ApprovalWorkflow",
    "ApprovalStep",
]
