"""
Data Access Object (DAO) package.

WHY: DAOs provide a clean separation between database operations and business logic,
making the codebase more testable and maintainable.
"""

from msp_proposals.dao.base import BaseDAO
from msp_proposals.dao.proposal import ProposalDAO
from msp_proposals.dao.approval import ApprovalWorkflowDAO

__all__ = [
    "BaseDAO",
    "ProposalDAO",
    "ApprovalWorkflowDAO",
]
