"""
Business logic services package.

WHY: Services contain business logic separated from API routes and data access,
following the three-layer architecture (API → Service → DAO).
"""

from msp_proposals.services.proposal_service import (
    ProposalReadiness,
    ProposalService,
    preview_items,
)
from msp_proposals.services.approval_service import ApprovalService

__all__ = [
    "ApprovalService",
    "ProposalReadiness",
    "ProposalService",
    "preview_items",
]
