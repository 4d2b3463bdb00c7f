"""
Proposal pricing API endpoints.

WHAT: RESTful API for proposal editing, pricing and lifecycle gates.

WHY: An editing session sends many small requests (add a row, change a
quantity, switch discount mode). Every response carries the recomputed
items and totals, so the client never prices anything itself.

HOW: FastAPI router delegating to ProposalService:
- Item edits addressed by 1-based position (``order``)
- Totals recomputed on every read and snapshotted on every write
- Lifecycle endpoints (send, accept, reject) gated by the engine
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from msp_proposals.core.config import settings
from msp_proposals.db.session import get_db
from msp_proposals.domain.line_items import DiscountMode
from msp_proposals.models.proposal import ProposalStatus
from msp_proposals.schemas.proposal import (
    LineItemResponse,
    PreviewRequest,
    PreviewResponse,
    ProposalCreate,
    ProposalItemCreate,
    ProposalItemUpdate,
    ProposalListResponse,
    ProposalReject,
    ProposalResponse,
    ProposalSummary,
    ProposalUpdate,
    ReadinessResponse,
    TotalsResponse,
    ValidationResponse,
)
from msp_proposals.domain.lifecycle import ProposalSnapshot, send_blockers
from msp_proposals.services.proposal_service import ProposalService, preview_items


router = APIRouter(prefix="/proposals", tags=["proposals"])


@router.post(
    "",
    response_model=ProposalResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create proposal",
)
async def create_proposal(
    payload: ProposalCreate,
    db: AsyncSession = Depends(get_db),
) -> ProposalResponse:
    """
    Create a draft proposal, optionally with line items.

    WHY: Currency and discount mode fall back to the configured defaults.
    """
    mode = DiscountMode(payload.discount_mode or settings.DEFAULT_DISCOUNT_MODE)
    proposal = await ProposalService(db).create_proposal(
        title=payload.title,
        description=payload.description,
        currency=payload.currency,
        discount_mode=mode,
        valid_until=payload.valid_until,
        notes=payload.notes,
        items=[item.to_fields(mode) for item in payload.items],
    )
    return ProposalResponse.from_model(proposal)


@router.get(
    "",
    response_model=ProposalListResponse,
    summary="List proposals",
)
async def list_proposals(
    status_filter: Optional[ProposalStatus] = Query(default=None, alias="status"),
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
) -> ProposalListResponse:
    """
    List proposals, most recently updated first.

    WHY: Amounts in the list come from the stored totals snapshot so the
    list doesn't load every item.
    """
    proposals, total = await ProposalService(db).list_proposals(
        status=status_filter, skip=skip, limit=limit
    )
    return ProposalListResponse(
        items=[ProposalSummary.model_validate(p) for p in proposals],
        total=total,
        skip=skip,
        limit=limit,
    )


@router.post(
    "/preview",
    response_model=PreviewResponse,
    summary="Price unsaved line items",
)
async def preview_proposal(payload: PreviewRequest) -> PreviewResponse:
    """
    Stateless pricing for the live editor.

    WHAT: Returns the same breakdown and totals a saved proposal would
    have, plus the send gate. Nothing is stored.
    """
    items, totals = preview_items(
        [item.to_fields(payload.discount_mode) for item in payload.items],
        payload.discount_mode,
    )
    blockers = send_blockers(ProposalSnapshot(items=tuple(items), discount_mode=payload.discount_mode))
    return PreviewResponse(
        items=[LineItemResponse.from_line_item(item) for item in items],
        totals=TotalsResponse.from_totals(totals),
        can_send=not blockers,
        send_blockers=blockers,
    )


@router.get(
    "/{proposal_id}",
    response_model=ProposalResponse,
    summary="Get proposal",
)
async def get_proposal(
    proposal_id: int,
    db: AsyncSession = Depends(get_db),
) -> ProposalResponse:
    proposal = await ProposalService(db).get_proposal(proposal_id)
    return ProposalResponse.from_model(proposal)


@router.patch(
    "/{proposal_id}",
    response_model=ProposalResponse,
    summary="Update proposal settings",
)
async def update_proposal(
    proposal_id: int,
    payload: ProposalUpdate,
    db: AsyncSession = Depends(get_db),
) -> ProposalResponse:
    """
    Update title, currency, notes, validity or discount mode.

    WHY: Changing ``discount_mode`` resets every item's discount to zero in
    the new mode.
    """
    proposal = await ProposalService(db).update_proposal(
        proposal_id, **payload.model_dump(exclude_unset=True)
    )
    return ProposalResponse.from_model(proposal)


@router.post(
    "/{proposal_id}/items",
    response_model=ProposalResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add line item",
)
async def add_item(
    proposal_id: int,
    payload: ProposalItemCreate,
    db: AsyncSession = Depends(get_db),
) -> ProposalResponse:
    """
    Append a blank row, a catalog item, or an item with explicit fields.
    """
    service = ProposalService(db)
    if payload.catalog_item is not None:
        proposal = await service.add_item(proposal_id, catalog_entry=payload.catalog_item.to_entry())
    elif payload.model_fields_set:
        current = await service.get_proposal(proposal_id)
        proposal = await service.add_item(
            proposal_id, fields=payload.to_fields(DiscountMode(current.discount_mode))
        )
    else:
        proposal = await service.add_item(proposal_id)
    return ProposalResponse.from_model(proposal)


@router.patch(
    "/{proposal_id}/items/{order}",
    response_model=ProposalResponse,
    summary="Edit line item",
)
async def update_item(
    proposal_id: int,
    order: int,
    payload: ProposalItemUpdate,
    db: AsyncSession = Depends(get_db),
) -> ProposalResponse:
    service = ProposalService(db)
    current = await service.get_proposal(proposal_id)
    changes = payload.to_changes(DiscountMode(current.discount_mode))
    proposal = await service.update_item(proposal_id, order, **changes)
    return ProposalResponse.from_model(proposal)


@router.delete(
    "/{proposal_id}/items/{order}",
    response_model=ProposalResponse,
    summary="Remove line item",
)
async def remove_item(
    proposal_id: int,
    order: int,
    db: AsyncSession = Depends(get_db),
) -> ProposalResponse:
    """Remove a row; the remaining rows are renumbered 1..N."""
    proposal = await ProposalService(db).remove_item(proposal_id, order)
    return ProposalResponse.from_model(proposal)


@router.get(
    "/{proposal_id}/totals",
    response_model=TotalsResponse,
    summary="Get proposal totals",
)
async def get_totals(
    proposal_id: int,
    db: AsyncSession = Depends(get_db),
) -> TotalsResponse:
    totals = await ProposalService(db).get_totals(proposal_id)
    return TotalsResponse.from_totals(totals)


@router.get(
    "/{proposal_id}/readiness",
    response_model=ReadinessResponse,
    summary="Evaluate send/accept gates",
)
async def get_readiness(
    proposal_id: int,
    db: AsyncSession = Depends(get_db),
) -> ReadinessResponse:
    readiness = await ProposalService(db).get_readiness(proposal_id)
    return ReadinessResponse(
        proposal_id=readiness.proposal_id,
        status=readiness.status,
        can_send=readiness.can_send,
        send_blockers=readiness.send_blockers,
        can_mark_accepted=readiness.can_mark_accepted,
        acceptance_blockers=readiness.acceptance_blockers,
        is_expired=readiness.is_expired,
        validation=ValidationResponse.from_validation(readiness.validation),
    )


@router.post(
    "/{proposal_id}/send",
    response_model=ProposalResponse,
    summary="Send proposal",
)
async def send_proposal(
    proposal_id: int,
    db: AsyncSession = Depends(get_db),
) -> ProposalResponse:
    """
    Mark a draft as sent.

    Returns 422 with the blocking reasons when the proposal can't be sent.
    """
    proposal = await ProposalService(db).send_proposal(proposal_id)
    return ProposalResponse.from_model(proposal)


@router.post(
    "/{proposal_id}/accept",
    response_model=ProposalResponse,
    summary="Mark proposal accepted",
)
async def accept_proposal(
    proposal_id: int,
    db: AsyncSession = Depends(get_db),
) -> ProposalResponse:
    """
    Mark a sent proposal as accepted.

    WHY: Gated by the approval workflow (when one exists), a positive
    grand total and the expiry date.
    """
    proposal = await ProposalService(db).accept_proposal(proposal_id)
    return ProposalResponse.from_model(proposal)


@router.post(
    "/{proposal_id}/reject",
    response_model=ProposalResponse,
    summary="Record client rejection",
)
async def reject_proposal(
    proposal_id: int,
    payload: Optional[ProposalReject] = None,
    db: AsyncSession = Depends(get_db),
) -> ProposalResponse:
    proposal = await ProposalService(db).reject_proposal(
        proposal_id, reason=payload.reason if payload else None
    )
    return ProposalResponse.from_model(proposal)
