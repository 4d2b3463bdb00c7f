"""
Proposal Service.

WHAT: Business logic for proposal pricing and lifecycle operations.

WHY: The service layer:
1. Loads a proposal, hands its items to the pricing engine, and writes the
   engine's result back in the same flush
2. Keeps the stored totals snapshot in step with the items
3. Enforces the lifecycle rules (draft-only editing, send/accept gates)

HOW: Every item edit goes through the pure editing operations in
``msp_proposals.domain.line_items``; the resulting list is reconciled onto
the ProposalItem rows by id, then ``refresh_totals`` re-aggregates.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple
from sqlalchemy.ext.asyncio import AsyncSession

from msp_proposals.core.config import settings
from msp_proposals.core.exceptions import (
    InvalidStateTransitionError,
    ProposalGateError,
    ProposalItemNotFoundError,
    ProposalNotEditableError,
    ProposalNotFoundError,
    ValidationError,
)
from msp_proposals.dao.proposal import ProposalDAO
from msp_proposals.domain import line_items as editing
from msp_proposals.domain.line_items import CatalogEntry, DiscountMode, LineItem
from msp_proposals.domain.lifecycle import (
    ProposalValidation,
    acceptance_blockers,
    send_blockers,
    validate_proposal,
)
from msp_proposals.domain.totals import ProposalTotals, aggregate_totals
from msp_proposals.models.proposal import Proposal, ProposalItem, ProposalStatus


logger = logging.getLogger(__name__)


def _naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    # Stored datetimes are naive UTC
    if value is not None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


@dataclass(frozen=True)
class ProposalReadiness:
    """Send/accept gate evaluation for one proposal."""

    proposal_id: int
    status: ProposalStatus
    send_blockers: List[str]
    acceptance_blockers: List[str]
    is_expired: bool
    validation: ProposalValidation

    @property
    def can_send(self) -> bool:
        return not self.send_blockers

    @property
    def can_mark_accepted(self) -> bool:
        return not self.acceptance_blockers


def preview_items(
    items: Iterable[Dict[str, Any]],
    discount_mode: DiscountMode,
) -> Tuple[List[LineItem], ProposalTotals]:
    """
    Price unsaved rows without touching the database.

    Args:
        items: LineItem field dicts in display order
        discount_mode: Proposal-wide discount mode

    Returns:
        Tuple of (numbered line items, their totals)

    Raises:
        ValidationError: A row carries a discount in another mode
    """
    line_items: List[LineItem] = []
    for fields in items:
        try:
            line_items = editing.add_item(line_items, discount_mode, **fields)
        except ValueError as e:
            raise ValidationError(message=str(e), discount_mode=DiscountMode(discount_mode).value)
    return line_items, aggregate_totals(line_items)


class ProposalService:
    """
    Service for proposal pricing and lifecycle operations.

    HOW: Coordinates ProposalDAO with the pricing engine. Methods flush but
    never commit; the request's session commits.
    """

    def __init__(self, session: AsyncSession):
        """
        Initialize ProposalService.

        Args:
            session: Async database session
        """
        self.session = session
        self.proposal_dao = ProposalDAO(session)

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def get_proposal(self, proposal_id: int) -> Proposal:
        """
        Get a proposal with items and approval workflow.

        Raises:
            ProposalNotFoundError: If the proposal doesn't exist
        """
        proposal = await self.proposal_dao.get_with_items(proposal_id)
        if not proposal:
            raise ProposalNotFoundError(
                message=f"Proposal {proposal_id} not found",
                proposal_id=proposal_id,
            )
        return proposal

    async def list_proposals(
        self,
        status: Optional[ProposalStatus] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> Tuple[List[Proposal], int]:
        proposals = await self.proposal_dao.list_proposals(status=status, skip=skip, limit=limit)
        if status is not None:
            total = await self.proposal_dao.count(status=status)
        else:
            total = await self.proposal_dao.count()
        return proposals, total

    # ------------------------------------------------------------------
    # Items and totals
    # ------------------------------------------------------------------

    def _apply_items(self, proposal: Proposal, items: List[LineItem]) -> None:
        """
        Reconcile engine items onto the proposal's rows and refresh totals.

        WHY: Rows are matched by id so unchanged items keep their identity.
        Rows with no counterpart are orphaned and deleted at flush.
        """
        rows_by_id = {row.id: row for row in proposal.items if row.id is not None}

        rows = []
        for item in items:
            row = rows_by_id.pop(item.id, None) if item.id is not None else None
            if row is None:
                row = ProposalItem()
            row.apply_line_item(item)
            rows.append(row)

        proposal.items = rows
        proposal.apply_totals(aggregate_totals(items))

    def refresh_totals(self, proposal: Proposal) -> ProposalTotals:
        """
        Recompute item totals and the proposal totals snapshot.

        WHAT: The only writer of the snapshot columns.

        Returns:
            The freshly aggregated totals
        """
        items = proposal.to_line_items()
        self._apply_items(proposal, items)
        return aggregate_totals(items)

    def _ensure_editable(self, proposal: Proposal) -> None:
        if not proposal.is_editable:
            raise ProposalNotEditableError(
                message=f"Proposal {proposal.id} is {proposal.status.value}; only drafts can be edited",
                proposal_id=proposal.id,
                status=proposal.status.value,
            )

    async def _save(self, proposal: Proposal) -> Proposal:
        await self.session.flush()
        return await self.get_proposal(proposal.id)

    async def get_totals(self, proposal_id: int) -> ProposalTotals:
        """Aggregate totals straight from the items (never the snapshot)."""
        proposal = await self.get_proposal(proposal_id)
        return proposal.snapshot().totals

    async def create_proposal(
        self,
        title: str,
        description: Optional[str] = None,
        currency: Optional[str] = None,
        discount_mode: Optional[DiscountMode] = None,
        valid_until: Optional[datetime] = None,
        notes: Optional[str] = None,
        items: Optional[Iterable[Dict[str, Any]]] = None,
    ) -> Proposal:
        """
        Create a draft proposal, optionally with items.

        Args:
            title: Proposal title
            description: Scope description
            currency: ISO 4217 code (defaults to DEFAULT_CURRENCY)
            discount_mode: Proposal discount mode (defaults to DEFAULT_DISCOUNT_MODE)
            valid_until: Expiration date
            notes: Internal notes
            items: LineItem field dicts in display order

        Returns:
            Created proposal with items and totals
        """
        mode = DiscountMode(discount_mode or settings.DEFAULT_DISCOUNT_MODE)
        line_items, _ = preview_items(items or [], mode)

        proposal = Proposal(
            title=title,
            description=description,
            status=ProposalStatus.DRAFT,
            currency=(currency or settings.DEFAULT_CURRENCY).upper(),
            discount_mode=mode,
            valid_until=_naive_utc(valid_until),
            notes=notes,
            items=[],
        )
        self._apply_items(proposal, line_items)
        self.session.add(proposal)
        await self.session.flush()

        logger.info(f"Created proposal {proposal.id} with {len(line_items)} items")
        return await self.get_proposal(proposal.id)

    async def update_proposal(self, proposal_id: int, **changes: Any) -> Proposal:
        """
        Update proposal settings.

        WHY: A discount mode switch re-expresses every item's discount in the
        new mode, so no item keeps a value of the other mode.

        Raises:
            ProposalNotEditableError: If the proposal is not a draft
        """
        proposal = await self.get_proposal(proposal_id)
        self._ensure_editable(proposal)

        new_mode = changes.pop("discount_mode", None)
        if "currency" in changes and changes["currency"]:
            changes["currency"] = changes["currency"].upper()
        if "valid_until" in changes:
            changes["valid_until"] = _naive_utc(changes["valid_until"])
        for field, value in changes.items():
            # title and currency are required columns
            if field in ("title", "currency") and not value:
                continue
            setattr(proposal, field, value)

        if new_mode is not None and DiscountMode(new_mode) != proposal.discount_mode:
            items = editing.switch_discount_mode(proposal.to_line_items(), new_mode)
            proposal.discount_mode = DiscountMode(new_mode)
            self._apply_items(proposal, items)
            logger.info(f"Proposal {proposal_id} switched to {proposal.discount_mode.value} discounts")

        return await self._save(proposal)

    async def add_item(
        self,
        proposal_id: int,
        fields: Optional[Dict[str, Any]] = None,
        catalog_entry: Optional[CatalogEntry] = None,
    ) -> Proposal:
        """
        Append a line item.

        WHAT: Catalog entry if given, else the given fields, else a blank row.

        Raises:
            ValidationError: The fields carry a discount in another mode
        """
        proposal = await self.get_proposal(proposal_id)
        self._ensure_editable(proposal)

        mode = DiscountMode(proposal.discount_mode)
        current = proposal.to_line_items()
        if catalog_entry is not None:
            items = editing.add_catalog_item(current, catalog_entry, mode)
        elif fields:
            try:
                items = editing.add_item(current, mode, **fields)
            except ValueError as e:
                raise ValidationError(message=str(e), proposal_id=proposal_id)
        else:
            items = editing.add_blank_item(current, mode)

        self._apply_items(proposal, items)
        return await self._save(proposal)

    async def update_item(self, proposal_id: int, order: int, **changes: Any) -> Proposal:
        """
        Edit one line item and recompute.

        Raises:
            ProposalItemNotFoundError: No item at that position
            ValidationError: A positional or derived field was sent
        """
        proposal = await self.get_proposal(proposal_id)
        self._ensure_editable(proposal)

        current = proposal.to_line_items()
        self._require_item(proposal, current, order)
        try:
            items = editing.update_item(current, order, **changes)
        except (TypeError, ValueError) as e:
            raise ValidationError(message=str(e), proposal_id=proposal_id, order=order)

        self._apply_items(proposal, items)
        return await self._save(proposal)

    async def remove_item(self, proposal_id: int, order: int) -> Proposal:
        """Remove one line item, renumber the rest and recompute."""
        proposal = await self.get_proposal(proposal_id)
        self._ensure_editable(proposal)

        current = proposal.to_line_items()
        self._require_item(proposal, current, order)
        items = editing.remove_item(current, order)

        self._apply_items(proposal, items)
        return await self._save(proposal)

    def _require_item(self, proposal: Proposal, items: List[LineItem], order: int) -> None:
        if not any(item.order == order for item in items):
            raise ProposalItemNotFoundError(
                message=f"Proposal {proposal.id} has no line item {order}",
                proposal_id=proposal.id,
                order=order,
            )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def get_readiness(self, proposal_id: int) -> ProposalReadiness:
        proposal = await self.get_proposal(proposal_id)
        return self._readiness(proposal)

    def _readiness(self, proposal: Proposal) -> ProposalReadiness:
        snapshot = proposal.snapshot()
        workflow = proposal.approval_workflow
        return ProposalReadiness(
            proposal_id=proposal.id,
            status=proposal.status,
            send_blockers=send_blockers(snapshot),
            acceptance_blockers=acceptance_blockers(
                snapshot,
                workflow.to_domain() if workflow is not None else None,
            ),
            is_expired=proposal.is_expired,
            validation=validate_proposal(
                snapshot,
                max_total=settings.MAX_PROPOSAL_TOTAL,
                max_validity_days=settings.MAX_VALIDITY_DAYS,
            ),
        )

    def _require_status(self, proposal: Proposal, expected: ProposalStatus, action: str) -> None:
        if proposal.status != expected:
            raise InvalidStateTransitionError(
                message=f"Cannot {action} a {proposal.status.value} proposal",
                proposal_id=proposal.id,
                status=proposal.status.value,
            )

    async def send_proposal(self, proposal_id: int) -> Proposal:
        """
        Mark a draft proposal as sent.

        Raises:
            InvalidStateTransitionError: If the proposal is not a draft
            ProposalGateError: If ``can_send`` fails
        """
        proposal = await self.get_proposal(proposal_id)
        self._require_status(proposal, ProposalStatus.DRAFT, "send")

        blockers = send_blockers(proposal.snapshot())
        if blockers:
            logger.warning(f"Proposal {proposal_id} cannot be sent: {'; '.join(blockers)}")
            raise ProposalGateError(
                message="Proposal cannot be sent",
                reasons=blockers,
                proposal_id=proposal_id,
            )

        self.refresh_totals(proposal)
        proposal.status = ProposalStatus.SENT
        proposal.sent_at = datetime.utcnow()

        logger.info(f"Proposal {proposal_id} sent")
        return await self._save(proposal)

    async def accept_proposal(self, proposal_id: int) -> Proposal:
        """
        Mark a sent proposal as accepted.

        WHY: Acceptance requires an approved workflow (when one exists), a
        positive grand total, and an unexpired proposal.

        Raises:
            InvalidStateTransitionError: If the proposal is not sent
            ProposalGateError: If ``can_mark_accepted`` fails or it expired
        """
        proposal = await self.get_proposal(proposal_id)
        self._require_status(proposal, ProposalStatus.SENT, "accept")

        readiness = self._readiness(proposal)
        blockers = list(readiness.acceptance_blockers)
        if readiness.is_expired:
            blockers.append("Proposal has expired")
        if blockers:
            logger.warning(f"Proposal {proposal_id} cannot be accepted: {'; '.join(blockers)}")
            raise ProposalGateError(
                message="Proposal cannot be marked accepted",
                reasons=blockers,
                proposal_id=proposal_id,
            )

        proposal.status = ProposalStatus.ACCEPTED
        proposal.accepted_at = datetime.utcnow()

        logger.info(f"Proposal {proposal_id} accepted")
        return await self._save(proposal)

    async def reject_proposal(self, proposal_id: int, reason: Optional[str] = None) -> Proposal:
        """Record the client's rejection of a sent proposal."""
        proposal = await self.get_proposal(proposal_id)
        self._require_status(proposal, ProposalStatus.SENT, "reject")

        proposal.status = ProposalStatus.REJECTED
        proposal.rejected_at = datetime.utcnow()
        proposal.rejection_reason = reason

        logger.info(f"Proposal {proposal_id} rejected by client")
        return await self._save(proposal)
