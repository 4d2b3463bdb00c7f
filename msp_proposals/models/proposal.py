"""
Proposal and line item models.

WHAT: SQLAlchemy models for proposals and their priced line items.

WHY: The surrounding application stores proposals; the pricing engine
computes from them. The schema holds only the fields the engine reads and
writes, plus the proposal's own lifecycle fields.

HOW: Uses SQLAlchemy 2.0 with:
- One row per line item (ordered by item_order) instead of a JSON blob
- Discounts stored as mode + value, mirroring the engine's tagged value
- Aggregate columns that are a snapshot of the last recomputation; they
  are written only from ``aggregate_totals`` and never edited directly
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, List, TYPE_CHECKING
from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    DateTime,
    ForeignKey,
    Index,
)
from sqlalchemy.orm import relationship, Mapped

from msp_proposals.domain.line_items import (
    BillingCycle,
    Discount,
    DiscountMode,
    LineItem,
    LineItemKind,
)
from msp_proposals.domain.lifecycle import ProposalSnapshot
from msp_proposals.domain.totals import ProposalTotals
from msp_proposals.models.base import Amount, Base, Money, Rate, TimestampMixin, enum_column

if TYPE_CHECKING:
    from msp_proposals.models.approval import ApprovalWorkflow


class ProposalStatus(str, Enum):
    """
    Proposal lifecycle status.

    WHY: Tracks proposal through business process:
    - DRAFT: Being created/edited, items and pricing are editable
    - SENT: Sent to client for review
    - ACCEPTED: Client accepted the proposal
    - REJECTED: Client declined the proposal
    """

    DRAFT = "draft"
    SENT = "sent"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class Proposal(TimestampMixin, Base):
    """
    Sales proposal model.

    Attributes:
        id: Primary key
        title: Proposal title
        description: Scope description
        status: Current proposal status
        currency: ISO 4217 code (display only)
        discount_mode: Proposal-wide discount mode
        valid_until: Proposal expiration date
        sent_at / accepted_at / rejected_at: Status timestamps
        rejection_reason: Why the client declined
        notes: Internal notes
        subtotal ... recurring_revenue: Snapshot of the last recomputation
        items: Line items ordered by item_order
        approval_workflow: Optional approval workflow (1:1)
    """

    __tablename__ = "proposals"

    id: Mapped[int] = Column(Integer, primary_key=True, index=True)

    title: Mapped[str] = Column(String(255), nullable=False, comment="Proposal title")
    description: Mapped[Optional[str]] = Column(Text, nullable=True)

    status: Mapped[ProposalStatus] = Column(
        enum_column(ProposalStatus, "proposalstatus"),
        nullable=False,
        index=True,
        default=ProposalStatus.DRAFT,
        comment="Current proposal status",
    )

    # Pricing settings
    currency: Mapped[str] = Column(
        String(3),
        nullable=False,
        default="USD",
        comment="ISO 4217 currency code, display only",
    )
    discount_mode: Mapped[DiscountMode] = Column(
        enum_column(DiscountMode, "discountmode"),
        nullable=False,
        default=DiscountMode.PERCENTAGE,
        comment="Proposal-wide discount mode",
    )

    valid_until: Mapped[Optional[datetime]] = Column(DateTime, nullable=True)
    sent_at: Mapped[Optional[datetime]] = Column(DateTime, nullable=True)
    accepted_at: Mapped[Optional[datetime]] = Column(DateTime, nullable=True)
    rejected_at: Mapped[Optional[datetime]] = Column(DateTime, nullable=True)
    rejection_reason: Mapped[Optional[str]] = Column(Text, nullable=True)
    notes: Mapped[Optional[str]] = Column(Text, nullable=True, comment="Internal notes")

    # Totals snapshot
    # WHY: Lets list views show amounts without loading every item. Written
    # only by ProposalService.refresh_totals in the same flush as the item
    # change that triggered it.
    subtotal: Mapped[Decimal] = Column(Money, nullable=False, default=0)
    total_discount: Mapped[Decimal] = Column(Money, nullable=False, default=0)
    total_tax: Mapped[Decimal] = Column(Money, nullable=False, default=0)
    total_setup_fees: Mapped[Decimal] = Column(Money, nullable=False, default=0)
    grand_total: Mapped[Decimal] = Column(Money, nullable=False, default=0)
    total_margin: Mapped[Decimal] = Column(Money, nullable=False, default=0)
    recurring_revenue: Mapped[Decimal] = Column(Money, nullable=False, default=0)

    items: Mapped[List["ProposalItem"]] = relationship(
        "ProposalItem",
        back_populates="proposal",
        order_by="ProposalItem.item_order",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    approval_workflow: Mapped[Optional["ApprovalWorkflow"]] = relationship(
        "ApprovalWorkflow",
        back_populates="proposal",
        uselist=False,
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return f"<Proposal(id={self.id}, title={self.title}, status={self.status})>"

    @property
    def is_editable(self) -> bool:
        """
        Check if proposal items and pricing can be edited.

        Returns:
            True if proposal is in DRAFT status
        """
        return self.status == ProposalStatus.DRAFT

    @property
    def is_expired(self) -> bool:
        """
        Check if proposal has expired.

        WHY: Expired proposals shouldn't be accepted.
        """
        if not self.valid_until:
            return False
        return datetime.utcnow() > self.valid_until

    def to_line_items(self) -> List[LineItem]:
        return [row.to_line_item() for row in self.items]

    def snapshot(self) -> ProposalSnapshot:
        """Build the engine's view of this proposal."""
        return ProposalSnapshot(
            items=tuple(self.to_line_items()),
            discount_mode=DiscountMode(self.discount_mode),
            currency=self.currency,
            title=self.title or "",
            valid_until=self.valid_until,
        )

    def apply_totals(self, totals: ProposalTotals) -> None:
        self.subtotal = totals.subtotal
        self.total_discount = totals.total_discount
        self.total_tax = totals.total_tax
        self.total_setup_fees = totals.total_setup_fees
        self.grand_total = totals.grand_total
        self.total_margin = totals.total_margin
        self.recurring_revenue = totals.recurring_revenue


class ProposalItem(Base):
    """
    One priced row of a proposal.

    WHY: Mirrors the engine's LineItem field for field. ``total_price`` is
    stored for reporting but always written from the calculator.
    """

    __tablename__ = "proposal_items"
    __table_args__ = (
        Index("ix_proposal_items_proposal_order", "proposal_id", "item_order"),
    )

    id: Mapped[int] = Column(Integer, primary_key=True, index=True)
    proposal_id: Mapped[int] = Column(
        Integer,
        ForeignKey("proposals.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    item_order: Mapped[int] = Column(Integer, nullable=False, comment="1-based position")
    item_type: Mapped[LineItemKind] = Column(
        enum_column(LineItemKind, "lineitemkind"),
        nullable=False,
        default=LineItemKind.PRODUCT,
    )

    # Descriptive fields (from the catalog, never used in pricing)
    name: Mapped[str] = Column(String(255), nullable=False, default="")
    description: Mapped[Optional[str]] = Column(Text, nullable=True)
    category: Mapped[Optional[str]] = Column(String(100), nullable=True)
    sku: Mapped[Optional[str]] = Column(String(100), nullable=True)
    vendor: Mapped[Optional[str]] = Column(String(255), nullable=True)
    catalog_item_id: Mapped[Optional[str]] = Column(String(64), nullable=True)

    # Pricing inputs
    quantity: Mapped[Decimal] = Column(Amount, nullable=False, default=0)
    unit_price: Mapped[Decimal] = Column(Amount, nullable=False, default=0)
    discount_mode: Mapped[DiscountMode] = Column(
        enum_column(DiscountMode, "discountmode"),
        nullable=False,
        default=DiscountMode.PERCENTAGE,
    )
    discount_value: Mapped[Decimal] = Column(Amount, nullable=False, default=0)
    tax_percent: Mapped[Decimal] = Column(Rate, nullable=False, default=0)
    setup_fee: Mapped[Decimal] = Column(Amount, nullable=False, default=0)
    margin_percent: Mapped[Decimal] = Column(Rate, nullable=False, default=0)

    # Subscription details
    billing_cycle: Mapped[Optional[BillingCycle]] = Column(
        enum_column(BillingCycle, "billingcycle"),
        nullable=True,
    )
    renewal_price: Mapped[Optional[Decimal]] = Column(Amount, nullable=True)

    # Derived
    total_price: Mapped[Decimal] = Column(
        Money,
        nullable=False,
        default=0,
        comment="Calculated total, written from the line item calculator",
    )

    proposal: Mapped["Proposal"] = relationship("Proposal", back_populates="items")

    def __repr__(self) -> str:
        return f"<ProposalItem(id={self.id}, order={self.item_order}, name={self.name})>"

    def to_line_item(self) -> LineItem:
        return LineItem(
            id=self.id,
            order=self.item_order,
            name=self.name,
            kind=self.item_type,
            quantity=self.quantity,
            unit_price=self.unit_price,
            discount=Discount(self.discount_mode or DiscountMode.PERCENTAGE, self.discount_value),
            tax_percent=self.tax_percent,
            setup_fee=self.setup_fee,
            margin_percent=self.margin_percent,
            description=self.description or "",
            category=self.category or "",
            sku=self.sku,
            vendor=self.vendor,
            catalog_item_id=self.catalog_item_id,
            billing_cycle=self.billing_cycle,
            renewal_price=self.renewal_price,
        )

    def apply_line_item(self, item: LineItem) -> None:
        """
        Copy every engine field from ``item`` onto this row.

        The stored total is ``item.total_price``, the same figure the
        aggregator sums.
        """
        self.item_order = item.order
        self.item_type = item.kind
        self.name = item.name
        self.description = item.description
        self.category = item.category
        self.sku = item.sku
        self.vendor = item.vendor
        self.catalog_item_id = item.catalog_item_id
        self.quantity = item.quantity
        self.unit_price = item.unit_price
        self.discount_mode = item.discount.mode
        self.discount_value = item.discount.value
        self.tax_percent = item.tax_percent
        self.setup_fee = item.setup_fee
        self.margin_percent = item.margin_percent
        self.billing_cycle = item.billing_cycle
        self.renewal_price = item.renewal_price
        self.total_price = item.total_price
