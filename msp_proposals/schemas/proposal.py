"""
Pydantic schemas for proposal endpoints.

WHAT: Request/response schemas for proposal pricing and lifecycle.

WHY: Schemas define the API contract of the pricing engine:
1. Accept the loose numeric input an editing UI sends (the engine coerces
   invalid or negative numbers to 0 instead of rejecting them)
2. Expose every derived amount so the UI never recomputes prices itself
3. Document the API for OpenAPI/Swagger

HOW: Uses Pydantic v2. Numeric inputs accept numbers or strings and are
handed to the engine unvalidated; responses are built from engine values.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Union
from pydantic import BaseModel, ConfigDict, Field, field_validator

from msp_proposals.domain.line_items import (
    BillingCycle,
    CatalogEntry,
    Discount,
    DiscountMode,
    LineItem,
    LineItemKind,
    calculate_line_item,
)
from msp_proposals.domain.lifecycle import ProposalValidation
from msp_proposals.domain.totals import ProposalTotals
from msp_proposals.models.proposal import Proposal, ProposalStatus
from msp_proposals.domain.approval import WorkflowStatus
from msp_proposals.core.exceptions import ValidationError


# Numbers from an editing UI: int, float, numeric string, or garbage.
NumericInput = Optional[Union[Decimal, str]]


def _normalize_currency(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    value = value.strip().upper()
    if len(value) != 3 or not value.isalpha():
        raise ValueError("currency must be a 3-letter ISO 4217 code")
    return value


# ============================================================================
# Line items
# ============================================================================


class LineItemInput(BaseModel):
    """
    Line item fields as entered in the editor.

    WHY: Every field is optional so an empty object is a blank row. The
    engine coerces the values; nothing here rejects a half-typed number.
    """

    name: str = Field(default="", max_length=255, description="Display name")
    item_type: str = Field(
        default=LineItemKind.PRODUCT.value,
        description="product, service, subscription or one_time",
    )
    quantity: NumericInput = Field(default=Decimal("1"), description="Quantity")
    unit_price: NumericInput = Field(default=Decimal("0"), description="Price per unit")
    discount_mode: Optional[DiscountMode] = Field(
        default=None,
        description="Must match the proposal's mode when sent",
    )
    discount_value: NumericInput = Field(
        default=Decimal("0"),
        description="Percent (0-100) or fixed amount, per discount_mode",
    )
    tax_percent: NumericInput = Field(default=Decimal("0"), description="Tax rate (0-100)")
    setup_fee: NumericInput = Field(
        default=Decimal("0"),
        description="One-off fee, subscriptions only",
    )
    margin_percent: NumericInput = Field(default=Decimal("0"), description="Advisory margin")
    description: Optional[str] = Field(default=None, max_length=10000)
    category: Optional[str] = Field(default=None, max_length=100)
    sku: Optional[str] = Field(default=None, max_length=100)
    vendor: Optional[str] = Field(default=None, max_length=255)
    catalog_item_id: Optional[str] = Field(default=None, max_length=64)
    billing_cycle: Optional[BillingCycle] = None
    renewal_price: NumericInput = None

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "name": "Managed Firewall",
                "item_type": "subscription",
                "quantity": 3,
                "unit_price": 100,
                "discount_value": 10,
                "tax_percent": 5,
                "setup_fee": 0,
                "margin_percent": 30,
            }
        }
    )

    def to_fields(self, discount_mode: DiscountMode) -> Dict[str, Any]:
        """
        LineItem constructor arguments (without ``order``).

        The discount is always in the proposal's mode. A row that names the
        other mode is rejected rather than stored and silently ignored.

        Raises:
            ValidationError: ``discount_mode`` differs from the proposal's
        """
        if self.discount_mode is not None and self.discount_mode != discount_mode:
            raise ValidationError(
                message=(
                    f"Line item discount_mode {self.discount_mode.value} does not match "
                    f"the proposal's {discount_mode.value} mode"
                ),
                discount_mode=self.discount_mode.value,
                proposal_discount_mode=discount_mode.value,
            )
        fields = self.model_dump(exclude={"catalog_item", "item_type", "discount_mode", "discount_value"})
        fields["kind"] = self.item_type
        fields["discount"] = Discount(discount_mode, self.discount_value)
        return fields


class CatalogItemInput(BaseModel):
    """
    Catalog entry chosen in the catalog picker.

    WHAT: Seeds a new line item (quantity 1, zero discount).
    """

    id: Optional[str] = Field(default=None, max_length=64, description="Catalog item ID")
    name: str = Field(..., min_length=1, max_length=255)
    unit_price: NumericInput = Field(default=Decimal("0"))
    item_type: str = Field(default=LineItemKind.PRODUCT.value)
    description: str = Field(default="", max_length=10000)
    category: str = Field(default="", max_length=100)
    sku: Optional[str] = Field(default=None, max_length=100)
    margin_percent: NumericInput = Field(default=Decimal("0"))
    vendor: Optional[str] = Field(default=None, max_length=255)

    def to_entry(self) -> CatalogEntry:
        return CatalogEntry(
            id=self.id,
            name=self.name,
            unit_price=self.unit_price,
            kind=LineItemKind.parse(self.item_type),
            description=self.description,
            category=self.category,
            sku=self.sku,
            margin_percent=self.margin_percent,
            vendor=self.vendor,
        )


class ProposalItemCreate(LineItemInput):
    """
    Add-item request.

    WHAT: One of three forms:
    - ``{"catalog_item": {...}}``: instantiate from the catalog
    - ``{}``: blank row
    - explicit line item fields
    """

    catalog_item: Optional[CatalogItemInput] = None


class ProposalItemUpdate(BaseModel):
    """
    Item edit request. Only fields that are sent are changed.

    WHY: ``order`` and ``total_price`` are not accepted; position changes
    only through add/remove, and totals are always derived.
    """

    name: Optional[str] = Field(default=None, max_length=255)
    item_type: Optional[str] = None
    quantity: NumericInput = None
    unit_price: NumericInput = None
    discount_mode: Optional[DiscountMode] = None
    discount_value: NumericInput = None
    tax_percent: NumericInput = None
    setup_fee: NumericInput = None
    margin_percent: NumericInput = None
    description: Optional[str] = Field(default=None, max_length=10000)
    category: Optional[str] = Field(default=None, max_length=100)
    sku: Optional[str] = Field(default=None, max_length=100)
    vendor: Optional[str] = Field(default=None, max_length=255)
    billing_cycle: Optional[BillingCycle] = None
    renewal_price: NumericInput = None

    model_config = ConfigDict(extra="forbid")

    def to_changes(self, discount_mode: DiscountMode) -> Dict[str, Any]:
        """
        Field changes for ``update_item``, limited to the fields sent.

        ``discount_mode`` may only repeat the proposal's mode; the mode
        itself changes through the proposal update. ``discount_value`` is
        passed on as a shorthand that keeps the item's mode.

        Raises:
            ValidationError: ``discount_mode`` differs from the proposal's
        """
        changes = self.model_dump(exclude_unset=True)
        if "item_type" in changes:
            changes["kind"] = changes.pop("item_type")
        mode = changes.pop("discount_mode", None)
        if mode is not None and mode != discount_mode:
            raise ValidationError(
                message=(
                    f"Line item discount_mode {mode.value} does not match "
                    f"the proposal's {discount_mode.value} mode"
                ),
                discount_mode=mode.value,
                proposal_discount_mode=discount_mode.value,
            )
        if changes.get("discount_value", 0) is None:
            del changes["discount_value"]
        return changes


class LineItemResponse(BaseModel):
    """
    Line item with its full price breakdown.

    WHY: Every item carries the proposal's discount mode, so the amounts
    shown per row add up to the proposal totals.
    """

    id: Optional[int] = None
    order: int
    name: str
    item_type: LineItemKind
    quantity: Decimal
    unit_price: Decimal
    discount_mode: DiscountMode
    discount_value: Decimal
    discount_percent: Decimal
    discount_amount: Decimal
    tax_percent: Decimal
    setup_fee: Decimal
    margin_percent: Decimal
    description: str = ""
    category: str = ""
    sku: Optional[str] = None
    vendor: Optional[str] = None
    catalog_item_id: Optional[str] = None
    billing_cycle: Optional[BillingCycle] = None
    renewal_price: Optional[Decimal] = None
    subtotal: Decimal
    discount: Decimal
    tax: Decimal
    total_price: Decimal

    @classmethod
    def from_line_item(cls, item: LineItem) -> "LineItemResponse":
        breakdown = calculate_line_item(item)
        return cls(
            id=item.id,
            order=item.order,
            name=item.name,
            item_type=item.kind,
            quantity=item.quantity,
            unit_price=item.unit_price,
            discount_mode=item.discount.mode,
            discount_value=item.discount.value,
            discount_percent=item.discount_percent,
            discount_amount=item.discount_amount,
            tax_percent=item.tax_percent,
            setup_fee=item.setup_fee,
            margin_percent=item.margin_percent,
            description=item.description,
            category=item.category,
            sku=item.sku,
            vendor=item.vendor,
            catalog_item_id=item.catalog_item_id,
            billing_cycle=item.billing_cycle,
            renewal_price=item.renewal_price,
            subtotal=breakdown.subtotal,
            discount=breakdown.discount,
            tax=breakdown.tax,
            total_price=breakdown.total_price,
        )


# ============================================================================
# Totals
# ============================================================================


class TotalsResponse(BaseModel):
    """Proposal totals, always freshly aggregated from the items."""

    subtotal: Decimal
    total_discount: Decimal
    total_tax: Decimal
    total_setup_fees: Decimal
    grand_total: Decimal
    total_margin: Decimal
    recurring_revenue: Decimal
    average_margin_percent: Decimal
    item_count: int

    @classmethod
    def from_totals(cls, totals: ProposalTotals) -> "TotalsResponse":
        return cls(**totals.to_dict())


class PreviewRequest(BaseModel):
    """
    Stateless pricing request.

    WHY: Lets the editor price unsaved rows with the same engine the
    server persists with.
    """

    discount_mode: DiscountMode = DiscountMode.PERCENTAGE
    items: List[LineItemInput] = Field(default_factory=list)


class PreviewResponse(BaseModel):
    items: List[LineItemResponse]
    totals: TotalsResponse
    can_send: bool
    send_blockers: List[str]


# ============================================================================
# Proposals
# ============================================================================


class ProposalCreate(BaseModel):
    """
    Proposal creation request schema.

    WHY: Proposals start in DRAFT status automatically. Currency and
    discount mode fall back to the configured defaults.
    """

    title: str = Field(..., min_length=1, max_length=255, description="Proposal title")
    description: Optional[str] = Field(default=None, max_length=10000)
    currency: Optional[str] = Field(default=None, description="ISO 4217 code")
    discount_mode: Optional[DiscountMode] = None
    valid_until: Optional[datetime] = Field(default=None, description="Expiration date")
    notes: Optional[str] = Field(default=None, max_length=10000, description="Internal notes")
    items: List[LineItemInput] = Field(default_factory=list)

    @field_validator("currency")
    @classmethod
    def currency_code(cls, v: Optional[str]) -> Optional[str]:
        return _normalize_currency(v)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "title": "Managed Security Services",
                "currency": "USD",
                "discount_mode": "percentage",
                "items": [
                    {
                        "name": "Managed Firewall",
                        "item_type": "subscription",
                        "quantity": 3,
                        "unit_price": 100,
                        "discount_value": 10,
                        "tax_percent": 5,
                    }
                ],
            }
        }
    )


class ProposalUpdate(BaseModel):
    """
    Proposal update request schema.

    WHY: Switching ``discount_mode`` re-expresses every item's discount in
    the new mode (with value 0).
    """

    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=10000)
    currency: Optional[str] = None
    discount_mode: Optional[DiscountMode] = None
    valid_until: Optional[datetime] = None
    notes: Optional[str] = Field(default=None, max_length=10000)

    @field_validator("currency")
    @classmethod
    def currency_code(cls, v: Optional[str]) -> Optional[str]:
        return _normalize_currency(v)


class ProposalReject(BaseModel):
    """Client rejection request."""

    reason: Optional[str] = Field(default=None, max_length=2000, description="Why the client declined")


class ProposalResponse(BaseModel):
    """
    Proposal response schema.

    WHAT: Proposal with items and freshly computed totals.
    """

    id: int
    title: str
    description: Optional[str] = None
    status: ProposalStatus
    currency: str
    discount_mode: DiscountMode
    valid_until: Optional[datetime] = None
    sent_at: Optional[datetime] = None
    accepted_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    is_editable: bool
    is_expired: bool
    approval_status: Optional[WorkflowStatus] = None
    items: List[LineItemResponse]
    totals: TotalsResponse

    @classmethod
    def from_model(cls, proposal: Proposal) -> "ProposalResponse":
        snapshot = proposal.snapshot()
        workflow = proposal.approval_workflow
        return cls(
            id=proposal.id,
            title=proposal.title,
            description=proposal.description,
            status=proposal.status,
            currency=proposal.currency,
            discount_mode=snapshot.discount_mode,
            valid_until=proposal.valid_until,
            sent_at=proposal.sent_at,
            accepted_at=proposal.accepted_at,
            rejected_at=proposal.rejected_at,
            rejection_reason=proposal.rejection_reason,
            notes=proposal.notes,
            created_at=proposal.created_at,
            updated_at=proposal.updated_at,
            is_editable=proposal.is_editable,
            is_expired=proposal.is_expired,
            approval_status=workflow.to_domain().status if workflow is not None else None,
            items=[
                LineItemResponse.from_line_item(item)
                for item in snapshot.items
            ],
            totals=TotalsResponse.from_totals(snapshot.totals),
        )


class ProposalSummary(BaseModel):
    """
    List row. Amounts come from the stored totals snapshot.
    """

    id: int
    title: str
    status: ProposalStatus
    currency: str
    grand_total: Decimal
    recurring_revenue: Decimal
    valid_until: Optional[datetime] = None
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ProposalListResponse(BaseModel):
    """
    Paginated proposal list response schema.
    """

    items: List[ProposalSummary] = Field(..., description="List of proposals")
    total: int = Field(..., description="Total proposals matching filters")
    skip: int = Field(..., description="Number of items skipped")
    limit: int = Field(..., description="Maximum items per page")


class ValidationResponse(BaseModel):
    errors: List[str]
    warnings: List[str]
    is_valid: bool

    @classmethod
    def from_validation(cls, validation: ProposalValidation) -> "ValidationResponse":
        return cls(
            errors=validation.errors,
            warnings=validation.warnings,
            is_valid=validation.is_valid,
        )


class ReadinessResponse(BaseModel):
    """
    Send/accept gates with reasons.

    WHY: The UI enables the Send and Mark Accepted buttons from this, and
    shows the reasons when they are disabled.
    """

    proposal_id: int
    status: ProposalStatus
    can_send: bool
    send_blockers: List[str]
    can_mark_accepted: bool
    acceptance_blockers: List[str]
    is_expired: bool
    validation: ValidationResponse
