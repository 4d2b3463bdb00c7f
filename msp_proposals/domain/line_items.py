"""
Line items and the per-item price calculator.

WHAT: Immutable line item values, the LineItemCalculator, and the pure
editing operations a proposal editor performs on its item list (add blank,
add from catalog, edit a field, remove, switch discount mode).

WHY: A line item's total price is derived data. Keeping items immutable and
deriving ``total_price`` on read means no reader can ever observe a stale
total after a field edit.

HOW:
- Every numeric field is coerced at construction (see ``domain.money``)
- Discounts are a tagged value (mode + value) carried by each item, so
  switching the proposal's discount mode never leaves a dead field behind
- Setup fees only exist on subscriptions; other kinds are normalized to 0
- Editing operations return new lists and renumber ``order`` as 1..N
"""

from dataclasses import dataclass, field, replace
from decimal import Decimal
from enum import Enum
from typing import Any, Iterable, List, Optional

from msp_proposals.domain.money import (
    ZERO,
    percent_of,
    round_money,
    to_amount,
    to_percent,
    to_quantity,
)


class LineItemKind(str, Enum):
    """
    What kind of charge a line item represents.

    WHY: Only subscriptions carry setup fees and count towards recurring
    revenue; the other kinds are priced identically.
    """

    PRODUCT = "product"
    SERVICE = "service"
    SUBSCRIPTION = "subscription"
    ONE_TIME = "one_time"

    @classmethod
    def parse(cls, value: Any) -> "LineItemKind":
        """
        Parse a kind from catalog or form input.

        Accepts enum members, values, and the hyphenated ``one-time``
        spelling used by older catalog exports. Unknown values fall back
        to PRODUCT, the kind of a blank row.
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            normalized = value.strip().lower().replace("-", "_")
            for member in cls:
                if member.value == normalized:
                    return member
        return cls.PRODUCT


class DiscountMode(str, Enum):
    """Whether a discount is a percentage of the item subtotal or a fixed amount."""

    PERCENTAGE = "percentage"
    AMOUNT = "amount"


class BillingCycle(str, Enum):
    """Billing cadence of a subscription item (display and renewal only)."""

    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    ANNUALLY = "annually"


@dataclass(frozen=True)
class Discount:
    """
    A line item discount in exactly one representation.

    WHAT: Tagged value - ``mode`` says how ``value`` is interpreted.

    WHY: Replaces the pair of percent/amount fields where one of them was
    always stale depending on a proposal-wide toggle.
    """

    mode: DiscountMode = DiscountMode.PERCENTAGE
    value: Decimal = ZERO

    def __post_init__(self) -> None:
        mode = DiscountMode(self.mode)
        object.__setattr__(self, "mode", mode)
        if mode == DiscountMode.PERCENTAGE:
            object.__setattr__(self, "value", to_percent(self.value))
        else:
            object.__setattr__(self, "value", to_amount(self.value))

    @classmethod
    def percent(cls, value: Any) -> "Discount":
        return cls(DiscountMode.PERCENTAGE, value)

    @classmethod
    def amount(cls, value: Any) -> "Discount":
        return cls(DiscountMode.AMOUNT, value)

    @classmethod
    def none(cls, mode: DiscountMode = DiscountMode.PERCENTAGE) -> "Discount":
        return cls(mode, ZERO)

    def resolve(self, subtotal: Decimal) -> Decimal:
        """
        Compute the money value of this discount against a subtotal.

        The result is clamped to ``[0, subtotal]`` so a discount can never
        make the after-discount amount negative.
        """
        if self.mode == DiscountMode.PERCENTAGE:
            raw = percent_of(subtotal, self.value)
        else:
            raw = round_money(self.value)
        if raw > subtotal:
            return subtotal
        return raw


@dataclass(frozen=True)
class CatalogEntry:
    """
    A product/service catalog row used to seed a new line item.

    The catalog itself (search, persistence) lives outside the engine.
    """

    name: str
    unit_price: Decimal
    kind: LineItemKind = LineItemKind.PRODUCT
    description: str = ""
    category: str = ""
    sku: Optional[str] = None
    margin_percent: Decimal = ZERO
    vendor: Optional[str] = None
    id: Optional[str] = None


@dataclass(frozen=True)
class LineItemBreakdown:
    """Intermediate amounts of the per-item calculation, all in minor-unit precision."""

    subtotal: Decimal
    discount: Decimal
    after_discount: Decimal
    tax: Decimal
    setup_fee: Decimal
    total_price: Decimal


@dataclass(frozen=True)
class LineItem:
    """
    One priced row of a proposal.

    WHAT: Immutable value holding the user-editable inputs of a line item.
    ``total_price`` is a derived property, never stored.

    WHY: Construction coerces every input, so an item is always in a state
    the calculator can price without errors.

    Attributes:
        order: 1-based position within the proposal
        name: Display name (required before the proposal can be sent)
        kind: Product, service, subscription or one-time charge
        quantity: Non-negative quantity
        unit_price: Non-negative price per unit
        discount: Tagged discount (percentage or amount)
        tax_percent: Tax rate in [0, 100]
        setup_fee: One-off fee, subscriptions only
        margin_percent: Advisory margin in [0, 100], never affects price
        billing_cycle: Subscription cadence (subscriptions only)
        renewal_price: Subscription renewal price (subscriptions only)
        id: Persistence identity, None until saved
    """

    order: int
    name: str = ""
    kind: LineItemKind = LineItemKind.PRODUCT
    quantity: Decimal = ZERO
    unit_price: Decimal = ZERO
    discount: Discount = field(default_factory=Discount)
    tax_percent: Decimal = ZERO
    setup_fee: Decimal = ZERO
    margin_percent: Decimal = ZERO
    description: str = ""
    category: str = ""
    sku: Optional[str] = None
    vendor: Optional[str] = None
    catalog_item_id: Optional[str] = None
    billing_cycle: Optional[BillingCycle] = None
    renewal_price: Optional[Decimal] = None
    id: Optional[int] = None

    def __post_init__(self) -> None:
        order = int(self.order)
        if order < 1:
            raise ValueError(f"Line item order must be positive, got {order}")
        kind = LineItemKind.parse(self.kind)
        is_subscription = kind == LineItemKind.SUBSCRIPTION

        discount = self.discount if isinstance(self.discount, Discount) else Discount()

        values = {
            "order": order,
            "name": str(self.name or ""),
            "kind": kind,
            "quantity": to_quantity(self.quantity),
            "unit_price": to_amount(self.unit_price),
            "discount": discount,
            "tax_percent": to_percent(self.tax_percent),
            "setup_fee": to_amount(self.setup_fee) if is_subscription else ZERO,
            "margin_percent": to_percent(self.margin_percent),
            "description": str(self.description or ""),
            "category": str(self.category or ""),
            "billing_cycle": (
                BillingCycle(self.billing_cycle or BillingCycle.MONTHLY)
                if is_subscription
                else None
            ),
            "renewal_price": (
                to_amount(self.renewal_price)
                if is_subscription and self.renewal_price is not None
                else None
            ),
        }
        for name, value in values.items():
            object.__setattr__(self, name, value)

    @property
    def discount_percent(self) -> Decimal:
        """Percentage discount, 0 when the item carries an amount discount."""
        if self.discount.mode == DiscountMode.PERCENTAGE:
            return self.discount.value
        return ZERO

    @property
    def discount_amount(self) -> Decimal:
        """Fixed discount, 0 when the item carries a percentage discount."""
        if self.discount.mode == DiscountMode.AMOUNT:
            return self.discount.value
        return ZERO

    @property
    def is_recurring(self) -> bool:
        return self.kind == LineItemKind.SUBSCRIPTION

    @property
    def breakdown(self) -> LineItemBreakdown:
        return calculate_line_item(self)

    @property
    def total_price(self) -> Decimal:
        return calculate_line_item(self).total_price

    @classmethod
    def blank(
        cls,
        order: int,
        discount_mode: DiscountMode = DiscountMode.PERCENTAGE,
    ) -> "LineItem":
        """Create an empty product row with quantity 1."""
        return cls(
            order=order,
            kind=LineItemKind.PRODUCT,
            quantity=Decimal("1"),
            unit_price=ZERO,
            discount=Discount.none(discount_mode),
        )

    @classmethod
    def from_catalog(
        cls,
        entry: CatalogEntry,
        order: int,
        discount_mode: DiscountMode = DiscountMode.PERCENTAGE,
    ) -> "LineItem":
        """
        Instantiate a line item from a catalog entry.

        WHY: Catalog entries carry the initial name, price, kind and margin.
        Subscriptions start on a monthly cycle renewing at the catalog price.

        Args:
            entry: Catalog entry supplied by the catalog lookup
            order: Position to assign
            discount_mode: Proposal discount mode for the zero discount

        Returns:
            New line item with quantity 1
        """
        kind = LineItemKind.parse(entry.kind)
        is_subscription = kind == LineItemKind.SUBSCRIPTION
        return cls(
            order=order,
            name=entry.name,
            kind=kind,
            quantity=Decimal("1"),
            unit_price=entry.unit_price,
            discount=Discount.none(discount_mode),
            margin_percent=entry.margin_percent,
            description=entry.description,
            category=entry.category,
            sku=entry.sku,
            vendor=entry.vendor,
            catalog_item_id=entry.id,
            billing_cycle=BillingCycle.MONTHLY if is_subscription else None,
            renewal_price=entry.unit_price if is_subscription else None,
        )


def calculate_line_item(item: LineItem) -> LineItemBreakdown:
    """
    Compute one item's price breakdown.

    WHAT: subtotal -> discount -> after-discount -> tax -> total.

    WHY: This is the single definition of a line item's price; the
    aggregator sums these breakdowns so proposal totals can never disagree
    with the per-item totals. The item's own tagged discount is the only
    discount applied. The proposal's discount mode is enforced when items
    are added or edited (``add_item``, ``update_item``,
    ``switch_discount_mode``), not reinterpreted here.

    HOW:
    1. subtotal = quantity x unit_price
    2. discount = percentage of subtotal, or fixed amount, clamped to subtotal
    3. after_discount = subtotal - discount
    4. tax = after_discount x tax_percent / 100
    5. total_price = after_discount + tax + setup_fee
    Each step is rounded to the minor unit, so the total is an exact sum of
    its rounded parts.

    Args:
        item: Line item to price

    Returns:
        LineItemBreakdown with all intermediate amounts
    """
    subtotal = round_money(item.quantity * item.unit_price)
    discount_value = item.discount.resolve(subtotal)

    after_discount = subtotal - discount_value
    tax = percent_of(after_discount, item.tax_percent)
    setup_fee = round_money(item.setup_fee)

    return LineItemBreakdown(
        subtotal=subtotal,
        discount=discount_value,
        after_discount=after_discount,
        tax=tax,
        setup_fee=setup_fee,
        total_price=after_discount + tax + setup_fee,
    )


# ============================================================================
# Editing operations
# ============================================================================


# Fields that are positional or derived and can't be edited directly.
_READ_ONLY_FIELDS = frozenset({"order", "total_price", "id"})


def renumber(items: Iterable[LineItem]) -> List[LineItem]:
    """Assign ``order`` = 1..N following the current sequence."""
    return [
        item if item.order == position else replace(item, order=position)
        for position, item in enumerate(items, start=1)
    ]


def _index_of(items: List[LineItem], order: int) -> int:
    for index, item in enumerate(items):
        if item.order == order:
            return index
    raise ValueError(f"No line item with order {order}")


def add_blank_item(
    items: Iterable[LineItem],
    discount_mode: DiscountMode = DiscountMode.PERCENTAGE,
) -> List[LineItem]:
    items = renumber(items)
    return items + [LineItem.blank(len(items) + 1, discount_mode)]


def add_catalog_item(
    items: Iterable[LineItem],
    entry: CatalogEntry,
    discount_mode: DiscountMode = DiscountMode.PERCENTAGE,
) -> List[LineItem]:
    items = renumber(items)
    return items + [LineItem.from_catalog(entry, len(items) + 1, discount_mode)]


def _require_mode(discount: Any, discount_mode: DiscountMode) -> None:
    if isinstance(discount, Discount) and discount.mode != discount_mode:
        raise ValueError(
            f"Discount mode {discount.mode.value} does not match the proposal's "
            f"{discount_mode.value} mode"
        )


def add_item(
    items: Iterable[LineItem],
    discount_mode: DiscountMode = DiscountMode.PERCENTAGE,
    **fields: Any,
) -> List[LineItem]:
    """
    Append an item built from explicit field values at the next position.

    A missing discount becomes a zero discount of ``discount_mode``.

    Raises:
        ValueError: If the given discount is in another mode
    """
    discount_mode = DiscountMode(discount_mode)
    items = renumber(items)
    fields.pop("order", None)
    discount = fields.pop("discount", None)
    if not isinstance(discount, Discount):
        discount = Discount.none(discount_mode)
    _require_mode(discount, discount_mode)
    return items + [LineItem(order=len(items) + 1, discount=discount, **fields)]


def update_item(items: Iterable[LineItem], order: int, **changes: Any) -> List[LineItem]:
    """
    Replace the item at ``order`` with the given field changes applied.

    WHAT: Field edit on one row; the new item is re-coerced on construction,
    so its derived total is immediately consistent.

    ``discount_value`` is accepted as a shorthand for a new value in the
    item's current discount mode. A full ``discount`` must keep that mode;
    only ``switch_discount_mode`` changes it, for all items at once.

    Args:
        items: Current items
        order: Position of the item to edit
        **changes: LineItem field names and new values

    Returns:
        New item list

    Raises:
        ValueError: If no item has that order, a read-only field is edited,
            or the discount changes mode
    """
    items = list(items)
    index = _index_of(items, order)
    forbidden = _READ_ONLY_FIELDS.intersection(changes)
    if forbidden:
        raise ValueError(f"Cannot edit derived or positional fields: {sorted(forbidden)}")

    current = items[index]
    if "discount_value" in changes:
        changes["discount"] = Discount(current.discount.mode, changes.pop("discount_value"))
    if "discount" in changes:
        _require_mode(changes["discount"], current.discount.mode)

    items[index] = replace(current, **changes)
    return items


def remove_item(items: Iterable[LineItem], order: int) -> List[LineItem]:
    """
    Remove the item at ``order`` and renumber the rest.

    Remaining items keep their relative sequence and get contiguous orders
    1..N-1.

    Raises:
        ValueError: If no item has that order
    """
    items = list(items)
    del items[_index_of(items, order)]
    return renumber(items)


def switch_discount_mode(items: Iterable[LineItem], mode: DiscountMode) -> List[LineItem]:
    """
    Re-express every item's discount in ``mode``.

    Items already in ``mode`` keep their discount. Items in the other mode
    get a zero discount of the new mode; their old value is discarded rather
    than kept as dead data.
    """
    mode = DiscountMode(mode)
    return [
        item if item.discount.mode == mode else replace(item, discount=Discount.none(mode))
        for item in items
    ]
