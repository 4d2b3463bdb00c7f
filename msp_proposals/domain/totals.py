"""
Proposal-level totals.

WHAT: The ProposalAggregator - folds a proposal's line items into subtotal,
discount, tax, setup fees, grand total, margin and recurring revenue.

WHY: Totals are never an independent source of truth. They are recomputed
from the items on every change, so this fold has to be pure and cheap
enough to run on every keystroke.

HOW: Sums the per-item breakdowns from ``calculate_line_item``. Tax is the
sum of per-item taxes (each computed on that item's own after-discount
amount), not a rate applied to the aggregate subtotal. Because every
breakdown is already rounded to cents, ``grand_total`` equals the sum of
item totals exactly.
"""

from dataclasses import dataclass, asdict
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable

from msp_proposals.domain.line_items import (
    LineItem,
    LineItemKind,
    calculate_line_item,
)
from msp_proposals.domain.money import HUNDRED, ZERO, percent_of


@dataclass(frozen=True)
class ProposalTotals:
    """
    Aggregated financial figures for one proposal.

    Attributes:
        subtotal: Sum of quantity x unit_price
        total_discount: Sum of per-item discounts
        total_tax: Sum of per-item taxes
        total_setup_fees: Sum of subscription setup fees
        grand_total: subtotal - discount + tax + setup fees
        total_margin: Advisory margin, sum of total_price x margin_percent
        recurring_revenue: Sum of subscription totals (monthly run-rate)
        average_margin_percent: total_margin as a share of grand_total
        item_count: Number of line items
    """

    subtotal: Decimal = ZERO
    total_discount: Decimal = ZERO
    total_tax: Decimal = ZERO
    total_setup_fees: Decimal = ZERO
    grand_total: Decimal = ZERO
    total_margin: Decimal = ZERO
    recurring_revenue: Decimal = ZERO
    average_margin_percent: Decimal = ZERO
    item_count: int = 0

    @classmethod
    def zero(cls) -> "ProposalTotals":
        return cls()

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)


def _average_margin(total_margin: Decimal, grand_total: Decimal) -> Decimal:
    if grand_total <= ZERO:
        return ZERO
    return (total_margin / grand_total * HUNDRED).quantize(
        Decimal("0.1"), rounding=ROUND_HALF_UP
    )


def aggregate_totals(items: Iterable[LineItem]) -> ProposalTotals:
    """
    Fold line items into proposal totals.

    WHAT: Pure fold, order-independent. An empty item list yields
    ``ProposalTotals.zero()``.

    Each item is priced with its own tagged discount, the same way
    ``LineItem.total_price`` is, so ``grand_total`` is always the exact sum
    of the item totals.

    Args:
        items: The proposal's line items

    Returns:
        ProposalTotals for the items
    """
    items = list(items)
    if not items:
        return ProposalTotals.zero()

    subtotal = ZERO
    total_discount = ZERO
    total_tax = ZERO
    total_setup_fees = ZERO
    total_margin = ZERO
    recurring_revenue = ZERO

    for item in items:
        breakdown = calculate_line_item(item)
        subtotal += breakdown.subtotal
        total_discount += breakdown.discount
        total_tax += breakdown.tax
        total_setup_fees += breakdown.setup_fee
        total_margin += percent_of(breakdown.total_price, item.margin_percent)
        if item.kind == LineItemKind.SUBSCRIPTION:
            recurring_revenue += breakdown.total_price

    grand_total = subtotal - total_discount + total_tax + total_setup_fees

    return ProposalTotals(
        subtotal=subtotal,
        total_discount=total_discount,
        total_tax=total_tax,
        total_setup_fees=total_setup_fees,
        grand_total=grand_total,
        total_margin=total_margin,
        recurring_revenue=recurring_revenue,
        average_margin_percent=_average_margin(total_margin, grand_total),
        item_count=len(items),
    )
