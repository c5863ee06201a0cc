"""
Quote totals calculation.

Totals are staged: the management fee is rounded on its own, then tax is
computed on subtotal + rounded fee and rounded again. The subtotal itself is
never rounded, so the grand total is generally not equal to
subtotal * (1 + mgmt%) * (1 + tax%).
"""

from __future__ import annotations

import math
from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING, Iterable

from pydantic import BaseModel

if TYPE_CHECKING:
    from estimator.ui.viewmodels import LineItem


class QuoteTotals(BaseModel):
    """Aggregate amounts for a quote."""
    subtotal: float = 0.0
    management_fee: float = 0.0
    taxable_amount: float = 0.0
    tax: float = 0.0
    grand_total: float = 0.0


def line_total(item: "LineItem") -> float:
    """Quantity times unit price. No rounding at row level."""
    return item.quantity * item.market_price


def round_currency(value: float) -> float:
    """
    Round to a whole currency unit, halves away from zero.

    Rounds the shortest decimal form of the float, so the result matches
    the value as it is displayed.
    """
    if not math.isfinite(value):
        return value
    rounded = Decimal(repr(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return float(rounded)


def percentage_of(amount: float, rate: float) -> float:
    """``amount * rate / 100`` rounded to a whole currency unit."""
    return round_currency(amount * rate / 100)


def compute_totals(
    items: Iterable["LineItem"],
    management_rate: float,
    tax_rate: float,
) -> QuoteTotals:
    """
    Fold line items and the two rates into a totals record.

    Rates are percentages and are not range checked; negative rates
    propagate arithmetically.
    """
    subtotal = sum((line_total(item) for item in items), 0.0)
    management_fee = percentage_of(subtotal, management_rate)
    taxable_amount = subtotal + management_fee
    tax = percentage_of(taxable_amount, tax_rate)

    return QuoteTotals(
        subtotal=subtotal,
        management_fee=management_fee,
        taxable_amount=taxable_amount,
        tax=tax,
        grand_total=taxable_amount + tax,
    )
