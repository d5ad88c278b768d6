# app/services/pricing.py
"""
Money / tax calculation for orders and invoices.

Two tax conventions are supported:

  - per-line (checkout): every line is taxed at its own GST percent, so a
    single order may mix 5% and 12% products.
  - flat (invoice): taxable = subtotal - discount, taxed at
    rate_per_component * 2 (CGST + SGST).

Whichever convention produced `tax_amount`, the invoice stores only ONE
component (`tax_component = tax_amount / 2`) and the renderer doubles it.
"""

from dataclasses import dataclass
from typing import Iterable, Protocol


class PricedLine(Protocol):
    quantity: int
    unit_price: float
    tax_rate: float | None


@dataclass(frozen=True)
class LineInput:
    """Plain line used where no ORM row exists yet (checkout, invoice re-tax)."""

    quantity: int
    unit_price: float
    tax_rate: float | None = None


@dataclass(frozen=True)
class Totals:
    subtotal: float
    tax_amount: float
    tax_component: float
    discount: float
    extra: float
    shipping: float
    grand_total: float


def _money(value: float) -> float:
    return round(value, 2)


def compute_totals(
    line_items: Iterable[PricedLine],
    discount: float = 0.0,
    extra_fee: float = 0.0,
    shipping_fee: float = 0.0,
    tax_rate_per_component: float | None = None,
) -> Totals:
    """
    Compute subtotal, tax and grand total.

    grand_total = subtotal + tax + extra + shipping - discount, clamped at 0.
    In flat mode the taxable amount is clamped at 0 as well.

    Signs are NOT validated here; callers reject negative quantities and
    prices before reaching the calculator.
    """
    subtotal = 0.0
    line_tax = 0.0
    for line in line_items:
        amount = line.quantity * line.unit_price
        subtotal += amount
        line_tax += amount * ((line.tax_rate or 0.0) / 100)

    if tax_rate_per_component is None:
        tax_amount = line_tax
    else:
        taxable = max(subtotal - discount, 0.0)
        tax_amount = taxable * (tax_rate_per_component * 2) / 100

    grand_total = subtotal + tax_amount + extra_fee + shipping_fee - discount

    return Totals(
        subtotal=_money(subtotal),
        tax_amount=_money(tax_amount),
        tax_component=_money(tax_amount / 2),
        discount=_money(discount),
        extra=_money(extra_fee),
        shipping=_money(shipping_fee),
        grand_total=_money(max(grand_total, 0.0)),
    )


def effective_rate_per_component(tax_amount: float, taxable: float) -> float:
    """
    Per-component percent that reproduces `tax_amount` on `taxable`.

    Used when an invoice takes its totals from a per-line taxed order.
    """
    if taxable <= 0:
        return 0.0
    return round(tax_amount / taxable * 100 / 2, 2)


def render_tax_breakdown(tax_component: float, tax_rate: float) -> dict[str, float]:
    """
    Expand a stored (halved) tax into the CGST/SGST lines shown on invoices.
    """
    return {
        "cgst_rate": tax_rate,
        "cgst": _money(tax_component),
        "sgst_rate": tax_rate,
        "sgst": _money(tax_component),
        "total_gst": _money(tax_component * 2),
    }
