from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, List
from uuid import UUID

from marketplace.errors import ValidationError

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


@dataclass(frozen=True)
class PricedLine:
    product_id: UUID
    quantity: int
    unit_price: Decimal
    line_total: Decimal


@dataclass(frozen=True)
class OrderTotals:
    lines: List[PricedLine]
    subtotal: Decimal
    discount: Decimal
    freight: Decimal
    total: Decimal


def _money(value) -> Decimal:
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def line_total(unit_price, quantity: int) -> Decimal:
    return _money(Decimal(unit_price) * quantity)


def calculate_totals(lines: Iterable, discount=ZERO, freight=ZERO) -> OrderTotals:
    """Sum ``(product_id, quantity, unit_price)`` lines into order totals.

    No promotion or shipping engine exists yet, so callers pass zero for
    ``discount`` and ``freight``; they stay separate terms of the total.
    """
    discount = _money(discount)
    freight = _money(freight)
    if discount < 0 or freight < 0:
        raise ValidationError("Discount and freight cannot be negative")

    priced = []
    for product_id, quantity, unit_price in lines:
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1")
        priced.append(PricedLine(
            product_id=product_id,
            quantity=quantity,
            unit_price=Decimal(unit_price),
            line_total=line_total(unit_price, quantity),
        ))

    subtotal = sum((line.line_total for line in priced), ZERO)
    total = max(subtotal - discount + freight, ZERO)
    return OrderTotals(
        lines=priced,
        subtotal=subtotal,
        discount=discount,
        freight=freight,
        total=total,
    )
