"""
Total Calculator - Subtotal, discount and payable total for an order.
"""
from typing import Callable, Optional

from .models import LineItem, OrderTotals


def compute_totals(
    items: list[LineItem],
    per_item_discount: dict[str, float],
    persisted_total_after_discount: Optional[float] = None,
    price_of: Optional[Callable[[LineItem], float]] = None,
) -> OrderTotals:
    """
    Derive the order totals.

    A persisted total (stored when the order was placed) is authoritative
    for ``final_total``; the discount is then recomputed from it so the
    savings figure agrees with the stored total.

    ``price_of`` values lines that carry no ``unit_price``; without it such
    lines count as zero.
    """
    subtotal = 0.0
    for item in items:
        if item.is_free:
            continue
        if item.unit_price is not None:
            unit_price = float(item.unit_price)
        elif price_of is not None:
            unit_price = price_of(item)
        else:
            unit_price = 0.0
        subtotal += max(0.0, unit_price) * max(0, item.quantity)

    total_discount = sum(max(0.0, value) for value in per_item_discount.values())
    final_total = max(0.0, subtotal - total_discount)

    if persisted_total_after_discount is not None:
        final_total = float(persisted_total_after_discount)
        total_discount = max(0.0, subtotal - final_total)
        return OrderTotals(
            subtotal=subtotal,
            total_discount=total_discount,
            final_total=final_total,
            savings=total_discount,
            uses_persisted_total=True,
        )

    return OrderTotals(
        subtotal=subtotal,
        total_discount=total_discount,
        final_total=final_total,
        savings=total_discount,
    )
