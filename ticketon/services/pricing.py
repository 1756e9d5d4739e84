from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class PriceQuote:
    total_price: int
    voucher_discount: int
    coupon_discount: int
    points_used: int
    final_price: int


def voucher_discount_for(
    total_price: int,
    *,
    discount_amount: Optional[int],
    discount_percent: Optional[int],
) -> int:
    """Discount a voucher grants on ``total_price``; a flat amount wins over a percent."""
    if discount_amount is not None:
        return int(discount_amount)
    if discount_percent is not None:
        return int(total_price) * int(discount_percent) // 100
    return 0


def calculate_price(
    *,
    unit_price: int,
    quantity: int,
    voucher_amount: Optional[int] = None,
    voucher_percent: Optional[int] = None,
    coupon_discount: int = 0,
    points_requested: int = 0,
    points_available: int = 0,
) -> PriceQuote:
    """
    total = unit_price * quantity
    - voucher (flat amount, else percent of total), capped at the total
    - coupon (flat), capped at what is left
    - points: min(requested, available, remaining)

    Every step clamps at 0, so points are never spent on a free order and
    the recorded discounts always add up to what was taken off.
    Pure; the same inputs always give the same quote.
    """
    if quantity < 1:
        raise ValueError("quantity must be >= 1")
    if points_requested < 0:
        raise ValueError("points_requested must be >= 0")

    total_price = int(unit_price) * int(quantity)

    # record what was actually taken off, not the nominal discount
    nominal = voucher_discount_for(
        total_price,
        discount_amount=voucher_amount,
        discount_percent=voucher_percent,
    )
    v_discount = max(0, min(total_price, nominal))
    remaining = total_price - v_discount

    c_discount = max(0, min(remaining, int(coupon_discount or 0)))
    remaining = remaining - c_discount

    points_used = max(0, min(int(points_requested), int(points_available), remaining))
    final_price = max(0, remaining - points_used)

    return PriceQuote(
        total_price=total_price,
        voucher_discount=v_discount,
        coupon_discount=c_discount,
        points_used=points_used,
        final_price=final_price,
    )


def reproduce_final_price(
    *,
    total_price: int,
    voucher_discount: int,
    coupon_discount: int,
    points_used: int,
) -> int:
    """Re-derive a stored final price from the discounts a transaction recorded."""
    remaining = max(0, total_price - voucher_discount)
    remaining = max(0, remaining - coupon_discount)
    return max(0, remaining - points_used)
