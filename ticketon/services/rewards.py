"""
Reward ledger: loyalty point grants, voucher usage counters and coupon checks.

Every function runs on the caller's session and never commits; the
transaction state machine owns the unit of work.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from loguru import logger
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ticketon.core.config import settings
from ticketon.models.coupon import Coupon
from ticketon.models.point import Point
from ticketon.models.transaction import ROLLBACK_STATUSES, Transaction
from ticketon.models.voucher import Voucher
from ticketon.services.errors import (
    CouponAlreadyUsed,
    CouponExpired,
    CouponNotFound,
    InsufficientPoints,
    VoucherExhausted,
    VoucherInvalid,
)


# -------------------------
# Points
# -------------------------
async def available_points(db: AsyncSession, user_id: int, now: datetime) -> int:
    res = await db.execute(
        select(func.coalesce(func.sum(Point.amount), 0)).where(
            Point.user_id == user_id,
            Point.expires_at > now,
        )
    )
    return int(res.scalar_one())


async def redeem_points(
    db: AsyncSession,
    user_id: int,
    amount: int,
    now: datetime,
) -> list[tuple[int, int]]:
    """
    Consume ``amount`` points from unexpired grants, soonest-expiring first.

    Fully consumed grants are deleted, the last one touched is decremented.
    Returns [(grant_id, consumed)] in consumption order.
    """
    if amount < 0:
        raise ValueError("amount must be >= 0")
    if amount == 0:
        return []

    res = await db.execute(
        select(Point)
        .where(Point.user_id == user_id, Point.expires_at > now)
        .order_by(Point.expires_at.asc(), Point.id.asc())
        .with_for_update()
    )
    grants = res.scalars().all()

    balance = sum(g.amount for g in grants)
    if balance < amount:
        raise InsufficientPoints(f"Insufficient points: requested {amount}, available {balance}.")

    remaining = amount
    consumed: list[tuple[int, int]] = []

    for grant in grants:
        if remaining <= 0:
            break

        if grant.amount <= remaining:
            remaining -= grant.amount
            consumed.append((grant.id, grant.amount))
            await db.delete(grant)
        else:
            grant.amount = grant.amount - remaining
            consumed.append((grant.id, remaining))
            remaining = 0

    await db.flush()
    logger.debug("User {} redeemed {} point(s) from grants {}", user_id, amount, consumed)
    return consumed


async def restore_points(db: AsyncSession, user_id: int, amount: int, now: datetime) -> Point:
    """Give ``amount`` back as one fresh grant.

    Consumed grants are not revived; other transactions may have
    consumed what was left of them since.
    """
    if amount <= 0:
        raise ValueError("amount must be > 0")

    grant = Point(
        user_id=user_id,
        amount=amount,
        expires_at=now + timedelta(days=settings.POINTS_RESTORE_DAYS),
        created_at=now,
    )
    db.add(grant)
    await db.flush()
    logger.debug("Restored {} point(s) to user {} as grant {}", amount, user_id, grant.id)
    return grant


# -------------------------
# Vouchers
# -------------------------
async def load_voucher(db: AsyncSession, code: str, event_id: int, now: datetime) -> Voucher:
    res = await db.execute(select(Voucher).where(Voucher.code == code))
    voucher = res.scalar_one_or_none()

    if voucher is None:
        raise VoucherInvalid("Invalid voucher code.")
    if voucher.event_id != event_id:
        raise VoucherInvalid("Voucher does not apply to this event.")
    if now < voucher.start_date or now > voucher.end_date:
        raise VoucherInvalid("Voucher is not valid at this time.")
    if voucher.used_count >= voucher.max_usage:
        raise VoucherExhausted("Voucher usage limit reached.")
    return voucher


async def increment_voucher_usage(db: AsyncSession, voucher_id: int) -> None:
    res = await db.execute(
        update(Voucher)
        .where(Voucher.id == voucher_id, Voucher.used_count < Voucher.max_usage)
        .values(used_count=Voucher.used_count + 1)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        raise VoucherExhausted("Voucher usage limit reached.")


async def decrement_voucher_usage(db: AsyncSession, voucher_id: int) -> None:
    res = await db.execute(
        update(Voucher)
        .where(Voucher.id == voucher_id, Voucher.used_count > 0)
        .values(used_count=Voucher.used_count - 1)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        logger.warning("Voucher {} usage already at 0; nothing to decrement", voucher_id)


# -------------------------
# Coupons
# -------------------------
async def validate_coupon(db: AsyncSession, code: str, now: datetime) -> Coupon:
    stmt = select(Coupon).where(Coupon.code == code)
    if settings.COUPON_SINGLE_USE:
        # row lock serializes count-then-insert across concurrent purchases
        stmt = stmt.with_for_update()
    res = await db.execute(stmt)
    coupon = res.scalar_one_or_none()

    if coupon is None:
        raise CouponNotFound("Coupon not found.")
    if now > coupon.expires_at:
        raise CouponExpired("Coupon has expired.")

    if settings.COUPON_SINGLE_USE:
        used = await db.execute(
            select(func.count(Transaction.id)).where(
                Transaction.coupon_id == coupon.id,
                Transaction.status.not_in([s.value for s in ROLLBACK_STATUSES]),
            )
        )
        if int(used.scalar_one()) > 0:
            raise CouponAlreadyUsed("Coupon has already been used.")

    return coupon
