"""
Seat inventory for events.

Both operations are single conditional UPDATEs executed on the caller's
session, so they commit (or roll back) together with the transaction row
that caused them. The WHERE clause is the oversell guard: the database
serializes concurrent decrements of the same row.
"""

from __future__ import annotations

from sqlalchemy import case, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from loguru import logger

from ticketon.models.event import Event
from ticketon.services.errors import EventNotFound, InsufficientSeats


async def reserve(db: AsyncSession, event_id: int, quantity: int) -> None:
    if quantity < 1:
        raise ValueError("quantity must be >= 1")

    res = await db.execute(
        update(Event)
        .where(
            Event.id == event_id,
            Event.deleted_at.is_(None),
            Event.seat_left >= quantity,
        )
        .values(seat_left=Event.seat_left - quantity, updated_at=func.now())
        .execution_options(synchronize_session=False)
    )
    if res.rowcount == 1:
        logger.debug("Reserved {} seat(s) on event {}", quantity, event_id)
        return

    exists = await db.execute(
        select(Event.id).where(Event.id == event_id, Event.deleted_at.is_(None))
    )
    if exists.scalar_one_or_none() is None:
        raise EventNotFound("Event not found")
    raise InsufficientSeats("Not enough seats available")


async def release(db: AsyncSession, event_id: int, quantity: int) -> None:
    """Return seats to an event, never above seat_total.

    Soft-deleted events still take their seats back: historical
    transactions keep pointing at them.
    """
    if quantity < 1:
        raise ValueError("quantity must be >= 1")

    restored = Event.seat_left + quantity
    res = await db.execute(
        update(Event)
        .where(Event.id == event_id)
        .values(
            seat_left=case(
                (restored > Event.seat_total, Event.seat_total),
                else_=restored,
            ),
            updated_at=func.now(),
        )
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        raise EventNotFound("Event not found")
    logger.debug("Released {} seat(s) on event {}", quantity, event_id)


async def get_seat_left(db: AsyncSession, event_id: int) -> int:
    res = await db.execute(select(Event.seat_left).where(Event.id == event_id))
    v = res.scalar_one_or_none()
    if v is None:
        raise EventNotFound("Event not found")
    return int(v)
