from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import CheckConstraint, ForeignKey, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from ticketon.core.db import Base, UtcDateTime


class Event(Base):
    __tablename__ = "events"
    __table_args__ = (
        CheckConstraint("price >= 0", name="events_price_check"),
        CheckConstraint("seat_left >= 0 AND seat_left <= seat_total", name="events_seat_left_check"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    organizer_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id"),
        nullable=False,
    )

    title: Mapped[str] = mapped_column(String(255), nullable=False)

    # minor currency units
    price: Mapped[int] = mapped_column(Integer, nullable=False)

    seat_total: Mapped[int] = mapped_column(Integer, nullable=False)
    # mutated only through ticketon.services.inventory
    seat_left: Mapped[int] = mapped_column(Integer, nullable=False)

    start_date: Mapped[Optional[datetime]] = mapped_column(UtcDateTime(), nullable=True)
    end_date: Mapped[Optional[datetime]] = mapped_column(UtcDateTime(), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        UtcDateTime(), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        UtcDateTime(), nullable=False, server_default=func.now()
    )
    deleted_at: Mapped[Optional[datetime]] = mapped_column(UtcDateTime(), nullable=True)
