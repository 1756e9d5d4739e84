from __future__ import annotations

from datetime import datetime

from sqlalchemy import CheckConstraint, ForeignKey, Index, Integer, func
from sqlalchemy.orm import Mapped, mapped_column

from ticketon.core.db import Base, UtcDateTime


class Point(Base):
    """One loyalty point grant: an amount awarded at once with a single expiry."""

    __tablename__ = "points"
    __table_args__ = (
        CheckConstraint("amount >= 0", name="points_amount_check"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )

    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(UtcDateTime(), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        UtcDateTime(), nullable=False, server_default=func.now()
    )


Index("ix_points_user_expires", Point.user_id, Point.expires_at)
