from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import CheckConstraint, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from ticketon.core.db import Base, UtcDateTime


class Voucher(Base):
    """Event-bound promotion code.

    When both discount columns are set, ``discount_amount`` wins.
    """

    __tablename__ = "vouchers"
    __table_args__ = (
        CheckConstraint("discount_amount IS NULL OR discount_amount >= 0", name="vouchers_amount_check"),
        CheckConstraint(
            "discount_percent IS NULL OR (discount_percent >= 0 AND discount_percent <= 100)",
            name="vouchers_percent_check",
        ),
        CheckConstraint("used_count >= 0 AND used_count <= max_usage", name="vouchers_usage_check"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    event_id: Mapped[int] = mapped_column(Integer, ForeignKey("events.id"), nullable=False)

    code: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)

    discount_amount: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    discount_percent: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    start_date: Mapped[datetime] = mapped_column(UtcDateTime(), nullable=False)
    end_date: Mapped[datetime] = mapped_column(UtcDateTime(), nullable=False)

    max_usage: Mapped[int] = mapped_column(Integer, nullable=False)
    used_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
