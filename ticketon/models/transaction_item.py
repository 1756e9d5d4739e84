from __future__ import annotations

from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Integer, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ticketon.core.db import Base

if TYPE_CHECKING:
    from ticketon.models.transaction import Transaction


class TransactionItem(Base):
    """Line item; quantity and unit price are a snapshot taken at purchase time."""

    __tablename__ = "transaction_items"
    __table_args__ = (
        CheckConstraint("quantity >= 1", name="transaction_items_quantity_check"),
        CheckConstraint("unit_price >= 0", name="transaction_items_unit_price_check"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    transaction_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("transactions.id", ondelete="CASCADE"),
        nullable=False,
    )

    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[int] = mapped_column(Integer, nullable=False)

    transaction: Mapped["Transaction"] = relationship("Transaction", back_populates="items")
