from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Optional
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, ForeignKey, Index, Integer, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ticketon.core.db import Base, UtcDateTime
from ticketon.models.transaction_item import TransactionItem


class TransactionStatus(str, Enum):
    WAITING_PAYMENT = "WAITING_PAYMENT"
    WAITING_ADMIN = "WAITING_ADMIN"
    DONE = "DONE"
    EXPIRED = "EXPIRED"
    CANCELED = "CANCELED"
    REJECTED = "REJECTED"

    def can_transition_to(self, target: TransactionStatus) -> bool:
        return target in _TRANSITIONS.get(self, ())


_TRANSITIONS: dict[TransactionStatus, tuple[TransactionStatus, ...]] = {
    TransactionStatus.WAITING_PAYMENT: (
        TransactionStatus.WAITING_ADMIN,
        TransactionStatus.EXPIRED,
        TransactionStatus.CANCELED,
    ),
    TransactionStatus.WAITING_ADMIN: (
        TransactionStatus.DONE,
        TransactionStatus.CANCELED,
        TransactionStatus.REJECTED,
    ),
}

ROLLBACK_STATUSES = (
    TransactionStatus.EXPIRED,
    TransactionStatus.CANCELED,
    TransactionStatus.REJECTED,
)


class Transaction(Base):
    __tablename__ = "transactions"
    __table_args__ = (
        CheckConstraint(
            "status IN ('WAITING_PAYMENT','WAITING_ADMIN','DONE','EXPIRED','CANCELED','REJECTED')",
            name="transactions_status_check",
        ),
        CheckConstraint("final_price >= 0", name="transactions_final_price_check"),
        CheckConstraint("points_used >= 0", name="transactions_points_used_check"),
    )

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False)
    event_id: Mapped[int] = mapped_column(Integer, ForeignKey("events.id"), nullable=False)

    # price * quantity, before any discount
    total_price: Mapped[int] = mapped_column(Integer, nullable=False)
    voucher_discount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    coupon_discount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    points_used: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    final_price: Mapped[int] = mapped_column(Integer, nullable=False)

    voucher_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("vouchers.id"), nullable=True
    )
    coupon_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("coupons.id"), nullable=True
    )

    status: Mapped[str] = mapped_column(
        String(32), nullable=False, default=TransactionStatus.WAITING_PAYMENT.value
    )

    expires_at: Mapped[datetime] = mapped_column(UtcDateTime(), nullable=False)
    payment_proof_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        UtcDateTime(), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        UtcDateTime(), nullable=False, server_default=func.now()
    )

    items: Mapped[List["TransactionItem"]] = relationship(
        "TransactionItem",
        back_populates="transaction",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="TransactionItem.id",
    )

    @property
    def quantity(self) -> int:
        return sum(item.quantity for item in self.items)

    @property
    def state(self) -> TransactionStatus:
        return TransactionStatus(self.status)


Index("ix_transactions_status_expires", Transaction.status, Transaction.expires_at)
Index("ix_transactions_status_updated", Transaction.status, Transaction.updated_at)
Index("ix_transactions_user_created", Transaction.user_id, Transaction.created_at.desc())
