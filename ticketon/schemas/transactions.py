from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class TransactionCreateIn(BaseModel):
    event_id: int
    quantity: int = Field(default=1, ge=1, le=50)
    voucher_code: Optional[str] = None
    coupon_code: Optional[str] = None
    points_to_use: int = Field(default=0, ge=0)


class PaymentProofIn(BaseModel):
    payment_proof_url: str = Field(min_length=1, max_length=2048)


class RejectIn(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=500)


class TransactionItemOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    quantity: int
    unit_price: int


class TransactionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: int
    event_id: int

    total_price: int
    voucher_discount: int
    coupon_discount: int
    points_used: int
    final_price: int

    voucher_id: Optional[int] = None
    coupon_id: Optional[int] = None

    status: str
    expires_at: datetime
    payment_proof_url: Optional[str] = None
    rejection_reason: Optional[str] = None

    created_at: datetime
    updated_at: datetime

    items: List[TransactionItemOut] = Field(default_factory=list)


class TransactionsListOut(BaseModel):
    items: List[TransactionOut] = Field(default_factory=list)
    total: int


class OrganizerTransactionOut(TransactionOut):
    event_title: str
    buyer_name: str
    buyer_email: Optional[str] = None


class OrganizerTransactionsListOut(BaseModel):
    items: List[OrganizerTransactionOut] = Field(default_factory=list)
    page: int
    limit: int
    total: int
    total_pages: int
