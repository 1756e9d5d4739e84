from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException

from ticketon.core.deps import get_current_actor, get_transaction_service
from ticketon.schemas.transactions import (
    PaymentProofIn,
    TransactionCreateIn,
    TransactionOut,
    TransactionsListOut,
)
from ticketon.services.errors import TransactionError
from ticketon.services.transactions import Actor, TransactionService


router = APIRouter(prefix="/transactions", tags=["Transactions"])


@router.post("", response_model=TransactionOut, status_code=201)
async def create_transaction(
    payload: TransactionCreateIn,
    actor: Actor = Depends(get_current_actor),
    service: TransactionService = Depends(get_transaction_service),
) -> TransactionOut:
    try:
        tx = await service.create(
            actor,
            event_id=payload.event_id,
            quantity=payload.quantity,
            voucher_code=payload.voucher_code,
            coupon_code=payload.coupon_code,
            points_requested=payload.points_to_use,
        )
        return TransactionOut.model_validate(tx)
    except TransactionError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.get("/me", response_model=TransactionsListOut)
async def list_my_transactions(
    actor: Actor = Depends(get_current_actor),
    service: TransactionService = Depends(get_transaction_service),
) -> TransactionsListOut:
    rows = await service.list_for_user(actor)
    return TransactionsListOut(
        items=[TransactionOut.model_validate(tx) for tx in rows],
        total=len(rows),
    )


@router.get("/{transaction_id}", response_model=TransactionOut)
async def get_transaction(
    transaction_id: UUID,
    actor: Actor = Depends(get_current_actor),
    service: TransactionService = Depends(get_transaction_service),
) -> TransactionOut:
    try:
        tx = await service.get(actor, transaction_id)
        return TransactionOut.model_validate(tx)
    except TransactionError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.post("/{transaction_id}/payment-proof", response_model=TransactionOut)
async def submit_payment_proof(
    transaction_id: UUID,
    payload: PaymentProofIn,
    actor: Actor = Depends(get_current_actor),
    service: TransactionService = Depends(get_transaction_service),
) -> TransactionOut:
    try:
        tx = await service.submit_proof(actor, transaction_id, payload.payment_proof_url)
        return TransactionOut.model_validate(tx)
    except TransactionError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.post("/{transaction_id}/cancel", response_model=TransactionOut)
async def cancel_transaction(
    transaction_id: UUID,
    actor: Actor = Depends(get_current_actor),
    service: TransactionService = Depends(get_transaction_service),
) -> TransactionOut:
    try:
        tx = await service.cancel(actor, transaction_id)
        return TransactionOut.model_validate(tx)
    except TransactionError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
