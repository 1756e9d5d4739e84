from __future__ import annotations

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query

from ticketon.core.deps import get_transaction_service, require_organizer
from ticketon.models.transaction import TransactionStatus
from ticketon.schemas.transactions import (
    OrganizerTransactionOut,
    OrganizerTransactionsListOut,
    RejectIn,
    TransactionOut,
)
from ticketon.services.errors import TransactionError
from ticketon.services.transactions import Actor, TransactionService


router = APIRouter(prefix="/organizer/transactions", tags=["Organizer Transactions"])


@router.get("", response_model=OrganizerTransactionsListOut)
async def list_organizer_transactions(
    status: Optional[TransactionStatus] = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    actor: Actor = Depends(require_organizer),
    service: TransactionService = Depends(get_transaction_service),
) -> OrganizerTransactionsListOut:
    try:
        data = await service.list_for_organizer(actor, status=status, page=page, limit=limit)
    except TransactionError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))

    return OrganizerTransactionsListOut(
        items=[
            OrganizerTransactionOut(
                **TransactionOut.model_validate(row.transaction).model_dump(),
                event_title=row.event_title,
                buyer_name=row.buyer_name,
                buyer_email=row.buyer_email,
            )
            for row in data["items"]
        ],
        page=data["page"],
        limit=data["limit"],
        total=data["total"],
        total_pages=data["total_pages"],
    )


@router.post("/{transaction_id}/approve", response_model=TransactionOut)
async def approve_transaction(
    transaction_id: UUID,
    actor: Actor = Depends(require_organizer),
    service: TransactionService = Depends(get_transaction_service),
) -> TransactionOut:
    try:
        tx = await service.approve(actor, transaction_id)
        return TransactionOut.model_validate(tx)
    except TransactionError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.post("/{transaction_id}/reject", response_model=TransactionOut)
async def reject_transaction(
    transaction_id: UUID,
    payload: RejectIn | None = None,
    actor: Actor = Depends(require_organizer),
    service: TransactionService = Depends(get_transaction_service),
) -> TransactionOut:
    try:
        tx = await service.reject(actor, transaction_id, reason=payload.reason if payload else None)
        return TransactionOut.model_validate(tx)
    except TransactionError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
