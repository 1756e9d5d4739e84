from __future__ import annotations

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer

from ticketon.core.security import TokenError, decode_token
from ticketon.services.transactions import Actor, TransactionService

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")

ROLES = {"customer", "organizer", "admin"}


async def get_current_actor(token: str = Depends(oauth2_scheme)) -> Actor:
    if not token:
        raise HTTPException(status_code=401, detail="Missing bearer token")

    try:
        payload = decode_token(token)
    except TokenError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )

    user_id = payload.get("sub") or payload.get("user_id")
    if user_id is None:
        raise HTTPException(status_code=401, detail="Token missing user id (sub/user_id)")

    try:
        user_id_int = int(user_id)
    except (TypeError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid user id in token")

    role = payload.get("role")
    if role not in ROLES:
        raise HTTPException(status_code=401, detail="Invalid role in token")

    return Actor(user_id=user_id_int, role=role)


def require_organizer(actor: Actor = Depends(get_current_actor)) -> Actor:
    if actor.role not in ("organizer", "admin"):
        raise HTTPException(status_code=403, detail="Organizer only")
    return actor


def get_transaction_service(request: Request) -> TransactionService:
    return request.app.state.transaction_service
