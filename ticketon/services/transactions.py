from __future__ import annotations

import asyncio
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional
from uuid import UUID

from loguru import logger
from sqlalchemy import and_, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from ticketon.core.clock import Clock, system_clock
from ticketon.core.config import settings
from ticketon.core.unit_of_work import UnitOfWork
from ticketon.models.event import Event
from ticketon.models.transaction import Transaction, TransactionStatus
from ticketon.models.transaction_item import TransactionItem
from ticketon.models.user import User
from ticketon.services import email_templates
from ticketon.services.errors import (
    EventNotFound,
    InvalidState,
    NotOrganizer,
    NotOwner,
    TransactionExpired,
    TransactionNotFound,
)
from ticketon.services.inventory import release, reserve
from ticketon.services.notifications import Notifier
from ticketon.services.pricing import calculate_price
from ticketon.services.rewards import (
    available_points,
    decrement_voucher_usage,
    increment_voucher_usage,
    load_voucher,
    redeem_points,
    restore_points,
    validate_coupon,
)


@dataclass(frozen=True)
class Actor:
    user_id: int
    role: str  # customer/organizer/admin

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


@dataclass(frozen=True)
class OrganizerTransactionRow:
    transaction: Transaction
    event_title: str
    buyer_name: str
    buyer_email: Optional[str]


WP = TransactionStatus.WAITING_PAYMENT
WA = TransactionStatus.WAITING_ADMIN


class TransactionService:
    """
    Ticket purchase state machine.

        WAITING_PAYMENT -> WAITING_ADMIN -> DONE
        WAITING_PAYMENT -> EXPIRED                     (sweeper)
        WAITING_PAYMENT | WAITING_ADMIN -> CANCELED    (owner, or sweeper when stale)
        WAITING_ADMIN -> REJECTED                      (organizer)

    Every operation is one unit of work: the status write and the seat /
    point / voucher writes it implies commit together or not at all.
    Leaving a seat-holding status without reaching DONE runs the rollback
    (release seats, restore points, decrement voucher usage). The status
    write is conditional on the source status, so a rollback can run at
    most once per transaction.
    """

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession],
        *,
        notifier: Optional[Notifier] = None,
        clock: Clock = system_clock,
    ):
        self.session_factory = session_factory
        self.notifier = notifier
        self.clock = clock
        self._pending_notifications: set[asyncio.Task] = set()

    def unit_of_work(self) -> UnitOfWork:
        return UnitOfWork(self.session_factory)

    # -------------------------
    # Create
    # -------------------------
    async def create(
        self,
        actor: Actor,
        *,
        event_id: int,
        quantity: int,
        voucher_code: str | None = None,
        coupon_code: str | None = None,
        points_requested: int = 0,
    ) -> Transaction:
        if quantity < 1:
            raise ValueError("quantity must be >= 1")

        now = self.clock.now()

        async with self.unit_of_work() as uow:
            db = uow.session

            event = await _get_live_event(db, event_id)

            voucher = None
            if voucher_code:
                voucher = await load_voucher(db, voucher_code, event.id, now)

            coupon = None
            if coupon_code:
                coupon = await validate_coupon(db, coupon_code, now)

            points_balance = 0
            if points_requested > 0:
                points_balance = await available_points(db, actor.user_id, now)

            quote = calculate_price(
                unit_price=event.price,
                quantity=quantity,
                voucher_amount=voucher.discount_amount if voucher else None,
                voucher_percent=voucher.discount_percent if voucher else None,
                coupon_discount=coupon.discount if coupon else 0,
                points_requested=points_requested,
                points_available=points_balance,
            )

            # guarded decrement; first write of the unit
            await reserve(db, event.id, quantity)

            if voucher is not None:
                await increment_voucher_usage(db, voucher.id)

            if quote.points_used > 0:
                await redeem_points(db, actor.user_id, quote.points_used, now)

            tx = Transaction(
                user_id=actor.user_id,
                event_id=event.id,
                total_price=quote.total_price,
                voucher_discount=quote.voucher_discount,
                coupon_discount=quote.coupon_discount,
                points_used=quote.points_used,
                final_price=quote.final_price,
                voucher_id=voucher.id if voucher else None,
                coupon_id=coupon.id if coupon else None,
                status=WP.value,
                expires_at=now + timedelta(minutes=settings.TRANSACTION_TTL_MINUTES),
                created_at=now,
                updated_at=now,
                items=[TransactionItem(quantity=quantity, unit_price=event.price)],
            )
            db.add(tx)
            await db.flush()

        logger.info(
            "Transaction {} created: user={} event={} qty={} final_price={} points_used={}",
            tx.id, actor.user_id, event_id, quantity, tx.final_price, tx.points_used,
        )
        return tx

    # -------------------------
    # Customer transitions
    # -------------------------
    async def submit_proof(self, actor: Actor, transaction_id: UUID, proof_url: str) -> Transaction:
        now = self.clock.now()

        async with self.unit_of_work() as uow:
            db = uow.session
            tx = await _get_transaction_for_update(db, transaction_id)

            if tx.user_id != actor.user_id:
                raise NotOwner("Only the buyer can submit payment proof.")
            _require_status(tx, WP)
            if now > tx.expires_at:
                raise TransactionExpired("Transaction has expired.")

            await _write_status(
                db, tx, WP, WA, now,
                payment_proof_url=proof_url,
            )

        logger.info("Transaction {} payment proof submitted", tx.id)
        return tx

    async def cancel(self, actor: Actor, transaction_id: UUID) -> Transaction:
        now = self.clock.now()

        async with self.unit_of_work() as uow:
            db = uow.session
            tx = await _get_transaction_for_update(db, transaction_id)

            if tx.user_id != actor.user_id:
                raise NotOwner("Only the buyer can cancel this transaction.")
            _require_status(tx, WP, WA)

            await self._roll_back(db, tx, TransactionStatus.CANCELED, now)

        logger.info("Transaction {} canceled by user {}", tx.id, actor.user_id)
        return tx

    # -------------------------
    # Organizer transitions
    # -------------------------
    async def approve(self, actor: Actor, transaction_id: UUID) -> Transaction:
        now = self.clock.now()

        async with self.unit_of_work() as uow:
            db = uow.session
            tx = await _get_transaction_for_update(db, transaction_id)
            event = await _require_organizer(db, actor, tx)
            _require_status(tx, WA)

            await _write_status(db, tx, WA, TransactionStatus.DONE, now)
            buyer = await db.get(User, tx.user_id)

        logger.info("Transaction {} approved by user {}", tx.id, actor.user_id)

        subject, body = email_templates.approved(
            user_name=buyer.name if buyer else "",
            event_title=event.title,
            amount=tx.final_price,
        )
        self._notify(tx.user_id, subject, body)
        return tx

    async def reject(
        self,
        actor: Actor,
        transaction_id: UUID,
        reason: str | None = None,
    ) -> Transaction:
        now = self.clock.now()

        async with self.unit_of_work() as uow:
            db = uow.session
            tx = await _get_transaction_for_update(db, transaction_id)
            event = await _require_organizer(db, actor, tx)
            _require_status(tx, WA)

            await self._roll_back(
                db, tx, TransactionStatus.REJECTED, now,
                rejection_reason=reason,
            )
            buyer = await db.get(User, tx.user_id)

        logger.info("Transaction {} rejected by user {}", tx.id, actor.user_id)

        subject, body = email_templates.rejected(
            user_name=buyer.name if buyer else "",
            event_title=event.title,
            reason=reason,
        )
        self._notify(tx.user_id, subject, body)
        return tx

    # -------------------------
    # Sweeper transitions
    # -------------------------
    async def expire(self, transaction_id: UUID) -> Transaction:
        now = self.clock.now()

        async with self.unit_of_work() as uow:
            db = uow.session
            tx = await _get_transaction_for_update(db, transaction_id)
            _require_status(tx, WP)
            if now <= tx.expires_at:
                raise InvalidState("Transaction has not expired yet.")

            await self._roll_back(db, tx, TransactionStatus.EXPIRED, now)

        logger.info("Transaction {} expired and resources restored", tx.id)
        return tx

    async def auto_cancel_stale(self, transaction_id: UUID) -> Transaction:
        now = self.clock.now()
        cutoff = now - timedelta(days=settings.ADMIN_REVIEW_DAYS)

        async with self.unit_of_work() as uow:
            db = uow.session
            tx = await _get_transaction_for_update(db, transaction_id)
            _require_status(tx, WA)
            if tx.updated_at >= cutoff:
                raise InvalidState("Transaction is still within the review window.")

            await self._roll_back(db, tx, TransactionStatus.CANCELED, now)

        logger.info("Transaction {} auto-canceled after {} day(s) without review", tx.id, settings.ADMIN_REVIEW_DAYS)
        return tx

    # -------------------------
    # Reads
    # -------------------------
    async def get(self, actor: Actor, transaction_id: UUID) -> Transaction:
        async with self.session_factory() as db:
            tx = await db.get(Transaction, transaction_id)
            if tx is None:
                raise TransactionNotFound("Transaction not found")
            if tx.user_id != actor.user_id and not actor.is_admin:
                event = await db.get(Event, tx.event_id)
                if event is None or event.organizer_id != actor.user_id:
                    raise NotOwner("Forbidden")
            return tx

    async def list_for_user(self, actor: Actor) -> list[Transaction]:
        async with self.session_factory() as db:
            res = await db.execute(
                select(Transaction)
                .where(Transaction.user_id == actor.user_id)
                .order_by(Transaction.created_at.desc())
            )
            return list(res.scalars().all())

    async def list_for_organizer(
        self,
        actor: Actor,
        *,
        status: TransactionStatus | str | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> dict:
        """
        Transactions on the actor's events, newest first, with the event
        title and buyer contact. Admins see every event.

        Returns {"items": [OrganizerTransactionRow], "page", "limit", "total", "total_pages"}.
        """
        if actor.role not in ("organizer", "admin"):
            raise NotOrganizer("Only organizers can list event transactions.")
        if page < 1 or limit < 1:
            raise ValueError("page and limit must be >= 1")

        filters = []
        if not actor.is_admin:
            filters.append(Event.organizer_id == actor.user_id)
        if status is not None:
            filters.append(Transaction.status == TransactionStatus(status).value)

        where_clause = and_(*filters) if filters else None

        async with self.session_factory() as db:
            total_stmt = (
                select(func.count(Transaction.id))
                .join(Event, Event.id == Transaction.event_id)
            )
            if where_clause is not None:
                total_stmt = total_stmt.where(where_clause)
            total = int((await db.execute(total_stmt)).scalar_one())

            stmt = (
                select(Transaction, Event.title, User.name, User.email)
                .join(Event, Event.id == Transaction.event_id)
                .join(User, User.id == Transaction.user_id)
                .order_by(Transaction.created_at.desc(), Transaction.id.desc())
                .limit(limit)
                .offset((page - 1) * limit)
            )
            if where_clause is not None:
                stmt = stmt.where(where_clause)

            res = await db.execute(stmt)
            items = [
                OrganizerTransactionRow(
                    transaction=tx,
                    event_title=title,
                    buyer_name=name,
                    buyer_email=email,
                )
                for tx, title, name, email in res.all()
            ]

        return {
            "items": items,
            "page": page,
            "limit": limit,
            "total": total,
            "total_pages": math.ceil(total / limit),
        }

    # -------------------------
    # Helpers
    # -------------------------
    async def _roll_back(
        self,
        db: AsyncSession,
        tx: Transaction,
        target: TransactionStatus,
        now: datetime,
        **values,
    ) -> None:
        # status first: a concurrent rollback loses here, before touching resources
        await _write_status(db, tx, tx.state, target, now, **values)

        await release(db, tx.event_id, tx.quantity)

        if tx.points_used > 0:
            await restore_points(db, tx.user_id, tx.points_used, now)

        if tx.voucher_id is not None:
            await decrement_voucher_usage(db, tx.voucher_id)

    def _notify(self, user_id: int, subject: str, body: str) -> None:
        if self.notifier is None:
            return
        task = asyncio.create_task(self._send(user_id, subject, body))
        self._pending_notifications.add(task)
        task.add_done_callback(self._pending_notifications.discard)

    async def _send(self, user_id: int, subject: str, body: str) -> None:
        try:
            await self.notifier.send(user_id, subject, body)
        except Exception:
            logger.exception("Notification to user {} failed ({})", user_id, subject)

    async def wait_for_notifications(self) -> None:
        if self._pending_notifications:
            await asyncio.gather(*self._pending_notifications, return_exceptions=True)


async def _get_live_event(db: AsyncSession, event_id: int) -> Event:
    res = await db.execute(
        select(Event).where(Event.id == event_id, Event.deleted_at.is_(None))
    )
    event = res.scalar_one_or_none()
    if event is None:
        raise EventNotFound("Event not found")
    return event


async def _get_transaction_for_update(db: AsyncSession, transaction_id: UUID) -> Transaction:
    res = await db.execute(
        select(Transaction).where(Transaction.id == transaction_id).with_for_update()
    )
    tx = res.scalar_one_or_none()
    if tx is None:
        raise TransactionNotFound("Transaction not found")
    return tx


async def _require_organizer(db: AsyncSession, actor: Actor, tx: Transaction) -> Event:
    # deleted events stay reachable for their historical transactions
    event = await db.get(Event, tx.event_id)
    if event is None:
        raise EventNotFound("Event not found")
    if event.organizer_id != actor.user_id and not actor.is_admin:
        raise NotOrganizer("Only the event organizer can review this transaction.")
    return event


def _require_status(tx: Transaction, *allowed: TransactionStatus) -> None:
    if tx.state not in allowed:
        raise InvalidState(
            f"Transaction is {tx.status}; expected {' or '.join(s.value for s in allowed)}."
        )


async def _write_status(
    db: AsyncSession,
    tx: Transaction,
    source: TransactionStatus,
    target: TransactionStatus,
    now: datetime,
    **values,
) -> None:
    if not source.can_transition_to(target):
        raise InvalidState(f"Cannot move transaction from {source.value} to {target.value}.")

    res = await db.execute(
        update(Transaction)
        .where(Transaction.id == tx.id, Transaction.status == source.value)
        .values(status=target.value, updated_at=now, **values)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        raise InvalidState(f"Transaction {tx.id} is no longer {source.value}.")

    # keep the loaded instance in step with the row without re-flushing it
    set_committed_value(tx, "status", target.value)
    set_committed_value(tx, "updated_at", now)
    for key, value in values.items():
        set_committed_value(tx, key, value)
