from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Awaitable, Callable
from uuid import UUID

from loguru import logger
from sqlalchemy import select

from ticketon.core.config import settings
from ticketon.models.transaction import Transaction, TransactionStatus
from ticketon.services.transactions import TransactionService


@dataclass
class SweepReport:
    expired: list[UUID] = field(default_factory=list)
    canceled: list[UUID] = field(default_factory=list)
    failed: list[UUID] = field(default_factory=list)


class ExpirySweeper:
    """
    Periodically forces stale transactions through the rollback path:

      - WAITING_PAYMENT past expires_at              -> EXPIRED
      - WAITING_ADMIN untouched for ADMIN_REVIEW_DAYS -> CANCELED

    Each record gets its own unit of work; one failure is logged and the
    sweep moves on.
    """

    def __init__(self, service: TransactionService, *, interval_seconds: float | None = None):
        self.service = service
        self.interval_seconds = (
            settings.SWEEP_INTERVAL_SECONDS if interval_seconds is None else interval_seconds
        )

    async def _find_ids(self, *conditions) -> list[UUID]:
        async with self.service.session_factory() as db:
            res = await db.execute(
                select(Transaction.id).where(*conditions).order_by(Transaction.created_at.asc())
            )
            return list(res.scalars().all())

    async def find_expired(self) -> list[UUID]:
        now = self.service.clock.now()
        return await self._find_ids(
            Transaction.status == TransactionStatus.WAITING_PAYMENT.value,
            Transaction.expires_at < now,
        )

    async def find_stale(self) -> list[UUID]:
        cutoff = self.service.clock.now() - timedelta(days=settings.ADMIN_REVIEW_DAYS)
        return await self._find_ids(
            Transaction.status == TransactionStatus.WAITING_ADMIN.value,
            Transaction.updated_at < cutoff,
        )

    async def _drive(
        self,
        ids: list[UUID],
        action: Callable[[UUID], Awaitable[Transaction]],
        done: list[UUID],
        report: SweepReport,
    ) -> None:
        for transaction_id in ids:
            try:
                await action(transaction_id)
                done.append(transaction_id)
            except Exception:
                report.failed.append(transaction_id)
                logger.exception("Sweeper failed on transaction {}", transaction_id)

    async def run_once(self) -> SweepReport:
        logger.info("Running transaction sweep...")
        report = SweepReport()

        expired_ids = await self.find_expired()
        await self._drive(expired_ids, self.service.expire, report.expired, report)

        stale_ids = await self.find_stale()
        await self._drive(stale_ids, self.service.auto_cancel_stale, report.canceled, report)

        if expired_ids or stale_ids:
            logger.info(
                "Sweep done: expired={} canceled={} failed={}",
                len(report.expired), len(report.canceled), len(report.failed),
            )
        else:
            logger.info("No stale transactions found.")
        return report

    async def run_forever(self, stop: asyncio.Event) -> None:
        logger.info("Transaction sweeper started (every {}s)", self.interval_seconds)
        while not stop.is_set():
            try:
                await self.run_once()
            except Exception:
                # lookup failures (db down); try again next tick
                logger.exception("Transaction sweep failed")

            try:
                await asyncio.wait_for(stop.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                pass
        logger.info("Transaction sweeper stopped")
