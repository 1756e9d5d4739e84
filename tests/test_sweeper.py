import asyncio
from datetime import timedelta

import pytest

from ticketon.core.config import settings
from ticketon.models.point import Point
from ticketon.models.transaction import Transaction, TransactionStatus
from ticketon.services.sweeper import ExpirySweeper, SweepReport

from tests.constants import BUYER_ID, EVENT_ID, EVENT_SEATS, T0


@pytest.fixture
def sweeper(service) -> ExpirySweeper:
    return ExpirySweeper(service, interval_seconds=0.01)


@pytest.fixture
async def points(seeded, add):
    await add(Point(id=1, user_id=BUYER_ID, amount=5000, expires_at=T0 + timedelta(days=30)))


async def _status(fetch, tx) -> str:
    return (await fetch(Transaction, tx.id)).status


@pytest.mark.asyncio
async def test_nothing_to_do(seeded, sweeper):
    report = await sweeper.run_once()

    assert report.expired == []
    assert report.canceled == []
    assert report.failed == []


@pytest.mark.asyncio
async def test_expires_unpaid_transactions(points, service, sweeper, buyer, clock, fetch, seat_left, points_of):
    tx = await service.create(buyer, event_id=EVENT_ID, quantity=2, points_requested=3000)
    assert await seat_left() == EVENT_SEATS - 2

    clock.advance(hours=1)
    assert (await sweeper.run_once()).expired == []

    clock.advance(hours=1, seconds=1)
    report = await sweeper.run_once()

    assert report.expired == [tx.id]
    assert await _status(fetch, tx) == TransactionStatus.EXPIRED.value
    assert await seat_left() == EVENT_SEATS
    assert sum(g.amount for g in await points_of()) == 5000


@pytest.mark.asyncio
async def test_cancels_unreviewed_transactions(seeded, service, sweeper, buyer, other_buyer, clock, fetch, seat_left):
    stale = await service.create(buyer, event_id=EVENT_ID, quantity=2)
    await service.submit_proof(buyer, stale.id, "https://x/stale.png")

    clock.advance(days=2)
    fresh = await service.create(other_buyer, event_id=EVENT_ID, quantity=1)
    await service.submit_proof(other_buyer, fresh.id, "https://x/fresh.png")

    clock.advance(days=1, seconds=1)
    report = await sweeper.run_once()

    assert report.canceled == [stale.id]
    assert await _status(fetch, stale) == TransactionStatus.CANCELED.value
    assert await _status(fetch, fresh) == TransactionStatus.WAITING_ADMIN.value
    assert await seat_left() == EVENT_SEATS - 1


@pytest.mark.asyncio
async def test_leaves_finished_transactions_alone(seeded, service, sweeper, buyer, organizer, clock, fetch, seat_left):
    tx = await service.create(buyer, event_id=EVENT_ID, quantity=1)
    await service.submit_proof(buyer, tx.id, "https://x/p.png")
    await service.approve(organizer, tx.id)

    clock.advance(days=30)
    report = await sweeper.run_once()

    assert report.expired == [] and report.canceled == []
    assert await _status(fetch, tx) == TransactionStatus.DONE.value
    assert await seat_left() == EVENT_SEATS - 1


@pytest.mark.asyncio
async def test_one_failure_does_not_stop_the_sweep(seeded, service, sweeper, buyer, clock, fetch, seat_left, monkeypatch):
    first = await service.create(buyer, event_id=EVENT_ID, quantity=1)
    clock.advance(seconds=1)
    second = await service.create(buyer, event_id=EVENT_ID, quantity=1)
    clock.advance(hours=3)

    real_expire = service.expire

    async def flaky_expire(transaction_id):
        if transaction_id == first.id:
            raise RuntimeError("boom")
        return await real_expire(transaction_id)

    monkeypatch.setattr(service, "expire", flaky_expire)

    report = await sweeper.run_once()

    assert report.failed == [first.id]
    assert report.expired == [second.id]
    assert await _status(fetch, first) == TransactionStatus.WAITING_PAYMENT.value
    assert await _status(fetch, second) == TransactionStatus.EXPIRED.value
    assert await seat_left() == EVENT_SEATS - 1


@pytest.mark.asyncio
async def test_user_action_wins_over_sweep(seeded, service, sweeper, buyer, clock, fetch):
    tx = await service.create(buyer, event_id=EVENT_ID, quantity=1)
    clock.advance(hours=3)

    ids = await sweeper.find_expired()
    await service.cancel(buyer, tx.id)

    report = SweepReport()
    await sweeper._drive(ids, service.expire, report.expired, report)

    assert report.failed == [tx.id]
    assert await _status(fetch, tx) == TransactionStatus.CANCELED.value


@pytest.mark.asyncio
async def test_run_forever_stops(seeded, sweeper, monkeypatch):
    calls = 0
    real_run_once = sweeper.run_once

    async def counting_run_once():
        nonlocal calls
        calls += 1
        return await real_run_once()

    monkeypatch.setattr(sweeper, "run_once", counting_run_once)

    stop = asyncio.Event()
    task = asyncio.create_task(sweeper.run_forever(stop))
    while calls < 2:
        await asyncio.sleep(0.01)
    stop.set()
    await asyncio.wait_for(task, timeout=5)

    assert task.done()
    assert calls >= 2


@pytest.mark.asyncio
async def test_run_forever_survives_lookup_errors(seeded, sweeper, monkeypatch):
    calls = 0

    async def broken_run_once():
        nonlocal calls
        calls += 1
        raise RuntimeError("database unavailable")

    monkeypatch.setattr(sweeper, "run_once", broken_run_once)

    stop = asyncio.Event()
    task = asyncio.create_task(sweeper.run_forever(stop))
    while calls < 2:
        await asyncio.sleep(0.01)
    stop.set()
    await asyncio.wait_for(task, timeout=5)

    assert calls >= 2


@pytest.mark.asyncio
async def test_interval_defaults_to_settings(service):
    assert ExpirySweeper(service).interval_seconds == settings.SWEEP_INTERVAL_SECONDS
    assert ExpirySweeper(service, interval_seconds=0).interval_seconds == 0
