"""
Test configuration and fixtures.

- Environment is set before any ticketon import (settings are read at import time)
- Each test gets its own file-backed SQLite database through aiosqlite
- Every unit of work opens with BEGIN IMMEDIATE, so concurrent writers are
  serialized by the database the way Postgres row locks serialize them
"""

import os

os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["SWEEPER_ENABLED"] = "false"
os.environ["EMAIL_API_KEY"] = ""
os.environ["JWT_SECRET"] = "test-secret"

from datetime import datetime, timedelta  # noqa: E402
from unittest.mock import AsyncMock  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy import event, select  # noqa: E402
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine  # noqa: E402

import ticketon.models  # noqa: E402,F401
from ticketon.core.db import Base  # noqa: E402
from ticketon.models.event import Event  # noqa: E402
from ticketon.models.point import Point  # noqa: E402
from ticketon.models.user import User  # noqa: E402
from ticketon.services.transactions import Actor, TransactionService  # noqa: E402

from tests.constants import (  # noqa: E402
    BUYER_ID,
    EVENT_ID,
    EVENT_PRICE,
    EVENT_SEATS,
    ORGANIZER_ID,
    OTHER_BUYER_ID,
    OTHER_EVENT_ID,
    OTHER_ORGANIZER_ID,
    T0,
)


class FrozenClock:
    def __init__(self, start: datetime):
        self.current = start

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current = self.current + timedelta(**kwargs)
        return self.current


@pytest.fixture
async def engine(tmp_path):
    eng = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'ticketon_test.db'}",
        connect_args={"timeout": 30},
    )

    @event.listens_for(eng.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        # let SQLAlchemy emit BEGIN itself
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(eng.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(T0)


@pytest.fixture
def notifier() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def service(session_factory, clock, notifier) -> TransactionService:
    return TransactionService(session_factory, notifier=notifier, clock=clock)


@pytest.fixture
def buyer() -> Actor:
    return Actor(user_id=BUYER_ID, role="customer")


@pytest.fixture
def other_buyer() -> Actor:
    return Actor(user_id=OTHER_BUYER_ID, role="customer")


@pytest.fixture
def organizer() -> Actor:
    return Actor(user_id=ORGANIZER_ID, role="organizer")


@pytest.fixture
def other_organizer() -> Actor:
    return Actor(user_id=OTHER_ORGANIZER_ID, role="organizer")


@pytest.fixture
def add(session_factory):
    async def _add(*objs):
        async with session_factory() as db:
            db.add_all(objs)
            await db.commit()
        return objs

    return _add


@pytest.fixture
def fetch(session_factory):
    async def _fetch(model, pk):
        async with session_factory() as db:
            return await db.get(model, pk)

    return _fetch


@pytest.fixture
def fetch_all(session_factory):
    async def _fetch_all(stmt):
        async with session_factory() as db:
            res = await db.execute(stmt)
            return list(res.scalars().all())

    return _fetch_all


@pytest.fixture
async def seeded(add):
    await add(
        User(id=ORGANIZER_ID, name="Olivia Organizer", email="olivia@example.com", role="organizer"),
        User(id=OTHER_ORGANIZER_ID, name="Oscar Organizer", email="oscar@example.com", role="organizer"),
        User(id=BUYER_ID, name="Budi Buyer", email="budi@example.com", role="customer"),
        User(id=OTHER_BUYER_ID, name="Sari Buyer", email=None, role="customer"),
    )
    await add(
        Event(
            id=EVENT_ID,
            organizer_id=ORGANIZER_ID,
            title="Jazz Night",
            price=EVENT_PRICE,
            seat_total=EVENT_SEATS,
            seat_left=EVENT_SEATS,
            start_date=T0 + timedelta(days=30),
            end_date=T0 + timedelta(days=30, hours=4),
            created_at=T0,
            updated_at=T0,
        )
    )


@pytest.fixture
def seat_left(fetch):
    async def _seat_left(event_id: int = EVENT_ID) -> int:
        ev = await fetch(Event, event_id)
        return ev.seat_left

    return _seat_left


@pytest.fixture
def points_of(fetch_all):
    async def _points_of(user_id: int = BUYER_ID) -> list:
        return await fetch_all(
            select(Point).where(Point.user_id == user_id).order_by(Point.expires_at, Point.id)
        )

    return _points_of


@pytest.fixture
async def other_event(seeded, add):
    """A second event, owned by OTHER_ORGANIZER_ID."""
    await add(
        Event(
            id=OTHER_EVENT_ID,
            organizer_id=OTHER_ORGANIZER_ID,
            title="Rock Fest",
            price=50000,
            seat_total=5,
            seat_left=5,
            start_date=T0 + timedelta(days=60),
            end_date=T0 + timedelta(days=60, hours=6),
            created_at=T0,
            updated_at=T0,
        )
    )
