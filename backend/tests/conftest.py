"""
Shared fixtures: an in-memory SQLite database per test, the SQL store on
top of it, a dispatcher that records notifications, and row factories.

ORM objects are expired by a store rollback (unique-violation paths), so
tests keep plain id strings rather than re-reading attributes afterwards.
"""

from datetime import datetime, timedelta

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import proexchange.models  # noqa: F401
from proexchange.database import Base
from proexchange.models import Firm, FirmMember, Job, Profile
from proexchange.services.bench import BenchOrderingService
from proexchange.services.notifications import CallbackNotificationDispatcher
from proexchange.services.store import SqlRelationshipStore
from proexchange.services.transitions import (
    FirmRole,
    JobStatus,
    MembershipStatus,
    VerificationState,
)
from proexchange.services.workflow import WorkflowEngine


class RecordingDispatcher(CallbackNotificationDispatcher):
    """Dispatcher that keeps every notification it is handed."""

    def __init__(self):
        self.sent = []
        super().__init__(self.sent.append)

    def of_kind(self, kind):
        return [n for n in self.sent if n.kind == kind]


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class Factory:
    """Creates committed collaborator rows and returns their ids."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self._counter = 0

    async def _add(self, row):
        self.session.add(row)
        await self.session.commit()
        return row.id

    async def profile(self, verification=VerificationState.VERIFIED, **kwargs) -> str:
        self._counter += 1
        kwargs.setdefault("display_name", f"Pro {self._counter}")
        kwargs.setdefault("email", f"pro{self._counter}@example.com")
        return await self._add(Profile(verification=verification, **kwargs))

    async def job(self, poster_id: str, title: str = "1040 review", status=JobStatus.OPEN) -> str:
        return await self._add(Job(poster_profile_id=poster_id, title=title, status=status))

    async def firm(self, name: str = "Ledger & Co") -> str:
        self._counter += 1
        return await self._add(Firm(name=name, slug=f"firm-{self._counter}"))

    async def member(
        self,
        firm_id: str,
        profile_id: str,
        role=FirmRole.ADMIN,
        status=MembershipStatus.ACTIVE,
    ) -> str:
        return await self._add(
            FirmMember(firm_id=firm_id, profile_id=profile_id, role=role, status=status)
        )


@pytest_asyncio.fixture
async def db_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def store(session):
    return SqlRelationshipStore(session)


@pytest.fixture
def factory(session):
    return Factory(session)


@pytest.fixture
def notifications():
    return RecordingDispatcher()


@pytest.fixture
def engine(store, notifications):
    return WorkflowEngine(store, notifications)


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 3, 2, 9, 0, 0))


@pytest.fixture
def bench(store, notifications, clock):
    return BenchOrderingService(store, notifications, clock=clock)
