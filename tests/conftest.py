import os
from collections.abc import AsyncGenerator, Callable
from datetime import UTC, datetime

import pytest
import pytest_asyncio
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from slotbook.config import settings
from slotbook.core.locks import LocalLockManager
from slotbook.models import metadata
from slotbook.models.slots import POSTGRES_EXTRA_DDL
from slotbook.repositories.memory import InMemoryStore, InMemoryUnitOfWork
from slotbook.services.booking_service import BookingService

# Integration tests run only against an explicitly configured database
TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL")

# Safety check: never drop tables in the application database
if TEST_DATABASE_URL and TEST_DATABASE_URL == settings.database_url:
    raise pytest.UsageError(
        "TEST_DATABASE_URL is the same as DATABASE_URL; "
        "point it at a separate database before running tests"
    )

BOOKING_DAY = datetime(2026, 3, 2, tzinfo=UTC)


@pytest.fixture
def booking_day() -> datetime:
    return BOOKING_DAY


@pytest.fixture
def at() -> Callable[..., datetime]:
    """Build instants on the shared booking day, e.g. ``at(9, 30)``."""

    def _at(hour: int, minute: int = 0) -> datetime:
        return BOOKING_DAY.replace(hour=hour, minute=minute)

    return _at


@pytest.fixture
def provider_id() -> str:
    return "provider-p"


@pytest.fixture
def client_a() -> str:
    return "client-a"


@pytest.fixture
def client_b() -> str:
    return "client-b"


@pytest.fixture
def store() -> InMemoryStore:
    """Empty in-memory store."""
    return InMemoryStore()


@pytest.fixture
def uow_factory(store: InMemoryStore) -> Callable[[], InMemoryUnitOfWork]:
    return lambda: InMemoryUnitOfWork(store)


@pytest.fixture
def lock_manager() -> LocalLockManager:
    return LocalLockManager(blocking_timeout=5)


@pytest.fixture
def booking_service(
    uow_factory: Callable[[], InMemoryUnitOfWork],
    lock_manager: LocalLockManager,
) -> BookingService:
    """Booking service over the in-memory store."""
    return BookingService(uow_factory=uow_factory, lock_manager=lock_manager)


@pytest_asyncio.fixture
async def available_slot(booking_service: BookingService, provider_id: str, at):
    """Slot [10:00, 11:00) on the booking day."""
    return await booking_service.create_slot(provider_id, BOOKING_DAY, at(10), at(11))


@pytest_asyncio.fixture
async def pg_session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Session factory on a freshly created test schema."""
    url = TEST_DATABASE_URL.replace("postgresql://", "postgresql+asyncpg://")
    # Use NullPool to avoid event loop issues between tests
    engine = create_async_engine(url, echo=False, poolclass=NullPool)

    async with engine.begin() as conn:
        await conn.run_sync(metadata.drop_all)
        await conn.run_sync(metadata.create_all)
        for statement in POSTGRES_EXTRA_DDL:
            await conn.execute(text(statement))

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(metadata.drop_all)
    await engine.dispose()
