"""Tests for the PostgreSQL repositories and unit of work."""

import asyncio
import os
from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from slotbook.core.exceptions import (
    ConcurrentUpdateException,
    SlotOverlapException,
    SlotUnavailableException,
)
from slotbook.core.locks import LocalLockManager, PostgresAdvisoryLockManager
from slotbook.domain.appointments import Appointment, AppointmentStatus
from slotbook.domain.slots import Slot, SlotStatus
from slotbook.models.appointments import ACTIVE_SLOT_UNIQUE_INDEX
from slotbook.models.slots import SLOTS_NO_OVERLAP_CONSTRAINT
from slotbook.repositories.appointment_repository import SqlAppointmentRepository
from slotbook.repositories.slot_repository import SqlSlotRepository
from slotbook.repositories.unit_of_work import SqlUnitOfWork
from slotbook.services.booking_service import BookingService

requires_postgres = pytest.mark.skipif(
    not os.getenv("TEST_DATABASE_URL"),
    reason="TEST_DATABASE_URL not set",
)


def _session(row=None, error: Exception | None = None):
    result = MagicMock()
    result.mappings.return_value.first.return_value = row
    db = MagicMock()
    db.execute = AsyncMock(return_value=result, side_effect=error)
    return db


def _integrity_error(message: str) -> IntegrityError:
    return IntegrityError("INSERT ...", {}, Exception(message))


def _slot(at) -> Slot:
    return Slot.new("provider-p", at(0), at(10), at(11))


@pytest.mark.asyncio
class TestSqlSlotRepository:
    """Tests for slot statements against a mocked session."""

    async def test_update_stale_version(self, at):
        """Test a version-checked update that matches no row."""
        repo = SqlSlotRepository(_session(row=None))
        slot = _slot(at)
        slot.book()

        with pytest.raises(ConcurrentUpdateException) as exc_info:
            await repo.update(slot)

        assert exc_info.value.entity == "Slot"
        assert exc_info.value.entity_id == slot.id

    async def test_update_returns_new_version(self, at):
        slot = _slot(at)
        slot.book()
        stored = {**slot.model_dump(), "version": slot.version + 1}
        repo = SqlSlotRepository(_session(row=stored))

        updated = await repo.update(slot)

        assert updated.version == 2
        assert updated.status == SlotStatus.BOOKED
        statement = str(repo.db.execute.await_args.args[0])
        assert "slots.version = " in statement

    async def test_create_maps_exclusion_violation(self, at):
        error = _integrity_error(
            f'conflicting key value violates exclusion constraint "{SLOTS_NO_OVERLAP_CONSTRAINT}"'
        )
        repo = SqlSlotRepository(_session(error=error))

        with pytest.raises(SlotOverlapException):
            await repo.create(_slot(at))

    async def test_create_reraises_other_integrity_errors(self, at):
        error = _integrity_error('duplicate key value violates unique constraint "slots_pkey"')
        repo = SqlSlotRepository(_session(error=error))

        with pytest.raises(IntegrityError):
            await repo.create(_slot(at))


@pytest.mark.asyncio
class TestSqlAppointmentRepository:
    """Tests for appointment statements against a mocked session."""

    async def test_create_maps_active_slot_violation(self):
        """Test a second confirmed appointment for one slot."""
        error = _integrity_error(
            f'duplicate key value violates unique constraint "{ACTIVE_SLOT_UNIQUE_INDEX}"'
        )
        repo = SqlAppointmentRepository(_session(error=error))

        with pytest.raises(ConcurrentUpdateException) as exc_info:
            await repo.create(Appointment.new("client-a", "slot-1"))

        assert exc_info.value.entity_id == "slot-1"

    async def test_update_stale_version(self):
        repo = SqlAppointmentRepository(_session(row=None))
        appointment = Appointment.new("client-a", "slot-1")
        appointment.cancel()

        with pytest.raises(ConcurrentUpdateException):
            await repo.update(appointment)

    async def test_find_by_id_missing(self):
        repo = SqlAppointmentRepository(_session(row=None))

        assert await repo.find_by_id("missing") is None


@pytest.mark.asyncio
class TestSqlUnitOfWork:
    """Tests for transaction handling."""

    async def test_commit(self):
        session = AsyncMock()
        uow = SqlUnitOfWork(MagicMock(return_value=session))

        async with uow:
            await uow.commit()

        session.commit.assert_awaited_once()
        session.rollback.assert_not_awaited()
        session.close.assert_awaited_once()

    async def test_rollback_without_commit(self):
        session = AsyncMock()
        uow = SqlUnitOfWork(MagicMock(return_value=session))

        async with uow:
            pass

        session.rollback.assert_awaited_once()
        session.close.assert_awaited_once()

    async def test_rollback_on_error(self):
        session = AsyncMock()
        uow = SqlUnitOfWork(MagicMock(return_value=session))

        with pytest.raises(RuntimeError):
            async with uow:
                raise RuntimeError("boom")

        session.commit.assert_not_awaited()
        session.rollback.assert_awaited_once()

    async def test_commit_outside_context(self):
        uow = SqlUnitOfWork(MagicMock())

        with pytest.raises(RuntimeError):
            await uow.commit()


class NoopLockManager:
    @asynccontextmanager
    async def acquire(self, key: str):
        yield


@requires_postgres
@pytest.mark.asyncio
class TestPostgresIntegration:
    """Storage-level guarantees against a real database."""

    async def test_exclusion_constraint_rejects_overlap(self, pg_session_factory, at):
        """Test the database refuses overlapping slots on its own."""
        async with SqlUnitOfWork(pg_session_factory) as uow:
            await uow.slots.create(Slot.new("provider-p", at(0), at(9), at(10)))
            await uow.commit()

        with pytest.raises(SlotOverlapException):
            async with SqlUnitOfWork(pg_session_factory) as uow:
                await uow.slots.create(Slot.new("provider-p", at(0), at(9, 30), at(10, 30)))

        async with SqlUnitOfWork(pg_session_factory) as uow:
            await uow.slots.create(Slot.new("provider-p", at(0), at(10), at(11)))
            await uow.slots.create(Slot.new("provider-q", at(0), at(9), at(10)))
            await uow.commit()
            assert len(await uow.slots.find_by_provider_id("provider-p")) == 2

    async def test_unique_confirmed_appointment_per_slot(self, pg_session_factory, at):
        async with SqlUnitOfWork(pg_session_factory) as uow:
            slot = await uow.slots.create(_slot(at))
            await uow.appointments.create(Appointment.new("client-a", slot.id))
            await uow.commit()

        with pytest.raises(ConcurrentUpdateException):
            async with SqlUnitOfWork(pg_session_factory) as uow:
                await uow.appointments.create(Appointment.new("client-b", slot.id))

        # Cancelled appointments do not count
        async with SqlUnitOfWork(pg_session_factory) as uow:
            cancelled = Appointment.new("client-c", slot.id)
            cancelled.cancel()
            await uow.appointments.create(cancelled)
            await uow.commit()

    async def test_version_checked_update(self, pg_session_factory, at):
        async with SqlUnitOfWork(pg_session_factory) as uow:
            slot = await uow.slots.create(_slot(at))
            await uow.commit()

        first, second = slot.model_copy(), slot.model_copy()
        first.book()
        second.book()

        async with SqlUnitOfWork(pg_session_factory) as uow:
            updated = await uow.slots.update(first)
            await uow.commit()

        assert updated.version == slot.version + 1

        with pytest.raises(ConcurrentUpdateException):
            async with SqlUnitOfWork(pg_session_factory) as uow:
                await uow.slots.update(second)

    async def test_booking_cycle(self, pg_session_factory, at):
        """Book, reject, cancel, rebook through the service."""
        service = BookingService(
            uow_factory=lambda: SqlUnitOfWork(pg_session_factory),
            lock_manager=LocalLockManager(blocking_timeout=5),
        )
        slot = await service.create_slot("provider-p", at(0), at(10), at(11))

        first = await service.create_appointment("client-a", slot.id)
        with pytest.raises(SlotUnavailableException):
            await service.create_appointment("client-b", slot.id)

        cancelled = await service.cancel_appointment(first.id, "client-a")
        second = await service.create_appointment("client-b", slot.id)

        assert cancelled.status == AppointmentStatus.CANCELLED
        assert second.status == AppointmentStatus.CONFIRMED
        assert (await service.get_slot(slot.id)).status == SlotStatus.BOOKED
        assert [a.id for a in await service.list_appointments(provider_id="provider-p")] == [
            second.id,
            first.id,
        ]

    async def test_concurrent_bookings_without_locks(self, pg_session_factory, at):
        """Test the database alone prevents double booking."""
        service = BookingService(
            uow_factory=lambda: SqlUnitOfWork(pg_session_factory),
            lock_manager=NoopLockManager(),
        )
        slot = await service.create_slot("provider-p", at(0), at(10), at(11))

        results = await asyncio.gather(
            *(service.create_appointment(f"client-{i}", slot.id) for i in range(10)),
            return_exceptions=True,
        )

        successes = [r for r in results if isinstance(r, Appointment)]
        failures = [r for r in results if isinstance(r, BaseException)]
        assert len(successes) == 1
        assert all(isinstance(f, SlotUnavailableException) for f in failures)
        assert len(await service.list_appointments()) == 1

    async def test_advisory_locks_with_pool_smaller_than_contenders(
        self, pg_session_factory, at
    ):
        """Test lock holders do not take the connections sessions need."""
        url = os.environ["TEST_DATABASE_URL"].replace(
            "postgresql://", "postgresql+asyncpg://"
        )
        session_engine = create_async_engine(url, pool_size=1, max_overflow=0, pool_timeout=2)
        lock_engine = create_async_engine(url, poolclass=NullPool)
        sessions = async_sessionmaker(session_engine, class_=AsyncSession, expire_on_commit=False)
        service = BookingService(
            uow_factory=lambda: SqlUnitOfWork(sessions),
            lock_manager=PostgresAdvisoryLockManager(lock_engine, blocking_timeout=10),
        )

        try:
            slot = await service.create_slot("provider-p", at(0), at(10), at(11))
            results = await asyncio.gather(
                *(service.create_appointment(f"client-{i}", slot.id) for i in range(5)),
                return_exceptions=True,
            )
        finally:
            await session_engine.dispose()
            await lock_engine.dispose()

        successes = [r for r in results if isinstance(r, Appointment)]
        failures = [r for r in results if isinstance(r, BaseException)]
        assert len(successes) == 1
        assert len(failures) == 4
        assert all(isinstance(f, SlotUnavailableException) for f in failures)
