"""
In-process repositories.

Used for tests and local tooling. Writes are applied to the shared store
immediately and recorded in the owning unit of work's undo journal, so
isolation is read-uncommitted. Correctness under concurrency comes from the
same conditional writes the SQL repositories perform: version checks on
update and the one-confirmed-appointment-per-slot rule on create.

Every call yields to the event loop once, the way a database round trip
would, so concurrent tasks interleave between reads and writes.
"""

import asyncio
from collections.abc import Callable
from datetime import datetime
from types import TracebackType
from typing import Self

from slotbook.core.exceptions import ConcurrentUpdateException, SlotOverlapException
from slotbook.domain.appointments import Appointment
from slotbook.domain.overlap import day_bounds, has_overlap
from slotbook.domain.slots import Slot

UndoLog = list[Callable[[], None]]


class InMemoryStore:
    """Shared state behind every in-memory unit of work."""

    def __init__(self) -> None:
        self.slots: dict[str, Slot] = {}
        self.appointments: dict[str, Appointment] = {}


class InMemorySlotRepository:
    """Slot repository over an ``InMemoryStore``."""

    def __init__(self, store: InMemoryStore, undo_log: UndoLog):
        self._store = store
        self._undo_log = undo_log

    async def create(self, slot: Slot) -> Slot:
        await asyncio.sleep(0)
        if slot.id in self._store.slots:
            raise ConcurrentUpdateException("Slot", slot.id)
        # Same guarantee as the exclusion constraint on the slots table
        existing = self._store.slots.values()
        if has_overlap(existing, slot.provider_id, slot.start_time, slot.end_time):
            raise SlotOverlapException()

        stored = slot.model_copy(deep=True)
        self._store.slots[slot.id] = stored
        self._undo_log.append(lambda: self._store.slots.pop(slot.id, None))
        return stored.model_copy(deep=True)

    async def find_by_id(self, slot_id: str) -> Slot | None:
        await asyncio.sleep(0)
        slot = self._store.slots.get(slot_id)
        return slot.model_copy(deep=True) if slot else None

    async def find_by_provider_id(self, provider_id: str) -> list[Slot]:
        await asyncio.sleep(0)
        found = [s for s in self._store.slots.values() if s.provider_id == provider_id]
        return [s.model_copy(deep=True) for s in sorted(found, key=lambda s: s.start_time)]

    async def find_by_provider_id_and_date(
        self,
        provider_id: str,
        on_date: datetime,
    ) -> list[Slot]:
        start_of_day, end_of_day = day_bounds(on_date)
        return [
            slot
            for slot in await self.find_by_provider_id(provider_id)
            if start_of_day <= slot.date < end_of_day
        ]

    async def update(self, slot: Slot) -> Slot:
        await asyncio.sleep(0)
        current = self._store.slots.get(slot.id)
        if current is None or current.version != slot.version:
            raise ConcurrentUpdateException("Slot", slot.id)

        stored = current.model_copy(
            update={
                "status": slot.status,
                "updated_at": slot.updated_at,
                "version": current.version + 1,
            }
        )
        self._store.slots[slot.id] = stored
        self._undo_log.append(_restore(self._store.slots, current, stored.version))
        return stored.model_copy(deep=True)

    async def delete(self, slot_id: str) -> None:
        await asyncio.sleep(0)
        removed = self._store.slots.pop(slot_id, None)
        if removed is not None:
            self._undo_log.append(lambda: self._store.slots.setdefault(slot_id, removed))

    async def check_overlap(
        self,
        provider_id: str,
        start_time: datetime,
        end_time: datetime,
    ) -> bool:
        await asyncio.sleep(0)
        return has_overlap(self._store.slots.values(), provider_id, start_time, end_time)


class InMemoryAppointmentRepository:
    """Appointment repository over an ``InMemoryStore``."""

    def __init__(self, store: InMemoryStore, undo_log: UndoLog):
        self._store = store
        self._undo_log = undo_log

    async def create(self, appointment: Appointment) -> Appointment:
        await asyncio.sleep(0)
        if appointment.id in self._store.appointments or (
            appointment.is_active() and self._active_for_slot(appointment.slot_id) is not None
        ):
            raise ConcurrentUpdateException("Slot", appointment.slot_id)

        stored = appointment.model_copy(deep=True)
        self._store.appointments[appointment.id] = stored
        self._undo_log.append(lambda: self._store.appointments.pop(appointment.id, None))
        return stored.model_copy(deep=True)

    async def find_by_id(self, appointment_id: str) -> Appointment | None:
        await asyncio.sleep(0)
        appointment = self._store.appointments.get(appointment_id)
        return appointment.model_copy(deep=True) if appointment else None

    async def find_by_client_id(self, client_id: str) -> list[Appointment]:
        await asyncio.sleep(0)
        return self._newest_first(
            a for a in self._store.appointments.values() if a.client_id == client_id
        )

    async def find_by_provider_id(self, provider_id: str) -> list[Appointment]:
        await asyncio.sleep(0)
        slot_ids = {s.id for s in self._store.slots.values() if s.provider_id == provider_id}
        return self._newest_first(
            a for a in self._store.appointments.values() if a.slot_id in slot_ids
        )

    async def find_active_by_slot_id(self, slot_id: str) -> Appointment | None:
        await asyncio.sleep(0)
        appointment = self._active_for_slot(slot_id)
        return appointment.model_copy(deep=True) if appointment else None

    async def list_all(self) -> list[Appointment]:
        await asyncio.sleep(0)
        return self._newest_first(self._store.appointments.values())

    async def update(self, appointment: Appointment) -> Appointment:
        await asyncio.sleep(0)
        current = self._store.appointments.get(appointment.id)
        if current is None or current.version != appointment.version:
            raise ConcurrentUpdateException("Appointment", appointment.id)

        stored = current.model_copy(
            update={
                "status": appointment.status,
                "updated_at": appointment.updated_at,
                "version": current.version + 1,
            }
        )
        self._store.appointments[appointment.id] = stored
        self._undo_log.append(_restore(self._store.appointments, current, stored.version))
        return stored.model_copy(deep=True)

    def _active_for_slot(self, slot_id: str) -> Appointment | None:
        for appointment in self._store.appointments.values():
            if appointment.slot_id == slot_id and appointment.is_active():
                return appointment
        return None

    @staticmethod
    def _newest_first(appointments) -> list[Appointment]:
        ordered = sorted(appointments, key=lambda a: a.created_at, reverse=True)
        return [a.model_copy(deep=True) for a in ordered]


def _restore(table: dict, previous, written_version: int) -> Callable[[], None]:
    """Build an undo step that only reverts a row still at the version we wrote."""

    def undo() -> None:
        current = table.get(previous.id)
        if current is not None and current.version == written_version:
            table[previous.id] = previous

    return undo


class InMemoryUnitOfWork:
    """Unit of work over an ``InMemoryStore`` with undo-on-rollback."""

    def __init__(self, store: InMemoryStore):
        self._store = store
        self._undo_log: UndoLog = []
        self._committed = False
        self.slots = InMemorySlotRepository(store, self._undo_log)
        self.appointments = InMemoryAppointmentRepository(store, self._undo_log)

    async def __aenter__(self) -> Self:
        self._undo_log.clear()
        self._committed = False
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if exc_type is not None or not self._committed:
            await self.rollback()

    async def commit(self) -> None:
        self._undo_log.clear()
        self._committed = True

    async def rollback(self) -> None:
        while self._undo_log:
            self._undo_log.pop()()
