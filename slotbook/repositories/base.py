"""
Storage contracts consumed by the booking service.

Implementations live next to this module: SQLAlchemy Core repositories for
PostgreSQL and an in-memory variant. Every ``update`` is a conditional write
keyed on the entity's ``version``; when the stored row moved on since it was
read, the repository raises ``ConcurrentUpdateException`` instead of
overwriting it.
"""

from datetime import datetime
from types import TracebackType
from typing import Protocol, Self

from slotbook.domain.appointments import Appointment
from slotbook.domain.slots import Slot


class SlotRepository(Protocol):
    """Durable storage for slots."""

    async def create(self, slot: Slot) -> Slot:
        """Insert a new slot and return its persisted form."""

    async def find_by_id(self, slot_id: str) -> Slot | None:
        """Return the slot or None."""

    async def find_by_provider_id(self, provider_id: str) -> list[Slot]:
        """Return all slots of a provider ordered by start time."""

    async def find_by_provider_id_and_date(
        self,
        provider_id: str,
        on_date: datetime,
    ) -> list[Slot]:
        """Return the provider's slots whose ``date`` falls on the day of ``on_date``."""

    async def update(self, slot: Slot) -> Slot:
        """Persist status changes if ``slot.version`` is still current."""

    async def delete(self, slot_id: str) -> None:
        """Remove a slot (administrative use only)."""

    async def check_overlap(
        self,
        provider_id: str,
        start_time: datetime,
        end_time: datetime,
    ) -> bool:
        """Return True if any slot of the provider intersects ``[start_time, end_time)``."""


class AppointmentRepository(Protocol):
    """Durable storage for appointments."""

    async def create(self, appointment: Appointment) -> Appointment:
        """Insert a new appointment and return its persisted form."""

    async def find_by_id(self, appointment_id: str) -> Appointment | None:
        """Return the appointment or None."""

    async def find_by_client_id(self, client_id: str) -> list[Appointment]:
        """Return a client's appointments, newest first."""

    async def find_by_provider_id(self, provider_id: str) -> list[Appointment]:
        """Return appointments on the provider's slots, newest first."""

    async def find_active_by_slot_id(self, slot_id: str) -> Appointment | None:
        """Return the confirmed appointment holding a slot, if any."""

    async def list_all(self) -> list[Appointment]:
        """Return every appointment, newest first."""

    async def update(self, appointment: Appointment) -> Appointment:
        """Persist status changes if ``appointment.version`` is still current."""


class UnitOfWork(Protocol):
    """
    One transaction spanning both repositories.

    Leaving the context without calling ``commit`` rolls back every write
    made through it.
    """

    slots: SlotRepository
    appointments: AppointmentRepository

    async def __aenter__(self) -> Self: ...

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None: ...

    async def commit(self) -> None: ...

    async def rollback(self) -> None: ...
