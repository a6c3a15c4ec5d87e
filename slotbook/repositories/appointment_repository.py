"""Appointment repository backed by PostgreSQL."""

from typing import Any

from sqlalchemy import and_, insert, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from slotbook.core.exceptions import ConcurrentUpdateException
from slotbook.domain.appointments import Appointment, AppointmentStatus
from slotbook.models.appointments import ACTIVE_SLOT_UNIQUE_INDEX, appointments
from slotbook.models.slots import slots


def _to_row(appointment: Appointment) -> dict[str, Any]:
    values = appointment.model_dump()
    values["status"] = appointment.status.value
    return values


class SqlAppointmentRepository:
    """Repository for appointment rows."""

    def __init__(self, db: AsyncSession):
        """Initialize repository with database session."""
        self.db = db

    async def create(self, appointment: Appointment) -> Appointment:
        """
        Insert a new appointment.

        Raises:
            ConcurrentUpdateException: If another confirmed appointment
                already holds the slot
        """
        stmt = insert(appointments).values(**_to_row(appointment)).returning(appointments)
        try:
            result = await self.db.execute(stmt)
        except IntegrityError as e:
            error_msg = str(e.orig) if hasattr(e, "orig") else str(e)
            if ACTIVE_SLOT_UNIQUE_INDEX in error_msg:
                raise ConcurrentUpdateException("Slot", appointment.slot_id) from e
            raise

        row = result.mappings().first()
        return Appointment.model_validate(dict(row))

    async def find_by_id(self, appointment_id: str) -> Appointment | None:
        result = await self.db.execute(
            select(appointments).where(appointments.c.id == appointment_id)
        )
        row = result.mappings().first()
        return Appointment.model_validate(dict(row)) if row else None

    async def find_by_client_id(self, client_id: str) -> list[Appointment]:
        stmt = (
            select(appointments)
            .where(appointments.c.client_id == client_id)
            .order_by(appointments.c.created_at.desc())
        )
        return await self._fetch_all(stmt)

    async def find_by_provider_id(self, provider_id: str) -> list[Appointment]:
        stmt = (
            select(appointments)
            .join(slots, appointments.c.slot_id == slots.c.id)
            .where(slots.c.provider_id == provider_id)
            .order_by(appointments.c.created_at.desc())
        )
        return await self._fetch_all(stmt)

    async def find_active_by_slot_id(self, slot_id: str) -> Appointment | None:
        stmt = select(appointments).where(
            and_(
                appointments.c.slot_id == slot_id,
                appointments.c.status == AppointmentStatus.CONFIRMED.value,
            )
        )
        result = await self.db.execute(stmt)
        row = result.mappings().first()
        return Appointment.model_validate(dict(row)) if row else None

    async def list_all(self) -> list[Appointment]:
        stmt = select(appointments).order_by(appointments.c.created_at.desc())
        return await self._fetch_all(stmt)

    async def update(self, appointment: Appointment) -> Appointment:
        """
        Write the appointment's status if nobody changed it since it was read.

        Raises:
            ConcurrentUpdateException: If the stored version differs
        """
        stmt = (
            update(appointments)
            .where(
                and_(
                    appointments.c.id == appointment.id,
                    appointments.c.version == appointment.version,
                )
            )
            .values(
                status=appointment.status.value,
                updated_at=appointment.updated_at,
                version=appointments.c.version + 1,
            )
            .returning(appointments)
        )
        result = await self.db.execute(stmt)
        row = result.mappings().first()

        if row is None:
            raise ConcurrentUpdateException("Appointment", appointment.id)

        return Appointment.model_validate(dict(row))

    async def _fetch_all(self, stmt: Any) -> list[Appointment]:
        result = await self.db.execute(stmt)
        return [Appointment.model_validate(dict(row)) for row in result.mappings().all()]
