"""Slot repository backed by PostgreSQL."""

from datetime import datetime
from typing import Any

from sqlalchemy import and_, delete, insert, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from slotbook.core.exceptions import ConcurrentUpdateException, SlotOverlapException
from slotbook.domain.overlap import day_bounds
from slotbook.domain.slots import Slot
from slotbook.models.slots import SLOTS_NO_OVERLAP_CONSTRAINT, slots


def _to_row(slot: Slot) -> dict[str, Any]:
    values = slot.model_dump()
    values["status"] = slot.status.value
    return values


class SqlSlotRepository:
    """Repository for slot rows."""

    def __init__(self, db: AsyncSession):
        """Initialize repository with database session."""
        self.db = db

    async def create(self, slot: Slot) -> Slot:
        """
        Insert a new slot.

        Args:
            slot: Slot to persist

        Returns:
            Persisted slot

        Raises:
            SlotOverlapException: If the exclusion constraint rejects the
                interval (a concurrent insert won the race)
        """
        stmt = insert(slots).values(**_to_row(slot)).returning(slots)
        try:
            result = await self.db.execute(stmt)
        except IntegrityError as e:
            error_msg = str(e.orig) if hasattr(e, "orig") else str(e)
            if SLOTS_NO_OVERLAP_CONSTRAINT in error_msg:
                raise SlotOverlapException() from e
            raise

        row = result.mappings().first()
        return Slot.model_validate(dict(row))

    async def find_by_id(self, slot_id: str) -> Slot | None:
        result = await self.db.execute(select(slots).where(slots.c.id == slot_id))
        row = result.mappings().first()
        return Slot.model_validate(dict(row)) if row else None

    async def find_by_provider_id(self, provider_id: str) -> list[Slot]:
        stmt = (
            select(slots)
            .where(slots.c.provider_id == provider_id)
            .order_by(slots.c.start_time.asc())
        )
        result = await self.db.execute(stmt)
        return [Slot.model_validate(dict(row)) for row in result.mappings().all()]

    async def find_by_provider_id_and_date(
        self,
        provider_id: str,
        on_date: datetime,
    ) -> list[Slot]:
        start_of_day, end_of_day = day_bounds(on_date)
        stmt = (
            select(slots)
            .where(
                and_(
                    slots.c.provider_id == provider_id,
                    slots.c.date >= start_of_day,
                    slots.c.date < end_of_day,
                )
            )
            .order_by(slots.c.start_time.asc())
        )
        result = await self.db.execute(stmt)
        return [Slot.model_validate(dict(row)) for row in result.mappings().all()]

    async def update(self, slot: Slot) -> Slot:
        """
        Write the slot's status if nobody changed it since it was read.

        Args:
            slot: Slot carrying the version it was loaded with

        Returns:
            Persisted slot with the incremented version

        Raises:
            ConcurrentUpdateException: If the stored version differs
        """
        stmt = (
            update(slots)
            .where(
                and_(
                    slots.c.id == slot.id,
                    slots.c.version == slot.version,
                )
            )
            .values(
                status=slot.status.value,
                updated_at=slot.updated_at,
                version=slots.c.version + 1,
            )
            .returning(slots)
        )
        result = await self.db.execute(stmt)
        row = result.mappings().first()

        if row is None:
            raise ConcurrentUpdateException("Slot", slot.id)

        return Slot.model_validate(dict(row))

    async def delete(self, slot_id: str) -> None:
        await self.db.execute(delete(slots).where(slots.c.id == slot_id))

    async def check_overlap(
        self,
        provider_id: str,
        start_time: datetime,
        end_time: datetime,
    ) -> bool:
        stmt = (
            select(slots.c.id)
            .where(
                and_(
                    slots.c.provider_id == provider_id,
                    slots.c.start_time < end_time,
                    slots.c.end_time > start_time,
                )
            )
            .limit(1)
        )
        result = await self.db.execute(stmt)
        return result.first() is not None
