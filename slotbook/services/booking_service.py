"""
Booking orchestration.

``BookingService`` owns the transaction boundary for the three operations
that must be atomic: creating a slot, booking it and cancelling the booking.
Each runs under a per-key lock and inside a single unit of work, and every
write it issues is a conditional one. A slot therefore never ends up booked
by more than one confirmed appointment, even if the lock is bypassed by a
worker using a different lock backend.

No operation retries internally. Conflicts are client-correctable and are
raised to the caller, and persistence errors propagate unchanged.
"""

from collections.abc import Callable
from datetime import datetime

import structlog

from slotbook.core.exceptions import (
    AppointmentAlreadyCancelledException,
    AppointmentNotFoundException,
    ConcurrentUpdateException,
    SlotAlreadyAvailableException,
    SlotNotFoundException,
    SlotOverlapException,
    SlotUnavailableException,
    UnauthorizedException,
)
from slotbook.core.locks import LockManager, provider_lock_key, slot_lock_key
from slotbook.domain.appointments import Appointment
from slotbook.domain.overlap import validate_interval
from slotbook.domain.slots import Slot
from slotbook.repositories.base import UnitOfWork

logger = structlog.get_logger()


class BookingService:
    """Service for creating slots, booking them and cancelling bookings."""

    def __init__(
        self,
        uow_factory: Callable[[], UnitOfWork],
        lock_manager: LockManager,
    ):
        """
        Initialize service.

        Args:
            uow_factory: Returns a fresh unit of work per operation
            lock_manager: Lock backend used to serialise per-slot and
                per-provider critical sections
        """
        self._uow_factory = uow_factory
        self._locks = lock_manager

    async def create_slot(
        self,
        provider_id: str,
        date: datetime,
        start_time: datetime,
        end_time: datetime,
    ) -> Slot:
        """
        Publish a new available slot on a provider's calendar.

        Args:
            provider_id: Owner of the slot
            date: Calendar day the slot belongs to
            start_time: Interval start (inclusive)
            end_time: Interval end (exclusive)

        Returns:
            Created slot

        Raises:
            InvalidSlotIntervalException: If the interval is empty or
                inverted, or any of the instants is naive
            SlotOverlapException: If it intersects an existing slot of the
                same provider, whatever that slot's status
        """
        validate_interval(start_time, end_time, date=date)

        async with self._locks.acquire(provider_lock_key(provider_id)):
            async with self._uow_factory() as uow:
                if await uow.slots.check_overlap(provider_id, start_time, end_time):
                    logger.info(
                        "slot_overlap_rejected",
                        provider_id=provider_id,
                        start_time=start_time.isoformat(),
                        end_time=end_time.isoformat(),
                    )
                    raise SlotOverlapException()

                slot = await uow.slots.create(
                    Slot.new(provider_id, date, start_time, end_time)
                )
                await uow.commit()

        logger.info(
            "slot_created",
            slot_id=slot.id,
            provider_id=provider_id,
            start_time=start_time.isoformat(),
            end_time=end_time.isoformat(),
        )
        return slot

    async def create_appointment(self, client_id: str, slot_id: str) -> Appointment:
        """
        Book a slot for a client.

        Args:
            client_id: Client claiming the slot
            slot_id: Slot to book

        Returns:
            Confirmed appointment

        Raises:
            SlotNotFoundException: If the slot does not exist
            SlotUnavailableException: If the slot is booked, including when a
                concurrent booking committed first
        """
        async with self._locks.acquire(slot_lock_key(slot_id)):
            async with self._uow_factory() as uow:
                slot = await uow.slots.find_by_id(slot_id)

                if slot is None:
                    raise SlotNotFoundException(slot_id)

                if not slot.is_available():
                    logger.info("booking_rejected", slot_id=slot_id, reason="slot_booked")
                    raise SlotUnavailableException(slot_id)

                appointment = Appointment.new(client_id, slot_id)
                slot.book()

                try:
                    appointment = await uow.appointments.create(appointment)
                    await uow.slots.update(slot)
                except ConcurrentUpdateException as e:
                    logger.warning(
                        "booking_rejected",
                        slot_id=slot_id,
                        client_id=client_id,
                        reason="concurrent_booking",
                    )
                    raise SlotUnavailableException(slot_id) from e

                await uow.commit()

        logger.info(
            "appointment_booked",
            appointment_id=appointment.id,
            slot_id=slot_id,
            client_id=client_id,
        )
        return appointment

    async def cancel_appointment(self, appointment_id: str, client_id: str) -> Appointment:
        """
        Cancel a client's appointment and give its slot back.

        The slot is released and written before the appointment, all within
        one transaction: if releasing the slot fails, the appointment stays
        confirmed.

        Args:
            appointment_id: Appointment to cancel
            client_id: Client performing the cancellation

        Returns:
            Cancelled appointment

        Raises:
            AppointmentNotFoundException: If the appointment does not exist
            UnauthorizedException: If the appointment belongs to another client
            AppointmentAlreadyCancelledException: If it was already
                cancelled, including by a concurrent request
        """
        async with self._uow_factory() as uow:
            appointment = await self._load_owned_appointment(uow, appointment_id, client_id)
        slot_id = appointment.slot_id

        async with self._locks.acquire(slot_lock_key(slot_id)):
            async with self._uow_factory() as uow:
                appointment = await self._load_owned_appointment(uow, appointment_id, client_id)
                appointment.cancel()

                slot = await uow.slots.find_by_id(slot_id)
                try:
                    if slot is not None:
                        await self._release_slot(uow, slot, appointment_id)
                    else:
                        logger.warning(
                            "appointment_slot_missing",
                            appointment_id=appointment_id,
                            slot_id=slot_id,
                        )
                    appointment = await uow.appointments.update(appointment)
                except ConcurrentUpdateException as e:
                    raise AppointmentAlreadyCancelledException() from e

                await uow.commit()

        logger.info(
            "appointment_cancelled",
            appointment_id=appointment_id,
            slot_id=slot_id,
            client_id=client_id,
        )
        return appointment

    async def get_slot(self, slot_id: str) -> Slot:
        """
        Get slot by ID.

        Raises:
            SlotNotFoundException: If slot not found
        """
        async with self._uow_factory() as uow:
            slot = await uow.slots.find_by_id(slot_id)

        if slot is None:
            raise SlotNotFoundException(slot_id)
        return slot

    async def list_provider_slots(
        self,
        provider_id: str,
        on_date: datetime | None = None,
    ) -> list[Slot]:
        """
        List a provider's slots ordered by start time.

        Args:
            provider_id: Provider whose calendar is listed
            on_date: Restrict to the calendar day of this instant, in its
                own timezone

        Returns:
            Slots of every status
        """
        async with self._uow_factory() as uow:
            if on_date is None:
                return await uow.slots.find_by_provider_id(provider_id)
            return await uow.slots.find_by_provider_id_and_date(provider_id, on_date)

    async def get_appointment(self, appointment_id: str, client_id: str) -> Appointment:
        """
        Get an appointment owned by the requesting client.

        Raises:
            AppointmentNotFoundException: If appointment not found
            UnauthorizedException: If it belongs to another client
        """
        async with self._uow_factory() as uow:
            return await self._load_owned_appointment(uow, appointment_id, client_id)

    async def list_appointments(
        self,
        client_id: str | None = None,
        provider_id: str | None = None,
    ) -> list[Appointment]:
        """
        List appointments, newest first.

        Filters by client when given, otherwise by provider, otherwise
        returns every appointment.
        """
        async with self._uow_factory() as uow:
            if client_id is not None:
                return await uow.appointments.find_by_client_id(client_id)
            if provider_id is not None:
                return await uow.appointments.find_by_provider_id(provider_id)
            return await uow.appointments.list_all()

    @staticmethod
    async def _load_owned_appointment(
        uow: UnitOfWork,
        appointment_id: str,
        client_id: str,
    ) -> Appointment:
        appointment = await uow.appointments.find_by_id(appointment_id)

        if appointment is None:
            raise AppointmentNotFoundException(appointment_id)

        # Ownership, not role
        if appointment.client_id != client_id:
            raise UnauthorizedException("Access denied to this appointment")

        return appointment

    @staticmethod
    async def _release_slot(uow: UnitOfWork, slot: Slot, appointment_id: str) -> None:
        try:
            slot.release()
        except SlotAlreadyAvailableException:
            # Someone else already freed the slot. That is only legitimate if
            # they also cancelled this appointment.
            current = await uow.appointments.find_by_id(appointment_id)
            if current is not None and not current.is_active():
                raise AppointmentAlreadyCancelledException() from None
            raise

        await uow.slots.update(slot)
