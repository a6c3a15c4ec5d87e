"""Booking domain entities and pure calendar logic."""

from slotbook.domain.appointments import Appointment, AppointmentStatus
from slotbook.domain.overlap import (
    day_bounds,
    find_overlapping_slots,
    has_overlap,
    intervals_overlap,
    validate_interval,
)
from slotbook.domain.slots import Slot, SlotStatus

__all__ = [
    "Appointment",
    "AppointmentStatus",
    "Slot",
    "SlotStatus",
    "day_bounds",
    "find_overlapping_slots",
    "has_overlap",
    "intervals_overlap",
    "validate_interval",
]
