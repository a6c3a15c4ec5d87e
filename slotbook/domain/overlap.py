"""
Calendar overlap detection.

Intervals are half-open, ``[start, end)``: a slot ending at 10:00 and one
starting at 10:00 touch but do not overlap. Slot status is ignored: a booked
slot still occupies its interval.
"""

from collections.abc import Iterable
from datetime import datetime, timedelta

from slotbook.core.exceptions import InvalidSlotIntervalException
from slotbook.domain.slots import Slot


def intervals_overlap(
    start_a: datetime,
    end_a: datetime,
    start_b: datetime,
    end_b: datetime,
) -> bool:
    """Return True if ``[start_a, end_a)`` and ``[start_b, end_b)`` intersect."""
    return start_a < end_b and start_b < end_a


def find_overlapping_slots(
    slots: Iterable[Slot],
    provider_id: str,
    start_time: datetime,
    end_time: datetime,
) -> list[Slot]:
    """
    Find the provider's slots that intersect a candidate interval.

    Args:
        slots: Existing slots, possibly belonging to several providers
        provider_id: Provider whose calendar is checked
        start_time: Candidate start (inclusive)
        end_time: Candidate end (exclusive)

    Returns:
        Conflicting slots ordered by start time
    """
    conflicts = [
        slot
        for slot in slots
        if slot.provider_id == provider_id
        and intervals_overlap(start_time, end_time, slot.start_time, slot.end_time)
    ]
    return sorted(conflicts, key=lambda slot: slot.start_time)


def has_overlap(
    slots: Iterable[Slot],
    provider_id: str,
    start_time: datetime,
    end_time: datetime,
) -> bool:
    """Return True if any of the provider's slots intersects the candidate interval."""
    return bool(find_overlapping_slots(slots, provider_id, start_time, end_time))


def _is_naive(moment: datetime) -> bool:
    return moment.tzinfo is None or moment.utcoffset() is None


def validate_interval(
    start_time: datetime,
    end_time: datetime,
    date: datetime | None = None,
) -> None:
    """
    Reject intervals that cannot be booked.

    Args:
        start_time: Interval start (inclusive)
        end_time: Interval end (exclusive)
        date: Calendar day the slot is filed under, checked for a timezone

    Raises:
        InvalidSlotIntervalException: If any instant is naive or the
            interval is empty or inverted
    """
    if _is_naive(start_time) or _is_naive(end_time):
        raise InvalidSlotIntervalException("Slot times must be timezone-aware")
    if date is not None and _is_naive(date):
        raise InvalidSlotIntervalException("Slot date must be timezone-aware")
    if end_time <= start_time:
        raise InvalidSlotIntervalException()


def day_bounds(moment: datetime) -> tuple[datetime, datetime]:
    """Return ``[midnight, next midnight)`` of ``moment``'s day in its own timezone."""
    start = moment.replace(hour=0, minute=0, second=0, microsecond=0)
    return start, start + timedelta(days=1)
