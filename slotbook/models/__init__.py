"""Database models."""

from slotbook.models.appointments import appointments
from slotbook.models.slots import metadata, slots

__all__ = [
    "appointments",
    "metadata",
    "slots",
]
