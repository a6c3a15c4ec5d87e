"""Storage contracts and their implementations."""

from slotbook.repositories.base import AppointmentRepository, SlotRepository, UnitOfWork
from slotbook.repositories.memory import InMemoryStore, InMemoryUnitOfWork
from slotbook.repositories.unit_of_work import SqlUnitOfWork

__all__ = [
    "AppointmentRepository",
    "InMemoryStore",
    "InMemoryUnitOfWork",
    "SlotRepository",
    "SqlUnitOfWork",
    "UnitOfWork",
]
