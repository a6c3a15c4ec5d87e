"""
Service wiring.

Importing this module does not configure logging. Entry points call
``slotbook.core.logging.configure_logging`` themselves.
"""

from functools import lru_cache

from slotbook.config import settings
from slotbook.core.locks import LockManager, build_lock_manager
from slotbook.core.redis_client import get_redis_client
from slotbook.database import AsyncSessionLocal, lock_engine
from slotbook.repositories.unit_of_work import SqlUnitOfWork
from slotbook.services.booking_service import BookingService


def new_unit_of_work() -> SqlUnitOfWork:
    """Unit of work on a fresh database session."""
    return SqlUnitOfWork(AsyncSessionLocal)


@lru_cache
def get_lock_manager() -> LockManager:
    """
    Get the process-wide lock manager.

    Cached so that every service instance in this process shares the same
    local lock registry or connection.
    """
    return build_lock_manager(
        settings,
        redis_client=get_redis_client() if settings.lock_backend == "redis" else None,
        engine=lock_engine,
    )


def get_booking_service() -> BookingService:
    """Get a booking service backed by PostgreSQL."""
    return BookingService(uow_factory=new_unit_of_work, lock_manager=get_lock_manager())
