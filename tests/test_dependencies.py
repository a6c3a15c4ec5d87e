"""Tests for service wiring."""

from unittest.mock import MagicMock

import pytest
from sqlalchemy.pool import NullPool

from slotbook import dependencies
from slotbook.config import Settings
from slotbook.core.locks import LocalLockManager, PostgresAdvisoryLockManager, RedisLockManager
from slotbook.database import AsyncSessionLocal, engine, lock_engine
from slotbook.repositories.unit_of_work import SqlUnitOfWork
from slotbook.services.booking_service import BookingService


@pytest.fixture
def use_lock_backend(monkeypatch):
    """Point the wiring at a given LOCK_BACKEND and reset the cached manager."""

    def _use(backend: str) -> None:
        monkeypatch.setattr(dependencies, "settings", Settings(LOCK_BACKEND=backend))
        dependencies.get_lock_manager.cache_clear()

    yield _use
    dependencies.get_lock_manager.cache_clear()


def test_local_lock_manager(use_lock_backend):
    use_lock_backend("local")

    manager = dependencies.get_lock_manager()

    assert isinstance(manager, LocalLockManager)
    # One registry per process
    assert dependencies.get_lock_manager() is manager


def test_redis_lock_manager_uses_shared_client(use_lock_backend, monkeypatch):
    client = MagicMock()
    monkeypatch.setattr(dependencies, "get_redis_client", lambda: client)
    use_lock_backend("redis")

    manager = dependencies.get_lock_manager()

    assert isinstance(manager, RedisLockManager)
    assert manager.redis is client


def test_postgres_lock_manager_uses_lock_engine(use_lock_backend):
    use_lock_backend("postgres")

    manager = dependencies.get_lock_manager()

    assert isinstance(manager, PostgresAdvisoryLockManager)
    assert manager._engine is lock_engine
    assert lock_engine is not engine


def test_lock_engine_is_unpooled():
    """Test lock holders cannot drain the session pool."""
    assert lock_engine.pool is not engine.pool
    assert isinstance(lock_engine.pool, NullPool)


def test_new_unit_of_work():
    uow = dependencies.new_unit_of_work()

    assert isinstance(uow, SqlUnitOfWork)
    assert uow._session_factory is AsyncSessionLocal


def test_get_booking_service(use_lock_backend):
    use_lock_backend("local")

    service = dependencies.get_booking_service()

    assert isinstance(service, BookingService)
    assert service._locks is dependencies.get_lock_manager()
    assert service._uow_factory is dependencies.new_unit_of_work
