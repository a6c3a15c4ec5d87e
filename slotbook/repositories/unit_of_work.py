"""Transactional unit of work over an async SQLAlchemy session."""

from types import TracebackType
from typing import Self

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from slotbook.repositories.appointment_repository import SqlAppointmentRepository
from slotbook.repositories.slot_repository import SqlSlotRepository


class SqlUnitOfWork:
    """
    Open a session, expose both repositories on it and commit once.

    Any exception raised inside the ``async with`` block, or leaving it
    without ``commit()``, rolls back every statement issued through the
    repositories.
    """

    slots: SqlSlotRepository
    appointments: SqlAppointmentRepository

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        """Initialize with the session factory to draw a session from."""
        self._session_factory = session_factory
        self._session: AsyncSession | None = None
        self._committed = False

    async def __aenter__(self) -> Self:
        self._session = self._session_factory()
        self._committed = False
        self.slots = SqlSlotRepository(self._session)
        self.appointments = SqlAppointmentRepository(self._session)
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if self._session is None:
            return
        try:
            if exc_type is not None or not self._committed:
                await self._session.rollback()
        finally:
            await self._session.close()
            self._session = None

    async def commit(self) -> None:
        await self._require_session().commit()
        self._committed = True

    async def rollback(self) -> None:
        await self._require_session().rollback()

    def _require_session(self) -> AsyncSession:
        if self._session is None:
            raise RuntimeError("Unit of work used outside 'async with'")
        return self._session
