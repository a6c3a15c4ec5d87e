"""Slot entity and its booking state machine."""

from datetime import UTC, datetime
from enum import Enum
from uuid import uuid4

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field

from slotbook.core.exceptions import SlotAlreadyAvailableException, SlotAlreadyBookedException


def _now() -> datetime:
    return datetime.now(UTC)


class SlotStatus(str, Enum):
    """Slot status enumeration."""

    AVAILABLE = "available"
    BOOKED = "booked"


class Slot(BaseModel):
    """
    A bookable interval ``[start_time, end_time)`` owned by one provider.

    The slot cycles between ``available`` and ``booked`` with every
    booking/cancellation pair. ``version`` is bumped by the repository on
    each persisted update and is what conditional writes compare against.
    """

    model_config = ConfigDict(from_attributes=True)

    id: str
    provider_id: str
    date: AwareDatetime
    start_time: AwareDatetime
    end_time: AwareDatetime
    status: SlotStatus = SlotStatus.AVAILABLE
    version: int = Field(default=1, ge=1)
    created_at: AwareDatetime = Field(default_factory=_now)
    updated_at: AwareDatetime = Field(default_factory=_now)

    @classmethod
    def new(
        cls,
        provider_id: str,
        date: datetime,
        start_time: datetime,
        end_time: datetime,
    ) -> "Slot":
        """Create a fresh, available slot with a generated id."""
        return cls(
            id=str(uuid4()),
            provider_id=provider_id,
            date=date,
            start_time=start_time,
            end_time=end_time,
        )

    def book(self) -> None:
        """Mark the slot as booked."""
        if self.status == SlotStatus.BOOKED:
            raise SlotAlreadyBookedException()
        self.status = SlotStatus.BOOKED
        self.updated_at = _now()

    def release(self) -> None:
        """Return a booked slot to the pool."""
        if self.status == SlotStatus.AVAILABLE:
            raise SlotAlreadyAvailableException()
        self.status = SlotStatus.AVAILABLE
        self.updated_at = _now()

    def is_available(self) -> bool:
        """Check whether the slot can be booked."""
        return self.status == SlotStatus.AVAILABLE
