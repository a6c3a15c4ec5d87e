"""Appointment entity and its status transitions."""

from datetime import UTC, datetime
from enum import Enum
from uuid import uuid4

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field

from slotbook.core.exceptions import AppointmentAlreadyCancelledException


def _now() -> datetime:
    return datetime.now(UTC)


class AppointmentStatus(str, Enum):
    """Appointment status enumeration."""

    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    RESCHEDULED = "rescheduled"


class Appointment(BaseModel):
    """A client's claim on exactly one slot."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    client_id: str
    slot_id: str
    status: AppointmentStatus = AppointmentStatus.CONFIRMED
    version: int = Field(default=1, ge=1)
    created_at: AwareDatetime = Field(default_factory=_now)
    updated_at: AwareDatetime = Field(default_factory=_now)

    @classmethod
    def new(cls, client_id: str, slot_id: str) -> "Appointment":
        """Create a confirmed appointment with a generated id."""
        return cls(id=str(uuid4()), client_id=client_id, slot_id=slot_id)

    def cancel(self) -> None:
        """
        Cancel the appointment.

        Raises:
            AppointmentAlreadyCancelledException: If already cancelled
        """
        if self.status == AppointmentStatus.CANCELLED:
            raise AppointmentAlreadyCancelledException()
        self.status = AppointmentStatus.CANCELLED
        self.updated_at = _now()

    def reschedule(self) -> None:
        """
        Mark the appointment as superseded.

        Only the status changes; no new slot is linked and the current slot
        is left untouched.
        """
        self.status = AppointmentStatus.RESCHEDULED
        self.updated_at = _now()

    def is_active(self) -> bool:
        """Check whether the appointment still holds its slot."""
        return self.status == AppointmentStatus.CONFIRMED
