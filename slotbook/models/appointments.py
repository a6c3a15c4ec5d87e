"""Appointments table model using SQLAlchemy Core."""

from sqlalchemy import (
    CheckConstraint,
    Column,
    Index,
    Integer,
    Table,
    Text,
    text,
)
from sqlalchemy.dialects.postgresql import TIMESTAMP

from slotbook.models.slots import metadata

ACTIVE_SLOT_UNIQUE_INDEX = "uq_appointments_active_slot"

appointments = Table(
    "appointments",
    metadata,
    Column("id", Text, primary_key=True),
    Column("client_id", Text, nullable=False, index=True),
    # No foreign key: slots may be deleted out-of-band while the
    # appointment history is kept
    Column("slot_id", Text, nullable=False, index=True),
    Column("status", Text, nullable=False, server_default="confirmed"),
    Column("version", Integer, nullable=False, server_default=text("1")),
    Column("created_at", TIMESTAMP(timezone=True), nullable=False, server_default=text("NOW()")),
    Column("updated_at", TIMESTAMP(timezone=True), nullable=False, server_default=text("NOW()")),
    CheckConstraint(
        "status IN ('confirmed', 'cancelled', 'rescheduled')",
        name="appointments_status_check",
    ),
    # At most one confirmed appointment per slot
    Index(
        ACTIVE_SLOT_UNIQUE_INDEX,
        "slot_id",
        unique=True,
        postgresql_where=text("status = 'confirmed'"),
    ),
)
