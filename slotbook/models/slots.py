"""Slots table model using SQLAlchemy Core."""

from sqlalchemy import (
    CheckConstraint,
    Column,
    Index,
    Integer,
    MetaData,
    Table,
    Text,
    text,
)
from sqlalchemy.dialects.postgresql import TIMESTAMP

# Metadata shared by slots and appointments
metadata = MetaData()

SLOTS_NO_OVERLAP_CONSTRAINT = "slots_no_overlap_per_provider"

slots = Table(
    "slots",
    metadata,
    Column("id", Text, primary_key=True),
    Column("provider_id", Text, nullable=False),
    # Calendar day the slot belongs to
    Column("date", TIMESTAMP(timezone=True), nullable=False),
    Column("start_time", TIMESTAMP(timezone=True), nullable=False),
    Column("end_time", TIMESTAMP(timezone=True), nullable=False),
    Column("status", Text, nullable=False, server_default="available"),
    # Optimistic concurrency
    Column("version", Integer, nullable=False, server_default=text("1")),
    # Audit fields
    Column("created_at", TIMESTAMP(timezone=True), nullable=False, server_default=text("NOW()")),
    Column("updated_at", TIMESTAMP(timezone=True), nullable=False, server_default=text("NOW()")),
    # Constraints
    CheckConstraint(
        "status IN ('available', 'booked')",
        name="slots_status_check",
    ),
    CheckConstraint("start_time < end_time", name="slots_interval_check"),
    Index("ix_slots_provider_id_start_time", "provider_id", "start_time"),
)

# Not expressible as a portable Core constraint. Applied by migration 001,
# scripts/init_db.py and the integration test fixtures.
POSTGRES_EXTRA_DDL = (
    'CREATE EXTENSION IF NOT EXISTS "btree_gist"',
    f"""
    ALTER TABLE slots
    ADD CONSTRAINT {SLOTS_NO_OVERLAP_CONSTRAINT}
    EXCLUDE USING gist (
        provider_id WITH =,
        tstzrange(start_time, end_time, '[)') WITH &&
    )
    """,
)
