"""Script to initialize the database without running migrations."""

import asyncio
import sys

from sqlalchemy import text

from slotbook.core.logging import configure_logging
from slotbook.database import check_database_connection, engine
from slotbook.models import metadata
from slotbook.models.slots import POSTGRES_EXTRA_DDL


async def init_db() -> int:
    """Create all tables and the overlap exclusion constraint."""
    if not await check_database_connection():
        print("✗ Cannot reach the database, check DATABASE_URL", file=sys.stderr)
        return 1

    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)
        for statement in POSTGRES_EXTRA_DDL:
            await conn.execute(text(statement))

    await engine.dispose()
    print("✓ Database initialized successfully!")
    return 0


if __name__ == "__main__":
    configure_logging(log_format="console")
    sys.exit(asyncio.run(init_db()))
