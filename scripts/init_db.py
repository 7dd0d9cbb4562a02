"""Script to initialize the database.

Creates the directory and appointment tables directly from the table metadata.
Use ``scripts/migrate.py`` instead for databases managed by Alembic.
"""

import asyncio
import sys

from clinicflow.database import engine
from clinicflow.models import metadata


async def init_db(drop: bool = False) -> None:
    """Create all tables, optionally dropping existing ones first."""
    async with engine.begin() as conn:
        if drop:
            await conn.run_sync(metadata.drop_all)
            print("✓ Existing tables dropped")

        await conn.run_sync(metadata.create_all)

    await engine.dispose()
    print("✓ Database initialized successfully!")


if __name__ == "__main__":
    asyncio.run(init_db(drop="--drop" in sys.argv[1:]))
