"""
Create (or recreate) the companion, message and memory tables.

Usage:
    python scripts/init_db_async.py            # create missing tables
    python scripts/init_db_async.py --reset    # drop everything first

Production schemas are migrated outside this service; this is for local
databases and throwaway environments.
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from config.settings import settings
from core import configure_logging, get_logger
from memory.database_async import AsyncDatabase
from memory.models import Base

logger = get_logger(__name__)


async def init_db(database_url: str, reset: bool = False) -> list:
    db = AsyncDatabase(database_url)
    try:
        if reset:
            if settings.is_production:
                raise SystemExit("Refusing to drop tables in production")
            await db.drop_tables()
        await db.create_tables()
    finally:
        await db.dispose()
    return sorted(Base.metadata.tables)


async def main():
    parser = argparse.ArgumentParser(description="Initialize chat database tables")
    parser.add_argument("--reset", action="store_true", help="Drop all tables before creating them")
    parser.add_argument("--database-url", default=None, help="Override DATABASE_URL")
    args = parser.parse_args()

    configure_logging(log_level=settings.LOG_LEVEL)

    tables = await init_db(args.database_url or settings.DATABASE_URL, reset=args.reset)
    logger.info("Database ready", tables=tables, reset=args.reset)


if __name__ == "__main__":
    asyncio.run(main())
