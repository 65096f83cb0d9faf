#!/usr/bin/env python3
"""
Database Initialization Script
Create access control tables in PostgreSQL
"""

import asyncio
import sys

from access_control.core.logging import get_logger, setup_logging
from access_control.db import models  # noqa: F401
from access_control.db import session as db_session
from access_control.db.base import Base

setup_logging()
logger = get_logger(__name__)


async def main() -> int:
    """Main initialization function"""
    logger.info("Initializing database...")

    try:
        await db_session.init_db()
        async with db_session.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info(f"Created tables: {', '.join(sorted(Base.metadata.tables))}")
        return 0
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        return 1
    finally:
        await db_session.close_db()


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
