#!/usr/bin/env python3
"""
Audit Log Cleanup Script
Delete audit entries older than a retention period
"""

import asyncio
import sys

from access_control.core.logging import get_logger, setup_logging
from access_control.db.session import close_db, init_db
from access_control.services.audit import get_audit_logger

setup_logging()
logger = get_logger(__name__)

DEFAULT_RETENTION_DAYS = 90


async def main(retention_days: int) -> int:
    """Main cleanup function"""
    print("\n" + "=" * 60)
    print(f"Audit log cleanup (retention: {retention_days} days)")
    print("=" * 60 + "\n")

    try:
        await init_db()
        deleted = await get_audit_logger().cleanup_old_logs(retention_days)
        print(f"Removed {deleted} audit entries")
        return 0
    except Exception as e:
        logger.error(f"Cleanup failed: {e}")
        print(f"Cleanup failed: {e}")
        return 1
    finally:
        await close_db()


if __name__ == "__main__":
    days = int(sys.argv[1]) if len(sys.argv) > 1 else DEFAULT_RETENTION_DAYS
    sys.exit(asyncio.run(main(days)))
