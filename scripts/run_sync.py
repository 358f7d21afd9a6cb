#!/usr/bin/env python3
"""
Cron job script to sync prices of imported products for every shop.
Add to crontab: 0 * * * * cd /path/to/app && /path/to/venv/bin/python scripts/run_sync.py

Only sync-enabled products whose last sync is older than
SYNC_FREQUENCY_HOURS are synced. This runs outside the web server.
"""

import asyncio
import logging
import sys
import os

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from catalog_copier.config import settings
from catalog_copier.db import SQLiteDatabase
from catalog_copier.processor import run_all_shops

logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

logger = logging.getLogger(__name__)


async def main():
    logger.info("Starting scheduled sync...")

    db = SQLiteDatabase(settings.database_path)
    await db.initialize()

    try:
        results = await run_all_shops(db, settings.sync_frequency_hours)

        synced = sum(r.synced for r in results)
        updated = sum(r.updated_variants for r in results)
        failing = [r for r in results if not r.success]

        logger.info(
            f"Sync completed for {len(results)} shops: {synced} products synced, "
            f"{updated} variants repriced, {len(failing)} shops with failures"
        )

        for r in failing:
            for error in r.errors:
                logger.error(f"{r.shop}: {error}")

        if failing:
            sys.exit(1)

    finally:
        await db.close()


if __name__ == "__main__":
    asyncio.run(main())
