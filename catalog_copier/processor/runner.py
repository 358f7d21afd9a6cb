"""
Runner for scheduled price sync across all registered shops.
"""

import asyncio
import logging
from datetime import timedelta
from typing import List, Optional

from ..db import SQLiteDatabase, Shop, utcnow
from ..shopify import DestinationCatalog, StorefrontClient
from .sync import ShopSyncResult, sync_all_products_for_shop

logger = logging.getLogger(__name__)


async def run_single_shop(
    shop: Shop,
    db: SQLiteDatabase,
    frequency_hours: int,
    source_client: Optional[StorefrontClient] = None,
) -> ShopSyncResult:
    """Sync the products of one shop that are due, with error handling."""
    cutoff = utcnow() - timedelta(hours=frequency_hours)

    try:
        products = await db.get_products_needing_sync(shop.shop_domain, cutoff)
        if not products:
            return ShopSyncResult(shop=shop.shop_domain)

        async with DestinationCatalog.from_credentials(shop.shop_domain, shop.access_token) as catalog:
            return await sync_all_products_for_shop(
                db, shop.shop_domain, catalog, source_client, products=products
            )
    except Exception as e:
        logger.exception(f"Unexpected error syncing '{shop.shop_domain}'")
        return ShopSyncResult(shop=shop.shop_domain, failed=1, errors=[f"Unexpected error: {e}"])


async def run_all_shops(
    db: SQLiteDatabase,
    frequency_hours: int = 24,
    max_concurrent: int = 5,
    source_client: Optional[StorefrontClient] = None,
) -> List[ShopSyncResult]:
    """
    Run sync for all registered shops in parallel.

    All shops share one storefront client; one is opened for the run when
    none is given.
    """
    shops = await db.get_shops()

    if not shops:
        logger.info("No shops to sync")
        return []

    logger.info(f"Starting sync for {len(shops)} shops")

    semaphore = asyncio.Semaphore(max_concurrent)

    owns_client = source_client is None
    client = source_client or StorefrontClient()

    async def sync_with_semaphore(shop: Shop) -> ShopSyncResult:
        async with semaphore:
            return await run_single_shop(shop, db, frequency_hours, client)

    try:
        results = await asyncio.gather(*[sync_with_semaphore(shop) for shop in shops])
    finally:
        if owns_client:
            await client.close()

    successful = sum(1 for r in results if r.success)
    failed = len(results) - successful

    logger.info(f"Sync completed: {successful} shops successful, {failed} with failures")

    return results
