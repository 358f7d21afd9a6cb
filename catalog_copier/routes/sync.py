"""
Sync trigger API routes.
"""

import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from ..db import SQLiteDatabase, Shop
from ..dependencies import CatalogFactory, get_catalog_factory, get_current_shop, get_db, get_source_client
from ..processor import run_detached, sync_all_products_for_shop
from ..shopify import StorefrontClient

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/sync")


class SyncAllResponse(BaseModel):
    message: str
    products: int
    success: bool


async def _sync_shop(db, shop: Shop, catalog, source_client) -> None:
    try:
        async with catalog:
            await sync_all_products_for_shop(db, shop.shop_domain, catalog, source_client)
    except Exception:
        logger.exception(f"Background sync failed for {shop.shop_domain}")


@router.post("/all", response_model=SyncAllResponse)
async def sync_all_products(
    shop: Shop = Depends(get_current_shop),
    db: SQLiteDatabase = Depends(get_db),
    source_client: StorefrontClient = Depends(get_source_client),
    catalog_factory: CatalogFactory = Depends(get_catalog_factory),
):
    """Trigger sync for every sync-enabled product of the calling shop."""
    products = await db.get_products_with_sync_enabled(shop.shop_domain)

    # Run in background
    run_detached(
        _sync_shop(db, shop, catalog_factory(shop), source_client),
        name=f"sync-{shop.shop_domain}",
    )

    return SyncAllResponse(
        message=f"Sync started for {len(products)} products",
        products=len(products),
        success=True,
    )
