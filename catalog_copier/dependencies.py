"""
FastAPI dependency injection.
Database, shared source client and the calling shop.
"""

from typing import Callable, Optional
from fastapi import Depends, Header, HTTPException

from .config import settings
from .db import SQLiteDatabase, Shop
from .shopify import DestinationCatalog, StorefrontClient


# Global instances (initialized on startup)
_db: Optional[SQLiteDatabase] = None
_source_client: Optional[StorefrontClient] = None


async def init_dependencies():
    """Initialize global dependencies. Called on app startup."""
    global _db, _source_client

    _db = SQLiteDatabase(settings.database_path)
    await _db.initialize()

    _source_client = StorefrontClient()


async def close_dependencies():
    """Close global dependencies. Called on app shutdown."""
    global _db, _source_client
    if _source_client:
        await _source_client.close()
        _source_client = None
    if _db:
        await _db.close()
        _db = None


def get_db() -> SQLiteDatabase:
    """Get the database instance."""
    if _db is None:
        raise RuntimeError("Database not initialized")
    return _db


def get_source_client() -> StorefrontClient:
    """Get the shared storefront client."""
    if _source_client is None:
        raise RuntimeError("Source client not initialized")
    return _source_client


CatalogFactory = Callable[[Shop], DestinationCatalog]


def _create_catalog(shop: Shop) -> DestinationCatalog:
    return DestinationCatalog.from_credentials(shop.shop_domain, shop.access_token)


def get_catalog_factory() -> CatalogFactory:
    """
    Factory for destination catalogs.

    Background jobs outlive the request, so routes receive a factory and
    hand the catalog's ownership to whatever uses it.
    """
    return _create_catalog


async def get_current_shop(
    x_shop_domain: Optional[str] = Header(None),
    db: SQLiteDatabase = Depends(get_db),
) -> Shop:
    """
    Dependency resolving the calling shop from the X-Shop-Domain header.
    """
    if not x_shop_domain:
        raise HTTPException(status_code=401, detail="Missing X-Shop-Domain header")

    shop = await db.get_shop(x_shop_domain.strip().lower())
    if not shop:
        raise HTTPException(status_code=401, detail="Unknown shop")
    return shop
