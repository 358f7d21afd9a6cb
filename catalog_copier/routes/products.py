"""
Single product routes: preview, import, history and sync.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from ..db import ImportedProduct, ProductStatus, SQLiteDatabase, Shop
from ..dependencies import CatalogFactory, get_catalog_factory, get_current_shop, get_db, get_source_client
from ..processor import (
    InvalidConfig,
    PricingConfig,
    ProductImportError,
    get_pricing_summary,
    import_product,
    sync_product,
    validate_pricing_config,
)
from ..shopify import (
    ShopifyClientError,
    SourceCatalogError,
    SourceProduct,
    StorefrontClient,
    parse_product_url,
)
from .errors import http_error

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/products")

MAX_PAGE_SIZE = 100


class PricingFields(BaseModel):
    pricing_mode: str = "markup"
    markup_amount: Optional[Decimal] = None
    multiplier: Optional[Decimal] = None

    def pricing_config(self) -> PricingConfig:
        """
        Raises:
            InvalidConfig: If the values are out of range
        """
        config = PricingConfig.from_values(self.pricing_mode, self.markup_amount, self.multiplier)
        validate_pricing_config(config)
        return config


class FetchRequest(BaseModel):
    url: str
    pricing_mode: Optional[str] = None
    markup_amount: Optional[Decimal] = None
    multiplier: Optional[Decimal] = None


class FetchResponse(BaseModel):
    product: SourceProduct
    already_imported: bool
    pricing: Optional[dict] = None


class ImportRequest(PricingFields):
    url: str
    status: str = "ACTIVE"
    collection_id: Optional[str] = None
    sync_enabled: bool = False


class ImportResponse(BaseModel):
    product: ImportedProduct
    degraded: bool
    variant_errors: List[str]
    published: bool
    added_to_collection: Optional[bool] = None


class ProductListResponse(BaseModel):
    products: List[ImportedProduct]
    total: int
    page: int
    limit: int
    total_pages: int
    source_shops: List[str]


class SyncEnabledRequest(BaseModel):
    enabled: bool


class StatusRequest(BaseModel):
    status: str


class SyncResponse(BaseModel):
    success: bool
    updated_variant_count: int
    errors: List[str]
    synced_at: Optional[datetime] = None


async def _get_own_product(db: SQLiteDatabase, shop: Shop, product_id: str) -> ImportedProduct:
    product = await db.get_imported_product(product_id)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    if product.shop != shop.shop_domain:
        raise HTTPException(status_code=403, detail="Product belongs to another shop")
    return product


@router.post("/fetch", response_model=FetchResponse)
async def fetch_product(
    body: FetchRequest,
    shop: Shop = Depends(get_current_shop),
    db: SQLiteDatabase = Depends(get_db),
    source_client: StorefrontClient = Depends(get_source_client),
    catalog_factory: CatalogFactory = Depends(get_catalog_factory),
):
    """Preview a source product before importing it."""
    parsed = parse_product_url(body.url)
    if parsed is None:
        raise HTTPException(status_code=400, detail="Not a Shopify product URL")

    try:
        if parsed.is_admin_url:
            async with catalog_factory(shop) as catalog:
                product = await source_client.fetch_product(body.url, catalog=catalog)
        else:
            product = await source_client.fetch_product(body.url)

        pricing = None
        if body.pricing_mode:
            config = PricingConfig.from_values(body.pricing_mode, body.markup_amount, body.multiplier)
            pricing = get_pricing_summary(product.variants, config)
    except (SourceCatalogError, ShopifyClientError, InvalidConfig) as e:
        raise http_error(e) from e

    already_imported = await db.is_product_already_imported(shop.shop_domain, product.id)

    return FetchResponse(product=product, already_imported=already_imported, pricing=pricing)


@router.post("/import", response_model=ImportResponse)
async def import_single_product(
    body: ImportRequest,
    shop: Shop = Depends(get_current_shop),
    db: SQLiteDatabase = Depends(get_db),
    source_client: StorefrontClient = Depends(get_source_client),
    catalog_factory: CatalogFactory = Depends(get_catalog_factory),
):
    """Import one product by URL."""
    try:
        config = body.pricing_config()
        async with catalog_factory(shop) as catalog:
            result = await import_product(
                db,
                shop.shop_domain,
                body.url,
                config,
                catalog,
                body.status,
                source_client=source_client,
                collection_id=body.collection_id,
            )
    except (InvalidConfig, ProductImportError, ShopifyClientError) as e:
        raise http_error(e) from e

    product = result.product
    if body.sync_enabled:
        product = await db.set_sync_enabled(product.id, True)

    return ImportResponse(
        product=product,
        degraded=result.degraded,
        variant_errors=result.variant_errors,
        published=result.published,
        added_to_collection=result.added_to_collection,
    )


@router.get("", response_model=ProductListResponse)
async def list_imported_products(
    status: Optional[ProductStatus] = Query(None),
    source_shop: Optional[str] = Query(None),
    pricing_mode: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=MAX_PAGE_SIZE),
    shop: Shop = Depends(get_current_shop),
    db: SQLiteDatabase = Depends(get_db),
):
    """Import history of the calling shop."""
    products, total = await db.get_imported_products(
        shop.shop_domain,
        status=status,
        source_shop=source_shop or None,
        pricing_mode=pricing_mode or None,
        search=search or None,
        limit=limit,
        offset=(page - 1) * limit,
    )

    return ProductListResponse(
        products=products,
        total=total,
        page=page,
        limit=limit,
        total_pages=(total + limit - 1) // limit,
        source_shops=await db.get_unique_source_shops(shop.shop_domain),
    )


@router.get("/stats")
async def product_stats(
    shop: Shop = Depends(get_current_shop),
    db: SQLiteDatabase = Depends(get_db),
):
    """Counts of imported products per status."""
    return await db.get_product_stats(shop.shop_domain)


@router.get("/{product_id}", response_model=ImportedProduct)
async def get_imported_product(
    product_id: str,
    shop: Shop = Depends(get_current_shop),
    db: SQLiteDatabase = Depends(get_db),
):
    return await _get_own_product(db, shop, product_id)


@router.post("/{product_id}/sync", response_model=SyncResponse)
async def sync_single_product(
    product_id: str,
    shop: Shop = Depends(get_current_shop),
    db: SQLiteDatabase = Depends(get_db),
    source_client: StorefrontClient = Depends(get_source_client),
    catalog_factory: CatalogFactory = Depends(get_catalog_factory),
):
    """Sync the prices of one imported product now."""
    product = await _get_own_product(db, shop, product_id)

    async with catalog_factory(shop) as catalog:
        result = await sync_product(db, product, catalog, source_client)

    return SyncResponse(
        success=result.success,
        updated_variant_count=result.updated_variant_count,
        errors=result.errors,
        synced_at=result.synced_at,
    )


@router.post("/{product_id}/sync-enabled", response_model=ImportedProduct)
async def set_sync_enabled(
    product_id: str,
    body: SyncEnabledRequest,
    shop: Shop = Depends(get_current_shop),
    db: SQLiteDatabase = Depends(get_db),
):
    """Turn automatic sync on or off for one product."""
    await _get_own_product(db, shop, product_id)
    return await db.set_sync_enabled(product_id, body.enabled)


@router.post("/{product_id}/status", response_model=ImportedProduct)
async def set_product_status(
    product_id: str,
    body: StatusRequest,
    shop: Shop = Depends(get_current_shop),
    db: SQLiteDatabase = Depends(get_db),
):
    """Record a lifecycle status change of an imported product."""
    await _get_own_product(db, shop, product_id)

    try:
        status = ProductStatus(body.status.lower())
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid status: {body.status}")

    return await db.set_product_status(product_id, status)


@router.delete("/{product_id}")
async def delete_imported_product(
    product_id: str,
    shop: Shop = Depends(get_current_shop),
    db: SQLiteDatabase = Depends(get_db),
):
    """Forget an import. The destination product itself is kept."""
    await _get_own_product(db, shop, product_id)
    await db.delete_imported_product(product_id)
    return {"deleted": True, "id": product_id}
