"""
Price sync for imported products.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from ..db import ImportedProduct, SQLiteDatabase, VariantMapping, utcnow
from ..shopify import (
    DestinationCatalog,
    ShopifyClientError,
    SourceCatalogError,
    SourceVariant,
    StorefrontClient,
    format_user_errors,
)
from .pricing import (
    PricingConfig,
    compute_destination_price,
    format_price,
    price_changed,
    to_decimal,
)

logger = logging.getLogger(__name__)


class SyncError(Exception):
    """Error during sync process."""
    pass


@dataclass
class SyncResult:
    """Result of syncing one imported product."""
    product_id: str
    success: bool
    updated_variant_count: int = 0
    errors: List[str] = field(default_factory=list)
    synced_at: Optional[datetime] = None


@dataclass
class ShopSyncResult:
    """Result of syncing every sync-enabled product of a shop."""
    shop: str
    synced: int = 0
    failed: int = 0
    updated_variants: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.failed == 0


def _variant_update(
    mapping: VariantMapping,
    source_variant: SourceVariant,
    config: PricingConfig,
) -> dict:
    """Update the mapping in memory and return the destination variant input."""
    mapping.source_price = to_decimal(source_variant.price)
    mapping.destination_price = compute_destination_price(source_variant.price, config)
    mapping.updated_at = utcnow()

    update = {
        "id": mapping.destination_variant_id,
        "price": format_price(mapping.destination_price),
    }
    if source_variant.compare_at_price:
        update["compareAtPrice"] = format_price(
            compute_destination_price(source_variant.compare_at_price, config)
        )
    return update


async def _sync_product(
    db: SQLiteDatabase,
    product: ImportedProduct,
    catalog: DestinationCatalog,
    source_client: StorefrontClient,
) -> SyncResult:
    """
    Raises:
        SyncError: If the source cannot be fetched or the destination rejects the update
    """
    config = PricingConfig.from_record(product)

    # Step 1: current source state
    try:
        source = await source_client.fetch_product(product.source_product_url, catalog=catalog)
    except SourceCatalogError as e:
        raise SyncError(f"Could not fetch source product: {e}") from e

    current: Dict[str, SourceVariant] = {v.id: v for v in source.variants}

    # Step 2: detect drift per mapping
    errors: List[str] = []
    changed: List[VariantMapping] = []
    updates: List[dict] = []

    for mapping in product.variants:
        source_variant = current.get(mapping.source_variant_id)
        if source_variant is None:
            errors.append(f"VariantMissing: source variant {mapping.source_variant_id} ({mapping.title})")
            continue

        if not price_changed(source_variant.price, mapping.source_price):
            continue

        logger.debug(
            f"Variant {mapping.source_variant_id}: {mapping.source_price} -> {source_variant.price}"
        )
        updates.append(_variant_update(mapping, source_variant, config))
        changed.append(mapping)

    # Step 3: one destination call for all changed variants
    if updates:
        try:
            result = await catalog.bulk_update_variants(product.destination_product_id, updates)
        except ShopifyClientError as e:
            raise SyncError(f"Destination update failed: {e}") from e

        if result.user_errors:
            raise SyncError(f"Destination rejected update: {format_user_errors(result.user_errors)}")

        await db.update_variant_prices(changed)

    synced_at = utcnow()
    await db.update_imported_product(product.id, last_sync_at=synced_at)
    product.last_sync_at = synced_at

    if errors:
        logger.warning(f"Synced '{product.title}' with {len(errors)} missing variants")
    logger.info(f"Synced '{product.title}': {len(updates)} variants updated")

    return SyncResult(
        product_id=product.id,
        success=True,
        updated_variant_count=len(updates),
        errors=errors,
        synced_at=synced_at,
    )


async def sync_product(
    db: SQLiteDatabase,
    product: ImportedProduct,
    catalog: DestinationCatalog,
    source_client: Optional[StorefrontClient] = None,
) -> SyncResult:
    """
    Bring destination prices of one imported product in line with its source.

    Only variants whose source price moved by at least one cent are updated,
    all in a single destination call. Source variants that disappeared are
    reported in ``errors`` without failing the sync.
    """
    owns_client = source_client is None
    client = source_client or StorefrontClient()

    try:
        return await _sync_product(db, product, catalog, client)
    except SyncError as e:
        logger.error(f"Sync failed for '{product.title}': {e}")
        return SyncResult(product_id=product.id, success=False, errors=[str(e)])
    except Exception as e:
        logger.exception(f"Unexpected error syncing '{product.title}'")
        return SyncResult(product_id=product.id, success=False, errors=[f"Unexpected error: {e}"])
    finally:
        if owns_client:
            await client.close()


async def sync_all_products_for_shop(
    db: SQLiteDatabase,
    shop: str,
    catalog: DestinationCatalog,
    source_client: Optional[StorefrontClient] = None,
    products: Optional[List[ImportedProduct]] = None,
) -> ShopSyncResult:
    """
    Sync every sync-enabled product of a shop, one after the other.

    Args:
        products: Subset to sync; defaults to all sync-enabled products
    """
    if products is None:
        products = await db.get_products_with_sync_enabled(shop)

    summary = ShopSyncResult(shop=shop)
    if not products:
        logger.info(f"No products to sync for {shop}")
        return summary

    logger.info(f"Syncing {len(products)} products for {shop}")

    owns_client = source_client is None
    client = source_client or StorefrontClient()

    try:
        for product in products:
            result = await sync_product(db, product, catalog, client)
            summary.updated_variants += result.updated_variant_count

            if result.success:
                summary.synced += 1
            else:
                summary.failed += 1

            if result.errors:
                summary.errors.append(f"{product.title}: {', '.join(result.errors)}")
    finally:
        if owns_client:
            await client.close()

    logger.info(
        f"Sync for {shop} finished: {summary.synced} synced, {summary.failed} failed, "
        f"{summary.updated_variants} variants updated"
    )
    return summary
