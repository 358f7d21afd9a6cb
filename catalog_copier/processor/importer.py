"""
Product importer.

Copies one source product into the destination catalog and records the
source -> destination variant mapping used by later syncs.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Union

from ..db import ImportedProduct, ProductStatus, SQLiteDatabase, VariantMapping
from ..shopify import (
    DestinationCatalog,
    DestinationProduct,
    DestinationVariant,
    SourceCatalogError,
    SourceProduct,
    StorefrontClient,
    format_user_errors,
)
from .pricing import (
    InvalidConfig,
    PricingConfig,
    compute_destination_price,
    format_price,
    validate_pricing_config,
)

logger = logging.getLogger(__name__)

TARGET_STATUSES = ("ACTIVE", "DRAFT", "ARCHIVED")


class ProductImportError(Exception):
    """Base exception for a failed import."""
    pass


class SourceFetchFailed(ProductImportError):
    """The source product could not be fetched."""
    pass


class DestinationValidationFailed(ProductImportError):
    """The destination rejected the product with field-level errors."""

    def __init__(self, message: str, user_errors: Optional[list] = None,
                 destination_product_id: Optional[str] = None):
        super().__init__(message)
        self.user_errors = user_errors or []
        self.destination_product_id = destination_product_id


class PersistenceFailed(ProductImportError):
    """The product exists at the destination but its record was not saved."""

    def __init__(self, message: str, destination_product_id: str):
        super().__init__(message)
        self.destination_product_id = destination_product_id


class AlreadyImported(ProductImportError):
    """The shop already imported this source product."""

    def __init__(self, message: str, imported_product_id: Optional[str] = None):
        super().__init__(message)
        self.imported_product_id = imported_product_id


@dataclass
class ImportResult:
    """
    Outcome of a successful import.

    ``variant_errors`` is non-empty when some variants were rejected by the
    destination; the product then exists with fewer variants than the source.
    """

    product: ImportedProduct
    source_product: SourceProduct
    destination: DestinationProduct
    variant_errors: List[str] = field(default_factory=list)
    published: bool = False
    added_to_collection: Optional[bool] = None

    @property
    def degraded(self) -> bool:
        return bool(self.variant_errors)

    @property
    def destination_product_id(self) -> str:
        return self.product.destination_product_id


def _is_default_option(product: SourceProduct) -> bool:
    """True for the implicit "Title / Default Title" option of single-variant products."""
    return (
        len(product.options) == 1
        and product.options[0].name == "Title"
        and product.options[0].values in (["Default Title"], [])
    )


def has_variant_options(product: SourceProduct) -> bool:
    return bool(product.options) and not _is_default_option(product)


def build_product_input(source: SourceProduct, status: str) -> Dict[str, Any]:
    """ProductCreateInput for a source product."""
    product_input: Dict[str, Any] = {
        "title": source.title,
        "descriptionHtml": source.description_html or source.description,
        "status": status,
        "tags": list(dict.fromkeys(source.tags)),
    }
    if source.vendor:
        product_input["vendor"] = source.vendor
    if source.product_type:
        product_input["productType"] = source.product_type

    if has_variant_options(source):
        product_input["productOptions"] = [
            {"name": option.name, "values": [{"name": value} for value in option.values]}
            for option in source.options[:3]
        ]

    return product_input


def build_media_input(source: SourceProduct) -> List[Dict[str, Any]]:
    """External media descriptors; the destination downloads the images itself."""
    media = []
    for image in source.images:
        descriptor = {"originalSource": image.url, "mediaContentType": "IMAGE"}
        if image.alt_text:
            descriptor["alt"] = image.alt_text
        media.append(descriptor)
    return media


def _inventory_item(variant) -> Dict[str, Any]:
    item: Dict[str, Any] = {"requiresShipping": variant.requires_shipping}
    if variant.sku:
        item["sku"] = variant.sku
    if variant.weight is not None:
        item["measurement"] = {
            "weight": {"value": float(variant.weight), "unit": variant.weight_unit}
        }
    return item


def build_variants_input(
    source: SourceProduct,
    config: PricingConfig,
    media_ids: Sequence[str],
) -> List[Dict[str, Any]]:
    """ProductVariantsBulkInput list, in source variant order."""
    variants = []
    for variant in source.variants:
        variant_input: Dict[str, Any] = {
            "price": format_price(compute_destination_price(variant.price, config)),
            "taxable": variant.taxable,
            "optionValues": [
                {"optionName": name, "name": value} for name, value in variant.options
            ],
            "inventoryItem": _inventory_item(variant),
        }
        if variant.compare_at_price:
            variant_input["compareAtPrice"] = format_price(
                compute_destination_price(variant.compare_at_price, config)
            )
        if variant.barcode:
            variant_input["barcode"] = variant.barcode
        if variant.image_index is not None and variant.image_index < len(media_ids):
            variant_input["mediaId"] = media_ids[variant.image_index]
        variants.append(variant_input)
    return variants


def pair_variants(
    source: SourceProduct,
    destination_variants: List[DestinationVariant],
) -> List[tuple]:
    """
    Pair destination variants with the source variants they were created from.

    Pairs by option values, falling back to position for variants whose
    options do not identify them (e.g. the default variant).
    """
    by_options = {tuple(v.options): v for v in destination_variants if v.options}
    used = set()
    pairs = []

    for index, source_variant in enumerate(source.variants):
        if source_variant.options and by_options:
            match = by_options.get(tuple(source_variant.options))
        elif index < len(destination_variants):
            match = destination_variants[index]
        else:
            match = None
        if match is None or match.id in used:
            continue
        used.add(match.id)
        pairs.append((source_variant, match))

    return pairs


async def resolve_source_product(
    source: Union[SourceProduct, str],
    source_client: Optional[StorefrontClient],
    catalog: Optional[DestinationCatalog] = None,
) -> SourceProduct:
    """
    Raises:
        SourceFetchFailed: If the URL cannot be fetched
    """
    if isinstance(source, SourceProduct):
        return source

    owns_client = source_client is None
    client = source_client or StorefrontClient()
    try:
        return await client.fetch_product(source, catalog=catalog)
    except SourceCatalogError as e:
        raise SourceFetchFailed(f"Could not fetch {source}: {e}") from e
    finally:
        if owns_client:
            await client.close()


async def import_product(
    db: SQLiteDatabase,
    shop: str,
    source: Union[SourceProduct, str],
    pricing_config: PricingConfig,
    catalog: DestinationCatalog,
    status: str = "ACTIVE",
    *,
    source_client: Optional[StorefrontClient] = None,
    collection_id: Optional[str] = None,
) -> ImportResult:
    """
    Import one product into the destination shop.

    Args:
        db: Database
        shop: Destination shop domain
        source: A fetched SourceProduct, or its URL
        pricing_config: Rule applied to every variant price
        catalog: Destination catalog of ``shop``
        status: ACTIVE, DRAFT or ARCHIVED
        source_client: Client used when ``source`` is a URL
        collection_id: Collection GID to add the new product to

    Returns:
        ImportResult (possibly degraded, see ``variant_errors``)

    Raises:
        InvalidConfig: If the pricing config or status is invalid
        SourceFetchFailed: If the source product cannot be fetched
        AlreadyImported: If the shop already imported this source product
        DestinationValidationFailed: If the destination rejects the product
        PersistenceFailed: If the product was created but not recorded
        ShopifyClientError: On destination transport failures
    """
    validate_pricing_config(pricing_config)
    status = status.upper()
    if status not in TARGET_STATUSES:
        raise InvalidConfig(f"Invalid product status: {status}")

    # Step 1: resolve the source product
    source_product = await resolve_source_product(source, source_client, catalog)
    source_url = source if isinstance(source, str) else source_product.source_url
    source_shop = source_product.shop_domain or ""

    existing = await db.get_imported_product_by_source(shop, source_product.id)
    if existing:
        raise AlreadyImported(
            f"'{source_product.title}' was already imported",
            imported_product_id=existing.id,
        )

    logger.info(f"Importing '{source_product.title}' from {source_shop} into {shop}")

    # Step 2-3: create the product with options and media
    created = await catalog.create_product(
        build_product_input(source_product, status),
        build_media_input(source_product),
    )
    if not created.ok:
        message = format_user_errors(created.user_errors) or "No product returned"
        raise DestinationValidationFailed(
            f"Failed to create product: {message}",
            user_errors=created.user_errors,
            destination_product_id=created.product.id if created.product else None,
        )

    destination = created.product
    variant_errors: List[str] = []

    if len(source_product.variants) > 1 and has_variant_options(source_product):
        # Step 4: create all variants, replacing the placeholder one
        result = await catalog.bulk_create_variants(
            destination.id,
            build_variants_input(source_product, pricing_config, destination.media_ids),
        )
        if result.user_errors:
            variant_errors = [str(e) for e in result.user_errors]
            logger.warning(
                f"Some variants of {destination.id} were not created: "
                f"{format_user_errors(result.user_errors)}"
            )
    elif source_product.variants and destination.variants:
        # Step 5: price the variant created with the product
        variant_input = build_variants_input(
            source_product, pricing_config, destination.media_ids
        )[0]
        variant_input.pop("optionValues", None)
        variant_input["id"] = destination.variants[0].id

        result = await catalog.bulk_update_variants(destination.id, [variant_input])
        if result.user_errors:
            raise DestinationValidationFailed(
                f"Failed to set price of {destination.id}: {format_user_errors(result.user_errors)}",
                user_errors=result.user_errors,
                destination_product_id=destination.id,
            )

    # Step 6: authoritative variants, then publish
    refreshed = await catalog.get_product(destination.id)
    if refreshed:
        destination = refreshed

    published = False
    try:
        publish_errors = await catalog.publish_to_online_store(destination.id)
        if publish_errors:
            logger.warning(f"Could not publish {destination.id}: {format_user_errors(publish_errors)}")
        else:
            published = True
    except Exception as e:
        logger.warning(f"Could not publish {destination.id}: {e}")

    # Step 7: persist the mapping
    mappings = [
        VariantMapping(
            source_variant_id=source_variant.id,
            destination_variant_id=destination_variant.id,
            title=source_variant.title,
            sku=source_variant.sku,
            source_price=source_variant.price,
            destination_price=compute_destination_price(source_variant.price, pricing_config),
        )
        for source_variant, destination_variant in pair_variants(source_product, destination.variants)
    ]

    record = ImportedProduct(
        shop=shop,
        source_shop=source_shop,
        source_product_id=source_product.id,
        source_product_handle=source_product.handle,
        source_product_url=source_url or "",
        destination_product_id=destination.id,
        destination_handle=destination.handle,
        title=source_product.title,
        status=ProductStatus(status.lower()),
        pricing_mode=pricing_config.mode,
        markup_amount=pricing_config.markup_amount,
        multiplier=pricing_config.multiplier,
        variants=mappings,
    )

    try:
        record = await db.create_imported_product(record)
    except Exception as e:
        logger.error(f"Product {destination.id} created but not recorded: {e}")
        raise PersistenceFailed(
            f"Product {destination.id} was created but could not be saved: {e}",
            destination_product_id=destination.id,
        ) from e

    # Step 8: optional collection
    added_to_collection = None
    if collection_id:
        added_to_collection = False
        try:
            collection_errors = await catalog.add_to_collection(collection_id, destination.id)
            if collection_errors:
                logger.warning(
                    f"Could not add {destination.id} to {collection_id}: "
                    f"{format_user_errors(collection_errors)}"
                )
            else:
                added_to_collection = True
        except Exception as e:
            logger.warning(f"Could not add {destination.id} to {collection_id}: {e}")

    logger.info(
        f"Imported '{record.title}' as {destination.id} with {len(mappings)} variants"
        + (f" ({len(variant_errors)} variant errors)" if variant_errors else "")
    )

    return ImportResult(
        product=record,
        source_product=source_product,
        destination=destination,
        variant_errors=variant_errors,
        published=published,
        added_to_collection=added_to_collection,
    )
