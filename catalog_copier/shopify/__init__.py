"""
Shopify API module.
"""

from .client import (
    ShopifyClient,
    ShopifyClientError,
    ShopifyAuthError,
    ShopifyRateLimitError,
)
from .catalog import (
    DestinationCatalog,
    DestinationProduct,
    DestinationVariant,
    ProductCreateResult,
    VariantBulkResult,
    UserError,
    format_user_errors,
)
from .storefront import (
    StorefrontClient,
    SourceCatalogError,
    InvalidUrl,
    NotFound,
    UpstreamError,
    EmptyResult,
    SourceProduct,
    SourceVariant,
    SourceImage,
    SourceOption,
    ProductSummary,
    ParsedProductUrl,
    parse_product_url,
    parse_shop_domain,
    parse_collection_url,
    build_product_url,
    extract_id_from_gid,
)

__all__ = [
    "ShopifyClient",
    "ShopifyClientError",
    "ShopifyAuthError",
    "ShopifyRateLimitError",
    "DestinationCatalog",
    "DestinationProduct",
    "DestinationVariant",
    "ProductCreateResult",
    "VariantBulkResult",
    "UserError",
    "format_user_errors",
    "StorefrontClient",
    "SourceCatalogError",
    "InvalidUrl",
    "NotFound",
    "UpstreamError",
    "EmptyResult",
    "SourceProduct",
    "SourceVariant",
    "SourceImage",
    "SourceOption",
    "ProductSummary",
    "ParsedProductUrl",
    "parse_product_url",
    "parse_shop_domain",
    "parse_collection_url",
    "build_product_url",
    "extract_id_from_gid",
]
