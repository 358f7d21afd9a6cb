"""
Source catalog client.

Reads products from other Shopify storefronts through their public JSON
endpoints, or through the Admin API when given an admin product URL and an
authenticated client. Both transports are normalized into ``SourceProduct``.
"""

import asyncio
import html
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlsplit

import httpx

from ..config import settings

logger = logging.getLogger(__name__)


class SourceCatalogError(Exception):
    """Base exception for source storefront errors."""
    pass


class InvalidUrl(SourceCatalogError):
    """URL is not a recognizable product, shop or collection URL."""
    pass


class NotFound(SourceCatalogError):
    """Remote product, shop or collection does not exist."""
    pass


class UpstreamError(SourceCatalogError):
    """Remote storefront failed or answered with an unusable payload."""
    pass


class EmptyResult(SourceCatalogError):
    """A collection resolved but contains no products."""
    pass


# Shopify allows at most three options per product
MAX_OPTIONS = 3

_HOST = r"(?:www\.)?([a-z0-9-]+(?:\.[a-z0-9-]+)+)"
PRODUCT_URL_RE = re.compile(
    r"^(?:https?://)?" + _HOST
    + r"(?::\d+)?/(?:collections/[^/?#]+/)?products/([a-z0-9_\-]+)",
    re.IGNORECASE,
)
ADMIN_PRODUCT_URL_RE = re.compile(
    r"^(?:https?://)?admin\.shopify\.com/store/([a-z0-9-]+)/products/(\d+)",
    re.IGNORECASE,
)
LEGACY_ADMIN_PRODUCT_URL_RE = re.compile(
    r"^(?:https?://)?([a-z0-9-]+\.myshopify\.com)/admin/products/(\d+)",
    re.IGNORECASE,
)
COLLECTION_PATH_RE = re.compile(r"/collections/([^/?#]+)")
_TAG_RE = re.compile(r"<[^>]+>")

WEIGHT_UNITS = {
    "kg": "KILOGRAMS",
    "g": "GRAMS",
    "lb": "POUNDS",
    "oz": "OUNCES",
}


@dataclass
class ParsedProductUrl:
    """Shop and product reference extracted from a product URL."""

    shop: str
    handle: Optional[str] = None
    product_id: Optional[str] = None
    is_admin_url: bool = False


@dataclass
class SourceImage:
    id: Optional[str]
    url: str
    alt_text: Optional[str] = None


@dataclass
class SourceOption:
    name: str
    values: List[str] = field(default_factory=list)


@dataclass
class SourceVariant:
    """One variant of a source product. Prices stay strings."""

    id: str
    title: str
    price: str
    compare_at_price: Optional[str] = None
    sku: Optional[str] = None
    barcode: Optional[str] = None
    inventory_quantity: int = 0
    weight: Optional[float] = None
    weight_unit: str = "KILOGRAMS"
    requires_shipping: bool = True
    taxable: bool = True
    options: List[Tuple[str, str]] = field(default_factory=list)
    image_index: Optional[int] = None  # position in SourceProduct.images


@dataclass
class SourceProduct:
    """Snapshot of a remote product at fetch time."""

    id: str
    handle: str
    title: str
    description: str = ""
    description_html: str = ""
    vendor: Optional[str] = None
    product_type: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    images: List[SourceImage] = field(default_factory=list)
    options: List[SourceOption] = field(default_factory=list)
    variants: List[SourceVariant] = field(default_factory=list)
    shop_domain: Optional[str] = None
    source_url: Optional[str] = None


@dataclass
class ProductSummary:
    """Lightweight listing entry used to pick products for bulk import."""

    id: str
    handle: str
    title: str
    vendor: str = ""
    product_type: str = ""
    price: str = "0"
    image: Optional[str] = None
    variants_count: int = 0


# ===== URL parsing =====

def extract_id_from_gid(gid: Any) -> str:
    """'gid://shopify/Product/123' -> '123'; plain ids pass through."""
    return str(gid).rstrip("/").split("/")[-1]


def _split_url(url: str):
    clean_url = url.strip()
    if not clean_url.lower().startswith(("http://", "https://")):
        clean_url = f"https://{clean_url}"
    try:
        return urlsplit(clean_url)
    except ValueError:
        return None


def _clean_host(hostname: Optional[str]) -> Optional[str]:
    if not hostname:
        return None
    host = hostname.lower()
    if host.startswith("www."):
        host = host[4:]
    # Must be dot-qualified
    if "." not in host or host.startswith(".") or host.endswith("."):
        return None
    return host


def parse_product_url(url: str) -> Optional[ParsedProductUrl]:
    """
    Parse a storefront or admin product URL.

    Args:
        url: e.g. "https://shop.com/products/t-shirt" or
            "https://admin.shopify.com/store/acme/products/123"

    Returns:
        ParsedProductUrl, or None if the URL matches neither pattern
    """
    clean_url = url.strip()

    admin_match = ADMIN_PRODUCT_URL_RE.match(clean_url)
    if admin_match:
        return ParsedProductUrl(
            shop=f"{admin_match.group(1).lower()}.myshopify.com",
            product_id=admin_match.group(2),
            is_admin_url=True,
        )

    legacy_match = LEGACY_ADMIN_PRODUCT_URL_RE.match(clean_url)
    if legacy_match:
        return ParsedProductUrl(
            shop=legacy_match.group(1).lower(),
            product_id=legacy_match.group(2),
            is_admin_url=True,
        )

    storefront_match = PRODUCT_URL_RE.match(clean_url)
    if storefront_match:
        return ParsedProductUrl(
            shop=storefront_match.group(1).lower(),
            handle=storefront_match.group(2).lower(),
        )

    return None


def parse_shop_domain(url: str) -> Optional[str]:
    """
    Extract a shop domain from a URL or bare domain.

    Accepts "shop.com", "www.shop.com", "https://shop.myshopify.com/anything".
    """
    parts = _split_url(url)
    if parts is None:
        return None
    return _clean_host(parts.hostname)


def parse_collection_url(url: str) -> Optional[Tuple[str, str]]:
    """
    Extract (shop domain, collection handle) from a collection URL.

    Returns:
        Tuple, or None if the URL has no /collections/<handle> path
    """
    parts = _split_url(url)
    if parts is None:
        return None

    shop = _clean_host(parts.hostname)
    match = COLLECTION_PATH_RE.search(parts.path)
    if not shop or not match:
        return None

    return shop, match.group(1)


def build_product_url(shop_domain: str, handle: str) -> str:
    """Public storefront URL of a product."""
    return f"https://{shop_domain}/products/{handle}"


# ===== Payload normalization =====

def _html_to_text(value: Optional[str]) -> str:
    if not value:
        return ""
    return " ".join(html.unescape(_TAG_RE.sub(" ", value)).split())


def _parse_tags(value: Any) -> List[str]:
    if not value:
        return []
    if isinstance(value, str):
        return [t.strip() for t in value.split(",") if t.strip()]
    return [str(t).strip() for t in value if str(t).strip()]


def _optional_str(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


def _validate_product(product: SourceProduct) -> SourceProduct:
    """
    Check that every variant names one value per product option, in order,
    and that each value is allowed by its option.

    Raises:
        UpstreamError: If the payload is inconsistent
    """
    option_names = [option.name for option in product.options]
    allowed = {option.name: set(option.values) for option in product.options}

    for variant in product.variants:
        names = [name for name, _ in variant.options]
        if names != option_names:
            raise UpstreamError(
                f"Variant {variant.id} options {names} do not match product options {option_names}"
            )
        for name, value in variant.options:
            if value not in allowed[name]:
                raise UpstreamError(
                    f"Variant {variant.id} has value {value!r} not allowed for option {name!r}"
                )

    return product


def product_from_storefront_json(data: Dict[str, Any]) -> SourceProduct:
    """
    Normalize a /products/<handle>.json payload.

    Raises:
        UpstreamError: If required fields are missing
    """
    try:
        images = [
            SourceImage(
                id=str(img["id"]) if img.get("id") is not None else None,
                url=img["src"],
                alt_text=img.get("alt"),
            )
            for img in data.get("images") or []
        ]
        image_positions = {img.id: index for index, img in enumerate(images)}

        options = [
            SourceOption(name=opt["name"], values=[str(v) for v in opt.get("values") or []])
            for opt in data.get("options") or []
        ]

        variants = []
        for variant in data.get("variants") or []:
            values = [variant.get(f"option{i + 1}") for i in range(len(options))]
            unit = str(variant.get("weight_unit") or "kg").lower()
            image_id = variant.get("image_id")
            if image_id is None and isinstance(variant.get("featured_image"), dict):
                image_id = variant["featured_image"].get("id")

            variants.append(SourceVariant(
                id=str(variant["id"]),
                title=variant.get("title") or "",
                price=str(variant["price"]),
                compare_at_price=_optional_str(variant.get("compare_at_price")),
                sku=_optional_str(variant.get("sku")),
                barcode=_optional_str(variant.get("barcode")),
                inventory_quantity=int(variant.get("inventory_quantity") or 0),
                weight=variant.get("weight"),
                weight_unit=WEIGHT_UNITS.get(unit, "KILOGRAMS"),
                requires_shipping=bool(variant.get("requires_shipping", True)),
                taxable=bool(variant.get("taxable", True)),
                options=[
                    (option.name, str(value))
                    for option, value in zip(options, values)
                    if value is not None
                ],
                image_index=image_positions.get(str(image_id)) if image_id is not None else None,
            ))

        product = SourceProduct(
            id=str(data["id"]),
            handle=data["handle"],
            title=data["title"],
            description=_html_to_text(data.get("body_html")),
            description_html=data.get("body_html") or "",
            vendor=data.get("vendor"),
            product_type=data.get("product_type"),
            tags=_parse_tags(data.get("tags")),
            images=images,
            options=options,
            variants=variants,
        )
    except (KeyError, TypeError, ValueError) as e:
        raise UpstreamError(f"Malformed product payload: {e}") from e

    return _validate_product(product)


def product_from_admin_json(data: Dict[str, Any]) -> SourceProduct:
    """
    Normalize an Admin GraphQL ``product`` node.

    Raises:
        UpstreamError: If required fields are missing
    """
    try:
        images = [
            SourceImage(
                id=extract_id_from_gid(node["id"]) if node.get("id") else None,
                url=node["url"],
                alt_text=node.get("altText"),
            )
            for node in (data.get("images") or {}).get("nodes", [])
        ]
        image_positions = {img.id: index for index, img in enumerate(images)}

        variants = []
        for node in (data.get("variants") or {}).get("nodes", []):
            inventory_item = node.get("inventoryItem") or {}
            weight = ((inventory_item.get("measurement") or {}).get("weight")) or {}
            image = node.get("image") or {}

            variants.append(SourceVariant(
                id=extract_id_from_gid(node["id"]),
                title=node.get("title") or "",
                price=str(node["price"]),
                compare_at_price=_optional_str(node.get("compareAtPrice")),
                sku=_optional_str(node.get("sku")),
                barcode=_optional_str(node.get("barcode")),
                inventory_quantity=int(node.get("inventoryQuantity") or 0),
                weight=weight.get("value"),
                weight_unit=weight.get("unit") or "KILOGRAMS",
                requires_shipping=bool(inventory_item.get("requiresShipping", True)),
                taxable=bool(node.get("taxable", True)),
                options=[(o["name"], o["value"]) for o in node.get("selectedOptions") or []],
                image_index=(
                    image_positions.get(extract_id_from_gid(image["id"]))
                    if image.get("id") else None
                ),
            ))

        product = SourceProduct(
            id=extract_id_from_gid(data["id"]),
            handle=data["handle"],
            title=data["title"],
            description=data.get("description") or "",
            description_html=data.get("descriptionHtml") or "",
            vendor=data.get("vendor"),
            product_type=data.get("productType"),
            tags=_parse_tags(data.get("tags")),
            images=images,
            options=[
                SourceOption(name=o["name"], values=list(o.get("values") or []))
                for o in data.get("options") or []
            ],
            variants=variants,
        )
    except (KeyError, TypeError, ValueError) as e:
        raise UpstreamError(f"Malformed product payload: {e}") from e

    return _validate_product(product)


def summary_from_json(data: Dict[str, Any]) -> ProductSummary:
    variants = data.get("variants") or []
    images = data.get("images") or []
    return ProductSummary(
        id=str(data.get("id") or ""),
        handle=data.get("handle") or "",
        title=data.get("title") or "",
        vendor=data.get("vendor") or "",
        product_type=data.get("product_type") or "",
        price=str(variants[0].get("price") or "0") if variants else "0",
        image=images[0].get("src") if images else None,
        variants_count=len(variants),
    )


# ===== Client =====

class StorefrontClient:
    """
    Async client for public storefront product endpoints.

    Every request carries an explicit timeout; expiry is reported as
    UpstreamError like any other remote failure.
    """

    def __init__(
        self,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
        page_size: Optional[int] = None,
        page_delay: Optional[float] = None,
    ):
        """
        Args:
            http_client: Shared client, mainly for tests; created lazily otherwise
            timeout: Per-request timeout in seconds
            page_size: Listing page size (storefront maximum is 250)
            page_delay: Pause between listing pages in seconds
        """
        self.timeout = settings.source_request_timeout if timeout is None else timeout
        self.page_size = page_size or settings.listing_page_size
        self.page_delay = settings.listing_page_delay if page_delay is None else page_delay
        self._client = http_client
        self._owns_client = http_client is None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                follow_redirects=True,
                headers={
                    "Accept": "application/json",
                    "User-Agent": settings.source_user_agent,
                },
            )
            self._owns_client = True
        return self._client

    async def close(self) -> None:
        if self._owns_client and self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def _get_json(self, url: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        GET a JSON document.

        Raises:
            NotFound: On 404
            UpstreamError: On any other failure
        """
        client = await self._get_client()
        try:
            response = await client.get(url, params=params, timeout=self.timeout)
        except httpx.TimeoutException as e:
            raise UpstreamError(f"Timed out after {self.timeout}s: {url}") from e
        except httpx.RequestError as e:
            raise UpstreamError(f"Request error for {url}: {e}") from e

        if response.status_code == 404:
            raise NotFound(f"Not found: {url}")
        if not response.is_success:
            raise UpstreamError(f"HTTP {response.status_code} from {url}")

        try:
            payload = response.json()
        except ValueError as e:
            raise UpstreamError(f"Invalid JSON from {url}") from e

        if not isinstance(payload, dict):
            raise UpstreamError(f"Unexpected payload from {url}")
        return payload

    async def fetch_product(self, url: str, catalog=None) -> SourceProduct:
        """
        Fetch one product by its storefront or admin URL.

        Args:
            url: Product URL
            catalog: DestinationCatalog used for admin URLs

        Raises:
            InvalidUrl: If the URL cannot be used
            NotFound: If the product does not exist
            UpstreamError: For other remote failures
        """
        parsed = parse_product_url(url)
        if parsed is None:
            raise InvalidUrl(f"Not a Shopify product URL: {url}")

        if parsed.is_admin_url:
            if catalog is None:
                raise InvalidUrl("Admin product URLs require an authenticated client")
            gid = f"gid://shopify/Product/{parsed.product_id}"
            logger.info(f"Fetching {gid} through the Admin API")
            data = await catalog.fetch_product_details(gid)
            if not data:
                raise NotFound(f"Product not found: {gid}")
            product = product_from_admin_json(data)
        else:
            json_url = f"https://{parsed.shop}/products/{parsed.handle}.json"
            logger.info(f"Fetching {json_url}")
            payload = await self._get_json(json_url)
            if not payload.get("product"):
                raise UpstreamError(f"No product in response from {json_url}")
            product = product_from_storefront_json(payload["product"])

        product.shop_domain = parsed.shop
        product.source_url = url.strip()
        return product

    async def fetch_catalog_listing(
        self,
        shop_domain: str,
        collection_handle: Optional[str] = None,
    ) -> List[ProductSummary]:
        """
        List every product of a shop, or of one of its collections.

        Pages through products.json until a short page, pausing between
        pages. There is no cap on the total.

        Raises:
            NotFound: If the shop or collection does not resolve
            EmptyResult: If a collection has no products
            UpstreamError: For other remote failures
        """
        if collection_handle:
            url = f"https://{shop_domain}/collections/{collection_handle}/products.json"
            label = f"collection '{collection_handle}' on {shop_domain}"
        else:
            url = f"https://{shop_domain}/products.json"
            label = shop_domain

        logger.info(f"Fetching product listing from {label}")

        summaries: List[ProductSummary] = []
        page = 1

        while True:
            payload = await self._get_json(url, params={"limit": self.page_size, "page": page})
            products = payload.get("products")
            if not isinstance(products, list):
                raise UpstreamError(f"No product list in response from {url}")

            summaries.extend(summary_from_json(p) for p in products)
            logger.debug(f"Page {page}: {len(products)} products from {label}")

            if len(products) < self.page_size:
                break

            page += 1
            if self.page_delay > 0:
                await asyncio.sleep(self.page_delay)

        logger.info(f"Fetched {len(summaries)} products from {label}")

        if collection_handle and not summaries:
            raise EmptyResult(f"Collection '{collection_handle}' has no products")

        return summaries
