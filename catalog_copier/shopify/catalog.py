"""
Destination catalog operations.

Wraps ShopifyClient with the product creation, variant and publishing
mutations used by imports and syncs. Every mutation result is parsed into a
typed object so field-level ``userErrors`` stay separate from transport
failures, which are raised as ShopifyClientError.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import httpx

from .client import ShopifyClient
from .mutations import (
    COLLECTION_ADD_PRODUCTS,
    PRODUCT_CREATE,
    PRODUCT_VARIANTS_BULK_CREATE,
    PRODUCT_VARIANTS_BULK_UPDATE,
    PUBLISHABLE_PUBLISH,
)
from .queries import PRODUCT_DETAILS_QUERY, PRODUCT_VARIANTS_QUERY, PUBLICATIONS_QUERY

logger = logging.getLogger(__name__)

ONLINE_STORE_PUBLICATION = "Online Store"


@dataclass
class UserError:
    """Field-level validation error reported by a mutation."""

    message: str
    field: Optional[List[str]] = None

    def __str__(self) -> str:
        if self.field:
            return f"{'.'.join(self.field)}: {self.message}"
        return self.message


@dataclass
class DestinationVariant:
    id: str
    price: str
    options: List[Tuple[str, str]] = field(default_factory=list)


@dataclass
class DestinationProduct:
    """A product as it exists in the destination catalog."""

    id: str
    handle: str
    title: str
    media_ids: List[str] = field(default_factory=list)
    variants: List[DestinationVariant] = field(default_factory=list)


@dataclass
class ProductCreateResult:
    product: Optional[DestinationProduct]
    user_errors: List[UserError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.product is not None and not self.user_errors


@dataclass
class VariantBulkResult:
    variants: List[DestinationVariant] = field(default_factory=list)
    user_errors: List[UserError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.user_errors


def format_user_errors(errors: List[UserError]) -> str:
    return "; ".join(str(e) for e in errors)


def _parse_user_errors(payload: Optional[Dict[str, Any]]) -> List[UserError]:
    return [
        UserError(message=e.get("message", str(e)), field=e.get("field"))
        for e in (payload or {}).get("userErrors") or []
    ]


def _parse_variant(node: Dict[str, Any]) -> DestinationVariant:
    return DestinationVariant(
        id=node["id"],
        price=str(node.get("price") or "0"),
        options=[(o["name"], o["value"]) for o in node.get("selectedOptions") or []],
    )


def _parse_product(node: Optional[Dict[str, Any]]) -> Optional[DestinationProduct]:
    if not node:
        return None
    return DestinationProduct(
        id=node["id"],
        handle=node.get("handle") or "",
        title=node.get("title") or "",
        media_ids=[m["id"] for m in (node.get("media") or {}).get("nodes", [])],
        variants=[_parse_variant(v) for v in (node.get("variants") or {}).get("nodes", [])],
    )


class DestinationCatalog:
    """
    Product catalog of the merchant's own shop.
    """

    def __init__(self, client: ShopifyClient):
        self.client = client
        self._online_store_id: Optional[str] = None

    @classmethod
    def from_credentials(
        cls,
        shop_domain: str,
        access_token: str,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> "DestinationCatalog":
        return cls(ShopifyClient(shop_domain, access_token, http_client=http_client))

    @property
    def shop_domain(self) -> str:
        return self.client.shop_domain

    async def close(self) -> None:
        await self.client.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def create_product(
        self,
        product_input: Dict[str, Any],
        media: Optional[List[Dict[str, Any]]] = None,
    ) -> ProductCreateResult:
        """
        Create a product with its options and external media.

        Args:
            product_input: ProductCreateInput fields
            media: CreateMediaInput list (external URLs, not uploads)
        """
        data = await self.client.execute(
            PRODUCT_CREATE,
            variables={"product": product_input, "media": media or []},
            retry_on_request_error=False,
        )
        payload = data.get("productCreate") or {}
        result = ProductCreateResult(
            product=_parse_product(payload.get("product")),
            user_errors=_parse_user_errors(payload),
        )

        if result.product:
            logger.info(f"Created product {result.product.id} ({result.product.handle})")
        return result

    async def bulk_create_variants(
        self,
        product_id: str,
        variants: List[Dict[str, Any]],
        remove_standalone: bool = True,
    ) -> VariantBulkResult:
        """Create variants; by default the placeholder variant is replaced."""
        variables = {"productId": product_id, "variants": variants}
        if remove_standalone:
            variables["strategy"] = "REMOVE_STANDALONE_VARIANT"

        data = await self.client.execute(
            PRODUCT_VARIANTS_BULK_CREATE, variables=variables, retry_on_request_error=False
        )
        payload = data.get("productVariantsBulkCreate") or {}
        return VariantBulkResult(
            variants=[_parse_variant(v) for v in payload.get("productVariants") or []],
            user_errors=_parse_user_errors(payload),
        )

    async def bulk_update_variants(
        self,
        product_id: str,
        variants: List[Dict[str, Any]],
    ) -> VariantBulkResult:
        """
        Update several variants of one product in a single call.

        Args:
            product_id: Product GID
            variants: Each has "id" plus the fields to change ("price", "compareAtPrice")
        """
        data = await self.client.execute(
            PRODUCT_VARIANTS_BULK_UPDATE,
            variables={"productId": product_id, "variants": variants},
        )
        payload = data.get("productVariantsBulkUpdate") or {}
        result = VariantBulkResult(
            variants=[_parse_variant(v) for v in payload.get("productVariants") or []],
            user_errors=_parse_user_errors(payload),
        )

        if result.user_errors:
            logger.warning(
                f"Variant update for {product_id} rejected: {format_user_errors(result.user_errors)}"
            )
        else:
            logger.debug(f"Updated {len(variants)} variants for {product_id}")
        return result

    async def get_product(self, product_id: str) -> Optional[DestinationProduct]:
        """Fetch a product with its authoritative variant ids and prices."""
        data = await self.client.execute(PRODUCT_VARIANTS_QUERY, variables={"id": product_id})
        return _parse_product(data.get("product"))

    async def fetch_product_details(self, product_id: str) -> Optional[Dict[str, Any]]:
        """Raw product node for reading a product through the Admin API."""
        data = await self.client.execute(PRODUCT_DETAILS_QUERY, variables={"id": product_id})
        return data.get("product")

    async def _get_online_store_publication(self) -> Optional[str]:
        if self._online_store_id is None:
            data = await self.client.execute(PUBLICATIONS_QUERY)
            for node in (data.get("publications") or {}).get("nodes", []):
                if node.get("name") == ONLINE_STORE_PUBLICATION:
                    self._online_store_id = node["id"]
                    break
        return self._online_store_id

    async def publish_to_online_store(self, product_id: str) -> List[UserError]:
        """
        Publish a product to the Online Store sales channel.

        Returns:
            User errors; a single error if the channel is not installed
        """
        publication_id = await self._get_online_store_publication()
        if not publication_id:
            return [UserError(message=f"No '{ONLINE_STORE_PUBLICATION}' publication found")]

        data = await self.client.execute(
            PUBLISHABLE_PUBLISH,
            variables={"id": product_id, "input": [{"publicationId": publication_id}]},
        )
        return _parse_user_errors(data.get("publishablePublish"))

    async def add_to_collection(self, collection_id: str, product_id: str) -> List[UserError]:
        data = await self.client.execute(
            COLLECTION_ADD_PRODUCTS,
            variables={"id": collection_id, "productIds": [product_id]},
        )
        return _parse_user_errors(data.get("collectionAddProducts"))
