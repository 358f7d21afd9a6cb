"""
Shared fixtures: a real SQLite file, a fake source storefront served through
httpx.MockTransport, and an in-memory destination catalog.
"""

import copy
import re
from typing import Dict, List, Optional

import httpx
import pytest
import pytest_asyncio

from catalog_copier.db import SQLiteDatabase, Shop
from catalog_copier.processor import jobs
from catalog_copier.shopify import (
    DestinationProduct,
    DestinationVariant,
    ProductCreateResult,
    ShopifyClientError,
    StorefrontClient,
    UserError,
    VariantBulkResult,
)

SOURCE_SHOP = "source-shop.com"
DEST_SHOP = "mystore.myshopify.com"


def make_product_json(
    handle: str,
    prices: List[str],
    title: Optional[str] = None,
    product_id: int = 1000,
    option_name: str = "Size",
    compare_at: Optional[str] = None,
) -> dict:
    """A /products/<handle>.json payload with one option and one variant per price."""
    if len(prices) == 1:
        options = [{"name": "Title", "position": 1, "values": ["Default Title"]}]
        values = ["Default Title"]
    else:
        values = [f"V{i + 1}" for i in range(len(prices))]
        options = [{"name": option_name, "position": 1, "values": values}]

    return {
        "id": product_id,
        "title": title or handle.replace("-", " ").title(),
        "handle": handle,
        "body_html": "<p>Soft <b>cotton</b> &amp; more</p>",
        "vendor": "BrandX",
        "product_type": "Apparel",
        "tags": "summer, cotton, summer",
        "options": options,
        "images": [
            {"id": 501, "src": "https://cdn.example.com/front.jpg", "alt": "Front"},
            {"id": 502, "src": "https://cdn.example.com/back.jpg", "alt": None},
        ],
        "variants": [
            {
                "id": product_id * 10 + i,
                "title": value,
                "price": price,
                "compare_at_price": compare_at,
                "sku": f"SKU-{handle}-{i}",
                "barcode": None,
                "option1": value,
                "option2": None,
                "option3": None,
                "grams": 200,
                "weight": 0.2,
                "weight_unit": "kg",
                "requires_shipping": True,
                "taxable": True,
                "image_id": 502 if i == 1 else None,
            }
            for i, (value, price) in enumerate(zip(values, prices))
        ],
    }


class FakeStorefront:
    """Public storefront endpoints of any number of source shops."""

    def __init__(self):
        self.products: Dict[str, dict] = {}  # handle -> product json
        self.listings: Dict[str, List[dict]] = {}  # "host/path" -> products
        self.failing: set = set()  # handles answering 500
        self.timeouts: set = set()  # handles timing out
        self.requests: List[httpx.Request] = []

    def add(self, product: dict) -> dict:
        self.products[product["handle"]] = product
        return product

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        match = re.match(r"^/products/([^/]+)\.json$", path)
        if match:
            handle = match.group(1)
            if handle in self.timeouts:
                raise httpx.ReadTimeout("timed out", request=request)
            if handle in self.failing:
                return httpx.Response(500, text="boom")
            if handle not in self.products:
                return httpx.Response(404, json={"errors": "Not Found"})
            return httpx.Response(200, json={"product": self.products[handle]})

        if path.endswith("/products.json"):
            key = f"{request.url.host}{path}"
            if key not in self.listings:
                return httpx.Response(404, json={"errors": "Not Found"})
            limit = int(request.url.params.get("limit", 30))
            page = int(request.url.params.get("page", 1))
            items = self.listings[key][(page - 1) * limit:page * limit]
            return httpx.Response(200, json={"products": items})

        return httpx.Response(404)


class FakeCatalog:
    """In-memory destination catalog with the coroutine API of DestinationCatalog."""

    def __init__(self, shop_domain: str = DEST_SHOP):
        self.shop_domain = shop_domain
        self.products: Dict[str, DestinationProduct] = {}
        self.admin_products: Dict[str, dict] = {}
        self.create_calls: List[tuple] = []
        self.update_calls: List[tuple] = []
        self.collection_calls: List[tuple] = []
        self.published: List[str] = []
        self.reject_titles: set = set()
        self.reject_variant_positions: set = set()
        self.fail_updates = False
        self.publish_raises = False
        self.closed = False
        self._counter = 0

    def _next_id(self, kind: str) -> str:
        self._counter += 1
        return f"gid://shopify/{kind}/{self._counter}"

    async def create_product(self, product_input, media=None):
        self.create_calls.append((product_input, media))
        if product_input["title"] in self.reject_titles:
            return ProductCreateResult(
                product=None,
                user_errors=[UserError(message="Title is not allowed", field=["title"])],
            )

        options = [
            (option["name"], option["values"][0]["name"])
            for option in product_input.get("productOptions", [])
        ] or [("Title", "Default Title")]

        product = DestinationProduct(
            id=self._next_id("Product"),
            handle=product_input["title"].lower().replace(" ", "-"),
            title=product_input["title"],
            media_ids=[self._next_id("MediaImage") for _ in media or []],
            variants=[DestinationVariant(id=self._next_id("ProductVariant"), price="0.00", options=options)],
        )
        self.products[product.id] = product
        return ProductCreateResult(product=copy.deepcopy(product))

    async def bulk_create_variants(self, product_id, variants, remove_standalone=True):
        created, errors = [], []
        for position, variant in enumerate(variants):
            if position in self.reject_variant_positions:
                errors.append(UserError(message="Option values are invalid", field=["variants", str(position)]))
                continue
            created.append(DestinationVariant(
                id=self._next_id("ProductVariant"),
                price=variant["price"],
                options=[(v["optionName"], v["name"]) for v in variant["optionValues"]],
            ))

        product = self.products[product_id]
        if remove_standalone and created:
            product.variants = list(created)
        else:
            product.variants.extend(created)
        return VariantBulkResult(variants=copy.deepcopy(created), user_errors=errors)

    async def bulk_update_variants(self, product_id, variants):
        self.update_calls.append((product_id, copy.deepcopy(variants)))
        if self.fail_updates:
            return VariantBulkResult(user_errors=[UserError(message="Price is invalid", field=["price"])])

        product = self.products.get(product_id)
        updated = []
        for change in variants:
            for variant in product.variants if product else []:
                if variant.id == change["id"]:
                    variant.price = change["price"]
                    updated.append(copy.deepcopy(variant))
        return VariantBulkResult(variants=updated)

    async def get_product(self, product_id):
        product = self.products.get(product_id)
        return copy.deepcopy(product) if product else None

    async def fetch_product_details(self, product_id):
        return self.admin_products.get(product_id)

    async def publish_to_online_store(self, product_id):
        if self.publish_raises:
            raise ShopifyClientError("Publication failed")
        self.published.append(product_id)
        return []

    async def add_to_collection(self, collection_id, product_id):
        self.collection_calls.append((collection_id, product_id))
        return []

    async def close(self):
        self.closed = True

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()


@pytest.fixture(autouse=True)
def fresh_shop_locks(monkeypatch):
    # asyncio locks bind to the loop of the test that first waits on them
    monkeypatch.setattr(jobs, "_shop_locks", {})


@pytest.fixture
def product_json():
    return make_product_json


@pytest.fixture
def storefront():
    return FakeStorefront()


@pytest_asyncio.fixture
async def source_client(storefront):
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(storefront.handler))
    client = StorefrontClient(http_client=http_client, page_delay=0)
    yield client
    await http_client.aclose()


@pytest.fixture
def catalog():
    return FakeCatalog()


@pytest_asyncio.fixture
async def db(tmp_path):
    database = SQLiteDatabase(str(tmp_path / "test.db"))
    await database.initialize()
    await database.save_shop(Shop(shop_domain=DEST_SHOP, access_token="shpat_test"))
    yield database
    await database.close()
