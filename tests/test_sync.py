"""
Tests for price sync.
"""

from decimal import Decimal

import pytest

from catalog_copier.db import SQLiteDatabase
from catalog_copier.processor import (
    PricingConfig,
    import_product,
    run_all_shops,
    sync_all_products_for_shop,
    sync_product,
)
from catalog_copier.shopify import DestinationCatalog

SOURCE_SHOP = "source-shop.com"
DEST_SHOP = "mystore.myshopify.com"


async def imported(db, catalog, source_client, handle, markup="5"):
    result = await import_product(
        db, DEST_SHOP, f"https://{SOURCE_SHOP}/products/{handle}",
        PricingConfig.markup(markup), catalog, source_client=source_client,
    )
    return await db.get_imported_product(result.product.id)


class TestSyncProduct:
    """Tests for sync_product function."""

    @pytest.mark.asyncio
    async def test_sub_cent_drift_is_ignored(self, db, catalog, storefront, source_client, product_json):
        payload = storefront.add(product_json("mug", ["10.00"]))
        product = await imported(db, catalog, source_client, "mug")
        calls_before = len(catalog.update_calls)

        payload["variants"][0]["price"] = "10.004"
        result = await sync_product(db, product, catalog, source_client)

        assert result.success
        assert result.updated_variant_count == 0
        assert len(catalog.update_calls) == calls_before

        stored = await db.get_imported_product(product.id)
        assert stored.variants[0].source_price == Decimal("10.00")
        assert stored.last_sync_at is not None

    @pytest.mark.asyncio
    async def test_price_change_is_pushed(self, db, catalog, storefront, source_client, product_json):
        payload = storefront.add(product_json("mug", ["10.00"]))
        product = await imported(db, catalog, source_client, "mug")

        payload["variants"][0]["price"] = "12.00"
        result = await sync_product(db, product, catalog, source_client)

        assert result.success
        assert result.updated_variant_count == 1

        product_id, updates = catalog.update_calls[-1]
        assert product_id == product.destination_product_id
        assert updates == [{"id": product.variants[0].destination_variant_id, "price": "17.00"}]

        stored = await db.get_imported_product(product.id)
        assert stored.variants[0].source_price == Decimal("12.00")
        assert stored.variants[0].destination_price == Decimal("17.00")
        assert stored.last_sync_at == result.synced_at

    @pytest.mark.asyncio
    async def test_only_changed_variants_in_one_call(self, db, catalog, storefront, source_client, product_json):
        payload = storefront.add(product_json("shirt", ["10.00", "20.00", "30.00"], compare_at="40.00"))
        product = await imported(db, catalog, source_client, "shirt")
        calls_before = len(catalog.update_calls)

        payload["variants"][1]["price"] = "22.00"
        payload["variants"][2]["price"] = "28.00"
        result = await sync_product(db, product, catalog, source_client)

        assert result.updated_variant_count == 2
        assert len(catalog.update_calls) == calls_before + 1
        _, updates = catalog.update_calls[-1]
        assert [u["price"] for u in updates] == ["27.00", "33.00"]
        assert updates[0]["compareAtPrice"] == "45.00"

    @pytest.mark.asyncio
    async def test_missing_source_variant_is_reported(self, db, catalog, storefront, source_client, product_json):
        payload = storefront.add(product_json("shirt", ["10.00", "20.00"]))
        product = await imported(db, catalog, source_client, "shirt")

        del payload["variants"][1]
        payload["variants"][0]["price"] = "11.00"
        result = await sync_product(db, product, catalog, source_client)

        assert result.success
        assert result.updated_variant_count == 1
        assert len(result.errors) == 1
        assert result.errors[0].startswith("VariantMissing")

    @pytest.mark.asyncio
    async def test_destination_failure_keeps_stored_prices(self, db, catalog, storefront, source_client, product_json):
        payload = storefront.add(product_json("mug", ["10.00"]))
        product = await imported(db, catalog, source_client, "mug")

        catalog.fail_updates = True
        payload["variants"][0]["price"] = "12.00"
        result = await sync_product(db, product, catalog, source_client)

        assert not result.success
        assert "Price is invalid" in result.errors[0]

        stored = await db.get_imported_product(product.id)
        assert stored.variants[0].source_price == Decimal("10.00")
        assert stored.variants[0].destination_price == Decimal("15.00")
        assert stored.last_sync_at is None

    @pytest.mark.asyncio
    async def test_source_gone(self, db, catalog, storefront, source_client, product_json):
        storefront.add(product_json("mug", ["10.00"]))
        product = await imported(db, catalog, source_client, "mug")

        del storefront.products["mug"]
        result = await sync_product(db, product, catalog, source_client)

        assert not result.success
        assert "Could not fetch source product" in result.errors[0]


class TestSyncAllProductsForShop:
    """Tests for sync_all_products_for_shop function."""

    @pytest.mark.asyncio
    async def test_only_sync_enabled_products(self, db, catalog, storefront, source_client, product_json):
        storefront.add(product_json("mug", ["10.00"], product_id=1))
        storefront.add(product_json("cap", ["10.00"], product_id=2))
        mug = await imported(db, catalog, source_client, "mug")
        await imported(db, catalog, source_client, "cap")
        await db.set_sync_enabled(mug.id, True)

        summary = await sync_all_products_for_shop(db, DEST_SHOP, catalog, source_client)

        assert summary.synced == 1
        assert summary.failed == 0
        assert summary.success

    @pytest.mark.asyncio
    async def test_failures_are_collected(self, db, catalog, storefront, source_client, product_json):
        mug_payload = storefront.add(product_json("mug", ["10.00"], product_id=1))
        storefront.add(product_json("cap", ["10.00"], product_id=2))
        mug = await imported(db, catalog, source_client, "mug")
        cap = await imported(db, catalog, source_client, "cap")
        await db.set_sync_enabled(mug.id, True)
        await db.set_sync_enabled(cap.id, True)

        mug_payload["variants"][0]["price"] = "11.00"
        storefront.failing.add("cap")
        summary = await sync_all_products_for_shop(db, DEST_SHOP, catalog, source_client)

        assert summary.synced == 1
        assert summary.failed == 1
        assert summary.updated_variants == 1
        assert not summary.success
        assert len(summary.errors) == 1
        assert summary.errors[0].startswith("Cap: ")

    @pytest.mark.asyncio
    async def test_no_products(self, db, catalog, source_client):
        summary = await sync_all_products_for_shop(db, DEST_SHOP, catalog, source_client)
        assert summary.synced == 0
        assert summary.success


class TestRunAllShops:
    """Tests for the scheduled sync runner."""

    @pytest.mark.asyncio
    async def test_syncs_due_products_only(self, db, catalog, storefront, source_client, product_json, monkeypatch):
        payload = storefront.add(product_json("mug", ["10.00"]))
        product = await imported(db, catalog, source_client, "mug")
        await db.set_sync_enabled(product.id, True)
        monkeypatch.setattr(DestinationCatalog, "from_credentials", lambda shop_domain, access_token: catalog)

        payload["variants"][0]["price"] = "12.00"
        [first] = await run_all_shops(db, frequency_hours=24, source_client=source_client)

        assert first.shop == DEST_SHOP
        assert first.synced == 1
        assert first.updated_variants == 1
        assert catalog.closed

        # Synced moments ago, not due again
        payload["variants"][0]["price"] = "14.00"
        [second] = await run_all_shops(db, frequency_hours=24, source_client=source_client)

        assert second.synced == 0
        stored = await db.get_imported_product(product.id)
        assert stored.variants[0].source_price == Decimal("12.00")

    @pytest.mark.asyncio
    async def test_no_shops(self, tmp_path):
        empty = SQLiteDatabase(str(tmp_path / "empty.db"))
        await empty.initialize()
        try:
            assert await run_all_shops(empty) == []
        finally:
            await empty.close()
