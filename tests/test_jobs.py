"""
Tests for the bulk import job engine.
"""

import asyncio
from decimal import Decimal

import pytest

from catalog_copier.db import BulkImportJob, JobStatus, ProductRef, ProgressStatus
from catalog_copier.processor import cancel_running_jobs, process_job, start_job
from catalog_copier.processor.jobs import running_jobs

SOURCE_SHOP = "source-shop.com"
DEST_SHOP = "mystore.myshopify.com"


def add_products(storefront, product_json, count, price="10.00"):
    handles = []
    for i in range(1, count + 1):
        handle = f"p-{i}"
        storefront.add(product_json(handle, [price], title=f"P{i}", product_id=2000 + i))
        handles.append(handle)
    return handles


async def create_job(db, handles, markup="5"):
    job = BulkImportJob(
        shop=DEST_SHOP,
        source_shop=SOURCE_SHOP,
        source_shop_url=f"https://{SOURCE_SHOP}",
        product_refs=[ProductRef(id=str(i), handle=h) for i, h in enumerate(handles, start=1)],
        pricing_mode="markup",
        markup_amount=Decimal(markup),
        total_products=len(handles),
    )
    return await db.create_job(job)


class TestProcessJob:
    """Tests for process_job function."""

    @pytest.mark.asyncio
    async def test_one_failure_does_not_stop_the_batch(self, db, catalog, storefront, source_client, product_json):
        storefront.add(product_json("a", ["10.00"], product_id=1))
        storefront.add(product_json("b", ["10.00"], product_id=2))
        storefront.add(product_json("c", ["10.00"], product_id=3))
        storefront.failing.add("b")
        job = await create_job(db, ["a", "b", "c"])

        finished = await process_job(job.id, db, catalog, source_client, item_delay=0)

        assert finished.job_status == JobStatus.COMPLETED
        assert finished.processed_products == 3
        assert finished.successful_imports == 2
        assert finished.failed_imports == 1
        assert len(finished.errors) == 1
        assert finished.errors[0].handle == "b"
        assert finished.errors[0].error.startswith("b: ")
        assert finished.started_at is not None
        assert finished.completed_at is not None
        assert await db.get_imported_products_count(DEST_SHOP) == 2

    @pytest.mark.asyncio
    async def test_rejected_product_in_the_middle(self, db, catalog, storefront, source_client, product_json):
        handles = add_products(storefront, product_json, 5)
        catalog.reject_titles.add("P3")
        job = await create_job(db, handles)

        finished = await process_job(job.id, db, catalog, source_client, item_delay=0)

        assert finished.job_status == JobStatus.COMPLETED
        assert finished.successful_imports == 4
        assert finished.failed_imports == 1
        assert [e.handle for e in finished.errors] == ["p-3"]
        assert "Title is not allowed" in finished.errors[0].error

    @pytest.mark.asyncio
    async def test_progress_entries(self, db, catalog, storefront, source_client, product_json):
        handles = add_products(storefront, product_json, 2, price="20.00")
        catalog.reject_titles.add("P2")
        job = await create_job(db, handles)

        await process_job(job.id, db, catalog, source_client, item_delay=0)

        progress = await db.get_progress(job.id, 50)
        assert [(p.handle, p.status) for p in progress] == [
            ("p-1", ProgressStatus.PROCESSING),
            ("p-1", ProgressStatus.SUCCESS),
            ("p-2", ProgressStatus.PROCESSING),
            ("p-2", ProgressStatus.FAILED),
        ]
        assert progress[1].title == "P1"
        assert progress[1].source_price == Decimal("20.00")
        assert progress[1].destination_price == Decimal("25.00")
        assert progress[1].destination_product_id is not None
        assert progress[3].error is not None
        assert progress[3].completed_at is not None

    @pytest.mark.asyncio
    async def test_progress_log_keeps_newest_entries(self, db, catalog, storefront, source_client, product_json):
        handles = add_products(storefront, product_json, 30)
        job = await create_job(db, handles)

        finished = await process_job(job.id, db, catalog, source_client, item_delay=0)

        progress = await db.get_progress(job.id, 50)
        assert len(progress) == 50
        assert finished.progress_entries_written == 60
        assert progress[0].handle == "p-6"
        assert progress[0].status == ProgressStatus.PROCESSING
        assert progress[-1].handle == "p-30"
        assert progress[-1].status == ProgressStatus.SUCCESS
        assert finished.successful_imports == 30

    @pytest.mark.asyncio
    async def test_already_imported_product_is_a_failed_item(self, db, catalog, storefront, source_client, product_json):
        handles = add_products(storefront, product_json, 1)
        first = await create_job(db, handles)
        await process_job(first.id, db, catalog, source_client, item_delay=0)

        second = await create_job(db, handles)
        finished = await process_job(second.id, db, catalog, source_client, item_delay=0)

        assert finished.job_status == JobStatus.COMPLETED
        assert finished.failed_imports == 1
        assert "already imported" in finished.errors[0].error

    @pytest.mark.asyncio
    async def test_job_that_is_not_pending_is_untouched(self, db, catalog, storefront, source_client, product_json):
        handles = add_products(storefront, product_json, 2)
        job = await create_job(db, handles)
        await db.finish_job(job.id, JobStatus.COMPLETED, [])

        result = await process_job(job.id, db, catalog, source_client, item_delay=0)

        assert result.job_status == JobStatus.COMPLETED
        assert result.processed_products == 0
        assert catalog.create_calls == []

    @pytest.mark.asyncio
    async def test_unknown_job(self, db, catalog, source_client):
        assert await process_job("missing", db, catalog, source_client, item_delay=0) is None

    @pytest.mark.asyncio
    async def test_fatal_error_fails_the_job(self, db, catalog, storefront, source_client, product_json, monkeypatch):
        handles = add_products(storefront, product_json, 2)
        job = await create_job(db, handles)

        async def broken_append(job_id, entry, limit):
            raise RuntimeError("database is locked")

        monkeypatch.setattr(db, "append_progress", broken_append)

        finished = await process_job(job.id, db, catalog, source_client, item_delay=0)

        assert finished.job_status == JobStatus.FAILED
        assert len(finished.errors) == 1
        assert finished.errors[0].error == "Fatal error: database is locked"
        assert finished.completed_at is not None


class TestStartJob:
    """Tests for start_job function."""

    @pytest.mark.asyncio
    async def test_runs_in_background_and_closes_catalog(self, db, catalog, storefront, source_client, product_json):
        handles = add_products(storefront, product_json, 3)
        job = await create_job(db, handles)

        task = start_job(job.id, db, catalog, source_client, item_delay=0)
        await task

        finished = await db.get_job(job.id)
        assert finished.job_status == JobStatus.COMPLETED
        assert finished.successful_imports == 3
        assert catalog.closed

    @pytest.mark.asyncio
    async def test_jobs_of_one_shop_run_one_after_another(self, db, catalog, storefront, source_client, product_json):
        handles = add_products(storefront, product_json, 4)
        first = await create_job(db, handles[:2])
        second = await create_job(db, handles[2:])

        tasks = [
            start_job(first.id, db, catalog, source_client, item_delay=0),
            start_job(second.id, db, catalog, source_client, item_delay=0),
        ]
        for task in tasks:
            await task

        earlier, later = sorted(
            [await db.get_job(first.id), await db.get_job(second.id)],
            key=lambda j: j.started_at,
        )
        assert earlier.completed_at <= later.started_at
        assert await db.get_imported_products_count(DEST_SHOP) == 4

    @pytest.mark.asyncio
    async def test_cancelled_job_is_marked_failed(self, db, catalog, storefront, source_client, product_json):
        handles = add_products(storefront, product_json, 2)
        job = await create_job(db, handles)

        start_job(job.id, db, catalog, source_client, item_delay=60)
        for _ in range(200):
            current = await db.get_job(job.id)
            if current.successful_imports == 1:
                break
            await asyncio.sleep(0.01)

        interrupted = await cancel_running_jobs()

        assert interrupted == [f"bulk-import-{job.id}"]
        assert running_jobs() == set()

        finished = await db.get_job(job.id)
        assert finished.job_status == JobStatus.FAILED
        assert finished.successful_imports == 1
        assert finished.errors[-1].error == "Interrupted before completion"
        assert finished.is_terminal
        assert catalog.closed
