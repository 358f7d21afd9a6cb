"""
Bulk import job engine.

A job is started from a request handler and keeps running as a detached
asyncio task after the request returns. All state the client polls for lives
in the database; there is no other channel between the worker and the API.
"""

import asyncio
import logging
from typing import Awaitable, Dict, List, Optional, Set

from ..config import settings
from ..db import (
    BulkImportJob,
    JobError,
    JobStatus,
    ProgressEntry,
    ProgressStatus,
    SQLiteDatabase,
    utcnow,
)
from ..shopify import DestinationCatalog, StorefrontClient, build_product_url
from .importer import import_product
from .pricing import PricingConfig, compute_destination_price

logger = logging.getLogger(__name__)

# Strong references to background tasks, the event loop only keeps weak ones
_running_jobs: Set[asyncio.Task] = set()

# One job at a time per destination shop (single process)
_shop_locks: Dict[str, asyncio.Lock] = {}

INTERRUPTED_MESSAGE = "Interrupted before completion"


def _shop_lock(shop: str) -> asyncio.Lock:
    lock = _shop_locks.get(shop)
    if lock is None:
        lock = _shop_locks[shop] = asyncio.Lock()
    return lock


def running_jobs() -> Set[asyncio.Task]:
    """Background tasks that have not finished yet."""
    return set(_running_jobs)


def run_detached(coro: Awaitable, name: str) -> asyncio.Task:
    """Schedule a coroutine that outlives the current request."""
    task = asyncio.create_task(coro, name=name)
    _running_jobs.add(task)
    task.add_done_callback(_running_jobs.discard)
    return task


async def cancel_running_jobs() -> List[str]:
    """
    Cancel every background task and wait for it to unwind.

    Returns:
        Names of the tasks that were cut off
    """
    tasks = running_jobs()
    for task in tasks:
        task.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)
    return sorted(task.get_name() for task in tasks)


def start_job(
    job_id: str,
    db: SQLiteDatabase,
    catalog: DestinationCatalog,
    source_client: Optional[StorefrontClient] = None,
    item_delay: Optional[float] = None,
) -> asyncio.Task:
    """
    Run a job in the background and return immediately.

    The task owns ``catalog`` and closes it when the job ends.

    Args:
        job_id: Pending job to run
        db: Database
        catalog: Destination catalog of the job's shop
        source_client: Shared storefront client; a private one is used if omitted
        item_delay: Seconds between products, defaults to settings
    """
    task = run_detached(
        _supervise(job_id, db, catalog, source_client, item_delay),
        name=f"bulk-import-{job_id}",
    )
    logger.info(f"Started bulk import job {job_id}")
    return task


async def _supervise(
    job_id: str,
    db: SQLiteDatabase,
    catalog: DestinationCatalog,
    source_client: Optional[StorefrontClient],
    item_delay: Optional[float],
) -> None:
    """Top-level boundary of a detached job: nothing escapes from here."""
    owns_source_client = source_client is None
    if source_client is None:
        source_client = StorefrontClient()

    try:
        await process_job(job_id, db, catalog, source_client, item_delay)
    except Exception:
        logger.exception(f"Bulk import job {job_id} crashed")
    finally:
        try:
            await catalog.close()
            if owns_source_client:
                await source_client.close()
        except Exception:
            logger.exception(f"Error closing clients of job {job_id}")


async def process_job(
    job_id: str,
    db: SQLiteDatabase,
    catalog: DestinationCatalog,
    source_client: StorefrontClient,
    item_delay: Optional[float] = None,
    progress_limit: Optional[int] = None,
) -> Optional[BulkImportJob]:
    """
    Run a pending job to completion.

    A job that is not pending is left untouched. Per-product failures are
    recorded and the batch continues; any other error marks the job failed.

    Returns:
        The job as stored after the run, or None if it does not exist
    """
    delay = settings.bulk_item_delay if item_delay is None else item_delay
    limit = progress_limit or settings.progress_log_limit

    try:
        job = await db.get_job(job_id)
    except Exception as e:
        logger.exception(f"Could not load job {job_id}")
        await _fail_job(db, job_id, e)
        return None

    if job is None:
        logger.error(f"Job {job_id} not found")
        return None

    async with _shop_lock(job.shop):
        try:
            if not await db.mark_job_processing(job_id):
                current = await db.get_job(job_id)
                logger.info(
                    f"Job {job_id} is {current.job_status.value if current else 'gone'}, skipping"
                )
                return current

            errors = await _run_items(job, db, catalog, source_client, delay, limit)

            await db.finish_job(job_id, JobStatus.COMPLETED, errors)
            logger.info(
                f"Job {job_id} completed: {len(job.product_refs) - len(errors)} imported, "
                f"{len(errors)} failed"
            )
        except asyncio.CancelledError:
            logger.warning(f"Job {job_id} interrupted before completion")
            current = await db.get_job(job_id)
            errors = current.errors if current else []
            await db.finish_job(
                job_id, JobStatus.FAILED, errors + [JobError(error=INTERRUPTED_MESSAGE)]
            )
            raise
        except Exception as e:
            logger.exception(f"Fatal error processing job {job_id}")
            await _fail_job(db, job_id, e)

    return await db.get_job(job_id)


async def _fail_job(db: SQLiteDatabase, job_id: str, error: Exception) -> None:
    await db.finish_job(
        job_id,
        JobStatus.FAILED,
        [JobError(error=f"Fatal error: {error}")],
    )


async def _run_items(
    job: BulkImportJob,
    db: SQLiteDatabase,
    catalog: DestinationCatalog,
    source_client: StorefrontClient,
    delay: float,
    limit: int,
) -> List[JobError]:
    """Import every product of the job, in order, one at a time."""
    config = PricingConfig.from_record(job)
    errors: List[JobError] = []
    total = len(job.product_refs)

    logger.info(f"Job {job.id}: importing {total} products from {job.source_shop}")

    for index, ref in enumerate(job.product_refs, start=1):
        if index > 1 and delay > 0:
            await asyncio.sleep(delay)

        started_at = utcnow()
        title = ref.handle  # title unknown until fetched

        await db.append_progress(
            job.id,
            ProgressEntry(
                handle=ref.handle,
                title=title,
                status=ProgressStatus.PROCESSING,
                started_at=started_at,
            ),
            limit,
        )

        logger.info(f"Job {job.id}: product {index}/{total}: {ref.handle}")

        try:
            source_product = await source_client.fetch_product(
                build_product_url(job.source_shop, ref.handle)
            )
            title = source_product.title

            result = await import_product(
                db,
                job.shop,
                source_product,
                config,
                catalog,
                job.target_status,
                collection_id=job.collection_id,
            )
        except Exception as e:
            logger.error(f"Job {job.id}: failed to import {ref.handle}: {e}")
            errors.append(JobError(product_id=ref.id, handle=ref.handle, error=f"{ref.handle}: {e}"))

            await db.append_progress(
                job.id,
                ProgressEntry(
                    handle=ref.handle,
                    title=title,
                    status=ProgressStatus.FAILED,
                    started_at=started_at,
                    completed_at=utcnow(),
                    error=str(e),
                ),
                limit,
            )
            await db.record_job_item(job.id, processed=index, success=False)
            await db.set_job_errors(job.id, errors)
            continue

        first_variant = source_product.variants[0] if source_product.variants else None
        await db.append_progress(
            job.id,
            ProgressEntry(
                handle=ref.handle,
                title=title,
                status=ProgressStatus.SUCCESS,
                started_at=started_at,
                completed_at=utcnow(),
                source_price=first_variant.price if first_variant else None,
                destination_price=(
                    compute_destination_price(first_variant.price, config)
                    if first_variant else None
                ),
                destination_product_id=result.destination_product_id,
                error="; ".join(result.variant_errors) or None,
            ),
            limit,
        )
        await db.record_job_item(job.id, processed=index, success=True)

    return errors
