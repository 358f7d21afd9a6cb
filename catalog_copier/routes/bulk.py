"""
Bulk import routes: catalog listings, job creation and job status.
"""

import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from ..config import settings
from ..db import BulkImportJob, JobError, JobStatus, ProductRef, ProgressEntry, SQLiteDatabase, Shop
from ..dependencies import CatalogFactory, get_catalog_factory, get_current_shop, get_db, get_source_client
from ..processor import InvalidConfig, start_job
from ..processor.importer import TARGET_STATUSES
from ..shopify import (
    ProductSummary,
    SourceCatalogError,
    StorefrontClient,
    parse_collection_url,
    parse_shop_domain,
)
from .errors import http_error
from .products import PricingFields

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/bulk")


class ShopListingRequest(BaseModel):
    shop_url: str


class CollectionListingRequest(BaseModel):
    collection_url: str


class ListingResponse(BaseModel):
    shop_domain: str
    collection_handle: Optional[str] = None
    products: List[ProductSummary]
    total: int


class StartImportRequest(PricingFields):
    source_shop_url: str
    products: List[ProductRef]
    status: str = "ACTIVE"
    collection_id: Optional[str] = None


class StartImportResponse(BaseModel):
    job_id: str
    total_products: int
    job_status: JobStatus


class JobStatusResponse(BaseModel):
    id: str
    job_status: JobStatus
    terminal: bool
    source_shop: str
    total_products: int
    processed_products: int
    successful_imports: int
    failed_imports: int
    errors: List[JobError]
    progress: List[ProgressEntry]
    progress_limit: int
    progress_dropped: int
    created_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


@router.post("/fetch-products", response_model=ListingResponse)
async def fetch_shop_products(
    body: ShopListingRequest,
    shop: Shop = Depends(get_current_shop),
    source_client: StorefrontClient = Depends(get_source_client),
):
    """List every product of a source shop."""
    shop_domain = parse_shop_domain(body.shop_url)
    if not shop_domain:
        raise HTTPException(status_code=400, detail="Invalid shop URL")

    try:
        products = await source_client.fetch_catalog_listing(shop_domain)
    except SourceCatalogError as e:
        raise http_error(e) from e

    return ListingResponse(shop_domain=shop_domain, products=products, total=len(products))


@router.post("/collection-products", response_model=ListingResponse)
async def fetch_collection_products(
    body: CollectionListingRequest,
    shop: Shop = Depends(get_current_shop),
    source_client: StorefrontClient = Depends(get_source_client),
):
    """List the products of one collection of a source shop."""
    parsed = parse_collection_url(body.collection_url)
    if not parsed:
        raise HTTPException(status_code=400, detail="Invalid collection URL")

    shop_domain, collection_handle = parsed
    try:
        products = await source_client.fetch_catalog_listing(shop_domain, collection_handle)
    except SourceCatalogError as e:
        raise http_error(e) from e

    return ListingResponse(
        shop_domain=shop_domain,
        collection_handle=collection_handle,
        products=products,
        total=len(products),
    )


@router.post("/start-import", response_model=StartImportResponse)
async def start_bulk_import(
    body: StartImportRequest,
    shop: Shop = Depends(get_current_shop),
    db: SQLiteDatabase = Depends(get_db),
    source_client: StorefrontClient = Depends(get_source_client),
    catalog_factory: CatalogFactory = Depends(get_catalog_factory),
):
    """Create a bulk import job and start it in the background."""
    source_shop = parse_shop_domain(body.source_shop_url)
    if not source_shop:
        raise HTTPException(status_code=400, detail="Invalid source shop URL")

    if not body.products:
        raise HTTPException(status_code=400, detail="No products selected")

    status = body.status.upper()
    if status not in TARGET_STATUSES:
        raise HTTPException(status_code=400, detail=f"Invalid status: {body.status}")

    try:
        config = body.pricing_config()
    except InvalidConfig as e:
        raise http_error(e) from e

    job = await db.create_job(BulkImportJob(
        shop=shop.shop_domain,
        source_shop=source_shop,
        source_shop_url=body.source_shop_url,
        product_refs=body.products,
        pricing_mode=config.mode,
        markup_amount=config.markup_amount,
        multiplier=config.multiplier,
        target_status=status,
        collection_id=body.collection_id,
        total_products=len(body.products),
    ))

    logger.info(f"Created job {job.id}: {job.total_products} products from {source_shop}")

    # Detached: keeps running after this response is sent
    start_job(job.id, db, catalog_factory(shop), source_client)

    return StartImportResponse(
        job_id=job.id,
        total_products=job.total_products,
        job_status=job.job_status,
    )


@router.get("/jobs", response_model=List[StartImportResponse])
async def list_jobs(
    shop: Shop = Depends(get_current_shop),
    db: SQLiteDatabase = Depends(get_db),
):
    """Recent jobs of the calling shop."""
    jobs = await db.get_jobs(shop.shop_domain)
    return [
        StartImportResponse(job_id=j.id, total_products=j.total_products, job_status=j.job_status)
        for j in jobs
    ]


@router.get("/jobs/{job_id}", response_model=JobStatusResponse)
async def get_job_status(
    job_id: str,
    shop: Shop = Depends(get_current_shop),
    db: SQLiteDatabase = Depends(get_db),
):
    """
    Current state of a job, polled by the client until it is terminal.

    Only the newest ``progress_limit`` progress entries are kept;
    ``progress_dropped`` says how many older ones are gone.
    """
    job = await db.get_job(job_id)
    if not job:
        raise HTTPException(status_code=404, detail="Job not found")
    if job.shop != shop.shop_domain:
        raise HTTPException(status_code=403, detail="Job belongs to another shop")

    limit = settings.progress_log_limit
    progress = await db.get_progress(job_id, limit)

    return JobStatusResponse(
        id=job.id,
        job_status=job.job_status,
        terminal=job.is_terminal,
        source_shop=job.source_shop,
        total_products=job.total_products,
        processed_products=job.processed_products,
        successful_imports=job.successful_imports,
        failed_imports=job.failed_imports,
        errors=job.errors,
        progress=progress,
        progress_limit=limit,
        progress_dropped=max(0, job.progress_entries_written - len(progress)),
        created_at=job.created_at,
        started_at=job.started_at,
        completed_at=job.completed_at,
    )
