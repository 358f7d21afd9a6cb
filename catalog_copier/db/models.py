"""
Pydantic models for database entities.
Prices are kept as Decimal and stored as strings.
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, Field
import uuid


class ProductStatus(str, Enum):
    """Lifecycle status of an imported product at the destination."""
    ACTIVE = "active"
    DRAFT = "draft"
    ARCHIVED = "archived"


class JobStatus(str, Enum):
    """State of a bulk import job."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"  # no transition leads here yet


class ProgressStatus(str, Enum):
    """State of one product inside a bulk import job."""
    PROCESSING = "processing"
    SUCCESS = "success"
    FAILED = "failed"


TERMINAL_JOB_STATUSES = {JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED}


def generate_uuid() -> str:
    """Generate a new UUID string."""
    return str(uuid.uuid4())


def utcnow() -> datetime:
    """Naive UTC timestamp, the form stored in SQLite."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Shop(BaseModel):
    """A destination shop and the Admin API token used to write to it."""
    shop_domain: str  # e.g., "mystore.myshopify.com"
    access_token: str  # Shopify Admin API token (shpat_...)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class VariantMapping(BaseModel):
    """Pairing of one source variant with the destination variant created from it."""
    id: str = Field(default_factory=generate_uuid)
    imported_product_id: Optional[str] = None
    position: int = 0
    source_variant_id: str
    destination_variant_id: str
    title: str = ""
    sku: Optional[str] = None
    source_price: Decimal  # last price observed on the source
    destination_price: Decimal  # last price pushed to the destination
    updated_at: datetime = Field(default_factory=utcnow)


class ImportedProduct(BaseModel):
    """Durable record of one completed import."""
    id: str = Field(default_factory=generate_uuid)
    shop: str
    source_shop: str
    source_product_id: str
    source_product_handle: Optional[str] = None
    source_product_url: str
    destination_product_id: str
    destination_handle: Optional[str] = None
    title: str
    status: ProductStatus = ProductStatus.ACTIVE
    pricing_mode: str
    markup_amount: Optional[Decimal] = None
    multiplier: Optional[Decimal] = None
    sync_enabled: bool = False
    last_sync_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    variants: List[VariantMapping] = Field(default_factory=list)


class ProductRef(BaseModel):
    """A product selected for bulk import."""
    id: str
    handle: str


class JobError(BaseModel):
    """One failure recorded by a bulk import job."""
    product_id: Optional[str] = None
    handle: Optional[str] = None
    error: str


class ProgressEntry(BaseModel):
    """One line of a job's bounded progress log."""
    seq: Optional[int] = None
    handle: str
    title: str
    status: ProgressStatus
    started_at: datetime
    completed_at: Optional[datetime] = None
    source_price: Optional[Decimal] = None
    destination_price: Optional[Decimal] = None
    destination_product_id: Optional[str] = None
    error: Optional[str] = None


class BulkImportJob(BaseModel):
    """A batch import of products from one source shop."""
    id: str = Field(default_factory=generate_uuid)
    shop: str
    source_shop: str
    source_shop_url: str
    product_refs: List[ProductRef] = Field(default_factory=list)
    pricing_mode: str
    markup_amount: Optional[Decimal] = None
    multiplier: Optional[Decimal] = None
    target_status: str = "ACTIVE"
    collection_id: Optional[str] = None
    job_status: JobStatus = JobStatus.PENDING

    # Counters
    total_products: int = 0
    processed_products: int = 0
    successful_imports: int = 0
    failed_imports: int = 0
    progress_entries_written: int = 0

    errors: List[JobError] = Field(default_factory=list)

    created_at: datetime = Field(default_factory=utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.job_status in TERMINAL_JOB_STATUSES
