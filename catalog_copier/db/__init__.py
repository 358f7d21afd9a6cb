"""
Database package - SQLite only.
"""

from .models import (
    Shop, ImportedProduct, VariantMapping, BulkImportJob, ProgressEntry,
    ProductRef, JobError, JobStatus, ProductStatus, ProgressStatus,
    TERMINAL_JOB_STATUSES, generate_uuid, utcnow
)
from .sqlite import SQLiteDatabase

__all__ = [
    "SQLiteDatabase",
    "Shop",
    "ImportedProduct",
    "VariantMapping",
    "BulkImportJob",
    "ProgressEntry",
    "ProductRef",
    "JobError",
    "JobStatus",
    "ProductStatus",
    "ProgressStatus",
    "TERMINAL_JOB_STATUSES",
    "generate_uuid",
    "utcnow",
]
