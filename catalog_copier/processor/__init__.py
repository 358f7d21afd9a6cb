"""
Processor package: pricing, imports, bulk jobs and sync.
"""

from .pricing import (
    PricingConfig,
    PricingMode,
    InvalidConfig,
    compute_destination_price,
    validate_pricing_config,
    format_price,
    price_changed,
    calculate_variants_pricing,
    get_pricing_summary,
    PRICE_EPSILON,
)
from .importer import (
    import_product,
    ImportResult,
    ProductImportError,
    SourceFetchFailed,
    DestinationValidationFailed,
    PersistenceFailed,
    AlreadyImported,
)
from .jobs import cancel_running_jobs, process_job, run_detached, start_job
from .sync import (
    sync_product,
    sync_all_products_for_shop,
    SyncResult,
    ShopSyncResult,
    SyncError,
)
from .runner import run_all_shops, run_single_shop

__all__ = [
    "PricingConfig",
    "PricingMode",
    "InvalidConfig",
    "compute_destination_price",
    "validate_pricing_config",
    "format_price",
    "price_changed",
    "calculate_variants_pricing",
    "get_pricing_summary",
    "PRICE_EPSILON",
    "import_product",
    "ImportResult",
    "ProductImportError",
    "SourceFetchFailed",
    "DestinationValidationFailed",
    "PersistenceFailed",
    "AlreadyImported",
    "start_job",
    "process_job",
    "run_detached",
    "cancel_running_jobs",
    "sync_product",
    "sync_all_products_for_shop",
    "SyncResult",
    "ShopSyncResult",
    "SyncError",
    "run_all_shops",
    "run_single_shop",
]
