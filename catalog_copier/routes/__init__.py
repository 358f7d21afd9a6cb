"""
Routes package.
"""

from .shops import router as shops_router
from .products import router as products_router
from .bulk import router as bulk_router
from .sync import router as sync_router

__all__ = [
    "shops_router",
    "products_router",
    "bulk_router",
    "sync_router",
]
