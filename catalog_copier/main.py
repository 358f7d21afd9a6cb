"""
Catalog Copier - Main Application
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from .config import settings
from .dependencies import init_dependencies, close_dependencies
from .processor import cancel_running_jobs
from .routes import shops_router, products_router, bulk_router, sync_router

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - startup and shutdown."""
    logger.info("Starting Catalog Copier...")
    await init_dependencies()
    logger.info("Application ready")
    yield
    logger.info("Shutting down...")
    interrupted = await cancel_running_jobs()
    if interrupted:
        logger.warning(f"Cancelled {len(interrupted)} background tasks: {', '.join(interrupted)}")
    await close_dependencies()


# Create app
app = FastAPI(
    title="Catalog Copier",
    description="Import products from other Shopify storefronts with repriced variants",
    version="1.0.0",
    lifespan=lifespan
)

# Include routers
app.include_router(shops_router)
app.include_router(products_router)
app.include_router(bulk_router)
app.include_router(sync_router)


@app.get("/health")
async def health():
    """Health check endpoint (no shop header required)."""
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "catalog_copier.main:app",
        host=settings.host,
        port=settings.port,
        reload=True
    )
