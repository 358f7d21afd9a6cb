"""
Destination shop registration routes.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from ..db import SQLiteDatabase, Shop
from ..dependencies import get_current_shop, get_db
from ..shopify import parse_shop_domain

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/shops")


class ShopRequest(BaseModel):
    shop_domain: str
    access_token: str


class ShopResponse(BaseModel):
    shop_domain: str
    message: str


@router.post("", response_model=ShopResponse)
async def register_shop(body: ShopRequest, db: SQLiteDatabase = Depends(get_db)):
    """Register a destination shop, or replace its access token."""
    # "mystore" -> "mystore.myshopify.com"
    raw_domain = body.shop_domain.strip().lower()
    if raw_domain and "." not in raw_domain:
        raw_domain = f"{raw_domain}.myshopify.com"

    shop_domain = parse_shop_domain(raw_domain)
    if not shop_domain:
        raise HTTPException(status_code=400, detail="Invalid shop domain")

    if not body.access_token.strip():
        raise HTTPException(status_code=400, detail="Access token is required")

    await db.save_shop(Shop(shop_domain=shop_domain, access_token=body.access_token.strip()))
    logger.info(f"Registered shop {shop_domain}")

    return ShopResponse(shop_domain=shop_domain, message="Shop registered")


@router.delete("/me", response_model=ShopResponse)
async def erase_shop(
    shop: Shop = Depends(get_current_shop),
    db: SQLiteDatabase = Depends(get_db),
):
    """Erase every record of the calling shop."""
    await db.delete_shop_data(shop.shop_domain)
    logger.info(f"Erased all data of {shop.shop_domain}")

    return ShopResponse(shop_domain=shop.shop_domain, message="Shop data deleted")
