"""
Demo catalog for the Seller Service.

Seeds a handful of products so a fresh database can run a full checkout.
Enabled with `UCP_SEED_DEMO_CATALOG=true`; a catalog that already holds
products is left alone.
"""

from __future__ import annotations

import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from services.seller.database import ProductRow

logger = logging.getLogger(__name__)

DEMO_PRODUCTS = [
    {
        "slug": "classic-tee",
        "name": "Classic Cotton Tee",
        "description": "Heavyweight cotton t-shirt in washed black.",
        "price": 2999,
    },
    {
        "slug": "canvas-tote",
        "name": "Canvas Tote Bag",
        "description": "Everyday tote with an inner zip pocket.",
        "price": 1800,
        "discount_price": 1500,
    },
    {
        "slug": "ceramic-mug",
        "name": "Stoneware Mug",
        "description": "350 ml glazed stoneware mug.",
        "price": 1250,
    },
    {
        "slug": "winter-parka",
        "name": "Winter Parka",
        "description": "Discontinued style, kept for order history.",
        "price": 18900,
        "active": False,
    },
]


async def seed_demo_catalog(session_factory: async_sessionmaker[AsyncSession]) -> int:
    """Insert the demo products into an empty catalog.  Returns the number inserted."""
    async with session_factory() as db:
        existing = await db.scalar(select(func.count()).select_from(ProductRow))
        if existing:
            logger.info("Catalog already has %d products; skipping demo seed", existing)
            return 0

        for product in DEMO_PRODUCTS:
            db.add(ProductRow(currency="USD", **product))
        await db.commit()

    logger.info("Seeded %d demo products", len(DEMO_PRODUCTS))
    return len(DEMO_PRODUCTS)
