"""
Seller Service — FastAPI app exposing UCP checkout over a SQL catalog.

This is the reference merchant: it wires `CheckoutSessionManager` to the
SQLAlchemy stores, mounts the checkout router and adds a health endpoint.
Any merchant can follow this pattern to become UCP-compliant.
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from services.seller.database import DATABASE_URL, create_engine_for, create_session_factory, init_db
from services.seller.events import OrderEventEmitter
from services.seller.seed import seed_demo_catalog
from services.seller.stores import SqlCatalog, SqlIdempotencyStore, SqlOrderStore, SqlSessionStore
from ucp_framework import __version__
from ucp_framework.checkout import CheckoutSessionManager
from ucp_framework.config import CheckoutConfig
from ucp_framework.seller import create_checkout_router

SEED_DEMO_CATALOG = os.getenv("UCP_SEED_DEMO_CATALOG", "false").lower() == "true"

logger = logging.getLogger(__name__)


def create_app(
    database_url: str = DATABASE_URL,
    config: Optional[CheckoutConfig] = None,
    events: Optional[OrderEventEmitter] = None,
    seed_demo: bool = SEED_DEMO_CATALOG,
) -> FastAPI:
    config = config or CheckoutConfig.from_env()
    engine = create_engine_for(database_url)
    session_factory = create_session_factory(engine)
    manager = CheckoutSessionManager(
        catalog=SqlCatalog(session_factory),
        orders=SqlOrderStore(session_factory, events=events or OrderEventEmitter.from_env()),
        sessions=SqlSessionStore(session_factory),
        idempotency=SqlIdempotencyStore(session_factory),
        config=config,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await init_db(engine)
        if seed_demo:
            await seed_demo_catalog(session_factory)
        logger.info(
            "Seller ready: namespace=%s currency=%s policy=%s",
            config.namespace,
            config.currency,
            config.payment_policy.value,
        )
        yield
        await engine.dispose()

    app = FastAPI(
        title="UCP Seller Service",
        description="UCP checkout sessions backed by a SQL product catalog",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.manager = manager
    app.include_router(create_checkout_router(manager))

    @app.get("/health")
    async def health():
        return {"status": "ok", "service": "seller", "ucp_version": config.ucp_version}

    return app


app = create_app()
