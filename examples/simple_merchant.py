"""
Simple example showing how to use ucp-framework to create a UCP-compliant merchant.

This minimal example shows the core pattern:
1. Install: pip install -e .
2. Describe: Put your products behind a CatalogLookup (here, in memory)
3. Deploy: Mount the checkout router in your FastAPI app
"""

from fastapi import FastAPI
from ucp_framework import (
    CatalogProduct,
    CheckoutConfig,
    CheckoutSessionManager,
    create_checkout_router,
)

PRODUCTS = [
    CatalogProduct(id=1, slug="espresso-beans", name="Espresso Beans 1kg", price=3200),
    CatalogProduct(id=2, slug="pour-over-kit", name="Pour-Over Kit", price=5900, discount_price=4900),
]

# In-memory stores lose everything on restart. In production, implement
# CatalogLookup / OrderStore / SessionStore / IdempotencyStore over your
# database, as services/seller/stores.py does.
manager = CheckoutSessionManager.in_memory(
    PRODUCTS,
    config=CheckoutConfig(base_url="http://localhost:8000", tax_rate=0.07),
)

# Create FastAPI app
app = FastAPI(title="Simple UCP Merchant")

# Mount UCP endpoints - this gives you 5 routes automatically:
# POST   /checkout_sessions
# GET    /checkout_sessions/{id}
# POST   /checkout_sessions/{id}
# POST   /checkout_sessions/{id}/complete
# POST   /checkout_sessions/{id}/cancel
app.include_router(create_checkout_router(manager))


@app.get("/")
async def root():
    return {
        "message": "Simple UCP Merchant",
        "products": [p.slug for p in PRODUCTS],
        "endpoints": [
            "POST /checkout_sessions - Create checkout",
            "GET /checkout_sessions/{id} - Get checkout",
            "POST /checkout_sessions/{id} - Update checkout",
            "POST /checkout_sessions/{id}/complete - Complete order",
            "POST /checkout_sessions/{id}/cancel - Cancel checkout",
        ],
    }


if __name__ == "__main__":
    import uvicorn

    print("Starting Simple UCP Merchant on http://localhost:8000")
    print("API docs at http://localhost:8000/docs")
    uvicorn.run(app, host="0.0.0.0", port=8000)
