"""Storefront FastAPI application.

Serves the cart, identity and checkout endpoints. Every request runs inside the
storefront domain context.

Usage:
    uvicorn app:app --app-dir src --host 0.0.0.0 --port 8000 --reload
"""

# ---------------------------------------------------------------------------
# Domain initialization
# ---------------------------------------------------------------------------
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from storefront.domain import storefront
from storefront.utils.logging import add_context, clear_context

# The domain is initialized at module level so uvicorn workers share it.
# PROTEAN_ENV selects the log level.
storefront.init()

# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Storefront API",
    description="Guest carts, accounts, tokens and checkout",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def domain_context_middleware(request: Request, call_next):
    """Push the storefront domain context and tag log lines with the request."""
    clear_context()
    add_context(method=request.method, path=request.url.path)
    with storefront.domain_context():
        response = await call_next(request)
    return response


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------
from storefront.api import (  # noqa: E402
    auth_router,
    cart_router,
    order_router,
    register_error_handlers,
)

app.include_router(cart_router)
app.include_router(auth_router)
app.include_router(order_router)
register_error_handlers(app)


# ---------------------------------------------------------------------------
# Health / root
# ---------------------------------------------------------------------------
@app.get("/health")
async def health():
    return JSONResponse(
        content={
            "status": "ok",
            "domain": {"name": storefront.name},
        }
    )
