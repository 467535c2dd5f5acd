"""Fixtures for exercising the HTTP surface through FastAPI's TestClient."""

import pytest
from fastapi import FastAPI, Request
from fastapi.testclient import TestClient

from storefront.api import auth_router, cart_router, order_router, register_error_handlers
from storefront.domain import storefront


@pytest.fixture()
def client():
    app = FastAPI()

    @app.middleware("http")
    async def domain_context_middleware(request: Request, call_next):
        with storefront.domain_context():
            return await call_next(request)

    app.include_router(cart_router)
    app.include_router(auth_router)
    app.include_router(order_router)
    register_error_handlers(app)
    return TestClient(app)


@pytest.fixture()
def signed_in(verified_account, lifecycle):
    """Factory: a verified account with an optional cart; returns (account_id, bearer headers)."""

    def _make(email="shopper@example.com", cart=None):
        account_id = verified_account(email=email, cart=cart)
        pair = lifecycle.login(email, "s3cret-pass")
        return account_id, {"Authorization": f"Bearer {pair.access_token}"}

    return _make
