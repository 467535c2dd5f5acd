"""Integration tests for the checkout and order lookup endpoints."""

import pytest

from storefront.checkout.orchestrator import CheckoutOrchestrator
from storefront.errors import StoreUnavailable


def error_code(response) -> str:
    return response.json()["error"]["code"]


@pytest.fixture()
def payload(shipping):
    return {"shipping": shipping, "payment_method": "card"}


class TestGuestCheckout:
    def test_guest_checkout_creates_pending_order(self, client, payload):
        client.post("/cart/items", json={"product_ref": "A", "quantity": 2})

        response = client.post("/checkout", json={**payload, "guest_email": "G@x.com"})

        assert response.status_code == 201
        order = response.json()
        assert order["total_amount"] == 10.0
        assert order["status"] == "Pending"
        assert order["guest_email"] == "g@x.com"
        assert order["owner_ref"] is None
        assert order["cart_cleared"] is True
        assert order["lines"][0]["title"] == "Product A"
        assert client.cookies.get("sf_session") is None
        assert client.get("/cart").json()["lines"] == []

    def test_guest_needs_an_email(self, client, payload):
        client.post("/cart/items", json={"product_ref": "A", "quantity": 2})

        response = client.post("/checkout", json=payload)

        assert response.status_code == 422
        assert error_code(response) == "guest_email_required"

    def test_checkout_without_cart_is_rejected(self, client, payload):
        response = client.post("/checkout", json={**payload, "guest_email": "g@x.com"})

        assert response.status_code == 409
        assert error_code(response) == "empty_cart"

    def test_unavailable_products_are_listed(self, client, payload, catalogue):
        client.post("/cart/items", json={"product_ref": "A", "quantity": 1})
        client.post("/cart/items", json={"product_ref": "B", "quantity": 1})
        catalogue.delist("B")

        response = client.post("/checkout", json={**payload, "guest_email": "g@x.com"})

        assert response.status_code == 409
        assert response.json()["error"]["product_refs"] == ["B"]
        assert len(client.get("/cart").json()["lines"]) == 2

    def test_idempotent_retry_returns_same_order(self, client, payload):
        client.post("/cart/items", json={"product_ref": "A", "quantity": 2})
        body = {**payload, "guest_email": "g@x.com", "idempotency_key": "key-123"}

        first = client.post("/checkout", json=body)
        second = client.post("/checkout", json=body)

        assert first.json()["order_id"] == second.json()["order_id"]

    def test_guest_order_is_readable_by_key(self, client, payload):
        client.post("/cart/items", json={"product_ref": "A", "quantity": 2})
        client.post("/checkout", json={**payload, "guest_email": "g@x.com", "idempotency_key": "key-9"})

        response = client.get("/orders/by-key/key-9", params={"email": " G@x.com"})

        assert response.status_code == 200
        assert response.json()["idempotency_key"] == "key-9"

    def test_guest_order_lookup_needs_the_email(self, client, payload):
        client.post("/cart/items", json={"product_ref": "A", "quantity": 2})
        client.post("/checkout", json={**payload, "guest_email": "g@x.com", "idempotency_key": "key-9"})

        assert client.get("/orders/by-key/key-9").status_code == 404
        assert client.get("/orders/by-key/key-9", params={"email": "h@x.com"}).status_code == 404

    def test_unknown_key_is_not_found(self, client):
        assert client.get("/orders/by-key/missing").status_code == 404


class TestAccountCheckout:
    def test_account_checkout(self, client, payload, signed_in, accounts):
        account_id, headers = signed_in(cart={"A": 1, "C": 2})

        response = client.post("/checkout", json={**payload, "idempotency_key": "acct-1"}, headers=headers)

        assert response.status_code == 201
        assert response.json()["total_amount"] == 30.0
        assert response.json()["owner_ref"] == account_id
        assert accounts.get_cart(account_id) == []

    def test_account_order_lookup_needs_the_owner(self, client, payload, signed_in):
        _, headers = signed_in(cart={"A": 1})
        client.post("/checkout", json={**payload, "idempotency_key": "acct-2"}, headers=headers)

        assert client.get("/orders/by-key/acct-2", headers=headers).status_code == 200
        assert client.get("/orders/by-key/acct-2").status_code == 401

        _, other = signed_in(email="other@example.com")
        assert client.get("/orders/by-key/acct-2", headers=other).status_code == 404


def test_store_outage_is_retryable(client, payload, monkeypatch):
    def unavailable(self, *args, **kwargs):
        raise StoreUnavailable()

    monkeypatch.setattr(CheckoutOrchestrator, "checkout", unavailable)
    client.post("/cart/items", json={"product_ref": "A", "quantity": 1})

    response = client.post("/checkout", json={**payload, "guest_email": "g@x.com"})

    assert response.status_code == 503
    assert response.headers["Retry-After"] == "1"
    assert response.json()["error"]["retryable"] is True


def test_handlers_run_off_the_event_loop():
    import inspect

    from storefront.api import routes

    for handler in (routes.register, routes.login, routes.reset_password, routes.checkout, routes.add_to_cart):
        assert not inspect.iscoroutinefunction(handler)
