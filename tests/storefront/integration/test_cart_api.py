"""Integration tests for the cart endpoints."""

from protean import current_domain

from storefront.session.session import GuestSession


def error_code(response) -> str:
    return response.json()["error"]["code"]


def _as_mapping(response):
    return {line["product_ref"]: line["quantity"] for line in response.json()["lines"]}


class TestGuestCart:
    def test_reading_without_a_session_returns_empty_cart(self, client):
        response = client.get("/cart")

        assert response.status_code == 200
        assert response.json() == {"lines": [], "item_count": 0}
        assert "sf_session" not in response.cookies

    def test_first_add_issues_session_cookie(self, client):
        response = client.post("/cart/items", json={"product_ref": "A", "quantity": 2})

        assert response.status_code == 200
        assert _as_mapping(response) == {"A": 2}
        assert response.json()["item_count"] == 2
        assert client.cookies.get("sf_session")

    def test_cookie_carries_the_cart_between_requests(self, client):
        client.post("/cart/items", json={"product_ref": "A", "quantity": 2})
        client.post("/cart/items", json={"product_ref": "A"})
        client.post("/cart/items", json={"product_ref": "B", "quantity": 1})

        assert _as_mapping(client.get("/cart")) == {"A": 3, "B": 1}

    def test_set_quantity_and_remove(self, client):
        client.post("/cart/items", json={"product_ref": "A", "quantity": 2})
        client.post("/cart/items", json={"product_ref": "B", "quantity": 1})

        assert _as_mapping(client.put("/cart/items/A", json={"quantity": 5})) == {"A": 5, "B": 1}
        assert _as_mapping(client.put("/cart/items/A", json={"quantity": 0})) == {"B": 1}
        assert _as_mapping(client.delete("/cart/items/B")) == {}

    def test_removing_from_empty_cart_stores_nothing(self, client):
        response = client.delete("/cart/items/A")

        assert response.status_code == 200
        assert "sf_session" not in response.cookies
        assert current_domain.repository_for(GuestSession)._dao.query.all().items == []

    def test_non_positive_add_is_rejected(self, client):
        assert client.post("/cart/items", json={"product_ref": "A", "quantity": 0}).status_code == 422
        assert client.put("/cart/items/A", json={"quantity": -1}).status_code == 422

    def test_unknown_session_cookie_starts_over(self, client):
        client.cookies.set("sf_session", "not-a-real-session")

        assert client.get("/cart").json()["lines"] == []

    def test_cookie_kept_after_checkout_starts_a_new_cart(self, client, shipping):
        client.post("/cart/items", json={"product_ref": "A", "quantity": 2})
        stale = client.cookies.get("sf_session")
        client.post("/checkout", json={"shipping": shipping, "payment_method": "card", "guest_email": "g@x.com"})

        client.cookies.set("sf_session", stale)
        response = client.post("/cart/items", json={"product_ref": "B", "quantity": 1})

        assert response.status_code == 200
        assert _as_mapping(response) == {"B": 1}
        assert _as_mapping(client.get("/cart")) == {"B": 1}


class TestAccountCart:
    def test_bearer_reads_the_account_cart(self, client, signed_in):
        _, headers = signed_in(cart={"C": 2})

        assert _as_mapping(client.get("/cart", headers=headers)) == {"C": 2}

    def test_bearer_mutates_the_account_cart(self, client, signed_in, accounts):
        account_id, headers = signed_in()

        response = client.post("/cart/items", json={"product_ref": "A", "quantity": 1}, headers=headers)

        assert _as_mapping(response) == {"A": 1}
        assert "sf_session" not in response.cookies
        assert [line.product_ref for line in accounts.get_cart(account_id)] == ["A"]

    def test_bad_bearer_is_rejected(self, client):
        response = client.get("/cart", headers={"Authorization": "Bearer nonsense"})

        assert response.status_code == 401
        assert error_code(response) == "authentication_failed"

    def test_wrong_scheme_is_rejected(self, client):
        response = client.get("/cart", headers={"Authorization": "Basic abc"})

        assert response.status_code == 401
