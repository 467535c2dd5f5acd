"""Shared BDD fixtures and step definitions for the storefront flows."""

import pytest
from protean.exceptions import ValidationError
from pytest_bdd import given, parsers, then, when

from storefront.cart.lines import CartOperation, as_mapping
from storefront.errors import StorefrontError


def parse_cart(text: str) -> dict[str, int]:
    """Turn ``"A:2, B:1"`` (or ``"empty"``) into ``{"A": 2, "B": 1}``."""
    if text.strip() == "empty":
        return {}
    contents = {}
    for item in text.split(","):
        ref, quantity = item.strip().split(":")
        contents[ref] = int(quantity)
    return contents


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------
@pytest.fixture()
def error():
    """Container for captured storefront errors."""
    return {"exc": None}


@pytest.fixture()
def shopper():
    """What the scenario knows about the shopper: email, account id, session id, tokens."""
    return {}


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given("the clock is frozen")
def clock_is_frozen(frozen_clock):
    return frozen_clock


@given(parsers.cfparse('a guest session with cart "{cart}"'))
def guest_session_with_cart(guest_cart, shopper, cart):
    shopper["session_id"] = guest_cart(parse_cart(cart))


@given(parsers.cfparse('a verified account "{email}" with cart "{cart}"'))
def verified_account_with_cart(verified_account, shopper, email, cart):
    shopper["email"] = email
    shopper["account_id"] = verified_account(email=email, cart=parse_cart(cart))


@given(parsers.cfparse('product "{product_ref}" is delisted'))
def product_is_delisted(catalogue, product_ref):
    catalogue.delist(product_ref)


# ---------------------------------------------------------------------------
# When steps
# ---------------------------------------------------------------------------
@when(parsers.cfparse('the guest adds "{cart}"'))
def guest_adds(sessions, shopper, cart):
    for product_ref, quantity in parse_cart(cart).items():
        sessions.mutate_cart(shopper["session_id"], CartOperation.add(product_ref, quantity))


@when(parsers.cfparse("{days:d} days pass"))
def days_pass(frozen_clock, days):
    frozen_clock.advance(days=days)


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse('the account cart is "{cart}"'))
def account_cart_is(accounts, shopper, cart):
    assert as_mapping(accounts.get_cart(shopper["account_id"])) == parse_cart(cart)


@then(parsers.cfparse('the guest session cart is "{cart}"'))
def guest_session_cart_is(sessions, shopper, cart):
    assert as_mapping(sessions.get_cart(shopper["session_id"])) == parse_cart(cart)


@then("the guest session is gone")
def guest_session_is_gone(sessions, shopper):
    assert sessions.find_cart(shopper["session_id"]) is None


@then(parsers.cfparse('the request fails with "{code}"'))
def request_fails_with(error, code):
    assert isinstance(error["exc"], StorefrontError)
    assert error["exc"].code == code



@then("the request is rejected as invalid input")
def request_rejected_as_invalid(error):
    assert isinstance(error["exc"], ValidationError)
