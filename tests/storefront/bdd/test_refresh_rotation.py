"""BDD tests for refresh token rotation and reuse detection."""

import pytest
from pytest_bdd import given, parsers, scenarios, then, when

from storefront.errors import StorefrontError, TokenNotFound

scenarios("features/refresh_rotation.feature")


@given(parsers.cfparse('the shopper is logged in as "{email}"'))
def logged_in(lifecycle, shopper, email):
    pair = lifecycle.login(email, "s3cret-pass")
    shopper["original_refresh"] = pair.refresh_token
    shopper["refresh"] = pair.refresh_token
    shopper["access"] = pair.access_token


@when("the refresh token is rotated")
def rotate(lifecycle, shopper):
    pair = lifecycle.refresh(shopper["refresh"])
    shopper["refresh"] = pair.refresh_token
    shopper["access"] = pair.access_token


@when("the original refresh token is presented again")
def replay_original(lifecycle, shopper, error):
    try:
        lifecycle.refresh(shopper["original_refresh"])
    except StorefrontError as exc:
        error["exc"] = exc


@when("the shopper logs out")
def logout(lifecycle, shopper):
    lifecycle.logout(shopper["refresh"])


@then("a new refresh token is issued")
def new_refresh_issued(shopper):
    assert shopper["refresh"] != shopper["original_refresh"]


@then("the new access token authenticates the shopper")
def access_authenticates(lifecycle, shopper):
    assert lifecycle.authenticate(shopper["access"]) == shopper["account_id"]


@then("the latest refresh token no longer works")
def latest_refresh_dead(lifecycle, shopper):
    with pytest.raises(TokenNotFound):
        lifecycle.refresh(shopper["refresh"])
