"""Tests for the cart merge engine: folding into an account and disposing of the guest session."""

import pytest

from storefront.account.passwords import hash_password
from storefront.cart.lines import CartLine, CartOperation, as_mapping
from storefront.cart.merge import CartMergeEngine
from storefront.errors import SessionNotFound, StoreUnavailable


@pytest.fixture()
def engine(sessions, accounts):
    return CartMergeEngine(sessions, accounts)


@pytest.fixture()
def account_id(accounts):
    return str(accounts.create("jane@example.com", hash_password("pw")).id)


def test_pure_merge_is_exposed():
    merged = CartMergeEngine.merge([CartLine("A", 2)], [CartLine("A", 1)])
    assert as_mapping(merged) == {"A": 3}


def test_merge_into_account_sums_and_destroys_session(engine, sessions, accounts, account_id, guest_cart):
    accounts.replace_cart(account_id, [CartLine("A", 1)])
    session_id = guest_cart({"A": 2, "B": 1})

    outcome = engine.merge_into_account(session_id, account_id)

    assert outcome.merged
    assert outcome.items_merged == 3
    assert as_mapping(outcome.cart) == {"A": 3, "B": 1}
    assert as_mapping(accounts.get_cart(account_id)) == {"A": 3, "B": 1}
    with pytest.raises(SessionNotFound):
        sessions.get_cart(session_id)


def test_missing_session_is_already_merged(engine, accounts, account_id, sessions):
    accounts.replace_cart(account_id, [CartLine("A", 1)])
    outcome = engine.merge_into_account(sessions.create(), account_id)
    assert not outcome.merged
    assert as_mapping(outcome.cart) == {"A": 1}


def test_second_merge_of_same_session_does_not_double_credit(engine, accounts, account_id, guest_cart):
    session_id = guest_cart({"A": 2})
    engine.merge_into_account(session_id, account_id)
    outcome = engine.merge_into_account(session_id, account_id)

    assert not outcome.merged
    assert as_mapping(accounts.get_cart(account_id)) == {"A": 2}


def test_retry_after_crash_only_destroys_session(engine, sessions, accounts, account_id, guest_cart):
    session_id = guest_cart({"A": 2})
    ref = sessions.find(session_id).id
    # Cart saved, process died before the session was destroyed.
    accounts.update(account_id, lambda acc: acc.absorb_guest_cart(ref, sessions.get_cart(session_id)))

    outcome = engine.merge_into_account(session_id, account_id)

    assert not outcome.merged
    assert as_mapping(accounts.get_cart(account_id)) == {"A": 2}
    assert sessions.find_cart(session_id) is None


def test_lines_added_after_a_failed_destroy_are_merged_on_retry(
    engine, sessions, accounts, account_id, guest_cart, monkeypatch
):
    session_id = guest_cart({"A": 2})

    def _unavailable(_session_id):
        raise StoreUnavailable()

    monkeypatch.setattr(sessions, "destroy", _unavailable)
    with pytest.raises(StoreUnavailable):
        engine.merge_into_account(session_id, account_id)
    monkeypatch.undo()
    assert as_mapping(accounts.get_cart(account_id)) == {"A": 2}

    # Guest keeps shopping on the surviving session
    sessions.mutate_cart(session_id, CartOperation.add("B", 1))

    outcome = engine.merge_into_account(session_id, account_id)

    assert outcome.merged
    assert outcome.items_merged == 1
    assert as_mapping(accounts.get_cart(account_id)) == {"A": 2, "B": 1}
    assert sessions.find_cart(session_id) is None


def test_stale_cookie_after_merge_starts_a_cart_that_merges_again(engine, sessions, accounts, account_id, guest_cart):
    session_id = guest_cart({"A": 2})
    engine.merge_into_account(session_id, account_id)

    sessions.mutate_cart(session_id, CartOperation.add("B", 1))
    outcome = engine.merge_into_account(session_id, account_id)

    assert outcome.merged
    assert as_mapping(accounts.get_cart(account_id)) == {"A": 2, "B": 1}


def test_emptied_guest_session_is_discarded(engine, sessions, accounts, account_id):
    session_id = sessions.create()
    sessions.mutate_cart(session_id, CartOperation.add("A", 1))
    sessions.mutate_cart(session_id, CartOperation.remove("A"))

    outcome = engine.merge_into_account(session_id, account_id)

    assert not outcome.merged
    assert sessions.find_cart(session_id) is None
    assert accounts.get_cart(account_id) == []


def test_delisted_products_are_dropped(engine, accounts, account_id, guest_cart, catalogue):
    session_id = guest_cart({"A": 2, "B": 1})
    catalogue.delist("B")

    outcome = engine.merge_into_account(session_id, account_id)

    assert outcome.merged
    assert as_mapping(accounts.get_cart(account_id)) == {"A": 2}


def test_unreachable_catalogue_keeps_every_line(engine, accounts, account_id, guest_cart, catalogue):
    session_id = guest_cart({"A": 2, "B": 1})
    catalogue.configure(should_fail=True)

    outcome = engine.merge_into_account(session_id, account_id)

    assert outcome.merged
    assert as_mapping(accounts.get_cart(account_id)) == {"A": 2, "B": 1}


def test_merge_is_recorded_against_the_session_record(engine, sessions, accounts, account_id, guest_cart):
    session_id = guest_cart({"A": 2})
    ref = sessions.find(session_id).id
    engine.merge_into_account(session_id, account_id)
    assert accounts.get(account_id).has_merged(ref)
