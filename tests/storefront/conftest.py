from datetime import UTC, datetime, timedelta

import pytest
from protean.integrations.pytest import DomainFixture

from storefront.shared import clock


@pytest.fixture(scope="session")
def storefront_bed():
    from storefront.domain import storefront

    bed = DomainFixture(storefront)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(storefront_bed):
    from storefront.config import reset_settings
    from storefront.shared.locks import reset_locks

    reset_settings()
    reset_locks()

    with storefront_bed.domain_context():
        yield

        from protean import current_domain

        # Clear all databases
        for _, provider in current_domain.providers.items():
            provider._data_reset()

        # Drain event stores
        current_domain.event_store.store._data_reset()

    from storefront.catalogue import reset_catalogue
    from storefront.mailer import reset_mailer

    reset_catalogue()
    reset_mailer()
    reset_settings()
    reset_locks()


# ---------------------------------------------------------------------------
# External collaborators
# ---------------------------------------------------------------------------
@pytest.fixture(autouse=True)
def catalogue():
    """A catalogue stocking products A ($5), B ($3) and C ($12.50)."""
    from storefront.catalogue import set_catalogue
    from storefront.catalogue.fake_adapter import FakeCatalogue

    fake = FakeCatalogue()
    fake.stock("A", 5.0, title="Product A")
    fake.stock("B", 3.0, title="Product B")
    fake.stock("C", 12.5, title="Product C")
    set_catalogue(fake)
    return fake


@pytest.fixture(autouse=True)
def mailer():
    from storefront.mailer import set_mailer
    from storefront.mailer.fake_adapter import FakeMailer

    fake = FakeMailer()
    set_mailer(fake)
    return fake


# ---------------------------------------------------------------------------
# Time
# ---------------------------------------------------------------------------
class FrozenClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture()
def frozen_clock(monkeypatch):
    frozen = FrozenClock(datetime(2025, 3, 1, 12, 0, tzinfo=UTC))
    monkeypatch.setattr(clock, "utc_now", frozen)
    return frozen


# ---------------------------------------------------------------------------
# Services
# ---------------------------------------------------------------------------
@pytest.fixture()
def sessions():
    from storefront.session.store import SessionStore

    return SessionStore()


@pytest.fixture()
def accounts():
    from storefront.account.store import AccountStore

    return AccountStore()


@pytest.fixture()
def tokens():
    from storefront.token.service import TokenService

    return TokenService()


@pytest.fixture()
def lifecycle(sessions, accounts, tokens):
    from storefront.identity.lifecycle import IdentityLifecycle

    return IdentityLifecycle(tokens=tokens, sessions=sessions, accounts=accounts)


@pytest.fixture()
def checkout():
    from storefront.checkout.orchestrator import CheckoutOrchestrator

    return CheckoutOrchestrator()


@pytest.fixture()
def shipping():
    return {
        "name": "Jane Doe",
        "street": "1 Main St",
        "city": "Springfield",
        "state": "IL",
        "postal_code": "62701",
        "country": "US",
    }


@pytest.fixture()
def guest_cart(sessions):
    """Factory: start a guest session holding ``{product_ref: quantity}``."""
    from storefront.cart.lines import CartOperation

    def _make(contents: dict[str, int]) -> str:
        session_id = sessions.create()
        for product_ref, quantity in contents.items():
            sessions.mutate_cart(session_id, CartOperation.add(product_ref, quantity))
        return session_id

    return _make


@pytest.fixture()
def verified_account(lifecycle, accounts, tokens):
    """Factory: register an account, verify it and optionally fill its cart."""
    from storefront.cart.lines import CartLine

    def _make(email="shopper@example.com", password="s3cret-pass", cart: dict[str, int] | None = None) -> str:
        account_id = lifecycle.register(email, password)
        accounts.update(account_id, lambda acc: acc.verify_email())
        if cart:
            accounts.replace_cart(account_id, [CartLine(ref, qty) for ref, qty in cart.items()])
        return account_id

    return _make


@pytest.fixture()
def sent_token(mailer):
    """Pull the token out of the last link mailed to an address."""
    from urllib.parse import parse_qs, urlparse

    def _extract(email: str) -> str:
        message = mailer.last_to(email)
        assert message is not None, f"No email sent to {email}"
        link = next(word for word in message["body"].split() if word.startswith("http"))
        return parse_qs(urlparse(link).query)["token"][0]

    return _extract
