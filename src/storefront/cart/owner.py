"""Cart owners — one interface over guest and account carts.

Checkout and the HTTP layer never branch on "is the caller signed in"; they hold
a ``CartOwner`` and call it. ``GuestOwner`` reads and writes through the
``SessionStore``; ``AccountOwner`` through the ``AccountStore``.
"""

from abc import ABC, abstractmethod

from storefront.account.store import AccountStore, account_lock_key
from storefront.cart.lines import CartOperation
from storefront.session.store import SessionStore, session_lock_key


class CartOwner(ABC):
    is_guest: bool = False

    @property
    @abstractmethod
    def lock_key(self) -> str:
        """Key under which every write to this cart is serialised."""

    @property
    @abstractmethod
    def owner_ref(self) -> str | None:
        """Account id recorded on orders; ``None`` for guests."""

    @abstractmethod
    def read_cart(self):
        """Current cart lines; an owner without a cart reads as empty."""

    @abstractmethod
    def mutate_cart(self, operation: CartOperation):
        ...

    @abstractmethod
    def cart_ref(self) -> str | None:
        """Identity of the record holding the cart right now; ``None`` when there is none."""

    @abstractmethod
    def settle_order(self, order_id, ordered_lines, cart_ref) -> None:
        """Take an order's lines out of the cart record ``cart_ref``, once per order.

        Anything added to the cart since the order was placed stays.
        """


class GuestOwner(CartOwner):
    is_guest = True

    def __init__(self, session_id: str, sessions: SessionStore | None = None):
        self.session_id = session_id
        self.sessions = sessions or SessionStore()

    def __repr__(self):
        return "GuestOwner(session_id=<hidden>)"

    @property
    def lock_key(self) -> str:
        return session_lock_key(self.session_id)

    @property
    def owner_ref(self):
        return None

    def read_cart(self):
        return self.sessions.find_cart(self.session_id) or []

    def mutate_cart(self, operation: CartOperation):
        return self.sessions.mutate_cart(self.session_id, operation)

    def cart_ref(self):
        session = self.sessions.find(self.session_id)
        return str(session.id) if session is not None else None

    def settle_order(self, order_id, ordered_lines, cart_ref) -> None:
        self.sessions.settle_order(self.session_id, cart_ref, order_id, ordered_lines)


class AccountOwner(CartOwner):
    def __init__(self, account_id: str, accounts: AccountStore | None = None):
        self.account_id = str(account_id)
        self.accounts = accounts or AccountStore()

    def __repr__(self):
        return f"AccountOwner(account_id={self.account_id!r})"

    @property
    def lock_key(self) -> str:
        return account_lock_key(self.account_id)

    @property
    def owner_ref(self):
        return self.account_id

    def read_cart(self):
        return self.accounts.get_cart(self.account_id)

    def mutate_cart(self, operation: CartOperation):
        return self.accounts.mutate_cart(self.account_id, operation)

    def cart_ref(self):
        return self.account_id

    def settle_order(self, order_id, ordered_lines, cart_ref) -> None:
        self.accounts.settle_order(self.account_id, order_id, ordered_lines)
