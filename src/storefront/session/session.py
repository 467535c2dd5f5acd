"""Guest session aggregate — the cart of an anonymous visitor.

A guest session exists in storage only once its cart has been mutated: bare
reads of an empty cart never create a record. Every write slides the expiry to
``now + ttl``, so an active shopper's session does not lapse mid-visit.

The record has its own identity; the cookie value is a unique lookup field.
A cookie that outlives its record starts a new record with a fresh id instead
of reviving the old one.
"""

import json

from protean.fields import DateTime, String, Text

from storefront.cart.lines import CartOperation, apply_operation, dump_lines, load_lines, subtract_lines
from storefront.domain import storefront
from storefront.shared import clock

MAX_SETTLED_ORDERS = 20


@storefront.aggregate
class GuestSession:
    session_id = String(required=True, unique=True, max_length=128)
    cart = Text(default="[]")  # JSON: list of {product_ref, quantity}
    settled_orders = Text(default="[]")  # JSON: order ids already taken out of this cart
    created_at = DateTime(required=True)
    updated_at = DateTime()
    expires_at = DateTime(required=True)

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def start(cls, session_id, ttl):
        from storefront.session.events import GuestCartStarted

        now = clock.utc_now()
        session = cls(
            session_id=session_id,
            cart="[]",
            settled_orders="[]",
            created_at=now,
            updated_at=now,
            expires_at=now + ttl,
        )
        session.raise_(GuestCartStarted(session_id=session_id, started_at=now))
        return session

    # -------------------------------------------------------------------
    # Cart
    # -------------------------------------------------------------------
    def lines(self):
        return load_lines(self.cart)

    def apply(self, operation: CartOperation, ttl):
        """Apply a cart operation and slide the expiry window."""
        lines = apply_operation(self.lines(), operation)
        self.cart = dump_lines(lines)
        self.touch(ttl)
        return lines

    def touch(self, ttl):
        now = clock.utc_now()
        self.updated_at = now
        self.expires_at = now + ttl

    def is_expired(self, now) -> bool:
        return now >= self.expires_at

    # -------------------------------------------------------------------
    # Checkout
    # -------------------------------------------------------------------
    def has_settled(self, order_id) -> bool:
        return str(order_id) in json.loads(self.settled_orders or "[]")

    def settle_order(self, order_id, ordered_lines):
        """Take an order's lines out of the cart. A second call for the same order changes nothing."""
        if self.has_settled(order_id):
            return self.lines()

        remaining = subtract_lines(self.lines(), ordered_lines)
        self.cart = dump_lines(remaining)

        settled = json.loads(self.settled_orders or "[]")
        settled.append(str(order_id))
        self.settled_orders = json.dumps(settled[-MAX_SETTLED_ORDERS:])
        return remaining
