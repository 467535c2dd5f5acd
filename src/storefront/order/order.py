"""Order aggregate — the immutable record checkout produces.

An order snapshots the priced cart at the moment of checkout. After creation
only ``status`` moves (and ``cart_cleared`` flips once the source cart has been
emptied). Status is a small forward-only machine:

    PENDING -> PAID -> FULFILLED
    PENDING -> FAILED
    PENDING -> CANCELLED

FULFILLED, FAILED and CANCELLED are terminal.
"""

from enum import Enum

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import (
    Boolean,
    DateTime,
    Float,
    HasMany,
    Identifier,
    Integer,
    String,
    ValueObject,
)

from storefront.domain import storefront
from storefront.order.events import (
    OrderCancelled,
    OrderFailed,
    OrderFulfilled,
    OrderPaid,
    OrderPlaced,
)
from storefront.shared import clock


class OrderStatus(Enum):
    PENDING = "Pending"
    PAID = "Paid"
    FULFILLED = "Fulfilled"
    FAILED = "Failed"
    CANCELLED = "Cancelled"


_VALID_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.PAID, OrderStatus.FAILED, OrderStatus.CANCELLED},
    OrderStatus.PAID: {OrderStatus.FULFILLED},
    OrderStatus.FULFILLED: set(),  # Terminal
    OrderStatus.FAILED: set(),  # Terminal
    OrderStatus.CANCELLED: set(),  # Terminal
}


@storefront.value_object(part_of="Order")
class ShippingInfo:
    """Where the order goes, captured at checkout and never changed afterwards."""

    name = String(required=True, max_length=255)
    street = String(required=True, max_length=255)
    city = String(required=True, max_length=100)
    state = String(max_length=100)
    postal_code = String(required=True, max_length=20)
    country = String(required=True, max_length=100)


@storefront.entity(part_of="Order")
class OrderLine:
    """One priced line of the cart snapshot."""

    product_ref = String(required=True, max_length=255)
    title = String(required=True, max_length=255)
    quantity = Integer(required=True, min_value=1)
    unit_price = Float(required=True, min_value=0.0)
    line_total = Float(required=True, min_value=0.0)


@storefront.aggregate
class Order:
    owner_ref = Identifier()
    guest_email = String(max_length=254)
    lines = HasMany(OrderLine)
    total_amount = Float(required=True, min_value=0.0)
    currency = String(max_length=3, default="USD")
    shipping_info = ValueObject(ShippingInfo)
    payment_method = String(max_length=50)
    status = String(choices=OrderStatus, default=OrderStatus.PENDING.value)
    idempotency_key = String(max_length=255)
    cart_ref = String(max_length=255)  # cart record the order was placed from
    cart_cleared = Boolean(default=False)
    failure_reason = String(max_length=500)
    created_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def guest_orders_carry_an_email(self):
        if self.owner_ref is None and not self.guest_email:
            raise ValidationError({"guest_email": ["Guest orders require an email address"]})
        if self.owner_ref is not None and self.guest_email:
            raise ValidationError({"guest_email": ["Account orders must not carry a guest email"]})

    # -------------------------------------------------------------------
    # Factory method
    # -------------------------------------------------------------------
    @classmethod
    def place(
        cls,
        owner_ref,
        guest_email,
        priced_lines,
        shipping_info,
        payment_method,
        idempotency_key=None,
        currency="USD",
        cart_ref=None,
    ):
        """Create a pending order from a priced cart snapshot.

        Args:
            owner_ref: Account id, or None for a guest checkout.
            guest_email: Contact address; required exactly when owner_ref is None.
            priced_lines: List of dicts with product_ref, title, quantity, unit_price.
            shipping_info: Dict with name, street, city, state, postal_code, country.
            cart_ref: Record holding the cart, so settling it later never touches a newer cart.
        """
        if not priced_lines:
            raise ValidationError({"lines": ["An order needs at least one line"]})

        lines = [
            OrderLine(
                product_ref=line["product_ref"],
                title=line["title"],
                quantity=line["quantity"],
                unit_price=line["unit_price"],
                line_total=round(line["unit_price"] * line["quantity"], 2),
            )
            for line in priced_lines
        ]
        total = round(sum(line.line_total for line in lines), 2)
        if isinstance(shipping_info, dict):
            shipping_info = ShippingInfo(**shipping_info)

        now = clock.utc_now()
        order = cls(
            owner_ref=owner_ref,
            guest_email=guest_email,
            lines=lines,
            total_amount=total,
            currency=currency,
            shipping_info=shipping_info,
            payment_method=payment_method,
            status=OrderStatus.PENDING.value,
            idempotency_key=idempotency_key,
            cart_ref=cart_ref,
            cart_cleared=False,
            created_at=now,
            updated_at=now,
        )
        order.raise_(
            OrderPlaced(
                order_id=str(order.id),
                owner_ref=str(owner_ref) if owner_ref else None,
                guest_email=guest_email,
                total_amount=total,
                currency=currency,
                line_count=len(lines),
                placed_at=now,
            )
        )
        return order

    # -------------------------------------------------------------------
    # State transition helper
    # -------------------------------------------------------------------
    def _transition(self, target_status):
        current = OrderStatus(self.status)
        if target_status not in _VALID_TRANSITIONS.get(current, set()):
            raise ValidationError({"status": [f"Cannot transition from {current.value} to {target_status.value}"]})
        now = clock.utc_now()
        self.status = target_status.value
        self.updated_at = now
        return now

    # -------------------------------------------------------------------
    # Lifecycle transitions
    # -------------------------------------------------------------------
    def mark_paid(self):
        now = self._transition(OrderStatus.PAID)
        self.raise_(OrderPaid(order_id=str(self.id), paid_at=now))

    def mark_fulfilled(self):
        now = self._transition(OrderStatus.FULFILLED)
        self.raise_(OrderFulfilled(order_id=str(self.id), fulfilled_at=now))

    def mark_failed(self, reason=None):
        now = self._transition(OrderStatus.FAILED)
        self.failure_reason = reason
        self.raise_(OrderFailed(order_id=str(self.id), reason=reason, failed_at=now))

    def cancel(self, reason=None):
        now = self._transition(OrderStatus.CANCELLED)
        self.failure_reason = reason
        self.raise_(OrderCancelled(order_id=str(self.id), reason=reason, cancelled_at=now))

    def mark_cart_cleared(self):
        self.cart_cleared = True
        self.updated_at = clock.utc_now()

    @property
    def is_terminal(self) -> bool:
        return not _VALID_TRANSITIONS[OrderStatus(self.status)]

    def ordered_lines(self) -> list[dict]:
        return [{"product_ref": line.product_ref, "quantity": line.quantity} for line in self.lines]
