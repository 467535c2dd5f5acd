"""Domain events for the Order aggregate."""

from protean.fields import DateTime, Float, Identifier, Integer, String

from storefront.domain import storefront


@storefront.event(part_of="Order")
class OrderPlaced:
    """Checkout turned a cart into a pending order."""

    __version__ = 1

    order_id = Identifier(required=True)
    owner_ref = Identifier()
    guest_email = String()
    total_amount = Float(required=True)
    currency = String(default="USD")
    line_count = Integer(required=True)
    placed_at = DateTime(required=True)


@storefront.event(part_of="Order")
class OrderPaid:
    __version__ = 1

    order_id = Identifier(required=True)
    paid_at = DateTime(required=True)


@storefront.event(part_of="Order")
class OrderFulfilled:
    __version__ = 1

    order_id = Identifier(required=True)
    fulfilled_at = DateTime(required=True)


@storefront.event(part_of="Order")
class OrderFailed:
    """Payment or processing failed; the order will not proceed."""

    __version__ = 1

    order_id = Identifier(required=True)
    reason = String(max_length=500)
    failed_at = DateTime(required=True)


@storefront.event(part_of="Order")
class OrderCancelled:
    __version__ = 1

    order_id = Identifier(required=True)
    reason = String(max_length=500)
    cancelled_at = DateTime(required=True)
