"""Checkout orchestrator — turns a cart into a pending order.

Effects, in order, under the cart owner's lock:

1. snapshot the cart and price every line through the catalogue;
2. create the order in PENDING;
3. take the ordered lines out of the source cart and record ``cart_cleared``
   on the order.

A failure in step 3 leaves a pending order with ``cart_cleared=False``. The
caller resolves it by re-querying the order (or re-submitting with the same
idempotency key, which finishes the clear) and never by running checkout again
against the stale cart. The cart remembers which orders it has settled, so a
retry after the cart was cleared but before the order was saved takes nothing
out twice.
"""

from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.utils.globals import current_domain

from storefront.cart.owner import CartOwner
from storefront.catalogue import get_catalogue
from storefront.errors import (
    EmptyCart,
    GuestEmailRequired,
    OrderNotFound,
    ProductUnavailable,
    StoreUnavailable,
)
from storefront.order.order import Order
from storefront.shared.email import normalize_email
from storefront.shared.locks import get_locks, store_operation
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class CheckoutOrchestrator:
    def __init__(self, catalogue=None):
        self._catalogue = catalogue

    @property
    def catalogue(self):
        return self._catalogue or get_catalogue()

    def checkout(
        self,
        owner: CartOwner,
        shipping_info,
        payment_method: str,
        guest_email: str | None = None,
        idempotency_key: str | None = None,
    ) -> Order:
        if owner.is_guest:
            if not guest_email:
                raise GuestEmailRequired()
            guest_email = normalize_email(guest_email)
        else:
            guest_email = None

        with get_locks().hold(owner.lock_key):
            if idempotency_key:
                existing = self.find_by_key(idempotency_key)
                if existing is not None:
                    return self._resume(owner, existing, guest_email)

            lines = owner.read_cart()
            if not lines:
                logger.info("checkout_rejected", reason="empty_cart")
                raise EmptyCart()

            priced = self._price(lines)
            order = Order.place(
                owner_ref=owner.owner_ref,
                guest_email=guest_email,
                priced_lines=priced,
                shipping_info=shipping_info,
                payment_method=payment_method,
                idempotency_key=idempotency_key,
                cart_ref=owner.cart_ref(),
            )
            self._save(order)
            logger.info(
                "order_placed",
                order_id=str(order.id),
                owner_ref=owner.owner_ref,
                total_amount=order.total_amount,
            )

            self._settle(owner, order)
            return order

    def get_order(self, order_id) -> Order:
        with store_operation("order"):
            try:
                return current_domain.repository_for(Order).get(order_id)
            except ObjectNotFoundError as exc:
                raise OrderNotFound() from exc

    def find_by_key(self, idempotency_key: str) -> Order | None:
        with store_operation("order"):
            return current_domain.repository_for(Order).find_by_idempotency_key(idempotency_key)

    # -------------------------------------------------------------------
    # Status transitions
    # -------------------------------------------------------------------
    def mark_paid(self, order_id) -> Order:
        return self._update(order_id, lambda order: order.mark_paid())

    def mark_fulfilled(self, order_id) -> Order:
        return self._update(order_id, lambda order: order.mark_fulfilled())

    def mark_failed(self, order_id, reason: str | None = None) -> Order:
        return self._update(order_id, lambda order: order.mark_failed(reason))

    def cancel(self, order_id, reason: str | None = None) -> Order:
        return self._update(order_id, lambda order: order.cancel(reason))

    # -------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------
    def _price(self, lines) -> list[dict]:
        """Quote every line; any unavailable product fails the whole checkout."""
        priced, unavailable = [], []
        for line in lines:
            try:
                quote = self.catalogue.quote(line.product_ref)
            except ProductUnavailable:
                unavailable.append(line.product_ref)
                continue
            except ConnectionError as exc:
                logger.error("catalogue_lookup_failed", product_ref=line.product_ref, error=str(exc))
                unavailable.append(line.product_ref)
                continue

            if not quote.available:
                unavailable.append(line.product_ref)
                continue

            priced.append(
                {
                    "product_ref": line.product_ref,
                    "title": quote.title,
                    "quantity": line.quantity,
                    "unit_price": quote.unit_price,
                }
            )

        if unavailable:
            logger.info("checkout_rejected", reason="product_unavailable", product_refs=unavailable)
            raise ProductUnavailable(unavailable)
        return priced

    def _resume(self, owner: CartOwner, order: Order, guest_email) -> Order:
        """Answer a retried checkout with the order it already produced."""
        if str(order.owner_ref or "") != str(owner.owner_ref or "") or (
            owner.is_guest and order.guest_email != guest_email
        ):
            raise ValidationError({"idempotency_key": ["Idempotency key belongs to another checkout"]})

        if not order.cart_cleared:
            # Items added after the first attempt stay in the cart.
            self._settle(owner, order)
        logger.info("checkout_replayed", order_id=str(order.id), cart_cleared=order.cart_cleared)
        return order

    def _settle(self, owner: CartOwner, order: Order) -> None:
        try:
            owner.settle_order(order.id, order.ordered_lines(), order.cart_ref)
        except StoreUnavailable:
            logger.error("cart_clear_failed", order_id=str(order.id), owner_ref=owner.owner_ref)
            return

        order.mark_cart_cleared()
        self._save(order)

    def _update(self, order_id, change) -> Order:
        with get_locks().hold(f"order:{order_id}"):
            order = self.get_order(order_id)
            change(order)
            self._save(order)
        logger.info("order_status_changed", order_id=str(order_id), status=order.status)
        return order

    def _save(self, order: Order):
        with store_operation("order"):
            current_domain.repository_for(Order).add(order)
