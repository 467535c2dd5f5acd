from storefront.domain import storefront
from storefront.order.order import Order


@storefront.repository(part_of=Order)
class OrderRepository:
    def find_by_idempotency_key(self, key: str) -> Order | None:
        orders = self._dao.query.filter(idempotency_key=key).all().items
        return orders[0] if orders else None
