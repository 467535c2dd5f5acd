"""In-memory catalogue for development and testing."""

from storefront.catalogue.port import Catalogue, ProductQuote
from storefront.errors import ProductUnavailable


class FakeCatalogue(Catalogue):
    """Catalogue backed by a dict, configurable at runtime."""

    def __init__(self) -> None:
        self.products: dict[str, ProductQuote] = {}
        self.should_fail: bool = False
        self.calls: list[dict] = []

    def configure(self, should_fail: bool) -> None:
        """Make every lookup fail as if the catalogue service were down."""
        self.should_fail = should_fail

    def stock(self, product_ref: str, unit_price: float, title: str | None = None, available: bool = True) -> None:
        self.products[product_ref] = ProductQuote(
            product_ref=product_ref,
            title=title or product_ref,
            unit_price=unit_price,
            available=available,
        )

    def delist(self, product_ref: str) -> None:
        self.products.pop(product_ref, None)

    def quote(self, product_ref: str) -> ProductQuote:
        self.calls.append({"method": "quote", "product_ref": product_ref})
        if self.should_fail:
            raise ConnectionError("Catalogue service unreachable")

        product = self.products.get(product_ref)
        if product is None:
            raise ProductUnavailable([product_ref])
        return product

    def exists(self, product_ref: str) -> bool:
        self.calls.append({"method": "exists", "product_ref": product_ref})
        if self.should_fail:
            raise ConnectionError("Catalogue service unreachable")
        return product_ref in self.products

    def reset(self) -> None:
        self.products.clear()
        self.calls.clear()
        self.should_fail = False
