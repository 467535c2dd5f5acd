"""Product catalogue port (abstract interface).

The catalogue is an external collaborator: checkout asks it for current price
and availability, and the cart merge asks whether a product still exists.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class ProductQuote:
    """Current price and availability of one product."""

    product_ref: str
    title: str
    unit_price: float
    available: bool = True


class Catalogue(ABC):
    """Abstract catalogue interface."""

    @abstractmethod
    def quote(self, product_ref: str) -> ProductQuote:
        """Return the current quote, raising ``ProductUnavailable`` for unknown products."""
        ...

    @abstractmethod
    def exists(self, product_ref: str) -> bool:
        """Whether the product is still listed at all (regardless of stock)."""
        ...
