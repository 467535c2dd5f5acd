"""Pure functions over cart lines, shared by guest and account carts.

A cart is an ordered list of ``CartLine`` values with at most one line per
``product_ref`` and strictly positive quantities. Carts are persisted as JSON
text on their aggregate; ``load_lines``/``dump_lines`` own that encoding.

Nothing here touches storage, so the merge can be reasoned about (and tested)
on its own.
"""

import json
from dataclasses import dataclass
from enum import Enum

from protean.exceptions import ValidationError


@dataclass(frozen=True)
class CartLine:
    product_ref: str
    quantity: int

    def to_dict(self) -> dict:
        return {"product_ref": self.product_ref, "quantity": self.quantity}


class CartOperationKind(Enum):
    ADD = "add"
    REMOVE = "remove"
    SET_QUANTITY = "set_quantity"


@dataclass(frozen=True)
class CartOperation:
    """One add/remove/update-quantity request against a cart."""

    kind: CartOperationKind
    product_ref: str
    quantity: int = 0

    @classmethod
    def add(cls, product_ref: str, quantity: int = 1) -> "CartOperation":
        return cls(CartOperationKind.ADD, product_ref, quantity)

    @classmethod
    def remove(cls, product_ref: str) -> "CartOperation":
        return cls(CartOperationKind.REMOVE, product_ref)

    @classmethod
    def set_quantity(cls, product_ref: str, quantity: int) -> "CartOperation":
        return cls(CartOperationKind.SET_QUANTITY, product_ref, quantity)


def _is_positive_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def normalize(raw_lines) -> list[CartLine]:
    """Coerce untrusted cart content into a well-formed cart.

    Lines with a missing product reference or a non-positive / non-integer
    quantity are dropped; repeated references are folded into the first
    occurrence by summing. Accepts ``CartLine`` objects or plain dicts.
    """
    quantities: dict[str, int] = {}
    for raw in raw_lines or []:
        if isinstance(raw, CartLine):
            product_ref, quantity = raw.product_ref, raw.quantity
        elif isinstance(raw, dict):
            product_ref, quantity = raw.get("product_ref"), raw.get("quantity")
        else:
            continue

        if not product_ref or not isinstance(product_ref, str) or not _is_positive_int(quantity):
            continue
        quantities[product_ref] = quantities.get(product_ref, 0) + quantity

    return [CartLine(product_ref=ref, quantity=qty) for ref, qty in quantities.items()]


def merge_carts(session_cart, account_cart) -> list[CartLine]:
    """Union two carts by product reference, summing quantities found on both sides.

    The account's lines keep their order and come first; lines that exist only
    in the guest cart follow in guest order. Malformed lines on either side are
    normalised away, so the merge never fails.
    """
    merged = {line.product_ref: line.quantity for line in normalize(account_cart)}
    for line in normalize(session_cart):
        merged[line.product_ref] = merged.get(line.product_ref, 0) + line.quantity
    return [CartLine(product_ref=ref, quantity=qty) for ref, qty in merged.items()]


def apply_operation(lines, operation: CartOperation) -> list[CartLine]:
    """Return a new cart with ``operation`` applied.

    Adding requires a positive quantity. Setting a quantity of zero or less
    removes the line. Removing (or zeroing) a product that is not in the cart
    leaves the cart unchanged.
    """
    if not operation.product_ref or not isinstance(operation.product_ref, str):
        raise ValidationError({"product_ref": ["Product reference is required"]})

    current = {line.product_ref: line.quantity for line in normalize(lines)}

    if operation.kind == CartOperationKind.ADD:
        if not _is_positive_int(operation.quantity):
            raise ValidationError({"quantity": ["Quantity to add must be a positive integer"]})
        current[operation.product_ref] = current.get(operation.product_ref, 0) + operation.quantity

    elif operation.kind == CartOperationKind.SET_QUANTITY:
        if not isinstance(operation.quantity, int) or isinstance(operation.quantity, bool):
            raise ValidationError({"quantity": ["Quantity must be an integer"]})
        if operation.quantity > 0:
            current[operation.product_ref] = operation.quantity
        else:
            current.pop(operation.product_ref, None)

    elif operation.kind == CartOperationKind.REMOVE:
        current.pop(operation.product_ref, None)

    return [CartLine(product_ref=ref, quantity=qty) for ref, qty in current.items()]


def subtract_lines(lines, taken) -> list[CartLine]:
    """Remove the quantities in ``taken`` from ``lines``, dropping lines that reach zero."""
    remaining = {line.product_ref: line.quantity for line in normalize(lines)}
    for line in normalize(taken):
        if line.product_ref in remaining:
            left = remaining[line.product_ref] - line.quantity
            if left > 0:
                remaining[line.product_ref] = left
            else:
                del remaining[line.product_ref]
    return [CartLine(product_ref=ref, quantity=qty) for ref, qty in remaining.items()]


def total_quantity(lines) -> int:
    return sum(line.quantity for line in lines)


def load_lines(text: str | None) -> list[CartLine]:
    if not text:
        return []
    try:
        raw = json.loads(text)
    except (TypeError, ValueError):
        return []
    return normalize(raw if isinstance(raw, list) else [])


def dump_lines(lines) -> str:
    return json.dumps([line.to_dict() for line in lines])


def as_mapping(lines) -> dict[str, int]:
    """``{product_ref: quantity}`` view of a cart, handy for comparisons."""
    return {line.product_ref: line.quantity for line in lines}
