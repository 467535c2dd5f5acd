"""Storefront API package."""

from storefront.api.errors import register_error_handlers
from storefront.api.routes import auth_router, cart_router, order_router

__all__ = ["auth_router", "cart_router", "order_router", "register_error_handlers"]
