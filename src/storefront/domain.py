"""Storefront bounded context — guest sessions, accounts, tokens, carts and checkout.

Anonymous visitors shop under an ephemeral guest session; registering or logging
in merges that cart into the durable account cart. Authenticated sessions run on
short-lived access tokens and rotating refresh tokens.
"""

from protean.domain import Domain

from storefront.utils.logging import configure_logging, get_logger

# Configure logging for the application
configure_logging()

# Get logger for this module
logger = get_logger(__name__)

# Domain Composition Root
storefront = Domain(name="storefront")
