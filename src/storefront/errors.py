"""Typed failures for the identity, cart and checkout flows.

Every error carries a category that decides how it is logged and whether a
caller may retry it:

    expected_absence  normal branch (new visitor, consumed token); never logged as an error
    client            bad input or a business rule; surfaced verbatim, never retried
    expiry            a token outlived its TTL; caller can offer "request a new one"
    security          possible token theft; reported to the caller as a plain auth failure
    infrastructure    store timeouts; the only retryable category
"""

from enum import Enum


class ErrorCategory(str, Enum):
    EXPECTED_ABSENCE = "expected_absence"
    CLIENT = "client"
    EXPIRY = "expiry"
    SECURITY = "security"
    INFRASTRUCTURE = "infrastructure"


class StorefrontError(Exception):
    """Base exception for all storefront failures."""

    code = "storefront_error"
    category = ErrorCategory.CLIENT
    http_status = 400
    retryable = False
    default_message = "Request could not be processed"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_response(self) -> dict:
        """Convert to the REST error envelope."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "category": self.category.value,
                "retryable": self.retryable,
            }
        }


# ---------------------------------------------------------------------------
# Expected absence
# ---------------------------------------------------------------------------
class SessionNotFound(StorefrontError):
    code = "session_not_found"
    category = ErrorCategory.EXPECTED_ABSENCE
    http_status = 404
    default_message = "No active session"


class TokenNotFound(StorefrontError):
    code = "token_not_found"
    category = ErrorCategory.EXPECTED_ABSENCE
    http_status = 404
    default_message = "Token is invalid or has already been used"


class AccountNotFound(StorefrontError):
    code = "account_not_found"
    category = ErrorCategory.EXPECTED_ABSENCE
    http_status = 404
    default_message = "Account not found"


class OrderNotFound(StorefrontError):
    code = "order_not_found"
    category = ErrorCategory.EXPECTED_ABSENCE
    http_status = 404
    default_message = "Order not found"


# ---------------------------------------------------------------------------
# Client input
# ---------------------------------------------------------------------------
class TokenMalformed(StorefrontError):
    code = "token_malformed"
    http_status = 400
    default_message = "Token is malformed"


class InvalidPurpose(StorefrontError):
    code = "invalid_purpose"
    http_status = 400
    default_message = "Unknown token purpose"


class InvalidTTL(StorefrontError):
    code = "invalid_ttl"
    http_status = 400
    default_message = "Token lifetime must be positive"


class TokenPurposeMismatch(StorefrontError):
    code = "token_purpose_mismatch"
    http_status = 400
    default_message = "Token cannot be used for this operation"


class EmailAlreadyRegistered(StorefrontError):
    """The email belongs to an existing account.

    ``verified`` tells support tooling which case it was; it is deliberately
    left out of the message and the response envelope.
    """

    code = "email_already_registered"
    http_status = 409
    default_message = "An account with this email already exists"

    def __init__(self, message: str | None = None, verified: bool = False):
        super().__init__(message)
        self.verified = verified


class InvalidCredentials(StorefrontError):
    code = "invalid_credentials"
    http_status = 401
    default_message = "Email or password is incorrect"


class EmailNotVerified(StorefrontError):
    code = "email_not_verified"
    http_status = 403
    default_message = "Email address has not been verified yet"


class EmptyCart(StorefrontError):
    code = "empty_cart"
    http_status = 409
    default_message = "Cannot check out an empty cart"


class GuestEmailRequired(StorefrontError):
    code = "guest_email_required"
    http_status = 422
    default_message = "An email address is required to check out as a guest"


class ProductUnavailable(StorefrontError):
    code = "product_unavailable"
    http_status = 409
    default_message = "Some products in the cart are no longer available"

    def __init__(self, product_refs=(), message: str | None = None):
        self.product_refs = list(product_refs)
        if message is None and self.product_refs:
            message = f"Unavailable products: {', '.join(self.product_refs)}"
        super().__init__(message)

    def to_response(self) -> dict:
        response = super().to_response()
        response["error"]["product_refs"] = self.product_refs
        return response


# ---------------------------------------------------------------------------
# Expiry
# ---------------------------------------------------------------------------
class TokenExpired(StorefrontError):
    code = "token_expired"
    category = ErrorCategory.EXPIRY
    http_status = 410
    default_message = "Token has expired"


# ---------------------------------------------------------------------------
# Security events
# ---------------------------------------------------------------------------
class AuthenticationFailed(StorefrontError):
    code = "authentication_failed"
    category = ErrorCategory.SECURITY
    http_status = 401
    default_message = "Authentication failed"

    def to_response(self) -> dict:
        # Subclasses share one public shape so callers cannot tell them apart.
        return {
            "error": {
                "code": AuthenticationFailed.code,
                "message": AuthenticationFailed.default_message,
                "category": self.category.value,
                "retryable": False,
            }
        }


class TokenReuseDetected(AuthenticationFailed):
    """A refresh token that was already rotated away was presented again."""

    code = "token_reuse_detected"

    def __init__(self, family_id: str | None = None):
        super().__init__()
        self.family_id = family_id


# ---------------------------------------------------------------------------
# Infrastructure
# ---------------------------------------------------------------------------
class StoreUnavailable(StorefrontError):
    code = "store_unavailable"
    category = ErrorCategory.INFRASTRUCTURE
    http_status = 503
    retryable = True
    default_message = "Storage is temporarily unavailable, retry later"
