"""Domain events for the Account aggregate."""

from protean.fields import DateTime, Identifier, Integer, String

from storefront.domain import storefront


@storefront.event(part_of="Account")
class AccountRegistered:
    """A visitor created an account; the email is not verified yet."""

    __version__ = 1

    account_id: Identifier(required=True)
    email: String(required=True)
    registered_at: DateTime(required=True)


@storefront.event(part_of="Account")
class EmailVerified:
    """The account holder proved ownership of the email address."""

    __version__ = 1

    account_id: Identifier(required=True)
    email: String(required=True)
    verified_at: DateTime(required=True)


@storefront.event(part_of="Account")
class PasswordResetRequested:
    """A password reset link was issued for the account."""

    __version__ = 1

    account_id: Identifier(required=True)
    requested_at: DateTime(required=True)


@storefront.event(part_of="Account")
class PasswordChanged:
    """The account's password was replaced; all sessions were ended."""

    __version__ = 1

    account_id: Identifier(required=True)
    changed_at: DateTime(required=True)


@storefront.event(part_of="Account")
class GuestCartMerged:
    """A guest session's cart was folded into the account cart."""

    __version__ = 1

    account_id: Identifier(required=True)
    session_ref: String(required=True)
    items_merged_count: Integer(required=True)
    merged_at: DateTime(required=True)
