"""Repository for the Account aggregate."""

from storefront.account.account import Account
from storefront.domain import storefront


@storefront.repository(part_of=Account)
class AccountRepository:
    """Account lookups beyond fetch-by-id."""

    def find_by_email(self, email: str) -> Account | None:
        """Find an Account by its normalised email address."""
        matches = self._dao.query.filter(email=email).all().items
        return matches[0] if matches else None
