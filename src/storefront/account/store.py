"""Account store — durable identities and their carts.

All writes go through ``update``, which reloads the aggregate under the
account's lock before applying a change, so concurrent writers (a merge and a
login, two tabs editing the cart) never save over each other.
"""

from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from storefront.account.account import Account
from storefront.cart.lines import CartOperation
from storefront.errors import AccountNotFound
from storefront.shared.locks import get_locks, store_operation
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


def account_lock_key(account_id) -> str:
    return f"account:{account_id}"


class AccountStore:
    def create(self, email: str, password_hash: str) -> Account:
        account = Account.register(email=email, password_hash=password_hash)
        self._save(account)
        logger.info("account_registered", account_id=str(account.id))
        return account

    def get(self, account_id) -> Account:
        account = self.find(account_id)
        if account is None:
            raise AccountNotFound()
        return account

    def find(self, account_id) -> Account | None:
        with store_operation("account"):
            try:
                return current_domain.repository_for(Account).get(account_id)
            except ObjectNotFoundError:
                return None

    def find_by_email(self, email: str) -> Account | None:
        with store_operation("account"):
            return current_domain.repository_for(Account).find_by_email(email)

    def update(self, account_id, change) -> Account:
        """Apply ``change(account)`` to a freshly loaded account and save it."""
        with get_locks().hold(account_lock_key(account_id)):
            account = self.get(account_id)
            change(account)
            self._save(account)
            return account

    # -------------------------------------------------------------------
    # Cart
    # -------------------------------------------------------------------
    def get_cart(self, account_id):
        return self.get(account_id).cart_lines()

    def mutate_cart(self, account_id, operation: CartOperation):
        account = self.update(account_id, lambda acc: acc.apply_cart_operation(operation))
        return account.cart_lines()

    def replace_cart(self, account_id, lines):
        account = self.update(account_id, lambda acc: acc.replace_cart(lines))
        return account.cart_lines()

    def settle_order(self, account_id, order_id, ordered_lines) -> None:
        self.update(account_id, lambda acc: acc.settle_order(order_id, ordered_lines))

    def _save(self, account: Account):
        with store_operation("account"):
            current_domain.repository_for(Account).add(account)
