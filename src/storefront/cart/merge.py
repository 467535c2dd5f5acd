"""Cart merge engine — folds a guest cart into an account cart on register/login.

The merge itself is the pure ``merge_carts`` union. Around it the engine
guarantees three things:

* at most one merge runs per (guest session, account) pair: the session lock is
  taken first, then the account lock;
* a guest session that is already gone means the merge already happened (or
  there was nothing to merge); that is the expected outcome, not an error;
* saving the merged cart and destroying the guest session look like one step.
  The account remembers the lines it absorbed from each guest session record,
  so a retry after a crash between the two writes credits only what the guest
  added in between, then finishes the destroy.
"""

from dataclasses import dataclass, field

from storefront.account.store import AccountStore, account_lock_key
from storefront.cart.lines import CartLine, merge_carts, subtract_lines, total_quantity
from storefront.catalogue import get_catalogue
from storefront.session.store import SessionStore, session_lock_key
from storefront.shared.locks import get_locks
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class MergeOutcome:
    merged: bool
    cart: list[CartLine] = field(default_factory=list)
    items_merged: int = 0


class CartMergeEngine:
    def __init__(self, sessions=None, accounts=None, catalogue=None):
        self.sessions = sessions or SessionStore()
        self.accounts = accounts or AccountStore()
        self._catalogue = catalogue

    @property
    def catalogue(self):
        return self._catalogue or get_catalogue()

    @staticmethod
    def merge(session_cart, account_cart) -> list[CartLine]:
        return merge_carts(session_cart, account_cart)

    def merge_into_account(self, session_id: str, account_id) -> MergeOutcome:
        """Move the guest cart of ``session_id`` into the account's cart and drop the session."""
        account_id = str(account_id)

        with get_locks().hold(session_lock_key(session_id)):
            session = self.sessions.find(session_id)
            if session is None:
                logger.debug("guest_cart_absent", account_id=account_id)
                return MergeOutcome(merged=False, cart=self.accounts.get_cart(account_id))

            guest_lines = session.lines()
            session_ref = str(session.id)

            with get_locks().hold(account_lock_key(account_id)):
                account = self.accounts.get(account_id)
                already = account.absorbed_from(session_ref)
                if not subtract_lines(guest_lines, already):
                    if account.has_merged(session_ref):
                        # Crashed after the cart was saved and nothing was added since
                        logger.info("guest_cart_merge_completed", account_id=account_id)
                    self.sessions.destroy(session_id)
                    return MergeOutcome(merged=False, cart=account.cart_lines())

                kept = self._listed(guest_lines)
                account = self.accounts.update(
                    account_id, lambda acc: acc.absorb_guest_cart(session_ref, kept)
                )

            self.sessions.destroy(session_id)

        items = total_quantity(subtract_lines(kept, already))
        logger.info(
            "guest_cart_merged",
            account_id=account_id,
            items_merged=items,
            lines_dropped=len(guest_lines) - len(kept),
        )
        return MergeOutcome(merged=True, cart=account.cart_lines(), items_merged=items)

    def _listed(self, lines) -> list[CartLine]:
        """Drop lines whose product the catalogue no longer lists.

        Availability and price are checked again at checkout, so an unreachable
        catalogue keeps every line rather than failing the merge.
        """
        kept = []
        for line in lines:
            try:
                listed = self.catalogue.exists(line.product_ref)
            except ConnectionError as exc:
                logger.error("catalogue_unavailable_during_merge", error=str(exc))
                return list(lines)
            if listed:
                kept.append(line)
            else:
                logger.info("delisted_product_dropped", product_ref=line.product_ref)
        return kept
