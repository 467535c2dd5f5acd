"""Account aggregate root — a durable identity with its cart and login families.

Lifecycle: created unverified at registration; ``email_verified`` flips to true
exactly once; the credential sub-state moves Active -> ResetPending -> Active
around a password reset.

The account owns its cart exclusively. It also remembers what it has absorbed
from each guest session record, so a merge retried after a crash credits only
the lines the guest added since. Orders placed from the cart are remembered the
same way and settled once.
"""

import json
from enum import Enum

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, String, Text

from storefront.cart.lines import (
    CartOperation,
    apply_operation,
    dump_lines,
    load_lines,
    merge_carts,
    normalize,
    subtract_lines,
    total_quantity,
)
from storefront.domain import storefront
from storefront.shared import clock

# Guest sessions expire on their own; the oldest merge markers can be dropped
MAX_MERGE_MARKERS = 50
MAX_SETTLED_ORDERS = 20


class CredentialStatus(Enum):
    ACTIVE = "Active"
    RESET_PENDING = "Reset_Pending"


@storefront.aggregate
class Account:
    """A registered shopper, identified by a system id and a unique email."""

    email: String(required=True, max_length=254)
    password_hash: String(required=True, max_length=255)
    email_verified: Boolean(default=False)
    verified_at: DateTime()
    credential_status: String(choices=CredentialStatus, default=CredentialStatus.ACTIVE.value)
    cart: Text(default="[]")  # JSON: list of {product_ref, quantity}
    token_families: Text(default="[]")  # JSON: live refresh-token family ids
    merged_sessions: Text(default="[]")  # JSON: [{session_ref, lines}] absorbed per guest session record
    settled_orders: Text(default="[]")  # JSON: order ids already taken out of the cart
    registered_at: DateTime()
    last_login_at: DateTime()
    password_changed_at: DateTime()

    @invariant.post
    def verified_accounts_record_when(self):
        if self.email_verified and self.verified_at is None:
            raise ValidationError({"verified_at": ["Verified accounts must record when they were verified"]})

    @classmethod
    def register(cls, email, password_hash):
        from storefront.account.events import AccountRegistered

        now = clock.utc_now()
        account = cls(
            email=email,
            password_hash=password_hash,
            email_verified=False,
            credential_status=CredentialStatus.ACTIVE.value,
            cart="[]",
            token_families="[]",
            merged_sessions="[]",
            settled_orders="[]",
            registered_at=now,
        )
        account.raise_(
            AccountRegistered(
                account_id=account.id,
                email=email,
                registered_at=now,
            )
        )
        return account

    # -------------------------------------------------------------------
    # Verification and credentials
    # -------------------------------------------------------------------
    def verify_email(self) -> bool:
        """Mark the email verified. Returns False when it already was."""
        from storefront.account.events import EmailVerified

        if self.email_verified:
            return False

        now = clock.utc_now()
        self.verified_at = now
        self.email_verified = True
        self.raise_(
            EmailVerified(
                account_id=self.id,
                email=self.email,
                verified_at=now,
            )
        )
        return True

    def request_password_reset(self):
        from storefront.account.events import PasswordResetRequested

        self.credential_status = CredentialStatus.RESET_PENDING.value
        self.raise_(
            PasswordResetRequested(
                account_id=self.id,
                requested_at=clock.utc_now(),
            )
        )

    def change_password(self, password_hash):
        """Replace the password hash and forget every login family."""
        from storefront.account.events import PasswordChanged

        now = clock.utc_now()
        self.password_hash = password_hash
        self.password_changed_at = now
        self.credential_status = CredentialStatus.ACTIVE.value
        self.token_families = "[]"
        self.raise_(
            PasswordChanged(
                account_id=self.id,
                changed_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Login families
    # -------------------------------------------------------------------
    def families(self) -> list[str]:
        return json.loads(self.token_families) if self.token_families else []

    def record_login(self, family_id):
        families = self.families()
        if family_id not in families:
            families.append(family_id)
        self.token_families = json.dumps(families)
        self.last_login_at = clock.utc_now()

    def forget_family(self, family_id):
        self.token_families = json.dumps([f for f in self.families() if f != family_id])

    def forget_all_families(self) -> list[str]:
        families = self.families()
        self.token_families = "[]"
        return families

    # -------------------------------------------------------------------
    # Cart
    # -------------------------------------------------------------------
    def cart_lines(self):
        return load_lines(self.cart)

    def apply_cart_operation(self, operation: CartOperation):
        lines = apply_operation(self.cart_lines(), operation)
        self.cart = dump_lines(lines)
        return lines

    def replace_cart(self, lines):
        self.cart = dump_lines(normalize(lines))

    def settle_order(self, order_id, ordered_lines):
        """Take an order's lines out of the cart. A second call for the same order changes nothing."""
        settled = json.loads(self.settled_orders) if self.settled_orders else []
        if str(order_id) in settled:
            return self.cart_lines()

        remaining = subtract_lines(self.cart_lines(), ordered_lines)
        self.cart = dump_lines(remaining)
        settled.append(str(order_id))
        self.settled_orders = json.dumps(settled[-MAX_SETTLED_ORDERS:])
        return remaining

    # -------------------------------------------------------------------
    # Guest cart merge
    # -------------------------------------------------------------------
    def _merge_markers(self) -> list[dict]:
        return json.loads(self.merged_sessions) if self.merged_sessions else []

    def has_merged(self, session_ref) -> bool:
        return any(marker["session_ref"] == str(session_ref) for marker in self._merge_markers())

    def absorbed_from(self, session_ref):
        """Lines already credited from the guest session record ``session_ref``."""
        for marker in self._merge_markers():
            if marker["session_ref"] == str(session_ref):
                return normalize(marker["lines"])
        return []

    def absorb_guest_cart(self, session_ref, guest_lines):
        """Merge a guest cart into this account's cart (quantities are summed).

        Only what the guest record holds beyond the lines already absorbed from
        it is credited, so merging the same record again never double counts.
        """
        from storefront.account.events import GuestCartMerged

        session_ref = str(session_ref)
        repeat = self.has_merged(session_ref)
        already = self.absorbed_from(session_ref)
        fresh = subtract_lines(normalize(guest_lines), already)

        merged = merge_carts(fresh, self.cart_lines())
        self.cart = dump_lines(merged)

        markers = [marker for marker in self._merge_markers() if marker["session_ref"] != session_ref]
        markers.append({"session_ref": session_ref, "lines": [line.to_dict() for line in merge_carts(fresh, already)]})
        self.merged_sessions = json.dumps(markers[-MAX_MERGE_MARKERS:])

        if fresh or not repeat:
            self.raise_(
                GuestCartMerged(
                    account_id=self.id,
                    session_ref=session_ref,
                    items_merged_count=total_quantity(fresh),
                    merged_at=clock.utc_now(),
                )
            )
        return merged
