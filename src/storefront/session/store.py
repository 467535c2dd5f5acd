"""Session store — durable guest carts looked up by an opaque session id.

The store owns expiry: expired records are refused on access (lazy expiration)
and removed by ``sweep_expired`` for space reclamation. Callers only ever see
``SessionNotFound``.
"""

import secrets

from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from storefront.cart.lines import CartOperation, apply_operation
from storefront.config import get_settings
from storefront.errors import SessionNotFound
from storefront.session.session import GuestSession
from storefront.shared import clock
from storefront.shared.locks import get_locks, store_operation
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

SESSION_ID_BYTES = 32


def session_lock_key(session_id: str) -> str:
    return f"session:{session_id}"


def is_session_id(value) -> bool:
    return isinstance(value, str) and 16 <= len(value) <= 128


class SessionStore:
    def __init__(self, ttl=None):
        self.ttl = ttl or get_settings().session_ttl

    def create(self) -> str:
        """Allocate a fresh session id. Nothing is persisted until the cart changes."""
        return secrets.token_urlsafe(SESSION_ID_BYTES)

    def get_cart(self, session_id: str):
        """Return the guest cart, raising ``SessionNotFound`` for unknown or expired sessions."""
        lines = self.find_cart(session_id)
        if lines is None:
            raise SessionNotFound()
        return lines

    def find(self, session_id: str) -> GuestSession | None:
        """Return the live record behind ``session_id``, or ``None``."""
        return self._load_live(session_id)

    def find_cart(self, session_id: str):
        """Return the guest cart, or ``None`` when there is no live session."""
        session = self.find(session_id)
        return session.lines() if session is not None else None

    def mutate_cart(self, session_id: str, operation: CartOperation):
        """Apply ``operation`` to the guest cart under the session's lock.

        The first mutation persists the session. A mutation that would leave a
        not-yet-persisted session with an empty cart (say, removing from an
        empty cart) stores nothing.
        """
        if not is_session_id(session_id):
            raise SessionNotFound("Session id is not valid")

        with get_locks().hold(session_lock_key(session_id)):
            session = self._load_live(session_id)
            if session is None:
                lines = apply_operation([], operation)
                if not lines:
                    return lines
                session = GuestSession.start(session_id, self.ttl)
                logger.debug("guest_session_started", session_id=session_id)

            lines = session.apply(operation, self.ttl)
            self._save(session)
            return lines

    def settle_order(self, session_id: str, session_ref, order_id, ordered_lines) -> None:
        """Take an order's lines out of the guest cart it was placed from.

        ``session_ref`` is the record id captured when the order was placed. A
        record that has since been replaced (merged away, expired and restarted)
        is left alone, and so is one that already settled ``order_id``. A cart
        left empty is deleted with its session.
        """
        with get_locks().hold(session_lock_key(session_id)):
            session = self._load_live(session_id)
            if session is None or str(session.id) != str(session_ref):
                return
            if session.has_settled(order_id):
                return

            if session.settle_order(order_id, ordered_lines):
                self._save(session)
            else:
                self._delete(session)
                logger.debug("guest_session_destroyed", session_id=session_id)

    def destroy(self, session_id: str) -> None:
        """Delete the session if it exists. Destroying twice is not an error."""
        if not is_session_id(session_id):
            return

        with get_locks().hold(session_lock_key(session_id)):
            session = self._find(session_id)
            if session is not None:
                self._delete(session)
                logger.debug("guest_session_destroyed", session_id=session_id)

    def sweep_expired(self) -> int:
        """Delete every expired session. Returns the number removed."""
        now = clock.utc_now()
        removed = 0
        with store_operation("session"):
            repo = current_domain.repository_for(GuestSession)
            while expired := repo._dao.query.filter(expires_at__lte=now).all().items:
                for session in expired:
                    with get_locks().hold(session_lock_key(session.session_id)):
                        self._delete(session)
                    removed += 1

        if removed:
            logger.info("guest_sessions_swept", removed=removed)
        return removed

    # -------------------------------------------------------------------
    # Storage helpers
    # -------------------------------------------------------------------
    def _load_live(self, session_id: str) -> GuestSession | None:
        if not is_session_id(session_id):
            return None

        session = self._find(session_id)
        if session is None:
            return None

        if session.is_expired(clock.utc_now()):
            with get_locks().hold(session_lock_key(session_id)):
                self._delete(session)
            logger.debug("guest_session_expired", session_id=session_id)
            return None
        return session

    def _find(self, session_id: str) -> GuestSession | None:
        with store_operation("session"):
            return current_domain.repository_for(GuestSession).find_by_session_id(session_id)

    def _save(self, session: GuestSession):
        with store_operation("session"):
            current_domain.repository_for(GuestSession).add(session)

    def _delete(self, session: GuestSession):
        with store_operation("session"):
            try:
                current_domain.repository_for(GuestSession)._dao.delete(session)
            except ObjectNotFoundError:
                pass  # removed concurrently by a sweep
