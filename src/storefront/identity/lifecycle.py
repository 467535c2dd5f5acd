"""Registration, verification, login, refresh, logout and password reset.

States of a visitor: Anonymous -> (register) -> PendingVerification ->
(verify) -> Verified, then login/logout toggles whether they hold a token
family. Credentials have a parallel sub-state: Active -> (request reset) ->
ResetPending -> (redeem reset token) -> Active.

Email-verify and password-reset tokens are bound to the normalised email;
access and refresh tokens to the account id. Every login starts a new token
family; the access token shares the family of the refresh token minted with it,
so revoking the family ends both.
"""

from dataclasses import dataclass, field

from protean.exceptions import ValidationError

from storefront.account.passwords import (
    burn_password_check,
    hash_password,
    validate_password,
    verify_password,
)
from storefront.account.store import AccountStore
from storefront.cart.merge import CartMergeEngine
from storefront.config import get_settings
from storefront.errors import (
    AccountNotFound,
    AuthenticationFailed,
    EmailAlreadyRegistered,
    EmailNotVerified,
    InvalidCredentials,
    TokenMalformed,
    TokenNotFound,
    TokenPurposeMismatch,
    TokenReuseDetected,
)
from storefront.mailer import get_mailer
from storefront.mailer.templates import PasswordResetTemplate, VerificationTemplate, build_link
from storefront.session.store import SessionStore
from storefront.shared.email import normalize_email
from storefront.shared.locks import get_locks
from storefront.token.service import IssuedToken, TokenService
from storefront.token.token import TokenPurpose
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class TokenPair:
    access_token: str = field(repr=False)
    refresh_token: str = field(repr=False)
    account_id: str
    family_id: str


class IdentityLifecycle:
    def __init__(self, tokens=None, sessions=None, accounts=None, merger=None, mailer=None, settings=None):
        self.settings = settings or get_settings()
        self.tokens = tokens or TokenService(self.settings)
        self.sessions = sessions or SessionStore(self.settings.session_ttl)
        self.accounts = accounts or AccountStore()
        self.merger = merger or CartMergeEngine(self.sessions, self.accounts)
        self._mailer = mailer

    @property
    def mailer(self):
        return self._mailer or get_mailer()

    # -------------------------------------------------------------------
    # Registration and verification
    # -------------------------------------------------------------------
    def register(self, email: str, password: str, guest_session_id: str | None = None) -> str:
        """Create an unverified account and return its id.

        A guest cart presented with the registration goes through the same
        merge as at login, so an account never silently loses a cart.
        """
        email = normalize_email(email)
        validate_password(password)

        with get_locks().hold(f"email:{email}"):
            existing = self.accounts.find_by_email(email)
            if existing is not None:
                logger.info("registration_rejected", reason="email_taken", verified=existing.email_verified)
                raise EmailAlreadyRegistered(verified=existing.email_verified)

            account = self.accounts.create(email, hash_password(password))

        account_id = str(account.id)
        if guest_session_id:
            self.merger.merge_into_account(guest_session_id, account_id)

        self._send_verification(email)
        return account_id

    def verify_email(self, token: str) -> str:
        """Redeem an email-verify token and return the verified account's id."""
        email = self.tokens.verify(token, TokenPurpose.EMAIL_VERIFY)
        account = self._account_for_email(email)
        self.accounts.update(account.id, lambda acc: acc.verify_email())
        logger.info("email_verified", account_id=str(account.id))
        return str(account.id)

    def resend_verification(self, email: str) -> None:
        """Send a fresh verification link; earlier links stay valid until they expire.

        Always succeeds, whether or not the email belongs to an account.
        """
        try:
            email = normalize_email(email)
        except ValidationError:
            return

        account = self.accounts.find_by_email(email)
        if account is None or account.email_verified:
            logger.debug("verification_resend_skipped")
            return
        self._send_verification(email)

    # -------------------------------------------------------------------
    # Login, refresh and logout
    # -------------------------------------------------------------------
    def login(self, email: str, password: str, guest_session_id: str | None = None) -> TokenPair:
        try:
            email = normalize_email(email)
        except ValidationError:
            email = None

        account = self.accounts.find_by_email(email) if email else None
        if account is None:
            burn_password_check(password)
            logger.info("login_failed", reason="unknown_email")
            raise InvalidCredentials()

        if not verify_password(password, account.password_hash):
            logger.info("login_failed", reason="wrong_password", account_id=str(account.id))
            raise InvalidCredentials()

        if not account.email_verified:
            logger.info("login_failed", reason="email_not_verified", account_id=str(account.id))
            raise EmailNotVerified()

        account_id = str(account.id)
        if guest_session_id:
            self.merger.merge_into_account(guest_session_id, account_id)

        refresh = self.tokens.issue(account_id, TokenPurpose.REFRESH)
        access = self.tokens.issue(account_id, TokenPurpose.ACCESS, family_id=refresh.family_id)
        self.accounts.update(account_id, lambda acc: acc.record_login(refresh.family_id))

        logger.info("login_succeeded", account_id=account_id, family_id=refresh.family_id)
        return _pair(access, refresh)

    def refresh(self, refresh_token: str) -> TokenPair:
        """Exchange a refresh token for a new access/refresh pair in the same family."""
        try:
            rotated = self.tokens.rotate(refresh_token)
        except TokenReuseDetected as exc:
            peeked = self.tokens.peek_family(refresh_token)
            if peeked is not None:
                self._forget_family(peeked.subject_id, exc.family_id)
            raise

        access = self.tokens.issue(rotated.subject_id, TokenPurpose.ACCESS, family_id=rotated.refresh.family_id)
        return _pair(access, rotated.refresh)

    def authenticate(self, access_token: str) -> str:
        """Resolve a bearer access token to its account id.

        An expired token surfaces as ``TokenExpired`` so the client knows to
        refresh; anything else unusable is a plain ``AuthenticationFailed``.
        """
        try:
            return self.tokens.verify(access_token, TokenPurpose.ACCESS)
        except (TokenMalformed, TokenNotFound, TokenPurposeMismatch) as exc:
            raise AuthenticationFailed() from exc

    def logout(self, refresh_token: str) -> None:
        """End the login family of ``refresh_token`` (this device only)."""
        token = self.tokens.peek_family(refresh_token)
        if token is None:
            logger.debug("logout_unknown_token")
            return

        revoked = self.tokens.revoke_family(token.family_id)
        self._forget_family(token.subject_id, token.family_id)
        logger.info("logged_out", account_id=token.subject_id, family_id=token.family_id, revoked_count=revoked)

    def logout_all(self, account_id) -> int:
        """End every login family of the account. Returns the number of tokens revoked."""
        account_id = str(account_id)
        self.accounts.get(account_id)

        revoked = self.tokens.revoke_subject(account_id)
        self.accounts.update(account_id, lambda acc: acc.forget_all_families())
        logger.info("logged_out_everywhere", account_id=account_id, revoked_count=revoked)
        return revoked

    # -------------------------------------------------------------------
    # Password reset
    # -------------------------------------------------------------------
    def request_password_reset(self, email: str) -> None:
        """Mail a reset link if the email has an account. Always succeeds."""
        try:
            email = normalize_email(email)
        except ValidationError:
            return

        account = self.accounts.find_by_email(email)
        if account is None:
            logger.debug("password_reset_unknown_email")
            return

        self.accounts.update(account.id, lambda acc: acc.request_password_reset())
        issued = self.tokens.issue(email, TokenPurpose.PASSWORD_RESET)
        self._deliver(email, PasswordResetTemplate, issued)

    def reset_password(self, token: str, new_password: str) -> str:
        """Redeem a reset token, replace the password and sign out every device."""
        # Reject a bad password before the token is consumed.
        validate_password(new_password)

        email = self.tokens.verify(token, TokenPurpose.PASSWORD_RESET)
        account = self._account_for_email(email)
        account_id = str(account.id)

        password_hash = hash_password(new_password)
        self.accounts.update(account_id, lambda acc: acc.change_password(password_hash))
        revoked = self.tokens.revoke_subject(account_id)
        self.tokens.revoke_subject(email, purposes=(TokenPurpose.PASSWORD_RESET,))

        logger.info("password_reset_completed", account_id=account_id, revoked_count=revoked)
        return account_id

    # -------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------
    def _account_for_email(self, email: str):
        account = self.accounts.find_by_email(email)
        if account is None:
            raise AccountNotFound()
        return account

    def _forget_family(self, account_id, family_id) -> None:
        try:
            self.accounts.update(account_id, lambda acc: acc.forget_family(family_id))
        except AccountNotFound:
            logger.debug("family_owner_missing", family_id=family_id)

    def _send_verification(self, email: str) -> None:
        issued = self.tokens.issue(email, TokenPurpose.EMAIL_VERIFY)
        self._deliver(email, VerificationTemplate, issued)

    def _deliver(self, email: str, template, issued: IssuedToken) -> None:
        """Best-effort send; the token stays valid whether or not the mail goes out."""
        link = build_link(self.settings.public_url, template.path, issued.value)
        content = template.render({"link": link})
        try:
            result = self.mailer.send(to=email, subject=content["subject"], body=content["body"])
        except Exception as e:
            logger.error("email_delivery_failed", purpose=issued.purpose.value, error=str(e))
            return

        if result.get("status") != "sent":
            logger.error(
                "email_delivery_failed",
                purpose=issued.purpose.value,
                error=result.get("error", "Unknown delivery error"),
            )


def _pair(access: IssuedToken, refresh: IssuedToken) -> TokenPair:
    return TokenPair(
        access_token=access.value,
        refresh_token=refresh.value,
        account_id=access.subject_id,
        family_id=refresh.family_id,
    )
