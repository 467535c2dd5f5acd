"""Token service — issue, verify-and-consume, rotate and revoke stateful tokens.

Every mutation of a token record happens under a per-key lock:

- ``token:<digest>`` around verify-and-consume, so two concurrent redemptions of
  one email-verify or password-reset token cannot both pass;
- ``family:<id>`` around refresh rotation and family revocation, so of two
  concurrent refreshes with the same token exactly one rotates and the other
  finds it already rotated, which is handled as token theft.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta

from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from storefront.config import get_settings
from storefront.errors import (
    InvalidTTL,
    TokenExpired,
    TokenMalformed,
    TokenNotFound,
    TokenPurposeMismatch,
    TokenReuseDetected,
)
from storefront.shared import clock
from storefront.shared.locks import get_locks, store_operation
from storefront.token.token import (
    Token,
    TokenPurpose,
    TokenStatus,
    digest_token_value,
    generate_token_value,
    looks_like_token,
    new_family_id,
)
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class IssuedToken:
    """A freshly minted token. ``value`` is the only copy of the clear token."""

    value: str = field(repr=False)
    subject_id: str
    purpose: TokenPurpose
    issued_at: datetime
    expires_at: datetime
    family_id: str | None = None


@dataclass(frozen=True)
class RotatedRefresh:
    subject_id: str
    refresh: IssuedToken


def _coerce_ttl(ttl) -> timedelta:
    if isinstance(ttl, timedelta):
        return ttl
    if isinstance(ttl, int | float) and not isinstance(ttl, bool):
        return timedelta(seconds=ttl)
    raise InvalidTTL(f"Token lifetime must be a duration, got {ttl!r}")


class TokenService:
    def __init__(self, settings=None):
        self.settings = settings or get_settings()

    # -------------------------------------------------------------------
    # Issuance
    # -------------------------------------------------------------------
    def ttl_for(self, purpose) -> timedelta:
        return {
            TokenPurpose.ACCESS: self.settings.access_token_ttl,
            TokenPurpose.REFRESH: self.settings.refresh_token_ttl,
            TokenPurpose.EMAIL_VERIFY: self.settings.email_verify_ttl,
            TokenPurpose.PASSWORD_RESET: self.settings.password_reset_ttl,
        }[TokenPurpose.parse(purpose)]

    def issue(self, subject_id: str, purpose, ttl=None, family_id: str | None = None) -> IssuedToken:
        """Mint a token bound to ``subject_id``.

        ``ttl`` defaults to the configured lifetime for the purpose. Access and
        refresh tokens always belong to a family; a new family is started when
        none is given. Single-use tokens never carry one.
        """
        purpose = TokenPurpose.parse(purpose)
        ttl = self.ttl_for(purpose) if ttl is None else _coerce_ttl(ttl)
        if ttl <= timedelta(0):
            raise InvalidTTL(f"Token lifetime must be positive, got {ttl}")

        if purpose.in_family:
            family_id = family_id or new_family_id()
        else:
            family_id = None

        value = generate_token_value()
        token = Token.issue(value, subject_id=subject_id, purpose=purpose, ttl=ttl, family_id=family_id)
        self._save(token)

        return IssuedToken(
            value=value,
            subject_id=subject_id,
            purpose=purpose,
            issued_at=token.issued_at,
            expires_at=token.expires_at,
            family_id=family_id,
        )

    # -------------------------------------------------------------------
    # Verification
    # -------------------------------------------------------------------
    def verify(self, value: str, expected_purpose) -> str:
        """Return the subject a live token is bound to.

        Email-verify and password-reset tokens are consumed by the same call, so
        a second verification fails with ``TokenNotFound`` even inside the TTL.
        """
        purpose = TokenPurpose.parse(expected_purpose)
        token_hash = self._digest(value)

        with get_locks().hold(f"token:{token_hash}"):
            token = self._find(token_hash)
            if token is None:
                logger.debug("token_not_found", purpose=purpose.value)
                raise TokenNotFound()

            if token.purpose != purpose.value:
                logger.info("token_purpose_mismatch", expected=purpose.value, actual=token.purpose)
                raise TokenPurposeMismatch()

            if token.status != TokenStatus.LIVE.value:
                logger.debug("token_already_dead", purpose=purpose.value, status=token.status)
                raise TokenNotFound()

            if token.is_expired(clock.utc_now()):
                logger.info("token_expired", purpose=purpose.value)
                raise TokenExpired()

            if purpose.single_use:
                token.consume()
                self._save(token)

            return token.subject_id

    # -------------------------------------------------------------------
    # Refresh rotation
    # -------------------------------------------------------------------
    def rotate(self, value: str) -> RotatedRefresh:
        """Redeem a refresh token and mint its successor in the same family.

        Presenting a token that was already rotated away means two parties hold
        the same lineage: the whole family is revoked and ``TokenReuseDetected``
        raised.
        """
        token_hash = self._digest(value)
        token = self._find(token_hash)
        if token is None:
            logger.debug("token_not_found", purpose=TokenPurpose.REFRESH.value)
            raise TokenNotFound()
        if token.purpose != TokenPurpose.REFRESH.value:
            raise TokenPurposeMismatch()

        with get_locks().hold(f"family:{token.family_id}"):
            # Re-read under the family lock; a concurrent rotation may have won.
            token = self._find(token_hash)

            if token.status == TokenStatus.ROTATED.value:
                self._respond_to_reuse(token)

            if token.status != TokenStatus.LIVE.value:
                logger.debug("token_already_dead", purpose=token.purpose, status=token.status)
                raise TokenNotFound()

            if token.is_expired(clock.utc_now()):
                logger.info("token_expired", purpose=token.purpose)
                raise TokenExpired()

            token.rotate()
            self._save(token)
            successor = self.issue(token.subject_id, TokenPurpose.REFRESH, family_id=token.family_id)

        return RotatedRefresh(subject_id=token.subject_id, refresh=successor)

    def _respond_to_reuse(self, token: Token):
        revoked = self.revoke_family(token.family_id)
        token.flag_reuse()
        self._save(token)
        logger.warning(
            "refresh_token_reuse_detected",
            family_id=token.family_id,
            subject_id=token.subject_id,
            revoked_count=revoked,
        )
        raise TokenReuseDetected(family_id=token.family_id)

    def peek_family(self, value: str) -> Token | None:
        """Look up a refresh token record without touching it (used by logout)."""
        token = self._find(self._digest(value))
        if token is None or token.purpose != TokenPurpose.REFRESH.value:
            return None
        return token

    # -------------------------------------------------------------------
    # Revocation
    # -------------------------------------------------------------------
    def revoke_family(self, family_id: str) -> int:
        """Mark every live token of the family dead. Returns how many were revoked."""
        revoked = 0
        with get_locks().hold(f"family:{family_id}"):
            while live := self._live_tokens(family_id=family_id):
                for token in live:
                    token.revoke()
                    self._save(token)
                    revoked += 1

        logger.info("token_family_revoked", family_id=family_id, revoked_count=revoked)
        return revoked

    def revoke_subject(self, subject_id: str, purposes=(TokenPurpose.ACCESS, TokenPurpose.REFRESH)) -> int:
        """Revoke every live token of ``subject_id`` with one of ``purposes``.

        Family-scoped tokens are revoked family by family so that no member of a
        lineage survives.
        """
        revoked = 0
        for purpose in (TokenPurpose.parse(p) for p in purposes):
            while live := self._live_tokens(subject_id=subject_id, purpose=purpose.value):
                for token in live:
                    if purpose.in_family:
                        revoked += self.revoke_family(token.family_id)
                    else:
                        token.revoke()
                        self._save(token)
                        revoked += 1
        return revoked

    # -------------------------------------------------------------------
    # Storage helpers
    # -------------------------------------------------------------------
    def _digest(self, value) -> str:
        if not looks_like_token(value):
            logger.info("token_malformed")
            raise TokenMalformed()
        return digest_token_value(value)

    def _find(self, token_hash: str) -> Token | None:
        with store_operation("token"):
            try:
                return current_domain.repository_for(Token).get(token_hash)
            except ObjectNotFoundError:
                return None

    def _live_tokens(self, **criteria) -> list[Token]:
        with store_operation("token"):
            repo = current_domain.repository_for(Token)
            return repo._dao.query.filter(status=TokenStatus.LIVE.value, **criteria).all().items

    def _save(self, token: Token):
        with store_operation("token"):
            current_domain.repository_for(Token).add(token)
