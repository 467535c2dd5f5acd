"""Token aggregate — a stateful record behind every opaque token handed to a client.

All four purposes (access, refresh, email verification, password reset) are
stored records, never self-contained signed values: single-use consumption and
family revocation both need a record to mark dead.

Only the SHA-256 digest of the opaque value is stored; it doubles as the
aggregate identity. ``expires_at`` is fixed at issuance and never extended.
A token is live while its status is ``Live`` and ``now < expires_at``; anything
else is dead.
"""

import hashlib
import secrets
from datetime import timedelta
from enum import Enum
from uuid import uuid4

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import DateTime, Identifier, String

from storefront.domain import storefront
from storefront.errors import InvalidPurpose
from storefront.shared import clock

# secrets.token_urlsafe(32) yields 43 characters from the URL-safe alphabet
TOKEN_BYTES = 32
_TOKEN_ALPHABET = frozenset("ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-_")


class TokenPurpose(Enum):
    ACCESS = "access"
    REFRESH = "refresh"
    EMAIL_VERIFY = "email-verify"
    PASSWORD_RESET = "password-reset"

    @property
    def single_use(self) -> bool:
        return self in (TokenPurpose.EMAIL_VERIFY, TokenPurpose.PASSWORD_RESET)

    @property
    def in_family(self) -> bool:
        return self in (TokenPurpose.ACCESS, TokenPurpose.REFRESH)

    @classmethod
    def parse(cls, value) -> "TokenPurpose":
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise InvalidPurpose(f"Unknown token purpose: {value!r}") from None


class TokenStatus(Enum):
    LIVE = "Live"
    CONSUMED = "Consumed"  # single-use token redeemed
    ROTATED = "Rotated"  # refresh token exchanged for its successor
    REVOKED = "Revoked"  # logout, password reset or theft response


def generate_token_value() -> str:
    return secrets.token_urlsafe(TOKEN_BYTES)


def new_family_id() -> str:
    return str(uuid4())


def looks_like_token(value) -> bool:
    return isinstance(value, str) and 32 <= len(value) <= 128 and set(value) <= _TOKEN_ALPHABET


def digest_token_value(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


@storefront.aggregate
class Token:
    token_hash = String(identifier=True, max_length=64)
    subject_id = String(required=True, max_length=254)
    purpose = String(required=True, choices=TokenPurpose)
    family_id = Identifier()
    status = String(choices=TokenStatus, default=TokenStatus.LIVE.value)
    issued_at = DateTime(required=True)
    expires_at = DateTime(required=True)
    ended_at = DateTime()

    @invariant.post
    def expiry_must_follow_issue(self):
        if self.issued_at and self.expires_at and self.expires_at <= self.issued_at:
            raise ValidationError({"expires_at": ["Token must expire after it is issued"]})

    @invariant.post
    def session_tokens_belong_to_a_family(self):
        if self.purpose in (TokenPurpose.ACCESS.value, TokenPurpose.REFRESH.value) and not self.family_id:
            raise ValidationError({"family_id": ["Access and refresh tokens must belong to a family"]})

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def issue(cls, value: str, subject_id: str, purpose: TokenPurpose, ttl: timedelta, family_id=None):
        now = clock.utc_now()
        return cls(
            token_hash=digest_token_value(value),
            subject_id=subject_id,
            purpose=purpose.value,
            family_id=family_id,
            status=TokenStatus.LIVE.value,
            issued_at=now,
            expires_at=now + ttl,
        )

    # -------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------
    @property
    def token_purpose(self) -> TokenPurpose:
        return TokenPurpose(self.purpose)

    def is_expired(self, now) -> bool:
        return now >= self.expires_at

    def is_live(self, now) -> bool:
        return self.status == TokenStatus.LIVE.value and not self.is_expired(now)

    def _end(self, status: TokenStatus):
        if self.status != TokenStatus.LIVE.value:
            raise ValidationError({"status": [f"Token is already {self.status.lower()}"]})
        self.status = status.value
        self.ended_at = clock.utc_now()

    def consume(self):
        """Mark a single-use token redeemed."""
        if not self.token_purpose.single_use:
            raise ValidationError({"purpose": [f"{self.purpose} tokens are not single-use"]})
        self._end(TokenStatus.CONSUMED)

    def rotate(self):
        """Mark a refresh token exchanged for its successor."""
        if self.token_purpose != TokenPurpose.REFRESH:
            raise ValidationError({"purpose": ["Only refresh tokens can be rotated"]})
        self._end(TokenStatus.ROTATED)

    def revoke(self):
        self._end(TokenStatus.REVOKED)

    def flag_reuse(self):
        """Record that this already-rotated refresh token was presented again."""
        from storefront.token.events import RefreshTokenReuseDetected

        self.raise_(
            RefreshTokenReuseDetected(
                family_id=self.family_id,
                subject_id=self.subject_id,
                detected_at=clock.utc_now(),
            )
        )
