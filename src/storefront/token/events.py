"""Domain events for the Token aggregate."""

from protean.fields import DateTime, Identifier, String

from storefront.domain import storefront


@storefront.event(part_of="Token")
class RefreshTokenReuseDetected:
    """A rotated refresh token was replayed; its whole family has been revoked."""

    __version__ = 1

    family_id: Identifier(required=True)
    subject_id: String(required=True)
    detected_at: DateTime(required=True)
