"""Domain events for the GuestSession aggregate."""

from protean.fields import DateTime, String

from storefront.domain import storefront


@storefront.event(part_of="GuestSession")
class GuestCartStarted:
    """A visitor's first cart mutation persisted a guest session."""

    __version__ = 1

    session_id: String(required=True)
    started_at: DateTime(required=True)
