"""Repository for the GuestSession aggregate."""

from storefront.domain import storefront
from storefront.session.session import GuestSession


@storefront.repository(part_of=GuestSession)
class GuestSessionRepository:
    def find_by_session_id(self, session_id: str) -> GuestSession | None:
        """Find the record currently behind a session cookie."""
        matches = self._dao.query.filter(session_id=session_id).all().items
        return matches[0] if matches else None
