"""Single source of "now" for expiry decisions.

Callers use ``clock.utc_now()`` through the module so tests can freeze time
with ``monkeypatch.setattr(clock, "utc_now", ...)``.
"""

from datetime import UTC, datetime


def utc_now() -> datetime:
    return datetime.now(UTC)
