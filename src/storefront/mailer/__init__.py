"""Mailer adapter registry.

Uses the FakeMailer by default; real adapters can be selected through the
``MAILER_ADAPTER`` environment variable.
"""

import os

from storefront.mailer.port import Mailer

_current_mailer: Mailer | None = None


def get_mailer() -> Mailer:
    """Return the configured mailer adapter (singleton)."""
    global _current_mailer
    if _current_mailer is None:
        adapter = os.environ.get("MAILER_ADAPTER", "fake")
        if adapter == "fake":
            from storefront.mailer.fake_adapter import FakeMailer

            _current_mailer = FakeMailer()
        else:
            raise ValueError(f"Unknown mailer adapter: {adapter}")
    return _current_mailer


def set_mailer(mailer: Mailer) -> None:
    """Override the active mailer (useful for tests)."""
    global _current_mailer
    _current_mailer = mailer


def reset_mailer() -> None:
    """Reset to the default mailer."""
    global _current_mailer
    _current_mailer = None
