"""Catalogue adapter registry.

Provides get_catalogue() / set_catalogue() to swap implementations. Uses the
FakeCatalogue by default; select another adapter with ``CATALOGUE_ADAPTER``.
"""

import os

from storefront.catalogue.port import Catalogue

_current_catalogue: Catalogue | None = None


def get_catalogue() -> Catalogue:
    """Return the configured catalogue adapter (singleton)."""
    global _current_catalogue
    if _current_catalogue is None:
        adapter = os.environ.get("CATALOGUE_ADAPTER", "fake")
        if adapter == "fake":
            from storefront.catalogue.fake_adapter import FakeCatalogue

            _current_catalogue = FakeCatalogue()
        else:
            raise ValueError(f"Unknown catalogue adapter: {adapter}")
    return _current_catalogue


def set_catalogue(catalogue: Catalogue) -> None:
    """Override the active catalogue (useful for tests)."""
    global _current_catalogue
    _current_catalogue = catalogue


def reset_catalogue() -> None:
    """Reset to the default catalogue."""
    global _current_catalogue
    _current_catalogue = None
