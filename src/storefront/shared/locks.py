"""Per-key mutual exclusion for store writes.

Two browser tabs adding to the same guest cart, two devices refreshing with the
same token: each store serialises work on one key (``session:<id>``,
``family:<id>``...) through the process-wide ``KeyedLock``. Waiting is bounded by
the configured store timeout; running out of time surfaces as
``StoreUnavailable`` and is never retried here.

When two keys are held at once, the session key is always taken before the
account key.
"""

import threading
from contextlib import contextmanager

from storefront.config import get_settings
from storefront.errors import StoreUnavailable
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class KeyedLock:
    """A registry of re-entrant locks, created on demand and dropped when idle."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._entries: dict[str, list] = {}  # key -> [RLock, holders + waiters]

    @contextmanager
    def hold(self, key: str, timeout: float | None = None):
        timeout = timeout if timeout is not None else get_settings().store_timeout

        with self._guard:
            entry = self._entries.setdefault(key, [threading.RLock(), 0])
            entry[1] += 1

        acquired = entry[0].acquire(timeout=timeout)
        try:
            if not acquired:
                logger.error("store_lock_timeout", key=key, timeout=timeout)
                raise StoreUnavailable(f"Timed out after {timeout}s waiting for {key.split(':', 1)[0]}")
            yield
        finally:
            if acquired:
                entry[0].release()
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._entries[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)


_registry = KeyedLock()


def get_locks() -> KeyedLock:
    """Return the process-wide lock registry."""
    return _registry


def reset_locks() -> None:
    """Replace the registry with a fresh one (useful between tests)."""
    global _registry
    _registry = KeyedLock()


@contextmanager
def store_operation(store: str):
    """Translate connectivity failures of a backing provider into ``StoreUnavailable``."""
    try:
        yield
    except (ConnectionError, TimeoutError) as exc:
        logger.error("store_unavailable", store=store, error=str(exc))
        raise StoreUnavailable(f"{store} store is unavailable") from exc
