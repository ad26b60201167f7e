# State Cache — short-lived storage for pending authorizations.
# Created: 2026-10-19
#
# Entries live only for the redirect window; expired entries read as absent.

from __future__ import annotations

import logging
import time
from typing import Any, Protocol, runtime_checkable

from tokenward.errors import StateCacheError

logger = logging.getLogger(__name__)

__all__ = ["StateCacheProtocol", "InMemoryStateCache"]


@runtime_checkable
class StateCacheProtocol(Protocol):
    """TTL-capable key-value store for pending authorization state."""

    async def set(self, key: str, value: dict[str, Any], ttl: int) -> None:
        """Store *value* under *key* for *ttl* seconds.

        Raises StateCacheError if a different live value is already stored.
        """
        ...

    async def get(self, key: str) -> dict[str, Any] | None:
        """Return the live value for *key*, or None if absent or expired."""
        ...

    async def delete(self, key: str) -> bool:
        """Remove *key*. Returns True if an entry was removed."""
        ...


class InMemoryStateCache:
    """Process-local state cache keyed by state identifier."""

    def __init__(self, clock=time.monotonic):
        self._clock = clock
        self._entries: dict[str, tuple[dict[str, Any], float]] = {}

    def _live(self, key: str) -> dict[str, Any] | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        return value

    async def set(self, key: str, value: dict[str, Any], ttl: int) -> None:
        if ttl <= 0:
            raise ValueError("State cache entries need a positive ttl")
        # Abandoned flows are never read again; sweep them on every write
        self.cleanup_expired()
        existing = self._live(key)
        if existing is not None and existing != value:
            raise StateCacheError(f"State {key} is already bound to a different authorization")
        self._entries[key] = (dict(value), self._clock() + ttl)

    async def get(self, key: str) -> dict[str, Any] | None:
        value = self._live(key)
        return dict(value) if value is not None else None

    async def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def cleanup_expired(self) -> int:
        """Drop expired entries. Returns count removed."""
        now = self._clock()
        stale = [k for k, (_, expires_at) in self._entries.items() if now >= expires_at]
        for k in stale:
            del self._entries[k]
        if stale:
            logger.debug("Dropped %d expired pending authorizations", len(stale))
        return len(stale)

    def __len__(self) -> int:
        return len(self._entries)
