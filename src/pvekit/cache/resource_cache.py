"""Resource Cache Module - Per-kind TTL caching for cluster resource listings.

Philosophy:
- Per-kind TTL: VM listings go stale fast (5s), storage slowly (60s)
- In-memory only, owned by one client session (no process-wide singleton)
- Thread-safe table, fetch runs outside the lock
- No negative caching: a failed fetch leaves the cache untouched

Public API (the "studs"):
    ResourceCache: Per-kind TTL cache for /cluster/resources listings
    CacheEntry: Data model for a cached listing
    RESOURCE_TTLS: Fixed TTL table by resource kind

TTL Rationale:
- vm (5s): VM state changes constantly and callers expect to see their own
  writes; mutations also invalidate the kind explicitly
- storage (60s): storage topology rarely changes
- node and others: cache default
"""

import copy
import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)

ResourceList = list[dict[str, Any]]

RESOURCE_TTLS: dict[str, float] = {
    "vm": 5.0,
    "storage": 60.0,
}


@dataclass
class CacheEntry:
    """Cached listing for one resource kind.

    Attributes:
        kind: Resource kind ("vm", "storage", "node", ...)
        value: Listing as returned by the fetch collaborator
        expires_at: Clock reading after which the entry is stale
    """

    kind: str
    value: ResourceList = field(default_factory=list)
    expires_at: float = 0.0

    def is_expired(self, now: float) -> bool:
        """Check if entry has expired at clock reading `now`."""
        return now >= self.expires_at


class ResourceCache:
    """Per-kind TTL cache for cluster resource listings.

    Values are deep-copied on the way in and on the way out, so callers can
    never mutate the cached listing without going through set().

    Example:
        >>> cache = ResourceCache()
        >>> vms = cache.get("vm", lambda kind: api.get("/cluster/resources", {"type": kind}))
        >>> cache.invalidate("vm")  # after creating/deleting/migrating a VM
    """

    DEFAULT_TTL = 60.0  # seconds

    def __init__(
        self,
        default_ttl: float | None = None,
        clock: Callable[[], float] | None = None,
    ):
        """Initialize resource cache.

        Args:
            default_ttl: TTL for kinds missing from RESOURCE_TTLS (default: 60s)
            clock: Monotonic clock in seconds (default: time.monotonic)
        """
        self.default_ttl = self.DEFAULT_TTL if default_ttl is None else default_ttl
        self._clock = clock or time.monotonic
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def ttl_for(self, kind: str) -> float:
        """Return the TTL in seconds applied to `kind`."""
        return RESOURCE_TTLS.get(kind, self.default_ttl)

    def _lookup(self, kind: str) -> ResourceList | None:
        with self._lock:
            entry = self._entries.get(kind)
            if entry is None or entry.is_expired(self._clock()):
                return None
            return copy.deepcopy(entry.value)

    def get(self, kind: str, fetch: Callable[[str], ResourceList]) -> ResourceList:
        """Get the listing for `kind`, fetching it when missing or stale.

        Args:
            kind: Resource kind
            fetch: Called as fetch(kind) on a miss

        Returns:
            Copy of the cached listing

        Raises:
            Whatever fetch raises, unchanged. Nothing is cached in that case.
        """
        value = self._lookup(kind)
        if value is not None:
            logger.debug(f"Cache hit: '{kind}'")
            return value

        logger.debug(f"Cache miss: '{kind}', fetching")
        value = fetch(kind)
        self.set(kind, value)
        return copy.deepcopy(value)

    def set(self, kind: str, value: ResourceList) -> None:
        """Store `value` for `kind` with the kind's TTL."""
        ttl = self.ttl_for(kind)
        entry = CacheEntry(
            kind=kind,
            value=copy.deepcopy(value),
            expires_at=self._clock() + ttl,
        )
        with self._lock:
            self._entries[kind] = entry

        logger.debug(f"Cache set: '{kind}' ({len(entry.value)} items, TTL: {ttl}s)")

    def invalidate(self, kind: str) -> bool:
        """Remove the entry for `kind`.

        Returns:
            True if an entry was removed, False if none was cached
        """
        with self._lock:
            removed = self._entries.pop(kind, None) is not None

        logger.debug(f"Cache invalidated: '{kind}' (removed={removed})")
        return removed

    def clear(self) -> None:
        """Remove all entries."""
        with self._lock:
            self._entries.clear()

    def cleanup_expired(self) -> int:
        """Remove expired entries.

        Returns:
            Number of entries removed
        """
        with self._lock:
            now = self._clock()
            expired = [kind for kind, entry in self._entries.items() if entry.is_expired(now)]
            for kind in expired:
                del self._entries[kind]

        if expired:
            logger.debug(f"Cleaned up {len(expired)} expired cache entries")
        return len(expired)

    def __contains__(self, kind: object) -> bool:
        if not isinstance(kind, str):
            return False
        with self._lock:
            entry = self._entries.get(kind)
            return entry is not None and not entry.is_expired(self._clock())

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


__all__ = ["RESOURCE_TTLS", "CacheEntry", "ResourceCache", "ResourceList"]
