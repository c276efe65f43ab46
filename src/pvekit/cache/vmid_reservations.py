"""VM ID Reservations - Ids handed out but not yet visible to /cluster/nextid.

The platform's next-id allocator only learns about an id once the VM exists.
Between handing an id to a caller and the create call landing, a second
allocation in the same process would get the same id. Reserved ids are
skipped by APIClient.get_next_id until they expire or are released.

TTL: 5 minutes (300 seconds)
"""

import logging
import threading
import time
from collections.abc import Callable

logger = logging.getLogger(__name__)


class VMIDReservations:
    """Thread-safe set of recently allocated VM ids with expiry.

    Example:
        >>> reservations = VMIDReservations()
        >>> reservations.reserve(100)
        >>> 100 in reservations
        True
        >>> reservations.release(100)  # create failed or VM now visible
    """

    DEFAULT_TTL = 300.0  # 5 minutes

    def __init__(self, ttl: float | None = None, clock: Callable[[], float] | None = None):
        """Initialize reservations.

        Args:
            ttl: Seconds an id stays reserved (default: 300)
            clock: Monotonic clock in seconds (default: time.monotonic)
        """
        self.ttl = self.DEFAULT_TTL if ttl is None else ttl
        self._clock = clock or time.monotonic
        self._expiry: dict[int, float] = {}
        self._lock = threading.Lock()

    def reserve(self, vmid: int) -> None:
        """Mark `vmid` as claimed, restarting its TTL."""
        with self._lock:
            self._expiry[vmid] = self._clock() + self.ttl
        logger.debug(f"Reserved VM id {vmid} for {self.ttl}s")

    def is_reserved(self, vmid: int) -> bool:
        """Check if `vmid` is claimed and not yet expired."""
        with self._lock:
            expires_at = self._expiry.get(vmid)
            if expires_at is None:
                return False
            if self._clock() >= expires_at:
                del self._expiry[vmid]
                return False
            return True

    def release(self, vmid: int) -> bool:
        """Drop the claim on `vmid`.

        Returns:
            True if the id was reserved
        """
        with self._lock:
            released = self._expiry.pop(vmid, None) is not None
        if released:
            logger.debug(f"Released VM id {vmid}")
        return released

    def cleanup_expired(self) -> int:
        """Remove expired reservations and return how many were removed."""
        with self._lock:
            now = self._clock()
            expired = [vmid for vmid, expires_at in self._expiry.items() if now >= expires_at]
            for vmid in expired:
                del self._expiry[vmid]
        return len(expired)

    def __contains__(self, vmid: object) -> bool:
        return isinstance(vmid, int) and self.is_reserved(vmid)

    def __len__(self) -> int:
        with self._lock:
            return len(self._expiry)


__all__ = ["VMIDReservations"]
