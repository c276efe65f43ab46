"""Cache Module - Caching infrastructure for pvekit.

Philosophy:
- In-memory, owned by a client session
- TTL-based expiration (vm 5s, storage 60s, others default)
- Explicit invalidation after mutations
- Thread-safe operations

Public API (the "studs"):
    From resource_cache:
        ResourceCache: Per-kind TTL cache for cluster resource listings
        CacheEntry: Cache entry data model
        RESOURCE_TTLS: TTL table by resource kind

    From vmid_reservations:
        VMIDReservations: Recently allocated VM ids excluded from next-id search
"""

from pvekit.cache.resource_cache import RESOURCE_TTLS, CacheEntry, ResourceCache, ResourceList
from pvekit.cache.vmid_reservations import VMIDReservations

__all__ = [
    "RESOURCE_TTLS",
    "CacheEntry",
    "ResourceCache",
    "ResourceList",
    "VMIDReservations",
]
