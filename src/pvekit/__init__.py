"""pvekit - Proxmox VE API client helpers

Philosophy:
- Ruthless simplicity
- Brick architecture (self-contained modules)
- Typed records instead of hand-parsed attribute strings
- Fail fast, no hidden retries

Bricks:
    attr_codec: Typed records <-> "key=value,key=value" attribute strings
    models: Records for netN, numaN, smbios1, ipconfigN, agent, cpu, hostpciN
    cache: Per-kind TTL resource cache and VM id reservations
    vm_options: Option allow-list, diffing and clone option builders
    config_manager: TOML configuration
    api_client: Client session owning the caches
"""

from pvekit.attr_codec import DecodingError, EncodingError, decode, encode
from pvekit.cache import ResourceCache, VMIDReservations

__version__ = "0.1.0"
__all__ = [
    "DecodingError",
    "EncodingError",
    "ResourceCache",
    "VMIDReservations",
    "__version__",
    "decode",
    "encode",
]
