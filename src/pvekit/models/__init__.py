"""
pvekit Data Models

Typed records for the attribute strings embedded in Proxmox VM configuration.

Philosophy:
- One record per attribute-valued config key
- Field metadata only: parsing and rendering live in pvekit.attr_codec
- Declaration order matches the order Proxmox writes the keys
"""

from .vm_attributes import (
    VMCPU,
    VMNUMA,
    VMSMBIOS,
    VMCloudInitIPConfig,
    VMHostPCI,
    VMNetworkDevice,
    VMQemuGuestAgent,
)

__all__ = [
    "VMCPU",
    "VMNUMA",
    "VMSMBIOS",
    "VMCloudInitIPConfig",
    "VMHostPCI",
    "VMNetworkDevice",
    "VMQemuGuestAgent",
]
