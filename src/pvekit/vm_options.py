"""VM configuration option helpers.

This module turns typed requests into the option lists Proxmox expects when
updating a VM configuration, and reads typed records back out of a fetched
configuration.

Option keys are validated against a fixed allow-list. Attribute-valued keys
(net0, smbios1, ...) map to their record type in pvekit.models, so callers may
pass either a record or a pre-rendered attribute string.
"""

import base64
import binascii
import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from pvekit.attr_codec import AttributeRecord, encode
from pvekit.models import (
    VMCPU,
    VMNUMA,
    VMSMBIOS,
    VMCloudInitIPConfig,
    VMHostPCI,
    VMNetworkDevice,
    VMQemuGuestAgent,
)

logger = logging.getLogger(__name__)

ATTRIBUTE_OPTIONS: dict[str, type[AttributeRecord]] = {
    "agent": VMQemuGuestAgent,
    "cpu": VMCPU,
    "smbios1": VMSMBIOS,
}

INDEXED_ATTRIBUTE_OPTIONS: dict[str, type[AttributeRecord]] = {
    "net": VMNetworkDevice,
    "numa": VMNUMA,
    "ipconfig": VMCloudInitIPConfig,
    "hostpci": VMHostPCI,
}

INDEXED_DISK_OPTIONS = ("scsi", "virtio", "sata", "ide", "efidisk", "tpmstate", "unused")

SCALAR_OPTIONS = frozenset(
    {
        "affinity",
        "balloon",
        "bios",
        "boot",
        "cicustom",
        "cipassword",
        "citype",
        "ciupgrade",
        "ciuser",
        "cores",
        "cpulimit",
        "cpuunits",
        "description",
        "hotplug",
        "machine",
        "memory",
        "name",
        "nameserver",
        "numa",
        "onboot",
        "ostype",
        "protection",
        "scsihw",
        "searchdomain",
        "sockets",
        "sshkeys",
        "tablet",
        "tags",
        "template",
        "vcpus",
        "vga",
        "vmgenid",
    }
)

NUMA_POLICIES = ("preferred", "bind", "interleave")

_INDEXED_KEY = re.compile(r"([a-z]+)(\d+)")
_NET_KEY = re.compile(r"net(\d+)")


class UnknownOptionError(ValueError):
    """Raised when an option map contains keys outside the allow-list."""

    def __init__(self, keys: Iterable[str]):
        self.keys = sorted(keys)
        super().__init__(f"Unknown VM option(s): {', '.join(self.keys)}")


@dataclass(frozen=True)
class VMOption:
    """Single configuration option to send to the platform."""

    name: str
    value: Any


@dataclass
class NUMANodeState:
    """Requested NUMA placement for one host node.

    Attributes:
        cpus: Host CPU list, e.g. "0-3,8-11"
        memory: Memory in MiB
        policy: preferred, bind or interleave
    """

    cpus: str
    memory: int = 0
    policy: str = ""


@dataclass
class CloneRequest:
    """Request to clone a VM template into a sized instance."""

    node: str
    new_id: int
    name: str
    description: str = ""
    full: bool = False
    pool: str = ""
    storage: str = ""

    cpu: int = 0
    cpu_affinity: str = ""
    memory: int = 0
    numa_nodes: dict[int, NUMANodeState] = field(default_factory=dict)
    disk_size: str = ""
    tags: str = ""
    instance_type: str = ""


def option_record_type(key: str) -> type[AttributeRecord] | None:
    """Return the record type carried by option `key`, if any."""
    key = key.lower()
    if key in ATTRIBUTE_OPTIONS:
        return ATTRIBUTE_OPTIONS[key]

    match = _INDEXED_KEY.fullmatch(key)
    if match:
        return INDEXED_ATTRIBUTE_OPTIONS.get(match.group(1))
    return None


def is_known_option(key: str) -> bool:
    """Check `key` against the option allow-list."""
    key = key.lower()
    if key == "delete" or key in SCALAR_OPTIONS or option_record_type(key) is not None:
        return True

    match = _INDEXED_KEY.fullmatch(key)
    return bool(match) and match.group(1) in INDEXED_DISK_OPTIONS


def validate_option_keys(keys: Iterable[str]) -> None:
    """Raise UnknownOptionError listing every key outside the allow-list."""
    unknown = [key for key in keys if not is_known_option(key)]
    if unknown:
        raise UnknownOptionError(unknown)


def _option_value(value: Any) -> Any:
    if isinstance(value, AttributeRecord):
        return encode(value)
    # The platform reports booleans as 0/1
    if isinstance(value, bool):
        return int(value)
    return value


def render_option_values(options: dict[str, Any]) -> dict[str, Any]:
    """Return `options` with records rendered as strings and booleans as 0/1.

    Raises:
        EncodingError: If a record value cannot be rendered
    """
    return {key: _option_value(value) for key, value in options.items()}


def _is_set(value: Any) -> bool:
    return value not in (None, "", 0, False, [], {})


def get_vm_options_to_apply(current: dict[str, Any], desired: dict[str, Any]) -> list[VMOption]:
    """Compute the options needed to move `current` to `desired`.

    Keys are matched case-insensitively. A "delete" entry (comma-separated
    keys) is kept only for keys that are currently set. Every other desired
    key is emitted when its value differs from the current one.

    Args:
        current: VM configuration as returned by the platform
        desired: Option map; attribute-valued keys may hold records

    Returns:
        Options to apply, "delete" first

    Raises:
        UnknownOptionError: If a desired key or a key named in "delete" is
            not a recognized option
        EncodingError: If a record value cannot be rendered
    """
    validate_option_keys(desired)

    current_by_key = {key.lower(): value for key, value in current.items()}
    options: list[VMOption] = []

    delete_keys = []
    for key, value in desired.items():
        if key.lower() != "delete":
            continue
        names = [name.strip() for name in str(value).split(",") if name.strip()]
        validate_option_keys(names)
        delete_keys.extend(name for name in names if _is_set(current_by_key.get(name.lower())))

    if delete_keys:
        options.append(VMOption(name="delete", value=",".join(delete_keys)))

    for key, value in desired.items():
        if key.lower() == "delete":
            continue

        rendered = _option_value(value)
        existing = current_by_key.get(key.lower())
        if existing is not None and str(_option_value(existing)) == str(rendered):
            continue
        options.append(VMOption(name=key, value=rendered))

    logger.debug(f"VM options to apply: {[option.name for option in options]}")
    return options


def parse_network_devices(config: dict[str, Any]) -> dict[str, VMNetworkDevice]:
    """Decode every netN entry of a VM configuration, ordered by index.

    Raises:
        DecodingError: If a device string has a malformed integer field
    """
    keys = sorted(
        (int(match.group(1)), key)
        for key in config
        if (match := _NET_KEY.fullmatch(key)) is not None
    )
    return {key: VMNetworkDevice.from_string(str(config[key])) for _, key in keys}


def get_vm_smbios(config: dict[str, Any]) -> VMSMBIOS:
    """Decode the smbios1 entry of a VM configuration (defaults when missing)."""
    return VMSMBIOS.from_string(str(config.get("smbios1") or ""))


def get_vm_uuid(config: dict[str, Any]) -> str:
    """Return the SMBIOS UUID of a VM configuration."""
    return get_vm_smbios(config).uuid


def get_vm_sku(config: dict[str, Any]) -> str:
    """Return the instance type stored base64-encoded in the SMBIOS SKU.

    Returns "" when the SKU is missing or not valid base64.
    """
    sku = get_vm_smbios(config).sku
    try:
        return base64.b64decode(sku, validate=True).decode()
    except (binascii.Error, UnicodeDecodeError):
        return ""


def _b64(text: str) -> str:
    return base64.b64encode(text.encode()).decode()


def apply_instance_options(request: CloneRequest, options: list[VMOption]) -> list[VMOption]:
    """Append cores, affinity, memory, NUMA and tag options for `request`."""
    if request.cpu:
        options.append(VMOption(name="cores", value=str(request.cpu)))

    if request.cpu_affinity:
        options.append(VMOption(name="affinity", value=request.cpu_affinity))

    if request.memory:
        options.append(VMOption(name="memory", value=str(request.memory)))

    if request.numa_nodes:
        options.append(VMOption(name="numa", value=1))

        for index, host_node in enumerate(sorted(request.numa_nodes)):
            state = request.numa_nodes[host_node]
            policy = state.policy if state.policy in NUMA_POLICIES else "preferred"
            numa = VMNUMA(
                cpu_ids=state.cpus.split(","),
                host_node_names=[str(host_node)],
                memory=state.memory,
                policy=policy,
            )
            options.append(VMOption(name=f"numa{index}", value=numa.to_string()))

    if request.tags:
        options.append(VMOption(name="tags", value=request.tags))

    return options


def apply_instance_smbios(
    config: dict[str, Any] | None,
    request: CloneRequest,
    vmid: int,
    options: list[VMOption],
) -> list[VMOption]:
    """Stamp instance type and host identity into smbios1.

    The existing smbios1 (uuid in particular) is preserved. SKU holds the
    instance type, serial holds "h=<name>;i=<vmid>", both base64-encoded.
    """
    if config is None:
        return options

    smbios = get_vm_smbios(config)
    smbios.sku = _b64(request.instance_type)
    smbios.serial = _b64(f"h={request.name};i={vmid}")
    smbios.base64 = True

    options.append(VMOption(name="smbios1", value=smbios.to_string()))
    return options


def apply_instance_optimization(
    config: dict[str, Any] | None,
    request: CloneRequest,
    options: list[VMOption],
) -> list[VMOption]:
    """Set multiqueue on every network device to the requested CPU count."""
    if config is None:
        return options

    for key, device in parse_network_devices(config).items():
        device.queues = request.cpu
        options.append(VMOption(name=key, value=device.to_string()))

    return options


__all__ = [
    "ATTRIBUTE_OPTIONS",
    "INDEXED_ATTRIBUTE_OPTIONS",
    "SCALAR_OPTIONS",
    "CloneRequest",
    "NUMANodeState",
    "UnknownOptionError",
    "VMOption",
    "apply_instance_optimization",
    "apply_instance_options",
    "apply_instance_smbios",
    "get_vm_options_to_apply",
    "get_vm_sku",
    "get_vm_smbios",
    "get_vm_uuid",
    "is_known_option",
    "option_record_type",
    "parse_network_devices",
    "render_option_values",
    "validate_option_keys",
]
