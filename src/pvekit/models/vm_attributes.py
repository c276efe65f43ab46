"""
VM Attribute Records

Records for the structured settings Proxmox stores as attribute strings
inside a VM configuration (net0, numa0, smbios1, ipconfig0, agent, cpu, hostpci0).

Philosophy:
- Single responsibility: field declarations only
- Attribute names are the platform's, not ours
- Regeneratable: Can be rebuilt from the Proxmox qm.conf documentation
"""

from pvekit.attr_codec import AttributeRecord, FieldKind, attr, attribute_record


@attribute_record
class VMNetworkDevice(AttributeRecord):
    """Network device (netN).

    Example string: "virtio=32:90:AC:10:00:91,bridge=vmbr0,firewall=1,tag=10,trunks=1;2"
    """

    virtio: str = attr("virtio", FieldKind.STRING)
    bridge: str = attr("bridge", FieldKind.STRING)
    firewall: bool | None = attr("firewall", FieldKind.OPT_BOOL)
    link_down: bool | None = attr("link_down", FieldKind.OPT_BOOL)
    mac_address: str = attr("macaddr", FieldKind.STRING)
    mtu: int | None = attr("mtu", FieldKind.OPT_INT)
    model: str = attr("model", FieldKind.STRING)
    queues: int | None = attr("queues", FieldKind.OPT_INT)
    tag: int | None = attr("tag", FieldKind.OPT_INT)
    trunks: list[int] = attr("trunks", FieldKind.INT_LIST)


@attribute_record
class VMNUMA(AttributeRecord):
    """NUMA node topology (numaN)."""

    cpu_ids: list[str] = attr("cpus", FieldKind.STR_LIST)
    host_node_names: list[str] = attr("hostnodes", FieldKind.STR_LIST)
    memory: int | None = attr("memory", FieldKind.OPT_INT)
    policy: str = attr("policy", FieldKind.STRING)


@attribute_record
class VMSMBIOS(AttributeRecord):
    """SMBIOS type 1 identity (smbios1).

    When base64 is set the string fields hold base64-encoded values.
    """

    base64: bool | None = attr("base64", FieldKind.OPT_BOOL)
    family: str = attr("family", FieldKind.STRING)
    manufacturer: str = attr("manufacturer", FieldKind.STRING)
    product: str = attr("product", FieldKind.STRING)
    serial: str = attr("serial", FieldKind.STRING)
    sku: str = attr("sku", FieldKind.STRING)
    uuid: str = attr("uuid", FieldKind.STRING)
    version: str = attr("version", FieldKind.STRING)


@attribute_record
class VMCloudInitIPConfig(AttributeRecord):
    """Cloud-init IP settings (ipconfigN)."""

    gateway_ipv4: str = attr("gw", FieldKind.STRING)
    gateway_ipv6: str = attr("gw6", FieldKind.STRING)
    ipv4: str = attr("ip", FieldKind.STRING)
    ipv6: str = attr("ip6", FieldKind.STRING)


@attribute_record
class VMQemuGuestAgent(AttributeRecord):
    """QEMU guest agent flags (agent)."""

    enabled: bool | None = attr("enabled", FieldKind.OPT_BOOL)
    freeze_fs_on_backup: bool | None = attr("freeze-fs-on-backup", FieldKind.OPT_BOOL)
    fstrim_cloned_disks: bool | None = attr("fstrim_cloned_disks", FieldKind.OPT_BOOL)
    type: str = attr("type", FieldKind.STRING)


@attribute_record
class VMCPU(AttributeRecord):
    """CPU model (cpu)."""

    flags: list[str] = attr("flags", FieldKind.STR_LIST)
    type: str = attr("cputype", FieldKind.STRING)


@attribute_record
class VMHostPCI(AttributeRecord):
    """PCI passthrough device (hostpciN)."""

    device_id: str = attr("device-id", FieldKind.STRING)
    mapping: str = attr("mapping", FieldKind.STRING)
    mdev: str = attr("mdev", FieldKind.STRING)
    pcie: bool | None = attr("pcie", FieldKind.OPT_BOOL)
    rom_bar: bool | None = attr("rombar", FieldKind.OPT_BOOL)
    rom_file: str = attr("romfile", FieldKind.STRING)
    x_vga: bool | None = attr("x-vga", FieldKind.OPT_BOOL)


__all__ = [
    "VMCPU",
    "VMNUMA",
    "VMSMBIOS",
    "VMCloudInitIPConfig",
    "VMHostPCI",
    "VMNetworkDevice",
    "VMQemuGuestAgent",
]
