"""Unit tests for VM attribute records.

Strings are taken from real Proxmox VM configurations.
"""

import pytest

from pvekit.attr_codec import DecodingError
from pvekit.models import (
    VMCPU,
    VMNUMA,
    VMSMBIOS,
    VMCloudInitIPConfig,
    VMHostPCI,
    VMNetworkDevice,
    VMQemuGuestAgent,
)


class TestVMCloudInitIPConfig:
    """Test ipconfigN records."""

    def test_empty(self):
        """Empty string gives empty config."""
        assert VMCloudInitIPConfig.from_string("") == VMCloudInitIPConfig()

    def test_ipv4_only(self):
        """IPv4 address and gateway."""
        ipconfig = VMCloudInitIPConfig.from_string("ip=1.2.3.4,gw=1.2.3.1")
        assert ipconfig == VMCloudInitIPConfig(gateway_ipv4="1.2.3.1", ipv4="1.2.3.4")

    def test_dual_stack_to_string(self):
        """Canonical order is gw, gw6, ip, ip6."""
        ipconfig = VMCloudInitIPConfig(
            ipv4="10.0.0.5/24", gateway_ipv4="10.0.0.1", ipv6="fd00::5/64", gateway_ipv6="fd00::1"
        )
        assert ipconfig.to_string() == "gw=10.0.0.1,gw6=fd00::1,ip=10.0.0.5/24,ip6=fd00::5/64"


class TestVMNetworkDevice:
    """Test netN records."""

    def test_empty(self):
        """Empty string gives empty device."""
        assert VMNetworkDevice.from_string("") == VMNetworkDevice()

    def test_virtio(self):
        """Common virtio device."""
        iface = VMNetworkDevice.from_string(
            "virtio=32:90:AC:10:00:91,bridge=vmbr0,firewall=1,mtu=1500,queues=8"
        )
        assert iface == VMNetworkDevice(
            virtio="32:90:AC:10:00:91",
            bridge="vmbr0",
            firewall=True,
            mtu=1500,
            queues=8,
        )

    def test_vlan_and_trunks(self):
        """VLAN tag and trunk list."""
        iface = VMNetworkDevice.from_string(
            "virtio=32:90:AC:10:00:91,bridge=vmbr0,firewall=1,mtu=1500,queues=8,tag=1,trunks=1;2"
        )
        assert iface.tag == 1
        assert iface.trunks == [1, 2]

    def test_to_string(self):
        """Rendering follows declaration order."""
        iface = VMNetworkDevice(
            virtio="32:90:AC:10:00:91",
            bridge="vmbr0",
            firewall=True,
            mtu=1500,
            queues=8,
            trunks=[1, 2],
        )
        assert (
            iface.to_string()
            == "virtio=32:90:AC:10:00:91,bridge=vmbr0,firewall=1,mtu=1500,queues=8,trunks=1;2"
        )

    def test_empty_to_string(self):
        """Empty device renders as ""."""
        assert VMNetworkDevice().to_string() == ""

    def test_uppercase_key(self):
        """Keys are case-insensitive."""
        assert VMNetworkDevice.from_string("BRIDGE=vmbr0").bridge == "vmbr0"

    def test_link_down_false(self):
        """link_down=0 is present and false."""
        assert VMNetworkDevice.from_string("link_down=0").link_down is False

    def test_bad_trunks(self):
        """Malformed trunk list is a decoding error."""
        with pytest.raises(DecodingError):
            VMNetworkDevice.from_string("bridge=vmbr0,trunks=1;x")


class TestVMNUMA:
    """Test numaN records."""

    @pytest.mark.parametrize(
        "template,numa",
        [
            ("", VMNUMA()),
            (
                "cpus=0-3,hostnodes=0,memory=12288,policy=bind",
                VMNUMA(cpu_ids=["0-3"], host_node_names=["0"], memory=12288, policy="bind"),
            ),
            (
                "cpus=4-7,hostnodes=1,memory=12288",
                VMNUMA(cpu_ids=["4-7"], host_node_names=["1"], memory=12288),
            ),
            (
                "cpus=0-3;4-7,hostnodes=0;1,memory=12288",
                VMNUMA(cpu_ids=["0-3", "4-7"], host_node_names=["0", "1"], memory=12288),
            ),
        ],
    )
    def test_from_string(self, template, numa):
        """Parse NUMA node strings."""
        assert VMNUMA.from_string(template) == numa

    @pytest.mark.parametrize(
        "numa,expected",
        [
            (VMNUMA(), ""),
            (
                VMNUMA(cpu_ids=["0-3"], host_node_names=["0"], memory=12288, policy="bind"),
                "cpus=0-3,hostnodes=0,memory=12288,policy=bind",
            ),
            (
                VMNUMA(cpu_ids=["0-3", "4-7"], host_node_names=["0", "1"], memory=12288),
                "cpus=0-3;4-7,hostnodes=0;1,memory=12288",
            ),
        ],
    )
    def test_to_string(self, numa, expected):
        """Render NUMA node strings."""
        assert numa.to_string() == expected


class TestVMSMBIOS:
    """Test smbios1 records."""

    def test_parse(self):
        """Parse uuid and base64 flag."""
        smbios = VMSMBIOS.from_string(
            "uuid=5b0f0a3c-1d2e-4f5a-9b8c-7d6e5f4a3b2c,base64=1,sku=bTUubGFyZ2U="
        )
        assert smbios.uuid == "5b0f0a3c-1d2e-4f5a-9b8c-7d6e5f4a3b2c"
        assert smbios.base64 is True
        assert smbios.sku == "bTUubGFyZ2U="

    def test_to_string_order(self):
        """base64 comes first, uuid near the end."""
        smbios = VMSMBIOS(uuid="abc", base64=True, serial="c2VyaWFs")
        assert smbios.to_string() == "base64=1,serial=c2VyaWFs,uuid=abc"


class TestVMQemuGuestAgent:
    """Test agent records."""

    def test_parse(self):
        """Dashed and underscored attribute names both map."""
        agent = VMQemuGuestAgent.from_string(
            "enabled=1,freeze-fs-on-backup=0,fstrim_cloned_disks=1,type=virtio"
        )
        assert agent == VMQemuGuestAgent(
            enabled=True, freeze_fs_on_backup=False, fstrim_cloned_disks=True, type="virtio"
        )

    def test_to_string(self):
        """Only populated flags are rendered."""
        assert VMQemuGuestAgent(enabled=True).to_string() == "enabled=1"


class TestVMCPU:
    """Test cpu records."""

    def test_round_trip(self):
        """CPU flags are a ';' list."""
        cpu = VMCPU.from_string("cputype=host,flags=+aes;-pcid")
        assert cpu == VMCPU(flags=["+aes", "-pcid"], type="host")
        assert cpu.to_string() == "flags=+aes;-pcid,cputype=host"


class TestVMHostPCI:
    """Test hostpciN records."""

    def test_parse(self):
        """Mapping with pcie and x-vga."""
        pci = VMHostPCI.from_string("mapping=gpu0,pcie=1,x-vga=1,rombar=0")
        assert pci == VMHostPCI(mapping="gpu0", pcie=True, x_vga=True, rom_bar=False)

    def test_to_string(self):
        """Render in declaration order."""
        pci = VMHostPCI(mapping="gpu0", pcie=True, x_vga=True)
        assert pci.to_string() == "mapping=gpu0,pcie=1,x-vga=1"
