"""Proxmox VE API client session.

The client owns one ResourceCache and one VMIDReservations per session.
Listing lookups go through the cache; every call that changes the VM listing
invalidates the "vm" kind. HTTP is delegated to a transport so tests and
alternative backends can substitute it.

Security Requirements:
- HTTPS API endpoint with TLS verification on by default
- API token authentication, secret never logged
- Timeout on every request
"""

import logging
from collections.abc import Callable
from typing import Any, Protocol

import requests

from pvekit.cache import ResourceCache, ResourceList, VMIDReservations
from pvekit.config_manager import ConfigError, PvekitConfig
from pvekit.models import VMNetworkDevice
from pvekit.vm_options import (
    CloneRequest,
    apply_instance_optimization,
    apply_instance_options,
    apply_instance_smbios,
    get_vm_options_to_apply,
    parse_network_devices,
    render_option_values,
    validate_option_keys,
)

logger = logging.getLogger(__name__)

ResourceFilter = Callable[[dict[str, Any]], bool]
TaskWaiter = Callable[[str, str], None]


class ProxmoxAPIError(Exception):
    """Raised when a Proxmox API call fails."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class NotFoundError(ProxmoxAPIError):
    """Requested resource does not exist."""

    def __init__(self, message: str = "not found"):
        super().__init__(message, status_code=None)


class NodeNotFoundError(NotFoundError):
    """Node not found in the cluster."""

    pass


class VMNotFoundError(NotFoundError):
    """VM not found in the cluster."""

    pass


class VMTemplateNotFoundError(NotFoundError):
    """VM template not found in the cluster."""

    pass


class ProxmoxTransport(Protocol):
    """Narrow HTTP interface the client depends on."""

    def request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        data: dict[str, Any] | None = None,
    ) -> Any: ...


class RequestsTransport:
    """Transport over requests with API token authentication."""

    API_PREFIX = "/api2/json"

    def __init__(
        self,
        api_url: str,
        token_id: str,
        token_secret: str,
        verify_ssl: bool = True,
        timeout: float = 30.0,
        session: requests.Session | None = None,
    ):
        """Initialize transport.

        Args:
            api_url: Base URL, e.g. https://pve.example.com:8006
            token_id: API token id (user@realm!tokenname)
            token_secret: API token secret
            verify_ssl: Verify the server certificate
            timeout: Request timeout in seconds
            session: Existing session to reuse (optional)
        """
        self.base_url = api_url.rstrip("/") + self.API_PREFIX
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.verify = verify_ssl
        self.session.headers["Authorization"] = f"PVEAPIToken={token_id}={token_secret}"

    def request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        data: dict[str, Any] | None = None,
    ) -> Any:
        """Send a request and return the response's "data" member.

        Raises:
            ProxmoxAPIError: On connection failure or HTTP error status
        """
        url = f"{self.base_url}{path}"
        logger.debug(f"{method} {path} params={params}")

        try:
            response = self.session.request(
                method, url, params=params, data=data, timeout=self.timeout
            )
        except requests.RequestException as e:
            raise ProxmoxAPIError(f"{method} {path} failed: {e}") from e

        if response.status_code >= 400:
            detail = response.reason
            try:
                errors = response.json().get("errors")
                if errors:
                    detail = f"{detail}: {errors}"
            except ValueError:
                pass
            raise ProxmoxAPIError(
                f"{method} {path} failed: {response.status_code} - {detail}",
                status_code=response.status_code,
            )

        try:
            return response.json().get("data")
        except ValueError as e:
            raise ProxmoxAPIError(f"{method} {path} returned invalid JSON: {e}") from e


class APIClient:
    """Proxmox API client session with cached cluster listings.

    Example:
        >>> client = APIClient.from_config(ConfigManager.load_config())
        >>> vm = client.find_vm_by_id(100)
        >>> nics = client.get_vm_network_devices(100)
    """

    NEXT_ID_MAX_ATTEMPTS = 1000

    def __init__(
        self,
        transport: ProxmoxTransport,
        resource_cache: ResourceCache | None = None,
        vmid_reservations: VMIDReservations | None = None,
    ):
        self.transport = transport
        self.resources = resource_cache if resource_cache is not None else ResourceCache()
        self.vmid_reservations = (
            vmid_reservations if vmid_reservations is not None else VMIDReservations()
        )

    @classmethod
    def from_config(cls, config: PvekitConfig) -> "APIClient":
        """Build a client with a RequestsTransport from configuration.

        Raises:
            ConfigError: If endpoint or token settings are missing
        """
        if not config.api_url or not config.token_id or not config.token_secret:
            raise ConfigError("api_url, token_id and token_secret must be configured")

        transport = RequestsTransport(
            api_url=config.api_url,
            token_id=config.token_id,
            token_secret=config.token_secret,
            verify_ssl=config.verify_ssl,
            timeout=config.timeout,
        )
        return cls(
            transport,
            resource_cache=ResourceCache(default_ttl=config.default_resource_ttl),
            vmid_reservations=VMIDReservations(ttl=config.vmid_reservation_ttl),
        )

    # ------------------------------------------------------------------
    # Cluster listings
    # ------------------------------------------------------------------

    def _fetch_resources(self, kind: str) -> ResourceList:
        return self.transport.request("GET", "/cluster/resources", params={"type": kind}) or []

    def get_resources(self, kind: str) -> ResourceList:
        """Return the cluster resource listing for `kind` (vm, storage, node, ...)."""
        return self.resources.get(kind, self._fetch_resources)

    def flush_resources(self, kind: str) -> None:
        """Drop the cached listing for `kind`."""
        self.resources.invalidate(kind)

    def _vms(self) -> list[dict[str, Any]]:
        return [vm for vm in self.get_resources("vm") if not vm.get("template")]

    def find_vm_by_id(self, vmid: int) -> dict[str, Any]:
        """Find a (non-template) VM anywhere in the cluster.

        Raises:
            VMNotFoundError: If no VM has this id
        """
        for vm in self._vms():
            if vm.get("vmid") == vmid:
                return vm
        raise VMNotFoundError(f"VM {vmid} not found")

    def find_vm_by_name(self, name: str) -> int:
        """Return the id of the first VM named `name`.

        Raises:
            VMNotFoundError: If no VM has this name
        """
        for vm in self._vms():
            if vm.get("name") == name:
                return int(vm["vmid"])
        raise VMNotFoundError(f"VM '{name}' not found")

    def find_vm_by_filter(self, *filters: ResourceFilter) -> int:
        """Return the id of the first VM accepted by any filter.

        Raises:
            VMNotFoundError: If no VM matches
        """
        for vm in self._vms():
            if any(f(vm) for f in filters):
                return int(vm["vmid"])
        raise VMNotFoundError("no VM matches filter")

    def find_vm_template_by_name(self, node: str, name: str) -> int:
        """Return the id of template `name` on `node`.

        Raises:
            VMTemplateNotFoundError: If no template matches
        """
        for vm in self.get_resources("vm"):
            if vm.get("template") and vm.get("node") == node and vm.get("name") == name:
                return int(vm["vmid"])
        raise VMTemplateNotFoundError(f"VM template '{name}' not found on node {node}")

    def get_node_list(self) -> list[str]:
        """Return the names of all cluster nodes (uncached)."""
        nodes = self.transport.request("GET", "/nodes") or []
        return [item["node"] for item in nodes if item.get("node")]

    def get_node(self, name: str) -> dict[str, Any]:
        """Return the node resource named `name`.

        Raises:
            NodeNotFoundError: If the node is not in the cluster listing
        """
        for node in self.get_resources("node"):
            if node.get("node") == name:
                return node
        raise NodeNotFoundError(f"node '{name}' not found")

    def get_node_list_by_filter(self, *filters: ResourceFilter) -> list[dict[str, Any]]:
        """Return node resources accepted by any filter (all nodes without filters)."""
        nodes = self.get_resources("node")
        if not filters:
            return nodes
        return [node for node in nodes if any(f(node) for f in filters)]

    def get_cluster_storage(self, storage: str) -> dict[str, Any]:
        """Return the first storage resource named `storage`.

        Raises:
            NotFoundError: If the storage is unknown
        """
        for resource in self.get_resources("storage"):
            if resource.get("storage") == storage:
                return resource
        raise NotFoundError(f"storage '{storage}' not found")

    def get_node_for_storage(self, storage: str) -> str:
        """Return a node where `storage` is available.

        Raises:
            NotFoundError: If no node has the storage available
        """
        for resource in self.get_resources("storage"):
            if resource.get("storage") == storage and resource.get("status") == "available":
                return resource["node"]
        raise NotFoundError(f"storage '{storage}' not available on any node")

    # ------------------------------------------------------------------
    # VM configuration
    # ------------------------------------------------------------------

    def get_vm_config(self, vmid: int) -> dict[str, Any]:
        """Fetch the configuration of VM `vmid` from the node hosting it.

        Raises:
            VMNotFoundError: If the VM is not in the cluster listing
            ProxmoxAPIError: If the request fails
        """
        vm = self.find_vm_by_id(vmid)
        return self.transport.request("GET", f"/nodes/{vm['node']}/qemu/{vmid}/config") or {}

    def get_vm_network_devices(self, vmid: int) -> dict[str, VMNetworkDevice]:
        """Return the decoded netN devices of VM `vmid`."""
        return parse_network_devices(self.get_vm_config(vmid))

    # ------------------------------------------------------------------
    # VM ids
    # ------------------------------------------------------------------

    def get_next_id(self, vmid: int) -> int:
        """Return a free VM id at or above `vmid` and reserve it.

        Ids reserved by this session are skipped. The platform answers 400
        when the requested id is taken, in which case the next id is tried.

        Raises:
            ProxmoxAPIError: On any other API failure, or when no free id is
                found within NEXT_ID_MAX_ATTEMPTS candidates
        """
        candidate = vmid
        for _ in range(self.NEXT_ID_MAX_ATTEMPTS):
            if candidate in self.vmid_reservations:
                candidate += 1
                continue

            try:
                result = self.transport.request(
                    "GET", "/cluster/nextid", params={"vmid": candidate}
                )
            except ProxmoxAPIError as e:
                if e.status_code == 400:
                    candidate += 1
                    continue
                raise

            self.vmid_reservations.reserve(candidate)
            return int(result)

        raise ProxmoxAPIError(f"no free VM id found starting at {vmid}")

    def release_vmid(self, vmid: int) -> None:
        """Drop the reservation for `vmid` (mutation failed or VM now visible)."""
        self.vmid_reservations.release(vmid)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create_vm(self, node: str, options: dict[str, Any]) -> str:
        """Create a VM on `node` and return the task id.

        The id reservation is released when creation fails for any reason.

        Raises:
            UnknownOptionError: If an option key is not recognized
            EncodingError: If a record value cannot be rendered
            ProxmoxAPIError: If the request fails
        """
        vmid = options.get("vmid")

        try:
            validate_option_keys(key for key in options if key != "vmid")
            return self.transport.request(
                "POST", f"/nodes/{node}/qemu", data=render_option_values(options)
            )
        except Exception:
            if vmid is not None:
                self.release_vmid(int(vmid))
            raise
        finally:
            self.flush_resources("vm")

    def update_vm(self, node: str, vmid: int, options: dict[str, Any]) -> str | None:
        """Apply the options that differ from the current config.

        Returns:
            Task id, or None when nothing differs

        Raises:
            UnknownOptionError: If an option key is not recognized
            ProxmoxAPIError: If a request fails
        """
        current = self.transport.request("GET", f"/nodes/{node}/qemu/{vmid}/config") or {}
        changes = get_vm_options_to_apply(current, options)
        if not changes:
            logger.debug(f"VM {vmid}: configuration already up to date")
            return None

        try:
            return self.transport.request(
                "POST",
                f"/nodes/{node}/qemu/{vmid}/config",
                data={option.name: option.value for option in changes},
            )
        finally:
            self.flush_resources("vm")

    def delete_vm(self, node: str, vmid: int) -> str:
        """Delete VM `vmid` and return the task id.

        The deleted id stays reserved so it is not reused while the platform
        catches up.
        """
        try:
            upid = self.transport.request("DELETE", f"/nodes/{node}/qemu/{vmid}")
        finally:
            self.flush_resources("vm")

        self.vmid_reservations.reserve(vmid)
        return upid

    def migrate_vm(self, vmid: int, target: str, online: bool = False) -> str:
        """Migrate VM `vmid` to node `target` and return the task id."""
        vm = self.find_vm_by_id(vmid)

        try:
            return self.transport.request(
                "POST",
                f"/nodes/{vm['node']}/qemu/{vmid}/migrate",
                data={"target": target, "online": int(online)},
            )
        finally:
            self.flush_resources("vm")

    def clone_vm(
        self,
        template_id: int,
        request: CloneRequest,
        wait_for_task: TaskWaiter | None = None,
    ) -> int:
        """Clone template `template_id` into `request.new_id` and size it.

        After the clone request the new disk is resized (when disk_size is
        set) and cores, memory, NUMA, tags, SMBIOS identity and NIC
        multiqueue are applied in one config update. Proxmox clones in the
        background, so pass `wait_for_task(node, upid)` to block until the
        clone task has finished before the follow-up requests are sent.

        The reservation for `request.new_id` is released when any step fails.

        Returns:
            Id of the new VM

        Raises:
            VMTemplateNotFoundError: If the template is not on request.node
            ProxmoxAPIError: If a request fails
        """
        node = request.node
        new_id = request.new_id

        try:
            template = self._find_template_by_id(template_id)
            if template.get("node") != node:
                raise VMTemplateNotFoundError(
                    f"VM template {template_id} not found on node {node}"
                )

            data: dict[str, Any] = {
                "newid": new_id,
                "name": request.name,
                "full": int(request.full),
            }
            for key in ("description", "pool", "storage"):
                value = getattr(request, key)
                if value:
                    data[key] = value

            upid = self.transport.request(
                "POST", f"/nodes/{node}/qemu/{template_id}/clone", data=data
            )
            logger.debug(f"Cloning template {template_id} to VM {new_id}: {upid}")
            if wait_for_task is not None:
                wait_for_task(node, upid)
            self.flush_resources("vm")

            if request.disk_size:
                # TODO: take the disk name from the template config instead of scsi0
                self.transport.request(
                    "PUT",
                    f"/nodes/{node}/qemu/{new_id}/resize",
                    data={"disk": "scsi0", "size": request.disk_size},
                )

            config = self.transport.request("GET", f"/nodes/{node}/qemu/{new_id}/config")
            options = apply_instance_options(request, [])
            options = apply_instance_smbios(config, request, new_id, options)
            if request.cpu:
                options = apply_instance_optimization(config, request, options)

            if options:
                self.transport.request(
                    "POST",
                    f"/nodes/{node}/qemu/{new_id}/config",
                    data={option.name: option.value for option in options},
                )
        except Exception:
            self.release_vmid(new_id)
            raise
        finally:
            self.flush_resources("vm")

        return new_id

    def _find_template_by_id(self, template_id: int) -> dict[str, Any]:
        for vm in self.get_resources("vm"):
            if vm.get("template") and vm.get("vmid") == template_id:
                return vm
        raise VMTemplateNotFoundError(f"VM template {template_id} not found")


__all__ = [
    "APIClient",
    "NodeNotFoundError",
    "NotFoundError",
    "ProxmoxAPIError",
    "ProxmoxTransport",
    "RequestsTransport",
    "VMNotFoundError",
    "VMTemplateNotFoundError",
]
