# openstack_cluster.py

"""Cluster backed by a live OpenStack deployment."""

import logging
import math
from typing import Any, Dict, List, Optional

import requests
from openstack import exceptions as sdk_exceptions
from openstack import utils as sdk_utils

from .cluster import Cluster
from .config import (
    COMPUTE_DIAGNOSTICS_API_VERSION, LIVE_MIGRATION_TIMEOUT, PLACEMENT_API_VERSION
)
from .exceptions import AllocationFailure, OpenStackError
from .models import VM, Node, ResourceVector, SchedulingPolicy

logger = logging.getLogger(__name__)


class OpenStackCluster(Cluster):
    """Nodes are enabled, up hypervisors. VMs are their ACTIVE servers.

    Capacity comes from the placement inventories (VCPU slots after the
    allocation ratio, MEMORY_MB, DISK_GB). A live migration is a single
    operation, so ``deallocate`` only updates the local model and
    ``allocate`` performs the migration.
    """

    def __init__(self, conn, dry_run: bool = False):
        self.conn = conn
        self.dry_run = dry_run
        self.flavor_cache: Dict[str, Any] = {}
        self._nodes: Optional[List[Node]] = None
        self._origin: Dict[str, str] = {}  # VM id -> node it was released from

    def nodes(self) -> List[Node]:
        if self._nodes is None:
            self.refresh()
        return list(self._nodes)

    def refresh(self) -> None:
        """Rebuild the local model from OpenStack."""
        nodes = []
        try:
            for hypervisor in self.conn.compute.hypervisors(details=True):
                if hypervisor.state != 'up' or hypervisor.status != 'enabled':
                    logger.debug(f"Skipping hypervisor {hypervisor.name} ({hypervisor.state}/{hypervisor.status})")
                    continue
                node = Node(
                    name=hypervisor.name,
                    capacity=self.get_node_capacity(hypervisor.name),
                    scheduling=SchedulingPolicy.TIME_SHARED,
                )
                node.vms = self._load_vms(node.name)
                nodes.append(node)
        except sdk_exceptions.SDKException as e:
            raise OpenStackError(f"Failed to list hypervisors: {e}")

        self._nodes = nodes
        self._origin.clear()
        logger.info(f"Loaded {len(nodes)} compute nodes from OpenStack")

    def _placement_get(self, path: str) -> dict:
        placement_url = self.conn.endpoint_for('placement')
        response = requests.get(
            f"{placement_url}{path}",
            headers={
                "X-Auth-Token": self.conn.auth_token,
                "OpenStack-API-Version": PLACEMENT_API_VERSION
            }
        )
        response.raise_for_status()
        return response.json()

    def get_node_capacity(self, hostname: str) -> ResourceVector:
        """Schedulable capacity of a host from its placement inventories."""
        try:
            providers = self._placement_get(f"/resource_providers?name={hostname}").get('resource_providers', [])
            if not providers:
                raise OpenStackError(f"No resource provider found for host {hostname}")

            inventories = self._placement_get(
                f"/resource_providers/{providers[0]['uuid']}/inventories"
            ).get('inventories', {})
        except requests.RequestException as e:
            raise OpenStackError(f"Error getting inventories for host {hostname}: {e}")

        def schedulable(resource_class: str, default: float = 0.0) -> float:
            inventory = inventories.get(resource_class)
            if inventory is None:
                return default
            total = inventory.get('total', 0) - inventory.get('reserved', 0)
            return total * inventory.get('allocation_ratio', 1.0)

        return ResourceVector(
            compute_units=schedulable('VCPU'),
            memory=schedulable('MEMORY_MB'),
            bandwidth=schedulable('NET_BW_EGR_KILOBIT_PER_SEC', math.inf),
            storage=schedulable('DISK_GB'),
        )

    def _flavor_value(self, flavor: Any, key: str) -> float:
        value = flavor.get(key)
        if value is None:
            flavor_id = flavor.get('id')
            if not self.flavor_cache:
                self.flavor_cache = {f.id: f for f in self.conn.compute.flavors()}
            cached = self.flavor_cache.get(flavor_id)
            value = getattr(cached, key, None) if cached is not None else None
        return float(value or 0)

    def _load_vms(self, hostname: str) -> List[VM]:
        vms = []
        for server in self.conn.compute.servers(all_projects=True, host=hostname):
            if server.status.upper() != 'ACTIVE':
                continue
            demand = ResourceVector(
                compute_units=self._flavor_value(server.flavor, 'vcpus'),
                memory=self._flavor_value(server.flavor, 'ram'),
                bandwidth=0,
                storage=self._flavor_value(server.flavor, 'disk'),
            )
            vms.append(VM(
                vm_id=server.id,
                demand=demand,
                utilization=self.get_vm_utilization(server.id),
                node=hostname,
            ))
        return vms

    def get_vm_utilization(self, server_id: str) -> float:
        """Mean CPU utilisation reported by the server diagnostics, 0.0 if unknown."""
        try:
            compute_url = self.conn.endpoint_for('compute')
            response = requests.get(
                f"{compute_url}/servers/{server_id}/diagnostics",
                headers={
                    "X-Auth-Token": self.conn.auth_token,
                    "OpenStack-API-Version": COMPUTE_DIAGNOSTICS_API_VERSION
                }
            )
            response.raise_for_status()
            cpu_details = response.json().get('cpu_details') or []
        except requests.RequestException as e:
            logger.warning(f"Error getting diagnostics for server {server_id}: {e}")
            return 0.0

        samples = [cpu['utilisation'] for cpu in cpu_details if cpu.get('utilisation') is not None]
        if not samples:
            return 0.0
        return min(1.0, max(0.0, sum(samples) / len(samples) / 100.0))

    def deallocate(self, vm: VM, node: Node) -> None:
        if vm not in node.vms:
            raise AllocationFailure(f"VM {vm.vm_id} is not hosted on node {node.name}", vm.vm_id, node.name)
        node.vms.remove(vm)
        vm.node = None
        self._origin[vm.vm_id] = node.name

    def allocate(self, vm: VM, node: Node) -> None:
        if vm.node is not None:
            raise AllocationFailure(f"VM {vm.vm_id} is still hosted on node {vm.node}", vm.vm_id, node.name)

        origin = self._origin.get(vm.vm_id)
        if origin is not None and origin != node.name:
            if self.dry_run:
                logger.info(f"[DRY RUN] Would live-migrate server {vm.vm_id} from {origin} to {node.name}")
            else:
                self._live_migrate(vm, node)

        node.vms.append(vm)
        vm.node = node.name
        self._origin.pop(vm.vm_id, None)

    def _live_migrate(self, vm: VM, node: Node) -> None:
        logger.info(f"Live-migrating server {vm.vm_id} to {node.name}")
        try:
            self.conn.compute.live_migrate_server(vm.vm_id, host=node.name, block_migration='auto')
            for _ in sdk_utils.iterate_timeout(
                LIVE_MIGRATION_TIMEOUT,
                f"Timeout waiting for server {vm.vm_id} to migrate",
                wait=2
            ):
                server = self.conn.compute.get_server(vm.vm_id)
                if server.status == 'ERROR':
                    raise AllocationFailure(f"Server {vm.vm_id} went to ERROR", vm.vm_id, node.name)
                if server.status == 'ACTIVE' and not server.task_state:
                    break
        except sdk_exceptions.SDKException as e:
            raise AllocationFailure(f"Live migration of {vm.vm_id} failed: {e}", vm.vm_id, node.name)

        if server.compute_host != node.name:
            raise AllocationFailure(
                f"Server {vm.vm_id} is on {server.compute_host} after migration, expected {node.name}",
                vm.vm_id, node.name
            )
