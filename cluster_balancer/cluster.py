# cluster.py

"""Cluster model interface and an in-memory simulated cluster."""

import logging
from abc import ABC, abstractmethod
from typing import Dict, List

from .exceptions import AllocationFailure, ConfigurationError
from .models import VM, Node, ResourceVector, SchedulingPolicy

logger = logging.getLogger(__name__)


class Cluster(ABC):
    """Owner of the node/VM assignment table.

    The balancer only reads nodes and asks the cluster to deallocate and
    allocate VMs. Both calls are atomic and raise AllocationFailure when
    rejected.
    """

    @abstractmethod
    def nodes(self) -> List[Node]:
        """Return every node in the cluster."""

    @abstractmethod
    def deallocate(self, vm: VM, node: Node) -> None:
        """Release vm from node."""

    @abstractmethod
    def allocate(self, vm: VM, node: Node) -> None:
        """Place an unplaced vm on node."""

    def node(self, name: str) -> Node:
        for node in self.nodes():
            if node.name == name:
                return node
        raise KeyError(name)

    def vms(self) -> List[VM]:
        return [vm for node in self.nodes() for vm in node.vms]


class SimulatedCluster(Cluster):
    """In-memory cluster.

    Space-shared nodes never hand out more compute units than they have.
    Time-shared nodes may oversubscribe compute units; memory, bandwidth and
    storage are always hard limits.
    """

    def __init__(self):
        self._nodes: Dict[str, Node] = {}

    def nodes(self) -> List[Node]:
        return list(self._nodes.values())

    def node(self, name: str) -> Node:
        return self._nodes[name]

    def add_node(self, name: str, capacity: ResourceVector,
                 scheduling: SchedulingPolicy = SchedulingPolicy.TIME_SHARED) -> Node:
        if name in self._nodes:
            raise ConfigurationError(f"Duplicate node name: {name}")
        node = Node(name=name, capacity=capacity, scheduling=scheduling)
        self._nodes[name] = node
        return node

    def place(self, vm: VM, node_name: str) -> VM:
        """Initial placement of a VM on the named node."""
        if node_name not in self._nodes:
            raise ConfigurationError(f"VM {vm.vm_id} refers to unknown node {node_name}")
        if any(existing.vm_id == vm.vm_id for existing in self.vms()):
            raise ConfigurationError(f"Duplicate VM id: {vm.vm_id}")
        self.allocate(vm, self._nodes[node_name])
        return vm

    def deallocate(self, vm: VM, node: Node) -> None:
        if vm not in node.vms:
            raise AllocationFailure(
                f"VM {vm.vm_id} is not hosted on node {node.name}", vm.vm_id, node.name
            )
        node.vms.remove(vm)
        vm.node = None
        logger.debug(f"Deallocated VM {vm.vm_id} from node {node.name}")

    def allocate(self, vm: VM, node: Node) -> None:
        if vm.node is not None:
            raise AllocationFailure(
                f"VM {vm.vm_id} is still hosted on node {vm.node}", vm.vm_id, node.name
            )

        available = node.free
        if node.scheduling is SchedulingPolicy.TIME_SHARED:
            # Compute units are shared in time, only the other dimensions are hard limits
            available = available._replace(compute_units=vm.demand.compute_units)

        missing = vm.demand.shortfall(available)
        if missing:
            raise AllocationFailure(
                f"Node {node.name} lacks {', '.join(missing)} for VM {vm.vm_id}",
                vm.vm_id, node.name
            )

        node.vms.append(vm)
        vm.node = node.name
        logger.debug(f"Allocated VM {vm.vm_id} to node {node.name}")
