# monitor.py

"""Node utilization monitoring and classification."""

import logging
from typing import Dict, Iterable, Optional

from .cluster import Cluster
from .config import BalancerConfig
from .exceptions import DegenerateNodeError
from .models import VM, Node, NodeClass, NodeResources
from .utils import calculate_cluster_metrics

logger = logging.getLogger(__name__)


class UtilizationMonitor:
    """Computes node CPU utilization from the VMs currently assigned to it.

    Every query reads the live assignment, nothing is cached between calls.
    """

    def __init__(self, cluster: Cluster, config: BalancerConfig):
        self.cluster = cluster
        self.config = config

    @property
    def overload_threshold(self) -> float:
        return self.config.overload_threshold

    @property
    def underutilized_threshold(self) -> float:
        return self.config.underutilized_threshold

    def vm_contribution(self, vm: VM, node: Node) -> float:
        """Share of node's compute capacity consumed by vm."""
        if node.compute_units <= 0:
            raise DegenerateNodeError(node.name)
        return vm.utilization * vm.compute_units / node.compute_units

    def utilization(self, node: Node) -> float:
        """Utilization of node in [0, 1], 0.0 when it hosts no VMs.

        The sum is capped at 1.0 so that oversubscribed time-shared nodes
        still report a valid fraction.
        """
        if node.compute_units <= 0:
            raise DegenerateNodeError(node.name)
        if not node.vms:
            return 0.0

        total = sum(self.vm_contribution(vm, node) for vm in node.vms)
        return min(1.0, total)

    def is_overloaded(self, node: Node) -> bool:
        return self.utilization(node) >= self.overload_threshold

    def is_underutilized(self, node: Node) -> bool:
        return self.utilization(node) < self.underutilized_threshold

    def classify(self, node: Node) -> NodeClass:
        util = self.utilization(node)
        if util >= self.overload_threshold:
            return NodeClass.OVERLOADED
        if util < self.underutilized_threshold:
            return NodeClass.UNDERUTILIZED
        return NodeClass.NORMAL

    def snapshot(self, nodes: Optional[Iterable[Node]] = None) -> Dict[str, float]:
        """Utilization of every node keyed by node name, taken now."""
        nodes = self.cluster.nodes() if nodes is None else nodes
        return {node.name: self.utilization(node) for node in nodes}

    def classification(self, nodes: Optional[Iterable[Node]] = None) -> Dict[str, NodeClass]:
        nodes = self.cluster.nodes() if nodes is None else nodes
        return {node.name: self.classify(node) for node in nodes}

    def node_resources(self, node: Node) -> NodeResources:
        """Resource summary for node."""
        used = node.used
        return NodeResources(
            name=node.name,
            compute_units=node.capacity.compute_units,
            compute_units_used=used.compute_units,
            memory=node.capacity.memory,
            memory_used=used.memory,
            running_vms=len(node.vms),
            utilization=self.utilization(node),
            classification=self.classify(node),
            scheduling=node.scheduling,
        )

    def log_utilization(self) -> None:
        """Log the utilization of every node and each VM's share of it."""
        nodes = self.cluster.nodes()
        logger.info("Cluster utilization:")

        for node in nodes:
            util = self.utilization(node)
            logger.info(f"  Node {node.name}: {util*100:.2f}% ({len(node.vms)} VMs)")
            for vm in node.vms:
                logger.debug(
                    f"    VM {vm.vm_id}: {self.vm_contribution(vm, node)*100:.2f}% "
                    f"(using {vm.compute_units} compute units)"
                )

        if nodes:
            metrics = calculate_cluster_metrics(self.snapshot(nodes))
            logger.info(f"  Average utilization: {metrics.average*100:.2f}%")
