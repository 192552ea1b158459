# balancer.py

"""Single-pass load balancing from overloaded to underutilized nodes."""

import logging
from typing import Dict, List

from .cluster import Cluster
from .config import BalancerConfig
from .exceptions import AllocationFailure, BalancerError
from .migration_planner import MigrationPlanner, PlannedMigration
from .models import VM, FailedMigration, Migration, Node, NodeClass, PassResult
from .monitor import UtilizationMonitor
from .utils import calculate_cluster_metrics, improvement_percentage

logger = logging.getLogger(__name__)


class LoadBalancer:
    """Greedy, single-pass VM migration from overloaded to underutilized nodes.

    Overloaded nodes are handled most utilized first and their VMs largest
    contribution first. Candidate targets are scanned least utilized first,
    in the order fixed by the snapshot taken when the pass starts. Ties are
    broken by node name and VM id.
    """

    def __init__(self, cluster: Cluster, config: BalancerConfig,
                 monitor: UtilizationMonitor = None):
        self.cluster = cluster
        self.config = config
        self.monitor = monitor or UtilizationMonitor(cluster, config)
        self.planner = MigrationPlanner(self.monitor, config.rebalance_gap)

    def utilization(self, node: Node) -> float:
        return self.monitor.utilization(node)

    def snapshot(self) -> Dict[str, float]:
        return self.monitor.snapshot()

    def run_once(self) -> PassResult:
        """Run one balancing pass and report what it did."""
        nodes = self.cluster.nodes()
        result = PassResult()

        if not nodes:
            logger.info("Cluster has no nodes, nothing to balance.")
            return result

        snapshot = self.monitor.snapshot(nodes)
        classes = self.monitor.classification(nodes)
        result.utilization_before = snapshot
        result.classification_before = classes

        overloaded = sorted(
            (node for node in nodes if classes[node.name] is NodeClass.OVERLOADED),
            key=lambda node: (-snapshot[node.name], node.name)
        )
        candidates = sorted(
            (node for node in nodes if classes[node.name] is NodeClass.UNDERUTILIZED),
            key=lambda node: (snapshot[node.name], node.name)
        )

        logger.info(
            f"Found {len(overloaded)} overloaded nodes and "
            f"{len(candidates)} underutilized nodes"
        )

        if overloaded and candidates:
            self._relieve_nodes(overloaded, candidates, result)
            logger.info("Load balancing completed.")
        else:
            logger.info("No load balancing necessary at this time.")

        result.utilization_after = self.monitor.snapshot(nodes)
        result.classification_after = self.monitor.classification(nodes)
        self._log_summary(result)
        return result

    def _relieve_nodes(self, overloaded: List[Node], candidates: List[Node],
                       result: PassResult) -> None:
        for source in overloaded:
            logger.info(
                f"Processing overloaded node {source.name} "
                f"(utilization: {self.monitor.utilization(source)*100:.2f}%)"
            )

            vms = sorted(
                source.vms,
                key=lambda vm: (-self.monitor.vm_contribution(vm, source), vm.vm_id)
            )

            for vm in vms:
                moved = self._migrate_vm(vm, source, candidates, result)

                if not candidates:
                    logger.info("No more underutilized nodes available. Ending load balancing.")
                    return

                if moved and not self.monitor.is_overloaded(source):
                    logger.info(
                        f"Node {source.name} is no longer overloaded "
                        f"({self.monitor.utilization(source)*100:.2f}%)"
                    )
                    break

    def _migrate_vm(self, vm: VM, source: Node, candidates: List[Node],
                    result: PassResult) -> bool:
        """Move vm to the first acceptable candidate. Returns True if it moved."""
        for target in tuple(candidates):
            plan = self.planner.evaluate(vm, source, target)
            if plan is None:
                continue

            try:
                self._commit(plan)
            except AllocationFailure as e:
                logger.warning(
                    f"Migration of VM {vm.vm_id} from {source.name} to {target.name} failed: {e}"
                )
                result.failures.append(FailedMigration(vm.vm_id, source.name, target.name, str(e)))
                continue

            projection = plan.projection
            result.migrations.append(Migration(
                vm_id=vm.vm_id,
                source=source.name,
                target=target.name,
                source_before=projection.source_before,
                target_before=projection.target_before,
                projected_source=projection.source_after,
                projected_target=projection.target_after,
                rule=plan.rule,
            ))

            logger.info(f"Migrated VM {vm.vm_id} from {source.name} to {target.name} ({plan.rule})")
            logger.info(
                f"  After migration - {source.name}: {self.monitor.utilization(source)*100:.2f}%, "
                f"{target.name}: {self.monitor.utilization(target)*100:.2f}%"
            )

            if self.config.drop_saturated_targets and not self.monitor.is_underutilized(target):
                logger.info(f"Node {target.name} is no longer underutilized, removing it from targets")
                candidates.remove(target)

            return True

        logger.debug(f"No suitable target found for VM {vm.vm_id}")
        return False

    def _commit(self, plan: PlannedMigration) -> None:
        """Deallocate from the source, then allocate on the target.

        If the target refuses the VM it is placed back on its source before
        the failure propagates.
        """
        self.cluster.deallocate(plan.vm, plan.source)
        try:
            self.cluster.allocate(plan.vm, plan.target)
        except AllocationFailure:
            try:
                self.cluster.allocate(plan.vm, plan.source)
            except AllocationFailure as e:
                raise BalancerError(
                    f"VM {plan.vm.vm_id} could not be returned to node {plan.source.name}: {e}"
                ) from e
            raise

    def _log_summary(self, result: PassResult) -> None:
        logger.info(f"Migrations performed: {result.migration_count}")
        if result.failures:
            logger.info(f"Migrations failed: {len(result.failures)}")

        logger.info("Node utilization (before -> after):")
        for name, before in result.utilization_before.items():
            after = result.utilization_after.get(name, 0.0)
            logger.info(
                f"  {name}: {before*100:.2f}% -> {after*100:.2f}% "
                f"({(after - before)*100:+.2f}%) "
                f"[{result.classification_before[name].value} -> "
                f"{result.classification_after[name].value}]"
            )

        before = calculate_cluster_metrics(result.utilization_before)
        after = calculate_cluster_metrics(result.utilization_after)
        logger.info(
            f"Average utilization: {before.average*100:.1f}% -> {after.average*100:.1f}%, "
            f"standard deviation: {before.std_dev:.4f} -> {after.std_dev:.4f}"
        )
        improvement = improvement_percentage(before, after)
        if improvement is not None:
            logger.info(f"Load distribution improvement: {improvement:.2f}%")
