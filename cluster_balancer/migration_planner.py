# migration_planner.py

"""Feasibility and benefit checks for a single candidate migration."""

import logging
import math
from typing import NamedTuple, Optional

from .config import GAP_TOLERANCE
from .models import VM, Node
from .monitor import UtilizationMonitor

logger = logging.getLogger(__name__)

RELIEF = 'relief'
REBALANCE = 'rebalance'


class Projection(NamedTuple):
    """Source and target utilization before and after a hypothetical move."""
    source_before: float
    target_before: float
    source_after: float
    target_after: float

    @property
    def gap_before(self) -> float:
        return abs(self.source_before - self.target_before)

    @property
    def gap_after(self) -> float:
        return abs(self.source_after - self.target_after)


class PlannedMigration(NamedTuple):
    vm: VM
    source: Node
    target: Node
    projection: Projection
    rule: str


class MigrationPlanner:
    """Decides whether moving a VM from one node to another is allowed and worthwhile.

    Projections start from the capped node utilization and subtract the VM's
    uncapped share, so on an oversubscribed time-shared node a relief move
    can project the source below the threshold while its measured
    utilization stays at 1.0 after the move.
    """

    def __init__(self, monitor: UtilizationMonitor, rebalance_gap: float):
        self.monitor = monitor
        self.rebalance_gap = rebalance_gap

    def has_enough_resources(self, node: Node, vm: VM) -> bool:
        """Check free capacity of node against vm's demand in every dimension."""
        available = node.free
        if not vm.demand.fits_within(available):
            missing = vm.demand.shortfall(available)
            logger.debug(f"Node {node.name} lacks {', '.join(missing)} for VM {vm.vm_id}")
            return False
        return True

    def project(self, vm: VM, source: Node, target: Node) -> Projection:
        """Estimate utilization of both nodes after moving vm.

        The VM's share of the source is re-weighted by the ratio of source to
        target compute units when added to the target.
        """
        source_before = self.monitor.utilization(source)
        target_before = self.monitor.utilization(target)
        share = self.monitor.vm_contribution(vm, source)

        source_after = source_before - share
        target_after = target_before + share * source.compute_units / target.compute_units

        return Projection(source_before, target_before, source_after, target_after)

    def _meets_gap(self, gap: float) -> bool:
        return gap > self.rebalance_gap or math.isclose(gap, self.rebalance_gap, abs_tol=GAP_TOLERANCE)

    def evaluate(self, vm: VM, source: Node, target: Node) -> Optional[PlannedMigration]:
        """Return the planned migration if it is feasible and beneficial, else None."""
        if target is source:
            return None

        if not self.has_enough_resources(target, vm):
            return None

        projection = self.project(vm, source, target)
        overload = self.monitor.overload_threshold

        if projection.target_after >= overload:
            logger.debug(
                f"VM {vm.vm_id} would overload node {target.name} "
                f"({projection.target_after*100:.1f}%)"
            )
            return None

        if projection.source_before >= overload and projection.source_after < overload:
            return PlannedMigration(vm, source, target, projection, RELIEF)

        if self._meets_gap(projection.gap_before) and projection.gap_after < projection.gap_before:
            return PlannedMigration(vm, source, target, projection, REBALANCE)

        logger.debug(
            f"Moving VM {vm.vm_id} from {source.name} to {target.name} brings no benefit "
            f"(gap {projection.gap_before*100:.1f}% -> {projection.gap_after*100:.1f}%)"
        )
        return None
