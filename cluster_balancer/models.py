# models.py

"""Data models for the cluster VM balancer."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, NamedTuple, Optional


class ResourceVector(NamedTuple):
    """Capacity or demand across the four resource dimensions."""
    compute_units: float = 0
    memory: float = 0
    bandwidth: float = 0
    storage: float = 0

    def __add__(self, other: 'ResourceVector') -> 'ResourceVector':
        return ResourceVector(*(a + b for a, b in zip(self, other)))

    def __sub__(self, other: 'ResourceVector') -> 'ResourceVector':
        return ResourceVector(*(a - b for a, b in zip(self, other)))

    def fits_within(self, other: 'ResourceVector') -> bool:
        """True if every dimension of self is no larger than other's."""
        return all(a <= b for a, b in zip(self, other))

    def shortfall(self, available: 'ResourceVector') -> List[str]:
        """Names of the dimensions where self exceeds available."""
        return [name for name, need, have in zip(self._fields, self, available) if need > have]


class SchedulingPolicy(Enum):
    """How a node shares its compute units between VMs."""
    TIME_SHARED = 'time_shared'
    SPACE_SHARED = 'space_shared'


class NodeClass(Enum):
    OVERLOADED = 'overloaded'
    UNDERUTILIZED = 'underutilized'
    NORMAL = 'normal'


@dataclass(eq=False)
class VM:
    """A VM with its resource demand and self-reported CPU utilization."""
    vm_id: str
    demand: ResourceVector
    utilization: float = 0.0  # fraction of its own compute share
    node: Optional[str] = None  # hosting node name, None while unplaced

    @property
    def compute_units(self) -> float:
        return self.demand.compute_units


@dataclass(eq=False)
class Node:
    """A physical node. Only a cluster implementation mutates ``vms``."""
    name: str
    capacity: ResourceVector
    scheduling: SchedulingPolicy = SchedulingPolicy.TIME_SHARED
    vms: List[VM] = field(default_factory=list)

    @property
    def compute_units(self) -> float:
        return self.capacity.compute_units

    @property
    def used(self) -> ResourceVector:
        total = ResourceVector()
        for vm in self.vms:
            total = total + vm.demand
        return total

    @property
    def free(self) -> ResourceVector:
        return self.capacity - self.used


class NodeResources(NamedTuple):
    """Resource summary for a node."""
    name: str
    compute_units: float
    compute_units_used: float
    memory: float
    memory_used: float
    running_vms: int
    utilization: float
    classification: NodeClass
    scheduling: SchedulingPolicy


class Migration(NamedTuple):
    """A committed VM move and the utilizations that justified it."""
    vm_id: str
    source: str
    target: str
    source_before: float
    target_before: float
    projected_source: float
    projected_target: float
    rule: str  # 'relief' or 'rebalance'


class FailedMigration(NamedTuple):
    vm_id: str
    source: str
    target: str
    reason: str


@dataclass
class PassResult:
    """Outcome of one load-balancing pass."""
    migrations: List[Migration] = field(default_factory=list)
    failures: List[FailedMigration] = field(default_factory=list)
    utilization_before: Dict[str, float] = field(default_factory=dict)
    utilization_after: Dict[str, float] = field(default_factory=dict)
    classification_before: Dict[str, NodeClass] = field(default_factory=dict)
    classification_after: Dict[str, NodeClass] = field(default_factory=dict)

    @property
    def migration_count(self) -> int:
        return len(self.migrations)
