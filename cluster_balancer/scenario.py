# scenario.py

"""Loading simulated clusters from JSON scenario files."""

import logging
from typing import Any, List

from pydantic import BaseModel, Field, ValidationError, field_validator

from .cluster import SimulatedCluster
from .exceptions import ConfigurationError
from .models import VM, ResourceVector, SchedulingPolicy

logger = logging.getLogger(__name__)

# Two 4-unit nodes: node-a overloaded at 85%, node-b underutilized at 10%
DEMO_SCENARIO = {
    "nodes": [
        {"name": "node-a", "compute_units": 4, "memory": 8192, "bandwidth": 10000, "storage": 1000},
        {"name": "node-b", "compute_units": 4, "memory": 8192, "bandwidth": 10000, "storage": 1000},
    ],
    "vms": [
        {"id": "vm-0", "node": "node-a", "compute_units": 2, "memory": 2048,
         "bandwidth": 1000, "storage": 10, "utilization": 0.8},
        {"id": "vm-1", "node": "node-a", "compute_units": 1, "memory": 1024,
         "bandwidth": 1000, "storage": 10, "utilization": 0.9},
        {"id": "vm-2", "node": "node-a", "compute_units": 1, "memory": 1024,
         "bandwidth": 1000, "storage": 10, "utilization": 0.9},
        {"id": "vm-3", "node": "node-b", "compute_units": 1, "memory": 1024,
         "bandwidth": 1000, "storage": 10, "utilization": 0.4},
    ],
}


class ResourceSpec(BaseModel):
    compute_units: float = Field(ge=0)
    memory: float = Field(0, ge=0)
    bandwidth: float = Field(0, ge=0)
    storage: float = Field(0, ge=0)

    def resources(self) -> ResourceVector:
        return ResourceVector(self.compute_units, self.memory, self.bandwidth, self.storage)


class NodeSpec(ResourceSpec):
    name: str
    scheduling: SchedulingPolicy = SchedulingPolicy.TIME_SHARED


class VmSpec(ResourceSpec):
    id: str
    node: str
    utilization: float = Field(0.0, ge=0, le=1)

    @field_validator('id', 'node', mode='before')
    def as_string(cls, v: Any) -> Any:
        # Scenario files often use numeric ids
        return str(v) if isinstance(v, int) else v


class Scenario(BaseModel):
    nodes: List[NodeSpec] = []
    vms: List[VmSpec] = []


def _to_cluster(scenario: Scenario) -> SimulatedCluster:
    cluster = SimulatedCluster()
    for spec in scenario.nodes:
        cluster.add_node(spec.name, spec.resources(), spec.scheduling)
    for spec in scenario.vms:
        cluster.place(VM(vm_id=spec.id, demand=spec.resources(), utilization=spec.utilization), spec.node)

    logger.debug(f"Loaded scenario with {len(cluster.nodes())} nodes and {len(cluster.vms())} VMs")
    return cluster


def build_cluster(data: Any) -> SimulatedCluster:
    """Build a SimulatedCluster from a scenario dictionary."""
    try:
        scenario = Scenario.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid scenario: {e}") from e
    return _to_cluster(scenario)


def load_scenario(path: str) -> SimulatedCluster:
    """Read a JSON scenario file into a SimulatedCluster."""
    try:
        with open(path) as f:
            text = f.read()
    except OSError as e:
        raise ConfigurationError(f"Cannot read scenario file {path}: {e}")

    try:
        scenario = Scenario.model_validate_json(text)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid scenario file {path}: {e}") from e
    return _to_cluster(scenario)


def demo_cluster() -> SimulatedCluster:
    return build_cluster(DEMO_SCENARIO)
