import os

import pytest

from cluster_balancer.config import ENV_PREFIX, BalancerConfig
from tests.helpers import node, vm


@pytest.fixture(autouse=True)
def clean_balancer_environment(monkeypatch):
    for name in list(os.environ):
        if name.startswith(ENV_PREFIX):
            monkeypatch.delenv(name)


@pytest.fixture
def config():
    return BalancerConfig(overload_threshold=0.8, underutilized_threshold=0.5)


@pytest.fixture
def relief_scenario():
    """node-a at 85% where only vm-a4 fits on node-b, node-b at 10%."""
    return {
        "nodes": [node("node-a"), node("node-b")],
        "vms": [
            vm("vm-a1", "node-a", compute_units=2, utilization=1.0, memory=4096, storage=100),
            vm("vm-a2", "node-a", utilization=0.7, memory=2048, storage=100),
            vm("vm-a3", "node-a", utilization=0.4, memory=1024, storage=100),
            vm("vm-a4", "node-a", utilization=0.3, memory=512, storage=10),
            vm("vm-b1", "node-b", utilization=0.4, memory=1024, storage=990),
        ],
    }
