import pytest

from cluster_balancer.balancer import LoadBalancer
from cluster_balancer.cluster import SimulatedCluster
from cluster_balancer.config import BalancerConfig
from cluster_balancer.exceptions import AllocationFailure, BalancerError, DegenerateNodeError
from cluster_balancer.models import VM, NodeClass, ResourceVector
from cluster_balancer.scenario import DEMO_SCENARIO, build_cluster
from tests.helpers import node, vm


class FlakyCluster(SimulatedCluster):
    """Rejects allocations to the listed nodes once ``failing`` is set."""

    def __init__(self):
        super().__init__()
        self.failing = set()

    def allocate(self, vm, node):
        if node.name in self.failing:
            raise AllocationFailure(f"{node.name} rejected {vm.vm_id}", vm.vm_id, node.name)
        super().allocate(vm, node)


def run(scenario, config=None):
    cluster = build_cluster(scenario)
    balancer = LoadBalancer(cluster, config or BalancerConfig())
    return cluster, balancer.run_once()


def test_single_migration_relieves_overload(relief_scenario):
    cluster, result = run(relief_scenario)

    assert result.migration_count == 1
    migration = result.migrations[0]
    assert (migration.vm_id, migration.source, migration.target) == ("vm-a4", "node-a", "node-b")
    assert migration.rule == "relief"
    assert migration.projected_source == pytest.approx(0.775)
    assert migration.projected_target == pytest.approx(0.175)

    assert result.classification_before == {
        "node-a": NodeClass.OVERLOADED, "node-b": NodeClass.UNDERUTILIZED,
    }
    assert result.classification_after == {
        "node-a": NodeClass.NORMAL, "node-b": NodeClass.UNDERUTILIZED,
    }
    assert result.utilization_after["node-a"] == pytest.approx(0.775)
    assert [v.vm_id for v in cluster.node("node-b").vms] == ["vm-b1", "vm-a4"]


def test_target_overload_rejected_then_next_vm_used():
    _, result = run({
        "nodes": [node("node-a"), node("node-b")],
        "vms": [
            vm("x", "node-a", compute_units=3, utilization=1.0),
            vm("y", "node-a", utilization=0.4),
            vm("b1", "node-b", utilization=0.4),
        ],
    })

    assert [m.vm_id for m in result.migrations] == ["y"]
    assert result.migrations[0].projected_target == pytest.approx(0.2)


def test_no_feasible_relief():
    cluster, result = run({
        "nodes": [node("node-a"), node("node-b")],
        "vms": [vm("only", "node-a", compute_units=4, utilization=0.85)],
    })

    assert result.migrations == []
    assert result.classification_after["node-a"] is NodeClass.OVERLOADED
    assert cluster.node("node-a").vms[0].vm_id == "only"


def test_no_overloaded_nodes_is_a_no_op():
    scenario = {
        "nodes": [node("node-a"), node("node-b")],
        "vms": [vm("a1", "node-a", compute_units=2, utilization=0.6),
                vm("a2", "node-a", compute_units=2, utilization=0.6),
                vm("b1", "node-b", utilization=0.4)],
    }
    _, result = run(scenario)

    assert result.migrations == []
    assert result.classification_after == result.classification_before
    assert result.utilization_after == result.utilization_before


def test_empty_cluster_is_a_no_op():
    result = LoadBalancer(SimulatedCluster(), BalancerConfig()).run_once()
    assert result.migrations == []
    assert result.utilization_before == {}


def test_nodes_without_vms_are_a_no_op():
    _, result = run({"nodes": [node("node-a"), node("node-b")]})
    assert result.migrations == []
    assert set(result.classification_after.values()) == {NodeClass.UNDERUTILIZED}


def test_degenerate_node_aborts_pass():
    cluster = build_cluster({"nodes": [node("node-a"), node("broken", compute_units=0)]})
    with pytest.raises(DegenerateNodeError):
        LoadBalancer(cluster, BalancerConfig()).run_once()


def test_rebalance_moves_then_relief():
    _, result = run({
        "nodes": [node("src", compute_units=10), node("dst", compute_units=10)],
        "vms": [vm(f"v{i}", "src", utilization=0.95) for i in range(10)],
    })

    assert [m.rule for m in result.migrations] == ["rebalance", "relief"]
    assert [m.vm_id for m in result.migrations] == ["v0", "v1"]
    assert result.utilization_after["src"] == pytest.approx(0.76)
    assert result.utilization_after["dst"] == pytest.approx(0.19)


def saturation_scenario():
    return {
        "nodes": [node("a1", memory=16384), node("a2", memory=16384), node("b", memory=16384)],
        "vms": [
            vm("v", "a1", compute_units=2, utilization=1.0),
            vm("w", "a1", compute_units=2, utilization=0.8),
            vm("p", "a2", compute_units=2, utilization=1.0),
            vm("q", "a2", utilization=0.6),
            vm("r", "a2", utilization=0.8),
        ],
    }


def test_saturated_target_ends_pass():
    _, result = run(saturation_scenario())

    assert [(m.vm_id, m.target) for m in result.migrations] == [("v", "b")]
    assert result.classification_after == {
        "a1": NodeClass.UNDERUTILIZED,
        "a2": NodeClass.OVERLOADED,
        "b": NodeClass.NORMAL,
    }


def test_saturated_target_can_be_kept():
    config = BalancerConfig(drop_saturated_targets=False)
    _, result = run(saturation_scenario(), config)

    assert [(m.vm_id, m.source) for m in result.migrations] == [("v", "a1"), ("r", "a2")]
    assert result.utilization_after["b"] == pytest.approx(0.7)
    assert NodeClass.OVERLOADED not in result.classification_after.values()


def test_overloaded_nodes_processed_most_utilized_first():
    _, result = run({
        "nodes": [node("warm"), node("hot"), node("cold", compute_units=16, memory=32768)],
        "vms": [
            vm("w1", "warm", compute_units=4, utilization=0.82),
            vm("h1", "hot", compute_units=4, utilization=0.95),
        ],
    })

    assert [m.source for m in result.migrations] == ["hot", "warm"]


def flaky_cluster():
    cluster = FlakyCluster()
    cluster.add_node("A", ResourceVector(4, 8192, 10000, 1000))
    cluster.add_node("B", ResourceVector(4, 8192, 10000, 1000))
    cluster.add_node("C", ResourceVector(4, 8192, 10000, 1000))
    for vm_id, cu, util in [("v1", 1, 1.0), ("v2", 2, 1.0), ("v3", 1, 0.4)]:
        cluster.place(VM(vm_id, ResourceVector(cu, 1024, 100, 10), util), "A")
    cluster.place(VM("c1", ResourceVector(1, 1024, 100, 10), 0.4), "C")
    return cluster


def test_allocation_failure_skips_to_next_target():
    cluster = flaky_cluster()
    cluster.failing = {"B"}

    result = LoadBalancer(cluster, BalancerConfig()).run_once()

    assert [(f.vm_id, f.target) for f in result.failures] == [("v2", "B")]
    assert [(m.vm_id, m.target) for m in result.migrations] == [("v2", "C")]
    assert sorted(v.vm_id for v in cluster.node("A").vms) == ["v1", "v3"]
    assert cluster.node("B").vms == []


def test_unrecoverable_allocation_failure_propagates():
    cluster = flaky_cluster()
    cluster.failing = {"A", "B", "C"}

    with pytest.raises(BalancerError):
        LoadBalancer(cluster, BalancerConfig()).run_once()


@pytest.mark.parametrize("scenario", [
    DEMO_SCENARIO,
    saturation_scenario(),
    {
        "nodes": [node("src", compute_units=10), node("dst", compute_units=10)],
        "vms": [vm(f"v{i}", "src", utilization=0.95) for i in range(10)],
    },
    {
        "nodes": [node("n1"), node("n2"), node("n3", compute_units=8), node("n4")],
        "vms": [
            vm("a", "n1", compute_units=2, utilization=0.9),
            vm("b", "n1", compute_units=2, utilization=0.9),
            vm("c", "n2", compute_units=3, utilization=1.0),
            vm("d", "n2", utilization=0.5),
            vm("e", "n3", utilization=0.3),
        ],
    },
])
def test_pass_properties(scenario):
    config = BalancerConfig()
    cluster = build_cluster(scenario)
    balancer = LoadBalancer(cluster, config)
    overloaded_vms = sum(
        len(n.vms) for n in cluster.nodes() if balancer.monitor.is_overloaded(n)
    )

    result = balancer.run_once()

    assert result.migration_count <= overloaded_vms
    for migration in result.migrations:
        assert migration.projected_target < config.overload_threshold
        if migration.rule == "relief":
            assert migration.projected_source < migration.source_before
    for util in result.utilization_after.values():
        assert 0.0 <= util <= 1.0


def test_query_entry_points(relief_scenario):
    cluster = build_cluster(relief_scenario)
    balancer = LoadBalancer(cluster, BalancerConfig())

    assert balancer.utilization(cluster.node("node-b")) == pytest.approx(0.1)
    assert set(balancer.snapshot()) == {"node-a", "node-b"}
