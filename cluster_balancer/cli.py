# cli.py

"""Command-line interface for the cluster VM balancer."""

import argparse
import logging
import sys

from .balancer import LoadBalancer
from .config import BalancerConfig
from .exceptions import BalancerError
from .monitor import UtilizationMonitor
from .openstack_cluster import OpenStackCluster
from .scenario import demo_cluster, load_scenario
from .utils import get_openstack_connection, setup_logging

logger = logging.getLogger(__name__)

def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Migrate VMs from overloaded to underutilized compute nodes"
    )
    source = parser.add_mutually_exclusive_group()
    source.add_argument(
        "--scenario",
        metavar="FILE",
        help="JSON scenario describing a simulated cluster (default: built-in demo)"
    )
    source.add_argument(
        "--openstack",
        action="store_true",
        help="Balance the OpenStack cloud configured through OS_* variables"
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Plan OpenStack migrations without performing them"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose logging"
    )
    parser.add_argument(
        "--show-resources",
        action="store_true",
        help="Show resources for all nodes"
    )
    parser.add_argument(
        "--overload-threshold",
        type=float,
        help="Utilization at or above which a node is overloaded"
    )
    parser.add_argument(
        "--underutilized-threshold",
        type=float,
        help="Utilization below which a node accepts migrations"
    )
    parser.add_argument(
        "--rebalance-gap",
        type=float,
        help="Minimum source/target utilization gap for a rebalancing move"
    )
    parser.add_argument(
        "--keep-saturated-targets",
        action="store_true",
        help="Keep targets as candidates after they stop being underutilized"
    )
    return parser.parse_args(argv)

def build_config(args) -> BalancerConfig:
    """Environment settings overridden by command line flags."""
    overrides = {}
    if args.overload_threshold is not None:
        overrides["overload_threshold"] = args.overload_threshold
    if args.underutilized_threshold is not None:
        overrides["underutilized_threshold"] = args.underutilized_threshold
    if args.rebalance_gap is not None:
        overrides["rebalance_gap"] = args.rebalance_gap
    if args.keep_saturated_targets:
        overrides["drop_saturated_targets"] = False
    return BalancerConfig(**overrides)

def print_node_resources(resources) -> None:
    logger.info(f"Node: {resources.name} ({resources.scheduling.value})")
    logger.info(f"  Compute units: {resources.compute_units_used:g}/{resources.compute_units:g}")
    logger.info(f"  Memory: {resources.memory_used:g}/{resources.memory:g} MB")
    logger.info(f"  Running VMs: {resources.running_vms}")
    logger.info(f"  Utilization: {resources.utilization*100:.1f}% ({resources.classification.value})")

def main(argv=None):
    """Main entry point."""
    args = parse_args(argv)
    setup_logging(args.verbose)

    try:
        config = build_config(args)

        if args.openstack:
            cluster = OpenStackCluster(get_openstack_connection(), dry_run=args.dry_run)
        elif args.scenario:
            cluster = load_scenario(args.scenario)
        else:
            cluster = demo_cluster()

        monitor = UtilizationMonitor(cluster, config)

        if args.show_resources:
            logger.info("Current node resources:")
            for node in cluster.nodes():
                print_node_resources(monitor.node_resources(node))
            return 0

        monitor.log_utilization()
        LoadBalancer(cluster, config, monitor).run_once()
        return 0

    except BalancerError as e:
        logger.error(f"Balancer error: {e}")
        return 1
    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        return 1

if __name__ == "__main__":
    sys.exit(main())
