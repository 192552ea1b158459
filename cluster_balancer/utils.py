# utils.py

"""Utility functions for the cluster VM balancer."""

import logging
import math
import os
from typing import Mapping, NamedTuple, Optional

import openstack
from openstack.connection import Connection

from .config import REQUIRED_ENV_VARS, LOG_FORMAT, LOG_DATE_FORMAT
from .exceptions import ConfigurationError, OpenStackError


class ClusterMetrics(NamedTuple):
    average: float
    minimum: float
    maximum: float
    std_dev: float


def setup_logging(verbose: bool = False) -> None:
    """Configure logging with appropriate level and format."""
    log_level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT
    )


def get_openstack_connection() -> Connection:
    """
    Establish connection to OpenStack using environment variables.
    Raises ConfigurationError if required variables are missing.
    """
    missing_vars = [var for var in REQUIRED_ENV_VARS if not os.environ.get(var)]
    if missing_vars:
        raise ConfigurationError(
            f"Missing required environment variables: {', '.join(missing_vars)}"
        )

    try:
        return openstack.connect()
    except Exception as e:
        raise OpenStackError(f"Failed to connect to OpenStack: {e}")


def calculate_cluster_metrics(snapshot: Mapping[str, float]) -> ClusterMetrics:
    """
    Calculate cluster-wide utilization metrics.

    Args:
        snapshot: Mapping of node name to utilization fraction

    Returns:
        ClusterMetrics with the average, minimum, maximum and population
        standard deviation of the utilizations (all 0.0 for an empty cluster)
    """
    if not snapshot:
        return ClusterMetrics(0.0, 0.0, 0.0, 0.0)

    utilizations = list(snapshot.values())
    avg_util = sum(utilizations) / len(utilizations)
    variance = sum((util - avg_util) ** 2 for util in utilizations) / len(utilizations)

    return ClusterMetrics(avg_util, min(utilizations), max(utilizations), math.sqrt(variance))


def improvement_percentage(before: ClusterMetrics, after: ClusterMetrics) -> Optional[float]:
    """Relative reduction of the utilization standard deviation, in percent.

    Returns None when the cluster was already perfectly balanced.
    """
    if before.std_dev == 0:
        return None
    return (before.std_dev - after.std_dev) / before.std_dev * 100
