# config.py

"""Configuration settings for the cluster VM balancer."""

from pydantic import Field, ValidationError, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigurationError

# Thresholds and limits
DEFAULT_OVERLOAD_THRESHOLD = 0.8  # Nodes at or above 80% are overloaded
DEFAULT_UNDERUTILIZED_THRESHOLD = 0.5  # Nodes below 50% accept migrations
DEFAULT_REBALANCE_GAP = 0.2  # Minimum source/target gap for a rebalancing move
GAP_TOLERANCE = 1e-9  # Float slack when comparing utilization gaps

# Environment overrides for BalancerConfig, e.g. BALANCER_OVERLOAD_THRESHOLD
ENV_PREFIX = 'BALANCER_'

# Required OpenStack environment variables
REQUIRED_ENV_VARS = [
    'OS_AUTH_URL',
    'OS_PROJECT_NAME',
    'OS_USERNAME',
    'OS_PASSWORD'
]

# OpenStack API microversions
PLACEMENT_API_VERSION = "placement 1.32"
COMPUTE_DIAGNOSTICS_API_VERSION = "compute 2.48"
LIVE_MIGRATION_TIMEOUT = 600  # Seconds to wait for a migrated server

# Logging format
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class BalancerConfig(BaseSettings):
    """Thresholds and policy knobs for one balancing pass.

    Values come from keyword arguments, then BALANCER_* environment
    variables, then the defaults. Invalid values raise ConfigurationError.
    """
    overload_threshold: float = Field(
        DEFAULT_OVERLOAD_THRESHOLD, gt=0, lt=1,
        description="Utilization at or above which a node is overloaded"
    )
    underutilized_threshold: float = Field(
        DEFAULT_UNDERUTILIZED_THRESHOLD, gt=0, lt=1,
        description="Utilization below which a node accepts migrations"
    )
    rebalance_gap: float = Field(
        DEFAULT_REBALANCE_GAP, gt=0, le=1,
        description="Minimum source/target gap for a rebalancing move"
    )
    drop_saturated_targets: bool = Field(
        True, description="Remove a target once it stops being underutilized"
    )

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_ignore_empty=True,
        frozen=True,
        extra='ignore',
    )

    def __init__(self, **values):
        try:
            super().__init__(**values)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid balancer configuration: {e}") from e

    @model_validator(mode='after')
    def check_threshold_order(self):
        if self.underutilized_threshold >= self.overload_threshold:
            raise ValueError(
                f"underutilized_threshold ({self.underutilized_threshold}) must be "
                f"below overload_threshold ({self.overload_threshold})"
            )
        return self
