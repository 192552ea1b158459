# exceptions.py

"""Custom exceptions for the cluster VM balancer."""

class BalancerError(Exception):
    """Base exception for balancer errors."""
    pass

class ConfigurationError(BalancerError):
    """Exception for invalid thresholds, scenario files or environment."""
    pass

class AllocationFailure(BalancerError):
    """A cluster rejected an allocate or deallocate request."""

    def __init__(self, message: str, vm_id: str = None, node: str = None):
        super().__init__(message)
        self.vm_id = vm_id
        self.node = node

class DegenerateNodeError(BalancerError):
    """A node reports zero compute units, so its utilization is undefined."""

    def __init__(self, node: str):
        super().__init__(f"Node {node} has zero compute units")
        self.node = node

class OpenStackError(BalancerError):
    """Exception for OpenStack communication errors."""
    pass
