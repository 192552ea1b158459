"""Utilization monitoring and VM migration for small compute clusters."""

__version__ = "0.1.0"
