"""Builders for scenario dictionaries used across the tests."""


def node(name, compute_units=4, memory=8192, bandwidth=10000, storage=1000, **extra):
    entry = {"name": name, "compute_units": compute_units, "memory": memory,
             "bandwidth": bandwidth, "storage": storage}
    entry.update(extra)
    return entry


def vm(vm_id, node_name, compute_units=1, utilization=0.5, memory=512, bandwidth=100, storage=10):
    return {"id": vm_id, "node": node_name, "compute_units": compute_units, "memory": memory,
            "bandwidth": bandwidth, "storage": storage, "utilization": utilization}
