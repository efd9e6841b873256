"""
Capledger Observability Module

Prometheus counters for operations, capability lookups and security scenarios.
"""

from capledger.observability.metrics import (
    record_operation,
    record_capability_resolution,
    record_scenario,
)

__all__ = [
    "record_operation",
    "record_capability_resolution",
    "record_scenario",
]
