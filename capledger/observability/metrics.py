"""
============================================================================
Capledger v1.0.0
Prometheus Metrics - Ledger Operation Observability
============================================================================

Reliability Level: SOVEREIGN TIER (Mission-Critical)
Input Constraints: Label values are enum values or short identifiers
Side Effects: Updates Prometheus metrics registry

METRICS EXPOSED
---------------
- capledger_operations_total: Submitted operations by kind, status, error kind
- capledger_capability_resolutions_total: Capability lookups by kind and source
- capledger_scenarios_total: Security scenarios by classification

Metric updates never raise into callers; failures are logged with OBS codes.

============================================================================
"""

import logging
from typing import Optional

from prometheus_client import Counter

# Configure module logger
logger = logging.getLogger(__name__)


# ============================================================================
# PROMETHEUS METRICS DEFINITIONS
# ============================================================================

OPERATIONS_TOTAL = Counter(
    "capledger_operations_total",
    "Total number of ledger operations submitted",
    ["kind", "status", "error_kind"]
)

CAPABILITY_RESOLUTIONS = Counter(
    "capledger_capability_resolutions_total",
    "Total number of capability references resolved",
    ["kind", "source"]
)

SCENARIOS_TOTAL = Counter(
    "capledger_scenarios_total",
    "Total number of security scenarios classified",
    ["scenario", "classification"]
)


# ============================================================================
# METRIC UPDATE FUNCTIONS
# ============================================================================

def record_operation(
    kind: str,
    status: str,
    error_kind: Optional[str] = None,
    correlation_id: Optional[str] = None
) -> None:
    """
    Record one submitted operation.

    Reliability Level: SOVEREIGN TIER
    Input Constraints: kind and status are enum values
    Side Effects: Increments Prometheus counter

    Args:
        kind: Operation kind (e.g., "MINT")
        status: "SUCCESS" or "FAILURE"
        error_kind: Mapped error kind for failures
        correlation_id: Optional tracking ID
    """
    try:
        OPERATIONS_TOTAL.labels(kind=kind, status=status, error_kind=error_kind or "NONE").inc()
        logger.debug(
            "Metric: operation | kind=%s | status=%s | error_kind=%s | correlation_id=%s",
            kind, status, error_kind, correlation_id
        )
    except Exception as e:
        logger.error("[OBS-001] Failed to record operation metric | error=%s", str(e))


def record_capability_resolution(kind: str, source: str) -> None:
    try:
        CAPABILITY_RESOLUTIONS.labels(kind=kind, source=source).inc()
    except Exception as e:
        logger.error("[OBS-002] Failed to record capability metric | error=%s", str(e))


def record_scenario(scenario: str, classification: str) -> None:
    """Record a classified security scenario."""
    try:
        SCENARIOS_TOTAL.labels(scenario=scenario, classification=classification).inc()
    except Exception as e:
        logger.error("[OBS-003] Failed to record scenario metric | error=%s", str(e))
