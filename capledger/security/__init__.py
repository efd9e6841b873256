# ============================================================================
# Capledger v1.0.0
# Security Module - Adversarial Scenario Harness
# ============================================================================

from capledger.security.harness import SecurityHarness
from capledger.security.scenarios import (
    DEFAULT_CATALOG,
    Classification,
    Outcome,
    ScenarioResult,
    SecurityReport,
)

__all__ = [
    "SecurityHarness",
    "DEFAULT_CATALOG",
    "Classification",
    "Outcome",
    "ScenarioResult",
    "SecurityReport",
]
