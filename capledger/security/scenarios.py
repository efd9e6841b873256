"""
============================================================================
Capledger v1.0.0
Security Scenarios - Outcome Model, State Machine, Catalog
============================================================================

Reliability Level: SOVEREIGN TIER (Mission-Critical)
Input Constraints: Scenario bodies receive a SecurityHarness
Side Effects: Scenario bodies may submit transactions (LIVE mode only)

State Machine (per scenario):
    PENDING -> EXECUTING (body started)
    PENDING -> CLASSIFIED (precondition missing: SKIPPED)
    EXECUTING -> BLOCKED | SUCCEEDED (ledger outcome observed)
    EXECUTING -> CLASSIFIED (ERRORED, SKIPPED or INFORMATIONAL)
    BLOCKED | SUCCEEDED -> CLASSIFIED
    CLASSIFIED -> RECORDED (terminal)

Classification Rules:
    - actual == expected            -> PASSED
    - actual SUCCEED, expected FAIL -> VULNERABILITY (forces overall failure)
    - actual FAIL, expected SUCCEED -> FAILED
    - precondition missing          -> SKIPPED (outside the denominator)
    - transport / runtime failure   -> ERRORED (forces overall failure)
    - reentrancy marker absent      -> INFORMATIONAL

ERROR CODES:
    - SEC-HRN-001: Invalid scenario state transition

============================================================================
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Tuple

from capledger.errors import InvalidScenarioTransitionError
from capledger.ledger.amount_converter import U64_MAX
from capledger.ledger.executor import ErrorKind, OperationResult
from capledger.ledger.objects import CapabilityKind

if TYPE_CHECKING:
    from capledger.security.harness import SecurityHarness

logger = logging.getLogger(__name__)


# ============================================================================
# ENUMS
# ============================================================================

class Outcome(Enum):
    """Expected or observed outcome of an adversarial attempt."""
    SUCCEED = "SUCCEED"
    FAIL = "FAIL"


class Classification(Enum):
    PASSED = "PASSED"
    FAILED = "FAILED"
    VULNERABILITY = "VULNERABILITY"
    SKIPPED = "SKIPPED"
    INFORMATIONAL = "INFORMATIONAL"
    ERRORED = "ERRORED"


class ScenarioState(Enum):
    PENDING = "PENDING"
    EXECUTING = "EXECUTING"
    BLOCKED = "BLOCKED"
    SUCCEEDED = "SUCCEEDED"
    CLASSIFIED = "CLASSIFIED"
    RECORDED = "RECORDED"


VALID_TRANSITIONS: Dict[str, List[str]] = {
    "PENDING": ["EXECUTING", "CLASSIFIED"],
    "EXECUTING": ["BLOCKED", "SUCCEEDED", "CLASSIFIED"],
    "BLOCKED": ["CLASSIFIED"],
    "SUCCEEDED": ["CLASSIFIED"],
    "CLASSIFIED": ["RECORDED"],
    "RECORDED": [],  # Terminal state
}

# Guard fields that mark an explicit "operation in progress" lock
REENTRANCY_MARKERS: Tuple[str, ...] = (
    "in_execution", "operation_in_progress", "locked", "reentrancy_guard",
)


def classify(expected: Outcome, actual: Optional[Outcome]) -> Classification:
    """
    Classify one scenario from its expected and observed outcomes.

    A missing observation means the scenario never reached the ledger.
    """
    if actual is None:
        return Classification.SKIPPED
    if actual == expected:
        return Classification.PASSED
    if actual == Outcome.SUCCEED:
        return Classification.VULNERABILITY
    return Classification.FAILED


class ScenarioTracker:
    """Holds the state of one scenario run and enforces VALID_TRANSITIONS."""

    def __init__(self, name: str, correlation_id: Optional[str] = None):
        self.name = name
        self.correlation_id = correlation_id
        self.state = ScenarioState.PENDING
        self.history: List[ScenarioState] = [ScenarioState.PENDING]

    def transition(self, target: ScenarioState) -> None:
        """
        Raises:
            InvalidScenarioTransitionError: target not reachable from the current state
        """
        allowed = VALID_TRANSITIONS[self.state.value]
        if target.value not in allowed:
            logger.error(
                f"[SEC-HRN-001] Invalid scenario transition | scenario={self.name} | "
                f"{self.state.value} -> {target.value} | allowed={allowed} | "
                f"correlation_id={self.correlation_id}"
            )
            raise InvalidScenarioTransitionError(
                f"{self.name}: {self.state.value} -> {target.value} is not allowed",
                context={"scenario": self.name, "from": self.state.value, "to": target.value}
            )
        self.state = target
        self.history.append(target)


# ============================================================================
# DATA CLASSES
# ============================================================================

@dataclass(frozen=True)
class Attempt:
    """
    What a scenario body observed.

    `outcome` is None when the body never reached the ledger (skipped) or
    made a purely structural observation (informational).
    """
    outcome: Optional[Outcome] = None
    result: Optional[OperationResult] = None
    detail: str = ""
    skipped: bool = False
    informational: bool = False
    error_kind: Optional[ErrorKind] = None

    @classmethod
    def from_result(cls, result: OperationResult, detail: str = "") -> "Attempt":
        outcome = Outcome.SUCCEED if result.succeeded else Outcome.FAIL
        return cls(outcome=outcome, result=result, detail=detail, error_kind=result.error_kind)

    @classmethod
    def observed(cls, outcome: Outcome, detail: str, error_kind: Optional[ErrorKind] = None) -> "Attempt":
        return cls(outcome=outcome, detail=detail, error_kind=error_kind)

    @classmethod
    def skip(cls, detail: str) -> "Attempt":
        return cls(detail=detail, skipped=True)

    @classmethod
    def info(cls, detail: str) -> "Attempt":
        return cls(detail=detail, informational=True)


@dataclass(frozen=True)
class ScenarioResult:
    """
    Recorded result of one scenario.

    Reliability Level: SOVEREIGN TIER
    Input Constraints: classification derived by classify() or a
        skip / error / informational path
    Side Effects: None
    """
    name: str
    description: str
    expected_outcome: Outcome
    actual_outcome: Optional[Outcome]
    classification: Classification
    detail: str = ""
    error_kind: Optional[ErrorKind] = None
    raw_error: Optional[str] = None
    digest: Optional[str] = None
    duration_ms: int = 0
    states: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "expected_outcome": self.expected_outcome.value,
            "actual_outcome": self.actual_outcome.value if self.actual_outcome else None,
            "classification": self.classification.value,
            "detail": self.detail,
            "error_kind": self.error_kind.value if self.error_kind else None,
            "raw_error": self.raw_error,
            "digest": self.digest,
            "duration_ms": self.duration_ms,
            "states": list(self.states),
        }


@dataclass
class SecurityReport:
    """
    Aggregate of one harness run.

    Any VULNERABILITY, FAILED or ERRORED result fails the run. SKIPPED and
    INFORMATIONAL results are reported but excluded from the pass rate.
    """
    mode: str
    correlation_id: Optional[str] = None
    results: List[ScenarioResult] = field(default_factory=list)
    started_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    finished_at: Optional[str] = None

    def count(self, classification: Classification) -> int:
        return sum(1 for r in self.results if r.classification == classification)

    @property
    def vulnerabilities(self) -> List[ScenarioResult]:
        return [r for r in self.results if r.classification == Classification.VULNERABILITY]

    @property
    def overall_passed(self) -> bool:
        blocking = (Classification.VULNERABILITY, Classification.FAILED, Classification.ERRORED)
        return not any(r.classification in blocking for r in self.results)

    @property
    def pass_rate(self) -> Optional[float]:
        counted = [
            r for r in self.results
            if r.classification not in (Classification.SKIPPED, Classification.INFORMATIONAL)
        ]
        if not counted:
            return None
        return self.count(Classification.PASSED) / len(counted)

    def summary(self) -> Dict[str, Any]:
        return {
            "mode": self.mode,
            "total": len(self.results),
            **{c.value.lower(): self.count(c) for c in Classification},
            "pass_rate": self.pass_rate,
            "overall_passed": self.overall_passed,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "correlation_id": self.correlation_id,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "summary": self.summary(),
            "results": [r.to_dict() for r in self.results],
        }


@dataclass(frozen=True)
class Scenario:
    """One adversarial scenario in the catalog."""
    name: str
    description: str
    expected: Outcome
    body: Callable[["SecurityHarness"], Attempt]
    # error kinds that count as the intended defense when the attempt is blocked
    intended_blocks: Tuple[ErrorKind, ...] = ()


# ============================================================================
# SCENARIO BODIES
# ============================================================================

def _unauthorized_mint(harness: "SecurityHarness") -> Attempt:
    treasury = harness.admin.locator.resolve_owned(harness.admin.address, CapabilityKind.TREASURY)
    registry = harness.attacker.locator.resolve_shared(CapabilityKind.ADMIN_REGISTRY)
    pause_state = harness.attacker.locator.resolve_shared(CapabilityKind.PAUSE_STATE)
    request = harness.attacker.builder.build_mint(
        treasury, registry, pause_state, 10 ** harness.attacker.converter.decimals, harness.attacker.address
    )
    return harness.attempt(harness.attacker, request, "attacker mints with the administrator's TreasuryCap")


def _unauthorized_capability_transfer(harness: "SecurityHarness") -> Attempt:
    admin_cap = harness.admin.locator.resolve_owned(harness.admin.address, CapabilityKind.ADMIN)
    if not harness.live:
        # dev-inspect does not check input ownership; the signing rule is checked directly
        owner = harness.attacker.reader.owner_of(admin_cap.object_id)
        if owner.is_owned_by(harness.attacker.address):
            return Attempt.observed(
                Outcome.SUCCEED, f"attacker already owns AdminCap {admin_cap.object_id}"
            )
        return Attempt.observed(
            Outcome.FAIL,
            f"AdminCap is {owner.describe()}; the ledger only accepts owned inputs signed by their owner",
            ErrorKind.AUTHORIZATION_DENIED,
        )
    request = harness.attacker.builder.build_transfer_capability(admin_cap, harness.attacker.address)
    return harness.attempt(harness.attacker, request, "attacker transfers the administrator's AdminCap")


def _zero_amount_transfer(harness: "SecurityHarness") -> Attempt:
    coins = harness.admin.reader.token_coins(harness.admin.address)
    if not coins and harness.live:
        harness.admin.operations.mint(1, harness.admin.address, base_units=True).raise_for_status()
        coins = harness.admin.reader.token_coins(harness.admin.address)
    if not coins:
        return Attempt.skip("administrator holds no token coin to transfer")
    pause_state = harness.admin.locator.resolve_shared(CapabilityKind.PAUSE_STATE)
    request = harness.admin.builder.build_transfer(
        coins[0], harness.attacker.address, 0, pause_state, allow_zero=True
    )
    return harness.attempt(harness.admin, request, "secure_transfer of zero base units")


def _overflow_amount_mint(harness: "SecurityHarness") -> Attempt:
    treasury = harness.admin.locator.resolve_owned(harness.admin.address, CapabilityKind.TREASURY)
    registry = harness.admin.locator.resolve_shared(CapabilityKind.ADMIN_REGISTRY)
    pause_state = harness.admin.locator.resolve_shared(CapabilityKind.PAUSE_STATE)
    # no current_supply: the local supply cap is bypassed so the contract sees the amount
    request = harness.admin.builder.build_mint(treasury, registry, pause_state, U64_MAX, harness.admin.address)
    return harness.attempt(harness.admin, request, f"authorized mint of {U64_MAX} base units")


def _unauthorized_pause(harness: "SecurityHarness") -> Attempt:
    registry = harness.attacker.locator.resolve_shared(CapabilityKind.ADMIN_REGISTRY)
    pause_state = harness.attacker.locator.resolve_shared(CapabilityKind.PAUSE_STATE)
    request = harness.attacker.builder.build_pause(registry, pause_state, "security audit: unauthorized pause")
    return harness.attempt(harness.attacker, request, "attacker pauses token operations")


def _unauthorized_unpause(harness: "SecurityHarness") -> Attempt:
    registry = harness.attacker.locator.resolve_shared(CapabilityKind.ADMIN_REGISTRY)
    pause_state = harness.attacker.locator.resolve_shared(CapabilityKind.PAUSE_STATE)
    request = harness.attacker.builder.build_unpause(registry, pause_state)
    return harness.attempt(harness.attacker, request, "attacker unpauses token operations")


def _reentrancy_marker(harness: "SecurityHarness") -> Attempt:
    found = []
    for kind in (CapabilityKind.PAUSE_STATE, CapabilityKind.ADMIN_REGISTRY):
        ref = harness.admin.locator.resolve_shared(kind)
        obj = harness.admin.gateway.get_object(ref.object_id) or {}
        fields = (obj.get("content") or {}).get("fields") or {}
        found.extend(f"{kind.value}.{name}" for name in REENTRANCY_MARKERS if name in fields)
    if found:
        return Attempt.observed(Outcome.SUCCEED, f"guard fields present: {', '.join(found)}")
    return Attempt.info(
        "no explicit operation-in-progress guard on shared state; presence check only, "
        "reentrancy was not exercised"
    )


def _authorized_mint_dry_run(harness: "SecurityHarness") -> Attempt:
    treasury = harness.admin.locator.resolve_owned(harness.admin.address, CapabilityKind.TREASURY)
    registry = harness.admin.locator.resolve_shared(CapabilityKind.ADMIN_REGISTRY)
    pause_state = harness.admin.locator.resolve_shared(CapabilityKind.PAUSE_STATE)
    request = harness.admin.builder.build_mint(
        treasury, registry, pause_state, 10 ** harness.admin.converter.decimals, harness.admin.address
    )
    result = harness.admin.executor.verify_call_contract(request)
    return Attempt.from_result(result, f"dry-run mint with {request.contract_version}")


DEFAULT_CATALOG: Tuple[Scenario, ...] = (
    Scenario(
        "unauthorized_mint",
        "A non-administrator must not mint tokens",
        Outcome.FAIL, _unauthorized_mint,
        (ErrorKind.AUTHORIZATION_DENIED,),
    ),
    Scenario(
        "unauthorized_capability_transfer",
        "A non-owner must not move the AdminCap",
        Outcome.FAIL, _unauthorized_capability_transfer,
        (ErrorKind.AUTHORIZATION_DENIED,),
    ),
    Scenario(
        "zero_amount_transfer",
        "secure_transfer must reject zero amounts",
        Outcome.FAIL, _zero_amount_transfer,
        (ErrorKind.ZERO_AMOUNT_REJECTED,),
    ),
    Scenario(
        "overflow_amount_mint",
        "Minting u64::MAX must not overflow supply",
        Outcome.FAIL, _overflow_amount_mint,
        (ErrorKind.ARITHMETIC_OVERFLOW, ErrorKind.SUPPLY_EXCEEDED),
    ),
    Scenario(
        "unauthorized_pause",
        "A non-administrator must not pause operations",
        Outcome.FAIL, _unauthorized_pause,
        (ErrorKind.AUTHORIZATION_DENIED,),
    ),
    Scenario(
        "unauthorized_unpause",
        "A non-administrator must not unpause operations",
        Outcome.FAIL, _unauthorized_unpause,
        (ErrorKind.AUTHORIZATION_DENIED,),
    ),
    Scenario(
        "reentrancy_marker",
        "Shared mutable state carries an operation-in-progress guard",
        Outcome.SUCCEED, _reentrancy_marker,
    ),
    Scenario(
        "authorized_mint_dry_run",
        "The administrator's mint is accepted (positive control, always dry-run)",
        Outcome.SUCCEED, _authorized_mint_dry_run,
    ),
)
