# ============================================================================
# Capledger v1.0.0
# Security Harness - Adversarial Scenario Runner
# ============================================================================
#
# Reliability Level: SOVEREIGN TIER (Mission-Critical)
# Purpose: Run the adversarial catalog against a deployment and report
#          which defenses held
#
# SOVEREIGN MANDATE:
#   - DRY_RUN by default; LIVE requires SECURITY_LIVE_CONFIRMED=TRUE
#   - Scenarios run sequentially, one outcome per scenario
#   - Every result is written to the security audit log
#   - A succeeded attack is a VULNERABILITY and fails the run
#
# Error Codes:
#   - SEC-HRN-001: Invalid scenario state transition
#   - SEC-HRN-002: LIVE mode requested without confirmation
#   - SEC-HRN-003: Scenario errored before an outcome was observed
#
# ============================================================================

import logging
import time
from datetime import datetime, timezone
from typing import Callable, Iterable, Optional, Sequence

from capledger.config import SECURITY_MODES
from capledger.context import LedgerContext
from capledger.errors import (
    AmbiguousSubmissionError,
    CapabilityNotFoundError,
    ConfigurationError,
    LedgerError,
    LiveModeNotConfirmedError,
)
from capledger.ledger.executor import ErrorKind
from capledger.ledger.signer import Ed25519Signer
from capledger.ledger.transaction import OperationRequest
from capledger.observability.metrics import record_scenario
from capledger.security.scenarios import (
    DEFAULT_CATALOG,
    Attempt,
    Classification,
    Outcome,
    Scenario,
    ScenarioResult,
    ScenarioState,
    ScenarioTracker,
    SecurityReport,
    classify,
)

logger = logging.getLogger(__name__)
audit_logger = logging.getLogger("capledger.security.audit")

LIVE = "LIVE"
DRY_RUN = "DRY_RUN"


class SecurityHarness:
    """
    Runs adversarial scenarios with an administrator and an attacker identity.

    Reliability Level: SOVEREIGN TIER
    Input Constraints: Both contexts share one gateway; the administrator
        holds the owned capabilities
    Side Effects: DRY_RUN performs dev-inspect calls only. LIVE submits
        real transactions and waits between scenarios.

    Example Usage:
        harness = SecurityHarness.from_context(ctx)
        report = harness.run()
        sys.exit(0 if report.overall_passed else 1)
    """

    def __init__(
        self,
        admin: LedgerContext,
        attacker: LedgerContext,
        mode: str = DRY_RUN,
        delay: float = 0.0,
        catalog: Sequence[Scenario] = DEFAULT_CATALOG,
        sleep: Callable[[float], None] = time.sleep,
        correlation_id: Optional[str] = None
    ):
        self.admin = admin
        self.attacker = attacker
        self.mode = mode
        self.delay = delay
        self.catalog = tuple(catalog)
        self.correlation_id = correlation_id or admin.correlation_id
        self._sleep = sleep
        self._halted: Optional[str] = None

    @property
    def live(self) -> bool:
        return self.mode == LIVE

    @classmethod
    def from_context(
        cls,
        ctx: LedgerContext,
        mode: Optional[str] = None,
        attacker: Optional[Ed25519Signer] = None,
        catalog: Sequence[Scenario] = DEFAULT_CATALOG,
        sleep: Callable[[float], None] = time.sleep
    ) -> "SecurityHarness":
        """
        Build a harness from the administrator's context.

        The attacker key comes from SECURITY_ATTACKER_PRIVATE_KEY when set,
        otherwise a fresh identity is generated. On a simulated ledger the
        attacker is funded with gas.

        Raises:
            ConfigurationError: Unknown mode
            LiveModeNotConfirmedError: LIVE without SECURITY_LIVE_CONFIRMED=TRUE (SEC-HRN-002)
        """
        mode = (mode or ctx.config.security_mode).upper()
        if mode not in SECURITY_MODES:
            raise ConfigurationError(
                f"Security mode must be DRY_RUN or LIVE, got: {mode}",
                context={"mode": mode}
            )

        if mode == LIVE:
            if not ctx.config.security_live_confirmed:
                logger.error(
                    f"[SEC-HRN-002] LIVE security run refused | "
                    f"SECURITY_LIVE_CONFIRMED is not TRUE | correlation_id={ctx.correlation_id}"
                )
                raise LiveModeNotConfirmedError(
                    "LIVE security runs submit real transactions; set SECURITY_LIVE_CONFIRMED=TRUE",
                    context={"network": ctx.config.network}
                )
            logger.warning(
                f"[SEC-HRN] LIVE MODE ENABLED | Scenarios will submit real transactions | "
                f"network={ctx.config.network} | correlation_id={ctx.correlation_id}"
            )

        if attacker is None:
            if ctx.config.attacker_private_key:
                attacker = Ed25519Signer.from_base64(ctx.config.attacker_private_key, ctx.correlation_id)
            else:
                attacker = Ed25519Signer.generate()
        attacker_ctx = ctx.for_signer(attacker)
        if ctx.simulated:
            ctx.gateway.fund_gas(attacker.address)

        delay = ctx.config.settlement_delay if mode == LIVE else 0.0
        logger.info(
            f"[SEC-HRN] Harness ready | mode={mode} | admin={ctx.address} | "
            f"attacker={attacker.address} | scenarios={len(catalog)} | correlation_id={ctx.correlation_id}"
        )
        return cls(ctx, attacker_ctx, mode=mode, delay=delay, catalog=catalog, sleep=sleep)

    # ========================================================================
    # Running
    # ========================================================================

    def run(self, names: Optional[Iterable[str]] = None) -> SecurityReport:
        """
        Run the catalog (or the named subset) in order.

        Raises:
            ConfigurationError: A requested name is not in the catalog
        """
        scenarios = self._select(names)
        report = SecurityReport(mode=self.mode, correlation_id=self.correlation_id)
        self._halted = None

        for index, scenario in enumerate(scenarios):
            if self._halted is not None:
                # gas coin state unknown; later scenarios never start
                report.results.append(self._record(
                    scenario, ScenarioTracker(scenario.name, self.correlation_id),
                    Attempt.skip(self._halted), time.monotonic()
                ))
                continue
            if index > 0 and self.live and self.delay > 0:
                self._sleep(self.delay)

            report.results.append(self.run_scenario(scenario))

        report.finished_at = datetime.now(timezone.utc).isoformat()
        summary = report.summary()
        log = logger.info if report.overall_passed else logger.error
        log(
            f"[SEC-HRN] Security run complete | mode={self.mode} | passed={summary['passed']} | "
            f"failed={summary['failed']} | vulnerabilities={summary['vulnerability']} | "
            f"skipped={summary['skipped']} | errored={summary['errored']} | "
            f"overall_passed={report.overall_passed} | correlation_id={self.correlation_id}"
        )
        return report

    def run_scenario(self, scenario: Scenario) -> ScenarioResult:
        """
        Run one scenario and record its result.

        Raises:
            Any non-LedgerError raised by the scenario body (programming error)
        """
        tracker = ScenarioTracker(scenario.name, self.correlation_id)
        started = time.monotonic()
        tracker.transition(ScenarioState.EXECUTING)
        logger.info(
            f"[SEC-HRN] Scenario started | scenario={scenario.name} | mode={self.mode} | "
            f"correlation_id={self.correlation_id}"
        )

        try:
            attempt = scenario.body(self)
        except CapabilityNotFoundError as e:
            attempt = Attempt.skip(f"precondition missing: {e.message}")
        except AmbiguousSubmissionError as e:
            self._halted = f"run halted after {scenario.name}: submission outcome unknown"
            return self._errored(scenario, tracker, started, f"submission outcome unknown: {e.message}")
        except LedgerError as e:
            return self._errored(scenario, tracker, started, f"{e.error_code}: {e.message}")

        return self._record(scenario, tracker, attempt, started)

    def attempt(self, ctx: LedgerContext, request: OperationRequest, detail: str = "") -> Attempt:
        """
        Submit (LIVE) or dev-inspect (DRY_RUN) one request as `ctx`'s signer.

        An attempt that cannot pay for gas is a skipped attempt, never a
        blocked one.
        """
        result = ctx.executor.submit(request) if self.live else ctx.executor.dry_run(request)
        if result.error_kind == ErrorKind.INSUFFICIENT_GAS:
            return Attempt.skip(f"{ctx.address} cannot pay for gas: {result.raw_error}")
        return Attempt.from_result(result, detail)

    # ========================================================================
    # Internal Methods
    # ========================================================================

    def _select(self, names: Optional[Iterable[str]]) -> Sequence[Scenario]:
        if names is None:
            return self.catalog
        wanted = list(names)
        known = {s.name for s in self.catalog}
        unknown = [n for n in wanted if n not in known]
        if unknown:
            raise ConfigurationError(
                f"Unknown scenario(s): {', '.join(unknown)}",
                context={"known": sorted(known)}
            )
        return [s for s in self.catalog if s.name in wanted]

    def _record(
        self,
        scenario: Scenario,
        tracker: ScenarioTracker,
        attempt: Attempt,
        started: float
    ) -> ScenarioResult:
        detail = attempt.detail
        actual: Optional[Outcome] = None

        if attempt.skipped:
            classification = Classification.SKIPPED
        elif attempt.informational:
            classification = Classification.INFORMATIONAL
        else:
            actual = attempt.outcome
            tracker.transition(
                ScenarioState.SUCCEEDED if actual == Outcome.SUCCEED else ScenarioState.BLOCKED
            )
            classification = classify(scenario.expected, actual)
            if (
                actual == Outcome.FAIL
                and classification == Classification.PASSED
                and scenario.intended_blocks
                and attempt.error_kind not in scenario.intended_blocks
            ):
                kind = attempt.error_kind.value if attempt.error_kind else "UNKNOWN"
                detail = f"{detail}; blocked by {kind}, not by the intended defense"
                logger.warning(
                    f"[SEC-HRN] Blocked for an unexpected reason | scenario={scenario.name} | "
                    f"error_kind={kind} | intended={[k.value for k in scenario.intended_blocks]} | "
                    f"correlation_id={self.correlation_id}"
                )

        tracker.transition(ScenarioState.CLASSIFIED)
        result = ScenarioResult(
            name=scenario.name,
            description=scenario.description,
            expected_outcome=scenario.expected,
            actual_outcome=actual,
            classification=classification,
            detail=detail,
            error_kind=attempt.error_kind,
            raw_error=attempt.result.raw_error if attempt.result else None,
            digest=attempt.result.digest if attempt.result else None,
            duration_ms=int((time.monotonic() - started) * 1000),
            states=tuple(s.value for s in tracker.history) + (ScenarioState.RECORDED.value,),
        )
        self._audit(result)
        tracker.transition(ScenarioState.RECORDED)
        return result

    def _errored(
        self,
        scenario: Scenario,
        tracker: ScenarioTracker,
        started: float,
        detail: str
    ) -> ScenarioResult:
        logger.error(
            f"[SEC-HRN-003] Scenario errored | scenario={scenario.name} | detail={detail} | "
            f"correlation_id={self.correlation_id}"
        )
        tracker.transition(ScenarioState.CLASSIFIED)
        result = ScenarioResult(
            name=scenario.name,
            description=scenario.description,
            expected_outcome=scenario.expected,
            actual_outcome=None,
            classification=Classification.ERRORED,
            detail=detail,
            duration_ms=int((time.monotonic() - started) * 1000),
            states=tuple(s.value for s in tracker.history) + (ScenarioState.RECORDED.value,),
        )
        self._audit(result)
        tracker.transition(ScenarioState.RECORDED)
        return result

    def _audit(self, result: ScenarioResult) -> None:
        record_scenario(result.name, result.classification.value)
        extra = {
            "scenario": result.name,
            "classification": result.classification.value,
            "expected_outcome": result.expected_outcome.value,
            "actual_outcome": result.actual_outcome.value if result.actual_outcome else None,
            "error_kind": result.error_kind.value if result.error_kind else None,
            "digest": result.digest,
            "mode": self.mode,
            "correlation_id": self.correlation_id,
        }
        message = (
            f"SCENARIO_RESULT: scenario={result.name} classification={result.classification.value} "
            f"expected={result.expected_outcome.value} "
            f"actual={result.actual_outcome.value if result.actual_outcome else None} "
            f"duration_ms={result.duration_ms}"
        )
        if result.classification == Classification.VULNERABILITY:
            audit_logger.critical(f"VULNERABILITY DETECTED | {message} | detail={result.detail}", extra=extra)
        else:
            audit_logger.info(message, extra=extra)
