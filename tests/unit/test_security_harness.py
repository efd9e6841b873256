"""
Unit Tests for the Security Harness

Reliability Level: SOVEREIGN TIER
Python 3.8 Compatible

Tests:
- Scenario state machine (valid and invalid transitions, SEC-HRN-001)
- Classification rules and report aggregation
- Full catalog against a SimulatedLedger in DRY_RUN and LIVE
- A ledger without admin checks is reported as VULNERABILITY
- LIVE refused without confirmation (SEC-HRN-002)
- Skips, errors and halts after an ambiguous submission
- Malformed ledger data errors one scenario without aborting the run
"""

import logging
import os
import sys
from unittest.mock import MagicMock

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from capledger.config import NetworkConfig
from capledger.context import LedgerContext
from capledger.errors import (
    AmbiguousSubmissionError,
    CapabilityNotFoundError,
    ConfigurationError,
    InvalidScenarioTransitionError,
    LedgerTransportError,
    LiveModeNotConfirmedError,
)
from capledger.ledger.executor import ErrorKind, OperationResult, OperationStatus
from capledger.ledger.signer import Ed25519Signer
from capledger.ledger.simulated_ledger import SimulatedLedger
from capledger.ledger.transaction import OperationKind
from capledger.security.harness import SecurityHarness
from capledger.security.scenarios import (
    Classification,
    Outcome,
    ScenarioResult,
    ScenarioState,
    ScenarioTracker,
    SecurityReport,
    classify,
)


class PermissiveLedger(SimulatedLedger):
    """Token contract with the administrator check removed."""

    def _require_admin(self, registry, sender, function, index):
        return None


class UnknownOwnerLedger(SimulatedLedger):
    """Node that reports the AdminCap under an owner shape the client does not parse."""

    def _render(self, obj):
        rendered = super()._render(obj)
        if obj.type.endswith("::AdminCap"):
            rendered["owner"] = {"ConsensusAddressOwner": {}}
        return rendered


def seeded_context(config=None) -> LedgerContext:
    ctx = LedgerContext.simulated_context(config=config, correlation_id="test-sec")
    ctx.operations.mint("10", ctx.address).raise_for_status()
    return ctx


def mock_harness(mode="DRY_RUN", **kwargs) -> SecurityHarness:
    admin = MagicMock()
    attacker = MagicMock()
    attacker.converter.decimals = 9
    return SecurityHarness(admin, attacker, mode=mode, correlation_id="test-mock", **kwargs)


def result_of(status, error_kind=None) -> OperationResult:
    return OperationResult(
        status=status,
        operation_kind=OperationKind.MINT,
        digest="DIGEST",
        error_kind=error_kind,
        raw_error=None if error_kind is None else f"rejected with {error_kind.value}",
    )


def by_name(report: SecurityReport):
    return {r.name: r for r in report.results}


# =============================================================================
# State Machine
# =============================================================================

class TestScenarioTracker:

    def test_blocked_path(self):
        tracker = ScenarioTracker("s")
        for state in (ScenarioState.EXECUTING, ScenarioState.BLOCKED,
                      ScenarioState.CLASSIFIED, ScenarioState.RECORDED):
            tracker.transition(state)
        assert [s.value for s in tracker.history] == [
            "PENDING", "EXECUTING", "BLOCKED", "CLASSIFIED", "RECORDED",
        ]

    def test_skip_straight_from_pending(self):
        tracker = ScenarioTracker("s")
        tracker.transition(ScenarioState.CLASSIFIED)
        assert tracker.state == ScenarioState.CLASSIFIED

    @pytest.mark.parametrize("path", [
        [ScenarioState.BLOCKED],
        [ScenarioState.EXECUTING, ScenarioState.RECORDED],
        [ScenarioState.CLASSIFIED, ScenarioState.RECORDED, ScenarioState.EXECUTING],
    ])
    def test_invalid_transition(self, path):
        tracker = ScenarioTracker("s")
        with pytest.raises(InvalidScenarioTransitionError) as exc_info:
            for state in path:
                tracker.transition(state)
        assert exc_info.value.error_code == "SEC-HRN-001"


class TestClassify:

    @pytest.mark.parametrize("expected,actual,classification", [
        (Outcome.FAIL, Outcome.FAIL, Classification.PASSED),
        (Outcome.SUCCEED, Outcome.SUCCEED, Classification.PASSED),
        (Outcome.FAIL, Outcome.SUCCEED, Classification.VULNERABILITY),
        (Outcome.SUCCEED, Outcome.FAIL, Classification.FAILED),
        (Outcome.FAIL, None, Classification.SKIPPED),
    ])
    def test_rules(self, expected, actual, classification):
        assert classify(expected, actual) == classification


class TestSecurityReport:

    def result(self, classification):
        return ScenarioResult("s", "d", Outcome.FAIL, None, classification)

    def test_skipped_and_informational_outside_pass_rate(self):
        report = SecurityReport(mode="DRY_RUN", results=[
            self.result(Classification.PASSED),
            self.result(Classification.SKIPPED),
            self.result(Classification.INFORMATIONAL),
        ])
        assert report.pass_rate == 1.0
        assert report.overall_passed is True
        summary = report.summary()
        assert summary["total"] == 3
        assert summary["skipped"] == 1
        assert summary["informational"] == 1

    @pytest.mark.parametrize("blocking", [
        Classification.VULNERABILITY, Classification.FAILED, Classification.ERRORED,
    ])
    def test_blocking_classifications_fail_run(self, blocking):
        report = SecurityReport(mode="DRY_RUN", results=[
            self.result(Classification.PASSED), self.result(blocking),
        ])
        assert report.overall_passed is False
        assert report.pass_rate == 0.5

    def test_empty_report(self):
        report = SecurityReport(mode="DRY_RUN")
        assert report.pass_rate is None
        assert report.overall_passed is True


# =============================================================================
# Simulated Ledger Runs
# =============================================================================

class TestSimulatedRuns:

    def test_dry_run_catalog(self):
        report = SecurityHarness.from_context(seeded_context(), mode="DRY_RUN").run()
        results = by_name(report)

        assert len(results) == 8
        assert results["reentrancy_marker"].classification == Classification.INFORMATIONAL
        for name, result in results.items():
            if name != "reentrancy_marker":
                assert result.classification == Classification.PASSED, name
        assert results["unauthorized_mint"].error_kind == ErrorKind.AUTHORIZATION_DENIED
        assert results["unauthorized_capability_transfer"].error_kind == ErrorKind.AUTHORIZATION_DENIED
        assert results["zero_amount_transfer"].error_kind == ErrorKind.ZERO_AMOUNT_REJECTED
        assert results["overflow_amount_mint"].error_kind == ErrorKind.ARITHMETIC_OVERFLOW
        assert results["unauthorized_pause"].error_kind == ErrorKind.AUTHORIZATION_DENIED
        assert results["unauthorized_unpause"].error_kind == ErrorKind.AUTHORIZATION_DENIED
        assert results["authorized_mint_dry_run"].actual_outcome == Outcome.SUCCEED
        assert report.overall_passed is True
        assert report.pass_rate == 1.0

    def test_dry_run_leaves_state_untouched(self):
        ctx = seeded_context()
        SecurityHarness.from_context(ctx, mode="DRY_RUN").run()

        assert ctx.reader.pause_status().paused is False
        assert ctx.reader.token_balance(ctx.address) == 10_000_000_000

    def test_live_catalog_with_confirmation(self):
        ctx = seeded_context(NetworkConfig(security_live_confirmed=True))
        report = SecurityHarness.from_context(ctx, mode="LIVE").run()
        results = by_name(report)

        assert report.mode == "LIVE"
        assert report.overall_passed is True
        assert results["unauthorized_mint"].error_kind == ErrorKind.AUTHORIZATION_DENIED
        assert results["unauthorized_mint"].digest is not None
        assert results["unauthorized_capability_transfer"].error_kind == ErrorKind.AUTHORIZATION_DENIED
        assert results["zero_amount_transfer"].classification == Classification.PASSED
        # the ledger still belongs to the administrator
        assert ctx.reader.admin_of() == ctx.address
        assert ctx.reader.pause_status().paused is False

    def test_live_refused_without_confirmation(self):
        with pytest.raises(LiveModeNotConfirmedError) as exc_info:
            SecurityHarness.from_context(seeded_context(), mode="LIVE")
        assert exc_info.value.error_code == "SEC-HRN-002"

    def test_unknown_mode_refused(self):
        with pytest.raises(ConfigurationError):
            SecurityHarness.from_context(seeded_context(), mode="CHAOS")

    def test_missing_coin_is_skipped(self):
        ctx = LedgerContext.simulated_context()
        report = SecurityHarness.from_context(ctx).run(["zero_amount_transfer"])

        result = report.results[0]
        assert result.classification == Classification.SKIPPED
        assert result.states == ("PENDING", "EXECUTING", "CLASSIFIED", "RECORDED")
        assert report.pass_rate is None
        assert report.overall_passed is True

    def test_vulnerable_contract_reported(self, caplog):
        admin = Ed25519Signer.generate()
        ledger = PermissiveLedger()
        digest = ledger.deploy(admin.address)
        ledger.fund_gas(admin.address)
        ctx = LedgerContext.simulated_context(NetworkConfig(deployment_digest=digest), admin, ledger)

        with caplog.at_level(logging.INFO, logger="capledger.security.audit"):
            report = SecurityHarness.from_context(ctx).run(["unauthorized_mint", "unauthorized_pause"])

        assert [r.classification for r in report.results] == [Classification.VULNERABILITY] * 2
        assert len(report.vulnerabilities) == 2
        assert report.overall_passed is False
        assert "VULNERABILITY DETECTED" in caplog.text

    def test_malformed_owner_errors_one_scenario(self):
        admin = Ed25519Signer.generate()
        ledger = UnknownOwnerLedger()
        digest = ledger.deploy(admin.address)
        ledger.fund_gas(admin.address)
        ctx = LedgerContext.simulated_context(NetworkConfig(deployment_digest=digest), admin, ledger)

        report = SecurityHarness.from_context(ctx).run(
            ["unauthorized_capability_transfer", "unauthorized_pause"]
        )
        results = by_name(report)

        assert results["unauthorized_capability_transfer"].classification == Classification.ERRORED
        assert "LGR-SCH-001" in results["unauthorized_capability_transfer"].detail
        assert results["unauthorized_pause"].classification == Classification.PASSED
        assert report.overall_passed is False

    def test_unknown_scenario_name(self):
        harness = SecurityHarness.from_context(seeded_context())
        with pytest.raises(ConfigurationError):
            harness.run(["unauthorized_mint", "steal_everything"])


# =============================================================================
# Harness Mechanics (MagicMock contexts)
# =============================================================================

class TestHarnessMechanics:

    def test_succeeded_attack_is_vulnerability(self):
        harness = mock_harness()
        harness.attacker.executor.dry_run.return_value = result_of(OperationStatus.SUCCESS)

        report = harness.run(["unauthorized_mint"])
        assert report.results[0].classification == Classification.VULNERABILITY
        assert report.overall_passed is False
        harness.attacker.executor.submit.assert_not_called()

    def test_unexpected_block_reason_noted(self):
        harness = mock_harness()
        harness.attacker.executor.dry_run.return_value = result_of(
            OperationStatus.FAILURE, ErrorKind.PAUSE_ACTIVE
        )

        result = harness.run(["unauthorized_mint"]).results[0]
        assert result.classification == Classification.PASSED
        assert "not by the intended defense" in result.detail

    def test_missing_capability_skips(self):
        harness = mock_harness()
        harness.admin.locator.resolve_owned.side_effect = CapabilityNotFoundError("no TreasuryCap")

        result = harness.run(["unauthorized_mint"]).results[0]
        assert result.classification == Classification.SKIPPED
        assert "precondition missing" in result.detail

    def test_insufficient_gas_skips(self):
        harness = mock_harness()
        harness.attacker.executor.dry_run.return_value = result_of(
            OperationStatus.FAILURE, ErrorKind.INSUFFICIENT_GAS
        )
        assert harness.run(["unauthorized_mint"]).results[0].classification == Classification.SKIPPED

    def test_transport_failure_errors(self):
        harness = mock_harness()
        harness.attacker.executor.dry_run.side_effect = LedgerTransportError("node unreachable")

        report = harness.run(["unauthorized_mint"])
        assert report.results[0].classification == Classification.ERRORED
        assert report.overall_passed is False

    def test_ambiguous_submission_halts_run(self):
        sleep = MagicMock()
        harness = mock_harness(mode="LIVE", delay=3.0, sleep=sleep)
        harness.attacker.executor.submit.side_effect = AmbiguousSubmissionError(
            "read timeout", transaction_digest="LOCAL"
        )

        report = harness.run(["unauthorized_mint", "unauthorized_pause"])
        assert [r.classification for r in report.results] == [
            Classification.ERRORED, Classification.SKIPPED,
        ]
        assert harness.attacker.executor.submit.call_count == 1
        sleep.assert_not_called()

    def test_live_waits_between_scenarios(self):
        sleep = MagicMock()
        harness = mock_harness(mode="LIVE", delay=3.0, sleep=sleep)
        harness.attacker.executor.submit.return_value = result_of(
            OperationStatus.FAILURE, ErrorKind.AUTHORIZATION_DENIED
        )

        report = harness.run(["unauthorized_mint", "unauthorized_pause", "unauthorized_unpause"])
        assert report.overall_passed is True
        assert sleep.call_count == 2
        sleep.assert_called_with(3.0)
