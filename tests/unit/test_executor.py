"""
Unit Tests for Transaction Execution

Reliability Level: SOVEREIGN TIER
Python 3.8 Compatible

Tests the TransactionExecutor:
- Raw ledger errors mapped to ErrorKind (abort codes first, then patterns)
- Duplicate idempotency keys refused (TX-EXE-002)
- Transport failure after sending is ambiguous (TX-EXE-003), never retried
- Insufficient gas reported without submission
- Settlement delay after each mutation
"""

import os
import sys
from unittest.mock import MagicMock

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from capledger.errors import (
    AmbiguousSubmissionError,
    DuplicateSubmissionError,
    InsufficientGasError,
    LedgerRpcError,
    LedgerTransportError,
    OperationFailedError,
)
from capledger.ledger.executor import (
    ErrorKind,
    OperationStatus,
    TransactionExecutor,
    classify_error,
    parse_abort_codes,
)
from capledger.ledger.objects import CapabilityKind, CapabilityRef, Ownership
from capledger.ledger.operation_builder import OperationBuilder

PACKAGE = "0x" + "ab" * 32
ADMIN = "0x" + "11" * 32
RECIPIENT = "0x" + "22" * 32

MOVE_ABORT = (
    'MoveAbort(MoveLocation { module: ModuleId { address: ab, name: Identifier("HetraCoin") }, '
    'function: 3, instruction: 12, function_name: Some("mint") }, 1) in command 0'
)


@pytest.fixture
def request_():
    builder = OperationBuilder(PACKAGE)
    treasury = CapabilityRef(CapabilityKind.TREASURY, "0x" + "01" * 32, Ownership.owned_by(ADMIN), PACKAGE)
    registry = CapabilityRef(CapabilityKind.ADMIN_REGISTRY, "0x" + "03" * 32, Ownership.shared(2), PACKAGE)
    pause = CapabilityRef(CapabilityKind.PAUSE_STATE, "0x" + "04" * 32, Ownership.shared(2), PACKAGE)
    return builder.build_mint(treasury, registry, pause, 1_000_000_000, RECIPIENT)


@pytest.fixture
def submitter():
    submitter = MagicMock()
    submitter.prepare.return_value = MagicMock(digest="LOCALDIGEST", gas_coin_id="0xgas")
    return submitter


def success_response():
    return {
        "digest": "NODEDIGEST",
        "effects": {"status": {"status": "success"}},
        "events": [{"type": f"{PACKAGE}::HetraCoin::TokensMinted"}],
        "objectChanges": [
            {"type": "created", "objectId": "0x" + "09" * 32, "objectType": "0x2::coin::Coin<x>"},
        ],
    }


def failure_response(error: str):
    return {"digest": "NODEDIGEST", "effects": {"status": {"status": "failure", "error": error}}}


# =============================================================================
# Error Classification
# =============================================================================

class TestClassifyError:

    def test_abort_code_mapping_wins(self):
        codes = {1: ErrorKind.AUTHORIZATION_DENIED}
        assert classify_error(MOVE_ABORT, codes) == ErrorKind.AUTHORIZATION_DENIED

    def test_unmapped_abort_code_is_unknown(self):
        assert classify_error(MOVE_ABORT, {}) == ErrorKind.UNKNOWN

    @pytest.mark.parametrize("message,kind", [
        ("GasBalanceTooLow: balance 5 < budget 10", ErrorKind.INSUFFICIENT_GAS),
        ("Object 0x1 version 3 is not available for consumption, current version: 4",
         ErrorKind.STALE_OBJECT_VERSION),
        ("CommandArgumentError { arg_idx: 1, kind: TypeMismatch } in command 0",
         ErrorKind.CALL_CONTRACT_MISMATCH),
        ("ObjectNotFound: 0x1 does not exist", ErrorKind.OBJECT_NOT_FOUND),
        ("ObjectDeleted { object_id: 0x1, version: 7 }", ErrorKind.OBJECT_NOT_FOUND),
        ("cleanup failed after 3 cache entries were deleted", ErrorKind.UNKNOWN),
        ("Object 0x1 is owned by account address 0x2, but given owner/signer address is 0x3",
         ErrorKind.AUTHORIZATION_DENIED),
        ("MovePrimitiveRuntimeError(ARITHMETIC_ERROR) in command 0", ErrorKind.ARITHMETIC_OVERFLOW),
        ("something odd happened", ErrorKind.UNKNOWN),
        ("", ErrorKind.UNKNOWN),
    ])
    def test_patterns(self, message, kind):
        assert classify_error(message) == kind

    def test_parse_abort_codes(self):
        assert parse_abort_codes("1:authorization_denied, 4:ZERO_AMOUNT_REJECTED") == {
            1: ErrorKind.AUTHORIZATION_DENIED,
            4: ErrorKind.ZERO_AMOUNT_REJECTED,
        }
        assert parse_abort_codes(None) == {}

    @pytest.mark.parametrize("text", ["1", "x:PAUSE_ACTIVE"])
    def test_parse_abort_codes_malformed(self, text):
        with pytest.raises(ValueError):
            parse_abort_codes(text)

    def test_parse_abort_codes_unknown_kind(self):
        with pytest.raises(KeyError):
            parse_abort_codes("1:NOT_A_KIND")


# =============================================================================
# Submission
# =============================================================================

class TestSubmit:

    def test_success_result(self, submitter, request_):
        submitter.execute.return_value = success_response()
        result = TransactionExecutor(submitter).submit(request_)

        assert result.status == OperationStatus.SUCCESS
        assert result.digest == "NODEDIGEST"
        assert result.error_kind is None
        assert result.capability_ids == request_.capability_ids
        assert result.created_objects("Coin<x>") == ["0x" + "09" * 32]
        assert result.raise_for_status() is result

    def test_ledger_failure_becomes_failure_result(self, submitter, request_):
        submitter.execute.return_value = failure_response(MOVE_ABORT)
        executor = TransactionExecutor(submitter, abort_codes={1: ErrorKind.AUTHORIZATION_DENIED})
        result = executor.submit(request_)

        assert result.status == OperationStatus.FAILURE
        assert result.error_kind == ErrorKind.AUTHORIZATION_DENIED
        assert result.raw_error == MOVE_ABORT
        with pytest.raises(OperationFailedError):
            result.raise_for_status()

    def test_rpc_rejection_is_classified(self, submitter, request_):
        submitter.execute.side_effect = LedgerRpcError(
            "rejected", raw_message="ObjectVersionUnavailableForConsumption: stale"
        )
        result = TransactionExecutor(submitter).submit(request_)

        assert result.error_kind == ErrorKind.STALE_OBJECT_VERSION
        assert result.digest == "LOCALDIGEST"

    def test_duplicate_idempotency_key_refused(self, submitter, request_):
        submitter.execute.return_value = success_response()
        executor = TransactionExecutor(submitter)
        executor.submit(request_)

        with pytest.raises(DuplicateSubmissionError):
            executor.submit(request_)
        assert submitter.execute.call_count == 1

    def test_transport_failure_after_send_is_ambiguous(self, submitter, request_):
        submitter.execute.side_effect = LedgerTransportError("read timeout")
        executor = TransactionExecutor(submitter)

        with pytest.raises(AmbiguousSubmissionError) as exc_info:
            executor.submit(request_)
        assert exc_info.value.transaction_digest == "LOCALDIGEST"
        assert submitter.execute.call_count == 1
        # the key is spent: a blind re-submit is refused
        with pytest.raises(DuplicateSubmissionError):
            executor.submit(request_)

    def test_insufficient_gas_not_submitted(self, submitter, request_):
        submitter.prepare.side_effect = InsufficientGasError("no gas coin covers budget")
        executor = TransactionExecutor(submitter)
        result = executor.submit(request_)

        assert result.error_kind == ErrorKind.INSUFFICIENT_GAS
        submitter.execute.assert_not_called()
        # nothing was sent, so the same request may be submitted after funding
        submitter.prepare.side_effect = None
        submitter.execute.return_value = success_response()
        assert executor.submit(request_).succeeded

    def test_settlement_delay_after_mutation(self, submitter, request_):
        submitter.execute.return_value = success_response()
        sleep = MagicMock()
        TransactionExecutor(submitter, settlement_delay=3.0, sleep=sleep).submit(request_)
        sleep.assert_called_once_with(3.0)


class TestDryRun:

    def test_dry_run_does_not_spend_key(self, submitter, request_):
        submitter.dry_run.return_value = {"effects": {"status": {"status": "success"}}}
        executor = TransactionExecutor(submitter)

        assert executor.dry_run(request_).succeeded
        assert executor.dry_run(request_).succeeded
        submitter.execute.assert_not_called()

    def test_call_contract_mismatch_reported(self, submitter, request_):
        submitter.dry_run.return_value = failure_response("CommandArgumentError { kind: ArityMismatch } in command 0")
        result = TransactionExecutor(submitter).verify_call_contract(request_)
        assert result.error_kind == ErrorKind.CALL_CONTRACT_MISMATCH
