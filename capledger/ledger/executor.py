# ============================================================================
# Capledger v1.0.0
# Transaction Executor - Sign, Submit, Map Outcomes
# ============================================================================
#
# Reliability Level: SOVEREIGN TIER (Mission-Critical)
# Purpose: Submit OperationRequests and map terminal states to error kinds
#
# SOVEREIGN MANDATE:
#   - Mutating operations are serialized per signer (no pipelining)
#   - Object versions and the gas coin are re-observed before EVERY submit
#   - No operation is ever silently retried
#   - Idempotency key submitted at most once per executor
#   - Ambiguous transport failures raise with the locally computed digest
#   - UNKNOWN always carries the raw ledger message
#
# Error Codes:
#   - TX-EXE-001: Operation failed (raise_for_status)
#   - TX-EXE-002: Duplicate submission
#   - TX-EXE-003: Ambiguous submission
#   - TX-EXE-004: Insufficient gas (mapped to a result, not raised)
#
# ============================================================================

import logging
import re
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Set, Tuple

from capledger.errors import (
    AmbiguousSubmissionError,
    DuplicateSubmissionError,
    InsufficientGasError,
    LedgerRpcError,
    LedgerTransportError,
    OperationFailedError,
)
from capledger.ledger.bcs import normalize_address
from capledger.ledger.gateway import LedgerGateway, PreparedTransaction
from capledger.ledger.objects import SUI_COIN_TYPE, ObjectRef
from capledger.ledger.schemas import parse_coin_entries
from capledger.ledger.signer import Ed25519Signer
from capledger.ledger.transaction import OperationKind, OperationRequest, ProgrammableTransaction, transaction_digest
from capledger.observability import record_operation

logger = logging.getLogger(__name__)


# ============================================================================
# Enums
# ============================================================================

class OperationStatus(Enum):
    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"


class ErrorKind(Enum):
    """Terminal failure categories surfaced by the ledger."""
    AUTHORIZATION_DENIED = "AUTHORIZATION_DENIED"
    PAUSE_ACTIVE = "PAUSE_ACTIVE"
    SUPPLY_EXCEEDED = "SUPPLY_EXCEEDED"
    ARITHMETIC_OVERFLOW = "ARITHMETIC_OVERFLOW"
    OBJECT_NOT_FOUND = "OBJECT_NOT_FOUND"
    INSUFFICIENT_GAS = "INSUFFICIENT_GAS"
    ZERO_AMOUNT_REJECTED = "ZERO_AMOUNT_REJECTED"
    STALE_OBJECT_VERSION = "STALE_OBJECT_VERSION"
    CALL_CONTRACT_MISMATCH = "CALL_CONTRACT_MISMATCH"
    UNKNOWN = "UNKNOWN"


# Checked in order; the first matching pattern wins.
ERROR_PATTERNS: Tuple[Tuple[ErrorKind, Tuple[str, ...]], ...] = (
    (ErrorKind.INSUFFICIENT_GAS, (
        "InsufficientGas", "insufficient gas", "GasBalanceTooLow",
        "No valid gas coins",
    )),
    (ErrorKind.STALE_OBJECT_VERSION, (
        "ObjectVersionUnavailableForConsumption", "is not available for consumption",
        "already locked by a different transaction",
    )),
    (ErrorKind.CALL_CONTRACT_MISMATCH, (
        "CommandArgumentError", "ArityMismatch", "TypeMismatch",
        "Incorrect number of arguments",
    )),
    (ErrorKind.OBJECT_NOT_FOUND, (
        "ObjectNotFound", "does not exist", "notExists",
        "Could not find the referenced object", "ObjectDeleted", "object deleted",
    )),
    (ErrorKind.AUTHORIZATION_DENIED, (
        "E_NOT_AUTHORIZED", "NotOwner", "not authorized", "Unauthorized",
        "IncorrectUserSignature", "is owned by account address", "not owned by",
    )),
    (ErrorKind.PAUSE_ACTIVE, ("E_PAUSED", "operations are paused", "PauseActive")),
    (ErrorKind.SUPPLY_EXCEEDED, ("E_MAX_SUPPLY", "max supply", "supply exceeded")),
    (ErrorKind.ARITHMETIC_OVERFLOW, (
        "E_OVERFLOW", "arithmetic overflow", "ARITHMETIC_ERROR", "ArithmeticError",
    )),
    (ErrorKind.ZERO_AMOUNT_REJECTED, ("E_ZERO_AMOUNT",)),
)

_MOVE_ABORT_PATTERN = re.compile(r"MoveAbort\(.*,\s*(\d+)\)\s*in command", re.DOTALL)


def parse_abort_codes(text: Optional[str]) -> Dict[int, ErrorKind]:
    """
    Parse "1:AUTHORIZATION_DENIED,2:PAUSE_ACTIVE" into an abort code map.

    Raises:
        ValueError: Malformed entry or unknown error kind
    """
    mapping: Dict[int, ErrorKind] = {}
    for entry in (text or "").split(","):
        entry = entry.strip()
        if not entry:
            continue
        code, _, kind = entry.partition(":")
        if not code.strip().isdigit() or not kind.strip():
            raise ValueError(f"Malformed abort code entry: {entry!r}")
        mapping[int(code)] = ErrorKind[kind.strip().upper()]
    return mapping


def classify_error(message: Optional[str], abort_codes: Optional[Mapping[int, ErrorKind]] = None) -> ErrorKind:
    """
    Map a raw ledger failure message to an ErrorKind.

    Move abort codes are looked up first, then message patterns.
    """
    if not message:
        return ErrorKind.UNKNOWN
    if abort_codes:
        match = _MOVE_ABORT_PATTERN.search(message)
        if match and int(match.group(1)) in abort_codes:
            return abort_codes[int(match.group(1))]
    lowered = message.lower()
    for kind, patterns in ERROR_PATTERNS:
        if any(p.lower() in lowered for p in patterns):
            return kind
    return ErrorKind.UNKNOWN


# ============================================================================
# Operation Result
# ============================================================================

@dataclass(frozen=True)
class OperationResult:
    """
    Outcome of one submission. Never mutated after creation.

    Reliability Level: SOVEREIGN TIER
    Input Constraints: error_kind set iff status is FAILURE
    Side Effects: None
    """
    status: OperationStatus
    operation_kind: OperationKind
    digest: Optional[str] = None
    events: Tuple[Dict[str, Any], ...] = ()
    error_kind: Optional[ErrorKind] = None
    raw_error: Optional[str] = None
    capability_ids: Tuple[str, ...] = ()
    idempotency_key: Optional[str] = None
    object_changes: Tuple[Dict[str, Any], ...] = field(default=(), compare=False)

    @property
    def succeeded(self) -> bool:
        return self.status == OperationStatus.SUCCESS

    def created_objects(self, type_suffix: Optional[str] = None) -> List[str]:
        return [
            c.get("objectId") for c in self.object_changes
            if c.get("type") == "created"
            and (type_suffix is None or str(c.get("objectType", "")).endswith(type_suffix))
        ]

    def raise_for_status(self) -> "OperationResult":
        """
        Raises:
            OperationFailedError: status is FAILURE (TX-EXE-001)
        """
        if self.succeeded:
            return self
        raise OperationFailedError(
            f"{self.operation_kind.value} failed with {self.error_kind.value if self.error_kind else 'UNKNOWN'}: "
            f"{self.raw_error}",
            context=self.to_dict()
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "operation_kind": self.operation_kind.value,
            "digest": self.digest,
            "events": list(self.events),
            "error_kind": self.error_kind.value if self.error_kind else None,
            "raw_error": self.raw_error,
            "capability_ids": list(self.capability_ids),
            "idempotency_key": self.idempotency_key,
        }


# ============================================================================
# Submitter Interface
# ============================================================================

class TransactionSubmitter(ABC):
    """
    Abstract sign/submit collaborator.

    Allows swapping the signing path in tests with a MagicMock.
    """

    @property
    @abstractmethod
    def sender(self) -> str:
        pass

    @abstractmethod
    def prepare(self, transaction: ProgrammableTransaction, gas_budget: int) -> PreparedTransaction:
        """Bind current object versions and a gas coin, then sign."""
        pass

    @abstractmethod
    def execute(self, prepared: PreparedTransaction) -> Dict[str, Any]:
        pass

    @abstractmethod
    def dry_run(self, transaction: ProgrammableTransaction) -> Dict[str, Any]:
        pass


class SignedTransactionSubmitter(TransactionSubmitter):
    """
    Ed25519-signed submission through a LedgerGateway.

    Reliability Level: SOVEREIGN TIER
    Input Constraints: signer holds the sender's key
    Side Effects: Ledger reads (refs, gas), one execute call per submit
    """

    def __init__(self, gateway: LedgerGateway, signer: Ed25519Signer, correlation_id: Optional[str] = None):
        self.gateway = gateway
        self.signer = signer
        self.correlation_id = correlation_id

    @property
    def sender(self) -> str:
        return self.signer.address

    def prepare(self, transaction: ProgrammableTransaction, gas_budget: int) -> PreparedTransaction:
        """
        Raises:
            InsufficientGasError: No single gas coin covers gas_budget
            LedgerRpcError: An owned input no longer exists
        """
        object_refs = self.current_refs(transaction)
        gas = self._select_gas_coin(gas_budget, set(object_refs))
        gas_price = self.gateway.get_reference_gas_price()
        tx_bytes = transaction.data_bytes(self.sender, [gas], gas_price, gas_budget, object_refs)
        return PreparedTransaction(
            transaction=transaction,
            sender=self.sender,
            tx_bytes=tx_bytes,
            signature=self.signer.sign_transaction(tx_bytes),
            digest=transaction_digest(tx_bytes),
            gas_coin_id=gas.object_id,
            gas_budget=gas_budget,
            object_refs=object_refs,
        )

    def execute(self, prepared: PreparedTransaction) -> Dict[str, Any]:
        return self.gateway.execute_transaction(prepared)

    def dry_run(self, transaction: ProgrammableTransaction) -> Dict[str, Any]:
        return self.gateway.dev_inspect(self.sender, transaction, self.current_refs(transaction))

    def current_refs(self, transaction: ProgrammableTransaction) -> Dict[str, ObjectRef]:
        owned = transaction.owned_object_ids()
        refs: Dict[str, ObjectRef] = {}
        for object_id, obj in zip(owned, self.gateway.multi_get_objects(owned)):
            if obj is None:
                raise LedgerRpcError(
                    f"Object {object_id} does not exist",
                    raw_message=f"ObjectNotFound: {object_id} does not exist",
                    context={"object_id": object_id}
                )
            refs[object_id] = ObjectRef(object_id, int(obj["version"]), obj["digest"])
        return refs

    def _select_gas_coin(self, gas_budget: int, excluded: Set[str]) -> ObjectRef:
        coins = parse_coin_entries(list(self.gateway.get_coins(self.sender, SUI_COIN_TYPE)))
        usable = [
            c for c in coins
            if normalize_address(c.coin_object_id) not in excluded and c.balance >= gas_budget
        ]
        if not usable:
            total = sum(c.balance for c in coins)
            logger.error(
                f"[TX-EXE-004] No gas coin covers budget | sender={self.sender} | "
                f"budget={gas_budget} | coins={len(coins)} | total={total} | "
                f"correlation_id={self.correlation_id}"
            )
            raise InsufficientGasError(
                f"No gas coin of {self.sender} covers budget {gas_budget} (total {total})",
                context={"sender": self.sender, "gas_budget": gas_budget, "total": total}
            )
        best = max(usable, key=lambda c: c.balance)
        return ObjectRef(normalize_address(best.coin_object_id), best.version, best.digest)


# ============================================================================
# Transaction Executor
# ============================================================================

class TransactionExecutor:
    """
    Submits built requests and maps results.

    Reliability Level: SOVEREIGN TIER
    Input Constraints: Requests from OperationBuilder
    Side Effects: Consumes the signer's gas; sleeps for settlement after
        each mutation

    Example Usage:
        executor = TransactionExecutor(submitter, gas_budget=50_000_000)
        result = executor.submit(request)
        result.raise_for_status()
    """

    def __init__(
        self,
        submitter: TransactionSubmitter,
        gas_budget: int = 50_000_000,
        abort_codes: Optional[Mapping[int, ErrorKind]] = None,
        settlement_delay: float = 0.0,
        sleep: Callable[[float], None] = time.sleep,
        correlation_id: Optional[str] = None
    ):
        self.submitter = submitter
        self.gas_budget = gas_budget
        self.abort_codes = dict(abort_codes or {})
        self.settlement_delay = settlement_delay
        self.correlation_id = correlation_id
        self._sleep = sleep
        self._lock = threading.Lock()
        self._submitted: Set[str] = set()

    def submit(self, request: OperationRequest) -> OperationResult:
        """
        Sign and execute one request, blocking until local finality.

        Reliability Level: SOVEREIGN TIER
        Input Constraints: idempotency_key not yet submitted
        Side Effects: One execute round trip; settlement wait after it

        Returns:
            OperationResult (ledger rejections are FAILURE results)

        Raises:
            DuplicateSubmissionError: idempotency key already submitted (TX-EXE-002)
            AmbiguousSubmissionError: transport failed after sending (TX-EXE-003)
            LedgerTransportError: transport failed before anything was sent
        """
        with self._lock:
            if request.idempotency_key in self._submitted:
                logger.error(
                    f"[TX-EXE-002] Duplicate submission refused | kind={request.kind.value} | "
                    f"idempotency_key={request.idempotency_key} | correlation_id={self.correlation_id}"
                )
                raise DuplicateSubmissionError(
                    f"Request {request.idempotency_key} was already submitted",
                    context={"idempotency_key": request.idempotency_key, "kind": request.kind.value}
                )

            try:
                prepared = self.submitter.prepare(request.transaction, self.gas_budget)
            except InsufficientGasError as e:
                return self._failure(request, ErrorKind.INSUFFICIENT_GAS, e.message)
            except LedgerRpcError as e:
                return self._failure(request, classify_error(e.raw_message, self.abort_codes), e.raw_message)

            self._submitted.add(request.idempotency_key)
            logger.info(
                f"[TX-EXE] Submitting | kind={request.kind.value} | digest={prepared.digest} | "
                f"capabilities={list(request.capability_ids)} | gas_coin={prepared.gas_coin_id} | "
                f"idempotency_key={request.idempotency_key} | correlation_id={self.correlation_id}"
            )
            try:
                response = self.submitter.execute(prepared)
            except LedgerTransportError as e:
                logger.critical(
                    f"[TX-EXE-003] Submission outcome unknown | kind={request.kind.value} | "
                    f"digest={prepared.digest} | error={e} | correlation_id={self.correlation_id}"
                )
                raise AmbiguousSubmissionError(
                    f"{request.kind.value} may or may not have executed; look up {prepared.digest} "
                    f"before re-submitting",
                    transaction_digest=prepared.digest,
                    context={
                        "kind": request.kind.value,
                        "capability_ids": list(request.capability_ids),
                        "idempotency_key": request.idempotency_key,
                    }
                ) from e
            except LedgerRpcError as e:
                return self._failure(
                    request, classify_error(e.raw_message, self.abort_codes), e.raw_message, prepared.digest
                )

            result = self._to_result(request, response, prepared.digest)
            if self.settlement_delay > 0:
                # gas coin version must settle before the next submission
                self._sleep(self.settlement_delay)
            return result

    def dry_run(self, request: OperationRequest) -> OperationResult:
        """
        Execute without committing (dev-inspect).

        Does not consume the idempotency key.
        """
        try:
            response = self.submitter.dry_run(request.transaction)
        except LedgerRpcError as e:
            return self._failure(request, classify_error(e.raw_message, self.abort_codes), e.raw_message)
        return self._to_result(request, response, None)

    def verify_call_contract(self, request: OperationRequest) -> OperationResult:
        """
        Dry-run a request to confirm the deployed function accepts its layout.

        Any rejection caused by argument arity or types is reported as
        CALL_CONTRACT_MISMATCH; other outcomes are returned unchanged.
        """
        result = self.dry_run(request)
        if result.error_kind == ErrorKind.CALL_CONTRACT_MISMATCH:
            logger.error(
                f"[OPB-004] Ledger rejected argument layout | kind={request.kind.value} | "
                f"contract_version={request.contract_version} | raw_error={result.raw_error} | "
                f"correlation_id={self.correlation_id}"
            )
        return result

    # ========================================================================
    # Internal Methods
    # ========================================================================

    def _to_result(
        self,
        request: OperationRequest,
        response: Dict[str, Any],
        digest: Optional[str]
    ) -> OperationResult:
        effects = response.get("effects") or {}
        status = effects.get("status") or {}
        digest = response.get("digest") or effects.get("transactionDigest") or digest
        events = tuple(response.get("events") or ())
        changes = tuple(response.get("objectChanges") or ())

        if status.get("status") == "success" and not response.get("error"):
            result = OperationResult(
                status=OperationStatus.SUCCESS,
                operation_kind=request.kind,
                digest=digest,
                events=events,
                capability_ids=request.capability_ids,
                idempotency_key=request.idempotency_key,
                object_changes=changes,
            )
            record_operation(request.kind.value, result.status.value, None, self.correlation_id)
            logger.info(
                f"[TX-EXE] Operation succeeded | kind={request.kind.value} | digest={digest} | "
                f"events={len(events)} | correlation_id={self.correlation_id}"
            )
            return result

        raw = status.get("error") or response.get("error") or "ledger reported failure without message"
        return self._failure(request, classify_error(raw, self.abort_codes), raw, digest, events)

    def _failure(
        self,
        request: OperationRequest,
        kind: ErrorKind,
        raw: str,
        digest: Optional[str] = None,
        events: Tuple[Dict[str, Any], ...] = ()
    ) -> OperationResult:
        record_operation(request.kind.value, OperationStatus.FAILURE.value, kind.value, self.correlation_id)
        logger.error(
            f"[TX-EXE-001] Operation failed | kind={request.kind.value} | error_kind={kind.value} | "
            f"capabilities={list(request.capability_ids)} | digest={digest} | raw_error={raw} | "
            f"correlation_id={self.correlation_id}"
        )
        return OperationResult(
            status=OperationStatus.FAILURE,
            operation_kind=request.kind,
            digest=digest,
            events=events,
            error_kind=kind,
            raw_error=raw,
            capability_ids=request.capability_ids,
            idempotency_key=request.idempotency_key,
        )
