# ============================================================================
# Capledger v1.0.0
# Error Taxonomy - Local Validation, Capability Discovery, Submission
# ============================================================================
#
# Reliability Level: SOVEREIGN TIER (Mission-Critical)
# Purpose: One exception hierarchy for every failure raised by capledger
#
# SOVEREIGN MANDATE:
#   - Local validation errors are raised BEFORE any network interaction
#   - Ledger-surfaced rejections are values (OperationResult), not exceptions
#   - Every error carries a stable error code for audit logs
#
# Error Codes:
#   - CFG-001 / CFG-002: Configuration / deployment manifest
#   - AMT-001..004: Amount format, zero, negative, max supply
#   - CAP-LOC-001 / CAP-LOC-002: Capability not found / ambiguous
#   - OPB-001..004: Operation building
#   - LGR-RPC-001 / LGR-RPC-002: Ledger RPC error / transport failure
#   - LGR-SCH-001: Malformed on-chain object fields
#   - TX-EXE-001..004: Submission outcome errors
#   - SEC-001: Signer key material
#   - SEC-HRN-001: Security harness state machine
#   - SEC-HRN-002: LIVE security run not confirmed
#
# ============================================================================

from typing import Any, Dict, Optional


class LedgerError(Exception):
    """
    Base exception for all capledger errors.

    Reliability Level: SOVEREIGN TIER
    Input Constraints: error_code must be a documented code
    Side Effects: None
    """

    error_code = "LGR-000"

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        if error_code is not None:
            self.error_code = error_code
        self.message = message
        self.context = dict(context or {})
        super().__init__(f"[{self.error_code}] {message}")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for audit logging."""
        return {
            "error_code": self.error_code,
            "error_message": self.message,
            "context": dict(self.context),
        }


# ============================================================================
# Configuration
# ============================================================================

class ConfigurationError(LedgerError):
    """Raised when required configuration is missing or malformed (CFG-001)."""
    error_code = "CFG-001"


class ManifestError(LedgerError):
    """Raised when the deployment manifest fails schema validation (CFG-002)."""
    error_code = "CFG-002"


# ============================================================================
# Amounts
# ============================================================================

class AmountError(LedgerError):
    """Base exception for amount conversion and validation errors."""
    error_code = "AMT-000"


class InvalidAmountFormatError(AmountError):
    """Raised when an amount is not a plain decimal number (AMT-001)."""
    error_code = "AMT-001"


class ZeroAmountError(AmountError):
    """Raised when a zero amount is supplied where zero is disallowed (AMT-002)."""
    error_code = "AMT-002"


class NegativeAmountError(AmountError):
    """Raised when a negative amount is supplied (AMT-003)."""
    error_code = "AMT-003"


class ExceedsMaxSupplyError(AmountError):
    """Raised when an amount would push supply past the configured cap (AMT-004)."""
    error_code = "AMT-004"


# ============================================================================
# Capability Discovery
# ============================================================================

class CapabilityNotFoundError(LedgerError):
    """Raised when no object matches a capability type pattern (CAP-LOC-001)."""
    error_code = "CAP-LOC-001"


class CapabilityAmbiguousError(LedgerError):
    """
    Raised when several objects match a capability type pattern (CAP-LOC-002).

    Only raised under the strict ambiguity policy. Under the warn policy the
    same code is logged and the first match is used.
    """
    error_code = "CAP-LOC-002"


# ============================================================================
# Operation Building
# ============================================================================

class OperationBuildError(LedgerError):
    """Base exception for operation building errors."""
    error_code = "OPB-000"


class EmptyReasonError(OperationBuildError):
    """Raised when pause is requested without a reason (OPB-001)."""
    error_code = "OPB-001"


class InvalidAddressError(OperationBuildError):
    """Raised when an address fails the prefix/length heuristic (OPB-002)."""
    error_code = "OPB-002"


class CapabilityNotTransferableError(OperationBuildError):
    """Raised when a shared object is passed to a capability transfer (OPB-003)."""
    error_code = "OPB-003"


class CallContractError(OperationBuildError):
    """Raised when a ledger-call argument order override is malformed (OPB-004)."""
    error_code = "OPB-004"


# ============================================================================
# Ledger Transport
# ============================================================================

class LedgerRpcError(LedgerError):
    """
    Raised when the ledger node answers with a JSON-RPC error object (LGR-RPC-001).

    The node's raw message is kept verbatim in `raw_message`.
    """
    error_code = "LGR-RPC-001"

    def __init__(
        self,
        message: str,
        rpc_code: Optional[int] = None,
        raw_message: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        self.rpc_code = rpc_code
        self.raw_message = raw_message if raw_message is not None else message
        super().__init__(message, context=context)


class LedgerTransportError(LedgerError):
    """Raised on timeout or connection failure talking to the node (LGR-RPC-002)."""
    error_code = "LGR-RPC-002"


class LedgerSchemaError(LedgerError):
    """Raised when on-chain object fields fail schema validation (LGR-SCH-001)."""
    error_code = "LGR-SCH-001"


# ============================================================================
# Submission
# ============================================================================

class OperationFailedError(LedgerError):
    """
    Raised by OperationResult.raise_for_status() for a failed operation (TX-EXE-001).

    Carries the operation kind attempted, the capability ids used and the
    raw ledger message for diagnosis.
    """
    error_code = "TX-EXE-001"


class DuplicateSubmissionError(LedgerError):
    """Raised when an idempotency key is submitted twice (TX-EXE-002)."""
    error_code = "TX-EXE-002"


class AmbiguousSubmissionError(LedgerError):
    """
    Raised when transport fails after a mutating request was sent (TX-EXE-003).

    The transaction may or may not have landed. `transaction_digest` is the
    locally computed digest to look up before deciding to re-submit.
    """
    error_code = "TX-EXE-003"

    def __init__(
        self,
        message: str,
        transaction_digest: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        self.transaction_digest = transaction_digest
        super().__init__(message, context=context)


class InsufficientGasError(LedgerError):
    """
    Raised before submission when no gas coin covers the budget (TX-EXE-004).

    The executor turns this into an INSUFFICIENT_GAS result without sending.
    """
    error_code = "TX-EXE-004"


# ============================================================================
# Signer / Harness
# ============================================================================

class SignerError(LedgerError):
    """Base exception for signer errors."""
    error_code = "SEC-001"


class MissingCredentialsError(SignerError):
    """Raised when signer key material is missing (SEC-001)."""
    error_code = "SEC-001"


class InvalidScenarioTransitionError(LedgerError):
    """Raised on an invalid security scenario state transition (SEC-HRN-001)."""
    error_code = "SEC-HRN-001"


class LiveModeNotConfirmedError(LedgerError):
    """Raised when LIVE security runs are not confirmed (SEC-HRN-002)."""
    error_code = "SEC-HRN-002"


__all__ = [
    "LedgerError",
    "ConfigurationError",
    "ManifestError",
    "AmountError",
    "InvalidAmountFormatError",
    "ZeroAmountError",
    "NegativeAmountError",
    "ExceedsMaxSupplyError",
    "CapabilityNotFoundError",
    "CapabilityAmbiguousError",
    "OperationBuildError",
    "EmptyReasonError",
    "InvalidAddressError",
    "CapabilityNotTransferableError",
    "CallContractError",
    "LedgerRpcError",
    "LedgerTransportError",
    "LedgerSchemaError",
    "OperationFailedError",
    "DuplicateSubmissionError",
    "AmbiguousSubmissionError",
    "InsufficientGasError",
    "SignerError",
    "MissingCredentialsError",
    "InvalidScenarioTransitionError",
    "LiveModeNotConfirmedError",
]
