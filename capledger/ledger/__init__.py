# ============================================================================
# Capledger v1.0.0
# Ledger Module - Amounts, Capabilities, Operations, Execution
# ============================================================================

from capledger.ledger.amount_converter import AmountConverter
from capledger.ledger.capability_locator import AmbiguityPolicy, CapabilityLocator
from capledger.ledger.executor import ErrorKind, OperationResult, OperationStatus, TransactionExecutor
from capledger.ledger.objects import CapabilityKind, CapabilityRef
from capledger.ledger.operation_builder import OperationBuilder
from capledger.ledger.operations import LedgerOperations
from capledger.ledger.transaction import OperationKind, OperationRequest

__all__ = [
    "AmountConverter",
    "AmbiguityPolicy",
    "CapabilityLocator",
    "ErrorKind",
    "OperationResult",
    "OperationStatus",
    "TransactionExecutor",
    "CapabilityKind",
    "CapabilityRef",
    "OperationBuilder",
    "LedgerOperations",
    "OperationKind",
    "OperationRequest",
]
