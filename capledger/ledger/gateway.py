# ============================================================================
# Capledger v1.0.0
# Ledger Gateway Interface - Read and Execute Collaborator Contract
# ============================================================================
#
# Reliability Level: SOVEREIGN TIER (Mission-Critical)
# Purpose: Abstract boundary between the client layer and a ledger node
#
# Implementations:
#   - SuiRpcClient: JSON-RPC over HTTPS (production)
#   - SimulatedLedger: in-process contract model (--simulate, tests)
#
# Object payloads follow the node's JSON shape:
#   {"objectId", "version", "digest", "type", "owner",
#    "content": {"dataType": "moveObject", "fields": {...}}}
#
# ============================================================================

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence

from capledger.ledger.objects import ObjectRef
from capledger.ledger.transaction import ProgrammableTransaction


@dataclass(frozen=True)
class PreparedTransaction:
    """
    Signed transaction bound to exact object versions and a gas coin.

    `digest` is computed locally before submission, so it is known even when
    the node never answers.
    """
    transaction: ProgrammableTransaction
    sender: str
    tx_bytes: bytes
    signature: str
    digest: str
    gas_coin_id: str
    gas_budget: int
    object_refs: Mapping[str, ObjectRef] = field(default_factory=dict)


class LedgerGateway(ABC):
    """
    Abstract interface for ledger node access.

    Allows swapping between SimulatedLedger (testing) and SuiRpcClient (production).
    """

    @abstractmethod
    def get_owned_objects(
        self,
        owner: str,
        struct_type: Optional[str] = None
    ) -> Iterator[Dict[str, Any]]:
        """Yield every object owned by `owner`, following pagination."""
        pass

    @abstractmethod
    def get_object(self, object_id: str) -> Optional[Dict[str, Any]]:
        """Fetch one object, or None if it does not exist."""
        pass

    @abstractmethod
    def multi_get_objects(self, object_ids: Sequence[str]) -> List[Optional[Dict[str, Any]]]:
        """Fetch several objects in one round trip, preserving order."""
        pass

    @abstractmethod
    def get_transaction_block(self, digest: str) -> Optional[Dict[str, Any]]:
        """Fetch a transaction with its object changes, or None if unknown."""
        pass

    @abstractmethod
    def get_coins(self, owner: str, coin_type: str) -> Iterator[Dict[str, Any]]:
        """Yield coin objects of `coin_type` owned by `owner`."""
        pass

    @abstractmethod
    def get_balance(self, owner: str, coin_type: str) -> int:
        """Total balance of `coin_type` held by `owner`, in base units."""
        pass

    @abstractmethod
    def get_reference_gas_price(self) -> int:
        pass

    @abstractmethod
    def dev_inspect(
        self,
        sender: str,
        transaction: ProgrammableTransaction,
        object_refs: Mapping[str, ObjectRef]
    ) -> Dict[str, Any]:
        """Execute without committing; returns effects and events."""
        pass

    @abstractmethod
    def execute_transaction(self, prepared: PreparedTransaction) -> Dict[str, Any]:
        """Submit a signed transaction and wait for local execution."""
        pass

    def close(self) -> None:
        """Release transport resources."""
