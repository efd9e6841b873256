# ============================================================================
# Capledger v1.0.0
# Status Reader - Typed Views of Shared Ledger State
# ============================================================================
#
# Reliability Level: SOVEREIGN TIER (Mission-Critical)
# Purpose: Read the administrator, pause state, supply and balances
#
# SOVEREIGN MANDATE:
#   - All on-chain fields parsed through pydantic schemas
#   - Balances are integer base units, converted for display elsewhere
#   - Read-only: never submits transactions
#
# ============================================================================

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from capledger.errors import CapabilityNotFoundError
from capledger.ledger.bcs import normalize_address
from capledger.ledger.capability_locator import CapabilityLocator
from capledger.ledger.objects import CapabilityKind, CapabilityRef, CoinObject, Ownership
from capledger.ledger.schemas import (
    AdminRegistryFields,
    PauseStateFields,
    TreasuryCapFields,
    parse_coin_entries,
    parse_fields,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PauseStatus:
    """Decoded EmergencyPauseState."""
    paused: bool
    reason: str
    paused_at: Optional[int]
    paused_by: Optional[str]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "paused": self.paused,
            "reason": self.reason,
            "paused_at": self.paused_at,
            "paused_by": self.paused_by,
        }


class StatusReader:
    """
    Read-only queries over shared token state.

    Example Usage:
        reader = StatusReader(locator)
        reader.admin_of()          # "0x..."
        reader.pause_status()      # PauseStatus(paused=False, ...)
        reader.token_balance(addr) # 1000000000
    """

    def __init__(self, locator: CapabilityLocator, correlation_id: Optional[str] = None):
        self.locator = locator
        self.gateway = locator.gateway
        self.correlation_id = correlation_id

    def admin_of(self, registry: Optional[CapabilityRef] = None) -> str:
        """Administrator address recorded in the AdminRegistry."""
        registry = registry or self.locator.resolve_shared(CapabilityKind.ADMIN_REGISTRY)
        fields = parse_fields(AdminRegistryFields, self._fetch(registry.object_id))
        return fields.admin

    def pause_status(self, pause_state: Optional[CapabilityRef] = None) -> PauseStatus:
        pause_state = pause_state or self.locator.resolve_shared(CapabilityKind.PAUSE_STATE)
        fields = parse_fields(PauseStateFields, self._fetch(pause_state.object_id))
        return PauseStatus(
            paused=fields.paused,
            reason=fields.reason_text,
            paused_at=fields.paused_at,
            paused_by=fields.paused_by,
        )

    def total_supply(self, treasury: CapabilityRef) -> int:
        fields = parse_fields(TreasuryCapFields, self._fetch(treasury.object_id))
        return fields.total_supply

    def owner_of(self, object_id: str) -> Ownership:
        obj = self._fetch(normalize_address(object_id))
        return Ownership.from_rpc(obj.get("owner"))

    def token_balance(self, owner: str) -> int:
        return self.gateway.get_balance(normalize_address(owner), self.locator.coin_type)

    def token_coins(self, owner: str) -> List[CoinObject]:
        """Token coins held by `owner`, largest balance first."""
        owner = normalize_address(owner)
        entries = parse_coin_entries(list(self.gateway.get_coins(owner, self.locator.coin_type)))
        coins = [
            CoinObject(
                object_id=normalize_address(e.coin_object_id),
                balance=e.balance,
                coin_type=e.coin_type,
                ownership=Ownership.owned_by(owner),
            )
            for e in entries
        ]
        return sorted(coins, key=lambda c: c.balance, reverse=True)

    def token_coin(self, owner: str, coin_id: Optional[str] = None) -> CoinObject:
        """
        Pick one token coin of `owner`: the named one, or the largest.

        Raises:
            CapabilityNotFoundError: Owner holds no (matching) token coin
        """
        coins = self.token_coins(owner)
        if coin_id is not None:
            wanted = normalize_address(coin_id)
            coins = [c for c in coins if c.object_id == wanted]
        if not coins:
            logger.error(
                f"[CAP-LOC-001] Token coin not found | owner={owner} | coin_id={coin_id} | "
                f"correlation_id={self.correlation_id}"
            )
            raise CapabilityNotFoundError(
                f"No {self.locator.coin_type} coin owned by {owner}",
                context={"owner": owner, "coin_id": coin_id}
            )
        return coins[0]

    def _fetch(self, object_id: str) -> Dict[str, Any]:
        obj = self.gateway.get_object(object_id)
        if obj is None:
            raise CapabilityNotFoundError(
                f"Object {object_id} does not exist",
                context={"object_id": object_id}
            )
        return obj
