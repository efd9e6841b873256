# ============================================================================
# Capledger v1.0.0
# Operation Builder - Canonical Ledger-Call Contract
# ============================================================================
#
# Reliability Level: SOVEREIGN TIER (Mission-Critical)
# Purpose: Assemble every privileged operation with one versioned argument order
#
# SOVEREIGN MANDATE:
#   - Argument order per operation comes ONLY from LEDGER_CALL_CONTRACT
#   - Local validation (amount, reason, address) happens before any network call
#   - Admin identity change and AdminCap transfer stay independent operations
#   - Shared objects can never be handed to a capability transfer
#
# Call Contract (hetracoin-v1):
#   mint               (treasury_cap, amount, admin_registry, pause_state) -> Coin
#   burn               (treasury_cap, pause_state, coin)
#   secure_transfer    (coin, recipient, amount, pause_state)
#   change_admin       (treasury_cap, admin_cap, admin_registry, new_admin)
#   pause_operations   (admin_registry, pause_state, reason)
#   unpause_operations (admin_registry, pause_state)
#
# Error Codes:
#   - OPB-001: Empty pause reason
#   - OPB-002: Address heuristic failed
#   - OPB-003: Capability not transferable
#   - OPB-004: Malformed argument order override
#
# ============================================================================

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from capledger.errors import (
    CallContractError,
    CapabilityNotTransferableError,
    EmptyReasonError,
    InvalidAddressError,
)
from capledger.ledger.amount_converter import AmountConverter
from capledger.ledger.bcs import normalize_address
from capledger.ledger.objects import CapabilityKind, CapabilityRef, CoinObject
from capledger.ledger.transaction import (
    Argument,
    ObjectInput,
    OperationKind,
    OperationRequest,
    PureInput,
    TransactionBuilder,
)

logger = logging.getLogger(__name__)

CONTRACT_VERSION = "hetracoin-v1"
ADDRESS_LENGTH_WITH_PREFIX = 66


@dataclass(frozen=True)
class CallSpec:
    """One entry of the ledger-call contract: function name and slot order."""
    function: str
    slots: Tuple[str, ...]


LEDGER_CALL_CONTRACT: Dict[OperationKind, CallSpec] = {
    OperationKind.MINT: CallSpec("mint", ("treasury_cap", "amount", "admin_registry", "pause_state")),
    OperationKind.BURN: CallSpec("burn", ("treasury_cap", "pause_state", "coin")),
    OperationKind.TRANSFER: CallSpec("secure_transfer", ("coin", "recipient", "amount", "pause_state")),
    OperationKind.CHANGE_ADMIN: CallSpec(
        "change_admin", ("treasury_cap", "admin_cap", "admin_registry", "new_admin")
    ),
    OperationKind.PAUSE: CallSpec("pause_operations", ("admin_registry", "pause_state", "reason")),
    OperationKind.UNPAUSE: CallSpec("unpause_operations", ("admin_registry", "pause_state")),
}

_MINT_SLOTS = ("treasury_cap", "amount", "admin_registry", "pause_state", "recipient")
_MINT_REQUIRED = ("treasury_cap", "amount")


def parse_mint_order(text: Optional[str]) -> Tuple[str, ...]:
    """
    Parse a comma-separated mint argument order override.

    Accepts any ordering of treasury_cap, amount, admin_registry, pause_state
    and recipient that names treasury_cap and amount exactly once. When
    recipient is a call argument no transfer step is emitted.

    Raises:
        CallContractError: Unknown slot, duplicate slot or missing required slot
    """
    if not text or not text.strip():
        return LEDGER_CALL_CONTRACT[OperationKind.MINT].slots
    slots = tuple(s.strip() for s in text.split(",") if s.strip())
    unknown = [s for s in slots if s not in _MINT_SLOTS]
    if unknown:
        raise CallContractError(f"Unknown mint argument slot(s): {unknown}")
    if len(set(slots)) != len(slots):
        raise CallContractError(f"Duplicate mint argument slot in {list(slots)}")
    missing = [s for s in _MINT_REQUIRED if s not in slots]
    if missing:
        raise CallContractError(f"Mint argument order is missing {missing}")
    return slots


def check_address_heuristic(address: str, field_name: str = "address") -> str:
    """
    Prefix/length check, then normalization.

    Weak check: any 0x-prefixed 66-character hex string is
    accepted whether or not an account exists behind it.

    Raises:
        InvalidAddressError: Missing 0x prefix, wrong length, or not hex
    """
    if not isinstance(address, str) or not address.startswith("0x"):
        raise InvalidAddressError(
            f"{field_name} must start with 0x",
            context={field_name: repr(address)}
        )
    if len(address) != ADDRESS_LENGTH_WITH_PREFIX:
        raise InvalidAddressError(
            f"{field_name} must be {ADDRESS_LENGTH_WITH_PREFIX} characters, got {len(address)}",
            context={field_name: address}
        )
    return normalize_address(address)


class OperationBuilder:
    """
    Builds canonical OperationRequests.

    Reliability Level: SOVEREIGN TIER
    Input Constraints: Capability references resolved by CapabilityLocator,
        amounts in integer base units
    Side Effects: None (pure construction)

    Example Usage:
        builder = OperationBuilder(package_id)
        request = builder.build_mint(treasury, registry, pause_state, 10**9, recipient)
    """

    def __init__(
        self,
        package_id: str,
        coin_module: str = "HetraCoin",
        converter: Optional[AmountConverter] = None,
        mint_order: Optional[Sequence[str]] = None,
        max_supply: Optional[int] = None,
        correlation_id: Optional[str] = None
    ):
        self.package_id = normalize_address(package_id)
        self.coin_module = coin_module
        self.converter = converter or AmountConverter()
        self.mint_order = tuple(mint_order) if mint_order else LEDGER_CALL_CONTRACT[OperationKind.MINT].slots
        parse_mint_order(",".join(self.mint_order))
        self.max_supply = max_supply
        self.correlation_id = correlation_id

    @property
    def contract_version(self) -> str:
        default = LEDGER_CALL_CONTRACT[OperationKind.MINT].slots
        if self.mint_order == default:
            return CONTRACT_VERSION
        return f"{CONTRACT_VERSION}+mint({','.join(self.mint_order)})"

    # ========================================================================
    # Token Supply
    # ========================================================================

    def build_mint(
        self,
        treasury: CapabilityRef,
        admin_registry: CapabilityRef,
        pause_state: CapabilityRef,
        amount: int,
        recipient: str,
        current_supply: Optional[int] = None
    ) -> OperationRequest:
        """
        Mint `amount` base units and deliver them to `recipient`.

        Reliability Level: SOVEREIGN TIER
        Input Constraints: amount > 0, recipient passes the address heuristic
        Side Effects: None

        Args:
            treasury: TreasuryCap reference
            admin_registry: Shared AdminRegistry reference
            pause_state: Shared EmergencyPauseState reference
            amount: Base units to mint
            recipient: Address receiving the minted coin
            current_supply: When given together with a configured max supply,
                the supply cap is checked locally

        Raises:
            ZeroAmountError / NegativeAmountError / InvalidAmountFormatError
            ExceedsMaxSupplyError: current_supply + amount > max_supply
            InvalidAddressError: recipient fails the heuristic
        """
        self._require_kind(treasury, CapabilityKind.TREASURY)
        self._require_kind(admin_registry, CapabilityKind.ADMIN_REGISTRY)
        self._require_kind(pause_state, CapabilityKind.PAUSE_STATE)
        max_supply = self.max_supply if current_supply is not None else None
        amount = self.converter.validate(
            amount,
            allow_zero=False,
            max_supply=max_supply,
            current_supply=current_supply or 0,
            correlation_id=self.correlation_id
        )
        recipient = check_address_heuristic(recipient, "recipient")

        tx = TransactionBuilder()
        slots = {
            "treasury_cap": lambda: tx.object(treasury),
            "amount": lambda: tx.pure(PureInput.u64(amount)),
            "admin_registry": lambda: tx.object(admin_registry),
            "pause_state": lambda: tx.object(pause_state),
            "recipient": lambda: tx.pure(PureInput.address(recipient)),
        }
        arguments = [slots[name]() for name in self.mint_order]
        minted = self._call(tx, OperationKind.MINT, arguments)
        if "recipient" not in self.mint_order:
            tx.transfer_objects([minted], tx.pure(PureInput.address(recipient)))

        capabilities = self._ordered_caps(self.mint_order, {
            "treasury_cap": treasury,
            "admin_registry": admin_registry,
            "pause_state": pause_state,
        })
        return self._request(
            OperationKind.MINT, capabilities, tx,
            amount=amount, recipient=recipient
        )

    def build_burn(
        self,
        treasury: CapabilityRef,
        pause_state: CapabilityRef,
        coin: CoinObject,
        amount: Optional[int] = None
    ) -> OperationRequest:
        """
        Burn a token coin, whole or in part.

        Omitting `amount`, or passing amount >= coin.balance, burns the whole
        coin object with no split step. Otherwise the coin is split and only
        the new coin of exactly `amount` is burned, inside one atomic
        transaction.

        Raises:
            ZeroAmountError / NegativeAmountError: Invalid partial amount
        """
        self._require_kind(treasury, CapabilityKind.TREASURY)
        self._require_kind(pause_state, CapabilityKind.PAUSE_STATE)
        if amount is not None:
            amount = self.converter.validate(amount, allow_zero=False, correlation_id=self.correlation_id)

        tx = TransactionBuilder()
        treasury_arg = tx.object(treasury)
        pause_arg = tx.object(pause_state)
        coin_arg = tx.object(ObjectInput(coin.object_id, coin.ownership))

        whole = amount is None or amount >= coin.balance
        if whole:
            burned_amount = coin.balance
            target = coin_arg
        else:
            burned_amount = amount
            split = tx.split_coins(coin_arg, [tx.pure(PureInput.u64(amount))])
            target = Argument.nested_result(split.index, 0)

        slots = {"treasury_cap": treasury_arg, "pause_state": pause_arg, "coin": target}
        self._call(tx, OperationKind.BURN, [slots[s] for s in self._slots(OperationKind.BURN)])

        logger.debug(
            f"[OPB] Burn built | coin_id={coin.object_id} | amount={burned_amount} | "
            f"whole={whole} | correlation_id={self.correlation_id}"
        )
        return self._request(
            OperationKind.BURN,
            (treasury, pause_state),
            tx,
            amount=burned_amount,
            coin_id=coin.object_id,
        )

    def build_transfer(
        self,
        coin: CoinObject,
        recipient: str,
        amount: int,
        pause_state: CapabilityRef,
        allow_zero: bool = False
    ) -> OperationRequest:
        """
        Ordinary token transfer through secure_transfer.

        `allow_zero` lets a zero amount reach the ledger; the security
        harness uses it to check the contract's own zero-amount guard.
        """
        self._require_kind(pause_state, CapabilityKind.PAUSE_STATE)
        amount = self.converter.validate(amount, allow_zero=allow_zero, correlation_id=self.correlation_id)
        recipient = check_address_heuristic(recipient, "recipient")

        tx = TransactionBuilder()
        slots = {
            "coin": lambda: tx.object(ObjectInput(coin.object_id, coin.ownership)),
            "recipient": lambda: tx.pure(PureInput.address(recipient)),
            "amount": lambda: tx.pure(PureInput.u64(amount)),
            "pause_state": lambda: tx.object(pause_state),
        }
        self._call(tx, OperationKind.TRANSFER, [slots[s]() for s in self._slots(OperationKind.TRANSFER)])
        return self._request(
            OperationKind.TRANSFER, (pause_state,), tx,
            amount=amount, recipient=recipient, coin_id=coin.object_id
        )

    # ========================================================================
    # Capabilities and Administration
    # ========================================================================

    def build_transfer_capability(self, capability: CapabilityRef, new_owner: str) -> OperationRequest:
        """
        Plain ownership transfer of a capability object.

        Raises:
            CapabilityNotTransferableError: capability is a shared object
            InvalidAddressError: new_owner fails the prefix/length heuristic
        """
        if capability.ownership.is_shared or capability.kind in (
            CapabilityKind.ADMIN_REGISTRY, CapabilityKind.PAUSE_STATE
        ):
            raise CapabilityNotTransferableError(
                f"{capability.kind.value} object {capability.object_id} is shared and has no owner",
                context={"object_id": capability.object_id, "kind": capability.kind.value}
            )
        new_owner = check_address_heuristic(new_owner, "new_owner")

        tx = TransactionBuilder()
        tx.transfer_objects([tx.object(capability)], tx.pure(PureInput.address(new_owner)))
        return self._request(
            OperationKind.TRANSFER_CAPABILITY, (capability,), tx, recipient=new_owner
        )

    def build_admin_change(
        self,
        treasury: CapabilityRef,
        admin: CapabilityRef,
        admin_registry: CapabilityRef,
        new_admin: str
    ) -> OperationRequest:
        """
        Update the administrator recorded in the AdminRegistry.

        The AdminCap object itself stays with its current owner; a complete
        handoff also needs build_transfer_capability(admin, new_admin).
        """
        self._require_kind(treasury, CapabilityKind.TREASURY)
        self._require_kind(admin, CapabilityKind.ADMIN)
        self._require_kind(admin_registry, CapabilityKind.ADMIN_REGISTRY)
        new_admin = check_address_heuristic(new_admin, "new_admin")

        tx = TransactionBuilder()
        slots = {
            "treasury_cap": lambda: tx.object(treasury),
            "admin_cap": lambda: tx.object(admin),
            "admin_registry": lambda: tx.object(admin_registry),
            "new_admin": lambda: tx.pure(PureInput.address(new_admin)),
        }
        self._call(tx, OperationKind.CHANGE_ADMIN, [slots[s]() for s in self._slots(OperationKind.CHANGE_ADMIN)])
        return self._request(
            OperationKind.CHANGE_ADMIN, (treasury, admin, admin_registry), tx, recipient=new_admin
        )

    def build_pause(
        self,
        admin_registry: CapabilityRef,
        pause_state: CapabilityRef,
        reason: str
    ) -> OperationRequest:
        """
        Pause token operations.

        Raises:
            EmptyReasonError: reason is empty or whitespace-only (OPB-001)
        """
        self.validate_reason(reason)
        self._require_kind(admin_registry, CapabilityKind.ADMIN_REGISTRY)
        self._require_kind(pause_state, CapabilityKind.PAUSE_STATE)

        tx = TransactionBuilder()
        slots = {
            "admin_registry": lambda: tx.object(admin_registry),
            "pause_state": lambda: tx.object(pause_state),
            "reason": lambda: tx.pure(PureInput.byte_vector(reason.encode("utf-8"))),
        }
        self._call(tx, OperationKind.PAUSE, [slots[s]() for s in self._slots(OperationKind.PAUSE)])
        return self._request(OperationKind.PAUSE, (admin_registry, pause_state), tx, reason=reason)

    def validate_reason(self, reason: Optional[str]) -> str:
        """
        Raises:
            EmptyReasonError: reason is empty or whitespace-only (OPB-001)
        """
        if reason is None or not str(reason).strip():
            logger.error(f"[OPB-001] Pause reason is empty | correlation_id={self.correlation_id}")
            raise EmptyReasonError("Pause requires a non-empty reason")
        return reason

    def build_unpause(self, admin_registry: CapabilityRef, pause_state: CapabilityRef) -> OperationRequest:
        self._require_kind(admin_registry, CapabilityKind.ADMIN_REGISTRY)
        self._require_kind(pause_state, CapabilityKind.PAUSE_STATE)
        tx = TransactionBuilder()
        slots = {
            "admin_registry": lambda: tx.object(admin_registry),
            "pause_state": lambda: tx.object(pause_state),
        }
        self._call(tx, OperationKind.UNPAUSE, [slots[s]() for s in self._slots(OperationKind.UNPAUSE)])
        return self._request(OperationKind.UNPAUSE, (admin_registry, pause_state), tx)

    # ========================================================================
    # Internal Methods
    # ========================================================================

    def _slots(self, kind: OperationKind) -> Tuple[str, ...]:
        if kind == OperationKind.MINT:
            return self.mint_order
        return LEDGER_CALL_CONTRACT[kind].slots

    def _call(self, tx: TransactionBuilder, kind: OperationKind, arguments: List[Argument]) -> Argument:
        return tx.move_call(
            self.package_id,
            self.coin_module,
            LEDGER_CALL_CONTRACT[kind].function,
            arguments,
        )

    @staticmethod
    def _ordered_caps(slots: Sequence[str], refs: Dict[str, CapabilityRef]) -> Tuple[CapabilityRef, ...]:
        ordered = [refs[s] for s in slots if s in refs]
        # caps omitted from the call still travel with the request for diagnosis
        ordered.extend(ref for name, ref in refs.items() if name not in slots)
        return tuple(ordered)

    @staticmethod
    def _require_kind(ref: CapabilityRef, kind: CapabilityKind) -> None:
        if ref.kind != kind:
            raise CallContractError(
                f"Expected {kind.value} capability, got {ref.kind.value} ({ref.object_id})",
                context={"expected": kind.value, "actual": ref.kind.value}
            )

    def _request(
        self,
        kind: OperationKind,
        capabilities: Sequence[CapabilityRef],
        tx: TransactionBuilder,
        **fields
    ) -> OperationRequest:
        request = OperationRequest(
            kind=kind,
            capabilities=tuple(capabilities),
            transaction=tx.build(),
            contract_version=self.contract_version,
            **fields
        )
        logger.info(
            f"[OPB] Operation built | kind={kind.value} | "
            f"capabilities={list(request.capability_ids)} | "
            f"contract_version={request.contract_version} | "
            f"idempotency_key={request.idempotency_key} | correlation_id={self.correlation_id}"
        )
        return request
