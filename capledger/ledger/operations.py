# ============================================================================
# Capledger v1.0.0
# Ledger Operations - End-to-End Operator Workflows
# ============================================================================
#
# Reliability Level: SOVEREIGN TIER (Mission-Critical)
# Purpose: Locate capabilities, build, submit, report
#
# SOVEREIGN MANDATE:
#   - Every workflow validates local input BEFORE any network call
#   - Capability references are resolved once and cached per invocation
#   - Ownership-changing operations invalidate the locator cache
#   - Ledger rejections are returned as OperationResult values
#
# Error Codes:
#   - AMT-001..004: Local amount validation (raised)
#   - OPB-001..003: Local request validation (raised)
#   - CAP-LOC-001/002: Capability discovery (raised)
#
# ============================================================================

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Union

from capledger.errors import CapabilityNotFoundError, CapabilityNotTransferableError
from capledger.ledger.capability_locator import CapabilityLocator
from capledger.ledger.executor import OperationResult, TransactionExecutor
from capledger.ledger.objects import CapabilityKind, CapabilityRef
from capledger.ledger.operation_builder import OperationBuilder, check_address_heuristic
from capledger.ledger.status_reader import PauseStatus, StatusReader
from capledger.ledger.transaction import OperationRequest

logger = logging.getLogger(__name__)

AmountInput = Union[str, int]

SHARED_KINDS = (CapabilityKind.ADMIN_REGISTRY, CapabilityKind.PAUSE_STATE)


class AdminAccess(Enum):
    """How much administrative power the signer holds."""
    COMPLETE = "COMPLETE"   # registry admin, AdminCap and TreasuryCap
    STRONG = "STRONG"       # registry admin and AdminCap
    PARTIAL = "PARTIAL"     # two of three, not STRONG
    LIMITED = "LIMITED"     # registry admin only
    MINIMAL = "MINIMAL"     # one capability only
    NONE = "NONE"

    @classmethod
    def from_flags(cls, is_admin: bool, has_admin_cap: bool, has_treasury_cap: bool) -> "AdminAccess":
        if is_admin and has_admin_cap and has_treasury_cap:
            return cls.COMPLETE
        if is_admin and has_admin_cap:
            return cls.STRONG
        if (is_admin and has_treasury_cap) or (has_admin_cap and has_treasury_cap):
            return cls.PARTIAL
        if is_admin:
            return cls.LIMITED
        if has_admin_cap or has_treasury_cap:
            return cls.MINIMAL
        return cls.NONE


@dataclass(frozen=True)
class LedgerStatus:
    """Snapshot of token administration state as seen by the signer."""
    package_id: str
    signer: str
    admin: str
    pause: PauseStatus
    total_supply: Optional[int]
    admin_cap_owner: Optional[str]
    treasury_cap_owner: Optional[str]
    signer_balance: int

    @property
    def access(self) -> AdminAccess:
        return AdminAccess.from_flags(
            self.admin == self.signer,
            self.admin_cap_owner == self.signer,
            self.treasury_cap_owner == self.signer,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "package_id": self.package_id,
            "signer": self.signer,
            "admin": self.admin,
            "pause": self.pause.to_dict(),
            "total_supply": self.total_supply,
            "admin_cap_owner": self.admin_cap_owner,
            "treasury_cap_owner": self.treasury_cap_owner,
            "signer_balance": self.signer_balance,
            "access": self.access.value,
        }


@dataclass(frozen=True)
class AdminHandoffResult:
    """Registry update followed by capability transfers; later steps run only if earlier ones succeed."""
    change_admin: OperationResult
    admin_cap_transfer: Optional[OperationResult] = None
    treasury_cap_transfer: Optional[OperationResult] = None

    @property
    def succeeded(self) -> bool:
        if not self.change_admin.succeeded:
            return False
        if self.admin_cap_transfer is None or not self.admin_cap_transfer.succeeded:
            return False
        return self.treasury_cap_transfer is None or self.treasury_cap_transfer.succeeded

    def to_dict(self) -> Dict[str, Any]:
        return {
            "succeeded": self.succeeded,
            "change_admin": self.change_admin.to_dict(),
            "admin_cap_transfer": self.admin_cap_transfer.to_dict() if self.admin_cap_transfer else None,
            "treasury_cap_transfer": (
                self.treasury_cap_transfer.to_dict() if self.treasury_cap_transfer else None
            ),
        }


class LedgerOperations:
    """
    Operator workflows behind the CLI subcommands.

    Reliability Level: SOVEREIGN TIER
    Input Constraints: Collaborators share one LedgerContext
    Side Effects: Ledger reads and at most one submission per step

    Example Usage:
        ops = LedgerOperations(locator, builder, executor, reader)
        result = ops.mint("1.0", recipient)
        ops.pause("incident 42")
    """

    def __init__(
        self,
        locator: CapabilityLocator,
        builder: OperationBuilder,
        executor: TransactionExecutor,
        reader: StatusReader,
        correlation_id: Optional[str] = None
    ):
        self.locator = locator
        self.builder = builder
        self.executor = executor
        self.reader = reader
        self.converter = builder.converter
        self.correlation_id = correlation_id

    @property
    def sender(self) -> str:
        return self.executor.submitter.sender

    def parse_amount(self, amount: AmountInput, base_units: bool = False) -> int:
        """Display amount ("1.5") or, with base_units, an integer amount of base units."""
        if base_units:
            return self.converter.parse_base_units(amount, self.correlation_id)
        return self.converter.to_base_units(amount, correlation_id=self.correlation_id)

    # ========================================================================
    # Token Supply
    # ========================================================================

    def mint(self, amount: AmountInput, recipient: str, base_units: bool = False) -> OperationResult:
        """
        Mint to `recipient`.

        Reliability Level: SOVEREIGN TIER
        Input Constraints: amount > 0, recipient passes the address heuristic
        Side Effects: One mint submission

        Raises:
            InvalidAmountFormatError / ZeroAmountError / NegativeAmountError:
                Before any network call
            ExceedsMaxSupplyError: Current supply plus amount exceeds the cap
            InvalidAddressError: Before any network call
        """
        value = self.converter.validate(self.parse_amount(amount, base_units), correlation_id=self.correlation_id)
        recipient = check_address_heuristic(recipient, "recipient")

        treasury = self.locator.resolve_owned(self.sender, CapabilityKind.TREASURY)
        registry = self.locator.resolve_shared(CapabilityKind.ADMIN_REGISTRY)
        pause_state = self.locator.resolve_shared(CapabilityKind.PAUSE_STATE)
        current_supply = self.reader.total_supply(treasury) if self.builder.max_supply is not None else None

        request = self.builder.build_mint(treasury, registry, pause_state, value, recipient, current_supply)
        return self._submit(request)

    def burn(
        self,
        amount: Optional[AmountInput] = None,
        coin_id: Optional[str] = None,
        base_units: bool = False
    ) -> OperationResult:
        """Burn a signer-owned token coin (the largest one unless `coin_id` is given)."""
        value = None
        if amount is not None:
            value = self.converter.validate(self.parse_amount(amount, base_units), correlation_id=self.correlation_id)

        coin = self.reader.token_coin(self.sender, coin_id)
        treasury = self.locator.resolve_owned(self.sender, CapabilityKind.TREASURY)
        pause_state = self.locator.resolve_shared(CapabilityKind.PAUSE_STATE)
        return self._submit(self.builder.build_burn(treasury, pause_state, coin, value))

    def transfer(
        self,
        recipient: str,
        amount: AmountInput,
        coin_id: Optional[str] = None,
        base_units: bool = False
    ) -> OperationResult:
        value = self.converter.validate(self.parse_amount(amount, base_units), correlation_id=self.correlation_id)
        recipient = check_address_heuristic(recipient, "recipient")

        coin = self.reader.token_coin(self.sender, coin_id)
        pause_state = self.locator.resolve_shared(CapabilityKind.PAUSE_STATE)
        return self._submit(self.builder.build_transfer(coin, recipient, value, pause_state))

    # ========================================================================
    # Capabilities and Administration
    # ========================================================================

    def transfer_capability(self, kind: CapabilityKind, new_owner: str) -> OperationResult:
        """
        Hand a signer-owned capability object to `new_owner`.

        Raises:
            CapabilityNotTransferableError: kind is a shared object
            InvalidAddressError: new_owner fails the heuristic
        """
        if kind in SHARED_KINDS:
            raise CapabilityNotTransferableError(
                f"{kind.value} is a shared object and has no owner",
                context={"kind": kind.value}
            )
        new_owner = check_address_heuristic(new_owner, "new_owner")

        capability = self.locator.resolve_owned(self.sender, kind)
        result = self._submit(self.builder.build_transfer_capability(capability, new_owner))
        if result.succeeded:
            self.locator.invalidate(kind)
        return result

    def change_admin(self, new_admin: str) -> OperationResult:
        """
        Point the AdminRegistry at `new_admin`.

        The AdminCap stays with the signer; see hand_off_admin.
        """
        new_admin = check_address_heuristic(new_admin, "new_admin")

        treasury = self.locator.resolve_owned(self.sender, CapabilityKind.TREASURY)
        admin_cap = self.locator.resolve_owned(self.sender, CapabilityKind.ADMIN)
        registry = self.locator.resolve_shared(CapabilityKind.ADMIN_REGISTRY)
        return self._submit(self.builder.build_admin_change(treasury, admin_cap, registry, new_admin))

    def hand_off_admin(self, new_admin: str, include_treasury: bool = False) -> AdminHandoffResult:
        """
        Complete administrative handoff.

        Updates the registry, then transfers the AdminCap (and optionally the
        TreasuryCap). Each step runs only when the previous one succeeded.
        """
        new_admin = check_address_heuristic(new_admin, "new_admin")

        changed = self.change_admin(new_admin)
        if not changed.succeeded:
            return AdminHandoffResult(change_admin=changed)

        cap_moved = self.transfer_capability(CapabilityKind.ADMIN, new_admin)
        if not cap_moved.succeeded or not include_treasury:
            return AdminHandoffResult(change_admin=changed, admin_cap_transfer=cap_moved)

        treasury_moved = self.transfer_capability(CapabilityKind.TREASURY, new_admin)
        logger.info(
            f"[OPS] Admin handoff complete | new_admin={new_admin} | "
            f"treasury_moved={treasury_moved.succeeded} | correlation_id={self.correlation_id}"
        )
        return AdminHandoffResult(changed, cap_moved, treasury_moved)

    def pause(self, reason: str) -> OperationResult:
        """
        Raises:
            EmptyReasonError: reason is empty or whitespace-only, before any network call
        """
        self.builder.validate_reason(reason)
        registry = self.locator.resolve_shared(CapabilityKind.ADMIN_REGISTRY)
        pause_state = self.locator.resolve_shared(CapabilityKind.PAUSE_STATE)
        return self._submit(self.builder.build_pause(registry, pause_state, reason))

    def unpause(self) -> OperationResult:
        registry = self.locator.resolve_shared(CapabilityKind.ADMIN_REGISTRY)
        pause_state = self.locator.resolve_shared(CapabilityKind.PAUSE_STATE)
        return self._submit(self.builder.build_unpause(registry, pause_state))

    # ========================================================================
    # Status
    # ========================================================================

    def status(self) -> LedgerStatus:
        """Administrator, pause state, supply and capability holders."""
        treasury = self._locate_owned(CapabilityKind.TREASURY)
        admin_cap = self._locate_owned(CapabilityKind.ADMIN)
        return LedgerStatus(
            package_id=self.locator.package_id,
            signer=self.sender,
            admin=self.reader.admin_of(),
            pause=self.reader.pause_status(),
            total_supply=self.reader.total_supply(treasury) if treasury else None,
            admin_cap_owner=admin_cap.ownership.address if admin_cap else None,
            treasury_cap_owner=treasury.ownership.address if treasury else None,
            signer_balance=self.reader.token_balance(self.sender),
        )

    # ========================================================================
    # Internal Methods
    # ========================================================================

    def _locate_owned(self, kind: CapabilityKind) -> Optional[CapabilityRef]:
        configured = self.locator.configured_ids.get(kind)
        try:
            if configured:
                return self.locator.resolve_object(configured, kind)
            return self.locator.resolve_owned(self.sender, kind)
        except CapabilityNotFoundError:
            logger.info(
                f"[OPS] {kind.value} capability not visible to signer | signer={self.sender} | "
                f"correlation_id={self.correlation_id}"
            )
            return None

    def _submit(self, request: OperationRequest) -> OperationResult:
        logger.info(
            f"[OPS] Submitting {request.kind.value} | amount={request.amount} | "
            f"recipient={request.recipient} | capabilities={list(request.capability_ids)} | "
            f"correlation_id={self.correlation_id}"
        )
        return self.executor.submit(request)
