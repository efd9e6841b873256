"""
Unit Tests for Ledger Operations

Reliability Level: SOVEREIGN TIER
Python 3.8 Compatible

End-to-end flows through LedgerContext over a SimulatedLedger:
- Mint to a fresh address and read the balance back
- Partial and whole burns
- Transfers blocked while paused, resumed after unpause
- Complete admin handoff (registry and AdminCap move together)
- Capability transfer and status snapshot
- Local validation before any ledger call (MagicMock collaborators)
"""

import os
import sys
from unittest.mock import MagicMock

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from capledger.context import LedgerContext
from capledger.errors import (
    CapabilityNotFoundError,
    CapabilityNotTransferableError,
    EmptyReasonError,
    InvalidAddressError,
    ZeroAmountError,
)
from capledger.ledger.executor import ErrorKind
from capledger.ledger.objects import CapabilityKind
from capledger.ledger.operation_builder import OperationBuilder
from capledger.ledger.operations import AdminAccess, LedgerOperations
from capledger.ledger.signer import Ed25519Signer

PACKAGE = "0x" + "ab" * 32


@pytest.fixture
def ctx() -> LedgerContext:
    return LedgerContext.simulated_context(correlation_id="test-ops")


@pytest.fixture
def outsider() -> Ed25519Signer:
    return Ed25519Signer.generate()


# =============================================================================
# Supply
# =============================================================================

class TestMintAndBurn:

    def test_mint_to_fresh_address(self, ctx, outsider):
        result = ctx.operations.mint(10 ** 9, outsider.address, base_units=True)

        assert result.succeeded
        assert result.digest
        balance = ctx.reader.token_balance(outsider.address)
        assert balance == 10 ** 9
        assert ctx.converter.to_display(balance) == "1"
        assert any(e["type"].endswith("::TokensMinted") for e in result.events)

    def test_mint_display_amount_updates_supply(self, ctx):
        ctx.operations.mint("2.5", ctx.address).raise_for_status()
        treasury = ctx.locator.resolve_owned(ctx.address, CapabilityKind.TREASURY)
        assert ctx.reader.total_supply(treasury) == 2_500_000_000

    def test_partial_burn_leaves_remainder(self, ctx):
        ctx.operations.mint("10", ctx.address).raise_for_status()

        result = ctx.operations.burn(amount="4")
        assert result.succeeded
        assert ctx.reader.token_balance(ctx.address) == 6_000_000_000
        treasury = ctx.locator.resolve_owned(ctx.address, CapabilityKind.TREASURY)
        assert ctx.reader.total_supply(treasury) == 6_000_000_000

    def test_whole_burn_deletes_coin(self, ctx):
        ctx.operations.mint("3", ctx.address).raise_for_status()
        coin_id = ctx.reader.token_coin(ctx.address).object_id

        ctx.operations.burn().raise_for_status()
        assert ctx.reader.token_balance(ctx.address) == 0
        assert ctx.gateway.get_object(coin_id) is None

    def test_mint_by_non_admin_denied(self, ctx, outsider):
        ctx.gateway.fund_gas(outsider.address)
        outsider_ctx = ctx.for_signer(outsider)
        # the outsider holds no TreasuryCap at all
        with pytest.raises(CapabilityNotFoundError) as exc_info:
            outsider_ctx.operations.mint("1", outsider.address)
        assert exc_info.value.error_code == "CAP-LOC-001"


# =============================================================================
# Transfers and Pause
# =============================================================================

class TestTransferAndPause:

    def test_transfer_moves_balance(self, ctx, outsider):
        ctx.operations.mint("5", ctx.address).raise_for_status()

        result = ctx.operations.transfer(outsider.address, "1.5")
        assert result.succeeded
        assert ctx.reader.token_balance(outsider.address) == 1_500_000_000
        assert ctx.reader.token_balance(ctx.address) == 3_500_000_000

    def test_pause_blocks_transfer_until_unpaused(self, ctx, outsider):
        ctx.operations.mint("5", ctx.address).raise_for_status()

        ctx.operations.pause("incident 42").raise_for_status()
        status = ctx.reader.pause_status()
        assert status.paused is True
        assert status.reason == "incident 42"
        assert status.paused_by == ctx.address

        blocked = ctx.operations.transfer(outsider.address, "1")
        assert not blocked.succeeded
        assert blocked.error_kind == ErrorKind.PAUSE_ACTIVE

        ctx.operations.unpause().raise_for_status()
        assert ctx.reader.pause_status().paused is False
        assert ctx.operations.transfer(outsider.address, "1").succeeded

    def test_zero_transfer_rejected_locally(self, ctx, outsider):
        with pytest.raises(ZeroAmountError):
            ctx.operations.transfer(outsider.address, "0")


# =============================================================================
# Administration
# =============================================================================

class TestAdministration:

    def test_complete_admin_handoff(self, ctx, outsider):
        admin_cap_id = ctx.locator.resolve_owned(ctx.address, CapabilityKind.ADMIN).object_id

        handoff = ctx.operations.hand_off_admin(outsider.address)

        assert handoff.succeeded
        assert handoff.treasury_cap_transfer is None
        assert ctx.reader.admin_of() == outsider.address
        assert ctx.reader.owner_of(admin_cap_id).address == outsider.address

    def test_former_admin_loses_mint_authority(self, ctx, outsider):
        ctx.operations.hand_off_admin(outsider.address).change_admin.raise_for_status()

        result = ctx.operations.mint("1", ctx.address)
        assert not result.succeeded
        assert result.error_kind == ErrorKind.AUTHORIZATION_DENIED

    def test_handoff_with_treasury(self, ctx, outsider):
        handoff = ctx.operations.hand_off_admin(outsider.address, include_treasury=True)
        assert handoff.succeeded

        ctx.gateway.fund_gas(outsider.address)
        new_ctx = ctx.for_signer(outsider)
        status = new_ctx.operations.status()
        assert status.access == AdminAccess.COMPLETE
        assert new_ctx.operations.mint("1", outsider.address).succeeded

    def test_change_admin_alone_leaves_caps_in_place(self, ctx, outsider):
        ctx.operations.change_admin(outsider.address).raise_for_status()

        status = ctx.operations.status()
        assert status.admin == outsider.address
        assert status.admin_cap_owner == ctx.address
        # AdminCap and TreasuryCap without the registry role
        assert status.access == AdminAccess.PARTIAL

    def test_transfer_capability(self, ctx, outsider):
        upgrade_id = ctx.locator.resolve_owned(ctx.address, CapabilityKind.UPGRADE).object_id

        ctx.operations.transfer_capability(CapabilityKind.UPGRADE, outsider.address).raise_for_status()
        assert ctx.reader.owner_of(upgrade_id).address == outsider.address

    def test_shared_capability_transfer_refused(self, ctx, outsider):
        with pytest.raises(CapabilityNotTransferableError):
            ctx.operations.transfer_capability(CapabilityKind.PAUSE_STATE, outsider.address)

    def test_status_for_deployer(self, ctx):
        status = ctx.operations.status()
        assert status.access == AdminAccess.COMPLETE
        assert status.total_supply == 0
        assert status.pause.paused is False
        assert status.to_dict()["access"] == "COMPLETE"


# =============================================================================
# Local Validation Before Network
# =============================================================================

class TestValidationBeforeNetwork:

    @pytest.fixture
    def ops(self):
        locator = MagicMock()
        executor = MagicMock()
        reader = MagicMock()
        return LedgerOperations(locator, OperationBuilder(PACKAGE), executor, reader)

    @pytest.mark.parametrize("reason", ["", "   "])
    def test_pause_with_empty_reason(self, ops, reason):
        with pytest.raises(EmptyReasonError):
            ops.pause(reason)
        ops.locator.resolve_shared.assert_not_called()
        ops.executor.submit.assert_not_called()

    def test_mint_zero(self, ops):
        with pytest.raises(ZeroAmountError):
            ops.mint("0", "0x" + "22" * 32)
        ops.locator.resolve_owned.assert_not_called()

    def test_mint_bad_recipient(self, ops):
        with pytest.raises(InvalidAddressError):
            ops.mint("1", "0x22")
        ops.locator.resolve_owned.assert_not_called()
