"""
Unit Tests for the Operation Builder

Reliability Level: SOVEREIGN TIER
Python 3.8 Compatible

Tests the canonical ledger-call contract:
- Mint argument order, recipient transfer step and order overrides
- Burn whole vs partial (split inside one transaction)
- Equal inputs build equal requests (idempotency key excluded)
- Local validation before any network call (zero, reason, address)
- Shared objects are never transferable
"""

import os
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from capledger.errors import (
    CallContractError,
    CapabilityNotTransferableError,
    EmptyReasonError,
    ExceedsMaxSupplyError,
    InvalidAddressError,
    ZeroAmountError,
)
from capledger.ledger.objects import CapabilityKind, CapabilityRef, CoinObject, Ownership
from capledger.ledger.operation_builder import (
    CONTRACT_VERSION,
    OperationBuilder,
    check_address_heuristic,
    parse_mint_order,
)
from capledger.ledger.transaction import (
    MoveCallCommand,
    ObjectInput,
    OperationKind,
    PureInput,
    SplitCoinsCommand,
    TransferObjectsCommand,
)

PACKAGE = "0x" + "ab" * 32
ADMIN = "0x" + "11" * 32
RECIPIENT = "0x" + "22" * 32


def owned_cap(kind: CapabilityKind, byte: str) -> CapabilityRef:
    return CapabilityRef(kind, "0x" + byte * 32, Ownership.owned_by(ADMIN), PACKAGE)


def shared_cap(kind: CapabilityKind, byte: str) -> CapabilityRef:
    return CapabilityRef(kind, "0x" + byte * 32, Ownership.shared(7), PACKAGE)


@pytest.fixture
def caps():
    return {
        "treasury": owned_cap(CapabilityKind.TREASURY, "01"),
        "admin": owned_cap(CapabilityKind.ADMIN, "02"),
        "registry": shared_cap(CapabilityKind.ADMIN_REGISTRY, "03"),
        "pause": shared_cap(CapabilityKind.PAUSE_STATE, "04"),
    }


@pytest.fixture
def coin() -> CoinObject:
    return CoinObject("0x" + "05" * 32, 10_000, f"{PACKAGE}::HetraCoin::HETRACOIN", Ownership.owned_by(ADMIN))


@pytest.fixture
def builder() -> OperationBuilder:
    return OperationBuilder(PACKAGE)


def input_of(request, argument):
    return request.transaction.inputs[argument.index]


# =============================================================================
# Mint
# =============================================================================

class TestBuildMint:

    def test_default_argument_order(self, builder, caps):
        request = builder.build_mint(caps["treasury"], caps["registry"], caps["pause"], 500, RECIPIENT)

        call = request.transaction.commands[0]
        assert isinstance(call, MoveCallCommand)
        assert call.function == "mint"
        assert call.module == "HetraCoin"
        arguments = [input_of(request, a) for a in call.arguments]
        assert arguments[0].object_id == caps["treasury"].object_id
        assert arguments[1] == PureInput.u64(500)
        assert arguments[2].object_id == caps["registry"].object_id
        assert arguments[3].object_id == caps["pause"].object_id

    def test_minted_coin_is_transferred_to_recipient(self, builder, caps):
        request = builder.build_mint(caps["treasury"], caps["registry"], caps["pause"], 500, RECIPIENT)

        transfer = request.transaction.commands[1]
        assert isinstance(transfer, TransferObjectsCommand)
        assert input_of(request, transfer.recipient) == PureInput.address(RECIPIENT)
        assert request.recipient == RECIPIENT
        assert request.contract_version == CONTRACT_VERSION

    def test_recipient_as_call_argument_skips_transfer(self, caps):
        order = parse_mint_order("treasury_cap,amount,recipient")
        builder = OperationBuilder(PACKAGE, mint_order=order)
        request = builder.build_mint(caps["treasury"], caps["registry"], caps["pause"], 500, RECIPIENT)

        assert len(request.transaction.commands) == 1
        assert len(request.transaction.commands[0].arguments) == 3
        assert "mint(treasury_cap,amount,recipient)" in request.contract_version

    def test_zero_amount_rejected(self, builder, caps):
        with pytest.raises(ZeroAmountError):
            builder.build_mint(caps["treasury"], caps["registry"], caps["pause"], 0, RECIPIENT)

    def test_supply_cap_checked_when_current_supply_known(self, caps):
        builder = OperationBuilder(PACKAGE, max_supply=1_000)
        with pytest.raises(ExceedsMaxSupplyError):
            builder.build_mint(caps["treasury"], caps["registry"], caps["pause"], 101, RECIPIENT, current_supply=900)
        # without the current supply the cap is left to the ledger
        builder.build_mint(caps["treasury"], caps["registry"], caps["pause"], 5_000, RECIPIENT)

    def test_wrong_capability_kind_rejected(self, builder, caps):
        with pytest.raises(CallContractError):
            builder.build_mint(caps["admin"], caps["registry"], caps["pause"], 1, RECIPIENT)

    def test_malformed_recipient_rejected(self, builder, caps):
        with pytest.raises(InvalidAddressError):
            builder.build_mint(caps["treasury"], caps["registry"], caps["pause"], 1, "0x1234")


class TestParseMintOrder:

    def test_default_when_empty(self):
        assert parse_mint_order("") == ("treasury_cap", "amount", "admin_registry", "pause_state")

    @pytest.mark.parametrize("text", [
        "treasury_cap,amount,bogus",
        "treasury_cap,amount,amount",
        "amount,admin_registry",
    ])
    def test_invalid_orders(self, text):
        with pytest.raises(CallContractError):
            parse_mint_order(text)


# =============================================================================
# Burn
# =============================================================================

class TestBuildBurn:

    def test_whole_coin_has_no_split(self, builder, caps, coin):
        request = builder.build_burn(caps["treasury"], caps["pause"], coin)

        assert [type(c) for c in request.transaction.commands] == [MoveCallCommand]
        assert request.amount == coin.balance
        assert request.coin_id == coin.object_id

    def test_amount_at_or_above_balance_burns_whole_coin(self, builder, caps, coin):
        request = builder.build_burn(caps["treasury"], caps["pause"], coin, coin.balance + 1)
        assert len(request.transaction.commands) == 1
        assert request.amount == coin.balance

    def test_partial_burn_splits_then_burns_split_coin(self, builder, caps, coin):
        request = builder.build_burn(caps["treasury"], caps["pause"], coin, 2_500)

        split, burn = request.transaction.commands
        assert isinstance(split, SplitCoinsCommand)
        assert input_of(request, split.amounts[0]) == PureInput.u64(2_500)
        assert burn.function == "burn"
        assert burn.arguments[2].index == 0
        assert burn.arguments[2].sub_index == 0
        assert request.amount == 2_500

    def test_equal_inputs_build_equal_requests(self, builder, caps, coin):
        first = builder.build_burn(caps["treasury"], caps["pause"], coin, 2_500)
        second = builder.build_burn(caps["treasury"], caps["pause"], coin, 2_500)

        assert first == second
        assert first.idempotency_key != second.idempotency_key


# =============================================================================
# Transfers and Administration
# =============================================================================

class TestBuildTransfer:

    def test_secure_transfer_argument_order(self, builder, caps, coin):
        request = builder.build_transfer(coin, RECIPIENT, 10, caps["pause"])
        call = request.transaction.commands[0]

        assert call.function == "secure_transfer"
        arguments = [input_of(request, a) for a in call.arguments]
        assert isinstance(arguments[0], ObjectInput)
        assert arguments[0].object_id == coin.object_id
        assert arguments[1] == PureInput.address(RECIPIENT)
        assert arguments[2] == PureInput.u64(10)
        assert arguments[3].object_id == caps["pause"].object_id

    def test_zero_rejected_unless_allowed(self, builder, caps, coin):
        with pytest.raises(ZeroAmountError):
            builder.build_transfer(coin, RECIPIENT, 0, caps["pause"])
        request = builder.build_transfer(coin, RECIPIENT, 0, caps["pause"], allow_zero=True)
        assert request.amount == 0


class TestCapabilityTransfer:

    def test_owned_capability_transfer(self, builder, caps):
        request = builder.build_transfer_capability(caps["admin"], RECIPIENT)

        assert request.kind == OperationKind.TRANSFER_CAPABILITY
        assert request.capability_ids == (caps["admin"].object_id,)
        assert isinstance(request.transaction.commands[0], TransferObjectsCommand)

    @pytest.mark.parametrize("name", ["registry", "pause"])
    def test_shared_objects_not_transferable(self, builder, caps, name):
        with pytest.raises(CapabilityNotTransferableError):
            builder.build_transfer_capability(caps[name], RECIPIENT)


class TestAdminAndPause:

    def test_admin_change_argument_order(self, builder, caps):
        request = builder.build_admin_change(caps["treasury"], caps["admin"], caps["registry"], RECIPIENT)
        call = request.transaction.commands[0]

        assert call.function == "change_admin"
        ids = [getattr(input_of(request, a), "object_id", None) for a in call.arguments[:3]]
        assert ids == [caps["treasury"].object_id, caps["admin"].object_id, caps["registry"].object_id]
        assert input_of(request, call.arguments[3]) == PureInput.address(RECIPIENT)

    def test_pause_reason_encoded_as_bytes(self, builder, caps):
        request = builder.build_pause(caps["registry"], caps["pause"], "incident 42")
        call = request.transaction.commands[0]

        assert call.function == "pause_operations"
        assert input_of(request, call.arguments[2]) == PureInput.byte_vector(b"incident 42")

    @pytest.mark.parametrize("reason", ["", "   ", None])
    def test_empty_reason_rejected(self, builder, caps, reason):
        with pytest.raises(EmptyReasonError):
            builder.build_pause(caps["registry"], caps["pause"], reason)

    def test_unpause(self, builder, caps):
        request = builder.build_unpause(caps["registry"], caps["pause"])
        assert request.transaction.commands[0].function == "unpause_operations"


class TestAddressHeuristic:

    def test_accepts_full_length_hex(self):
        assert check_address_heuristic(RECIPIENT) == RECIPIENT

    @pytest.mark.parametrize("value", ["22" * 32, "0x22", "0x" + "zz" * 32, 42])
    def test_rejects_malformed(self, value):
        with pytest.raises(InvalidAddressError):
            check_address_heuristic(value)
