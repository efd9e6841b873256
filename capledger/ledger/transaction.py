# ============================================================================
# Capledger v1.0.0
# Programmable Transaction Model - Inputs, Commands, Operation Requests
# ============================================================================
#
# Reliability Level: SOVEREIGN TIER (Mission-Critical)
# Purpose: Immutable description of a ledger call and its byte encoding
#
# SOVEREIGN MANDATE:
#   - Requests are immutable once built
#   - Owned object versions are bound at signing time, never at build time
#   - Command results are addressed positionally (Result / NestedResult)
#
# Wire Layout (BCS):
#   TransactionData::V1 { kind, sender, gas_data, expiration }
#   TransactionKind::ProgrammableTransaction { inputs, commands }
#
# ============================================================================

import hashlib
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import base58

from capledger.ledger.bcs import BcsWriter, encode_address, encode_byte_vector, encode_u64
from capledger.ledger.objects import CapabilityRef, ObjectRef, Ownership, split_type

INTENT_PREFIX = bytes([0, 0, 0])
TRANSACTION_DATA_SALT = b"TransactionData::"


# ============================================================================
# Enums
# ============================================================================

class ArgumentKind(Enum):
    GAS_COIN = 0
    INPUT = 1
    RESULT = 2
    NESTED_RESULT = 3


class OperationKind(Enum):
    """Privileged and ordinary operations the client can assemble."""
    MINT = "MINT"
    BURN = "BURN"
    TRANSFER = "TRANSFER"
    TRANSFER_CAPABILITY = "TRANSFER_CAPABILITY"
    CHANGE_ADMIN = "CHANGE_ADMIN"
    PAUSE = "PAUSE"
    UNPAUSE = "UNPAUSE"


# ============================================================================
# Inputs and Arguments
# ============================================================================

@dataclass(frozen=True)
class PureInput:
    """BCS-encoded plain value. `type_label` is informational (u64, address, vector<u8>)."""
    value: bytes
    type_label: str

    @classmethod
    def u64(cls, value: int) -> "PureInput":
        return cls(encode_u64(value), "u64")

    @classmethod
    def address(cls, address: str) -> "PureInput":
        return cls(encode_address(address), "address")

    @classmethod
    def byte_vector(cls, data: bytes) -> "PureInput":
        return cls(encode_byte_vector(data), "vector<u8>")


@dataclass(frozen=True)
class ObjectInput:
    """Object input. Owned inputs get their (version, digest) bound at signing."""
    object_id: str
    ownership: Ownership
    mutable: bool = True


TransactionInput = Union[PureInput, ObjectInput]


@dataclass(frozen=True)
class Argument:
    kind: ArgumentKind
    index: int = 0
    sub_index: int = 0

    @classmethod
    def gas_coin(cls) -> "Argument":
        return cls(ArgumentKind.GAS_COIN)

    @classmethod
    def input(cls, index: int) -> "Argument":
        return cls(ArgumentKind.INPUT, index)

    @classmethod
    def result(cls, index: int) -> "Argument":
        return cls(ArgumentKind.RESULT, index)

    @classmethod
    def nested_result(cls, index: int, sub_index: int) -> "Argument":
        return cls(ArgumentKind.NESTED_RESULT, index, sub_index)

    def write(self, writer: BcsWriter) -> None:
        writer.write_uleb128(self.kind.value)
        if self.kind in (ArgumentKind.INPUT, ArgumentKind.RESULT):
            writer.write_u16(self.index)
        elif self.kind == ArgumentKind.NESTED_RESULT:
            writer.write_u16(self.index).write_u16(self.sub_index)


# ============================================================================
# Commands
# ============================================================================

@dataclass(frozen=True)
class MoveCallCommand:
    package: str
    module: str
    function: str
    arguments: Tuple[Argument, ...]
    type_arguments: Tuple[str, ...] = ()

    @property
    def target(self) -> str:
        return f"{self.package}::{self.module}::{self.function}"

    def write(self, writer: BcsWriter) -> None:
        writer.write_uleb128(0)
        writer.write_address(self.package)
        writer.write_str(self.module)
        writer.write_str(self.function)
        writer.write_sequence(self.type_arguments, write_type_tag)
        writer.write_sequence(self.arguments, lambda w, a: a.write(w))


@dataclass(frozen=True)
class TransferObjectsCommand:
    objects: Tuple[Argument, ...]
    recipient: Argument

    def write(self, writer: BcsWriter) -> None:
        writer.write_uleb128(1)
        writer.write_sequence(self.objects, lambda w, a: a.write(w))
        self.recipient.write(writer)


@dataclass(frozen=True)
class SplitCoinsCommand:
    coin: Argument
    amounts: Tuple[Argument, ...]

    def write(self, writer: BcsWriter) -> None:
        writer.write_uleb128(2)
        self.coin.write(writer)
        writer.write_sequence(self.amounts, lambda w, a: a.write(w))


Command = Union[MoveCallCommand, TransferObjectsCommand, SplitCoinsCommand]


# ============================================================================
# Programmable Transaction
# ============================================================================

@dataclass(frozen=True)
class ProgrammableTransaction:
    """
    Ordered inputs and commands executed atomically by the ledger.

    Either every command takes effect or none does, so a split followed by a
    burn inside one transaction rolls back together.
    """
    inputs: Tuple[TransactionInput, ...]
    commands: Tuple[Command, ...]

    def object_inputs(self) -> List[ObjectInput]:
        return [i for i in self.inputs if isinstance(i, ObjectInput)]

    def owned_object_ids(self) -> List[str]:
        return [i.object_id for i in self.object_inputs() if not i.ownership.is_shared]

    def move_calls(self) -> List[MoveCallCommand]:
        return [c for c in self.commands if isinstance(c, MoveCallCommand)]

    def kind_bytes(self, object_refs: Mapping[str, ObjectRef]) -> bytes:
        """TransactionKind::ProgrammableTransaction bytes (used by dev-inspect)."""
        writer = BcsWriter()
        self._write_kind(writer, object_refs)
        return writer.to_bytes()

    def data_bytes(
        self,
        sender: str,
        gas_payment: Sequence[ObjectRef],
        gas_price: int,
        gas_budget: int,
        object_refs: Mapping[str, ObjectRef]
    ) -> bytes:
        """
        Serialize TransactionData::V1 ready for intent signing.

        Raises:
            KeyError: If an owned input has no bound ObjectRef
        """
        writer = BcsWriter()
        writer.write_uleb128(0)
        self._write_kind(writer, object_refs)
        writer.write_address(sender)
        writer.write_sequence(gas_payment, _write_object_ref)
        writer.write_address(sender)
        writer.write_u64(gas_price)
        writer.write_u64(gas_budget)
        # TransactionExpiration::None
        writer.write_uleb128(0)
        return writer.to_bytes()

    def _write_kind(self, writer: BcsWriter, object_refs: Mapping[str, ObjectRef]) -> None:
        writer.write_uleb128(0)
        writer.write_sequence(self.inputs, lambda w, i: _write_input(w, i, object_refs))
        writer.write_sequence(self.commands, lambda w, c: c.write(w))


class TransactionBuilder:
    """
    Incremental builder for ProgrammableTransaction.

    Object inputs are de-duplicated by id; a second reference to the same
    object reuses the first input slot.

    Example Usage:
        builder = TransactionBuilder()
        cap = builder.object(treasury_ref)
        amount = builder.pure(PureInput.u64(10))
        minted = builder.move_call(pkg, "HetraCoin", "mint", [cap, amount])
        builder.transfer_objects([minted], builder.pure(PureInput.address(to)))
        transaction = builder.build()
    """

    def __init__(self):
        self._inputs: List[TransactionInput] = []
        self._object_slots: Dict[str, int] = {}
        self._commands: List[Command] = []

    def pure(self, value: PureInput) -> Argument:
        self._inputs.append(value)
        return Argument.input(len(self._inputs) - 1)

    def object(self, capability: Union[CapabilityRef, ObjectInput], mutable: bool = True) -> Argument:
        if isinstance(capability, CapabilityRef):
            capability = ObjectInput(capability.object_id, capability.ownership, mutable)
        slot = self._object_slots.get(capability.object_id)
        if slot is None:
            self._inputs.append(capability)
            slot = len(self._inputs) - 1
            self._object_slots[capability.object_id] = slot
        return Argument.input(slot)

    def move_call(
        self,
        package: str,
        module: str,
        function: str,
        arguments: Sequence[Argument],
        type_arguments: Sequence[str] = ()
    ) -> Argument:
        return self._add(MoveCallCommand(
            package, module, function, tuple(arguments), tuple(type_arguments)
        ))

    def split_coins(self, coin: Argument, amounts: Sequence[Argument]) -> Argument:
        return self._add(SplitCoinsCommand(coin, tuple(amounts)))

    def transfer_objects(self, objects: Sequence[Argument], recipient: Argument) -> Argument:
        return self._add(TransferObjectsCommand(tuple(objects), recipient))

    def build(self) -> ProgrammableTransaction:
        return ProgrammableTransaction(tuple(self._inputs), tuple(self._commands))

    def _add(self, command: Command) -> Argument:
        self._commands.append(command)
        return Argument.result(len(self._commands) - 1)


# ============================================================================
# Operation Request
# ============================================================================

@dataclass(frozen=True)
class OperationRequest:
    """
    Canonical, immutable operation request.

    Reliability Level: SOVEREIGN TIER
    Input Constraints: Produced only by OperationBuilder
    Side Effects: None

    The ordering of `capabilities` is part of the request identity. The
    idempotency key is excluded from equality so two builds of the same
    operation compare equal while still being tracked as distinct
    submissions.
    """
    kind: OperationKind
    capabilities: Tuple[CapabilityRef, ...]
    transaction: ProgrammableTransaction
    contract_version: str
    amount: Optional[int] = None
    recipient: Optional[str] = None
    reason: Optional[str] = None
    coin_id: Optional[str] = None
    idempotency_key: str = field(default_factory=lambda: uuid.uuid4().hex, compare=False)

    @property
    def capability_ids(self) -> Tuple[str, ...]:
        return tuple(c.object_id for c in self.capabilities)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "capabilities": [c.to_dict() for c in self.capabilities],
            "amount": self.amount,
            "recipient": self.recipient,
            "reason": self.reason,
            "coin_id": self.coin_id,
            "contract_version": self.contract_version,
            "commands": [type(c).__name__ for c in self.transaction.commands],
            "idempotency_key": self.idempotency_key,
        }


# ============================================================================
# Signing Payloads
# ============================================================================

def blake2b256(data: bytes) -> bytes:
    return hashlib.blake2b(data, digest_size=32).digest()


def intent_message(transaction_data: bytes) -> bytes:
    """TransactionData intent: scope=0, version=0, app_id=0."""
    return INTENT_PREFIX + transaction_data


def transaction_digest(transaction_data: bytes) -> str:
    """Base58 transaction digest computed locally, before submission."""
    return base58.b58encode(blake2b256(TRANSACTION_DATA_SALT + transaction_data)).decode("ascii")


# ============================================================================
# BCS Helpers
# ============================================================================

def _write_object_ref(writer: BcsWriter, ref: ObjectRef) -> None:
    writer.write_address(ref.object_id)
    writer.write_u64(ref.version)
    writer.write_digest(ref.digest)


def _write_input(
    writer: BcsWriter,
    value: TransactionInput,
    object_refs: Mapping[str, ObjectRef]
) -> None:
    if isinstance(value, PureInput):
        writer.write_uleb128(0)
        writer.write_bytes(value.value)
        return

    writer.write_uleb128(1)
    if value.ownership.is_shared:
        if value.ownership.initial_shared_version is None:
            raise KeyError(f"Shared object {value.object_id} has no initial shared version")
        writer.write_uleb128(1)
        writer.write_address(value.object_id)
        writer.write_u64(value.ownership.initial_shared_version)
        writer.write_bool(value.mutable)
    else:
        writer.write_uleb128(0)
        _write_object_ref(writer, object_refs[value.object_id])


_PRIMITIVE_TAGS = {
    "bool": 0, "u8": 1, "u64": 2, "u128": 3, "address": 4,
    "signer": 5, "u16": 8, "u32": 9, "u256": 10,
}


def write_type_tag(writer: BcsWriter, type_string: str) -> None:
    """Encode a Move TypeTag (primitive, vector<T> or struct)."""
    text = type_string.strip()
    if text in _PRIMITIVE_TAGS:
        writer.write_uleb128(_PRIMITIVE_TAGS[text])
        return
    if text.startswith("vector<") and text.endswith(">"):
        writer.write_uleb128(6)
        write_type_tag(writer, text[len("vector<"):-1])
        return

    head, argument = split_type(text)
    parts = head.split("::")
    if len(parts) != 3:
        raise ValueError(f"Malformed type tag: {type_string}")
    writer.write_uleb128(7)
    writer.write_address(parts[0])
    writer.write_str(parts[1])
    writer.write_str(parts[2])
    arguments = _split_type_arguments(argument) if argument else []
    writer.write_sequence(arguments, write_type_tag)


def _split_type_arguments(text: str) -> List[str]:
    arguments = []
    depth = 0
    current = ""
    for char in text:
        if char == "<":
            depth += 1
        elif char == ">":
            depth -= 1
        if char == "," and depth == 0:
            arguments.append(current.strip())
            current = ""
        else:
            current += char
    if current.strip():
        arguments.append(current.strip())
    return arguments
