# ============================================================================
# Capledger v1.0.0
# Simulated Ledger - In-Process Contract Model
# ============================================================================
#
# Reliability Level: L6 Critical (Testing / --simulate)
# Purpose: Full LedgerGateway backed by in-memory objects
#
# Models the token contract closely enough to exercise every client path
# without a network or funded accounts:
#   - Signature verification and sender derivation
#   - Owned-input ownership and version checks
#   - Gas coin selection, gas charge and version bumps
#   - Atomic command execution (all or nothing)
#   - Admin checks, pause gate, max supply, u64 overflow, zero amounts
#   - Argument arity / type checks per Move function
#
# Abort codes raised by the modelled contract are listed in
# SIMULATED_ABORT_CODES.
#
# ============================================================================

import base64
import copy
import hashlib
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

import base58
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey

from capledger.errors import LedgerRpcError
from capledger.ledger.bcs import decode_address, decode_byte_vector, decode_u64, normalize_address
from capledger.ledger.executor import ErrorKind
from capledger.ledger.gateway import LedgerGateway, PreparedTransaction
from capledger.ledger.objects import SUI_COIN_TYPE, ObjectRef, Ownership, OwnershipKind, normalize_type, split_type
from capledger.ledger.transaction import (
    Argument,
    ArgumentKind,
    MoveCallCommand,
    ObjectInput,
    ProgrammableTransaction,
    PureInput,
    SplitCoinsCommand,
    TransferObjectsCommand,
    blake2b256,
    intent_message,
    transaction_digest,
)

logger = logging.getLogger(__name__)

U64_MAX = 2 ** 64 - 1
SIMULATED_GAS_FEE = 1_000_000
DEFAULT_MAX_SUPPLY = 10 ** 18
GAS_COIN_TYPE = normalize_type(f"0x2::coin::Coin<{SUI_COIN_TYPE}>")
COIN_STRUCT = normalize_type("0x2::coin::Coin")

E_NOT_AUTHORIZED = 1
E_PAUSED = 2
E_MAX_SUPPLY = 3
E_ZERO_AMOUNT = 4
E_INSUFFICIENT_BALANCE = 5

SIMULATED_ABORT_CODES: Dict[int, ErrorKind] = {
    E_NOT_AUTHORIZED: ErrorKind.AUTHORIZATION_DENIED,
    E_PAUSED: ErrorKind.PAUSE_ACTIVE,
    E_MAX_SUPPLY: ErrorKind.SUPPLY_EXCEEDED,
    E_ZERO_AMOUNT: ErrorKind.ZERO_AMOUNT_REJECTED,
}


class _Abort(Exception):
    """Execution failure inside one transaction (rolled back, gas charged)."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


@dataclass
class SimObject:
    object_id: str
    type: str
    ownership: Ownership
    version: int
    fields: Dict[str, Any] = field(default_factory=dict)

    @property
    def digest(self) -> str:
        return object_digest(self.object_id, self.version)


@dataclass
class _Value:
    """Runtime value flowing between commands."""
    kind: str
    payload: Any


def object_digest(object_id: str, version: int) -> str:
    raw = blake2b256(bytes.fromhex(object_id[2:]) + version.to_bytes(8, "little"))
    return base58.b58encode(raw).decode("ascii")


class SimulatedLedger(LedgerGateway):
    """
    In-process ledger implementing the gateway interface.

    Reliability Level: L6 Critical (Testing)
    Input Constraints: Transactions built by OperationBuilder
    Side Effects: Mutates in-memory state only

    Example Usage:
        ledger = SimulatedLedger()
        digest = ledger.deploy(admin_address)
        ledger.fund_gas(admin_address)
    """

    def __init__(
        self,
        package_id: str = "0x" + "c0" * 32,
        coin_module: str = "HetraCoin",
        coin_witness: str = "HETRACOIN",
        max_supply: int = DEFAULT_MAX_SUPPLY,
        reentrancy_guard: bool = False,
        clock: Callable[[], float] = time.time
    ):
        self.package_id = normalize_address(package_id)
        self.coin_module = coin_module
        self.coin_witness = coin_witness
        self.max_supply = max_supply
        self.reentrancy_guard = reentrancy_guard
        self.gas_price = 1000
        self._clock = clock
        self._objects: Dict[str, SimObject] = {}
        self._transactions: Dict[str, Dict[str, Any]] = {}
        self._next_id = 1

    # ========================================================================
    # Setup
    # ========================================================================

    @property
    def coin_type(self) -> str:
        return f"{self.package_id}::{self.coin_module}::{self.coin_witness}"

    def type_of(self, name: str) -> str:
        return f"{self.package_id}::{self.coin_module}::{name}"

    def deploy(self, admin: str) -> str:
        """
        Publish the token: TreasuryCap, AdminCap and UpgradeCap owned by
        `admin`, AdminRegistry and EmergencyPauseState shared.

        Returns:
            Deployment transaction digest
        """
        admin = normalize_address(admin)
        owned = Ownership.owned_by(admin)
        created = [
            self._create(f"0x2::coin::TreasuryCap<{self.coin_type}>", owned, {"total_supply": 0}),
            self._create(self.type_of("AdminCap"), owned, {}),
            self._create("0x2::package::UpgradeCap", owned, {"package": self.package_id, "version": 1}),
            self._create(self.type_of("AdminRegistry"), Ownership.shared(1), {"admin": admin}),
            self._create(self.type_of("EmergencyPauseState"), Ownership.shared(1), self._pause_fields()),
        ]
        digest = self._record(admin, created, [], "success", None, [])
        logger.info(f"[SIM] Token deployed | package_id={self.package_id} | admin={admin} | digest={digest}")
        return digest

    def fund_gas(self, owner: str, amount: int = 10 ** 10) -> str:
        return self._create(GAS_COIN_TYPE, Ownership.owned_by(owner), {"balance": amount}).object_id

    def mint_coin(self, owner: str, amount: int) -> str:
        """Create a token coin directly (test setup; bypasses the contract)."""
        coin = self._create(f"0x2::coin::Coin<{self.coin_type}>", Ownership.owned_by(owner), {"balance": amount})
        treasury = self._find_type(f"0x2::coin::TreasuryCap<{self.coin_type}>")
        if treasury is not None:
            treasury.fields["total_supply"] += amount
        return coin.object_id

    def object(self, object_id: str) -> Optional[SimObject]:
        return self._objects.get(normalize_address(object_id))

    # ========================================================================
    # LedgerGateway: reads
    # ========================================================================

    def get_owned_objects(self, owner: str, struct_type: Optional[str] = None) -> Iterator[Dict[str, Any]]:
        owner = normalize_address(owner)
        wanted = normalize_type(struct_type) if struct_type else None
        for obj in list(self._objects.values()):
            if not obj.ownership.is_owned_by(owner):
                continue
            if wanted is not None:
                obj_type = normalize_type(obj.type)
                if obj_type != wanted and obj_type.split("<")[0] != wanted:
                    continue
            yield self._render(obj)

    def get_object(self, object_id: str) -> Optional[Dict[str, Any]]:
        obj = self.object(object_id)
        return self._render(obj) if obj else None

    def multi_get_objects(self, object_ids: Sequence[str]) -> List[Optional[Dict[str, Any]]]:
        return [self.get_object(i) for i in object_ids]

    def get_transaction_block(self, digest: str) -> Optional[Dict[str, Any]]:
        block = self._transactions.get(digest)
        return copy.deepcopy(block) if block else None

    def get_coins(self, owner: str, coin_type: str) -> Iterator[Dict[str, Any]]:
        wanted = normalize_type(f"0x2::coin::Coin<{coin_type}>")
        for obj in list(self._objects.values()):
            if obj.ownership.is_owned_by(owner) and normalize_type(obj.type) == wanted:
                yield {
                    "coinType": normalize_type(coin_type),
                    "coinObjectId": obj.object_id,
                    "version": str(obj.version),
                    "digest": obj.digest,
                    "balance": str(obj.fields["balance"]),
                }

    def get_balance(self, owner: str, coin_type: str) -> int:
        return sum(int(c["balance"]) for c in self.get_coins(owner, coin_type))

    def get_reference_gas_price(self) -> int:
        return self.gas_price

    # ========================================================================
    # LedgerGateway: execution
    # ========================================================================

    def dev_inspect(
        self,
        sender: str,
        transaction: ProgrammableTransaction,
        object_refs: Mapping[str, ObjectRef]
    ) -> Dict[str, Any]:
        """Run without ownership checks and without committing, like dev-inspect."""
        sender = normalize_address(sender)
        working = copy.deepcopy(self._objects)
        try:
            events = self._run(working, sender, transaction)
        except _Abort as e:
            return {"effects": {"status": {"status": "failure", "error": e.message}}, "events": []}
        return {"effects": {"status": {"status": "success"}}, "events": events}

    def execute_transaction(self, prepared: PreparedTransaction) -> Dict[str, Any]:
        """
        Raises:
            LedgerRpcError: Signature, ownership, version or gas rejection
                before execution (nothing is charged)
        """
        sender = self._verify_signature(prepared)
        self._check_inputs(prepared, sender)
        gas = self._check_gas(prepared, sender)

        working = copy.deepcopy(self._objects)
        before = set(working)
        mutated_ids = set(prepared.object_refs) | {
            i.object_id for i in prepared.transaction.object_inputs() if i.ownership.is_shared and i.mutable
        }
        try:
            events = self._run(working, sender, prepared.transaction)
            status, error = "success", None
        except _Abort as e:
            working = copy.deepcopy(self._objects)
            events, status, error = [], "failure", e.message
            mutated_ids = set(prepared.object_refs)

        # gas is charged whether or not execution succeeded
        gas_coin = working[gas.object_id]
        gas_coin.fields["balance"] -= SIMULATED_GAS_FEE
        lamport = max([o.version for o in working.values() if o.object_id in mutated_ids] + [gas_coin.version]) + 1
        for object_id in mutated_ids | {gas.object_id}:
            if object_id in working:
                working[object_id].version = lamport
        created = [o for oid, o in working.items() if oid not in before]
        for obj in created:
            obj.version = lamport
        deleted = [oid for oid in before if oid not in working]

        self._objects = working
        changes = [self._render_change("created", o, sender) for o in created]
        changes += [
            self._render_change("mutated", working[oid], sender)
            for oid in sorted(mutated_ids | {gas.object_id}) if oid in working
        ]
        changes += [{"type": "deleted", "objectId": oid} for oid in deleted]
        self._transactions[prepared.digest] = {
            "digest": prepared.digest,
            "effects": {"status": {"status": status, **({"error": error} if error else {})}},
            "events": events,
            "objectChanges": changes,
        }
        logger.info(
            f"[SIM] Transaction executed | digest={prepared.digest} | sender={sender} | "
            f"status={status} | error={error}"
        )
        return copy.deepcopy(self._transactions[prepared.digest])

    # ========================================================================
    # Pre-execution checks
    # ========================================================================

    def _verify_signature(self, prepared: PreparedTransaction) -> str:
        try:
            raw = base64.b64decode(prepared.signature)
            flag, signature, public_key = raw[0], raw[1:65], raw[65:]
            if flag != 0 or len(public_key) != 32:
                raise ValueError("unsupported signature scheme")
            Ed25519PublicKey.from_public_bytes(public_key).verify(
                signature, blake2b256(intent_message(prepared.tx_bytes))
            )
        except (InvalidSignature, ValueError, IndexError) as e:
            raise LedgerRpcError(
                "Invalid user signature",
                raw_message=f"IncorrectUserSignature: {e}",
            )
        sender = "0x" + blake2b256(bytes([0]) + public_key).hex()
        if sender != normalize_address(prepared.sender):
            raise LedgerRpcError(
                "Signer does not match sender",
                raw_message=f"IncorrectUserSignature: signer {sender} is not sender {prepared.sender}",
            )
        if transaction_digest(prepared.tx_bytes) != prepared.digest:
            raise LedgerRpcError("Digest mismatch", raw_message="Transaction digest does not match payload")
        return sender

    def _check_inputs(self, prepared: PreparedTransaction, sender: str) -> None:
        for object_id, ref in prepared.object_refs.items():
            obj = self._objects.get(object_id)
            if obj is None:
                raise LedgerRpcError(
                    f"Object {object_id} not found",
                    raw_message=f"ObjectNotFound: object {object_id} does not exist",
                )
            if obj.version != ref.version:
                raise LedgerRpcError(
                    f"Object {object_id} version mismatch",
                    raw_message=(
                        f"ObjectVersionUnavailableForConsumption: object {object_id} version "
                        f"{ref.version} is not available for consumption, current version: {obj.version}"
                    ),
                )
            if not obj.ownership.is_owned_by(sender):
                raise LedgerRpcError(
                    f"Object {object_id} not owned by sender",
                    raw_message=(
                        f"Transaction was not signed by the correct sender: Object {object_id} "
                        f"is owned by account address {obj.ownership.address}, but given "
                        f"owner/signer address is {sender}"
                    ),
                )

    def _check_gas(self, prepared: PreparedTransaction, sender: str) -> SimObject:
        gas = self._objects.get(prepared.gas_coin_id)
        if gas is None or not gas.ownership.is_owned_by(sender) or gas.type != GAS_COIN_TYPE:
            raise LedgerRpcError("Gas coin unusable", raw_message="No valid gas coins found for the transaction")
        if gas.fields["balance"] < max(prepared.gas_budget, SIMULATED_GAS_FEE):
            raise LedgerRpcError(
                "Gas balance too low",
                raw_message=f"GasBalanceTooLow: balance {gas.fields['balance']} < budget {prepared.gas_budget}",
            )
        return gas

    # ========================================================================
    # Command interpreter
    # ========================================================================

    def _run(self, objects: Dict[str, SimObject], sender: str, transaction: ProgrammableTransaction) -> List[Dict[str, Any]]:
        results: List[List[_Value]] = []
        events: List[Dict[str, Any]] = []
        in_hand: Dict[str, Tuple[int, int]] = {}

        for index, command in enumerate(transaction.commands):
            def resolve(argument: Argument) -> _Value:
                return self._resolve(argument, transaction, results, objects, index)

            if isinstance(command, MoveCallCommand):
                values = [resolve(a) for a in command.arguments]
                out = self._move_call(objects, sender, command, values, index, events)
            elif isinstance(command, SplitCoinsCommand):
                out = self._split(objects, sender, resolve(command.coin), [resolve(a) for a in command.amounts], index)
            elif isinstance(command, TransferObjectsCommand):
                recipient = self._expect(resolve(command.recipient), "address", index, len(command.objects))
                for position, argument in enumerate(command.objects):
                    value = resolve(argument)
                    obj = self._expect(value, "object", index, position, objects)
                    if obj.ownership.is_shared:
                        raise _Abort(
                            f"CommandArgumentError {{ arg_idx: {position}, kind: InvalidObjectByValue }} in command {index}"
                        )
                    obj.ownership = Ownership.owned_by(recipient)
                    in_hand.pop(obj.object_id, None)
                out = []
            else:
                raise _Abort(f"Unsupported command in command {index}")

            # fresh values are held by the transaction until transferred or consumed
            for sub, value in enumerate(out):
                if value.kind == "object" and objects[value.payload].ownership.kind == OwnershipKind.IMMUTABLE:
                    in_hand[value.payload] = (index, sub)
            results.append(out)

        # values without drop must be consumed
        for object_id, (result_idx, sub_idx) in in_hand.items():
            if object_id in objects:
                raise _Abort(
                    f"UnusedValueWithoutDrop {{ result_idx: {result_idx}, secondary_idx: {sub_idx} }}"
                )
        return events

    def _resolve(
        self,
        argument: Argument,
        transaction: ProgrammableTransaction,
        results: List[List[_Value]],
        objects: Dict[str, SimObject],
        index: int
    ) -> _Value:
        if argument.kind == ArgumentKind.INPUT:
            value = transaction.inputs[argument.index]
            if isinstance(value, ObjectInput):
                if value.object_id not in objects:
                    raise _Abort(f"ObjectNotFound: {value.object_id} does not exist in command {index}")
                return _Value("object", value.object_id)
            return self._decode_pure(value)
        if argument.kind == ArgumentKind.RESULT:
            out = results[argument.index]
            if len(out) != 1:
                raise _Abort(f"CommandArgumentError {{ kind: InvalidResultArity }} in command {index}")
            return out[0]
        if argument.kind == ArgumentKind.NESTED_RESULT:
            return results[argument.index][argument.sub_index]
        raise _Abort(f"GasCoin argument not supported in command {index}")

    @staticmethod
    def _decode_pure(value: PureInput) -> _Value:
        if value.type_label == "u64":
            return _Value("u64", decode_u64(value.value))
        if value.type_label == "address":
            return _Value("address", decode_address(value.value))
        return _Value("bytes", decode_byte_vector(value.value))

    def _expect(
        self,
        value: _Value,
        kind: str,
        index: int,
        position: int,
        objects: Optional[Dict[str, SimObject]] = None,
        type_name: Optional[str] = None
    ) -> Any:
        if value.kind != kind:
            raise _Abort(f"CommandArgumentError {{ arg_idx: {position}, kind: TypeMismatch }} in command {index}")
        if kind != "object":
            return value.payload
        obj = objects[value.payload]
        if type_name is not None and normalize_type(obj.type) != normalize_type(type_name):
            raise _Abort(f"CommandArgumentError {{ arg_idx: {position}, kind: TypeMismatch }} in command {index}")
        return obj

    def _split(
        self,
        objects: Dict[str, SimObject],
        sender: str,
        coin_value: _Value,
        amount_values: List[_Value],
        index: int
    ) -> List[_Value]:
        coin = self._expect(coin_value, "object", index, 0, objects)
        if split_type(coin.type)[0] != COIN_STRUCT:
            raise _Abort(f"CommandArgumentError {{ arg_idx: 0, kind: TypeMismatch }} in command {index}")
        amounts = [self._expect(v, "u64", index, i + 1) for i, v in enumerate(amount_values)]
        if sum(amounts) > coin.fields["balance"]:
            raise _Abort(f"InsufficientCoinBalance in command {index}")
        coin.fields["balance"] -= sum(amounts)
        out = []
        for amount in amounts:
            new = self._create(coin.type, Ownership(OwnershipKind.IMMUTABLE), {"balance": amount}, objects)
            out.append(_Value("object", new.object_id))
        return out

    # ========================================================================
    # Contract model
    # ========================================================================

    def _move_call(
        self,
        objects: Dict[str, SimObject],
        sender: str,
        command: MoveCallCommand,
        values: List[_Value],
        index: int,
        events: List[Dict[str, Any]]
    ) -> List[_Value]:
        if normalize_address(command.package) != self.package_id or command.module != self.coin_module:
            raise _Abort(f"FunctionNotFound: {command.target} in command {index}")

        treasury = f"0x2::coin::TreasuryCap<{self.coin_type}>"
        coin = f"0x2::coin::Coin<{self.coin_type}>"
        signatures = {
            "mint": [treasury, "u64", self.type_of("AdminRegistry"), self.type_of("EmergencyPauseState")],
            "burn": [treasury, self.type_of("EmergencyPauseState"), coin],
            "secure_transfer": [coin, "address", "u64", self.type_of("EmergencyPauseState")],
            "change_admin": [treasury, self.type_of("AdminCap"), self.type_of("AdminRegistry"), "address"],
            "pause_operations": [self.type_of("AdminRegistry"), self.type_of("EmergencyPauseState"), "bytes"],
            "unpause_operations": [self.type_of("AdminRegistry"), self.type_of("EmergencyPauseState")],
            "governance_admin": [self.type_of("AdminRegistry")],
        }
        params = signatures.get(command.function)
        if params is None:
            raise _Abort(f"FunctionNotFound: {command.target} in command {index}")
        if len(values) != len(params):
            raise _Abort(f"CommandArgumentError {{ kind: ArityMismatch }} in command {index}")

        args = []
        for position, (value, param) in enumerate(zip(values, params)):
            if param in ("u64", "address", "bytes"):
                args.append(self._expect(value, param, index, position))
            else:
                args.append(self._expect(value, "object", index, position, objects, param))

        handler = getattr(self, f"_fn_{command.function}")
        return handler(objects, sender, args, index, command.function, events)

    def _abort(self, function: str, code: int, index: int) -> _Abort:
        return _Abort(
            f"MoveAbort(MoveLocation {{ module: ModuleId {{ address: {self.package_id[2:]}, "
            f"name: Identifier(\"{self.coin_module}\") }}, function: 0, instruction: 0, "
            f"function_name: Some(\"{function}\") }}, {code}) in command {index}"
        )

    def _require_admin(self, registry: SimObject, sender: str, function: str, index: int) -> None:
        if registry.fields["admin"] != sender:
            raise self._abort(function, E_NOT_AUTHORIZED, index)

    def _require_active(self, pause_state: SimObject, function: str, index: int) -> None:
        if pause_state.fields["paused"]:
            raise self._abort(function, E_PAUSED, index)

    def _fn_mint(self, objects, sender, args, index, function, events):
        treasury, amount, registry, pause_state = args
        self._require_admin(registry, sender, function, index)
        self._require_active(pause_state, function, index)
        if amount == 0:
            raise self._abort(function, E_ZERO_AMOUNT, index)
        supply = treasury.fields["total_supply"] + amount
        if supply > U64_MAX:
            raise _Abort(f"MovePrimitiveRuntimeError(ARITHMETIC_ERROR) in command {index}")
        if supply > self.max_supply:
            raise self._abort(function, E_MAX_SUPPLY, index)
        treasury.fields["total_supply"] = supply
        coin = self._create(
            f"0x2::coin::Coin<{self.coin_type}>", Ownership(OwnershipKind.IMMUTABLE), {"balance": amount}, objects
        )
        events.append(self._event("TokensMinted", sender, {"amount": str(amount), "minter": sender}))
        return [_Value("object", coin.object_id)]

    def _fn_burn(self, objects, sender, args, index, function, events):
        treasury, pause_state, coin = args
        self._require_active(pause_state, function, index)
        amount = coin.fields["balance"]
        treasury.fields["total_supply"] -= amount
        del objects[coin.object_id]
        events.append(self._event("TokensBurned", sender, {"amount": str(amount), "burner": sender}))
        return []

    def _fn_secure_transfer(self, objects, sender, args, index, function, events):
        coin, recipient, amount, pause_state = args
        self._require_active(pause_state, function, index)
        if amount == 0:
            raise self._abort(function, E_ZERO_AMOUNT, index)
        if coin.fields["balance"] < amount:
            raise self._abort(function, E_INSUFFICIENT_BALANCE, index)
        coin.fields["balance"] -= amount
        self._create(coin.type, Ownership.owned_by(recipient), {"balance": amount}, objects)
        events.append(self._event(
            "TransferEvent", sender, {"from": sender, "to": recipient, "amount": str(amount)}
        ))
        return []

    def _fn_change_admin(self, objects, sender, args, index, function, events):
        _treasury, _admin_cap, registry, new_admin = args
        self._require_admin(registry, sender, function, index)
        registry.fields["admin"] = new_admin
        events.append(self._event("AdminChanged", sender, {"old_admin": sender, "new_admin": new_admin}))
        return []

    def _fn_pause_operations(self, objects, sender, args, index, function, events):
        registry, pause_state, reason = args
        self._require_admin(registry, sender, function, index)
        now = int(self._clock() * 1000)
        pause_state.fields.update(
            paused=True, pause_reason=list(reason), paused_at=now, paused_by=sender, last_updated=now
        )
        events.append(self._event("EmergencyPauseEvent", sender, {"paused": True, "by": sender}))
        return []

    def _fn_unpause_operations(self, objects, sender, args, index, function, events):
        registry, pause_state = args
        self._require_admin(registry, sender, function, index)
        pause_state.fields.update(
            paused=False, pause_reason=[], paused_at=None, paused_by=None,
            last_updated=int(self._clock() * 1000)
        )
        events.append(self._event("EmergencyPauseEvent", sender, {"paused": False, "by": sender}))
        return []

    def _fn_governance_admin(self, objects, sender, args, index, function, events):
        return [_Value("address", args[0].fields["admin"])]

    # ========================================================================
    # Internal Methods
    # ========================================================================

    def _pause_fields(self) -> Dict[str, Any]:
        fields: Dict[str, Any] = {
            "paused": False,
            "pause_reason": [],
            "paused_at": None,
            "paused_by": None,
            "last_updated": 0,
        }
        if self.reentrancy_guard:
            fields["operation_in_progress"] = False
        return fields

    def _create(
        self,
        type_string: str,
        ownership: Ownership,
        fields: Dict[str, Any],
        objects: Optional[Dict[str, SimObject]] = None
    ) -> SimObject:
        object_id = "0x" + hashlib.blake2b(
            f"sim-object-{self._next_id}".encode("ascii"), digest_size=32
        ).hexdigest()
        self._next_id += 1
        obj = SimObject(object_id, normalize_type(type_string), ownership, 1, dict(fields))
        (self._objects if objects is None else objects)[object_id] = obj
        return obj

    def _find_type(self, type_string: str) -> Optional[SimObject]:
        for obj in self._objects.values():
            if obj.type == normalize_type(type_string):
                return obj
        return None

    def _record(self, sender, created, mutated, status, error, events) -> str:
        digest = base58.b58encode(
            hashlib.blake2b(f"sim-tx-{len(self._transactions)}".encode("ascii"), digest_size=32).digest()
        ).decode("ascii")
        self._transactions[digest] = {
            "digest": digest,
            "effects": {"status": {"status": status, **({"error": error} if error else {})}},
            "events": events,
            "objectChanges": [self._render_change("created", o, sender) for o in created]
            + [self._render_change("mutated", o, sender) for o in mutated],
        }
        return digest

    def _event(self, name: str, sender: str, parsed: Dict[str, Any]) -> Dict[str, Any]:
        return {"type": self.type_of(name), "sender": sender, "parsedJson": parsed}

    @staticmethod
    def _owner_json(ownership: Ownership) -> Any:
        if ownership.kind == OwnershipKind.SHARED:
            return {"Shared": {"initial_shared_version": ownership.initial_shared_version}}
        if ownership.kind == OwnershipKind.OWNED:
            return {"AddressOwner": ownership.address}
        return "Immutable"

    def _render_change(self, change: str, obj: SimObject, sender: str) -> Dict[str, Any]:
        return {
            "type": change,
            "sender": sender,
            "owner": self._owner_json(obj.ownership),
            "objectType": obj.type,
            "objectId": obj.object_id,
            "version": str(obj.version),
            "digest": obj.digest,
        }

    def _render(self, obj: SimObject) -> Dict[str, Any]:
        return {
            "objectId": obj.object_id,
            "version": str(obj.version),
            "digest": obj.digest,
            "type": obj.type,
            "owner": self._owner_json(obj.ownership),
            "content": {
                "dataType": "moveObject",
                "type": obj.type,
                "fields": self._render_fields(obj),
            },
        }

    def _render_fields(self, obj: SimObject) -> Dict[str, Any]:
        fields: Dict[str, Any] = {"id": {"id": obj.object_id}}
        for name, value in obj.fields.items():
            if name == "total_supply":
                fields[name] = {
                    "type": f"0x2::balance::Supply<{self.coin_type}>",
                    "fields": {"value": str(value)},
                }
            elif isinstance(value, bool) or value is None or isinstance(value, (str, list)):
                fields[name] = value
            elif isinstance(value, int):
                fields[name] = str(value)
            else:
                fields[name] = value
        return fields

