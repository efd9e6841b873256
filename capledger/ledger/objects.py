# ============================================================================
# Capledger v1.0.0
# Ledger Object Model - Capability References and Type Patterns
# ============================================================================
#
# Reliability Level: SOVEREIGN TIER (Mission-Critical)
# Purpose: Immutable value objects describing resolved ledger objects
#
# SOVEREIGN MANDATE:
#   - CapabilityRef is immutable once resolved
#   - Type matching is exact on normalized address::module::Struct
#   - No substring matching of type names
#
# ============================================================================

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from capledger.errors import LedgerSchemaError
from capledger.ledger.bcs import normalize_address

SUI_FRAMEWORK_ADDRESS = "0x2"
SUI_COIN_TYPE = "0x2::sui::SUI"


# ============================================================================
# Enums
# ============================================================================

class CapabilityKind(Enum):
    """Capability objects that authorize privileged operations."""
    TREASURY = "Treasury"
    ADMIN = "Admin"
    ADMIN_REGISTRY = "AdminRegistry"
    PAUSE_STATE = "PauseState"
    UPGRADE = "Upgrade"


class OwnershipKind(Enum):
    """How an object is owned on the ledger."""
    OWNED = "OWNED"
    SHARED = "SHARED"
    IMMUTABLE = "IMMUTABLE"


# ============================================================================
# Data Classes
# ============================================================================

@dataclass(frozen=True)
class Ownership:
    """
    Ownership of a ledger object.

    OwnedBy(address) carries the owner address; Shared carries the
    initial shared version needed to reference the object as an input.
    """
    kind: OwnershipKind
    address: Optional[str] = None
    initial_shared_version: Optional[int] = None

    @classmethod
    def owned_by(cls, address: str) -> "Ownership":
        return cls(OwnershipKind.OWNED, address=normalize_address(address))

    @classmethod
    def shared(cls, initial_shared_version: Optional[int] = None) -> "Ownership":
        return cls(OwnershipKind.SHARED, initial_shared_version=initial_shared_version)

    @classmethod
    def from_rpc(cls, owner: Any) -> "Ownership":
        """
        Parse the node's owner field.

        Accepts {"AddressOwner": "0x.."}, {"ObjectOwner": "0x.."},
        {"ConsensusAddressOwner": {"owner": "0x..", ...}},
        {"Shared": {"initial_shared_version": n}} and "Immutable".

        Raises:
            LedgerSchemaError: On an unrecognized or malformed owner shape
        """
        if owner == "Immutable":
            return cls(OwnershipKind.IMMUTABLE)
        if isinstance(owner, dict):
            if isinstance(owner.get("AddressOwner"), str):
                return cls.owned_by(owner["AddressOwner"])
            if isinstance(owner.get("ObjectOwner"), str):
                return cls.owned_by(owner["ObjectOwner"])
            consensus = owner.get("ConsensusAddressOwner")
            if isinstance(consensus, dict) and isinstance(consensus.get("owner"), str):
                return cls.owned_by(consensus["owner"])
            if "Shared" in owner and isinstance(owner["Shared"] or {}, dict):
                version = (owner["Shared"] or {}).get("initial_shared_version")
                if version is None:
                    return cls.shared()
                if str(version).isdigit():
                    return cls.shared(int(version))
        raise LedgerSchemaError(
            f"Unrecognized owner field: {owner!r}",
            context={"owner": repr(owner)}
        )

    @property
    def is_shared(self) -> bool:
        return self.kind == OwnershipKind.SHARED

    def is_owned_by(self, address: str) -> bool:
        return (
            self.kind == OwnershipKind.OWNED
            and self.address == normalize_address(address)
        )

    def describe(self) -> str:
        if self.kind == OwnershipKind.OWNED:
            return f"OwnedBy({self.address})"
        if self.kind == OwnershipKind.SHARED:
            return "Shared"
        return "Immutable"


@dataclass(frozen=True)
class TypePattern:
    """
    Exact type matcher for ledger objects.

    Matches `address::module::name` after address normalization. When
    `type_argument` is set the object's single generic argument must match
    it as well, and every entry in `required_fields` must equal the object's
    content field of the same name.

    Example:
        TypePattern("0x2", "coin", "TreasuryCap", type_argument="0xabc::HetraCoin::HETRACOIN")
        matches "0x2::coin::TreasuryCap<0x0..abc::HetraCoin::HETRACOIN>"
    """
    address: str
    module: str
    name: str
    type_argument: Optional[str] = None
    required_fields: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)

    def struct_tag(self) -> str:
        tag = f"{normalize_address(self.address)}::{self.module}::{self.name}"
        if self.type_argument:
            tag = f"{tag}<{normalize_type(self.type_argument)}>"
        return tag

    def matches(self, type_string: Optional[str], fields: Optional[Dict[str, Any]] = None) -> bool:
        if not type_string:
            return False
        try:
            head, argument = split_type(type_string)
            address, module, name = head.split("::")
            if (normalize_address(address), module, name) != (
                normalize_address(self.address), self.module, self.name
            ):
                return False
            if self.type_argument is not None:
                if argument is None or normalize_type(argument) != normalize_type(self.type_argument):
                    return False
        except ValueError:
            return False

        for field_name, expected in self.required_fields:
            actual = (fields or {}).get(field_name)
            if actual is None:
                return False
            if isinstance(actual, str) and isinstance(expected, str) and actual.startswith("0x"):
                if normalize_address(actual) != normalize_address(expected):
                    return False
            elif str(actual) != str(expected):
                return False
        return True

    def __str__(self) -> str:
        return self.struct_tag()


@dataclass(frozen=True)
class CapabilityRef:
    """
    Resolved reference to a capability object.

    Reliability Level: SOVEREIGN TIER
    Input Constraints: object_id normalized, ownership resolved from the ledger
    Side Effects: None

    Version and digest are not stored: they change after every
    mutation and are re-observed by the executor immediately before signing.
    """
    kind: CapabilityKind
    object_id: str
    ownership: Ownership
    package_id: str
    object_type: str = ""
    source: str = "chain"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "object_id": self.object_id,
            "ownership": self.ownership.describe(),
            "package_id": self.package_id,
            "object_type": self.object_type,
            "source": self.source,
        }


@dataclass(frozen=True)
class CoinObject:
    """A token coin object with its balance in base units."""
    object_id: str
    balance: int
    coin_type: str
    ownership: Ownership


@dataclass(frozen=True)
class ObjectRef:
    """Exact (id, version, digest) reference required to sign owned inputs."""
    object_id: str
    version: int
    digest: str


# ============================================================================
# Type String Helpers
# ============================================================================

def split_type(type_string: str) -> Tuple[str, Optional[str]]:
    """
    Split "addr::mod::Name<Arg>" into ("addr::mod::Name", "Arg").

    Raises:
        ValueError: On unbalanced generic brackets
    """
    text = type_string.strip()
    if "<" not in text:
        return text, None
    if not text.endswith(">"):
        raise ValueError(f"Malformed type string: {type_string}")
    start = text.index("<")
    return text[:start], text[start + 1:-1].strip()


def normalize_type(type_string: str) -> str:
    """Normalize every address inside a (possibly generic) type string."""
    head, argument = split_type(type_string)
    parts = head.split("::")
    if len(parts) != 3:
        raise ValueError(f"Malformed type string: {type_string}")
    normalized = f"{normalize_address(parts[0])}::{parts[1]}::{parts[2]}"
    if argument is not None:
        normalized = f"{normalized}<{normalize_type(argument)}>"
    return normalized
