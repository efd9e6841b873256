"""
============================================================================
Capledger v1.0.0
Ledger Schemas - Pydantic Models for On-Chain Fields and Manifests
============================================================================

Reliability Level: SOVEREIGN TIER (Mission-Critical)
Input Constraints: Raw JSON from the ledger node or the deployment manifest
Side Effects: None (pure validation)

SOVEREIGN MANDATE:
- Fields are validated at the boundary, never silently defaulted
- u64 values arrive as JSON strings and are parsed to int
- vector<u8> values arrive as integer arrays and are decoded to bytes

============================================================================
"""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Type, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from capledger.errors import InvalidAddressError, LedgerSchemaError, ManifestError
from capledger.ledger.bcs import normalize_address

ModelT = TypeVar("ModelT", bound=BaseModel)


# ============================================================================
# CUSTOM VALIDATORS
# ============================================================================

def parse_u64(value: Any) -> int:
    """Parse a u64 delivered as a decimal string or int."""
    if isinstance(value, bool):
        raise ValueError("u64 field received a boolean")
    if isinstance(value, int):
        result = value
    elif isinstance(value, str) and value.isdigit():
        result = int(value)
    else:
        raise ValueError(f"u64 field must be a decimal string, got {value!r}")
    if result < 0 or result >= 2 ** 64:
        raise ValueError(f"u64 field out of range: {result}")
    return result


def parse_address(value: str) -> str:
    """Normalize an address, reporting failures as ValueError for pydantic."""
    try:
        return normalize_address(value)
    except InvalidAddressError as e:
        raise ValueError(e.message) from e


def parse_byte_vector(value: Any) -> bytes:
    """Decode vector<u8> delivered as an int array or a plain string."""
    if value is None:
        return b""
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if isinstance(value, str):
        return value.encode("utf-8")
    if isinstance(value, list):
        return bytes(value)
    raise ValueError(f"vector<u8> field has unexpected shape: {type(value).__name__}")


# ============================================================================
# ON-CHAIN OBJECT FIELDS
# ============================================================================

class _ObjectFields(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)


class AdminRegistryFields(_ObjectFields):
    """Shared AdminRegistry: the administrator recorded by the contract."""
    admin: str

    @field_validator("admin")
    @classmethod
    def _normalize_admin(cls, value: str) -> str:
        return parse_address(value)


class PauseStateFields(_ObjectFields):
    """
    Shared EmergencyPauseState.

    Reliability Level: SOVEREIGN TIER
    Input Constraints: paused must be present, remaining fields optional
    Side Effects: None
    """
    paused: bool
    pause_reason: bytes = b""
    paused_at: Optional[int] = None
    paused_by: Optional[str] = None
    last_updated: Optional[int] = None

    @field_validator("pause_reason", mode="before")
    @classmethod
    def _decode_reason(cls, value: Any) -> bytes:
        return parse_byte_vector(value)

    @field_validator("paused_at", "last_updated", mode="before")
    @classmethod
    def _parse_epoch(cls, value: Any) -> Optional[int]:
        return None if value is None else parse_u64(value)

    @property
    def reason_text(self) -> str:
        return self.pause_reason.decode("utf-8", errors="replace")


class TreasuryCapFields(_ObjectFields):
    """TreasuryCap<T>: total supply lives at total_supply.fields.value."""
    total_supply: int

    @field_validator("total_supply", mode="before")
    @classmethod
    def _unwrap_supply(cls, value: Any) -> int:
        if isinstance(value, dict):
            fields = value.get("fields", value)
            value = fields.get("value")
        return parse_u64(value)


class CoinEntry(_ObjectFields):
    """Entry returned by coin listing queries."""
    coin_object_id: str = Field(alias="coinObjectId")
    coin_type: str = Field(alias="coinType")
    balance: int
    version: int
    digest: str

    @field_validator("balance", "version", mode="before")
    @classmethod
    def _parse_u64(cls, value: Any) -> int:
        return parse_u64(value)


# ============================================================================
# DEPLOYMENT MANIFEST
# ============================================================================

class DeploymentManifest(BaseModel):
    """
    Read-only record written by the deployment step.

    Reliability Level: SOVEREIGN TIER
    Input Constraints: packageId and transactionDigest are mandatory
    Side Effects: None

    Object ids are optional and used only as a fallback when on-chain
    discovery fails.
    """
    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    package_id: str = Field(alias="packageId")
    transaction_digest: str = Field(alias="transactionDigest", min_length=1)
    timestamp: Optional[str] = None
    treasury_cap_id: Optional[str] = Field(default=None, alias="treasuryCapId")
    admin_cap_id: Optional[str] = Field(default=None, alias="adminCapId")
    admin_registry_id: Optional[str] = Field(default=None, alias="adminRegistryId")
    emergency_pause_state_id: Optional[str] = Field(default=None, alias="emergencyPauseStateId")
    upgrade_cap_id: Optional[str] = Field(default=None, alias="upgradeCapId")

    @field_validator(
        "package_id", "treasury_cap_id", "admin_cap_id", "admin_registry_id",
        "emergency_pause_state_id", "upgrade_cap_id"
    )
    @classmethod
    def _normalize_ids(cls, value: Optional[str]) -> Optional[str]:
        return None if value is None else parse_address(value)


# ============================================================================
# LOADERS
# ============================================================================

def parse_fields(model: Type[ModelT], obj: Optional[Dict[str, Any]]) -> ModelT:
    """
    Validate the content fields of a node object payload.

    Raises:
        LedgerSchemaError: If the payload has no Move content or fields are malformed
    """
    content = (obj or {}).get("content") or {}
    fields = content.get("fields")
    if fields is None:
        raise LedgerSchemaError(f"Object {(obj or {}).get('objectId')} has no Move content fields")
    try:
        return model.model_validate(fields)
    except ValidationError as e:
        raise LedgerSchemaError(
            f"Object {(obj or {}).get('objectId')} fields failed {model.__name__} validation: {e}"
        ) from e


def parse_coin_entries(entries: List[Dict[str, Any]]) -> List[CoinEntry]:
    """
    Validate coin listing entries.

    Raises:
        LedgerSchemaError: If any entry is malformed
    """
    coins = []
    for entry in entries:
        try:
            coins.append(CoinEntry.model_validate(entry))
        except ValidationError as e:
            coin_id = entry.get("coinObjectId") if isinstance(entry, dict) else None
            raise LedgerSchemaError(
                f"Coin entry {coin_id} failed CoinEntry validation: {e}",
                context={"coin_object_id": coin_id}
            ) from e
    return coins


def load_manifest(path: Union[str, Path]) -> DeploymentManifest:
    """
    Load and validate a deployment manifest.

    Raises:
        ManifestError: If the file is missing, not JSON, or fails validation
    """
    manifest_path = Path(path)
    if not manifest_path.is_file():
        raise ManifestError(
            f"Deployment manifest not found: {manifest_path}",
            context={"path": str(manifest_path)}
        )
    try:
        payload = json.loads(manifest_path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise ManifestError(
            f"Deployment manifest unreadable: {e}",
            context={"path": str(manifest_path)}
        ) from e
    try:
        return DeploymentManifest.model_validate(payload)
    except ValidationError as e:
        raise ManifestError(
            f"Deployment manifest failed validation: {e}",
            context={"path": str(manifest_path)}
        ) from e
