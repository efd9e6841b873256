# ============================================================================
# Capledger v1.0.0
# Capability Locator - Resolve Authorization Objects by Type and Ownership
# ============================================================================
#
# Reliability Level: SOVEREIGN TIER (Mission-Critical)
# Purpose: Single place where capability objects are discovered
#
# SOVEREIGN MANDATE:
#   - One type-matching contract: exact address::module::Struct (+ type arg)
#   - Ambiguous matches FAIL by default (strict policy)
#   - Deployment manifest consulted read-only, only as a fallback
#   - Resolved references are cached per invocation, never globally
#
# Resolution Order (shared objects):
#   1. Configured object id, verified against the type pattern
#   2. Objects created as Shared by the deployment transaction
#   3. Object id recorded in the deployment manifest
#
# Error Codes:
#   - CAP-LOC-001: Capability not found
#   - CAP-LOC-002: Capability ambiguous
#
# ============================================================================

import logging
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from capledger.errors import (
    CapabilityAmbiguousError,
    CapabilityNotFoundError,
    LedgerRpcError,
    LedgerTransportError,
)
from capledger.ledger.bcs import normalize_address
from capledger.ledger.gateway import LedgerGateway
from capledger.ledger.objects import (
    SUI_FRAMEWORK_ADDRESS,
    CapabilityKind,
    CapabilityRef,
    Ownership,
    TypePattern,
    split_type,
)
from capledger.ledger.schemas import DeploymentManifest
from capledger.observability import record_capability_resolution

logger = logging.getLogger(__name__)

# (kind, owner or None for shared objects, type pattern)
CacheKey = Tuple[CapabilityKind, Optional[str], TypePattern]


class AmbiguityPolicy(Enum):
    """What to do when several objects match one capability pattern."""
    STRICT = "strict"
    WARN = "warn"


_MANIFEST_FIELDS = {
    CapabilityKind.TREASURY: "treasury_cap_id",
    CapabilityKind.ADMIN: "admin_cap_id",
    CapabilityKind.ADMIN_REGISTRY: "admin_registry_id",
    CapabilityKind.PAUSE_STATE: "emergency_pause_state_id",
    CapabilityKind.UPGRADE: "upgrade_cap_id",
}


class CapabilityLocator:
    """
    Resolves capability references from the ledger.

    Reliability Level: SOVEREIGN TIER
    Input Constraints: package_id of the deployed token module
    Side Effects: Read-only ledger queries, CAP-LOC log lines

    Example Usage:
        locator = CapabilityLocator(gateway, package_id)
        treasury = locator.resolve_owned(admin_address, CapabilityKind.TREASURY)
        registry = locator.resolve_shared(CapabilityKind.ADMIN_REGISTRY)
    """

    def __init__(
        self,
        gateway: LedgerGateway,
        package_id: str,
        coin_module: str = "HetraCoin",
        coin_witness: str = "HETRACOIN",
        policy: AmbiguityPolicy = AmbiguityPolicy.STRICT,
        configured_ids: Optional[Dict[CapabilityKind, str]] = None,
        manifest: Optional[DeploymentManifest] = None,
        deployment_digest: Optional[str] = None,
        correlation_id: Optional[str] = None
    ):
        self.gateway = gateway
        self.package_id = normalize_address(package_id)
        self.coin_module = coin_module
        self.coin_witness = coin_witness
        self.policy = policy
        self.configured_ids = {
            kind: normalize_address(object_id)
            for kind, object_id in (configured_ids or {}).items()
            if object_id
        }
        self.manifest = manifest
        self.deployment_digest = deployment_digest or (
            manifest.transaction_digest if manifest else None
        )
        self.correlation_id = correlation_id
        self._cache: Dict[CacheKey, CapabilityRef] = {}

    # ========================================================================
    # Type Patterns
    # ========================================================================

    @property
    def coin_type(self) -> str:
        return f"{self.package_id}::{self.coin_module}::{self.coin_witness}"

    def pattern_for(self, kind: CapabilityKind) -> TypePattern:
        """Canonical type pattern of each capability kind."""
        if kind == CapabilityKind.TREASURY:
            return TypePattern(SUI_FRAMEWORK_ADDRESS, "coin", "TreasuryCap", type_argument=self.coin_type)
        if kind == CapabilityKind.ADMIN:
            return TypePattern(self.package_id, self.coin_module, "AdminCap")
        if kind == CapabilityKind.ADMIN_REGISTRY:
            return TypePattern(self.package_id, self.coin_module, "AdminRegistry")
        if kind == CapabilityKind.PAUSE_STATE:
            return TypePattern(self.package_id, self.coin_module, "EmergencyPauseState")
        return TypePattern(
            SUI_FRAMEWORK_ADDRESS, "package", "UpgradeCap",
            required_fields=(("package", self.package_id),)
        )

    # ========================================================================
    # Resolution
    # ========================================================================

    def resolve_owned(
        self,
        owner: str,
        kind: CapabilityKind,
        pattern: Optional[TypePattern] = None
    ) -> CapabilityRef:
        """
        Resolve a capability owned by `owner`.

        Reliability Level: SOVEREIGN TIER
        Input Constraints: owner is a ledger address
        Side Effects: Paginated owned-object query on cache miss

        Args:
            owner: Address expected to hold the capability
            kind: Capability kind
            pattern: Override of the canonical type pattern

        Returns:
            CapabilityRef with OwnedBy(owner)

        Raises:
            CapabilityNotFoundError: No owned object matches (CAP-LOC-001)
            CapabilityAmbiguousError: Several match under strict policy (CAP-LOC-002)
        """
        owner = normalize_address(owner)
        pattern = pattern or self.pattern_for(kind)
        cache_key = (kind, owner, pattern)
        if cache_key in self._cache:
            return self._cache[cache_key]

        head, _ = split_type(pattern.struct_tag())
        try:
            candidates = [
                obj for obj in self.gateway.get_owned_objects(owner, head)
                if pattern.matches(obj.get("type"), _fields_of(obj))
            ]
        except (LedgerRpcError, LedgerTransportError) as e:
            logger.warning(
                f"[CAP-LOC] Owned-object query failed, trying manifest | kind={kind.value} | "
                f"owner={owner} | error={e} | correlation_id={self.correlation_id}"
            )
            ref = self._from_manifest(kind, Ownership.owned_by(owner), pattern)
            if ref is None:
                raise
            return self._remember(cache_key, ref)

        if not candidates:
            logger.error(
                f"[CAP-LOC-001] Capability not found | kind={kind.value} | "
                f"owner={owner} | pattern={pattern} | correlation_id={self.correlation_id}"
            )
            raise CapabilityNotFoundError(
                f"No {kind.value} capability matching {pattern} owned by {owner}",
                context={"kind": kind.value, "owner": owner, "pattern": str(pattern)}
            )

        chosen = self._choose(kind, candidates, {"owner": owner, "pattern": str(pattern)})
        return self._remember(cache_key, self._to_ref(kind, chosen, "chain"))

    def resolve_shared(
        self,
        kind: CapabilityKind,
        pattern: Optional[TypePattern] = None
    ) -> CapabilityRef:
        """
        Resolve a shared capability object (AdminRegistry, PauseState).

        Raises:
            CapabilityNotFoundError: No shared object matches (CAP-LOC-001)
            CapabilityAmbiguousError: Several match under strict policy (CAP-LOC-002)
        """
        pattern = pattern or self.pattern_for(kind)
        cache_key = (kind, None, pattern)
        if cache_key in self._cache:
            return self._cache[cache_key]

        configured = self.configured_ids.get(kind)
        if configured:
            ref = self._verify_shared(kind, configured, pattern, "config")
            if ref is not None:
                return self._remember(cache_key, ref)

        try:
            candidates = self._shared_created_by_deployment(pattern)
        except (LedgerRpcError, LedgerTransportError) as e:
            logger.warning(
                f"[CAP-LOC] Deployment transaction lookup failed | kind={kind.value} | "
                f"error={e} | correlation_id={self.correlation_id}"
            )
            candidates = []

        if candidates:
            chosen = self._choose(kind, candidates, {"pattern": str(pattern)})
            return self._remember(cache_key, self._to_ref(kind, chosen, "deployment"))

        manifest_id = self._manifest_id(kind)
        if manifest_id:
            ref = self._verify_shared(kind, manifest_id, pattern, "manifest")
            if ref is not None:
                return self._remember(cache_key, ref)

        logger.error(
            f"[CAP-LOC-001] Shared capability not found | kind={kind.value} | "
            f"pattern={pattern} | correlation_id={self.correlation_id}"
        )
        raise CapabilityNotFoundError(
            f"No shared {kind.value} object matching {pattern}",
            context={"kind": kind.value, "pattern": str(pattern)}
        )

    def resolve_object(self, object_id: str, kind: CapabilityKind) -> CapabilityRef:
        """
        Resolve an explicitly named object and check it is of `kind`.

        Raises:
            CapabilityNotFoundError: Object missing or of another type
        """
        object_id = normalize_address(object_id)
        pattern = self.pattern_for(kind)
        obj = self.gateway.get_object(object_id)
        if obj is None or not pattern.matches(obj.get("type"), _fields_of(obj)):
            logger.error(
                f"[CAP-LOC-001] Object is not a {kind.value} capability | "
                f"object_id={object_id} | type={(obj or {}).get('type')} | "
                f"correlation_id={self.correlation_id}"
            )
            raise CapabilityNotFoundError(
                f"Object {object_id} is not a {kind.value} capability",
                context={"object_id": object_id, "kind": kind.value}
            )
        return self._to_ref(kind, obj, "chain")

    def invalidate(self, kind: Optional[CapabilityKind] = None) -> None:
        """Drop cached references (all, or one kind) after ownership changes."""
        if kind is None:
            self._cache.clear()
            return
        for key in [k for k in self._cache if k[0] == kind]:
            del self._cache[key]

    # ========================================================================
    # Internal Methods
    # ========================================================================

    def _choose(
        self,
        kind: CapabilityKind,
        candidates: List[Dict[str, Any]],
        context: Dict[str, Any]
    ) -> Dict[str, Any]:
        if len(candidates) == 1:
            return candidates[0]

        object_ids = [c.get("objectId") for c in candidates]
        if self.policy == AmbiguityPolicy.STRICT:
            logger.error(
                f"[CAP-LOC-002] Capability ambiguous | kind={kind.value} | "
                f"matches={object_ids} | correlation_id={self.correlation_id}"
            )
            raise CapabilityAmbiguousError(
                f"{len(candidates)} objects match {kind.value}: {object_ids}",
                context=dict(context, kind=kind.value, matches=object_ids)
            )
        logger.warning(
            f"[CAP-LOC-002] Capability ambiguous, using first match | kind={kind.value} | "
            f"chosen={object_ids[0]} | matches={object_ids} | "
            f"correlation_id={self.correlation_id}"
        )
        return candidates[0]

    def _shared_created_by_deployment(self, pattern: TypePattern) -> List[Dict[str, Any]]:
        if not self.deployment_digest:
            return []
        block = self.gateway.get_transaction_block(self.deployment_digest)
        if not block:
            return []
        matches = []
        for change in block.get("objectChanges") or []:
            if change.get("type") != "created":
                continue
            owner = change.get("owner")
            if not (isinstance(owner, dict) and "Shared" in owner):
                continue
            if pattern.matches(change.get("objectType")):
                matches.append({
                    "objectId": change.get("objectId"),
                    "type": change.get("objectType"),
                    "owner": owner,
                })
        return matches

    def _verify_shared(
        self,
        kind: CapabilityKind,
        object_id: str,
        pattern: TypePattern,
        source: str
    ) -> Optional[CapabilityRef]:
        try:
            obj = self.gateway.get_object(object_id)
        except (LedgerRpcError, LedgerTransportError) as e:
            logger.warning(
                f"[CAP-LOC] Could not verify {source} object | kind={kind.value} | "
                f"object_id={object_id} | error={e} | correlation_id={self.correlation_id}"
            )
            return None
        if obj is None or not pattern.matches(obj.get("type"), _fields_of(obj)):
            logger.warning(
                f"[CAP-LOC] {source} object does not match pattern | kind={kind.value} | "
                f"object_id={object_id} | type={(obj or {}).get('type')} | "
                f"correlation_id={self.correlation_id}"
            )
            return None
        ref = self._to_ref(kind, obj, source)
        if not ref.ownership.is_shared:
            logger.warning(
                f"[CAP-LOC] {source} object is not shared | kind={kind.value} | "
                f"object_id={object_id} | correlation_id={self.correlation_id}"
            )
            return None
        return ref

    def _manifest_id(self, kind: CapabilityKind) -> Optional[str]:
        if self.manifest is None:
            return None
        return getattr(self.manifest, _MANIFEST_FIELDS[kind])

    def _from_manifest(
        self,
        kind: CapabilityKind,
        ownership: Ownership,
        pattern: TypePattern
    ) -> Optional[CapabilityRef]:
        object_id = self._manifest_id(kind)
        if not object_id:
            return None
        logger.warning(
            f"[CAP-LOC] Using manifest object without on-chain verification | "
            f"kind={kind.value} | object_id={object_id} | correlation_id={self.correlation_id}"
        )
        return CapabilityRef(
            kind=kind,
            object_id=object_id,
            ownership=ownership,
            package_id=self.package_id,
            object_type=pattern.struct_tag(),
            source="manifest",
        )

    def _to_ref(self, kind: CapabilityKind, obj: Dict[str, Any], source: str) -> CapabilityRef:
        return CapabilityRef(
            kind=kind,
            object_id=normalize_address(obj["objectId"]),
            ownership=Ownership.from_rpc(obj.get("owner")),
            package_id=self.package_id,
            object_type=obj.get("type") or "",
            source=source,
        )

    def _remember(self, key: CacheKey, ref: CapabilityRef) -> CapabilityRef:
        self._cache[key] = ref
        record_capability_resolution(ref.kind.value, ref.source)
        logger.info(
            f"[CAP-LOC] Capability resolved | kind={ref.kind.value} | "
            f"object_id={ref.object_id} | ownership={ref.ownership.describe()} | "
            f"source={ref.source} | correlation_id={self.correlation_id}"
        )
        return ref


def _fields_of(obj: Dict[str, Any]) -> Dict[str, Any]:
    return ((obj or {}).get("content") or {}).get("fields") or {}
