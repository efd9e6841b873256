"""
============================================================================
Capledger v1.0.0
Network Configuration
============================================================================

Reliability Level: SOVEREIGN TIER (Mission-Critical)
Traceability: Every loaded value is logged (key material redacted)

This module provides configuration management for ledger operations:
- Environment variable parsing with type safety
- Network-prefixed overrides (<NETWORK>_<NAME> wins over <NAME>)
- Default values for optional configuration
- Fail-closed behavior on missing required config (CFG-001)

ENVIRONMENT VARIABLES:
    - SUI_NETWORK: testnet | mainnet | devnet | localnet (default: testnet)
    - RPC_URL: Node endpoint (default: public fullnode of the network)
    - PACKAGE_ID: Deployed token package (falls back to the manifest)
    - COIN_MODULE / COIN_WITNESS: Token module and witness struct
    - TREASURY_CAP_ID, ADMIN_CAP_ID, ADMIN_REGISTRY_ID,
      EMERGENCY_PAUSE_STATE_ID, UPGRADE_CAP_ID: Optional capability seeds
    - DEPLOYER_PRIVATE_KEY: Base64 Ed25519 key of the operator
    - GAS_BUDGET: Per-transaction gas budget (default: 50000000)
    - MAX_SUPPLY_BASE_UNITS: Supply cap (default: 10^18)
    - LEDGER_RPC_TIMEOUT_SECONDS: Per-call timeout (default: 30)
    - DEPLOYMENT_MANIFEST: Manifest path (default: deployment-<network>.json)
    - DEPLOYMENT_DIGEST: Deployment transaction digest
    - CAPABILITY_AMBIGUITY_POLICY: strict | warn (default: strict)
    - MINT_ARGUMENT_ORDER: Comma-separated mint slots
    - LEDGER_ABORT_CODES: code:KIND pairs, comma-separated
    - SETTLEMENT_DELAY_SECONDS: Wait after each mutation (default: 3)
    - SECURITY_EXECUTION_MODE: DRY_RUN | LIVE (default: DRY_RUN)
    - SECURITY_LIVE_CONFIRMED: Must be TRUE for LIVE security runs
    - SECURITY_ATTACKER_PRIVATE_KEY: Adversary key (default: freshly generated)

ERROR CODES:
    - CFG-001: Required configuration missing or malformed

============================================================================
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

from capledger.errors import CallContractError, ConfigurationError, InvalidAddressError
from capledger.ledger.bcs import normalize_address
from capledger.ledger.capability_locator import AmbiguityPolicy
from capledger.ledger.executor import ErrorKind, parse_abort_codes
from capledger.ledger.objects import CapabilityKind
from capledger.ledger.operation_builder import parse_mint_order

logger = logging.getLogger(__name__)


# =============================================================================
# Default Values
# =============================================================================

DEFAULT_NETWORK = "testnet"

DEFAULT_RPC_URLS: Dict[str, str] = {
    "mainnet": "https://fullnode.mainnet.sui.io:443",
    "testnet": "https://fullnode.testnet.sui.io:443",
    "devnet": "https://fullnode.devnet.sui.io:443",
    "localnet": "http://127.0.0.1:9000",
}

DEFAULT_COIN_MODULE = "HetraCoin"
DEFAULT_COIN_WITNESS = "HETRACOIN"
DEFAULT_GAS_BUDGET = 50_000_000
DEFAULT_MAX_SUPPLY = 10 ** 18
DEFAULT_RPC_TIMEOUT_SECONDS = 30.0
DEFAULT_SETTLEMENT_DELAY_SECONDS = 3.0

SECURITY_MODES = ("DRY_RUN", "LIVE")

CAPABILITY_ENV_VARS: Dict[CapabilityKind, str] = {
    CapabilityKind.TREASURY: "TREASURY_CAP_ID",
    CapabilityKind.ADMIN: "ADMIN_CAP_ID",
    CapabilityKind.ADMIN_REGISTRY: "ADMIN_REGISTRY_ID",
    CapabilityKind.PAUSE_STATE: "EMERGENCY_PAUSE_STATE_ID",
    CapabilityKind.UPGRADE: "UPGRADE_CAP_ID",
}


# =============================================================================
# NetworkConfig Class
# =============================================================================

@dataclass
class NetworkConfig:
    """
    Per-invocation ledger configuration.

    Reliability Level: SOVEREIGN TIER
    Input Constraints: package_id (or a manifest) and a signer key for
        live operation
    Side Effects: Logs configuration on load (key material redacted)
    """

    network: str = DEFAULT_NETWORK
    rpc_url: str = DEFAULT_RPC_URLS[DEFAULT_NETWORK]
    package_id: Optional[str] = None
    coin_module: str = DEFAULT_COIN_MODULE
    coin_witness: str = DEFAULT_COIN_WITNESS
    capability_ids: Dict[CapabilityKind, str] = field(default_factory=dict)
    private_key: Optional[str] = field(default=None, repr=False)
    gas_budget: int = DEFAULT_GAS_BUDGET
    max_supply: int = DEFAULT_MAX_SUPPLY
    rpc_timeout: float = DEFAULT_RPC_TIMEOUT_SECONDS
    manifest_path: Optional[str] = None
    deployment_digest: Optional[str] = None
    ambiguity_policy: AmbiguityPolicy = AmbiguityPolicy.STRICT
    mint_order: Optional[Tuple[str, ...]] = None
    abort_codes: Dict[int, ErrorKind] = field(default_factory=dict)
    settlement_delay: float = DEFAULT_SETTLEMENT_DELAY_SECONDS
    security_mode: str = "DRY_RUN"
    security_live_confirmed: bool = False
    attacker_private_key: Optional[str] = field(default=None, repr=False)
    load_errors: List[str] = field(default_factory=list, repr=False)

    @property
    def manifest_file(self) -> Path:
        return Path(self.manifest_path or f"deployment-{self.network}.json")

    def validate(self, require_signer: bool = True) -> None:
        """
        Validate configuration completeness.

        Every problem is collected first so the operator sees the whole
        list in one CFG-001 error.

        Raises:
            ConfigurationError: If required configuration is missing or malformed
        """
        errors: List[str] = list(self.load_errors)

        if self.network not in DEFAULT_RPC_URLS:
            errors.append(
                f"SUI_NETWORK must be one of {sorted(DEFAULT_RPC_URLS)}, got: {self.network}"
            )
        if not self.rpc_url:
            errors.append("RPC_URL is empty")
        if not self.package_id and not self.manifest_file.is_file():
            errors.append(
                f"PACKAGE_ID is not set and no deployment manifest exists at {self.manifest_file}"
            )
        if require_signer and not self.private_key:
            errors.append("DEPLOYER_PRIVATE_KEY is not set")
        if self.gas_budget <= 0:
            errors.append(f"GAS_BUDGET must be positive, got: {self.gas_budget}")
        if self.max_supply <= 0:
            errors.append(f"MAX_SUPPLY_BASE_UNITS must be positive, got: {self.max_supply}")
        if self.rpc_timeout <= 0:
            errors.append(f"LEDGER_RPC_TIMEOUT_SECONDS must be positive, got: {self.rpc_timeout}")
        if self.settlement_delay < 0:
            errors.append(f"SETTLEMENT_DELAY_SECONDS must be non-negative, got: {self.settlement_delay}")
        if self.security_mode not in SECURITY_MODES:
            errors.append(f"SECURITY_EXECUTION_MODE must be DRY_RUN or LIVE, got: {self.security_mode}")

        if errors:
            error_msg = "Configuration validation failed: " + "; ".join(errors)
            logger.error(f"[CFG-001] {error_msg}")
            raise ConfigurationError(error_msg, context={"errors": errors, "network": self.network})

        logger.info(
            f"[CONFIG] Configuration validated | network={self.network} | "
            f"rpc_url={self.rpc_url} | package_id={self.package_id} | "
            f"gas_budget={self.gas_budget} | policy={self.ambiguity_policy.value} | "
            f"security_mode={self.security_mode}"
        )

    @classmethod
    def from_environment(
        cls,
        validate: bool = True,
        require_signer: bool = True,
        environ: Optional[Mapping[str, str]] = None
    ) -> "NetworkConfig":
        """
        Load configuration from environment variables.

        Args:
            validate: Whether to validate configuration after loading
            require_signer: Whether DEPLOYER_PRIVATE_KEY is mandatory
            environ: Mapping to read instead of os.environ

        Returns:
            NetworkConfig instance with values from environment

        Raises:
            ConfigurationError: If required configuration is missing (CFG-001)
        """
        env = os.environ if environ is None else environ
        network = (env.get("SUI_NETWORK") or DEFAULT_NETWORK).strip().lower()
        reader = _EnvReader(env, network)

        capability_ids: Dict[CapabilityKind, str] = {}
        for kind, name in CAPABILITY_ENV_VARS.items():
            value = reader.address(name)
            if value:
                capability_ids[kind] = value

        policy_text = (reader.get("CAPABILITY_AMBIGUITY_POLICY") or "strict").lower()
        try:
            policy = AmbiguityPolicy(policy_text)
        except ValueError:
            reader.errors.append(f"CAPABILITY_AMBIGUITY_POLICY must be strict or warn, got: {policy_text}")
            policy = AmbiguityPolicy.STRICT

        mint_order = None
        if reader.get("MINT_ARGUMENT_ORDER"):
            try:
                mint_order = parse_mint_order(reader.get("MINT_ARGUMENT_ORDER"))
            except CallContractError as e:
                reader.errors.append(f"MINT_ARGUMENT_ORDER: {e.message}")

        abort_codes: Dict[int, ErrorKind] = {}
        try:
            abort_codes = parse_abort_codes(reader.get("LEDGER_ABORT_CODES"))
        except (ValueError, KeyError) as e:
            reader.errors.append(f"LEDGER_ABORT_CODES: {e}")

        config = cls(
            network=network,
            rpc_url=reader.get("RPC_URL") or DEFAULT_RPC_URLS.get(network, ""),
            package_id=reader.address("PACKAGE_ID"),
            coin_module=reader.get("COIN_MODULE") or DEFAULT_COIN_MODULE,
            coin_witness=reader.get("COIN_WITNESS") or DEFAULT_COIN_WITNESS,
            capability_ids=capability_ids,
            private_key=reader.get("DEPLOYER_PRIVATE_KEY"),
            gas_budget=reader.integer("GAS_BUDGET", DEFAULT_GAS_BUDGET),
            max_supply=reader.integer("MAX_SUPPLY_BASE_UNITS", DEFAULT_MAX_SUPPLY),
            rpc_timeout=reader.number("LEDGER_RPC_TIMEOUT_SECONDS", DEFAULT_RPC_TIMEOUT_SECONDS),
            manifest_path=reader.get("DEPLOYMENT_MANIFEST"),
            deployment_digest=reader.get("DEPLOYMENT_DIGEST"),
            ambiguity_policy=policy,
            mint_order=mint_order,
            abort_codes=abort_codes,
            settlement_delay=reader.number("SETTLEMENT_DELAY_SECONDS", DEFAULT_SETTLEMENT_DELAY_SECONDS),
            security_mode=(reader.get("SECURITY_EXECUTION_MODE") or "DRY_RUN").upper(),
            security_live_confirmed=(reader.get("SECURITY_LIVE_CONFIRMED") or "").upper() == "TRUE",
            attacker_private_key=reader.get("SECURITY_ATTACKER_PRIVATE_KEY"),
            load_errors=reader.errors,
        )

        logger.info(
            f"[CONFIG] Loading configuration from environment | network={config.network} | "
            f"rpc_url={config.rpc_url} | package_id={config.package_id} | "
            f"capability_ids={len(capability_ids)} | "
            f"private_key={'[REDACTED]' if config.private_key else None}"
        )

        if validate:
            config.validate(require_signer=require_signer)
        return config

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging (key material redacted)."""
        return {
            "network": self.network,
            "rpc_url": self.rpc_url,
            "package_id": self.package_id,
            "coin_module": self.coin_module,
            "coin_witness": self.coin_witness,
            "capability_ids": {k.value: v for k, v in self.capability_ids.items()},
            "private_key": "[REDACTED]" if self.private_key else None,
            "gas_budget": self.gas_budget,
            "max_supply": self.max_supply,
            "rpc_timeout": self.rpc_timeout,
            "manifest_path": str(self.manifest_file),
            "deployment_digest": self.deployment_digest,
            "ambiguity_policy": self.ambiguity_policy.value,
            "mint_order": list(self.mint_order) if self.mint_order else None,
            "abort_codes": {code: kind.value for code, kind in self.abort_codes.items()},
            "settlement_delay": self.settlement_delay,
            "security_mode": self.security_mode,
            "security_live_confirmed": self.security_live_confirmed,
            "attacker_private_key": "[REDACTED]" if self.attacker_private_key else None,
        }


class _EnvReader:
    """Network-aware environment lookup that collects parse errors."""

    def __init__(self, env: Mapping[str, str], network: str):
        self.env = env
        self.prefix = network.upper()
        self.errors: List[str] = []

    def get(self, name: str) -> Optional[str]:
        for key in (f"{self.prefix}_{name}", name):
            value = self.env.get(key)
            if value is not None and value.strip():
                return value.strip()
        return None

    def address(self, name: str) -> Optional[str]:
        value = self.get(name)
        if value is None:
            return None
        try:
            return normalize_address(value)
        except InvalidAddressError:
            self.errors.append(f"{name} is not a valid object id or address: {value}")
            return None

    def integer(self, name: str, default: int) -> int:
        value = self.get(name)
        if value is None:
            return default
        try:
            return int(value)
        except ValueError:
            self.errors.append(f"{name} must be an integer, got: {value}")
            return default

    def number(self, name: str, default: float) -> float:
        value = self.get(name)
        if value is None:
            return default
        try:
            return float(value)
        except ValueError:
            self.errors.append(f"{name} must be a number, got: {value}")
            return default
