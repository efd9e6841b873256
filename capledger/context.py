# ============================================================================
# Capledger v1.0.0
# Ledger Context - Explicit Per-Invocation Wiring
# ============================================================================
#
# Reliability Level: SOVEREIGN TIER (Mission-Critical)
# Purpose: Build every collaborator once and pass it explicitly
#
# SOVEREIGN MANDATE:
#   - No module-level clients, signers or caches
#   - One locator cache per context (per invocation, per identity)
#   - The gateway is closed when the context exits
#
# ============================================================================

import dataclasses
import logging
import time
import uuid
from typing import Callable, Dict, Mapping, Optional

from capledger.config import NetworkConfig
from capledger.errors import ConfigurationError
from capledger.ledger.amount_converter import AmountConverter
from capledger.ledger.capability_locator import CapabilityLocator
from capledger.ledger.executor import ErrorKind, SignedTransactionSubmitter, TransactionExecutor
from capledger.ledger.gateway import LedgerGateway
from capledger.ledger.operation_builder import OperationBuilder
from capledger.ledger.operations import LedgerOperations
from capledger.ledger.schemas import DeploymentManifest, load_manifest
from capledger.ledger.signer import Ed25519Signer
from capledger.ledger.simulated_ledger import SIMULATED_ABORT_CODES, SimulatedLedger
from capledger.ledger.status_reader import StatusReader
from capledger.ledger.sui_client import SuiRpcClient

logger = logging.getLogger(__name__)


class LedgerContext:
    """
    Everything one invocation needs, built once.

    Reliability Level: SOVEREIGN TIER
    Input Constraints: config.package_id set (or resolvable from the manifest)
    Side Effects: Owns the gateway; closes it on exit

    Example Usage:
        with LedgerContext.from_config(NetworkConfig.from_environment()) as ctx:
            ctx.operations.mint("1.0", recipient)
    """

    def __init__(
        self,
        config: NetworkConfig,
        gateway: LedgerGateway,
        signer: Ed25519Signer,
        manifest: Optional[DeploymentManifest] = None,
        abort_codes: Optional[Mapping[int, ErrorKind]] = None,
        sleep: Callable[[float], None] = time.sleep,
        correlation_id: Optional[str] = None
    ):
        package_id = config.package_id or (manifest.package_id if manifest else None)
        if not package_id:
            raise ConfigurationError(
                "No package id: set PACKAGE_ID or provide a deployment manifest",
                context={"network": config.network}
            )

        self.config = config
        self.gateway = gateway
        self.signer = signer
        self.manifest = manifest
        self.package_id = package_id
        self.correlation_id = correlation_id or str(uuid.uuid4())
        self._sleep = sleep
        self._abort_codes: Dict[int, ErrorKind] = dict(
            abort_codes if abort_codes is not None else config.abort_codes
        )

        self.converter = AmountConverter()
        self.locator = CapabilityLocator(
            gateway,
            package_id,
            coin_module=config.coin_module,
            coin_witness=config.coin_witness,
            policy=config.ambiguity_policy,
            configured_ids=config.capability_ids,
            manifest=manifest,
            deployment_digest=config.deployment_digest,
            correlation_id=self.correlation_id,
        )
        self.builder = OperationBuilder(
            package_id,
            coin_module=config.coin_module,
            converter=self.converter,
            mint_order=config.mint_order,
            max_supply=config.max_supply,
            correlation_id=self.correlation_id,
        )
        self.executor = TransactionExecutor(
            SignedTransactionSubmitter(gateway, signer, self.correlation_id),
            gas_budget=config.gas_budget,
            abort_codes=self._abort_codes,
            settlement_delay=config.settlement_delay,
            sleep=sleep,
            correlation_id=self.correlation_id,
        )
        self.reader = StatusReader(self.locator, self.correlation_id)
        self.operations = LedgerOperations(
            self.locator, self.builder, self.executor, self.reader, self.correlation_id
        )

    @property
    def address(self) -> str:
        return self.signer.address

    @property
    def simulated(self) -> bool:
        return isinstance(self.gateway, SimulatedLedger)

    # ========================================================================
    # Construction
    # ========================================================================

    @classmethod
    def from_config(cls, config: NetworkConfig, correlation_id: Optional[str] = None) -> "LedgerContext":
        """
        Wire a context against the configured ledger node.

        Raises:
            MissingCredentialsError / SignerError: Key material unusable
            ManifestError: Manifest present but malformed
            ConfigurationError: No package id available
        """
        correlation_id = correlation_id or str(uuid.uuid4())
        signer = Ed25519Signer.from_base64(config.private_key or "", correlation_id)
        manifest = load_manifest(config.manifest_file) if config.manifest_file.is_file() else None
        gateway = SuiRpcClient(config.rpc_url, timeout=config.rpc_timeout, correlation_id=correlation_id)
        logger.info(
            f"[CTX] Ledger context ready | network={config.network} | signer={signer.address} | "
            f"manifest={config.manifest_file if manifest else None} | correlation_id={correlation_id}"
        )
        return cls(config, gateway, signer, manifest=manifest, correlation_id=correlation_id)

    @classmethod
    def simulated_context(
        cls,
        config: Optional[NetworkConfig] = None,
        signer: Optional[Ed25519Signer] = None,
        ledger: Optional[SimulatedLedger] = None,
        correlation_id: Optional[str] = None
    ) -> "LedgerContext":
        """
        Context over a fresh SimulatedLedger deployed by `signer`.

        The signer becomes the administrator and holds every owned
        capability. Settlement delay is zero.
        """
        config = config or NetworkConfig()
        signer = signer or Ed25519Signer.generate()
        if ledger is None:
            ledger = SimulatedLedger(
                coin_module=config.coin_module,
                coin_witness=config.coin_witness,
                max_supply=config.max_supply,
            )
            digest = ledger.deploy(signer.address)
            ledger.fund_gas(signer.address)
        else:
            digest = config.deployment_digest

        sim_config = dataclasses.replace(
            config,
            package_id=ledger.package_id,
            capability_ids={},
            deployment_digest=digest,
            settlement_delay=0.0,
            load_errors=[],
        )
        return cls(
            sim_config, ledger, signer,
            abort_codes=SIMULATED_ABORT_CODES,
            correlation_id=correlation_id,
        )

    def for_signer(self, signer: Ed25519Signer) -> "LedgerContext":
        """Context for another identity on the same ledger, with its own locator cache."""
        return LedgerContext(
            self.config,
            self.gateway,
            signer,
            manifest=self.manifest,
            abort_codes=self._abort_codes,
            sleep=self._sleep,
            correlation_id=self.correlation_id,
        )

    # ========================================================================
    # Lifecycle
    # ========================================================================

    def close(self) -> None:
        self.gateway.close()

    def __enter__(self) -> "LedgerContext":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
