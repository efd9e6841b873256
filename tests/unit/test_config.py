"""
Unit Tests for Network Configuration

Reliability Level: SOVEREIGN TIER
Python 3.8 Compatible

Tests NetworkConfig.from_environment:
- Defaults when optional variables are absent
- Network-prefixed variables take precedence
- Every problem reported in one CFG-001 error
- Key material redacted from to_dict and repr
"""

import os
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from capledger.config import (
    DEFAULT_GAS_BUDGET,
    DEFAULT_MAX_SUPPLY,
    DEFAULT_SETTLEMENT_DELAY_SECONDS,
    NetworkConfig,
)
from capledger.errors import ConfigurationError
from capledger.ledger.capability_locator import AmbiguityPolicy
from capledger.ledger.executor import ErrorKind
from capledger.ledger.objects import CapabilityKind

PACKAGE = "0x" + "ab" * 32


def base_env(**extra):
    env = {
        "SUI_NETWORK": "testnet",
        "PACKAGE_ID": PACKAGE,
        "DEPLOYER_PRIVATE_KEY": "c2VjcmV0",
    }
    env.update(extra)
    return env


# =============================================================================
# Defaults and Overrides
# =============================================================================

class TestFromEnvironment:

    def test_defaults(self):
        config = NetworkConfig.from_environment(environ=base_env())

        assert config.network == "testnet"
        assert config.rpc_url == "https://fullnode.testnet.sui.io:443"
        assert config.gas_budget == DEFAULT_GAS_BUDGET
        assert config.max_supply == DEFAULT_MAX_SUPPLY
        assert config.settlement_delay == DEFAULT_SETTLEMENT_DELAY_SECONDS
        assert config.ambiguity_policy == AmbiguityPolicy.STRICT
        assert config.security_mode == "DRY_RUN"
        assert config.security_live_confirmed is False
        assert config.mint_order is None
        assert config.capability_ids == {}

    def test_network_prefixed_variable_wins(self):
        env = base_env(
            SUI_NETWORK="devnet",
            RPC_URL="http://generic:9000",
            DEVNET_RPC_URL="http://devnet-node:9000",
        )
        config = NetworkConfig.from_environment(environ=env)
        assert config.rpc_url == "http://devnet-node:9000"

    def test_capability_ids_and_policies(self):
        env = base_env(
            TREASURY_CAP_ID="0x01",
            EMERGENCY_PAUSE_STATE_ID="0x04",
            CAPABILITY_AMBIGUITY_POLICY="warn",
            LEDGER_ABORT_CODES="1:AUTHORIZATION_DENIED",
            MINT_ARGUMENT_ORDER="treasury_cap,amount,pause_state,admin_registry",
            SECURITY_EXECUTION_MODE="live",
            SECURITY_LIVE_CONFIRMED="true",
        )
        config = NetworkConfig.from_environment(environ=env)

        assert config.capability_ids[CapabilityKind.TREASURY] == "0x" + "0" * 62 + "01"
        assert CapabilityKind.PAUSE_STATE in config.capability_ids
        assert config.ambiguity_policy == AmbiguityPolicy.WARN
        assert config.abort_codes == {1: ErrorKind.AUTHORIZATION_DENIED}
        assert config.mint_order == ("treasury_cap", "amount", "pause_state", "admin_registry")
        assert config.security_mode == "LIVE"
        assert config.security_live_confirmed is True

    def test_signer_optional_for_read_only_use(self):
        env = base_env()
        del env["DEPLOYER_PRIVATE_KEY"]
        config = NetworkConfig.from_environment(environ=env, require_signer=False)
        assert config.private_key is None


# =============================================================================
# Validation
# =============================================================================

class TestValidation:

    def test_all_errors_collected(self, tmp_path):
        env = {
            "SUI_NETWORK": "moonnet",
            "GAS_BUDGET": "lots",
            "CAPABILITY_AMBIGUITY_POLICY": "maybe",
            "DEPLOYMENT_MANIFEST": str(tmp_path / "missing.json"),
        }
        with pytest.raises(ConfigurationError) as exc_info:
            NetworkConfig.from_environment(environ=env)

        errors = exc_info.value.context["errors"]
        assert exc_info.value.error_code == "CFG-001"
        assert any("SUI_NETWORK" in e for e in errors)
        assert any("GAS_BUDGET" in e for e in errors)
        assert any("CAPABILITY_AMBIGUITY_POLICY" in e for e in errors)
        assert any("PACKAGE_ID" in e for e in errors)
        assert any("DEPLOYER_PRIVATE_KEY" in e for e in errors)

    def test_manifest_substitutes_for_package_id(self, tmp_path):
        manifest = tmp_path / "deployment-testnet.json"
        manifest.write_text('{"packageId": "0xab", "transactionDigest": "D"}')
        env = base_env(DEPLOYMENT_MANIFEST=str(manifest))
        del env["PACKAGE_ID"]

        config = NetworkConfig.from_environment(environ=env)
        assert config.package_id is None
        assert config.manifest_file == manifest

    def test_invalid_object_id_reported(self):
        with pytest.raises(ConfigurationError) as exc_info:
            NetworkConfig.from_environment(environ=base_env(ADMIN_CAP_ID="not-hex"))
        assert any("ADMIN_CAP_ID" in e for e in exc_info.value.context["errors"])

    def test_invalid_security_mode(self):
        with pytest.raises(ConfigurationError):
            NetworkConfig.from_environment(environ=base_env(SECURITY_EXECUTION_MODE="YOLO"))


class TestRedaction:

    def test_keys_redacted(self):
        config = NetworkConfig.from_environment(
            environ=base_env(SECURITY_ATTACKER_PRIVATE_KEY="YXR0YWNrZXI=")
        )
        data = config.to_dict()

        assert data["private_key"] == "[REDACTED]"
        assert data["attacker_private_key"] == "[REDACTED]"
        assert "c2VjcmV0" not in repr(config)
        assert "YXR0YWNrZXI=" not in repr(config)
