# ============================================================================
# Capledger v1.0.0
# Ed25519 Signer - Transaction Intent Signing
# ============================================================================
#
# Reliability Level: SOVEREIGN TIER (Mission-Critical)
# Purpose: Signs transaction data on behalf of the operator address
#
# SOVEREIGN MANDATE:
#   - Key material loaded ONLY from configuration / environment
#   - Key material NEVER appears in logs, reprs or error messages
#   - SEC-001 raised if key material is missing or undecodable
#
# Signature Format:
#   digest    = blake2b256(intent_prefix || transaction_data)
#   signature = base64(0x00 || ed25519(digest) || public_key)
#   address   = 0x || hex(blake2b256(0x00 || public_key))
#
# ============================================================================

import base64
import binascii
import logging
import os
from typing import Optional

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from capledger.errors import MissingCredentialsError, SignerError
from capledger.ledger.transaction import blake2b256, intent_message

logger = logging.getLogger(__name__)

ED25519_FLAG = 0x00
SECRET_KEY_LENGTH = 32


class Ed25519Signer:
    """
    Ed25519 transaction signer.

    Reliability Level: SOVEREIGN TIER
    Input Constraints: Base64 private key of 32 bytes, 33 bytes (scheme flag
        followed by the secret) or 64 bytes (secret followed by public key)
    Side Effects: Raises SEC-001 if key material missing

    Example Usage:
        signer = Ed25519Signer.from_environment()
        signature_b64 = signer.sign_transaction(tx_bytes)
    """

    ENV_PRIVATE_KEY = "DEPLOYER_PRIVATE_KEY"

    def __init__(self, private_key: Ed25519PrivateKey, correlation_id: Optional[str] = None):
        self._private_key = private_key
        self.correlation_id = correlation_id
        self._public_key = private_key.public_key().public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw,
        )
        self.address = "0x" + blake2b256(bytes([ED25519_FLAG]) + self._public_key).hex()
        logger.debug(
            f"[SEC] Signer initialized | address={self.address} | "
            f"private_key=[REDACTED] | correlation_id={correlation_id}"
        )

    @classmethod
    def from_base64(cls, encoded: str, correlation_id: Optional[str] = None) -> "Ed25519Signer":
        """
        Build a signer from base64 key material.

        Raises:
            MissingCredentialsError: If the key is empty
            SignerError: If the key does not decode to a supported length
        """
        if not encoded or not encoded.strip():
            logger.error(f"[SEC-001] Missing signer key | correlation_id={correlation_id}")
            raise MissingCredentialsError(
                f"Signer key material not set ({cls.ENV_PRIVATE_KEY})"
            )
        try:
            raw = base64.b64decode(encoded.strip(), validate=True)
        except (binascii.Error, ValueError):
            logger.error(f"[SEC-001] Signer key is not base64 | correlation_id={correlation_id}")
            raise SignerError("Signer key material is not valid base64")

        if len(raw) == SECRET_KEY_LENGTH + 1 and raw[0] == ED25519_FLAG:
            secret = raw[1:]
        elif len(raw) in (SECRET_KEY_LENGTH, SECRET_KEY_LENGTH * 2):
            secret = raw[:SECRET_KEY_LENGTH]
        else:
            logger.error(
                f"[SEC-001] Unsupported signer key length | length={len(raw)} | "
                f"correlation_id={correlation_id}"
            )
            raise SignerError(f"Signer key decodes to {len(raw)} bytes, expected 32, 33 or 64")

        return cls(Ed25519PrivateKey.from_private_bytes(secret), correlation_id)

    @classmethod
    def from_environment(cls, correlation_id: Optional[str] = None) -> "Ed25519Signer":
        return cls.from_base64(os.getenv(cls.ENV_PRIVATE_KEY, ""), correlation_id)

    @classmethod
    def generate(cls) -> "Ed25519Signer":
        """Fresh random signer, used for throwaway adversary identities."""
        return cls(Ed25519PrivateKey.generate())

    @property
    def public_key(self) -> bytes:
        return self._public_key

    def sign_transaction(self, transaction_data: bytes) -> str:
        """
        Sign serialized TransactionData.

        Returns:
            Base64 serialized signature (flag || signature || public key)
        """
        digest = blake2b256(intent_message(transaction_data))
        signature = self._private_key.sign(digest)
        return base64.b64encode(bytes([ED25519_FLAG]) + signature + self._public_key).decode("ascii")

    def __repr__(self) -> str:
        return f"Ed25519Signer(address={self.address})"
