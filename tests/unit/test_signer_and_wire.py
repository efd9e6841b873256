"""
Unit Tests for Signing and Wire Encoding

Reliability Level: SOVEREIGN TIER
Python 3.8 Compatible

Tests:
- Ed25519 key loading (33-byte flagged, 32-byte raw) and missing keys
- Address derivation blake2b256(0x00 || public key)
- Serialized signature layout flag || signature || public key over the intent
- BCS primitives (ULEB128, u64 little-endian, addresses, byte vectors)
- Local transaction digest is stable for identical payloads
"""

import base64
import os
import sys

import pytest
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from capledger.errors import InvalidAddressError, MissingCredentialsError, SignerError
from capledger.ledger.bcs import (
    BcsWriter,
    decode_address,
    decode_byte_vector,
    decode_u64,
    encode_address,
    encode_byte_vector,
    encode_u64,
    normalize_address,
)
from capledger.ledger.signer import Ed25519Signer
from capledger.ledger.transaction import blake2b256, intent_message, transaction_digest

SECRET = bytes(range(32))


# =============================================================================
# Signer
# =============================================================================

class TestSigner:

    def test_flagged_and_raw_keys_give_same_address(self):
        flagged = Ed25519Signer.from_base64(base64.b64encode(b"\x00" + SECRET).decode())
        raw = Ed25519Signer.from_base64(base64.b64encode(SECRET).decode())
        assert flagged.address == raw.address

    def test_address_derivation(self):
        signer = Ed25519Signer.from_base64(base64.b64encode(SECRET).decode())
        expected = "0x" + blake2b256(b"\x00" + signer.public_key).hex()
        assert signer.address == expected
        assert len(signer.address) == 66

    def test_signature_layout_and_validity(self):
        signer = Ed25519Signer.generate()
        tx_bytes = b"\x00transaction-data"
        raw = base64.b64decode(signer.sign_transaction(tx_bytes))

        assert len(raw) == 97
        assert raw[0] == 0
        assert raw[65:] == signer.public_key
        Ed25519PublicKey.from_public_bytes(raw[65:]).verify(
            raw[1:65], blake2b256(intent_message(tx_bytes))
        )

    def test_intent_prefix(self):
        assert intent_message(b"abc") == b"\x00\x00\x00abc"

    @pytest.mark.parametrize("value", ["", "   "])
    def test_missing_key(self, value):
        with pytest.raises(MissingCredentialsError):
            Ed25519Signer.from_base64(value)

    def test_bad_key_material(self):
        with pytest.raises(SignerError):
            Ed25519Signer.from_base64("not base64!!")
        with pytest.raises(SignerError):
            Ed25519Signer.from_base64(base64.b64encode(b"short").decode())

    def test_repr_hides_key(self):
        signer = Ed25519Signer.from_base64(base64.b64encode(SECRET).decode())
        assert SECRET.hex() not in repr(signer)


# =============================================================================
# BCS
# =============================================================================

class TestBcs:

    @pytest.mark.parametrize("value,encoded", [
        (0, b"\x00"),
        (127, b"\x7f"),
        (128, b"\x80\x01"),
        (300, b"\xac\x02"),
    ])
    def test_uleb128(self, value, encoded):
        assert BcsWriter().write_uleb128(value).to_bytes() == encoded

    def test_u64_little_endian(self):
        assert encode_u64(1) == b"\x01" + b"\x00" * 7
        assert decode_u64(encode_u64(2 ** 64 - 1)) == 2 ** 64 - 1
        with pytest.raises(ValueError):
            encode_u64(2 ** 64)

    def test_address(self):
        assert encode_address("0x2") == b"\x00" * 31 + b"\x02"
        assert decode_address(encode_address("0x2")) == normalize_address("0x2")

    def test_byte_vector(self):
        assert encode_byte_vector(b"hi") == b"\x02hi"
        assert decode_byte_vector(b"\x02hi") == b"hi"

    def test_normalize_address(self):
        assert normalize_address("0X2") == "0x" + "0" * 63 + "2"
        with pytest.raises(InvalidAddressError):
            normalize_address("0x" + "1" * 65)
        with pytest.raises(InvalidAddressError):
            normalize_address("0xghij")


class TestDigest:

    def test_digest_stable_and_payload_sensitive(self):
        assert transaction_digest(b"payload") == transaction_digest(b"payload")
        assert transaction_digest(b"payload") != transaction_digest(b"payload2")
