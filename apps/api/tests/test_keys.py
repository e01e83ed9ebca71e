"""Tests for operator key parsing."""

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, ed25519

from agrodex_api.errors import ConfigurationError
from agrodex_api.ledger.keys import parse_operator_key


def _der_hex(private_key) -> str:
    return private_key.private_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).hex()


def test_der_ed25519():
    key_hex = _der_hex(ed25519.Ed25519PrivateKey.generate())
    assert key_hex.startswith("302e")

    key = parse_operator_key(key_hex)

    assert (key.algorithm, key.encoding) == ("ed25519", "der")


def test_der_ecdsa_secp256k1():
    key = parse_operator_key(_der_hex(ec.generate_private_key(ec.SECP256K1())))

    assert (key.algorithm, key.encoding) == ("ecdsa", "der")


def test_raw_ecdsa_with_prefix_and_whitespace():
    private_key = ec.generate_private_key(ec.SECP256K1())
    raw = private_key.private_numbers().private_value.to_bytes(32, "big").hex()
    expected_public = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.X962,
        format=serialization.PublicFormat.CompressedPoint,
    ).hex()

    key = parse_operator_key(f"  0x{raw.upper()}\n")

    assert (key.algorithm, key.encoding) == ("ecdsa", "raw")
    assert key.public_key_hex == expected_public


def test_raw_ed25519_with_explicit_type():
    private_key = ed25519.Ed25519PrivateKey.generate()
    raw = private_key.private_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PrivateFormat.Raw,
        encryption_algorithm=serialization.NoEncryption(),
    ).hex()
    expected_public = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    ).hex()

    key = parse_operator_key(raw, key_type="ed25519")

    assert key.algorithm == "ed25519"
    assert key.public_key_hex == expected_public


def test_raw_key_falls_back_to_ed25519():
    """Zero is not a valid secp256k1 scalar, so auto-detection settles on ED25519."""
    key = parse_operator_key("00" * 32)

    assert key.algorithm == "ed25519"


@pytest.mark.parametrize("value", ["", "not-hex-at-all", "abc", "ab" * 20])
def test_invalid_keys(value):
    with pytest.raises(ConfigurationError) as exc_info:
        parse_operator_key(value)

    assert exc_info.value.stage == "config"
    assert "Accepted formats" in exc_info.value.hint
