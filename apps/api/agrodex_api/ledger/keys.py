"""Operator key parsing for ledger signing."""

import logging
import re
from dataclasses import dataclass

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, ed25519

from agrodex_api.errors import ConfigurationError

logger = logging.getLogger(__name__)

DER_PREFIXES = ("302e", "3030", "3081")
_HEX_RE = re.compile(r"^[0-9a-f]+$")

ACCEPTED_FORMATS = (
    "DER hex (302e.../3030.../3081...), raw 64-hex ECDSA secp256k1 or raw 64-hex ED25519, "
    "optionally prefixed with 0x"
)


@dataclass(frozen=True)
class OperatorKey:
    """A validated operator private key."""

    algorithm: str  # ed25519 | ecdsa
    encoding: str  # der | raw
    key_hex: str
    public_key_hex: str


def normalize_key_text(value: str) -> str:
    """Strip whitespace and an optional 0x prefix."""
    cleaned = re.sub(r"\s+", "", value or "").lower()
    if cleaned.startswith("0x"):
        cleaned = cleaned[2:]
    return cleaned


def _public_hex(private_key) -> str:
    public_key = private_key.public_key()
    if isinstance(public_key, ed25519.Ed25519PublicKey):
        raw = public_key.public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw,
        )
    else:
        raw = public_key.public_bytes(
            encoding=serialization.Encoding.X962,
            format=serialization.PublicFormat.CompressedPoint,
        )
    return raw.hex()


def _parse_der(key_hex: str) -> OperatorKey:
    private_key = serialization.load_der_private_key(bytes.fromhex(key_hex), password=None)
    if isinstance(private_key, ed25519.Ed25519PrivateKey):
        algorithm = "ed25519"
    elif isinstance(private_key, ec.EllipticCurvePrivateKey) and isinstance(
        private_key.curve, ec.SECP256K1
    ):
        algorithm = "ecdsa"
    else:
        raise ValueError(f"unsupported DER key type {type(private_key).__name__}")
    return OperatorKey(algorithm, "der", key_hex, _public_hex(private_key))


def _parse_raw_ecdsa(key_hex: str) -> OperatorKey:
    private_key = ec.derive_private_key(int(key_hex, 16), ec.SECP256K1())
    return OperatorKey("ecdsa", "raw", key_hex, _public_hex(private_key))


def _parse_raw_ed25519(key_hex: str) -> OperatorKey:
    private_key = ed25519.Ed25519PrivateKey.from_private_bytes(bytes.fromhex(key_hex))
    return OperatorKey("ed25519", "raw", key_hex, _public_hex(private_key))


def parse_operator_key(value: str, key_type: str = "auto") -> OperatorKey:
    """
    Parse an operator key in any accepted encoding.

    DER keys carry their algorithm. Raw 64-hex keys are ambiguous: ``key_type``
    selects the algorithm, and ``auto`` tries ECDSA before ED25519.
    """
    key_hex = normalize_key_text(value)
    if not key_hex:
        raise ConfigurationError("HEDERA_OPERATOR_KEY is not set", hint=f"Accepted formats: {ACCEPTED_FORMATS}")
    if not _HEX_RE.match(key_hex) or len(key_hex) % 2:
        raise ConfigurationError(
            "HEDERA_OPERATOR_KEY is not valid hex",
            hint=f"Accepted formats: {ACCEPTED_FORMATS}",
        )

    if key_hex.startswith(DER_PREFIXES):
        parsers = [_parse_der]
    elif len(key_hex) == 64:
        parsers = {
            "ecdsa": [_parse_raw_ecdsa],
            "ed25519": [_parse_raw_ed25519],
        }.get(key_type, [_parse_raw_ecdsa, _parse_raw_ed25519])
    else:
        parsers = []

    errors = []
    for parser in parsers:
        try:
            key = parser(key_hex)
            logger.info(f"Operator key loaded: {key.algorithm} ({key.encoding})")
            return key
        except ValueError as e:
            errors.append(f"{parser.__name__.lstrip('_')}: {e}")

    raise ConfigurationError(
        f"Unable to parse HEDERA_OPERATOR_KEY (length {len(key_hex)})",
        hint=f"Accepted formats: {ACCEPTED_FORMATS}",
        details=errors or None,
    )
