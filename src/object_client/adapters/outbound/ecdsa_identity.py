"""ECDSA (P-256) identity adapter.

Implements the ``Identity`` port with the ``cryptography`` package. Keys
can be loaded from a hex-encoded scalar, a WIF string or a PEM file.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import base58
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec

from object_client.domain.value_objects.identifiers import OwnerID

logger = logging.getLogger(__name__)

CURVE = ec.SECP256R1()
PRIVATE_KEY_SIZE = 32

_WIF_PREFIX = 0x80
_WIF_COMPRESSED_SUFFIX = 0x01


class KeyLoadError(ValueError):
    """Raised when a private key cannot be decoded."""

    pass


class EcdsaIdentity:
    """Signing identity backed by an ECDSA P-256 private key.

    Read-only after construction; safe to share between threads.

    Example:
        identity = EcdsaIdentity.load("L1...")  # WIF, hex or PEM path
        signature = identity.sign(b"payload")
        assert verify_signature(identity.public_key(), b"payload", signature)
    """

    def __init__(self, private_key: ec.EllipticCurvePrivateKey):
        if not isinstance(private_key.curve, ec.SECP256R1):
            raise KeyLoadError(f"unsupported curve {private_key.curve.name}")
        self._private_key = private_key
        self._public_key = private_key.public_key().public_bytes(
            serialization.Encoding.X962,
            serialization.PublicFormat.CompressedPoint,
        )
        self._owner_id = OwnerID.from_public_key(self._public_key)

    @classmethod
    def generate(cls) -> EcdsaIdentity:
        return cls(ec.generate_private_key(CURVE))

    @classmethod
    def from_hex(cls, value: str) -> EcdsaIdentity:
        try:
            raw = bytes.fromhex(value)
        except ValueError as e:
            raise KeyLoadError("private key is not valid hex") from e
        return cls._from_scalar(raw)

    @classmethod
    def from_wif(cls, value: str) -> EcdsaIdentity:
        try:
            raw = base58.b58decode_check(value)
        except ValueError as e:
            raise KeyLoadError("private key is not valid WIF") from e
        if (
            len(raw) != PRIVATE_KEY_SIZE + 2
            or raw[0] != _WIF_PREFIX
            or raw[-1] != _WIF_COMPRESSED_SUFFIX
        ):
            raise KeyLoadError("unsupported WIF layout")
        return cls._from_scalar(raw[1:-1])

    @classmethod
    def from_pem_file(cls, path: str | Path, password: Optional[bytes] = None) -> EcdsaIdentity:
        data = Path(path).read_bytes()
        try:
            key = serialization.load_pem_private_key(data, password=password)
        except (ValueError, TypeError) as e:
            raise KeyLoadError(f"can't load private key from {path}") from e
        if not isinstance(key, ec.EllipticCurvePrivateKey):
            raise KeyLoadError(f"{path} does not hold an EC private key")
        return cls(key)

    @classmethod
    def load(cls, value: str) -> EcdsaIdentity:
        """Load a key given as hex, WIF or the path of a PEM file."""
        if not value:
            raise KeyLoadError("empty private key")
        if Path(value).is_file():
            return cls.from_pem_file(value)
        if len(value) == 2 * PRIVATE_KEY_SIZE:
            return cls.from_hex(value)
        return cls.from_wif(value)

    @classmethod
    def _from_scalar(cls, raw: bytes) -> EcdsaIdentity:
        if len(raw) != PRIVATE_KEY_SIZE:
            raise KeyLoadError(f"private key must be {PRIVATE_KEY_SIZE} bytes, got {len(raw)}")
        try:
            return cls(ec.derive_private_key(int.from_bytes(raw, "big"), CURVE))
        except ValueError as e:
            raise KeyLoadError("private key scalar out of range") from e

    def sign(self, data: bytes) -> bytes:
        return self._private_key.sign(data, ec.ECDSA(hashes.SHA256()))

    def public_key(self) -> bytes:
        """Compressed SEC1 public key (33 bytes)."""
        return self._public_key

    def owner_id(self) -> OwnerID:
        return self._owner_id

    def to_pem(self) -> bytes:
        return self._private_key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        )

    def __repr__(self) -> str:
        return f"EcdsaIdentity(owner={self._owner_id})"


def verify_signature(public_key: bytes, data: bytes, signature: bytes) -> bool:
    """Check an ECDSA/SHA-256 signature against a SEC1-encoded public key."""
    try:
        key = ec.EllipticCurvePublicKey.from_encoded_point(CURVE, public_key)
        key.verify(signature, data, ec.ECDSA(hashes.SHA256()))
    except InvalidSignature:
        return False
    except ValueError:
        logger.debug("Malformed public key or signature")
        return False
    return True
