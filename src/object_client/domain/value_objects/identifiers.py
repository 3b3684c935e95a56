"""Object, container and owner identifiers.

All identifiers are fixed-width byte strings compared byte-wise. Their
textual forms follow the storage network conventions:

- ObjectID: canonical UUID string (16 bytes)
- ContainerID: base58 (32 bytes, SHA-256 of the container structure)
- OwnerID: base58 (25 bytes, derived from a public key)
"""

from __future__ import annotations

import hashlib
import uuid
from dataclasses import dataclass

import base58

OBJECT_ID_SIZE = 16
CONTAINER_ID_SIZE = 32
OWNER_ID_SIZE = 25

# Address version byte of the owning wallet
OWNER_ID_VERSION = 0x35


class IdentifierError(ValueError):
    """Raised when an identifier cannot be parsed."""

    pass


def _double_sha256(data: bytes) -> bytes:
    return hashlib.sha256(hashlib.sha256(data).digest()).digest()


def _b58decode(value: str, kind: str) -> bytes:
    try:
        return base58.b58decode(value)
    except ValueError as e:
        raise IdentifierError(f"can't parse {kind} '{value}': {e}") from e


@dataclass(frozen=True)
class ObjectID:
    """Identifier of a stored object."""

    value: bytes

    def __post_init__(self) -> None:
        if len(self.value) != OBJECT_ID_SIZE:
            raise IdentifierError(
                f"object id must be {OBJECT_ID_SIZE} bytes, got {len(self.value)}"
            )

    @classmethod
    def new(cls) -> ObjectID:
        """Generate a random object ID for a new object."""
        return cls(uuid.uuid4().bytes)

    @classmethod
    def parse(cls, text: str) -> ObjectID:
        try:
            return cls(uuid.UUID(text).bytes)
        except ValueError as e:
            raise IdentifierError(f"can't parse object id '{text}'") from e

    def __str__(self) -> str:
        return str(uuid.UUID(bytes=self.value))


@dataclass(frozen=True)
class ContainerID:
    """Identifier of a container."""

    value: bytes

    def __post_init__(self) -> None:
        if len(self.value) != CONTAINER_ID_SIZE:
            raise IdentifierError(
                f"container id must be {CONTAINER_ID_SIZE} bytes, got {len(self.value)}"
            )

    @classmethod
    def parse(cls, text: str) -> ContainerID:
        if not text:
            raise IdentifierError("empty container id")
        raw = _b58decode(text, "CID")
        try:
            return cls(raw)
        except IdentifierError as e:
            raise IdentifierError(f"can't parse CID '{text}': {e}") from e

    @classmethod
    def from_structure(cls, data: bytes) -> ContainerID:
        """Derive the ID of a container from its serialized structure."""
        return cls(hashlib.sha256(data).digest())

    def __str__(self) -> str:
        return base58.b58encode(self.value).decode("ascii")


@dataclass(frozen=True)
class OwnerID:
    """Identity derived deterministically from a public key."""

    value: bytes

    def __post_init__(self) -> None:
        if len(self.value) != OWNER_ID_SIZE:
            raise IdentifierError(
                f"owner id must be {OWNER_ID_SIZE} bytes, got {len(self.value)}"
            )

    @classmethod
    def from_public_key(cls, public_key: bytes) -> OwnerID:
        """Compute the owner ID of a (compressed) public key.

        Args:
            public_key: Serialized public key.

        Returns:
            Version byte, 20-byte key digest and 4-byte checksum.
        """
        if not public_key:
            raise IdentifierError("could not compute owner ID: empty public key")
        body = bytes([OWNER_ID_VERSION]) + _double_sha256(public_key)[:20]
        return cls(body + _double_sha256(body)[:4])

    @classmethod
    def parse(cls, text: str) -> OwnerID:
        raw = _b58decode(text, "owner id")
        owner = cls(raw)
        if _double_sha256(raw[:-4])[:4] != raw[-4:]:
            raise IdentifierError(f"owner id '{text}' has invalid checksum")
        return owner

    def __str__(self) -> str:
        return base58.b58encode(self.value).decode("ascii")


@dataclass(frozen=True)
class Address:
    """Location of an object: container plus object ID."""

    container_id: ContainerID
    object_id: ObjectID

    @classmethod
    def parse(cls, text: str) -> Address:
        """Parse ``<container id>/<object id>``."""
        cid, sep, oid = text.partition("/")
        if not sep:
            raise IdentifierError(f"address must have form 'CID/OID', got '{text}'")
        return cls(ContainerID.parse(cid), ObjectID.parse(oid))

    def __str__(self) -> str:
        return f"{self.container_id}/{self.object_id}"
