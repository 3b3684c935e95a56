"""Object header entity."""

from __future__ import annotations

import struct
from dataclasses import dataclass, field, replace
from typing import Callable

from object_client.domain.value_objects.identifiers import Address, ContainerID, ObjectID, OwnerID

SignatureCheck = Callable[[bytes, bytes, bytes], bool]


@dataclass(frozen=True)
class ObjectHeader:
    """System and user headers of a stored object.

    A tombstone is an object standing in for a deleted one; it is signed
    by its owner so a client can tell a genuine removal from corruption.
    """

    object_id: ObjectID
    container_id: ContainerID
    owner_id: OwnerID
    payload_length: int = 0
    user_headers: dict[str, str] = field(default_factory=dict)
    tombstone: bool = False
    created_epoch: int = 0
    public_key: bytes = b""
    signature: bytes = b""

    @property
    def address(self) -> Address:
        return Address(self.container_id, self.object_id)

    def signed_body(self) -> bytes:
        """Canonical bytes covered by the owner signature."""
        parts = [
            self.object_id.value,
            self.container_id.value,
            self.owner_id.value,
            struct.pack(">QQ?", self.payload_length, self.created_epoch, self.tombstone),
        ]
        for key in sorted(self.user_headers):
            k = key.encode("utf-8")
            v = self.user_headers[key].encode("utf-8")
            parts.append(struct.pack(">I", len(k)) + k + struct.pack(">I", len(v)) + v)
        return b"".join(parts)

    def with_signature(self, public_key: bytes, signature: bytes) -> ObjectHeader:
        return replace(self, public_key=public_key, signature=signature)

    def verify(self, check: SignatureCheck) -> bool:
        """Check the owner signature with ``check(public_key, body, signature)``.

        Returns:
            True if the header is signed by the key its owner ID derives from.
        """
        if not self.public_key or not self.signature:
            return False
        if OwnerID.from_public_key(self.public_key) != self.owner_id:
            return False
        return check(self.public_key, self.signed_body(), self.signature)
