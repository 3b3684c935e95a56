"""Session token entity.

A token authorizes one verb on a set of objects for a window of epochs.
The client builds it unsigned, the node echoes its own view of it, the
client signs the echoed body, and the node returns the countersigned
result. Once returned the token is never modified.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Iterable, Optional

from object_client.domain.errors import TokenScopeError
from object_client.domain.value_objects.byte_range import MAX_UINT64
from object_client.domain.value_objects.identifiers import ObjectID, OwnerID


class Verb(Enum):
    """Operation a token authorizes."""
    GET = "get"
    PUT = "put"
    HEAD = "head"
    DELETE = "delete"
    SEARCH = "search"
    RANGE = "range"
    RANGE_HASH = "rangehash"


_VERB_CODES = {verb: code for code, verb in enumerate(Verb, start=1)}


@dataclass(frozen=True)
class ValidityWindow:
    """Inclusive epoch interval in which a token is valid."""

    first_epoch: int = 0
    last_epoch: int = MAX_UINT64

    def __post_init__(self) -> None:
        if not (0 <= self.first_epoch <= MAX_UINT64 and 0 <= self.last_epoch <= MAX_UINT64):
            raise ValueError("epochs must fit in uint64")
        if self.first_epoch > self.last_epoch:
            raise ValueError(
                f"first epoch {self.first_epoch} is after last epoch {self.last_epoch}"
            )

    def within(self, other: ValidityWindow) -> bool:
        """True if this window is equal to or narrower than ``other``."""
        return other.first_epoch <= self.first_epoch and self.last_epoch <= other.last_epoch

    def contains(self, epoch: int) -> bool:
        return self.first_epoch <= epoch <= self.last_epoch


@dataclass(frozen=True)
class Token:
    """Scoped, time-bounded session token."""

    owner_id: OwnerID
    verb: Verb
    scope: frozenset[ObjectID] = field(default_factory=frozenset)
    window: ValidityWindow = field(default_factory=ValidityWindow)
    session_public_key: bytes = b""
    signature: bytes = b""
    server_signature: bytes = b""

    @classmethod
    def request(
        cls,
        owner_id: OwnerID,
        verb: Verb,
        scope: Iterable[ObjectID],
        window: ValidityWindow,
        session_public_key: bytes,
    ) -> Token:
        """Build the unsigned candidate sent in the init message."""
        return cls(
            owner_id=owner_id,
            verb=verb,
            scope=frozenset(scope),
            window=window,
            session_public_key=session_public_key,
        )

    @property
    def container_wide(self) -> bool:
        return not self.scope

    @property
    def signed(self) -> bool:
        return bool(self.signature)

    def signed_body(self) -> bytes:
        """Canonical bytes covered by the client signature.

        Scope is serialized in sorted order so that set-equal tokens
        produce identical bodies.
        """
        parts = [
            self.owner_id.value,
            struct.pack(">BQQ", _VERB_CODES[self.verb], self.window.first_epoch, self.window.last_epoch),
            struct.pack(">I", len(self.scope)),
        ]
        parts.extend(oid.value for oid in sorted(self.scope, key=lambda o: o.value))
        parts.append(struct.pack(">H", len(self.session_public_key)))
        parts.append(self.session_public_key)
        return b"".join(parts)

    def countersigned_body(self) -> bytes:
        """Bytes covered by the node's countersignature."""
        return self.signed_body() + self.signature

    def with_signature(self, signature: bytes) -> Token:
        return replace(self, signature=signature)

    def with_server_signature(self, signature: bytes) -> Token:
        return replace(self, server_signature=signature)

    def unsigned(self) -> Token:
        return replace(self, signature=b"", server_signature=b"")

    def covers(self, verb: Verb, object_id: Optional[ObjectID] = None) -> bool:
        """Check whether a request for ``verb`` on ``object_id`` may carry this token."""
        if verb is not self.verb:
            return False
        if object_id is None or self.container_wide:
            return True
        return object_id in self.scope

    def ensure_covers(self, verb: Verb, object_id: Optional[ObjectID] = None) -> None:
        """Raise ``TokenScopeError`` unless ``covers`` holds."""
        if verb is not self.verb:
            raise TokenScopeError(
                f"token negotiated for {self.verb.value} cannot authorize {verb.value}"
            )
        if not self.covers(verb, object_id):
            raise TokenScopeError(f"object {object_id} is outside the token scope")
