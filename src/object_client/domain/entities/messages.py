"""Typed protocol messages.

The wire encoding belongs to the transport; the client only deals in
these immutable shapes. Requests carry a ``ttl`` hop limit.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from object_client.domain.entities.object import ObjectHeader
from object_client.domain.entities.token import Token
from object_client.domain.value_objects.homomorphic_hash import Hash
from object_client.domain.value_objects.byte_range import Range
from object_client.domain.value_objects.identifiers import Address, OwnerID

DEFAULT_TTL = 2


# Session handshake

@dataclass(frozen=True)
class SessionInit:
    """Unsigned token candidate opening the handshake."""
    token: Token
    ttl: int = DEFAULT_TTL


@dataclass(frozen=True)
class SessionEcho:
    """The node's view of the unsigned token."""
    token: Token


@dataclass(frozen=True)
class SessionConfirm:
    """Echoed token signed by the client."""
    token: Token
    ttl: int = DEFAULT_TTL


@dataclass(frozen=True)
class SessionResult:
    """Final countersigned token."""
    token: Token


# Object put

@dataclass(frozen=True)
class PutHeader:
    header: ObjectHeader
    token: Token
    ttl: int = DEFAULT_TTL


@dataclass(frozen=True)
class PutChunk:
    data: bytes
    token: Token
    ttl: int = DEFAULT_TTL


@dataclass(frozen=True)
class PutResponse:
    address: Address


# Object get

@dataclass(frozen=True)
class GetRequest:
    address: Address
    token: Token
    ttl: int = DEFAULT_TTL


@dataclass(frozen=True)
class GetOrigin:
    """First message of a get stream: full header plus initial payload slice."""
    header: ObjectHeader
    payload: bytes = b""


@dataclass(frozen=True)
class GetChunk:
    data: bytes


# Range hash

@dataclass(frozen=True)
class RangeHashRequest:
    address: Address
    ranges: tuple[Range, ...]
    token: Token
    salt: bytes = b""
    ttl: int = DEFAULT_TTL


@dataclass(frozen=True)
class RangeHashResponse:
    hashes: tuple[Hash, ...]


# Delete / head

@dataclass(frozen=True)
class DeleteRequest:
    """Removal request carrying the owner-signed tombstone that replaces the object."""
    address: Address
    owner_id: OwnerID
    token: Token
    tombstone: ObjectHeader
    ttl: int = DEFAULT_TTL


@dataclass(frozen=True)
class DeleteResponse:
    pass


@dataclass(frozen=True)
class HeadRequest:
    address: Address
    full_headers: bool = False
    ttl: int = DEFAULT_TTL


@dataclass(frozen=True)
class HeadResponse:
    header: ObjectHeader


Message = Union[
    SessionInit,
    SessionEcho,
    SessionConfirm,
    SessionResult,
    PutHeader,
    PutChunk,
    PutResponse,
    GetRequest,
    GetOrigin,
    GetChunk,
    RangeHashRequest,
    RangeHashResponse,
    DeleteRequest,
    DeleteResponse,
    HeadRequest,
    HeadResponse,
]
