"""Inbound ports - API contracts for the object client.

Inbound ports define the operations the command-line glue and other
callers use to talk to a storage node.
"""

from __future__ import annotations

from abc import abstractmethod
from typing import BinaryIO, Iterable, Optional, Protocol, Sequence

from object_client.domain.entities.object import ObjectHeader
from object_client.domain.entities.token import Token, ValidityWindow, Verb
from object_client.domain.services.integrity_verifier import VerificationOutcome
from object_client.domain.value_objects.byte_range import Range
from object_client.domain.value_objects.cancellation import CancellationToken
from object_client.domain.value_objects.identifiers import Address, ObjectID


# =============================================================================
# Object Client Port
# =============================================================================


class ObjectClientPort(Protocol):
    """Protocol for session-scoped object operations.

    Every operation runs over its own channel and holds no shared mutable
    state, so independent operations may run concurrently.

    Cancellation:
        Each method accepts a ``CancellationToken``; a cancelled token
        aborts the operation at its next send or receive.

    Example:
        token = client.negotiate([object_id], Verb.PUT)
        result = client.upload(token, header, reader, verify=True)
        get_token = client.negotiate([object_id], Verb.GET)
        client.download(get_token, result.address, writer)
    """

    @abstractmethod
    def negotiate(
        self,
        scope: Iterable[ObjectID],
        verb: Verb,
        window: Optional[ValidityWindow] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> Token:
        """Obtain a countersigned session token.

        Args:
            scope: Objects the token may touch; empty for container-wide.
            verb: Operation to authorize.
            window: Requested validity window.
            cancel: Cancellation token.

        Returns:
            Session token.

        Raises:
            HandshakeError: If no token was issued.
        """
        ...

    @abstractmethod
    def upload(
        self,
        token: Token,
        header: ObjectHeader,
        reader: BinaryIO,
        chunk_size: Optional[int] = None,
        verify: bool = False,
        cancel: Optional[CancellationToken] = None,
    ):
        """Stream an object payload to the node.

        Returns:
            ``UploadResult`` with the committed address.

        Raises:
            TokenScopeError: If the token does not cover the object.
            TransferError: If the upload was aborted.
        """
        ...

    @abstractmethod
    def download(
        self,
        token: Token,
        address: Address,
        writer: BinaryIO,
        cancel: Optional[CancellationToken] = None,
    ) -> int:
        """Fetch an object payload into ``writer``.

        Returns:
            Number of payload bytes written.

        Raises:
            TransferError: If the object is removed or the stream failed.
        """
        ...

    @abstractmethod
    def verify_range(
        self,
        token: Token,
        address: Address,
        rng: Range,
        salt: bytes,
        local_reader: BinaryIO,
        cancel: Optional[CancellationToken] = None,
    ) -> VerificationOutcome:
        """Compare a remote range hash with the local bytes."""
        ...

    @abstractmethod
    def verify_ranges(
        self,
        address: Address,
        ranges: Sequence[Range],
        salt: bytes,
        local_reader: BinaryIO,
        token: Optional[Token] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> list[VerificationOutcome]:
        ...

    @abstractmethod
    def delete(self, address: Address, cancel: Optional[CancellationToken] = None) -> None:
        """Replace an object with a tombstone."""
        ...

    @abstractmethod
    def head(
        self,
        address: Address,
        full_headers: bool = False,
        cancel: Optional[CancellationToken] = None,
    ) -> ObjectHeader:
        ...


# =============================================================================
# Exports
# =============================================================================

__all__ = [
    "ObjectClientPort",
]
