"""Outbound ports - external collaborators the object client depends on.

The client consumes a transport and a cryptographic identity; it never
implements either. Concrete adapters live in ``adapters.outbound``.
"""

from __future__ import annotations

from abc import abstractmethod
from typing import Optional, Protocol

from object_client.domain.entities.messages import Message
from object_client.domain.value_objects.cancellation import CancellationToken
from object_client.domain.value_objects.identifiers import OwnerID


# =============================================================================
# Transport Channel Port
# =============================================================================


class ChannelError(Exception):
    """Transport-level failure reported by a channel or its remote peer.

    ``code`` mirrors the status code of the underlying RPC layer
    (e.g. ``"unavailable"``, ``"not_found"``, ``"permission_denied"``).
    """

    def __init__(self, message: str, code: str = "unknown"):
        super().__init__(message)
        self.code = code
        self.message = message


class TransportChannel(Protocol):
    """Ordered bidirectional message stream to one remote endpoint.

    Ordering:
        Messages are delivered exactly in send order in each direction.

    Cancellation:
        ``send`` and ``recv`` are suspension points. Implementations must
        raise ``OperationCanceled`` promptly once ``cancel`` is cancelled.

    Example:
        channel.send(GetRequest(address, token), cancel)
        while (message := channel.recv(cancel)) is not None:
            handle(message)
        channel.close()
    """

    @property
    @abstractmethod
    def endpoint(self) -> str:
        """Remote endpoint this channel is connected to."""
        ...

    @abstractmethod
    def send(self, message: Message, cancel: CancellationToken) -> None:
        """Send one message.

        Raises:
            ChannelError: If the stream is broken or closed.
            OperationCanceled: If ``cancel`` fired.
        """
        ...

    @abstractmethod
    def recv(self, cancel: CancellationToken) -> Optional[Message]:
        """Receive the next message.

        Returns:
            The next message, or None once the peer ended the stream.

        Raises:
            ChannelError: If the peer reported an error.
            OperationCanceled: If ``cancel`` fired while waiting.
        """
        ...

    @abstractmethod
    def close_send(self) -> None:
        """Signal end of the client-side stream."""
        ...

    @abstractmethod
    def close(self) -> None:
        """Tear down the channel. Idempotent."""
        ...


class ChannelFactory(Protocol):
    """Connects channels to storage nodes."""

    @abstractmethod
    def open(self, endpoint: str, cancel: CancellationToken) -> TransportChannel:
        """Open a connected channel.

        Raises:
            ChannelError: If the endpoint cannot be reached.
            OperationCanceled: If ``cancel`` fired while connecting.
        """
        ...


# =============================================================================
# Cryptographic Identity Port
# =============================================================================


class Identity(Protocol):
    """Holder of the private signing key. Shared read-only."""

    @abstractmethod
    def sign(self, data: bytes) -> bytes:
        ...

    @abstractmethod
    def public_key(self) -> bytes:
        ...

    @abstractmethod
    def owner_id(self) -> OwnerID:
        ...


class SignatureCheck(Protocol):
    """Verifies ``signature`` over ``data`` with a serialized public key."""

    def __call__(self, public_key: bytes, data: bytes, signature: bytes) -> bool:
        ...


# =============================================================================
# Exports
# =============================================================================

__all__ = [
    "ChannelError",
    "ChannelFactory",
    "Identity",
    "SignatureCheck",
    "TransportChannel",
]
