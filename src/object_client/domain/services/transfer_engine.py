"""Chunked transfer engine.

Upload streams a header followed by fixed-size data chunks and waits for
the committed address. Download sends a single request and reassembles
the payload from an origin message and the chunk messages that follow.

Both directions are single-attempt: a transport error aborts the whole
transfer and nothing resumes from an offset.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import BinaryIO, Iterator, Optional

from object_client.domain.entities.chunk import DEFAULT_CHUNK_SIZE, iter_chunks
from object_client.domain.entities.messages import (
    DEFAULT_TTL,
    GetChunk,
    GetOrigin,
    GetRequest,
    PutChunk,
    PutHeader,
    PutResponse,
)
from object_client.domain.entities.object import ObjectHeader
from object_client.domain.entities.token import Token, Verb
from object_client.domain.errors import TransferError, TransferFailure
from object_client.domain.services.integrity_verifier import accumulate
from object_client.domain.value_objects.cancellation import CancellationToken, OperationCanceled
from object_client.domain.value_objects.homomorphic_hash import EMPTY_HASH, Hash
from object_client.domain.value_objects.identifiers import Address
from object_client.ports.outbound import ChannelError, SignatureCheck, TransportChannel

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UploadReport:
    """Outcome of a committed upload."""

    address: Address
    bytes_sent: int
    chunks_sent: int
    payload_hash: Hash
    declared_length: int

    @property
    def length_mismatch(self) -> bool:
        return self.bytes_sent != self.declared_length


class ChunkedTransferEngine:
    """Streams object payloads to and from a storage node."""

    def __init__(
        self,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        ttl: int = DEFAULT_TTL,
        strict_payload_length: bool = False,
        signature_check: Optional[SignatureCheck] = None,
    ):
        """Initialize engine.

        Args:
            chunk_size: Default maximum size of a data chunk.
            ttl: Hop limit set on outgoing requests.
            strict_payload_length: Abort uploads whose streamed size
                differs from the declared payload length. The node
                enforces this anyway; off by default.
            signature_check: Verifies tombstone signatures on download.
        """
        if chunk_size <= 0:
            raise ValueError("chunk size must be positive")
        self.chunk_size = chunk_size
        self.ttl = ttl
        self.strict_payload_length = strict_payload_length
        self.signature_check = signature_check

    def upload(
        self,
        channel: TransportChannel,
        token: Token,
        header: ObjectHeader,
        reader: BinaryIO,
        chunk_size: Optional[int] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> UploadReport:
        """Stream one object to the node.

        Args:
            channel: Fresh channel for this upload.
            token: Put token covering ``header.object_id``.
            header: Object metadata including the declared payload length.
            reader: Payload source, read sequentially.
            chunk_size: Override of the engine's chunk size.
            cancel: Cancellation observed at every send/recv.

        Returns:
            Committed address plus streaming statistics.

        Raises:
            TokenScopeError: If ``token`` does not authorize this put.
            TransferError: On transport failure, cancellation, an
                unexpected reply or (strict mode) a length mismatch.
            ValueError: If the chunk size override is not positive.
        """
        token.ensure_covers(Verb.PUT, header.object_id)
        cancel = cancel or CancellationToken.never()
        size = self.chunk_size if chunk_size is None else chunk_size
        if size <= 0:
            raise ValueError("chunk size must be positive")

        step = "send_header"
        sent = 0
        chunks = 0
        running = EMPTY_HASH
        try:
            cancel.raise_if_cancelled()
            channel.send(PutHeader(header=header, token=token, ttl=self.ttl), cancel)

            step = "send_chunk"
            for chunk in iter_chunks(reader, size):
                cancel.raise_if_cancelled()
                channel.send(PutChunk(data=chunk.data, token=token, ttl=self.ttl), cancel)
                running = accumulate(running, chunk.data)
                sent += chunk.size
                chunks += 1

            if sent != header.payload_length:
                logger.warning(
                    "Object %s declared %d payload bytes but %d were streamed",
                    header.object_id, header.payload_length, sent,
                )
                if self.strict_payload_length:
                    raise TransferError(
                        TransferFailure.LENGTH_MISMATCH,
                        step,
                        f"declared {header.payload_length}, streamed {sent}",
                    )

            step = "close"
            channel.close_send()

            step = "await_response"
            cancel.raise_if_cancelled()
            response = channel.recv(cancel)
            if not isinstance(response, PutResponse):
                raise TransferError(
                    TransferFailure.STREAM_ERROR,
                    step,
                    f"expected put response, got {type(response).__name__}",
                )
        except OperationCanceled as e:
            channel.close()
            raise TransferError(TransferFailure.CANCELED, step, e.reason) from e
        except ChannelError as e:
            channel.close()
            raise TransferError(TransferFailure.STREAM_ERROR, step, str(e)) from e
        except Exception:
            channel.close()
            raise

        logger.info(
            "Object %s stored: %d bytes in %d chunks", response.address, sent, chunks
        )
        return UploadReport(
            address=response.address,
            bytes_sent=sent,
            chunks_sent=chunks,
            payload_hash=running,
            declared_length=header.payload_length,
        )

    def download(
        self,
        channel: TransportChannel,
        token: Token,
        address: Address,
        cancel: Optional[CancellationToken] = None,
    ) -> Iterator[bytes]:
        """Request an object and stream its payload.

        The request is sent before this method returns; the payload is
        received lazily. The first item is the payload slice carried by the
        origin message (possibly empty), followed by each chunk in receive
        order. The channel is closed when the iterator finishes, fails or
        is closed early.

        Raises:
            TokenScopeError: If ``token`` does not authorize getting ``address``.
            TransferError: On send failure here, or from the iterator on
                transport failure, cancellation, an unexpected message,
                or a tombstone (``OBJECT_REMOVED``; ``OBJECT_CORRUPTED``
                when its signature does not verify). A tombstone yields
                nothing.
        """
        token.ensure_covers(Verb.GET, address.object_id)
        cancel = cancel or CancellationToken.never()

        try:
            cancel.raise_if_cancelled()
            channel.send(GetRequest(address=address, token=token, ttl=self.ttl), cancel)
            channel.close_send()
        except OperationCanceled as e:
            channel.close()
            raise TransferError(TransferFailure.CANCELED, "send_request", e.reason) from e
        except ChannelError as e:
            channel.close()
            raise TransferError(TransferFailure.STREAM_ERROR, "send_request", str(e)) from e

        return self._receive(channel, address, cancel)

    def _receive(
        self,
        channel: TransportChannel,
        address: Address,
        cancel: CancellationToken,
    ) -> Iterator[bytes]:
        step = "await_origin"
        received = 0
        try:
            cancel.raise_if_cancelled()
            origin = channel.recv(cancel)
            if origin is None:
                raise TransferError(
                    TransferFailure.STREAM_ERROR, step, "stream ended before object origin"
                )
            if not isinstance(origin, GetOrigin):
                raise TransferError(
                    TransferFailure.STREAM_ERROR,
                    step,
                    f"expected object origin, got {type(origin).__name__}",
                )
            if origin.header.tombstone:
                self._reject_tombstone(origin.header, step)

            logger.debug("Object origin received: %s", origin.header.object_id)
            received += len(origin.payload)
            yield origin.payload

            step = "receive_chunk"
            while True:
                cancel.raise_if_cancelled()
                message = channel.recv(cancel)
                if message is None:
                    break
                if not isinstance(message, GetChunk):
                    raise TransferError(
                        TransferFailure.STREAM_ERROR,
                        step,
                        f"expected payload chunk, got {type(message).__name__}",
                    )
                received += len(message.data)
                yield message.data
        except OperationCanceled as e:
            raise TransferError(TransferFailure.CANCELED, step, e.reason) from e
        except ChannelError as e:
            raise TransferError(TransferFailure.STREAM_ERROR, step, str(e)) from e
        finally:
            channel.close()

        logger.info("Object %s fetched: %d bytes", address, received)

    def _reject_tombstone(self, header: ObjectHeader, step: str) -> None:
        if self.signature_check is None:
            logger.warning("Tombstone for %s received without a signature check", header.address)
        elif not header.verify(self.signature_check):
            raise TransferError(
                TransferFailure.OBJECT_CORRUPTED, step, f"tombstone for {header.address} failed verification"
            )
        raise TransferError(TransferFailure.OBJECT_REMOVED, step, f"object {header.address} removed")
