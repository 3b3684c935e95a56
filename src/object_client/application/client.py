"""Object client facade.

Orchestrates the domain services for the command-line glue: every
operation opens its own channel, negotiates a token scoped to exactly
the verb and objects it touches, then runs the exchange.

Usage:
    from object_client.application import ObjectClient

    client = ObjectClient(identity, channels, endpoint="node:8080")
    result = client.put_object(cid, open("file.bin", "rb"), payload_length=size, verify=True)
    client.download_to_file(result.address, "copy.bin")
"""

from __future__ import annotations

import time
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Iterable, Iterator, Mapping, Optional, Sequence

import structlog
from opentelemetry import trace

from object_client.adapters.outbound.ecdsa_identity import verify_signature
from object_client.domain.entities.messages import (
    DeleteRequest,
    DeleteResponse,
    HeadRequest,
    HeadResponse,
)
from object_client.domain.entities.object import ObjectHeader
from object_client.domain.entities.token import Token, ValidityWindow, Verb
from object_client.domain.errors import (
    HandshakeError,
    HandshakeFailure,
    TransferError,
    TransferFailure,
)
from object_client.domain.services.integrity_verifier import (
    RESULT_REQUEST_FAILED,
    IntegrityVerifier,
    VerificationOutcome,
)
from object_client.domain.services.session_negotiator import SessionNegotiator
from object_client.domain.services.transfer_engine import ChunkedTransferEngine, UploadReport
from object_client.domain.value_objects.byte_range import Range
from object_client.domain.value_objects.cancellation import CancellationToken, OperationCanceled
from object_client.domain.value_objects.identifiers import Address, ContainerID, ObjectID
from object_client.infrastructure.config import Config, get_config, parse_endpoint
from object_client.infrastructure.logging import get_logger
from object_client.infrastructure.metrics import ObjectClientMetrics, get_metrics
from object_client.infrastructure.tracing import get_tracer
from object_client.ports.outbound import (
    ChannelError,
    ChannelFactory,
    Identity,
    SignatureCheck,
    TransportChannel,
)


@dataclass(frozen=True)
class UploadResult:
    """Committed upload plus the optional post-upload verification."""

    address: Address
    report: UploadReport
    verification: Optional[VerificationOutcome] = None


class ObjectClient:
    """Session-scoped object operations against one storage node."""

    def __init__(
        self,
        identity: Identity,
        channels: ChannelFactory,
        endpoint: Optional[str] = None,
        config: Optional[Config] = None,
        metrics: Optional[ObjectClientMetrics] = None,
        tracer: Optional[trace.Tracer] = None,
        logger: Optional[structlog.stdlib.BoundLogger] = None,
        signature_check: SignatureCheck = verify_signature,
    ):
        """Initialize client.

        Args:
            identity: Signing identity, shared read-only.
            channels: Factory for transport channels.
            endpoint: Node address; defaults to the configured endpoint.
            config: Client configuration.
            metrics: Metrics sink.
            tracer: OpenTelemetry tracer.
            logger: Structured logger.
            signature_check: Verifies tombstone signatures.
        """
        self.config = config or get_config()
        self.identity = identity
        self.channels = channels
        self.endpoint = endpoint or self.config.node.endpoint
        parse_endpoint(self.endpoint)
        self.metrics = metrics or get_metrics()
        self.tracer = tracer or get_tracer()
        self.log = logger or get_logger("object_client", endpoint=self.endpoint)

        ttl = self.config.session.ttl
        self.negotiator = SessionNegotiator(identity, ttl=ttl)
        self.engine = ChunkedTransferEngine(
            chunk_size=self.config.transfer.chunk_size,
            ttl=ttl,
            strict_payload_length=self.config.transfer.strict_payload_length,
            signature_check=signature_check,
        )
        self.verifier = IntegrityVerifier(ttl=ttl)

    # -- channels ----------------------------------------------------------

    @contextmanager
    def _channel(self, cancel: CancellationToken, handshake: bool = False) -> Iterator[TransportChannel]:
        try:
            channel = self.channels.open(self.endpoint, cancel)
        except OperationCanceled as e:
            if handshake:
                raise HandshakeError(HandshakeFailure.CANCELED, "connect", e.reason) from e
            raise TransferError(TransferFailure.CANCELED, "connect", e.reason) from e
        except ChannelError as e:
            detail = f"can't connect to host '{self.endpoint}': {e}"
            if handshake:
                raise HandshakeError(HandshakeFailure.STREAM_ERROR, "connect", detail) from e
            raise TransferError(TransferFailure.STREAM_ERROR, "connect", detail) from e
        try:
            yield channel
        finally:
            channel.close()

    def default_window(self) -> ValidityWindow:
        return ValidityWindow(self.config.session.first_epoch, self.config.session.last_epoch)

    # -- session -----------------------------------------------------------

    def negotiate(
        self,
        scope: Iterable[ObjectID],
        verb: Verb,
        window: Optional[ValidityWindow] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> Token:
        """Obtain a session token for ``verb`` on ``scope``."""
        cancel = cancel or CancellationToken.never()
        window = window or self.default_window()
        scope = list(scope)

        with self.tracer.start_as_current_span("object_client.negotiate") as span:
            span.set_attribute("object_client.verb", verb.value)
            span.set_attribute("object_client.scope_size", len(scope))
            start = time.perf_counter()
            try:
                with self._channel(cancel, handshake=True) as channel:
                    token = self.negotiator.negotiate(channel, scope, window, verb, cancel)
            except HandshakeError as e:
                self.metrics.sessions_failed.labels(verb=verb.value, reason=e.reason.value).inc()
                span.record_exception(e)
                self.log.warning(
                    "session_negotiation_failed",
                    verb=verb.value,
                    step=e.step,
                    reason=e.reason.value,
                    detail=e.detail,
                )
                raise

            self.metrics.session_latency.observe(time.perf_counter() - start)
            self.metrics.sessions_negotiated.labels(verb=verb.value).inc()
            self.log.debug(
                "session_established",
                verb=verb.value,
                first_epoch=token.window.first_epoch,
                last_epoch=token.window.last_epoch,
            )
            return token

    # -- upload ------------------------------------------------------------

    def upload(
        self,
        token: Token,
        header: ObjectHeader,
        reader: BinaryIO,
        chunk_size: Optional[int] = None,
        verify: bool = False,
        cancel: Optional[CancellationToken] = None,
    ) -> UploadResult:
        """Stream one object with an already negotiated Put token.

        When ``verify`` is set, the committed object is checked against the
        hash accumulated while streaming; the outcome is returned, never
        raised.
        """
        cancel = cancel or CancellationToken.never()

        with self.tracer.start_as_current_span("object_client.upload") as span:
            span.set_attribute("object_client.object_id", str(header.object_id))
            span.set_attribute("object_client.payload_length", header.payload_length)
            self.log.info(
                "upload_started",
                object_id=str(header.object_id),
                container_id=str(header.container_id),
                payload_length=header.payload_length,
            )
            try:
                with self.metrics.upload_latency.time():
                    with self._channel(cancel) as channel:
                        report = self.engine.upload(
                            channel, token, header, reader, chunk_size=chunk_size, cancel=cancel
                        )
            except TransferError as e:
                self.metrics.transfer_errors.labels(direction="upload", reason=e.reason.value).inc()
                span.record_exception(e)
                self.log.error("upload_failed", step=e.step, reason=e.reason.value, detail=e.detail)
                raise

            self.metrics.bytes_uploaded.inc(report.bytes_sent)
            self.metrics.chunks_sent.inc(report.chunks_sent)
            self.metrics.objects_uploaded.inc()
            if report.length_mismatch:
                self.metrics.length_mismatches.inc()
            self.log.info(
                "upload_completed",
                address=str(report.address),
                bytes_sent=report.bytes_sent,
                chunks=report.chunks_sent,
            )

            verification = None
            if verify:
                verification = self._verify_upload(report, cancel)
                span.set_attribute("object_client.verified", verification.valid)
            return UploadResult(address=report.address, report=report, verification=verification)

    def _verify_upload(self, report: UploadReport, cancel: CancellationToken) -> VerificationOutcome:
        try:
            token = self.negotiate([report.address.object_id], Verb.RANGE_HASH, cancel=cancel)
        except HandshakeError as e:
            if e.reason is HandshakeFailure.CANCELED:
                raise
            outcome = VerificationOutcome(valid=False, message=RESULT_REQUEST_FAILED)
        else:
            with self._channel(cancel) as channel:
                outcome = self.verifier.verify_upload(
                    channel,
                    token,
                    report.address,
                    report.declared_length,
                    report.payload_hash,
                    cancel,
                )
        self.metrics.verifications.labels(result="valid" if outcome.valid else "invalid").inc()
        self.log.info("verification_result", address=str(report.address), result=outcome.message)
        return outcome

    def put_object(
        self,
        container_id: ContainerID,
        reader: BinaryIO,
        payload_length: int,
        user_headers: Optional[Mapping[str, str]] = None,
        verify: bool = False,
        cancel: Optional[CancellationToken] = None,
    ) -> UploadResult:
        """Store a new object under a fresh object ID with its own Put token."""
        object_id = ObjectID.new()
        token = self.negotiate([object_id], Verb.PUT, cancel=cancel)
        header = ObjectHeader(
            object_id=object_id,
            container_id=container_id,
            owner_id=self.identity.owner_id(),
            payload_length=payload_length,
            user_headers=dict(user_headers or {}),
        )
        return self.upload(token, header, reader, verify=verify, cancel=cancel)

    def upload_files(
        self,
        container_id: ContainerID,
        paths: Sequence[str | Path],
        verify: bool = False,
        user_headers: Optional[Mapping[str, str]] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> list[UploadResult]:
        """Upload files one at a time, each as its own object and session."""
        results = []
        for path in paths:
            path = Path(path)
            with path.open("rb") as fd:
                size = path.stat().st_size
                self.log.info("sending_file", path=str(path), size=size)
                results.append(
                    self.put_object(
                        container_id,
                        fd,
                        payload_length=size,
                        user_headers=user_headers,
                        verify=verify,
                        cancel=cancel,
                    )
                )
        return results

    # -- download ----------------------------------------------------------

    def _stream(
        self,
        token: Token,
        address: Address,
        cancel: CancellationToken,
    ) -> Iterator[bytes]:
        with self._channel(cancel) as channel:
            yield from self.engine.download(channel, token, address, cancel)

    def _fetch(self, token: Token, address: Address, cancel: CancellationToken, sink) -> int:
        written = 0
        chunks = 0
        with self.tracer.start_as_current_span("object_client.download") as span:
            span.set_attribute("object_client.address", str(address))
            try:
                with self.metrics.download_latency.time():
                    for piece in self._stream(token, address, cancel):
                        chunks += 1
                        if piece:
                            sink(piece)
                            written += len(piece)
            except TransferError as e:
                self.metrics.transfer_errors.labels(direction="download", reason=e.reason.value).inc()
                span.record_exception(e)
                level = "warning" if e.reason is TransferFailure.OBJECT_REMOVED else "error"
                getattr(self.log, level)(
                    "download_failed", address=str(address), step=e.step, reason=e.reason.value
                )
                raise

        self.metrics.bytes_downloaded.inc(written)
        self.metrics.chunks_received.inc(max(chunks - 1, 0))
        self.metrics.objects_downloaded.inc()
        self.log.info("download_completed", address=str(address), bytes=written)
        return written

    def download(
        self,
        token: Token,
        address: Address,
        writer: BinaryIO,
        cancel: Optional[CancellationToken] = None,
    ) -> int:
        """Fetch an object into ``writer`` with an already negotiated Get token.

        Returns:
            Number of payload bytes written.
        """
        cancel = cancel or CancellationToken.never()
        return self._fetch(token, address, cancel, writer.write)

    def get_object(
        self,
        address: Address,
        writer: BinaryIO,
        cancel: Optional[CancellationToken] = None,
    ) -> int:
        token = self.negotiate([address.object_id], Verb.GET, cancel=cancel)
        return self.download(token, address, writer, cancel=cancel)

    def download_to_file(
        self,
        address: Address,
        path: str | Path,
        token: Optional[Token] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> int:
        """Fetch an object into a file.

        The file is created only once the object origin has arrived, so a
        removed object leaves no file behind.
        """
        cancel = cancel or CancellationToken.never()
        token = token or self.negotiate([address.object_id], Verb.GET, cancel=cancel)
        path = Path(path)
        fd: Optional[BinaryIO] = None
        written = 0
        try:
            with self.tracer.start_as_current_span("object_client.download_to_file"):
                for piece in self._stream(token, address, cancel):
                    if fd is None:
                        fd = path.open("wb")
                    fd.write(piece)
                    written += len(piece)
        except TransferError as e:
            self.metrics.transfer_errors.labels(direction="download", reason=e.reason.value).inc()
            raise
        finally:
            if fd is not None:
                fd.close()

        self.metrics.bytes_downloaded.inc(written)
        self.metrics.objects_downloaded.inc()
        self.log.info("object_fetched", address=str(address), path=str(path), bytes=written)
        return written

    # -- verification ------------------------------------------------------

    def verify_range(
        self,
        token: Token,
        address: Address,
        rng: Range,
        salt: bytes,
        local_reader: BinaryIO,
        cancel: Optional[CancellationToken] = None,
    ) -> VerificationOutcome:
        """Compare the node's salted hash of ``rng`` with the local bytes.

        Returns:
            Outcome; ``valid`` is False on mismatch.

        Raises:
            TransferError: If the range hash could not be obtained.
        """
        return self.verify_ranges(address, [rng], salt, local_reader, token=token, cancel=cancel)[0]

    def verify_ranges(
        self,
        address: Address,
        ranges: Sequence[Range],
        salt: bytes,
        local_reader: BinaryIO,
        token: Optional[Token] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> list[VerificationOutcome]:
        cancel = cancel or CancellationToken.never()
        token = token or self.negotiate([address.object_id], Verb.RANGE_HASH, cancel=cancel)

        with self.tracer.start_as_current_span("object_client.verify_ranges") as span:
            span.set_attribute("object_client.ranges", len(ranges))
            with self._channel(cancel) as channel:
                outcomes = self.verifier.verify_ranges(
                    channel, token, address, ranges, salt, local_reader, cancel
                )

        for outcome in outcomes:
            self.metrics.verifications.labels(result="valid" if outcome.valid else "invalid").inc()
        return outcomes

    # -- delete / head -----------------------------------------------------

    def delete(self, address: Address, cancel: Optional[CancellationToken] = None) -> None:
        """Replace an object with an owner-signed tombstone."""
        cancel = cancel or CancellationToken.never()
        token = self.negotiate([address.object_id], Verb.DELETE, cancel=cancel)
        owner = self.identity.owner_id()
        tombstone = ObjectHeader(
            object_id=address.object_id,
            container_id=address.container_id,
            owner_id=owner,
            tombstone=True,
        )
        tombstone = tombstone.with_signature(
            self.identity.public_key(), self.identity.sign(tombstone.signed_body())
        )
        token.ensure_covers(Verb.DELETE, address.object_id)
        request = DeleteRequest(
            address=address,
            owner_id=owner,
            token=token,
            tombstone=tombstone,
            ttl=self.config.session.ttl,
        )

        with self.tracer.start_as_current_span("object_client.delete"):
            self._unary(request, DeleteResponse, cancel)
        self.metrics.objects_deleted.inc()
        self.log.info("object_deleted", address=str(address))

    def head(
        self,
        address: Address,
        full_headers: bool = False,
        cancel: Optional[CancellationToken] = None,
    ) -> ObjectHeader:
        """Fetch object headers. Needs no session token."""
        cancel = cancel or CancellationToken.never()
        request = HeadRequest(address=address, full_headers=full_headers, ttl=self.config.session.ttl)
        with self.tracer.start_as_current_span("object_client.head"):
            response = self._unary(request, HeadResponse, cancel)
        return response.header

    def _unary(self, request, expected: type, cancel: CancellationToken):
        step = type(request).__name__
        with self._channel(cancel) as channel:
            try:
                channel.send(request, cancel)
                channel.close_send()
                response = channel.recv(cancel)
            except OperationCanceled as e:
                raise TransferError(TransferFailure.CANCELED, step, e.reason) from e
            except ChannelError as e:
                raise TransferError(TransferFailure.STREAM_ERROR, step, str(e)) from e
        if not isinstance(response, expected):
            raise TransferError(
                TransferFailure.STREAM_ERROR,
                step,
                f"expected {expected.__name__}, got {type(response).__name__}",
            )
        return response
