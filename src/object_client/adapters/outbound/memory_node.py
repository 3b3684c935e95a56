"""In-memory storage node for testing and development.

This adapter provides an in-process implementation of the
``ChannelFactory`` and ``TransportChannel`` ports backed by a simulated
storage node. The node plays the server side of every exchange the
client performs: it echoes (and clamps) session tokens, countersigns
them, stores streamed payloads, answers range-hash, head and delete
requests and serves tombstones.

Faults can be injected to exercise the client's error paths.

Example:
    node = InMemoryStorageNode()
    factory = InMemoryChannelFactory(node)
    channel = factory.open("node:8080", CancellationToken.never())
"""

from __future__ import annotations

import logging
import queue
import threading
from dataclasses import dataclass, field, replace
from typing import Callable, Optional

from object_client.adapters.outbound.ecdsa_identity import EcdsaIdentity, verify_signature
from object_client.domain.entities.messages import (
    DeleteRequest,
    DeleteResponse,
    GetChunk,
    GetOrigin,
    GetRequest,
    HeadRequest,
    HeadResponse,
    Message,
    PutChunk,
    PutHeader,
    PutResponse,
    RangeHashRequest,
    RangeHashResponse,
    SessionConfirm,
    SessionEcho,
    SessionInit,
    SessionResult,
)
from object_client.domain.entities.object import ObjectHeader
from object_client.domain.entities.token import Token, ValidityWindow, Verb
from object_client.domain.value_objects.cancellation import CancellationToken
from object_client.domain.value_objects.homomorphic_hash import salted_sum
from object_client.domain.value_objects.identifiers import Address, ObjectID
from object_client.ports.outbound import ChannelError

logger = logging.getLogger(__name__)

_END = object()
_RECV_POLL_SECONDS = 0.02


@dataclass
class StoredObject:
    """Payload and header held by the mock node."""

    header: ObjectHeader
    payload: bytes = b""


@dataclass
class NodeFaults:
    """Fault injection switches for ``InMemoryStorageNode``."""

    echo_mutator: Optional[Callable[[Token], Token]] = None
    drop_result: bool = False
    reply_instead_of_result: Optional[Message] = None
    hang_on: set[type] = field(default_factory=set)
    fail_put_after_chunks: Optional[int] = None
    fail_get_after_chunks: Optional[int] = None
    corrupt_range_hash: bool = False
    refuse_connections: bool = False


class InMemoryStorageNode:
    """Simulated storage node.

    Thread Safety:
        Object and token tables are guarded by a lock; each channel keeps
        its own per-stream state.
    """

    def __init__(
        self,
        identity: Optional[EcdsaIdentity] = None,
        current_epoch: int = 0,
        max_session_epochs: Optional[int] = None,
        chunk_size: int = 1024 * 1024,
        origin_payload_size: int = 0,
        enforce_payload_length: bool = True,
    ):
        """Initialize mock node.

        Args:
            identity: Key used to countersign tokens.
            current_epoch: Epoch the node believes is current.
            max_session_epochs: If set, echoed windows are clamped to
                ``[current_epoch, current_epoch + max_session_epochs]``.
            chunk_size: Size of payload chunks sent on get.
            origin_payload_size: Payload bytes carried by the origin message.
            enforce_payload_length: Reject puts whose streamed size
                differs from the declared one.
        """
        self.identity = identity or EcdsaIdentity.generate()
        self.current_epoch = current_epoch
        self.max_session_epochs = max_session_epochs
        self.chunk_size = chunk_size
        self.origin_payload_size = origin_payload_size
        self.enforce_payload_length = enforce_payload_length
        self.faults = NodeFaults()

        self.objects: dict[Address, StoredObject] = {}
        self.received: list[Message] = []
        self._issued: set[bytes] = set()
        self._lock = threading.Lock()

    # -- direct manipulation for tests ------------------------------------

    def store(self, header: ObjectHeader, payload: bytes = b"") -> Address:
        with self._lock:
            self.objects[header.address] = StoredObject(header=header, payload=payload)
        return header.address

    def get_payload(self, address: Address) -> Optional[bytes]:
        with self._lock:
            stored = self.objects.get(address)
        return stored.payload if stored else None

    def received_of(self, kind: type) -> list[Message]:
        with self._lock:
            return [m for m in self.received if isinstance(m, kind)]

    # -- protocol handling -------------------------------------------------

    def record(self, message: Message) -> None:
        with self._lock:
            self.received.append(message)

    def clamp_window(self, window: ValidityWindow) -> ValidityWindow:
        if self.max_session_epochs is None:
            return window
        first = max(window.first_epoch, self.current_epoch)
        last = min(window.last_epoch, self.current_epoch + self.max_session_epochs)
        return ValidityWindow(first, max(first, last))

    def issue(self, token: Token) -> Token:
        """Countersign a client-signed token."""
        issued = token.with_server_signature(self.identity.sign(token.countersigned_body()))
        with self._lock:
            self._issued.add(issued.server_signature)
        return issued

    def check_token(self, token: Token, verb: Verb, object_id: ObjectID) -> None:
        with self._lock:
            known = token.server_signature in self._issued
        if not known:
            raise ChannelError("session token not issued by this node", code="permission_denied")
        if not token.covers(verb, object_id):
            raise ChannelError(
                f"token does not authorize {verb.value} on {object_id}",
                code="permission_denied",
            )
        if not token.window.contains(self.current_epoch):
            raise ChannelError("session token expired", code="permission_denied")

    def lookup(self, address: Address) -> StoredObject:
        with self._lock:
            stored = self.objects.get(address)
        if stored is None:
            raise ChannelError(f"object {address} not found", code="not_found")
        return stored


class _NodeStream:
    """Server side of one channel: reacts to client messages with replies."""

    def __init__(self, node: InMemoryStorageNode):
        self.node = node
        self.echoed: Optional[Token] = None
        self.put_header: Optional[ObjectHeader] = None
        self.put_payload = bytearray()
        self.put_chunks = 0
        self.pending_close: list = []

    def on_message(self, message: Message) -> list:
        node = self.node
        node.record(message)
        if type(message) in node.faults.hang_on:
            return []

        if isinstance(message, SessionInit):
            return self._on_session_init(message)
        if isinstance(message, SessionConfirm):
            return self._on_session_confirm(message)
        if isinstance(message, PutHeader):
            node.check_token(message.token, Verb.PUT, message.header.object_id)
            self.put_header = message.header
            return []
        if isinstance(message, PutChunk):
            return self._on_put_chunk(message)
        if isinstance(message, GetRequest):
            return self._on_get(message)
        if isinstance(message, RangeHashRequest):
            return self._on_range_hash(message)
        if isinstance(message, DeleteRequest):
            return self._on_delete(message)
        if isinstance(message, HeadRequest):
            stored = node.lookup(message.address)
            header = stored.header
            if not message.full_headers:
                header = replace(header, user_headers={})
            return [HeadResponse(header=header), _END]
        raise ChannelError(f"unexpected message {type(message).__name__}", code="unimplemented")

    def on_close_send(self) -> list:
        if self.put_header is None:
            return []
        header = self.put_header
        if self.node.enforce_payload_length and len(self.put_payload) != header.payload_length:
            return [
                ChannelError(
                    f"payload length mismatch: declared {header.payload_length}, "
                    f"received {len(self.put_payload)}",
                    code="invalid_argument",
                )
            ]
        address = self.node.store(header, bytes(self.put_payload))
        return [PutResponse(address=address), _END]

    def _on_session_init(self, message: SessionInit) -> list:
        echoed = replace(
            message.token.unsigned(),
            window=self.node.clamp_window(message.token.window),
        )
        if self.node.faults.echo_mutator is not None:
            echoed = self.node.faults.echo_mutator(echoed)
        self.echoed = echoed
        return [SessionEcho(token=echoed)]

    def _on_session_confirm(self, message: SessionConfirm) -> list:
        token = message.token
        if self.echoed is None or token.signed_body() != self.echoed.signed_body():
            return [ChannelError("confirmed token differs from echo", code="invalid_argument")]
        if not verify_signature(token.session_public_key, token.signed_body(), token.signature):
            return [ChannelError("invalid token signature", code="permission_denied")]

        faults = self.node.faults
        if faults.drop_result:
            return [_END]
        if faults.reply_instead_of_result is not None:
            return [faults.reply_instead_of_result, _END]
        return [SessionResult(token=self.node.issue(token)), _END]

    def _on_put_chunk(self, message: PutChunk) -> list:
        if self.put_header is None:
            raise ChannelError("chunk before object header", code="failed_precondition")
        limit = self.node.faults.fail_put_after_chunks
        if limit is not None and self.put_chunks >= limit:
            raise ChannelError("connection reset by peer", code="unavailable")
        self.put_payload.extend(message.data)
        self.put_chunks += 1
        return []

    def _on_get(self, message: GetRequest) -> list:
        node = self.node
        node.check_token(message.token, Verb.GET, message.address.object_id)
        stored = node.lookup(message.address)
        if stored.header.tombstone:
            return [GetOrigin(header=stored.header), _END]

        payload = stored.payload
        origin_size = min(node.origin_payload_size, len(payload))
        replies: list = [GetOrigin(header=stored.header, payload=payload[:origin_size])]
        limit = node.faults.fail_get_after_chunks
        sent = 0
        for start in range(origin_size, len(payload), node.chunk_size):
            if limit is not None and sent >= limit:
                replies.append(ChannelError("connection reset by peer", code="unavailable"))
                return replies
            replies.append(GetChunk(data=payload[start:start + node.chunk_size]))
            sent += 1
        replies.append(_END)
        return replies

    def _on_range_hash(self, message: RangeHashRequest) -> list:
        node = self.node
        node.check_token(message.token, Verb.RANGE_HASH, message.address.object_id)
        stored = node.lookup(message.address)
        hashes = []
        for rng in message.ranges:
            if rng.end > len(stored.payload):
                return [ChannelError(f"range {rng} out of payload bounds", code="out_of_range")]
            data = stored.payload[rng.offset:rng.end]
            if node.faults.corrupt_range_hash:
                data = bytes([data[0] ^ 0xFF]) + data[1:]
            hashes.append(salted_sum(data, message.salt))
        return [RangeHashResponse(hashes=tuple(hashes)), _END]

    def _on_delete(self, message: DeleteRequest) -> list:
        node = self.node
        node.check_token(message.token, Verb.DELETE, message.address.object_id)
        node.lookup(message.address)
        tombstone = message.tombstone
        if not tombstone.tombstone or tombstone.address != message.address:
            return [ChannelError("malformed tombstone", code="invalid_argument")]
        if not tombstone.verify(verify_signature):
            return [ChannelError("tombstone signature mismatch", code="permission_denied")]
        node.store(tombstone)
        return [DeleteResponse(), _END]


class LoopbackChannel:
    """Transport channel wired directly to an ``InMemoryStorageNode``."""

    def __init__(self, node: InMemoryStorageNode, endpoint: str):
        self._endpoint = endpoint
        self._stream = _NodeStream(node)
        self._inbox: queue.Queue = queue.Queue()
        self._send_closed = False
        self.closed = False

    @property
    def endpoint(self) -> str:
        return self._endpoint

    def send(self, message: Message, cancel: CancellationToken) -> None:
        cancel.raise_if_cancelled()
        if self.closed or self._send_closed:
            raise ChannelError("send on closed stream", code="failed_precondition")
        for item in self._stream.on_message(message):
            self._inbox.put(item)

    def recv(self, cancel: CancellationToken) -> Optional[Message]:
        while True:
            if self.closed:
                raise ChannelError("recv on closed stream", code="canceled")
            cancel.raise_if_cancelled()
            try:
                item = self._inbox.get(timeout=_RECV_POLL_SECONDS)
            except queue.Empty:
                continue
            if item is _END:
                self._inbox.put(_END)
                return None
            if isinstance(item, ChannelError):
                self._inbox.put(_END)
                raise item
            return item

    def close_send(self) -> None:
        if self._send_closed or self.closed:
            return
        self._send_closed = True
        for item in self._stream.on_close_send():
            self._inbox.put(item)

    def close(self) -> None:
        self.closed = True


class InMemoryChannelFactory:
    """Opens ``LoopbackChannel`` instances to a single mock node."""

    def __init__(self, node: InMemoryStorageNode):
        self.node = node
        self.opened: list[LoopbackChannel] = []

    def open(self, endpoint: str, cancel: CancellationToken) -> LoopbackChannel:
        cancel.raise_if_cancelled()
        if self.node.faults.refuse_connections:
            raise ChannelError(f"can't connect to host '{endpoint}'", code="unavailable")
        channel = LoopbackChannel(self.node, endpoint)
        self.opened.append(channel)
        logger.debug("Opened loopback channel to %s", endpoint)
        return channel
