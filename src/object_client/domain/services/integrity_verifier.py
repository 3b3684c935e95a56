"""Payload integrity verification via range hashes.

Two checks are supported:

- upload-time accumulation: the hash of each outgoing chunk is folded
  into a running hash, giving the hash of the whole payload without
  hashing it at once;
- range verification: the node is asked for the salted hash of one or
  more byte ranges, and the same digest is recomputed from local bytes.

A mismatch is reported as an invalid ``VerificationOutcome``, never
raised.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import BinaryIO, Optional, Sequence

from object_client.domain.entities.messages import DEFAULT_TTL, RangeHashRequest, RangeHashResponse
from object_client.domain.entities.token import Token, Verb
from object_client.domain.errors import TransferError, TransferFailure
from object_client.domain.value_objects.byte_range import Range
from object_client.domain.value_objects.cancellation import CancellationToken, OperationCanceled
from object_client.domain.value_objects.homomorphic_hash import (
    EMPTY_HASH,
    Hash,
    concat,
    salted_sum,
    sum_bytes,
)
from object_client.domain.value_objects.identifiers import Address
from object_client.ports.outbound import ChannelError, TransportChannel

logger = logging.getLogger(__name__)

# Post-upload verification results, as reported to the operator
RESULT_SUCCESS = "success"
RESULT_REQUEST_FAILED = "can't perform range hash request"
RESULT_EMPTY_HASH_LIST = "empty hash list received"
RESULT_NOT_EQUAL = "hashes are not equal"


def accumulate(running: Hash, chunk: bytes) -> Hash:
    """Fold the hash of ``chunk`` into ``running``. Start from ``EMPTY_HASH``."""
    return concat(running, sum_bytes(chunk))


@dataclass(frozen=True)
class VerificationOutcome:
    """Result of comparing a remote range hash with a local one."""

    valid: bool
    message: str = ""
    range: Optional[Range] = None
    remote_hash: Optional[Hash] = None
    local_hash: Optional[Hash] = None

    def __str__(self) -> str:
        label = "valid" if self.valid else "invalid"
        return f"({label}) {self.remote_hash}" if self.remote_hash else f"({label}) {self.message}"


def read_local_range(source: BinaryIO, rng: Range) -> bytes:
    """Read ``rng`` from a seekable source.

    Bytes past the end of the source read as zeros, so the result always
    has ``rng.length`` bytes.
    """
    source.seek(rng.offset)
    data = source.read(rng.length) or b""
    if len(data) < rng.length:
        data = data + bytes(rng.length - len(data))
    return data


class IntegrityVerifier:
    """Requests range hashes from a node and checks them against local data."""

    def __init__(self, ttl: int = DEFAULT_TTL):
        self.ttl = ttl

    def request_hashes(
        self,
        channel: TransportChannel,
        token: Token,
        address: Address,
        ranges: Sequence[Range],
        salt: bytes = b"",
        cancel: Optional[CancellationToken] = None,
    ) -> list[Hash]:
        """Fetch the node's salted hashes for ``ranges``.

        Raises:
            TokenScopeError: If ``token`` does not authorize range hashing
                of ``address``.
            TransferError: On transport failure, cancellation or a
                malformed response.
        """
        token.ensure_covers(Verb.RANGE_HASH, address.object_id)
        cancel = cancel or CancellationToken.never()
        request = RangeHashRequest(
            address=address,
            ranges=tuple(ranges),
            token=token,
            salt=salt,
            ttl=self.ttl,
        )

        step = "send_request"
        try:
            cancel.raise_if_cancelled()
            channel.send(request, cancel)
            channel.close_send()
            step = "await_response"
            cancel.raise_if_cancelled()
            response = channel.recv(cancel)
        except OperationCanceled as e:
            channel.close()
            raise TransferError(TransferFailure.CANCELED, step, e.reason) from e
        except ChannelError as e:
            channel.close()
            raise TransferError(TransferFailure.STREAM_ERROR, step, str(e)) from e

        if not isinstance(response, RangeHashResponse):
            channel.close()
            raise TransferError(
                TransferFailure.STREAM_ERROR,
                step,
                f"expected range hash response, got {type(response).__name__}",
            )
        return list(response.hashes)

    def verify_ranges(
        self,
        channel: TransportChannel,
        token: Token,
        address: Address,
        ranges: Sequence[Range],
        salt: bytes,
        local_source: BinaryIO,
        cancel: Optional[CancellationToken] = None,
    ) -> list[VerificationOutcome]:
        """Compare remote and local salted hashes range by range."""
        remote = self.request_hashes(channel, token, address, ranges, salt, cancel)

        outcomes = []
        for i, rng in enumerate(ranges):
            if i >= len(remote):
                outcomes.append(
                    VerificationOutcome(valid=False, message=RESULT_EMPTY_HASH_LIST, range=rng)
                )
                continue
            local = salted_sum(read_local_range(local_source, rng), salt)
            valid = local == remote[i]
            outcomes.append(
                VerificationOutcome(
                    valid=valid,
                    message=RESULT_SUCCESS if valid else RESULT_NOT_EQUAL,
                    range=rng,
                    remote_hash=remote[i],
                    local_hash=local,
                )
            )
            if not valid:
                logger.warning("Range %s of %s failed verification", rng, address)
        return outcomes

    def verify_range(
        self,
        channel: TransportChannel,
        token: Token,
        address: Address,
        rng: Range,
        salt: bytes = b"",
        local_source: Optional[BinaryIO] = None,
        expected_hash: Optional[Hash] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> VerificationOutcome:
        """Verify a single range.

        The local digest comes from ``local_source`` when given, otherwise
        ``expected_hash`` is used as is (it must already include the salt).
        """
        if local_source is not None:
            return self.verify_ranges(
                channel, token, address, [rng], salt, local_source, cancel
            )[0]
        if expected_hash is None:
            raise ValueError("either local_source or expected_hash is required")

        remote = self.request_hashes(channel, token, address, [rng], salt, cancel)
        if not remote:
            return VerificationOutcome(valid=False, message=RESULT_EMPTY_HASH_LIST, range=rng)
        valid = remote[0] == expected_hash
        return VerificationOutcome(
            valid=valid,
            message=RESULT_SUCCESS if valid else RESULT_NOT_EQUAL,
            range=rng,
            remote_hash=remote[0],
            local_hash=expected_hash,
        )

    def verify_upload(
        self,
        channel: TransportChannel,
        token: Token,
        address: Address,
        payload_length: int,
        accumulated: Hash,
        cancel: Optional[CancellationToken] = None,
    ) -> VerificationOutcome:
        """Check a just-committed object against the hash accumulated while streaming.

        Transport failures are reported in the outcome rather than raised;
        the upload itself has already succeeded. Cancellation still
        propagates.
        """
        if payload_length == 0:
            channel.close()
            valid = accumulated == EMPTY_HASH
            return VerificationOutcome(
                valid=valid,
                message=RESULT_SUCCESS if valid else RESULT_NOT_EQUAL,
                local_hash=accumulated,
            )

        try:
            return self.verify_range(
                channel,
                token,
                address,
                Range(0, payload_length),
                expected_hash=accumulated,
                cancel=cancel,
            )
        except TransferError as e:
            if e.reason is TransferFailure.CANCELED:
                raise
            logger.warning("Post-upload verification of %s failed: %s", address, e)
            return VerificationOutcome(valid=False, message=RESULT_REQUEST_FAILED)
