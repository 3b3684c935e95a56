"""Unit tests for range-hash integrity verification."""

import io

import pytest

from object_client.domain.entities.object import ObjectHeader
from object_client.domain.entities.token import Verb
from object_client.domain.errors import TokenScopeError, TransferError, TransferFailure
from object_client.domain.services.integrity_verifier import (
    RESULT_NOT_EQUAL,
    RESULT_REQUEST_FAILED,
    RESULT_SUCCESS,
    IntegrityVerifier,
    accumulate,
    read_local_range,
)
from object_client.domain.value_objects.byte_range import Range
from object_client.domain.value_objects.cancellation import CancellationToken
from object_client.domain.value_objects.homomorphic_hash import EMPTY_HASH, salted_sum, sum_bytes
from object_client.domain.value_objects.identifiers import ObjectID

PAYLOAD = bytes(range(256)) * 8


def open_channel(channels):
    return channels.open("node.test:8080", CancellationToken.never())


@pytest.fixture
def stored(identity, node, container_id):
    header = ObjectHeader(
        object_id=ObjectID.new(),
        container_id=container_id,
        owner_id=identity.owner_id(),
        payload_length=len(PAYLOAD),
    )
    node.store(header, PAYLOAD)
    return header.address


@pytest.fixture
def verifier():
    return IntegrityVerifier()


@pytest.mark.unit
class TestLocalHashing:
    """Test local helpers."""

    def test_accumulate(self):
        """Test that accumulating chunk hashes equals hashing the whole."""
        running = EMPTY_HASH
        for i in range(0, len(PAYLOAD), 300):
            running = accumulate(running, PAYLOAD[i:i + 300])
        assert running == sum_bytes(PAYLOAD)

    def test_read_local_range_pads_with_zeros(self):
        """Test reading past the end of a local file."""
        source = io.BytesIO(b"abcdef")
        assert read_local_range(source, Range(2, 3)) == b"cde"
        assert read_local_range(source, Range(4, 5)) == b"ef\x00\x00\x00"
        assert read_local_range(source, Range(10, 2)) == b"\x00\x00"


@pytest.mark.unit
class TestRangeVerification:
    """Test range verification against the node."""

    def test_valid_ranges_with_salt(self, verifier, channels, negotiate, stored):
        """Test that matching data verifies under a salt."""
        token = negotiate(Verb.RANGE_HASH, [stored.object_id])
        ranges = [Range(0, 100), Range(500, 1000), Range(2047, 1)]
        outcomes = verifier.verify_ranges(
            open_channel(channels), token, stored, ranges, b"\xde\xad\xbe\xef", io.BytesIO(PAYLOAD)
        )
        assert [o.valid for o in outcomes] == [True, True, True]
        assert all(o.message == RESULT_SUCCESS for o in outcomes)
        assert outcomes[1].remote_hash == salted_sum(PAYLOAD[500:1500], b"\xde\xad\xbe\xef")

    def test_local_difference_detected(self, verifier, channels, negotiate, stored):
        """Test that a modified local copy fails verification."""
        local = bytearray(PAYLOAD)
        local[50] ^= 0x01
        token = negotiate(Verb.RANGE_HASH, [stored.object_id])
        outcomes = verifier.verify_ranges(
            open_channel(channels), token, stored, [Range(0, 100), Range(100, 100)], b"", io.BytesIO(bytes(local))
        )
        assert [o.valid for o in outcomes] == [False, True]
        assert outcomes[0].message == RESULT_NOT_EQUAL
        assert outcomes[0].remote_hash != outcomes[0].local_hash

    def test_verify_range_with_expected_hash(self, verifier, channels, negotiate, stored):
        """Test verification against a precomputed hash."""
        token = negotiate(Verb.RANGE_HASH, [stored.object_id])
        outcome = verifier.verify_range(
            open_channel(channels), token, stored, Range(10, 20), expected_hash=sum_bytes(PAYLOAD[10:30])
        )
        assert outcome.valid

    def test_verify_range_needs_local_data(self, verifier, channels, negotiate, stored):
        """Test that a source of local truth is required."""
        token = negotiate(Verb.RANGE_HASH, [stored.object_id])
        with pytest.raises(ValueError):
            verifier.verify_range(open_channel(channels), token, stored, Range(0, 1))

    def test_out_of_bounds_range(self, verifier, channels, negotiate, stored):
        """Test that a node error is raised as a transfer error."""
        token = negotiate(Verb.RANGE_HASH, [stored.object_id])
        with pytest.raises(TransferError) as exc:
            verifier.request_hashes(open_channel(channels), token, stored, [Range(0, len(PAYLOAD) + 1)])
        assert exc.value.reason is TransferFailure.STREAM_ERROR

    def test_requires_range_hash_token(self, verifier, channels, negotiate, stored):
        """Test that a get token cannot request range hashes."""
        token = negotiate(Verb.GET, [stored.object_id])
        with pytest.raises(TokenScopeError):
            verifier.request_hashes(open_channel(channels), token, stored, [Range(0, 1)])


@pytest.mark.unit
class TestUploadVerification:
    """Test post-upload verification."""

    def test_success(self, verifier, channels, negotiate, stored):
        """Test that the accumulated hash matches the stored payload."""
        token = negotiate(Verb.RANGE_HASH, [stored.object_id])
        outcome = verifier.verify_upload(
            open_channel(channels), token, stored, len(PAYLOAD), sum_bytes(PAYLOAD)
        )
        assert outcome.valid
        assert outcome.message == RESULT_SUCCESS

    def test_hashes_not_equal(self, verifier, node, channels, negotiate, stored):
        """Test a node reporting a different hash."""
        node.faults.corrupt_range_hash = True
        token = negotiate(Verb.RANGE_HASH, [stored.object_id])
        outcome = verifier.verify_upload(
            open_channel(channels), token, stored, len(PAYLOAD), sum_bytes(PAYLOAD)
        )
        assert not outcome.valid
        assert outcome.message == RESULT_NOT_EQUAL

    def test_request_failure_is_reported(self, verifier, channels, negotiate, stored):
        """Test that a failed range hash request yields an outcome, not an error."""
        token = negotiate(Verb.RANGE_HASH, [stored.object_id])
        outcome = verifier.verify_upload(
            open_channel(channels), token, stored, len(PAYLOAD) + 10, sum_bytes(PAYLOAD)
        )
        assert not outcome.valid
        assert outcome.message == RESULT_REQUEST_FAILED

    def test_empty_payload(self, verifier, channels, negotiate, stored):
        """Test that an empty upload verifies without a request."""
        token = negotiate(Verb.RANGE_HASH, [stored.object_id])
        channel = open_channel(channels)
        outcome = verifier.verify_upload(channel, token, stored, 0, EMPTY_HASH)
        assert outcome.valid
        assert channel.closed

    def test_cancellation_propagates(self, verifier, channels, negotiate, stored):
        """Test that cancellation is raised rather than reported."""
        token = negotiate(Verb.RANGE_HASH, [stored.object_id])
        cancel = CancellationToken()
        cancel.cancel()
        with pytest.raises(TransferError) as exc:
            verifier.verify_upload(
                open_channel(channels), token, stored, len(PAYLOAD), sum_bytes(PAYLOAD), cancel
            )
        assert exc.value.reason is TransferFailure.CANCELED
