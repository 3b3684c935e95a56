"""Integration tests for object lifecycle operations through the client."""

import io

import pytest

from object_client.application.client import ObjectClient
from object_client.domain.entities.messages import RangeHashRequest, SessionInit
from object_client.domain.entities.object import ObjectHeader
from object_client.domain.entities.token import Verb
from object_client.domain.errors import (
    HandshakeError,
    HandshakeFailure,
    TokenScopeError,
    TransferError,
    TransferFailure,
)
from object_client.domain.services.integrity_verifier import RESULT_NOT_EQUAL, RESULT_SUCCESS
from object_client.domain.value_objects.byte_range import Range
from object_client.domain.value_objects.cancellation import CancellationToken
from object_client.domain.value_objects.identifiers import ObjectID
from object_client.infrastructure.container import Container


def put(client, container_id, payload, **kwargs):
    return client.put_object(container_id, io.BytesIO(payload), payload_length=len(payload), **kwargs)


class TestObjectClientIntegration:
    """Integration tests for the object client facade."""

    def test_put_and_get_object(self, client, node, container_id, sample_payload):
        """Test storing an object and reading it back."""
        result = put(client, container_id, sample_payload)

        assert result.address.container_id == container_id
        assert node.get_payload(result.address) == sample_payload

        out = io.BytesIO()
        written = client.get_object(result.address, out)
        assert written == len(sample_payload)
        assert out.getvalue() == sample_payload

    def test_put_with_verification(self, client, container_id, sample_payload):
        """Test post-upload verification of a committed object."""
        result = put(client, container_id, sample_payload, verify=True)
        assert result.verification.valid
        assert result.verification.message == RESULT_SUCCESS

    def test_verification_detects_mismatch(self, client, node, container_id, sample_payload):
        """Test that a node reporting a different hash fails verification."""
        node.faults.corrupt_range_hash = True
        result = put(client, container_id, sample_payload, verify=True)
        assert not result.verification.valid
        assert result.verification.message == RESULT_NOT_EQUAL

    def test_verification_covers_declared_length(self, client, node, container_id, sample_payload):
        """Test that post-upload verification hashes the declared payload range."""
        put(client, container_id, sample_payload, verify=True)
        requests = node.received_of(RangeHashRequest)
        assert len(requests) == 1
        assert requests[0].ranges == (Range(0, len(sample_payload)),)

    def test_user_headers_and_head(self, client, container_id):
        """Test that user headers are returned only on request."""
        result = put(client, container_id, b"abc", user_headers={"Name": "abc.txt"})

        short = client.head(result.address)
        full = client.head(result.address, full_headers=True)
        assert short.payload_length == 3
        assert short.user_headers == {}
        assert full.user_headers == {"Name": "abc.txt"}

    def test_explicit_token_upload(self, client, identity, node, container_id):
        """Test the lower-level negotiate then upload sequence."""
        oid = ObjectID.new()
        token = client.negotiate([oid], Verb.PUT)
        header = ObjectHeader(
            object_id=oid,
            container_id=container_id,
            owner_id=identity.owner_id(),
            payload_length=5,
        )
        result = client.upload(token, header, io.BytesIO(b"hello"), chunk_size=2)
        assert result.report.chunks_sent == 3
        assert node.get_payload(result.address) == b"hello"

        with pytest.raises(TokenScopeError):
            client.download(token, result.address, io.BytesIO())

    def test_upload_files(self, client, node, container_id, temp_data_dir):
        """Test uploading several files, each under its own session."""
        paths = []
        for i in range(3):
            path = temp_data_dir / f"file{i}.bin"
            path.write_bytes(bytes([i]) * (1000 * (i + 1)))
            paths.append(path)

        results = client.upload_files(container_id, paths, verify=True)

        assert len({r.address for r in results}) == 3
        assert all(r.verification.valid for r in results)
        for path, result in zip(paths, results):
            assert node.get_payload(result.address) == path.read_bytes()

        put_inits = [m for m in node.received_of(SessionInit) if m.token.verb is Verb.PUT]
        assert len(put_inits) == 3
        assert all(len(m.token.scope) == 1 for m in put_inits)

    def test_download_to_file(self, client, container_id, sample_payload, temp_data_dir):
        """Test fetching an object into a file."""
        result = put(client, container_id, sample_payload)
        target = temp_data_dir / "copy.bin"
        assert client.download_to_file(result.address, target) == len(sample_payload)
        assert target.read_bytes() == sample_payload

    def test_delete_then_get(self, client, node, container_id, temp_data_dir):
        """Test that a deleted object reads as removed and leaves no file."""
        result = put(client, container_id, b"short-lived")
        client.delete(result.address)

        assert node.objects[result.address].header.tombstone
        assert client.head(result.address).tombstone

        target = temp_data_dir / "removed.bin"
        with pytest.raises(TransferError) as exc:
            client.download_to_file(result.address, target)
        assert exc.value.reason is TransferFailure.OBJECT_REMOVED
        assert not target.exists()

        out = io.BytesIO()
        with pytest.raises(TransferError):
            client.get_object(result.address, out)
        assert out.getvalue() == b""

    def test_verify_ranges(self, client, container_id, sample_payload):
        """Test salted range verification against a local copy."""
        result = put(client, container_id, sample_payload)
        ranges = [Range(0, 10), Range(100, 400)]

        outcomes = client.verify_ranges(result.address, ranges, b"\x01\x02\x03", io.BytesIO(sample_payload))
        assert all(o.valid for o in outcomes)

        token = client.negotiate([result.address.object_id], Verb.RANGE_HASH)
        tampered = io.BytesIO(b"X" + sample_payload[1:])
        outcome = client.verify_range(token, result.address, Range(0, 10), b"", tampered)
        assert not outcome.valid

    def test_unreachable_node(self, client, node):
        """Test that a refused connection is a stream error."""
        node.faults.refuse_connections = True
        with pytest.raises(HandshakeError) as exc:
            client.negotiate([ObjectID.new()], Verb.GET)
        assert exc.value.reason is HandshakeFailure.STREAM_ERROR
        assert exc.value.step == "connect"

    def test_cancelled_operation(self, client, container_id):
        """Test that a cancelled token aborts negotiation."""
        cancel = CancellationToken()
        cancel.cancel("interrupted")
        with pytest.raises(HandshakeError) as exc:
            put(client, container_id, b"data", cancel=cancel)
        assert exc.value.reason is HandshakeFailure.CANCELED

    def test_channels_closed(self, client, channels, container_id, sample_payload):
        """Test that every operation releases its channel."""
        result = put(client, container_id, sample_payload, verify=True)
        client.get_object(result.address, io.BytesIO())
        client.head(result.address)
        assert channels.opened
        assert all(ch.closed for ch in channels.opened)

    def test_metrics_recorded(self, client, registry, container_id, sample_payload):
        """Test that transfers are counted."""
        result = put(client, container_id, sample_payload)
        client.get_object(result.address, io.BytesIO())

        assert registry.get_sample_value("object_client_objects_uploaded_total") == 1
        assert registry.get_sample_value("object_client_bytes_uploaded_total") == len(sample_payload)
        assert registry.get_sample_value("object_client_bytes_downloaded_total") == len(sample_payload)
        assert registry.get_sample_value(
            "object_client_sessions_negotiated_total", {"verb": "put"}
        ) == 1

    def test_failed_session_counted(self, client, node, registry):
        """Test that failed negotiations are counted by reason."""
        node.faults.drop_result = True
        with pytest.raises(HandshakeError):
            client.negotiate([], Verb.GET)
        assert registry.get_sample_value(
            "object_client_sessions_failed_total",
            {"verb": "get", "reason": "no_result_token"},
        ) == 1

    def test_invalid_endpoint(self, identity, channels, test_config, metrics):
        """Test that a malformed endpoint is rejected up front."""
        with pytest.raises(ValueError):
            ObjectClient(identity, channels, endpoint="no-port", config=test_config, metrics=metrics)


class TestContainer:
    """Integration tests for the dependency container."""

    def test_container_singleton(self, container):
        """Test that the container is created once."""
        assert Container.get() is container
        assert container.config.transfer.chunk_size > 0

    def test_container_builds_client(self, container, identity, channels, container_id):
        """Test a client wired from the container."""
        client = container.client(identity, channels, endpoint="node.test:8080")
        result = put(client, container_id, b"payload")
        assert result.report.bytes_sent == 7

    def test_container_shutdown(self, container):
        """Test that shutdown flushes telemetry without error."""
        container.shutdown()
        container.shutdown()

    def test_load_identity(self, container):
        """Test loading the configured signing key."""
        container.config.node.key_hex = "01" * 32
        identity = container.load_identity()
        assert len(identity.public_key()) == 33
