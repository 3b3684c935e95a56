"""Unit tests for Object Client configuration."""

import pytest

from object_client.infrastructure.config import (
    Config,
    SessionConfig,
    TransferConfig,
    parse_endpoint,
)


@pytest.mark.unit
class TestConfig:
    """Test configuration loading and validation."""

    def test_default_config(self):
        """Test default configuration values."""
        config = Config()
        assert config.transfer.chunk_size == 3 * 1024 * 1024
        assert config.transfer.strict_payload_length is False
        assert config.session.ttl == 2
        assert config.shutdown.exit_code == 2

    def test_session_config_defaults(self):
        """Test that the default window is unbounded."""
        session = SessionConfig()
        assert session.first_epoch == 0
        assert session.last_epoch == 2**64 - 1

    def test_transfer_config_from_env(self, monkeypatch):
        """Test overriding transfer settings through the environment."""
        monkeypatch.setenv("OBJECT_CLIENT_TRANSFER_CHUNK_SIZE", "1024")
        monkeypatch.setenv("OBJECT_CLIENT_TRANSFER_STRICT_PAYLOAD_LENGTH", "true")
        transfer = TransferConfig()
        assert transfer.chunk_size == 1024
        assert transfer.strict_payload_length is True

    def test_chunk_size_must_be_positive(self):
        """Test that a zero chunk size is rejected."""
        with pytest.raises(ValueError):
            TransferConfig(chunk_size=0)

    def test_default_shutdown_signals(self):
        """Test the signals handled by default."""
        config = Config()
        assert config.shutdown.signals == ["SIGINT", "SIGTERM", "SIGHUP"]


@pytest.mark.unit
class TestParseEndpoint:
    """Test host:port parsing."""

    def test_host_and_port(self):
        """Test a regular endpoint."""
        assert parse_endpoint("node.example:8080") == ("node.example", 8080)

    def test_empty_host(self):
        """Test that an empty host means all interfaces."""
        assert parse_endpoint(":9000") == ("0.0.0.0", 9000)

    def test_missing_port(self):
        """Test that an endpoint without a port is rejected."""
        with pytest.raises(ValueError, match="no port"):
            parse_endpoint("node.example")
        with pytest.raises(ValueError, match="no port"):
            parse_endpoint("node.example:")

    def test_invalid_port(self):
        """Test that a non-numeric or out-of-range port is rejected."""
        with pytest.raises(ValueError):
            parse_endpoint("host:http")
        with pytest.raises(ValueError):
            parse_endpoint("host:70000")
