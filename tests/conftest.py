"""Pytest configuration and shared fixtures for Object Client tests."""

import shutil
import tempfile
from pathlib import Path
from unittest.mock import patch

import pytest
from opentelemetry import trace
from prometheus_client import CollectorRegistry

from object_client.adapters.outbound.ecdsa_identity import EcdsaIdentity
from object_client.adapters.outbound.memory_node import InMemoryChannelFactory, InMemoryStorageNode
from object_client.application.client import ObjectClient
from object_client.domain.entities.token import ValidityWindow
from object_client.domain.services.session_negotiator import SessionNegotiator
from object_client.domain.value_objects.cancellation import CancellationToken
from object_client.domain.value_objects.identifiers import ContainerID
from object_client.infrastructure.config import Config, get_config
from object_client.infrastructure.container import Container
from object_client.infrastructure.metrics import ObjectClientMetrics


@pytest.fixture(autouse=True)
def reset_container():
    """Reset the DI container before each test."""
    Container.reset()
    get_config.cache_clear()
    yield
    Container.reset()
    get_config.cache_clear()


@pytest.fixture
def test_config() -> Config:
    """Provide a test configuration."""
    return Config()


@pytest.fixture
def temp_data_dir():
    """Create a temporary data directory for tests."""
    temp_dir = tempfile.mkdtemp(prefix="object_client_test_")
    yield Path(temp_dir)
    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture
def registry() -> CollectorRegistry:
    """Provide an isolated Prometheus registry."""
    return CollectorRegistry()


@pytest.fixture
def metrics(registry: CollectorRegistry) -> ObjectClientMetrics:
    """Provide metrics bound to the isolated registry."""
    return ObjectClientMetrics(registry=registry)


@pytest.fixture
def identity() -> EcdsaIdentity:
    """Provide a fresh client signing identity."""
    return EcdsaIdentity.generate()


@pytest.fixture
def node() -> InMemoryStorageNode:
    """Provide an in-memory storage node."""
    return InMemoryStorageNode(chunk_size=1024)


@pytest.fixture
def channels(node: InMemoryStorageNode) -> InMemoryChannelFactory:
    """Provide a channel factory connected to the test node."""
    return InMemoryChannelFactory(node)


@pytest.fixture
def negotiate(identity, channels):
    """Provide a helper that obtains a session token from the test node."""
    negotiator = SessionNegotiator(identity)

    def _negotiate(verb, scope=(), window=None):
        channel = channels.open("node.test:8080", CancellationToken.never())
        return negotiator.negotiate(channel, list(scope), window or ValidityWindow(), verb)

    return _negotiate


@pytest.fixture
def container_id() -> ContainerID:
    """Provide a container ID."""
    return ContainerID.from_structure(b"test-container")


@pytest.fixture
def client(identity, channels, test_config, metrics) -> ObjectClient:
    """Provide an object client talking to the in-memory node."""
    return ObjectClient(
        identity,
        channels,
        endpoint="node.test:8080",
        config=test_config,
        metrics=metrics,
        tracer=trace.get_tracer("object_client.tests"),
    )


@pytest.fixture
def sample_payload() -> bytes:
    """Provide sample object data for testing."""
    return b"Hello, World! This is test data for the object client. " * 100


@pytest.fixture
def container(test_config: Config) -> Container:
    """Provide a configured container for testing."""
    with patch("object_client.infrastructure.container.get_config", return_value=test_config):
        return Container.create()


# Pytest markers
def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: mark test as unit test")
    config.addinivalue_line("markers", "integration: mark test as integration test")
