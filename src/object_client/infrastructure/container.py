"""Dependency injection container for Object Client."""

from dataclasses import dataclass
from typing import Any

import structlog
from opentelemetry import trace

from object_client.adapters.outbound.ecdsa_identity import EcdsaIdentity
from object_client.infrastructure.config import Config, get_config
from object_client.infrastructure.logging import setup_logging
from object_client.infrastructure.metrics import get_metrics
from object_client.infrastructure.tracing import setup_tracing, shutdown_tracing
from object_client.ports.inbound import ObjectClientPort


@dataclass
class Container:
    """Dependency injection container for object client components."""

    config: Config
    logger: structlog.stdlib.BoundLogger
    tracer: trace.Tracer
    metrics: Any  # ObjectClientMetrics

    _instance: "Container | None" = None

    @classmethod
    def create(cls) -> "Container":
        """Create and initialize the container with all dependencies."""
        if cls._instance is not None:
            return cls._instance

        config = get_config()
        logger = setup_logging(config)
        tracer = setup_tracing(config)
        metrics = get_metrics()
        metrics.client_info.info({"version": "0.1.0", "endpoint": config.node.endpoint})

        cls._instance = cls(
            config=config,
            logger=logger,
            tracer=tracer,
            metrics=metrics,
        )

        logger.info(
            "object_client_container_initialized",
            environment=config.observability.environment,
            endpoint=config.node.endpoint,
            chunk_size=config.transfer.chunk_size,
            strict_payload_length=config.transfer.strict_payload_length,
        )

        return cls._instance

    @classmethod
    def get(cls) -> "Container":
        """Get the singleton container instance."""
        if cls._instance is None:
            return cls.create()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Reset the container (useful for testing)."""
        cls._instance = None

    def client(self, identity, channels, endpoint: str | None = None) -> ObjectClientPort:
        """Build an ``ObjectClient`` wired to this container's services."""
        from object_client.application.client import ObjectClient

        return ObjectClient(
            identity,
            channels,
            endpoint=endpoint,
            config=self.config,
            metrics=self.metrics,
            tracer=self.tracer,
            logger=self.logger,
        )

    def load_identity(self) -> EcdsaIdentity:
        """Load the signing key named by ``node.key_path`` or ``node.key_hex``."""
        return EcdsaIdentity.load(self.config.node.key_path or self.config.node.key_hex)

    def shutdown(self) -> None:
        """Flush telemetry before the process exits."""
        shutdown_tracing()
        self.logger.info("object_client_container_shutdown")


def get_container() -> Container:
    """Get the dependency injection container."""
    return Container.get()
