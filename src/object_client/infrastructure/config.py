"""Configuration management for Object Client using Pydantic Settings."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class TransferConfig(BaseSettings):
    """Chunked transfer configuration."""

    model_config = SettingsConfigDict(env_prefix="OBJECT_CLIENT_TRANSFER_")

    chunk_size: int = Field(default=3 * 1024 * 1024, gt=0)
    strict_payload_length: bool = False  # mismatches are only logged unless set


class SessionConfig(BaseSettings):
    """Session token request defaults."""

    model_config = SettingsConfigDict(env_prefix="OBJECT_CLIENT_SESSION_")

    first_epoch: int = Field(default=0, ge=0)
    last_epoch: int = Field(default=2**64 - 1, ge=0)
    ttl: int = Field(default=2, ge=1)


class NodeConfig(BaseSettings):
    """Remote storage node configuration."""

    model_config = SettingsConfigDict(env_prefix="OBJECT_CLIENT_NODE_")

    endpoint: str = "127.0.0.1:8080"
    key_path: str = ""
    key_hex: str = ""


class ShutdownConfig(BaseSettings):
    """Graceful shutdown configuration."""

    model_config = SettingsConfigDict(env_prefix="OBJECT_CLIENT_SHUTDOWN_")

    grace_period_seconds: float = Field(default=5.0, gt=0)
    exit_code: int = 2
    signals: list[str] = Field(default_factory=lambda: ["SIGINT", "SIGTERM", "SIGHUP"])


class ObservabilityConfig(BaseSettings):
    """Observability configuration."""

    model_config = SettingsConfigDict(env_prefix="OBJECT_CLIENT_OBSERVABILITY_")

    log_level: str = "info"
    log_format: str = "json"
    otlp_endpoint: str = ""
    environment: str = "development"


class Config(BaseSettings):
    """Root configuration for Object Client."""

    model_config = SettingsConfigDict(
        env_prefix="OBJECT_CLIENT_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
    )

    transfer: TransferConfig = Field(default_factory=TransferConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)
    node: NodeConfig = Field(default_factory=NodeConfig)
    shutdown: ShutdownConfig = Field(default_factory=ShutdownConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)


@lru_cache
def get_config() -> Config:
    """Get cached configuration instance."""
    return Config()


def parse_endpoint(value: str) -> tuple[str, int]:
    """Split a ``host:port`` endpoint.

    An empty host means all interfaces (``0.0.0.0``).

    Raises:
        ValueError: If the port is missing or not a valid port number.
    """
    host, sep, port = value.rpartition(":")
    if not sep or not port:
        raise ValueError(f"endpoint {value!r} has no port")
    try:
        number = int(port)
    except ValueError as e:
        raise ValueError(f"endpoint {value!r} has an invalid port") from e
    if not 0 < number < 65536:
        raise ValueError(f"endpoint {value!r} port out of range")
    return host or "0.0.0.0", number
