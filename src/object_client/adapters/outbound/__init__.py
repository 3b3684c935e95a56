"""Outbound adapters for the Object Client.

Provides the ECDSA signing identity and an in-memory storage node used
for development and testing.
"""

from object_client.adapters.outbound.ecdsa_identity import (
    EcdsaIdentity,
    KeyLoadError,
    verify_signature,
)
from object_client.adapters.outbound.memory_node import (
    InMemoryChannelFactory,
    InMemoryStorageNode,
    LoopbackChannel,
    NodeFaults,
)

__all__ = [
    "EcdsaIdentity",
    "KeyLoadError",
    "verify_signature",
    "InMemoryChannelFactory",
    "InMemoryStorageNode",
    "LoopbackChannel",
    "NodeFaults",
]
