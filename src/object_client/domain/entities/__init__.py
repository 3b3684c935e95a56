"""Domain entities."""

from object_client.domain.entities.chunk import DEFAULT_CHUNK_SIZE, Chunk, iter_chunks
from object_client.domain.entities.object import ObjectHeader
from object_client.domain.entities.token import Token, ValidityWindow, Verb

__all__ = [
    "Chunk",
    "DEFAULT_CHUNK_SIZE",
    "ObjectHeader",
    "Token",
    "ValidityWindow",
    "Verb",
    "iter_chunks",
]
