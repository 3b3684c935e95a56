"""Chunk entity for streamed payloads."""

from __future__ import annotations

from dataclasses import dataclass
from typing import BinaryIO, Iterator

from object_client.domain.value_objects.homomorphic_hash import Hash, sum_bytes

DEFAULT_CHUNK_SIZE = 3 * 1024 * 1024


@dataclass(frozen=True)
class Chunk:
    """A slice of object payload.

    Boundaries carry no meaning for the node; only the in-order
    concatenation of all chunks matters.
    """

    sequence: int
    offset: int
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def end(self) -> int:
        return self.offset + len(self.data)

    def calculate_checksum(self) -> Hash:
        """Homomorphic hash of the chunk data.

        Returns:
            Hash that can be concatenated with the neighbouring chunks' hashes.
        """
        return sum_bytes(self.data)


def iter_chunks(reader: BinaryIO, chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[Chunk]:
    """Read ``reader`` sequentially in ``chunk_size`` windows.

    Only non-empty chunks are produced; the last one may be shorter.

    Args:
        reader: Binary stream positioned at the payload start.
        chunk_size: Maximum chunk size in bytes.

    Yields:
        Chunks in payload order.
    """
    if chunk_size <= 0:
        raise ValueError("chunk size must be positive")

    offset = 0
    sequence = 0
    while True:
        data = reader.read(chunk_size)
        if not data:
            return
        yield Chunk(sequence=sequence, offset=offset, data=bytes(data))
        offset += len(data)
        sequence += 1
