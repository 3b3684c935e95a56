"""Homomorphic payload hash.

The digest of a byte string ``d`` is the affine map ``x -> m*x + v`` over
GF(p), p = 2^255 - 19, where ``m = 256^len(d)`` and ``v`` is ``d`` read as a
big-endian integer, both reduced mod p. Hashing ``a || b`` is the
composition of the two maps::

    (m_a, v_a) . (m_b, v_b) = (m_a * m_b, v_a * m_b + v_b)

Composition is associative, so the hash of a payload can be assembled
from the hashes of consecutive chunks in order, and a node can answer
range-hash requests from per-chunk hashes without re-reading the payload.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

FIELD_PRIME = 2**255 - 19
ELEMENT_SIZE = 32
HASH_SIZE = 2 * ELEMENT_SIZE


class HashFormatError(ValueError):
    """Raised when a serialized hash is malformed."""

    pass


@dataclass(frozen=True)
class Hash:
    """Fixed-size digest supporting ``concat``."""

    multiplier: int = 1
    value: int = 0

    def __post_init__(self) -> None:
        if not (0 <= self.multiplier < FIELD_PRIME and 0 <= self.value < FIELD_PRIME):
            raise HashFormatError("hash components must be field elements")

    def to_bytes(self) -> bytes:
        return self.multiplier.to_bytes(ELEMENT_SIZE, "big") + self.value.to_bytes(
            ELEMENT_SIZE, "big"
        )

    @classmethod
    def from_bytes(cls, data: bytes) -> Hash:
        if len(data) != HASH_SIZE:
            raise HashFormatError(f"hash must be {HASH_SIZE} bytes, got {len(data)}")
        return cls(
            multiplier=int.from_bytes(data[:ELEMENT_SIZE], "big"),
            value=int.from_bytes(data[ELEMENT_SIZE:], "big"),
        )

    @classmethod
    def from_hex(cls, text: str) -> Hash:
        try:
            return cls.from_bytes(bytes.fromhex(text))
        except ValueError as e:
            raise HashFormatError(f"can't decode hash '{text}'") from e

    def is_empty(self) -> bool:
        return self == EMPTY_HASH

    def __str__(self) -> str:
        return self.to_bytes().hex()


EMPTY_HASH = Hash()


def sum_bytes(data: bytes) -> Hash:
    """Hash a byte string. Empty input yields ``EMPTY_HASH``."""
    if not data:
        return EMPTY_HASH
    return Hash(
        multiplier=pow(256, len(data), FIELD_PRIME),
        value=int.from_bytes(data, "big") % FIELD_PRIME,
    )


def concat(first: Hash, second: Hash) -> Hash:
    """Hash of the concatenation of the two hashed ranges, in order."""
    return Hash(
        multiplier=(first.multiplier * second.multiplier) % FIELD_PRIME,
        value=(first.value * second.multiplier + second.value) % FIELD_PRIME,
    )


def concat_all(hashes: Iterable[Hash]) -> Hash:
    result = EMPTY_HASH
    for h in hashes:
        result = concat(result, h)
    return result


def salt_xor(data: bytes, salt: bytes) -> bytes:
    """XOR ``data`` with ``salt`` repeated to the data length.

    Applying the same salt twice restores the original bytes. An empty
    salt leaves the data unchanged.
    """
    if not salt or not data:
        return bytes(data)
    repeats, rest = divmod(len(data), len(salt))
    stream = salt * repeats + salt[:rest]
    mixed = int.from_bytes(data, "big") ^ int.from_bytes(stream, "big")
    return mixed.to_bytes(len(data), "big")


def salted_sum(data: bytes, salt: bytes) -> Hash:
    return sum_bytes(salt_xor(data, salt))
