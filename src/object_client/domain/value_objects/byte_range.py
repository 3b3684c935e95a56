"""Payload byte ranges and user header parsing."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

MAX_UINT64 = 2**64 - 1


class RangeError(ValueError):
    """Raised for a malformed or out-of-bounds range."""

    pass


@dataclass(frozen=True)
class Range:
    """A byte range ``[offset, offset + length)`` within an object payload."""

    offset: int
    length: int

    def __post_init__(self) -> None:
        if self.offset < 0:
            raise RangeError(f"negative range offset {self.offset}")
        if self.length <= 0:
            raise RangeError("range length must be positive")
        if self.offset + self.length > MAX_UINT64:
            raise RangeError("range end overflows uint64")

    @property
    def end(self) -> int:
        return self.offset + self.length

    @classmethod
    def parse(cls, text: str) -> Range:
        """Parse the ``offset:length`` form.

        Args:
            text: Range in ``offset:length`` form.

        Returns:
            Parsed range.

        Raises:
            RangeError: If the form or either number is invalid.
        """
        items = text.split(":")
        if len(items) != 2:
            raise RangeError("range must have form 'offset:length'")
        try:
            offset = int(items[0], 10)
        except ValueError as e:
            raise RangeError(f"can't parse offset '{items[0]}'") from e
        try:
            length = int(items[1], 10)
        except ValueError as e:
            raise RangeError(f"can't parse length '{items[1]}'") from e
        return cls(offset=offset, length=length)

    def __str__(self) -> str:
        return f"{self.offset}:{self.length}"


def parse_ranges(items: Iterable[str]) -> list[Range]:
    return [Range.parse(item) for item in items]


def parse_user_headers(items: Iterable[str]) -> dict[str, str]:
    """Parse ``key=value`` user headers; a bare key gets an empty value."""
    headers: dict[str, str] = {}
    for item in items:
        key, _, value = item.partition("=")
        headers[key] = value
    return headers
