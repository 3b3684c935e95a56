"""Domain value objects."""

from object_client.domain.value_objects.byte_range import (
    Range,
    RangeError,
    parse_ranges,
    parse_user_headers,
)
from object_client.domain.value_objects.cancellation import CancellationToken, OperationCanceled
from object_client.domain.value_objects.homomorphic_hash import EMPTY_HASH, Hash, HashFormatError
from object_client.domain.value_objects.identifiers import (
    Address,
    ContainerID,
    IdentifierError,
    ObjectID,
    OwnerID,
)

__all__ = [
    "Address",
    "CancellationToken",
    "ContainerID",
    "EMPTY_HASH",
    "Hash",
    "HashFormatError",
    "IdentifierError",
    "ObjectID",
    "OperationCanceled",
    "OwnerID",
    "Range",
    "RangeError",
    "parse_ranges",
    "parse_user_headers",
]
