"""Domain services."""

from object_client.domain.services.integrity_verifier import IntegrityVerifier, VerificationOutcome, accumulate
from object_client.domain.services.session_negotiator import SessionHandshake, SessionNegotiator
from object_client.domain.services.transfer_engine import ChunkedTransferEngine, UploadReport

__all__ = [
    "ChunkedTransferEngine",
    "IntegrityVerifier",
    "SessionHandshake",
    "SessionNegotiator",
    "UploadReport",
    "VerificationOutcome",
    "accumulate",
]
