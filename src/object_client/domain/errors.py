"""Error taxonomy for session negotiation and transfers.

Every protocol error records the step that failed so the caller can log
and exit. None of them are retried inside the client.
"""

from __future__ import annotations

from enum import Enum


class ObjectClientError(Exception):
    """Base class for object client failures."""

    pass


class HandshakeFailure(Enum):
    """Why a session negotiation was aborted."""
    TOKEN_ECHO_MISMATCH = "token_echo_mismatch"
    NO_RESULT_TOKEN = "no_result_token"
    CANCELED = "canceled"
    STREAM_ERROR = "stream_error"


class TransferFailure(Enum):
    """Why an upload, download or range-hash exchange was aborted."""
    OBJECT_REMOVED = "object_removed"
    OBJECT_CORRUPTED = "object_corrupted"
    STREAM_ERROR = "stream_error"
    CANCELED = "canceled"
    LENGTH_MISMATCH = "length_mismatch"


class HandshakeError(ObjectClientError):
    """Session negotiation failed; no token was produced."""

    def __init__(self, reason: HandshakeFailure, step: str, detail: str = ""):
        message = f"handshake failed at {step}: {reason.value}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)
        self.reason = reason
        self.step = step
        self.detail = detail


class TransferError(ObjectClientError):
    """A streaming exchange with the node failed."""

    def __init__(self, reason: TransferFailure, step: str, detail: str = ""):
        message = f"transfer failed at {step}: {reason.value}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)
        self.reason = reason
        self.step = step
        self.detail = detail


class TokenScopeError(ObjectClientError):
    """A token was about to be used outside its verb or object scope."""

    pass
