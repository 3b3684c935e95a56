"""Session token negotiation.

Converts an unsigned, scope-limited token request into a countersigned
session token in three messages:

    client                         node
      | -- SessionInit(unsigned) --> |
      | <-- SessionEcho(unsigned) -- |   node may narrow the epoch window
      | -- SessionConfirm(signed) -> |   client signs the echoed body
      | <-- SessionResult(token) --- |

The client refuses to sign an echo whose owner, verb or scope differ from
the request, or whose window is wider than requested.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Iterable, Optional

from object_client.domain.entities.messages import (
    DEFAULT_TTL,
    Message,
    SessionConfirm,
    SessionEcho,
    SessionInit,
    SessionResult,
)
from object_client.domain.entities.token import Token, ValidityWindow, Verb
from object_client.domain.errors import HandshakeError, HandshakeFailure
from object_client.domain.value_objects.cancellation import CancellationToken, OperationCanceled
from object_client.domain.value_objects.identifiers import ObjectID
from object_client.ports.outbound import ChannelError, Identity, TransportChannel

logger = logging.getLogger(__name__)


class NegotiationState(Enum):
    """Handshake progress."""
    INIT = "init"
    AWAIT_ECHO = "await_echo"
    AWAIT_RESULT = "await_result"
    DONE = "done"
    FAILED = "failed"


def echo_mismatches(requested: Token, echoed: Token) -> list[str]:
    """List the fields in which an echoed token deviates from the request.

    The node may only narrow the validity window; owner, verb and scope
    (compared as sets) must be unchanged and a session key must be present.

    Args:
        requested: Token sent in the init message.
        echoed: Token received in the echo message.

    Returns:
        Names of offending fields, empty if the echo is acceptable.
    """
    problems = []
    if echoed.owner_id != requested.owner_id:
        problems.append("owner_id")
    if echoed.verb is not requested.verb:
        problems.append("verb")
    if set(echoed.scope) != set(requested.scope):
        problems.append("scope")
    if not echoed.window.within(requested.window):
        problems.append("window")
    if not echoed.session_public_key:
        problems.append("session_public_key")
    return problems


class SessionHandshake:
    """Client side of the handshake as an explicit state machine.

    Each call consumes at most one incoming message and yields at most one
    outgoing message, so a driver can interleave cancellation checks and
    tests can inject arbitrary replies.
    """

    def __init__(
        self,
        identity: Identity,
        verb: Verb,
        scope: Iterable[ObjectID],
        window: ValidityWindow,
        ttl: int = DEFAULT_TTL,
    ):
        self.identity = identity
        self.ttl = ttl
        self.state = NegotiationState.INIT
        self.request = Token.request(
            owner_id=identity.owner_id(),
            verb=verb,
            scope=scope,
            window=window,
            session_public_key=identity.public_key(),
        )
        self._confirmed: Optional[Token] = None
        self._result: Optional[Token] = None

    @property
    def step(self) -> str:
        return self.state.value

    @property
    def token(self) -> Optional[Token]:
        """Final token, set only in DONE."""
        return self._result

    def start(self) -> SessionInit:
        """INIT -> AWAIT_ECHO."""
        self._expect(NegotiationState.INIT)
        self.state = NegotiationState.AWAIT_ECHO
        return SessionInit(token=self.request, ttl=self.ttl)

    def on_message(self, message: Optional[Message]) -> Optional[Message]:
        """Advance by one incoming message.

        Args:
            message: Message received from the node, None on end of stream.

        Returns:
            The next message to send, or None once DONE.

        Raises:
            HandshakeError: On an unacceptable reply; the machine is FAILED.
        """
        if self.state is NegotiationState.AWAIT_ECHO:
            return self._on_echo(message)
        if self.state is NegotiationState.AWAIT_RESULT:
            self._on_result(message)
            return None
        raise RuntimeError(f"no message expected in state {self.state.value}")

    def fail(self, reason: HandshakeFailure, detail: str = "") -> HandshakeError:
        """Move to FAILED and build the error describing the current step."""
        error = HandshakeError(reason, self.step, detail)
        self.state = NegotiationState.FAILED
        self._result = None
        return error

    def _on_echo(self, message: Optional[Message]) -> SessionConfirm:
        if not isinstance(message, SessionEcho):
            raise self.fail(
                HandshakeFailure.TOKEN_ECHO_MISMATCH,
                f"expected unsigned token, got {type(message).__name__}",
            )

        echoed = message.token
        problems = echo_mismatches(self.request, echoed)
        if problems:
            raise self.fail(
                HandshakeFailure.TOKEN_ECHO_MISMATCH,
                "received token differs in " + ", ".join(problems),
            )

        unsigned = echoed.unsigned()
        self._confirmed = unsigned.with_signature(self.identity.sign(unsigned.signed_body()))
        self.state = NegotiationState.AWAIT_RESULT
        return SessionConfirm(token=self._confirmed, ttl=self.ttl)

    def _on_result(self, message: Optional[Message]) -> None:
        if not isinstance(message, SessionResult):
            raise self.fail(
                HandshakeFailure.NO_RESULT_TOKEN,
                f"expected result token, got {type(message).__name__}",
            )

        result = message.token
        if result.signed_body() != self._confirmed.signed_body() or result.signature != self._confirmed.signature:
            raise self.fail(HandshakeFailure.NO_RESULT_TOKEN, "malformed result token")
        if not result.server_signature:
            raise self.fail(HandshakeFailure.NO_RESULT_TOKEN, "result token is not countersigned")

        self._result = result
        self.state = NegotiationState.DONE

    def _expect(self, state: NegotiationState) -> None:
        if self.state is not state:
            raise RuntimeError(f"handshake is {self.state.value}, expected {state.value}")


class SessionNegotiator:
    """Drives a ``SessionHandshake`` over a transport channel.

    Every step is single-shot. The caller may retry the whole negotiation;
    nothing is retried here.
    """

    def __init__(self, identity: Identity, ttl: int = DEFAULT_TTL):
        """Initialize negotiator.

        Args:
            identity: Signing identity, used read-only.
            ttl: Hop limit set on outgoing requests.
        """
        self.identity = identity
        self.ttl = ttl

    def negotiate(
        self,
        channel: TransportChannel,
        scope: Iterable[ObjectID],
        window: ValidityWindow,
        verb: Verb,
        cancel: Optional[CancellationToken] = None,
    ) -> Token:
        """Obtain a countersigned token.

        Args:
            channel: Fresh channel to the session service.
            scope: Object IDs the token may touch; empty means container-wide.
            window: Requested validity window.
            verb: Operation the token authorizes.
            cancel: Cancellation observed at every send/recv.

        Returns:
            The node's final token.

        Raises:
            HandshakeError: On mismatch, missing result, transport failure
                or cancellation. The channel is closed in every such case.
        """
        cancel = cancel or CancellationToken.never()
        handshake = SessionHandshake(self.identity, verb, scope, window, self.ttl)

        try:
            outgoing: Optional[Message] = handshake.start()
            while outgoing is not None:
                cancel.raise_if_cancelled()
                try:
                    channel.send(outgoing, cancel)
                except ChannelError as e:
                    raise handshake.fail(HandshakeFailure.STREAM_ERROR, str(e)) from e

                cancel.raise_if_cancelled()
                try:
                    incoming = channel.recv(cancel)
                except ChannelError as e:
                    # After confirm, anything but a result means no token.
                    reason = (
                        HandshakeFailure.NO_RESULT_TOKEN
                        if handshake.state is NegotiationState.AWAIT_RESULT
                        else HandshakeFailure.STREAM_ERROR
                    )
                    raise handshake.fail(reason, str(e)) from e

                outgoing = handshake.on_message(incoming)
        except OperationCanceled as e:
            channel.close()
            raise handshake.fail(HandshakeFailure.CANCELED, e.reason) from e
        except HandshakeError as e:
            channel.close()
            logger.warning(
                "Session negotiation failed for %s at %s: %s",
                verb.value, e.step, e.reason.value,
            )
            raise

        token = handshake.token
        logger.debug(
            "Session established for %s (scope=%d objects, epochs %d..%d)",
            verb.value, len(token.scope), token.window.first_epoch, token.window.last_epoch,
        )
        return token
