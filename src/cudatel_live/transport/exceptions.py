"""Exception types for the transport and authentication collaborators."""

from __future__ import annotations

from cudatel_live.protocol.exceptions import LiveProtocolError


class TransportError(LiveProtocolError):
    """Socket-level failure.

    Raised when:
    - The WebSocket handshake fails
    - Attempting to send while disconnected
    - The server closes the socket or a receive fails

    Attributes:
        reason: Specific failure reason
        state: Transport state when the error occurred
    """

    def __init__(self, reason: str, state: str = "unknown"):
        self.reason = reason
        self.state = state
        super().__init__(f"Transport error: {reason} (state: {state})")


class AuthenticationError(LiveProtocolError):
    """Login against the server GUI failed.

    Raised when:
    - The login request fails at the HTTP level
    - The server rejects the credentials
    - The response carries no session id

    Attributes:
        reason: Specific failure reason
        status: HTTP status code when a response was received
    """

    def __init__(self, reason: str, status: int | None = None):
        self.reason = reason
        self.status = status
        detail = f" (HTTP {status})" if status is not None else ""
        super().__init__(f"Authentication failed: {reason}{detail}")
