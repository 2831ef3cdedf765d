"""Exception types for live-data protocol errors.

Errors raised while routing or formatting inbound messages are not propagated
out of the event loop; the connection wraps them in these types and delivers
them on its ``error`` event.
"""

from __future__ import annotations


class LiveProtocolError(Exception):
    """Base exception for all live-data protocol errors.

    All protocol-related exceptions inherit from this base class,
    enabling catch-all error handling when needed while maintaining
    specific exception types for detailed handling.
    """


class FrameDecodeError(LiveProtocolError):
    """Inbound frame cannot be decoded.

    Raised when:
    - The frame is not valid JSON
    - The decoded value is not an array
    - An array entry is not an object

    Attributes:
        reason: Specific failure reason (e.g., "invalid_json", "not_a_batch")
        data_preview: First 64 characters of the frame
    """

    def __init__(self, reason: str, data: str = ""):
        self.reason = reason
        self.data_preview = data[:64] if data else ""
        super().__init__(f"Frame decode failed: {reason}")


class RoutingError(LiveProtocolError):
    """Inbound message cannot be routed.

    Raised when:
    - A batch carries a ``clear`` action but no message names a channel
    - A command message carries an action with no handler

    Attributes:
        reason: Specific failure reason (e.g., "clear_without_channel", "uncategorized")
        action: Dispatch key of the offending message, when known
    """

    def __init__(self, reason: str, action: str | None = None):
        self.reason = reason
        self.action = action
        detail = f" (action: {action})" if action else ""
        super().__init__(f"Routing failed: {reason}{detail}")


class UnknownChannelError(LiveProtocolError):
    """Channel is in neither the join nor the boot set.

    Attributes:
        channel: The channel name that was looked up
    """

    def __init__(self, channel: str):
        self.channel = channel
        super().__init__(f"Unknown channel: {channel}")


class FormatError(LiveProtocolError):
    """Row payload cannot be materialized into a record.

    The record is dropped and the channel carries on.

    Attributes:
        channel: Owning channel
        reason: Specific failure reason (e.g., "no_schema")
    """

    def __init__(self, channel: str, reason: str = "no_schema"):
        self.channel = channel
        self.reason = reason
        super().__init__(f"Cannot format record for {channel}: {reason}")


class RemoteError(LiveProtocolError):
    """Server reported an error message (``err`` action).

    Attributes:
        value: Error text sent by the server
        code: Error code sent by the server
    """

    def __init__(self, value: object = None, code: object = None):
        self.value = value
        self.code = code
        super().__init__(f"Server error {code}: {value}")


class ProtocolViolation(LiveProtocolError):
    """Server broke the channel lifecycle (e.g. bootstrap on a ready channel).

    Triggers a full connection restart.

    Attributes:
        channel: Channel the violation was observed on
        reason: Specific failure reason
    """

    def __init__(self, channel: str, reason: str):
        self.channel = channel
        self.reason = reason
        super().__init__(f"Protocol violation on {channel}: {reason}")
