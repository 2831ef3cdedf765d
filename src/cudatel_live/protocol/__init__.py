"""CudaTel live-data protocol package - message encoding, decoding and routing.

Public API:
- Message codec (MessageCodec)
- Envelope / InboundMessage dataclasses and the OutboundKind enum
- Protocol exception hierarchy rooted at LiveProtocolError
"""

from cudatel_live.protocol.codec import BatchScan, DecodedFrame, MessageCodec
from cudatel_live.protocol.exceptions import (
    FormatError,
    FrameDecodeError,
    LiveProtocolError,
    ProtocolViolation,
    RemoteError,
    RoutingError,
    UnknownChannelError,
)
from cudatel_live.protocol.messages import (
    RESERVED_COMMANDS,
    Envelope,
    InboundMessage,
    OutboundKind,
)

__all__ = [
    # Codec
    "BatchScan",
    "DecodedFrame",
    "MessageCodec",
    # Messages
    "RESERVED_COMMANDS",
    "Envelope",
    "InboundMessage",
    "OutboundKind",
    # Exceptions
    "FormatError",
    "FrameDecodeError",
    "LiveProtocolError",
    "ProtocolViolation",
    "RemoteError",
    "RoutingError",
    "UnknownChannelError",
]
