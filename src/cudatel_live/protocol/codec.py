"""Encoder/decoder for the CudaTel live-data socket.

Encoding turns a ``(kind, context)`` pair into an Envelope; every frame on the
wire is a JSON array of envelopes. Decoding turns a text frame into a batch of
InboundMessage objects and provides the batch-level scan and per-message
routing decision used by the connection.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

from cudatel_live.logging_abstraction import get_logger
from cudatel_live.protocol.exceptions import FrameDecodeError
from cudatel_live.protocol.messages import (
    ACTION_BOOTSTRAP_DATA,
    ACTION_CLEAR,
    ACTION_INIT,
    ADVANCED_QUERY_DEFAULTS,
    KIND_COMMANDS,
    LIVE_ARRAY_BOOTSTRAP,
    LIVE_ARRAY_HEARTBEAT,
    RESERVED_COMMANDS,
    Envelope,
    InboundMessage,
    OutboundKind,
)

logger = get_logger(__name__)


@dataclass
class DecodedFrame:
    """Result of decoding one text frame.

    Attributes:
        messages: Well-formed messages, in wire order
        errors: One FrameDecodeError per skipped entry
    """

    messages: list[InboundMessage] = field(default_factory=list)
    errors: list[FrameDecodeError] = field(default_factory=list)


@dataclass
class BatchScan:
    """Flags collected over one inbound batch.

    Attributes:
        channel: First resolvable channel in the batch
        init: A message carried the ``init`` action
        clear: A message carried the ``clear`` action
        boot: A message carried the ``bootstrap_data`` action
    """

    channel: str | None = None
    init: bool = False
    clear: bool = False
    boot: bool = False

    @property
    def no_calls(self) -> bool | None:
        """New no_calls flag for ``channel``, or None to leave it unchanged.

        A clear without both init and bootstrap_data means the server has no
        rows to send; a batch with all three carries its own snapshot.
        """
        if self.init and self.clear and self.boot:
            return False
        if self.clear:
            return True
        return None


class MessageCodec:
    """Live-data message encoder/decoder.

    All methods are stateless; sequence numbers, session ids and heartbeat ids
    are supplied by the caller.
    """

    @staticmethod
    def advanced(command: str, context: str, hb_id: int | None = None) -> dict[str, Any]:
        """Build liveArray query params for ``command`` on channel ``context``.

        Example:
            >>> MessageCodec.advanced("heartbeat", "calls", hb_id=3)["data"]["liveArray"]["obj"]["hb_id"]
            3
        """
        obj: dict[str, Any] = dict(ADVANCED_QUERY_DEFAULTS)
        obj["search"] = {}
        if command == LIVE_ARRAY_HEARTBEAT:
            obj["hb_id"] = hb_id if hb_id is not None else 0
        return {"data": {"liveArray": {"command": command, "context": context, "obj": obj}}}

    @staticmethod
    def params(kind: OutboundKind, context: Any, hb_id: int | None = None) -> dict[str, Any]:
        """Kind-specific params for an outbound message."""
        match kind:
            case OutboundKind.STAT:
                return {}
            case OutboundKind.JOIN:
                return {"channels": list(context)}
            case OutboundKind.AUTH:
                return {"session": context}
            case OutboundKind.BOOT:
                return MessageCodec.advanced(LIVE_ARRAY_BOOTSTRAP, context)
            case OutboundKind.BEAT:
                return MessageCodec.advanced(LIVE_ARRAY_HEARTBEAT, context, hb_id)
        msg = f"unknown outbound kind: {kind!r}"
        raise ValueError(msg)

    @staticmethod
    def encode(
        kind: OutboundKind | str,
        context: Any,
        seq: int,
        session_id: str | None,
        hb_id: int | None = None,
    ) -> Envelope:
        """Build the envelope for ``(kind, context)`` with sequence number ``seq``.

        Raises:
            ValueError: If ``kind`` is not one of the outbound kinds
        """
        kind = OutboundKind(kind)
        return Envelope(
            kind=kind,
            cmd=KIND_COMMANDS[kind],
            chl=seq,
            params=MessageCodec.params(kind, context, hb_id),
            sessid=session_id,
        )

    @staticmethod
    def to_frame(*envelopes: Envelope) -> str:
        """Serialize envelopes into one text frame (a JSON array)."""
        return json.dumps([envelope.to_wire() for envelope in envelopes], separators=(",", ":"))

    @staticmethod
    def decode_frame(text: str | bytes) -> DecodedFrame:
        """Decode a text frame into its batch of messages.

        Raises:
            FrameDecodeError: If the frame is not JSON or not an array

        Entries that are not objects are skipped and reported in
        ``DecodedFrame.errors``.
        """
        if isinstance(text, bytes):
            try:
                text = text.decode("utf-8")
            except UnicodeDecodeError as e:
                raise FrameDecodeError("invalid_utf8") from e

        try:
            payload = json.loads(text)
        except json.JSONDecodeError as e:
            raise FrameDecodeError("invalid_json", text) from e

        if not isinstance(payload, list):
            raise FrameDecodeError("not_a_batch", text)

        frame = DecodedFrame()
        for index, entry in enumerate(payload):
            if not isinstance(entry, dict):
                frame.errors.append(FrameDecodeError(f"entry_{index}_not_an_object", text))
                continue
            data = entry.get("data")
            raw = entry.get("raw")
            frame.messages.append(
                InboundMessage(
                    raw=raw if isinstance(raw, str) else "",
                    data=data if isinstance(data, dict) else {},
                )
            )

        logger.debug(
            "Decoded frame: %d messages, %d skipped",
            len(frame.messages),
            len(frame.errors),
            extra={"messages": len(frame.messages), "skipped": len(frame.errors)},
        )
        return frame

    @staticmethod
    def scan_batch(messages: list[InboundMessage]) -> BatchScan:
        scan = BatchScan()
        for message in messages:
            channel = message.channel
            if scan.channel is None and channel:
                scan.channel = channel
            action = message.action
            if action == ACTION_BOOTSTRAP_DATA:
                scan.boot = True
            elif action == ACTION_INIT:
                scan.init = True
            elif action == ACTION_CLEAR:
                scan.clear = True
        return scan

    @staticmethod
    def is_command(message: InboundMessage, channel: str | None, done: bool) -> bool:
        """True when the message goes to the command dispatcher instead of the cache."""
        return channel is None or message.raw.lower() in RESERVED_COMMANDS or not done
