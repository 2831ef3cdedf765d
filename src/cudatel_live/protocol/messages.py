"""Wire message definitions for the CudaTel live-data socket.

Outbound traffic is a JSON array of envelopes ``{cmd, chl, sessid, params}``.
Inbound traffic is a JSON array of messages shaped ``{raw, data}`` where
``data`` carries the channel (directly or under ``pipe.properties.name``)
and, for live-array traffic, a nested ``data`` object with the action and
the row values.

Command overview:
- CONNECT: authenticate the socket with a GUI session token
- JOIN: subscribe to a list of channels
- BROADCAST: live-array query (bootstrap or heartbeat)
- CHECK: session health check
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

# Wire commands
CMD_CONNECT = "CONNECT"
CMD_JOIN = "JOIN"
CMD_BROADCAST = "BROADCAST"
CMD_CHECK = "CHECK"


class OutboundKind(StrEnum):
    """Kinds of message the client originates."""

    AUTH = "auth"
    JOIN = "join"
    BOOT = "boot"
    BEAT = "beat"
    STAT = "stat"


KIND_COMMANDS: dict[OutboundKind, str] = {
    OutboundKind.STAT: CMD_CHECK,
    OutboundKind.AUTH: CMD_CONNECT,
    OutboundKind.JOIN: CMD_JOIN,
    OutboundKind.BOOT: CMD_BROADCAST,
    OutboundKind.BEAT: CMD_BROADCAST,
}

# liveArray commands carried inside BROADCAST params
LIVE_ARRAY_BOOTSTRAP = "bootstrap"
LIVE_ARRAY_HEARTBEAT = "heartbeat"

# Paging/filter defaults sent with every liveArray query
ADVANCED_QUERY_DEFAULTS: dict[str, Any] = {
    "page_size": 25,
    "distinct_on": "",
    "allow_null_distinct": "",
    "order_by": "",
    "search": {},
    "ident": "default",
}

# Inbound actions / raw labels handled by the command dispatcher
ACTION_JOIN_CHANNEL = "join_channel"
ACTION_LOGIN = "login"
ACTION_USER_JOIN = "join"
ACTION_USER_LEFT = "left"
ACTION_IDENT = "ident"
ACTION_CHANNEL_USERS = "channel"
ACTION_INIT = "init"
ACTION_CLEAR = "clear"
ACTION_BOOTSTRAP_DATA = "bootstrap_data"
ACTION_ERR = "err"

# Row mutation actions applied by the live cache
ACTION_ADD = "add"
ACTION_MODIFY = "modify"
ACTION_DEL = "del"

# Server keepalive channel; every message on it dispatches as a ping
METEOR_ALIVE = "meteor_alive"

RESERVED_COMMANDS: frozenset[str] = frozenset(
    {
        ACTION_JOIN_CHANNEL,
        ACTION_LOGIN,
        ACTION_USER_JOIN,
        ACTION_USER_LEFT,
        ACTION_IDENT,
        ACTION_CHANNEL_USERS,
        METEOR_ALIVE,
        ACTION_INIT,
        ACTION_CLEAR,
        ACTION_BOOTSTRAP_DATA,
        ACTION_ERR,
    }
)


@dataclass
class Envelope:
    """One outbound message.

    Attributes:
        kind: Which writer produced the params
        cmd: Wire command (CONNECT, JOIN, BROADCAST, CHECK)
        chl: Connection-wide sequence number
        params: Command-specific parameters
        sessid: Socket session id; never sent with CONNECT
    """

    kind: OutboundKind
    cmd: str
    chl: int
    params: dict[str, Any]
    sessid: str | None = None

    def to_wire(self) -> dict[str, Any]:
        wire: dict[str, Any] = {"cmd": self.cmd, "chl": self.chl, "params": self.params}
        if self.cmd != CMD_CONNECT:
            wire["sessid"] = self.sessid
        return wire


def _lower(value: object) -> str | None:
    if isinstance(value, str) and value:
        return value.lower()
    return None


@dataclass
class InboundMessage:
    """One decoded inbound message.

    Attributes:
        raw: Server-side message label (e.g. "login", "liveArray")
        data: Message body
    """

    raw: str
    data: dict[str, Any] = field(default_factory=dict)

    @property
    def channel(self) -> str | None:
        """Owning channel, lower-cased, or None when the message names none."""
        channel = _lower(self.data.get("channel"))
        if channel:
            return channel
        pipe = self.data.get("pipe")
        if isinstance(pipe, dict):
            properties = pipe.get("properties")
            if isinstance(properties, dict):
                return _lower(properties.get("name"))
        return None

    @property
    def body(self) -> dict[str, Any]:
        """The nested live-array object when present, else the message body."""
        nested = self.data.get("data")
        if isinstance(nested, dict) and nested:
            return nested
        return self.data

    @property
    def action(self) -> str | None:
        """Live-array action (init, clear, bootstrap_data, add, ...) when present."""
        nested = self.data.get("data")
        if isinstance(nested, dict):
            action = nested.get("action")
            if isinstance(action, str) and action:
                return action
        return None

    @property
    def values(self) -> Any:
        """Positional payload (a row, a list of rows, or a schema)."""
        nested = self.data.get("data")
        if isinstance(nested, dict):
            return nested.get("data")
        return None

    def dispatch_key(self, channel: str | None) -> str:
        """Key used to pick the command handler for this message."""
        if channel == METEOR_ALIVE:
            return METEOR_ALIVE
        action = self.body.get("action") or self.raw
        return str(action).lower()
