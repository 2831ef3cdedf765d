"""Shared fixtures for unit tests.

Provides an in-memory transport, a mocked GUI authenticator, a ready-made
client configuration and builders for inbound wire messages.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator, Callable
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from cudatel_live.auth import AuthResult
from cudatel_live.config import ClientConfig
from cudatel_live.connection import Connection
from cudatel_live.protocol.messages import Envelope
from cudatel_live.transport.exceptions import TransportError

JSONDict = dict[str, Any]

JOIN_CHANNELS = ["meteor_alive", "presence"]
BOOT_CHANNELS = ["calls", "queues"]


class FakeTransport:
    """In-memory transport: records sent frames, replays queued inbound frames."""

    def __init__(self, connect_ok: bool = True) -> None:
        self.connect_ok = connect_ok
        self.sent: list[str] = []
        self.inbound: asyncio.Queue[str | None] = asyncio.Queue()
        self.connected = False
        self.closed = False
        self.fail_sends = False

    async def connect(self) -> bool:
        self.connected = self.connect_ok
        return self.connect_ok

    async def send(self, text: str) -> None:
        if self.fail_sends:
            raise TransportError("send failed", state="open")
        self.sent.append(text)

    async def frames(self) -> AsyncIterator[str]:
        while True:
            text = await self.inbound.get()
            if text is None:
                return
            yield text

    async def close(self) -> None:
        self.closed = True
        self.connected = False

    def feed(self, text: str) -> None:
        self.inbound.put_nowait(text)

    def hang_up(self) -> None:
        self.inbound.put_nowait(None)

    @property
    def envelopes(self) -> list[JSONDict]:
        """Every sent envelope, in order."""
        return [envelope for text in self.sent for envelope in json.loads(text)]


def make_authenticator(session_id: str = "gui-session") -> MagicMock:
    authenticator = MagicMock()
    authenticator.open = AsyncMock(return_value=AuthResult(session_id=session_id, data={}))
    authenticator.shut = AsyncMock(return_value=True)
    authenticator.close = AsyncMock()
    return authenticator


def make_config(
    join: list[str] | None = None,
    boot: list[str] | None = None,
    ws_sessid: str | None = "stored-sessid",
) -> ClientConfig:
    return ClientConfig.model_validate(
        {
            "environment": "test",
            "environments": {
                "test": {
                    "host": "cudatel.test",
                    "user": {"__auth_user": "admin", "__auth_pass": "pw"},
                },
            },
            "sets": {
                "join": JOIN_CHANNELS if join is None else join,
                "boot": BOOT_CHANNELS if boot is None else boot,
            },
            "ws_sessid": ws_sessid,
        }
    )


def drain_outbox(connection: Connection) -> list[Envelope]:
    """Pop every queued (not yet written) envelope."""
    envelopes: list[Envelope] = []
    while not connection._outbox.empty():
        envelopes.append(connection._outbox.get_nowait())
    return envelopes


class EventRecorder:
    """Records every emission of the events it is attached to."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, tuple[Any, ...]]] = []

    def attach(self, emitter: Any, *events: str) -> EventRecorder:
        for event in events:
            emitter.on(event, self._make(str(event)))
        return self

    def _make(self, event: str) -> Callable[..., None]:
        def handler(*args: Any) -> None:
            self.calls.append((event, args))

        return handler

    def names(self) -> list[str]:
        return [name for name, _ in self.calls]

    def args(self, event: str) -> list[tuple[Any, ...]]:
        return [args for name, args in self.calls if name == str(event)]


# -- Wire message builders ----------------------------------------------------


def frame(*messages: JSONDict) -> str:
    return json.dumps(list(messages))


def login_msg(sessid: str = "ws-sessid-1") -> JSONDict:
    return {"raw": "login", "data": {"sessid": sessid}}


def join_ack(channel: str) -> JSONDict:
    return {"raw": "join_channel", "data": {"channel": channel}}


def live_msg(channel: str, action: str, data: Any, raw: str = "liveArray") -> JSONDict:
    """Live-array message addressed through ``pipe.properties.name``."""
    return {
        "raw": raw,
        "data": {
            "pipe": {"properties": {"name": channel}},
            "data": {"action": action, "data": data},
        },
    }


SCHEMA = ["row_id", "a_id", "b_id", "status"]


def bootstrap_rows() -> list[list[Any]]:
    return [[0, "100", "200", "up"], [1, "101", "201", "ringing"]]


@pytest.fixture
def fake_transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def mock_authenticator() -> MagicMock:
    return make_authenticator()


@pytest.fixture
def client_config() -> ClientConfig:
    return make_config()


@pytest.fixture
def connection(
    client_config: ClientConfig,
    fake_transport: FakeTransport,
    mock_authenticator: MagicMock,
) -> Connection:
    """Connection wired to the in-memory transport with long keepalive periods."""
    return Connection(
        client_config,
        transport=fake_transport,
        authenticator=mock_authenticator,
        beat_interval=60.0,
        test_interval=60.0,
    )


def bring_up(connection: Connection, channel: str = "calls", rows: list[list[Any]] | None = None) -> None:
    """Drive ``connection`` through login, join ack, schema and snapshot for ``channel``.

    Needs a running event loop (the snapshot starts keepalive timers).
    """
    connection.read(frame(login_msg()))
    connection.read(frame(join_ack(channel)))
    connection.read(frame(live_msg(channel, "init", SCHEMA)))
    connection.read(frame(live_msg(channel, "bootstrap_data", bootstrap_rows() if rows is None else rows)))
