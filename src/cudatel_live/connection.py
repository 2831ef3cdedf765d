"""One live-data socket connection and its channel lifecycle.

A Connection owns everything that lives for one socket: the channel registry
(sequence numbers, per-channel state and timers), the schemas received with
``init``, the outbound queue and the reader/sender tasks. Reconnecting means
building a new Connection; nothing is reused.

Flow::

    start() -> forged -> socket open -> GUI login -> CONNECT -> opened
    "login" reply -> authed -> JOIN per group -> joined (join channels loaded)
    "join_channel" ack on a boot channel -> booting -> boot sent -> booted
    "init" -> schema stored; "bootstrap_data" -> loaded, timers, bonded
    later rows on a done channel -> pulled
    socket closed -> channels dumped -> logout -> closed

All message handlers are synchronous and run on the event loop in frame
order. Sends are queued and written by a single sender task.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Coroutine, Mapping
from typing import Any, cast

from cudatel_live.auth import Authenticator
from cudatel_live.channels import ChannelGroup, ChannelRegistry, LockResult
from cudatel_live.config import ClientConfig, ConfigStore
from cudatel_live.correlation import correlation_context, generate_correlation_id
from cudatel_live.events import ConnectionEvent, EventEmitter
from cudatel_live.formatter import Record, format_values
from cudatel_live.heartbeat import HeartbeatScheduler
from cudatel_live.logging_abstraction import get_logger
from cudatel_live.metrics import (
    record_channel_done,
    record_format_error,
    record_frame_decode_error,
    record_keepalive,
    record_message_recv,
    record_message_sent,
    record_routing_error,
)
from cudatel_live.protocol.codec import MessageCodec
from cudatel_live.protocol.exceptions import (
    FormatError,
    FrameDecodeError,
    LiveProtocolError,
    RemoteError,
    RoutingError,
    UnknownChannelError,
)
from cudatel_live.protocol.messages import (
    ACTION_BOOTSTRAP_DATA,
    ACTION_CHANNEL_USERS,
    ACTION_CLEAR,
    ACTION_ERR,
    ACTION_IDENT,
    ACTION_INIT,
    ACTION_JOIN_CHANNEL,
    ACTION_LOGIN,
    ACTION_USER_JOIN,
    ACTION_USER_LEFT,
    METEOR_ALIVE,
    Envelope,
    InboundMessage,
    OutboundKind,
)
from cudatel_live.transport.exceptions import AuthenticationError, TransportError
from cudatel_live.transport.websocket import Transport, WebSocketTransport

__all__ = ["Connection"]

logger = get_logger(__name__)

CommandHandler = Callable[[str | None, InboundMessage], None]


def _pubid(user: object) -> str | None:
    if isinstance(user, Mapping):
        value = cast("Mapping[str, object]", user).get("pubid")
        return str(value) if value is not None else None
    if isinstance(user, str | int):
        return str(user)
    return None


class Connection(EventEmitter):
    """Live-data connection: one socket multiplexed into channels."""

    lp: str = "Connection"

    def __init__(
        self,
        config: ClientConfig,
        store: ConfigStore | None = None,
        transport: Transport | None = None,
        authenticator: Authenticator | None = None,
        beat_interval: float | None = None,
        test_interval: float | None = None,
    ) -> None:
        super().__init__()
        self.config = config
        self.store = store
        self.session = config.session()
        self.registry = ChannelRegistry(config.sets.join, config.sets.boot)
        self.scheduler = HeartbeatScheduler(
            self.registry,
            on_beat=self.beat,
            on_test=self.test,
            beat_interval=beat_interval,
            test_interval=test_interval,
        )
        self.transport: Transport = transport or WebSocketTransport(self.session.ws_url, origin=self.session.origin)
        self.authenticator = authenticator or Authenticator(self.session.http_base)

        # channel -> column labels received with "init"
        self.bond: dict[str, list[str]] = {}
        self.no_calls: dict[str, bool] = {}
        self.pubid: str | None = None
        self.correlation_id = generate_correlation_id()

        self._outbox: asyncio.Queue[Envelope] = asyncio.Queue()
        self._tasks: set[asyncio.Task[Any]] = set()
        self._joined = False
        self._closing = False
        self.closed = False

        self.commands: dict[str, CommandHandler] = {
            ACTION_JOIN_CHANNEL: self._on_join_channel,
            ACTION_LOGIN: self._on_login,
            ACTION_USER_JOIN: self._on_users,
            ACTION_USER_LEFT: self._on_users,
            ACTION_IDENT: self._on_users,
            ACTION_CHANNEL_USERS: self._on_users,
            METEOR_ALIVE: self._on_pinged,
            ACTION_INIT: self._on_init,
            ACTION_CLEAR: self._on_clear,
            ACTION_BOOTSTRAP_DATA: self._on_strap,
            ACTION_ERR: self._on_err,
        }

    # -- Lifecycle ------------------------------------------------------------

    async def start(self) -> bool:
        """Open the socket and start the reader, sender and login tasks.

        Returns:
            False when the socket could not be opened (the connection is closed)
        """
        lp = f"{self.lp}:start:"
        with correlation_context(self.correlation_id):
            self.emit(ConnectionEvent.FORGED, self.session.ws_url)
            if not await self.transport.connect():
                self._report(TransportError("connect failed", state="connecting"))
                await self.close()
                return False

            logger.info("%s Socket open", lp, extra={"url": self.session.ws_url})
            self._spawn(self._sender(), "sender")
            self._spawn(self._reader(), "reader")
            self._spawn(self._authenticate(), "auth")
        return True

    async def close(self) -> None:
        """Dump every channel, close the socket, log out, then emit closed."""
        lp = f"{self.lp}:close:"
        if self._closing:
            return
        self._closing = True

        for channel in self.registry.dump_all():
            record_channel_done(channel, False)

        await self._cancel_tasks()
        await self.transport.close()

        logged_out = await self.authenticator.shut()
        if not logged_out:
            logger.warning("%s GUI logout failed", lp, extra={"server": self.session.server_address})

        self.closed = True
        logger.info("%s Connection closed", lp, extra={"server": self.session.server_address})
        self.emit(ConnectionEvent.CLOSED)

    async def stop(self) -> None:
        """Detach every listener and tear the connection down without notifying anyone."""
        self.remove_all_listeners()
        await self.close()
        await self._cancel_tasks()
        await self.authenticator.close()

    def _spawn(self, coro: Coroutine[Any, Any, Any], name: str) -> None:
        task = asyncio.get_running_loop().create_task(coro, name=f"{self.lp}:{name}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _cancel_tasks(self) -> None:
        current = asyncio.current_task()
        pending = [task for task in self._tasks if task is not current and not task.done()]
        for task in pending:
            _ = task.cancel()
        if pending:
            _ = await asyncio.gather(*pending, return_exceptions=True)

    async def _authenticate(self) -> None:
        lp = f"{self.lp}:authenticate:"
        try:
            result = await self.authenticator.open(self.config.active.user)
        except AuthenticationError as e:
            self._report(e)
            await self.close()
            return
        logger.debug("%s GUI session acquired", lp)
        self.send(OutboundKind.AUTH, result.session_id)
        self.emit(ConnectionEvent.OPENED, self.session.session_id)

    async def _reader(self) -> None:
        lp = f"{self.lp}:reader:"
        try:
            async for text in self.transport.frames():
                self.read(text)
            logger.info("%s Socket stream ended", lp)
        except TransportError as e:
            self._report(e)
        except Exception as e:
            logger.exception("%s Reader failed (unexpected error)", lp, extra={"error_type": type(e).__name__})
        finally:
            await self.close()

    async def _sender(self) -> None:
        while True:
            envelope = await self._outbox.get()
            try:
                await self.transport.send(MessageCodec.to_frame(envelope))
            except TransportError as e:
                record_message_sent(envelope.cmd, "error")
                self._report(e)
                await self.close()
                return
            record_message_sent(envelope.cmd, "ok")
            self.emit(ConnectionEvent.PUSHED, envelope)

    # -- Outbound -------------------------------------------------------------

    def send(self, kind: OutboundKind | str, context: Any = None, hb_id: int | None = None) -> Envelope:
        """Encode and queue a message; completion is reported through ``pushed``."""
        kind = OutboundKind(kind)
        if kind is OutboundKind.BEAT and hb_id is None:
            hb_id = self.registry.tick(context)
        envelope = MessageCodec.encode(kind, context, self.registry.next(), self.session.session_id, hb_id)
        if self._closing:
            logger.debug("%s:send: Dropping %s, connection closing", self.lp, kind, extra={"chl": envelope.chl})
            return envelope
        self._outbox.put_nowait(envelope)
        return envelope

    def join(self) -> None:
        """Send one JOIN per channel group, then lock the join-only channels."""
        if self._joined:
            return
        self._joined = True
        self.registry.make_all()

        for group in (ChannelGroup.JOIN, ChannelGroup.BOOT):
            channels = cast("list[str]", self.registry.list_channels(group))
            if channels:
                _ = self.send(OutboundKind.JOIN, channels)

        for channel in list(self.registry.channels()):
            self.emit(ConnectionEvent.JOINED, channel)

        for channel in cast("list[str]", self.registry.list_channels(ChannelGroup.JOIN)):
            _ = self._lock(channel)

    def beat(self, channel: str) -> None:
        hb_id = self.registry.tick(channel)
        _ = self.send(OutboundKind.BEAT, channel, hb_id=hb_id)
        record_keepalive(channel, "beat")
        self.emit(ConnectionEvent.PULSED, channel, hb_id)

    def test(self, channel: str) -> None:
        seq = self.registry.next_test(channel)
        _ = self.send(OutboundKind.STAT, channel)
        record_keepalive(channel, "test")
        self.emit(ConnectionEvent.TESTED, channel, seq)

    # -- Channel state --------------------------------------------------------

    def done(self, channel: str | None = None) -> bool:
        return self.registry.done(channel)

    def dump(self, channel: str) -> None:
        """Cancel the channel's timers and reinitialize it (error notification when unknown)."""
        try:
            _ = self.registry.dump(channel)
        except UnknownChannelError as e:
            self._report(e)
            return
        record_channel_done(channel, False)

    def _lock(self, channel: str, snapshot: bool = False) -> LockResult:
        result = self.registry.lock(channel, snapshot=snapshot)
        if result is LockResult.BOOTING:
            self.emit(ConnectionEvent.BOOTING, channel)
            self._on_booting(channel)
        elif result is LockResult.LOCKED:
            record_channel_done(channel, True)
            self.emit(ConnectionEvent.LOADED, channel)
        return result

    def _on_booting(self, channel: str) -> None:
        state = self.registry.state(channel)
        if not state.sent:
            _ = self.send(OutboundKind.BOOT, channel)
            self.registry.mark_sent(channel)
        if self.registry.all_sent():
            self.emit(ConnectionEvent.BOOTED, channel)

    # -- Inbound --------------------------------------------------------------

    def read(self, text: str | bytes) -> None:
        """Decode one frame and route each of its messages."""
        try:
            frame = MessageCodec.decode_frame(text)
        except FrameDecodeError as e:
            record_frame_decode_error()
            self._report(e)
            return
        for error in frame.errors:
            record_frame_decode_error()
            self._report(error)

        self.assemble(frame.messages)
        for message in frame.messages:
            try:
                self._route(message)
            except LiveProtocolError as e:
                self._report(e)

    def assemble(self, messages: list[InboundMessage]) -> None:
        """Update the no_calls flag of the batch's channel.

        A batch without a channel is skipped; its clear is reported when routed.
        """
        scan = MessageCodec.scan_batch(messages)
        if scan.channel is None:
            return
        if scan.no_calls is not None:
            self.no_calls[scan.channel] = scan.no_calls

    def _route(self, message: InboundMessage) -> None:
        channel = message.channel
        if channel is None or MessageCodec.is_command(message, channel, self.registry.done(channel)):
            record_message_recv("command")
            self.command(channel, message)
            return

        record_message_recv("cache")
        record = self.format(message, channel)
        if record is None:
            record_format_error(channel)
            raise FormatError(channel)
        self.emit(ConnectionEvent.PULLED, channel, record)

    def format(self, message: InboundMessage, channel: str) -> Record | None:
        return format_values(message.values, self.bond.get(channel), message.action)

    def command(self, channel: str | None, message: InboundMessage) -> None:
        key = message.dispatch_key(channel)
        handler = self.commands.get(key)
        if handler is None:
            raise RoutingError("uncategorized", action=key)
        handler(channel, message)

    # -- Command handlers -----------------------------------------------------

    @staticmethod
    def _require(channel: str | None, action: str) -> str:
        if channel is None:
            raise RoutingError(f"{action}_without_channel", action=action)
        return channel

    def _on_join_channel(self, channel: str | None, message: InboundMessage) -> None:
        _ = self._lock(self._require(channel, ACTION_JOIN_CHANNEL))

    def _on_login(self, channel: str | None, message: InboundMessage) -> None:
        lp = f"{self.lp}:login:"
        sessid = message.data.get("sessid")
        self.session.session_id = str(sessid) if sessid is not None else None
        self.config.ws_sessid = self.session.session_id
        logger.info("%s Socket authenticated", lp)

        if self.store is not None:
            self._spawn(self.store.save_session_id(self.session.session_id), "save_session")
        self.emit(ConnectionEvent.AUTHED, self.session.session_id)
        self.join()

    def _on_users(self, channel: str | None, message: InboundMessage) -> None:
        action = message.dispatch_key(channel)
        if action == ACTION_IDENT:
            self.pubid = _pubid(message.data.get("user"))
            return

        channel = self._require(channel, action)
        if action == ACTION_CHANNEL_USERS:
            users = message.data.get("users")
            members = [_pubid(user) for user in cast("list[object]", users)] if isinstance(users, list) else []
            self.registry.set_users(channel, [user for user in members if user is not None])
            return

        user = _pubid(message.data.get("user"))
        if user is None:
            return
        if action == ACTION_USER_JOIN:
            self.registry.add_user(channel, user)
        elif action == ACTION_USER_LEFT:
            self.registry.remove_user(channel, user)

    def _on_pinged(self, channel: str | None, message: InboundMessage) -> None:
        self.emit(ConnectionEvent.PINGED, channel, message)

    def _on_init(self, channel: str | None, message: InboundMessage) -> None:
        channel = self._require(channel, ACTION_INIT)
        values = message.values
        self.bond[channel] = [str(label) for label in cast("list[object]", values)] if isinstance(values, list) else []
        logger.debug("%s:init: Schema received", self.lp, extra={"channel": channel, "columns": len(self.bond[channel])})

        if self.no_calls.get(channel):
            empty = InboundMessage(
                raw=message.raw,
                data={"channel": channel, "data": {"action": ACTION_BOOTSTRAP_DATA, "data": []}},
            )
            self._on_strap(channel, empty)

    def _on_clear(self, channel: str | None, message: InboundMessage) -> None:
        self.emit(ConnectionEvent.CLEARED, self._require(channel, ACTION_CLEAR))

    def _on_strap(self, channel: str | None, message: InboundMessage) -> None:
        lp = f"{self.lp}:strap:"
        channel = self._require(channel, ACTION_BOOTSTRAP_DATA)
        if self._lock(channel, snapshot=True) is LockResult.BOOTING:
            return
        if self.registry.group_of(channel) is ChannelGroup.BOOT:
            self.scheduler.start(channel)

        rows = message.values
        schema = self.bond.get(channel)
        bootstrap: list[Record] = []
        for row in cast("list[Any]", rows) if isinstance(rows, list) else []:
            record = format_values(row, schema, message.action)
            if record is None:
                record_format_error(channel)
                self._report(FormatError(channel))
                continue
            bootstrap.append(record)

        logger.info("%s Snapshot received", lp, extra={"channel": channel, "rows": len(bootstrap)})
        self.emit(ConnectionEvent.BONDED, channel, bootstrap)

    def _on_err(self, channel: str | None, message: InboundMessage) -> None:
        raise RemoteError(message.data.get("value"), message.data.get("code"))

    # -- Errors ---------------------------------------------------------------

    def _report(self, error: LiveProtocolError) -> None:
        """Log ``error`` and deliver it on the error event."""
        if isinstance(error, RoutingError):
            record_routing_error(error.reason)
        logger.warning(
            "%s %s",
            self.lp,
            error,
            extra={"error_type": type(error).__name__},
        )
        self.emit(ConnectionEvent.ERROR, error)
