"""Live-data client: keeps a Connection alive and its record cache in sync.

The client loads the configuration, opens a Connection, mirrors every boot
channel into a LiveCache and rebuilds the connection whenever it closes or the
server breaks the snapshot protocol. By default the rebuild is immediate; a
RetryPolicy spaces consecutive rebuilds out.

Example:
    client = LiveClient()

    @client.on(CacheEvent.UPDATE)
    def updated(channel, row, rows): ...

    await client.boot()
    await client.open()
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any

from cudatel_live.config import ClientConfig, ConfigStore
from cudatel_live.connection import Connection
from cudatel_live.events import CacheEvent, ConnectionEvent, EventEmitter, EventHandler
from cudatel_live.formatter import Record
from cudatel_live.instrumentation import timed
from cudatel_live.live_cache import LiveCache
from cudatel_live.logging_abstraction import get_logger
from cudatel_live.metrics import record_reconnection, start_metrics_server
from cudatel_live.protocol.exceptions import LiveProtocolError, ProtocolViolation
from cudatel_live.retry_policy import RetryPolicy

__all__ = ["LiveClient"]

logger = get_logger(__name__)

ConnectionFactory = Callable[[ClientConfig, ConfigStore], Connection]


class LiveClient(EventEmitter):
    """Reconnecting live-data client with a per-channel record cache."""

    lp: str = "LiveClient"

    def __init__(
        self,
        store: ConfigStore | None = None,
        connection_factory: ConnectionFactory | None = None,
        retry_policy: RetryPolicy | None = None,
        metrics_port: int | None = None,
    ) -> None:
        from cudatel_live.const import CUDATEL_METRICS_PORT

        super().__init__()
        self.store = store or ConfigStore()
        self.connection_factory: ConnectionFactory = connection_factory or (
            lambda config, store: Connection(config, store)
        )
        self.retry_policy = retry_policy
        self.metrics_port = metrics_port if metrics_port is not None else CUDATEL_METRICS_PORT
        self.config: ClientConfig | None = None
        self.connection: Connection | None = None
        self.cache = LiveCache()
        self.generation = 0
        self._attempt = 0
        self._restart_task: asyncio.Task[None] | None = None
        self._stopped = False
        self.watchers: dict[ConnectionEvent, EventHandler] = {
            ConnectionEvent.AUTHED: self._on_authed,
            ConnectionEvent.BONDED: self.fill,
            ConnectionEvent.CLEARED: self._on_cleared,
            ConnectionEvent.PULLED: self._on_pulled,
            ConnectionEvent.CLOSED: self._on_closed,
            ConnectionEvent.ERROR: self._on_error,
        }

    @property
    def watch(self) -> list[str]:
        """Channels mirrored into the cache (the boot set)."""
        return list(self.config.sets.boot) if self.config is not None else []

    async def boot(self) -> ClientConfig:
        """Load the configuration and start the metrics endpoint when configured."""
        self.config = await self.store.load()
        if self.metrics_port:
            start_metrics_server(self.metrics_port)
        return self.config

    async def open(self) -> Connection:
        """Build a new Connection, reset the cache and start the connection."""
        lp = f"{self.lp}:open:"
        config = self.config or await self.boot()

        self._stopped = False
        self.generation += 1
        connection = self.connection_factory(config, self.store)
        self.connection = connection
        self.wipe()
        logger.info("%s Opening connection", lp, extra={"generation": self.generation})
        _ = await connection.start()
        return connection

    def wipe(self) -> None:
        """Attach the watchers to the current connection and reset every watched channel."""
        if self.connection is not None:
            for event, handler in self.watchers.items():
                _ = self.connection.on(event, handler)
        self.cache.reset(self.watch)

    def done(self, channel: str) -> bool:
        return self.cache.done(channel)

    def rows(self, channel: str) -> list[dict[str, Any] | None]:
        return self.cache.rows(channel)

    @timed("bootstrap_apply")
    def fill(self, channel: str, records: list[Record]) -> None:
        """Apply a channel snapshot and emit loaded."""
        try:
            rows = self.cache.fill(channel, records)
        except ProtocolViolation as e:
            self._report(e)
            self.shut("protocol_violation")
            return
        if rows is not None:
            self.emit(CacheEvent.LOADED, channel, rows)

    def read(self, channel: str, record: Record) -> None:
        """Apply one incremental record and emit create/update/delete."""
        try:
            mutation = self.cache.apply(channel, record)
        except ProtocolViolation as e:
            self._report(e)
            self.shut("protocol_violation")
            return
        except LiveProtocolError as e:
            self._report(e)
            return
        if mutation is not None:
            self.emit(mutation.event, channel, mutation.row, mutation.rows)

    def shut(self, reason: str = "closed") -> None:
        """Schedule a rebuild of the connection (at most one pending)."""
        lp = f"{self.lp}:shut:"
        if self._stopped:
            return
        if self._restart_task is not None and not self._restart_task.done():
            return
        logger.error("%s Connection closed, re-opening", lp, extra={"reason": reason})
        self._restart_task = asyncio.get_running_loop().create_task(self._restart(reason), name=f"{self.lp}:restart")

    async def _restart(self, reason: str) -> None:
        lp = f"{self.lp}:restart:"
        old = self.connection
        if old is not None:
            await old.stop()
        record_reconnection(reason)

        if self.retry_policy is not None:
            if self.retry_policy.exhausted(self._attempt):
                logger.error("%s Giving up after %d attempts", lp, self._attempt, extra={"reason": reason})
                self._stopped = True
                return
            delay = self.retry_policy.get_delay(self._attempt)
            self._attempt += 1
            logger.info("%s Waiting %.2fs before reconnecting", lp, delay, extra={"attempt": self._attempt})
            await asyncio.sleep(delay)

        # a failed start() closes the new connection, which must be able to schedule the next rebuild
        self._restart_task = None
        if not self._stopped:
            _ = await self.open()

    async def close(self) -> None:
        """Stop the client for good: no further reconnects."""
        self._stopped = True
        if self._restart_task is not None and not self._restart_task.done():
            _ = self._restart_task.cancel()
            try:
                await self._restart_task
            except asyncio.CancelledError:
                logger.debug("%s:close: Pending restart cancelled", self.lp)
        if self.connection is not None:
            await self.connection.stop()

    # -- Watchers -------------------------------------------------------------

    def _on_authed(self, session_id: str | None) -> None:
        self._attempt = 0

    def _on_cleared(self, channel: str) -> None:
        self.cache.clear(channel)

    def _on_pulled(self, channel: str, record: Record) -> None:
        if self.done(channel):
            self.read(channel, record)

    def _on_closed(self) -> None:
        self.shut("closed")

    def _on_error(self, error: LiveProtocolError) -> None:
        self.emit(CacheEvent.ERROR, error)

    def _report(self, error: LiveProtocolError) -> None:
        logger.warning("%s %s", self.lp, error, extra={"error_type": type(error).__name__})
        self.emit(CacheEvent.ERROR, error)
