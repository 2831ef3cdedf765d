"""Named-event fan-out for connections and the live cache."""

from __future__ import annotations

import asyncio
from collections import defaultdict
from collections.abc import Callable
from enum import StrEnum
from typing import Any

from cudatel_live.logging_abstraction import get_logger

__all__ = [
    "CacheEvent",
    "ConnectionEvent",
    "EventEmitter",
    "EventHandler",
]

logger = get_logger(__name__)

EventHandler = Callable[..., Any]


class ConnectionEvent(StrEnum):
    """Events emitted by a Connection."""

    FORGED = "forged"  # socket handshake started (url)
    OPENED = "opened"  # socket open, CONNECT sent (session id)
    AUTHED = "authed"  # login acknowledged (session id)
    JOINED = "joined"  # JOIN sent (channel)
    LOADED = "loaded"  # channel locked (channel)
    BOOTING = "booting"  # bootstrap requested (channel)
    BOOTED = "booted"  # every boot channel has its boot sent (channel)
    BONDED = "bonded"  # snapshot formatted (channel, records)
    CLEARED = "cleared"  # server cleared the channel (channel)
    PUSHED = "pushed"  # envelope written (envelope)
    PULSED = "pulsed"  # heartbeat sent (channel, hb_id)
    TESTED = "tested"  # health check sent (channel, test seq)
    PINGED = "pinged"  # server keepalive received (channel, message)
    PULLED = "pulled"  # incremental record delivered (channel, record)
    CLOSED = "closed"  # connection torn down
    ERROR = "error"  # LiveProtocolError instance


class CacheEvent(StrEnum):
    """Events emitted by a LiveClient."""

    CREATE = "create"  # (channel, row, rows)
    UPDATE = "update"  # (channel, row, rows)
    DELETE = "delete"  # (channel, row, rows)
    LOADED = "loaded"  # (channel, rows)
    ERROR = "error"  # LiveProtocolError instance


class EventEmitter:
    """Synchronous event emitter.

    Handlers run in registration order on the emitting call. A handler that
    raises is logged and the remaining handlers still run. Coroutine results
    are scheduled as tasks on the running loop.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[EventHandler]] = defaultdict(list)
        self._background_tasks: set[asyncio.Task[Any]] = set()

    def on(self, event: str, handler: EventHandler | None = None) -> Any:
        """Register ``handler`` for ``event``; usable as a decorator when handler is omitted.

        Example:
            @connection.on(ConnectionEvent.BONDED)
            def bonded(channel, records): ...
        """
        if handler is not None:
            self._handlers[str(event)].append(handler)
            return handler

        def decorator(fn: EventHandler) -> EventHandler:
            self._handlers[str(event)].append(fn)
            return fn

        return decorator

    def off(self, event: str, handler: EventHandler) -> None:
        """Remove a specific handler."""
        handlers = self._handlers.get(str(event), [])
        if handler in handlers:
            handlers.remove(handler)

    def remove_all_listeners(self, event: str | None = None) -> None:
        if event is None:
            self._handlers.clear()
        else:
            self._handlers.pop(str(event), None)

    def listener_count(self, event: str) -> int:
        return len(self._handlers.get(str(event), []))

    def emit(self, event: str, *args: Any) -> bool:
        """Call every handler for ``event``; returns False when nobody listens."""
        handlers = list(self._handlers.get(str(event), []))
        for handler in handlers:
            try:
                result = handler(*args)
                if asyncio.iscoroutine(result):
                    self._fire_task(result)
            except Exception:
                logger.exception("Handler error for '%s'", str(event), extra={"event": str(event)})
        return bool(handlers)

    def _fire_task(self, coro: Any) -> None:
        task = asyncio.ensure_future(coro)
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)
