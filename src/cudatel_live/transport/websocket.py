"""aiohttp WebSocket adapter for the live-data socket."""

from __future__ import annotations

import time
from collections.abc import AsyncIterator
from typing import Protocol

import aiohttp

from cudatel_live.logging_abstraction import get_logger
from cudatel_live.transport.exceptions import TransportError

__all__ = [
    "Transport",
    "WebSocketTransport",
]

logger = get_logger(__name__)


class Transport(Protocol):
    """What a Connection needs from its socket."""

    async def connect(self) -> bool: ...

    async def send(self, text: str) -> None: ...

    def frames(self) -> AsyncIterator[str]: ...

    async def close(self) -> None: ...


class WebSocketTransport:
    """WebSocket client connection with instrumentation."""

    def __init__(
        self,
        url: str,
        origin: str | None = None,
        http_session: aiohttp.ClientSession | None = None,
        connect_timeout: float = 10.0,
    ):
        """
        Initialize WebSocket connection parameters.

        Args:
            url: ``ws://`` URL of the live-data endpoint
            origin: Origin header sent with the handshake
            http_session: Session to connect with (one is created when omitted)
            connect_timeout: Handshake timeout in seconds
        """
        self.url = url
        self.origin = origin
        self.connect_timeout = connect_timeout
        self.http_session = http_session
        self.ws: aiohttp.ClientWebSocketResponse | None = None
        self._owns_session = http_session is None
        self._connected = False

    @property
    def connected(self) -> bool:
        return self._connected and self.ws is not None and not self.ws.closed

    async def connect(self) -> bool:
        """
        Perform the WebSocket handshake.

        Returns:
            True if connected successfully, False otherwise
        """
        start_time = time.perf_counter()
        if self.http_session is None or self.http_session.closed:
            self.http_session = aiohttp.ClientSession()
            self._owns_session = True
        try:
            logger.info(
                "Connecting to %s (timeout: %.1fs)",
                self.url,
                self.connect_timeout,
                extra={"url": self.url, "origin": self.origin, "timeout": self.connect_timeout},
            )
            self.ws = await self.http_session.ws_connect(
                self.url,
                origin=self.origin,
                timeout=aiohttp.ClientWSTimeout(ws_receive=None, ws_close=self.connect_timeout),
            )
        except (aiohttp.ClientError, TimeoutError, OSError) as e:
            elapsed_ms = (time.perf_counter() - start_time) * 1000
            logger.exception(
                "Connection to %s failed after %.1fms",
                self.url,
                elapsed_ms,
                extra={"url": self.url, "elapsed_ms": elapsed_ms, "error": str(e)},
            )
            return False
        else:
            self._connected = True
            elapsed_ms = (time.perf_counter() - start_time) * 1000
            logger.info(
                "Connected to %s in %.1fms",
                self.url,
                elapsed_ms,
                extra={"url": self.url, "elapsed_ms": elapsed_ms},
            )
            return True

    async def send(self, text: str) -> None:
        """
        Send one text frame.

        Raises:
            TransportError: If not connected or the write fails
        """
        if not self.connected or self.ws is None:
            raise TransportError("not connected", state="closed")
        try:
            await self.ws.send_str(text)
        except (aiohttp.ClientError, ConnectionError, RuntimeError) as e:
            raise TransportError(f"send failed: {e}", state="open") from e
        logger.debug("Sent %d chars", len(text), extra={"chars": len(text)})

    async def frames(self) -> AsyncIterator[str]:
        """
        Yield inbound text frames until the socket closes.

        Raises:
            TransportError: If the socket reports an error frame
        """
        if self.ws is None:
            raise TransportError("not connected", state="closed")
        async for msg in self.ws:
            if msg.type == aiohttp.WSMsgType.TEXT:
                yield msg.data
            elif msg.type == aiohttp.WSMsgType.BINARY:
                yield msg.data.decode("utf-8", errors="replace")
            elif msg.type == aiohttp.WSMsgType.ERROR:
                self._connected = False
                raise TransportError(f"socket error: {self.ws.exception()}", state="open")
            else:
                break
        self._connected = False
        logger.info("Socket closed by peer", extra={"url": self.url, "close_code": self.ws.close_code})

    async def close(self) -> None:
        """Close the socket, and the HTTP session when this transport created it."""
        self._connected = False
        if self.ws is not None and not self.ws.closed:
            try:
                _ = await self.ws.close()
            except (aiohttp.ClientError, OSError) as e:
                logger.warning("Error closing socket", extra={"url": self.url, "error": str(e)})
        self.ws = None
        if self._owns_session and self.http_session is not None and not self.http_session.closed:
            await self.http_session.close()
        self.http_session = None
