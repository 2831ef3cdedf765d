"""Per-channel keepalive timers.

Every locked bootstrap channel carries two repeating timers: a short-period
heartbeat (``beat``) and a long-period session health check (``test``). Both
are asyncio tasks stored on the channel's ChannelState so that dumping the
channel cancels them.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import TYPE_CHECKING

from cudatel_live.logging_abstraction import get_logger

if TYPE_CHECKING:
    from cudatel_live.channels import ChannelRegistry

__all__ = [
    "HeartbeatScheduler",
    "RepeatingTimer",
]

logger = get_logger(__name__)


class RepeatingTimer:
    """Calls ``callback`` every ``interval`` seconds until cancelled.

    The first call happens one full interval after start(). Callback errors
    are logged and the timer keeps running.
    """

    def __init__(self, interval: float, callback: Callable[[], object], name: str = "timer"):
        self.interval = interval
        self.callback = callback
        self.name = name
        self.fired = 0
        self._task: asyncio.Task[None] | None = None

    @property
    def active(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.active:
            return
        self._task = asyncio.get_running_loop().create_task(self._run(), name=self.name)

    def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            _ = self._task.cancel()
        self._task = None

    async def _run(self) -> None:
        while True:
            try:
                await asyncio.sleep(self.interval)
            except asyncio.CancelledError:
                logger.debug("Timer %s cancelled", self.name, extra={"timer": self.name, "fired": self.fired})
                raise
            self.fired += 1
            try:
                _ = self.callback()
            except Exception as e:
                logger.exception(
                    "Error in timer callback",
                    extra={"timer": self.name, "error": str(e)},
                )

    def __repr__(self) -> str:
        return f"RepeatingTimer(name={self.name!r}, interval={self.interval}s, active={self.active})"


class HeartbeatScheduler:
    """Starts and stops the beat/test timer pair of each channel.

    ``on_beat`` and ``on_test`` are called with the channel name on every
    firing; the connection uses them to send the keepalive and emit the
    matching event.
    """

    def __init__(
        self,
        registry: ChannelRegistry,
        on_beat: Callable[[str], object],
        on_test: Callable[[str], object],
        beat_interval: float | None = None,
        test_interval: float | None = None,
    ):
        from cudatel_live.const import CUDATEL_HEALTHCHECK_INTERVAL, CUDATEL_HEARTBEAT_INTERVAL

        self.registry = registry
        self.on_beat = on_beat
        self.on_test = on_test
        self.beat_interval = beat_interval if beat_interval is not None else CUDATEL_HEARTBEAT_INTERVAL
        self.test_interval = test_interval if test_interval is not None else CUDATEL_HEALTHCHECK_INTERVAL

    def start(self, channel: str) -> None:
        """Start both timers for ``channel``, cancelling any existing pair first."""
        state = self.registry.state(channel)
        state.cancel_timers()

        state.beat_timer = RepeatingTimer(self.beat_interval, lambda: self.on_beat(channel), name=f"beat:{channel}")
        state.test_timer = RepeatingTimer(self.test_interval, lambda: self.on_test(channel), name=f"test:{channel}")
        state.beat_timer.start()
        state.test_timer.start()

        logger.debug(
            "Keepalive timers started for %s",
            channel,
            extra={"channel": channel, "beat_interval": self.beat_interval, "test_interval": self.test_interval},
        )

    def running(self, channel: str) -> bool:
        """True when both timers of ``channel`` are live."""
        state = self.registry.peek(channel)
        if state is None:
            return False
        return bool(state.beat_timer and state.beat_timer.active and state.test_timer and state.test_timer.active)
