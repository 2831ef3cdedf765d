"""Channel registry and lifecycle state.

Channels come in two groups fixed at start-up:

- ``join``: subscribe only; done as soon as the JOIN is sent
- ``boot``: subscribe and bootstrap; done once the boot request was sent and
  the snapshot arrived

Lifecycle of a boot channel::

    created -> joined -> (booting: boot sent) -> schema received
            -> snapshot received (locked, timers running) -> dumped

The registry also owns the connection-wide outbound sequence counter.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING

from cudatel_live.logging_abstraction import get_logger
from cudatel_live.protocol.exceptions import UnknownChannelError

if TYPE_CHECKING:
    from cudatel_live.heartbeat import RepeatingTimer

__all__ = [
    "ChannelGroup",
    "ChannelRegistry",
    "ChannelState",
    "LockResult",
]

logger = get_logger(__name__)


class ChannelGroup(StrEnum):
    JOIN = "join"
    BOOT = "boot"


class LockResult(StrEnum):
    """Outcome of ChannelRegistry.lock()."""

    LOCKED = "locked"  # transitioned to done
    UNCHANGED = "unchanged"  # already done
    BOOTING = "booting"  # boot channel whose boot request is still unsent


@dataclass
class ChannelState:
    """Per-channel lifecycle state.

    Attributes:
        beat_timer: Heartbeat timer, present only while a boot channel is locked
        test_timer: Health-check timer, present only while a boot channel is locked
        tick: Next heartbeat id
        test: Next health-check sequence number
        users: Public ids of users present on the channel
        done: Channel is locked and receives incremental updates
        sent: Boot request sent (always True for join channels)
    """

    beat_timer: RepeatingTimer | None = None
    test_timer: RepeatingTimer | None = None
    tick: int = 0
    test: int = 0
    users: set[str] = field(default_factory=set)
    done: bool = False
    sent: bool = True

    @property
    def has_timers(self) -> bool:
        return self.beat_timer is not None or self.test_timer is not None

    def cancel_timers(self) -> None:
        if self.beat_timer is not None:
            self.beat_timer.cancel()
            self.beat_timer = None
        if self.test_timer is not None:
            self.test_timer.cancel()
            self.test_timer = None


class ChannelRegistry:
    """Tracks group membership and lifecycle state of every configured channel."""

    def __init__(self, join: Iterable[str] = (), boot: Iterable[str] = ()):
        self.sets: dict[ChannelGroup, list[str]] = {
            ChannelGroup.JOIN: [channel.lower() for channel in join],
            ChannelGroup.BOOT: [channel.lower() for channel in boot],
        }
        self._data: dict[str, ChannelState] = {}
        self._poll = 0

    # -- Membership -----------------------------------------------------------

    def list_channels(self, group: ChannelGroup | str | None = None) -> list[str] | dict[ChannelGroup, list[str]]:
        """Channels of ``group``, or every group when ``group`` is None or unknown."""
        if group is None or group not in self.sets:
            return {key: list(channels) for key, channels in self.sets.items()}
        return list(self.sets[ChannelGroup(group)])

    def channels(self) -> Iterator[str]:
        """Every configured channel, join group first."""
        for group in (ChannelGroup.JOIN, ChannelGroup.BOOT):
            yield from self.sets[group]

    def group_of(self, channel: str) -> ChannelGroup:
        """Group that ``channel`` belongs to.

        Raises:
            UnknownChannelError: If the channel is in neither group
        """
        for group, channels in self.sets.items():
            if channel in channels:
                return group
        raise UnknownChannelError(channel)

    # -- State ----------------------------------------------------------------

    def make(self, channel: str) -> ChannelState:
        """Create (or recreate) the state of ``channel``."""
        state = ChannelState(sent=self.group_of(channel) is not ChannelGroup.BOOT)
        self._data[channel] = state
        return state

    def make_all(self) -> None:
        for channel in self.channels():
            _ = self.make(channel)

    def state(self, channel: str) -> ChannelState:
        """State of ``channel``, created on first reference."""
        state = self._data.get(channel)
        if state is None:
            state = self.make(channel)
        return state

    def peek(self, channel: str) -> ChannelState | None:
        return self._data.get(channel)

    def done(self, channel: str | None = None) -> bool:
        """Whether ``channel`` is locked; with no channel, whether every channel is."""
        if channel is None:
            return all(self._data.get(name) is not None and self._data[name].done for name in self.channels())
        state = self._data.get(channel)
        return state is not None and state.done

    def lock(self, channel: str, snapshot: bool = False) -> LockResult:
        """Mark ``channel`` done unless it is a boot channel still waiting for its boot request.

        A boot channel is only locked by its snapshot (``snapshot=True``); any
        other lock of a boot channel whose request is out leaves it unchanged.

        Raises:
            UnknownChannelError: If the channel is in neither group
        """
        group = self.group_of(channel)
        state = self.state(channel)
        if group is ChannelGroup.BOOT and not state.sent:
            return LockResult.BOOTING
        if state.done or (group is ChannelGroup.BOOT and not snapshot):
            return LockResult.UNCHANGED
        state.done = True
        return LockResult.LOCKED

    def dump(self, channel: str) -> ChannelState:
        """Cancel the channel's timers and reinitialize its state.

        Raises:
            UnknownChannelError: If the channel has no state
        """
        state = self._data.get(channel)
        if state is None:
            raise UnknownChannelError(channel)
        state.cancel_timers()
        return self.make(channel)

    def dump_all(self) -> list[str]:
        """Dump every channel that has state; returns the dumped channels."""
        dumped = [channel for channel in self.channels() if channel in self._data]
        for channel in dumped:
            _ = self.dump(channel)
        return dumped

    def mark_sent(self, channel: str) -> None:
        self.state(channel).sent = True

    def all_sent(self) -> bool:
        """True when every boot channel has its boot request sent."""
        for channel in self.sets[ChannelGroup.BOOT]:
            state = self._data.get(channel)
            if state is None or not state.sent:
                return False
        return True

    # -- Counters -------------------------------------------------------------

    def next(self) -> int:
        """Next outbound sequence number (starts at 0)."""
        seq = self._poll
        self._poll += 1
        return seq

    def tick(self, channel: str) -> int:
        """Next heartbeat id of ``channel`` (starts at 0)."""
        state = self.state(channel)
        hb_id = state.tick
        state.tick += 1
        return hb_id

    def next_test(self, channel: str) -> int:
        """Next health-check sequence number of ``channel`` (starts at 0)."""
        state = self.state(channel)
        seq = state.test
        state.test += 1
        return seq

    # -- Presence -------------------------------------------------------------

    def set_users(self, channel: str, users: Iterable[str]) -> None:
        self.state(channel).users = set(users)

    def add_user(self, channel: str, user: str) -> None:
        self.state(channel).users.add(user)

    def remove_user(self, channel: str, user: str) -> None:
        self.state(channel).users.discard(user)
