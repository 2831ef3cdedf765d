"""Unit tests for the channel registry."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from cudatel_live.channels import ChannelGroup, ChannelRegistry, ChannelState, LockResult
from cudatel_live.protocol.exceptions import UnknownChannelError


@pytest.fixture
def registry() -> ChannelRegistry:
    return ChannelRegistry(join=["Meteor_Alive"], boot=["calls", "queues"])


class TestMembership:
    """Tests for group lookups."""

    def test_names_are_lowercased(self, registry: ChannelRegistry):
        """Test configured names are stored lower-cased."""
        assert registry.list_channels(ChannelGroup.JOIN) == ["meteor_alive"]

    def test_list_all_groups(self, registry: ChannelRegistry):
        """Test listing without a group returns every group."""
        assert registry.list_channels() == {
            ChannelGroup.JOIN: ["meteor_alive"],
            ChannelGroup.BOOT: ["calls", "queues"],
        }

    def test_list_unknown_group_returns_all(self, registry: ChannelRegistry):
        """Test an unknown group name falls back to every group."""
        assert isinstance(registry.list_channels("other"), dict)

    def test_channels_join_first(self, registry: ChannelRegistry):
        """Test iteration yields the join group first."""
        assert list(registry.channels()) == ["meteor_alive", "calls", "queues"]

    def test_group_of(self, registry: ChannelRegistry):
        """Test group lookup."""
        assert registry.group_of("calls") is ChannelGroup.BOOT
        assert registry.group_of("meteor_alive") is ChannelGroup.JOIN

    def test_group_of_unknown_raises(self, registry: ChannelRegistry):
        """Test looking up an unconfigured channel raises."""
        with pytest.raises(UnknownChannelError) as exc_info:
            _ = registry.group_of("nope")
        assert exc_info.value.channel == "nope"


class TestState:
    """Tests for state creation and locking."""

    def test_make_sets_sent_by_group(self, registry: ChannelRegistry):
        """Test boot channels start unsent and join channels start sent."""
        registry.make_all()

        assert registry.state("calls").sent is False
        assert registry.state("meteor_alive").sent is True
        assert registry.state("calls").done is False

    def test_state_created_on_first_reference(self, registry: ChannelRegistry):
        """Test state() creates missing state."""
        assert registry.peek("calls") is None
        state = registry.state("calls")

        assert registry.peek("calls") is state

    def test_lock_join_channel(self, registry: ChannelRegistry):
        """Test a join channel locks straight away."""
        assert registry.lock("meteor_alive") is LockResult.LOCKED
        assert registry.done("meteor_alive")

    def test_lock_boot_channel_unsent(self, registry: ChannelRegistry):
        """Test a boot channel with no boot request sent reports BOOTING."""
        registry.make_all()

        assert registry.lock("calls") is LockResult.BOOTING
        assert not registry.done("calls")

    def test_lock_boot_channel_after_send(self, registry: ChannelRegistry):
        """Test a boot channel locks once its boot request was sent."""
        registry.make_all()
        registry.mark_sent("calls")

        assert registry.lock("calls", snapshot=True) is LockResult.LOCKED
        assert registry.lock("calls", snapshot=True) is LockResult.UNCHANGED

    def test_boot_channel_locks_only_on_snapshot(self, registry: ChannelRegistry):
        """Test a repeated join ack after the boot request does not lock the channel."""
        registry.make_all()
        registry.mark_sent("calls")

        assert registry.lock("calls") is LockResult.UNCHANGED
        assert not registry.done("calls")

    def test_lock_unknown_raises(self, registry: ChannelRegistry):
        with pytest.raises(UnknownChannelError):
            _ = registry.lock("nope")

    def test_done_all(self, registry: ChannelRegistry):
        """Test done() without a channel requires every channel done."""
        registry.make_all()
        _ = registry.lock("meteor_alive")
        assert not registry.done()

        for channel in ("calls", "queues"):
            registry.mark_sent(channel)
            _ = registry.lock(channel, snapshot=True)
        assert registry.done()

    def test_done_all_without_state(self, registry: ChannelRegistry):
        """Test done() is False before any state exists."""
        assert not registry.done()

    def test_all_sent(self, registry: ChannelRegistry):
        registry.make_all()
        registry.mark_sent("calls")
        assert not registry.all_sent()

        registry.mark_sent("queues")
        assert registry.all_sent()


class TestDump:
    """Tests for dumping channel state."""

    def test_dump_cancels_timers_and_remakes(self, registry: ChannelRegistry):
        """Test dump cancels both timers and resets the state."""
        registry.make_all()
        registry.mark_sent("calls")
        _ = registry.lock("calls", snapshot=True)
        state = registry.state("calls")
        beat, test = MagicMock(), MagicMock()
        state.beat_timer, state.test_timer = beat, test

        fresh = registry.dump("calls")

        beat.cancel.assert_called_once()
        test.cancel.assert_called_once()
        assert fresh is not state
        assert fresh.done is False
        assert fresh.sent is False
        assert not fresh.has_timers

    def test_dump_without_state_raises(self, registry: ChannelRegistry):
        """Test dumping a channel that was never created raises."""
        with pytest.raises(UnknownChannelError):
            _ = registry.dump("calls")

    def test_dump_all_skips_channels_without_state(self, registry: ChannelRegistry):
        """Test dump_all resets only channels that were created."""
        registry.mark_sent("calls")
        _ = registry.lock("calls", snapshot=True)

        dumped = registry.dump_all()

        assert dumped == ["calls"]
        assert not registry.done("calls")
        assert registry.peek("queues") is None


class TestCounters:
    """Tests for sequence, heartbeat and health-check counters."""

    def test_seq_starts_at_zero(self, registry: ChannelRegistry):
        assert [registry.next() for _ in range(3)] == [0, 1, 2]

    def test_tick_per_channel(self, registry: ChannelRegistry):
        """Test heartbeat ids count per channel."""
        assert registry.tick("calls") == 0
        assert registry.tick("calls") == 1
        assert registry.tick("queues") == 0

    def test_next_test_per_channel(self, registry: ChannelRegistry):
        assert registry.next_test("calls") == 0
        assert registry.next_test("calls") == 1

    def test_dump_resets_tick(self, registry: ChannelRegistry):
        """Test a dumped channel restarts its heartbeat ids."""
        _ = registry.tick("calls")
        _ = registry.dump("calls")

        assert registry.tick("calls") == 0


class TestPresence:
    """Tests for presence tracking."""

    def test_set_add_remove(self, registry: ChannelRegistry):
        registry.set_users("calls", ["a", "b"])
        registry.add_user("calls", "c")
        registry.remove_user("calls", "a")
        registry.remove_user("calls", "missing")

        assert registry.state("calls").users == {"b", "c"}


class TestChannelState:
    def test_cancel_timers_without_timers(self):
        """Test cancelling with no timers is a no-op."""
        state = ChannelState()
        state.cancel_timers()

        assert not state.has_timers
