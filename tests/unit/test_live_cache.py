"""Unit tests for LiveCache."""

from __future__ import annotations

from typing import Any

import pytest

from cudatel_live.events import CacheEvent
from cudatel_live.formatter import Record, format_values
from cudatel_live.live_cache import LiveCache
from cudatel_live.protocol.exceptions import FormatError, ProtocolViolation

from conftest import SCHEMA, bootstrap_rows


def record(row: list[Any], action: str) -> Record:
    formatted = format_values(row, SCHEMA, action)
    assert formatted is not None
    return formatted


@pytest.fixture
def cache() -> LiveCache:
    live = LiveCache(["calls"])
    _ = live.fill("calls", [record(row, "bootstrap_data") for row in bootstrap_rows()])
    return live


class TestFill:
    """Tests for snapshot application."""

    def test_fill_marks_ready(self):
        live = LiveCache(["calls"])
        assert not live.done("calls")

        rows = live.fill("calls", [record(row, "bootstrap_data") for row in bootstrap_rows()])

        assert live.done("calls")
        assert rows is not None
        assert [row["id"] for row in rows if row is not None] == ["1", "2"]

    def test_fill_unwatched_is_ignored(self):
        live = LiveCache(["calls"])

        assert live.fill("queues", []) is None
        assert not live.watched("queues")

    def test_second_fill_is_violation(self, cache: LiveCache):
        """Test a snapshot for an already ready channel is a protocol violation."""
        with pytest.raises(ProtocolViolation) as exc_info:
            _ = cache.fill("calls", [])
        assert exc_info.value.channel == "calls"

    def test_reset(self, cache: LiveCache):
        """Test reset starts every channel over."""
        cache.reset(["calls", "queues"])

        assert cache.rows("calls") == []
        assert not cache.done("calls")
        assert cache.watched("queues")

    def test_clear_keeps_ready(self, cache: LiveCache):
        cache.clear("calls")

        assert cache.rows("calls") == []
        assert cache.done("calls")


class TestApply:
    """Tests for incremental records."""

    def test_modify_replaces_position(self, cache: LiveCache):
        """Test modify overwrites the row at row_id."""
        mutation = cache.apply("calls", record([1, "101", "201", "up"], "modify"))

        assert mutation is not None
        assert mutation.event is CacheEvent.UPDATE
        rows = cache.rows("calls")
        assert len(rows) == 2
        assert rows[1] is not None and rows[1]["status"] == "up"

    def test_add_appends(self, cache: LiveCache):
        mutation = cache.apply("calls", record([2, "102", "202", "ringing"], "add"))

        assert mutation is not None
        assert mutation.event is CacheEvent.CREATE
        assert len(cache.rows("calls")) == 3

    def test_add_past_end_pads(self, cache: LiveCache):
        """Test a row far past the end pads the gap with None."""
        _ = cache.apply("calls", record([4, "104", "204", "up"], "add"))

        rows = cache.rows("calls")
        assert len(rows) == 5
        assert rows[2] is None and rows[3] is None
        assert rows[4] is not None and rows[4]["id"] == "5"

    def test_del_shifts(self, cache: LiveCache):
        """Test del removes the position and shifts later rows down."""
        mutation = cache.apply("calls", record([0, "100", "200", "up"], "del"))

        assert mutation is not None
        assert mutation.event is CacheEvent.DELETE
        rows = cache.rows("calls")
        assert len(rows) == 1
        assert rows[0] is not None and rows[0]["row_id"] == 1

    def test_del_out_of_range(self, cache: LiveCache):
        """Test deleting past the end leaves the list alone."""
        mutation = cache.apply("calls", record([9, "x", "y", "z"], "del"))

        assert mutation is not None
        assert len(cache.rows("calls")) == 2

    def test_not_ready_is_ignored(self):
        live = LiveCache(["calls"])

        assert live.apply("calls", record([0, "a", "b", "c"], "add")) is None
        assert live.rows("calls") == []

    def test_unwatched_is_ignored(self, cache: LiveCache):
        assert cache.apply("queues", record([0, "a", "b", "c"], "add")) is None

    def test_bootstrap_on_ready_is_violation(self, cache: LiveCache):
        with pytest.raises(ProtocolViolation):
            _ = cache.apply("calls", record([0, "a", "b", "c"], "bootstrap_data"))

    def test_unknown_action_ignored(self, cache: LiveCache):
        """Test an unknown action leaves the cache untouched."""
        before = list(cache.rows("calls"))

        assert cache.apply("calls", record([0, "a", "b", "c"], "rename")) is None
        assert cache.rows("calls") == before

    def test_missing_row_id(self, cache: LiveCache):
        """Test add/modify/del need a usable row_id."""
        formatted = format_values(["x"], ["status"], "add")
        assert formatted is not None

        with pytest.raises(FormatError) as exc_info:
            _ = cache.apply("calls", formatted)
        assert exc_info.value.reason == "no_row_id"

    def test_mutation_carries_rows(self, cache: LiveCache):
        mutation = cache.apply("calls", record([2, "102", "202", "up"], "add"))

        assert mutation is not None
        assert mutation.rows is cache.rows("calls")
        assert mutation.row["id"] == "3"
