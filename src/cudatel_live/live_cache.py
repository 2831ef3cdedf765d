"""Per-channel materialized record lists.

Every watched (boot) channel holds an ordered list of row dicts positioned by
``row_id`` and a ``ready`` flag set when its snapshot arrives. Incremental
records are applied only to ready channels; last write wins per position.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from cudatel_live.events import CacheEvent
from cudatel_live.formatter import Record
from cudatel_live.logging_abstraction import get_logger
from cudatel_live.metrics import record_cache_mutation
from cudatel_live.protocol.exceptions import FormatError, ProtocolViolation
from cudatel_live.protocol.messages import ACTION_ADD, ACTION_BOOTSTRAP_DATA, ACTION_DEL, ACTION_MODIFY

__all__ = [
    "CacheMutation",
    "ChannelCache",
    "LiveCache",
]

logger = get_logger(__name__)

Row = dict[str, Any]

ACTION_EVENTS: dict[str, CacheEvent] = {
    ACTION_ADD: CacheEvent.CREATE,
    ACTION_MODIFY: CacheEvent.UPDATE,
    ACTION_DEL: CacheEvent.DELETE,
}


@dataclass
class ChannelCache:
    data: list[Row | None] = field(default_factory=list)
    ready: bool = False


@dataclass
class CacheMutation:
    """A mutation applied to one channel.

    Attributes:
        event: create, update or delete
        channel: Channel that changed
        row: The record's row dict
        rows: The channel's list after the change
    """

    event: CacheEvent
    channel: str
    row: Row
    rows: list[Row | None]


def _place(rows: list[Row | None], index: int, row: Row) -> None:
    if index < len(rows):
        rows[index] = row
    else:
        rows.extend([None] * (index - len(rows)))
        rows.append(row)


class LiveCache:
    """Record lists of every watched channel."""

    def __init__(self, channels: Iterable[str] = ()) -> None:
        self.live: dict[str, ChannelCache] = {}
        self.reset(channels)

    def reset(self, channels: Iterable[str]) -> None:
        """Start every channel in ``channels`` over as ``{data: [], ready: False}``."""
        self.live = {channel: ChannelCache() for channel in channels}

    def watched(self, channel: str) -> bool:
        return channel in self.live

    def done(self, channel: str) -> bool:
        """True once the channel's snapshot has been applied."""
        cache = self.live.get(channel)
        return cache is not None and cache.ready

    def rows(self, channel: str) -> list[Row | None]:
        cache = self.live.get(channel)
        return cache.data if cache is not None else []

    def fill(self, channel: str, records: Iterable[Record]) -> list[Row | None] | None:
        """Apply a snapshot; returns the channel's rows, or None for unwatched channels.

        Raises:
            ProtocolViolation: If the channel already holds a snapshot
        """
        cache = self.live.get(channel)
        if cache is None:
            logger.debug("Snapshot for unwatched channel ignored", extra={"channel": channel})
            return None
        if cache.ready:
            raise ProtocolViolation(channel, "snapshot delivered to a ready channel")

        cache.ready = True
        for record in records:
            cache.data.append(record.data)
        record_cache_mutation(channel, ACTION_BOOTSTRAP_DATA)
        return cache.data

    def clear(self, channel: str) -> None:
        """Empty the channel's list; readiness is unchanged."""
        cache = self.live.get(channel)
        if cache is not None:
            cache.data.clear()

    def apply(self, channel: str, record: Record) -> CacheMutation | None:
        """Apply one incremental record.

        Returns None when nothing was applied (unwatched or not ready channel,
        unknown action).

        Raises:
            ProtocolViolation: On a second bootstrap for a ready channel
            FormatError: If an add/modify/del record has no usable row_id
        """
        cache = self.live.get(channel)
        if cache is None or not cache.ready:
            return None

        action = record.action
        if action == ACTION_BOOTSTRAP_DATA:
            raise ProtocolViolation(channel, "bootstrap_data on a ready channel")

        event = ACTION_EVENTS.get(action)
        if event is None:
            logger.warning("Unknown action: %s", action, extra={"channel": channel, "action": action})
            return None

        index = record.row_id
        if index is None or index < 0:
            raise FormatError(channel, "no_row_id")

        if event is CacheEvent.DELETE:
            if index < len(cache.data):
                del cache.data[index]
        else:
            _place(cache.data, index, record.data)

        record_cache_mutation(channel, action)
        return CacheMutation(event=event, channel=channel, row=record.data, rows=cache.data)
