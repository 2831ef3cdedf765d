"""Metrics module."""

from .registry import (
    record_cache_mutation,
    record_channel_done,
    record_format_error,
    record_frame_decode_error,
    record_keepalive,
    record_message_recv,
    record_message_sent,
    record_reconnection,
    record_routing_error,
    start_metrics_server,
)

__all__ = [
    "record_cache_mutation",
    "record_channel_done",
    "record_format_error",
    "record_frame_decode_error",
    "record_keepalive",
    "record_message_recv",
    "record_message_sent",
    "record_reconnection",
    "record_routing_error",
    "start_metrics_server",
]
