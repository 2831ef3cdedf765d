"""Prometheus metrics for the live-data connection and cache."""

import threading
from typing import Final

from prometheus_client import (  # type: ignore[import-untyped]
    Counter,
    Gauge,
    start_http_server,
)

live_message_sent_total: Final = Counter(  # type: ignore[assignment]
    "cudatel_live_message_sent_total",
    "Total outbound messages",
    ["command", "outcome"],
)

live_message_recv_total: Final = Counter(  # type: ignore[assignment]
    "cudatel_live_message_recv_total",
    "Total inbound messages by route",
    ["route"],
)

live_frame_decode_errors_total: Final = Counter(  # type: ignore[assignment]
    "cudatel_live_frame_decode_errors_total",
    "Inbound frames that could not be decoded",
)

live_routing_errors_total: Final = Counter(  # type: ignore[assignment]
    "cudatel_live_routing_errors_total",
    "Messages that could not be routed",
    ["reason"],
)

live_format_errors_total: Final = Counter(  # type: ignore[assignment]
    "cudatel_live_format_errors_total",
    "Row payloads dropped because no schema was available",
    ["channel"],
)

live_keepalive_total: Final = Counter(  # type: ignore[assignment]
    "cudatel_live_keepalive_total",
    "Keepalive messages emitted per channel",
    ["channel", "kind"],
)

live_reconnection_total: Final = Counter(  # type: ignore[assignment]
    "cudatel_live_reconnection_total",
    "Connections rebuilt by the reconnect supervisor",
    ["reason"],
)

live_cache_mutation_total: Final = Counter(  # type: ignore[assignment]
    "cudatel_live_cache_mutation_total",
    "Live cache mutations applied",
    ["channel", "action"],
)

live_channel_done: Final = Gauge(  # type: ignore[assignment]
    "cudatel_live_channel_done",
    "1 when the channel is locked and receiving incremental updates",
    ["channel"],
)

_server_state = {"started": False}
_server_lock = threading.Lock()


def start_metrics_server(port: int = 9400) -> None:
    """Start Prometheus HTTP metrics server (idempotent)."""
    with _server_lock:
        if not _server_state["started"]:
            start_http_server(port)  # type: ignore[no-untyped-call]
            _server_state["started"] = True


def record_message_sent(command: str, outcome: str) -> None:
    live_message_sent_total.labels(command=command, outcome=outcome).inc()  # type: ignore[no-untyped-call]


def record_message_recv(route: str) -> None:
    """Route is "cache" or "command"."""
    live_message_recv_total.labels(route=route).inc()  # type: ignore[no-untyped-call]


def record_frame_decode_error() -> None:
    live_frame_decode_errors_total.inc()  # type: ignore[no-untyped-call]


def record_routing_error(reason: str) -> None:
    live_routing_errors_total.labels(reason=reason).inc()  # type: ignore[no-untyped-call]


def record_format_error(channel: str) -> None:
    live_format_errors_total.labels(channel=channel).inc()  # type: ignore[no-untyped-call]


def record_keepalive(channel: str, kind: str) -> None:
    live_keepalive_total.labels(channel=channel, kind=kind).inc()  # type: ignore[no-untyped-call]


def record_reconnection(reason: str) -> None:
    live_reconnection_total.labels(reason=reason).inc()  # type: ignore[no-untyped-call]


def record_cache_mutation(channel: str, action: str) -> None:
    live_cache_mutation_total.labels(channel=channel, action=action).inc()  # type: ignore[no-untyped-call]


def record_channel_done(channel: str, done: bool) -> None:
    live_channel_done.labels(channel=channel).set(1 if done else 0)  # type: ignore[no-untyped-call]
