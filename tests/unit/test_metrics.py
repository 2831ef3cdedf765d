"""Unit tests for metrics registry."""

from __future__ import annotations

from unittest.mock import patch

from prometheus_client import REGISTRY

from cudatel_live.metrics import registry


def _value(name: str, labels: dict[str, str] | None = None) -> float:
    return REGISTRY.get_sample_value(name, labels or {}) or 0.0


class TestMessageMetrics:
    """Tests for message counters."""

    def test_record_message_sent(self) -> None:
        """Test record_message_sent helper."""
        before = _value("cudatel_live_message_sent_total", {"command": "JOIN", "outcome": "ok"})
        registry.record_message_sent("JOIN", "ok")
        after = _value("cudatel_live_message_sent_total", {"command": "JOIN", "outcome": "ok"})
        assert after == before + 1

    def test_record_message_recv(self) -> None:
        registry.record_message_recv("cache")
        samples = list(registry.live_message_recv_total.collect()[0].samples)
        assert any(s.labels == {"route": "cache"} for s in samples)

    def test_record_frame_decode_error(self) -> None:
        before = _value("cudatel_live_frame_decode_errors_total")
        registry.record_frame_decode_error()
        assert _value("cudatel_live_frame_decode_errors_total") == before + 1

    def test_record_routing_error(self) -> None:
        registry.record_routing_error("uncategorized")
        samples = list(registry.live_routing_errors_total.collect()[0].samples)
        assert any(s.labels == {"reason": "uncategorized"} for s in samples)

    def test_record_format_error(self) -> None:
        registry.record_format_error("calls")
        samples = list(registry.live_format_errors_total.collect()[0].samples)
        assert any(s.labels == {"channel": "calls"} for s in samples)


class TestChannelMetrics:
    """Tests for channel and cache metrics."""

    def test_record_keepalive(self) -> None:
        registry.record_keepalive("calls", "beat")
        samples = list(registry.live_keepalive_total.collect()[0].samples)
        assert any(s.labels == {"channel": "calls", "kind": "beat"} for s in samples)

    def test_record_reconnection(self) -> None:
        registry.record_reconnection("closed")
        samples = list(registry.live_reconnection_total.collect()[0].samples)
        assert any(s.labels == {"reason": "closed"} for s in samples)

    def test_record_cache_mutation(self) -> None:
        registry.record_cache_mutation("calls", "add")
        samples = list(registry.live_cache_mutation_total.collect()[0].samples)
        assert any(s.labels == {"channel": "calls", "action": "add"} for s in samples)

    def test_record_channel_done(self) -> None:
        """Test the done gauge follows lock and dump."""
        registry.record_channel_done("queues", True)
        assert _value("cudatel_live_channel_done", {"channel": "queues"}) == 1.0

        registry.record_channel_done("queues", False)
        assert _value("cudatel_live_channel_done", {"channel": "queues"}) == 0.0


class TestMetricsServer:
    def test_start_metrics_server_idempotent(self) -> None:
        """Test the HTTP endpoint is started once."""
        with (
            patch.object(registry, "start_http_server") as mock_start,
            patch.dict(registry._server_state, {"started": False}),  # pyright: ignore[reportPrivateUsage]
        ):
            registry.start_metrics_server(9999)
            registry.start_metrics_server(9999)

        mock_start.assert_called_once_with(9999)
