"""Unit tests for the protocol and transport exception types."""

from __future__ import annotations

import pytest

from cudatel_live.protocol.exceptions import (
    FormatError,
    FrameDecodeError,
    LiveProtocolError,
    ProtocolViolation,
    RemoteError,
    RoutingError,
    UnknownChannelError,
)
from cudatel_live.transport.exceptions import AuthenticationError, TransportError


class TestExceptionHierarchy:
    """Tests for exception class hierarchy."""

    @pytest.mark.parametrize(
        "error",
        [
            FrameDecodeError("invalid_json"),
            RoutingError("uncategorized"),
            UnknownChannelError("calls"),
            FormatError("calls"),
            RemoteError("bad", 1),
            ProtocolViolation("calls", "again"),
            TransportError("closed"),
            AuthenticationError("rejected"),
        ],
    )
    def test_all_inherit_from_base(self, error: Exception):
        """Test every error can be caught as LiveProtocolError."""
        assert isinstance(error, LiveProtocolError)


class TestFrameDecodeError:
    def test_preview_truncated(self):
        """Test only the first 64 characters of the frame are kept."""
        error = FrameDecodeError("invalid_json", "x" * 200)

        assert error.reason == "invalid_json"
        assert error.data_preview == "x" * 64
        assert str(error) == "Frame decode failed: invalid_json"

    def test_no_data(self):
        assert FrameDecodeError("invalid_utf8").data_preview == ""


class TestRoutingError:
    def test_message_includes_action(self):
        error = RoutingError("uncategorized", action="add")

        assert error.action == "add"
        assert str(error) == "Routing failed: uncategorized (action: add)"

    def test_message_without_action(self):
        assert str(RoutingError("clear_without_channel")) == "Routing failed: clear_without_channel"


class TestChannelErrors:
    """Tests for channel-scoped errors."""

    def test_unknown_channel(self):
        assert str(UnknownChannelError("nope")) == "Unknown channel: nope"

    def test_format_error_default_reason(self):
        error = FormatError("calls")

        assert error.reason == "no_schema"
        assert error.channel == "calls"

    def test_remote_error(self):
        error = RemoteError("denied", 403)

        assert (error.value, error.code) == ("denied", 403)
        assert "403" in str(error)

    def test_protocol_violation(self):
        error = ProtocolViolation("calls", "snapshot delivered to a ready channel")

        assert error.channel == "calls"
        assert "calls" in str(error)


class TestTransportErrors:
    def test_transport_error_state(self):
        error = TransportError("send failed", state="open")

        assert error.reason == "send failed"
        assert error.state == "open"

    def test_authentication_error_status(self):
        error = AuthenticationError("http_error", status=401)

        assert error.status == 401
        assert error.reason == "http_error"
