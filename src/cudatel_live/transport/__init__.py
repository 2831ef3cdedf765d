"""Socket transport for the live-data connection.

Public API:
- Transport protocol and the aiohttp WebSocketTransport
- TransportError / AuthenticationError
"""

from cudatel_live.transport.exceptions import AuthenticationError, TransportError
from cudatel_live.transport.websocket import Transport, WebSocketTransport

__all__ = [
    "AuthenticationError",
    "Transport",
    "TransportError",
    "WebSocketTransport",
]
