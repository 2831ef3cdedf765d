"""Live-data client for CudaTel channel subscriptions over a single WebSocket."""

__version__ = "0.3.0"
