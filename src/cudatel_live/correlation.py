"""Per-connection correlation ids for log lines.

A Connection enters its id once in ``start()``; the reader, sender and login
tasks spawned there copy the context, so every line they log carries the id
of the connection generation that produced it.
"""

from __future__ import annotations

import contextvars
import uuid
from collections.abc import Iterator
from contextlib import contextmanager

__all__ = [
    "correlation_context",
    "generate_correlation_id",
    "get_correlation_id",
]

_current: contextvars.ContextVar[str | None] = contextvars.ContextVar("cudatel_live_correlation_id", default=None)


def generate_correlation_id() -> str:
    return uuid.uuid4().hex


def get_correlation_id() -> str | None:
    return _current.get()


@contextmanager
def correlation_context(correlation_id: str) -> Iterator[str]:
    """Tag everything logged (and every task created) inside the block with ``correlation_id``."""
    token = _current.set(correlation_id)
    try:
        yield correlation_id
    finally:
        _current.reset(token)
