"""Turns column-positional row payloads into named records.

A channel's schema (its "bond") is the ordered list of column labels received
with the ``init`` action. Each positional value is stored under its label in
``Record.data``; call-leg columns (``a_*``/``b_*``) are also hoisted into the
``aleg``/``bleg`` sub-objects of ``Record.call``.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from cudatel_live.logging_abstraction import get_logger

__all__ = [
    "DEFAULT_ACTION",
    "FAILED_LABEL",
    "LEG_PREFIXES",
    "Record",
    "format_values",
]

logger = get_logger(__name__)

DEFAULT_ACTION = "bootstrap"
# Label used for values past the end of the schema
FAILED_LABEL = "FAILED"

LEG_PREFIXES: dict[str, str] = {
    "a_": "aleg",
    "b_": "bleg",
}


@dataclass
class Record:
    """One materialized row.

    Attributes:
        data: Label -> value, plus the derived ``id`` when ``row_id`` is a column
        call: Flat call object with ``aleg``/``bleg`` sub-objects
        action: Wire action that delivered the row
        cols: Schema used to format it
    """

    data: dict[str, Any] = field(default_factory=dict)
    call: dict[str, Any] = field(default_factory=lambda: {"aleg": {}, "bleg": {}})
    action: str = DEFAULT_ACTION
    cols: list[str] = field(default_factory=list)

    @property
    def row_id(self) -> int | None:
        """Integer row position, or None when the row carries no usable row_id."""
        return _as_int(self.data.get("row_id"))


def _as_int(value: object) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, (str, float)):
        try:
            return int(value)
        except ValueError:
            return None
    return None


def _positions(values: Sequence[Any] | Mapping[Any, Any]) -> list[tuple[int | None, Any]]:
    if isinstance(values, Mapping):
        return [(_as_int(key), value) for key, value in values.items()]
    return list(enumerate(values))


def format_values(
    values: Sequence[Any] | Mapping[Any, Any] | None,
    schema: Sequence[str] | None,
    action: str | None = None,
) -> Record | None:
    """Format one row of positional values against ``schema``.

    Returns None when there is no schema (or it is empty) or when ``values``
    is not a row; the caller must drop the row without touching the cache.
    """
    if not schema:
        return None
    if values is not None and (isinstance(values, (str, bytes)) or not isinstance(values, (Sequence, Mapping))):
        logger.debug("Row payload is not positional, dropped", extra={"payload_type": type(values).__name__})
        return None

    record = Record(action=action or DEFAULT_ACTION, cols=list(schema))
    for position, value in _positions(values or []):
        label = schema[position] if position is not None and 0 <= position < len(schema) else FAILED_LABEL
        leg = LEG_PREFIXES.get(label[:2])
        if leg:
            record.call[leg][label[2:]] = value
        else:
            record.call[label] = value
        record.data[label] = value

    if "row_id" in record.data:
        row_id = _as_int(record.data["row_id"])
        if row_id is None:
            logger.debug("row_id is not numeric, no id derived", extra={"row_id": record.data["row_id"]})
        else:
            record.data["id"] = str(row_id + 1)

    return record
