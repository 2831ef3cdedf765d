"""Logging layer for the live-data client.

Emits JSON and/or human-readable lines tagged with the connection correlation
id. Structured context is passed through ``extra=`` and rendered as a
``context`` object (JSON) or ``key=value`` pairs (human).
"""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import Mapping
from datetime import UTC, datetime
from pathlib import Path
from typing import cast, override

__all__ = [
    "HumanReadableFormatter",
    "JSONFormatter",
    "LiveLogger",
    "get_logger",
]


def _context_of(record: logging.LogRecord) -> dict[str, object]:
    extra_data = getattr(record, "extra_data", None)
    if isinstance(extra_data, Mapping) and extra_data:
        return dict(cast("Mapping[str, object]", extra_data))
    return {}


class JSONFormatter(logging.Formatter):
    """One JSON object per record."""

    @override
    def format(self, record: logging.LogRecord) -> str:
        from cudatel_live.correlation import get_correlation_id

        log_data: dict[str, object] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "function": record.funcName,
            "line": record.lineno,
            "message": record.getMessage(),
            "correlation_id": get_correlation_id(),
        }
        context = _context_of(record)
        if context:
            log_data["context"] = context
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        if record.stack_info:
            log_data["stack_info"] = self.formatStack(record.stack_info)
        return json.dumps(log_data, default=str)


class HumanReadableFormatter(logging.Formatter):
    """``timestamp level [module:line] [corr] > message | k=v``"""

    def __init__(self, with_correlation: bool = True) -> None:
        super().__init__(
            fmt="%(asctime)s.%(msecs)03d %(levelname)s [%(module)s:%(lineno)d] %(correlation_id)s> %(message)s",
            datefmt="%m/%d/%y %H:%M:%S",
        )
        self.with_correlation: bool = with_correlation

    @override
    def format(self, record: logging.LogRecord) -> str:
        from cudatel_live.correlation import get_correlation_id

        correlation_id = get_correlation_id() if self.with_correlation else None
        record.correlation_id = f"[{correlation_id[:8]}] " if correlation_id else ""

        formatted = super().format(record)
        context = _context_of(record)
        if context:
            formatted = f"{formatted} | " + " | ".join(f"{k}={v}" for k, v in context.items())
        return formatted


def _human_handler(output: str) -> logging.Handler:
    if output == "stdout":
        return logging.StreamHandler(sys.stdout)
    if output == "stderr":
        return logging.StreamHandler(sys.stderr)
    try:
        path = Path(output)
        path.parent.mkdir(parents=True, exist_ok=True)
        return logging.FileHandler(path, mode="a")
    except OSError as e:
        print(f"Warning: Failed to create human log file {output}: {e}", file=sys.stderr)
        return logging.StreamHandler(sys.stdout)


class LiveLogger:
    """Thin wrapper over ``logging.Logger`` taking structured ``extra`` context."""

    def __init__(
        self,
        name: str,
        log_format: str = "human",
        json_file: str | Path | None = None,
        human_output: str | None = "stdout",
    ) -> None:
        from cudatel_live.const import CUDATEL_DEBUG, CUDATEL_LOG_CORRELATION_ENABLED

        self.name: str = name
        self.logger: logging.Logger = logging.getLogger(name)
        self.log_format: str = log_format
        self.logger.setLevel(logging.DEBUG if CUDATEL_DEBUG else logging.INFO)

        # handlers are attached once per logger name
        if not self.logger.handlers:
            self._configure_handlers(json_file, human_output, CUDATEL_LOG_CORRELATION_ENABLED)

    def _configure_handlers(
        self,
        json_file: str | Path | None,
        human_output: str | None,
        with_correlation: bool,
    ) -> None:
        level = self.logger.level

        if self.log_format in ("json", "both") and json_file:
            try:
                json_path = Path(json_file)
                json_path.parent.mkdir(parents=True, exist_ok=True)
                json_handler = logging.FileHandler(json_path, mode="a")
            except OSError as e:
                print(f"Warning: Failed to create JSON log file {json_file}: {e}", file=sys.stderr)
            else:
                json_handler.setFormatter(JSONFormatter())
                json_handler.setLevel(level)
                self.logger.addHandler(json_handler)

        if self.log_format in ("human", "both"):
            human_handler = _human_handler(human_output or "stdout")
            human_handler.setFormatter(HumanReadableFormatter(with_correlation=with_correlation))
            human_handler.setLevel(level)
            self.logger.addHandler(human_handler)

    def _log(self, level: int, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        payload = {"extra_data": dict(extra)} if extra else None
        self.logger.log(level, msg, *args, extra=payload)

    def debug(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.DEBUG, msg, *args, extra=extra)

    def info(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.INFO, msg, *args, extra=extra)

    def warning(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.WARNING, msg, *args, extra=extra)

    def error(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.ERROR, msg, *args, extra=extra)

    def critical(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.CRITICAL, msg, *args, extra=extra)

    def exception(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        """Log at ERROR with the active exception's traceback."""
        payload = {"extra_data": dict(extra)} if extra else None
        self.logger.exception(msg, *args, extra=payload)

    def set_level(self, level: int) -> None:
        self.logger.setLevel(level)
        for handler in self.logger.handlers:
            handler.setLevel(level)

    @property
    def handlers(self) -> list[logging.Handler]:
        return self.logger.handlers


def get_logger(
    name: str,
    log_format: str | None = None,
    json_file: str | Path | None = None,
    human_output: str | None = None,
) -> LiveLogger:
    """Get a LiveLogger configured from the CUDATEL_LOG_* environment defaults.

    Args:
        name: Logger name (typically ``__name__``)
        log_format: Override default format ("json", "human", or "both")
        json_file: Override default JSON output file
        human_output: Override default human-readable output

    """
    from cudatel_live.const import (
        CUDATEL_LOG_FORMAT,
        CUDATEL_LOG_HUMAN_OUTPUT,
        CUDATEL_LOG_JSON_FILE,
    )

    return LiveLogger(
        name=name,
        log_format=log_format or CUDATEL_LOG_FORMAT,
        json_file=json_file or CUDATEL_LOG_JSON_FILE,
        human_output=human_output or CUDATEL_LOG_HUMAN_OUTPUT,
    )
