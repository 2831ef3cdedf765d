import os

from cudatel_live import __version__

__all__ = [
    "CUDATEL_CONFIG_DEFAULTS_PATH",
    "CUDATEL_CONFIG_FILE_PATH",
    "CUDATEL_DEBUG",
    "CUDATEL_HEALTHCHECK_INTERVAL",
    "CUDATEL_HEARTBEAT_INTERVAL",
    "CUDATEL_LOG_CORRELATION_ENABLED",
    "CUDATEL_LOG_FORMAT",
    "CUDATEL_LOG_HUMAN_OUTPUT",
    "CUDATEL_LOG_JSON_FILE",
    "CUDATEL_METRICS_PORT",
    "CUDATEL_PERF_THRESHOLD_MS",
    "CUDATEL_PERF_TRACKING",
    "CUDATEL_VERSION",
    "CUDATEL_WS_PATH",
    "HTTP_TIMEOUT_SECONDS",
    "YES_ANSWER",
]

YES_ANSWER = ("true", "1", "yes", "y", "t", 1, "on", "o")

CUDATEL_VERSION: str = __version__
CUDATEL_WS_PATH: str = "/6/"

CUDATEL_DEBUG = os.environ.get("CUDATEL_DEBUG", "0").casefold() in YES_ANSWER

PERSISTENT_BASE_DIR: str = os.environ.get("CUDATEL_PERSISTENT_BASE_DIR", "./config")
CUDATEL_CONFIG_FILE_PATH: str = os.environ.get("CUDATEL_CONFIG_FILE_PATH", f"{PERSISTENT_BASE_DIR}/cudatel_live.yaml")
_defaults_path = os.environ.get("CUDATEL_CONFIG_DEFAULTS_PATH")
CUDATEL_CONFIG_DEFAULTS_PATH: str | None = _defaults_path if _defaults_path else None


def _float_env(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


# Keepalive cadence (seconds)
CUDATEL_HEARTBEAT_INTERVAL: float = _float_env("CUDATEL_HEARTBEAT_INTERVAL", 5.0)
CUDATEL_HEALTHCHECK_INTERVAL: float = _float_env("CUDATEL_HEALTHCHECK_INTERVAL", 30.0)
HTTP_TIMEOUT_SECONDS: float = _float_env("CUDATEL_HTTP_TIMEOUT", 8.0)

# Logging Configuration
CUDATEL_LOG_FORMAT: str = os.environ.get("CUDATEL_LOG_FORMAT", "human")  # "json", "human", or "both"
CUDATEL_LOG_JSON_FILE: str | None = os.environ.get("CUDATEL_LOG_JSON_FILE") or None
CUDATEL_LOG_HUMAN_OUTPUT: str = os.environ.get("CUDATEL_LOG_HUMAN_OUTPUT", "stdout")  # "stdout", "stderr", or file path
CUDATEL_LOG_CORRELATION_ENABLED: bool = (
    os.environ.get("CUDATEL_LOG_CORRELATION_ENABLED", "true").casefold() in YES_ANSWER
)

# Metrics
_metrics_port = os.environ.get("CUDATEL_METRICS_PORT", "")
CUDATEL_METRICS_PORT: int | None = int(_metrics_port) if _metrics_port.isdigit() else None

# Performance Instrumentation
CUDATEL_PERF_TRACKING: bool = os.environ.get("CUDATEL_PERF_TRACKING", "true").casefold() in YES_ANSWER
_perf_threshold = os.environ.get("CUDATEL_PERF_THRESHOLD_MS", "100")
CUDATEL_PERF_THRESHOLD_MS: int = int(_perf_threshold) if _perf_threshold and _perf_threshold.isdigit() else 100
