"""onwatch telemetry library."""

from .exceptions import TelemetryError, TelemetryErrorCodes
from .logger import new_logger
from .metrics import (
    poll_duration_seconds,
    poll_errors_total,
    poll_total,
    quota_resets_total,
    tracker_errors_total,
)

__all__ = [
    "new_logger",
    "poll_total",
    "poll_errors_total",
    "poll_duration_seconds",
    "quota_resets_total",
    "tracker_errors_total",
    "TelemetryError",
    "TelemetryErrorCodes",
]
