"""onwatch tracker library."""

from .exceptions import ProcessError, QuotaUpdateError, TrackerError, TrackerErrorCodes
from .models import UsageSummary
from .summary import MIN_RATE_WINDOW, compute_summary
from .tracker import ResetListener, Tracker

__all__ = [
    "Tracker",
    "ResetListener",
    "UsageSummary",
    "compute_summary",
    "MIN_RATE_WINDOW",
    "TrackerError",
    "TrackerErrorCodes",
    "QuotaUpdateError",
    "ProcessError",
]
