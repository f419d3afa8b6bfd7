"""onwatch notify library."""

from .engine import NotificationEngine
from .exceptions import NotifyError, NotifyErrorCodes
from .models import Alert, AlertLevel, QuotaStatus
from .notifier import (
    InMemoryNotifier,
    LoggingNotifier,
    MultiNotifier,
    Notifier,
    WebhookNotifier,
)
from .smtp import SmtpConfig, SmtpNotifier

__all__ = [
    "NotificationEngine",
    "Notifier",
    "InMemoryNotifier",
    "LoggingNotifier",
    "WebhookNotifier",
    "MultiNotifier",
    "SmtpNotifier",
    "SmtpConfig",
    "Alert",
    "AlertLevel",
    "QuotaStatus",
    "NotifyError",
    "NotifyErrorCodes",
]
