"""Threshold alerting with per-cycle deduplication."""

from __future__ import annotations

import structlog

from .exceptions import NotifyError
from .models import Alert, AlertLevel, QuotaStatus
from .notifier import Notifier


class NotificationEngine:
    """Sends at most one alert per level per quota until that quota resets."""

    def __init__(
        self,
        notifier: Notifier,
        warning_threshold: float = 80.0,
        critical_threshold: float = 95.0,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._notifier = notifier
        self._warning = warning_threshold
        self._critical = critical_threshold
        self._logger = logger or structlog.stdlib.get_logger(__name__)
        self._sent: dict[tuple[str, str], set[AlertLevel]] = {}

    def _level_for(self, usage_percent: float) -> AlertLevel | None:
        if usage_percent >= self._critical:
            return AlertLevel.CRITICAL
        if usage_percent >= self._warning:
            return AlertLevel.WARNING
        return None

    async def check(self, status: QuotaStatus) -> Alert | None:
        """Send an alert if the quota crossed a threshold not yet alerted this cycle."""
        level = self._level_for(status.usage_percent)
        if level is None:
            return None

        key = (status.provider, status.quota_name)
        sent = self._sent.setdefault(key, set())
        if level in sent or (level == AlertLevel.WARNING and AlertLevel.CRITICAL in sent):
            return None

        alert = Alert(
            level=level,
            provider=status.provider,
            quota_name=status.quota_name,
            usage_percent=status.usage_percent,
            message=(
                f"{status.provider} {status.quota_name} at {status.usage_percent:.1f}% "
                f"({status.used:g}/{status.limit:g})"
            ),
        )
        if await self._deliver(alert):
            sent.add(level)
            return alert
        return None

    async def notify_reset(self, provider: str, quota_name: str) -> Alert | None:
        """Clear the dedupe state for a quota and send a reset alert."""
        self._sent.pop((provider, quota_name), None)
        alert = Alert(
            level=AlertLevel.RESET,
            provider=provider,
            quota_name=quota_name,
            message=f"{provider} {quota_name} quota reset",
        )
        return alert if await self._deliver(alert) else None

    async def _deliver(self, alert: Alert) -> bool:
        try:
            await self._notifier.send(alert)
        except NotifyError as e:
            self._logger.warning(
                "alert delivery failed",
                alert_level=str(alert.level),
                provider=alert.provider,
                quota=alert.quota_name,
                error=str(e),
            )
            return False
        return True
