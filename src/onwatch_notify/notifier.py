"""Notifiers that deliver alerts."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import timedelta

import httpx
import structlog

from .exceptions import NotifyError, NotifyErrorCodes
from .models import Alert, AlertLevel


class Notifier(ABC):
    """Abstract alert sink."""

    @abstractmethod
    async def send(self, alert: Alert) -> None: ...


class InMemoryNotifier(Notifier):
    """In-memory notifier for testing."""

    def __init__(self) -> None:
        self._sent: list[Alert] = []

    @property
    def sent(self) -> list[Alert]:
        """Get a copy of sent alerts."""
        return list(self._sent)

    async def send(self, alert: Alert) -> None:
        self._sent.append(alert)


class LoggingNotifier(Notifier):
    """Writes alerts to the structured log."""

    def __init__(self, logger: structlog.stdlib.BoundLogger | None = None) -> None:
        self._logger = logger or structlog.stdlib.get_logger(__name__)

    async def send(self, alert: Alert) -> None:
        log = self._logger.warning if alert.level is not AlertLevel.RESET else self._logger.info
        log(
            alert.message,
            alert_level=str(alert.level),
            provider=alert.provider,
            quota=alert.quota_name,
            usage_percent=alert.usage_percent,
        )


class WebhookNotifier(Notifier):
    """POSTs alerts as JSON to a webhook URL."""

    def __init__(
        self,
        url: str,
        timeout: timedelta = timedelta(seconds=10),
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._url = url
        self._timeout = timeout
        self._client = client

    async def send(self, alert: Alert) -> None:
        try:
            if self._client is not None:
                resp = await self._client.post(self._url, json=alert.to_dict())
            else:
                async with httpx.AsyncClient(
                    timeout=self._timeout.total_seconds()
                ) as client:
                    resp = await client.post(self._url, json=alert.to_dict())
        except httpx.HTTPError as e:
            raise NotifyError(
                code=NotifyErrorCodes.SEND_FAILED,
                message=f"webhook request failed: {e}",
                cause=e,
            ) from e
        if not resp.is_success:
            raise NotifyError(
                code=NotifyErrorCodes.SEND_FAILED,
                message=f"webhook returned status {resp.status_code}",
            )


class MultiNotifier(Notifier):
    """Delivers each alert to every wrapped notifier.

    All notifiers are tried; if any fail, one NotifyError naming the failures
    is raised afterwards.
    """

    def __init__(self, notifiers: list[Notifier]) -> None:
        self._notifiers = list(notifiers)

    async def send(self, alert: Alert) -> None:
        errors: list[NotifyError] = []
        for notifier in self._notifiers:
            try:
                await notifier.send(alert)
            except NotifyError as e:
                errors.append(e)
        if errors:
            raise NotifyError(
                code=NotifyErrorCodes.SEND_FAILED,
                message="; ".join(str(e) for e in errors),
                cause=errors[0],
            )
