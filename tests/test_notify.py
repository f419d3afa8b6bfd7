"""Tests for the notification engine and notifiers."""

import json

import httpx
import pytest
import respx
from onwatch_notify import (
    Alert,
    AlertLevel,
    InMemoryNotifier,
    LoggingNotifier,
    NotificationEngine,
    Notifier,
    NotifyError,
    NotifyErrorCodes,
    QuotaStatus,
    WebhookNotifier,
)

WEBHOOK_URL = "http://hooks.local/onwatch"


def status(percent: float, quota: str = "subscription", provider: str = "synthetic") -> QuotaStatus:
    return QuotaStatus(
        provider=provider, quota_name=quota, usage_percent=percent, used=percent, limit=100
    )


async def test_below_threshold_sends_nothing() -> None:
    notifier = InMemoryNotifier()
    engine = NotificationEngine(notifier)
    assert await engine.check(status(79.9)) is None
    assert notifier.sent == []


async def test_warning_sent_once_per_cycle() -> None:
    """A warning is sent once until the quota resets."""
    notifier = InMemoryNotifier()
    engine = NotificationEngine(notifier)
    first = await engine.check(status(81))
    second = await engine.check(status(85))

    assert first is not None
    assert first.level == AlertLevel.WARNING
    assert second is None
    assert [a.level for a in notifier.sent] == [AlertLevel.WARNING]


async def test_escalation_to_critical() -> None:
    notifier = InMemoryNotifier()
    engine = NotificationEngine(notifier)
    await engine.check(status(82))
    await engine.check(status(96))
    await engine.check(status(99))
    await engine.check(status(85))
    assert [a.level for a in notifier.sent] == [AlertLevel.WARNING, AlertLevel.CRITICAL]


async def test_straight_to_critical_skips_warning() -> None:
    notifier = InMemoryNotifier()
    engine = NotificationEngine(notifier)
    await engine.check(status(97))
    await engine.check(status(90))
    assert [a.level for a in notifier.sent] == [AlertLevel.CRITICAL]


async def test_reset_clears_state() -> None:
    """After a reset the same thresholds alert again."""
    notifier = InMemoryNotifier()
    engine = NotificationEngine(notifier)
    await engine.check(status(96))
    reset = await engine.notify_reset("synthetic", "subscription")
    await engine.check(status(96))

    assert reset is not None
    assert [a.level for a in notifier.sent] == [
        AlertLevel.CRITICAL,
        AlertLevel.RESET,
        AlertLevel.CRITICAL,
    ]


async def test_state_is_per_quota() -> None:
    notifier = InMemoryNotifier()
    engine = NotificationEngine(notifier)
    await engine.check(status(85, quota="subscription"))
    await engine.check(status(85, quota="search"))
    await engine.check(status(85, quota="subscription", provider="zai"))
    assert len(notifier.sent) == 3


async def test_custom_thresholds() -> None:
    notifier = InMemoryNotifier()
    engine = NotificationEngine(notifier, warning_threshold=50, critical_threshold=70)
    alert = await engine.check(status(60))
    assert alert is not None
    assert alert.level == AlertLevel.WARNING


class _FailingNotifier(Notifier):
    def __init__(self) -> None:
        self.attempts = 0

    async def send(self, alert: Alert) -> None:
        self.attempts += 1
        raise NotifyError(code=NotifyErrorCodes.SEND_FAILED, message="smtp down")


async def test_send_failure_is_logged_and_retried_next_time() -> None:
    """A failed delivery is not recorded, so the next check tries again."""
    notifier = _FailingNotifier()
    engine = NotificationEngine(notifier)
    assert await engine.check(status(90)) is None
    assert await engine.check(status(90)) is None
    assert notifier.attempts == 2


async def test_logging_notifier() -> None:
    notifier = LoggingNotifier()
    await notifier.send(
        Alert(level=AlertLevel.WARNING, provider="zai", quota_name="tokens", message="high")
    )


@respx.mock
async def test_webhook_posts_json() -> None:
    route = respx.post(WEBHOOK_URL).mock(return_value=httpx.Response(204))
    notifier = WebhookNotifier(WEBHOOK_URL)
    alert = Alert(
        level=AlertLevel.CRITICAL,
        provider="copilot",
        quota_name="premium_interactions",
        message="premium_interactions at 97.0%",
        usage_percent=97.0,
    )
    await notifier.send(alert)

    body = json.loads(route.calls.last.request.content)
    assert body["level"] == "critical"
    assert body["quota"] == "premium_interactions"
    assert body["usage_percent"] == 97.0
    assert body["id"] == alert.id


@respx.mock
async def test_webhook_error_status() -> None:
    respx.post(WEBHOOK_URL).mock(return_value=httpx.Response(500))
    with pytest.raises(NotifyError) as exc_info:
        await WebhookNotifier(WEBHOOK_URL).send(
            Alert(level=AlertLevel.RESET, provider="zai", quota_name="tokens", message="reset")
        )
    assert exc_info.value.code == NotifyErrorCodes.SEND_FAILED


@respx.mock
async def test_webhook_network_error() -> None:
    respx.post(WEBHOOK_URL).mock(side_effect=httpx.ConnectTimeout("timeout"))
    with pytest.raises(NotifyError) as exc_info:
        await WebhookNotifier(WEBHOOK_URL).send(
            Alert(level=AlertLevel.RESET, provider="zai", quota_name="tokens", message="reset")
        )
    assert isinstance(exc_info.value.__cause__, httpx.ConnectTimeout)
