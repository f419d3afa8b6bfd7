"""Poller のユニットテスト"""

import asyncio
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from pathlib import Path

import structlog
from onwatch_agent import Poller, build_notifier, build_pollers
from onwatch_api import (
    InMemoryQuotaClient,
    ProviderError,
    ProviderErrorCodes,
    QuotaClient,
    QuotaReading,
    Snapshot,
)
from onwatch_config import AppConfig
from onwatch_notify import (
    AlertLevel,
    InMemoryNotifier,
    LoggingNotifier,
    MultiNotifier,
    NotificationEngine,
    SmtpNotifier,
    WebhookNotifier,
)
from onwatch_store import InMemoryCycleStore, SqliteCycleStore
from onwatch_tracker import Tracker

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


def make_snapshot(used: float, resets_at: datetime | None = None, at: datetime = T0) -> Snapshot:
    return Snapshot(
        provider="synthetic",
        captured_at=at,
        quotas=[
            QuotaReading(name="subscription", limit=100, used=used, resets_at=resets_at),
            QuotaReading(name="toolcall", limit=0, used=0, unlimited=True),
        ],
    )


def make_poller(
    client: QuotaClient,
    store: InMemoryCycleStore | None = None,
) -> tuple[Poller, InMemoryCycleStore, InMemoryNotifier, Tracker]:
    store = store or InMemoryCycleStore()
    notifier = InMemoryNotifier()
    engine = NotificationEngine(notifier)
    tracker = Tracker(store, "synthetic")
    tracker.add_reset_listener(lambda name: engine.notify_reset("synthetic", name))
    poller = Poller(client, store, tracker, interval=3600, notifier=engine, clock=lambda: T0)
    return poller, store, notifier, tracker


async def wait_for_calls(client: InMemoryQuotaClient, count: int) -> None:
    for _ in range(100):
        if client.calls >= count:
            return
        await asyncio.sleep(0)
    raise AssertionError(f"client called {client.calls} times, expected {count}")


async def test_poll_once_stores_and_tracks() -> None:
    """1 回のポーリングでスナップショット保存・周期作成・通知が行われること。"""
    client = InMemoryQuotaClient("synthetic", [make_snapshot(used=85)])
    poller, store, notifier, _ = make_poller(client)

    snapshot = await poller.poll_once()

    assert snapshot is not None
    assert snapshot.id is not None
    latest = await store.query_latest_snapshot("synthetic")
    assert latest is not None
    cycle = await store.query_active_cycle("synthetic", "subscription")
    assert cycle is not None
    assert cycle.peak_used == 85
    assert [(a.level, a.quota_name) for a in notifier.sent] == [
        (AlertLevel.WARNING, "subscription")
    ]


async def test_fetch_error_skips_tick() -> None:
    """取得失敗時は保存もトラッキングも行わないこと。"""
    error = ProviderError(code=ProviderErrorCodes.UNAUTHORIZED, message="bad key", provider="synthetic")
    client = InMemoryQuotaClient("synthetic", [error])
    poller, store, _, _ = make_poller(client)

    assert await poller.poll_once() is None
    assert await store.query_latest_snapshot("synthetic") is None
    assert await store.query_active_cycle("synthetic", "subscription") is None


async def test_polling_check_skips_poll() -> None:
    """ポーリングチェックが False を返すと取得しないこと。"""
    client = InMemoryQuotaClient("synthetic", [make_snapshot(used=1)])
    poller, _, _, _ = make_poller(client)
    poller.set_polling_check(lambda: False)

    assert await poller.poll_once() is None
    assert client.calls == 0


async def test_reset_triggers_reset_alert() -> None:
    """リセット検出時に RESET 通知が送られ、しきい値通知が再度有効になること。"""
    r1 = T0 + timedelta(hours=1)
    r2 = T0 + timedelta(hours=6)
    client = InMemoryQuotaClient(
        "synthetic",
        [
            make_snapshot(used=96, resets_at=r1),
            make_snapshot(used=3, resets_at=r2, at=T0 + timedelta(hours=2)),
            make_snapshot(used=97, resets_at=r2, at=T0 + timedelta(hours=3)),
        ],
    )
    poller, store, notifier, _ = make_poller(client)
    for _ in range(3):
        await poller.poll_once()

    assert [a.level for a in notifier.sent] == [
        AlertLevel.CRITICAL,
        AlertLevel.RESET,
        AlertLevel.CRITICAL,
    ]
    assert len(await store.query_cycle_history("synthetic", "subscription")) == 1


async def test_start_and_stop_manage_session() -> None:
    """start でセッションを作成して即時ポーリングし、stop で終了すること。"""
    store = InMemoryCycleStore()
    await store.create_session("stale", "synthetic", T0 - timedelta(days=1), 60)
    client = InMemoryQuotaClient("synthetic", [make_snapshot(used=40)])
    poller, _, _, _ = make_poller(client, store)

    await poller.start()
    session_id = poller.session_id
    assert session_id is not None
    await wait_for_calls(client, 1)
    await poller.stop()

    assert not poller.running
    assert poller.session_id is None
    sessions = {s.id: s for s in await store.query_sessions("synthetic")}
    assert sessions["stale"].ended_at == T0
    current = sessions[session_id]
    assert current.ended_at == T0
    assert current.snapshot_count == 1
    assert current.max_used == {"subscription": 40, "toolcall": 0}
    assert current.poll_interval_seconds == 3600


class _BlockingClient(QuotaClient):
    def __init__(self) -> None:
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    @property
    def provider(self) -> str:
        return "synthetic"

    async def fetch_snapshot(self, captured_at: datetime | None = None) -> Snapshot:
        self.started.set()
        await self.release.wait()
        return make_snapshot(used=10, at=captured_at or T0)


async def test_stop_waits_for_in_flight_poll() -> None:
    """stop は実行中のポーリングを中断せず、完了を待つこと。"""
    client = _BlockingClient()
    poller, store, _, _ = make_poller(client)

    await poller.start()
    await client.started.wait()
    stopping = asyncio.create_task(poller.stop())
    await asyncio.sleep(0)
    assert not stopping.done()

    client.release.set()
    await stopping

    cycle = await store.query_active_cycle("synthetic", "subscription")
    assert cycle is not None
    assert cycle.peak_used == 10


def test_build_pollers_per_active_provider(tmp_path: Path) -> None:
    """有効なプロバイダーごとにポーラーが作られること。"""
    config = AppConfig.model_validate(
        {
            "providers": {
                "synthetic": {"api_key": "syn_abcdefghijkl"},
                "copilot": {"token": "ghu_token"},
            },
            "storage": {"db_path": str(tmp_path / "onwatch.db")},
        }
    )
    store = SqliteCycleStore(config.storage.db_path)
    engine = NotificationEngine(InMemoryNotifier())
    pollers = build_pollers(config, store, engine, logger=None)
    store.close()

    assert len(pollers) == 2


async def wait_until(condition: Callable[[], bool], timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not condition():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


async def test_unexpected_error_keeps_polling() -> None:
    """想定外の例外が出てもポーリングを続け、stop でセッションが閉じること。"""
    store = InMemoryCycleStore()
    client = InMemoryQuotaClient(
        "synthetic", [RuntimeError("boom"), make_snapshot(used=20), make_snapshot(used=30)]
    )
    tracker = Tracker(store, "synthetic")
    poller = Poller(client, store, tracker, interval=0.01, clock=lambda: T0)

    await poller.start()
    session_id = poller.session_id
    await wait_until(lambda: client.calls >= 3)
    assert poller.running
    await poller.stop()

    cycle = await store.query_active_cycle("synthetic", "subscription")
    assert cycle is not None
    assert cycle.peak_used == 30
    sessions = {s.id: s for s in await store.query_sessions("synthetic")}
    assert sessions[session_id].ended_at == T0
    assert sessions[session_id].snapshot_count == 2


class _CrashingPoller(Poller):
    async def _poll_loop(self) -> None:
        raise RuntimeError("loop crashed")


async def test_stop_closes_session_after_task_failure() -> None:
    """ポーリングタスクが異常終了していても stop はセッションを閉じること。"""
    store = InMemoryCycleStore()
    client = InMemoryQuotaClient("synthetic")
    poller = _CrashingPoller(client, store, Tracker(store, "synthetic"), interval=60, clock=lambda: T0)

    await poller.start()
    session_id = poller.session_id
    await wait_until(lambda: not poller.running)
    await poller.stop()

    assert poller.session_id is None
    [session] = await store.query_sessions("synthetic")
    assert session.id == session_id
    assert session.ended_at == T0


def _config(notify: dict) -> AppConfig:
    return AppConfig.model_validate(
        {"providers": {"copilot": {"token": "ghu_token"}}, "notify": notify}
    )


SMTP = {
    "host": "smtp.example.com",
    "from_addr": "alerts@example.com",
    "to": ["admin@example.com"],
}


def test_build_notifier_selects_sinks() -> None:
    """設定された通知先に応じた Notifier が選ばれること。"""
    logger = structlog.stdlib.get_logger("test")
    assert isinstance(build_notifier(_config({}), logger), LoggingNotifier)
    assert isinstance(build_notifier(_config({"smtp": SMTP}), logger), SmtpNotifier)
    webhook = {"webhook_url": "http://hooks.local/onwatch"}
    assert isinstance(build_notifier(_config(webhook), logger), WebhookNotifier)
    assert isinstance(build_notifier(_config({**webhook, "smtp": SMTP}), logger), MultiNotifier)
