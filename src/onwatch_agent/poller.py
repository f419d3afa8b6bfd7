"""Poller: asyncio Task ベースのクォータポーリング"""

from __future__ import annotations

import asyncio
import contextlib
import time
import uuid
from collections.abc import Callable
from datetime import UTC, datetime

import structlog

from onwatch_api.client import QuotaClient
from onwatch_api.exceptions import ProviderError
from onwatch_api.models import Snapshot
from onwatch_notify.engine import NotificationEngine
from onwatch_notify.models import QuotaStatus
from onwatch_store.exceptions import StoreError
from onwatch_store.store import CycleStore
from onwatch_telemetry.metrics import poll_duration_seconds, poll_errors_total, poll_total
from onwatch_tracker.exceptions import ProcessError
from onwatch_tracker.tracker import Tracker

from .sessions import SessionManager


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Poller:
    """1 プロバイダーのクォータを一定間隔で取得し、保存とトラッキングを行うポーラー。"""

    def __init__(
        self,
        client: QuotaClient,
        store: CycleStore,
        tracker: Tracker,
        interval: float,
        logger: structlog.stdlib.BoundLogger | None = None,
        notifier: NotificationEngine | None = None,
        clock: Callable[[], datetime] | None = None,
        sessions: SessionManager | None = None,
    ) -> None:
        self._client = client
        self._store = store
        self._tracker = tracker
        self._interval = interval
        self._provider = str(client.provider)
        self._logger = (logger or structlog.stdlib.get_logger(__name__)).bind(
            provider=self._provider
        )
        self._notifier = notifier
        self._clock = clock or _utcnow
        self._polling_check: Callable[[], bool] | None = None
        self._sessions = sessions
        self._session_id: str | None = None
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task[None] | None = None

    @property
    def session_id(self) -> str | None:
        if self._sessions is not None:
            return self._sessions.session_id
        return self._session_id

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def set_polling_check(self, check: Callable[[], bool] | None) -> None:
        """各ポーリング前に呼ばれるチェックを設定する。False を返すとその回はスキップする。"""
        self._polling_check = check

    async def start(self) -> None:
        """ポーリングタスクを起動する。

        前回の異常終了で閉じられていないセッションを閉じてから始める。SessionManager が
        なければ起動から停止までを 1 セッションとして記録する。
        """
        now = self._clock()
        orphaned = await self._store.close_orphaned_sessions(self._provider, now)
        if orphaned:
            self._logger.info("closed orphaned sessions", count=orphaned)
        if self._sessions is None:
            self._session_id = str(uuid.uuid4())
            await self._store.create_session(
                self._session_id, self._provider, now, self._interval
            )
        self._stop_event.clear()
        self._task = asyncio.create_task(self._poll_loop())
        self._logger.info("poller started", interval=self._interval, session=self._session_id)

    async def stop(self) -> None:
        """実行中のポーリングの完了を待ってから停止し、セッションを閉じる。"""
        self._stop_event.set()
        try:
            if self._task is not None:
                await self._task
        except Exception:
            self._logger.exception("poll task ended with an error")
        finally:
            self._task = None
            await self._close_session()
        self._logger.info("poller stopped")

    async def _close_session(self) -> None:
        if self._sessions is not None:
            await self._sessions.close(self._clock())
            return
        if self._session_id is None:
            return
        try:
            await self._store.close_session(self._session_id, self._clock())
        except StoreError as e:
            self._logger.error("failed to close session", error=str(e))
        self._session_id = None

    async def _poll_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                await self.poll_once()
            except Exception:
                poll_errors_total.add(1, {"provider": self._provider, "code": "UNEXPECTED"})
                self._logger.exception("poll failed")
            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._interval)

    async def poll_once(self) -> Snapshot | None:
        """1 回のポーリングを実行する。取得に失敗した場合は None を返す。"""
        if self._polling_check is not None and not self._polling_check():
            self._logger.debug("poll skipped")
            return None

        started = time.perf_counter()
        poll_total.add(1, {"provider": self._provider})
        try:
            snapshot = await self._client.fetch_snapshot(self._clock())
        except ProviderError as e:
            poll_errors_total.add(1, {"provider": self._provider, "code": e.code})
            self._logger.error("failed to fetch quotas", code=e.code, error=str(e))
            return None

        try:
            await self._store.insert_snapshot(snapshot)
        except StoreError as e:
            self._logger.error("failed to insert snapshot", error=str(e))

        await self._record_session(snapshot)

        try:
            await self._tracker.process(snapshot)
        except ProcessError as e:
            self._logger.error("tracker processing failed", quotas=e.quota_names, error=str(e))

        await self._check_thresholds(snapshot)

        poll_duration_seconds.record(
            time.perf_counter() - started, {"provider": self._provider}
        )
        for q in snapshot.quotas:
            if not q.unlimited:
                self._logger.info(
                    "poll complete",
                    quota=q.name,
                    limit=q.limit,
                    used=q.used,
                    remaining=q.remaining,
                    plan=snapshot.plan,
                )
        return snapshot

    async def _record_session(self, snapshot: Snapshot) -> None:
        if self._sessions is not None:
            values = {q.name: q.used for q in snapshot.quotas}
            await self._sessions.report_poll(values, snapshot.captured_at)
            return
        if self._session_id is None:
            return
        try:
            await self._store.increment_snapshot_count(self._session_id)
            await self._store.update_session_max(
                self._session_id, {q.name: q.used for q in snapshot.quotas}
            )
        except StoreError as e:
            self._logger.error("failed to update session", session=self._session_id, error=str(e))

    async def _check_thresholds(self, snapshot: Snapshot) -> None:
        if self._notifier is None:
            return
        for q in snapshot.quotas:
            if q.unlimited or q.limit == 0:
                continue
            await self._notifier.check(
                QuotaStatus(
                    provider=self._provider,
                    quota_name=q.name,
                    usage_percent=q.usage_percent,
                    used=q.used,
                    limit=q.limit,
                )
            )
