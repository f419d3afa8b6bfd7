"""Tracker: クォータごとのリセット周期検出と使用量の集計"""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime

import structlog

from onwatch_api.models import QuotaReading, Snapshot
from onwatch_store.exceptions import StoreError
from onwatch_store.models import Cycle
from onwatch_store.store import CycleStore
from onwatch_telemetry.metrics import quota_resets_total, tracker_errors_total

from .exceptions import ProcessError, QuotaUpdateError, TrackerError, TrackerErrorCodes
from .models import UsageSummary
from .summary import compute_summary

ResetListener = Callable[[str], None | Awaitable[None]]


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Tracker:
    """1 プロバイダー分のスナップショットを受け取り、周期ストアを更新するトラッカー。

    プロバイダーごとに 1 インスタンスを使う。process の呼び出しは直列化されている前提で、
    内部ロックは持たない。
    """

    def __init__(
        self,
        store: CycleStore,
        provider: str,
        logger: structlog.stdlib.BoundLogger | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._provider = str(provider)
        self._logger = (logger or structlog.stdlib.get_logger(__name__)).bind(
            provider=self._provider
        )
        self._clock = clock or _utcnow
        self._last_values: dict[str, float] = {}
        self._last_resets: dict[str, str] = {}
        self._has_last_values = False
        self._listeners: list[ResetListener] = []

    @property
    def provider(self) -> str:
        return self._provider

    @property
    def has_last_values(self) -> bool:
        return self._has_last_values

    def set_on_reset(self, listener: ResetListener) -> None:
        """リセットリスナーを listener 1 つに置き換える。"""
        self._listeners = [listener]

    def add_reset_listener(self, listener: ResetListener) -> None:
        self._listeners.append(listener)

    async def process(self, snapshot: Snapshot) -> None:
        """スナップショット内の各クォータについて周期を更新する。

        Raises:
            ProcessError: 1 つ以上のクォータでストア操作が失敗した場合（他のクォータは処理済み）
        """
        failures: list[QuotaUpdateError] = []
        for reading in snapshot.quotas:
            try:
                await self._process_quota(reading, snapshot.captured_at)
            except StoreError as e:
                self._logger.warning("quota update failed", quota=reading.name, error=str(e))
                tracker_errors_total.add(1, {"provider": self._provider})
                failures.append(QuotaUpdateError(reading.name, e))

        self._has_last_values = True
        if failures:
            raise ProcessError(failures)

    async def _process_quota(self, reading: QuotaReading, captured_at: datetime) -> None:
        name = reading.name
        marker = reading.reset_marker

        cycle = await self._store.query_active_cycle(self._provider, name)
        if cycle is None:
            await self._open_cycle(reading, captured_at)
            self._remember(reading)
            self._logger.info(
                "created new cycle", quota=name, reset_date=marker, initial_used=reading.used
            )
            return

        reason = self._reset_reason(cycle, reading, captured_at)
        if reason:
            end = captured_at
            if cycle.reset_date is not None and captured_at > cycle.reset_date:
                end = cycle.reset_date
            await self._store.close_cycle(
                self._provider, name, end, cycle.peak_used, cycle.total_delta
            )
            await self._open_cycle(reading, captured_at)
            self._remember(reading)
            self._logger.info(
                "detected quota reset",
                quota=name,
                reason=reason,
                old_reset_date=cycle.reset_date.isoformat() if cycle.reset_date else "",
                new_reset_date=marker,
            )
            quota_resets_total.add(1, {"provider": self._provider, "quota": name})
            await self._notify_reset(name)
            return

        last_remaining = self._last_values.get(name)
        if self._has_last_values and last_remaining is not None:
            delta = last_remaining - reading.remaining
            total_delta = cycle.total_delta + delta if delta > 0 else cycle.total_delta
            peak = max(cycle.peak_used, reading.used)
            await self._store.update_cycle(self._provider, name, peak, total_delta)
        elif reading.used > cycle.peak_used:
            # 再起動直後など直前値がない場合はピークのみ引き上げる
            await self._store.update_cycle(
                self._provider, name, reading.used, cycle.total_delta
            )
        self._remember(reading)

    def _reset_reason(self, cycle: Cycle, reading: QuotaReading, captured_at: datetime) -> str:
        marker = reading.reset_marker
        previous = self._last_resets.get(reading.name, "")
        if marker and previous and marker != previous:
            return "reset_date changed"

        last_remaining = self._last_values.get(reading.name)
        if (
            cycle.reset_date is not None
            and captured_at > cycle.reset_date
            and last_remaining is not None
            and reading.remaining > last_remaining
        ):
            return "time-based (reset date passed + remaining increased)"
        return ""

    async def _open_cycle(self, reading: QuotaReading, captured_at: datetime) -> None:
        await self._store.create_cycle(self._provider, reading.name, captured_at, reading.resets_at)
        await self._store.update_cycle(self._provider, reading.name, reading.used, 0.0)

    def _remember(self, reading: QuotaReading) -> None:
        self._last_values[reading.name] = reading.remaining
        self._last_resets[reading.name] = reading.reset_marker

    async def _notify_reset(self, quota_name: str) -> None:
        for listener in list(self._listeners):
            try:
                result = listener(quota_name)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                self._logger.exception("reset listener failed", quota=quota_name)

    async def usage_summary(self, quota_name: str) -> UsageSummary:
        """クォータの周期統計を返す。周期がまだなければゼロ値のサマリー。

        Raises:
            TrackerError: ストアの読み取りに失敗した場合（SUMMARY_FAILED）
        """
        try:
            active = await self._store.query_active_cycle(self._provider, quota_name)
            history = await self._store.query_cycle_history(self._provider, quota_name)
            latest = None
            if active is not None:
                latest = await self._store.query_latest_snapshot(self._provider)
        except StoreError as e:
            raise TrackerError(
                code=TrackerErrorCodes.SUMMARY_FAILED,
                message=f"failed to build summary for {quota_name}: {e}",
                cause=e,
            ) from e
        return compute_summary(quota_name, active, history, latest, self._clock())
