"""周期履歴からの使用量サマリー計算"""

from __future__ import annotations

from datetime import datetime, timedelta

from onwatch_api.models import Snapshot
from onwatch_store.models import Cycle

from .models import UsageSummary

# これより短い稼働時間の周期ではレートを出さない
MIN_RATE_WINDOW = timedelta(minutes=30)


def _hours(delta: timedelta) -> float:
    return delta.total_seconds() / 3600


def compute_summary(
    quota_name: str,
    active: Cycle | None,
    history: list[Cycle],
    latest: Snapshot | None,
    now: datetime,
) -> UsageSummary:
    """アクティブ周期・クローズ済み履歴（古い順）・最新スナップショットからサマリーを計算する。

    Args:
        quota_name: 対象のクォータ名
        active: アクティブな周期（なければ None）
        history: クローズ済み周期（古い順）
        latest: プロバイダーの最新スナップショット（なければ None）
        now: 現在時刻

    Returns:
        UsageSummary
    """
    summary = UsageSummary(quota_name=quota_name, completed_cycles=len(history))

    if history:
        closed_delta = sum(c.total_delta for c in history)
        summary.tracking_since = history[0].cycle_start
        summary.avg_per_cycle = closed_delta / len(history)
        summary.total_tracked = closed_delta
        summary.peak_cycle = max(c.peak_used for c in history)

    if active is None:
        return summary

    summary.total_tracked += active.total_delta
    summary.peak_cycle = max(summary.peak_cycle, active.peak_used)
    summary.reset_date = active.reset_date

    reading = latest.quota(quota_name) if latest is not None else None
    if reading is not None:
        summary.limit = reading.limit
        summary.current_used = reading.used
        summary.current_remaining = reading.remaining
        summary.usage_percent = reading.usage_percent
        summary.unlimited = reading.unlimited
        if summary.reset_date is None:
            summary.reset_date = reading.resets_at

    if summary.reset_date is not None:
        summary.time_until_reset = summary.reset_date - now

    elapsed = now - active.cycle_start
    if elapsed < MIN_RATE_WINDOW or active.total_delta <= 0:
        return summary
    summary.current_rate = active.total_delta / _hours(elapsed)

    if (
        summary.time_until_reset is not None
        and summary.time_until_reset > timedelta(0)
        and summary.limit > 0
        and not summary.unlimited
    ):
        projected = summary.current_used + summary.current_rate * _hours(summary.time_until_reset)
        summary.projected_usage = min(projected, summary.limit)

    return summary
