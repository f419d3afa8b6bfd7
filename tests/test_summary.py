"""compute_summary のユニットテスト"""

from datetime import UTC, datetime, timedelta

import pytest
from onwatch_api.models import QuotaReading, Snapshot
from onwatch_store import Cycle
from onwatch_tracker import compute_summary

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=UTC)


def active_cycle(
    started: timedelta = timedelta(hours=2),
    total_delta: float = 200,
    peak_used: float = 1400,
    reset_date: datetime | None = NOW + timedelta(hours=5),
) -> Cycle:
    return Cycle(
        provider="copilot",
        quota_name="premium_interactions",
        cycle_start=NOW - started,
        peak_used=peak_used,
        total_delta=total_delta,
        reset_date=reset_date,
    )


def closed_cycle(start: datetime, total_delta: float, peak_used: float) -> Cycle:
    return Cycle(
        provider="copilot",
        quota_name="premium_interactions",
        cycle_start=start,
        cycle_end=start + timedelta(days=30),
        peak_used=peak_used,
        total_delta=total_delta,
    )


def latest(reading: QuotaReading) -> Snapshot:
    return Snapshot(provider="copilot", captured_at=NOW, quotas=[reading])


def test_zero_history() -> None:
    """周期がなければゼロ値のサマリーになること。"""
    summary = compute_summary("premium_interactions", None, [], None, NOW)
    assert summary.completed_cycles == 0
    assert summary.avg_per_cycle == 0
    assert summary.peak_cycle == 0
    assert summary.total_tracked == 0
    assert summary.tracking_since is None
    assert summary.time_until_reset is None
    assert summary.current_rate is None
    assert summary.projected_usage is None


def test_projection_clamped_to_limit() -> None:
    """予測使用量が上限を超えないこと。"""
    reading = QuotaReading(name="premium_interactions", limit=1500, used=1400)
    summary = compute_summary(
        "premium_interactions", active_cycle(), [], latest(reading), NOW
    )
    assert summary.current_rate == pytest.approx(100.0)
    assert summary.projected_usage == 1500


def test_projection_below_limit() -> None:
    """上限に届かない予測は線形外挿の値になること。"""
    reading = QuotaReading(name="premium_interactions", limit=1500, used=400)
    cycle = active_cycle(total_delta=100, reset_date=NOW + timedelta(hours=4))
    summary = compute_summary("premium_interactions", cycle, [], latest(reading), NOW)
    assert summary.current_rate == pytest.approx(50.0)
    assert summary.projected_usage == pytest.approx(600.0)


def test_rate_requires_thirty_minutes() -> None:
    """30 分未満の周期ではレートと予測を出さないこと。"""
    reading = QuotaReading(name="premium_interactions", limit=1500, used=1400)
    cycle = active_cycle(started=timedelta(minutes=29))
    summary = compute_summary("premium_interactions", cycle, [], latest(reading), NOW)
    assert summary.current_rate is None
    assert summary.projected_usage is None


def test_rate_requires_positive_delta() -> None:
    """差分がなければレートを出さないこと。"""
    reading = QuotaReading(name="premium_interactions", limit=1500, used=1400)
    cycle = active_cycle(total_delta=0)
    summary = compute_summary("premium_interactions", cycle, [], latest(reading), NOW)
    assert summary.current_rate is None


def test_overdue_reset_has_negative_time_and_no_projection() -> None:
    """リセット予定時刻を過ぎている場合は負の残り時間となり、予測しないこと。"""
    reading = QuotaReading(name="premium_interactions", limit=1500, used=100)
    cycle = active_cycle(reset_date=NOW - timedelta(minutes=10))
    summary = compute_summary("premium_interactions", cycle, [], latest(reading), NOW)
    assert summary.time_until_reset == timedelta(minutes=-10)
    assert summary.current_rate is not None
    assert summary.projected_usage is None


def test_unlimited_quota_has_no_projection() -> None:
    """無制限クォータでは予測しないこと。"""
    reading = QuotaReading(name="premium_interactions", limit=0, used=0, unlimited=True)
    summary = compute_summary(
        "premium_interactions", active_cycle(), [], latest(reading), NOW
    )
    assert summary.unlimited
    assert summary.projected_usage is None


def test_percent_remaining_is_inverted() -> None:
    """残量パーセントで報告するプロバイダーは使用率に反転されること。"""
    reading = QuotaReading.from_remaining(
        "premium_interactions", limit=300, remaining=75, percent_remaining=25.0
    )
    summary = compute_summary(
        "premium_interactions", active_cycle(), [], latest(reading), NOW
    )
    assert summary.usage_percent == pytest.approx(75.0)
    assert summary.current_used == 225
    assert summary.current_remaining == 75


def test_history_aggregates() -> None:
    """クローズ済み周期とアクティブ周期を合わせて集計すること。"""
    first = NOW - timedelta(days=60)
    history = [
        closed_cycle(first, total_delta=100, peak_used=300),
        closed_cycle(first + timedelta(days=30), total_delta=300, peak_used=900),
    ]
    summary = compute_summary(
        "premium_interactions", active_cycle(total_delta=50, peak_used=1000), history, None, NOW
    )
    assert summary.completed_cycles == 2
    assert summary.avg_per_cycle == pytest.approx(200.0)
    assert summary.peak_cycle == 1000
    assert summary.total_tracked == 450
    assert summary.tracking_since == first


def test_history_without_active_cycle() -> None:
    """アクティブ周期がなければ現在値は空のままであること。"""
    history = [closed_cycle(NOW - timedelta(days=30), total_delta=40, peak_used=80)]
    reading = QuotaReading(name="premium_interactions", limit=1500, used=1400)
    summary = compute_summary("premium_interactions", None, history, latest(reading), NOW)
    assert summary.completed_cycles == 1
    assert summary.peak_cycle == 80
    assert summary.current_used == 0
    assert summary.reset_date is None


def test_reset_date_falls_back_to_latest_reading() -> None:
    """周期にリセット日時がなければ最新の読み取り値を使うこと。"""
    resets_at = NOW + timedelta(days=3)
    reading = QuotaReading(
        name="premium_interactions", limit=1500, used=100, resets_at=resets_at
    )
    summary = compute_summary(
        "premium_interactions", active_cycle(reset_date=None), [], latest(reading), NOW
    )
    assert summary.reset_date == resets_at
    assert summary.time_until_reset == timedelta(days=3)
