"""tracker データモデル"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta


@dataclass
class UsageSummary:
    """1 クォータの周期統計と現在値のロールアップ。

    周期がなければ全フィールドがゼロ値のまま返る。
    """

    quota_name: str
    completed_cycles: int = 0
    avg_per_cycle: float = 0.0
    peak_cycle: float = 0.0
    total_tracked: float = 0.0
    tracking_since: datetime | None = None
    reset_date: datetime | None = None
    time_until_reset: timedelta | None = None
    limit: float = 0.0
    current_used: float = 0.0
    current_remaining: float = 0.0
    usage_percent: float = 0.0
    unlimited: bool = False
    current_rate: float | None = None
    projected_usage: float | None = None
