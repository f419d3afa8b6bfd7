"""ストア データモデル"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime


@dataclass
class Cycle:
    """クォータ名ごとのリセット周期。cycle_end が None の間はアクティブ。"""

    provider: str
    quota_name: str
    cycle_start: datetime
    cycle_end: datetime | None = None
    peak_used: float = 0.0
    total_delta: float = 0.0
    reset_date: datetime | None = None
    id: int = 0

    @property
    def is_active(self) -> bool:
        return self.cycle_end is None


@dataclass
class Session:
    """1 回のポーリング実行（エージェント起動から停止まで）。"""

    id: str
    provider: str
    started_at: datetime
    poll_interval_seconds: float
    ended_at: datetime | None = None
    snapshot_count: int = 0
    max_used: dict[str, float] = field(default_factory=dict)
