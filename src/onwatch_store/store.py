"""CycleStore 抽象基底クラス"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime

from onwatch_api.models import Snapshot

from .models import Cycle, Session


class CycleStore(ABC):
    """スナップショット・周期・セッションの永続化抽象基底クラス。

    周期はプロバイダーとクォータ名の組ごとに高々 1 つだけアクティブになる。
    """

    # --- スナップショット（追記のみ） ---

    @abstractmethod
    async def insert_snapshot(self, snapshot: Snapshot) -> int:
        """スナップショットを追記して ID を返す。"""
        ...

    @abstractmethod
    async def query_latest_snapshot(self, provider: str) -> Snapshot | None:
        """プロバイダーの最新スナップショットを返す。"""
        ...

    @abstractmethod
    async def query_snapshots(
        self,
        provider: str,
        since: datetime | None = None,
        limit: int | None = None,
    ) -> list[Snapshot]:
        """since 以降のスナップショットを古い順に返す。limit 指定時は新しい方から limit 件。"""
        ...

    # --- 周期 ---

    @abstractmethod
    async def query_active_cycle(self, provider: str, quota_name: str) -> Cycle | None:
        """アクティブな周期を返す。なければ None。"""
        ...

    @abstractmethod
    async def create_cycle(
        self,
        provider: str,
        quota_name: str,
        start: datetime,
        reset_date: datetime | None,
    ) -> int:
        """新しい周期を作成する。既にアクティブな周期があれば CycleAlreadyOpenError。"""
        ...

    @abstractmethod
    async def update_cycle(
        self,
        provider: str,
        quota_name: str,
        peak_used: float,
        total_delta: float,
    ) -> None:
        """アクティブな周期の統計を上書きする。なければ NoActiveCycleError。"""
        ...

    @abstractmethod
    async def close_cycle(
        self,
        provider: str,
        quota_name: str,
        end: datetime,
        peak_used: float,
        total_delta: float,
    ) -> None:
        """アクティブな周期を最終統計付きでクローズする。なければ NoActiveCycleError。"""
        ...

    @abstractmethod
    async def query_cycle_history(self, provider: str, quota_name: str) -> list[Cycle]:
        """クローズ済みの周期を古い順に返す。"""
        ...

    # --- セッション ---

    @abstractmethod
    async def create_session(
        self,
        session_id: str,
        provider: str,
        started_at: datetime,
        poll_interval_seconds: float,
    ) -> None:
        """ポーリングセッションを作成する。"""
        ...

    @abstractmethod
    async def close_session(self, session_id: str, ended_at: datetime) -> None:
        """セッションを終了する。存在しなければ SessionNotFoundError。"""
        ...

    @abstractmethod
    async def close_orphaned_sessions(self, provider: str, ended_at: datetime) -> int:
        """前回実行で閉じられなかったセッションを終了し、件数を返す。"""
        ...

    @abstractmethod
    async def increment_snapshot_count(self, session_id: str) -> None:
        """セッションのスナップショット数を 1 増やす。"""
        ...

    @abstractmethod
    async def update_session_max(self, session_id: str, used: dict[str, float]) -> None:
        """クォータ名ごとの最大使用量を更新する（大きい値のみ反映）。"""
        ...

    @abstractmethod
    async def query_sessions(self, provider: str | None = None) -> list[Session]:
        """セッションを開始時刻の新しい順に返す。"""
        ...
