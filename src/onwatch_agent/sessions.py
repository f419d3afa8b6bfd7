"""使用量ベースのセッション検出"""

from __future__ import annotations

import uuid
from collections.abc import Mapping
from datetime import datetime, timedelta

import structlog

from onwatch_store.exceptions import StoreError
from onwatch_store.store import CycleStore


class SessionManager:
    """使用量の変化からセッションを検出する。

    直前のポーリングから使用量が変わるとセッションを開始し、idle_timeout の間
    変化がなければ最後に変化を観測した時刻でセッションを閉じる。最初の報告は
    基準値として記録するだけでセッションは開始しない。
    """

    def __init__(
        self,
        store: CycleStore,
        provider: str,
        idle_timeout: timedelta,
        poll_interval: float,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._store = store
        self._provider = str(provider)
        self._idle_timeout = idle_timeout
        self._poll_interval = poll_interval
        self._logger = (logger or structlog.stdlib.get_logger(__name__)).bind(
            provider=self._provider
        )
        self._session_id: str | None = None
        self._last_values: dict[str, float] | None = None
        self._last_activity: datetime | None = None

    @property
    def session_id(self) -> str | None:
        return self._session_id

    async def report_poll(self, values: Mapping[str, float], at: datetime) -> None:
        """1 回分のクォータ使用量を報告する。ストアの失敗はログに記録する。"""
        current = dict(values)
        try:
            if self._session_id is not None and self._idle_expired(at):
                await self._end(self._last_activity or at)

            if self._last_values is not None and current != self._last_values:
                if self._session_id is None:
                    await self._begin(at)
                self._last_activity = at

            if self._session_id is not None:
                await self._store.increment_snapshot_count(self._session_id)
                await self._store.update_session_max(self._session_id, current)
        except StoreError as e:
            self._logger.error("failed to update session", session=self._session_id, error=str(e))
        self._last_values = current

    async def close(self, at: datetime) -> None:
        """進行中のセッションを at で閉じる。"""
        session_id = self._session_id
        if session_id is None:
            return
        try:
            await self._end(at)
        except StoreError as e:
            self._logger.error("failed to close session", session=session_id, error=str(e))

    def _idle_expired(self, at: datetime) -> bool:
        return self._last_activity is not None and at - self._last_activity > self._idle_timeout

    async def _begin(self, at: datetime) -> None:
        session_id = str(uuid.uuid4())
        await self._store.create_session(session_id, self._provider, at, self._poll_interval)
        self._session_id = session_id
        self._logger.info("session started", session=session_id)

    async def _end(self, at: datetime) -> None:
        session_id = self._session_id
        self._session_id = None
        self._last_activity = None
        if session_id is not None:
            await self._store.close_session(session_id, at)
            self._logger.info("session ended", session=session_id)
