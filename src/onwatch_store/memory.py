"""InMemoryCycleStore 実装"""

from __future__ import annotations

import copy
from dataclasses import replace
from datetime import datetime

from onwatch_api.models import Snapshot

from .exceptions import CycleAlreadyOpenError, NoActiveCycleError, SessionNotFoundError
from .models import Cycle, Session
from .store import CycleStore


class InMemoryCycleStore(CycleStore):
    """テスト用インメモリストア。返す値は内部状態のコピー。"""

    def __init__(self) -> None:
        self._snapshots: list[Snapshot] = []
        self._cycles: list[Cycle] = []
        self._sessions: dict[str, Session] = {}
        self._next_cycle_id = 1

    async def insert_snapshot(self, snapshot: Snapshot) -> int:
        stored = copy.deepcopy(snapshot)
        stored.id = len(self._snapshots) + 1
        self._snapshots.append(stored)
        snapshot.id = stored.id
        return stored.id

    async def query_latest_snapshot(self, provider: str) -> Snapshot | None:
        matching = [s for s in self._snapshots if s.provider == provider]
        if not matching:
            return None
        latest = max(matching, key=lambda s: (s.captured_at, s.id or 0))
        return copy.deepcopy(latest)

    async def query_snapshots(
        self,
        provider: str,
        since: datetime | None = None,
        limit: int | None = None,
    ) -> list[Snapshot]:
        matching = [
            s
            for s in self._snapshots
            if s.provider == provider and (since is None or s.captured_at >= since)
        ]
        matching.sort(key=lambda s: (s.captured_at, s.id or 0))
        if limit is not None:
            matching = matching[-limit:] if limit > 0 else []
        return [copy.deepcopy(s) for s in matching]

    def _active(self, provider: str, quota_name: str) -> Cycle | None:
        for cycle in self._cycles:
            if cycle.provider == provider and cycle.quota_name == quota_name and cycle.is_active:
                return cycle
        return None

    async def query_active_cycle(self, provider: str, quota_name: str) -> Cycle | None:
        active = self._active(provider, quota_name)
        return replace(active) if active is not None else None

    async def create_cycle(
        self,
        provider: str,
        quota_name: str,
        start: datetime,
        reset_date: datetime | None,
    ) -> int:
        if self._active(provider, quota_name) is not None:
            raise CycleAlreadyOpenError(provider, quota_name)
        cycle = Cycle(
            id=self._next_cycle_id,
            provider=provider,
            quota_name=quota_name,
            cycle_start=start,
            reset_date=reset_date,
        )
        self._next_cycle_id += 1
        self._cycles.append(cycle)
        return cycle.id

    async def update_cycle(
        self,
        provider: str,
        quota_name: str,
        peak_used: float,
        total_delta: float,
    ) -> None:
        active = self._active(provider, quota_name)
        if active is None:
            raise NoActiveCycleError(provider, quota_name)
        active.peak_used = peak_used
        active.total_delta = total_delta

    async def close_cycle(
        self,
        provider: str,
        quota_name: str,
        end: datetime,
        peak_used: float,
        total_delta: float,
    ) -> None:
        active = self._active(provider, quota_name)
        if active is None:
            raise NoActiveCycleError(provider, quota_name)
        active.cycle_end = end
        active.peak_used = peak_used
        active.total_delta = total_delta

    async def query_cycle_history(self, provider: str, quota_name: str) -> list[Cycle]:
        closed = [
            replace(c)
            for c in self._cycles
            if c.provider == provider and c.quota_name == quota_name and not c.is_active
        ]
        closed.sort(key=lambda c: (c.cycle_start, c.id))
        return closed

    async def create_session(
        self,
        session_id: str,
        provider: str,
        started_at: datetime,
        poll_interval_seconds: float,
    ) -> None:
        self._sessions[session_id] = Session(
            id=session_id,
            provider=provider,
            started_at=started_at,
            poll_interval_seconds=poll_interval_seconds,
        )

    def _session(self, session_id: str) -> Session:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    async def close_session(self, session_id: str, ended_at: datetime) -> None:
        self._session(session_id).ended_at = ended_at

    async def close_orphaned_sessions(self, provider: str, ended_at: datetime) -> int:
        count = 0
        for session in self._sessions.values():
            if session.provider == provider and session.ended_at is None:
                session.ended_at = ended_at
                count += 1
        return count

    async def increment_snapshot_count(self, session_id: str) -> None:
        self._session(session_id).snapshot_count += 1

    async def update_session_max(self, session_id: str, used: dict[str, float]) -> None:
        session = self._session(session_id)
        for name, value in used.items():
            if value > session.max_used.get(name, float("-inf")):
                session.max_used[name] = value

    async def query_sessions(self, provider: str | None = None) -> list[Session]:
        sessions = [
            copy.deepcopy(s)
            for s in self._sessions.values()
            if provider is None or s.provider == provider
        ]
        sessions.sort(key=lambda s: s.started_at, reverse=True)
        return sessions
