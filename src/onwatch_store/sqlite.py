"""SqliteCycleStore 実装"""

from __future__ import annotations

import asyncio
import contextlib
import functools
import json
import sqlite3
import threading
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, TypeVar

from onwatch_api.models import QuotaReading, Snapshot

from .exceptions import (
    CycleAlreadyOpenError,
    NoActiveCycleError,
    SessionNotFoundError,
    StoreError,
    StoreErrorCodes,
)
from .models import Cycle, Session
from .store import CycleStore

T = TypeVar("T")

_SCHEMA = """
CREATE TABLE IF NOT EXISTS snapshots (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    provider TEXT NOT NULL,
    captured_at TEXT NOT NULL,
    plan TEXT NOT NULL DEFAULT '',
    raw_json TEXT NOT NULL DEFAULT '{}'
);
CREATE INDEX IF NOT EXISTS idx_snapshots_provider_captured
    ON snapshots(provider, captured_at);

CREATE TABLE IF NOT EXISTS quota_readings (
    snapshot_id INTEGER NOT NULL REFERENCES snapshots(id) ON DELETE CASCADE,
    position INTEGER NOT NULL,
    name TEXT NOT NULL,
    quota_limit REAL NOT NULL,
    used REAL NOT NULL,
    resets_at TEXT,
    unlimited INTEGER NOT NULL DEFAULT 0,
    percent_remaining REAL,
    PRIMARY KEY (snapshot_id, position)
);

CREATE TABLE IF NOT EXISTS cycles (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    provider TEXT NOT NULL,
    quota_name TEXT NOT NULL,
    cycle_start TEXT NOT NULL,
    cycle_end TEXT,
    peak_used REAL NOT NULL DEFAULT 0,
    total_delta REAL NOT NULL DEFAULT 0,
    reset_date TEXT
);
CREATE UNIQUE INDEX IF NOT EXISTS idx_cycles_one_active
    ON cycles(provider, quota_name) WHERE cycle_end IS NULL;

CREATE TABLE IF NOT EXISTS sessions (
    id TEXT PRIMARY KEY,
    provider TEXT NOT NULL,
    started_at TEXT NOT NULL,
    ended_at TEXT,
    poll_interval_seconds REAL NOT NULL,
    snapshot_count INTEGER NOT NULL DEFAULT 0,
    max_used_json TEXT NOT NULL DEFAULT '{}'
);
"""


def _to_text(value: datetime | None) -> str | None:
    # 固定幅の UTC 表現にして文字列比較と時刻順を一致させる
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%S.%f+00:00")


def _from_text(value: str | None) -> datetime | None:
    if value is None:
        return None
    return datetime.fromisoformat(value)


class SqliteCycleStore(CycleStore):
    """SQLite ファイルに永続化するストア。

    接続は 1 本を共有し、ブロッキング呼び出しはロック下でエグゼキュータ上で実行する。
    """

    def __init__(self, db_path: str | Path = ":memory:") -> None:
        self._db_path = str(db_path)
        self._lock = threading.Lock()
        try:
            self._conn = sqlite3.connect(self._db_path, check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA foreign_keys = ON")
            self._conn.executescript(_SCHEMA)
            self._conn.commit()
        except sqlite3.Error as e:
            raise StoreError(
                code=StoreErrorCodes.WRITE_FAILED,
                message=f"failed to open database {self._db_path}: {e}",
                cause=e,
            ) from e

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    async def _run(self, code: str, fn: Callable[..., T], *args: Any) -> T:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(self._locked, code, fn, *args))

    def _rollback(self) -> None:
        # 接続が既に閉じている場合は元のエラーを優先する
        with contextlib.suppress(sqlite3.ProgrammingError):
            self._conn.rollback()

    def _locked(self, code: str, fn: Callable[..., T], *args: Any) -> T:
        with self._lock:
            try:
                result = fn(*args)
                self._conn.commit()
                return result
            except StoreError:
                self._rollback()
                raise
            except sqlite3.Error as e:
                self._rollback()
                raise StoreError(code=code, message=str(e), cause=e) from e

    # --- スナップショット ---

    async def insert_snapshot(self, snapshot: Snapshot) -> int:
        snapshot_id = await self._run(StoreErrorCodes.WRITE_FAILED, self._insert_snapshot, snapshot)
        snapshot.id = snapshot_id
        return snapshot_id

    def _insert_snapshot(self, snapshot: Snapshot) -> int:
        cur = self._conn.execute(
            "INSERT INTO snapshots (provider, captured_at, plan, raw_json) VALUES (?, ?, ?, ?)",
            (
                snapshot.provider,
                _to_text(snapshot.captured_at),
                snapshot.plan,
                json.dumps(snapshot.raw, default=str),
            ),
        )
        snapshot_id = int(cur.lastrowid or 0)
        self._conn.executemany(
            "INSERT INTO quota_readings "
            "(snapshot_id, position, name, quota_limit, used, resets_at, unlimited, percent_remaining) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            [
                (
                    snapshot_id,
                    i,
                    q.name,
                    q.limit,
                    q.used,
                    _to_text(q.resets_at),
                    int(q.unlimited),
                    q.percent_remaining,
                )
                for i, q in enumerate(snapshot.quotas)
            ],
        )
        return snapshot_id

    def _load_snapshot(self, row: sqlite3.Row) -> Snapshot:
        readings = self._conn.execute(
            "SELECT * FROM quota_readings WHERE snapshot_id = ? ORDER BY position",
            (row["id"],),
        ).fetchall()
        return Snapshot(
            id=row["id"],
            provider=row["provider"],
            captured_at=_from_text(row["captured_at"]),
            plan=row["plan"],
            raw=json.loads(row["raw_json"]),
            quotas=[
                QuotaReading(
                    name=r["name"],
                    limit=r["quota_limit"],
                    used=r["used"],
                    resets_at=_from_text(r["resets_at"]),
                    unlimited=bool(r["unlimited"]),
                    percent_remaining=r["percent_remaining"],
                )
                for r in readings
            ],
        )

    async def query_latest_snapshot(self, provider: str) -> Snapshot | None:
        return await self._run(StoreErrorCodes.QUERY_FAILED, self._query_latest_snapshot, provider)

    def _query_latest_snapshot(self, provider: str) -> Snapshot | None:
        row = self._conn.execute(
            "SELECT * FROM snapshots WHERE provider = ? ORDER BY captured_at DESC, id DESC LIMIT 1",
            (provider,),
        ).fetchone()
        return self._load_snapshot(row) if row is not None else None

    async def query_snapshots(
        self,
        provider: str,
        since: datetime | None = None,
        limit: int | None = None,
    ) -> list[Snapshot]:
        return await self._run(
            StoreErrorCodes.QUERY_FAILED, self._query_snapshots, provider, since, limit
        )

    def _query_snapshots(
        self, provider: str, since: datetime | None, limit: int | None
    ) -> list[Snapshot]:
        sql = "SELECT * FROM snapshots WHERE provider = ?"
        params: list[Any] = [provider]
        if since is not None:
            sql += " AND captured_at >= ?"
            params.append(_to_text(since))
        sql += " ORDER BY captured_at DESC, id DESC"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(max(limit, 0))
        rows = self._conn.execute(sql, params).fetchall()
        return [self._load_snapshot(row) for row in reversed(rows)]

    # --- 周期 ---

    @staticmethod
    def _row_to_cycle(row: sqlite3.Row) -> Cycle:
        return Cycle(
            id=row["id"],
            provider=row["provider"],
            quota_name=row["quota_name"],
            cycle_start=_from_text(row["cycle_start"]),
            cycle_end=_from_text(row["cycle_end"]),
            peak_used=row["peak_used"],
            total_delta=row["total_delta"],
            reset_date=_from_text(row["reset_date"]),
        )

    async def query_active_cycle(self, provider: str, quota_name: str) -> Cycle | None:
        return await self._run(
            StoreErrorCodes.QUERY_FAILED, self._query_active_cycle, provider, quota_name
        )

    def _query_active_cycle(self, provider: str, quota_name: str) -> Cycle | None:
        row = self._conn.execute(
            "SELECT * FROM cycles WHERE provider = ? AND quota_name = ? AND cycle_end IS NULL",
            (provider, quota_name),
        ).fetchone()
        return self._row_to_cycle(row) if row is not None else None

    async def create_cycle(
        self,
        provider: str,
        quota_name: str,
        start: datetime,
        reset_date: datetime | None,
    ) -> int:
        return await self._run(
            StoreErrorCodes.WRITE_FAILED,
            self._create_cycle,
            provider,
            quota_name,
            start,
            reset_date,
        )

    def _create_cycle(
        self, provider: str, quota_name: str, start: datetime, reset_date: datetime | None
    ) -> int:
        try:
            cur = self._conn.execute(
                "INSERT INTO cycles (provider, quota_name, cycle_start, reset_date) "
                "VALUES (?, ?, ?, ?)",
                (provider, quota_name, _to_text(start), _to_text(reset_date)),
            )
        except sqlite3.IntegrityError as e:
            raise CycleAlreadyOpenError(provider, quota_name) from e
        return int(cur.lastrowid or 0)

    async def update_cycle(
        self,
        provider: str,
        quota_name: str,
        peak_used: float,
        total_delta: float,
    ) -> None:
        await self._run(
            StoreErrorCodes.WRITE_FAILED,
            self._update_active,
            provider,
            quota_name,
            None,
            peak_used,
            total_delta,
        )

    async def close_cycle(
        self,
        provider: str,
        quota_name: str,
        end: datetime,
        peak_used: float,
        total_delta: float,
    ) -> None:
        await self._run(
            StoreErrorCodes.WRITE_FAILED,
            self._update_active,
            provider,
            quota_name,
            end,
            peak_used,
            total_delta,
        )

    def _update_active(
        self,
        provider: str,
        quota_name: str,
        end: datetime | None,
        peak_used: float,
        total_delta: float,
    ) -> None:
        cur = self._conn.execute(
            "UPDATE cycles SET cycle_end = ?, peak_used = ?, total_delta = ? "
            "WHERE provider = ? AND quota_name = ? AND cycle_end IS NULL",
            (_to_text(end), peak_used, total_delta, provider, quota_name),
        )
        if cur.rowcount == 0:
            raise NoActiveCycleError(provider, quota_name)

    async def query_cycle_history(self, provider: str, quota_name: str) -> list[Cycle]:
        return await self._run(
            StoreErrorCodes.QUERY_FAILED, self._query_cycle_history, provider, quota_name
        )

    def _query_cycle_history(self, provider: str, quota_name: str) -> list[Cycle]:
        rows = self._conn.execute(
            "SELECT * FROM cycles WHERE provider = ? AND quota_name = ? "
            "AND cycle_end IS NOT NULL ORDER BY cycle_start, id",
            (provider, quota_name),
        ).fetchall()
        return [self._row_to_cycle(row) for row in rows]

    # --- セッション ---

    async def create_session(
        self,
        session_id: str,
        provider: str,
        started_at: datetime,
        poll_interval_seconds: float,
    ) -> None:
        await self._run(
            StoreErrorCodes.WRITE_FAILED,
            self._conn.execute,
            "INSERT INTO sessions (id, provider, started_at, poll_interval_seconds) "
            "VALUES (?, ?, ?, ?)",
            (session_id, provider, _to_text(started_at), poll_interval_seconds),
        )

    def _require_session(self, session_id: str) -> sqlite3.Row:
        row = self._conn.execute("SELECT * FROM sessions WHERE id = ?", (session_id,)).fetchone()
        if row is None:
            raise SessionNotFoundError(session_id)
        return row

    async def close_session(self, session_id: str, ended_at: datetime) -> None:
        await self._run(StoreErrorCodes.WRITE_FAILED, self._close_session, session_id, ended_at)

    def _close_session(self, session_id: str, ended_at: datetime) -> None:
        self._require_session(session_id)
        self._conn.execute(
            "UPDATE sessions SET ended_at = ? WHERE id = ?", (_to_text(ended_at), session_id)
        )

    async def close_orphaned_sessions(self, provider: str, ended_at: datetime) -> int:
        return await self._run(
            StoreErrorCodes.WRITE_FAILED, self._close_orphaned_sessions, provider, ended_at
        )

    def _close_orphaned_sessions(self, provider: str, ended_at: datetime) -> int:
        cur = self._conn.execute(
            "UPDATE sessions SET ended_at = ? WHERE provider = ? AND ended_at IS NULL",
            (_to_text(ended_at), provider),
        )
        return cur.rowcount

    async def increment_snapshot_count(self, session_id: str) -> None:
        await self._run(StoreErrorCodes.WRITE_FAILED, self._increment_snapshot_count, session_id)

    def _increment_snapshot_count(self, session_id: str) -> None:
        self._require_session(session_id)
        self._conn.execute(
            "UPDATE sessions SET snapshot_count = snapshot_count + 1 WHERE id = ?", (session_id,)
        )

    async def update_session_max(self, session_id: str, used: dict[str, float]) -> None:
        await self._run(StoreErrorCodes.WRITE_FAILED, self._update_session_max, session_id, used)

    def _update_session_max(self, session_id: str, used: dict[str, float]) -> None:
        row = self._require_session(session_id)
        current: dict[str, float] = json.loads(row["max_used_json"])
        for name, value in used.items():
            if name not in current or value > current[name]:
                current[name] = value
        self._conn.execute(
            "UPDATE sessions SET max_used_json = ? WHERE id = ?",
            (json.dumps(current), session_id),
        )

    async def query_sessions(self, provider: str | None = None) -> list[Session]:
        return await self._run(StoreErrorCodes.QUERY_FAILED, self._query_sessions, provider)

    def _query_sessions(self, provider: str | None) -> list[Session]:
        if provider is None:
            rows = self._conn.execute(
                "SELECT * FROM sessions ORDER BY started_at DESC"
            ).fetchall()
        else:
            rows = self._conn.execute(
                "SELECT * FROM sessions WHERE provider = ? ORDER BY started_at DESC",
                (provider,),
            ).fetchall()
        return [
            Session(
                id=row["id"],
                provider=row["provider"],
                started_at=_from_text(row["started_at"]),
                ended_at=_from_text(row["ended_at"]),
                poll_interval_seconds=row["poll_interval_seconds"],
                snapshot_count=row["snapshot_count"],
                max_used=json.loads(row["max_used_json"]),
            )
            for row in rows
        ]
