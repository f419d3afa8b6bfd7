"""Synthetic /v2/quotas レスポンスの正規化"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from .models import Provider, QuotaReading, Snapshot, parse_timestamp, require_object


@dataclass
class SyntheticQuotaInfo:
    """Synthetic の単一クォータ情報。"""

    limit: float
    requests: float
    renews_at: datetime | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any], what: str = "quota") -> SyntheticQuotaInfo:
        data = require_object(data, what)
        return cls(
            limit=float(data["limit"]),
            requests=float(data.get("requests", 0)),
            renews_at=parse_timestamp(data.get("renewsAt")),
        )

    def to_reading(self, name: str) -> QuotaReading:
        return QuotaReading(
            name=name,
            limit=self.limit,
            used=self.requests,
            resets_at=self.renews_at,
        )


@dataclass
class SyntheticQuotaResponse:
    """Synthetic API /v2/quotas のレスポンス全体。

    search は hourly 枠のみを扱う。search と toolCallDiscounts は省略可能。
    """

    subscription: SyntheticQuotaInfo
    search: SyntheticQuotaInfo | None = None
    tool_call: SyntheticQuotaInfo | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SyntheticQuotaResponse:
        search = require_object(data.get("search") or {}, "search").get("hourly")
        tool_call = data.get("toolCallDiscounts")
        return cls(
            subscription=SyntheticQuotaInfo.from_dict(data["subscription"], "subscription"),
            search=SyntheticQuotaInfo.from_dict(search, "search.hourly") if search else None,
            tool_call=(
                SyntheticQuotaInfo.from_dict(tool_call, "toolCallDiscounts") if tool_call else None
            ),
        )

    def to_snapshot(self, captured_at: datetime, raw: dict[str, Any] | None = None) -> Snapshot:
        """正規化済みスナップショットに変換する。"""
        quotas = [self.subscription.to_reading("subscription")]
        if self.search is not None:
            quotas.append(self.search.to_reading("search"))
        if self.tool_call is not None:
            quotas.append(self.tool_call.to_reading("toolcall"))
        return Snapshot(
            provider=Provider.SYNTHETIC,
            captured_at=captured_at,
            quotas=quotas,
            raw=raw or {},
        )
