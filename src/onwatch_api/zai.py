"""Z.ai quota limit response normalization."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from .models import (
    Provider,
    QuotaReading,
    Snapshot,
    parse_timestamp,
    require_list,
    require_object,
)

_ZAI_QUOTA_NAMES = {
    "TOKENS_LIMIT": "tokens",
    "TIME_LIMIT": "time",
}


def zai_quota_name(limit_type: str) -> str:
    """Map a Z.ai limit type to a stable quota name."""
    if limit_type in _ZAI_QUOTA_NAMES:
        return _ZAI_QUOTA_NAMES[limit_type]
    name = limit_type.lower()
    if name.endswith("_limit"):
        name = name[: -len("_limit")]
    return name


@dataclass
class ZaiLimit:
    """One entry of data.limits.

    Z.ai reports the capacity as ``usage`` and the consumed amount as
    ``currentValue``. ``unit`` and ``number`` describe the window length when
    the same limit type is reported for several windows.
    """

    type: str
    usage: float
    current_value: float
    remaining: float | None = None
    percentage: float | None = None
    next_reset_time: datetime | None = None
    unit: int | None = None
    number: int | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ZaiLimit:
        data = require_object(data, "limits entry")
        return cls(
            type=str(data["type"]),
            usage=float(data.get("usage", 0)),
            current_value=float(data.get("currentValue", 0)),
            remaining=float(data["remaining"]) if data.get("remaining") is not None else None,
            percentage=float(data["percentage"]) if data.get("percentage") is not None else None,
            next_reset_time=parse_timestamp(data.get("nextResetTime")),
            unit=int(data["unit"]) if data.get("unit") is not None else None,
            number=int(data["number"]) if data.get("number") is not None else None,
        )

    @property
    def window(self) -> str:
        if self.unit is None or self.number is None:
            return ""
        return f"{self.number}_{self.unit}"

    def to_reading(self, name: str | None = None) -> QuotaReading:
        return QuotaReading(
            name=name or zai_quota_name(self.type),
            limit=self.usage,
            used=self.current_value,
            resets_at=self.next_reset_time,
        )


@dataclass
class ZaiQuotaResponse:
    """Envelope returned by /api/monitor/usage/quota/limit."""

    limits: list[ZaiLimit] = field(default_factory=list)
    level: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ZaiQuotaResponse:
        if data.get("success") is False or data.get("code", 200) != 200:
            raise ValueError(f"z.ai returned failure envelope: {data.get('msg', '')}")
        body = require_object(data["data"], "data")
        limits = require_list(body.get("limits") or [], "data.limits")
        return cls(
            limits=[ZaiLimit.from_dict(item) for item in limits],
            level=str(body.get("level", "")),
        )

    def quota_names(self) -> list[str]:
        """Unique quota names, one per limit, in response order.

        A type reported once keeps its plain name. A type reported for several
        windows gets the window appended (``tokens_5_3``); entries without
        window fields fall back to their position among the same type.

        Raises:
            ValueError: two entries still map to the same name
        """
        counts = Counter(limit.type for limit in self.limits)
        seen: Counter[str] = Counter()
        names: list[str] = []
        for limit in self.limits:
            base = zai_quota_name(limit.type)
            seen[limit.type] += 1
            if counts[limit.type] == 1:
                names.append(base)
            else:
                names.append(f"{base}_{limit.window or seen[limit.type]}")
        duplicates = sorted(name for name, n in Counter(names).items() if n > 1)
        if duplicates:
            raise ValueError(f"duplicate z.ai quota names: {', '.join(duplicates)}")
        return names

    def to_snapshot(self, captured_at: datetime, raw: dict[str, Any] | None = None) -> Snapshot:
        names = self.quota_names()
        return Snapshot(
            provider=Provider.ZAI,
            captured_at=captured_at,
            quotas=[limit.to_reading(name) for limit, name in zip(self.limits, names, strict=True)],
            plan=self.level,
            raw=raw or {},
        )
