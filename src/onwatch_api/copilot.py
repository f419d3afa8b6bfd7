"""GitHub Copilot internal user response normalization."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from .models import Provider, QuotaReading, Snapshot, parse_timestamp, require_object

_COPILOT_DISPLAY_NAMES = {
    "premium_interactions": "Premium Requests",
    "chat": "Chat",
    "completions": "Completions",
}


def copilot_display_name(key: str) -> str:
    """Human-readable label for a Copilot quota key."""
    return _COPILOT_DISPLAY_NAMES.get(key, key)


@dataclass
class CopilotQuotaEntry:
    """A single entry of quota_snapshots."""

    entitlement: int = 0
    remaining: int = 0
    percent_remaining: float = 0.0
    quota_remaining: float = 0.0
    unlimited: bool = False
    overage_count: int = 0
    overage_permitted: bool = False
    quota_id: str = ""
    timestamp_utc: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any], key: str = "") -> CopilotQuotaEntry:
        data = require_object(data, f"quota_snapshots.{key}")
        return cls(
            entitlement=int(data.get("entitlement", 0)),
            remaining=int(data.get("remaining", 0)),
            percent_remaining=float(data.get("percent_remaining", 0.0)),
            quota_remaining=float(data.get("quota_remaining", 0.0)),
            unlimited=bool(data.get("unlimited", False)),
            overage_count=int(data.get("overage_count", 0)),
            overage_permitted=bool(data.get("overage_permitted", False)),
            quota_id=str(data.get("quota_id", "")),
            timestamp_utc=str(data.get("timestamp_utc", "")),
        )


@dataclass
class CopilotUserResponse:
    """Response of /copilot_internal/user."""

    login: str = ""
    copilot_plan: str = ""
    access_type_sku: str = ""
    quota_reset_date: str = ""
    quota_reset_date_utc: str = ""
    quota_snapshots: dict[str, CopilotQuotaEntry | None] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CopilotUserResponse:
        snapshots = require_object(data.get("quota_snapshots") or {}, "quota_snapshots")
        return cls(
            login=str(data.get("login", "")),
            copilot_plan=str(data.get("copilot_plan", "")),
            access_type_sku=str(data.get("access_type_sku", "")),
            quota_reset_date=str(data.get("quota_reset_date", "")),
            quota_reset_date_utc=str(data.get("quota_reset_date_utc", "")),
            quota_snapshots={
                key: CopilotQuotaEntry.from_dict(entry, key) if entry is not None else None
                for key, entry in snapshots.items()
            },
        )

    def active_quota_names(self) -> list[str]:
        """Sorted names of the quotas present in the response; null entries are skipped."""
        return sorted(key for key, entry in self.quota_snapshots.items() if entry is not None)

    @property
    def reset_date(self) -> datetime | None:
        try:
            return parse_timestamp(self.quota_reset_date_utc)
        except ValueError:
            return None

    def to_snapshot(self, captured_at: datetime, raw: dict[str, Any] | None = None) -> Snapshot:
        """Convert to a snapshot; the account-wide reset date applies to every quota."""
        reset_date = self.reset_date
        quotas: list[QuotaReading] = []
        for name, entry in sorted(self.quota_snapshots.items()):
            if entry is None:
                continue
            quotas.append(
                QuotaReading.from_remaining(
                    name=name,
                    limit=entry.entitlement,
                    remaining=entry.remaining,
                    resets_at=reset_date,
                    unlimited=entry.unlimited,
                    percent_remaining=entry.percent_remaining,
                )
            )
        return Snapshot(
            provider=Provider.COPILOT,
            captured_at=captured_at,
            quotas=quotas,
            plan=self.copilot_plan,
            raw=raw or {},
        )
