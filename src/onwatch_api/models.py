"""Normalized quota snapshot models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any


class Provider(StrEnum):
    """Supported quota providers."""

    SYNTHETIC = "synthetic"
    ZAI = "zai"
    COPILOT = "copilot"


@dataclass
class QuotaReading:
    """One named quota's state at one instant."""

    name: str
    limit: float
    used: float
    resets_at: datetime | None = None
    unlimited: bool = False
    percent_remaining: float | None = None

    @classmethod
    def from_remaining(
        cls,
        name: str,
        limit: float,
        remaining: float,
        resets_at: datetime | None = None,
        unlimited: bool = False,
        percent_remaining: float | None = None,
    ) -> QuotaReading:
        """Build a reading from a provider that reports headroom instead of usage."""
        return cls(
            name=name,
            limit=limit,
            used=limit - remaining,
            resets_at=resets_at,
            unlimited=unlimited,
            percent_remaining=percent_remaining,
        )

    @property
    def remaining(self) -> float:
        return self.limit - self.used

    @property
    def reset_marker(self) -> str:
        """Provider-native reset marker compared between polls ("" when absent)."""
        if self.resets_at is None:
            return ""
        return self.resets_at.isoformat()

    @property
    def usage_percent(self) -> float:
        """Percent used, inverting percent-remaining providers."""
        if self.percent_remaining is not None:
            return 100.0 - self.percent_remaining
        if self.limit > 0:
            return self.used / self.limit * 100.0
        return 0.0


@dataclass
class Snapshot:
    """A captured set of quota readings from one provider."""

    provider: str
    captured_at: datetime
    quotas: list[QuotaReading] = field(default_factory=list)
    plan: str = ""
    raw: dict[str, Any] = field(default_factory=dict)
    id: int | None = None

    def quota(self, name: str) -> QuotaReading | None:
        for reading in self.quotas:
            if reading.name == name:
                return reading
        return None

    @property
    def quota_names(self) -> list[str]:
        return [q.name for q in self.quotas]


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO-8601 string or epoch milliseconds into an aware UTC datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000, tz=UTC)
    parsed = datetime.fromisoformat(str(value))
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def require_object(value: Any, what: str) -> dict[str, Any]:
    """Return value if it is a JSON object, otherwise raise ValueError."""
    if not isinstance(value, dict):
        raise ValueError(f"{what} must be an object, got {type(value).__name__}")
    return value


def require_list(value: Any, what: str) -> list[Any]:
    """Return value if it is a JSON array, otherwise raise ValueError."""
    if not isinstance(value, list):
        raise ValueError(f"{what} must be an array, got {type(value).__name__}")
    return value
