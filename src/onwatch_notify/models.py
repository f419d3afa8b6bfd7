"""Alert models."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any


class AlertLevel(StrEnum):
    """Alert severity levels."""

    WARNING = "warning"
    CRITICAL = "critical"
    RESET = "reset"


@dataclass
class QuotaStatus:
    """Current usage of one quota, as fed to the notification engine."""

    provider: str
    quota_name: str
    usage_percent: float
    used: float = 0.0
    limit: float = 0.0


@dataclass
class Alert:
    """An alert sent to a notifier."""

    level: AlertLevel
    provider: str
    quota_name: str
    message: str
    usage_percent: float | None = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "level": str(self.level),
            "provider": self.provider,
            "quota": self.quota_name,
            "message": self.message,
            "usage_percent": self.usage_percent,
            "created_at": self.created_at.isoformat(),
        }
