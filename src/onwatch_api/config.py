"""Provider client configuration."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta


@dataclass
class ProviderClientConfig:
    """Configuration for a provider quota client."""

    token: str
    base_url: str = ""
    timeout: timedelta = field(default_factory=lambda: timedelta(seconds=30))
    user_agent: str = "onwatch/1.0"
