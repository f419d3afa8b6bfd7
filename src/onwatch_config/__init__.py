"""onwatch config library."""

from .exceptions import ConfigError, ConfigErrorCodes
from .loader import env_overrides, load
from .models import (
    AppConfig,
    CopilotSection,
    LogSection,
    NotifySection,
    ObservabilitySection,
    PollerSection,
    ProvidersSection,
    SmtpSection,
    StorageSection,
    SyntheticSection,
    ZaiSection,
)
from .redact import redact_secret

__all__ = [
    "AppConfig",
    "ProvidersSection",
    "SyntheticSection",
    "ZaiSection",
    "CopilotSection",
    "PollerSection",
    "StorageSection",
    "LogSection",
    "ObservabilitySection",
    "NotifySection",
    "SmtpSection",
    "load",
    "env_overrides",
    "redact_secret",
    "ConfigError",
    "ConfigErrorCodes",
]
