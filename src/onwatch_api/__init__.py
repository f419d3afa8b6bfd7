"""onwatch provider quota client library."""

from .client import (
    CopilotClient,
    HttpQuotaClient,
    InMemoryQuotaClient,
    QuotaClient,
    SyntheticClient,
    ZaiClient,
    new_client,
)
from .config import ProviderClientConfig
from .copilot import CopilotQuotaEntry, CopilotUserResponse, copilot_display_name
from .exceptions import ProviderError, ProviderErrorCodes
from .models import Provider, QuotaReading, Snapshot, parse_timestamp
from .synthetic import SyntheticQuotaInfo, SyntheticQuotaResponse
from .zai import ZaiLimit, ZaiQuotaResponse, zai_quota_name

__all__ = [
    "CopilotClient",
    "CopilotQuotaEntry",
    "CopilotUserResponse",
    "HttpQuotaClient",
    "InMemoryQuotaClient",
    "Provider",
    "ProviderClientConfig",
    "ProviderError",
    "ProviderErrorCodes",
    "QuotaClient",
    "QuotaReading",
    "Snapshot",
    "SyntheticClient",
    "SyntheticQuotaInfo",
    "SyntheticQuotaResponse",
    "ZaiClient",
    "ZaiLimit",
    "ZaiQuotaResponse",
    "copilot_display_name",
    "new_client",
    "parse_timestamp",
    "zai_quota_name",
]
