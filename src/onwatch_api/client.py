"""Quota client implementations."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import UTC, datetime
from typing import Any

import httpx
import structlog

from onwatch_config.redact import redact_secret

from .config import ProviderClientConfig
from .copilot import CopilotUserResponse
from .exceptions import ProviderError, ProviderErrorCodes
from .models import Provider, Snapshot
from .synthetic import SyntheticQuotaResponse
from .zai import ZaiQuotaResponse

MAX_BODY_BYTES = 1 << 16


class QuotaClient(ABC):
    """Abstract quota client."""

    @property
    @abstractmethod
    def provider(self) -> str: ...

    @abstractmethod
    async def fetch_snapshot(self, captured_at: datetime | None = None) -> Snapshot:
        """Fetch the provider's quotas and normalize them into a snapshot."""
        ...


class HttpQuotaClient(QuotaClient):
    """Base for httpx-backed provider clients.

    Subclasses set ``DEFAULT_BASE_URL`` and ``PATH`` and implement
    ``_auth_header`` and ``_parse``.
    """

    DEFAULT_BASE_URL: str = ""
    PATH: str = ""

    def __init__(
        self,
        config: ProviderClientConfig,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._config = config
        self._base_url = config.base_url or self.DEFAULT_BASE_URL
        self._logger = logger or structlog.stdlib.get_logger(__name__)

    @abstractmethod
    def _auth_header(self) -> str: ...

    @abstractmethod
    def _parse(self, data: dict[str, Any], captured_at: datetime) -> Snapshot: ...

    def _make_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._base_url,
            headers={
                "Authorization": self._auth_header(),
                "Accept": "application/json",
                "User-Agent": self._config.user_agent,
            },
            timeout=self._config.timeout.total_seconds(),
        )

    def _error(self, code: str, message: str, cause: Exception | None = None) -> ProviderError:
        return ProviderError(
            code=code,
            message=f"{self.provider}: {message}",
            provider=self.provider,
            cause=cause,
        )

    def _handle_status(self, resp: httpx.Response) -> None:
        status = resp.status_code
        if status == 200:
            return
        if status == 401:
            raise self._error(ProviderErrorCodes.UNAUTHORIZED, "unauthorized - invalid token")
        if status == 403:
            raise self._error(ProviderErrorCodes.FORBIDDEN, "forbidden - token revoked or missing scope")
        if status == 429:
            raise self._error(ProviderErrorCodes.RATE_LIMITED, "rate limited")
        if status >= 500:
            raise self._error(ProviderErrorCodes.SERVER_ERROR, f"server error (HTTP {status})")
        raise self._error(ProviderErrorCodes.UNEXPECTED_STATUS, f"unexpected status code {status}")

    def _decode(self, resp: httpx.Response) -> dict[str, Any]:
        body = resp.content
        if not body:
            raise self._error(ProviderErrorCodes.INVALID_RESPONSE, "empty response body")
        if len(body) > MAX_BODY_BYTES:
            raise self._error(ProviderErrorCodes.INVALID_RESPONSE, "response body too large")
        try:
            data = resp.json()
        except ValueError as e:
            raise self._error(ProviderErrorCodes.INVALID_RESPONSE, f"invalid JSON: {e}", e) from e
        if not isinstance(data, dict):
            raise self._error(ProviderErrorCodes.INVALID_RESPONSE, "expected a JSON object")
        return data

    async def fetch_snapshot(self, captured_at: datetime | None = None) -> Snapshot:
        self._logger.debug(
            "fetching quotas",
            provider=self.provider,
            url=f"{self._base_url}{self.PATH}",
            token=redact_secret(self._config.token),
        )
        try:
            async with self._make_client() as client:
                resp = await client.get(self.PATH)
        except httpx.HTTPError as e:
            raise self._error(ProviderErrorCodes.NETWORK_ERROR, f"network error: {e}", e) from e

        self._logger.debug("quota response received", provider=self.provider, status=resp.status_code)
        self._handle_status(resp)
        data = self._decode(resp)

        try:
            snapshot = self._parse(data, captured_at or datetime.now(UTC))
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise self._error(ProviderErrorCodes.INVALID_RESPONSE, f"malformed response: {e}", e) from e

        self._logger.debug("quotas fetched", provider=self.provider, quotas=snapshot.quota_names)
        return snapshot


class SyntheticClient(HttpQuotaClient):
    """Synthetic /v2/quotas client."""

    DEFAULT_BASE_URL = "https://api.synthetic.new"
    PATH = "/v2/quotas"

    @property
    def provider(self) -> str:
        return Provider.SYNTHETIC

    def _auth_header(self) -> str:
        return f"Bearer {self._config.token}"

    def _parse(self, data: dict[str, Any], captured_at: datetime) -> Snapshot:
        return SyntheticQuotaResponse.from_dict(data).to_snapshot(captured_at, raw=data)


class ZaiClient(HttpQuotaClient):
    """Z.ai quota limit client. The API key is sent without a scheme."""

    DEFAULT_BASE_URL = "https://api.z.ai"
    PATH = "/api/monitor/usage/quota/limit"

    @property
    def provider(self) -> str:
        return Provider.ZAI

    def _auth_header(self) -> str:
        return self._config.token

    def _parse(self, data: dict[str, Any], captured_at: datetime) -> Snapshot:
        return ZaiQuotaResponse.from_dict(data).to_snapshot(captured_at, raw=data)


class CopilotClient(HttpQuotaClient):
    """GitHub Copilot internal API client."""

    DEFAULT_BASE_URL = "https://api.github.com"
    PATH = "/copilot_internal/user"

    @property
    def provider(self) -> str:
        return Provider.COPILOT

    def _auth_header(self) -> str:
        return f"Bearer {self._config.token}"

    def _parse(self, data: dict[str, Any], captured_at: datetime) -> Snapshot:
        return CopilotUserResponse.from_dict(data).to_snapshot(captured_at, raw=data)


class InMemoryQuotaClient(QuotaClient):
    """In-memory quota client for testing.

    Queued snapshots are returned in order; queued exceptions are raised.
    """

    def __init__(self, provider: str, responses: list[Snapshot | Exception] | None = None) -> None:
        self._provider = provider
        self._responses: list[Snapshot | Exception] = list(responses or [])
        self.calls = 0

    @property
    def provider(self) -> str:
        return self._provider

    def push(self, response: Snapshot | Exception) -> None:
        """Queue a response for testing."""
        self._responses.append(response)

    async def fetch_snapshot(self, captured_at: datetime | None = None) -> Snapshot:
        self.calls += 1
        if not self._responses:
            raise ProviderError(
                code=ProviderErrorCodes.NETWORK_ERROR,
                message=f"{self._provider}: no response queued",
                provider=self._provider,
            )
        response = self._responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def new_client(
    provider: str,
    config: ProviderClientConfig,
    logger: structlog.stdlib.BoundLogger | None = None,
) -> HttpQuotaClient:
    """Build the HTTP client for a provider name."""
    clients: dict[str, type[HttpQuotaClient]] = {
        Provider.SYNTHETIC: SyntheticClient,
        Provider.ZAI: ZaiClient,
        Provider.COPILOT: CopilotClient,
    }
    if provider not in clients:
        raise ValueError(f"unknown provider: {provider}")
    return clients[provider](config, logger)
