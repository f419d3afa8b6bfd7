"""Provider client exceptions."""

from __future__ import annotations


class ProviderError(Exception):
    """Base error for quota provider fetches."""

    def __init__(
        self,
        code: str,
        message: str,
        provider: str = "",
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.provider = provider
        if cause is not None:
            self.__cause__ = cause

    def __str__(self) -> str:
        return f"{self.code}: {super().__str__()}"


class ProviderErrorCodes:
    """ProviderError codes."""

    UNAUTHORIZED: str = "UNAUTHORIZED"
    FORBIDDEN: str = "FORBIDDEN"
    RATE_LIMITED: str = "RATE_LIMITED"
    SERVER_ERROR: str = "SERVER_ERROR"
    UNEXPECTED_STATUS: str = "UNEXPECTED_STATUS"
    NETWORK_ERROR: str = "NETWORK_ERROR"
    INVALID_RESPONSE: str = "INVALID_RESPONSE"
