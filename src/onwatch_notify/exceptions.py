"""Notification errors."""

from __future__ import annotations


class NotifyError(Exception):
    """Base error for notification delivery."""

    def __init__(
        self,
        code: str,
        message: str,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        if cause is not None:
            self.__cause__ = cause

    def __str__(self) -> str:
        return f"{self.code}: {super().__str__()}"


class NotifyErrorCodes:
    """NotifyError codes."""

    SEND_FAILED: str = "SEND_FAILED"
