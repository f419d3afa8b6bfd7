"""Configuration errors."""

from __future__ import annotations


class ConfigError(Exception):
    """Raised when the onwatch configuration cannot be loaded."""

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


class ConfigErrorCodes:
    """ConfigError codes."""

    READ_FILE: str = "READ_FILE_ERROR"
    PARSE_YAML: str = "PARSE_YAML_ERROR"
    READ_DOTENV: str = "READ_DOTENV_ERROR"
    VALIDATION: str = "VALIDATION_ERROR"
