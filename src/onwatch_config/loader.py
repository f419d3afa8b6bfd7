"""設定ファイル読み込み"""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from dotenv import dotenv_values
from pydantic import ValidationError

from .exceptions import ConfigError, ConfigErrorCodes
from .models import AppConfig

# 環境変数名 → 設定パス
ENV_OVERRIDES: dict[str, tuple[str, ...]] = {
    "SYNTHETIC_API_KEY": ("providers", "synthetic", "api_key"),
    "ZAI_API_KEY": ("providers", "zai", "api_key"),
    "ZAI_BASE_URL": ("providers", "zai", "base_url"),
    "COPILOT_TOKEN": ("providers", "copilot", "token"),
    "ONWATCH_POLL_INTERVAL": ("poller", "interval_seconds"),
    "ONWATCH_DB_PATH": ("storage", "db_path"),
    "ONWATCH_LOG_LEVEL": ("observability", "log", "level"),
    "ONWATCH_LOG_FORMAT": ("observability", "log", "format"),
    "ONWATCH_LOG_FILE": ("observability", "log", "file"),
    "ONWATCH_SMTP_PASSWORD": ("notify", "smtp", "password"),
}


def _read_yaml(path: Path) -> dict[str, Any]:
    """YAML ファイルを読み込む。"""
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(
            code=ConfigErrorCodes.READ_FILE,
            message=f"Failed to read config file: {path}",
            cause=e,
        ) from e
    try:
        data = yaml.safe_load(text) or {}
    except yaml.YAMLError as e:
        raise ConfigError(
            code=ConfigErrorCodes.PARSE_YAML,
            message=f"Failed to parse YAML: {path}",
            cause=e,
        ) from e
    if not isinstance(data, dict):
        raise ConfigError(
            code=ConfigErrorCodes.PARSE_YAML,
            message=f"Top level of {path} must be a mapping",
        )
    return data


def _merge(base: dict[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """override を優先して再帰的にマージした新しい辞書を返す。"""
    result = dict(base)
    for key, value in override.items():
        current = result.get(key)
        if isinstance(current, dict) and isinstance(value, Mapping):
            result[key] = _merge(current, value)
        else:
            result[key] = value
    return result


def _read_dotenv(path: Path) -> dict[str, str]:
    try:
        values = dotenv_values(path)
    except OSError as e:
        raise ConfigError(
            code=ConfigErrorCodes.READ_DOTENV,
            message=f"Failed to read dotenv file: {path}",
            cause=e,
        ) from e
    return {k: v for k, v in values.items() if v is not None}


def env_overrides(environ: Mapping[str, str]) -> dict[str, Any]:
    """環境変数から設定上書き用のネストした辞書を作る。空文字は無視する。"""
    overrides: dict[str, Any] = {}
    for var, path in ENV_OVERRIDES.items():
        value = environ.get(var)
        if not value:
            continue
        node = overrides
        for part in path[:-1]:
            node = node.setdefault(part, {})
        node[path[-1]] = value
    return overrides


def load(
    base_path: Path | None = None,
    env_path: Path | None = None,
    environ: Mapping[str, str] | None = None,
    dotenv_path: Path | None = None,
) -> AppConfig:
    """設定を読み込んで AppConfig を返す。

    優先順位（低 → 高）: base_path の YAML、env_path の YAML、
    dotenv_path の .env、環境変数。
    base_path が None の場合は YAML を読まずにデフォルト値から組み立てる。
    """
    data: dict[str, Any] = _read_yaml(base_path) if base_path is not None else {}
    if env_path is not None and env_path.exists():
        data = _merge(data, _read_yaml(env_path))

    variables: dict[str, str] = {}
    if dotenv_path is not None and dotenv_path.exists():
        variables.update(_read_dotenv(dotenv_path))
    variables.update(os.environ if environ is None else environ)
    data = _merge(data, env_overrides(variables))

    try:
        return AppConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(
            code=ConfigErrorCodes.VALIDATION,
            message=f"Config validation failed: {e}",
            cause=e,
        ) from e
