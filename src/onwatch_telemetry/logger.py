"""structlog ベースのロガー設定"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import structlog

from .exceptions import TelemetryError, TelemetryErrorCodes


def _make_handler(log_file: str | Path | None) -> logging.Handler:
    if not log_file:
        return logging.StreamHandler(sys.stdout)
    path = Path(log_file)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        return logging.FileHandler(path, mode="a", encoding="utf-8")
    except OSError as e:
        raise TelemetryError(
            code=TelemetryErrorCodes.LOG_FILE_ERROR,
            message=f"Failed to open log file: {path}",
            cause=e,
        ) from e


def new_logger(
    level: str = "INFO",
    format: str = "json",
    log_file: str | Path | None = None,
) -> structlog.stdlib.BoundLogger:
    """設定済みの structlog ロガーを返す。

    Args:
        level: ログレベル ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
        format: 出力形式 ("json" or "text")
        log_file: 出力先ファイル。未指定なら標準出力（フォアグラウンド実行）

    Returns:
        設定済みの structlog.stdlib.BoundLogger

    Raises:
        TelemetryError: ログファイルを開けない場合
    """
    log_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        format="%(message)s",
        handlers=[_make_handler(log_file)],
        level=log_level,
        force=True,
    )

    renderer: structlog.types.Processor
    if format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=log_file is None)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_logger_name,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    return structlog.stdlib.get_logger("onwatch")
