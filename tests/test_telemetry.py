"""telemetry のユニットテスト"""

import json
import logging
from pathlib import Path

import pytest
from onwatch_telemetry import (
    TelemetryError,
    TelemetryErrorCodes,
    new_logger,
    poll_duration_seconds,
    poll_errors_total,
    poll_total,
    quota_resets_total,
    tracker_errors_total,
)


@pytest.fixture(autouse=True)
def _restore_logging():
    yield
    logging.basicConfig(force=True)


def test_new_logger_json_format() -> None:
    """JSON フォーマットのロガーが作成できること。"""
    logger = new_logger(level="INFO", format="json")
    assert logger is not None


def test_new_logger_text_format() -> None:
    """テキストフォーマットのロガーが作成できること。"""
    logger = new_logger(level="DEBUG", format="text")
    assert logger.bind(quota="chat") is not None


def test_new_logger_writes_json_to_file(tmp_path: Path) -> None:
    """ログファイル指定時は JSON 行が追記されること。"""
    log_file = tmp_path / "logs" / "onwatch.log"
    logger = new_logger(level="INFO", format="json", log_file=log_file)
    logger.info("poll complete", quota="subscription", used=12)
    logging.getLogger().handlers[0].flush()

    line = log_file.read_text(encoding="utf-8").strip().splitlines()[-1]
    event = json.loads(line)
    assert event["event"] == "poll complete"
    assert event["quota"] == "subscription"
    assert event["level"] == "info"
    assert "timestamp" in event


def test_new_logger_level_filters(tmp_path: Path) -> None:
    """設定したレベル未満のログは出力されないこと。"""
    log_file = tmp_path / "onwatch.log"
    logger = new_logger(level="WARNING", format="json", log_file=log_file)
    logger.info("hidden")
    logger.warning("shown")
    logging.getLogger().handlers[0].flush()

    text = log_file.read_text(encoding="utf-8")
    assert "shown" in text
    assert "hidden" not in text


def test_new_logger_reconfigure_closes_previous_file(tmp_path: Path) -> None:
    """再設定時に前回のログファイルが閉じられること。"""
    new_logger(log_file=tmp_path / "first.log")
    [first] = logging.getLogger().handlers
    assert isinstance(first, logging.FileHandler)
    stream = first.stream

    new_logger(log_file=tmp_path / "second.log")

    assert stream.closed
    [second] = logging.getLogger().handlers
    assert Path(second.baseFilename).name == "second.log"


def test_new_logger_unwritable_file(tmp_path: Path) -> None:
    """ログファイルを開けない場合は TelemetryError(LOG_FILE_ERROR)。"""
    blocker = tmp_path / "blocker"
    blocker.write_text("")
    with pytest.raises(TelemetryError) as exc_info:
        new_logger(log_file=blocker / "onwatch.log")
    assert exc_info.value.code == TelemetryErrorCodes.LOG_FILE_ERROR


def test_metrics_instruments_accept_measurements() -> None:
    """メトリクスが記録できること（プロバイダー未設定時は no-op）。"""
    attrs = {"provider": "synthetic"}
    poll_total.add(1, attrs)
    poll_errors_total.add(1, {**attrs, "code": "RATE_LIMITED"})
    quota_resets_total.add(1, {**attrs, "quota": "subscription"})
    tracker_errors_total.add(1, attrs)
    poll_duration_seconds.record(0.25, attrs)
