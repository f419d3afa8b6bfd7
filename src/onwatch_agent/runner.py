"""エージェントの組み立てとエントリポイント"""

from __future__ import annotations

import asyncio
import contextlib
import functools
import os
import sys
from datetime import timedelta
from pathlib import Path

import structlog

from onwatch_api.client import new_client
from onwatch_api.config import ProviderClientConfig
from onwatch_config import AppConfig, ConfigError, load
from onwatch_notify import (
    LoggingNotifier,
    MultiNotifier,
    NotificationEngine,
    Notifier,
    SmtpConfig,
    SmtpNotifier,
    WebhookNotifier,
)
from onwatch_store import SqliteCycleStore
from onwatch_telemetry import TelemetryError, new_logger
from onwatch_tracker import Tracker

from .poller import Poller
from .sessions import SessionManager

DEFAULT_CONFIG_PATH = "onwatch.yaml"


def _client_config(config: AppConfig, provider: str) -> ProviderClientConfig:
    providers = config.providers
    sections = {
        "synthetic": (providers.synthetic.api_key, providers.synthetic.base_url),
        "zai": (providers.zai.api_key, providers.zai.base_url),
        "copilot": (providers.copilot.token, providers.copilot.base_url),
    }
    token, base_url = sections[provider]
    return ProviderClientConfig(
        token=token,
        base_url=base_url,
        timeout=timedelta(seconds=config.poller.timeout_seconds),
    )


def build_pollers(
    config: AppConfig,
    store: SqliteCycleStore,
    engine: NotificationEngine,
    logger: structlog.stdlib.BoundLogger,
) -> list[Poller]:
    """有効なプロバイダーごとにクライアント・トラッカー・ポーラーを組み立てる。"""
    pollers: list[Poller] = []
    for provider in config.providers.active_names():
        client = new_client(provider, _client_config(config, provider), logger)
        tracker = Tracker(store, provider, logger=logger)
        tracker.set_on_reset(functools.partial(engine.notify_reset, provider))
        sessions = None
        if config.poller.session_idle_seconds > 0:
            sessions = SessionManager(
                store,
                provider,
                idle_timeout=timedelta(seconds=config.poller.session_idle_seconds),
                poll_interval=config.poller.interval_seconds,
                logger=logger,
            )
        pollers.append(
            Poller(
                client,
                store,
                tracker,
                interval=config.poller.interval_seconds,
                logger=logger,
                notifier=engine,
                sessions=sessions,
            )
        )
    return pollers


def build_notifier(config: AppConfig, logger: structlog.stdlib.BoundLogger) -> Notifier:
    """設定された通知先（メール・Webhook）から Notifier を組み立てる。どちらもなければログ出力。"""
    notifiers: list[Notifier] = []
    smtp = config.notify.smtp
    if smtp.active:
        notifiers.append(
            SmtpNotifier(
                SmtpConfig(
                    host=smtp.host,
                    port=smtp.port,
                    username=smtp.username,
                    password=smtp.password,
                    protocol=smtp.protocol,
                    from_addr=smtp.from_addr,
                    from_name=smtp.from_name,
                    to_addrs=list(smtp.to),
                ),
                logger=logger,
            )
        )
    if config.notify.webhook_url:
        notifiers.append(WebhookNotifier(config.notify.webhook_url))
    if not notifiers:
        return LoggingNotifier(logger)
    if len(notifiers) == 1:
        return notifiers[0]
    return MultiNotifier(notifiers)


async def run(config: AppConfig, logger: structlog.stdlib.BoundLogger | None = None) -> None:
    """全プロバイダーのポーリングを開始し、キャンセルされるまで実行する。"""
    logger = logger or structlog.stdlib.get_logger(__name__)
    store = SqliteCycleStore(config.storage.db_path)
    engine = NotificationEngine(
        build_notifier(config, logger),
        warning_threshold=config.notify.warning_threshold,
        critical_threshold=config.notify.critical_threshold,
        logger=logger,
    )
    pollers = build_pollers(config, store, engine, logger)

    logger.info("onwatch starting", providers=config.providers.active_names())
    try:
        for poller in pollers:
            await poller.start()
        await asyncio.Event().wait()
    finally:
        for poller in pollers:
            await poller.stop()
        store.close()
        logger.info("onwatch stopped")


def main() -> None:
    """ONWATCH_CONFIG の設定ファイルを読み込んでエージェントを起動する。"""
    config_path = Path(os.environ.get("ONWATCH_CONFIG", DEFAULT_CONFIG_PATH))
    env_config = os.environ.get("ONWATCH_ENV_CONFIG")
    try:
        config = load(
            base_path=config_path if config_path.exists() else None,
            env_path=Path(env_config) if env_config else None,
            dotenv_path=Path(".env"),
        )
        log = config.observability.log
        logger = new_logger(log.level, log.format, log.file or None)
    except (ConfigError, TelemetryError) as e:
        print(f"onwatch: {e}", file=sys.stderr)
        sys.exit(1)

    logger.info("configuration loaded", config=config.redacted())
    with contextlib.suppress(KeyboardInterrupt):
        asyncio.run(run(config, logger))


if __name__ == "__main__":
    main()
