"""SMTP email notifier."""

from __future__ import annotations

import asyncio
import smtplib
import ssl
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import timedelta
from email.message import EmailMessage
from email.utils import formataddr
from typing import Any, Literal

import structlog

from .exceptions import NotifyError, NotifyErrorCodes
from .models import Alert, AlertLevel
from .notifier import Notifier

SmtpProtocol = Literal["starttls", "ssl", "none"]


@dataclass
class SmtpConfig:
    """SMTP server and envelope settings.

    ``protocol`` selects STARTTLS on a plain connection, implicit TLS
    (``ssl``) or no encryption (``none``). Login is skipped when
    ``username`` is empty.
    """

    host: str
    from_addr: str
    to_addrs: list[str] = field(default_factory=list)
    port: int = 587
    username: str = ""
    password: str = ""
    protocol: SmtpProtocol = "starttls"
    from_name: str = "onWatch"
    timeout: timedelta = timedelta(seconds=10)


def alert_subject(alert: Alert) -> str:
    if alert.level is AlertLevel.RESET:
        return f"Quota Reset: {alert.provider} {alert.quota_name}"
    return f"Quota Alert: {alert.quota_name} at {alert.usage_percent or 0:.0f}%"


class SmtpNotifier(Notifier):
    """Sends each alert as a plain-text email to every configured recipient.

    smtplib is blocking, so delivery runs in the default executor.
    """

    def __init__(
        self,
        config: SmtpConfig,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        if not config.to_addrs:
            raise ValueError("SmtpConfig.to_addrs must not be empty")
        self._config = config
        self._logger = logger or structlog.stdlib.get_logger(__name__)

    def build_message(self, alert: Alert) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = formataddr((self._config.from_name, self._config.from_addr))
        msg["To"] = ", ".join(self._config.to_addrs)
        msg["Subject"] = alert_subject(alert)
        lines = [alert.message, "", f"Provider: {alert.provider}", f"Quota: {alert.quota_name}"]
        if alert.usage_percent is not None:
            lines.append(f"Usage: {alert.usage_percent:.1f}%")
        lines.append(f"Time: {alert.created_at.isoformat()}")
        msg.set_content("\n".join(lines) + "\n")
        return msg

    async def send(self, alert: Alert) -> None:
        msg = self.build_message(alert)
        await self._run(self._send_sync, msg)
        self._logger.info(
            "alert email sent", quota=alert.quota_name, recipients=len(self._config.to_addrs)
        )

    async def check_connection(self) -> None:
        """Connect, negotiate TLS and log in without sending anything.

        Raises:
            NotifyError: the server is unreachable or rejects the login
        """
        await self._run(self._check_sync)

    async def _run(self, func: Callable[..., None], *args: Any) -> None:
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, func, *args)
        except (smtplib.SMTPException, OSError) as e:
            raise NotifyError(
                code=NotifyErrorCodes.SEND_FAILED,
                message=f"smtp {self._config.host}:{self._config.port} failed: {e}",
                cause=e,
            ) from e

    def _connect(self) -> smtplib.SMTP:
        timeout = self._config.timeout.total_seconds()
        if self._config.protocol == "ssl":
            return smtplib.SMTP_SSL(
                self._config.host,
                self._config.port,
                timeout=timeout,
                context=ssl.create_default_context(),
            )
        return smtplib.SMTP(self._config.host, self._config.port, timeout=timeout)

    def _handshake(self, smtp: smtplib.SMTP) -> None:
        if self._config.protocol == "starttls":
            smtp.starttls(context=ssl.create_default_context())
        if self._config.username:
            smtp.login(self._config.username, self._config.password)

    def _send_sync(self, msg: EmailMessage) -> None:
        with self._connect() as smtp:
            self._handshake(smtp)
            smtp.send_message(
                msg, from_addr=self._config.from_addr, to_addrs=self._config.to_addrs
            )

    def _check_sync(self) -> None:
        with self._connect() as smtp:
            self._handshake(smtp)
            smtp.noop()
