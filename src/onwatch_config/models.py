"""設定型定義（pydantic BaseModel）"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field, model_validator

from .redact import redact_secret


class SyntheticSection(BaseModel):
    """Synthetic プロバイダー設定。"""

    enabled: bool = True
    api_key: str = ""
    base_url: str = ""

    @property
    def active(self) -> bool:
        return self.enabled and bool(self.api_key)


class ZaiSection(BaseModel):
    """Z.ai プロバイダー設定。"""

    enabled: bool = True
    api_key: str = ""
    base_url: str = ""

    @property
    def active(self) -> bool:
        return self.enabled and bool(self.api_key)


class CopilotSection(BaseModel):
    """GitHub Copilot プロバイダー設定。"""

    enabled: bool = True
    token: str = ""
    base_url: str = ""

    @property
    def active(self) -> bool:
        return self.enabled and bool(self.token)


class ProvidersSection(BaseModel):
    """プロバイダー設定一式。"""

    synthetic: SyntheticSection = Field(default_factory=SyntheticSection)
    zai: ZaiSection = Field(default_factory=ZaiSection)
    copilot: CopilotSection = Field(default_factory=CopilotSection)

    def active_names(self) -> list[str]:
        """有効かつ認証情報があるプロバイダー名の一覧。"""
        sections = {"synthetic": self.synthetic, "zai": self.zai, "copilot": self.copilot}
        return [name for name, section in sections.items() if section.active]


class PollerSection(BaseModel):
    """ポーリング設定。"""

    interval_seconds: int = Field(default=60, ge=10, le=3600)
    timeout_seconds: float = Field(default=30.0, gt=0)
    # 0 なら起動から停止までを 1 セッションとする
    session_idle_seconds: int = Field(default=600, ge=0)


class StorageSection(BaseModel):
    """ストレージ設定。"""

    db_path: str = "./onwatch.db"


class LogSection(BaseModel):
    """ログ設定。file が空なら標準出力へ出力する。"""

    level: str = "INFO"
    format: Literal["json", "text"] = "json"
    file: str = ""


class ObservabilitySection(BaseModel):
    """可観測性設定。"""

    log: LogSection = Field(default_factory=LogSection)


class SmtpSection(BaseModel):
    """メール通知設定。host・from_addr・to がそろっていれば有効。"""

    host: str = ""
    port: int = Field(default=587, gt=0, le=65535)
    username: str = ""
    password: str = ""
    protocol: Literal["starttls", "ssl", "none"] = "starttls"
    from_addr: str = ""
    from_name: str = "onWatch"
    to: list[str] = Field(default_factory=list)

    @property
    def active(self) -> bool:
        return bool(self.host and self.from_addr and self.to)


class NotifySection(BaseModel):
    """しきい値通知設定。"""

    warning_threshold: float = Field(default=80.0, gt=0, le=100)
    critical_threshold: float = Field(default=95.0, gt=0, le=100)
    webhook_url: str = ""
    smtp: SmtpSection = Field(default_factory=SmtpSection)

    @model_validator(mode="after")
    def _check_thresholds(self) -> NotifySection:
        if self.critical_threshold <= self.warning_threshold:
            raise ValueError("critical_threshold must be greater than warning_threshold")
        return self


class AppConfig(BaseModel):
    """onwatch 設定全体。"""

    providers: ProvidersSection = Field(default_factory=ProvidersSection)
    poller: PollerSection = Field(default_factory=PollerSection)
    storage: StorageSection = Field(default_factory=StorageSection)
    observability: ObservabilitySection = Field(default_factory=ObservabilitySection)
    notify: NotifySection = Field(default_factory=NotifySection)

    @model_validator(mode="after")
    def _check_providers(self) -> AppConfig:
        synthetic = self.providers.synthetic
        if synthetic.api_key and not synthetic.api_key.startswith("syn_"):
            raise ValueError("providers.synthetic.api_key must start with 'syn_'")
        if not self.providers.active_names():
            raise ValueError("at least one provider must be enabled with credentials")
        return self

    def redacted(self) -> dict:
        """シークレットをマスクした設定内容を返す（ログ出力用）。"""
        data = self.model_dump()
        providers = data["providers"]
        providers["synthetic"]["api_key"] = redact_secret(self.providers.synthetic.api_key, "syn_")
        providers["zai"]["api_key"] = redact_secret(self.providers.zai.api_key)
        providers["copilot"]["token"] = redact_secret(self.providers.copilot.token)
        data["notify"]["smtp"]["password"] = redact_secret(self.notify.smtp.password)
        return data
