"""tracker ライブラリの例外型定義"""

from __future__ import annotations


class TrackerError(Exception):
    """tracker ライブラリのエラー基底クラス。"""

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


class TrackerErrorCodes:
    """TrackerError のエラーコード定数。"""

    QUOTA_UPDATE_FAILED: str = "QUOTA_UPDATE_FAILED"
    PROCESS_FAILED: str = "PROCESS_FAILED"
    SUMMARY_FAILED: str = "SUMMARY_FAILED"


class QuotaUpdateError(TrackerError):
    """1 つのクォータの周期更新に失敗した。"""

    def __init__(self, quota_name: str, cause: Exception) -> None:
        self.quota_name = quota_name
        super().__init__(
            code=TrackerErrorCodes.QUOTA_UPDATE_FAILED,
            message=f"{quota_name}: {cause}",
            cause=cause,
        )


class ProcessError(TrackerError):
    """スナップショット処理中に 1 つ以上のクォータが失敗した。

    失敗しなかったクォータの更新は反映済み。
    """

    def __init__(self, failures: list[QuotaUpdateError]) -> None:
        self.failures = failures
        names = ", ".join(f.quota_name for f in failures)
        super().__init__(
            code=TrackerErrorCodes.PROCESS_FAILED,
            message=f"{len(failures)} quota update(s) failed: {names}",
            cause=failures[0] if failures else None,
        )

    @property
    def quota_names(self) -> list[str]:
        return [f.quota_name for f in self.failures]
