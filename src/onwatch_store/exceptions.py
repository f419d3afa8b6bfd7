"""store ライブラリの例外型定義"""

from __future__ import annotations


class StoreError(Exception):
    """store ライブラリのエラー基底クラス。"""

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


class StoreErrorCodes:
    """StoreError のエラーコード定数。"""

    CYCLE_ALREADY_OPEN: str = "CYCLE_ALREADY_OPEN"
    NO_ACTIVE_CYCLE: str = "NO_ACTIVE_CYCLE"
    SESSION_NOT_FOUND: str = "SESSION_NOT_FOUND"
    QUERY_FAILED: str = "QUERY_FAILED"
    WRITE_FAILED: str = "WRITE_FAILED"


class CycleAlreadyOpenError(StoreError):
    """同じクォータ名でアクティブな周期が既に存在する。"""

    def __init__(self, provider: str, quota_name: str) -> None:
        self.provider = provider
        self.quota_name = quota_name
        super().__init__(
            code=StoreErrorCodes.CYCLE_ALREADY_OPEN,
            message=f"active cycle already exists: {provider}/{quota_name}",
        )


class NoActiveCycleError(StoreError):
    """更新・クローズ対象のアクティブな周期が存在しない。"""

    def __init__(self, provider: str, quota_name: str) -> None:
        self.provider = provider
        self.quota_name = quota_name
        super().__init__(
            code=StoreErrorCodes.NO_ACTIVE_CYCLE,
            message=f"no active cycle: {provider}/{quota_name}",
        )


class SessionNotFoundError(StoreError):
    """セッションが見つからない。"""

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        super().__init__(
            code=StoreErrorCodes.SESSION_NOT_FOUND,
            message=f"session not found: {session_id}",
        )
