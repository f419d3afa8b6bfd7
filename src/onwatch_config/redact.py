"""シークレットのマスク表示"""

from __future__ import annotations

_MASK = "***...***"


def redact_secret(value: str, prefix: str = "") -> str:
    """ログ出力用にシークレットをマスクする。

    先頭 4 文字（prefix 指定時は prefix + 4 文字）と末尾 3 文字のみ残す。
    短すぎる値や prefix が一致しない値は全体をマスクする。
    """
    if not value:
        return "(empty)"
    if prefix and not value.startswith(prefix):
        return f"{prefix}{_MASK}"
    if prefix:
        if len(value) <= len(prefix) + 7:
            return f"{prefix}{_MASK}"
        return value[: len(prefix) + 4] + _MASK + value[-3:]
    if len(value) < 8:
        return _MASK
    return value[:4] + _MASK + value[-3:]
