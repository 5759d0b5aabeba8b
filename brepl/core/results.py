"""
Result — コマンド実行結果

1 コマンドにつき 1 つ生成される不変の結果オブジェクト。
Transport 境界を越えて受け渡すため Pydantic モデルとして定義する。
"""

from __future__ import annotations

import enum

from pydantic import BaseModel, ConfigDict


class ResultKind(str, enum.Enum):
    """実行結果の種別。"""

    SUCCESS = "success"
    ERROR = "error"
    INFO = "info"
    SNAPSHOT = "snapshot"
    SCREENSHOT = "screenshot"


class Result(BaseModel):
    """コマンド実行結果。

    Attributes:
        success: 成功したかどうか
        kind: 結果の種別（error 以外は Pass として扱う）
        data: メッセージ、スナップショット行（改行区切り）、または base64 PNG
    """

    model_config = ConfigDict(frozen=True)

    success: bool
    kind: ResultKind
    data: str = ""

    @property
    def passed(self) -> bool:
        """セッション集計上 Pass かどうかを返す。"""
        return self.kind is not ResultKind.ERROR

    @classmethod
    def ok(cls, message: str) -> Result:
        return cls(success=True, kind=ResultKind.SUCCESS, data=message)

    @classmethod
    def error(cls, message: str) -> Result:
        return cls(success=False, kind=ResultKind.ERROR, data=message)

    @classmethod
    def info(cls, message: str) -> Result:
        return cls(success=True, kind=ResultKind.INFO, data=message)

    @classmethod
    def snapshot(cls, lines: list[str]) -> Result:
        return cls(success=True, kind=ResultKind.SNAPSHOT, data="\n".join(lines))

    @classmethod
    def screenshot(cls, png_base64: str) -> Result:
        return cls(success=True, kind=ResultKind.SCREENSHOT, data=png_base64)

    def to_dict(self) -> dict[str, object]:
        """JSON 互換の辞書を返す。"""
        return self.model_dump(mode="json")
