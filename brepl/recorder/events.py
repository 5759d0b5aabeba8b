"""
記録イベント — ページから受け取る生の DOM イベント

ブラウザ側のリスナーが送る click / input / change / keydown と、
メインフレームのナビゲーションを 1 つの型で表す。
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Optional

from ..core.page import DomNode, DomSnapshot


class EventKind(str, enum.Enum):
    """記録イベントの種別。"""

    CLICK = "click"
    INPUT = "input"
    CHANGE = "change"
    KEYDOWN = "keydown"
    NAVIGATE = "navigate"


@dataclass(frozen=True)
class RecorderEvent:
    """記録イベント。

    Attributes:
        kind: イベント種別
        dom: イベント発生時点の DomSnapshot（keydown / navigate では None）
        target: イベント対象要素の文書順インデックス
        value: input / change 時の値
        key: keydown 時のキー名
        url: navigate 時の URL
        main_frame: navigate がメインフレームのものかどうか
    """

    kind: EventKind
    dom: Optional[DomSnapshot] = None
    target: Optional[int] = None
    value: Optional[str] = None
    key: Optional[str] = None
    url: Optional[str] = None
    main_frame: bool = True

    @property
    def node(self) -> Optional[DomNode]:
        """イベント対象の DomNode を返す。"""
        if self.dom is None or self.target is None:
            return None
        if self.target < 0 or self.target >= len(self.dom):
            return None
        return self.dom[self.target]

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> RecorderEvent:
        """ページ側スクリプトが送る辞書から生成する。"""
        nodes = payload.get("nodes")
        return cls(
            kind=EventKind(payload["kind"]),
            dom=DomSnapshot.from_dicts(nodes) if nodes is not None else None,
            target=payload.get("target"),
            value=payload.get("value"),
            key=payload.get("key"),
        )

    @classmethod
    def navigation(cls, url: str, main_frame: bool = True) -> RecorderEvent:
        return cls(kind=EventKind.NAVIGATE, url=url, main_frame=main_frame)
