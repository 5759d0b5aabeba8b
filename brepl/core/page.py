"""
Page — ブラウザページの操作インターフェースと DOM スナップショット

Locator / Executor / Recorder はブラウザに直接依存せず、
このモジュールの Page Protocol と DomSnapshot を介してページを扱う。

主な構成:
  - DomNode: <body> 配下の要素 1 つ分の情報（文書順インデックス付き）
  - DomSnapshot: 文書順の DomNode 列と木構造の問い合わせ
  - Page Protocol: 要素操作・入力・ナビゲーション・撮影などのプリミティブ
  - KeyIdentity / NavigationHistory / EvalOutcome / BoundingBox / Clip: 値オブジェクト

ref（e<N>）は DomSnapshot の 1 始まりの位置に対応する。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import (
    Any,
    Awaitable,
    Callable,
    Iterator,
    Optional,
    Protocol,
    Sequence,
    runtime_checkable,
)

# label から参照可能な要素
_LABELABLE_TAGS = ("button", "input", "meter", "output", "progress", "select", "textarea")


# ---------------------------------------------------------------------------
# DOM スナップショット
# ---------------------------------------------------------------------------

@dataclass
class DomNode:
    """要素 1 つ分の情報。

    Attributes:
        index: 文書順の位置（0 始まり、ref は index + 1）
        tag: 小文字のタグ名
        attrs: 属性辞書
        text: textContent
        parent: 親要素の index（<body> 直下は None）
        child_count: 子要素の数（テキストノードは含まない）
        value: input / textarea / select / button / option の現在値
        checked: checkbox / radio の現在のチェック状態
    """

    index: int
    tag: str
    attrs: dict[str, str] = field(default_factory=dict)
    text: str = ""
    parent: Optional[int] = None
    child_count: int = 0
    value: Optional[str] = None
    checked: Optional[bool] = None

    @property
    def ref(self) -> str:
        """スナップショット ref（e<N>）を返す。"""
        return f"e{self.index + 1}"

    @property
    def is_leaf(self) -> bool:
        """子要素を持たない場合に True を返す。"""
        return self.child_count == 0

    @property
    def role(self) -> str:
        return self.attrs.get("role", "").lower()

    @property
    def input_type(self) -> str:
        """input の type（未指定は text）。input 以外は空文字列。"""
        if self.tag != "input":
            return ""
        return self.attrs.get("type", "text").lower() or "text"

    @property
    def is_toggle(self) -> bool:
        """checkbox または radio の input かどうか。"""
        return self.input_type in ("checkbox", "radio")

    def attr(self, name: str) -> Optional[str]:
        return self.attrs.get(name)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DomNode:
        """ページ側スクリプトが返す辞書から生成する。"""
        return cls(
            index=int(data["index"]),
            tag=str(data["tag"]).lower(),
            attrs={str(k): str(v) for k, v in (data.get("attrs") or {}).items()},
            text=data.get("text") or "",
            parent=data.get("parent"),
            child_count=int(data.get("child_count") or 0),
            value=data.get("value"),
            checked=data.get("checked"),
        )


class DomSnapshot:
    """文書順の DomNode 列。

    1 コマンドまたは 1 イベントの間だけ有効で、コマンドをまたいで
    保持してはならない。
    """

    def __init__(self, nodes: Sequence[DomNode]) -> None:
        self._nodes = list(nodes)

    @classmethod
    def from_dicts(cls, items: Sequence[dict[str, Any]]) -> DomSnapshot:
        return cls([DomNode.from_dict(item) for item in items])

    def __len__(self) -> int:
        return len(self._nodes)

    def __iter__(self) -> Iterator[DomNode]:
        return iter(self._nodes)

    def __getitem__(self, index: int) -> DomNode:
        return self._nodes[index]

    @property
    def nodes(self) -> list[DomNode]:
        return list(self._nodes)

    def by_ref(self, number: int) -> Optional[DomNode]:
        """1 始まりの位置で要素を返す。範囲外は None。"""
        if number < 1 or number > len(self._nodes):
            return None
        return self._nodes[number - 1]

    def by_id(self, element_id: str) -> Optional[DomNode]:
        if not element_id:
            return None
        for node in self._nodes:
            if node.attrs.get("id") == element_id:
                return node
        return None

    # -------------------------------------------------------------------
    # 木構造
    # -------------------------------------------------------------------

    def parent_of(self, node: DomNode) -> Optional[DomNode]:
        if node.parent is None:
            return None
        return self._nodes[node.parent]

    def ancestors(self, node: DomNode) -> Iterator[DomNode]:
        """親から順に祖先要素を返す。"""
        current = self.parent_of(node)
        while current is not None:
            yield current
            current = self.parent_of(current)

    def is_descendant(self, node: DomNode, ancestor: DomNode) -> bool:
        return any(a.index == ancestor.index for a in self.ancestors(node))

    def descendants(self, node: DomNode) -> list[DomNode]:
        """子孫要素を文書順で返す（自身は含まない）。

        前順走査のため子孫は node の直後に連続して並ぶ。
        """
        result: list[DomNode] = []
        for candidate in self._nodes[node.index + 1:]:
            if not self.is_descendant(candidate, node):
                break
            result.append(candidate)
        return result

    def closest(
        self, node: DomNode, predicate: Callable[[DomNode], bool]
    ) -> Optional[DomNode]:
        """自身を含めて最も近い条件一致の祖先を返す（Element.closest 相当）。"""
        if predicate(node):
            return node
        for ancestor in self.ancestors(node):
            if predicate(ancestor):
                return ancestor
        return None

    # -------------------------------------------------------------------
    # label 関連
    # -------------------------------------------------------------------

    def label_control(self, label: DomNode) -> Optional[DomNode]:
        """label が参照するコントロールを返す。

        for 属性があれば id で、なければ最初の labelable な子孫を返す。
        """
        target_id = label.attrs.get("for")
        if target_id:
            return self.by_id(target_id)
        for node in self.descendants(label):
            if _is_labelable(node):
                return node
        return None

    def labels_for(self, control: DomNode) -> list[DomNode]:
        """control を参照する label を文書順で返す。"""
        labels: list[DomNode] = []
        for node in self._nodes:
            if node.tag != "label":
                continue
            found = self.label_control(node)
            if found is not None and found.index == control.index:
                labels.append(node)
        return labels


def _is_labelable(node: DomNode) -> bool:
    if node.tag not in _LABELABLE_TAGS:
        return False
    return node.input_type != "hidden"


# ---------------------------------------------------------------------------
# 値オブジェクト
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class KeyIdentity:
    """キーイベントの識別情報（keyDown / keyUp で同一）。"""

    key: str
    code: str
    key_code: int


@dataclass(frozen=True)
class HistoryEntry:
    entry_id: int
    url: str


@dataclass(frozen=True)
class NavigationHistory:
    """ナビゲーション履歴。

    Attributes:
        current_index: 現在のエントリ位置
        entries: 履歴エントリ（古い順）
    """

    current_index: int
    entries: list[HistoryEntry] = field(default_factory=list)


@dataclass(frozen=True)
class EvalOutcome:
    """式評価の結果。

    Attributes:
        value: JSON 互換の値
        undefined: 評価結果が undefined の場合 True
        exception: 例外が発生した場合のテキスト
    """

    value: Any = None
    undefined: bool = False
    exception: Optional[str] = None


@dataclass(frozen=True)
class BoundingBox:
    x: float
    y: float
    width: float
    height: float

    @property
    def center(self) -> tuple[float, float]:
        return self.x + self.width / 2, self.y + self.height / 2


@dataclass(frozen=True)
class Clip:
    """スクリーンショットの切り出し範囲。"""

    x: float
    y: float
    width: float
    height: float
    scale: float = 1.0


# ---------------------------------------------------------------------------
# Page Protocol
# ---------------------------------------------------------------------------

@runtime_checkable
class Page(Protocol):
    """コマンド実行に必要なページ操作プリミティブ。

    要素操作は DomSnapshot から得た DomNode を受け取る。実装は
    文書順インデックスで要素を再取得し、タグ名が一致しない場合は
    例外を送出すること。
    """

    async def dom_snapshot(self) -> DomSnapshot: ...

    # 要素操作
    async def scroll_into_view(self, node: DomNode) -> None: ...
    async def click(self, node: DomNode) -> None: ...
    async def dblclick(self, node: DomNode) -> None: ...
    async def focus(self, node: DomNode) -> None: ...
    async def set_value(self, node: DomNode, value: str) -> None: ...
    async def dispatch_events(
        self, node: Optional[DomNode], names: Sequence[str]
    ) -> None: ...
    async def bounding_box(self, node: DomNode) -> BoundingBox: ...

    # 入力
    async def clear_value(self) -> None: ...
    async def insert_text(self, text: str) -> None: ...
    async def mouse_move(self, x: float, y: float) -> None: ...
    async def key_event(self, event_type: str, key: KeyIdentity) -> None: ...

    # ナビゲーション
    def expect_load(self) -> Awaitable[None]: ...
    async def navigate(self, url: str) -> None: ...
    async def navigation_history(self) -> NavigationHistory: ...
    async def navigate_to_history_entry(self, entry_id: int) -> None: ...
    async def reload(self) -> None: ...

    # 状態取得
    async def body_text(self) -> str: ...
    async def current_url(self) -> str: ...
    async def title(self) -> str: ...
    async def evaluate(self, expression: str) -> EvalOutcome: ...
    async def accessibility_tree(self) -> list[dict[str, Any]]: ...

    # 撮影
    async def content_size(self) -> tuple[float, float]: ...
    async def set_viewport_override(self, width: int, height: int) -> None: ...
    async def clear_viewport_override(self) -> None: ...
    async def capture_screenshot(self, clip: Optional[Clip] = None) -> str: ...
