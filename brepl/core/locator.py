"""
ロケーターリゾルバ — 人が読める記述から要素を 1 つ特定する

"Submit"、"Email"、スコープ付きの記述、スナップショット ref（e<N>）を
DomSnapshot 上の DomNode に解決する。永続的なセレクタは持たない。

主な機能:
  - parse_target(): ref / テキストターゲットの判定
  - 戦略テーブル: (名前, 戦略関数) の順序付きタプル。最初に一致した戦略を採用
  - resolve_click / resolve_focus / resolve_checkbox / resolve_select /
    resolve_option / resolve_hover: 見つからない場合は ResolutionError
  - find_click: 読み取り専用の検索（verify-element 用）

比較は前後の空白を除去し大文字小文字を区別しない完全一致。
スコープのコンテナ検索のみ部分一致とする。
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Callable, Optional, Union

from .page import DomNode, DomSnapshot

logger = logging.getLogger(__name__)

# ref ターゲットの書式（e<N>、N は 1 始まり）
_REF_PATTERN = re.compile(r"^e(\d+)$")

# 戦略関数: (スナップショット, 探索範囲, ターゲット文字列) → 要素
Strategy = Callable[[DomSnapshot, list[DomNode], str], Optional[DomNode]]


# ---------------------------------------------------------------------------
# エラー定義
# ---------------------------------------------------------------------------

class ResolutionError(Exception):
    """ターゲットに一致する要素が見つからない場合のエラー。"""


# ---------------------------------------------------------------------------
# ターゲット
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RefTarget:
    """スナップショット ref ターゲット。

    Attributes:
        number: 1 始まりの位置
    """

    number: int

    def __str__(self) -> str:
        return f"e{self.number}"


@dataclass(frozen=True)
class TextTarget:
    """テキストターゲット（スコープ付き可）。"""

    text: str
    scope: Optional[str] = None

    def __str__(self) -> str:
        return self.text


Target = Union[RefTarget, TextTarget]


def parse_target(text: str, scope: Optional[str] = None) -> Target:
    """ターゲット文字列を解析する。

    Args:
        text: "e5" 形式の ref、または表示テキスト
        scope: スコープのテキスト（テキストターゲットのみ有効）

    Returns:
        RefTarget または TextTarget
    """
    match = _REF_PATTERN.match(text.strip())
    if match:
        return RefTarget(number=int(match.group(1)))
    return TextTarget(text=text, scope=scope)


# ---------------------------------------------------------------------------
# 比較ヘルパー
# ---------------------------------------------------------------------------

def matches(value: Optional[str], target: str) -> bool:
    """空白除去・大文字小文字無視の完全一致。"""
    if not value:
        return False
    return value.strip().lower() == target.strip().lower()


def contains(value: Optional[str], target: str) -> bool:
    """空白除去・大文字小文字無視の部分一致。"""
    if not value:
        return False
    return target.strip().lower() in value.strip().lower()


def _is_clickable(node: DomNode) -> bool:
    if node.tag in ("button", "a") or node.role == "button":
        return True
    return node.input_type in ("submit", "button")


def _is_hoverable(node: DomNode) -> bool:
    if node.tag in ("button", "a", "input", "textarea", "select"):
        return True
    return node.role in ("button", "menuitem")


def _is_editable(node: DomNode) -> bool:
    if node.tag in ("input", "textarea"):
        return True
    return node.attrs.get("contenteditable", "").lower() == "true"


def _is_scope_container(node: DomNode) -> bool:
    if node.tag in ("li", "tr", "article", "div"):
        return True
    return node.role in ("listitem", "row")


def _is_checkbox_container(node: DomNode) -> bool:
    return node.tag in ("li", "tr", "div") or node.role == "listitem"


def _is_list_item(node: DomNode) -> bool:
    return node.tag in ("li", "tr") or node.role in ("listitem", "row")


def _first(nodes: list[DomNode], predicate: Callable[[DomNode], bool]) -> Optional[DomNode]:
    for node in nodes:
        if predicate(node):
            return node
    return None


# ---------------------------------------------------------------------------
# 戦略関数
# ---------------------------------------------------------------------------

def _by_interactive_text(dom: DomSnapshot, scope: list[DomNode], text: str) -> Optional[DomNode]:
    return _first(
        scope,
        lambda n: _is_clickable(n) and (matches(n.text, text) or matches(n.value, text)),
    )


def _by_placeholder(dom: DomSnapshot, scope: list[DomNode], text: str) -> Optional[DomNode]:
    return _first(
        scope,
        lambda n: n.tag in ("input", "textarea") and matches(n.attr("placeholder"), text),
    )


def _by_label(dom: DomSnapshot, scope: list[DomNode], text: str) -> Optional[DomNode]:
    for label in scope:
        if label.tag == "label" and matches(label.text, text):
            control = dom.label_control(label)
            if control is not None:
                return control
    return None


def _by_aria_label(dom: DomSnapshot, scope: list[DomNode], text: str) -> Optional[DomNode]:
    return _first(scope, lambda n: matches(n.attr("aria-label"), text))


def _by_title(dom: DomSnapshot, scope: list[DomNode], text: str) -> Optional[DomNode]:
    return _first(scope, lambda n: matches(n.attr("title"), text))


def _by_leaf_text(dom: DomSnapshot, scope: list[DomNode], text: str) -> Optional[DomNode]:
    return _first(scope, lambda n: n.is_leaf and matches(n.text, text))


def _by_editable(dom: DomSnapshot, scope: list[DomNode], text: str) -> Optional[DomNode]:
    return _first(
        scope,
        lambda n: _is_editable(n)
        and (matches(n.attr("aria-label"), text) or matches(n.attr("placeholder"), text)),
    )


def _by_hoverable_text(dom: DomSnapshot, scope: list[DomNode], text: str) -> Optional[DomNode]:
    return _first(
        scope,
        lambda n: _is_hoverable(n)
        and (
            matches(n.text, text)
            or matches(n.value, text)
            or matches(n.attr("aria-label"), text)
        ),
    )


def _toggle_by_label(dom: DomSnapshot, scope: list[DomNode], text: str) -> Optional[DomNode]:
    control = _by_label(dom, scope, text)
    if control is not None and control.is_toggle:
        return control
    return None


def _toggle_by_aria_label(dom: DomSnapshot, scope: list[DomNode], text: str) -> Optional[DomNode]:
    return _first(
        scope,
        lambda n: n.input_type == "checkbox" and matches(n.attr("aria-label"), text),
    )


def _toggle_near_label(dom: DomSnapshot, scope: list[DomNode], text: str) -> Optional[DomNode]:
    label = _first(scope, lambda n: n.tag == "label" and matches(n.text, text))
    if label is None:
        return None
    container = dom.closest(label, _is_checkbox_container)
    if container is None:
        return None
    return _first(dom.descendants(container), lambda n: n.input_type == "checkbox")


def _toggle_in_list_item(dom: DomSnapshot, scope: list[DomNode], text: str) -> Optional[DomNode]:
    for item in scope:
        if not _is_list_item(item) or not contains(item.text, text):
            continue
        checkbox = _first(dom.descendants(item), lambda n: n.input_type == "checkbox")
        if checkbox is not None:
            return checkbox
    return None


def _select_by_aria_label(dom: DomSnapshot, scope: list[DomNode], text: str) -> Optional[DomNode]:
    return _first(scope, lambda n: n.tag == "select" and matches(n.attr("aria-label"), text))


def _select_by_label(dom: DomSnapshot, scope: list[DomNode], text: str) -> Optional[DomNode]:
    control = _by_label(dom, scope, text)
    if control is not None and control.tag == "select":
        return control
    return None


# ---------------------------------------------------------------------------
# 戦略テーブル
# ---------------------------------------------------------------------------

CLICK_STRATEGIES: tuple[tuple[str, Strategy], ...] = (
    ("interactive-text", _by_interactive_text),
    ("placeholder", _by_placeholder),
    ("label", _by_label),
    ("aria-label", _by_aria_label),
    ("title", _by_title),
    ("leaf-text", _by_leaf_text),
)

FOCUS_STRATEGIES: tuple[tuple[str, Strategy], ...] = (
    ("placeholder", _by_placeholder),
    ("label", _by_label),
    ("aria-label", _by_aria_label),
    ("editable", _by_editable),
)

CHECKBOX_STRATEGIES: tuple[tuple[str, Strategy], ...] = (
    ("label", _toggle_by_label),
    ("aria-label", _toggle_by_aria_label),
    ("label-container", _toggle_near_label),
    ("list-item", _toggle_in_list_item),
)

SELECT_STRATEGIES: tuple[tuple[str, Strategy], ...] = (
    ("aria-label", _select_by_aria_label),
    ("label", _select_by_label),
)

HOVER_STRATEGIES: tuple[tuple[str, Strategy], ...] = (
    ("hoverable-text", _by_hoverable_text),
    ("leaf-text", _by_leaf_text),
)


def run_strategies(
    strategies: tuple[tuple[str, Strategy], ...],
    dom: DomSnapshot,
    scope: list[DomNode],
    text: str,
) -> Optional[DomNode]:
    """戦略を順に試し、最初に一致した要素を返す。"""
    for name, strategy in strategies:
        node = strategy(dom, scope, text)
        if node is not None:
            logger.debug("'%s' を戦略 %s で解決しました: <%s> %s", text, name, node.tag, node.ref)
            return node
    return None


# ---------------------------------------------------------------------------
# LocatorResolver 本体
# ---------------------------------------------------------------------------

class LocatorResolver:
    """DomSnapshot 上でターゲットを解決する。

    ページを変更しない。各メソッドは同じスナップショットに対して
    何度呼び出しても同じ結果を返す。
    """

    # -------------------------------------------------------------------
    # 読み取り専用の検索
    # -------------------------------------------------------------------

    def find_container(self, dom: DomSnapshot, scope: str) -> Optional[DomNode]:
        """テキストを部分一致で含む最初のスコープコンテナを返す。"""
        return _first(dom.nodes, lambda n: _is_scope_container(n) and contains(n.text, scope))

    def find_click(self, dom: DomSnapshot, target: Target) -> Optional[DomNode]:
        """クリック対象を検索する。見つからない場合は None。"""
        if isinstance(target, RefTarget):
            return dom.by_ref(target.number)

        nodes = dom.nodes
        if target.scope:
            container = self.find_container(dom, target.scope)
            if container is not None:
                nodes = dom.descendants(container)
            else:
                logger.debug("スコープ '%s' のコンテナが見つかりません。文書全体を探索します", target.scope)
        return run_strategies(CLICK_STRATEGIES, dom, nodes, target.text)

    # -------------------------------------------------------------------
    # 解決（見つからない場合は ResolutionError）
    # -------------------------------------------------------------------

    def resolve_click(self, dom: DomSnapshot, target: Target) -> DomNode:
        """クリック / ダブルクリック対象を解決する。

        Raises:
            ResolutionError: 一致する要素がない場合
        """
        node = self.find_click(dom, target)
        if node is not None:
            return node
        if isinstance(target, RefTarget):
            raise ResolutionError(f"Element {target} not found")
        suffix = f' in "{target.scope}"' if target.scope else ""
        raise ResolutionError(f"Element not found: {target.text}{suffix}")

    def resolve_focus(self, dom: DomSnapshot, target: Target) -> DomNode:
        """入力対象（fill）を解決する。"""
        node = self._resolve(FOCUS_STRATEGIES, dom, target)
        if node is None:
            raise ResolutionError(f"Input not found: {target}")
        return node

    def resolve_checkbox(self, dom: DomSnapshot, target: Target) -> DomNode:
        """checkbox / radio を解決する。"""
        node = self._resolve(CHECKBOX_STRATEGIES, dom, target)
        if node is None or not node.is_toggle:
            raise ResolutionError(f"Checkbox not found: {target}")
        return node

    def resolve_select(self, dom: DomSnapshot, target: Target) -> DomNode:
        """<select> を解決する。"""
        node = self._resolve(SELECT_STRATEGIES, dom, target)
        if node is None or node.tag != "select":
            raise ResolutionError(f"Select not found: {target}")
        return node

    def resolve_option(self, dom: DomSnapshot, select: DomNode, option: str) -> DomNode:
        """<select> 内の option をテキストまたは value で解決する。"""
        for node in dom.descendants(select):
            if node.tag != "option":
                continue
            if matches(node.text, option) or matches(node.value, option):
                return node
        raise ResolutionError(f"Option not found: {option}")

    def resolve_hover(self, dom: DomSnapshot, target: Target) -> DomNode:
        """ホバー対象を解決する。"""
        node = self._resolve(HOVER_STRATEGIES, dom, target)
        if node is None:
            raise ResolutionError(f"Element not found: {target}")
        return node

    def _resolve(
        self,
        strategies: tuple[tuple[str, Strategy], ...],
        dom: DomSnapshot,
        target: Target,
    ) -> Optional[DomNode]:
        if isinstance(target, RefTarget):
            return dom.by_ref(target.number)
        return run_strategies(strategies, dom, dom.nodes, target.text)
