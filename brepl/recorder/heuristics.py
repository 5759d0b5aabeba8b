"""
記録ヒューリスティクス — DOM イベントから安定したコマンド文字列を合成する

ページに依存しない純粋関数群。イベント時点の DomSnapshot だけを参照する。

主な機能:
  - derive_locator(): 要素の記述（aria-label → label → placeholder → テキスト → title → タグ名）
  - find_toggle(): checkbox / radio のクリック判定（label 経由を含む）
  - is_action_button(): 削除・編集などの操作ボタン判定（語彙と無ラベルボタン）
  - is_structural(): コンテナ要素（div, ul, table ...）のクリック除外
  - classify_click() / synthesize_command(): イベント → コマンド文字列
  - fill_candidate(): テキスト入力イベント → (locator, value)（デバウンス対象）
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Optional

from ..core.page import DomNode, DomSnapshot
from .events import EventKind, RecorderEvent

logger = logging.getLogger(__name__)

# テキストを locator として採用する最大長
MAX_TEXT_LENGTH = 80

# 記録対象の特殊キー（押下前に保留中の fill を確定する）
SPECIAL_KEYS = frozenset({"Enter", "Tab", "Escape"})

# 操作ボタンを示す語（単語単位で text / class / aria-label と照合）
ACTION_WORDS = frozenset({"delete", "remove", "edit", "close", "destroy"})

# 操作ボタンを示す記号（text / aria-label に含まれるか照合）
ACTION_GLYPHS = ("×", "✕", "✖", "✗", "❌")

# role / onclick を持たない場合にクリックを記録しないタグ
STRUCTURAL_TAGS = frozenset({
    "html", "body", "main", "section", "article", "aside", "nav", "header",
    "footer", "div", "ul", "ol", "dl", "table", "thead", "tbody", "tfoot",
    "form", "fieldset",
})

# テキスト入力とみなさない input の type
_NON_TEXT_INPUT_TYPES = frozenset({
    "checkbox", "radio", "submit", "button", "reset", "file", "image",
    "hidden", "range", "color",
})

# 項目の主テキストを探す要素
_PRIMARY_TEXT_TAGS = ("h1", "h2", "h3", "h4", "h5", "h6", "label", "p")

# 記録しない URL スキーム
_IGNORED_URL_PREFIXES = ("about:", "chrome:", "chrome-extension:", "devtools:", "edge:")

_WORD_PATTERN = re.compile(r"[a-z]+")


# ---------------------------------------------------------------------------
# 書式
# ---------------------------------------------------------------------------

def quote(value: str) -> str:
    """コマンド引数としてクォートする。

    トークナイザはエスケープを解釈しないため、値に含まれない
    クォート文字を選ぶ。
    """
    if '"' not in value:
        return f'"{value}"'
    if "'" not in value:
        return f"'{value}'"
    return '"' + value.replace('"', "'") + '"'


def fill_command(locator: str, value: str) -> str:
    return f"fill {quote(locator)} {quote(value)}"


# ---------------------------------------------------------------------------
# 要素の分類
# ---------------------------------------------------------------------------

def is_text_entry(node: DomNode) -> bool:
    """テキスト入力欄（textarea / テキスト系 input）かどうか。"""
    if node.tag == "textarea":
        return True
    return node.tag == "input" and node.input_type not in _NON_TEXT_INPUT_TYPES


def is_structural(node: DomNode) -> bool:
    """role / onclick を持たないコンテナ要素かどうか。"""
    if node.tag not in STRUCTURAL_TAGS:
        return False
    return "role" not in node.attrs and "onclick" not in node.attrs


def _is_interactive(node: DomNode) -> bool:
    return node.tag in ("button", "a") or node.role in ("button", "link", "menuitem", "tab")


def _is_list_item(node: DomNode) -> bool:
    return node.tag in ("li", "tr", "article") or node.role in ("listitem", "row")


def find_list_item(dom: DomSnapshot, node: DomNode) -> Optional[DomNode]:
    """最も近いリスト項目（li / tr / article / listitem / row）を返す。"""
    return dom.closest(node, _is_list_item)


def primary_text(dom: DomSnapshot, item: DomNode) -> Optional[str]:
    """リスト項目の主テキスト（最初の見出し・label・段落）を返す。"""
    for node in dom.descendants(item):
        if node.tag in _PRIMARY_TEXT_TAGS:
            text = node.text.strip()
            if text:
                return text
    return None


def is_action_button(dom: DomSnapshot, node: DomNode) -> bool:
    """削除・編集などの操作ボタン、またはリスト項目内の無ラベルボタンかどうか。"""
    sources = (node.text, node.attrs.get("class", ""), node.attrs.get("aria-label", ""))
    for source in sources:
        words = set(_WORD_PATTERN.findall(source.lower()))
        if words & ACTION_WORDS:
            return True
    for source in (node.text, node.attrs.get("aria-label", "")):
        if any(glyph in source for glyph in ACTION_GLYPHS):
            return True

    is_button = node.tag == "button" or node.role == "button"
    return is_button and describe(dom, node) is None


# ---------------------------------------------------------------------------
# locator の導出
# ---------------------------------------------------------------------------

def describe(dom: DomSnapshot, node: DomNode) -> Optional[str]:
    """要素の人が読める記述を返す。該当なしは None。

    優先順位: aria-label → label[for] → 囲んでいる label → placeholder →
    子要素を持たない短いテキスト → button / a の短いテキスト → title
    """
    aria_label = (node.attrs.get("aria-label") or "").strip()
    if aria_label:
        return aria_label

    element_id = node.attrs.get("id")
    if element_id:
        for label in dom:
            if label.tag == "label" and label.attrs.get("for") == element_id:
                text = label.text.strip()
                if text:
                    return text

    wrapping = dom.closest(node, lambda n: n.tag == "label")
    if wrapping is not None and wrapping.text.strip():
        return wrapping.text.strip()

    placeholder = (node.attrs.get("placeholder") or "").strip()
    if placeholder and node.tag in ("input", "textarea"):
        return placeholder

    text = node.text.strip()
    if text and len(text) < MAX_TEXT_LENGTH:
        if node.is_leaf or node.tag in ("button", "a"):
            return text

    title = (node.attrs.get("title") or "").strip()
    if title:
        return title
    return None


def derive_locator(dom: DomSnapshot, node: DomNode) -> str:
    """要素の locator（記述できない場合はタグ名）を返す。"""
    return describe(dom, node) or node.tag


# ---------------------------------------------------------------------------
# checkbox / radio の判定
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Toggle:
    """checkbox / radio のクリック。

    Attributes:
        control: checkbox / radio 要素
        checked: クリック後の状態
        via_label: label のクリックによるものか
    """

    control: DomNode
    checked: bool
    via_label: bool = False


def find_toggle(dom: DomSnapshot, node: DomNode) -> Optional[Toggle]:
    """クリック対象が checkbox / radio を切り替えるかどうかを判定する。

    イベントはキャプチャ段階で受け取るため、input 自身のクリックでは
    checked は既に切り替わった後の値、label 経由では切り替わる前の値になる。
    """
    if node.is_toggle:
        return Toggle(control=node, checked=bool(node.checked) or node.input_type == "radio")

    label = dom.closest(node, lambda n: n.tag == "label")
    if label is None:
        return None
    control = dom.label_control(label)
    if control is None or not control.is_toggle:
        return None
    if control.input_type == "radio":
        return Toggle(control=control, checked=True, via_label=True)
    return Toggle(control=control, checked=not bool(control.checked), via_label=True)


# ---------------------------------------------------------------------------
# クリックの分類
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ClickIntent:
    """クリックから合成したコマンド。

    Attributes:
        command: コマンド文字列
        toggle: checkbox / radio のクリックだった場合の情報
    """

    command: str
    toggle: Optional[Toggle] = None


def classify_click(dom: DomSnapshot, node: DomNode) -> Optional[ClickIntent]:
    """クリックをコマンドに変換する。記録しない場合は None。"""
    toggle = find_toggle(dom, node)
    if toggle is not None:
        verb = "check" if toggle.checked else "uncheck"
        item = find_list_item(dom, toggle.control)
        locator = primary_text(dom, item) if item is not None else None
        locator = locator or derive_locator(dom, toggle.control)
        return ClickIntent(command=f"{verb} {quote(locator)}", toggle=toggle)

    # フォーカス目的のクリック
    if is_text_entry(node) or node.tag in ("select", "option"):
        return None

    # ボタン内のアイコン等はボタン自身として扱う
    target = dom.closest(node, _is_interactive) or node
    if is_structural(target):
        logger.debug("コンテナ要素 <%s> のクリックは記録しません", target.tag)
        return None

    locator = derive_locator(dom, target)
    if is_action_button(dom, target):
        item = find_list_item(dom, target)
        scope = primary_text(dom, item) if item is not None else None
        if scope and scope != locator:
            return ClickIntent(command=f"click {quote(locator)} {quote(scope)}")
    return ClickIntent(command=f"click {quote(locator)}")


# ---------------------------------------------------------------------------
# イベント → コマンド
# ---------------------------------------------------------------------------

def is_ignored_url(url: str) -> bool:
    """about: や内部スキームの URL かどうか。"""
    return not url or url.lower().startswith(_IGNORED_URL_PREFIXES)


def fill_candidate(event: RecorderEvent) -> Optional[tuple[str, str]]:
    """テキスト入力イベントから (locator, value) を求める。対象外は None。"""
    node = event.node
    if event.kind is not EventKind.INPUT or node is None or event.dom is None:
        return None
    if not is_text_entry(node):
        return None
    value = event.value if event.value is not None else (node.value or "")
    return derive_locator(event.dom, node), value


def _selected_option_text(dom: DomSnapshot, select: DomNode, value: Optional[str]) -> str:
    current = value if value is not None else select.value
    for node in dom.descendants(select):
        if node.tag == "option" and node.value == current:
            return node.text.strip()
    return current or ""


def synthesize_command(event: RecorderEvent) -> Optional[str]:
    """イベントを即時に記録するコマンドへ変換する。

    input イベントはデバウンス対象のため None を返す（fill_candidate を使う）。

    Args:
        event: 記録イベント

    Returns:
        コマンド文字列。記録しない場合は None
    """
    if event.kind is EventKind.NAVIGATE:
        if not event.main_frame or is_ignored_url(event.url or ""):
            return None
        return f"goto {event.url}"

    if event.kind is EventKind.KEYDOWN:
        if event.key in SPECIAL_KEYS:
            return f"press {event.key}"
        return None

    node = event.node
    if node is None or event.dom is None:
        return None

    if event.kind is EventKind.CLICK:
        intent = classify_click(event.dom, node)
        return intent.command if intent is not None else None

    if event.kind is EventKind.CHANGE and node.tag == "select":
        locator = derive_locator(event.dom, node)
        option = _selected_option_text(event.dom, node, event.value)
        return f"select {quote(locator)} {quote(option)}"

    return None
