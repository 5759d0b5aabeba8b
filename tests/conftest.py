"""
テスト共通フィクスチャ・Hypothesis ストラテジー定義

実際のブラウザは起動しない。HTML 文字列から DomSnapshot を組み立てる
FakePage（Page Protocol のインメモリ実装）を提供する。
"""

from __future__ import annotations

import asyncio
import dataclasses
from html.parser import HTMLParser
from typing import Any, Callable, Optional, Sequence
from unittest.mock import AsyncMock, MagicMock

import pytest
from hypothesis import strategies as st

from brepl.core.page import (
    BoundingBox,
    Clip,
    DomNode,
    DomSnapshot,
    EvalOutcome,
    HistoryEntry,
    KeyIdentity,
    NavigationHistory,
)

# 終了タグを持たない要素
_VOID_TAGS = frozenset({
    "area", "base", "br", "col", "embed", "hr", "img", "input", "link",
    "meta", "source", "track", "wbr",
})

# 値を持つ要素
_VALUE_TAGS = ("input", "textarea", "select", "button", "option")


# ---------------------------------------------------------------------------
# HTML → DomSnapshot
# ---------------------------------------------------------------------------

class _DomBuilder(HTMLParser):
    """<body> 配下（<body> がなければ全体）の要素を文書順に収集する。"""

    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self.nodes: list[dict[str, Any]] = []
        self.texts: list[list[str]] = []
        self.stack: list[int] = []
        self.body_text: list[str] = []

    def handle_starttag(self, tag: str, attrs: list[tuple[str, Optional[str]]]) -> None:
        if tag in ("html", "head", "body"):
            return
        index = len(self.nodes)
        parent = self.stack[-1] if self.stack else None
        if parent is not None:
            self.nodes[parent]["child_count"] += 1
        self.nodes.append({
            "index": index,
            "tag": tag,
            "attrs": {name: value if value is not None else "" for name, value in attrs},
            "parent": parent,
            "child_count": 0,
        })
        self.texts.append([])
        if tag not in _VOID_TAGS:
            self.stack.append(index)

    def handle_startendtag(self, tag: str, attrs: list[tuple[str, Optional[str]]]) -> None:
        self.handle_starttag(tag, attrs)
        if tag not in _VOID_TAGS and self.stack:
            self.stack.pop()

    def handle_endtag(self, tag: str) -> None:
        if tag in ("html", "head", "body") or tag in _VOID_TAGS:
            return
        while self.stack:
            index = self.stack.pop()
            if self.nodes[index]["tag"] == tag:
                break

    def handle_data(self, data: str) -> None:
        self.body_text.append(data)
        for index in self.stack:
            self.texts[index].append(data)


def _finish_values(nodes: list[dict[str, Any]]) -> None:
    for node in nodes:
        tag = node["tag"]
        attrs = node["attrs"]
        node["checked"] = None
        node["value"] = None
        if tag == "input":
            node["value"] = attrs.get("value", "")
            if attrs.get("type", "text").lower() in ("checkbox", "radio"):
                node["checked"] = "checked" in attrs
                node["value"] = attrs.get("value", "on")
        elif tag == "textarea":
            node["value"] = node["text"]
        elif tag == "option":
            node["value"] = attrs.get("value", node["text"])
        elif tag == "button":
            node["value"] = attrs.get("value", "")

    for node in nodes:
        if node["tag"] != "select":
            continue
        options = [
            n for n in nodes[node["index"] + 1:]
            if n["tag"] == "option" and _is_under(nodes, n, node["index"])
        ]
        chosen = next((o for o in options if "selected" in o["attrs"]), options[0] if options else None)
        node["value"] = chosen["value"] if chosen is not None else ""


def _is_under(nodes: list[dict[str, Any]], node: dict[str, Any], ancestor: int) -> bool:
    parent = node["parent"]
    while parent is not None:
        if parent == ancestor:
            return True
        parent = nodes[parent]["parent"]
    return False


def parse_html(html: str) -> tuple[list[dict[str, Any]], str]:
    """HTML を DomNode 辞書列と innerText 相当の文字列に変換する。"""
    builder = _DomBuilder()
    builder.feed(html)
    builder.close()
    for node, parts in zip(builder.nodes, builder.texts):
        node["text"] = "".join(parts)
    _finish_values(builder.nodes)
    return builder.nodes, " ".join(" ".join(builder.body_text).split())


def build_dom(html: str) -> DomSnapshot:
    """HTML から DomSnapshot を生成する。"""
    nodes, _ = parse_html(html)
    return DomSnapshot.from_dicts(nodes)


# ---------------------------------------------------------------------------
# FakePage
# ---------------------------------------------------------------------------

class FakePage:
    """Page Protocol のインメモリ実装。

    呼び出しを calls に記録し、checkbox のクリックでは checked を切り替える。
    fail_on に含まれるメソッドは RuntimeError("boom") を送出する。
    """

    def __init__(
        self,
        html: str = "",
        *,
        url: str = "about:blank",
        title: str = "",
        ax_nodes: Optional[list[dict[str, Any]]] = None,
        eval_outcome: Optional[EvalOutcome] = None,
        fire_load: bool = True,
    ) -> None:
        self.set_html(html)
        self.url = url
        self.page_title = title
        self.ax_nodes = ax_nodes or []
        self.eval_outcome = eval_outcome or EvalOutcome(undefined=True)
        self.fire_load = fire_load
        self.calls: list[tuple[Any, ...]] = []
        self.fail_on: set[str] = set()
        self.history: list[str] = [url]
        self.history_index = 0
        self.viewport_override: Optional[tuple[int, int]] = None
        self._load_waiters: list[asyncio.Future[None]] = []

    def set_html(self, html: str) -> None:
        nodes, text = parse_html(html)
        self.nodes = [DomNode.from_dict(n) for n in nodes]
        self.text = text

    def _record(self, name: str, *args: Any) -> None:
        self.calls.append((name, *args))
        if name in self.fail_on:
            raise RuntimeError("boom")

    def called(self, name: str) -> list[tuple[Any, ...]]:
        return [c for c in self.calls if c[0] == name]

    def node(self, index: int) -> DomNode:
        return self.nodes[index]

    def _fire_load(self) -> None:
        if not self.fire_load:
            return
        waiters, self._load_waiters = self._load_waiters, []
        for waiter in waiters:
            if not waiter.done():
                waiter.set_result(None)

    # --- DOM ---

    async def dom_snapshot(self) -> DomSnapshot:
        self._record("dom_snapshot")
        return DomSnapshot([dataclasses.replace(n, attrs=dict(n.attrs)) for n in self.nodes])

    async def scroll_into_view(self, node: DomNode) -> None:
        self._record("scroll_into_view", node.index)

    async def click(self, node: DomNode) -> None:
        self._record("click", node.index)
        current = self.nodes[node.index]
        if current.input_type == "checkbox":
            current.checked = not current.checked
        elif current.input_type == "radio":
            current.checked = True

    async def dblclick(self, node: DomNode) -> None:
        self._record("dblclick", node.index)

    async def focus(self, node: DomNode) -> None:
        self._record("focus", node.index)

    async def set_value(self, node: DomNode, value: str) -> None:
        self._record("set_value", node.index, value)
        self.nodes[node.index].value = value

    async def dispatch_events(self, node: Optional[DomNode], names: Sequence[str]) -> None:
        self._record("dispatch_events", None if node is None else node.index, tuple(names))

    async def bounding_box(self, node: DomNode) -> BoundingBox:
        self._record("bounding_box", node.index)
        return BoundingBox(x=10, y=20, width=100, height=40)

    # --- 入力 ---

    async def clear_value(self) -> None:
        self._record("clear_value")

    async def insert_text(self, text: str) -> None:
        self._record("insert_text", text)

    async def mouse_move(self, x: float, y: float) -> None:
        self._record("mouse_move", x, y)

    async def key_event(self, event_type: str, key: KeyIdentity) -> None:
        self._record("key_event", event_type, key)

    # --- ナビゲーション ---

    def expect_load(self) -> asyncio.Future[None]:
        self.calls.append(("expect_load",))
        waiter: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._load_waiters.append(waiter)
        return waiter

    async def navigate(self, url: str) -> None:
        self._record("navigate", url)
        del self.history[self.history_index + 1:]
        self.history.append(url)
        self.history_index = len(self.history) - 1
        self.url = url
        self._fire_load()

    async def navigation_history(self) -> NavigationHistory:
        self._record("navigation_history")
        return NavigationHistory(
            current_index=self.history_index,
            entries=[HistoryEntry(entry_id=i + 100, url=u) for i, u in enumerate(self.history)],
        )

    async def navigate_to_history_entry(self, entry_id: int) -> None:
        self._record("navigate_to_history_entry", entry_id)
        self.history_index = entry_id - 100
        self.url = self.history[self.history_index]
        self._fire_load()

    async def reload(self) -> None:
        self._record("reload")
        self._fire_load()

    # --- 状態取得 ---

    async def body_text(self) -> str:
        self._record("body_text")
        return self.text

    async def current_url(self) -> str:
        self._record("current_url")
        return self.url

    async def title(self) -> str:
        self._record("title")
        return self.page_title

    async def evaluate(self, expression: str) -> EvalOutcome:
        self._record("evaluate", expression)
        return self.eval_outcome

    async def accessibility_tree(self) -> list[dict[str, Any]]:
        self._record("accessibility_tree")
        return list(self.ax_nodes)

    # --- 撮影 ---

    async def content_size(self) -> tuple[float, float]:
        self._record("content_size")
        return 1280.2, 3000.5

    async def set_viewport_override(self, width: int, height: int) -> None:
        self._record("set_viewport_override", width, height)
        self.viewport_override = (width, height)

    async def clear_viewport_override(self) -> None:
        self._record("clear_viewport_override")
        self.viewport_override = None

    async def capture_screenshot(self, clip: Optional[Clip] = None) -> str:
        self._record("capture_screenshot", clip)
        return "iVBORw0KGgo="


# ---------------------------------------------------------------------------
# 記録用の Playwright / CdpPage の代役
# ---------------------------------------------------------------------------

class FakePlaywrightPage:
    """LiveRecorder が使う Playwright Page の最小限の代役。

    実物と同様に、同じ名前の expose_function を 2 度登録すると例外を送出する。
    """

    def __init__(self, url: str = "https://example.com/") -> None:
        self.url = url
        self.bindings: dict[str, Callable[..., Any]] = {}
        self.listeners: dict[str, list[Callable[..., Any]]] = {}
        self.evaluated: list[str] = []

    async def expose_function(self, name: str, callback: Callable[..., Any]) -> None:
        if name in self.bindings:
            raise RuntimeError(f'Function "{name}" has been already registered')
        self.bindings[name] = callback

    def on(self, event: str, handler: Callable[..., Any]) -> None:
        self.listeners.setdefault(event, []).append(handler)

    def remove_listener(self, event: str, handler: Callable[..., Any]) -> None:
        self.listeners[event].remove(handler)

    async def evaluate(self, expression: str, arg: Any = None) -> None:
        self.evaluated.append(expression)

    def fire(self, event: str, payload: Any) -> None:
        for handler in list(self.listeners.get(event, [])):
            handler(payload)


class FakeCdpPage:
    """CdpPage のうち記録に関わる部分だけを持つ代役。"""

    def __init__(self) -> None:
        self.playwright_page = FakePlaywrightPage()
        self.cdp = MagicMock()
        self.cdp.send = AsyncMock(return_value={})
        self.init_scripts: dict[str, str] = {}
        self._script_counter = 0

    async def add_init_script(self, source: str) -> str:
        self._script_counter += 1
        identifier = str(self._script_counter)
        self.init_scripts[identifier] = source
        return identifier

    async def remove_init_script(self, identifier: str) -> None:
        del self.init_scripts[identifier]


# ---------------------------------------------------------------------------
# サンプル HTML
# ---------------------------------------------------------------------------

LOGIN_HTML = """
<body>
  <h1>Sign in</h1>
  <form>
    <label for="email">Email</label>
    <input id="email" type="email" placeholder="you@example.com">
    <label>Password <input type="password" name="pw"></label>
    <input type="search" aria-label="Search">
    <label for="terms">Accept terms</label>
    <input id="terms" type="checkbox">
    <label for="country">Country</label>
    <select id="country">
      <option value="jp">Japan</option>
      <option value="us">United States</option>
    </select>
    <button type="submit">Submit</button>
    <a href="/help" title="Help page">?</a>
  </form>
</body>
"""

TODO_HTML = """
<body>
  <ul>
    <li><input type="checkbox"><label>Buy milk</label><button class="destroy">×</button></li>
    <li><input type="checkbox" checked><label>Walk dog</label><button class="destroy">×</button></li>
  </ul>
  <span>Footer note</span>
</body>
"""


# ---------------------------------------------------------------------------
# pytest フィクスチャ
# ---------------------------------------------------------------------------

@pytest.fixture
def login_page() -> FakePage:
    """ログインフォームの FakePage。"""
    return FakePage(LOGIN_HTML, url="https://example.com/login", title="Sign in - Example")


@pytest.fixture
def todo_page() -> FakePage:
    """TODO リストの FakePage。"""
    return FakePage(TODO_HTML, url="https://todo.example.com/", title="Todos")


# ---------------------------------------------------------------------------
# Hypothesis ストラテジー
# ---------------------------------------------------------------------------

# クォートや空白を含まない単語
safe_words = st.text(
    alphabet=st.characters(whitelist_categories=("Ll", "Lu", "Nd"), max_codepoint=0x7F),
    min_size=1,
    max_size=12,
)

# 引用符を含まないフレーズ（空白を含みうる）
phrases = st.lists(safe_words, min_size=1, max_size=4).map(" ".join)


@st.composite
def command_lines(draw: st.DrawFn) -> tuple[str, list[str]]:
    """(コマンド行, 期待されるトークン列) を生成する。"""
    name = draw(safe_words)
    args = draw(st.lists(phrases, max_size=3))
    quote = draw(st.sampled_from(['"', "'"]))
    line = " ".join([name] + [f"{quote}{a}{quote}" for a in args])
    return line, [name] + args


@st.composite
def script_lines(draw: st.DrawFn) -> list[str]:
    """コマンド・コメント・空行が混在するスクリプトを生成する。"""
    kinds = draw(st.lists(st.sampled_from(["ok", "fail", "comment", "blank"]), min_size=1, max_size=10))
    lines = []
    for kind in kinds:
        if kind == "ok":
            lines.append('verify-text "Sign in"')
        elif kind == "fail":
            lines.append('verify-text "Missing"')
        elif kind == "comment":
            lines.append("# note")
        else:
            lines.append("")
    return lines
