"""
CommandExecutor — コマンド 1 行をページ操作に変換して実行する

Parser → Registry → Resolver → Page の順に処理し、1 コマンドにつき
1 つの Result を返す。

主な機能:
  - CommandKind をキーにしたハンドラのディスパッチテーブル
  - Usage エラー: ページに触れる前に検出して "Usage: ..." を返す
  - 解決エラー: ResolutionError のメッセージをそのまま返す
  - ドライバエラー: "<label> failed: <message>" に変換（リトライしない）
  - verify 系: 条件不成立は例外ではなく FAIL の Result
  - screenshot full: ビューポート上書きを finally で必ず解除
"""

from __future__ import annotations

import json
import logging
import math
import re
from typing import Awaitable, Callable, Optional

from ..dsl.commands import Command, CommandKind, CommandRegistry, create_default_registry
from ..dsl.parser import command_remainder
from ..export.converter import to_statement
from .locator import LocatorResolver, ResolutionError, parse_target
from .page import Clip, KeyIdentity, Page
from .results import Result
from .snapshot import format_accessibility_tree
from .waits import DEFAULT_LOAD_TIMEOUT_MS, wait_for_signal

logger = logging.getLogger(__name__)

Handler = Callable[[Command], Awaitable[Result]]

# スキーム付き URL の判定
_SCHEME_PATTERN = re.compile(r"^https?://", re.IGNORECASE)

# press コマンドのキー対応表（小文字キー → KeyIdentity）
KEY_MAP: dict[str, KeyIdentity] = {
    "enter": KeyIdentity("Enter", "Enter", 13),
    "tab": KeyIdentity("Tab", "Tab", 9),
    "escape": KeyIdentity("Escape", "Escape", 27),
    "backspace": KeyIdentity("Backspace", "Backspace", 8),
    "delete": KeyIdentity("Delete", "Delete", 46),
    "arrowup": KeyIdentity("ArrowUp", "ArrowUp", 38),
    "arrowdown": KeyIdentity("ArrowDown", "ArrowDown", 40),
    "arrowleft": KeyIdentity("ArrowLeft", "ArrowLeft", 37),
    "arrowright": KeyIdentity("ArrowRight", "ArrowRight", 39),
    "space": KeyIdentity(" ", "Space", 32),
}


# ---------------------------------------------------------------------------
# ヘルパー
# ---------------------------------------------------------------------------

def normalize_url(url: str) -> str:
    """スキームがない URL に https:// を付与する。"""
    url = url.strip()
    if _SCHEME_PATTERN.match(url):
        return url
    return f"https://{url}"


def key_identity(key: str) -> KeyIdentity:
    """キー名から KeyIdentity を求める。

    対応表にないキーは key をそのまま使い、code は "Key" + 大文字、
    keyCode は先頭文字のコードポイントとする。
    """
    mapped = KEY_MAP.get(key.lower())
    if mapped is not None:
        return mapped
    return KeyIdentity(key=key, code=f"Key{key.upper()}", key_code=ord(key[0]) if key else 0)


# ---------------------------------------------------------------------------
# CommandExecutor 本体
# ---------------------------------------------------------------------------

class CommandExecutor:
    """1 ページに対してコマンドを実行する。

    同一ページへの同時実行は想定しない。直列化は Transport が行う。
    """

    def __init__(
        self,
        page: Page,
        *,
        registry: Optional[CommandRegistry] = None,
        resolver: Optional[LocatorResolver] = None,
        load_timeout_ms: int = DEFAULT_LOAD_TIMEOUT_MS,
    ) -> None:
        """CommandExecutor を初期化する。

        Args:
            page: 操作対象のページ
            registry: コマンドレジストリ。None の場合は標準レジストリ
            resolver: ロケーターリゾルバ。None の場合は新規生成
            load_timeout_ms: ロード完了待機のタイムアウト（ミリ秒）
        """
        self._page = page
        self._registry = registry or create_default_registry()
        self._resolver = resolver or LocatorResolver()
        self._load_timeout_ms = load_timeout_ms
        self._handlers: dict[CommandKind, Handler] = {
            CommandKind.GOTO: self._cmd_goto,
            CommandKind.CLICK: self._cmd_click,
            CommandKind.DBLCLICK: self._cmd_dblclick,
            CommandKind.FILL: self._cmd_fill,
            CommandKind.SELECT: self._cmd_select,
            CommandKind.CHECK: self._cmd_check,
            CommandKind.UNCHECK: self._cmd_check,
            CommandKind.HOVER: self._cmd_hover,
            CommandKind.PRESS: self._cmd_press,
            CommandKind.SNAPSHOT: self._cmd_snapshot,
            CommandKind.SCREENSHOT: self._cmd_screenshot,
            CommandKind.EVAL: self._cmd_eval,
            CommandKind.GO_BACK: self._cmd_go_back,
            CommandKind.GO_FORWARD: self._cmd_go_forward,
            CommandKind.RELOAD: self._cmd_reload,
            CommandKind.VERIFY_TEXT: self._cmd_verify_text,
            CommandKind.VERIFY_NO_TEXT: self._cmd_verify_text,
            CommandKind.VERIFY_ELEMENT: self._cmd_verify_element,
            CommandKind.VERIFY_NO_ELEMENT: self._cmd_verify_element,
            CommandKind.VERIFY_URL: self._cmd_verify_url,
            CommandKind.VERIFY_TITLE: self._cmd_verify_title,
            CommandKind.EXPORT: self._cmd_export,
            CommandKind.HELP: self._cmd_help,
        }

    @property
    def registry(self) -> CommandRegistry:
        return self._registry

    @property
    def page(self) -> Page:
        return self._page

    # -------------------------------------------------------------------
    # パブリック API
    # -------------------------------------------------------------------

    async def execute(self, raw: str) -> Result:
        """コマンド行を実行する。

        Args:
            raw: コマンド行

        Returns:
            実行結果。例外は送出しない。
        """
        command = self._registry.parse(raw)
        if command is None:
            return Result.error("Invalid command")
        if command.info is None:
            return Result.error(f"Unknown command: {command.name}")

        info = command.info
        if len(command.args) < info.min_args:
            return Result.error(info.usage)

        handler = self._handlers[info.kind]
        try:
            return await handler(command)
        except ResolutionError as exc:
            logger.debug("ターゲットを解決できませんでした: %s", exc)
            return Result.error(str(exc))
        except Exception as exc:
            logger.warning("コマンド '%s' の実行に失敗しました: %s", info.name, exc)
            return Result.error(f"{info.failure_label} failed: {exc}")

    # -------------------------------------------------------------------
    # ナビゲーション
    # -------------------------------------------------------------------

    async def _navigate_and_wait(self, action: Callable[[], Awaitable[None]]) -> None:
        """ロード完了シグナルを先に取得してからナビゲーションを実行し、待機する。"""
        signal = self._page.expect_load()
        await action()
        await wait_for_signal(signal, self._load_timeout_ms)

    async def _cmd_goto(self, command: Command) -> Result:
        url = normalize_url(command.args[0])
        await self._navigate_and_wait(lambda: self._page.navigate(url))
        return Result.ok(f"Navigated to {url}")

    async def _cmd_go_back(self, command: Command) -> Result:
        history = await self._page.navigation_history()
        if history.current_index <= 0:
            return Result.error("No previous page in history")
        entry = history.entries[history.current_index - 1]
        await self._navigate_and_wait(lambda: self._page.navigate_to_history_entry(entry.entry_id))
        return Result.ok(f"Navigated back to {entry.url}")

    async def _cmd_go_forward(self, command: Command) -> Result:
        history = await self._page.navigation_history()
        if history.current_index >= len(history.entries) - 1:
            return Result.error("No next page in history")
        entry = history.entries[history.current_index + 1]
        await self._navigate_and_wait(lambda: self._page.navigate_to_history_entry(entry.entry_id))
        return Result.ok(f"Navigated forward to {entry.url}")

    async def _cmd_reload(self, command: Command) -> Result:
        await self._navigate_and_wait(self._page.reload)
        return Result.ok("Page reloaded")

    # -------------------------------------------------------------------
    # 要素操作
    # -------------------------------------------------------------------

    async def _cmd_click(self, command: Command) -> Result:
        text = command.args[0]
        scope = command.args[1] if len(command.args) > 1 else None
        dom = await self._page.dom_snapshot()
        node = self._resolver.resolve_click(dom, parse_target(text, scope))
        await self._page.scroll_into_view(node)
        await self._page.click(node)
        where = f' in "{scope}"' if scope else ""
        return Result.ok(f'Clicked "{text}"{where} <{node.tag}>')

    async def _cmd_dblclick(self, command: Command) -> Result:
        text = command.args[0]
        dom = await self._page.dom_snapshot()
        node = self._resolver.resolve_click(dom, parse_target(text))
        await self._page.scroll_into_view(node)
        await self._page.dblclick(node)
        return Result.ok(f'Double-clicked "{text}" <{node.tag}>')

    async def _cmd_fill(self, command: Command) -> Result:
        target, value = command.args[0], command.args[1]
        dom = await self._page.dom_snapshot()
        node = self._resolver.resolve_focus(dom, parse_target(target))
        await self._page.focus(node)
        await self._page.clear_value()
        await self._page.insert_text(value)
        await self._page.dispatch_events(None, ("input", "change"))
        return Result.ok(f'Filled "{target}" with "{value}"')

    async def _cmd_select(self, command: Command) -> Result:
        target, option = command.args[0], command.args[1]
        dom = await self._page.dom_snapshot()
        select = self._resolver.resolve_select(dom, parse_target(target))
        chosen = self._resolver.resolve_option(dom, select, option)
        await self._page.set_value(select, chosen.value if chosen.value is not None else chosen.text)
        await self._page.dispatch_events(select, ("change",))
        return Result.ok(f'Selected "{option}" in "{target}"')

    async def _cmd_check(self, command: Command) -> Result:
        target = command.args[0]
        desired = command.kind is CommandKind.CHECK
        verb = "Checked" if desired else "Unchecked"

        dom = await self._page.dom_snapshot()
        node = self._resolver.resolve_checkbox(dom, parse_target(target))
        if bool(node.checked) == desired:
            logger.debug("'%s' は既に %s 状態です", target, "checked" if desired else "unchecked")
            return Result.ok(f'{verb} "{target}" (no change)')

        await self._page.click(node)
        return Result.ok(f'{verb} "{target}"')

    async def _cmd_hover(self, command: Command) -> Result:
        target = command.args[0]
        dom = await self._page.dom_snapshot()
        node = self._resolver.resolve_hover(dom, parse_target(target))
        await self._page.scroll_into_view(node)
        box = await self._page.bounding_box(node)
        x, y = box.center
        await self._page.mouse_move(x, y)
        return Result.ok(f'Hovered "{target}"')

    async def _cmd_press(self, command: Command) -> Result:
        key = command.args[0]
        identity = key_identity(key)
        await self._page.key_event("keyDown", identity)
        await self._page.key_event("keyUp", identity)
        return Result.ok(f"Pressed {key}")

    # -------------------------------------------------------------------
    # 参照系
    # -------------------------------------------------------------------

    async def _cmd_snapshot(self, command: Command) -> Result:
        nodes = await self._page.accessibility_tree()
        return Result.snapshot(format_accessibility_tree(nodes))

    async def _cmd_screenshot(self, command: Command) -> Result:
        full_page = bool(command.args) and command.args[0].lower() == "full"
        if not full_page:
            return Result.screenshot(await self._page.capture_screenshot())

        width, height = await self._page.content_size()
        await self._page.set_viewport_override(math.ceil(width), math.ceil(height))
        try:
            data = await self._page.capture_screenshot(Clip(0, 0, width, height, 1.0))
        finally:
            await self._page.clear_viewport_override()
        return Result.screenshot(data)

    async def _cmd_eval(self, command: Command) -> Result:
        expression = command_remainder(command.raw)
        outcome = await self._page.evaluate(expression)
        if outcome.exception is not None:
            return Result.error(outcome.exception or "Evaluation error")
        if outcome.undefined:
            return Result.info("undefined")
        return Result.info(json.dumps(outcome.value, indent=2, ensure_ascii=False))

    # -------------------------------------------------------------------
    # 検証系
    # -------------------------------------------------------------------

    async def _cmd_verify_text(self, command: Command) -> Result:
        text = command.args[0]
        expect_present = command.kind is CommandKind.VERIFY_TEXT
        found = text in await self._page.body_text()
        if expect_present:
            if found:
                return Result.ok(f'PASS: Text "{text}" found on page')
            return Result.error(f'FAIL: Text "{text}" not found on page')
        if not found:
            return Result.ok(f'PASS: Text "{text}" not present (as expected)')
        return Result.error(f'FAIL: Text "{text}" was found on page (expected absent)')

    async def _cmd_verify_element(self, command: Command) -> Result:
        target = command.args[0]
        expect_present = command.kind is CommandKind.VERIFY_ELEMENT
        dom = await self._page.dom_snapshot()
        found = self._resolver.find_click(dom, parse_target(target)) is not None
        if expect_present:
            if found:
                return Result.ok(f'PASS: Element "{target}" found')
            return Result.error(f'FAIL: Element "{target}" not found')
        if not found:
            return Result.ok(f'PASS: Element "{target}" not present (as expected)')
        return Result.error(f'FAIL: Element "{target}" was found (expected absent)')

    async def _cmd_verify_url(self, command: Command) -> Result:
        expected = command.args[0]
        url = await self._page.current_url()
        if expected in url:
            return Result.ok(f'PASS: URL contains "{expected}" ({url})')
        return Result.error(f'FAIL: URL does not contain "{expected}" ({url})')

    async def _cmd_verify_title(self, command: Command) -> Result:
        expected = command.args[0]
        title = await self._page.title()
        if expected in title:
            return Result.ok(f'PASS: Title contains "{expected}" ("{title}")')
        return Result.error(f'FAIL: Title does not contain "{expected}" ("{title}")')

    # -------------------------------------------------------------------
    # コンソール系
    # -------------------------------------------------------------------

    async def _cmd_export(self, command: Command) -> Result:
        source = command_remainder(command.raw)
        statement = to_statement(source, registry=self._registry)
        if statement is None:
            return Result.error(f"Cannot convert: {source}")
        return Result.info(statement)

    async def _cmd_help(self, command: Command) -> Result:
        return Result.info(self._registry.help_text())
