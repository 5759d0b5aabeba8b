"""
コマンドレジストリ — コマンド語彙の登録・検索・一覧

正規コマンド名とエイリアスを CommandKind に対応付ける固定テーブルを管理する。
エイリアス解決は解析時に 1 度だけ行い、以降の実行・エクスポートは
CommandKind をキーにディスパッチする。

主な構成:
  - CommandKind: コマンド種別の列挙
  - CommandInfo: コマンドのメタ情報（エイリアス、最小引数数、Usage、説明）
  - CommandRegistry: 登録・検索・一覧・補完・ヘルプ生成
  - Command: エイリアス解決済みのコマンド
  - parse(): 行の解析とエイリアス解決
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Optional

from .parser import parse_command

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# コマンド種別
# ---------------------------------------------------------------------------

class CommandKind(str, enum.Enum):
    """コマンド種別（値は正規コマンド名）。"""

    GOTO = "goto"
    CLICK = "click"
    DBLCLICK = "dblclick"
    FILL = "fill"
    SELECT = "select"
    CHECK = "check"
    UNCHECK = "uncheck"
    HOVER = "hover"
    PRESS = "press"
    SNAPSHOT = "snapshot"
    SCREENSHOT = "screenshot"
    EVAL = "eval"
    GO_BACK = "go-back"
    GO_FORWARD = "go-forward"
    RELOAD = "reload"
    VERIFY_TEXT = "verify-text"
    VERIFY_NO_TEXT = "verify-no-text"
    VERIFY_ELEMENT = "verify-element"
    VERIFY_NO_ELEMENT = "verify-no-element"
    VERIFY_URL = "verify-url"
    VERIFY_TITLE = "verify-title"
    EXPORT = "export"
    HELP = "help"


# ---------------------------------------------------------------------------
# コマンドメタ情報
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CommandInfo:
    """コマンドのメタ情報。

    Attributes:
        kind: コマンド種別
        aliases: エイリアス（正規名は含まない）
        min_args: 必須引数の数。不足時は usage を返す
        usage: Usage 文字列
        signature: ヘルプ表示用の書式
        description: ヘルプ表示用の説明
        failure_label: ドライバエラー時の "<label> failed: ..." の label
        category: navigation / action / inspection / verification / console
    """

    kind: CommandKind
    signature: str
    description: str
    failure_label: str
    category: str
    min_args: int = 0
    aliases: tuple[str, ...] = ()
    usage: str = ""

    @property
    def name(self) -> str:
        """正規コマンド名を返す。"""
        return self.kind.value


@dataclass(frozen=True)
class Command:
    """エイリアス解決済みのコマンド。

    Attributes:
        name: 入力された名前（小文字化済み）。既知の場合は正規名
        args: 引数リスト
        raw: 元の行
        info: コマンドのメタ情報。未知のコマンドは None
    """

    name: str
    args: list[str] = field(default_factory=list)
    raw: str = ""
    info: Optional[CommandInfo] = None

    @property
    def kind(self) -> Optional[CommandKind]:
        """コマンド種別を返す。未知のコマンドは None。"""
        return self.info.kind if self.info is not None else None


# ---------------------------------------------------------------------------
# CommandRegistry 本体
# ---------------------------------------------------------------------------

class CommandRegistry:
    """コマンドの登録・検索・一覧を管理するレジストリ。

    使用例::

        registry = create_default_registry()
        info = registry.lookup("c")        # → click
        registry.completions("ver")        # → ["verify-element", ...]
    """

    def __init__(self) -> None:
        """空のレジストリを初期化する。"""
        self._commands: dict[CommandKind, CommandInfo] = {}
        self._names: dict[str, CommandKind] = {}

    def register(self, info: CommandInfo) -> None:
        """コマンドを登録する。

        Args:
            info: コマンドのメタ情報

        Raises:
            ValueError: 名前またはエイリアスが別のコマンドと衝突する場合
        """
        for name in (info.name, *info.aliases):
            owner = self._names.get(name)
            if owner is not None and owner is not info.kind:
                raise ValueError(
                    f"コマンド名 '{name}' は既に {owner.value} に登録されています"
                )

        self._commands[info.kind] = info
        for name in (info.name, *info.aliases):
            self._names[name] = info.kind
        logger.debug("コマンド '%s' を登録しました (aliases=%s)", info.name, info.aliases)

    def lookup(self, name: str) -> Optional[CommandInfo]:
        """名前またはエイリアスでコマンドを検索する（大文字小文字を区別しない）。

        Args:
            name: コマンド名またはエイリアス

        Returns:
            CommandInfo。未登録の場合は None
        """
        kind = self._names.get(name.lower())
        if kind is None:
            return None
        return self._commands[kind]

    def get(self, name: str) -> CommandInfo:
        """名前でコマンドを取得する。

        Raises:
            KeyError: 未登録の場合
        """
        info = self.lookup(name)
        if info is None:
            registered = ", ".join(sorted(self._names))
            raise KeyError(
                f"コマンド '{name}' は登録されていません。"
                f"登録済み: [{registered}]"
            )
        return info

    def info(self, kind: CommandKind) -> CommandInfo:
        """CommandKind からメタ情報を取得する。"""
        return self._commands[kind]

    def has(self, name: str) -> bool:
        """名前またはエイリアスが登録済みかどうかを返す。"""
        return name.lower() in self._names

    def list_all(self) -> list[CommandInfo]:
        """登録順の CommandInfo リストを返す。"""
        return list(self._commands.values())

    @property
    def names(self) -> list[str]:
        """正規名とエイリアスをすべて返す（ソート済み）。"""
        return sorted(self._names)

    def completions(self, prefix: str) -> list[str]:
        """前方一致するコマンド名・エイリアスを返す。

        Args:
            prefix: 入力途中の文字列

        Returns:
            前方一致する名前のソート済みリスト。空文字列の場合は空リスト。
        """
        prefix = prefix.strip().lower()
        if not prefix or " " in prefix:
            return []
        return [name for name in self.names if name.startswith(prefix)]

    def help_text(self) -> str:
        """全コマンドのヘルプテキストを生成する。"""
        width = max(len(info.signature) for info in self._commands.values()) + 2
        lines = ["Commands:"]
        for info in self._commands.values():
            alias = f" (alias: {', '.join(info.aliases)})" if info.aliases else ""
            lines.append(f"  {info.signature.ljust(width)}{info.description}{alias}")
        return "\n".join(lines)

    def parse(self, raw: str) -> Optional[Command]:
        """行を解析し、エイリアスを解決する。

        Args:
            raw: コマンド行

        Returns:
            Command。空行・コメント行の場合は None。
            未知のコマンドは info=None の Command。
        """
        parsed = parse_command(raw)
        if parsed is None:
            return None
        info = self.lookup(parsed.command)
        name = info.name if info is not None else parsed.command
        return Command(name=name, args=list(parsed.args), raw=raw, info=info)


# ---------------------------------------------------------------------------
# 標準コマンドテーブル
# ---------------------------------------------------------------------------

_DEFAULT_COMMANDS: tuple[CommandInfo, ...] = (
    # navigation
    CommandInfo(CommandKind.GOTO, "goto <url>", "Navigate to a URL",
                "Navigation", "navigation", min_args=1, aliases=("open",),
                usage="Usage: goto <url>"),
    CommandInfo(CommandKind.GO_BACK, "go-back", "Navigate back in history",
                "Go back", "navigation", aliases=("back",)),
    CommandInfo(CommandKind.GO_FORWARD, "go-forward", "Navigate forward in history",
                "Go forward", "navigation", aliases=("forward",)),
    CommandInfo(CommandKind.RELOAD, "reload", "Reload the page",
                "Reload", "navigation"),
    # action
    CommandInfo(CommandKind.CLICK, 'click <ref|"text"> ["scope"]',
                "Click an element by snapshot ref or text",
                "Click", "action", min_args=1, aliases=("c",),
                usage='Usage: click <ref> or click "text" [scope]'),
    CommandInfo(CommandKind.DBLCLICK, 'dblclick "text"', "Double-click an element",
                "Double-click", "action", min_args=1,
                usage='Usage: dblclick "text"'),
    CommandInfo(CommandKind.FILL, 'fill "target" "value"', "Fill an input field",
                "Fill", "action", min_args=2, aliases=("f",),
                usage='Usage: fill "target" "value"'),
    CommandInfo(CommandKind.SELECT, 'select "target" "option"',
                "Select an option in a dropdown",
                "Select", "action", min_args=2,
                usage='Usage: select "target" "option"'),
    CommandInfo(CommandKind.CHECK, 'check "target"', "Check a checkbox",
                "Check", "action", min_args=1, usage='Usage: check "target"'),
    CommandInfo(CommandKind.UNCHECK, 'uncheck "target"', "Uncheck a checkbox",
                "Uncheck", "action", min_args=1, usage='Usage: uncheck "target"'),
    CommandInfo(CommandKind.HOVER, 'hover "text"', "Hover over an element",
                "Hover", "action", min_args=1, usage='Usage: hover "text"'),
    CommandInfo(CommandKind.PRESS, "press <key>", "Press a key (Enter, Tab, Escape, ...)",
                "Press", "action", min_args=1, aliases=("p",),
                usage="Usage: press <key>"),
    # inspection
    CommandInfo(CommandKind.SNAPSHOT, "snapshot", "Show the accessibility tree with refs",
                "Snapshot", "inspection", aliases=("s",)),
    CommandInfo(CommandKind.SCREENSHOT, "screenshot [full]",
                "Capture the viewport (or the full page)",
                "Screenshot", "inspection"),
    CommandInfo(CommandKind.EVAL, "eval <expr>", "Evaluate a JavaScript expression",
                "Eval", "inspection", min_args=1, usage="Usage: eval <expression>"),
    # verification
    CommandInfo(CommandKind.VERIFY_TEXT, 'verify-text "text"', "Assert text is on the page",
                "Verify", "verification", min_args=1,
                usage='Usage: verify-text "text"'),
    CommandInfo(CommandKind.VERIFY_NO_TEXT, 'verify-no-text "text"',
                "Assert text is not on the page",
                "Verify", "verification", min_args=1,
                usage='Usage: verify-no-text "text"'),
    CommandInfo(CommandKind.VERIFY_ELEMENT, 'verify-element "text"',
                "Assert an element exists",
                "Verify", "verification", min_args=1,
                usage='Usage: verify-element "text"'),
    CommandInfo(CommandKind.VERIFY_NO_ELEMENT, 'verify-no-element "text"',
                "Assert an element does not exist",
                "Verify", "verification", min_args=1,
                usage='Usage: verify-no-element "text"'),
    CommandInfo(CommandKind.VERIFY_URL, 'verify-url "substring"',
                "Assert the URL contains a substring",
                "Verify", "verification", min_args=1,
                usage='Usage: verify-url "substring"'),
    CommandInfo(CommandKind.VERIFY_TITLE, 'verify-title "substring"',
                "Assert the title contains a substring",
                "Verify", "verification", min_args=1,
                usage='Usage: verify-title "substring"'),
    # console
    CommandInfo(CommandKind.EXPORT, "export [command]",
                "Convert a command (or the session) to Playwright code",
                "Export", "console", min_args=1, usage="Usage: export <command>"),
    CommandInfo(CommandKind.HELP, "help", "Show this help", "Help", "console"),
)


def create_default_registry() -> CommandRegistry:
    """標準コマンドを登録済みのレジストリを生成する。"""
    registry = CommandRegistry()
    for info in _DEFAULT_COMMANDS:
        registry.register(info)
    return registry
