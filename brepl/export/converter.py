"""
Exporter — コマンドを Playwright テストコードに変換する

ページに触れない純粋関数として、コマンド 1 行を Playwright の文 1 つに、
スクリプト全体をテストファイルに変換する。

主な機能:
  - to_statement(): コマンド 1 行 → 文（必須引数不足の場合は None）
  - pw_to_playwright(): TypeScript（@playwright/test）向けの to_statement
  - export_script(): Jinja2 テンプレートによるテストファイル全体の生成

出力ターゲット:
  - ts: @playwright/test（TypeScript）
  - python: pytest-playwright（sync API）

文の生成関数は CommandKind をキーに登録するため、エイリアスの集合は
コマンドレジストリと常に一致する。
"""

from __future__ import annotations

import enum
import json
import logging
import re
from pathlib import Path
from typing import Callable, Iterable, Optional

from jinja2 import Environment, FileSystemLoader

from ..dsl.commands import CommandKind, CommandRegistry, create_default_registry
from ..dsl.parser import LineKind, classify_line, command_remainder

logger = logging.getLogger(__name__)

# テンプレートディレクトリのパス
_TEMPLATES_DIR = Path(__file__).parent / "templates"

# 文の生成関数: (引数, コマンド名以降の生テキスト) → 文
Builder = Callable[[list[str], str], Optional[str]]

_REF_PATTERN = re.compile(r"^e\d+$")
_SCHEME_PATTERN = re.compile(r"^https?://", re.IGNORECASE)
# JavaScript の正規表現リテラルでエスケープが必要な文字
_JS_REGEX_SPECIAL = re.compile(r"[.*+?^${}()|\[\]\\/]")


class ExportTarget(str, enum.Enum):
    """エクスポート先の言語。"""

    TYPESCRIPT = "ts"
    PYTHON = "python"


# ---------------------------------------------------------------------------
# 共通ヘルパー
# ---------------------------------------------------------------------------

def _lit(value: str) -> str:
    """文字列リテラル（TypeScript / Python 共通の JSON 形式）。"""
    return json.dumps(value, ensure_ascii=False)


def _url(value: str) -> str:
    if _SCHEME_PATTERN.match(value):
        return value
    return f"https://{value}"


def _capitalize(key: str) -> str:
    return key[:1].upper() + key[1:]


def _js_regex(value: str) -> str:
    return "/" + _JS_REGEX_SPECIAL.sub(lambda m: "\\" + m.group(0), value) + "/"


def _first(args: list[str]) -> Optional[str]:
    return args[0] if args else None


# ---------------------------------------------------------------------------
# TypeScript（@playwright/test）
# ---------------------------------------------------------------------------

def _ts_click(args: list[str], rest: str) -> Optional[str]:
    if not args:
        return None
    text = args[0]
    if _REF_PATTERN.match(text):
        return f"// click {text}: snapshot ref, use a locator instead"
    if len(args) > 1:
        return f"await page.getByText({_lit(args[1])}).getByText({_lit(text)}).click();"
    return f"await page.getByText({_lit(text)}).click();"


def _one(template: str) -> Builder:
    """第 1 引数を 1 つ埋め込む生成関数を作る。"""

    def build(args: list[str], rest: str) -> Optional[str]:
        first = _first(args)
        if first is None:
            return None
        return template.format(_lit(first))

    return build


def _two(template: str) -> Builder:
    def build(args: list[str], rest: str) -> Optional[str]:
        if len(args) < 2:
            return None
        return template.format(_lit(args[0]), _lit(args[1]))

    return build


def _fixed(statement: str) -> Builder:
    return lambda args, rest: statement


_TS_BUILDERS: dict[CommandKind, Builder] = {
    CommandKind.GOTO: lambda a, r: f"await page.goto({_lit(_url(a[0]))});" if a else None,
    CommandKind.CLICK: _ts_click,
    CommandKind.DBLCLICK: _one("await page.getByText({}).dblclick();"),
    CommandKind.FILL: _two("await page.getByLabel({}).fill({});"),
    CommandKind.SELECT: _two("await page.getByLabel({}).selectOption({});"),
    CommandKind.CHECK: _one("await page.getByLabel({}).check();"),
    CommandKind.UNCHECK: _one("await page.getByLabel({}).uncheck();"),
    CommandKind.HOVER: _one("await page.getByText({}).hover();"),
    CommandKind.PRESS: lambda a, r: (
        f"await page.keyboard.press({_lit(_capitalize(a[0]))});" if a else None
    ),
    CommandKind.SCREENSHOT: lambda a, r: (
        "await page.screenshot({ path: 'screenshot.png', fullPage: true });"
        if a and a[0] == "full"
        else "await page.screenshot({ path: 'screenshot.png' });"
    ),
    CommandKind.SNAPSHOT: _fixed("// snapshot: no Playwright equivalent (use Playwright Inspector)"),
    CommandKind.EVAL: lambda a, r: f"await page.evaluate(() => {r});" if r else None,
    CommandKind.GO_BACK: _fixed("await page.goBack();"),
    CommandKind.GO_FORWARD: _fixed("await page.goForward();"),
    CommandKind.RELOAD: _fixed("await page.reload();"),
    CommandKind.VERIFY_TEXT: _one("await expect(page.getByText({})).toBeVisible();"),
    CommandKind.VERIFY_NO_TEXT: _one("await expect(page.getByText({})).not.toBeVisible();"),
    CommandKind.VERIFY_ELEMENT: _one("await expect(page.getByText({})).toBeVisible();"),
    CommandKind.VERIFY_NO_ELEMENT: _one("await expect(page.getByText({})).not.toBeVisible();"),
    CommandKind.VERIFY_URL: lambda a, r: (
        f"await expect(page).toHaveURL({_js_regex(a[0])});" if a else None
    ),
    CommandKind.VERIFY_TITLE: lambda a, r: (
        f"await expect(page).toHaveTitle({_js_regex(a[0])});" if a else None
    ),
    CommandKind.EXPORT: _fixed("// export: console command, nothing to run"),
    CommandKind.HELP: _fixed("// help: console command, nothing to run"),
}


# ---------------------------------------------------------------------------
# Python（pytest-playwright sync API）
# ---------------------------------------------------------------------------

def _py_click(args: list[str], rest: str) -> Optional[str]:
    if not args:
        return None
    text = args[0]
    if _REF_PATTERN.match(text):
        return f"# click {text}: snapshot ref, use a locator instead"
    if len(args) > 1:
        return f"page.get_by_text({_lit(args[1])}).get_by_text({_lit(text)}).click()"
    return f"page.get_by_text({_lit(text)}).click()"


def _py_regex(value: str) -> str:
    return f"re.compile({_lit(re.escape(value))})"


_PY_BUILDERS: dict[CommandKind, Builder] = {
    CommandKind.GOTO: lambda a, r: f"page.goto({_lit(_url(a[0]))})" if a else None,
    CommandKind.CLICK: _py_click,
    CommandKind.DBLCLICK: _one("page.get_by_text({}).dblclick()"),
    CommandKind.FILL: _two("page.get_by_label({}).fill({})"),
    CommandKind.SELECT: _two("page.get_by_label({}).select_option({})"),
    CommandKind.CHECK: _one("page.get_by_label({}).check()"),
    CommandKind.UNCHECK: _one("page.get_by_label({}).uncheck()"),
    CommandKind.HOVER: _one("page.get_by_text({}).hover()"),
    CommandKind.PRESS: lambda a, r: (
        f"page.keyboard.press({_lit(_capitalize(a[0]))})" if a else None
    ),
    CommandKind.SCREENSHOT: lambda a, r: (
        'page.screenshot(path="screenshot.png", full_page=True)'
        if a and a[0] == "full"
        else 'page.screenshot(path="screenshot.png")'
    ),
    CommandKind.SNAPSHOT: _fixed("# snapshot: no Playwright equivalent (use Playwright Inspector)"),
    CommandKind.EVAL: lambda a, r: f"page.evaluate({_lit('() => ' + r)})" if r else None,
    CommandKind.GO_BACK: _fixed("page.go_back()"),
    CommandKind.GO_FORWARD: _fixed("page.go_forward()"),
    CommandKind.RELOAD: _fixed("page.reload()"),
    CommandKind.VERIFY_TEXT: _one("expect(page.get_by_text({})).to_be_visible()"),
    CommandKind.VERIFY_NO_TEXT: _one("expect(page.get_by_text({})).not_to_be_visible()"),
    CommandKind.VERIFY_ELEMENT: _one("expect(page.get_by_text({})).to_be_visible()"),
    CommandKind.VERIFY_NO_ELEMENT: _one("expect(page.get_by_text({})).not_to_be_visible()"),
    CommandKind.VERIFY_URL: lambda a, r: (
        f"expect(page).to_have_url({_py_regex(a[0])})" if a else None
    ),
    CommandKind.VERIFY_TITLE: lambda a, r: (
        f"expect(page).to_have_title({_py_regex(a[0])})" if a else None
    ),
    CommandKind.EXPORT: _fixed("# export: console command, nothing to run"),
    CommandKind.HELP: _fixed("# help: console command, nothing to run"),
}


_BUILDERS: dict[ExportTarget, dict[CommandKind, Builder]] = {
    ExportTarget.TYPESCRIPT: _TS_BUILDERS,
    ExportTarget.PYTHON: _PY_BUILDERS,
}

_COMMENT_PREFIX: dict[ExportTarget, str] = {
    ExportTarget.TYPESCRIPT: "//",
    ExportTarget.PYTHON: "#",
}

_TEMPLATES: dict[ExportTarget, str] = {
    ExportTarget.TYPESCRIPT: "playwright_test.ts.j2",
    ExportTarget.PYTHON: "playwright_test.py.j2",
}

_INDENT: dict[ExportTarget, str] = {
    ExportTarget.TYPESCRIPT: "  ",
    ExportTarget.PYTHON: "    ",
}

_default_registry: Optional[CommandRegistry] = None


def _registry_or_default(registry: Optional[CommandRegistry]) -> CommandRegistry:
    global _default_registry
    if registry is not None:
        return registry
    if _default_registry is None:
        _default_registry = create_default_registry()
    return _default_registry


def builders_for(target: ExportTarget) -> dict[CommandKind, Builder]:
    """ターゲットごとの生成関数テーブルを返す。"""
    return dict(_BUILDERS[ExportTarget(target)])


# ---------------------------------------------------------------------------
# パブリック API
# ---------------------------------------------------------------------------

def to_statement(
    cmd: str,
    target: ExportTarget = ExportTarget.TYPESCRIPT,
    *,
    registry: Optional[CommandRegistry] = None,
) -> Optional[str]:
    """コマンド 1 行を Playwright の文に変換する。

    Args:
        cmd: コマンド行
        target: 出力先の言語
        registry: コマンドレジストリ。None の場合は標準レジストリ

    Returns:
        変換後の文。空行・コメント・必須引数不足の場合は None。
        未知のコマンドは "unknown command" のコメント。
    """
    target = ExportTarget(target)
    command = _registry_or_default(registry).parse(cmd)
    if command is None:
        return None
    if command.kind is None:
        return f"{_COMMENT_PREFIX[target]} unknown command: {cmd.strip()}"
    builder = _BUILDERS[target][command.kind]
    return builder(command.args, command_remainder(cmd))


def pw_to_playwright(cmd: str) -> Optional[str]:
    """コマンド 1 行を TypeScript（@playwright/test）の文に変換する。"""
    return to_statement(cmd, ExportTarget.TYPESCRIPT)


def convert_lines(
    lines: Iterable[str],
    target: ExportTarget = ExportTarget.TYPESCRIPT,
    *,
    registry: Optional[CommandRegistry] = None,
) -> list[str]:
    """スクリプト行をテスト本体の文に変換する（インデントなし）。

    コメント行はコードコメントに、空行は空行のまま、
    変換できない行は説明コメントに置き換える。
    """
    target = ExportTarget(target)
    prefix = _COMMENT_PREFIX[target]
    statements: list[str] = []
    for line in lines:
        kind = classify_line(line)
        if kind is LineKind.BLANK:
            statements.append("")
            continue
        stripped = line.strip()
        if kind is LineKind.COMMENT:
            statements.append(prefix + stripped[1:])
            continue
        converted = to_statement(stripped, target, registry=registry)
        if converted is None:
            logger.debug("変換できない行をコメントに置き換えます: %s", stripped)
            converted = f"{prefix} could not convert: {stripped}"
        statements.append(converted)
    return statements


def _test_function_name(title: str) -> str:
    name = re.sub(r"\W+", "_", title.lower()).strip("_")
    return name or "recorded_session"


def export_script(
    lines: Iterable[str],
    target: ExportTarget = ExportTarget.TYPESCRIPT,
    *,
    title: str = "recorded session",
    registry: Optional[CommandRegistry] = None,
) -> str:
    """スクリプト全体をテストファイルに変換する。

    Args:
        lines: スクリプト行
        target: 出力先の言語
        title: テスト名
        registry: コマンドレジストリ

    Returns:
        テストファイルのソースコード
    """
    target = ExportTarget(target)
    statements = convert_lines(lines, target, registry=registry)
    # 末尾の空行は出力しない
    while statements and not statements[-1]:
        statements.pop()

    # Python の関数本体にはコメント以外の文が 1 つ以上必要
    prefix = _COMMENT_PREFIX[target]
    if target is ExportTarget.PYTHON and all(not s or s.startswith(prefix) for s in statements):
        statements.append("pass")

    indent = _INDENT[target]
    body = "\n".join(f"{indent}{s}" if s else "" for s in statements)

    env = Environment(
        loader=FileSystemLoader(str(_TEMPLATES_DIR)),
        autoescape=False,
        keep_trailing_newline=True,
    )
    template = env.get_template(_TEMPLATES[target])
    return template.render(
        title=title.replace("\\", "\\\\").replace("'", "\\'"),
        function_name=_test_function_name(title),
        body=body,
    )
