"""
CLI エントリポイント — Typer ベースのコマンドラインインターフェース

brepl コマンドとして以下のサブコマンドを提供する:
  - repl: 対話的にコマンドを実行
  - run: スクリプト（.pw）を実行し、結果を集計
  - record: ブラウザ操作を記録してスクリプトに保存
  - export: スクリプトを Playwright テストコードに変換
  - convert: コマンド 1 行を Playwright の文に変換
  - list-commands: コマンド一覧
  - mcp: MCP サーバーを起動
"""

from __future__ import annotations

import dataclasses
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional

import typer

if TYPE_CHECKING:
    from .config import ReplConfig
    from .console import OutputEntry

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Typer アプリ定義
# ---------------------------------------------------------------------------

app = typer.Typer(
    help=(
        "brepl — ブラウザ操作コマンド言語の REPL / 記録 / 変換ツール\n\n"
        "基本の流れ:\n"
        "  1. brepl record https://example.com -o flow.pw   操作を記録\n"
        "  2. brepl run flow.pw                             記録した操作を再実行\n"
        "  3. brepl export flow.pw -o flow.spec.ts          Playwright テストに変換\n\n"
        "詳しくは各コマンドに --help を付けてください。"
    ),
    no_args_is_help=True,
)

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@app.callback()
def main(
    ctx: typer.Context,
    config_file: Optional[Path] = typer.Option(
        None, "--config", help="設定ファイル（省略時はカレントの brepl.yaml）",
    ),
    log_level: Optional[str] = typer.Option(
        None, "--log-level", help="ログレベル (DEBUG / INFO / WARNING / ERROR)",
    ),
) -> None:
    """設定を読み込み、ログを初期化する。"""
    from .config import load_config

    try:
        config = load_config(config_file, log_level=log_level)
    except Exception as exc:
        typer.echo(f"エラー: {exc}", err=True)
        raise typer.Exit(code=1)

    logging.basicConfig(level=getattr(logging, config.log_level), format=_LOG_FORMAT)
    ctx.obj = config


def _config(ctx: typer.Context, **overrides: Any) -> ReplConfig:
    """グローバル設定にサブコマンドの引数を適用したコピーを返す。"""
    from .config import ReplConfig, apply_cli_args

    base = ctx.obj if isinstance(ctx.obj, ReplConfig) else ReplConfig()
    return apply_cli_args(dataclasses.replace(base), **overrides)


def _echo_entry(entry: OutputEntry) -> None:
    from .console import EntryKind

    if entry.kind is EntryKind.COMMAND:
        typer.echo(f"> {entry.text}")
    elif entry.kind is EntryKind.ERROR:
        typer.echo(entry.text, err=True)
    elif entry.kind is EntryKind.SCREENSHOT:
        typer.echo(f"[screenshot: base64 PNG, {len(entry.text)} chars]")
    else:
        typer.echo(entry.text)


# ---------------------------------------------------------------------------
# repl コマンド
# ---------------------------------------------------------------------------

@app.command()
def repl(
    ctx: typer.Context,
    url: Optional[str] = typer.Argument(None, help="最初に開く URL"),
    headed: Optional[bool] = typer.Option(
        None, "--headed/--headless", help="ブラウザ表示モード（デフォルト: 設定値）",
    ),
    channel: Optional[str] = typer.Option(
        None, "--channel", "-c", help="ブラウザチャンネル (chrome / msedge など)",
    ),
) -> None:
    """ブラウザを開き、コマンドを対話的に実行する。

    コンソール内コマンド: history, clear, reset, export [command]。
    "record start" / "record stop" でブラウザ操作の記録を切り替え、
    exit または Ctrl-D で終了します。
    """
    import asyncio

    config = _config(ctx, headed=headed, channel=channel)
    try:
        asyncio.run(_repl(config, url))
    except KeyboardInterrupt:
        typer.echo("")
    except Exception as exc:
        typer.echo(f"エラー: {exc}", err=True)
        raise typer.Exit(code=1)


async def _repl(config: ReplConfig, url: Optional[str]) -> None:
    import asyncio

    from .console import Console
    from .workspace import Workspace

    workspace = Workspace(config)
    try:
        result = await workspace.open(url)
        if result is not None:
            typer.echo(result.data, err=not result.success)
        console = Console(workspace.transport, workspace.tab_id, target=config.export_target)

        def on_recorded(command: str) -> None:
            console.record(command)
            typer.echo(f"● {command}")

        typer.echo('Type "help" for available commands.')

        while True:
            try:
                line = await asyncio.to_thread(input, "brepl> ")
            except EOFError:
                break
            command = line.strip().lower()
            if command in ("exit", "quit"):
                break
            if command == "record start":
                started = await workspace.start_recording(on_command=on_recorded)
                typer.echo("Recording started." if started else "Already recording.")
                continue
            if command == "record stop":
                await workspace.stop_recording()
                typer.echo("Recording stopped.")
                continue
            for entry in await console.submit(line):
                _echo_entry(entry)
    finally:
        await workspace.close()


# ---------------------------------------------------------------------------
# run コマンド
# ---------------------------------------------------------------------------

@app.command()
def run(
    ctx: typer.Context,
    script: Path = typer.Argument(..., help="実行するスクリプト（.pw）"),
    headed: Optional[bool] = typer.Option(
        None, "--headed/--headless", help="ブラウザ表示モード（デフォルト: 設定値）",
    ),
    settle_ms: Optional[int] = typer.Option(
        None, "--settle-ms", help="コマンド間の待機（ミリ秒）",
    ),
    report_dir: Optional[Path] = typer.Option(
        None, "--report-dir", "-r", help="JSON / HTML / JUnit XML レポートの出力先",
    ),
) -> None:
    """スクリプトを先頭から最後まで実行する。失敗した行があれば終了コード 1。"""
    import asyncio

    from .core.reporting import Reporter
    from .core.runner import LineOutcome
    from .dsl.script import ScriptBuffer

    config = _config(ctx, headed=headed, settle_delay_ms=settle_ms)
    try:
        buffer = ScriptBuffer.load(script)
        state = asyncio.run(_run_script(config, buffer))

        typer.echo(f"スクリプト: {script}")
        typer.echo(f"結果: {state.stats}")

        if report_dir is not None:
            reporter = Reporter(title=script.stem)
            reporter.generate_json(state, buffer, report_dir)
            html_path = reporter.generate_html(state, buffer, report_dir)
            reporter.generate_junit_xml(state, buffer, report_dir)
            typer.echo(f"レポート: {html_path}")

        if state.fail_count or LineOutcome.FAIL in state.results:
            raise typer.Exit(code=1)
    except typer.Exit:
        raise
    except Exception as exc:
        typer.echo(f"エラー: {exc}", err=True)
        raise typer.Exit(code=1)


async def _run_script(config: ReplConfig, buffer: Any) -> Any:
    from .core.runner import LineOutcome, LineReport, SessionRunner
    from .workspace import Workspace

    def on_line(report: LineReport) -> None:
        number = f"{report.index + 1:4d}"
        if report.result is None:
            typer.echo(f"{number}  {report.line.strip()}")
            return
        mark = "✓" if report.outcome is LineOutcome.PASS else "✗"
        typer.echo(f"{number} {mark} {report.line.strip()}")
        if report.outcome is LineOutcome.FAIL:
            typer.echo(f"        {report.result.data}", err=True)

    workspace = Workspace(config)
    try:
        await workspace.open()
        runner = SessionRunner(
            workspace.transport,
            workspace.tab_id,
            settle_delay_ms=config.settle_delay_ms,
            on_line=on_line,
        )
        return await runner.run(buffer)
    finally:
        await workspace.close()


# ---------------------------------------------------------------------------
# record コマンド
# ---------------------------------------------------------------------------

@app.command()
def record(
    ctx: typer.Context,
    url: str = typer.Argument(..., help="記録を開始する URL"),
    output: Path = typer.Option(..., "--output", "-o", help="出力先スクリプト（.pw）"),
    channel: Optional[str] = typer.Option(
        None, "--channel", "-c", help="ブラウザチャンネル (chrome / msedge など)",
    ),
    debounce_ms: Optional[int] = typer.Option(
        None, "--debounce-ms", help="テキスト入力をまとめる待機時間（ミリ秒）",
    ),
) -> None:
    """ブラウザ操作を記録し、コマンドスクリプトとして保存する。

    ブラウザで操作したあと、ターミナルで Enter を押すと記録を終了します。
    """
    import asyncio

    from .dsl.script import ScriptBuffer

    config = _config(ctx, headed=True, channel=channel, fill_debounce_ms=debounce_ms)
    try:
        lines = asyncio.run(_record(config, url))
        buffer = ScriptBuffer(lines, filename=output)
        path = buffer.save()
        typer.echo(f"{len(buffer.executable_indices())} コマンドを保存しました: {path}")
    except Exception as exc:
        typer.echo(f"エラー: {exc}", err=True)
        raise typer.Exit(code=1)


async def _record(config: ReplConfig, url: str) -> list[str]:
    import asyncio

    from .workspace import Workspace

    workspace = Workspace(config)
    try:
        result = await workspace.open(url)
        if result is not None and not result.success:
            raise RuntimeError(result.data)
        await workspace.start_recording(on_command=lambda c: typer.echo(f"● {c}"))
        typer.echo("記録中... ブラウザを操作し、終わったら Enter を押してください。")
        try:
            await asyncio.to_thread(input)
        except EOFError:
            pass
        return [f"goto {url}", *await workspace.stop_recording()]
    finally:
        await workspace.close()


# ---------------------------------------------------------------------------
# export / convert コマンド
# ---------------------------------------------------------------------------

@app.command()
def export(
    ctx: typer.Context,
    script: Path = typer.Argument(..., help="変換するスクリプト（.pw）"),
    output: Optional[Path] = typer.Option(
        None, "--output", "-o", help="出力先ファイル（省略時は標準出力）",
    ),
    target: Optional[str] = typer.Option(
        None, "--target", "-t", help="出力形式 (ts / python)",
    ),
    title: Optional[str] = typer.Option(
        None, "--title", help="テスト名（省略時はファイル名）",
    ),
) -> None:
    """スクリプトを Playwright テストコードに変換する。"""
    from .dsl.script import ScriptBuffer
    from .export import export_script

    try:
        config = _config(ctx)
        buffer = ScriptBuffer.load(script)
        code = export_script(
            buffer.lines,
            target or config.export_target,
            title=title or script.stem,
        )
        if output is None:
            typer.echo(code, nl=False)
        else:
            output.parent.mkdir(parents=True, exist_ok=True)
            output.write_text(code, encoding="utf-8")
            typer.echo(f"テストコードを出力しました: {output}")
    except Exception as exc:
        typer.echo(f"エラー: {exc}", err=True)
        raise typer.Exit(code=1)


@app.command()
def convert(
    ctx: typer.Context,
    command: str = typer.Argument(..., help='変換するコマンド（例: \'click "Submit"\'）'),
    target: Optional[str] = typer.Option(
        None, "--target", "-t", help="出力形式 (ts / python)",
    ),
) -> None:
    """コマンド 1 行を Playwright の文に変換する。"""
    from .export import to_statement

    try:
        statement = to_statement(command, target or _config(ctx).export_target)
    except Exception as exc:
        typer.echo(f"エラー: {exc}", err=True)
        raise typer.Exit(code=1)

    if statement is None:
        typer.echo(f"エラー: 変換できません: {command}", err=True)
        raise typer.Exit(code=1)
    typer.echo(statement)


# ---------------------------------------------------------------------------
# list-commands コマンド
# ---------------------------------------------------------------------------

@app.command("list-commands")
def list_commands() -> None:
    """全コマンドの一覧を表示する。"""
    from .dsl.commands import create_default_registry

    registry = create_default_registry()
    all_commands = registry.list_all()

    # カテゴリごとにグループ化して表示
    categories: dict[str, list] = {}
    for info in all_commands:
        categories.setdefault(info.category, []).append(info)

    for category, commands in sorted(categories.items()):
        typer.echo(f"\n[{category}]")
        for info in commands:
            alias = f" (alias: {', '.join(info.aliases)})" if info.aliases else ""
            typer.echo(f"  {info.signature:36s} {info.description}{alias}")

    typer.echo(f"\n合計: {len(all_commands)} コマンド")


# ---------------------------------------------------------------------------
# mcp コマンド
# ---------------------------------------------------------------------------

@app.command()
def mcp(
    ctx: typer.Context,
    headed: Optional[bool] = typer.Option(
        None, "--headed/--headless", help="ブラウザ表示モード（デフォルト: 設定値）",
    ),
) -> None:
    """MCP サーバーを起動する（stdio）。"""
    from .mcp import create_server

    try:
        server = create_server(config=_config(ctx, headed=headed))
        server.run()
    except Exception as exc:
        typer.echo(f"エラー: {exc}", err=True)
        raise typer.Exit(code=1)
