"""
brepl MCP Server — AI エージェント向けのコマンド実行・記録サーバー

FastMCP を使用して、AI エージェントがコマンド言語でブラウザを操作し、
スクリプトの実行・記録・Playwright テストへの変換を行える MCP サーバーを提供する。

ツール一覧:
  - brepl_launch: ブラウザを起動（任意で URL へ遷移）
  - brepl_command: コマンドを 1 行実行
  - brepl_run: スクリプトを最後まで実行し、行ごとの結果を返す
  - brepl_record_start / brepl_record_stop: ブラウザ操作の記録
  - brepl_export: スクリプトを Playwright テストコードに変換
  - brepl_close: ブラウザを終了
"""

from __future__ import annotations

import dataclasses
import logging
from pathlib import Path
from typing import Optional

from fastmcp import FastMCP

from ..config import ReplConfig, load_config
from ..core.results import Result, ResultKind
from ..core.runner import LineOutcome, SessionRunner, SessionState
from ..dsl.script import ScriptBuffer
from ..export import export_script
from ..workspace import Workspace

logger = logging.getLogger(__name__)

_NOT_LAUNCHED = "Error: Browser not launched. Call brepl_launch first."


def format_result(result: Result) -> str:
    """Result をツールの戻り値の文字列にする。"""
    if result.kind is ResultKind.ERROR:
        return f"Error: {result.data}"
    if result.kind is ResultKind.SCREENSHOT:
        return f"data:image/png;base64,{result.data}"
    return result.data


def format_run(state: SessionState, buffer: ScriptBuffer) -> str:
    """実行結果を行ごとの一覧と集計にする。"""
    lines = []
    for index, report in sorted(state.reports.items()):
        mark = "PASS" if report.outcome is LineOutcome.PASS else "FAIL"
        message = report.result.data if report.result is not None else ""
        lines.append(f"{index + 1:4d} {mark} {buffer[index].strip()}: {message}")
    if state.stopped:
        lines.append(f"Stopped before line {state.cursor + 1}")
    lines.append(state.stats)
    return "\n".join(lines)


def create_server(config: Optional[ReplConfig] = None) -> FastMCP:
    """brepl MCP サーバーを生成する。

    Args:
        config: 設定。None の場合は設定ファイル・環境変数から読み込む。

    Returns:
        設定済みの FastMCP サーバーインスタンス
    """
    if config is None:
        config = load_config()

    mcp = FastMCP("brepl")

    # ツール間で共有する状態
    state: dict = {
        "config": config,
        "workspace": None,
    }

    def _workspace() -> Optional[Workspace]:
        workspace: Optional[Workspace] = state["workspace"]
        if workspace is None or not workspace.is_open:
            return None
        return workspace

    # -------------------------------------------------------------------
    # ライフサイクル
    # -------------------------------------------------------------------

    @mcp.tool
    async def brepl_launch(url: Optional[str] = None, headed: Optional[bool] = None) -> str:
        """Launch a browser tab that commands will run against.

        Args:
            url: Optional URL to open after launch
            headed: Show browser window. None uses server config.

        Returns:
            Status message
        """
        if _workspace() is not None:
            return "Error: Browser already launched. Call brepl_close first."

        cfg: ReplConfig = state["config"]
        if headed is not None:
            cfg = dataclasses.replace(cfg, headed=headed)

        workspace = Workspace(cfg)
        try:
            result = await workspace.open(url)
        except Exception:
            await workspace.close()
            raise
        state["workspace"] = workspace
        if result is None:
            return "Browser launched."
        return f"Browser launched. {format_result(result)}"

    @mcp.tool
    async def brepl_close() -> str:
        """Close the browser. Any recording in progress is discarded."""
        workspace: Optional[Workspace] = state["workspace"]
        if workspace is None:
            return "Browser is not running."
        await workspace.close()
        state["workspace"] = None
        return "Browser closed."

    # -------------------------------------------------------------------
    # コマンド実行
    # -------------------------------------------------------------------

    @mcp.tool
    async def brepl_command(command: str) -> str:
        """Run one command, e.g. `goto example.com`, `click "Submit"`, `snapshot`.

        Call with `help` to list every command.

        Args:
            command: A single command line

        Returns:
            The command result message (prefixed with "Error:" on failure)
        """
        workspace = _workspace()
        if workspace is None:
            return _NOT_LAUNCHED
        return format_result(await workspace.send(command))

    @mcp.tool
    async def brepl_run(script: str) -> str:
        """Run a multi-line script top to bottom and report each line.

        Args:
            script: Script text, one command per line; `#` lines are comments

        Returns:
            Per-line PASS/FAIL list and a summary
        """
        workspace = _workspace()
        if workspace is None:
            return _NOT_LAUNCHED
        buffer = ScriptBuffer.from_text(script)
        runner = SessionRunner(
            workspace.transport,
            workspace.tab_id,
            settle_delay_ms=workspace.config.settle_delay_ms,
        )
        run_state = await runner.run(buffer)
        return format_run(run_state, buffer)

    # -------------------------------------------------------------------
    # 記録
    # -------------------------------------------------------------------

    @mcp.tool
    async def brepl_record_start() -> str:
        """Start recording user interaction in the browser as commands."""
        workspace = _workspace()
        if workspace is None:
            return _NOT_LAUNCHED
        if not await workspace.start_recording():
            return "Already recording."
        return "Recording started. Interact with the page, then call brepl_record_stop."

    @mcp.tool
    async def brepl_record_stop(output_path: Optional[str] = None) -> str:
        """Stop recording and return the recorded script.

        Args:
            output_path: Optional path to save the script (.pw)

        Returns:
            The recorded commands, one per line
        """
        workspace = _workspace()
        if workspace is None:
            return _NOT_LAUNCHED
        lines = await workspace.stop_recording()
        text = "\n".join(lines)
        if output_path:
            path = ScriptBuffer(lines, filename=Path(output_path)).save()
            return f"Saved {len(lines)} commands to {path}\n{text}"
        return text or "Nothing recorded."

    # -------------------------------------------------------------------
    # 変換
    # -------------------------------------------------------------------

    @mcp.tool
    async def brepl_export(
        script: str,
        target: Optional[str] = None,
        title: str = "recorded session",
    ) -> str:
        """Convert a script into a Playwright test file.

        Args:
            script: Script text, one command per line
            target: "ts" (@playwright/test) or "python" (pytest-playwright). None uses config.
            title: Test name

        Returns:
            Test source code
        """
        cfg: ReplConfig = state["config"]
        try:
            return export_script(script.splitlines(), target or cfg.export_target, title=title)
        except ValueError as exc:
            return f"Error: {exc}"

    logger.info("MCP サーバーを生成しました")
    return mcp
