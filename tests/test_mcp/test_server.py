"""
Server テスト — MCP サーバーのツール定義・整形関数のテスト

ブラウザを起動しないツール（未起動時のエラー・export）のみ実際に呼び出す。

注意: pytest-asyncio を使用せず、asyncio.run() で同期テストとして実行。
"""

from __future__ import annotations

import asyncio

import pytest
from fastmcp import Client

from brepl.config import ReplConfig
from brepl.core.executor import CommandExecutor
from brepl.core.results import Result
from brepl.core.runner import SessionRunner
from brepl.core.transport import LocalTransport
from brepl.dsl.script import ScriptBuffer
from brepl.mcp import create_server
from brepl.mcp.server import format_result, format_run

from conftest import FakePage

_TOOLS = {
    "brepl_launch",
    "brepl_command",
    "brepl_run",
    "brepl_record_start",
    "brepl_record_stop",
    "brepl_export",
    "brepl_close",
}


def _call(server, name: str, arguments: dict) -> str:
    async def scenario() -> str:
        async with Client(server) as client:
            result = await client.call_tool(name, arguments)
            return result.content[0].text

    return asyncio.run(scenario())


@pytest.fixture
def server():
    return create_server(ReplConfig())


# ---------------------------------------------------------------------------
# サーバー生成
# ---------------------------------------------------------------------------

class TestCreateServer:
    """create_server() のテスト。"""

    def test_server_has_name(self, server):
        assert server.name == "brepl"

    def test_tools_are_registered(self, server):
        """全ツールが登録されていること。"""
        async def names() -> set[str]:
            async with Client(server) as client:
                return {tool.name for tool in await client.list_tools()}

        assert _TOOLS <= asyncio.run(names())


# ---------------------------------------------------------------------------
# ツール呼び出し
# ---------------------------------------------------------------------------

class TestTools:
    """ブラウザを必要としないツール呼び出しのテスト。"""

    @pytest.mark.parametrize("name, arguments", [
        ("brepl_command", {"command": "reload"}),
        ("brepl_run", {"script": "reload"}),
        ("brepl_record_start", {}),
        ("brepl_record_stop", {}),
    ])
    def test_not_launched(self, server, name, arguments):
        assert _call(server, name, arguments).startswith("Error: Browser not launched")

    def test_close_without_launch(self, server):
        assert _call(server, "brepl_close", {}) == "Browser is not running."

    def test_export(self, server):
        code = _call(server, "brepl_export", {"script": "goto https://x.com\nreload", "title": "smoke"})

        assert "test('smoke', async ({ page }) => {" in code
        assert "  await page.reload();" in code

    def test_export_python(self, server):
        code = _call(server, "brepl_export", {"script": "reload", "target": "python"})
        assert "def test_recorded_session(page: Page) -> None:" in code

    def test_export_unknown_target(self, server):
        assert _call(server, "brepl_export", {"script": "reload", "target": "java"}).startswith("Error:")


# ---------------------------------------------------------------------------
# 整形関数
# ---------------------------------------------------------------------------

class TestFormatResult:
    """format_result のテスト。"""

    def test_error(self):
        assert format_result(Result.error("Element not found: X")) == "Error: Element not found: X"

    def test_screenshot(self):
        assert format_result(Result.screenshot("iVBOR")) == "data:image/png;base64,iVBOR"

    def test_info(self):
        assert format_result(Result.info("Page title: Home")) == "Page title: Home"


class TestFormatRun:
    """format_run のテスト。"""

    def test_lines_and_summary(self, login_page: FakePage):
        buffer = ScriptBuffer.from_text('# check\nverify-title "Sign in"\nverify-text "Missing"\n')
        transport = LocalTransport()
        transport.attach("tab-1", CommandExecutor(login_page))
        state = asyncio.run(SessionRunner(transport, "tab-1", settle_delay_ms=0).run(buffer))

        lines = format_run(state, buffer).splitlines()

        assert lines[0].startswith('   2 PASS verify-title "Sign in"')
        assert lines[1].startswith('   3 FAIL verify-text "Missing"')
        assert lines[-1] == "1 passed / 1 failed"
