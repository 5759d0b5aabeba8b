"""
Workspace のユニットテスト

BrowserSession をモックに差し替え、タブには FakePage / FakeCdpPage を使う。
記録の開始・終了を繰り返したときの recorded とコールバックの扱いを検証する。

注意: pytest-asyncio を使用せず、asyncio.run() で同期テストとして実行。
"""

from __future__ import annotations

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from brepl.browser.live_recorder import BINDING_NAME
from brepl.config import ReplConfig
from brepl.workspace import Workspace

from conftest import LOGIN_HTML, FakeCdpPage, FakePage, parse_html


def _workspace(tab: object) -> Workspace:
    """tab-1 が開いた状態の Workspace を返す。"""
    workspace = Workspace(ReplConfig(headed=False))
    session = MagicMock()
    session.is_active = True
    session.tab.return_value = tab
    session.launch = AsyncMock()
    session.open_tab = AsyncMock(return_value="tab-1")
    session.close = AsyncMock()
    workspace.session = session
    workspace.tab_id = "tab-1"
    return workspace


def _click(page: FakeCdpPage, index: int) -> None:
    nodes, _ = parse_html(LOGIN_HTML)
    payload = json.dumps({"kind": "click", "nodes": nodes, "target": index})
    page.playwright_page.bindings[BINDING_NAME](payload)


class TestOpen:
    """open() / send() のテスト。"""

    def test_open_attaches_executor(self, login_page: FakePage) -> None:
        workspace = _workspace(login_page)
        workspace.tab_id = None

        async def scenario():
            opened = await workspace.open()
            return opened, await workspace.send('verify-title "Sign in"')

        opened, result = asyncio.run(scenario())

        assert opened is None
        assert workspace.tab_id == "tab-1"
        assert result.success is True
        workspace.session.launch.assert_awaited_once_with(workspace.config)

    def test_send_without_browser(self) -> None:
        workspace = Workspace()
        with pytest.raises(RuntimeError):
            asyncio.run(workspace.send("reload"))


class TestRecording:
    """start_recording / stop_recording のテスト。"""

    def test_restart_on_same_tab(self) -> None:
        """記録を終了したあと、同じタブで再び記録できること。"""
        page = FakeCdpPage()
        workspace = _workspace(page)

        async def scenario() -> list[bool]:
            first = await workspace.start_recording()
            await workspace.stop_recording()
            second = await workspace.start_recording()
            await workspace.stop_recording()
            return [first, second]

        assert asyncio.run(scenario()) == [True, True]
        assert list(page.playwright_page.bindings) == [BINDING_NAME]

    def test_each_session_returns_its_own_commands(self) -> None:
        page = FakeCdpPage()
        workspace = _workspace(page)

        async def scenario() -> list[list[str]]:
            await workspace.start_recording()
            _click(page, 13)
            first = await workspace.stop_recording()
            await workspace.start_recording()
            second = await workspace.stop_recording()
            return [first, second]

        assert asyncio.run(scenario()) == [['click "Submit"'], []]

    def test_callback_belongs_to_current_session(self) -> None:
        page = FakeCdpPage()
        workspace = _workspace(page)
        first: list[str] = []
        second: list[str] = []

        async def scenario() -> None:
            await workspace.start_recording(on_command=first.append)
            await workspace.stop_recording()
            await workspace.start_recording(on_command=second.append)
            _click(page, 13)
            await workspace.stop_recording()

        asyncio.run(scenario())

        assert first == []
        assert second == ['click "Submit"']

    def test_start_twice(self) -> None:
        workspace = _workspace(FakeCdpPage())

        async def scenario() -> bool:
            await workspace.start_recording()
            assert workspace.is_recording is True
            again = await workspace.start_recording()
            await workspace.stop_recording()
            return again

        assert asyncio.run(scenario()) is False
        assert workspace.is_recording is False

    def test_start_without_browser(self) -> None:
        with pytest.raises(RuntimeError):
            asyncio.run(Workspace().start_recording())


class TestClose:
    """close() のテスト。"""

    def test_close_stops_recording(self) -> None:
        page = FakeCdpPage()
        workspace = _workspace(page)

        async def scenario() -> None:
            await workspace.start_recording()
            await workspace.close()

        asyncio.run(scenario())

        assert workspace.is_recording is False
        assert workspace.tab_id is None
        assert page.init_scripts == {}
        workspace.session.close.assert_awaited_once()
