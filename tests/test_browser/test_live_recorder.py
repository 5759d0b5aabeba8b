"""
LiveRecorder のユニットテスト

FakeCdpPage（Playwright Page と CDP の代役）に対して、バインディング・
注入スクリプト・ナビゲーション・デバウンスタイマーの扱いを検証する。

注意: pytest-asyncio を使用せず、asyncio.run() で同期テストとして実行。
"""

from __future__ import annotations

import asyncio
import json
from typing import Any
from unittest.mock import MagicMock

from brepl.browser.live_recorder import BINDING_NAME, LiveRecorder
from brepl.browser.scripts import RECORDER_CLEANUP, recorder_script

from conftest import LOGIN_HTML, FakeCdpPage, parse_html


def _payload(kind: str, target: int, **extra: Any) -> str:
    nodes, _ = parse_html(LOGIN_HTML)
    return json.dumps({"kind": kind, "nodes": nodes, "target": target, **extra})


def _frame(url: str, main: bool = True) -> MagicMock:
    frame = MagicMock()
    frame.url = url
    frame.parent_frame = None if main else MagicMock()
    return frame


class TestStart:
    """start() のテスト。"""

    def test_installs_binding_script_and_listener(self) -> None:
        page = FakeCdpPage()

        async def scenario() -> bool:
            live = LiveRecorder(page, lambda c: None)
            started = await live.start()
            await live.stop()
            return started

        assert asyncio.run(scenario()) is True
        pw = page.playwright_page
        assert BINDING_NAME in pw.bindings
        page.cdp.send.assert_any_await("Runtime.evaluate", {"expression": recorder_script()})

    def test_state_while_recording(self) -> None:
        page = FakeCdpPage()

        async def scenario() -> None:
            live = LiveRecorder(page, lambda c: None)
            await live.start()
            assert live.active is True
            assert list(page.init_scripts.values()) == [recorder_script()]
            assert len(page.playwright_page.listeners["framenavigated"]) == 1
            assert await live.start() is False
            await live.stop()

        asyncio.run(scenario())


class TestEvents:
    """バインディングとナビゲーションからの記録のテスト。"""

    def test_binding_payload_is_recorded(self) -> None:
        page = FakeCdpPage()
        lines: list[str] = []

        async def scenario() -> None:
            live = LiveRecorder(page, lines.append)
            await live.start()
            page.playwright_page.bindings[BINDING_NAME](_payload("click", 13))
            await live.stop()

        asyncio.run(scenario())
        assert lines == ['click "Submit"']

    def test_invalid_payload_is_ignored(self) -> None:
        page = FakeCdpPage()
        lines: list[str] = []

        async def scenario() -> None:
            live = LiveRecorder(page, lines.append)
            await live.start()
            binding = page.playwright_page.bindings[BINDING_NAME]
            binding("not json")
            binding(json.dumps({"kind": "scroll"}))
            assert live.active is True
            await live.stop()

        asyncio.run(scenario())
        assert lines == []

    def test_main_frame_navigation(self) -> None:
        page = FakeCdpPage()
        lines: list[str] = []

        async def scenario() -> None:
            live = LiveRecorder(page, lines.append)
            await live.start()
            page.playwright_page.fire("framenavigated", _frame("https://ads.example/", main=False))
            page.playwright_page.fire("framenavigated", _frame("https://example.com/next"))
            await live.stop()

        asyncio.run(scenario())
        assert lines == ["goto https://example.com/next"]

    def test_debounced_fill_is_flushed_by_timer(self) -> None:
        """記録中のままでもデバウンス期限で fill が確定すること。"""
        page = FakeCdpPage()
        lines: list[str] = []

        async def scenario() -> list[str]:
            live = LiveRecorder(page, lines.append, debounce_ms=20)
            await live.start()
            page.playwright_page.bindings[BINDING_NAME](_payload("input", 3, value="a@b.c"))
            await asyncio.sleep(0.3)
            during = list(lines)
            await live.stop()
            return during

        assert asyncio.run(scenario()) == ['fill "Email" "a@b.c"']
        assert lines == ['fill "Email" "a@b.c"']


class TestStop:
    """stop() と再開のテスト。"""

    def test_stop_cleans_up_and_flushes(self) -> None:
        page = FakeCdpPage()
        lines: list[str] = []

        async def scenario() -> None:
            live = LiveRecorder(page, lines.append)
            await live.start()
            page.playwright_page.bindings[BINDING_NAME](_payload("input", 3, value="a@b.c"))
            await live.stop()
            assert live.active is False

        asyncio.run(scenario())
        assert lines == ['fill "Email" "a@b.c"']
        assert page.init_scripts == {}
        assert page.playwright_page.listeners["framenavigated"] == []
        assert RECORDER_CLEANUP in page.playwright_page.evaluated

    def test_events_after_stop_are_ignored(self) -> None:
        page = FakeCdpPage()
        lines: list[str] = []

        async def scenario() -> None:
            live = LiveRecorder(page, lines.append)
            await live.start()
            await live.stop()
            page.playwright_page.bindings[BINDING_NAME](_payload("click", 13))

        asyncio.run(scenario())
        assert lines == []

    def test_restart_reuses_binding(self) -> None:
        """stop 後に再び start でき、同じバインディングで記録されること。"""
        page = FakeCdpPage()
        lines: list[str] = []

        async def scenario() -> bool:
            live = LiveRecorder(page, lines.append)
            await live.start()
            await live.stop()
            restarted = await live.start()
            page.playwright_page.bindings[BINDING_NAME](_payload("click", 13))
            await live.stop()
            return restarted

        assert asyncio.run(scenario()) is True
        assert list(page.playwright_page.bindings) == [BINDING_NAME]
        assert lines == ['click "Submit"']
