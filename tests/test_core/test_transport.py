"""
LocalTransport のユニットテスト
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest

from brepl.core.executor import CommandExecutor
from brepl.core.results import Result
from brepl.core.transport import LocalTransport, Transport

from conftest import FakePage


class TestLocalTransport:
    """LocalTransport のテスト。"""

    def test_implements_protocol(self) -> None:
        assert isinstance(LocalTransport(), Transport)

    def test_send_to_attached_tab(self, login_page: FakePage) -> None:
        async def scenario() -> Result:
            transport = LocalTransport()
            transport.attach("tab-1", CommandExecutor(login_page))
            return await transport.send('verify-text "Sign in"', "tab-1")

        result = asyncio.run(scenario())
        assert result.success is True

    def test_unknown_tab(self) -> None:
        result = asyncio.run(LocalTransport().send("reload", "tab-9"))
        assert result == Result.error("No page attached for tab tab-9")

    def test_detach(self, login_page: FakePage) -> None:
        transport = LocalTransport()
        transport.attach("tab-1", CommandExecutor(login_page))
        assert transport.tab_ids == ["tab-1"]

        transport.detach("tab-1")
        transport.detach("tab-1")

        assert transport.tab_ids == []
        with pytest.raises(KeyError):
            transport.executor("tab-1")

    def test_commands_to_same_tab_are_serialized(self) -> None:
        """同一タブへの同時送信が重ならずに実行されること。"""
        active = 0
        peak = 0

        async def execute(raw: str) -> Result:
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1
            return Result.ok(raw)

        executor = AsyncMock(spec=CommandExecutor)
        executor.execute.side_effect = execute

        async def scenario() -> list[Result]:
            transport = LocalTransport()
            transport.attach("tab-1", executor)
            return await asyncio.gather(*(transport.send(f"cmd {i}", "tab-1") for i in range(3)))

        results = asyncio.run(scenario())

        assert [r.data for r in results] == ["cmd 0", "cmd 1", "cmd 2"]
        assert peak == 1
