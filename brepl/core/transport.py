"""
Transport — コマンド文字列とタブ識別子を実行系へ届ける

コンソール・SessionRunner・MCP サーバーはこのインターフェースを通して
コマンドを送る。LocalTransport はタブごとの CommandExecutor を保持し、
同一タブへのコマンドを asyncio.Lock で直列化する。
"""

from __future__ import annotations

import asyncio
import logging
from typing import Protocol, runtime_checkable

from .executor import CommandExecutor
from .results import Result

logger = logging.getLogger(__name__)


@runtime_checkable
class Transport(Protocol):
    """コマンド送信インターフェース。"""

    async def send(self, raw: str, tab_id: str) -> Result:
        """コマンドを送信し、結果を返す。

        Args:
            raw: コマンド行
            tab_id: 対象タブの識別子

        Returns:
            実行結果
        """
        ...


class LocalTransport:
    """同一プロセス内の CommandExecutor へ送信する Transport。"""

    def __init__(self) -> None:
        self._executors: dict[str, CommandExecutor] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    @property
    def tab_ids(self) -> list[str]:
        return list(self._executors)

    def attach(self, tab_id: str, executor: CommandExecutor) -> None:
        """タブに CommandExecutor を割り当てる。"""
        self._executors[tab_id] = executor
        self._locks.setdefault(tab_id, asyncio.Lock())
        logger.debug("タブ '%s' を登録しました", tab_id)

    def detach(self, tab_id: str) -> None:
        self._executors.pop(tab_id, None)
        self._locks.pop(tab_id, None)
        logger.debug("タブ '%s' の登録を解除しました", tab_id)

    def executor(self, tab_id: str) -> CommandExecutor:
        """タブの CommandExecutor を返す。

        Raises:
            KeyError: 未登録のタブの場合
        """
        if tab_id not in self._executors:
            raise KeyError(f"タブ '{tab_id}' は登録されていません")
        return self._executors[tab_id]

    async def send(self, raw: str, tab_id: str) -> Result:
        executor = self._executors.get(tab_id)
        if executor is None:
            return Result.error(f"No page attached for tab {tab_id}")
        async with self._locks[tab_id]:
            return await executor.execute(raw)
