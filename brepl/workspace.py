"""
Workspace — ブラウザ・Transport・記録をまとめたセッション

CLI と MCP サーバーが共有する実行環境。ブラウザを起動して 1 つのタブを開き、
CommandExecutor を LocalTransport に接続する。ライブ記録の開始・終了もここで扱う。
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from .browser import BrowserSession, LiveRecorder
from .config import ReplConfig
from .core.executor import CommandExecutor
from .core.results import Result
from .core.transport import LocalTransport
from .dsl.commands import CommandRegistry, create_default_registry
from .dsl.script import ScriptBuffer

logger = logging.getLogger(__name__)


class Workspace:
    """1 ブラウザ・1 タブの実行環境。

    使用例::

        workspace = Workspace(config)
        await workspace.open("https://example.com")
        result = await workspace.send('click "Submit"')
        await workspace.close()
    """

    def __init__(
        self,
        config: Optional[ReplConfig] = None,
        *,
        registry: Optional[CommandRegistry] = None,
    ) -> None:
        self.config = config or ReplConfig()
        self.registry = registry or create_default_registry()
        self.session = BrowserSession()
        self.transport = LocalTransport()
        self.tab_id: Optional[str] = None
        self.recorded = ScriptBuffer()
        self._live: Optional[LiveRecorder] = None
        self._on_command: Optional[Callable[[str], None]] = None

    @property
    def is_open(self) -> bool:
        return self.tab_id is not None and self.session.is_active

    @property
    def is_recording(self) -> bool:
        return self._live is not None and self._live.active

    def _require_tab(self) -> str:
        if self.tab_id is None or not self.session.is_active:
            raise RuntimeError("ブラウザが起動していません。先に open() を呼んでください。")
        return self.tab_id

    async def open(self, url: Optional[str] = None) -> Optional[Result]:
        """ブラウザを起動してタブを開く。url を指定した場合は遷移する。

        Returns:
            url への遷移結果。url を指定しなかった場合は None
        """
        cfg = self.config
        await self.session.launch(cfg)
        tab_id = await self.session.open_tab()
        executor = CommandExecutor(
            self.session.tab(tab_id),
            registry=self.registry,
            load_timeout_ms=cfg.load_timeout_ms,
        )
        self.transport.attach(tab_id, executor)
        self.tab_id = tab_id

        if url:
            return await self.send(f"goto {url}")
        return None

    async def send(self, raw: str) -> Result:
        """現在のタブにコマンドを送る。"""
        return await self.transport.send(raw, self._require_tab())

    # -------------------------------------------------------------------
    # 記録
    # -------------------------------------------------------------------

    async def start_recording(self, on_command: Optional[Callable[[str], None]] = None) -> bool:
        """ライブ記録を開始する。recorded は空にしてから記録したコマンドを追記する。

        ページへのバインディングは 1 度しか公開できないため、
        LiveRecorder はタブを閉じるまで使い回す。

        Args:
            on_command: 記録したコマンドごとに呼ばれるコールバック

        Returns:
            新たに開始した場合 True、既に記録中の場合 False
        """
        tab_id = self._require_tab()
        if self.is_recording:
            return False

        if self._live is None:
            self._live = LiveRecorder(
                self.session.tab(tab_id),
                self._emit,
                debounce_ms=self.config.fill_debounce_ms,
            )
        self.recorded.clear()
        self._on_command = on_command
        return await self._live.start()

    async def stop_recording(self) -> list[str]:
        """ライブ記録を終了し、今回の記録で得たコマンドを返す。"""
        if self._live is not None:
            await self._live.stop()
        self._on_command = None
        return self.recorded.lines

    def _emit(self, command: str) -> None:
        self.recorded.append(command)
        if self._on_command is not None:
            self._on_command(command)

    async def close(self) -> None:
        """記録を終了し、ブラウザを閉じる。"""
        try:
            await self.stop_recording()
        finally:
            self._live = None
            if self.tab_id is not None:
                self.transport.detach(self.tab_id)
                self.tab_id = None
            await self.session.close()
