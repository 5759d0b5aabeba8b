"""
LiveRecorder — ブラウザ上の操作を Recorder へ中継する

ページに記録用リスナーを注入し、Python 側のバインディング経由で
受け取ったイベントを Recorder に渡す。fill のデバウンス期限は
asyncio のタスクで監視する。

主な機能:
  - バインディング（window.__breplRecord）の公開と記録スクリプトの注入
  - 新しいドキュメントへの自動注入（Page.addScriptToEvaluateOnNewDocument）
  - メインフレームのナビゲーションを goto として記録
  - デバウンス期限の監視タスク
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import TYPE_CHECKING, Any, Callable, Optional

from ..recorder import Recorder, RecorderEvent
from ..recorder.debounce import DEFAULT_FILL_DEBOUNCE_MS
from .scripts import RECORDER_CLEANUP, recorder_script

if TYPE_CHECKING:
    from .cdp_page import CdpPage

logger = logging.getLogger(__name__)

BINDING_NAME = "__breplRecord"


class LiveRecorder:
    """1 タブ分の記録を管理する。

    バインディングは最初の start() で 1 度だけ公開し、以降の start() / stop()
    では同じインスタンスを使い回す。

    使用例::

        live = LiveRecorder(cdp_page, emit=buffer.append)
        await live.start()
        ...  # ユーザーがブラウザを操作
        await live.stop()
    """

    def __init__(
        self,
        page: CdpPage,
        emit: Callable[[str], None],
        *,
        debounce_ms: int = DEFAULT_FILL_DEBOUNCE_MS,
    ) -> None:
        self._page = page
        self._recorder = Recorder(emit, debounce_ms=debounce_ms)
        self._bound = False
        self._script_id: Optional[str] = None
        self._timer: Optional[asyncio.Task[None]] = None
        self._wake = asyncio.Event()

    @property
    def recorder(self) -> Recorder:
        return self._recorder

    @property
    def active(self) -> bool:
        return self._recorder.active

    async def start(self) -> bool:
        """記録を開始する。既に記録中なら何もせず False を返す。"""
        if not self._recorder.start():
            return False

        pw_page = self._page.playwright_page
        if not self._bound:
            await pw_page.expose_function(BINDING_NAME, self._on_binding)
            self._bound = True

        script = recorder_script()
        self._script_id = await self._page.add_init_script(script)
        await self._page.cdp.send("Runtime.evaluate", {"expression": script})
        pw_page.on("framenavigated", self._on_frame_navigated)

        self._wake = asyncio.Event()
        self._timer = asyncio.create_task(self._run_timer())
        logger.info("ブラウザ操作の記録を開始しました: %s", pw_page.url)
        return True

    async def stop(self) -> None:
        """リスナーを外し、保留中の fill を確定して記録を終了する。"""
        if not self._recorder.active:
            return

        pw_page = self._page.playwright_page
        pw_page.remove_listener("framenavigated", self._on_frame_navigated)
        try:
            if self._script_id is not None:
                await self._page.remove_init_script(self._script_id)
            await pw_page.evaluate(RECORDER_CLEANUP)
        except Exception as exc:
            # ページが既に閉じている場合
            logger.debug("記録スクリプトの除去をスキップ: %s", exc)
        finally:
            self._script_id = None
            self._recorder.stop()
            self._wake.set()

        if self._timer is not None:
            await self._timer
            self._timer = None
        logger.info("ブラウザ操作の記録を終了しました")

    # -------------------------------------------------------------------
    # イベント受信
    # -------------------------------------------------------------------

    def _on_binding(self, payload: str) -> None:
        if not self._recorder.active:
            return
        try:
            event = RecorderEvent.from_payload(json.loads(payload))
        except (ValueError, KeyError, TypeError):
            logger.debug("不正な記録イベントを無視します: %.200s", payload, exc_info=True)
            return
        self._handle(event)

    def _on_frame_navigated(self, frame: Any) -> None:
        main_frame = frame.parent_frame is None
        self._handle(RecorderEvent.navigation(frame.url, main_frame=main_frame))

    def _handle(self, event: RecorderEvent) -> None:
        self._recorder.handle(event)
        self._wake.set()

    # -------------------------------------------------------------------
    # デバウンス期限の監視
    # -------------------------------------------------------------------

    async def _run_timer(self) -> None:
        while self._recorder.active:
            self._wake.clear()
            deadline = self._recorder.next_deadline
            timeout = None
            if deadline is not None:
                timeout = max(0.0, deadline - self._recorder.clock())
            try:
                await asyncio.wait_for(self._wake.wait(), timeout)
            except asyncio.TimeoutError:
                self._recorder.poll()
