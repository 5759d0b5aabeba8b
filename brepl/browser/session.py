"""
BrowserSession — Chromium の起動とタブ（CdpPage）の管理

1 つのブラウザコンテキストの中でタブを開き、"tab-N" 形式の ID で
CdpPage を引けるようにする。Transport はこの ID でコマンドの宛先を決める。

主な機能:
  - ReplConfig に従った Chromium の起動（headed/headless・チャンネル・ビューポート）
  - タブ ID の払い出しと CdpPage の生成・切断
  - close() 後の再起動
"""

from __future__ import annotations

import enum
import logging
from typing import TYPE_CHECKING, Any, Optional

from ..config import ReplConfig
from .cdp_page import CdpPage

if TYPE_CHECKING:
    from playwright.async_api import Browser, BrowserContext, Playwright

logger = logging.getLogger(__name__)


class BrowserState(enum.Enum):
    """ブラウザの状態。"""

    STOPPED = "stopped"
    STARTING = "starting"
    READY = "ready"


class BrowserSession:
    """Chromium 1 プロセス分のタブ管理。

    使用例::

        session = BrowserSession()
        await session.launch(ReplConfig(headed=False))
        tab_id = await session.open_tab()
        page = session.tab(tab_id)
        await session.close()
    """

    def __init__(self) -> None:
        self._state = BrowserState.STOPPED
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None
        self._tabs: dict[str, CdpPage] = {}
        self._tab_counter = 0

    @property
    def state(self) -> BrowserState:
        return self._state

    @property
    def is_active(self) -> bool:
        return self._state is BrowserState.READY

    @property
    def tab_ids(self) -> list[str]:
        """開いているタブの ID（開いた順）。"""
        return list(self._tabs)

    def tab(self, tab_id: str) -> CdpPage:
        """タブ ID に対応する CdpPage を返す。

        Raises:
            KeyError: 該当するタブがない場合
        """
        try:
            return self._tabs[tab_id]
        except KeyError:
            raise KeyError(f"タブが見つかりません: {tab_id}") from None

    # -------------------------------------------------------------------
    # 起動・終了
    # -------------------------------------------------------------------

    async def launch(self, config: Optional[ReplConfig] = None) -> None:
        """Chromium を起動し、コンテキストを作成する。

        Raises:
            RuntimeError: 既に起動している場合
        """
        if self._state is not BrowserState.STOPPED:
            raise RuntimeError("ブラウザは既に起動しています。先に close() を呼んでください。")

        config = config or ReplConfig()
        self._state = BrowserState.STARTING
        logger.info(
            "ブラウザを起動しています (headed=%s, channel=%s, viewport=%dx%d)",
            config.headed, config.channel or "bundled",
            config.viewport_width, config.viewport_height,
        )

        from playwright.async_api import async_playwright

        try:
            self._playwright = await async_playwright().start()
            options: dict[str, Any] = {"headless": not config.headed}
            if config.channel:
                options["channel"] = config.channel
            self._browser = await self._playwright.chromium.launch(**options)
            self._context = await self._browser.new_context(
                viewport={"width": config.viewport_width, "height": config.viewport_height},
            )
        except Exception:
            logger.exception("ブラウザの起動に失敗しました")
            await self._release()
            raise

        self._state = BrowserState.READY
        logger.info("ブラウザを起動しました")

    async def close(self) -> None:
        """全タブの CDP セッションを切断してブラウザを終了する。"""
        if self._state is BrowserState.STOPPED:
            return
        for tab_id in list(self._tabs):
            await self._detach(tab_id)
        await self._release()
        logger.info("ブラウザを終了しました")

    async def _release(self) -> None:
        browser, playwright = self._browser, self._playwright
        self._browser = self._context = self._playwright = None
        self._tabs = {}
        self._state = BrowserState.STOPPED
        try:
            if browser is not None:
                await browser.close()
        finally:
            if playwright is not None:
                await playwright.stop()

    # -------------------------------------------------------------------
    # タブ
    # -------------------------------------------------------------------

    async def open_tab(self) -> str:
        """新しいタブを開き、そのタブ ID を返す。

        Raises:
            RuntimeError: ブラウザが起動していない場合
        """
        if self._context is None or not self.is_active:
            raise RuntimeError("ブラウザが起動していません。先に launch() を呼んでください。")

        cdp_page = await CdpPage.create(await self._context.new_page())
        self._tab_counter += 1
        tab_id = f"tab-{self._tab_counter}"
        self._tabs[tab_id] = cdp_page
        logger.info("タブを開きました: %s", tab_id)
        return tab_id

    async def close_tab(self, tab_id: str) -> None:
        """タブを閉じる。存在しないタブは無視する。"""
        cdp_page = await self._detach(tab_id)
        if cdp_page is not None:
            await cdp_page.playwright_page.close()
            logger.info("タブを閉じました: %s", tab_id)

    async def _detach(self, tab_id: str) -> Optional[CdpPage]:
        cdp_page = self._tabs.pop(tab_id, None)
        if cdp_page is not None:
            await cdp_page.detach()
        return cdp_page
