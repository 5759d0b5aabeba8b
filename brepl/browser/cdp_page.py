"""
CdpPage — Playwright + Chrome DevTools Protocol による Page 実装

Playwright の Page と CDPSession を組み合わせ、core.page.Page Protocol の
プリミティブを提供する。

主な機能:
  - DOM スナップショット: 注入スクリプトで <body> 配下の要素を列挙
  - 要素操作: 文書順インデックス + タグ名で要素を再取得して操作
  - 入力: Input.insertText / Input.dispatchKeyEvent / Input.dispatchMouseEvent
  - ナビゲーション: Page.navigate / getNavigationHistory / navigateToHistoryEntry / reload
  - ロード完了シグナル: Page.loadEventFired で解決される Future
  - 撮影: Page.captureScreenshot と Emulation.setDeviceMetricsOverride
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Optional, Sequence

from ..core.page import (
    BoundingBox,
    Clip,
    DomNode,
    DomSnapshot,
    EvalOutcome,
    HistoryEntry,
    KeyIdentity,
    NavigationHistory,
)
from .scripts import active_element_function, element_action_function, snapshot_function

if TYPE_CHECKING:
    from playwright.async_api import CDPSession
    from playwright.async_api import Page as PlaywrightPage

logger = logging.getLogger(__name__)


class CdpPage:
    """Playwright の Page を core.page.Page Protocol に適合させる。"""

    def __init__(self, page: PlaywrightPage, cdp: CDPSession) -> None:
        """CdpPage を初期化する。通常は create() を使用する。

        Args:
            page: Playwright の Page
            cdp: page に接続済みの CDPSession
        """
        self._page = page
        self._cdp = cdp
        self._load_waiters: list[asyncio.Future[None]] = []
        cdp.on("Page.loadEventFired", self._on_load_event)

    @classmethod
    async def create(cls, page: PlaywrightPage) -> CdpPage:
        """CDPSession を開いて CdpPage を生成する。"""
        cdp = await page.context.new_cdp_session(page)
        await cdp.send("Page.enable")
        await cdp.send("Runtime.enable")
        logger.debug("CDP セッションを開始しました: %s", page.url)
        return cls(page, cdp)

    @property
    def playwright_page(self) -> PlaywrightPage:
        return self._page

    @property
    def cdp(self) -> CDPSession:
        return self._cdp

    # -------------------------------------------------------------------
    # ロード完了シグナル
    # -------------------------------------------------------------------

    def _on_load_event(self, params: Any = None) -> None:
        waiters, self._load_waiters = self._load_waiters, []
        for waiter in waiters:
            if not waiter.done():
                waiter.set_result(None)

    def expect_load(self) -> asyncio.Future[None]:
        """次の Page.loadEventFired で解決される Future を返す。"""
        waiter: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._load_waiters.append(waiter)
        return waiter

    # -------------------------------------------------------------------
    # DOM
    # -------------------------------------------------------------------

    async def dom_snapshot(self) -> DomSnapshot:
        items = await self._page.evaluate(snapshot_function())
        return DomSnapshot.from_dicts(items or [])

    async def _element(self, node: DomNode, action: str, arg: Any = None) -> Any:
        return await self._page.evaluate(
            element_action_function(), [node.index, node.tag, action, arg]
        )

    async def scroll_into_view(self, node: DomNode) -> None:
        await self._element(node, "scroll")

    async def click(self, node: DomNode) -> None:
        await self._element(node, "click")

    async def dblclick(self, node: DomNode) -> None:
        await self._element(node, "dblclick")

    async def focus(self, node: DomNode) -> None:
        await self._element(node, "focus")

    async def set_value(self, node: DomNode, value: str) -> None:
        await self._element(node, "set_value", value)

    async def dispatch_events(self, node: Optional[DomNode], names: Sequence[str]) -> None:
        if node is None:
            await self._page.evaluate(active_element_function(), ["dispatch", list(names)])
        else:
            await self._element(node, "dispatch", list(names))

    async def bounding_box(self, node: DomNode) -> BoundingBox:
        rect = await self._element(node, "rect")
        return BoundingBox(
            x=rect["x"], y=rect["y"], width=rect["width"], height=rect["height"]
        )

    # -------------------------------------------------------------------
    # 入力
    # -------------------------------------------------------------------

    async def clear_value(self) -> None:
        await self._page.evaluate(active_element_function(), ["clear", None])

    async def insert_text(self, text: str) -> None:
        await self._cdp.send("Input.insertText", {"text": text})

    async def mouse_move(self, x: float, y: float) -> None:
        await self._cdp.send("Input.dispatchMouseEvent", {"type": "mouseMoved", "x": x, "y": y})

    async def key_event(self, event_type: str, key: KeyIdentity) -> None:
        await self._cdp.send("Input.dispatchKeyEvent", {
            "type": event_type,
            "key": key.key,
            "code": key.code,
            "windowsVirtualKeyCode": key.key_code,
            "nativeVirtualKeyCode": key.key_code,
        })

    # -------------------------------------------------------------------
    # ナビゲーション
    # -------------------------------------------------------------------

    async def navigate(self, url: str) -> None:
        response = await self._cdp.send("Page.navigate", {"url": url})
        error_text = (response or {}).get("errorText")
        if error_text:
            raise RuntimeError(error_text)

    async def navigation_history(self) -> NavigationHistory:
        response = await self._cdp.send("Page.getNavigationHistory")
        entries = [
            HistoryEntry(entry_id=entry["id"], url=entry.get("url", ""))
            for entry in response.get("entries", [])
        ]
        return NavigationHistory(current_index=response.get("currentIndex", 0), entries=entries)

    async def navigate_to_history_entry(self, entry_id: int) -> None:
        await self._cdp.send("Page.navigateToHistoryEntry", {"entryId": entry_id})

    async def reload(self) -> None:
        await self._cdp.send("Page.reload")

    # -------------------------------------------------------------------
    # 状態取得
    # -------------------------------------------------------------------

    async def body_text(self) -> str:
        return await self._page.evaluate("() => document.body ? document.body.innerText : ''")

    async def current_url(self) -> str:
        return self._page.url

    async def title(self) -> str:
        return await self._page.title()

    async def evaluate(self, expression: str) -> EvalOutcome:
        """Runtime.evaluate で式を評価する（returnByValue）。"""
        response = await self._cdp.send(
            "Runtime.evaluate", {"expression": expression, "returnByValue": True}
        )
        details = response.get("exceptionDetails")
        if details:
            message = details.get("text") or (details.get("exception") or {}).get("description")
            return EvalOutcome(exception=message or "Evaluation error")

        result = response.get("result") or {}
        if result.get("type") == "undefined" or "value" not in result:
            return EvalOutcome(undefined=True)
        return EvalOutcome(value=result["value"])

    async def accessibility_tree(self) -> list[dict[str, Any]]:
        response = await self._cdp.send("Accessibility.getFullAXTree")
        return list(response.get("nodes", []))

    # -------------------------------------------------------------------
    # 撮影
    # -------------------------------------------------------------------

    async def content_size(self) -> tuple[float, float]:
        metrics = await self._cdp.send("Page.getLayoutMetrics")
        size = metrics.get("cssContentSize") or metrics.get("contentSize") or {}
        return float(size.get("width", 0)), float(size.get("height", 0))

    async def set_viewport_override(self, width: int, height: int) -> None:
        await self._cdp.send("Emulation.setDeviceMetricsOverride", {
            "width": width,
            "height": height,
            "deviceScaleFactor": 1,
            "mobile": False,
        })

    async def clear_viewport_override(self) -> None:
        await self._cdp.send("Emulation.clearDeviceMetricsOverride")

    async def capture_screenshot(self, clip: Optional[Clip] = None) -> str:
        params: dict[str, Any] = {"format": "png"}
        if clip is not None:
            params["clip"] = {
                "x": clip.x,
                "y": clip.y,
                "width": clip.width,
                "height": clip.height,
                "scale": clip.scale,
            }
        response = await self._cdp.send("Page.captureScreenshot", params)
        return response["data"]

    # -------------------------------------------------------------------
    # 記録用スクリプト
    # -------------------------------------------------------------------

    async def add_init_script(self, source: str) -> str:
        """新しいドキュメントごとに実行するスクリプトを登録する。

        Returns:
            登録解除用の識別子
        """
        response = await self._cdp.send(
            "Page.addScriptToEvaluateOnNewDocument", {"source": source}
        )
        return response["identifier"]

    async def remove_init_script(self, identifier: str) -> None:
        await self._cdp.send(
            "Page.removeScriptToEvaluateOnNewDocument", {"identifier": identifier}
        )

    async def detach(self) -> None:
        """CDP セッションを切断する。"""
        self._on_load_event()
        try:
            await self._cdp.detach()
        except Exception as exc:
            logger.debug("CDP セッションの切断をスキップ: %s", exc)
