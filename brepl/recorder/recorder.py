"""
Recorder — 記録イベントをコマンド文字列に変換して出力する

1 ページにつき 1 インスタンス。start() で有効化し、stop() で保留中の
fill を確定して無効化する。

主な機能:
  - クリック・特殊キー・ナビゲーションの前に保留中の fill を確定（順序保証）
  - テキスト入力のデバウンス（FillDebouncer）
  - label クリック直後にブラウザが発生させる control へのクリックの重複抑止
  - イベント処理中の例外は DEBUG ログに記録して握りつぶす
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from .debounce import DEFAULT_FILL_DEBOUNCE_MS, FillDebouncer, PendingFlush
from .events import EventKind, RecorderEvent
from .heuristics import (
    SPECIAL_KEYS,
    classify_click,
    fill_candidate,
    fill_command,
    synthesize_command,
)

logger = logging.getLogger(__name__)


class Recorder:
    """記録イベントからコマンドを合成し、emit コールバックへ渡す。

    使用例::

        recorder = Recorder(emit=lines.append)
        recorder.start()
        recorder.handle(event)
        recorder.poll()          # デバウンス期限の確認
        recorder.stop()          # 保留中の fill を確定
    """

    def __init__(
        self,
        emit: Callable[[str], None],
        *,
        debounce_ms: int = DEFAULT_FILL_DEBOUNCE_MS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Recorder を初期化する。

        Args:
            emit: 合成したコマンドを受け取るコールバック
            debounce_ms: fill のデバウンス時間（ミリ秒）
            clock: 現在時刻（秒）を返す関数
        """
        self._emit = emit
        self._debounce_ms = debounce_ms
        self._clock = clock
        self._debouncer = FillDebouncer(debounce_ms)
        self._active = False
        self._suppress_click_on: Optional[int] = None

    @property
    def active(self) -> bool:
        return self._active

    @property
    def pending(self) -> Optional[PendingFlush]:
        state = self._debouncer.state
        return state if isinstance(state, PendingFlush) else None

    @property
    def next_deadline(self) -> Optional[float]:
        """保留中の fill の確定時刻。なければ None。"""
        return self._debouncer.deadline

    @property
    def clock(self) -> Callable[[], float]:
        return self._clock

    # -------------------------------------------------------------------
    # ライフサイクル
    # -------------------------------------------------------------------

    def start(self) -> bool:
        """記録を開始する。

        Returns:
            新たに開始した場合 True、既に記録中の場合 False
        """
        if self._active:
            logger.debug("既に記録中です")
            return False
        self._debouncer = FillDebouncer(self._debounce_ms)
        self._suppress_click_on = None
        self._active = True
        logger.info("記録を開始しました")
        return True

    def stop(self) -> None:
        """保留中の fill を確定して記録を終了する。"""
        if not self._active:
            return
        self._flush()
        self._active = False
        logger.info("記録を終了しました")

    # -------------------------------------------------------------------
    # イベント処理
    # -------------------------------------------------------------------

    def handle(self, event: RecorderEvent) -> None:
        """記録イベントを処理する。例外は送出しない。"""
        if not self._active:
            return
        try:
            self._dispatch(event)
        except Exception:
            logger.debug("記録イベント %s の処理に失敗しました", event.kind.value, exc_info=True)

    def poll(self, now: Optional[float] = None) -> None:
        """デバウンス期限を過ぎた fill を確定する。"""
        if not self._active:
            return
        due = self._debouncer.due(self._clock() if now is None else now)
        if due is None:
            return
        try:
            self._emit_fill(due)
        except Exception:
            logger.debug("保留中の fill の出力に失敗しました", exc_info=True)

    def _dispatch(self, event: RecorderEvent) -> None:
        if event.kind is EventKind.INPUT:
            self._suppress_click_on = None
            candidate = fill_candidate(event)
            if candidate is None:
                return
            superseded = self._debouncer.push(*candidate, now=self._clock())
            if superseded is not None:
                self._emit_fill(superseded)
            return

        if event.kind is EventKind.CLICK:
            self._flush()
            self._handle_click(event)
            return

        if event.kind is EventKind.KEYDOWN and event.key not in SPECIAL_KEYS:
            return

        self._suppress_click_on = None
        command = synthesize_command(event)
        if command is None:
            return
        self._flush()
        self._send(command)

    def _handle_click(self, event: RecorderEvent) -> None:
        node = event.node
        if node is None or event.dom is None:
            return

        # label クリックに続く control へのクリックは記録済み
        suppressed, self._suppress_click_on = self._suppress_click_on, None
        if suppressed is not None and node.index == suppressed and node.is_toggle:
            logger.debug("label 経由のクリックに続く %s のクリックを無視します", node.ref)
            return

        intent = classify_click(event.dom, node)
        if intent is None:
            return
        if intent.toggle is not None and intent.toggle.via_label:
            self._suppress_click_on = intent.toggle.control.index
        self._send(intent.command)

    # -------------------------------------------------------------------
    # 出力
    # -------------------------------------------------------------------

    def _flush(self) -> None:
        pending = self._debouncer.flush()
        if pending is not None:
            self._emit_fill(pending)

    def _emit_fill(self, pending: PendingFlush) -> None:
        # 空の値は記録しない
        if not pending.value:
            return
        self._send(fill_command(pending.locator, pending.value))

    def _send(self, command: str) -> None:
        logger.debug("記録: %s", command)
        self._emit(command)
