"""
fill のデバウンス — Idle / PendingFlush の 2 状態機械

キー入力ごとに保留中の (locator, value) を更新し、最後の入力から
一定時間（デフォルト 1500ms）入力がなければ 1 つの fill として確定する。
時刻は呼び出し側から渡すため、タイマーに依存せずテストできる。
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union

DEFAULT_FILL_DEBOUNCE_MS = 1500


@dataclass(frozen=True)
class Idle:
    """保留中の入力なし。"""


@dataclass(frozen=True)
class PendingFlush:
    """保留中の入力。

    Attributes:
        locator: 入力欄の locator
        value: 最新の値
        deadline: 確定時刻（秒、clock と同じ基準）
    """

    locator: str
    value: str
    deadline: float


DebounceState = Union[Idle, PendingFlush]


class FillDebouncer:
    """fill コマンドのデバウンス状態機械。"""

    def __init__(self, debounce_ms: int = DEFAULT_FILL_DEBOUNCE_MS) -> None:
        self._window = debounce_ms / 1000.0
        self._state: DebounceState = Idle()

    @property
    def state(self) -> DebounceState:
        return self._state

    @property
    def deadline(self) -> Optional[float]:
        """確定時刻。保留中の入力がなければ None。"""
        if isinstance(self._state, PendingFlush):
            return self._state.deadline
        return None

    def push(self, locator: str, value: str, now: float) -> Optional[PendingFlush]:
        """入力を保留し、確定時刻を延長する。

        別の入力欄の入力が保留中だった場合は、それを確定対象として返す。

        Returns:
            直ちに確定すべき別の入力欄の保留。なければ None
        """
        superseded: Optional[PendingFlush] = None
        if isinstance(self._state, PendingFlush) and self._state.locator != locator:
            superseded = self._state
        self._state = PendingFlush(locator=locator, value=value, deadline=now + self._window)
        return superseded

    def due(self, now: float) -> Optional[PendingFlush]:
        """確定時刻を過ぎていれば保留を取り出して Idle に戻す。"""
        if isinstance(self._state, PendingFlush) and now >= self._state.deadline:
            return self.flush()
        return None

    def flush(self) -> Optional[PendingFlush]:
        """保留を即時に取り出して Idle に戻す。"""
        pending = self._state
        self._state = Idle()
        if isinstance(pending, PendingFlush):
            return pending
        return None
