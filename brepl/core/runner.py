"""
SessionRunner — スクリプトの連続実行・ステップ実行

ScriptBuffer の各行を Transport 経由で実行し、行ごとの Pass / Fail を集計する。

主な機能:
  - run(): 先頭（またはステップ実行の途中位置）から最後まで実行
  - step(): 実行対象の行を 1 つだけ実行し、カーソルを進める
  - stop(): 協調的な中断要求（行の間でのみ確認する）
  - 空行はスキップ、コメント行は通知するが集計しない
  - Run 時はコマンド間に settle 待機（デフォルト 300ms）

Pass は Result の種別が success / info / snapshot / screenshot の場合、
Fail は error の場合または Transport が例外を送出した場合。
"""

from __future__ import annotations

import enum
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

from ..dsl.parser import LineKind, classify_line
from ..dsl.script import ScriptBuffer
from .results import Result
from .transport import Transport
from .waits import DEFAULT_SETTLE_DELAY_MS, settle

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# 結果データクラス
# ---------------------------------------------------------------------------

class LineOutcome(str, enum.Enum):
    """行ごとの判定。"""

    UNSET = "unset"
    PASS = "pass"
    FAIL = "fail"


@dataclass
class LineReport:
    """1 行分の実行結果。

    Attributes:
        index: 行番号（0 始まり）
        line: 行の内容
        kind: 行の種別
        outcome: 判定（コメント行は UNSET）
        result: コマンドの実行結果（コメント行は None）
        duration_ms: 実行時間（ミリ秒）
    """

    index: int
    line: str
    kind: LineKind
    outcome: LineOutcome = LineOutcome.UNSET
    result: Optional[Result] = None
    duration_ms: float = 0.0


@dataclass
class StepReport:
    """step() の戻り値。

    Attributes:
        report: 実行した行の結果。実行対象がなかった場合は None
        complete: 最後の実行対象行まで到達した場合 True
    """

    report: Optional[LineReport]
    complete: bool


@dataclass
class SessionState:
    """実行セッションの状態。

    Attributes:
        cursor: 次に実行する行の位置
        results: 行ごとの判定
        pass_count: Pass の数
        fail_count: Fail の数
        running: run() 実行中かどうか
        completed: 最後まで実行したかどうか
        stopped: stop() で中断したかどうか
        revision: 状態を作成した時点のバッファのリビジョン
        reports: 行番号 → LineReport
    """

    cursor: int = 0
    results: list[LineOutcome] = field(default_factory=list)
    pass_count: int = 0
    fail_count: int = 0
    running: bool = False
    completed: bool = False
    stopped: bool = False
    revision: int = -1
    reports: dict[int, LineReport] = field(default_factory=dict)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    @classmethod
    def fresh(cls, buffer: ScriptBuffer) -> SessionState:
        return cls(
            results=[LineOutcome.UNSET] * len(buffer),
            revision=buffer.revision,
            started_at=datetime.now(),
        )

    @property
    def stats(self) -> str:
        """集計の表示文字列。"""
        return f"{self.pass_count} passed / {self.fail_count} failed"


# ---------------------------------------------------------------------------
# SessionRunner 本体
# ---------------------------------------------------------------------------

class SessionRunner:
    """ScriptBuffer を 1 タブに対して実行する。"""

    def __init__(
        self,
        transport: Transport,
        tab_id: str,
        *,
        settle_delay_ms: int = DEFAULT_SETTLE_DELAY_MS,
        on_line: Optional[Callable[[LineReport], None]] = None,
    ) -> None:
        """SessionRunner を初期化する。

        Args:
            transport: コマンド送信先
            tab_id: 対象タブの識別子
            settle_delay_ms: Run 時のコマンド間待機（ミリ秒）
            on_line: 行の実行（コメント通知を含む）ごとに呼ばれるコールバック
        """
        self._transport = transport
        self._tab_id = tab_id
        self._settle_delay_ms = settle_delay_ms
        self._on_line = on_line
        self._state = SessionState()
        self._stop_requested = False

    @property
    def state(self) -> SessionState:
        return self._state

    def stop(self) -> None:
        """実行中の run() に中断を要求する。"""
        if self._state.running:
            logger.info("実行の中断を要求しました")
        self._stop_requested = True

    def reset(self) -> None:
        """状態を破棄する。"""
        self._state = SessionState()

    # -------------------------------------------------------------------
    # Run
    # -------------------------------------------------------------------

    async def run(self, buffer: ScriptBuffer) -> SessionState:
        """スクリプトを最後まで実行する。

        ステップ実行の途中で、かつバッファが編集されていない場合は
        カーソル位置から再開し、それまでの結果を引き継ぐ。

        Args:
            buffer: 実行するスクリプト

        Returns:
            実行後の SessionState

        Raises:
            RuntimeError: 既に run() が実行中の場合
        """
        if self._state.running:
            raise RuntimeError("既に実行中のセッションがあります")

        if self._is_resumable(buffer):
            logger.info("%d 行目から実行を再開します", self._state.cursor + 1)
        else:
            self._state = SessionState.fresh(buffer)

        state = self._state
        state.running = True
        state.stopped = False
        self._stop_requested = False
        executed = 0

        try:
            for index in range(state.cursor, len(buffer)):
                line = buffer[index]
                kind = classify_line(line)
                if kind is LineKind.BLANK:
                    continue
                if kind is LineKind.COMMENT:
                    self._notify(LineReport(index=index, line=line, kind=kind))
                    continue

                if executed:
                    await settle(self._settle_delay_ms)
                if self._stop_requested:
                    state.stopped = True
                    state.cursor = index
                    logger.info("実行を中断しました（%d 行目の手前）", index + 1)
                    break

                await self._execute_line(index, line)
                executed += 1
                state.cursor = index + 1
            else:
                state.completed = True
                state.cursor = 0
                logger.info("実行が完了しました: %s", state.stats)
        finally:
            state.running = False
            state.finished_at = datetime.now()

        return state

    def _is_resumable(self, buffer: ScriptBuffer) -> bool:
        state = self._state
        return (
            state.cursor > 0
            and not state.completed
            and state.revision == buffer.revision
            and len(state.results) == len(buffer)
        )

    # -------------------------------------------------------------------
    # Step
    # -------------------------------------------------------------------

    async def step(self, buffer: ScriptBuffer) -> StepReport:
        """実行対象の行を 1 つだけ実行する。

        バッファが編集されていた場合、または前回のステップで最後まで
        到達していた場合は状態をリセットして先頭から始める。

        Raises:
            RuntimeError: run() が実行中の場合
        """
        if self._state.running:
            raise RuntimeError("実行中のセッションがあるためステップ実行できません")

        state = self._state
        if (
            state.completed
            or state.revision != buffer.revision
            or len(state.results) != len(buffer)
        ):
            self._state = state = SessionState.fresh(buffer)

        remaining = [i for i in buffer.executable_indices() if i >= state.cursor]
        if not remaining:
            state.completed = True
            state.cursor = 0
            logger.info("ステップ実行が完了しました: %s", state.stats)
            return StepReport(report=None, complete=True)

        index = remaining[0]
        for skipped in range(state.cursor, index):
            if classify_line(buffer[skipped]) is LineKind.COMMENT:
                self._notify(LineReport(index=skipped, line=buffer[skipped], kind=LineKind.COMMENT))

        report = await self._execute_line(index, buffer[index])
        state.cursor = index + 1

        complete = index == remaining[-1]
        if complete:
            state.completed = True
            state.cursor = 0
            state.finished_at = datetime.now()
            logger.info("ステップ実行が完了しました: %s", state.stats)
        return StepReport(report=report, complete=complete)

    # -------------------------------------------------------------------
    # 内部ヘルパー
    # -------------------------------------------------------------------

    async def _execute_line(self, index: int, line: str) -> LineReport:
        state = self._state
        start = time.perf_counter()
        try:
            result = await self._transport.send(line.strip(), self._tab_id)
        except Exception as exc:
            logger.warning("%d 行目の送信に失敗しました: %s", index + 1, exc)
            result = Result.error(f"Transport failed: {exc}")

        outcome = LineOutcome.PASS if result.passed else LineOutcome.FAIL
        if outcome is LineOutcome.PASS:
            state.pass_count += 1
        else:
            state.fail_count += 1
        state.results[index] = outcome

        report = LineReport(
            index=index,
            line=line,
            kind=LineKind.COMMAND,
            outcome=outcome,
            result=result,
            duration_ms=(time.perf_counter() - start) * 1000,
        )
        state.reports[index] = report
        self._notify(report)
        return report

    def _notify(self, report: LineReport) -> None:
        if self._on_line is not None:
            self._on_line(report)
