"""
SessionRunner のユニットテスト

LocalTransport + CommandExecutor + FakePage の組み合わせでスクリプトを実行する。
settle_delay_ms=0 でコマンド間の待機を省略する。

注意: pytest-asyncio を使用せず、asyncio.run() で同期テストとして実行。

テスト対象:
  - run(): 集計、コメント・空行の扱い、中断と再開
  - step(): 1 行ずつの実行、編集時のリセット
  - Run と Step を最後まで行った結果が一致すること（Hypothesis）
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

from hypothesis import given, settings

from brepl.core.executor import CommandExecutor
from brepl.core.runner import LineOutcome, LineReport, SessionRunner, SessionState
from brepl.core.transport import LocalTransport
from brepl.dsl.parser import LineKind
from brepl.dsl.script import ScriptBuffer

from conftest import LOGIN_HTML, FakePage, script_lines


TAB = "tab-1"

SCRIPT = """# login checks
verify-text "Sign in"

verify-text "Missing"
verify-title "Sign in"
"""


def _runner(page: FakePage | None = None, **kwargs) -> SessionRunner:
    transport = LocalTransport()
    transport.attach(TAB, CommandExecutor(page or FakePage(LOGIN_HTML, title="Sign in")))
    return SessionRunner(transport, TAB, settle_delay_ms=0, **kwargs)


def _step_all(runner: SessionRunner, buffer: ScriptBuffer) -> SessionState:
    async def scenario() -> SessionState:
        while True:
            report = await runner.step(buffer)
            if report.complete:
                return runner.state

    return asyncio.run(scenario())


# ===========================================================================
# Run
# ===========================================================================

class TestRun:
    """run() のテスト。"""

    def test_counts_pass_and_fail(self) -> None:
        buffer = ScriptBuffer.from_text(SCRIPT)
        state = asyncio.run(_runner().run(buffer))

        assert state.completed is True
        assert state.stopped is False
        assert state.pass_count == 2
        assert state.fail_count == 1
        assert state.stats == "2 passed / 1 failed"
        assert state.results == [
            LineOutcome.UNSET,
            LineOutcome.PASS,
            LineOutcome.UNSET,
            LineOutcome.FAIL,
            LineOutcome.PASS,
        ]
        assert sorted(state.reports) == [1, 3, 4]

    def test_comments_are_notified_but_not_counted(self) -> None:
        seen: list[LineReport] = []
        buffer = ScriptBuffer.from_text(SCRIPT)
        asyncio.run(_runner(on_line=seen.append).run(buffer))

        assert [r.index for r in seen] == [0, 1, 3, 4]
        assert seen[0].kind is LineKind.COMMENT
        assert seen[0].outcome is LineOutcome.UNSET
        assert seen[0].result is None

    def test_settle_between_commands(self) -> None:
        buffer = ScriptBuffer.from_text(SCRIPT)
        transport = LocalTransport()
        transport.attach(TAB, CommandExecutor(FakePage(LOGIN_HTML)))
        runner = SessionRunner(transport, TAB, settle_delay_ms=1)

        state = asyncio.run(runner.run(buffer))

        assert state.completed is True
        assert state.pass_count + state.fail_count == 3

    def test_transport_exception_is_a_failure(self) -> None:
        transport = AsyncMock()
        transport.send.side_effect = ConnectionError("socket closed")
        runner = SessionRunner(transport, TAB, settle_delay_ms=0)

        state = asyncio.run(runner.run(ScriptBuffer(["reload"])))

        assert state.fail_count == 1
        assert state.reports[0].result.data == "Transport failed: socket closed"

    def test_empty_script(self) -> None:
        state = asyncio.run(_runner().run(ScriptBuffer(["", "# only comments"])))
        assert state.completed is True
        assert state.stats == "0 passed / 0 failed"


class TestStopAndResume:
    """stop() と中断後の再開のテスト。"""

    def test_stop_between_lines(self) -> None:
        """stop() は実行中の行を中断せず、次の行の手前で止まること。"""
        runner: SessionRunner

        def on_line(report: LineReport) -> None:
            if report.kind is LineKind.COMMAND:
                runner.stop()

        runner = _runner(on_line=on_line)
        buffer = ScriptBuffer.from_text(SCRIPT)
        state = asyncio.run(runner.run(buffer))

        assert state.stopped is True
        assert state.completed is False
        assert state.cursor == 3
        assert state.pass_count == 1
        assert state.results[3] is LineOutcome.UNSET

    def test_run_resumes_after_stop(self) -> None:
        stop_once = [True]
        runner: SessionRunner

        def on_line(report: LineReport) -> None:
            if report.kind is LineKind.COMMAND and stop_once[0]:
                stop_once[0] = False
                runner.stop()

        runner = _runner(on_line=on_line)
        buffer = ScriptBuffer.from_text(SCRIPT)

        async def scenario() -> SessionState:
            await runner.run(buffer)
            return await runner.run(buffer)

        state = asyncio.run(scenario())

        assert state.completed is True
        assert state.pass_count == 2
        assert state.fail_count == 1

    def test_edit_discards_progress(self) -> None:
        """ステップ実行後にバッファを編集すると先頭から実行し直すこと。"""
        runner = _runner()
        buffer = ScriptBuffer.from_text(SCRIPT)

        async def scenario() -> SessionState:
            await runner.step(buffer)
            buffer.append('verify-text "Nope"')
            return await runner.run(buffer)

        state = asyncio.run(scenario())

        assert state.completed is True
        assert state.pass_count == 2
        assert state.fail_count == 2


# ===========================================================================
# Step
# ===========================================================================

class TestStep:
    """step() のテスト。"""

    def test_steps_through_executable_lines(self) -> None:
        runner = _runner()
        buffer = ScriptBuffer.from_text(SCRIPT)

        async def scenario() -> list:
            return [await runner.step(buffer) for _ in range(3)]

        first, second, third = asyncio.run(scenario())

        assert (first.report.index, first.complete) == (1, False)
        assert (second.report.index, second.complete) == (3, False)
        assert second.report.outcome is LineOutcome.FAIL
        assert (third.report.index, third.complete) == (4, True)
        assert runner.state.cursor == 0

    def test_step_after_completion_restarts(self) -> None:
        runner = _runner()
        buffer = ScriptBuffer(['verify-text "Sign in"'])

        async def scenario() -> tuple:
            first = await runner.step(buffer)
            second = await runner.step(buffer)
            return first, second

        first, second = asyncio.run(scenario())

        assert first.complete and second.complete
        assert runner.state.pass_count == 1

    def test_step_without_commands(self) -> None:
        report = asyncio.run(_runner().step(ScriptBuffer(["# nothing", ""])))
        assert report.report is None
        assert report.complete is True

    def test_run_continues_from_step_cursor(self) -> None:
        runner = _runner()
        buffer = ScriptBuffer.from_text(SCRIPT)

        async def scenario() -> SessionState:
            await runner.step(buffer)
            return await runner.run(buffer)

        state = asyncio.run(scenario())

        assert state.completed is True
        assert state.pass_count == 2
        assert state.fail_count == 1
        assert len(state.reports) == 3


class TestRunStepEquivalence:
    """Run と Step の結果が一致することのプロパティテスト。"""

    @settings(max_examples=30, deadline=None)
    @given(script_lines())
    def test_same_outcomes(self, lines: list[str]) -> None:
        ran = asyncio.run(_runner().run(ScriptBuffer(lines)))
        stepped = _step_all(_runner(), ScriptBuffer(lines))

        assert ran.results == stepped.results
        assert ran.pass_count == stepped.pass_count == lines.count('verify-text "Sign in"')
        assert ran.fail_count == stepped.fail_count == lines.count('verify-text "Missing"')
