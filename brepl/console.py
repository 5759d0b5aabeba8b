"""
Console — 対話入力の処理

1 行ずつ入力を受け取り、コンソール内で完結するコマンド（history / clear /
reset / export）を処理したうえで、それ以外を Transport に送る。
出力は表示用のエントリとして返し、描画は呼び出し側に任せる。

主な機能:
  - 実行履歴（history）とコマンドログ（export の対象）の管理
  - 記録されたコマンドのログとスクリプトバッファへの追記
  - 結果の種別ごとの出力エントリ生成と Pass / Fail の集計
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Optional

from .core.results import Result, ResultKind
from .core.transport import Transport
from .dsl.parser import LineKind, classify_line
from .dsl.script import ScriptBuffer
from .export import ExportTarget, export_script, to_statement

logger = logging.getLogger(__name__)

_EXPORT_HEADERS = {
    ExportTarget.TYPESCRIPT: "--- Playwright TypeScript ---",
    ExportTarget.PYTHON: "--- Playwright Python ---",
}


class EntryKind(str, enum.Enum):
    """出力エントリの種別。"""

    COMMAND = "command"
    SUCCESS = "success"
    ERROR = "error"
    INFO = "info"
    SNAPSHOT = "snapshot"
    SCREENSHOT = "screenshot"
    COMMENT = "comment"
    CODE = "code"


_RESULT_ENTRY = {
    ResultKind.SUCCESS: EntryKind.SUCCESS,
    ResultKind.ERROR: EntryKind.ERROR,
    ResultKind.INFO: EntryKind.INFO,
    ResultKind.SNAPSHOT: EntryKind.SNAPSHOT,
    ResultKind.SCREENSHOT: EntryKind.SCREENSHOT,
}


@dataclass(frozen=True)
class OutputEntry:
    """表示用の出力 1 件。"""

    kind: EntryKind
    text: str


class Console:
    """対話入力を処理する。

    Attributes:
        history: 実行したコマンドの履歴（コンソール内コマンドは含まない）
        command_log: export の対象となるコマンドログ
        output: これまでの出力
    """

    def __init__(
        self,
        transport: Transport,
        tab_id: str,
        buffer: Optional[ScriptBuffer] = None,
        target: ExportTarget = ExportTarget.TYPESCRIPT,
    ) -> None:
        self._transport = transport
        self._tab_id = tab_id
        self._buffer = buffer if buffer is not None else ScriptBuffer()
        self._target = ExportTarget(target)
        self.history: list[str] = []
        self.command_log: list[str] = []
        self.output: list[OutputEntry] = []
        self.pass_count = 0
        self.fail_count = 0

    @property
    def buffer(self) -> ScriptBuffer:
        return self._buffer

    @property
    def stats(self) -> str:
        return f"{self.pass_count} passed / {self.fail_count} failed"

    async def submit(self, line: str) -> list[OutputEntry]:
        """1 行を処理し、この行で追加された出力エントリを返す。"""
        entries = await self._process(line.strip())
        self.output.extend(entries)
        return entries

    def record(self, command: str) -> None:
        """記録されたコマンドをログとバッファに追記する。"""
        self.command_log.append(command)
        self._buffer.append(command)

    def clear(self) -> None:
        """出力と集計を消去する。"""
        self.output = []
        self.pass_count = 0
        self.fail_count = 0

    # -------------------------------------------------------------------
    # 内部処理
    # -------------------------------------------------------------------

    async def _process(self, line: str) -> list[OutputEntry]:
        kind = classify_line(line)
        if kind is LineKind.BLANK:
            return []
        if kind is LineKind.COMMENT:
            return [OutputEntry(EntryKind.COMMENT, line)]

        word = line.split(None, 1)[0].lower()
        if line.lower() == "history":
            return self._history()
        if line.lower() == "clear":
            self.clear()
            return []
        if line.lower() == "reset":
            self.history = []
            self.clear()
            return [OutputEntry(EntryKind.INFO, "History and terminal cleared")]
        if line.lower() == "export":
            return self._export_session()
        if word == "export":
            return self._export_one(line.split(None, 1)[1].strip())

        self.history.append(line)
        self.command_log.append(line)
        entries = [OutputEntry(EntryKind.COMMAND, line)]
        try:
            result = await self._transport.send(line, self._tab_id)
        except Exception as exc:
            logger.warning("コマンドの送信に失敗しました: %s", exc)
            result = Result.error(f"Error: {exc}")

        if result.passed:
            self.pass_count += 1
        else:
            self.fail_count += 1
        entries.extend(self._result_entries(result))
        return entries

    def _result_entries(self, result: Result) -> list[OutputEntry]:
        entry_kind = _RESULT_ENTRY[result.kind]
        if result.kind is ResultKind.SNAPSHOT:
            return [OutputEntry(entry_kind, text) for text in result.data.split("\n")]
        return [OutputEntry(entry_kind, result.data or "Done.")]

    def _history(self) -> list[OutputEntry]:
        if not self.history:
            return [OutputEntry(EntryKind.INFO, "No command history")]
        return [
            OutputEntry(EntryKind.INFO, f"{number:4d}  {command}")
            for number, command in enumerate(self.history, start=1)
        ]

    def _export_session(self) -> list[OutputEntry]:
        if not self.command_log:
            return [OutputEntry(EntryKind.INFO, "Nothing to export.")]
        code = export_script(self.command_log, self._target)
        entries = [OutputEntry(EntryKind.INFO, _EXPORT_HEADERS[self._target])]
        entries.extend(OutputEntry(EntryKind.CODE, text) for text in code.rstrip("\n").split("\n"))
        entries.append(OutputEntry(EntryKind.INFO, "--- End ---"))
        return entries

    def _export_one(self, command: str) -> list[OutputEntry]:
        converted = to_statement(command, self._target)
        if converted is None:
            return [OutputEntry(EntryKind.ERROR, f"Cannot convert: {command}")]
        return [
            OutputEntry(EntryKind.COMMAND, f"export {command}"),
            OutputEntry(EntryKind.CODE, converted),
        ]
