"""
Reporter — スクリプト実行レポートの生成

SessionRunner の SessionState とスクリプトを受け取り、
JSON / HTML / JUnit XML 形式のレポートを生成する。

主な機能:
  - generate_json(): 行ごとの結果と集計（report.json）
  - generate_html(): Jinja2 テンプレートによる一覧表示（report.html）
  - generate_junit_xml(): コマンド行を testcase とした CI 向け出力（junit.xml）
"""

from __future__ import annotations

import json
import logging
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader

from ..dsl.script import ScriptBuffer
from .runner import LineOutcome, SessionState

logger = logging.getLogger(__name__)

_TEMPLATES_DIR = Path(__file__).parent / "templates"


def _write(output_dir: Path, name: str, content: str) -> Path:
    """出力先ディレクトリを作成し、content を UTF-8 で書き出す。"""
    output_dir.mkdir(parents=True, exist_ok=True)
    path = output_dir / name
    path.write_text(content, encoding="utf-8")
    logger.info("レポートを出力しました: %s", path)
    return path


class Reporter:
    """実行レポートの生成クラス。

    SessionRunner の実行結果をスクリプトの行と突き合わせ、
    JSON / HTML / JUnit XML 形式のレポートファイルを出力する。
    コマンド行を 1 件として数え、コメント・空行は対象外とする。
    """

    def __init__(self, title: str = "brepl session") -> None:
        """Reporter を初期化する。

        Args:
            title: レポートの見出し。JUnit XML では testsuite 名にも使う
        """
        self._title = title

    # -------------------------------------------------------------------
    # JSON レポート
    # -------------------------------------------------------------------

    def generate_json(self, state: SessionState, buffer: ScriptBuffer, output_dir: Path) -> Path:
        """JSON レポートを生成する。

        行ごとの判定・メッセージ・所要時間と、集計（total, passed,
        failed, skipped）を report.json として出力する。

        Args:
            state: 実行後の SessionState
            buffer: 実行したスクリプト
            output_dir: 出力先ディレクトリ

        Returns:
            生成された report.json のパス
        """
        report = self.build_report_dict(state, buffer)
        return _write(output_dir, "report.json", json.dumps(report, ensure_ascii=False, indent=2))

    # -------------------------------------------------------------------
    # HTML レポート
    # -------------------------------------------------------------------

    def generate_html(self, state: SessionState, buffer: ScriptBuffer, output_dir: Path) -> Path:
        """HTML レポートを生成する。

        Jinja2 テンプレート（templates/report.html.j2）で、コマンドと
        メッセージをエスケープしたスタンドアロン HTML を出力する。

        Args:
            state: 実行後の SessionState
            buffer: 実行したスクリプト
            output_dir: 出力先ディレクトリ

        Returns:
            生成された report.html のパス
        """
        env = Environment(loader=FileSystemLoader(str(_TEMPLATES_DIR)), autoescape=True)
        html = env.get_template("report.html.j2").render(report=self.build_report_dict(state, buffer))
        return _write(output_dir, "report.html", html)

    # -------------------------------------------------------------------
    # JUnit XML レポート
    # -------------------------------------------------------------------

    def generate_junit_xml(self, state: SessionState, buffer: ScriptBuffer, output_dir: Path) -> Path:
        """JUnit XML レポートを生成する。

        CI ツール（Jenkins, GitHub Actions 等）が読める形式で、コマンド行を
        "行番号: コマンド" という名前の testcase として出力する。
        Fail の行は failure、未実行（中断後）の行は skipped になる。

        Args:
            state: 実行後の SessionState
            buffer: 実行したスクリプト
            output_dir: 出力先ディレクトリ

        Returns:
            生成された junit.xml のパス
        """
        report = self.build_report_dict(state, buffer)
        summary = report["summary"]

        testsuites = ET.Element("testsuites")
        suite = ET.SubElement(testsuites, "testsuite", {
            "name": self._title,
            "tests": str(summary["total"]),
            "failures": str(summary["failed"]),
            "skipped": str(summary["skipped"]),
            "time": f"{report['duration_ms'] / 1000:.3f}",
        })

        for line in report["lines"]:
            case = ET.SubElement(suite, "testcase", {
                "name": f"{line['line_number']}: {line['command']}",
                "classname": self._title,
                "time": f"{line['duration_ms'] / 1000:.3f}",
            })
            if line["status"] == LineOutcome.FAIL.value:
                ET.SubElement(case, "failure", {"message": line["message"]}).text = line["message"]
            elif line["status"] == LineOutcome.UNSET.value:
                ET.SubElement(case, "skipped")

        ET.indent(testsuites, space="  ")
        xml = ET.tostring(testsuites, encoding="unicode")
        return _write(output_dir, "junit.xml", f"<?xml version=\"1.0\" encoding=\"UTF-8\"?>\n{xml}\n")

    # -------------------------------------------------------------------
    # 内部ヘルパー
    # -------------------------------------------------------------------

    def build_report_dict(self, state: SessionState, buffer: ScriptBuffer) -> dict[str, Any]:
        """SessionState をレポート用辞書に変換する。

        Args:
            state: 実行後の SessionState
            buffer: 実行したスクリプト

        Returns:
            レポート用辞書
        """
        lines_data: list[dict[str, Any]] = []
        for index in buffer.executable_indices():
            report = state.reports.get(index)
            outcome = state.results[index] if index < len(state.results) else LineOutcome.UNSET
            lines_data.append({
                "line_number": index + 1,
                "command": buffer[index].strip(),
                "status": outcome.value,
                "kind": report.result.kind.value if report and report.result else None,
                "message": report.result.data if report and report.result else "",
                "duration_ms": report.duration_ms if report else 0.0,
            })

        duration_ms = sum(line["duration_ms"] for line in lines_data)
        if state.started_at and state.finished_at:
            duration_ms = (state.finished_at - state.started_at).total_seconds() * 1000

        return {
            "title": self._title,
            "script": str(buffer.filename) if buffer.filename else None,
            "status": "failed" if state.fail_count else ("stopped" if state.stopped else "passed"),
            "duration_ms": duration_ms,
            "started_at": state.started_at.isoformat() if state.started_at else None,
            "finished_at": state.finished_at.isoformat() if state.finished_at else None,
            "lines": lines_data,
            "summary": self._compute_summary(lines_data),
        }

    def _compute_summary(self, lines: list[dict[str, Any]]) -> dict[str, int]:
        """行ごとの判定から total / passed / failed / skipped を集計する。"""
        return {
            "total": len(lines),
            "passed": sum(1 for line in lines if line["status"] == LineOutcome.PASS.value),
            "failed": sum(1 for line in lines if line["status"] == LineOutcome.FAIL.value),
            "skipped": sum(1 for line in lines if line["status"] == LineOutcome.UNSET.value),
        }
