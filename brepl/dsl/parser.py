"""
Parser — コマンド行のトークン分割と解析

1 行のコマンド文字列をトークンに分割し、コマンド名と引数に分解する。

主な機能:
  - tokenize(): クォート（" / '）を考慮した空白区切りのトークン分割
  - parse_command(): 先頭トークンを小文字化したコマンド名と引数リストの生成
  - classify_line(): 空行 / コメント行 / コマンド行の判定
  - command_remainder(): コマンド名以降の生テキスト（eval / export 用）

閉じられていないクォートはエラーにせず、行末までを 1 トークンとして扱う。
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Optional

# クォート文字とトークン区切り文字
_QUOTES = ('"', "'")
_SEPARATORS = (" ", "\t")
_COMMENT_PREFIX = "#"


class LineKind(enum.Enum):
    """スクリプト行の種別。"""

    BLANK = "blank"
    COMMENT = "comment"
    COMMAND = "command"


@dataclass(frozen=True)
class ParsedCommand:
    """解析済みコマンド。

    Attributes:
        command: 先頭トークン（小文字化済み、エイリアス未解決）
        args: 残りのトークン（クォート境界を保持）
    """

    command: str
    args: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# 行の分類
# ---------------------------------------------------------------------------

def classify_line(raw: str) -> LineKind:
    """行の種別を判定する。

    Args:
        raw: スクリプトの 1 行

    Returns:
        BLANK / COMMENT / COMMAND のいずれか
    """
    stripped = raw.strip()
    if not stripped:
        return LineKind.BLANK
    if stripped.startswith(_COMMENT_PREFIX):
        return LineKind.COMMENT
    return LineKind.COMMAND


def is_executable(raw: str) -> bool:
    """実行対象の行（空行・コメント以外）かどうかを返す。"""
    return classify_line(raw) is LineKind.COMMAND


# ---------------------------------------------------------------------------
# トークン分割
# ---------------------------------------------------------------------------

def tokenize(raw: str) -> list[str]:
    """コマンド行をトークンに分割する。

    クォートで囲まれた部分は空白を含めて 1 トークンになる。
    閉じクォートの時点でトークンを確定するため、``""`` は空文字列の
    トークンになる。

    Args:
        raw: コマンド行

    Returns:
        トークンのリスト。空行・コメント行は空リスト。
    """
    if classify_line(raw) is not LineKind.COMMAND:
        return []

    tokens: list[str] = []
    current = ""
    quote: Optional[str] = None

    for ch in raw.strip():
        if quote is not None:
            if ch == quote:
                tokens.append(current)
                current = ""
                quote = None
            else:
                current += ch
        elif ch in _QUOTES:
            quote = ch
        elif ch in _SEPARATORS:
            if current:
                tokens.append(current)
                current = ""
        else:
            current += ch

    # 未終了のクォートは行末までを取り込む
    if current:
        tokens.append(current)
    return tokens


def parse_command(raw: str) -> Optional[ParsedCommand]:
    """コマンド行を解析する。

    Args:
        raw: コマンド行

    Returns:
        ParsedCommand。空行・空白のみ・コメント行の場合は None。
    """
    tokens = tokenize(raw)
    if not tokens:
        return None
    return ParsedCommand(command=tokens[0].lower(), args=tokens[1:])


def command_remainder(raw: str) -> str:
    """コマンド名より後ろの生テキストを返す。

    eval の式や export の対象コマンドのように、クォートを含む自由形式の
    テキストをトークン分割せずに扱うために使用する。

    Args:
        raw: コマンド行

    Returns:
        コマンド名以降の文字列（前後の空白は除去）
    """
    stripped = raw.strip()
    for i, ch in enumerate(stripped):
        if ch in _SEPARATORS:
            return stripped[i:].strip()
    return ""
