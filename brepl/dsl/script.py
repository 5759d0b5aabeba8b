"""
ScriptBuffer — 編集可能なコマンドスクリプト

コマンド・コメント・空行を順序付きで保持し、ファイルへ逐語的に保存する。
編集のたびに revision を増やし、SessionRunner がステップ実行中の
編集を検出できるようにする。
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Iterator, Optional

from .parser import is_executable

logger = logging.getLogger(__name__)

# スクリプトファイルの慣例拡張子
SCRIPT_SUFFIX = ".pw"


class ScriptBuffer:
    """行単位のコマンドスクリプト。"""

    def __init__(
        self,
        lines: Optional[Iterable[str]] = None,
        filename: Optional[Path] = None,
    ) -> None:
        self._lines: list[str] = list(lines) if lines is not None else []
        self.filename = filename
        self._revision = 0

    # -------------------------------------------------------------------
    # 生成・保存
    # -------------------------------------------------------------------

    @classmethod
    def from_text(cls, text: str, filename: Optional[Path] = None) -> ScriptBuffer:
        """テキストから ScriptBuffer を生成する。"""
        return cls(text.splitlines(), filename=filename)

    @classmethod
    def load(cls, path: Path) -> ScriptBuffer:
        """スクリプトファイルを読み込む。

        Args:
            path: スクリプトファイルのパス

        Raises:
            FileNotFoundError: ファイルが存在しない場合
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"スクリプトファイルが見つかりません: {path}")
        text = path.read_text(encoding="utf-8")
        logger.debug("スクリプトを読み込みました: %s", path)
        return cls.from_text(text, filename=path)

    def to_text(self) -> str:
        """保存用のテキストを返す（行末は \\n、最終行にも改行を付与）。"""
        if not self._lines:
            return ""
        return "\n".join(self._lines) + "\n"

    def save(self, path: Optional[Path] = None) -> Path:
        """スクリプトを逐語的に保存する。

        Args:
            path: 保存先。None の場合は読み込み元のファイル名

        Returns:
            保存先のパス

        Raises:
            ValueError: 保存先が決まらない場合
        """
        target = Path(path) if path is not None else self.filename
        if target is None:
            raise ValueError("保存先のファイル名が指定されていません")
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(self.to_text(), encoding="utf-8")
        self.filename = target
        logger.info("スクリプトを保存しました: %s", target)
        return target

    # -------------------------------------------------------------------
    # 参照
    # -------------------------------------------------------------------

    @property
    def revision(self) -> int:
        """編集ごとに増加するリビジョン番号。"""
        return self._revision

    @property
    def lines(self) -> list[str]:
        """行のコピーを返す。"""
        return list(self._lines)

    def __len__(self) -> int:
        return len(self._lines)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._lines))

    def __getitem__(self, index: int) -> str:
        return self._lines[index]

    def executable_indices(self) -> list[int]:
        """実行対象の行番号（0 始まり）を返す。"""
        return [i for i, line in enumerate(self._lines) if is_executable(line)]

    def is_empty(self) -> bool:
        """空白以外の内容を持たない場合に True を返す。"""
        return all(not line.strip() for line in self._lines)

    # -------------------------------------------------------------------
    # 編集
    # -------------------------------------------------------------------

    def _touch(self) -> None:
        self._revision += 1

    def append(self, line: str) -> None:
        self._lines.append(line)
        self._touch()

    def insert(self, index: int, line: str) -> None:
        self._lines.insert(index, line)
        self._touch()

    def replace(self, index: int, line: str) -> None:
        self._lines[index] = line
        self._touch()

    def delete(self, index: int) -> None:
        del self._lines[index]
        self._touch()

    def set_text(self, text: str) -> None:
        """内容全体を置き換える。"""
        self._lines = text.splitlines()
        self._touch()

    def clear(self) -> None:
        self._lines = []
        self._touch()
