"""
ScriptBuffer のユニットテスト
"""

from __future__ import annotations

from pathlib import Path

import pytest

from brepl.dsl.script import ScriptBuffer


SAMPLE = """# login flow
goto https://example.com/login

fill "Email" "a@b.c"
click "Submit"
"""


class TestLoadSave:
    """ファイル入出力のテスト。"""

    def test_load_keeps_comments_and_blank_lines(self, tmp_path: Path) -> None:
        path = tmp_path / "login.pw"
        path.write_text(SAMPLE, encoding="utf-8")

        buffer = ScriptBuffer.load(path)

        assert buffer.filename == path
        assert len(buffer) == 5
        assert buffer[0] == "# login flow"
        assert buffer[2] == ""

    def test_save_is_verbatim(self, tmp_path: Path) -> None:
        """読み込んだ内容がそのまま保存されること。"""
        src = tmp_path / "in.pw"
        src.write_text(SAMPLE, encoding="utf-8")
        dest = tmp_path / "out" / "copy.pw"

        saved = ScriptBuffer.load(src).save(dest)

        assert saved == dest
        assert dest.read_text(encoding="utf-8") == SAMPLE

    def test_save_defaults_to_loaded_filename(self, tmp_path: Path) -> None:
        path = tmp_path / "s.pw"
        path.write_text("reload\n", encoding="utf-8")
        buffer = ScriptBuffer.load(path)
        buffer.append("snapshot")

        buffer.save()

        assert path.read_text(encoding="utf-8") == "reload\nsnapshot\n"

    def test_save_without_filename_raises(self) -> None:
        with pytest.raises(ValueError):
            ScriptBuffer(["reload"]).save()

    def test_load_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            ScriptBuffer.load(tmp_path / "missing.pw")

    def test_empty_buffer_text(self) -> None:
        assert ScriptBuffer().to_text() == ""


class TestEditing:
    """編集操作と revision のテスト。"""

    def test_every_edit_bumps_revision(self) -> None:
        buffer = ScriptBuffer(["a", "b"])
        assert buffer.revision == 0

        buffer.append("c")
        buffer.insert(0, "# head")
        buffer.replace(1, "A")
        buffer.delete(2)
        assert buffer.revision == 4
        assert buffer.lines == ["# head", "A", "c"]

        buffer.set_text("x\ny")
        buffer.clear()
        assert buffer.revision == 6
        assert buffer.lines == []

    def test_lines_is_a_copy(self) -> None:
        buffer = ScriptBuffer(["reload"])
        buffer.lines.append("snapshot")
        assert buffer.lines == ["reload"]
        assert buffer.revision == 0


class TestExecutableIndices:
    """executable_indices() のテスト。"""

    def test_skips_comments_and_blanks(self) -> None:
        buffer = ScriptBuffer.from_text(SAMPLE)
        assert buffer.executable_indices() == [1, 3, 4]

    def test_is_empty(self) -> None:
        assert ScriptBuffer(["", "  "]).is_empty()
        assert not ScriptBuffer(["# note"]).is_empty()
