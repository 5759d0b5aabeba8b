"""
Parser のユニットテスト

テスト対象:
  - tokenize: クォート・空白・コメント・未終了クォートの扱い
  - parse_command: 小文字化と引数の保持
  - classify_line / command_remainder
"""

from __future__ import annotations

from hypothesis import given
from hypothesis import strategies as st

from brepl.dsl.parser import (
    LineKind,
    ParsedCommand,
    classify_line,
    command_remainder,
    is_executable,
    parse_command,
    tokenize,
)

from conftest import command_lines


# ===========================================================================
# tokenize
# ===========================================================================

class TestTokenize:
    """tokenize のテスト。"""

    def test_quoted_arguments(self) -> None:
        """クォート内の空白はトークン境界にならないこと。"""
        assert tokenize('fill "Email" "a b"') == ["fill", "Email", "a b"]

    def test_single_quotes(self) -> None:
        assert tokenize("click 'Sign in' 'Header'") == ["click", "Sign in", "Header"]

    def test_mixed_quotes_keep_other_quote_literal(self) -> None:
        """別種のクォートはトークンの一部として残ること。"""
        assert tokenize("""fill "it's" 'say "hi"'""") == ["fill", "it's", 'say "hi"']

    def test_empty_and_blank_lines(self) -> None:
        assert tokenize("") == []
        assert tokenize("   ") == []
        assert tokenize("\t") == []

    def test_comment_line(self) -> None:
        assert tokenize("# x") == []
        assert tokenize('   # click "Submit"') == []

    def test_multiple_separators(self) -> None:
        assert tokenize("  press \t  Enter  ") == ["press", "Enter"]

    def test_empty_quoted_string_is_a_token(self) -> None:
        """閉じクォートで空文字列のトークンが確定すること。"""
        assert tokenize('fill "Name" ""') == ["fill", "Name", ""]

    def test_unterminated_quote_absorbs_rest_of_line(self) -> None:
        """閉じられていないクォートは行末までを 1 トークンにすること。"""
        assert tokenize('click "Sign in now') == ["click", "Sign in now"]

    def test_quote_adjacent_to_word(self) -> None:
        """単語に続くクォートは同じトークンに連結されること。"""
        assert tokenize('verify-text abc"def ghi"') == ["verify-text", "abcdef ghi"]

    @given(command_lines())
    def test_round_trip_of_quoted_arguments(self, case: tuple[str, list[str]]) -> None:
        """クォートした引数が境界を保ってトークン化されること。"""
        line, expected = case
        assert tokenize(line) == expected


# ===========================================================================
# parse_command
# ===========================================================================

class TestParseCommand:
    """parse_command のテスト。"""

    def test_lowercases_command_only(self) -> None:
        parsed = parse_command('CLICK "Submit"')
        assert parsed == ParsedCommand(command="click", args=["Submit"])

    def test_none_for_non_commands(self) -> None:
        assert parse_command("") is None
        assert parse_command("    ") is None
        assert parse_command("# comment") is None

    def test_no_arguments(self) -> None:
        assert parse_command("snapshot") == ParsedCommand(command="snapshot", args=[])

    @given(st.text(max_size=40))
    def test_command_is_always_lowercase(self, raw: str) -> None:
        parsed = parse_command(raw)
        if parsed is not None:
            assert parsed.command == parsed.command.lower()


# ===========================================================================
# 行の分類
# ===========================================================================

class TestClassifyLine:
    """classify_line / is_executable のテスト。"""

    def test_kinds(self) -> None:
        assert classify_line("") is LineKind.BLANK
        assert classify_line("   ") is LineKind.BLANK
        assert classify_line("  # note") is LineKind.COMMENT
        assert classify_line("goto example.com") is LineKind.COMMAND

    def test_is_executable(self) -> None:
        assert is_executable("reload")
        assert not is_executable("# reload")
        assert not is_executable("")


class TestCommandRemainder:
    """command_remainder のテスト。"""

    def test_returns_raw_text_after_command(self) -> None:
        assert command_remainder('eval document.querySelector("h1").textContent') == (
            'document.querySelector("h1").textContent'
        )

    def test_keeps_quotes(self) -> None:
        assert command_remainder('export  click "Submit"  ') == 'click "Submit"'

    def test_no_remainder(self) -> None:
        assert command_remainder("eval") == ""
