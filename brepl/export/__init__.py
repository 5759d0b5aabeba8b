# Export モジュール
# コマンドスクリプトを Playwright テストコード（TypeScript / Python）に変換

from .converter import (  # noqa: F401
    ExportTarget,
    convert_lines,
    export_script,
    pw_to_playwright,
    to_statement,
)
