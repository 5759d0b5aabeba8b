"""
brepl — ブラウザ操作コマンド REPL

1 行コマンド（goto / click / fill / verify-text ...）でブラウザを操作し、
操作の記録と Playwright テストコードへのエクスポートを行う。
"""

__version__ = "0.1.0"
