"""
brepl の MCP 公開口

エージェントは brepl_launch でタブを開き、brepl_command / brepl_run に
コマンド言語の文字列を渡す。記録と Playwright テストへの変換も同じツール群で行う。
サーバー本体は server.create_server() が組み立てる。
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from fastmcp import FastMCP

    from ..config import ReplConfig


def create_server(config: Optional[ReplConfig] = None) -> FastMCP:
    """設定済みの FastMCP サーバーを返す。

    `python -m brepl.mcp` で server モジュールが二重に読み込まれないよう、
    import は呼び出し時まで遅らせる。
    """
    from .server import create_server as _create_server

    return _create_server(config=config)


__all__ = ["create_server"]
