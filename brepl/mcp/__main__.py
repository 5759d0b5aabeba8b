"""
brepl MCP Server エントリポイント

python -m brepl.mcp で MCP サーバーを起動する。
設定は brepl.yaml と環境変数（BREPL_*）から読み込む。

使用例:
  python -m brepl.mcp
  BREPL_HEADED=false python -m brepl.mcp     # ヘッドレスモード
"""

from __future__ import annotations

from ..config import load_config
from .server import create_server

server = create_server(config=load_config())
server.run()
