# DSL モジュール
# コマンド行パーサー、コマンドレジストリ、スクリプトバッファを提供

from . import parser  # noqa: F401
from . import commands  # noqa: F401
from . import script  # noqa: F401
