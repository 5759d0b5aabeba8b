"""
ページ注入スクリプトの読み込み

js/ ディレクトリの JavaScript を読み込み、Playwright の evaluate や
CDP の addScriptToEvaluateOnNewDocument に渡せる形に組み立てる。
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

_JS_DIR = Path(__file__).parent / "js"


def _read(name: str) -> str:
    return (_JS_DIR / name).read_text(encoding="utf-8")


@lru_cache(maxsize=None)
def snapshot_function() -> str:
    """DomSnapshot 用の要素一覧を返す関数式。"""
    return "() => {\n" + _read("describe.js") + "\nreturn describeDom().nodes;\n}"


@lru_cache(maxsize=None)
def element_action_function() -> str:
    """文書順インデックスで要素を取得して操作する関数式。"""
    return _read("element_action.js")


@lru_cache(maxsize=None)
def active_element_function() -> str:
    """フォーカス中の要素を操作する関数式。"""
    return _read("active_action.js")


@lru_cache(maxsize=None)
def recorder_script() -> str:
    """記録用リスナーを登録するスクリプト（即時実行）。"""
    return "(() => {\n" + _read("describe.js") + "\n" + _read("recorder.js") + "\n})();"


RECORDER_CLEANUP = (
    "() => { if (window.__breplRecorderCleanup) window.__breplRecorderCleanup(); }"
)
