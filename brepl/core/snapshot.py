"""
アクセシビリティツリーの整形

CDP の Accessibility.getFullAXTree が返すノード列を
``- <role> "<name>" [ref=eN]`` 形式の行に変換する。
"""

from __future__ import annotations

from typing import Any, Iterable

# 出力しないロール
_SKIPPED_ROLES = frozenset({"none", "generic", "InlineTextBox"})

EMPTY_TREE = "(empty tree)"


def _ax_value(node: dict[str, Any], key: str) -> str:
    prop = node.get(key) or {}
    value = prop.get("value") if isinstance(prop, dict) else None
    return "" if value is None else str(value)


def format_accessibility_tree(nodes: Iterable[dict[str, Any]]) -> list[str]:
    """AX ノード列をスナップショット行に整形する。

    ロールなし・none / generic / InlineTextBox・名前なし StaticText・
    ignored ノードは除外し、残りに 1 から ref を振る。

    Args:
        nodes: AX ノードの辞書列

    Returns:
        スナップショット行。出力対象がない場合は ["(empty tree)"]
    """
    lines: list[str] = []
    for node in nodes or ():
        role = _ax_value(node, "role")
        name = _ax_value(node, "name")
        if not role or role in _SKIPPED_ROLES:
            continue
        if role == "StaticText" and not name:
            continue
        if node.get("ignored"):
            continue

        line = f"- {role}"
        if name:
            line += f' "{name}"'
        line += f" [ref=e{len(lines) + 1}]"
        lines.append(line)

    return lines or [EMPTY_TREE]
