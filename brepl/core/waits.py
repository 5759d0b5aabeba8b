"""
待機戦略 — ロード完了待機と実行間隔

主な機能:
  - wait_for_signal: ロード完了シグナルをタイムアウト付きで待機（タイムアウトでも続行）
  - settle: 連続実行時のコマンド間の待機
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable

logger = logging.getLogger(__name__)

# ロード完了待機のデフォルトタイムアウト（ミリ秒）
DEFAULT_LOAD_TIMEOUT_MS = 5000

# Run 時のコマンド間待機のデフォルト（ミリ秒）
DEFAULT_SETTLE_DELAY_MS = 300


async def wait_for_signal(signal: Awaitable[None], timeout_ms: int = DEFAULT_LOAD_TIMEOUT_MS) -> bool:
    """ロード完了シグナルを待機する。

    シグナルとタイムアウトの早い方で戻る。タイムアウトはエラーにしない。
    シグナル側が例外で終了した場合もログに残して続行する。

    Args:
        signal: ロード完了で解決される Awaitable（ナビゲーション前に取得しておく）
        timeout_ms: タイムアウト（ミリ秒）

    Returns:
        シグナルを受信した場合 True、タイムアウトの場合 False
    """
    start = time.perf_counter()
    try:
        await asyncio.wait_for(signal, timeout=timeout_ms / 1000.0)
    except asyncio.TimeoutError:
        logger.debug("ロード完了を %dms 待機しましたが受信できませんでした。続行します", timeout_ms)
        return False
    except Exception as exc:
        logger.debug("ロード完了待機中にエラー: %s", exc)
        return False

    logger.debug("ロード完了を受信しました（%.0fms 経過）", (time.perf_counter() - start) * 1000)
    return True


async def settle(delay_ms: int = DEFAULT_SETTLE_DELAY_MS) -> None:
    """コマンド間の待機。0 以下の場合は待機しない。"""
    if delay_ms > 0:
        await asyncio.sleep(delay_ms / 1000.0)
