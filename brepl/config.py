"""
brepl 設定 — 設定ファイル・環境変数・CLI 引数からの設定読み込み

CLI 引数 > 環境変数 > 設定ファイル（brepl.yaml）> デフォルト値 の
優先順位で適用される。不正な値は警告ログを出して無視する。

環境変数一覧:
  BREPL_HEADED           : ブラウザ表示モード（true/false, デフォルト: true）
  BREPL_CHANNEL          : Chromium のチャンネル（chrome, msedge 等, デフォルト: 同梱版）
  BREPL_VIEWPORT_WIDTH   : ビューポート幅（デフォルト: 1280）
  BREPL_VIEWPORT_HEIGHT  : ビューポート高さ（デフォルト: 720）
  BREPL_SETTLE_MS        : Run 時のコマンド間の待機（デフォルト: 300）
  BREPL_LOAD_TIMEOUT_MS  : ロード完了待ちの上限（デフォルト: 5000）
  BREPL_FILL_DEBOUNCE_MS : 記録時の fill デバウンス（デフォルト: 1500）
  BREPL_EXPORT_TARGET    : エクスポート形式（ts/python, デフォルト: ts）
  BREPL_LOG_LEVEL        : ログレベル（デフォルト: WARNING）
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Optional, Union

from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# 定数
# ---------------------------------------------------------------------------

DEFAULT_CONFIG_FILE = "brepl.yaml"

_ENV_HEADED = "BREPL_HEADED"
_ENV_CHANNEL = "BREPL_CHANNEL"
_ENV_VIEWPORT_WIDTH = "BREPL_VIEWPORT_WIDTH"
_ENV_VIEWPORT_HEIGHT = "BREPL_VIEWPORT_HEIGHT"
_ENV_SETTLE_MS = "BREPL_SETTLE_MS"
_ENV_LOAD_TIMEOUT_MS = "BREPL_LOAD_TIMEOUT_MS"
_ENV_FILL_DEBOUNCE_MS = "BREPL_FILL_DEBOUNCE_MS"
_ENV_EXPORT_TARGET = "BREPL_EXPORT_TARGET"
_ENV_LOG_LEVEL = "BREPL_LOG_LEVEL"

_EXPORT_TARGETS = ("ts", "python")
_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

# 整数設定: 属性名 → 環境変数名
_INT_FIELDS = {
    "viewport_width": _ENV_VIEWPORT_WIDTH,
    "viewport_height": _ENV_VIEWPORT_HEIGHT,
    "settle_delay_ms": _ENV_SETTLE_MS,
    "load_timeout_ms": _ENV_LOAD_TIMEOUT_MS,
    "fill_debounce_ms": _ENV_FILL_DEBOUNCE_MS,
}


# ---------------------------------------------------------------------------
# 設定データクラス
# ---------------------------------------------------------------------------

@dataclass
class ReplConfig:
    """brepl の実行時設定。

    Attributes:
        headed: ブラウザ表示モード（True=表示, False=ヘッドレス）
        channel: Chromium のチャンネル（None で Playwright 同梱版）
        viewport_width: ビューポート幅
        viewport_height: ビューポート高さ
        settle_delay_ms: Run 時のコマンド間の待機（ミリ秒）
        load_timeout_ms: ナビゲーション後のロード完了待ちの上限（ミリ秒）
        fill_debounce_ms: 記録時の fill デバウンス（ミリ秒）
        export_target: エクスポート形式（"ts" / "python"）
        log_level: ログレベル名
    """

    headed: bool = True
    channel: Optional[str] = None
    viewport_width: int = 1280
    viewport_height: int = 720
    settle_delay_ms: int = 300
    load_timeout_ms: int = 5000
    fill_debounce_ms: int = 1500
    export_target: str = "ts"
    log_level: str = "WARNING"


# ---------------------------------------------------------------------------
# 値の検証
# ---------------------------------------------------------------------------

def _parse_bool(value: Any) -> bool:
    """文字列を bool に変換する。

    Args:
        value: "true", "1", "yes" → True、それ以外 → False
    """
    if isinstance(value, bool):
        return value
    return str(value).lower() in ("true", "1", "yes")


def _set_int(config: ReplConfig, name: str, value: Any, source: str) -> None:
    try:
        number = int(value)
    except (TypeError, ValueError):
        logger.warning("%s の値が不正です: %s", source, value)
        return
    if number < 0:
        logger.warning("%s の値が不正です: %s", source, value)
        return
    setattr(config, name, number)


def _set_export_target(config: ReplConfig, value: Any, source: str) -> None:
    target = str(value).lower()
    if target in _EXPORT_TARGETS:
        config.export_target = target
    else:
        logger.warning("%s の値が不正です: %s (ts/python)", source, value)


def _set_log_level(config: ReplConfig, value: Any, source: str) -> None:
    level = str(value).upper()
    if level in _LOG_LEVELS:
        config.log_level = level
    else:
        logger.warning("%s の値が不正です: %s", source, value)


# ---------------------------------------------------------------------------
# 設定ファイル
# ---------------------------------------------------------------------------

def load_config_file(path: Union[str, Path]) -> dict[str, Any]:
    """YAML 設定ファイルを読み込んで辞書を返す。

    Raises:
        FileNotFoundError: ファイルが存在しない場合
        ValueError: YAML 構文エラー、またはトップレベルがマッピングでない場合
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"設定ファイルが見つかりません: {path}")

    yaml = YAML(typ="safe")
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.load(f)
    except YAMLError as e:
        line_info = ""
        if hasattr(e, "problem_mark") and e.problem_mark is not None:
            mark = e.problem_mark
            line_info = f" (行 {mark.line + 1}, 列 {mark.column + 1})"
        raise ValueError(f"YAML 構文エラー{line_info}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"設定ファイルの形式が不正です: {path}")
    return dict(data)


def apply_file_values(config: ReplConfig, data: Mapping[str, Any]) -> ReplConfig:
    """設定ファイルの値を適用する。未知のキーは警告して無視する。"""
    for key, value in data.items():
        source = f"{DEFAULT_CONFIG_FILE}:{key}"
        if key == "headed":
            config.headed = _parse_bool(value)
        elif key == "channel":
            config.channel = str(value) if value else None
        elif key in _INT_FIELDS:
            _set_int(config, key, value, source)
        elif key == "export_target":
            _set_export_target(config, value, source)
        elif key == "log_level":
            _set_log_level(config, value, source)
        else:
            logger.warning("未知の設定キーを無視します: %s", key)
    return config


# ---------------------------------------------------------------------------
# 環境変数
# ---------------------------------------------------------------------------

def apply_env(config: ReplConfig, environ: Optional[Mapping[str, str]] = None) -> ReplConfig:
    """環境変数の値を適用する。

    Args:
        config: ベースとなる設定
        environ: 環境変数の辞書（None で os.environ）
    """
    env = os.environ if environ is None else environ

    if _ENV_HEADED in env:
        config.headed = _parse_bool(env[_ENV_HEADED])

    if _ENV_CHANNEL in env:
        config.channel = env[_ENV_CHANNEL] or None

    for name, env_key in _INT_FIELDS.items():
        if env_key in env:
            _set_int(config, name, env[env_key], env_key)

    if _ENV_EXPORT_TARGET in env:
        _set_export_target(config, env[_ENV_EXPORT_TARGET], _ENV_EXPORT_TARGET)

    if _ENV_LOG_LEVEL in env:
        _set_log_level(config, env[_ENV_LOG_LEVEL], _ENV_LOG_LEVEL)

    return config


# ---------------------------------------------------------------------------
# CLI 引数
# ---------------------------------------------------------------------------

def apply_cli_args(config: ReplConfig, **overrides: Any) -> ReplConfig:
    """CLI 引数を適用する。None の引数は指定なしとして扱う。

    Args:
        config: ベースとなる設定（ファイル・環境変数から読み込み済み）
        **overrides: ReplConfig の属性名と値。viewport は "WIDTHxHEIGHT" 形式も受け付ける
    """
    for key, value in overrides.items():
        if value is None:
            continue
        if key == "viewport":
            try:
                w, h = str(value).lower().split("x")
                config.viewport_width = int(w)
                config.viewport_height = int(h)
            except ValueError:
                logger.warning("--viewport の形式が不正です: %s (WIDTHxHEIGHT)", value)
        elif key == "headed":
            config.headed = bool(value)
        elif key == "channel":
            config.channel = str(value)
        elif key in _INT_FIELDS:
            _set_int(config, key, value, f"--{key.replace('_', '-')}")
        elif key == "export_target":
            _set_export_target(config, value, "--target")
        elif key == "log_level":
            _set_log_level(config, value, "--log-level")
        else:
            raise TypeError(f"未知の設定項目です: {key}")
    return config


# ---------------------------------------------------------------------------
# まとめて読み込み
# ---------------------------------------------------------------------------

def load_config(
    path: Optional[Union[str, Path]] = None,
    environ: Optional[Mapping[str, str]] = None,
    **overrides: Any,
) -> ReplConfig:
    """デフォルト → 設定ファイル → 環境変数 → CLI 引数 の順に設定を構築する。

    Args:
        path: 設定ファイル。None の場合はカレントディレクトリの brepl.yaml があれば使う
        environ: 環境変数の辞書（None で os.environ）
        **overrides: CLI 引数（apply_cli_args を参照）

    Returns:
        構築した設定

    Raises:
        FileNotFoundError: 明示した設定ファイルが存在しない場合
        ValueError: 設定ファイルの構文エラー
    """
    config = ReplConfig()

    if path is None and Path(DEFAULT_CONFIG_FILE).exists():
        path = DEFAULT_CONFIG_FILE
    if path is not None:
        apply_file_values(config, load_config_file(path))

    apply_env(config, environ)
    apply_cli_args(config, **overrides)
    logger.info("設定を読み込みました: %s", config)
    return config
