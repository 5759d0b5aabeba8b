# Core モジュール
# ロケーター、コマンド実行、Transport、セッション実行、レポート生成を提供
