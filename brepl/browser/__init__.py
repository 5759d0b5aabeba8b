# Browser モジュール
# Playwright + CDP によるページ操作、ブラウザセッション、ライブ記録

from .cdp_page import CdpPage  # noqa: F401
from .live_recorder import LiveRecorder  # noqa: F401
from .session import BrowserSession, BrowserState  # noqa: F401
