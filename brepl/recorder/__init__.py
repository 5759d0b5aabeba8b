# Recorder モジュール
# DOM イベントからコマンド文字列を合成する記録エンジン

from .debounce import FillDebouncer, Idle, PendingFlush  # noqa: F401
from .events import EventKind, RecorderEvent  # noqa: F401
from .heuristics import derive_locator, synthesize_command  # noqa: F401
from .recorder import Recorder  # noqa: F401
