from __future__ import annotations
import threading
from dataclasses import dataclass
from typing import Optional

from core.hooks.events import FocusEvent

@dataclass(frozen=True)
class FocusContext:
    app_name: str = "unknown"
    pid: Optional[int] = None
    title: Optional[str] = None
    since_mono: float = 0.0

class ContextState:
    """Latest focus snapshot; key events get stamped with its app_name as their target."""
    def __init__(self):
        self._lock = threading.RLock()
        self._current = FocusContext()

    def apply(self, ev: FocusEvent) -> None:
        with self._lock:
            self._current = FocusContext(app_name=ev.app_name, pid=ev.pid, title=ev.title, since_mono=ev.t_mono)

    def get_current(self) -> FocusContext:
        with self._lock:
            return self._current

    @property
    def target(self) -> str:
        return self.get_current().app_name
