from __future__ import annotations
import random
import sys
import threading
import time
from typing import Optional, Tuple, Callable
import structlog

from queue import Queue

from core.hooks.events import FocusEvent
from core.utils.queueing import safe_put

log = structlog.get_logger()

# Provider signature: returns (app_name, pid, title)
Focus = Tuple[str, Optional[int], Optional[str]]
FocusProvider = Callable[[], Focus]

UNKNOWN: Focus = ("unknown", None, None)

# --- platform-specific providers ---

def _provider_windows() -> Focus:
    try:
        import win32gui, win32process
        import psutil
    except ImportError:
        return UNKNOWN
    hwnd = win32gui.GetForegroundWindow()
    if not hwnd:
        return UNKNOWN
    title = win32gui.GetWindowText(hwnd)
    _tid, pid = win32process.GetWindowThreadProcessId(hwnd)
    try:
        name = psutil.Process(pid).name()
    except (psutil.NoSuchProcess, psutil.AccessDenied):
        name = "unknown"
    return (name.lower(), pid, title or None)

def _provider_macos() -> Focus:
    try:
        from AppKit import NSWorkspace
    except ImportError:
        return UNKNOWN
    app = NSWorkspace.sharedWorkspace().frontmostApplication()
    if app is None:
        return UNKNOWN
    return (str(app.localizedName()).lower(), int(app.processIdentifier()), None)

def _provider_linux() -> Focus:
    # no portable way to ask X11/Wayland for the active window without extra deps
    return UNKNOWN

def default_provider() -> FocusProvider:
    if sys.platform.startswith("win"):
        return _provider_windows
    if sys.platform == "darwin":
        return _provider_macos
    return _provider_linux

class FocusTracker:
    """
    Polls the foreground app and emits FocusEvent on change.
    The app label doubles as the key-event target identity (see ScanDetectorConfig.ignore_target).
    Interval backs off while focus is stable, with jitter.
    """
    def __init__(self, out_q: Queue, provider: Optional[FocusProvider] = None, poll_sec: float = 0.25, max_poll_sec: float = 1.0):
        self.out_q = out_q
        self.provider = provider or default_provider()
        self._thr: Optional[threading.Thread] = None
        self._stop = threading.Event()

        self._interval = poll_sec
        self._min_interval = poll_sec
        self._max_interval = max_poll_sec
        self._unchanged_ticks = 0

        self._last: Focus = ("", None, None)
        self._last_switch_mono = time.perf_counter()

    def start(self) -> None:
        if self._thr and self._thr.is_alive():
            return
        self._stop.clear()
        self._thr = threading.Thread(target=self._loop, daemon=True)
        self._thr.start()
        log.info("focus.start")

    def stop(self) -> None:
        self._stop.set()
        if self._thr:
            self._thr.join(timeout=1.0)
            self._thr = None
        log.info("focus.stop")

    def poll_once(self) -> Optional[FocusEvent]:
        """One provider probe; returns the FocusEvent it queued, if focus changed."""
        try:
            name, pid, title = self.provider()
        except Exception as e:
            log.warning("focus.provider.error", err=str(e))
            name, pid, title = UNKNOWN
        now = time.perf_counter()
        if (name, pid, title) == self._last:
            self._unchanged_ticks += 1
            if self._interval < self._max_interval and self._unchanged_ticks % 5 == 0:
                self._interval = min(self._interval * 1.5, self._max_interval)
            return None

        dwell_prev = now - self._last_switch_mono if self._last[0] else None
        self._last = (name, pid, title)
        self._last_switch_mono = now
        self._interval = self._min_interval
        self._unchanged_ticks = 0
        ev = FocusEvent(app_name=(name or "unknown").lower(), pid=pid, title=title, dwell_prev_s=dwell_prev, t_mono=now)
        safe_put(self.out_q, ev)
        return ev

    @property
    def interval(self) -> float:
        return self._interval

    def _loop(self):
        while not self._stop.is_set():
            self.poll_once()
            self._stop.wait(self._interval * (0.9 + random.random() * 0.2))
