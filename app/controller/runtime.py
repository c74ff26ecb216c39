from __future__ import annotations
import threading
import time
from dataclasses import replace
from queue import Queue
from typing import Callable, Optional
import structlog

from app.controller.context_state import ContextState
from app.detector.config import ScanDetectorConfig
from app.detector.scan_detector import KEYDOWN, ScanDetector
from core.focus.focus_tracker import FocusProvider, FocusTracker
from core.hooks.dispatcher import EventControl, EventDispatcher
from core.hooks.events import BaseEvent, FocusEvent, KeyAction, KeyEvent, ScanEvent
from core.utils.queueing import get_or_none
from core.utils.timers import TimerQueue

log = structlog.get_logger()

IDLE_WAIT_SEC = 0.5

class ScanRuntime:
    """
    Hook threads only enqueue; one consumer thread does everything else.
    That thread owns the dispatcher, the timer queue and the detector, so detector
    code always runs to completion without locks.
    """
    def __init__(
        self,
        config: Optional[ScanDetectorConfig] = None,
        on_scan: Optional[Callable[[ScanEvent], None]] = None,
        clock: Callable[[], float] = time.perf_counter,
        with_hooks: bool = True,
        focus_provider: Optional[FocusProvider] = None,
        queue_size: int = 5000,
    ):
        self.cfg = config or ScanDetectorConfig()
        self.clock = clock
        self.queue: Queue = Queue(maxsize=queue_size)
        self.timers = TimerQueue(clock=clock)
        self.source = EventDispatcher("keyboard")
        self.ctx = ContextState()
        self.detector = ScanDetector(
            on_success=self._on_success,
            on_failure=self._on_failure,
            config=self.cfg,
            timers=self.timers,
        )
        self.kbd = None
        self.focus = None
        if with_hooks:
            from core.hooks.keyboard_listener import KeyboardHook
            self.kbd = KeyboardHook(self.queue)
            self.focus = FocusTracker(self.queue, provider=focus_provider)

        self._on_scan = on_scan
        self._consumer_thr: Optional[threading.Thread] = None
        self._stop_evt = threading.Event()
        self.scans_accepted = 0
        self.scans_rejected = 0

    def start(self) -> None:
        self._stop_evt.clear()
        self.detector.attach(self.source)
        if self.focus:
            self.focus.start()
        if self.kbd:
            self.kbd.start()
        self._consumer_thr = threading.Thread(target=self._consume_loop, daemon=True)
        self._consumer_thr.start()
        log.info("runtime.start", cfg=_describe(self.cfg))

    def stop(self) -> None:
        if self.kbd:
            self.kbd.stop()
        if self.focus:
            self.focus.stop()
        self._stop_evt.set()
        if self._consumer_thr:
            self._consumer_thr.join(timeout=1.0)
            self._consumer_thr = None
        self.detector.detach()
        self.timers.cancel_all()
        log.info("runtime.stop", accepted=self.scans_accepted, rejected=self.scans_rejected)

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._stop_evt.wait(timeout)

    # ---- loop body ----

    def _consume_loop(self) -> None:
        while not self._stop_evt.is_set():
            ev = get_or_none(self.queue, self.timers.time_until_next(IDLE_WAIT_SEC))
            if ev is not None:
                self.process(ev)
            self.tick()

    def process(self, ev: BaseEvent) -> Optional[EventControl]:
        """Route one queued event; returns the dispatch control for key-downs."""
        if isinstance(ev, FocusEvent):
            self.ctx.apply(ev)
            log.debug("focus.change", app=ev.app_name, dwell_prev_s=ev.dwell_prev_s)
            return None

        if not isinstance(ev, KeyEvent):
            return None

        # due timers first, so a stale window closes before this key lands
        self.tick()
        if ev.target is None:
            ev = replace(ev, target=self.ctx.target, app=self.ctx.target)
        if ev.action != KeyAction.DOWN:
            return None

        ctl = self.source.dispatch(KEYDOWN, ev)
        if ctl.default_prevented:
            log.debug("kbd.default_prevented", key_code=ev.key_code)
        return ctl

    def tick(self, now: Optional[float] = None) -> int:
        try:
            return self.timers.run_due(now)
        except Exception as e:
            log.warning("runtime.timer.error", err=str(e))
            return 0

    # ---- detector callbacks ----

    def _on_success(self, payload: str) -> None:
        self.scans_accepted += 1
        self._emit(payload, accepted=True)

    def _on_failure(self, payload: str) -> None:
        self.scans_rejected += 1
        self._emit(payload, accepted=False)

    def _emit(self, payload: str, accepted: bool) -> None:
        outcome = self.detector.last_outcome
        avg = outcome.avg_interval_ms if outcome else 0.0
        ev = ScanEvent(
            payload=payload,
            accepted=accepted,
            length=outcome.length if outcome else len(payload),
            avg_interval_ms=avg,
            target=outcome.target if outcome else None,
            t_mono=self.clock(),
        )
        log.info("scan.accepted" if accepted else "scan.rejected", length=ev.length, avg_ms=round(avg, 3), target=ev.target)
        log.debug("scan.payload", payload=payload)
        if self._on_scan:
            try:
                self._on_scan(ev)
            except Exception as e:
                log.warning("runtime.on_scan.error", err=str(e))

def _describe(cfg: ScanDetectorConfig) -> dict:
    return {
        "evaluation_delay_ms": cfg.evaluation_delay_ms,
        "max_avg_interval_ms": cfg.max_avg_interval_ms,
        "start_codes": sorted(cfg.start_codes),
        "end_codes": sorted(cfg.end_codes),
        "min_length": cfg.min_length,
        "ignore_target": cfg.ignore_target,
        "validator": cfg.validator is not None,
    }
