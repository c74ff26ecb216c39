# app/detector/scan_detector.py
from __future__ import annotations
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Hashable, Iterator, List, Optional
import numpy as np
import structlog

from app.detector.config import ScanDetectorConfig
from core.hooks.dispatcher import EventControl, EventDispatcher
from core.hooks.events import KeyEvent
from core.utils.timers import TimerHandle, TimerQueue

log = structlog.get_logger()

KEYDOWN = "keydown"

@dataclass(frozen=True)
class BufferedKey:
    timestamp: float   # monotonic ms
    character: str

@dataclass(frozen=True)
class ScanOutcome:
    payload: str
    accepted: bool
    avg_interval_ms: float
    target: Optional[Hashable] = None   # target of the key that opened the window

    @property
    def length(self) -> int:
        return len(self.payload)

class ScanDetector:
    """
    Tells scanner bursts from human typing by inter-key timing.
    - Keys accumulate into one capture window; an end code or `evaluation_delay_ms`
      of silence closes it.
    - A window is accepted when the mean gap is <= `max_avg_interval_ms`, the payload
      is at least `min_length` long and the optional validator agrees.
    - Accepted payloads go to on_success, rejected ones to on_failure (if given).
    All methods must be called from the thread that drives `timers`.
    """
    def __init__(
        self,
        on_success: Callable[[str], None],
        on_failure: Optional[Callable[[str], None]] = None,
        config: Optional[ScanDetectorConfig] = None,
        timers: Optional[TimerQueue] = None,
    ):
        self.on_success = on_success
        self.on_failure = on_failure
        self.cfg = config or ScanDetectorConfig()
        self.timers = timers if timers is not None else TimerQueue()

        self._buffer: List[BufferedKey] = []
        self._window_target: Optional[Hashable] = None
        self._timer: Optional[TimerHandle] = None
        self._source: Optional[EventDispatcher] = None
        self.last_outcome: Optional[ScanOutcome] = None

    # ---- introspection ----

    @property
    def pending(self) -> str:
        return "".join(k.character for k in self._buffer)

    @property
    def buffer_length(self) -> int:
        return len(self._buffer)

    @property
    def has_pending_timer(self) -> bool:
        return self._timer is not None and not self._timer.cancelled

    @property
    def source(self) -> Optional[EventDispatcher]:
        return self._source

    # ---- event source lifecycle ----

    def attach(self, source: EventDispatcher) -> None:
        if source is self._source:
            return
        if self._source is not None:
            self.detach()
        self._reset()
        source.subscribe(KEYDOWN, self.on_key_down)
        self._source = source
        log.info("detector.attach", source=repr(source))

    def detach(self) -> None:
        """Unsubscribe and abandon any half-built capture without callbacks."""
        if self._source is None:
            return
        self._source.unsubscribe(KEYDOWN, self.on_key_down)
        log.info("detector.detach", source=repr(self._source), dropped=len(self._buffer))
        self._source = None
        self._reset()

    @contextmanager
    def attached(self, source: EventDispatcher) -> Iterator["ScanDetector"]:
        self.attach(source)
        try:
            yield self
        finally:
            self.detach()

    # ---- input ----

    def on_key_down(self, ev: KeyEvent, control: Optional[EventControl] = None) -> None:
        self.handle_key_event(ev.key, ev.key_code, ev.target, ev.t_mono_ms, control)

    def handle_key_event(
        self,
        key: str,
        key_code: Optional[int],
        target: Optional[Hashable],
        now: float,
        control: Optional[EventControl] = None,
    ) -> None:
        cfg = self.cfg
        if cfg.ignore_target is not None and target == cfg.ignore_target:
            return

        try:
            if key_code in cfg.end_codes:
                self.evaluate()
                return

            if self._buffer or key_code in cfg.start_codes or not cfg.start_codes:
                self._cancel_timer()
                if not self._buffer:
                    self._window_target = target
                self._buffer.append(BufferedKey(timestamp=now, character=key))
                self._timer = self.timers.call_later(cfg.evaluation_delay_s, self.evaluate)
        finally:
            if control is not None:
                if cfg.stop_propagation:
                    control.stop_propagation()
                if cfg.prevent_default:
                    control.prevent_default()

    # ---- evaluation ----

    def evaluate(self) -> Optional[ScanOutcome]:
        """Close the current capture window. Empty buffer: no-op, returns None."""
        self._cancel_timer()
        if not self._buffer:
            return None

        try:
            stamps = np.array([k.timestamp for k in self._buffer], dtype=float)
            deltas = np.diff(stamps)
            # a single key has no gaps and passes the timing check
            avg = float(deltas.mean()) if deltas.size else 0.0

            chars = self._buffer[1:] if self.cfg.start_codes else self._buffer
            payload = "".join(k.character for k in chars)

            accepted = (
                avg <= self.cfg.max_avg_interval_ms
                and len(payload) >= self.cfg.min_length
                and (self.cfg.validator is None or bool(self.cfg.validator(payload)))
            )
            outcome = ScanOutcome(payload=payload, accepted=accepted, avg_interval_ms=avg, target=self._window_target)
            self.last_outcome = outcome
            log.debug("scan.evaluate", accepted=accepted, length=len(payload), avg_ms=round(avg, 3), keys=len(self._buffer))

            if accepted:
                self.on_success(payload)
            elif self.on_failure is not None:
                self.on_failure(payload)
            return outcome
        finally:
            self._buffer = []
            self._window_target = None

    # ---- internals ----

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _reset(self) -> None:
        self._cancel_timer()
        self._buffer = []
        self._window_target = None
