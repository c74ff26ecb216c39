"""
Offline replay of recorded keystrokes through a ScanDetector.

Input is JSONL, one KeyEvent.to_record() (or FocusEvent.to_record()) object per line.
Time is virtual: the clock jumps to each event's t_mono, so a recording replays
instantly and deterministically.
"""
from __future__ import annotations
import json
from dataclasses import replace
from pathlib import Path
from typing import Iterable, List, Optional, Union
import structlog

from app.detector.config import ScanDetectorConfig
from app.detector.scan_detector import KEYDOWN, ScanDetector
from core.hooks.dispatcher import EventDispatcher
from core.hooks.events import BaseEvent, FocusEvent, KeyAction, KeyEvent, ScanEvent
from core.utils.timers import TimerQueue

log = structlog.get_logger()

class ReplayError(Exception):
    pass

class VirtualClock:
    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

def load_records(path: Union[str, Path]) -> List[BaseEvent]:
    events: List[BaseEvent] = []
    with open(path, "r", encoding="utf-8") as fh:
        for lineno, line in enumerate(fh, start=1):
            if not line.strip():
                continue
            try:
                rec = json.loads(line)
                etype = rec.get("etype", "KEY")
                if etype == "KEY":
                    events.append(KeyEvent.from_record(rec))
                elif etype == "FOCUS":
                    events.append(FocusEvent.from_record(rec))
                else:
                    log.debug("replay.skip", line=lineno, etype=etype)
            except (json.JSONDecodeError, KeyError, ValueError, TypeError, AttributeError) as e:
                raise ReplayError(f"{path}:{lineno}: {e}") from e
    return events

class Replayer:
    def __init__(self, config: Optional[ScanDetectorConfig] = None):
        self.clock = VirtualClock()
        self.timers = TimerQueue(clock=self.clock)
        self.source = EventDispatcher("replay")
        self.detector = ScanDetector(
            on_success=lambda payload: self._collect(payload, True),
            on_failure=lambda payload: self._collect(payload, False),
            config=config,
            timers=self.timers,
        )
        self.results: List[ScanEvent] = []
        self._target = None
        self._started = False

    def feed(self, ev: BaseEvent) -> None:
        if self._started and ev.t_mono < self.clock.now:
            raise ReplayError(f"timestamps go backwards at t_mono={ev.t_mono}")
        self._started = True
        self._advance(ev.t_mono)

        if isinstance(ev, FocusEvent):
            self._target = ev.app_name
            return
        if isinstance(ev, KeyEvent) and ev.action == KeyAction.DOWN:
            target = ev.target if ev.target is not None else (ev.app or self._target)
            self.source.dispatch(KEYDOWN, _with_target(ev, target))

    def finish(self) -> List[ScanEvent]:
        """Let every pending timer fire."""
        deadline = self.timers.next_deadline()
        if deadline is not None:
            self._advance(deadline)
        return self.results

    def _advance(self, to: float) -> None:
        # step through deadlines so outcomes carry the time they actually fired
        deadline = self.timers.next_deadline()
        while deadline is not None and deadline <= to:
            self.clock.now = max(self.clock.now, deadline)
            self.timers.run_due()
            deadline = self.timers.next_deadline()
        self.clock.now = max(self.clock.now, to)

    def run(self, events: Iterable[BaseEvent]) -> List[ScanEvent]:
        with self.detector.attached(self.source):
            for ev in events:
                self.feed(ev)
            return self.finish()

    def _collect(self, payload: str, accepted: bool) -> None:
        outcome = self.detector.last_outcome
        self.results.append(ScanEvent(
            payload=payload,
            accepted=accepted,
            length=outcome.length if outcome else len(payload),
            avg_interval_ms=outcome.avg_interval_ms if outcome else 0.0,
            target=outcome.target if outcome else None,
            t_mono=self.clock.now,
        ))

def _with_target(ev: KeyEvent, target) -> KeyEvent:
    if ev.target == target:
        return ev
    return replace(ev, target=target)

def replay(events: Iterable[BaseEvent], config: Optional[ScanDetectorConfig] = None) -> List[ScanEvent]:
    return Replayer(config).run(events)

def replay_file(path: Union[str, Path], config: Optional[ScanDetectorConfig] = None) -> List[ScanEvent]:
    return replay(load_records(path), config)
