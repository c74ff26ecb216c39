# core/utils/timers.py
from __future__ import annotations
import heapq
import itertools
import time
from typing import Callable, List, Optional, Tuple

class TimerHandle:
    """A scheduled callback; cancel() makes it inert. Cancelling twice is fine."""
    __slots__ = ("when", "callback", "_cancelled")

    def __init__(self, when: float, callback: Callable[[], None]):
        self.when = when
        self.callback = callback
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def __repr__(self) -> str:
        state = "cancelled" if self._cancelled else "live"
        return f"<TimerHandle when={self.when:.4f} {state}>"

class TimerQueue:
    """
    Cancellable delayed callbacks driven by an explicit loop.
    - Deadlines are absolute values of `clock` (seconds).
    - Nothing runs on its own: the owner calls run_due() from its loop.
    - Not thread-safe; touch it only from the thread that drives it.
    """
    def __init__(self, clock: Callable[[], float] = time.perf_counter):
        self.clock = clock
        self._heap: List[Tuple[float, int, TimerHandle]] = []
        self._seq = itertools.count()

    def call_later(self, delay_s: float, callback: Callable[[], None]) -> TimerHandle:
        handle = TimerHandle(self.clock() + delay_s, callback)
        heapq.heappush(self._heap, (handle.when, next(self._seq), handle))
        return handle

    def next_deadline(self) -> Optional[float]:
        self._prune()
        return self._heap[0][0] if self._heap else None

    def time_until_next(self, default: float) -> float:
        deadline = self.next_deadline()
        if deadline is None:
            return default
        return max(0.0, min(default, deadline - self.clock()))

    def run_due(self, now: Optional[float] = None) -> int:
        now = self.clock() if now is None else now
        # timers scheduled from inside a callback wait for the next pass
        limit = next(self._seq)
        deferred: List[Tuple[float, int, TimerHandle]] = []
        ran = 0
        try:
            while self._heap and self._heap[0][0] <= now:
                entry = heapq.heappop(self._heap)
                handle = entry[2]
                if handle.cancelled:
                    continue
                if entry[1] > limit:
                    deferred.append(entry)
                    continue
                handle.cancel()
                handle.callback()
                ran += 1
        finally:
            for entry in deferred:
                heapq.heappush(self._heap, entry)
        return ran

    def cancel_all(self) -> None:
        for _when, _seq, handle in self._heap:
            handle.cancel()
        self._heap.clear()

    def _prune(self) -> None:
        while self._heap and self._heap[0][2].cancelled:
            heapq.heappop(self._heap)

    def __len__(self) -> int:
        return sum(1 for _w, _s, h in self._heap if not h.cancelled)
